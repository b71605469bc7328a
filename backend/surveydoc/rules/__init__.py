from surveydoc.rules.engine import Action, Rule, RuleContext, SectionRules, apply_section

__all__ = [
    "Action",
    "Rule",
    "RuleContext",
    "SectionRules",
    "apply_section",
]
