"""Declarative section rules and their interpreter.

A section is a list of ``Rule`` records. ``apply_section`` builds one region
index, turns every active rule into span patches and applies them as a single
edit script, so rules of one section never see each other's output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging
from typing import Callable, Union

from surveydoc.docx.edits import EditConflict, EditScript, Transform
from surveydoc.docx.locator import RegionIndex, Target
from surveydoc.docx.primitives import paragraph_text_transform, remove_transform, strip_prefix_transform
from surveydoc.docx.styles import clean_region
from surveydoc.errors import AmbiguousQuantity, AssemblyError, RegionNotFound
from surveydoc.facts import FactSet, ObjectTypeFlags, ProgramInputs
from surveydoc.quantities import parse_number
from surveydoc.report import AssemblyReport

logger = logging.getLogger("surveydoc.rules")


class Action(str, Enum):
    REMOVE = "remove"
    REPLACE = "replace"
    REPLACE_KEEP_RUN = "replace_keep_run"
    STRIP_PREFIX = "strip_prefix"
    CLEAN = "clean"


@dataclass(frozen=True)
class RuleContext:
    inputs: ProgramInputs

    def flag(self, name: str) -> bool:
        if name in FactSet.model_fields:
            return bool(getattr(self.inputs.facts, name))
        if name in ObjectTypeFlags.model_fields:
            return bool(getattr(self.inputs.object_type, name))
        if name == "is_moscow":
            return self.inputs.site.is_moscow
        if name == "has_previous_report":
            return bool((self.inputs.previous_report_text or "").strip())
        if name == "has_any_water":
            return self.inputs.facts.has_any_water
        if name in _SAMPLE_FLAGS:
            service, fact = _SAMPLE_FLAGS[name]
            return self.has_samples(service, fact)
        raise KeyError(f"unknown rule flag '{name}'")

    def has_samples(self, service: str, fact: str) -> bool:
        """Samples are present when the order quantity is positive; with no usable quantity the fact decides."""
        try:
            quantity = parse_number(self.inputs.quantities.raw(service))
        except AmbiguousQuantity:
            quantity = None
        if quantity is not None:
            return quantity > 0
        return bool(getattr(self.inputs.facts, fact))


_SAMPLE_FLAGS = {
    "has_sediment_samples": ("sediment", "has_sediment_sampling"),
    "has_surface_water_samples": ("surface_water", "has_surface_water"),
    "has_ground_water_samples": ("ground_water", "has_ground_water"),
}


Condition = Callable[[RuleContext], bool]
TextSource = Union[str, Callable[[RuleContext], Union[str, None]], None]


def always(_ctx: RuleContext) -> bool:
    return True


def has(name: str) -> Condition:
    def _check(ctx: RuleContext) -> bool:
        return ctx.flag(name)

    return _check


def lacks(name: str) -> Condition:
    def _check(ctx: RuleContext) -> bool:
        return not ctx.flag(name)

    return _check


def any_of(*conditions: Condition) -> Condition:
    def _check(ctx: RuleContext) -> bool:
        return any(condition(ctx) for condition in conditions)

    return _check


def ids(*para_ids: str) -> tuple[Target, ...]:
    return tuple(Target(para_id) for para_id in para_ids)


@dataclass(frozen=True)
class Rule:
    action: Action
    targets: tuple[Target, ...]
    when: Condition = always
    # STRIP_PREFIX reads the prefix from here; a callable returning None skips the rule.
    text: TextSource = None

    def resolve_text(self, ctx: RuleContext) -> str | None:
        if callable(self.text):
            return self.text(ctx)
        return self.text


@dataclass(frozen=True)
class SectionRules:
    name: str
    rules: tuple[Rule, ...] = field(default_factory=tuple)


def remove(*targets: Target, when: Condition = always) -> Rule:
    return Rule(Action.REMOVE, targets, when)


def replace(target: Target, text: TextSource, *, when: Condition = always, keep_run: bool = False) -> Rule:
    action = Action.REPLACE_KEEP_RUN if keep_run else Action.REPLACE
    return Rule(action, (target,), when, text)


def strip_prefix(prefix: str, *targets: Target, when: Condition = always) -> Rule:
    return Rule(Action.STRIP_PREFIX, targets, when, prefix)


def clean(*targets: Target, when: Condition = always) -> Rule:
    return Rule(Action.CLEAN, targets, when)


def _transform_for(rule: Rule, text: str | None) -> Transform:
    if rule.action is Action.REMOVE:
        return remove_transform
    if rule.action is Action.REPLACE:
        return paragraph_text_transform(text or "", False)
    if rule.action is Action.REPLACE_KEEP_RUN:
        return paragraph_text_transform(text or "", True)
    if rule.action is Action.STRIP_PREFIX:
        return strip_prefix_transform(text or "")
    return clean_region


def apply_section(doc: str, section: SectionRules, ctx: RuleContext, report: AssemblyReport) -> str:
    """Apply one section's rules; missing targets are reported and left alone."""
    index = RegionIndex.build(doc)
    script = EditScript()
    fired = 0

    for rule in section.rules:
        if not rule.when(ctx):
            continue
        text = rule.resolve_text(ctx)
        if text is None and rule.action in {Action.REPLACE, Action.REPLACE_KEEP_RUN, Action.STRIP_PREFIX}:
            continue
        transform = _transform_for(rule, text)
        for target in rule.targets:
            spans = index.resolve(target)
            if not spans:
                report.record(RegionNotFound(target.para_id), section=section.name)
                continue
            try:
                for span in spans:
                    script.add(span, transform)
            except EditConflict as exc:
                report.record(AssemblyError(str(exc)), section=section.name, target=target.para_id)
                continue
            fired += 1

    result = script.apply(doc)
    report.mark_applied(section.name)
    logger.info(
        "section_applied",
        extra={"event": "section_applied", "section": section.name, "targets": fired, "patches": len(script)},
    )
    return result
