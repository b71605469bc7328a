"""Per-section rule tables for the survey program template.

Each table maps template paragraph ids to what happens to them. Targets with a
``hint`` can still be found by their literal text if the template's ids are
regenerated.
"""

from __future__ import annotations

from surveydoc.docx.locator import Target
from surveydoc.extraction import heuristics
from surveydoc.rules.engine import (
    RuleContext,
    SectionRules,
    clean,
    has,
    ids,
    lacks,
    remove,
    replace,
    strip_prefix,
)

RECON_SOIL_ONLY_TEXT = (
    "рекогносцировочное обследование территории с опробованием почв для установления фоновых "
    "характеристик состояния окружающей среды;"
)
GAS_GEOCHEMISTRY_TEXT = (
    "В результате выполнения ИЭИ, с учетом материалов ИГИ, при подготовке Технического отчета будут "
    "выданы рекомендации о необходимости выполнения газогеохимических исследований. В этом случае в "
    "соответствии с п.4.22 СП 47.13330.2016 в установленном порядке должно быть оформлено дополнение к "
    "Договору и настоящей Программе в части изменения объемов, видов и методов работ, увеличения "
    "продолжительности и стоимости ИЭИ."
)
TERRITORY_RADIATION_TEXT = "Радиационное обследование территории осуществляется в соответствии с:"
RESULT_HEADER_TEXT = (
    "Результатом ИЭИ является «Технический отчет по результатам инженерно-экологических изысканий» в составе:"
)
DEADLINE_TEXT = "Срок представления: Согласно Календарному плану выполнения работ"


def lab_works_sentence(ctx: RuleContext) -> str:
    parts = ["Радиационное обследование"]
    if ctx.flag("has_air_sampling"):
        parts.append("отбор проб атмосферного воздуха")
    if ctx.flag("has_physical_impacts"):
        parts.append("измерения параметров шума, вибрации и электромагнитных полей")
    verb = "проводится" if len(parts) == 1 else "проводятся"
    return (
        f"{', '.join(parts)} {verb} специалистами ИЛЦ ООО «ГК РЭИ» в соответствии с нормативной "
        "документацией согласно области аккредитации."
    )


def pollution_types_sentence(ctx: RuleContext) -> str:
    text = "радиационное, химическое, биологическое и другие виды загрязнений почв (грунтов)"
    if ctx.flag("has_any_water"):
        text += ", поверхностных и подземных вод"
    if ctx.flag("has_air_sampling"):
        text += ", атмосферного воздуха; акустическое загрязнение ОС"
    if ctx.flag("has_physical_impacts"):
        text += ", оценка вибрации, измерение параметров электромагнитного поля"
    return text + ";"


def forecast_text(ctx: RuleContext) -> str:
    explicit = (ctx.inputs.forecast_text or "").strip()
    if explicit:
        return explicit
    return heuristics.forecast_requirements(ctx.inputs.tz_text)


def previous_report_text(ctx: RuleContext) -> str | None:
    return (ctx.inputs.previous_report_text or "").strip() or None


SECTION_41 = SectionRules(
    "4.1",
    (
        # Items not offered at all: biology, socio-economics, gas survey,
        # gas chromatography, forecast, recommendations, prior-survey air data.
        remove(*ids("678F0EFD", "5372C8F8", "4ACECF48", "2D3B0AEC", "6A351B95", "03A4BD67", "7BE82047")),
        replace(Target("10466191"), RECON_SOIL_ONLY_TEXT, when=lacks("has_water_sampling")),
        remove(*ids("6F447173", "3F060870", "7906AF1B", "6C2F641C"), when=lacks("has_water_sampling")),
        remove(*ids("4163AFCC"), when=lacks("has_physical_impacts")),
        remove(*ids("573F6AC7", "358E2949"), when=lacks("is_moscow")),
        remove(*ids("0404C4A0"), when=has("is_communication_networks_object")),
        replace(Target("0404C4A0"), GAS_GEOCHEMISTRY_TEXT, when=lacks("is_communication_networks_object")),
        replace(Target("640087C1"), TERRITORY_RADIATION_TEXT, when=lacks("has_building_survey")),
        remove(*ids("2155BE0F"), when=lacks("has_building_survey")),
        remove(*ids("7EBF2B78"), when=lacks("has_sediment_sampling")),
        replace(Target("6EB92425"), lab_works_sentence),
    ),
)

# Footnotes under the work table; conditions read sample presence, not just facts.
SECTION_42_FOOTNOTES = SectionRules(
    "4.2-footnotes",
    (
        remove(*ids("0196987F"), when=lacks("has_sediment_samples")),
        remove(*ids("01D7E115"), when=lacks("has_surface_water_samples")),
        remove(*ids("07ED30CA"), when=lacks("has_ground_water_samples")),
    ),
)

SECTION_43 = SectionRules(
    "4.3",
    (
        remove(*ids("02746569")),
        remove(*ids("163325C2"), when=lacks("has_building_survey")),
        remove(*ids("6405C298"), when=lacks("has_sediment_sampling")),
        clean(
            *ids(
                "0F79E9B2", "1EFEBEAC", "762527BF", "5EC63448", "5A904236", "163325C2", "391CA166", "6405C298",
                "399E0F87", "332D642B", "17A6A743", "004576EC", "2DEAE965", "496CA16B", "56559001", "5BD4F23F",
            )
        ),
    ),
)

SECTION_44 = SectionRules(
    "4.4",
    (
        remove(Target("5A6E602E", hint="Зяблик")),
        clean(
            *ids(
                "468208AB", "5FA18B18", "5AFACCB0", "5D5F1385", "5D520082", "02E9F760",
                "1E98152E", "40AFFE3F", "534E152F", "38A69E3B", "2A434A57",
            )
        ),
    ),
)

SECTION_45 = SectionRules(
    "4.5",
    (replace(Target("7A32DBD3"), forecast_text, keep_run=True),),
)

SECTION_47_FLAGS = SectionRules(
    "4.7",
    (
        remove(*ids("39CC5C65"), when=lacks("has_radon_flux")),
        remove(*ids("19BAE2A3", "16D5EF8F", "10F360DF", "6A935AF9"), when=lacks("has_building_survey")),
        remove(*ids("651BB5BC"), when=lacks("has_surface_water")),
        remove(*ids("5C03EB4F"), when=lacks("has_sediment_sampling")),
        remove(*ids("0AB97C19"), when=lacks("has_ground_water")),
        remove(*ids("16AC340F"), when=lacks("has_gas_geochemistry")),
        clean(*ids("39CC5C65", "19BAE2A3", "16D5EF8F", "10F360DF", "6A935AF9", "651BB5BC", "5C03EB4F", "0AB97C19", "16AC340F")),
    ),
)

_BUILDING_DOC = Target("41DC4980", hint="МР 2.6.1.0333-23")
_MOSCOW_DOCS = (
    Target("30B10CC4", hint="Москомархитектуры"),
    Target("516E058D", hint="1386-ПП"),
    Target("0A442FAE", hint="1387-ПП"),
)

SECTION_61 = SectionRules(
    "6.1",
    (
        remove(Target("3E6B21D3", hint="МГСН 1.02.02"), Target("582D72BF", hint="514-ПП")),
        strip_prefix("(Здание) ", _BUILDING_DOC, when=has("has_building_survey")),
        remove(_BUILDING_DOC, when=lacks("has_building_survey")),
        strip_prefix("(Москва) ", *_MOSCOW_DOCS, when=has("is_moscow")),
        remove(*_MOSCOW_DOCS, when=lacks("is_moscow")),
        clean(_BUILDING_DOC, *_MOSCOW_DOCS),
    ),
)

SECTION_62 = SectionRules(
    "6.2",
    (
        remove(*ids("2BF2C306"), when=has("has_previous_report")),
        replace(Target("6A5BCFEC"), previous_report_text, when=has("has_previous_report"), keep_run=True),
        remove(*ids("6A5BCFEC"), when=lacks("has_previous_report")),
        clean(*ids("2BF2C306", "6A5BCFEC")),
    ),
)

SECTION_71 = SectionRules(
    "7.1",
    (
        replace(Target("0CFFD41E"), RESULT_HEADER_TEXT, keep_run=True),
        replace(Target("08623773"), pollution_types_sentence, keep_run=True),
        # The second report outline with all of its sub-items.
        remove(
            *ids(
                "2199F848", "502E2747", "79899415", "73C68B14", "297A2081", "0088EACD", "3E8BC1F7", "55D420EA",
                "6154BF72", "1875FE09", "4B5DBBA6", "6575ED91", "650C2415", "6C3BB37E", "2F2A648F",
            )
        ),
        replace(Target("22368CF2"), DEADLINE_TEXT, keep_run=True),
        clean(*ids("0CFFD41E", "08623773", "22368CF2")),
    ),
)
