from __future__ import annotations

import logging

import pytest

from markup_fixtures import HIGHLIGHTED_RUN, document, para

from surveydoc.docx.locator import Target, find_paragraph
from surveydoc.docx.markup import visible_text
from surveydoc.docx.styles import DEFAULT_RUN_PROPERTIES
from surveydoc.facts import FactSet, ProgramInputs, ServiceQuantities, SiteData
from surveydoc.report import AssemblyReport
from surveydoc.rules.engine import RuleContext, SectionRules, any_of, apply_section, clean, has, ids, lacks, remove, replace
from surveydoc.rules.sections import (
    GAS_GEOCHEMISTRY_TEXT,
    RECON_SOIL_ONLY_TEXT,
    SECTION_41,
    SECTION_42_FOOTNOTES,
    SECTION_45,
    SECTION_61,
    SECTION_62,
    SECTION_71,
    lab_works_sentence,
    pollution_types_sentence,
)


def _ctx(**inputs: object) -> RuleContext:
    return RuleContext(ProgramInputs(**inputs))


def _text(doc: str, para_id: str) -> str | None:
    span = find_paragraph(doc, para_id)
    return None if span is None else visible_text(span.slice(doc))


def _section_41_doc() -> str:
    return document(
        para("678F0EFD", "биологические исследования"),
        para("10466191", "рекогносцировочное обследование с опробованием почв, вод и донных отложений"),
        para("6F447173", "оценка по водным объектам"),
        para("4163AFCC", "исследование физических воздействий"),
        para("573F6AC7", "биотестирование (Москва)"),
        para("0404C4A0", "газогеохимические исследования (черновик)", run_properties=HIGHLIGHTED_RUN),
        para("640087C1", "Радиационное обследование территории и здания осуществляется в соответствии с:"),
        para("2155BE0F", "обследование здания"),
        para("7EBF2B78", "отбор проб донных отложений"),
        para("6EB92425", "лабораторный текст", run_properties=HIGHLIGHTED_RUN),
    )


def test_unknown_flag_is_rejected() -> None:
    with pytest.raises(KeyError):
        _ctx().flag("has_unicorns")


def test_context_flags_read_facts_site_and_texts() -> None:
    ctx = _ctx(
        facts=FactSet(has_surface_water=True),
        site=SiteData(address="г. Москва, ул. Тверская, 1"),
        previous_report_text="  Отчет 2021 года  ",
    )

    assert ctx.flag("has_surface_water")
    assert ctx.flag("has_any_water")
    assert ctx.flag("is_moscow")
    assert ctx.flag("has_previous_report")
    assert not ctx.flag("is_road_object")
    assert any_of(has("has_radon_flux"), has("is_moscow"))(ctx)


def test_sample_presence_prefers_order_quantity_over_fact() -> None:
    with_zero = _ctx(facts=FactSet(has_sediment_sampling=True), quantities=ServiceQuantities(by_row={29: 0}))
    without_quantity = _ctx(facts=FactSet(has_sediment_sampling=True))
    unreadable = _ctx(quantities=ServiceQuantities(by_row={29: "по запросу"}))
    with_quantity = _ctx(quantities=ServiceQuantities(by_row={28: "2"}))

    assert not with_zero.flag("has_sediment_samples")
    assert without_quantity.flag("has_sediment_samples")
    assert not unreadable.flag("has_sediment_samples")
    assert with_quantity.flag("has_surface_water_samples")


def test_section_41_for_soil_only_order() -> None:
    report = AssemblyReport()

    result = apply_section(_section_41_doc(), SECTION_41, _ctx(), report)

    assert _text(result, "678F0EFD") is None
    assert _text(result, "10466191") == RECON_SOIL_ONLY_TEXT
    assert _text(result, "6F447173") is None
    assert _text(result, "4163AFCC") is None
    assert _text(result, "573F6AC7") is None
    assert _text(result, "0404C4A0") == GAS_GEOCHEMISTRY_TEXT
    assert _text(result, "640087C1") == "Радиационное обследование территории осуществляется в соответствии с:"
    assert _text(result, "2155BE0F") is None
    assert _text(result, "7EBF2B78") is None
    assert _text(result, "6EB92425").startswith("Радиационное обследование проводится специалистами")
    lab = find_paragraph(result, "6EB92425").slice(result)
    assert DEFAULT_RUN_PROPERTIES in lab
    assert "highlight" not in lab
    assert report.sections_applied == ["4.1"]
    assert "5372C8F8" in report.skipped_targets("4.1")


def test_section_41_keeps_items_backed_by_facts() -> None:
    ctx = _ctx(
        facts=FactSet(
            has_water_sampling=True,
            has_physical_impacts=True,
            has_building_survey=True,
            has_sediment_sampling=True,
            is_communication_networks_object=True,
        ),
        site=SiteData(region_type="MOSCOW_CITY"),
    )

    result = apply_section(_section_41_doc(), SECTION_41, ctx, AssemblyReport())

    assert _text(result, "10466191").startswith("рекогносцировочное обследование с опробованием почв, вод")
    for kept in ("6F447173", "4163AFCC", "573F6AC7", "2155BE0F", "7EBF2B78"):
        assert _text(result, kept) is not None
    assert _text(result, "640087C1").startswith("Радиационное обследование территории и здания")
    assert _text(result, "0404C4A0") is None


def test_lab_sentence_verb_agrees_with_item_count() -> None:
    single = lab_works_sentence(_ctx())
    several = lab_works_sentence(_ctx(facts=FactSet(has_air_sampling=True, has_physical_impacts=True)))

    assert single.startswith("Радиационное обследование проводится ")
    assert several.startswith(
        "Радиационное обследование, отбор проб атмосферного воздуха, "
        "измерения параметров шума, вибрации и электромагнитных полей проводятся "
    )


def test_pollution_types_sentence_follows_facts() -> None:
    plain = pollution_types_sentence(_ctx())
    full = pollution_types_sentence(
        _ctx(facts=FactSet(has_ground_water=True, has_air_sampling=True, has_physical_impacts=True))
    )

    assert plain == "радиационное, химическое, биологическое и другие виды загрязнений почв (грунтов);"
    assert ", поверхностных и подземных вод" in full
    assert ", атмосферного воздуха; акустическое загрязнение ОС" in full
    assert full.endswith("измерение параметров электромагнитного поля;")


def test_footnotes_follow_sample_presence() -> None:
    doc = document(para("0196987F", "сноска 1"), para("01D7E115", "сноска 2"), para("07ED30CA", "сноска 3"))
    ctx = _ctx(quantities=ServiceQuantities(by_row={30: 3}))

    result = apply_section(doc, SECTION_42_FOOTNOTES, ctx, AssemblyReport())

    assert visible_text(result) == "сноска 3"


def test_forecast_cell_takes_text_from_terms_of_reference() -> None:
    doc = document(para("7A32DBD3", "шаблон", run_properties='<w:rPr><w:b/><w:color w:val="FF0000"/></w:rPr>'))
    tz = "Требования к составлению прогноза изменения природных условий Прогноз не требуется. Требования о подготовке"

    explicit = apply_section(doc, SECTION_45, _ctx(forecast_text="Выполнить прогноз."), AssemblyReport())
    derived = apply_section(doc, SECTION_45, _ctx(tz_text=tz), AssemblyReport())
    default = apply_section(doc, SECTION_45, _ctx(), AssemblyReport())

    assert _text(explicit, "7A32DBD3") == "Выполнить прогноз."
    assert "<w:b/>" in explicit and "FF0000" not in explicit
    assert _text(derived, "7A32DBD3") == "Прогноз не требуется."
    assert _text(default, "7A32DBD3") == "Не требуется"


def _section_61_doc(moscow_doc_id: str = "30B10CC4") -> str:
    return document(
        para("3E6B21D3", "МГСН 1.02.02"),
        para("41DC4980", "(Здание) МР 2.6.1.0333-23", run_properties=HIGHLIGHTED_RUN),
        para(moscow_doc_id, "(Москва) Приказ Москомархитектуры"),
        para("516E058D", "(Москва) Постановление № 1386-ПП"),
        para("0A442FAE", "(Москва) Постановление № 1387-ПП"),
    )


def test_section_61_strips_prefixes_for_building_and_moscow() -> None:
    ctx = _ctx(facts=FactSet(has_building_survey=True), site=SiteData(region_type="MOSCOW_CITY"))

    result = apply_section(_section_61_doc(), SECTION_61, ctx, AssemblyReport())

    assert _text(result, "3E6B21D3") is None
    assert _text(result, "41DC4980") == "МР 2.6.1.0333-23"
    assert _text(result, "30B10CC4") == "Приказ Москомархитектуры"
    assert _text(result, "0A442FAE") == "Постановление № 1387-ПП"
    assert "highlight" not in result


def test_section_61_finds_regenerated_paragraphs_by_hint(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="surveydoc.locator"):
        result = apply_section(_section_61_doc(moscow_doc_id="7777AAAA"), SECTION_61, _ctx(), AssemblyReport())

    assert "Москомархитектуры" not in visible_text(result)
    assert "МР 2.6.1.0333-23" not in visible_text(result)
    assert any(getattr(record, "hint", None) == "Москомархитектуры" for record in caplog.records)


def test_section_62_with_and_without_previous_report() -> None:
    doc = document(para("2BF2C306", "Материалы прошлых лет не используются."), para("6A5BCFEC", "шаблон отчета"))

    with_report = apply_section(doc, SECTION_62, _ctx(previous_report_text="Технический отчет 2019 г."), AssemblyReport())
    without_report = apply_section(doc, SECTION_62, _ctx(previous_report_text="  "), AssemblyReport())

    assert _text(with_report, "2BF2C306") is None
    assert _text(with_report, "6A5BCFEC") == "Технический отчет 2019 г."
    assert _text(without_report, "2BF2C306") == "Материалы прошлых лет не используются."
    assert _text(without_report, "6A5BCFEC") is None


def test_section_71_rewrites_results_and_drops_second_outline() -> None:
    doc = document(
        para("0CFFD41E", "Результат:"),
        para("08623773", "виды загрязнений"),
        para("2199F848", "второй вариант состава отчета"),
        para("2F2A648F", "последний пункт второго варианта"),
        para("22368CF2", "Срок представления: до 1 января"),
    )

    result = apply_section(doc, SECTION_71, _ctx(facts=FactSet(has_surface_water=True)), AssemblyReport())

    assert _text(result, "0CFFD41E").startswith("Результатом ИЭИ является")
    assert "поверхностных и подземных вод" in _text(result, "08623773")
    assert _text(result, "2199F848") is None
    assert _text(result, "2F2A648F") is None
    assert _text(result, "22368CF2") == "Срок представления: Согласно Календарному плану выполнения работ"


def test_overlapping_targets_are_reported_not_raised() -> None:
    nested = para("0000CC02", "в рамке")
    doc = document(f'<w:p w14:paraId="0000CC01"><w:r><w:txbxContent>{nested}</w:txbxContent></w:r></w:p>')
    section = SectionRules("test", (remove(*ids("0000CC01")), remove(*ids("0000CC02"))))
    report = AssemblyReport()

    result = apply_section(doc, section, _ctx(), report)

    assert find_paragraph(result, "0000CC01") is None
    assert [item.kind for item in report.skipped] == ["assembly_error"]
    assert report.skipped[0].target == "0000CC02"


def test_text_rule_returning_none_is_skipped_and_rules_compose() -> None:
    doc = document(para("12340001", "old", run_properties=HIGHLIGHTED_RUN))
    section = SectionRules(
        "test",
        (
            replace(Target("12340001"), lambda _ctx: None),
            replace(Target("12340001"), "new", keep_run=True, when=lacks("has_radon_flux")),
            clean(Target("12340001")),
        ),
    )

    result = apply_section(doc, section, _ctx(), AssemblyReport())

    assert _text(result, "12340001") == "new"
    assert "<w:i/>" in result
    assert "highlight" not in result
