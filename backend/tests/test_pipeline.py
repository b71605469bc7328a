from __future__ import annotations

import pytest

from markup_fixtures import HIGHLIGHTED_RUN, docx_bytes, document, para, table, text_row

from surveydoc import pipeline
from surveydoc.docx.locator import find_paragraph
from surveydoc.docx.markup import visible_text
from surveydoc.docx.package import DocxPackage
from surveydoc.errors import TemplateFormatError
from surveydoc.facts import FactSet, LayersData, ObjectTypeFlags, ProgramInputs, SiteData, SoilLayer
from surveydoc.pipeline import assemble_document_xml, assemble_program, build_program_inputs, get_fact_extractor
from surveydoc.report import AssemblyReport
from surveydoc.rules.cells import STUDY_AREA_ANCHOR
from surveydoc.rules.layers import SOIL_SAMPLING_MAIN_ID, TEMPLATE_LAYER_IDS

TZ_TEXT = (
    "Требования к составлению прогноза изменения природных условий Прогноз не требуется. "
    "Требования о подготовке отчета"
)
ORDER_TEXT = """
Отбор проб почвы на химический анализ в слое 0,2-1,0 (1, 2)
Отбор проб почвы\tпроба\t5\t10
"""


def _template_xml() -> str:
    return document(
        para("10466191", "рекогносцировочное обследование с опробованием почв, вод и донных отложений"),
        para("6EB92425", "лабораторный текст", run_properties=HIGHLIGHTED_RUN),
        para("7A32DBD3", "прогноз (шаблон)", run_properties=HIGHLIGHTED_RUN),
        para("2BF2C306", "Материалы прошлых лет не используются."),
        para("6A5BCFEC", "шаблон отчета", run_properties=HIGHLIGHTED_RUN),
        table(text_row("80000004", ["8.4", STUDY_AREA_ANCHOR, "по границе участка (автомобильной дороги)"])),
        para(SOIL_SAMPLING_MAIN_ID, "Отбор проб ПГ (шаблон)", run_properties=HIGHLIGHTED_RUN),
        *(para(para_id, "в слое (шаблон)") for para_id in TEMPLATE_LAYER_IDS[:3]),
    )


def _template() -> bytes:
    return docx_bytes(_template_xml())


def _text(doc: str, para_id: str) -> str | None:
    span = find_paragraph(doc, para_id)
    return None if span is None else visible_text(span.slice(doc))


def test_assemble_program_end_to_end() -> None:
    template = _template()
    inputs = ProgramInputs(
        facts=FactSet(has_ground_water=True, has_water_sampling=True),
        forecast_text="Прогноз не требуется.",
        site=SiteData(object_name="Жилой дом"),
    )

    result = assemble_program(template, inputs, run_id="test-run-1")

    assert result.report.run_id == "test-run-1"
    package = DocxPackage.from_bytes(result.content)
    assert package.entry_names() == DocxPackage.from_bytes(template).entry_names()
    doc = package.document_xml
    assert "highlight" not in doc
    assert _text(doc, "6EB92425").startswith("Радиационное обследование")
    assert _text(doc, "7A32DBD3") == "Прогноз не требуется."
    assert _text(doc, "2BF2C306") == "Материалы прошлых лет не используются."
    assert _text(doc, "6A5BCFEC") is None
    assert "(автомобильной дороги)" not in visible_text(doc)
    assert {"4.1", "4.5", "6.2", "8.4"} <= set(result.report.sections_applied)
    assert any(item.section == "4.2" and item.kind == "region_not_found" for item in result.report.skipped)


def test_invalid_run_id_is_replaced() -> None:
    result = assemble_program(_template(), ProgramInputs(), run_id="not a valid id")

    assert result.report.run_id != "not a valid id"
    assert len(result.report.run_id) == 36


def test_unreadable_template_raises() -> None:
    with pytest.raises(TemplateFormatError):
        assemble_program(b"not a docx", ProgramInputs())


def test_build_program_inputs_merges_orders_with_heuristics() -> None:
    inputs = build_program_inputs(
        ORDER_TEXT,
        site=SiteData(object_name="Строительство кабельной линии связи"),
        tz_text=TZ_TEXT,
        supplementary_orders=["Отбор проб подземных вод из скважин", "   "],
        previous_report_text="Отчет 2020 г.",
    )

    assert inputs.facts.has_ground_water
    assert inputs.facts.has_water_sampling
    assert inputs.object_type.is_linear_communication
    assert inputs.layers is not None
    assert inputs.layers.layers[0].platform_numbers == [1, 2]
    assert inputs.quantities.raw("soil") == 10.0
    assert "Отбор проб подземных вод из скважин" in inputs.order_text
    assert inputs.order_text.count("\n") == ORDER_TEXT.count("\n") + 1
    assert inputs.forecast_text == "Прогноз не требуется."
    assert inputs.has_cysts is False
    assert inputs.previous_report_text == "Отчет 2020 г."


def test_get_fact_extractor_follows_backend_setting(monkeypatch) -> None:
    monkeypatch.setattr(pipeline.settings, "extractor_backend", "heuristic")
    assert get_fact_extractor() is None

    monkeypatch.setattr(pipeline.settings, "extractor_backend", "bedrock")
    pipeline._cached_bedrock_extractor.cache_clear()
    try:
        first = get_fact_extractor()
        assert first is not None
        assert get_fact_extractor() is first
    finally:
        pipeline._cached_bedrock_extractor.cache_clear()


def test_second_assembly_over_its_own_output_changes_nothing() -> None:
    inputs = ProgramInputs(
        facts=FactSet(has_air_sampling=True, has_physical_impacts=True),
        object_type=ObjectTypeFlags(is_linear_communication=True),
        layers=LayersData(
            layers=[
                SoilLayer(depth_from=0.0, depth_to=0.2, sample_count=4, platform_numbers=[1, 2, 3, 4]),
                SoilLayer(depth_from=5.0, depth_to=6.0, sample_count=1),
            ]
        ),
        previous_report_text="Технический отчет 2019 г.",
        site=SiteData(address="г. Москва, ул. Тверская, 1"),
    )

    first = assemble_document_xml(_template_xml(), inputs, AssemblyReport())
    second_report = AssemblyReport()
    second = assemble_document_xml(first, inputs, second_report)

    assert second == first
    assert "в слое 5,0-6,0 м – 1 шт." in visible_text(second)
    assert set(TEMPLATE_LAYER_IDS[:3]) <= set(second_report.skipped_targets("4.7"))
