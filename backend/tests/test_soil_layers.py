from __future__ import annotations

from markup_fixtures import HIGHLIGHTED_RUN, document, para

from surveydoc.docx.locator import find_paragraph
from surveydoc.docx.markup import visible_text
from surveydoc.facts import FactSet, LayersData, ProgramInputs, SoilLayer
from surveydoc.report import AssemblyReport
from surveydoc.rules.engine import RuleContext
from surveydoc.rules.layers import (
    BOREHOLE_DEPTH_ID,
    EPIDEMIOLOGICAL_ID,
    SOIL_SAMPLING_MAIN_ID,
    TEMPLATE_LAYER_IDS,
    apply_methods,
    apply_soil_layers,
    layer_line,
    layer_para_id,
)


def _build_methods_doc() -> str:
    return document(
        para("39CC5C65", "Измерение ППР с поверхности грунта"),
        para("651BB5BC", "Отбор проб поверхностных вод"),
        para(SOIL_SAMPLING_MAIN_ID, "Отбор проб ПГ осуществляется (шаблон)", run_properties=HIGHLIGHTED_RUN),
        *(para(para_id, f"в слое {position},0 м – шаблон", run_properties=HIGHLIGHTED_RUN) for position, para_id in enumerate(TEMPLATE_LAYER_IDS)),
        para(EPIDEMIOLOGICAL_ID, "Эпидемиологический отбор (шаблон)", run_properties=HIGHLIGHTED_RUN),
        para(BOREHOLE_DEPTH_ID, "Бурение скважин (шаблон)", run_properties=HIGHLIGHTED_RUN),
    )


def _text(doc: str, para_id: str) -> str | None:
    span = find_paragraph(doc, para_id)
    return None if span is None else visible_text(span.slice(doc))


def _two_layers() -> LayersData:
    return LayersData(
        layers=[
            SoilLayer(depth_from=0.2, depth_to=1.0, sample_count=5, platform_numbers=[1, 2]),
            SoilLayer(depth_from=1.0, depth_to=2.0, sample_count=3),
        ]
    )


def test_layer_line_format() -> None:
    layer = SoilLayer(depth_from=0.2, depth_to=1.0, sample_count=5, platform_numbers=[1, 4])

    assert layer_line(layer, last=False) == "в слое 0,2-1,0 м (1,4) – 5 шт.;"
    assert layer_line(layer, last=True) == "в слое 0,2-1,0 м (1,4) – 5 шт."
    assert layer_para_id(0) == "18870E33"


def test_soil_layers_replace_template_block() -> None:
    report = AssemblyReport()

    result = apply_soil_layers(_build_methods_doc(), _two_layers(), report)

    main = _text(result, SOIL_SAMPLING_MAIN_ID)
    assert "с 5 пробных площадок" in main
    assert "из 5 геоэкологических скважин" in main
    assert _text(result, layer_para_id(0)) == "в слое 0,2-1,0 м (1,2) – 5 шт.;"
    assert _text(result, layer_para_id(1)) == "в слое 1,0-2,0 м – 3 шт."
    assert result.index(SOIL_SAMPLING_MAIN_ID) < result.index(layer_para_id(0)) < result.index(layer_para_id(1))
    assert all(find_paragraph(result, para_id) is None for para_id in TEMPLATE_LAYER_IDS)
    assert "с 2 пробных площадок" in _text(result, EPIDEMIOLOGICAL_ID)
    borehole = _text(result, BOREHOLE_DEPTH_ID)
    assert "на глубину до 2,0 м" in borehole
    assert "5,0-" not in borehole
    assert "highlight" not in result
    assert report.skipped == []


def test_deep_layers_add_customer_borehole_sentence() -> None:
    data = LayersData(
        layers=[
            SoilLayer(depth_from=0.0, depth_to=0.2, sample_count=15),
            SoilLayer(depth_from=5.0, depth_to=6.0, sample_count=2),
        ]
    )

    result = apply_soil_layers(_build_methods_doc(), data, AssemblyReport())

    assert "Отбор образцов грунта с глубин 5,0-6,0 м" in _text(result, BOREHOLE_DEPTH_ID)
    assert _text(result, EPIDEMIOLOGICAL_ID) == "Эпидемиологический отбор (шаблон)"
    assert "с 15 пробных площадок" in _text(result, SOIL_SAMPLING_MAIN_ID)


def test_second_run_replaces_generated_layers_instead_of_duplicating() -> None:
    first = apply_soil_layers(_build_methods_doc(), _two_layers(), AssemblyReport())
    report = AssemblyReport()

    second = apply_soil_layers(first, _two_layers(), report)

    assert visible_text(second).count("в слое 0,2-1,0 м (1,2)") == 1
    assert visible_text(second).count("в слое 1,0-2,0 м") == 1
    assert set(report.skipped_targets("4.7")) == set(TEMPLATE_LAYER_IDS)


def test_without_layers_the_template_block_is_only_cleaned() -> None:
    result = apply_soil_layers(_build_methods_doc(), None, AssemblyReport())

    assert _text(result, SOIL_SAMPLING_MAIN_ID) == "Отбор проб ПГ осуществляется (шаблон)"
    assert _text(result, TEMPLATE_LAYER_IDS[0]) == "в слое 0,0 м – шаблон"
    assert _text(result, BOREHOLE_DEPTH_ID) == "Бурение скважин (шаблон)"
    assert "highlight" not in result
    assert "FF0000" not in result


def test_methods_section_applies_flags_and_layers() -> None:
    ctx = RuleContext(ProgramInputs(facts=FactSet(has_surface_water=True), layers=_two_layers()))
    report = AssemblyReport()

    result = apply_methods(_build_methods_doc(), ctx, report)

    assert _text(result, "39CC5C65") is None
    assert _text(result, "651BB5BC") == "Отбор проб поверхностных вод"
    assert _text(result, layer_para_id(1)) == "в слое 1,0-2,0 м – 3 шт."
    assert report.sections_applied == ["4.7"]
