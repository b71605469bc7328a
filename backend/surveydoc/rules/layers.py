"""Section 4.7: conditional method paragraphs and the soil-layer block."""

from __future__ import annotations

import logging

from surveydoc.docx.edits import EditConflict, EditScript, Transform
from surveydoc.docx.locator import RegionIndex
from surveydoc.docx.primitives import paragraph_text_transform, remove_transform, styled_paragraph
from surveydoc.docx.styles import clean_region
from surveydoc.errors import AssemblyError, RegionNotFound
from surveydoc.facts import LayersData, SoilLayer
from surveydoc.quantities import format_decimal_comma
from surveydoc.report import AssemblyReport
from surveydoc.rules.engine import RuleContext, apply_section
from surveydoc.rules.sections import SECTION_47_FLAGS

logger = logging.getLogger("surveydoc.rules")

SECTION = "4.7"

SOIL_SAMPLING_MAIN_ID = "308E5161"
TEMPLATE_LAYER_IDS = (
    "18870DCF",
    "126E6E3F",
    "7F05BC7B",
    "3AF992CD",
    "368C2BEC",
    "4D19489B",
    "2E902EA9",
    "70CA0B35",
    "19F93532",
    "53651C48",
)
EPIDEMIOLOGICAL_ID = "74E1E0DB"
BOREHOLE_DEPTH_ID = "5C1C2505"

DEFAULT_PLATFORM_COUNT = 15
MAX_GENERATED_LAYERS = 64
# Generated layer paragraphs get ids offset from the first template layer id.
_LAYER_ID_BASE = int(TEMPLATE_LAYER_IDS[0], 16) + 100
_DEEP_LAYER_DEPTH_M = 5.0


def format_depth(depth: float) -> str:
    return format_decimal_comma(depth, 1)


def layer_para_id(index: int) -> str:
    return f"{_LAYER_ID_BASE + index:08X}"


def layer_line(layer: SoilLayer, *, last: bool) -> str:
    platforms = f" ({','.join(str(number) for number in layer.platform_numbers)})" if layer.platform_numbers else ""
    ending = "" if last else ";"
    return (
        f"в слое {format_depth(layer.depth_from)}-{format_depth(layer.depth_to)} м{platforms} – "
        f"{layer.sample_count} шт.{ending}"
    )


def layer_paragraphs(layers: list[SoilLayer]) -> str:
    return "".join(
        styled_paragraph(layer_line(layer, last=index == len(layers) - 1), para_id=layer_para_id(index))
        for index, layer in enumerate(layers)
    )


def soil_sampling_text(data: LayersData) -> str:
    platforms = data.surface_platform_count or (data.layers[0].sample_count if data.layers else 0) or DEFAULT_PLATFORM_COUNT
    boreholes = data.total_borehole_count or platforms
    return (
        "Определение участков отбора проб осуществляется на обследуемой территории с учетом функциональных зон, "
        "рельефа местности и литолого-геологического строения. Отбор проб ПГ для проведения лабораторных "
        "исследований и испытаний, указанных в п.4 настоящей Программы, осуществляется в поверхностном слое с "
        f"{platforms} пробных площадок размером 5х5 м (площадью 25 кв.м) и послойно из {boreholes} "
        "геоэкологических скважин до глубины ведения земляных работ в количестве:"
    )


def epidemiological_text(platform_count: int) -> str:
    return (
        "Отбор проб ПГ для проведения лабораторных исследований и испытаний для выявления эпидемиологического и "
        "паразитологического загрязнения окружающей среды осуществляется в поверхностном слое с "
        f"{platform_count} пробных площадок размером 5х5 м (площадью 25 кв.м)."
    )


def borehole_depth_text(max_depth: float) -> str:
    text = (
        f"Бурение геоэкологических скважин и отбор образцов грунта на глубину до {format_depth(max_depth)} м "
        "осуществляется исполнителем с помощью ручного бура."
    )
    if max_depth > _DEEP_LAYER_DEPTH_M:
        text += (
            f" Отбор образцов грунта с глубин 5,0-{format_depth(max_depth)} м осуществляется из геологических "
            "скважин, выполненных Заказчиком."
        )
    return text


def _append(markup: str) -> Transform:
    def _transform(paragraph_xml: str) -> str:
        return paragraph_xml + markup

    return _transform


def apply_soil_layers(doc: str, data: LayersData | None, report: AssemblyReport) -> str:
    """Rewrite the soil sampling block from merged layer data.

    Patches on one paragraph compose in order, so the main paragraph is
    rewritten, cleaned, and only then followed by the generated layers.
    """
    index = RegionIndex.build(doc)
    script = EditScript()
    patches: list[tuple[str, Transform]] = []

    if data is not None and data.layers:
        patches.append((SOIL_SAMPLING_MAIN_ID, paragraph_text_transform(soil_sampling_text(data), True)))
        patches.append((SOIL_SAMPLING_MAIN_ID, clean_region))
        patches.append((SOIL_SAMPLING_MAIN_ID, _append(layer_paragraphs(data.layers))))
        for para_id in TEMPLATE_LAYER_IDS:
            patches.append((para_id, remove_transform))
        # Layers generated by an earlier run.
        for position in range(MAX_GENERATED_LAYERS):
            if index.paragraph(layer_para_id(position)) is not None:
                patches.append((layer_para_id(position), remove_transform))
    else:
        patches.append((SOIL_SAMPLING_MAIN_ID, clean_region))
        for para_id in TEMPLATE_LAYER_IDS:
            patches.append((para_id, clean_region))

    platform_count = data.unique_platform_count if data is not None else 0
    if platform_count > 0:
        patches.append((EPIDEMIOLOGICAL_ID, paragraph_text_transform(epidemiological_text(platform_count), True)))
    patches.append((EPIDEMIOLOGICAL_ID, clean_region))

    if data is not None and data.max_depth > 0:
        patches.append((BOREHOLE_DEPTH_ID, paragraph_text_transform(borehole_depth_text(data.max_depth), True)))
    patches.append((BOREHOLE_DEPTH_ID, clean_region))

    missing: set[str] = set()
    for para_id, transform in patches:
        span = index.paragraph(para_id)
        if span is None:
            if para_id not in missing:
                missing.add(para_id)
                report.record(RegionNotFound(para_id), section=SECTION)
            continue
        try:
            script.add(span, transform)
        except EditConflict as exc:
            report.record(AssemblyError(str(exc)), section=SECTION, target=para_id)

    logger.info(
        "soil_layers_applied",
        extra={
            "event": "soil_layers_applied",
            "layers": len(data.layers) if data is not None else 0,
            "max_depth": data.max_depth if data is not None else 0.0,
            "platforms": platform_count,
        },
    )
    return script.apply(doc)


def apply_methods(doc: str, ctx: RuleContext, report: AssemblyReport) -> str:
    doc = apply_section(doc, SECTION_47_FLAGS, ctx, report)
    return apply_soil_layers(doc, ctx.inputs.layers, report)
