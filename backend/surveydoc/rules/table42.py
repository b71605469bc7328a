"""Section 4.2: the work table.

The table is found as the one closing just before the first footnote
paragraph. Its rows are filtered through the keep-set resolver, the
natural-conditions rows get computed quantities, sample rows take their
quantities from the order, and the footnotes below it follow sample presence.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging

from surveydoc.docx.edits import EditConflict, EditScript
from surveydoc.docx.locator import find_table
from surveydoc.docx.markup import visible_text
from surveydoc.docx.primitives import paragraph_text_transform, render_paragraph_text
from surveydoc.docx.table import Row, RowKind, TableLayout, decompose
from surveydoc.errors import AmbiguousQuantity, AssemblyError, RegionNotFound
from surveydoc.extraction import heuristics
from surveydoc.extraction.service import FactExtractor, match_work_rows
from surveydoc.keepset import resolve
from surveydoc.quantities import (
    format_decimal_comma,
    format_quantity,
    infer_is_linear,
    observation_points,
    parse_number,
    resolve_area_ha,
    route_length_km,
)
from surveydoc.report import AssemblyReport
from surveydoc.rules.engine import RuleContext, apply_section
from surveydoc.rules.sections import SECTION_42_FOOTNOTES

logger = logging.getLogger("surveydoc.rules")

SECTION = "4.2"
TABLE_ANCHOR = 'w14:paraId="0196987F"'

REMOVED_ROW_PREFIXES = (
    "обследование объектов неблагоприятного техногенного воздействия",
    "наблюдения при передвижении по маршруту",
    "описание современного состояния растительного покрова",
    "характеристика социально-экономических условий",
)
RECON_ROW_PREFIX = "рекогносцировочное (маршрутное) обследование"
OBSERVATION_ROW_PREFIX = "описание точек наблюдений"
SINGLE_COUNT_ROW_PREFIXES = (
    "характеристика климатических условий",
    "характеристика фонового загрязнения компонентов окружающей среды",
    "характеристика современного состояния территории",
    "описание растительного и животного мира участка",
)
BIO_CONTAMINATION_ROW_PREFIX = "оценка биологического загрязнения"

_FLY_MARKERS = ("мух", "личинок", "куколок")
_MICRO_MARKERS = ("колиформ", "микробиолог", "бактери", "гельминт", "цист")
_TOXICITY_MARKERS = ("токсич", "биотест")


@dataclass(frozen=True)
class SamplePresence:
    sediment: bool
    surface_water: bool
    ground_water: bool

    @classmethod
    def from_context(cls, ctx: RuleContext) -> "SamplePresence":
        return cls(
            sediment=ctx.flag("has_sediment_samples"),
            surface_water=ctx.flag("has_surface_water_samples"),
            ground_water=ctx.flag("has_ground_water_samples"),
        )

    def allows(self, group: str) -> bool:
        if group == "sediment":
            return self.sediment
        if group == "surface_water":
            return self.surface_water
        if group == "ground_water":
            return self.ground_water
        return True


def row_groups(rows: list[Row]) -> dict[int, str]:
    """Sample group of every row, switched by the group sub-header rows.

    A major header closes the current group.
    """
    groups: dict[int, str] = {}
    current = "none"
    for row in sorted(rows, key=lambda item: item.raw_index):
        if row.kind is RowKind.MAJOR_HEADER:
            current = "none"
        current = heuristics.sample_group(row.title, current)
        groups[row.raw_index] = current
    return groups


def _matches(row: Row, prefixes: tuple[str, ...]) -> bool:
    return any(row.title_key.startswith(prefix) for prefix in prefixes)


def site_area_ha(ctx: RuleContext) -> float:
    site = ctx.inputs.site
    return resolve_area_ha(
        site.site_area,
        heuristics.site_area_sentence(site.site_description),
        heuristics.site_area_sentence(ctx.inputs.tz_text),
        site.radiometry_area_ha,
    )


def recon_length_text(ctx: RuleContext, area_ha: float) -> str:
    site = ctx.inputs.site
    is_linear = infer_is_linear(
        site.object_name,
        site.technical_characteristics,
        site.site_description,
        communication_networks=ctx.flag("is_communication_networks_object"),
    )
    source = "\n".join([ctx.inputs.tz_text, site.technical_characteristics, site.site_description, site.object_name])
    return format_decimal_comma(route_length_km(area_ha, is_linear=is_linear, source_text=source), 1)


def _service_value(ctx: RuleContext, service: str, report: AssemblyReport) -> float | None:
    try:
        return parse_number(ctx.inputs.quantities.raw(service))
    except AmbiguousQuantity as exc:
        report.record(exc, section=SECTION, target=f"service:{service}")
        return None


def _service_text(ctx: RuleContext, service: str, report: AssemblyReport) -> str | None:
    value = _service_value(ctx, service, report)
    return None if value is None else format_quantity(value)


def sample_quantity_text(
    row: Row,
    group: str,
    ctx: RuleContext,
    area_ha: float,
    report: AssemblyReport,
) -> str | None:
    """Quantity to write into a kept row, or None to leave the template value."""
    unit = row.unit.casefold()
    title = row.title_key

    if unit == "га":
        radiometry = _service_value(ctx, "radiometry_ha", report)
        return format_decimal_comma(area_ha if radiometry is None else radiometry, 2)

    if "точка" in unit and "ппр" in title:
        return _service_text(ctx, "radon_flux_points", report)

    if "проба" not in unit:
        return None
    if group == "surface_water":
        return _service_text(ctx, "surface_water", report)
    if group == "ground_water" or "скважин" in title:
        return _service_text(ctx, "ground_water", report)
    if group == "sediment":
        return _service_text(ctx, "sediment", report)
    if group == "air":
        return None
    if any(marker in title for marker in _FLY_MARKERS):
        return _service_text(ctx, "soil_flies", report)
    if any(marker in title for marker in _MICRO_MARKERS):
        return _service_text(ctx, "soil_microbiology", report)
    if any(marker in title for marker in _TOXICITY_MARKERS):
        return _service_text(ctx, "soil_toxicity", report)
    return _service_text(ctx, "soil", report)


def explicit_keep_indices(
    layout: TableLayout,
    groups: dict[int, str],
    ctx: RuleContext,
    *,
    extractor: FactExtractor | None,
    report: AssemblyReport,
) -> set[int]:
    """Raw indices of work rows the order asks for."""
    work_rows = layout.work_rows
    if ctx.inputs.work_row_keep is not None:
        chosen = [index for index in ctx.inputs.work_row_keep if 0 <= index < len(work_rows)]
    else:
        chosen = match_work_rows(
            ctx.inputs.order_text,
            [(row.title, groups[row.raw_index]) for row in work_rows],
            ctx.inputs.facts,
            extractor=extractor,
            report=report,
        )
    return {work_rows[index].raw_index for index in chosen}


def keeps_cysts(ctx: RuleContext) -> bool:
    if ctx.inputs.has_cysts is not None:
        return ctx.inputs.has_cysts
    return heuristics.mentions_cysts(ctx.inputs.order_text)


def apply_work_table(
    doc: str,
    ctx: RuleContext,
    report: AssemblyReport,
    *,
    extractor: FactExtractor | None = None,
) -> str:
    table = find_table(doc, TABLE_ANCHOR)
    if table is None:
        report.record(RegionNotFound(TABLE_ANCHOR, "work table not found"), section=SECTION)
        return apply_section(doc, SECTION_42_FOOTNOTES, ctx, report)

    layout = decompose(doc, table, report=report, section=SECTION)
    groups = row_groups(layout.rows)
    presence = SamplePresence.from_context(ctx)

    forced_drops = {
        row.raw_index
        for row in layout.rows
        if _matches(row, REMOVED_ROW_PREFIXES)
        or (row.kind is not RowKind.MAJOR_HEADER and not presence.allows(groups[row.raw_index]))
    }
    natural_keeps = {
        row.raw_index
        for row in layout.rows
        if _matches(row, (RECON_ROW_PREFIX, OBSERVATION_ROW_PREFIX, *SINGLE_COUNT_ROW_PREFIXES))
    }
    always_keep = layout.indices_of(RowKind.STRUCTURAL_HEADER, RowKind.MAJOR_HEADER, RowKind.ALWAYS_KEEP)
    explicit = explicit_keep_indices(layout, groups, ctx, extractor=extractor, report=report)

    keep = resolve(layout.rows, (explicit | natural_keeps) - forced_drops, always_keep - forced_drops)

    area_ha = site_area_ha(ctx)
    script = EditScript()
    for span in layout.blank_rows:
        script.delete(span)

    for row in layout.rows:
        if row.raw_index not in keep:
            script.delete(row.span)
            continue
        try:
            _patch_kept_row(script, row, groups[row.raw_index], ctx, area_ha, report)
        except EditConflict as exc:
            report.record(AssemblyError(str(exc)), section=SECTION, target=row.row_id)

    doc = script.apply(doc)
    report.mark_applied(SECTION)
    logger.info(
        "work_table_filtered",
        extra={
            "event": "work_table_filtered",
            "rows": len(layout.rows),
            "kept": len(keep),
            "explicit": len(explicit),
            "forced_drops": len(forced_drops),
            "area_ha": area_ha,
        },
    )
    return apply_section(doc, SECTION_42_FOOTNOTES, ctx, report)


def _patch_kept_row(
    script: EditScript,
    row: Row,
    group: str,
    ctx: RuleContext,
    area_ha: float,
    report: AssemblyReport,
) -> None:
    if row.kind is not RowKind.WORK_ITEM:
        return

    if row.title_key.startswith(BIO_CONTAMINATION_ROW_PREFIX) and row.title_span is not None and not keeps_cysts(ctx):
        script.add(row.title_span, without_cyst_phrase)

    quantity: str | None
    if row.title_key.startswith(RECON_ROW_PREFIX):
        quantity = recon_length_text(ctx, area_ha)
    elif row.title_key.startswith(OBSERVATION_ROW_PREFIX):
        quantity = str(observation_points(area_ha))
    elif _matches(row, SINGLE_COUNT_ROW_PREFIXES):
        quantity = "1"
    else:
        quantity = sample_quantity_text(row, group, ctx, area_ha, report)

    if quantity is None:
        return
    if row.quantity_span is None:
        report.record(
            RegionNotFound(row.row_id or f"row:{row.raw_index}", "quantity cell has no paragraph"),
            section=SECTION,
        )
        return
    script.add(row.quantity_span, paragraph_text_transform(quantity, True))


def without_cyst_phrase(paragraph_xml: str) -> str:
    line = visible_text(paragraph_xml)
    cleaned = heuristics.remove_cyst_phrase(line)
    if cleaned == line:
        return paragraph_xml
    return render_paragraph_text(paragraph_xml, cleaned, True)
