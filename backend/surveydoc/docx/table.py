from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
import logging

from surveydoc.docx.locator import Span
from surveydoc.docx.markup import (
    CELL,
    PARAGRAPH,
    ROW,
    TABLE,
    close_token,
    find_matching_close,
    find_open,
    first_para_id,
    iter_elements,
    open_tag_end,
    para_id_of,
    visible_text,
)
from surveydoc.errors import TableStructureMismatch
from surveydoc.report import AssemblyReport

logger = logging.getLogger("surveydoc.table")

MAJOR_HEADER_LABELS = ("полевые работы", "лабораторные работы", "камеральные работы")
ALWAYS_KEEP_MARKERS = ("подготовка технического отчета",)
STRUCTURAL_LABELS = ("1", "2", "3", "4")


class RowKind(str, Enum):
    STRUCTURAL_HEADER = "structural_header"
    MAJOR_HEADER = "major_header"
    SUB_HEADER = "sub_header"
    ALWAYS_KEEP = "always_keep"
    WORK_ITEM = "work_item"

    @property
    def is_header(self) -> bool:
        return self in {RowKind.STRUCTURAL_HEADER, RowKind.MAJOR_HEADER, RowKind.SUB_HEADER}


@dataclass(frozen=True)
class Row:
    raw_index: int
    span: Span
    cells: tuple[str, ...]
    title: str
    unit: str
    kind: RowKind
    row_id: str = ""
    quantity_region_id: str = ""
    quantity_span: Span | None = None
    quantity_text: str = ""
    title_span: Span | None = None

    @property
    def title_key(self) -> str:
        return self.title.casefold()


@dataclass
class TableLayout:
    """A table split into its preamble, classified rows and suffix.

    ``rows`` holds only decomposed rows; blank rows are listed in
    ``blank_rows`` and rows that could not be decomposed in ``mismatched_rows``.
    """

    span: Span
    prefix: Span
    suffix: Span
    rows: list[Row] = field(default_factory=list)
    blank_rows: list[Span] = field(default_factory=list)
    mismatched_rows: list[Span] = field(default_factory=list)
    row_count: int = 0

    @property
    def work_rows(self) -> list[Row]:
        return [row for row in self.rows if row.kind is RowKind.WORK_ITEM]

    def indices_of(self, *kinds: RowKind) -> set[int]:
        return {row.raw_index for row in self.rows if row.kind in kinds}

    def find(self, title_prefix: str) -> Row | None:
        needle = title_prefix.casefold()
        for row in self.rows:
            if row.title_key.startswith(needle):
                return row
        return None


def classify(cells: list[str], title: str, unit: str) -> RowKind:
    non_blank = [cell for cell in cells if cell]
    if tuple(non_blank) == STRUCTURAL_LABELS:
        return RowKind.STRUCTURAL_HEADER
    key = title.casefold()
    if key in MAJOR_HEADER_LABELS:
        return RowKind.MAJOR_HEADER
    if not unit:
        return RowKind.SUB_HEADER
    if any(marker in key for marker in ALWAYS_KEEP_MARKERS):
        return RowKind.ALWAYS_KEEP
    return RowKind.WORK_ITEM


def _first_paragraph(doc: str, cell: Span) -> tuple[str, Span | None]:
    start = find_open(doc, PARAGRAPH, cell.start, cell.end)
    while start != -1:
        head_end = open_tag_end(doc, start)
        para_id = para_id_of(doc[start:head_end])
        if para_id:
            end = find_matching_close(doc, start, PARAGRAPH)
            if end != -1:
                return para_id, Span(start, end)
        start = find_open(doc, PARAGRAPH, head_end, cell.end)
    return "", None


def _decompose_row(doc: str, raw_index: int, span: Span) -> Row:
    cell_spans = [Span(start, end) for start, end in iter_elements(doc, CELL, span.start, span.end)]
    if not cell_spans:
        raise TableStructureMismatch(f"row {raw_index} has text but no cells")

    cells = [visible_text(cell.slice(doc)) for cell in cell_spans]
    non_blank = [(text, cell) for text, cell in zip(cells, cell_spans) if text]
    title, title_cell = non_blank[0]
    for text, cell in non_blank[1:]:
        if len(text) > len(title):
            title, title_cell = text, cell

    unit = cells[-2] if len(cells) >= 2 else ""
    row_id = first_para_id(span.slice(doc))
    quantity_id, quantity_span = _first_paragraph(doc, cell_spans[-1])
    _, title_span = _first_paragraph(doc, title_cell)

    return Row(
        raw_index=raw_index,
        span=span,
        cells=tuple(cells),
        title=title,
        unit=unit,
        kind=classify(cells, title, unit),
        row_id=row_id,
        quantity_region_id=quantity_id,
        quantity_span=quantity_span,
        quantity_text=cells[-1],
        title_span=title_span,
    )


def decompose(
    doc: str,
    table: Span,
    *,
    report: AssemblyReport | None = None,
    section: str = "",
) -> TableLayout:
    """Split the table at ``table`` into classified rows.

    Only the table's own rows are visited; rows of tables nested inside its
    cells stay part of the enclosing cell. Rows with no text at all are not
    emitted, and a row whose cell structure cannot be read is reported and
    left out of ``rows``.
    """
    inner_start = open_tag_end(doc, table.start)
    inner_end = table.end - len(close_token(TABLE))
    row_spans = [Span(start, end) for start, end in iter_elements(doc, ROW, inner_start, inner_end)]

    prefix = Span(inner_start, row_spans[0].start if row_spans else inner_end)
    suffix = Span(row_spans[-1].end if row_spans else inner_end, inner_end)
    layout = TableLayout(span=table, prefix=prefix, suffix=suffix, row_count=len(row_spans))

    for raw_index, span in enumerate(row_spans):
        if not visible_text(span.slice(doc)):
            layout.blank_rows.append(span)
            continue
        try:
            layout.rows.append(_decompose_row(doc, raw_index, span))
        except TableStructureMismatch as exc:
            layout.mismatched_rows.append(span)
            if report is not None:
                report.record(exc, section=section, target=f"row:{raw_index}")

    logger.debug(
        "table_decomposed",
        extra={
            "event": "table_decomposed",
            "section": section,
            "rows": len(layout.rows),
            "blank_rows": len(layout.blank_rows),
            "mismatched_rows": len(layout.mismatched_rows),
        },
    )
    return layout
