"""Atomic markup -> markup edits.

Each public function is the identity when its target is absent. The
``*_transform`` builders return the same edits as span-level callables so the
rule interpreter can batch them into one ``EditScript``.
"""

from __future__ import annotations

import re
from typing import Callable

from surveydoc.docx.locator import Span, find_paragraph, find_row
from surveydoc.docx.markup import (
    CELL,
    close_token,
    escape_xml,
    find_matching_close,
    find_open,
    iter_elements,
    open_tag_end,
    paragraph_properties,
)
from surveydoc.docx.styles import DEFAULT_RUN_PROPERTIES, clean_region, clean_run_properties

_RUN_PROPERTIES = re.compile(r"<w:rPr[\s>][\s\S]*?</w:rPr>|<w:rPr\s*/>")
_CELL_PROPERTIES = re.compile(r"<w:tcPr[\s>][\s\S]*?</w:tcPr>|<w:tcPr\s*/>")


def _splice(doc: str, span: Span, replacement: str) -> str:
    return doc[: span.start] + replacement + doc[span.end :]


def _first_run_properties(paragraph_body: str) -> str | None:
    run_start = find_open(paragraph_body, "w:r")
    if run_start == -1:
        return None
    run_end = find_matching_close(paragraph_body, run_start, "w:r")
    run_xml = paragraph_body[run_start:run_end] if run_end != -1 else paragraph_body[run_start:]
    match = _RUN_PROPERTIES.search(run_xml)
    return match.group(0) if match else None


def _text_runs(text: str, run_properties: str) -> str:
    lines = str(text).replace("\r\n", "\n").replace("\r", "\n").split("\n")
    body = '</w:t><w:br/><w:t xml:space="preserve">'.join(escape_xml(line) for line in lines)
    return f'<w:r>{run_properties}<w:t xml:space="preserve">{body}</w:t></w:r>'


def render_paragraph_text(paragraph_xml: str, new_text: str, preserve_run_formatting: bool) -> str:
    """Rebuild one paragraph around ``new_text`` keeping its ``<w:pPr>``.

    With ``preserve_run_formatting`` the first run's ``<w:rPr>`` is reused
    (without highlight/shading, colour forced to black); otherwise, or when
    the paragraph has no formatted run, a plain black Times New Roman 12pt
    run is emitted.
    """
    head_end = open_tag_end(paragraph_xml, 0)
    if head_end == -1 or paragraph_xml[head_end - 2] == "/":
        return paragraph_xml
    open_tag = paragraph_xml[:head_end]
    closing = close_token("w:p")
    body = paragraph_xml[head_end : len(paragraph_xml) - len(closing)]

    run_properties = DEFAULT_RUN_PROPERTIES
    if preserve_run_formatting:
        existing = _first_run_properties(body)
        if existing:
            run_properties = clean_run_properties(existing)

    return f"{open_tag}{paragraph_properties(body)}{_text_runs(new_text, run_properties)}{closing}"


def paragraph_text_transform(new_text: str, preserve_run_formatting: bool) -> Callable[[str], str]:
    def _transform(paragraph_xml: str) -> str:
        return render_paragraph_text(paragraph_xml, new_text, preserve_run_formatting)

    return _transform


def strip_prefix_transform(prefix: str) -> Callable[[str], str]:
    pattern = re.compile(r"(<w:t\b[^>]*>)" + re.escape(escape_xml(prefix)))

    def _transform(paragraph_xml: str) -> str:
        return pattern.sub(r"\1", paragraph_xml)

    return _transform


def remove_transform(_region_xml: str) -> str:
    return ""


def remove_paragraph(doc: str, para_id: str) -> str:
    span = find_paragraph(doc, para_id)
    return doc if span is None else _splice(doc, span, "")


def remove_row(doc: str, row_id: str) -> str:
    span = find_row(doc, row_id)
    return doc if span is None else _splice(doc, span, "")


def replace_paragraph_text(doc: str, para_id: str, new_text: str, preserve_run_formatting: bool = False) -> str:
    span = find_paragraph(doc, para_id)
    if span is None:
        return doc
    return _splice(doc, span, render_paragraph_text(span.slice(doc), new_text, preserve_run_formatting))


def clean_paragraph(doc: str, para_id: str) -> str:
    span = find_paragraph(doc, para_id)
    return doc if span is None else _splice(doc, span, clean_region(span.slice(doc)))


def strip_paragraph_prefix(doc: str, para_id: str, prefix: str) -> str:
    span = find_paragraph(doc, para_id)
    if span is None:
        return doc
    return _splice(doc, span, strip_prefix_transform(prefix)(span.slice(doc)))


def insert_after_paragraph(doc: str, para_id: str, markup: str) -> str:
    span = find_paragraph(doc, para_id)
    if span is None:
        return doc
    return doc[: span.end] + markup + doc[span.end :]


def styled_paragraph(
    text: str,
    *,
    bold: bool = False,
    italic: bool = False,
    justify: bool = True,
    indent: int | None = None,
    para_id: str | None = None,
) -> str:
    properties = "<w:pPr>"
    if justify:
        properties += '<w:jc w:val="both"/>'
    if indent:
        properties += f'<w:ind w:firstLine="{indent}"/>'
    properties += "</w:pPr>"

    run_properties = DEFAULT_RUN_PROPERTIES
    extras = ""
    if bold:
        extras += "<w:b/><w:bCs/>"
    if italic:
        extras += "<w:i/><w:iCs/>"
    if extras:
        run_properties = run_properties.replace("</w:rPr>", extras + "</w:rPr>")

    id_attr = f' w14:paraId="{para_id}"' if para_id else ""
    return f"<w:p{id_attr}>{properties}{_text_runs(text, run_properties)}</w:p>"


def row_cells(doc: str, row: Span) -> list[Span]:
    return [Span(start, end) for start, end in iter_elements(doc, CELL, row.start, row.end)]


def replace_cell_content(doc: str, cell: Span, paragraphs_markup: str) -> str:
    """Swap a cell's paragraphs for new ones, keeping the cell's own properties."""
    cell_xml = cell.slice(doc)
    head_end = open_tag_end(cell_xml, 0)
    properties = _CELL_PROPERTIES.search(cell_xml)
    opening = cell_xml[:head_end] + (properties.group(0) if properties else "")
    # A cell must end with a paragraph to stay valid.
    content = paragraphs_markup or "<w:p/>"
    return _splice(doc, cell, f"{opening}{content}{close_token(CELL)}")
