"""Sections 8.1 to 8.4: rows of the territory description table, found by title text."""

from __future__ import annotations

import logging
import re

from surveydoc.docx.locator import Span, find_row_containing
from surveydoc.docx.markup import escape_xml
from surveydoc.docx.primitives import replace_cell_content, row_cells, styled_paragraph
from surveydoc.docx.styles import clean_region
from surveydoc.errors import RegionNotFound, TableStructureMismatch
from surveydoc.extraction import heuristics
from surveydoc.report import AssemblyReport
from surveydoc.rules.engine import RuleContext

logger = logging.getLogger("surveydoc.rules")

NATURAL_CHARACTERISTICS_ANCHOR = "Краткая природно-хозяйственная характеристика территории"
CONTAMINATED_SITES_ANCHOR = "Предварительные сведения о наличии участков с ранее выявленным загрязнением"
IMPACT_ZONE_ANCHOR = "Обоснование предполагаемых границ зоны воздействия"
STUDY_AREA_ANCHOR = "Обоснование границ изучаемой территории"

CONTENT_CELL_INDEX = 2
IMPACT_HEADINGS = ("Существующие источники воздействия:", "Проектируемые источники воздействия:")
RECONSTRUCTION_PHRASE = "(реконструкции)"
ROAD_PHRASES = ("(автомобильной дороги)", "также полосой отвода автомобильной дороги")

_HEADING_SPLIT = re.compile("(?=" + "|".join(re.escape(heading) for heading in IMPACT_HEADINGS) + ")")
_TEXT_NODE = re.compile(r"(<w:t\b[^>]*>)([^<]*)(</w:t>)")
# A comma left dangling before a text node the phrase removal emptied.
_DANGLING_COMMA = re.compile(r"(<w:t\b[^>]*>[^<]*?),\s*(</w:t>(?:(?!<w:t\b)[\s\S])*?<w:t\b[^>]*>)(</w:t>)")


def impact_source_paragraphs(text: str) -> str:
    """Paragraph markup for 8.1; the two impact-source headings are set in italics."""
    paragraphs: list[str] = []
    for block in _HEADING_SPLIT.split(text):
        block = block.strip()
        if not block:
            continue
        heading = next((item for item in IMPACT_HEADINGS if block.startswith(item)), None)
        if heading is None:
            paragraphs.append(styled_paragraph(block))
            continue
        paragraphs.append(styled_paragraph(heading, italic=True))
        rest = block[len(heading) :].strip()
        if rest:
            paragraphs.append(styled_paragraph(rest))
    return "".join(paragraphs)


def line_paragraphs(text: str) -> str:
    lines = str(text).replace("\r\n", "\n").replace("\r", "\n").split("\n")
    return "".join(styled_paragraph(line.strip()) for line in lines if line.strip())


def _content_cell(doc: str, anchor: str, section: str, report: AssemblyReport) -> Span | None:
    row = find_row_containing(doc, anchor)
    if row is None:
        report.record(RegionNotFound(anchor), section=section)
        return None
    cells = row_cells(doc, row)
    if len(cells) <= CONTENT_CELL_INDEX:
        report.record(
            TableStructureMismatch(f"row has {len(cells)} cells, content cell expected at {CONTENT_CELL_INDEX}"),
            section=section,
            target=anchor,
        )
        return None
    return cells[CONTENT_CELL_INDEX]


def replace_content_cell(doc: str, anchor: str, paragraphs_markup: str, section: str, report: AssemblyReport) -> str:
    cell = _content_cell(doc, anchor, section, report)
    if cell is None:
        return doc
    report.mark_applied(section)
    return replace_cell_content(doc, cell, paragraphs_markup)


def apply_natural_characteristics(doc: str, ctx: RuleContext, report: AssemblyReport) -> str:
    text = (ctx.inputs.pollution_sources_text or "").strip() or heuristics.pollution_sources(ctx.inputs.tz_text)
    if not text:
        # No terms-of-reference text: the template wording stays.
        return doc
    return replace_content_cell(doc, NATURAL_CHARACTERISTICS_ANCHOR, impact_source_paragraphs(text), "8.1", report)


def apply_contaminated_sites(doc: str, ctx: RuleContext, report: AssemblyReport) -> str:
    text = (ctx.inputs.contaminated_sites_text or "").strip()
    if not text:
        return doc
    return replace_content_cell(doc, CONTAMINATED_SITES_ANCHOR, line_paragraphs(text), "8.2", report)


def remove_phrase(row_xml: str, phrase: str) -> str:
    """Delete ``phrase`` wherever it sits whole inside one text node."""
    needle = escape_xml(phrase)

    def _strip(match: re.Match[str]) -> str:
        text = match.group(2)
        if needle not in text:
            return match.group(0)
        text = re.sub(r" {2,}", " ", text.replace(needle, ""))
        return match.group(1) + text + match.group(3)

    return _TEXT_NODE.sub(_strip, row_xml)


def drop_dangling_commas(row_xml: str) -> str:
    return _DANGLING_COMMA.sub(r"\1\2\3", row_xml)


def _rewrite_row(doc: str, anchor: str, section: str, report: AssemblyReport, phrases: tuple[str, ...]) -> str:
    row = find_row_containing(doc, anchor)
    if row is None:
        report.record(RegionNotFound(anchor), section=section)
        return doc
    row_xml = row.slice(doc)
    for phrase in phrases:
        row_xml = remove_phrase(row_xml, phrase)
    if phrases:
        row_xml = drop_dangling_commas(row_xml)
    report.mark_applied(section)
    return doc[: row.start] + clean_region(row_xml) + doc[row.end :]


def apply_boundaries(doc: str, ctx: RuleContext, report: AssemblyReport) -> str:
    """8.3 drops the reconstruction wording for communication lines; 8.4 keeps road wording only for roads."""
    impact_phrases = (RECONSTRUCTION_PHRASE,) if ctx.flag("is_linear_communication") else ()
    doc = _rewrite_row(doc, IMPACT_ZONE_ANCHOR, "8.3", report, impact_phrases)
    road_phrases = () if ctx.flag("is_road_object") else ROAD_PHRASES
    return _rewrite_row(doc, STUDY_AREA_ANCHOR, "8.4", report, road_phrases)
