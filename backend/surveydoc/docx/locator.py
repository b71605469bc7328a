from __future__ import annotations

from dataclasses import dataclass, field
import logging

from surveydoc.docx.markup import (
    PARAGRAPH,
    ROW,
    TABLE,
    close_token,
    find_matching_close,
    find_matching_open,
    find_open,
    open_tag_end,
    para_id_of,
    rfind_open,
    visible_text,
)

logger = logging.getLogger("surveydoc.locator")


@dataclass(frozen=True)
class Span:
    start: int
    end: int

    def slice(self, doc: str) -> str:
        return doc[self.start : self.end]

    def overlaps(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "Span") -> bool:
        return self.start <= other.start and other.end <= self.end


@dataclass(frozen=True)
class Target:
    """A paragraph address: stable id plus an optional literal-text fallback."""

    para_id: str
    hint: str | None = None

    def __str__(self) -> str:
        return self.para_id


def _scan(doc: str, tag: str) -> list[tuple[str, Span]]:
    found: list[tuple[str, Span]] = []
    cursor = 0
    while True:
        start = find_open(doc, tag, cursor)
        if start == -1:
            return found
        end = find_matching_close(doc, start, tag)
        head_end = open_tag_end(doc, start)
        if end == -1 or head_end == -1:
            return found
        found.append((para_id_of(doc[start:head_end]), Span(start, end)))
        # Step inside the element so nested paragraphs/rows are indexed too.
        cursor = head_end


@dataclass
class RegionIndex:
    """Id -> span lookup built with one scan of the document."""

    doc: str
    paragraph_spans: list[tuple[str, Span]] = field(default_factory=list)
    row_spans: list[tuple[str, Span]] = field(default_factory=list)
    _paragraphs_by_id: dict[str, list[Span]] = field(default_factory=dict)
    _rows_by_id: dict[str, list[Span]] = field(default_factory=dict)

    @classmethod
    def build(cls, doc: str) -> "RegionIndex":
        index = cls(doc=doc, paragraph_spans=_scan(doc, PARAGRAPH), row_spans=_scan(doc, ROW))
        for para_id, span in index.paragraph_spans:
            if para_id:
                index._paragraphs_by_id.setdefault(para_id, []).append(span)
        for para_id, span in index.row_spans:
            if para_id:
                index._rows_by_id.setdefault(para_id, []).append(span)
        return index

    def paragraph(self, para_id: str) -> Span | None:
        spans = self._paragraphs_by_id.get(para_id.upper())
        return spans[0] if spans else None

    def paragraphs(self, para_id: str) -> list[Span]:
        return list(self._paragraphs_by_id.get(para_id.upper(), []))

    def row(self, para_id: str) -> Span | None:
        spans = self._rows_by_id.get(para_id.upper())
        return spans[0] if spans else None

    def paragraph_by_hint(self, hint: str) -> Span | None:
        needle = hint.casefold()
        for _, span in self.paragraph_spans:
            if needle in visible_text(span.slice(self.doc)).casefold():
                return span
        return None

    def resolve(self, target: Target) -> list[Span]:
        spans = self.paragraphs(target.para_id)
        if spans or not target.hint:
            return spans
        fallback = self.paragraph_by_hint(target.hint)
        if fallback is None:
            return []
        logger.warning(
            "paragraph_resolved_by_hint",
            extra={"event": "paragraph_resolved_by_hint", "para_id": target.para_id, "hint": target.hint},
        )
        return [fallback]


def find_paragraph(doc: str, para_id: str) -> Span | None:
    marker = f'w14:paraId="{para_id.upper()}"'
    position = doc.find(marker)
    while position != -1:
        start = rfind_open(doc, PARAGRAPH, position)
        if start != -1 and open_tag_end(doc, start) > position:
            end = find_matching_close(doc, start, PARAGRAPH)
            if end != -1:
                return Span(start, end)
        position = doc.find(marker, position + len(marker))
    return None


def find_row(doc: str, para_id: str) -> Span | None:
    marker = f'w14:paraId="{para_id.upper()}"'
    position = doc.find(marker)
    while position != -1:
        start = rfind_open(doc, ROW, position)
        if start != -1 and open_tag_end(doc, start) > position:
            end = find_matching_close(doc, start, ROW)
            if end != -1:
                return Span(start, end)
        position = doc.find(marker, position + len(marker))
    return None


def find_table(doc: str, anchor: str) -> Span | None:
    """Table that ends nearest before the first occurrence of ``anchor``.

    The matching open tag is found by walking backward and counting nested
    open/close tags, so a nested table closing just before the anchor does
    not get mistaken for the outer one.
    """
    anchor_index = doc.find(anchor)
    if anchor_index < 0:
        return None
    closing = close_token(TABLE)
    close_index = doc.rfind(closing, 0, anchor_index)
    if close_index < 0:
        return None
    open_index = find_matching_open(doc, close_index, TABLE)
    if open_index < 0:
        return None
    return Span(open_index, close_index + len(closing))


def find_row_containing(doc: str, anchor: str) -> Span | None:
    """Innermost table row whose span contains the first occurrence of ``anchor``."""
    anchor_index = doc.find(anchor)
    if anchor_index < 0:
        return None
    candidate = rfind_open(doc, ROW, anchor_index)
    while candidate != -1:
        end = find_matching_close(doc, candidate, ROW)
        if end > anchor_index:
            return Span(candidate, end)
        candidate = rfind_open(doc, ROW, candidate)
    return None
