"""Tag scanning helpers for WordprocessingML text.

The main document part is treated as a flat string. Elements are delimited by
their literal open/close tags; ``<w:p`` must not be confused with ``<w:pPr``,
``<w:tbl`` with ``<w:tblPr``/``<w:tblGrid`` and ``<w:tr`` with ``<w:trPr``,
so every open-tag search checks the character after the tag name.
"""

from __future__ import annotations

from html import unescape
import re

PARA_ID_ATTR = "w14:paraId"

PARAGRAPH = "w:p"
ROW = "w:tr"
TABLE = "w:tbl"
CELL = "w:tc"

_TAG_BOUNDARY = {" ", ">", "/", "\t", "\n", "\r"}

_TEXT_PATTERN = re.compile(r"<w:t\b[^>]*>([\s\S]*?)</w:t>")
_PARA_ID_PATTERN = re.compile(r'w14:paraId="([0-9A-Fa-f]{8})"')
_PPR_PATTERN = re.compile(r"<w:pPr[\s>][\s\S]*?</w:pPr>|<w:pPr/>")


def escape_xml(text: str) -> str:
    return (
        str(text)
        .replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&apos;")
    )


def normalize_text(value: str) -> str:
    return " ".join(str(value or "").replace("\u00a0", " ").split()).strip()


def open_token(tag: str) -> str:
    return f"<{tag}"


def close_token(tag: str) -> str:
    return f"</{tag}>"


def _is_tag_at(doc: str, index: int, tag: str) -> bool:
    token = open_token(tag)
    if not doc.startswith(token, index):
        return False
    boundary = index + len(token)
    return boundary < len(doc) and doc[boundary] in _TAG_BOUNDARY


def find_open(doc: str, tag: str, start: int = 0, end: int | None = None) -> int:
    token = open_token(tag)
    limit = len(doc) if end is None else end
    index = doc.find(token, start, limit)
    while index != -1:
        if _is_tag_at(doc, index, tag):
            return index
        index = doc.find(token, index + 1, limit)
    return -1


def rfind_open(doc: str, tag: str, end: int) -> int:
    """Last open tag of ``tag`` starting strictly before ``end``."""
    token = open_token(tag)
    index = doc.rfind(token, 0, max(0, end))
    while index != -1:
        if _is_tag_at(doc, index, tag):
            return index
        index = doc.rfind(token, 0, index)
    return -1


def open_tag_end(doc: str, open_index: int) -> int:
    end = doc.find(">", open_index)
    return -1 if end == -1 else end + 1


def is_self_closing(doc: str, open_index: int) -> bool:
    end = open_tag_end(doc, open_index)
    return end > 1 and doc[end - 2] == "/"


def find_matching_close(doc: str, open_index: int, tag: str) -> int:
    """Exclusive end of the element opened at ``open_index``, honouring nesting."""
    if is_self_closing(doc, open_index):
        return open_tag_end(doc, open_index)

    closing = close_token(tag)
    depth = 1
    cursor = open_tag_end(doc, open_index)
    if cursor == -1:
        return -1
    while depth > 0:
        next_close = doc.find(closing, cursor)
        if next_close == -1:
            return -1
        next_open = find_open(doc, tag, cursor, next_close)
        if next_open != -1:
            if not is_self_closing(doc, next_open):
                depth += 1
            cursor = open_tag_end(doc, next_open)
            continue
        depth -= 1
        cursor = next_close + len(closing)
    return cursor


def find_matching_open(doc: str, close_index: int, tag: str) -> int:
    """Open tag matching the close tag at ``close_index``, walking backward."""
    closing = close_token(tag)
    depth = 1
    search_end = close_index
    while depth > 0:
        prev_close = doc.rfind(closing, 0, search_end)
        prev_open = rfind_open(doc, tag, search_end)
        if prev_open == -1:
            return -1
        if prev_close > prev_open:
            depth += 1
            search_end = prev_close
            continue
        if not is_self_closing(doc, prev_open):
            depth -= 1
        search_end = prev_open
        if depth == 0:
            return prev_open
    return -1


def iter_elements(doc: str, tag: str, start: int = 0, end: int | None = None):
    """Yield ``(start, end)`` of top-level ``tag`` elements inside ``[start, end)``."""
    limit = len(doc) if end is None else end
    cursor = start
    while True:
        element_start = find_open(doc, tag, cursor, limit)
        if element_start == -1:
            return
        element_end = find_matching_close(doc, element_start, tag)
        if element_end == -1 or element_end > limit:
            return
        yield element_start, element_end
        cursor = element_end


def para_id_of(element_xml: str) -> str:
    head_end = element_xml.find(">")
    head = element_xml if head_end == -1 else element_xml[: head_end + 1]
    match = _PARA_ID_PATTERN.search(head)
    return match.group(1).upper() if match else ""


def extract_texts(xml: str) -> list[str]:
    texts: list[str] = []
    for match in _TEXT_PATTERN.finditer(xml):
        text = normalize_text(unescape(re.sub(r"<[^>]*>", "", match.group(1))))
        if text:
            texts.append(text)
    return texts


def visible_text(xml: str) -> str:
    return normalize_text("".join(unescape(match.group(1)) for match in _TEXT_PATTERN.finditer(xml)))


def paragraph_properties(paragraph_xml: str) -> str:
    match = _PPR_PATTERN.search(paragraph_xml)
    return match.group(0) if match else ""


def first_para_id(xml: str) -> str:
    match = _PARA_ID_PATTERN.search(xml)
    return match.group(1).upper() if match else ""
