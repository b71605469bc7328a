"""Highlight, shading and colour normalisation.

Template authors mark variable content with highlighting and coloured text;
none of it may survive into a generated document.
"""

from __future__ import annotations

import re

BLACK = "000000"
BLACK_COLOR_TAG = f'<w:color w:val="{BLACK}"/>'

DEFAULT_RUN_PROPERTIES = (
    "<w:rPr>"
    '<w:rFonts w:ascii="Times New Roman" w:hAnsi="Times New Roman" w:cs="Times New Roman"/>'
    '<w:sz w:val="24"/><w:szCs w:val="24"/>'
    f"{BLACK_COLOR_TAG}"
    "</w:rPr>"
)

_HIGHLIGHT_PATTERNS = (
    re.compile(r"<w:highlight\b[^>]*/>"),
    re.compile(r"<w:highlight\b[^>]*>[\s\S]*?</w:highlight>"),
)
_SHADING_PATTERNS = (
    re.compile(r"<w:shd\b[^>]*/>"),
    re.compile(r"<w:shd\b[^>]*>[\s\S]*?</w:shd>"),
)
_ANY_COLOR_PATTERNS = (
    re.compile(r"<w:color\b[^>]*/>"),
    re.compile(r"<w:color\b[^>]*>[\s\S]*?</w:color>"),
)
# w:val may sit anywhere among the attributes, e.g. after w:themeColor.
_HEX_COLOR_PATTERN = re.compile(r'<w:color\b[^>]*?\sw:val="[0-9A-Fa-f]{6}"[^>]*?/?>')
_NON_BLACK_COLOR_PATTERN = re.compile(r'<w:color\b[^>]*?\sw:val="(?!000000")[0-9A-Fa-f]{6}"[^>]*?/?>', re.IGNORECASE)

_RUN_PROPERTIES_BLOCK = re.compile(r"(<w:rPr>|<w:rPr\s[^>]*>)([\s\S]*?)(</w:rPr>)")
_PARAGRAPH_PROPERTIES_BLOCK = re.compile(r"(<w:pPr>|<w:pPr\s[^>]*>)([\s\S]*?)(</w:pPr>)")
_CELL_SHADING = re.compile(r'<w:shd w:val="[^"]*"(?: w:color="[^"]*")? w:fill="(?!auto")[0-9A-Fa-f]{6}"\s*/>')
_CLEAR_CELL_SHADING = '<w:shd w:val="clear" w:color="auto" w:fill="auto"/>'


def strip_highlight(xml: str) -> str:
    for pattern in _HIGHLIGHT_PATTERNS:
        xml = pattern.sub("", xml)
    return xml


def strip_shading(xml: str) -> str:
    for pattern in _SHADING_PATTERNS:
        xml = pattern.sub("", xml)
    return xml


def force_black(run_properties: str) -> str:
    """Give a ``<w:rPr>`` block exactly one colour: black."""
    if "<w:color" in run_properties:
        recoloured = run_properties
        for pattern in _ANY_COLOR_PATTERNS:
            recoloured = pattern.sub(BLACK_COLOR_TAG, recoloured)
        return recoloured
    if re.fullmatch(r"<w:rPr\s*/>", run_properties):
        return f"<w:rPr>{BLACK_COLOR_TAG}</w:rPr>"
    match = re.match(r"<w:rPr(?:\s[^>]*)?>", run_properties)
    if match is None:
        return run_properties
    return run_properties[: match.end()] + BLACK_COLOR_TAG + run_properties[match.end() :]


def clean_run_properties(run_properties: str) -> str:
    return force_black(strip_shading(strip_highlight(run_properties)))


def clean_region(xml: str) -> str:
    """Drop highlighting and recolour every explicit hex colour inside one region."""
    return _HEX_COLOR_PATTERN.sub(BLACK_COLOR_TAG, strip_highlight(xml))


def _strip_shading_inside(block_pattern: re.Pattern[str], xml: str) -> str:
    def _clean(match: re.Match[str]) -> str:
        return match.group(1) + strip_shading(match.group(2)) + match.group(3)

    return block_pattern.sub(_clean, xml)


def normalize_styles(doc: str) -> str:
    """Whole-document pass: no highlighting, no text/paragraph shading, no coloured text.

    Coloured table-cell fills are reset to a transparent fill rather than
    removed so the cell property block stays schema-valid.
    """
    result = strip_highlight(doc)
    result = _strip_shading_inside(_RUN_PROPERTIES_BLOCK, result)
    result = _strip_shading_inside(_PARAGRAPH_PROPERTIES_BLOCK, result)
    result = _CELL_SHADING.sub(_CLEAR_CELL_SHADING, result)
    result = _NON_BLACK_COLOR_PATTERN.sub(BLACK_COLOR_TAG, result)
    return result
