from surveydoc.docx.edits import EditConflict, EditScript
from surveydoc.docx.locator import RegionIndex, Span, Target, find_paragraph, find_row, find_row_containing, find_table
from surveydoc.docx.package import DocxPackage, read_document_xml, write_document_xml
from surveydoc.docx.primitives import remove_paragraph, remove_row, replace_paragraph_text
from surveydoc.docx.styles import normalize_styles
from surveydoc.docx.table import Row, RowKind, TableLayout, decompose

__all__ = [
    "DocxPackage",
    "EditConflict",
    "EditScript",
    "RegionIndex",
    "Row",
    "RowKind",
    "Span",
    "TableLayout",
    "Target",
    "decompose",
    "find_paragraph",
    "find_row",
    "find_row_containing",
    "find_table",
    "normalize_styles",
    "read_document_xml",
    "remove_paragraph",
    "remove_row",
    "replace_paragraph_text",
    "write_document_xml",
]
