from __future__ import annotations

from dataclasses import dataclass
import io
import logging
from pathlib import Path
from typing import Protocol

from docx import Document
from docx.table import Table
from pypdf import PdfReader
from striprtf.striprtf import rtf_to_text

logger = logging.getLogger("surveydoc.sources")

TEXT_FILE_EXTENSIONS = {".txt", ".md", ".csv"}


@dataclass(frozen=True)
class SourceText:
    reader_id: str
    text: str
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text)


class SourceReader(Protocol):
    reader_id: str

    def supports(self, *, file_name: str, content_type: str) -> bool:
        ...

    def read(self, *, content: bytes) -> SourceText:
        ...


def _decode(content: bytes) -> str | None:
    for encoding in ("utf-8", "cp1251", "latin-1"):
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    return None


def _clean_line(text: str) -> str:
    return " ".join(text.split()).strip()


class DocxSourceReader:
    """Body text in document order; table rows become tab-joined lines."""

    reader_id = "docx"
    _CONTENT_TYPES = {"application/vnd.openxmlformats-officedocument.wordprocessingml.document"}

    def supports(self, *, file_name: str, content_type: str) -> bool:
        return content_type.lower() in self._CONTENT_TYPES or Path(file_name).suffix.lower() == ".docx"

    def read(self, *, content: bytes) -> SourceText:
        try:
            document = Document(io.BytesIO(content))
        except Exception as exc:
            return SourceText(reader_id=self.reader_id, text="", error=f"docx read failed: {exc}")

        lines: list[str] = []
        for block in document.iter_inner_content():
            if isinstance(block, Table):
                lines.extend(self._table_lines(block))
                continue
            text = _clean_line(block.text)
            if text:
                lines.append(text)
        return SourceText(reader_id=self.reader_id, text="\n".join(lines).strip())

    @staticmethod
    def _table_lines(table: Table) -> list[str]:
        lines: list[str] = []
        for row in table.rows:
            seen: set[int] = set()
            values: list[str] = []
            for cell in row.cells:
                # Merged cells repeat the same element across the grid.
                if id(cell._tc) in seen:
                    continue
                seen.add(id(cell._tc))
                value = _clean_line(cell.text)
                if value:
                    values.append(value)
            if values:
                lines.append("\t".join(values))
        return lines


class PdfSourceReader:
    reader_id = "pdf"

    def supports(self, *, file_name: str, content_type: str) -> bool:
        return content_type.lower() == "application/pdf" or Path(file_name).suffix.lower() == ".pdf"

    def read(self, *, content: bytes) -> SourceText:
        try:
            reader = PdfReader(io.BytesIO(content), strict=False)
            pages = [(page.extract_text() or "").strip() for page in reader.pages]
        except Exception as exc:
            return SourceText(reader_id=self.reader_id, text="", error=f"pdf read failed: {exc}")
        return SourceText(reader_id=self.reader_id, text="\n".join(page for page in pages if page))


class RtfSourceReader:
    reader_id = "rtf"
    _CONTENT_TYPES = {"application/rtf", "text/rtf"}

    def supports(self, *, file_name: str, content_type: str) -> bool:
        return content_type.lower() in self._CONTENT_TYPES or Path(file_name).suffix.lower() == ".rtf"

    def read(self, *, content: bytes) -> SourceText:
        decoded = _decode(content)
        if decoded is None:
            return SourceText(reader_id=self.reader_id, text="", error="rtf decode failed")
        try:
            text = rtf_to_text(decoded)
        except Exception as exc:
            return SourceText(reader_id=self.reader_id, text="", error=f"rtf read failed: {exc}")
        cleaned = "\n".join(line.strip() for line in text.splitlines() if line.strip())
        return SourceText(reader_id=self.reader_id, text=cleaned)


class PlainTextSourceReader:
    reader_id = "text"

    def supports(self, *, file_name: str, content_type: str) -> bool:
        return content_type.startswith("text/") or Path(file_name).suffix.lower() in TEXT_FILE_EXTENSIONS

    def read(self, *, content: bytes) -> SourceText:
        decoded = _decode(content)
        if decoded is None:
            return SourceText(reader_id=self.reader_id, text="", error="text decode failed")
        return SourceText(reader_id=self.reader_id, text=decoded.replace("\r\n", "\n").strip())


class SourceRegistry:
    def __init__(self, readers: list[SourceReader] | None = None) -> None:
        self._readers = readers or [
            PdfSourceReader(),
            DocxSourceReader(),
            RtfSourceReader(),
            PlainTextSourceReader(),
        ]

    def read(self, *, content: bytes, file_name: str, content_type: str = "") -> SourceText:
        for reader in self._readers:
            if not reader.supports(file_name=file_name, content_type=content_type):
                continue
            result = reader.read(content=content)
            if result.error:
                logger.warning(
                    "source_read_failed",
                    extra={"event": "source_read_failed", "reader": reader.reader_id, "error": result.error},
                )
            return result
        return SourceText(reader_id="none", text="", error=f"no reader for '{file_name}'")


def read_source_text(content: bytes, file_name: str, content_type: str = "") -> SourceText:
    return SourceRegistry().read(content=content, file_name=file_name, content_type=content_type)
