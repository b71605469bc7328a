from __future__ import annotations

from dataclasses import dataclass
import io
from zipfile import BadZipFile, ZipFile, ZipInfo

from surveydoc.config import settings
from surveydoc.errors import TemplateFormatError


@dataclass
class _Entry:
    info: ZipInfo
    data: bytes


class DocxPackage:
    """A docx container held in memory.

    Only the main document part is ever rewritten. Every other entry is
    written back byte-identical, in its original order and with its original
    compression type.
    """

    def __init__(self, entries: list[_Entry], part_name: str) -> None:
        self._entries = entries
        self._part_name = part_name

    @classmethod
    def from_bytes(cls, content: bytes, part_name: str | None = None) -> "DocxPackage":
        part = part_name or settings.document_part_name
        try:
            with ZipFile(io.BytesIO(content)) as archive:
                entries = [_Entry(info=info, data=archive.read(info)) for info in archive.infolist()]
        except BadZipFile as exc:
            raise TemplateFormatError(f"template is not a docx container: {exc}") from exc
        if not any(entry.info.filename == part for entry in entries):
            raise TemplateFormatError(f"template has no '{part}' part")
        return cls(entries, part)

    @property
    def part_name(self) -> str:
        return self._part_name

    def entry_names(self) -> list[str]:
        return [entry.info.filename for entry in self._entries]

    def read(self, name: str) -> bytes:
        for entry in self._entries:
            if entry.info.filename == name:
                return entry.data
        raise KeyError(name)

    @property
    def document_xml(self) -> str:
        raw = self.read(self._part_name)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise TemplateFormatError(f"'{self._part_name}' is not UTF-8: {exc}") from exc

    @document_xml.setter
    def document_xml(self, xml: str) -> None:
        for entry in self._entries:
            if entry.info.filename == self._part_name:
                entry.data = xml.encode("utf-8")
                return
        raise TemplateFormatError(f"template has no '{self._part_name}' part")

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        with ZipFile(buffer, "w") as archive:
            for entry in self._entries:
                archive.writestr(entry.info, entry.data, compress_type=entry.info.compress_type)
        return buffer.getvalue()


def read_document_xml(content: bytes) -> str:
    return DocxPackage.from_bytes(content).document_xml


def write_document_xml(content: bytes, xml: str) -> bytes:
    package = DocxPackage.from_bytes(content)
    package.document_xml = xml
    return package.to_bytes()
