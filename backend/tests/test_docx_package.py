from __future__ import annotations

import io
from zipfile import ZIP_DEFLATED, ZIP_STORED, ZipFile

import pytest

from markup_fixtures import document, docx_bytes, para

from surveydoc.docx.package import DocxPackage, read_document_xml, write_document_xml
from surveydoc.errors import TemplateFormatError


def _entries(content: bytes) -> list[tuple[str, int, bytes]]:
    with ZipFile(io.BytesIO(content)) as archive:
        return [(info.filename, info.compress_type, archive.read(info)) for info in archive.infolist()]


def test_round_trip_rewrites_only_the_main_part() -> None:
    template = docx_bytes(document(para("11111111", "Исходный текст")))
    new_xml = document(para("11111111", "Новый текст"))

    result = write_document_xml(template, new_xml)

    before = _entries(template)
    after = _entries(result)
    assert [name for name, _, _ in after] == [name for name, _, _ in before]
    assert [kind for _, kind, _ in after] == [kind for _, kind, _ in before]
    for (name, _, old), (_, _, new) in zip(before, after):
        if name == "word/document.xml":
            assert new.decode("utf-8") == new_xml
        else:
            assert new == old
    assert read_document_xml(result) == new_xml


def test_package_exposes_entries_and_keeps_compression() -> None:
    package = DocxPackage.from_bytes(docx_bytes(document()))

    assert package.part_name == "word/document.xml"
    assert package.entry_names() == ["[Content_Types].xml", "_rels/.rels", "word/document.xml", "word/styles.xml"]
    compress_types = {name: kind for name, kind, _ in _entries(package.to_bytes())}
    assert compress_types["_rels/.rels"] == ZIP_STORED
    assert compress_types["word/document.xml"] == ZIP_DEFLATED
    with pytest.raises(KeyError):
        package.read("word/missing.xml")


def test_not_a_zip_is_a_template_format_error() -> None:
    with pytest.raises(TemplateFormatError):
        DocxPackage.from_bytes(b"plain text, not a container")


def test_missing_main_part_is_a_template_format_error() -> None:
    buffer = io.BytesIO()
    with ZipFile(buffer, "w") as archive:
        archive.writestr("word/styles.xml", "<w:styles/>")

    with pytest.raises(TemplateFormatError, match="word/document.xml"):
        DocxPackage.from_bytes(buffer.getvalue())


def test_non_utf8_main_part_is_a_template_format_error() -> None:
    buffer = io.BytesIO()
    with ZipFile(buffer, "w") as archive:
        archive.writestr("word/document.xml", "<w:t>Текст</w:t>".encode("cp1251"))

    package = DocxPackage.from_bytes(buffer.getvalue())
    with pytest.raises(TemplateFormatError):
        _ = package.document_xml
