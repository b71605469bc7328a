from __future__ import annotations

import pytest

from markup_fixtures import HIGHLIGHTED_RUN, cell, document, para, row

from surveydoc.docx.edits import EditConflict, EditScript
from surveydoc.docx.locator import Span, find_paragraph, find_row
from surveydoc.docx.markup import visible_text
from surveydoc.docx.primitives import (
    clean_paragraph,
    insert_after_paragraph,
    remove_paragraph,
    remove_row,
    replace_cell_content,
    replace_paragraph_text,
    row_cells,
    strip_paragraph_prefix,
    styled_paragraph,
)
from surveydoc.docx.styles import DEFAULT_RUN_PROPERTIES, clean_region, normalize_styles


def test_edit_script_applies_patches_in_one_pass() -> None:
    doc = "0123456789"
    script = EditScript()
    script.replace(Span(6, 8), "xy")
    script.delete(Span(0, 2))
    script.add(Span(3, 4), str.upper)

    assert script.apply(doc) == "2345xy89"
    assert len(script) == 3


def test_patches_on_the_same_span_compose_in_order() -> None:
    script = EditScript()
    span = Span(0, 3)
    script.add(span, lambda text: text + "!")
    script.add(span, str.upper)

    assert script.apply("abcdef") == "ABC!def"
    assert len(script) == 1


def test_overlapping_patches_raise_edit_conflict() -> None:
    script = EditScript()
    script.delete(Span(2, 6))

    with pytest.raises(EditConflict):
        script.delete(Span(4, 8))
    with pytest.raises(ValueError):
        script.delete(Span(0, 3))

    script.delete(Span(6, 7))
    assert script.apply("abcdefgh") == "abh"


def test_empty_script_returns_document_unchanged() -> None:
    assert EditScript().apply("<w:body/>") == "<w:body/>"


def test_primitives_are_identity_when_target_is_absent() -> None:
    doc = document(para("11110001", "kept"))

    assert remove_paragraph(doc, "99990000") == doc
    assert remove_row(doc, "99990000") == doc
    assert replace_paragraph_text(doc, "99990000", "new") == doc
    assert clean_paragraph(doc, "99990000") == doc
    assert strip_paragraph_prefix(doc, "99990000", "(Здание) ") == doc
    assert insert_after_paragraph(doc, "99990000", "<w:p/>") == doc


def test_remove_paragraph_and_row() -> None:
    doc = document(
        para("11110001", "first"),
        f"<w:tbl>{row('22220001', cell(para(None, 'row text')))}</w:tbl>",
        para("11110002", "second"),
    )

    without_paragraph = remove_paragraph(doc, "11110001")
    without_row = remove_row(without_paragraph, "22220001")

    assert "first" not in without_paragraph
    assert find_row(without_row, "22220001") is None
    assert visible_text(without_row) == "second"


def test_replace_keeping_run_formatting_cleans_highlight_and_colour() -> None:
    original = para(
        "33330001",
        "старый текст",
        run_properties=HIGHLIGHTED_RUN,
        properties='<w:pPr><w:jc w:val="center"/></w:pPr>',
    )
    doc = document(original)

    result = replace_paragraph_text(doc, "33330001", "новый & текст", preserve_run_formatting=True)
    paragraph = find_paragraph(result, "33330001").slice(result)

    assert '<w:jc w:val="center"/>' in paragraph
    assert "<w:i/>" in paragraph
    assert '<w:sz w:val="28"/>' in paragraph
    assert '<w:color w:val="000000"/>' in paragraph
    assert "FF0000" not in paragraph
    assert "highlight" not in paragraph
    assert "новый &amp; текст" in paragraph
    assert visible_text(paragraph) == "новый & текст"


def test_replace_without_run_formatting_uses_default_run() -> None:
    doc = document(para("33330002", "old", run_properties=HIGHLIGHTED_RUN))

    result = replace_paragraph_text(doc, "33330002", "first line\nsecond line")
    paragraph = find_paragraph(result, "33330002").slice(result)

    assert DEFAULT_RUN_PROPERTIES in paragraph
    assert "<w:i/>" not in paragraph
    assert "<w:br/>" in paragraph
    assert visible_text(paragraph) == "first linesecond line"


def test_strip_prefix_and_clean() -> None:
    doc = document(para("44440001", "(Здание) МР 2.6.1.0333-23", run_properties=HIGHLIGHTED_RUN))

    stripped = strip_paragraph_prefix(doc, "44440001", "(Здание) ")
    cleaned = clean_paragraph(stripped, "44440001")

    assert visible_text(cleaned) == "МР 2.6.1.0333-23"
    assert "highlight" not in cleaned
    assert 'w:val="FF0000"' not in cleaned


def test_insert_after_paragraph_places_markup_behind_target() -> None:
    doc = document(para("55550001", "anchor"), para("55550002", "next"))

    result = insert_after_paragraph(doc, "55550001", styled_paragraph("inserted", para_id="55550003"))

    assert result.index("anchor") < result.index("inserted") < result.index("next")
    assert find_paragraph(result, "55550003") is not None


def test_styled_paragraph_sets_bold_italic_and_alignment() -> None:
    markup = styled_paragraph("Заголовок", bold=True, italic=True, indent=709)

    assert '<w:jc w:val="both"/>' in markup
    assert '<w:ind w:firstLine="709"/>' in markup
    assert "<w:b/>" in markup and "<w:i/>" in markup
    assert visible_text(markup) == "Заголовок"


def test_replace_cell_content_keeps_cell_properties() -> None:
    doc = document(f"<w:tbl>{row('66660001', cell(para(None, 'a')), cell(para(None, 'b'), para(None, 'c')))}</w:tbl>")
    target = row_cells(doc, find_row(doc, "66660001"))[1]

    result = replace_cell_content(doc, target, styled_paragraph("new"))
    cells = row_cells(result, find_row(result, "66660001"))

    assert [visible_text(item.slice(result)) for item in cells] == ["a", "new"]
    assert '<w:tcW w:w="2000" w:type="dxa"/>' in cells[1].slice(result)
    assert replace_cell_content(result, cells[1], "").count("<w:p/>") == 1


def test_normalize_styles_removes_highlight_shading_and_colour() -> None:
    doc = document(
        para(
            "77770001",
            "text",
            run_properties='<w:rPr><w:shd w:val="clear" w:fill="FFFF00"/><w:color w:val="C00000"/></w:rPr>',
            properties='<w:pPr><w:shd w:val="clear" w:fill="D9D9D9"/></w:pPr>',
        ),
        para("77770002", "marked", run_properties='<w:rPr><w:highlight w:val="green"/></w:rPr>'),
        "<w:tbl><w:tr><w:tc><w:tcPr>"
        '<w:shd w:val="clear" w:color="auto" w:fill="FFFF00"/></w:tcPr><w:p/></w:tc></w:tr></w:tbl>',
    )

    result = normalize_styles(doc)

    assert "highlight" not in result
    assert "C00000" not in result
    assert '<w:color w:val="000000"/>' in result
    assert "D9D9D9" not in result
    assert '<w:shd w:val="clear" w:color="auto" w:fill="auto"/>' in result
    assert visible_text(result) == "textmarked"


def test_normalize_styles_recolours_theme_colour_with_trailing_val() -> None:
    doc = document(
        para("77770003", "theme", run_properties='<w:rPr><w:color w:themeColor="accent1" w:val="FF0000"/></w:rPr>'),
        para("77770004", "kept", run_properties='<w:rPr><w:color w:themeColor="text1" w:val="000000"/></w:rPr>'),
    )

    result = normalize_styles(doc)

    assert "FF0000" not in result
    assert "accent1" not in result
    assert '<w:rPr><w:color w:val="000000"/></w:rPr>' in result
    assert '<w:color w:themeColor="text1" w:val="000000"/>' in result
    assert clean_region('<w:color w:themeShade="BF" w:val="2F5496"/>') == '<w:color w:val="000000"/>'
