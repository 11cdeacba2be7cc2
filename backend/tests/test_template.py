from bs4 import BeautifulSoup

from mailsafe.document import EmailDocument
from mailsafe.template import wrap_in_email_template
from mailsafe.transcoder import convert_to_email_html, transcode


def test_template_shell_structure():
    html = wrap_in_email_template("<p>Hi</p>")
    assert html.startswith("<!DOCTYPE html>\n")
    assert 'xmlns:o="urn:schemas-microsoft-com:office:office"' in html
    assert '<meta charset="UTF-8">' in html
    assert "<o:PixelsPerInch>96</o:PixelsPerInch>" in html
    assert "<!--[if mso]>" in html

    soup = BeautifulSoup(html, "html.parser")
    shell = soup.find("table", class_="ms-shell")
    assert shell["role"] == "presentation"
    assert shell["cellpadding"] == "0"
    cell = shell.find("td")
    assert "font-family:Calibri, Arial, sans-serif;" in cell["style"]
    assert "font-size:14px;" in cell["style"]
    assert "mso-line-height-rule:exactly;" in cell["style"]
    assert cell.find("p").get_text() == "Hi"


def test_template_typography_overrides():
    html = wrap_in_email_template("x", font_family='"Segoe UI", Arial', font_size_px=16, line_height="20px")
    cell = BeautifulSoup(html, "html.parser").find("td")
    assert 'font-family:"Segoe UI", Arial;' in cell["style"]
    assert "font-size:16px;" in cell["style"]
    assert "line-height:20px;" in cell["style"]


def test_empty_and_blank_input_produce_empty_shell():
    empty = convert_to_email_html("")
    assert empty == wrap_in_email_template("")
    assert convert_to_email_html("   \n\t") == empty
    assert convert_to_email_html(None) == empty
    result = transcode("")
    assert result.layout_tables == 0
    assert result.images_normalized == 0


def test_output_is_wrapped_exactly_once_when_rerun():
    first = convert_to_email_html("<p>Hello</p>")
    second = convert_to_email_html(first)
    assert second.count("<!DOCTYPE html>") == 1
    assert second.count("<body") == 1
    assert len(BeautifulSoup(second, "html.parser").find_all("table", class_="ms-shell")) == 1
    assert '<p style="margin:0 0 10px 0; padding:0;">Hello</p>' in second


def test_full_document_input_uses_body_content():
    doc = EmailDocument.parse(
        "<html><head><title>t</title></head><body><p>Body text</p></body></html>"
    )
    assert doc.html() == "<p>Body text</p>"
    html = convert_to_email_html("<html><head><title>t</title></head><body><p>Body text</p></body></html>")
    assert "<title>" not in html
    assert "Body text" in html
