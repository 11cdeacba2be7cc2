import base64
import io

from bs4 import BeautifulSoup
from fastapi.testclient import TestClient
from PIL import Image

from sqlalchemy.exc import SQLAlchemyError

from mailsafe.database import get_db
from mailsafe.main import app

client = TestClient(app)


def _png_data_url(width: int, height: int) -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height)).save(buf, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def test_root():
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["message"] == "Email HTML Transcoder API"
    assert data["version"] == "1.0.0"

def test_health_check():
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert "timestamp" in data

def test_convert_empty_content():
    response = client.post("/convert", data={"html_content": "   "})
    assert response.status_code == 400
    data = response.json()
    assert "HTML content is required" in data["detail"]

def test_convert_valid_html():
    response = client.post("/convert", data={"html_content": "<p>Hello</p>"})
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert "conversion_id" in data
    assert data["html"].startswith("<!DOCTYPE html>")
    assert '<p style="margin:0 0 10px 0; padding:0;">Hello</p>' in data["html"]
    assert data["layout_tables"] == 0


def test_convert_floated_image_builds_layout_table():
    response = client.post("/convert", data={
        "html_content": '<img style="float:left;width:100px;margin-right:15px" '
                        'src="data:image/png;base64,AAA">Hello World'
    })
    assert response.status_code == 200
    data = response.json()
    assert data["layout_tables"] == 1
    assert data["images_normalized"] == 1
    soup = BeautifulSoup(data["html"], "html.parser")
    img = soup.find("img")
    assert img["width"] == "100"
    assert img.find_parent("td").find_next_sibling("td").get_text().strip() == "Hello World"


def test_convert_keeps_aspect_ratio():
    src = _png_data_url(300, 200)
    response = client.post("/convert", data={
        "html_content": f'<p>Text</p><img src="{src}" style="float:left; width:150px; height:150px; '
                        'margin:0 15px;"><p>Side text</p>'
    })
    img = BeautifulSoup(response.json()["html"], "html.parser").find("img")
    assert img["width"] == "150"
    assert img["height"] == "100"


def test_convert_small_fonts_and_line_height():
    response = client.post("/convert", data={
        "html_content": '<p><font size="1">tiny</font> '
                        '<span style="font-size: 14px; line-height: 1.5;">Line test</span></p>'
    })
    html = response.json()["html"]
    assert '<span style="font-size:10px;">tiny</span>' in html
    assert "<font" not in html
    assert "line-height:21px; mso-line-height-rule:exactly;" in html


def test_convert_with_minimum_font_size():
    response = client.post("/convert", data={
        "html_content": '<span style="font-size:11px">a</span>',
        "min_font_size": "12",
    })
    assert response.status_code == 200
    assert '<span style="font-size:12px;">a</span>' in response.json()["html"]


def test_convert_too_large(monkeypatch):
    from mailsafe.config import settings
    monkeypatch.setattr(settings, "max_content_size", 10)
    response = client.post("/convert", data={"html_content": "<p>more than ten bytes</p>"})
    assert response.status_code == 413


def test_preview_returns_html_document():
    response = client.post("/preview", data={"html_content": "<p>Preview</p>"})
    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    assert "Preview" in response.text
    assert response.text.count("<!DOCTYPE html>") == 1


def test_preview_requires_content():
    response = client.post("/preview", data={"html_content": ""})
    assert response.status_code in (400, 422)


def test_history_roundtrip():
    response = client.post("/convert", data={"html_content": "<p>Keep me</p>"})
    conversion_id = response.json()["conversion_id"]
    history = client.get(f"/history/{conversion_id}")
    assert history.status_code == 200
    data = history.json()
    assert data["conversion_id"] == conversion_id
    assert data["input_size"] == len("<p>Keep me</p>")
    assert data["status"] == "completed"


def test_history_unknown_id():
    response = client.get("/history/does-not-exist")
    assert response.status_code == 404


def test_history_sizes_are_utf8_bytes():
    html_content = "<p>日本語</p>"
    response = client.post("/convert", data={"html_content": html_content})
    data = response.json()
    history = client.get(f"/history/{data['conversion_id']}").json()
    assert history["input_size"] == len(html_content.encode("utf-8"))
    assert history["output_size"] == len(data["html"].encode("utf-8"))


class _FailingSession:
    def __init__(self):
        self.rolled_back = False

    def add(self, obj):
        pass

    def commit(self):
        raise SQLAlchemyError("database is locked")

    def rollback(self):
        self.rolled_back = True


def test_convert_succeeds_when_history_write_fails():
    session = _FailingSession()

    def _failing_db():
        yield session

    app.dependency_overrides[get_db] = _failing_db
    try:
        response = client.post("/convert", data={"html_content": "<p>Still converted</p>"})
    finally:
        app.dependency_overrides.pop(get_db, None)
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert "Still converted" in data["html"]
    assert session.rolled_back is True
