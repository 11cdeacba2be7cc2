import base64
import io

from PIL import Image

from mailsafe.imaging import intrinsic_size_from_data_url, sanitize_image_source_for_logs


def _data_url(width: int, height: int, fmt: str = "PNG") -> str:
    buf = io.BytesIO()
    Image.new("RGB", (width, height)).save(buf, format=fmt)
    mime = "jpeg" if fmt == "JPEG" else fmt.lower()
    return f"data:image/{mime};base64," + base64.b64encode(buf.getvalue()).decode("ascii")


def test_intrinsic_size_png_and_jpeg():
    assert intrinsic_size_from_data_url(_data_url(300, 200)) == (300, 200)
    assert intrinsic_size_from_data_url(_data_url(64, 48, "JPEG")) == (64, 48)


def test_intrinsic_size_tolerates_line_wrapped_payload():
    url = _data_url(10, 20)
    header, payload = url.split(",", 1)
    wrapped = header + "," + "\n".join(payload[i:i + 40] for i in range(0, len(payload), 40))
    assert intrinsic_size_from_data_url(wrapped) == (10, 20)


def test_intrinsic_size_unrecoverable_inputs():
    assert intrinsic_size_from_data_url(None) is None
    assert intrinsic_size_from_data_url("https://example.com/a.png") is None
    assert intrinsic_size_from_data_url("data:image/png;base64,AAA") is None
    assert intrinsic_size_from_data_url("data:image/png;base64,AAAA") is None
    assert intrinsic_size_from_data_url("data:image/svg+xml,<svg></svg>") is None


def test_sanitize_data_url_hides_payload():
    assert (
        sanitize_image_source_for_logs("data:image/png;base64,iVBORw0KGgo=")
        == "data:image/png;base64,<redacted>"
    )


def test_sanitize_url_drops_credentials_query_and_fragment():
    out = sanitize_image_source_for_logs("https://user:pw@cdn.example.com:8443/img/a.png?token=abc#frag")
    assert out == "https://cdn.example.com:8443/img/a.png?<redacted>#<redacted>"


def test_sanitize_relative_and_empty_sources():
    assert sanitize_image_source_for_logs("images/a.png?sig=1") == "images/a.png?<redacted>"
    assert sanitize_image_source_for_logs("file:///C:/pics/a.png") == "file:///C:/pics/a.png"
    assert sanitize_image_source_for_logs("  ") == "<empty>"
    assert sanitize_image_source_for_logs(None) == "<null>"
