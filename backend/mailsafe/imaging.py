from __future__ import annotations

import base64
import binascii
import io
import logging
from typing import Optional, Tuple
from urllib.parse import urlsplit, urlunsplit

from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)


def is_data_image(src: Optional[str]) -> bool:
    return bool(src) and src.strip().lower().startswith("data:image")


def intrinsic_size_from_data_url(src: Optional[str]) -> Optional[Tuple[int, int]]:
    """Decode a ``data:image/...;base64,`` payload and return its (width, height).

    Returns None for anything that is not an inline base64 image or that Pillow
    cannot identify; callers then omit the height attribute.
    インラインのbase64画像でない場合やPillowが判別できない場合はNoneを返し、呼び出し側はheight属性を省略する。
    """
    if not is_data_image(src):
        return None
    header, sep, payload = src.strip().partition(",")
    if not sep or ";base64" not in header.lower():
        return None
    try:
        data = base64.b64decode("".join(payload.split()), validate=True)
    except (binascii.Error, ValueError):
        logger.debug(f"Undecodable image payload: {sanitize_image_source_for_logs(src)}")
        return None
    try:
        with Image.open(io.BytesIO(data)) as img:
            width, height = img.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError):
        logger.debug(f"Unreadable image payload: {sanitize_image_source_for_logs(src)}")
        return None
    if width <= 0 or height <= 0:
        return None
    return width, height


def sanitize_image_source_for_logs(src: Optional[str]) -> str:
    """Make an image reference safe to log.

    Drops base64 payloads, credentials, query strings and fragments.
    base64のペイロード、認証情報、クエリ文字列、フラグメントを取り除く。
    """
    if src is None:
        return "<null>"
    trimmed = src.strip()
    if not trimmed:
        return "<empty>"

    if trimmed.lower().startswith("data:image"):
        meta = trimmed.split(",", 1)[0]
        return meta + ",<redacted>"

    try:
        parts = urlsplit(trimmed)
    except ValueError:
        parts = None

    if parts is None or not parts.scheme:
        out = trimmed
        if "?" in out:
            out = out.split("?", 1)[0] + "?<redacted>"
        if "#" in out:
            out = out.split("#", 1)[0] + "#<redacted>"
        return out

    netloc = parts.hostname or ""
    try:
        port = parts.port
    except ValueError:
        port = None
    if port is not None:
        netloc = f"{netloc}:{port}"
    out = urlunsplit((parts.scheme, netloc, parts.path, "", ""))
    if "?" in trimmed:
        out += "?<redacted>"
    if "#" in trimmed:
        out += "#<redacted>"
    return out
