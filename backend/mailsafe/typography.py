"""Text-level normalizers: colors, legacy font tags, font sizes, line heights.

These run before layout so that every later stage can rely on font sizes being
integer px values.
レイアウト処理の前に実行し、後続の処理がfont-sizeを整数pxとして扱えるようにする。
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from mailsafe.document import EmailDocument
from mailsafe.styles import (
    StyleMap,
    parse_length,
    round_half_up,
    split_important,
    with_important,
)

logger = logging.getLogger(__name__)


_WHITE_TO_BLACK = {
    "white": "black",
    "#fff": "#000",
    "#ffffff": "#000000",
}
_RE_RGB_WHITE = re.compile(r"^rgb\(\s*255\s*,\s*255\s*,\s*255\s*\)$", re.IGNORECASE)

# Size 1 maps to 10px rather than 8px: Outlook renders 8px text invisibly
# サイズ1は8pxではなく10pxに対応付ける（Outlookでは8pxが見えなくなるため）
FONT_SIZE_CODES = {
    1: 10,
    2: 11,
    3: 12,
    4: 14,
    5: 18,
    6: 24,
    7: 36,
}
_DEFAULT_FONT_CODE = 3
_UNKNOWN_FONT_CODE_PX = 14
_RE_FONT_CODE = re.compile(r"^([+-]?)(\d+)$")


def _black_equivalent(value: str) -> Optional[str]:
    compact = value.strip().lower()
    if compact in _WHITE_TO_BLACK:
        return _WHITE_TO_BLACK[compact]
    if _RE_RGB_WHITE.match(compact):
        return "rgb(0, 0, 0)"
    return None


def normalize_text_colors(doc: EmailDocument) -> None:
    """Rewrite white foreground colors to black.

    The editor may run on a dark theme, but mail is composed on white.
    エディタはダークテーマで使われることがあるが、メールは白背景で表示される。
    """
    for font in doc.elements("font"):
        if font.has_attr("color") and _black_equivalent(font["color"]) is not None:
            font["color"] = "#000000"

    for _el, style in doc.styled():
        if "color" not in style:
            continue
        value, important = split_important(style.get("color") or "")
        black = _black_equivalent(value)
        if black is not None:
            style.set("color", with_important(black, important))


def font_code_to_px(code: Optional[str]) -> int:
    match = _RE_FONT_CODE.match((code or "").strip())
    if not match:
        return _UNKNOWN_FONT_CODE_PX
    sign, digits = match.groups()
    number = int(digits)
    if sign:
        number = _DEFAULT_FONT_CODE + (number if sign == "+" else -number)
        number = max(1, min(7, number))
    return FONT_SIZE_CODES.get(number, _UNKNOWN_FONT_CODE_PX)


def rewrite_font_tags(doc: EmailDocument) -> None:
    """Rename ``<font>`` to ``<span>`` in place, moving size/color/face into style.

    Renaming keeps neighbouring text nodes exactly where they were, so spacing
    such as ``Sunday, <font>December</font> 28`` survives.
    タグ名を置き換えるだけなので前後のテキストノードはそのまま残り、空白も失われない。
    """
    for font in doc.elements("font"):
        existing = doc.style_of(font)
        if existing is None:
            continue

        rebuilt = StyleMap()
        if font.has_attr("size"):
            rebuilt.set("font-size", f"{font_code_to_px(font['size'])}px")
        color = (font.get("color") or "").strip()
        if color:
            rebuilt.set("color", color)
        face = (font.get("face") or "").strip()
        if face:
            rebuilt.set("font-family", face)
        rebuilt.update(existing)

        font.name = "span"
        for attr in ("size", "color", "face"):
            if font.has_attr(attr):
                del font[attr]
        existing.replace_all(rebuilt.items())


def _px_from_length(number: float, unit: str, pt_ratio: float) -> Optional[float]:
    if unit == "px":
        return number
    if unit == "pt":
        return number * pt_ratio
    return None


def normalize_font_size_units(doc: EmailDocument, *, pt_ratio: float) -> None:
    """Convert every px/pt font-size to an integer px value."""
    for _el, style in doc.styled():
        if "font-size" not in style:
            continue
        value, important = split_important(style.get("font-size") or "")
        length = parse_length(value)
        if length is None:
            continue
        px = _px_from_length(length[0], length[1], pt_ratio)
        if px is None:
            continue
        style.set("font-size", with_important(f"{round_half_up(px)}px", important))


def normalize_line_heights(doc: EmailDocument, *, default_font_px: int) -> None:
    """Turn relative line-heights into px and pin them for Outlook.

    Outlook's Word engine scales unitless multipliers differently from
    browsers, so the value is made absolute and
    ``mso-line-height-rule:exactly`` is added.
    OutlookのWordエンジンは単位なしの倍率をブラウザと異なる方法で解釈するため、px値に変換し
    mso-line-height-rule:exactlyを付与する。
    """
    for _el, style in doc.styled():
        if "line-height" not in style:
            continue
        value, important = split_important(style.get("line-height") or "")
        length = parse_length(value)
        if length is None:
            continue
        number, unit = length

        font_px = default_font_px
        font_length = parse_length(split_important(style.get("font-size") or "")[0])
        if font_length is not None and font_length[1] == "px":
            font_px = font_length[0]

        if unit == "px":
            line_px = round_half_up(number)
        elif unit in ("", "em"):
            line_px = round_half_up(number * font_px)
        elif unit == "%":
            line_px = round_half_up(number / 100.0 * font_px)
        else:
            continue

        style.set("line-height", with_important(f"{line_px}px", important))
        style.setdefault("mso-line-height-rule", "exactly")


def enforce_minimum_font_size(doc: EmailDocument, *, min_px: int, pt_ratio: float) -> None:
    """Raise font sizes under ``min_px`` to exactly ``min_px``."""
    for el, style in doc.styled():
        if "font-size" not in style:
            continue
        value, important = split_important(style.get("font-size") or "")
        length = parse_length(value)
        if length is None:
            continue
        px = _px_from_length(length[0], length[1], pt_ratio)
        if px is not None and px < min_px:
            logger.debug(f"Raising font-size {value} to {min_px}px on <{el.name}>")
            style.set("font-size", with_important(f"{min_px}px", important))
