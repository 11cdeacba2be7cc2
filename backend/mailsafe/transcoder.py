from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from mailsafe.config import settings
from mailsafe.document import EmailDocument
from mailsafe.imaging import sanitize_image_source_for_logs
from mailsafe.layout import (
    LayoutOptions,
    build_side_by_side_layouts,
    inline_block_defaults,
    normalize_residual_images,
)
from mailsafe.template import wrap_in_email_template
from mailsafe.typography import (
    enforce_minimum_font_size,
    normalize_font_size_units,
    normalize_line_heights,
    normalize_text_colors,
    rewrite_font_tags,
)

logger = logging.getLogger(__name__)


@dataclass
class TranscodeResult:
    html: str
    layout_tables: int = 0
    images_normalized: int = 0


def _run_stage(name: str, stage: Callable[[], Optional[int]]) -> int:
    # A failing stage only costs fidelity; the rest of the pipeline still runs
    # 段の失敗は再現度の低下に留め、残りの段は続行する
    try:
        return stage() or 0
    except Exception:
        logger.warning(f"Email HTML stage '{name}' failed; continuing", exc_info=True)
        return 0


def transcode(
    html_content: Optional[str],
    *,
    min_font_px: Optional[int] = None,
    default_font_px: Optional[int] = None,
) -> TranscodeResult:
    """Convert editor HTML into a complete email-safe HTML document.

    Stage order is fixed: colors, font tags, font-size units, line heights,
    minimum font size, side-by-side layout, remaining images, block defaults,
    template. Line heights are computed from the unit-normalized font size
    before the minimum size is applied.
    段の順序は固定（色→fontタグ→font-size単位→行間→最小サイズ→横並びレイアウト→残りの画像→ブロック既定値→テンプレート）。
    行間は単位を正規化したfont-sizeから、最小サイズ適用前に算出する。
    """
    if html_content is None or not html_content.strip():
        return TranscodeResult(html=wrap_in_email_template(""))

    try:
        doc = EmailDocument.parse(html_content)
    except Exception:
        logger.warning("Could not parse editor HTML; sending an empty body", exc_info=True)
        return TranscodeResult(html=wrap_in_email_template(""))

    if logger.isEnabledFor(logging.DEBUG):
        for img in doc.elements("img"):
            src = img.get("src")
            if src and src.strip():
                logger.debug(f"Editor image source loaded from: {sanitize_image_source_for_logs(src)}")

    min_px = min_font_px if min_font_px is not None else settings.min_font_size_px
    base_px = default_font_px if default_font_px is not None else settings.default_font_size_px
    pt_ratio = settings.pt_to_px_ratio
    options = LayoutOptions(
        fallback_width_px=settings.fallback_image_width_px,
        side_margin_px=settings.side_image_margin_px,
        gutter_px=settings.side_image_gutter_px,
        emit_height_attribute=settings.emit_image_height_attribute,
    )

    _run_stage("text colors", lambda: normalize_text_colors(doc))
    _run_stage("font tags", lambda: rewrite_font_tags(doc))
    _run_stage("font-size units", lambda: normalize_font_size_units(doc, pt_ratio=pt_ratio))
    _run_stage("line heights", lambda: normalize_line_heights(doc, default_font_px=base_px))
    _run_stage(
        "minimum font size",
        lambda: enforce_minimum_font_size(doc, min_px=min_px, pt_ratio=pt_ratio),
    )
    tables = _run_stage("side-by-side layout", lambda: build_side_by_side_layouts(doc, options))
    residual = _run_stage("residual images", lambda: normalize_residual_images(doc, options))
    _run_stage("block defaults", lambda: inline_block_defaults(doc))

    try:
        body = doc.html().strip()
    except Exception:
        logger.warning("Could not serialize converted HTML; sending an empty body", exc_info=True)
        return TranscodeResult(html=wrap_in_email_template(""))

    return TranscodeResult(
        html=wrap_in_email_template(body),
        layout_tables=tables,
        images_normalized=tables + residual,
    )


def convert_to_email_html(html_content: Optional[str], **overrides) -> str:
    return transcode(html_content, **overrides).html
