from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from bs4 import NavigableString, Tag
from bs4.element import PageElement

from mailsafe.document import (
    ElementKind,
    EmailDocument,
    PRESENTATION_ROLE,
    classify,
    contains_image,
    has_visible_text,
    is_blank_text,
    is_inside_presentation_table,
)
from mailsafe.imaging import intrinsic_size_from_data_url, sanitize_image_source_for_logs
from mailsafe.styles import (
    StyleMap,
    expand_box_shorthand,
    leading_int,
    parse_length,
    px_value,
    round_half_up,
    split_important,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LayoutOptions:
    fallback_width_px: int = 260
    side_margin_px: int = 15
    gutter_px: int = 15
    emit_height_attribute: bool = True


_CELL_RESET = (("mso-table-lspace", "0pt"), ("mso-table-rspace", "0pt"))

# Every kind is listed so a new ElementKind fails loudly here
# ElementKindを追加した場合にここで必ず失敗するよう全種別を列挙する
_BLOCK_DEFAULTS: dict[ElementKind, Tuple[Tuple[str, str], ...]] = {
    ElementKind.HEADING: (),
    ElementKind.PARAGRAPH: (("margin", "0 0 10px 0"), ("padding", "0")),
    ElementKind.CONTAINER: (("margin", "0"), ("padding", "0")),
    ElementKind.LIST: (),
    ElementKind.TABLE: (),
    ElementKind.IMAGE: (),
    ElementKind.INLINE_TEXT: (),
    ElementKind.LEGACY_FONT: (),
    ElementKind.OTHER: (),
}


# Block wrappers are replaced by the layout table; any other wrapper moves with the image
# ブロック要素のラッパーは表で置き換え、それ以外のラッパーは画像と一緒に移す
_DROPPED_WRAPPERS = (ElementKind.PARAGRAPH, ElementKind.CONTAINER, ElementKind.HEADING)

def explicit_width_px(img: Tag, style: StyleMap) -> Optional[int]:
    """Width the author gave the image: style px first, then the attribute."""
    from_style = px_value(style.get("width"))
    if from_style is not None and from_style > 0:
        return round_half_up(from_style)
    from_attr = leading_int(img.get("width"))
    if from_attr is not None and from_attr > 0:
        return from_attr
    return None


def resolve_image_width(img: Tag, style: StyleMap, fallback_px: int) -> int:
    # Never clamped: a user-resized width is kept exactly
    # 上限で丸めない。ユーザーがリサイズした幅はそのまま維持する
    explicit = explicit_width_px(img, style)
    return explicit if explicit is not None else fallback_px


def is_side_by_side_image(img: Tag, style: StyleMap, margin_px: int) -> bool:
    """Decide whether an image was meant to sit left of the following text.

    Either ``float:left``, or an explicit width plus the editor's right margin;
    resizing in the editor can drop the float but keeps the spacing.
    float:leftか、明示的な幅とエディタが付ける右マージンの組み合わせで判定する。エディタでリサイズするとfloatが消えることがあるがマージンは残る。
    """
    float_value = split_important(style.get("float") or "")[0].lower()
    if float_value == "left":
        return True

    has_width = "width" in style or img.has_attr("width")
    if not has_width:
        return False
    right = style.get("margin-right")
    if right is None and "margin" in style:
        right = expand_box_shorthand(split_important(style.get("margin") or "")[0])[1]
    right_px = px_value(right)
    return right_px is not None and round_half_up(right_px) == margin_px


def intrinsic_size(img: Tag) -> Optional[Tuple[int, int]]:
    # Editor hints first, then decode the inline payload
    # エディタが付けたヒントを優先し、無ければインラインのペイロードを解析する
    hint_w = leading_int(img.get("data-original-width"))
    hint_h = leading_int(img.get("data-original-height"))
    if hint_w and hint_h:
        return hint_w, hint_h
    return intrinsic_size_from_data_url(img.get("src"))


def normalize_image(
    img: Tag, style: StyleMap, width_px: int, options: LayoutOptions
) -> None:
    """Make one image scale proportionally at ``width_px`` in mail clients.

    Height never comes from the author: style gets ``height:auto`` and the
    attribute, when emitted, is derived from the intrinsic aspect ratio.
    高さは入力値を使わない。styleにはheight:autoを設定し、属性を出力する場合は元画像の縦横比から算出する。
    """
    explicit = explicit_width_px(img, style)
    style.remove("float")
    max_width = style.get("max-width")
    if max_width is not None:
        length = parse_length(split_important(max_width)[0])
        if length is not None and length[1] == "%":
            style.remove("max-width")
    style.remove("height")
    width_decl = style.remove("width")
    if width_decl is not None and px_value(width_decl) is None:
        # Non-px widths such as 50% are the author's choice; keep them
        # 50%のようなpx以外の幅は作成者の指定なのでそのまま残す
        style.set("width", width_decl)

    head = [("height", "auto !important")]
    if explicit is not None and "width" not in style:
        head.append(("width", f"{explicit}px"))
    head.extend([("max-width", "100%"), ("display", "block")])
    style.replace_all(head + style.items())

    img["width"] = str(width_px)
    size = intrinsic_size(img) if options.emit_height_attribute else None
    if size is not None:
        intrinsic_w, intrinsic_h = size
        img["height"] = str(round_half_up(width_px * intrinsic_h / intrinsic_w))
    elif img.has_attr("height"):
        del img["height"]

    for attr in ("data-original-width", "data-original-height"):
        if img.has_attr(attr):
            del img[attr]


def _wraps_only(parent: PageElement, img: Tag) -> bool:
    if not isinstance(parent, Tag):
        return False
    # Cells and list items hold structure siblings, not the text beside the image
    # 表のセルやリスト項目の兄弟は構造要素なので、横に並べる本文として扱わない
    if classify(parent) in (ElementKind.TABLE, ElementKind.LIST):
        return False
    return all(child is img or is_blank_text(child) for child in parent.children)


def collect_companion_nodes(doc: EmailDocument, img: Tag) -> Tuple[list[PageElement], bool]:
    """Gather the content that should sit in the text column next to ``img``.

    Returns the nodes in document order and whether the image's parent only
    wraps the image (in which case the parent's following siblings were
    walked too). Nothing is detached here.
    テキスト列に入れるノードを文書順で返し、親要素が画像だけを包んでいるか（その場合は親の後続兄弟も収集済み）を併せて返す。ここではノードを切り離さない。
    """
    nodes: list[PageElement] = []
    cursor = img.next_sibling
    while cursor is not None and not contains_image(cursor):
        nodes.append(cursor)
        cursor = cursor.next_sibling

    parent = img.parent
    wraps_only = parent is not doc.root and _wraps_only(parent, img)
    if wraps_only:
        # "Image in its own paragraph, text in the next one"
        # 「画像だけの段落の次にテキスト段落」というよくある構成
        cursor = parent.next_sibling
        while cursor is not None and not contains_image(cursor):
            nodes.append(cursor)
            cursor = cursor.next_sibling
    return nodes, wraps_only


def _styled_tag(doc: EmailDocument, name: str, declarations, **attrs: str) -> Tag:
    tag = doc.new_tag(name, **attrs)
    style = doc.style_of(tag)
    if style is not None:
        style.replace_all(declarations)
    return tag


def build_two_column_table(
    doc: EmailDocument,
    img: Tag,
    style: StyleMap,
    companions: list[PageElement],
    width_px: int,
    options: LayoutOptions,
    anchor: Tag,
) -> Tag:
    """Build the presentation table in place of ``anchor`` and move content into it."""
    table = _styled_tag(
        doc,
        "table",
        [("border-collapse", "collapse"), *_CELL_RESET, ("width", "100%")],
        role=PRESENTATION_ROLE,
        cellpadding="0",
        cellspacing="0",
        border="0",
        width="100%",
    )
    anchor.insert_before(table)
    row = doc.new_tag("tr")
    table.append(row)

    image_cell = _styled_tag(
        doc,
        "td",
        [
            ("vertical-align", "top"),
            ("text-align", "left"),
            ("padding-right", f"{options.gutter_px}px"),
            ("width", f"{width_px}px"),
            *_CELL_RESET,
        ],
        valign="top",
        align="left",
        width=str(width_px),
    )
    # The text column has no width so it fills the remaining space
    # テキスト列は幅を指定せず残りの領域を使わせる
    text_cell = _styled_tag(
        doc,
        "td",
        [("vertical-align", "top"), ("text-align", "left"), *_CELL_RESET],
        valign="top",
        align="left",
    )
    row.append(image_cell)
    row.append(text_cell)

    normalize_image(img, style, width_px, options)
    img["border"] = "0"
    if anchor is not img and classify(anchor) not in _DROPPED_WRAPPERS:
        # Inline wrappers such as links stay around the image
        # リンクなどのインライン要素は画像を包んだまま左セルへ移す
        image_cell.append(anchor.extract())
    else:
        image_cell.append(img.extract())

    if has_visible_text(companions):
        for node in companions:
            text_cell.append(node.extract())
    else:
        for node in companions:
            node.extract()
        text_cell.append(NavigableString("\xa0"))

    if anchor is not img and anchor.parent is not image_cell:
        anchor.decompose()
    return table


def build_side_by_side_layouts(doc: EmailDocument, options: LayoutOptions) -> int:
    """Rebuild floated images and their following content as two-column tables.

    Returns the number of tables built. Images without any following content
    are left for ``normalize_residual_images``.
    生成した表の数を返す。後続コンテンツが無い画像はnormalize_residual_imagesに任せる。
    """
    built = 0
    for img in doc.elements("img"):
        if is_inside_presentation_table(img, doc.root):
            continue
        style = doc.style_of(img)
        if style is None or not is_side_by_side_image(img, style, options.side_margin_px):
            continue
        parent = img.parent
        if parent is None:
            logger.debug("Skipping detached side-by-side image")
            continue

        companions, wraps_only = collect_companion_nodes(doc, img)
        width_px = resolve_image_width(img, style, options.fallback_width_px)
        logger.info(
            f"Processing floated image: src={sanitize_image_source_for_logs(img.get('src'))}, "
            f"width attr={img.get('width')!r}, calculated width={width_px}"
        )
        if not companions:
            continue

        anchor = parent if wraps_only else img
        build_two_column_table(doc, img, style, companions, width_px, options, anchor)
        built += 1
    return built


def normalize_residual_images(doc: EmailDocument, options: LayoutOptions) -> int:
    """Size every image that did not end up in a layout table."""
    normalized = 0
    for img in doc.elements("img"):
        if is_inside_presentation_table(img, doc.root):
            continue
        style = doc.style_of(img)
        if style is None:
            continue
        width_px = resolve_image_width(img, style, options.fallback_width_px)
        logger.info(
            f"Processing non-floated image: src={sanitize_image_source_for_logs(img.get('src'))}, "
            f"width attr={img.get('width')!r}, calculated width={width_px}"
        )
        normalize_image(img, style, width_px, options)
        normalized += 1
    return normalized


def inline_block_defaults(doc: EmailDocument) -> None:
    """Inline baseline margin/padding on paragraphs and containers.

    No font-size is injected; the template's wrapper cell provides it and a
    per-element size would break mixed-size content.
    font-sizeは付与しない。テンプレートのラッパーセルが基本サイズを持ち、要素ごとに付けると混在したサイズ指定が崩れる。
    """
    for el in doc.elements():
        defaults = _BLOCK_DEFAULTS[classify(el)]
        if not defaults:
            continue
        style = doc.style_of(el)
        if style is None:
            continue
        for name, value in defaults:
            if not style.has_prefix(name):
                style.set(name, value)
