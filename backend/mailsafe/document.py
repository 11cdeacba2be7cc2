from __future__ import annotations

import logging
from enum import Enum
from typing import Iterable, Iterator, Optional, Union

from bs4 import BeautifulSoup, NavigableString, Tag
from bs4.element import Comment, PageElement

from mailsafe.styles import StyleMap, StyleParseError

logger = logging.getLogger(__name__)

PRESENTATION_ROLE = "presentation"
SHELL_CLASS = "ms-shell"


class ElementKind(Enum):
    HEADING = "heading"
    PARAGRAPH = "paragraph"
    CONTAINER = "container"
    LIST = "list"
    TABLE = "table"
    IMAGE = "image"
    INLINE_TEXT = "inline-text"
    LEGACY_FONT = "legacy-font"
    OTHER = "other"


_KIND_BY_TAG = {
    **{f"h{level}": ElementKind.HEADING for level in range(1, 7)},
    "p": ElementKind.PARAGRAPH,
    "div": ElementKind.CONTAINER,
    "section": ElementKind.CONTAINER,
    "article": ElementKind.CONTAINER,
    "ul": ElementKind.LIST,
    "ol": ElementKind.LIST,
    "li": ElementKind.LIST,
    "table": ElementKind.TABLE,
    "thead": ElementKind.TABLE,
    "tbody": ElementKind.TABLE,
    "tr": ElementKind.TABLE,
    "td": ElementKind.TABLE,
    "th": ElementKind.TABLE,
    "img": ElementKind.IMAGE,
    "span": ElementKind.INLINE_TEXT,
    "a": ElementKind.INLINE_TEXT,
    "b": ElementKind.INLINE_TEXT,
    "strong": ElementKind.INLINE_TEXT,
    "i": ElementKind.INLINE_TEXT,
    "em": ElementKind.INLINE_TEXT,
    "u": ElementKind.INLINE_TEXT,
    "s": ElementKind.INLINE_TEXT,
    "sub": ElementKind.INLINE_TEXT,
    "sup": ElementKind.INLINE_TEXT,
    "br": ElementKind.INLINE_TEXT,
    "font": ElementKind.LEGACY_FONT,
}


def classify(node: PageElement) -> ElementKind:
    if not isinstance(node, Tag):
        return ElementKind.OTHER
    return _KIND_BY_TAG.get((node.name or "").lower(), ElementKind.OTHER)


def is_image(node: PageElement) -> bool:
    return classify(node) is ElementKind.IMAGE


def contains_image(node: PageElement) -> bool:
    """True for an image or any element with an image somewhere below it."""
    if not isinstance(node, Tag):
        return False
    return is_image(node) or node.find("img") is not None


def is_presentation_table(node: PageElement) -> bool:
    return (
        isinstance(node, Tag)
        and node.name == "table"
        and (node.get("role") or "").strip().lower() == PRESENTATION_ROLE
    )


def is_inside_presentation_table(node: PageElement, root: Optional[PageElement] = None) -> bool:
    # User-authored content tables do not count, only the ones we build.
    # The walk stops at ``root`` so the output shell itself is ignored.
    # ユーザーが作成した表は対象外で、レイアウト用に生成した表のみを判定する。rootで探索を止めるので出力シェル自体は無視される。
    for parent in node.parents:
        if parent is root:
            return False
        if is_presentation_table(parent):
            return True
    return False


def has_visible_text(nodes: Iterable[PageElement]) -> bool:
    for node in nodes:
        if isinstance(node, Comment):
            continue
        if isinstance(node, NavigableString):
            if node.strip():
                return True
        elif isinstance(node, Tag):
            if node.name == "br" or node.get_text().strip():
                return True
    return False


def is_blank_text(node: PageElement) -> bool:
    return isinstance(node, NavigableString) and (
        isinstance(node, Comment) or not node.strip()
    )


class EmailDocument:
    """Working tree for one conversion.

    Owns the parsed soup plus one ``StyleMap`` per element that any stage has
    touched. Style maps are written back to the ``style`` attribute by
    ``commit()``; unmodified elements keep their original string.
    1回の変換で使う作業用ツリー。各段が触れた要素ごとにStyleMapを保持し、commit()で
    style属性へ書き戻す。変更されていない要素は元の文字列をそのまま残す。
    """

    def __init__(self, soup: BeautifulSoup, root: Union[BeautifulSoup, Tag]) -> None:
        self.soup = soup
        self.root = root
        # id(el) -> (el, style map or None when unparsable); keeping the
        # element reference alive prevents id reuse
        # id(el) -> (要素, StyleMap または解析不能時のNone)。要素参照を保持してidの再利用を防ぐ
        self._styles: dict[int, tuple[Tag, Optional[StyleMap]]] = {}

    @classmethod
    def parse(cls, html: str) -> "EmailDocument":
        soup = BeautifulSoup(html, "html.parser")
        return cls(soup, _locate_root(soup))

    def elements(self, name: Optional[str] = None) -> list[Tag]:
        if name is None:
            return list(self.root.find_all(True))
        return list(self.root.find_all(name))

    def new_tag(self, name: str, **attrs: str) -> Tag:
        return self.soup.new_tag(name, attrs=attrs)

    def style_of(self, el: Tag) -> Optional[StyleMap]:
        """Return the element's parsed style, or None when it cannot be parsed."""
        entry = self._styles.get(id(el))
        if entry is not None:
            return entry[1]
        raw = el.get("style")
        try:
            style: Optional[StyleMap] = StyleMap.parse(raw)
        except StyleParseError as e:
            logger.debug(f"Leaving <{el.name}> untouched, unparsable style {raw!r}: {e}")
            style = None
        self._styles[id(el)] = (el, style)
        return style

    def styled(self, name: Optional[str] = None) -> Iterator[tuple[Tag, StyleMap]]:
        """Yield (element, style) for elements that carry a parseable style.

        Includes elements whose style only exists in memory so far.
        まだメモリ上にしか存在しないスタイルを持つ要素も含める。
        """
        for el in self.elements(name):
            if not el.has_attr("style") and id(el) not in self._styles:
                continue
            style = self.style_of(el)
            if style is not None and len(style):
                yield el, style

    def commit(self) -> None:
        for el, style in self._styles.values():
            if style is None or not style.dirty:
                continue
            if len(style):
                el["style"] = style.serialize()
            elif el.has_attr("style"):
                del el["style"]
            style.dirty = False

    def html(self) -> str:
        self.commit()
        return self.root.decode_contents()


def _locate_root(soup: BeautifulSoup) -> Union[BeautifulSoup, Tag]:
    body = soup.find("body")
    if not isinstance(body, Tag):
        return soup
    # Re-running on our own output: unwrap the shell's content cell
    # 自身の出力を再変換する場合はシェルのコンテンツセルを取り出す
    significant = [child for child in body.children if not is_blank_text(child)]
    if len(significant) == 1 and _is_shell(significant[0]):
        cell = significant[0].find("td")
        if isinstance(cell, Tag):
            return cell
    return body


def _is_shell(node: PageElement) -> bool:
    return is_presentation_table(node) and SHELL_CLASS in (node.get("class") or [])
