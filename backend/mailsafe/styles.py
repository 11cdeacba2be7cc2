from __future__ import annotations

import math
import re
from typing import Iterable, Iterator, Optional, Tuple


class StyleParseError(ValueError):
    """Raised when an inline style attribute cannot be split into declarations."""


_RE_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_RE_PROPERTY = re.compile(r"^-?[a-z_][a-z0-9_-]*$")
_RE_IMPORTANT = re.compile(r"\s*!\s*important\s*$", re.IGNORECASE)
_RE_LENGTH = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d+)?|\.\d+))\s*([a-z%]*)\s*$", re.IGNORECASE)
_RE_LEADING_INT = re.compile(r"^\s*(\d+)")


class StyleMap:
    """Ordered mapping of CSS property -> value for one inline style attribute.

    Parsed once per element and serialized once at the end of the pipeline,
    so every stage works on declarations instead of re-scanning raw strings.
    要素ごとに一度だけ解析し、パイプラインの最後に一度だけ文字列へ戻す。各段は生の文字列ではなく宣言単位で操作する。

    A later duplicate property overrides the value but keeps the position of
    the first occurrence.
    重複したプロパティは後勝ちで値を上書きし、位置は最初の出現位置を保つ。
    """

    def __init__(self, declarations: Iterable[Tuple[str, str]] = ()) -> None:
        self._props: dict[str, str] = {}
        self.dirty = False
        for name, value in declarations:
            self._props[name.strip().lower()] = value.strip()

    @classmethod
    def parse(cls, text: Optional[str]) -> "StyleMap":
        declarations: list[Tuple[str, str]] = []
        for chunk in _split_declarations(_RE_COMMENT.sub("", text or "")):
            chunk = chunk.strip()
            if not chunk:
                continue
            name, sep, value = chunk.partition(":")
            name = name.strip().lower()
            value = value.strip()
            if not sep or not _RE_PROPERTY.match(name):
                raise StyleParseError(f"invalid declaration: {chunk!r}")
            if not value:
                raise StyleParseError(f"empty value for {name!r}")
            declarations.append((name, value))
        return cls(declarations)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name.lower() in self._props

    def __iter__(self) -> Iterator[str]:
        return iter(self._props)

    def __len__(self) -> int:
        return len(self._props)

    def __repr__(self) -> str:
        return f"StyleMap({self.serialize()!r})"

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._props.get(name.lower(), default)

    def items(self) -> list[Tuple[str, str]]:
        return list(self._props.items())

    def set(self, name: str, value: str) -> None:
        key = name.lower()
        if self._props.get(key) != value:
            self._props[key] = value
            self.dirty = True

    def setdefault(self, name: str, value: str) -> str:
        key = name.lower()
        if key not in self._props:
            self.set(key, value)
        return self._props[key]

    def remove(self, name: str) -> Optional[str]:
        value = self._props.pop(name.lower(), None)
        if value is not None:
            self.dirty = True
        return value

    def has_prefix(self, prefix: str) -> bool:
        prefix = prefix.lower()
        return any(name == prefix or name.startswith(prefix + "-") for name in self._props)

    def update(self, other: "StyleMap") -> None:
        for name, value in other.items():
            self.set(name, value)

    def replace_all(self, declarations: Iterable[Tuple[str, str]]) -> None:
        """Swap the whole declaration list, marking the map dirty on change."""
        rebuilt = StyleMap(declarations)
        if rebuilt.items() != self.items():
            self._props = dict(rebuilt.items())
            self.dirty = True

    def serialize(self) -> str:
        if not self._props:
            return ""
        return " ".join(f"{name}:{value};" for name, value in self._props.items())


def _split_declarations(text: str) -> list[str]:
    chunks: list[str] = []
    buf: list[str] = []
    depth = 0
    quote: Optional[str] = None
    for ch in text:
        if quote:
            buf.append(ch)
            if ch == quote:
                quote = None
            continue
        if ch in ("'", '"'):
            quote = ch
        elif ch == "(":
            depth += 1
        elif ch == ")":
            if depth == 0:
                raise StyleParseError("unbalanced ')'")
            depth -= 1
        elif ch == ";" and depth == 0:
            chunks.append("".join(buf))
            buf = []
            continue
        buf.append(ch)
    if quote or depth:
        raise StyleParseError("unterminated quote or parenthesis")
    chunks.append("".join(buf))
    return chunks


def split_important(value: str) -> Tuple[str, bool]:
    match = _RE_IMPORTANT.search(value)
    if match:
        return value[: match.start()].strip(), True
    return value.strip(), False


def with_important(value: str, important: bool) -> str:
    return f"{value} !important" if important else value


def parse_length(value: Optional[str]) -> Optional[Tuple[float, str]]:
    """Split a CSS length such as ``9pt`` or ``1.5`` into (number, unit)."""
    if value is None:
        return None
    match = _RE_LENGTH.match(value)
    if not match:
        return None
    return float(match.group(1)), match.group(2).lower()


def expand_box_shorthand(value: str) -> tuple[str, str, str, str]:
    parts = [p for p in value.split() if p]
    if not parts:
        return ("0", "0", "0", "0")
    if len(parts) == 1:
        return (parts[0], parts[0], parts[0], parts[0])
    if len(parts) == 2:
        return (parts[0], parts[1], parts[0], parts[1])
    if len(parts) == 3:
        return (parts[0], parts[1], parts[2], parts[1])
    return (parts[0], parts[1], parts[2], parts[3])


def leading_int(value: Optional[str]) -> Optional[int]:
    """Parse the leading digits of values such as ``150`` or ``150px``."""
    if value is None:
        return None
    match = _RE_LEADING_INT.match(value)
    if not match:
        return None
    return int(match.group(1))


def px_value(value: Optional[str]) -> Optional[float]:
    length = parse_length(split_important(value)[0] if value else None)
    if length is None or length[1] != "px":
        return None
    return length[0]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
