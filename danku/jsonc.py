"""
jsonc.py

Responsibility: Read JSON-with-comments files and apply targeted edits to them.

`loads` accepts `//` and `/* */` comments and trailing commas (the dialect of
`wrangler.jsonc`, `tsconfig.json` and the danku configuration file).

`modify` sets a single value addressed by a path of object keys and array
indexes. Only the addressed span of text changes: comments, indentation and
line endings elsewhere in the document are left exactly as they were. Missing
intermediate objects/arrays are created. Setting a value that is already
present returns the text unchanged, so re-applying an edit is a no-op.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from json.decoder import scanstring
from pathlib import Path
from typing import Any, Iterable, Sequence, Union

PathSegment = Union[str, int]

_NUMBER_RE = re.compile(r"-?(?:0|[1-9]\d*)(?:\.\d+)?(?:[eE][+-]?\d+)?")
_LITERALS = {"true": True, "false": False, "null": None}


class JsoncError(ValueError):
    pass


@dataclass(frozen=True)
class JsonEdit:
    """A single `(path, value)` edit, e.g. `JsonEdit(("routes", 0, "pattern"), "example.com")`."""

    path: tuple[PathSegment, ...]
    value: Any


@dataclass
class _Node:
    kind: str  # object | array | property | string | number | literal
    offset: int
    length: int = 0
    value: Any = None
    children: list[_Node] = field(default_factory=list)

    @property
    def end(self) -> int:
        return self.offset + self.length


class _Parser:
    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0

    def _skip_trivia(self) -> None:
        text = self.text
        while self.pos < len(text):
            ch = text[self.pos]
            if ch in " \t\r\n\ufeff":
                self.pos += 1
            elif text.startswith("//", self.pos):
                end = text.find("\n", self.pos)
                self.pos = len(text) if end == -1 else end
            elif text.startswith("/*", self.pos):
                end = text.find("*/", self.pos + 2)
                if end == -1:
                    raise JsoncError(f"Unterminated block comment at offset {self.pos}")
                self.pos = end + 2
            else:
                return

    def _peek(self) -> str:
        self._skip_trivia()
        return self.text[self.pos] if self.pos < len(self.text) else ""

    def _fail(self, expected: str) -> JsoncError:
        found = self.text[self.pos] if self.pos < len(self.text) else "end of input"
        return JsoncError(f"Expected {expected} at offset {self.pos}, found {found!r}")

    def parse_document(self) -> _Node:
        root = self.parse_value()
        if self._peek():
            raise self._fail("end of input")
        return root

    def parse_value(self) -> _Node:
        ch = self._peek()
        if ch == "{":
            return self._parse_object()
        if ch == "[":
            return self._parse_array()
        if ch == '"':
            return self._parse_string()
        match = _NUMBER_RE.match(self.text, self.pos)
        if match:
            node = _Node("number", self.pos, len(match.group()), json.loads(match.group()))
            self.pos = match.end()
            return node
        for literal, value in _LITERALS.items():
            if self.text.startswith(literal, self.pos):
                node = _Node("literal", self.pos, len(literal), value)
                self.pos += len(literal)
                return node
        raise self._fail("a value")

    def _parse_string(self) -> _Node:
        start = self.pos
        try:
            value, end = scanstring(self.text, start + 1)
        except json.JSONDecodeError as e:
            raise JsoncError(f"Invalid string at offset {start}: {e.msg}") from e
        self.pos = end
        return _Node("string", start, end - start, value)

    def _parse_object(self) -> _Node:
        node = _Node("object", self.pos)
        self.pos += 1
        while True:
            ch = self._peek()
            if ch == "}":
                break
            if ch != '"':
                raise self._fail("a property name or '}'")
            key = self._parse_string()
            if self._peek() != ":":
                raise self._fail("':'")
            self.pos += 1
            value = self.parse_value()
            prop = _Node("property", key.offset, value.end - key.offset, key.value, [key, value])
            node.children.append(prop)
            ch = self._peek()
            if ch == ",":
                self.pos += 1
            elif ch != "}":
                raise self._fail("',' or '}'")
        self.pos += 1
        node.length = self.pos - node.offset
        return node

    def _parse_array(self) -> _Node:
        node = _Node("array", self.pos)
        self.pos += 1
        while True:
            if self._peek() == "]":
                break
            node.children.append(self.parse_value())
            ch = self._peek()
            if ch == ",":
                self.pos += 1
            elif ch != "]":
                raise self._fail("',' or ']'")
        self.pos += 1
        node.length = self.pos - node.offset
        return node


def _to_python(node: _Node) -> Any:
    if node.kind == "object":
        return {prop.value: _to_python(prop.children[1]) for prop in node.children}
    if node.kind == "array":
        return [_to_python(child) for child in node.children]
    return node.value


def loads(text: str) -> Any:
    """
    Parse JSON-with-comments text into Python values.
    """
    if not text.strip():
        raise JsoncError("Document is empty")
    return _to_python(_Parser(text).parse_document())


def load_file(path: str | Path) -> Any:
    return loads(Path(path).read_text(encoding="utf-8"))


def _line_indent(text: str, offset: int) -> str:
    start = text.rfind("\n", 0, offset) + 1
    end = start
    while end < len(text) and text[end] in " \t":
        end += 1
    return text[start:end]


def _starts_line(text: str, offset: int) -> bool:
    start = text.rfind("\n", 0, offset) + 1
    return not text[start:offset].strip()


def _same_value(a: Any, b: Any) -> bool:
    # Compare through JSON so that True and 1 are not considered equal.
    return json.dumps(a, sort_keys=True) == json.dumps(b, sort_keys=True)


def _nest(rest: Sequence[PathSegment], value: Any) -> Any:
    for segment in reversed(rest):
        value = {segment: value} if isinstance(segment, str) else [value]
    return value


class _Formatter:
    def __init__(self, text: str, tab_size: int, insert_spaces: bool, eol: str | None) -> None:
        self.unit = " " * tab_size if insert_spaces else "\t"
        self.eol = eol or ("\r\n" if "\r\n" in text else "\n")

    def value(self, value: Any, indent: str) -> str:
        dumped = json.dumps(value, indent=self.unit, ensure_ascii=False)
        return dumped.replace("\n", self.eol + indent)


def _insert_member(text: str, container: _Node, member: str, fmt: _Formatter) -> str:
    """
    Insert an already formatted member (`"key": value` or an array element) as
    the last entry of `container`.
    """
    outer_indent = _line_indent(text, container.offset)
    if container.children:
        last = container.children[-1]
        if _starts_line(text, last.offset):
            indent = _line_indent(text, last.offset)
            addition = "," + fmt.eol + indent + member
        else:
            addition = ", " + member
        return text[: last.end] + addition + text[last.end :]

    indent = outer_indent + fmt.unit
    inner_start = container.offset + 1
    inner_end = container.end - 1
    if not text[inner_start:inner_end].strip():
        return text[:inner_start] + fmt.eol + indent + member + fmt.eol + outer_indent + text[inner_end:]
    # Keep comments that live inside an otherwise empty container.
    return text[:inner_start] + fmt.eol + indent + member + text[inner_start:]


def _member_indent(text: str, container: _Node, fmt: _Formatter) -> str:
    if container.children and _starts_line(text, container.children[-1].offset):
        return _line_indent(text, container.children[-1].offset)
    return _line_indent(text, container.offset) + fmt.unit


def modify(
    text: str,
    path: Sequence[PathSegment],
    value: Any,
    *,
    tab_size: int = 2,
    insert_spaces: bool = True,
    eol: str | None = None,
) -> str:
    """
    Return `text` with the value at `path` set to `value`.

    - String segments address object properties, integer segments address array
      elements. An index at or past the end of an array appends.
    - Inserted text is indented with `tab_size` spaces (or a tab) per level and
      uses the document's existing line ending unless `eol` is given.
    """
    fmt = _Formatter(text, tab_size, insert_spaces, eol)
    if not text.strip():
        return fmt.value(_nest(path, value), "") + fmt.eol

    node = _Parser(text).parse_document()
    for i, segment in enumerate(path):
        rest = path[i + 1 :]
        if isinstance(segment, str):
            if node.kind != "object":
                raise JsoncError(f"Cannot set property {segment!r}: {list(path[:i])} is not an object")
            prop = next((p for p in node.children if p.value == segment), None)
            if prop is None:
                indent = _member_indent(text, node, fmt)
                member = json.dumps(segment, ensure_ascii=False) + ": " + fmt.value(_nest(rest, value), indent)
                return _insert_member(text, node, member, fmt)
            node = prop.children[1]
        else:
            if node.kind != "array":
                raise JsoncError(f"Cannot set index {segment}: {list(path[:i])} is not an array")
            if segment < 0 or segment >= len(node.children):
                indent = _member_indent(text, node, fmt)
                return _insert_member(text, node, fmt.value(_nest(rest, value), indent), fmt)
            node = node.children[segment]

    if _same_value(_to_python(node), value):
        return text
    replacement = fmt.value(value, _line_indent(text, node.offset))
    return text[: node.offset] + replacement + text[node.end :]


def modify_file(
    file_path: str | Path,
    edits: Iterable[JsonEdit],
    *,
    tab_size: int = 2,
) -> None:
    """
    Apply `edits` in order to a JSON/JSONC file in place, preserving its line endings.
    """
    path = Path(file_path)
    if not path.exists():
        raise JsoncError(f"File does not exist: {path}")
    with path.open("r", encoding="utf-8", newline="") as fh:
        content = fh.read()
    for edit in edits:
        content = modify(content, edit.path, edit.value, tab_size=tab_size)
    with path.open("w", encoding="utf-8", newline="") as fh:
        fh.write(content)
