from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Sequence, Union

from .expressions import KEYWORD_VALUES, format_number

_IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")
_INDENT = "  "


def is_identifier(name: str) -> bool:
    return bool(_IDENTIFIER_RE.match(name)) and name not in KEYWORD_VALUES


def hcl_string(value: str) -> str:
    """Quote a string so it reads back as the same literal text."""
    out: list[str] = []
    for ch in value:
        if ch == "\\":
            out.append("\\\\")
        elif ch == '"':
            out.append('\\"')
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    text = "".join(out).replace("${", "$${").replace("%{", "%%{")
    return f'"{text}"'


def traversal(root: str, *steps: str) -> str:
    """Render `root.a.b`, using `["..."]` for steps that are not identifiers."""
    parts = [root]
    for step in steps:
        parts.append(f".{step}" if is_identifier(step) else f"[{hcl_string(step)}]")
    return "".join(parts)


@dataclass(frozen=True)
class Raw:
    """Expression text written as is (traversals)."""

    text: str


def format_value(value: Any, indent: int = 0) -> str:
    if isinstance(value, Raw):
        return value.text
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    if isinstance(value, str):
        return hcl_string(value)
    if isinstance(value, (list, tuple)):
        if not value:
            return "[]"
        pad = _INDENT * (indent + 1)
        items = "".join(f"{pad}{format_value(v, indent + 1)},\n" for v in value)
        return f"[\n{items}{_INDENT * indent}]"
    raise TypeError(f"cannot write {type(value).__name__} value")


@dataclass
class _AttributeItem:
    name: str
    value: Any


@dataclass
class BodyWriter:
    """Builds block-language text: attributes and nested blocks, in order.

    Consecutive attributes have their `=` aligned; a blank line separates a
    block from whatever precedes it.
    """

    items: list[Union[_AttributeItem, "BlockWriter"]] = field(default_factory=list)

    def set_attribute(self, name: str, value: Any) -> None:
        for item in self.items:
            if isinstance(item, _AttributeItem) and item.name == name:
                item.value = value
                return
        self.items.append(_AttributeItem(name, value))

    def set_traversal(self, name: str, root: str, *steps: str) -> None:
        self.set_attribute(name, Raw(traversal(root, *steps)))

    def append_block(self, block_type: str, labels: Sequence[str] = ()) -> "BodyWriter":
        block = BlockWriter(block_type, tuple(labels))
        self.items.append(block)
        return block.body

    def render(self, indent: int = 0) -> str:
        pad = _INDENT * indent
        lines: list[str] = []
        run: list[_AttributeItem] = []

        def flush() -> None:
            width = max((len(a.name) for a in run), default=0)
            for a in run:
                lines.append(f"{pad}{a.name.ljust(width)} = {format_value(a.value, indent)}\n")
            run.clear()

        for item in self.items:
            if isinstance(item, _AttributeItem):
                run.append(item)
                continue
            flush()
            if lines:
                lines.append("\n")
            lines.append(item.render(indent))
        flush()
        return "".join(lines)


@dataclass
class BlockWriter:
    type: str
    labels: tuple[str, ...] = ()
    body: BodyWriter = field(default_factory=BodyWriter)

    def render(self, indent: int = 0) -> str:
        pad = _INDENT * indent
        header = " ".join([self.type] + [hcl_string(label) for label in self.labels])
        return f"{pad}{header} {{\n{self.body.render(indent + 1)}{pad}}}\n"
