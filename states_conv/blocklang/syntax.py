from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from typing import Any, Optional, Sequence

from lark import Token, Tree
from lark.exceptions import UnexpectedInput

from ..diagnostics import Diagnostic, SourceRange, did_you_mean
from .expressions import EvalContext, Expression
from .grammar import ExpressionBuilder, get_parser, parse_template, syntax_diagnostic, unquote


@dataclass(frozen=True)
class AttributeSchema:
    name: str
    required: bool = False


@dataclass(frozen=True)
class BlockHeaderSchema:
    type: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class BodySchema:
    """Which attributes and block types a body may contain."""

    attributes: tuple[AttributeSchema, ...] = ()
    blocks: tuple[BlockHeaderSchema, ...] = ()

    def relaxed(self) -> "BodySchema":
        """Same schema without required attributes (used per merged file)."""
        return BodySchema(
            attributes=tuple(replace(a, required=False) for a in self.attributes),
            blocks=self.blocks,
        )

    def attribute_names(self) -> list[str]:
        return [a.name for a in self.attributes]

    def block_types(self) -> list[str]:
        return [b.type for b in self.blocks]


@dataclass
class Attribute:
    name: str
    expr: Expression
    subject: Optional[SourceRange] = None
    path: str = ""

    def location(self) -> str:
        return str(self.subject) if self.subject is not None else self.path


@dataclass
class Block:
    type: str
    labels: list[str]
    body: "Body"
    # Covers the block type and its labels.
    subject: Optional[SourceRange] = None
    label_subjects: list[Optional[SourceRange]] = field(default_factory=list)
    path: str = ""

    def location(self) -> str:
        return str(self.subject) if self.subject is not None else self.path


@dataclass
class BodyContent:
    attributes: dict[str, Attribute] = field(default_factory=dict)
    blocks: list[Block] = field(default_factory=list)


def _error(
    code: str,
    summary: str,
    detail: str,
    subject: Optional[SourceRange] = None,
    path: str = "",
) -> Diagnostic:
    return Diagnostic(
        severity="error",
        code=code,
        summary=summary,
        detail=detail,
        subject=subject,
        path=path,
    )


def _duplicate_argument(attr: Attribute, first: Attribute) -> Diagnostic:
    return _error(
        "DuplicateArgument",
        "Duplicate argument",
        f'The argument "{attr.name}" was already set at {first.location()}. '
        "Each argument may be set only once.",
        attr.subject,
        attr.path,
    )


class Body:
    """One parsed scope: attributes and nested blocks.

    Content is only reachable through a schema (`content`) or as a flat
    attribute map (`just_attributes`), so callers never handle parse trees.
    """

    def content(self, schema: BodySchema) -> tuple[BodyContent, list[Diagnostic]]:
        attributes, blocks, diags = self._items(schema)
        out = BodyContent()
        names = schema.attribute_names()
        headers = {b.type: b for b in schema.blocks}

        for attr in attributes:
            if attr.name not in names:
                detail = f'An argument named "{attr.name}" is not expected here.'
                if attr.name in headers:
                    detail += f' Did you mean to define a block of type "{attr.name}"?'
                else:
                    detail += did_you_mean(attr.name, names)
                diags.append(
                    _error(
                        "UnsupportedArgument",
                        "Unsupported argument",
                        detail,
                        attr.subject,
                        attr.path,
                    )
                )
                continue
            first = out.attributes.get(attr.name)
            if first is not None:
                diags.append(_duplicate_argument(attr, first))
                continue
            out.attributes[attr.name] = attr

        for spec in schema.attributes:
            if spec.required and spec.name not in out.attributes:
                subject, path = self._missing_location()
                diags.append(
                    _error(
                        "MissingArgument",
                        "Missing required argument",
                        f'The argument "{spec.name}" is required, but no definition was found.',
                        subject,
                        path,
                    )
                )

        for block in blocks:
            header = headers.get(block.type)
            if header is None:
                detail = f'Blocks of type "{block.type}" are not expected here.'
                if block.type in names:
                    detail += (
                        f' Did you mean to define argument "{block.type}"? '
                        "If so, use the equals sign to assign it a value."
                    )
                else:
                    detail += did_you_mean(block.type, headers)
                diags.append(
                    _error(
                        "UnsupportedBlockType",
                        "Unsupported block type",
                        detail,
                        block.subject,
                        block.path,
                    )
                )
                continue
            if _check_labels(block, header, diags):
                out.blocks.append(block)

        return out, diags

    def just_attributes(self) -> tuple[dict[str, Attribute], list[Diagnostic]]:
        attributes, blocks, diags = self._items(None)
        out: dict[str, Attribute] = {}
        for block in blocks:
            diags.append(
                _error(
                    "UnexpectedBlock",
                    "Unexpected block",
                    f'Blocks of type "{block.type}" are not allowed here; '
                    "only attributes are expected.",
                    block.subject,
                    block.path,
                )
            )
        for attr in attributes:
            if attr.name in out:
                diags.append(_duplicate_argument(attr, out[attr.name]))
                continue
            out[attr.name] = attr
        return out, diags

    def _items(
        self, schema: Optional[BodySchema]
    ) -> tuple[list[Attribute], list[Block], list[Diagnostic]]:
        raise NotImplementedError

    def _missing_location(self) -> tuple[Optional[SourceRange], str]:
        return None, ""


def _check_labels(block: Block, header: BlockHeaderSchema, diags: list[Diagnostic]) -> bool:
    expected = len(header.label_names)
    got = len(block.labels)
    if got == expected:
        return True
    names = ", ".join(header.label_names)
    detail = (
        f'All "{block.type}" blocks must have {expected} labels ({names}).'
        if expected
        else f'"{block.type}" blocks take no labels.'
    )
    if got < expected:
        summary = f"Missing {header.label_names[got]} label"
        subject = block.subject
    else:
        summary = "Extraneous label"
        extra = block.label_subjects[expected:]
        subject = extra[0] if extra and extra[0] is not None else block.subject
    diags.append(_error("InvalidLabels", summary, detail, subject, block.path))
    return False


@dataclass
class NativeBody(Body):
    attributes: list[Attribute] = field(default_factory=list)
    blocks: list[Block] = field(default_factory=list)
    # Closing brace of the block, or the end of the file for the top level.
    end: Optional[SourceRange] = None

    def _items(self, schema):
        return list(self.attributes), list(self.blocks), []

    def _missing_location(self):
        return self.end, ""


def _end_of_text(text: str, filename: str) -> SourceRange:
    lines = text.split("\n")
    line = len(lines)
    column = len(lines[-1]) + 1
    return SourceRange(filename, line, column, line, column)


class _NativeBuilder:
    def __init__(self, filename: str):
        self.filename = filename
        self.expressions = ExpressionBuilder(filename)

    def body(self, node: Tree, end: Optional[SourceRange]) -> NativeBody:
        out = NativeBody(end=end)
        for child in node.children:
            if child.data == "attribute":
                name, expr = child.children
                out.attributes.append(
                    Attribute(
                        name=str(name),
                        expr=self.expressions.build(expr),
                        subject=self.expressions.range_of(child),
                    )
                )
            else:
                out.blocks.append(self.block(child))
        return out

    def block(self, node: Tree) -> Block:
        type_token: Token = node.children[0]
        label_nodes = [c for c in node.children[1:-1]]
        body_node: Tree = node.children[-1]

        labels: list[str] = []
        label_subjects: list[Optional[SourceRange]] = []
        last: Token = type_token
        for label in label_nodes:
            token: Token = label.children[0]
            labels.append(unquote(str(token)) if token.type == "STRING_LIT" else str(token))
            label_subjects.append(self.expressions.range_of(token))
            last = token

        header = SourceRange(
            self.filename,
            type_token.line,
            type_token.column,
            last.end_line,
            last.end_column,
        )
        closing = None
        if not getattr(node.meta, "empty", True):
            closing = SourceRange(
                self.filename,
                node.meta.end_line,
                max(1, node.meta.end_column - 1),
                node.meta.end_line,
                node.meta.end_column,
            )
        return Block(
            type=str(type_token),
            labels=labels,
            body=self.body(body_node, closing),
            subject=header,
            label_subjects=label_subjects,
        )


def parse_native(text: str, filename: str) -> tuple[Optional[Body], list[Diagnostic]]:
    """Parse native block syntax. Returns (None, diagnostics) on a syntax error."""
    try:
        tree = get_parser().parse(text, start="body")
    except UnexpectedInput as e:
        return None, [syntax_diagnostic(e, filename)]
    builder = _NativeBuilder(filename)
    body = builder.body(tree, _end_of_text(text, filename))
    return body, builder.expressions.diagnostics


class JSONObject(list):
    """Key/value pairs of a JSON object, in document order, duplicates kept."""


def _pointer(path: str, key: Any) -> str:
    token = str(key).replace("~", "~0").replace("/", "~1")
    return f"{path}/{token}"


@dataclass(frozen=True)
class JSONValue(Expression):
    """An expression in JSON syntax: strings are templates, the rest literal."""

    value: Any
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        value = self.value
        if isinstance(value, str):
            template, template_diags = parse_template(value, path=self.path, escapes=False)
            diags.extend(template_diags)
            return template._eval(ctx, diags)
        if isinstance(value, JSONObject):
            return {
                k: JSONValue(v, path=_pointer(self.path, k))._eval(ctx, diags)
                for k, v in value
                if k != "//"
            }
        if isinstance(value, list):
            return [item._eval(ctx, diags) for item in self.elements()]
        return value

    def elements(self) -> Optional[Sequence[Expression]]:
        if isinstance(self.value, list) and not isinstance(self.value, JSONObject):
            return tuple(
                JSONValue(item, path=_pointer(self.path, i))
                for i, item in enumerate(self.value)
            )
        return None


@dataclass
class JSONBody(Body):
    """A body in JSON syntax (`*.hcl.json`).

    Which keys are blocks is only known from the schema: a block key maps to
    one nested object per label, then to an object (one block) or an array
    of objects (several blocks). `//` keys are comments.
    """

    pairs: JSONObject
    path: str = ""

    def _items(self, schema):
        headers = {b.type: b for b in schema.blocks} if schema is not None else {}
        attributes: list[Attribute] = []
        blocks: list[Block] = []
        diags: list[Diagnostic] = []
        for key, value in self.pairs:
            if key == "//":
                continue
            path = _pointer(self.path, key)
            header = headers.get(key)
            if header is None:
                attributes.append(Attribute(key, JSONValue(value, path=path), path=path))
            else:
                self._blocks(key, value, header.label_names, [], path, blocks, diags)
        return attributes, blocks, diags

    def _blocks(
        self,
        block_type: str,
        value: Any,
        label_names: tuple[str, ...],
        labels: list[str],
        path: str,
        out: list[Block],
        diags: list[Diagnostic],
    ) -> None:
        if len(labels) < len(label_names):
            if not isinstance(value, JSONObject):
                diags.append(
                    _error(
                        "InvalidLabels",
                        "Incorrect JSON value type",
                        f"A JSON object is required, whose keys represent the "
                        f'{label_names[len(labels)]} labels of "{block_type}" blocks.',
                        path=path,
                    )
                )
                return
            for label, inner in value:
                if label == "//":
                    continue
                self._blocks(
                    block_type,
                    inner,
                    label_names,
                    labels + [label],
                    _pointer(path, label),
                    out,
                    diags,
                )
            return

        if isinstance(value, JSONObject):
            out.append(Block(block_type, list(labels), JSONBody(value, path), path=path))
        elif isinstance(value, list) and all(isinstance(v, JSONObject) for v in value):
            for i, item in enumerate(value):
                item_path = _pointer(path, i)
                out.append(
                    Block(block_type, list(labels), JSONBody(item, item_path), path=item_path)
                )
        else:
            diags.append(
                _error(
                    "IncorrectValueType",
                    "Incorrect JSON value type",
                    "Either a JSON object or a JSON array of objects is required, "
                    f'representing the contents of one or more "{block_type}" blocks.',
                    path=path,
                )
            )

    def _missing_location(self):
        return None, self.path or "/"


def parse_json(text: str, filename: str) -> tuple[Optional[Body], list[Diagnostic]]:
    """Parse JSON block syntax. Returns (None, diagnostics) on malformed JSON."""
    try:
        data = json.loads(text, object_pairs_hook=JSONObject)
    except json.JSONDecodeError as e:
        return None, [
            _error(
                "InvalidJSON",
                "Invalid JSON",
                f"{e.msg}.",
                SourceRange(filename, e.lineno, e.colno, e.lineno, e.colno + 1),
            )
        ]
    if not isinstance(data, JSONObject):
        return None, [
            _error(
                "InvalidJSON",
                "Invalid JSON",
                "The root value of a JSON syntax file must be an object.",
                SourceRange(filename, 1, 1, 1, 2),
            )
        ]
    return JSONBody(data), []


@dataclass
class MergedBody(Body):
    """Several files read as one body (directory input)."""

    bodies: list[Body] = field(default_factory=list)

    def content(self, schema: BodySchema) -> tuple[BodyContent, list[Diagnostic]]:
        out = BodyContent()
        diags: list[Diagnostic] = []
        relaxed = schema.relaxed()
        for body in self.bodies:
            part, part_diags = body.content(relaxed)
            diags.extend(part_diags)
            for name, attr in part.attributes.items():
                if name in out.attributes:
                    diags.append(_duplicate_argument(attr, out.attributes[name]))
                    continue
                out.attributes[name] = attr
            out.blocks.extend(part.blocks)
        for spec in schema.attributes:
            if spec.required and spec.name not in out.attributes:
                diags.append(
                    _error(
                        "MissingArgument",
                        "Missing required argument",
                        f'The argument "{spec.name}" is required, but no definition was found.',
                    )
                )
        return out, diags

    def just_attributes(self) -> tuple[dict[str, Attribute], list[Diagnostic]]:
        out: dict[str, Attribute] = {}
        diags: list[Diagnostic] = []
        for body in self.bodies:
            attrs, part_diags = body.just_attributes()
            diags.extend(part_diags)
            for name, attr in attrs.items():
                if name in out:
                    diags.append(_duplicate_argument(attr, out[name]))
                    continue
                out[name] = attr
        return out, diags


def merge_bodies(bodies: Sequence[Body]) -> Body:
    if len(bodies) == 1:
        return bodies[0]
    return MergedBody(list(bodies))
