# states_conv/decode.py
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from .blocklang.expressions import (
    BUILTIN_FUNCTIONS,
    UNKNOWN,
    EvalContext,
    as_string,
    is_wholly_known,
    plain,
    type_label,
)
from .blocklang.syntax import (
    Attribute,
    AttributeSchema,
    Block,
    BlockHeaderSchema,
    Body,
    BodySchema,
    merge_bodies,
    parse_json,
    parse_native,
)
from .constants import (
    BRANCH_BLOCK,
    DEFAULT_HCL_FILENAME,
    DOCUMENT_FIELDS,
    ITERATOR_BLOCK,
    LOCAL_NAMESPACE,
    LOCALS_BLOCK,
    MAX_EVAL_ROUNDS_DEFAULT,
    STATE_BLOCK,
    STATE_FIELDS,
    STATE_NAMESPACE,
    STATE_TYPE_KEYWORDS,
)
from .diagnostics import Diagnostic, DiagnosticSink, has_errors, suggest
from .errors import DecodeError
from .fragment import Fragment
from .model import Document, State, StateKind

DOCUMENT_SCHEMA = BodySchema(
    attributes=(
        AttributeSchema("version"),
        AttributeSchema("comment"),
        AttributeSchema("start_at", required=True),
        AttributeSchema("timeout_seconds"),
    ),
    blocks=(
        BlockHeaderSchema(STATE_BLOCK, ("type", "name")),
        BlockHeaderSchema(LOCALS_BLOCK),
    ),
)

STATE_SCHEMA = BodySchema(
    attributes=tuple(AttributeSchema(attr) for _, attr, _, _ in STATE_FIELDS),
    blocks=(
        BlockHeaderSchema(BRANCH_BLOCK),
        BlockHeaderSchema(ITERATOR_BLOCK),
    ),
)


@dataclass(frozen=True)
class DecodeConfig:
    """Knobs for block-form decoding.

    `functions` are added to the built-in `jsonencode`/`jsondecode`. Codes in
    `ignore` are dropped; warnings in `escalate` (all of them with `strict`)
    become errors.
    """

    max_rounds: int = MAX_EVAL_ROUNDS_DEFAULT
    functions: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    ignore: frozenset[str] = frozenset()
    escalate: frozenset[str] = frozenset()
    strict: bool = False


@dataclass(frozen=True)
class DecodeResult:
    document: Document
    diagnostics: tuple[Diagnostic, ...] = ()

    @property
    def warnings(self) -> list[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == "warning"]


def base_context(config: Optional[DecodeConfig] = None) -> EvalContext:
    config = config or DecodeConfig()
    functions = dict(BUILTIN_FUNCTIONS)
    functions.update(config.functions)
    return EvalContext(functions=MappingProxyType(functions))


class _Decoder:
    def __init__(self, config: DecodeConfig, sink: DiagnosticSink):
        self.config = config
        self.sink = sink

    def scope(self, body: Body, parent: EvalContext) -> Document:
        content, diags = body.content(DOCUMENT_SCHEMA)
        self.sink.extend(diags)

        locals_attrs: dict[str, Attribute] = {}
        state_blocks: list[Block] = []
        for block in content.blocks:
            if block.type == LOCALS_BLOCK:
                attrs, attr_diags = block.body.just_attributes()
                self.sink.extend(attr_diags)
                for name, attr in attrs.items():
                    first = locals_attrs.get(name)
                    if first is not None:
                        self.sink.emit(
                            "error",
                            "DuplicateArgument",
                            "Duplicate local value definition",
                            f'A local value named "{name}" was already defined at '
                            f"{first.location()}. Local value names must be unique.",
                            subject=attr.subject,
                            path=attr.path,
                        )
                        continue
                    locals_attrs[name] = attr
            else:
                state_blocks.append(block)

        ctx = self.namespaces(parent, state_blocks, locals_attrs)

        doc = Document(start_at="")
        for model_field, attr_name, _, value_type in DOCUMENT_FIELDS:
            attr = content.attributes.get(attr_name)
            if attr is not None:
                setattr(doc, model_field, self.attribute(attr, value_type, ctx))
        start_attr = content.attributes.get("start_at")
        if start_attr is not None:
            doc.start_at = self.attribute(start_attr, "string", ctx) or ""

        seen: dict[str, Block] = {}
        for block in state_blocks:
            keyword, name = block.labels
            if keyword not in STATE_TYPE_KEYWORDS:
                self.invalid_type(block, keyword)
                continue
            first = seen.get(name)
            if first is not None:
                self.sink.emit(
                    "error",
                    "DuplicateStateName",
                    'Duplicate "state" name',
                    f'A state named "{name}" was already declared at {first.location()}. '
                    "State names must be unique.",
                    subject=block.subject,
                    path=block.path,
                )
                continue
            seen[name] = block
            doc.states.append(self.state(block, StateKind.from_keyword(keyword), name, ctx))
        return doc

    def namespaces(
        self,
        parent: EvalContext,
        state_blocks: list[Block],
        locals_attrs: Mapping[str, Attribute],
    ) -> EvalContext:
        """Resolve `state.*` and `local.*` for one scope.

        Locals may refer to each other in any order, so they are re-evaluated
        with the previous round's values until every value is known, or
        `max_rounds` is reached.
        """
        states: dict[str, dict[str, str]] = {}
        for block in state_blocks:
            keyword, name = block.labels
            states.setdefault(keyword, {})[name] = name

        found, inherited = parent.lookup_variable(LOCAL_NAMESPACE)
        inherited_locals = dict(inherited) if found and isinstance(inherited, Mapping) else {}

        def build(values: Mapping[str, Any]) -> EvalContext:
            local = dict(inherited_locals)
            local.update(values)
            return parent.child({STATE_NAMESPACE: states, LOCAL_NAMESPACE: local})

        values: dict[str, Any] = {name: UNKNOWN for name in locals_attrs}
        rounds = 0
        while not is_wholly_known(values):
            if rounds >= self.config.max_rounds:
                self.sink.emit(
                    "warning",
                    "EvaluationFixedPointExceeded",
                    "Evaluation did not converge",
                    f"Local values were still unresolved after {self.config.max_rounds} "
                    "evaluation rounds; some values may be unknown.",
                )
                break
            ctx = build(values)
            values = {name: attr.expr.evaluate(ctx)[0] for name, attr in locals_attrs.items()}
            rounds += 1

        ctx = build(values)
        # Report problems in the locals themselves once, against the final context.
        for attr in locals_attrs.values():
            _, diags = attr.expr.evaluate(ctx)
            self.sink.extend(diags)
        return ctx

    def invalid_type(self, block: Block, keyword: str) -> None:
        keywords = list(STATE_TYPE_KEYWORDS)
        suggestion = suggest(keyword, keywords)
        if suggestion is not None:
            detail = f'The state type "{keyword}" is invalid. Did you mean "{suggestion}"?'
        else:
            detail = (
                f'The state type "{keyword}" is invalid. '
                f"{', '.join(keywords[:-1])} and {keywords[-1]} can be used for the state type."
            )
        subject = block.label_subjects[0] if block.label_subjects else block.subject
        self.sink.emit(
            "error",
            "InvalidStateType",
            "Invalid state type",
            detail,
            subject=subject,
            path=block.path,
        )

    def state(self, block: Block, kind: StateKind, name: str, ctx: EvalContext) -> State:
        content, diags = block.body.content(STATE_SCHEMA)
        self.sink.extend(diags)

        state = State(name=name, kind=kind)
        for model_field, attr_name, _, value_type in STATE_FIELDS:
            attr = content.attributes.get(attr_name)
            if attr is not None:
                setattr(state, model_field, self.attribute(attr, value_type, ctx))

        branches: list[Document] = []
        iterator_block: Optional[Block] = None
        for inner in content.blocks:
            if inner.type == BRANCH_BLOCK:
                branches.append(self.scope(inner.body, ctx))
            elif iterator_block is not None:
                self.sink.emit(
                    "error",
                    "DuplicateIteratorBlock",
                    'Duplicate "iterator" block',
                    'Only one "iterator" block is allowed per state. Another was '
                    f"defined at {iterator_block.location()}.",
                    subject=inner.subject,
                    path=inner.path,
                )
            else:
                iterator_block = inner
                state.iterator = self.scope(inner.body, ctx)
        if branches:
            state.branches = branches
        return state

    def attribute(self, attr: Attribute, value_type: str, ctx: EvalContext) -> Any:
        if value_type == "fragments":
            return self.fragments(attr, ctx)
        value = self.evaluate(attr, attr.expr, ctx)
        if value is _FAILED:
            return None
        return self.convert(attr, value, value_type)

    def evaluate(self, attr: Attribute, expr, ctx: EvalContext) -> Any:
        value, diags = expr.evaluate(ctx)
        self.sink.extend(diags)
        if has_errors(diags):
            return _FAILED
        if not is_wholly_known(value):
            self.fail(
                attr,
                "UnknownValue",
                "Unknown value",
                f'The value of "{attr.name}" could not be resolved; it depends on '
                "values that are never known.",
                expr,
            )
            return _FAILED
        return value

    def fragments(self, attr: Attribute, ctx: EvalContext) -> Optional[list[Fragment]]:
        elements = attr.expr.elements()
        if elements is not None:
            out: list[Fragment] = []
            for element in elements:
                value = self.evaluate(attr, element, ctx)
                if value is _FAILED:
                    continue
                fragment = self.fragment(attr, value, element)
                if fragment is not None:
                    out.append(fragment)
            return out

        value = self.evaluate(attr, attr.expr, ctx)
        if value is _FAILED or value is None:
            return None
        if not isinstance(value, (list, tuple)):
            self.fail(
                attr,
                "IncorrectValueType",
                "Incorrect attribute value type",
                f'Inappropriate value for attribute "{attr.name}": list required, '
                f"got {type_label(value)}.",
            )
            return None
        return [f for f in (self.fragment(attr, item) for item in value) if f is not None]

    def fragment(self, attr: Attribute, value: Any, expr=None) -> Optional[Fragment]:
        """JSON text is parsed; structured values are carried as they are."""
        if isinstance(value, str):
            try:
                return Fragment.from_json(value)
            except ValueError as e:
                self.fail(
                    attr,
                    "InvalidFragment",
                    "Invalid JSON fragment",
                    f'The value of "{attr.name}" must be JSON text or a structured '
                    f"value: {e}.",
                    expr,
                )
                return None
        return Fragment(plain(value))

    def convert(self, attr: Attribute, value: Any, value_type: str) -> Any:
        if value is None:
            return None
        if value_type == "fragment":
            return self.fragment(attr, value)
        if value_type == "string":
            text = as_string(value)
            if text is not None:
                return text
        elif value_type == "number":
            number = _to_int(value)
            if number is not None:
                return number
        elif value_type == "bool":
            if isinstance(value, bool):
                return value
            if value in ("true", "false"):
                return value == "true"
        self.fail(
            attr,
            "IncorrectValueType",
            "Incorrect attribute value type",
            f'Inappropriate value for attribute "{attr.name}": '
            f"{_REQUIRED[value_type]} required, got {type_label(value)}.",
        )
        return None

    def fail(self, attr: Attribute, code: str, summary: str, detail: str, expr=None) -> None:
        expr = expr or attr.expr
        self.sink.emit(
            "error",
            code,
            summary,
            detail,
            subject=expr.rng or attr.subject,
            path=expr.path or attr.path,
        )


_FAILED = object()

_REQUIRED = {"string": "string", "number": "whole number", "bool": "bool"}


def _to_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _new_sink(config: DecodeConfig) -> DiagnosticSink:
    return DiagnosticSink(
        ignore=frozenset(config.ignore),
        escalate=frozenset(config.escalate),
        strict=config.strict,
    )


def decode_body(
    body: Body,
    config: Optional[DecodeConfig] = None,
    ctx: Optional[EvalContext] = None,
) -> tuple[Document, list[Diagnostic]]:
    """Decode a parsed body into a Document, accumulating every diagnostic."""
    config = config or DecodeConfig()
    sink = _new_sink(config)
    doc = _Decoder(config, sink).scope(body, ctx or base_context(config))
    return doc, sink.items


def parse_source(text: str, filename: str) -> tuple[Optional[Body], list[Diagnostic]]:
    """Pick the syntax from the file name: `*.json` is JSON syntax, else native."""
    if filename.endswith(".json"):
        return parse_json(text, filename)
    return parse_native(text, filename)


def decode_sources(
    sources: Mapping[str, str], config: Optional[DecodeConfig] = None
) -> DecodeResult:
    """Parse and decode one or more files as a single document.

    Raises DecodeError carrying every diagnostic when any is an error.
    """
    config = config or DecodeConfig()
    sink = _new_sink(config)
    bodies: list[Body] = []
    for filename, text in sources.items():
        body, diags = parse_source(text, filename)
        sink.extend(diags)
        if body is not None:
            bodies.append(body)
    if sink.has_errors() or not bodies:
        raise DecodeError(sink.items, sources)

    doc, diags = decode_body(merge_bodies(bodies), config)
    sink.items.extend(diags)
    if sink.has_errors():
        raise DecodeError(sink.items, sources)
    return DecodeResult(doc, tuple(sink.items))


def decode_block(
    text: str,
    filename: str = DEFAULT_HCL_FILENAME,
    config: Optional[DecodeConfig] = None,
) -> DecodeResult:
    return decode_sources({filename: text}, config)
