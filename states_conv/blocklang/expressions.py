from __future__ import annotations

import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from ..diagnostics import Diagnostic, SourceRange, did_you_mean

KEYWORD_VALUES: dict[str, Any] = {"true": True, "false": False, "null": None}


class _Unknown:
    """Placeholder for a value that cannot be resolved yet."""

    _instance: Optional["_Unknown"] = None

    def __new__(cls) -> "_Unknown":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNKNOWN"


UNKNOWN = _Unknown()


def is_wholly_known(value: Any) -> bool:
    if value is UNKNOWN:
        return False
    if isinstance(value, Mapping):
        return all(is_wholly_known(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return all(is_wholly_known(v) for v in value)
    return True


def type_label(value: Any) -> str:
    if value is UNKNOWN:
        return "unknown"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Mapping):
        return "object"
    if isinstance(value, (list, tuple)):
        return "tuple"
    return type(value).__name__


def format_number(value: Union[int, float]) -> str:
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return repr(value) if isinstance(value, float) else str(value)


def as_string(value: Any) -> Optional[str]:
    """Convert a primitive to its string form, None when not convertible."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return format_number(value)
    return None


def plain(value: Any) -> Any:
    """Strip read-only mapping wrappers so values serialize as JSON."""
    if isinstance(value, Mapping):
        return {k: plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [plain(v) for v in value]
    return value


def _jsonencode(value: Any) -> str:
    return json.dumps(plain(value), separators=(",", ":"), ensure_ascii=False)


def _jsondecode(text: Any) -> Any:
    if not isinstance(text, str):
        raise TypeError(f"argument must be a string, got {type_label(text)}")
    return json.loads(text)


BUILTIN_FUNCTIONS: Mapping[str, Callable[..., Any]] = MappingProxyType(
    {
        "jsonencode": _jsonencode,
        "jsondecode": _jsondecode,
    }
)


@dataclass(frozen=True)
class EvalContext:
    """Variables and functions visible to expressions of one scope.

    Contexts are never mutated; `child()` creates a nested scope whose lookups
    fall back to this one.
    """

    variables: Mapping[str, Any] = field(default_factory=dict)
    functions: Mapping[str, Callable[..., Any]] = field(default_factory=dict)
    parent: Optional["EvalContext"] = None

    def child(
        self,
        variables: Optional[Mapping[str, Any]] = None,
        functions: Optional[Mapping[str, Callable[..., Any]]] = None,
    ) -> "EvalContext":
        return EvalContext(
            variables=MappingProxyType(dict(variables or {})),
            functions=MappingProxyType(dict(functions or {})),
            parent=self,
        )

    def lookup_variable(self, name: str) -> tuple[bool, Any]:
        ctx: Optional[EvalContext] = self
        while ctx is not None:
            if name in ctx.variables:
                return True, ctx.variables[name]
            ctx = ctx.parent
        return False, None

    def lookup_function(self, name: str) -> Optional[Callable[..., Any]]:
        ctx: Optional[EvalContext] = self
        while ctx is not None:
            if name in ctx.functions:
                return ctx.functions[name]
            ctx = ctx.parent
        return None

    def variable_names(self) -> set[str]:
        names: set[str] = set()
        ctx: Optional[EvalContext] = self
        while ctx is not None:
            names.update(ctx.variables)
            ctx = ctx.parent
        return names

    def function_names(self) -> set[str]:
        names: set[str] = set()
        ctx: Optional[EvalContext] = self
        while ctx is not None:
            names.update(ctx.functions)
            ctx = ctx.parent
        return names


class Expression:
    """Base class of block-language expressions.

    `evaluate` never raises for problems in the source text: they are
    returned as diagnostics and the value becomes UNKNOWN.
    """

    rng: Optional[SourceRange]
    path: str

    def evaluate(self, ctx: EvalContext) -> tuple[Any, list[Diagnostic]]:
        diags: list[Diagnostic] = []
        value = self._eval(ctx, diags)
        return value, diags

    def elements(self) -> Optional[Sequence["Expression"]]:
        """Element expressions of a static list, None for anything else."""
        return None

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        raise NotImplementedError

    def _fail(
        self, diags: list[Diagnostic], code: str, summary: str, detail: str
    ) -> Any:
        diags.append(
            Diagnostic(
                severity="error",
                code=code,
                summary=summary,
                detail=detail,
                subject=self.rng,
                path=self.path,
            )
        )
        return UNKNOWN


@dataclass(frozen=True)
class Literal(Expression):
    value: Any
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        return self.value


@dataclass(frozen=True)
class Variable(Expression):
    name: str
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        if self.name in KEYWORD_VALUES:
            return KEYWORD_VALUES[self.name]
        found, value = ctx.lookup_variable(self.name)
        if not found:
            return self._fail(
                diags,
                "UnknownVariable",
                "Unknown variable",
                f'There is no variable named "{self.name}".'
                + did_you_mean(self.name, sorted(ctx.variable_names())),
            )
        return value


@dataclass(frozen=True)
class GetAttr(Expression):
    source: Expression
    name: str
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        obj = self.source._eval(ctx, diags)
        if obj is UNKNOWN:
            return UNKNOWN
        if isinstance(obj, Mapping):
            if self.name in obj:
                return obj[self.name]
            return self._fail(
                diags,
                "UnsupportedAttribute",
                "Unsupported attribute",
                f'This object does not have an attribute named "{self.name}".'
                + did_you_mean(self.name, list(obj.keys())),
            )
        return self._fail(
            diags,
            "UnsupportedAttribute",
            "Unsupported attribute",
            f"Can't access attributes on a {type_label(obj)} value.",
        )


@dataclass(frozen=True)
class Index(Expression):
    source: Expression
    key: Expression
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        collection = self.source._eval(ctx, diags)
        key = self.key._eval(ctx, diags)
        if collection is UNKNOWN or key is UNKNOWN:
            return UNKNOWN
        if isinstance(collection, Mapping):
            name = as_string(key)
            if name is not None and name in collection:
                return collection[name]
            return self._fail(
                diags,
                "InvalidIndex",
                "Invalid index",
                f"The given key {key!r} does not identify an element in this collection value.",
            )
        if isinstance(collection, (list, tuple)):
            position = key
            if isinstance(key, str) and key.lstrip("-").isdigit():
                position = int(key)
            if isinstance(position, float) and position.is_integer():
                position = int(position)
            if (
                isinstance(position, int)
                and not isinstance(position, bool)
                and 0 <= position < len(collection)
            ):
                return collection[position]
            return self._fail(
                diags,
                "InvalidIndex",
                "Invalid index",
                f"The given key {key!r} does not identify an element in this collection value.",
            )
        return self._fail(
            diags,
            "InvalidIndex",
            "Invalid index",
            f"This value does not have any indices ({type_label(collection)}).",
        )


@dataclass(frozen=True)
class Call(Expression):
    name: str
    args: tuple[Expression, ...]
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        fn = ctx.lookup_function(self.name)
        if fn is None:
            return self._fail(
                diags,
                "UnknownFunction",
                "Call to unknown function",
                f'There is no function named "{self.name}".'
                + did_you_mean(self.name, sorted(ctx.function_names())),
            )
        args = [arg._eval(ctx, diags) for arg in self.args]
        if not all(is_wholly_known(arg) for arg in args):
            return UNKNOWN
        try:
            return fn(*args)
        except (TypeError, ValueError) as e:
            return self._fail(
                diags,
                "FunctionCallError",
                "Error in function call",
                f'Call to function "{self.name}" failed: {e}.',
            )


@dataclass(frozen=True)
class TupleExpr(Expression):
    items: tuple[Expression, ...]
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        return [item._eval(ctx, diags) for item in self.items]

    def elements(self) -> Optional[Sequence[Expression]]:
        return self.items


@dataclass(frozen=True)
class ObjectExpr(Expression):
    items: tuple[tuple[Expression, Expression], ...]
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        result: dict[str, Any] = {}
        unknown_key = False
        for key_expr, value_expr in self.items:
            key = key_expr._eval(ctx, diags)
            value = value_expr._eval(ctx, diags)
            if key is UNKNOWN:
                unknown_key = True
                continue
            name = as_string(key)
            if name is None:
                self._fail(
                    diags,
                    "IncorrectValueType",
                    "Incorrect key type",
                    f"Can't use a {type_label(key)} value as an object key.",
                )
                continue
            result[name] = value
        return UNKNOWN if unknown_key else result


@dataclass(frozen=True)
class TemplateExpr(Expression):
    """A string with `${...}` interpolations (literal parts are plain str)."""

    parts: tuple[Union[str, Expression], ...]
    rng: Optional[SourceRange] = None
    path: str = ""

    def _eval(self, ctx: EvalContext, diags: list[Diagnostic]) -> Any:
        # A lone interpolation yields the raw value, not its string form.
        if len(self.parts) == 1 and isinstance(self.parts[0], Expression):
            return self.parts[0]._eval(ctx, diags)

        out: list[str] = []
        unknown = False
        for part in self.parts:
            if isinstance(part, str):
                out.append(part)
                continue
            value = part._eval(ctx, diags)
            if value is UNKNOWN:
                unknown = True
                continue
            text = as_string(value)
            if text is None:
                return self._fail(
                    diags,
                    "InvalidTemplate",
                    "Invalid template interpolation value",
                    f"Cannot include a {type_label(value)} value in a string template.",
                )
            out.append(text)
        return UNKNOWN if unknown else "".join(out)
