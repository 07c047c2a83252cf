from __future__ import annotations

from typing import TYPE_CHECKING, Mapping, Optional, Sequence

if TYPE_CHECKING:
    from .diagnostics import Diagnostic


class StatesConvError(Exception):
    """Base class for conversion failures."""


class MalformedDocument(StatesConvError, ValueError):
    """The canonical form is missing required keys or has wrong value types."""

    def __init__(self, message: str, path: str = "") -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class UnknownStateReference(StatesConvError, LookupError):
    """A start_at/next/default names a state absent from its scope."""

    def __init__(self, name: str, where: str = "") -> None:
        self.name = name
        self.where = where
        message = f"state {name!r} not found"
        super().__init__(f"{where}: {message}" if where else message)

    def __str__(self) -> str:
        # LookupError would otherwise repr() the message.
        return str(self.args[0])


class EmptyScope(StatesConvError, ValueError):
    """A graph was requested for a scope that declares no states."""

    def __init__(self, scope: str) -> None:
        self.scope = scope
        super().__init__(f"{scope}: states not found")


class GraphBuildError(StatesConvError, ValueError):
    """The graph cannot be built (dangling edge, clashing node ids)."""


class UnsupportedFormat(StatesConvError, ValueError):
    """Unknown format name or an operation the format does not support."""


class DecodeError(StatesConvError, ValueError):
    """Decoding produced at least one error-severity diagnostic."""

    def __init__(
        self,
        diagnostics: Sequence["Diagnostic"],
        sources: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.diagnostics = tuple(diagnostics)
        self.sources = dict(sources or {})
        errors = [d for d in self.diagnostics if d.severity == "error"]
        if errors:
            first = errors[0]
            more = f" (and {len(errors) - 1} more)" if len(errors) > 1 else ""
            message = f"{first.location()}: {first.summary}: {first.detail}{more}"
        else:
            message = "decode failed"
        super().__init__(message)

    @property
    def codes(self) -> list[str]:
        return [d.code for d in self.diagnostics]
