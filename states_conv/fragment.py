from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any


def json_equal(a: Any, b: Any) -> bool:
    """Structural JSON equality: booleans never equal numbers, key order ignored."""
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if isinstance(a, (int, float)) and isinstance(b, (int, float)):
        return a == b
    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(json_equal(a[k], b[k]) for k in a)
    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        return len(a) == len(b) and all(json_equal(x, y) for x, y in zip(a, b))
    if type(a) is not type(b):
        return False
    return a == b


@dataclass(frozen=True, eq=False)
class Fragment:
    """A structured payload carried through conversions without interpretation.

    Retry/catch policies, choice rules, parameters and results are defined by
    the States Language itself; the converters only move them between forms.
    """

    value: Any

    @classmethod
    def from_json(cls, text: str) -> "Fragment":
        """Parse JSON text; raises ValueError on malformed input."""
        return cls(json.loads(text))

    def to_json(self, indent: int | None = None) -> str:
        if indent is None:
            return json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)
        return json.dumps(self.value, indent=indent, ensure_ascii=False)

    def get(self, key: str, default: Any = None) -> Any:
        """Read one member of an object fragment (default for non-objects)."""
        if isinstance(self.value, dict):
            return self.value.get(key, default)
        return default

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Fragment):
            return NotImplemented
        return json_equal(self.value, other.value)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"Fragment({self.to_json()})"
