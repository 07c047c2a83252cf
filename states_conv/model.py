from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .constants import STATE_TYPE_KEYWORDS
from .fragment import Fragment


class StateKind(str, Enum):
    TASK = "Task"
    CHOICE = "Choice"
    FAIL = "Fail"
    PARALLEL = "Parallel"
    MAP = "Map"
    SUCCEED = "Succeed"
    WAIT = "Wait"
    PASS = "Pass"

    @property
    def keyword(self) -> str:
        """Block-form type keyword (lowercase)."""
        return self.value.lower()

    @classmethod
    def from_keyword(cls, keyword: str) -> "StateKind":
        return cls(STATE_TYPE_KEYWORDS[keyword])

    def __str__(self) -> str:
        return self.value


@dataclass
class State:
    """One named state. Every optional field uses None for "unset"."""

    name: str
    kind: StateKind
    comment: Optional[str] = None
    resource: Optional[str] = None
    default: Optional[str] = None
    seconds: Optional[int] = None
    max_concurrency: Optional[int] = None
    next: Optional[str] = None
    items_path: Optional[str] = None
    input_path: Optional[str] = None
    output_path: Optional[str] = None
    result_path: Optional[str] = None
    end: Optional[bool] = None
    error: Optional[str] = None
    cause: Optional[str] = None
    retry: Optional[list[Fragment]] = None
    catch: Optional[list[Fragment]] = None
    parameters: Optional[Fragment] = None
    result: Optional[Fragment] = None
    result_selector: Optional[Fragment] = None
    choices: Optional[list[Fragment]] = None
    branches: Optional[list["Document"]] = None
    iterator: Optional["Document"] = None

    @property
    def is_terminal(self) -> bool:
        return bool(self.end)

    @property
    def has_branches(self) -> bool:
        return bool(self.branches)


@dataclass
class Document:
    """A state machine, or one nested scope of it (a branch or an iterator)."""

    start_at: str
    states: list[State] = field(default_factory=list)
    version: Optional[str] = None
    comment: Optional[str] = None
    timeout_seconds: Optional[int] = None

    def find(self, name: str) -> Optional[State]:
        for state in self.states:
            if state.name == name:
                return state
        return None

    def state_index(self) -> dict[str, State]:
        """Index states by name (first declaration wins)."""
        index: dict[str, State] = {}
        for state in self.states:
            index.setdefault(state.name, state)
        return index
