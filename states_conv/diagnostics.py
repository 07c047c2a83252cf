# states_conv/diagnostics.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Literal, Mapping, Optional, Sequence, Tuple

from .constants import SUGGESTION_DISTANCE

Severity = Literal["error", "warning"]


@dataclass(frozen=True)
class SourceRange:
    """A span of block-form source text (1-based lines and columns)."""

    filename: str
    start_line: int
    start_column: int
    end_line: int
    end_column: int

    def __str__(self) -> str:
        if self.start_line == self.end_line:
            return (
                f"{self.filename}:{self.start_line},"
                f"{self.start_column}-{self.end_column}"
            )
        return (
            f"{self.filename}:{self.start_line},{self.start_column}-"
            f"{self.end_line},{self.end_column}"
        )


@dataclass(frozen=True)
class Diagnostic:
    """One located decode problem.

    `subject` points into native block syntax; `path` is a JSON pointer used
    where no source positions exist (JSON syntax, canonical form).
    """

    severity: Severity
    code: str
    summary: str
    detail: str = ""
    subject: Optional[SourceRange] = None
    path: str = ""
    hint: Optional[str] = None

    def location(self) -> str:
        if self.subject is not None:
            return str(self.subject)
        return self.path or "<input>"


@dataclass
class DiagnosticSink:
    """Accumulates diagnostics across a whole decode pass.

    Codes in `ignore` are dropped; warnings whose code is in `escalate` (or all
    warnings when `strict`) are recorded as errors.
    """

    ignore: frozenset[str] = frozenset()
    escalate: frozenset[str] = frozenset()
    strict: bool = False
    items: list[Diagnostic] = field(default_factory=list)

    def emit(
        self,
        severity: Severity,
        code: str,
        summary: str,
        detail: str = "",
        *,
        subject: Optional[SourceRange] = None,
        path: str = "",
        hint: Optional[str] = None,
    ) -> None:
        self.add(
            Diagnostic(
                severity=severity,
                code=code,
                summary=summary,
                detail=detail,
                subject=subject,
                path=path,
                hint=hint,
            )
        )

    def add(self, diag: Diagnostic) -> None:
        if diag.code in self.ignore:
            return
        if diag.severity == "warning" and (self.strict or diag.code in self.escalate):
            diag = Diagnostic(
                severity="error",
                code=diag.code,
                summary=diag.summary,
                detail=diag.detail,
                subject=diag.subject,
                path=diag.path,
                hint=diag.hint,
            )
        self.items.append(diag)

    def extend(self, diags: Iterable[Diagnostic]) -> None:
        for diag in diags:
            self.add(diag)

    def has_errors(self) -> bool:
        return has_errors(self.items)


def has_errors(diags: Iterable[Diagnostic]) -> bool:
    return any(d.severity == "error" for d in diags)


def levenshtein(s1: str, s2: str) -> int:
    """Calculate Levenshtein distance."""
    if len(s1) < len(s2):
        return levenshtein(s2, s1)

    if len(s2) == 0:
        return len(s1)

    prev_row = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1):
        curr_row = [i + 1]
        for j, c2 in enumerate(s2):
            insertions = prev_row[j + 1] + 1
            deletions = curr_row[j] + 1
            substitutions = prev_row[j] + (c1 != c2)
            curr_row.append(min(insertions, deletions, substitutions))
        prev_row = curr_row

    return prev_row[-1]


def suggest(name: str, candidates: Iterable[str]) -> Optional[str]:
    """Return the closest candidate within SUGGESTION_DISTANCE, first one on ties."""
    best: Optional[str] = None
    best_dist = SUGGESTION_DISTANCE
    for candidate in candidates:
        dist = levenshtein(name, candidate)
        if dist < best_dist:
            best, best_dist = candidate, dist
    return best


def did_you_mean(name: str, candidates: Iterable[str]) -> str:
    suggestion = suggest(name, candidates)
    return f' Did you mean "{suggestion}"?' if suggestion else ""


def split_messages(diags: Sequence[Diagnostic]) -> Tuple[list[str], list[str]]:
    """Flatten diagnostics into (errors, warnings) one-line messages."""
    errors: list[str] = []
    warnings: list[str] = []
    for diag in diags:
        message = f"{diag.location()}: {diag.summary}"
        if diag.detail:
            message += f"; {diag.detail}"
        (errors if diag.severity == "error" else warnings).append(message)
    return errors, warnings


def format_diagnostic(
    diag: Diagnostic, sources: Optional[Mapping[str, str]] = None
) -> str:
    """Render a diagnostic with the offending source line, if available."""
    lines = [f"{diag.severity}: {diag.summary}", ""]
    lines.append(f"  on {diag.location()}:")

    subject = diag.subject
    text = (sources or {}).get(subject.filename) if subject else None
    if subject is not None and text is not None:
        src_lines = text.splitlines()
        if 1 <= subject.start_line <= len(src_lines):
            src = src_lines[subject.start_line - 1]
            gutter = f"{subject.start_line:>4}: "
            lines.append(f"{gutter}{src}")
            end_col = (
                subject.end_column
                if subject.end_line == subject.start_line
                else len(src) + 1
            )
            width = max(1, end_col - subject.start_column)
            lines.append(" " * (len(gutter) + subject.start_column - 1) + "^" * width)

    if diag.detail:
        lines.append("")
        lines.append(diag.detail)
    if diag.hint:
        lines.append(f"hint: {diag.hint}")
    return "\n".join(lines) + "\n"
