from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import UnsupportedFormat


class Format(str, Enum):
    JSON = "json"
    YAML = "yaml"
    HCL = "hcl"
    DOT = "dot"
    MERMAID = "mermaid"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FormatSpec:
    fmt: Format
    description: str
    patterns: tuple[str, ...]
    aliases: tuple[str, ...]
    readable: bool = True


FORMATS: list[FormatSpec] = [
    FormatSpec(
        fmt=Format.JSON,
        description="JSON",
        patterns=("*.json",),
        aliases=("json",),
    ),
    FormatSpec(
        fmt=Format.YAML,
        description="YAML",
        patterns=("*.yaml", "*.yml"),
        aliases=("yaml", "yml"),
    ),
    FormatSpec(
        fmt=Format.HCL,
        description="HCL (HashiCorp configuration language)",
        patterns=("*.hcl", "*.hcl.json"),
        aliases=("hcl",),
    ),
    FormatSpec(
        fmt=Format.DOT,
        description="DOT (text/vnd.graphviz, output only)",
        patterns=("*.gv", "*.dot"),
        aliases=("dot", "graphviz", "gv"),
        readable=False,
    ),
    FormatSpec(
        fmt=Format.MERMAID,
        description="Mermaid flowchart (output only)",
        patterns=("*.mmd", "*.mermaid", "*.md"),
        aliases=("mermaid", "mmd"),
        readable=False,
    ),
]


def format_spec(fmt: Format) -> FormatSpec:
    for spec in FORMATS:
        if spec.fmt == fmt:
            return spec
    raise UnsupportedFormat(f"unknown format: {fmt!r}")


def get_format(name: str) -> Format:
    key = name.strip().lower()
    for spec in FORMATS:
        if key in spec.aliases:
            return spec.fmt
    raise UnsupportedFormat(f"{name} is unknown format")


def list_formats() -> list[str]:
    return [f"{spec.description} [{', '.join(spec.patterns)}]" for spec in FORMATS]


def detect_format(path: Path) -> Format:
    """Map a path to its format; a directory is block form (merged files)."""
    if path.is_dir():
        return Format.HCL
    suffixes = [s.lower() for s in path.suffixes]
    ext = suffixes[-1] if suffixes else ""
    if ext in ("", ".hcl"):
        return Format.HCL
    if ext == ".json":
        if len(suffixes) >= 2 and suffixes[-2] == ".hcl":
            return Format.HCL
        return Format.JSON
    if ext in (".yaml", ".yml"):
        return Format.YAML
    if ext in (".gv", ".dot"):
        return Format.DOT
    if ext in (".mmd", ".mermaid", ".md"):
        return Format.MERMAID
    raise UnsupportedFormat(f"can not detect format of {path}")
