from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .canonical import dumps_json, dumps_yaml
from .constants import GRAPH_NAME_DEFAULT
from .dot_fmt import render_dot
from .encode import encode_block
from .formats import Format
from .graph import GraphStyle, build_graph
from .mermaid_fmt import mermaid_block, render_mermaid
from .model import Document


@dataclass(frozen=True)
class RenderConfig:
    graph_name: str = GRAPH_NAME_DEFAULT
    style: Optional[GraphStyle] = None


def render_document(doc: Document, fmt: Format, cfg: Optional[RenderConfig] = None) -> str:
    """Render a document as text in the given format."""
    cfg = cfg or RenderConfig()
    if fmt == Format.JSON:
        return dumps_json(doc)
    if fmt == Format.YAML:
        return dumps_yaml(doc)
    if fmt == Format.HCL:
        return encode_block(doc)
    if fmt == Format.DOT:
        return render_dot(build_graph(doc, cfg.style, cfg.graph_name))
    if fmt == Format.MERMAID:
        return render_mermaid(build_graph(doc, cfg.style, cfg.graph_name))
    raise AssertionError(f"unhandled format {fmt!r}")


def write_md(path: Path, title: str, diagram_code: str) -> None:
    """Write a titled Markdown file containing a Mermaid diagram block."""
    path.parent.mkdir(parents=True, exist_ok=True)
    content = f"# {title}\n\n{mermaid_block(diagram_code)}"
    path.write_text(content, encoding="utf-8")


def write_document(
    path: Path, doc: Document, fmt: Format, cfg: Optional[RenderConfig] = None
) -> None:
    """Render and write a document; Mermaid into `*.md` gets a Markdown page."""
    text = render_document(doc, fmt, cfg)
    if fmt == Format.MERMAID and path.suffix == ".md":
        write_md(path, doc.comment or path.stem, text)
        return
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
