from __future__ import annotations

import html
import re

from .graph import FlowGraph, GraphCluster, GraphNode

# Mermaid node/subgraph IDs must be alphanumeric/underscore and must not start
# with a digit.
MERMAID_ID_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

# Words the flowchart parser treats as keywords when used as a bare id.
MERMAID_RESERVED = frozenset(
    {"end", "graph", "flowchart", "subgraph", "style", "class", "classdef", "click", "linkstyle", "default"}
)

TERMINAL_CLASS = "terminal"
TERMINAL_STYLE = "fill:#333,stroke:#333,color:#fff"


def mermaid_block(code: str) -> str:
    """Wrap Mermaid source in a Markdown Mermaid code fence."""
    return "```mermaid\n" + code.rstrip() + "\n```\n"


def mm_text(text: str, *, escape_semicolon: bool = False) -> str:
    """Escape text for Mermaid labels."""
    normalized = re.sub(r"\s+", " ", html.unescape(str(text))).strip()
    out = (
        normalized.replace("&", "#amp;")
        .replace("<", "#lt;")
        .replace(">", "#gt;")
        .replace('"', "#quot;")
        .replace("|", "#124;")
    )
    if escape_semicolon:
        out = out.replace(";", "#59;")
    return out


def mm_edge_label(text: str) -> str:
    """Format a Mermaid *edge label* (the text inside `-->|...|`) safely."""
    raw = str(text)
    escaped = mm_text(raw)
    stripped = raw.lstrip()
    if stripped and not re.match(r"[A-Za-z0-9_]", stripped[0]):
        return f'"{escaped}"'
    return escaped


def assert_mm_id(value: str) -> str:
    if not MERMAID_ID_RE.match(value):
        raise ValueError(f"Not Mermaid-safe id: {value!r}")
    return value


def mm_unique_id(base: str, used: set[str]) -> str:
    candidate = base
    n = 2
    while candidate in used:
        candidate = f"{base}_{n}"
        n += 1
    used.add(candidate)
    return candidate


def mm_safe_id(raw: str, used: set[str]) -> str:
    """Derive a unique Mermaid-safe id from arbitrary text (state names)."""
    base = re.sub(r"[^A-Za-z0-9_]", "_", raw) or "n"
    if base[0].isdigit() or base.lower() in MERMAID_RESERVED:
        base = f"n_{base}"
    return assert_mm_id(mm_unique_id(base, used))


def mm_flow_node(node_id: str, label: str) -> str:
    return f'{node_id}["{mm_text(label)}"]'


def mm_terminal_node(node_id: str, label: str) -> str:
    return f'{node_id}(("{mm_text(label)}"))'


def mm_subgraph_open(subgraph_id: str, title: str) -> str:
    return f'  subgraph {subgraph_id}["{mm_text(title)}"]'


def mm_flow_edge(src: str, dst: str, label: str | None = None, arrow: str = "-->") -> str:
    if label:
        return f"  {src} {arrow}|{mm_edge_label(label)}| {dst}"
    return f"  {src} {arrow} {dst}"


def mm_class_def(class_name: str, style: str) -> str:
    return f"  classDef {class_name} {style}"


def mm_class_apply(node_ids: list[str] | tuple[str, ...], class_name: str) -> str:
    return f"  class {','.join(node_ids)} {class_name}"


def render_mermaid(flow: FlowGraph) -> str:
    """Render the graph as a Mermaid flowchart (TB).

    Clusters become subgraphs. An edge carrying lhead/ltail is attached to the
    subgraph itself, which is how Mermaid draws a hop into or out of a group.
    """
    used: set[str] = set()
    ids: dict[str, str] = {}
    for cluster in flow.iter_clusters():
        ids[cluster.id] = mm_safe_id(cluster.id, used)
    for node in flow.iter_nodes():
        ids[node.id] = mm_safe_id(node.id, used)

    lines: list[str] = ["flowchart TB"]

    def node_line(node: GraphNode, pad: str) -> str:
        if node.terminal:
            return pad + mm_terminal_node(ids[node.id], node.label)
        return pad + mm_flow_node(ids[node.id], node.label)

    def emit_cluster(cluster: GraphCluster, depth: int) -> None:
        pad = "  " * depth
        lines.append(pad + mm_subgraph_open(ids[cluster.id], cluster.label))
        for node in cluster.nodes:
            lines.append(node_line(node, pad + "    "))
        for child in cluster.clusters:
            emit_cluster(child, depth + 1)
        lines.append(pad + "  end")

    for node in flow.nodes:
        lines.append(node_line(node, "  "))
    for cluster in flow.clusters:
        emit_cluster(cluster, 0)

    seen: set[tuple[str, str, str]] = set()
    for edge in flow.edges:
        src = ids[edge.ltail] if edge.ltail else ids[edge.src]
        dst = ids[edge.lhead] if edge.lhead else ids[edge.dst]
        key = (src, dst, edge.label or "")
        if key in seen:
            continue
        seen.add(key)
        lines.append(mm_flow_edge(src, dst, edge.label))

    terminals = [ids[n.id] for n in flow.iter_nodes() if n.terminal]
    if terminals:
        lines.append(mm_class_def(TERMINAL_CLASS, TERMINAL_STYLE))
        lines.append(mm_class_apply(terminals, TERMINAL_CLASS))
    return "\n".join(lines) + "\n"
