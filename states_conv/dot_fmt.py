from __future__ import annotations

from typing import Mapping

from .graph import FlowGraph, GraphCluster, GraphNode

_INDENT = "  "


def dot_id(value: str) -> str:
    """Quote an id or attribute value (always quoted, so any text is safe)."""
    escaped = str(value).replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def dot_attr_list(attrs: Mapping[str, str]) -> str:
    if not attrs:
        return ""
    inner = ", ".join(f"{k}={dot_id(v)}" for k, v in sorted(attrs.items()))
    return f" [{inner}]"


def _node_line(node: GraphNode, pad: str) -> str:
    return f"{pad}{dot_id(node.id)}{dot_attr_list(node.attrs)};"


def _cluster_lines(cluster: GraphCluster, depth: int) -> list[str]:
    pad = _INDENT * depth
    inner = _INDENT * (depth + 1)
    lines = [f"{pad}subgraph {dot_id(cluster.id)} {{"]
    for k, v in sorted(cluster.attrs.items()):
        lines.append(f"{inner}{k}={dot_id(v)};")
    lines.extend(_node_line(n, inner) for n in cluster.nodes)
    for child in cluster.clusters:
        lines.extend(_cluster_lines(child, depth + 1))
    lines.append(f"{pad}}}")
    return lines


def render_dot(flow: FlowGraph) -> str:
    """Render the graph as Graphviz DOT text."""
    lines = [f"digraph {dot_id(flow.name)} {{"]
    for k, v in flow.attrs.items():
        lines.append(f"{_INDENT}{k}={dot_id(v)};")
    lines.extend(_node_line(n, _INDENT) for n in flow.nodes)
    for cluster in flow.clusters:
        lines.extend(_cluster_lines(cluster, 1))
    for edge in flow.edges:
        lines.append(
            f"{_INDENT}{dot_id(edge.src)}->{dot_id(edge.dst)}{dot_attr_list(edge.attrs)};"
        )
    lines.append("}")
    return "\n".join(lines) + "\n"
