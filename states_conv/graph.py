from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from .constants import GRAPH_NAME_DEFAULT
from .errors import EmptyScope, GraphBuildError
from .fragment import Fragment
from .model import Document, State

Attrs = dict[str, str]


def default_graph_attrs() -> Attrs:
    return {"ranksep": "0.5", "nodesep": "0.8"}


def default_terminal_node_attrs() -> Attrs:
    return {"shape": "circle", "style": "filled"}


def default_state_node_attrs(_state: State) -> Attrs:
    return {"shape": "box", "style": "rounded,dashed", "fillcolor": "#00000080"}


def default_edge_attrs(label: str) -> Attrs:
    attrs = {"arrowhead": "vee"}
    if label:
        attrs["label"] = label
    return attrs


def default_choice_edge_attrs(_rule: Fragment, index: int) -> Attrs:
    return {"arrowhead": "vee", "label": f"Rule #{index + 1}"}


def default_branches_cluster_attrs(state: State) -> Attrs:
    return {
        "style": "rounded,dashed",
        "fillcolor": "#00000080",
        "label": state.name,
        "labeljust": "l",
    }


def default_branch_cluster_attrs(_state: State, index: int) -> Attrs:
    return {"style": "dashed", "label": f"branch {index + 1}", "labeljust": "l"}


def default_iterator_cluster_attrs(state: State) -> Attrs:
    return {
        "style": "dashed",
        "fillcolor": "#00000080",
        "label": state.name,
        "labeljust": "l",
    }


@dataclass(frozen=True)
class GraphStyle:
    """Cosmetic callbacks; none of them changes the graph's structure."""

    graph_attrs: Callable[[], Attrs] = default_graph_attrs
    terminal_node_attrs: Callable[[], Attrs] = default_terminal_node_attrs
    state_node_attrs: Callable[[State], Attrs] = default_state_node_attrs
    edge_attrs: Callable[[str], Attrs] = default_edge_attrs
    choice_edge_attrs: Callable[[Fragment, int], Attrs] = default_choice_edge_attrs
    branches_cluster_attrs: Callable[[State], Attrs] = default_branches_cluster_attrs
    branch_cluster_attrs: Callable[[State, int], Attrs] = default_branch_cluster_attrs
    iterator_cluster_attrs: Callable[[State], Attrs] = default_iterator_cluster_attrs


@dataclass
class GraphNode:
    id: str
    attrs: Attrs = field(default_factory=dict)
    terminal: bool = False

    @property
    def label(self) -> str:
        return self.attrs.get("label", self.id)


@dataclass
class GraphEdge:
    src: str
    dst: str
    attrs: Attrs = field(default_factory=dict)

    @property
    def label(self) -> Optional[str]:
        return self.attrs.get("label")

    @property
    def lhead(self) -> Optional[str]:
        return self.attrs.get("lhead")

    @property
    def ltail(self) -> Optional[str]:
        return self.attrs.get("ltail")


@dataclass
class GraphCluster:
    id: str
    attrs: Attrs = field(default_factory=dict)
    nodes: list[GraphNode] = field(default_factory=list)
    clusters: list["GraphCluster"] = field(default_factory=list)

    @property
    def label(self) -> str:
        return self.attrs.get("label", self.id)


@dataclass
class FlowGraph:
    name: str
    attrs: Attrs = field(default_factory=dict)
    nodes: list[GraphNode] = field(default_factory=list)
    clusters: list[GraphCluster] = field(default_factory=list)
    edges: list[GraphEdge] = field(default_factory=list)

    def iter_clusters(self):
        stack = list(reversed(self.clusters))
        while stack:
            cluster = stack.pop()
            yield cluster
            stack.extend(reversed(cluster.clusters))

    def iter_nodes(self):
        yield from self.nodes
        for cluster in self.iter_clusters():
            yield from cluster.nodes

    def node_ids(self) -> list[str]:
        return [n.id for n in self.iter_nodes()]

    def find_cluster(self, cluster_id: str) -> Optional[GraphCluster]:
        for cluster in self.iter_clusters():
            if cluster.id == cluster_id:
                return cluster
        return None

    def edge_pairs(self) -> list[tuple[str, str]]:
        return [(e.src, e.dst) for e in self.edges]


Container = Union[FlowGraph, GraphCluster]
# (node id, cluster the node sits in when the hop crosses a cluster boundary)
Port = tuple[str, Optional[str]]


class _GraphBuilder:
    def __init__(self, style: GraphStyle, name: str):
        self.style = style
        self.flow = FlowGraph(name=name, attrs={"compound": "true", **style.graph_attrs()})
        self.node_ids: set[str] = set()
        self.cluster_ids: set[str] = set()
        self.edge_keys: set[tuple] = set()

    def add_node(self, container: Container, node_id: str, attrs: Attrs, terminal: bool = False) -> None:
        if node_id in self.node_ids:
            raise GraphBuildError(f"node {node_id!r} is declared twice")
        self.node_ids.add(node_id)
        container.nodes.append(GraphNode(node_id, attrs, terminal))

    def add_cluster(self, container: Container, base: str, attrs: Attrs) -> GraphCluster:
        cluster_id = base
        n = 2
        while cluster_id in self.cluster_ids:
            cluster_id = f"{base}_{n}"
            n += 1
        self.cluster_ids.add(cluster_id)
        cluster = GraphCluster(cluster_id, attrs)
        container.clusters.append(cluster)
        return cluster

    def link(self, sources: list[Port], targets: list[Port], attrs: Attrs) -> None:
        for src, ltail in sources:
            for dst, lhead in targets:
                edge_attrs = dict(attrs)
                if lhead:
                    edge_attrs["lhead"] = lhead
                if ltail:
                    edge_attrs["ltail"] = ltail
                key = (src, dst, tuple(sorted(edge_attrs.items())))
                if key in self.edge_keys:
                    continue
                self.edge_keys.add(key)
                self.flow.edges.append(GraphEdge(src, dst, edge_attrs))

    def scope(self, doc: Document, container: Container, owner: str, where: str) -> tuple[str, str]:
        """Lay out one scope inside `container` and wire its edges.

        `owner` is the enclosing cluster id, empty for the top level. Node ids
        inside a cluster are qualified by it: boundary nodes as `<owner>/start`
        and `<owner>/end`, states as `<owner>:<name>`.

        Returns the ids of the scope's start and end boundary nodes.
        """
        if not doc.states:
            raise EmptyScope(where or "/")

        start_id, end_id = (f"{owner}/start", f"{owner}/end") if owner else ("start", "end")
        terminal = self.style.terminal_node_attrs()
        start_attrs, end_attrs = dict(terminal), dict(terminal)
        if owner:
            start_attrs["label"], end_attrs["label"] = "start", "end"
        self.add_node(container, start_id, start_attrs, terminal=True)

        entries: dict[str, list[Port]] = {}
        exits: dict[str, list[Port]] = {}
        for state in doc.states:
            path = f"{where}/States/{state.name}"
            if state.has_branches:
                wrapper = self.add_cluster(
                    container, f"cluster_{state.name}", self.style.branches_cluster_attrs(state)
                )
                entries[state.name], exits[state.name] = [], []
                for i, branch in enumerate(state.branches):
                    inner = self.add_cluster(
                        wrapper,
                        f"cluster_{state.name}_{i + 1}",
                        self.style.branch_cluster_attrs(state, i),
                    )
                    inner_start, inner_end = self.scope(
                        branch, inner, inner.id, f"{path}/Branches/{i}"
                    )
                    entries[state.name].append((inner_start, inner.id))
                    exits[state.name].append((inner_end, inner.id))
            elif state.iterator is not None:
                cluster = self.add_cluster(
                    container, f"cluster_{state.name}", self.style.iterator_cluster_attrs(state)
                )
                inner_start, inner_end = self.scope(
                    state.iterator, cluster, cluster.id, f"{path}/Iterator"
                )
                entries[state.name] = [(inner_start, cluster.id)]
                exits[state.name] = [(inner_end, cluster.id)]
            else:
                attrs = self.style.state_node_attrs(state)
                if owner:
                    node_id = f"{owner}:{state.name}"
                    attrs = {**attrs, "label": state.name}
                elif state.name in (start_id, end_id):
                    raise GraphBuildError(
                        f"{path}: state name {state.name!r} clashes with the reserved "
                        f"{state.name!r} boundary node; rename the state"
                    )
                else:
                    node_id = state.name
                self.add_node(container, node_id, attrs)
                entries[state.name] = [(node_id, None)]
                exits[state.name] = [(node_id, None)]

        self.add_node(container, end_id, end_attrs, terminal=True)
        end_port: list[Port] = [(end_id, None)]

        def connect(sources: list[Port], target: str, attrs: Attrs, at: str) -> None:
            if target not in entries:
                raise GraphBuildError(f"{at}: edge to unknown state {target!r}")
            self.link(sources, entries[target], attrs)

        connect([(start_id, None)], doc.start_at, self.style.edge_attrs(""), f"{where}/StartAt")

        for state in doc.states:
            path = f"{where}/States/{state.name}"
            sources = exits[state.name]
            if state.has_branches or state.iterator is not None:
                if state.next:
                    connect(sources, state.next, self.style.edge_attrs(""), f"{path}/Next")
                else:
                    self.link(sources, end_port, self.style.edge_attrs(""))
                continue

            derived = 0
            if state.next:
                connect(sources, state.next, self.style.edge_attrs(""), f"{path}/Next")
                derived += 1
            if state.default:
                connect(sources, state.default, self.style.edge_attrs("default"), f"{path}/Default")
                derived += 1
            for i, rule in enumerate(state.choices or ()):
                target = rule.get("Next")
                if isinstance(target, str) and target:
                    connect(
                        sources,
                        target,
                        self.style.choice_edge_attrs(rule, i),
                        f"{path}/Choices/{i}/Next",
                    )
                    derived += 1
            if derived == 0 or state.is_terminal:
                self.link(sources, end_port, self.style.edge_attrs(""))

        return start_id, end_id


def build_graph(
    doc: Document, style: Optional[GraphStyle] = None, name: str = GRAPH_NAME_DEFAULT
) -> FlowGraph:
    """Lower a document to a clustered control-flow graph.

    Raises EmptyScope for a scope without states and GraphBuildError for an
    edge to an unknown state or a node id used twice.
    """
    builder = _GraphBuilder(style or GraphStyle(), name)
    builder.scope(doc, builder.flow, "", "")
    # Stable: edges between the same pair keep their insertion order.
    builder.flow.edges.sort(key=lambda e: (e.src, e.dst))
    return builder.flow
