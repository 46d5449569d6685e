"""
Resilience Testing - Graph Emitter.

============================================================
PURPOSE
============================================================
Turns the cascade map and recovery paths into plain
node/edge descriptions that any graph library can consume.

- render_cascade_graph: who affects whom
- render_recovery_graph: component -> strategies
- render_system_graph: both on one picture

GraphDescription.to_dict() gives JSON-able lists;
to_dot() gives GraphViz DOT text. Rendering images is left
to external tools.

============================================================
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from .models import FailureCascade, RecoveryPath, RecoveryTier


# ============================================================
# CATEGORIES
# ============================================================

CATEGORY_COLORS: Dict[str, str] = {
    # cascade graph
    "root": "#FF6666",
    "affected": "#FFCC66",
    "resilient": "#66CC66",
    "info": "#FFFFFF",
    # recovery graph
    "component": "#A0D0FF",
    "primary": "#90EE90",
    "secondary": "#FFFF99",
    "fallback": "#FFB6C1",
}

# When a node shows up under several categories, the highest wins
_NODE_PRIORITY = {"root": 3, "affected": 2, "resilient": 1}

TIER_LABELS = {
    RecoveryTier.PRIMARY: "Primary",
    RecoveryTier.SECONDARY: "Secondary",
    RecoveryTier.FALLBACK: "Fallback",
}


def sanitize_id(value: str) -> str:
    """Replace every non-alphanumeric character with an underscore."""
    return re.sub(r"[^A-Za-z0-9]", "_", value)


def _quote(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n") + '"'


# ============================================================
# GRAPH TYPES
# ============================================================

@dataclass(frozen=True)
class GraphNode:
    id: str
    label: str
    category: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "label": self.label, "category": self.category}


@dataclass(frozen=True)
class GraphEdge:
    source: str
    target: str
    label: str = ""
    dashed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.source,
            "to": self.target,
            "label": self.label,
            "dashed": self.dashed,
        }


@dataclass
class GraphDescription:
    """Directed graph as plain node and edge lists."""
    name: str
    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)
    clusters: Dict[str, List[str]] = field(default_factory=dict)

    def node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def add_node(self, node: GraphNode) -> None:
        """Add a node, keeping the higher-priority category on conflicts."""
        for index, existing in enumerate(self.nodes):
            if existing.id != node.id:
                continue
            if _NODE_PRIORITY.get(node.category, 0) > _NODE_PRIORITY.get(existing.category, 0):
                self.nodes[index] = node
            return
        self.nodes.append(node)

    def add_edge(self, edge: GraphEdge) -> None:
        if edge not in self.edges:
            self.edges.append(edge)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "clusters": {k: list(v) for k, v in self.clusters.items()},
        }

    def to_dot(self) -> str:
        lines = [
            f"digraph {_quote(self.name)} {{",
            "  rankdir=LR;",
            '  node [style=filled, fontname="Helvetica", shape=box];',
            '  edge [fontname="Helvetica", fontsize=10];',
        ]

        clustered = {node_id for members in self.clusters.values() for node_id in members}

        for node in self.nodes:
            if node.id not in clustered:
                lines.append(f"  {self._dot_node(node)}")

        for index, (label, members) in enumerate(self.clusters.items()):
            lines.append(f"  subgraph cluster_{index} {{")
            lines.append(f"    label={_quote(label)};")
            for node_id in members:
                node = self.node(node_id)
                if node is not None:
                    lines.append(f"    {self._dot_node(node)}")
            lines.append("  }")

        for edge in self.edges:
            attrs = [f"label={_quote(edge.label)}"] if edge.label else []
            if edge.dashed:
                attrs.append("style=dashed")
            suffix = f" [{', '.join(attrs)}]" if attrs else ""
            lines.append(f"  {_quote(edge.source)} -> {_quote(edge.target)}{suffix};")

        lines.append("}")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _dot_node(node: GraphNode) -> str:
        color = CATEGORY_COLORS.get(node.category, "#DDDDDD")
        shape = ", shape=note" if node.category == "info" else ""
        return (
            f"{_quote(node.id)} [label={_quote(node.label)}, "
            f"fillcolor={_quote(color)}{shape}];"
        )


# ============================================================
# EMITTERS
# ============================================================

def render_cascade_graph(cascades: Iterable[FailureCascade]) -> GraphDescription:
    graph = GraphDescription(name="cascade_map")
    cascades = list(cascades)

    for cascade in cascades:
        root_id = sanitize_id(cascade.root)
        graph.add_node(GraphNode(root_id, cascade.root, "root"))

        for effect in cascade.effects:
            graph.add_node(GraphNode(sanitize_id(effect), effect, "affected"))
            graph.add_edge(GraphEdge(root_id, sanitize_id(effect), "affects"))

        for component in cascade.resilient_components:
            graph.add_node(GraphNode(sanitize_id(component), component, "resilient"))
            graph.add_edge(GraphEdge(root_id, sanitize_id(component), "no effect", dashed=True))

    if cascades:
        latest = max(cascades, key=lambda c: c.timestamp)
        avg_duration = sum(c.duration_ms for c in cascades) / len(cascades)
        graph.add_node(GraphNode(
            "cascade_info",
            (
                f"Cascades: {len(cascades)}\n"
                f"Average duration: {avg_duration:.0f} ms\n"
                f"Latest: {latest.timestamp.isoformat()}"
            ),
            "info",
        ))

    return graph


def _recovery_cluster(recovery_time_ms: float) -> str:
    if recovery_time_ms < 2000:
        return "Fast recovery (< 2s)"
    if recovery_time_ms < 4000:
        return "Medium recovery (2-4s)"
    return "Slow recovery (>= 4s)"


def _add_strategies(graph: GraphDescription, path: RecoveryPath, edge_label: Optional[str] = None) -> None:
    component_id = sanitize_id(path.component)
    for tier, strategy in path.tiers():
        strategy_id = sanitize_id(f"{path.component}_{tier.value}_{strategy}")
        graph.add_node(GraphNode(strategy_id, strategy, tier.value))
        graph.add_edge(GraphEdge(component_id, strategy_id, edge_label or TIER_LABELS[tier]))


def render_recovery_graph(paths: Iterable[RecoveryPath]) -> GraphDescription:
    graph = GraphDescription(name="recovery_paths")

    for path in paths:
        component_id = sanitize_id(path.component)
        graph.add_node(GraphNode(component_id, path.component, "component"))
        _add_strategies(graph, path)

        members = graph.clusters.setdefault(_recovery_cluster(path.recovery_time_ms), [])
        if component_id not in members:
            members.append(component_id)

    return graph


def render_system_graph(
    paths: Iterable[RecoveryPath],
    cascades: Iterable[FailureCascade],
) -> GraphDescription:
    """Cascade and recovery relations of every component in one graph."""
    graph = GraphDescription(name="system_resilience")
    cascades = list(cascades)

    roots = {c.root for c in cascades if c.effects}
    affected = {e for c in cascades for e in c.effects}

    def role(component: str) -> str:
        if component in roots:
            return "root"
        if component in affected:
            return "affected"
        return "component"

    for path in paths:
        graph.add_node(GraphNode(sanitize_id(path.component), path.component, role(path.component)))
        _add_strategies(graph, path, edge_label="recovers via")

    for cascade in cascades:
        root_id = sanitize_id(cascade.root)
        graph.add_node(GraphNode(root_id, cascade.root, role(cascade.root)))
        for effect in cascade.effects:
            graph.add_node(GraphNode(sanitize_id(effect), effect, role(effect)))
            graph.add_edge(GraphEdge(root_id, sanitize_id(effect), "affects"))

    return graph
