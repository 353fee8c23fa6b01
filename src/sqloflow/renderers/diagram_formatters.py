"""Diagram formatters for flow graphs (Mermaid and DOT/Graphviz)."""

import re
from typing import Dict, List, Optional, Set

import rustworkx as rx

from sqloflow.ir.models import EdgeKind, Graph, Node, NodeKind, SubqueryNode
from sqloflow.ir.serialization import to_rustworkx

CTE_PREFIX = "CTE: "

# Mermaid arrow per edge kind
MERMAID_ARROWS = {
    EdgeKind.FLOW: "-->",
    EdgeKind.SUBQUERY_RESULT: "-->",
    EdgeKind.DEFINES: "==>",
    EdgeKind.CORRELATION: "-.->",
    EdgeKind.USES: "-.->",
    EdgeKind.MAPS_TO: "-.->",
}

# DOT edge attributes per edge kind
DOT_EDGE_STYLES = {
    EdgeKind.FLOW: "",
    EdgeKind.SUBQUERY_RESULT: "style=dashed",
    EdgeKind.DEFINES: "style=bold",
    EdgeKind.CORRELATION: "style=dotted, color=gray40",
    EdgeKind.USES: "style=dotted",
    EdgeKind.MAPS_TO: "style=dotted",
}


def _sanitize_mermaid_id(identifier: str) -> str:
    """Sanitize an identifier for use as a Mermaid node ID.

    Replaces non-alphanumeric characters with underscores.
    """
    return re.sub(r"[^a-zA-Z0-9_]", "_", identifier)


def _escape_mermaid_label(label: str) -> str:
    return (
        label.replace('"', "&quot;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace("|", "&#124;")
    )


def _quote_dot_id(identifier: str) -> str:
    """Quote an identifier for use in DOT syntax.

    Args:
        identifier: Raw node identifier

    Returns:
        Double-quoted identifier with internal quotes escaped
    """
    escaped = identifier.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _escape_record(text: str) -> str:
    """Escape characters that have a meaning inside a DOT record label."""
    return re.sub(r'([{}|<>"\\])', r"\\\1", text)


def node_text(node: Node) -> str:
    """Display text of a node: its label, extended with its SQL detail.

    ``FROM users`` and join nodes show their SQL as-is; ``SELECT`` and
    ``WHERE`` show label and SQL; relations and subqueries show the label.
    """
    if node.kind in (NodeKind.RELATION, NodeKind.SUBQUERY) or not node.sql:
        return node.label
    if node.sql.startswith(node.label):
        return node.sql
    return f"{node.label} {node.sql}"


def cte_groups(graph: Graph) -> Dict[str, List[str]]:
    """
    Group the nodes of each CTE body under the CTE's relation node.

    A body is every node that flows into the node defining the CTE. Nodes
    already claimed by an earlier CTE stay with that CTE.

    Args:
        graph: Graph to inspect

    Returns:
        CTE node id -> ids of its body nodes (CTE node last), in graph order
    """
    flow_graph, node_map = to_rustworkx(graph, edge_kind=EdgeKind.FLOW)
    order = {node.id: index for index, node in enumerate(graph.nodes)}
    claimed: Set[str] = set()
    groups: Dict[str, List[str]] = {}

    for node in graph.nodes:
        if not node.label.startswith(CTE_PREFIX):
            continue
        defining = [e.source for e in graph.incoming(node.id, EdgeKind.DEFINES)]
        members: Set[str] = set()
        for source in defining:
            members.add(source)
            ancestors = rx.ancestors(flow_graph, node_map[source])
            members.update(flow_graph[index] for index in ancestors)
        members -= claimed
        members.discard(node.id)
        group = sorted(members, key=lambda node_id: order.get(node_id, 0))
        group.append(node.id)
        claimed.update(group)
        groups[node.id] = group

    return groups


class MermaidFormatter:
    """Format flow graphs as Mermaid flowcharts."""

    @staticmethod
    def format_graph(graph: Graph) -> str:
        """Format a flow graph as a Mermaid flowchart.

        CTE bodies are grouped in subgraphs, and the inner graph of every
        subquery node is drawn as a nested subgraph feeding that node.

        Args:
            graph: Converted flow graph

        Returns:
            Mermaid diagram string (flowchart LR syntax)
        """
        lines = ["flowchart LR"]
        MermaidFormatter._append_graph(graph, lines, indent="    ")
        return "\n".join(lines)

    @staticmethod
    def _append_graph(graph: Graph, lines: List[str], indent: str) -> None:
        nodes_by_id = {node.id: node for node in graph.nodes}
        groups = cte_groups(graph)
        grouped = {node_id for members in groups.values() for node_id in members}

        for cte_id, members in groups.items():
            cte_name = nodes_by_id[cte_id].label[len(CTE_PREFIX):]
            lines.append(
                f'{indent}subgraph cte_{_sanitize_mermaid_id(cte_id)} '
                f'["{_escape_mermaid_label(CTE_PREFIX + cte_name)}"]'
            )
            lines.append(f"{indent}    direction TB")
            for node_id in members:
                MermaidFormatter._append_node(
                    nodes_by_id[node_id], lines, indent + "    "
                )
            lines.append(f"{indent}end")

        for node in graph.nodes:
            if node.id not in grouped:
                MermaidFormatter._append_node(node, lines, indent)

        for edge in graph.edges:
            arrow = MERMAID_ARROWS.get(edge.kind, "-->")
            src = _sanitize_mermaid_id(edge.source)
            tgt = _sanitize_mermaid_id(edge.target)
            if edge.label:
                lines.append(
                    f"{indent}{src} {arrow}|{_escape_mermaid_label(edge.label)}| {tgt}"
                )
            else:
                lines.append(f"{indent}{src} {arrow} {tgt}")

    @staticmethod
    def _append_node(node: Node, lines: List[str], indent: str) -> None:
        node_id = _sanitize_mermaid_id(node.id)
        text = _escape_mermaid_label(node_text(node))
        if isinstance(node, SubqueryNode):
            lines.append(f'{indent}{node_id}[["{text}"]]')
            if node.inner_graph is not None and node.inner_graph.nodes:
                body_id = f"{node_id}_body"
                lines.append(f'{indent}subgraph {body_id} ["{text}"]')
                lines.append(f"{indent}    direction TB")
                MermaidFormatter._append_graph(
                    node.inner_graph, lines, indent + "    "
                )
                lines.append(f"{indent}end")
                lines.append(f"{indent}{body_id} -.-> {node_id}")
        elif node.kind == NodeKind.RELATION:
            lines.append(f'{indent}{node_id}[("{text}")]')
        elif node.kind == NodeKind.CLAUSE:
            lines.append(f'{indent}{node_id}{{{{"{text}"}}}}')
        else:
            lines.append(f'{indent}{node_id}["{text}"]')


class DotFormatter:
    """Format flow graphs as DOT (Graphviz) diagrams showing schemas."""

    @staticmethod
    def format_graph(graph: Graph) -> str:
        """Format a flow graph as a DOT digraph.

        Every node is a record listing the columns of its schema snapshot,
        so the diagram shows how the visible schema evolves along the flow.
        Subquery inner graphs are drawn as dashed clusters.

        Args:
            graph: Converted flow graph

        Returns:
            DOT diagram string
        """
        lines = [
            "digraph sqloflow {",
            "    rankdir=LR;",
            '    node [shape=record, fontname="Helvetica", fontsize=10];',
            '    edge [fontname="Helvetica", fontsize=9];',
        ]
        DotFormatter._append_graph(graph, lines, indent="    ")
        lines.append("}")
        return "\n".join(lines)

    @staticmethod
    def _append_graph(graph: Graph, lines: List[str], indent: str) -> None:
        for node in graph.nodes:
            lines.append(
                f"{indent}{_quote_dot_id(node.id)} "
                f'[label="{DotFormatter._record_label(graph, node)}"];'
            )
            if isinstance(node, SubqueryNode) and node.inner_graph is not None:
                DotFormatter._append_subquery(node, lines, indent)

        for edge in graph.edges:
            attributes = [DOT_EDGE_STYLES.get(edge.kind, "")]
            if edge.label:
                label = edge.label.replace("\\", "\\\\").replace('"', '\\"')
                attributes.append(f'label="{label}"')
            attrs = ", ".join(a for a in attributes if a)
            suffix = f" [{attrs}]" if attrs else ""
            lines.append(
                f"{indent}{_quote_dot_id(edge.source)} -> "
                f"{_quote_dot_id(edge.target)}{suffix};"
            )

    @staticmethod
    def _append_subquery(node: SubqueryNode, lines: List[str], indent: str) -> None:
        inner = node.inner_graph
        if inner is None or not inner.nodes:
            return
        lines.append(f"{indent}subgraph {_quote_dot_id('cluster_' + node.id)} {{")
        lines.append(f'{indent}    label="{_escape_record(node.label)}";')
        lines.append(f"{indent}    style=dashed;")
        DotFormatter._append_graph(inner, lines, indent + "    ")
        lines.append(f"{indent}}}")

        terminal = DotFormatter._terminal(inner)
        if terminal is not None:
            lines.append(
                f"{indent}{_quote_dot_id(terminal)} -> {_quote_dot_id(node.id)} "
                "[style=dotted];"
            )

    @staticmethod
    def _terminal(graph: Graph) -> Optional[str]:
        for node in reversed(graph.nodes):
            if node.kind in (NodeKind.OP, NodeKind.CLAUSE) and not graph.outgoing(
                node.id, EdgeKind.FLOW
            ):
                return node.id
        return None

    @staticmethod
    def _record_label(graph: Graph, node: Node) -> str:
        title = _escape_record(node_text(node))
        snapshot = graph.snapshot_for(node.id)
        if snapshot is None or not snapshot.columns:
            return f"{{{title}}}" if snapshot is not None else title

        rows = []
        for column in snapshot.columns:
            name = f"{column.source}.{column.name}" if column.source else column.name
            row = f"{name} : {column.type}" if column.type else name
            rows.append(_escape_record(row) + "\\l")
        return f"{{{title}|{''.join(rows)}}}"
