"""Checks a converted graph against the guarantees renderers rely on."""

from typing import List, Set

import rustworkx as rx

from sqloflow.ir.models import EdgeKind, Graph, SubqueryNode
from sqloflow.ir.serialization import to_rustworkx


def validate_graph(graph: Graph) -> List[str]:
    """
    Check the output contract of a converted graph.

    Verifies, recursively through subquery inner graphs, that node and edge
    ids are unique, every edge endpoint resolves to a node of the same graph,
    no node has more than one snapshot, and flow edges form no cycle.

    Args:
        graph: Graph to check

    Returns:
        A list of human-readable problems (empty when the graph is valid)
    """
    problems: List[str] = []
    _validate(graph, "graph", problems)
    return problems


def _validate(graph: Graph, scope: str, problems: List[str]) -> None:
    node_ids: Set[str] = set()
    for node in graph.nodes:
        if node.id in node_ids:
            problems.append(f"{scope}: duplicate node id '{node.id}'")
        node_ids.add(node.id)

    edge_ids: Set[str] = set()
    for edge in graph.edges:
        if edge.id in edge_ids:
            problems.append(f"{scope}: duplicate edge id '{edge.id}'")
        edge_ids.add(edge.id)
        for endpoint in (edge.source, edge.target):
            if endpoint not in node_ids:
                problems.append(
                    f"{scope}: edge '{edge.id}' references unknown node '{endpoint}'"
                )

    snapshot_ids: Set[str] = set()
    for snapshot in graph.snapshots:
        if snapshot.node_id in snapshot_ids:
            problems.append(
                f"{scope}: duplicate snapshot for node '{snapshot.node_id}'"
            )
        snapshot_ids.add(snapshot.node_id)
        if snapshot.node_id not in node_ids:
            problems.append(
                f"{scope}: snapshot references unknown node '{snapshot.node_id}'"
            )

    flow_graph, _ = to_rustworkx(graph, edge_kind=EdgeKind.FLOW)
    if not rx.is_directed_acyclic_graph(flow_graph):
        problems.append(f"{scope}: flow edges contain a cycle")

    for node in graph.nodes:
        if isinstance(node, SubqueryNode) and node.inner_graph is not None:
            _validate(node.inner_graph, f"{scope} > {node.id}", problems)
