"""Serialization and rustworkx conversion for flow graphs."""

from pathlib import Path
from typing import Dict, List, Optional, Tuple

import rustworkx as rx

from sqloflow.ir.models import EdgeKind, Graph


def save_graph(graph: Graph, output_path: Path) -> None:
    """
    Save a Graph to a JSON file.

    Args:
        graph: Graph to save
        output_path: Output file path
    """
    output_path.write_text(graph.to_json(indent=2), encoding="utf-8")


def load_graph(input_path: Path) -> Graph:
    """
    Load a Graph from a JSON file.

    Args:
        input_path: Input file path

    Returns:
        Loaded Graph

    Raises:
        FileNotFoundError: If input file doesn't exist
        ValueError: If file content is invalid JSON or doesn't match schema
    """
    if not input_path.exists():
        raise FileNotFoundError(f"Graph file not found: {input_path}")

    content = input_path.read_text(encoding="utf-8")
    return Graph.model_validate_json(content)


def to_rustworkx(
    graph: Graph, edge_kind: Optional[EdgeKind] = None
) -> Tuple[rx.PyDiGraph, Dict[str, int]]:
    """
    Convert a Graph to a rustworkx PyDiGraph.

    Inner graphs of subquery nodes are not flattened; only the top-level
    nodes and edges are included.

    Args:
        graph: Graph to convert
        edge_kind: If given, only edges of this kind are added

    Returns:
        Tuple of (PyDiGraph, node_id_to_index_map)
    """
    rx_graph: rx.PyDiGraph = rx.PyDiGraph()
    node_map: Dict[str, int] = {}

    for node in graph.nodes:
        node_map[node.id] = rx_graph.add_node(node.id)

    for edge in graph.edges:
        if edge_kind is not None and edge.kind != edge_kind:
            continue
        source_idx = node_map.get(edge.source)
        target_idx = node_map.get(edge.target)
        if source_idx is not None and target_idx is not None:
            rx_graph.add_edge(source_idx, target_idx, edge.id)

    return rx_graph, node_map


def flow_order(graph: Graph) -> List[str]:
    """Return node ids in topological order of the flow edges.

    Ties are broken by insertion order.
    """
    rx_graph, node_map = to_rustworkx(graph, edge_kind=EdgeKind.FLOW)
    return list(
        rx.lexicographical_topological_sort(
            rx_graph, key=lambda node_id: f"{node_map[node_id]:08d}"
        )
    )
