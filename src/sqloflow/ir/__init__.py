"""Flow graph intermediate representation for sqloflow."""

from sqloflow.ir.models import (
    ColumnOrigin,
    ColumnSchema,
    Edge,
    EdgeEndpoint,
    EdgeKind,
    Graph,
    Node,
    NodeKind,
    SchemaSnapshot,
    SnapshotSchema,
    SubqueryNode,
    SubqueryType,
)
from sqloflow.ir.serialization import flow_order, load_graph, save_graph, to_rustworkx
from sqloflow.ir.validation import validate_graph

__all__ = [
    # Models
    "ColumnOrigin",
    "ColumnSchema",
    "Edge",
    "EdgeEndpoint",
    "EdgeKind",
    "Graph",
    "Node",
    "NodeKind",
    "SchemaSnapshot",
    "SnapshotSchema",
    "SubqueryNode",
    "SubqueryType",
    # Serialization
    "flow_order",
    "load_graph",
    "save_graph",
    "to_rustworkx",
    # Validation
    "validate_graph",
]
