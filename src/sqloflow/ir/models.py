"""Pydantic models for the flow graph intermediate representation.

Python field names are snake_case; the serialized (by-alias) form uses the
camelCase names renderers expect (``nodeId``, ``sourceNodeId``, ``from``...).
"""

from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class NodeKind(str, Enum):
    """Kind of a graph node."""

    OP = "op"
    CLAUSE = "clause"
    RELATION = "relation"
    SUBQUERY = "subquery"


class EdgeKind(str, Enum):
    """Kind of a graph edge."""

    FLOW = "flow"
    USES = "uses"
    DEFINES = "defines"
    MAPS_TO = "mapsTo"
    SUBQUERY_RESULT = "subqueryResult"
    CORRELATION = "correlation"


class SubqueryType(str, Enum):
    """How a subquery's result is consumed by its enclosing clause."""

    SCALAR = "scalar"
    IN = "in"
    EXISTS = "exists"


class ColumnOrigin(str, Enum):
    """How a column became known to the converter."""

    DECLARED = "declared"  # CREATE TABLE catalog or CTE output
    INFERRED = "inferred"  # discovered from WHERE/ON/HAVING/USING usage
    DERIVED = "derived"  # aggregate or expression result
    UNRESOLVED = "unresolved"  # projection that matched no visible column


class IRModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ColumnSchema(IRModel):
    """A column visible at some point of the flow."""

    id: str = Field(..., description="Column identifier (e.g. 'u.id')")
    name: str = Field(..., description="Column name as exposed downstream")
    type: Optional[str] = Field(None, description="Normalized SQL type, if known")
    source: Optional[str] = Field(
        None, description="Relation alias currently exposing the column"
    )
    table: Optional[str] = Field(None, description="Underlying physical table name")
    source_node_id: Optional[str] = Field(
        None,
        alias="sourceNodeId",
        description="Node where the column first became visible",
    )
    origin: ColumnOrigin = ColumnOrigin.DECLARED


class SnapshotSchema(IRModel):
    columns: List[ColumnSchema] = Field(default_factory=list)


class SchemaSnapshot(IRModel):
    """Schema state captured right after a node's operator was applied."""

    node_id: str = Field(..., alias="nodeId")
    schema_: SnapshotSchema = Field(default_factory=SnapshotSchema, alias="schema")

    @property
    def columns(self) -> List[ColumnSchema]:
        return self.schema_.columns


class EdgeEndpoint(IRModel):
    node: str
    handle: Optional[str] = None


class Node(IRModel):
    """A step of the flow: an operator, clause, relation or subquery."""

    id: str
    kind: NodeKind
    label: str
    sql: Optional[str] = None
    meta: Optional[Dict[str, Any]] = None


class SubqueryNode(Node):
    """A nested SELECT with its own independent inner graph."""

    kind: NodeKind = NodeKind.SUBQUERY
    subquery_type: SubqueryType = Field(..., alias="subqueryType")
    inner_graph: Optional["Graph"] = Field(None, alias="innerGraph")
    correlated_fields: Optional[List[str]] = Field(
        None,
        alias="correlatedFields",
        description="Outer-scope references as 'alias.column'; absent when independent",
    )


class Edge(IRModel):
    id: str
    kind: EdgeKind
    from_: EdgeEndpoint = Field(..., alias="from")
    to: EdgeEndpoint
    label: Optional[str] = None

    @property
    def source(self) -> str:
        return self.from_.node

    @property
    def target(self) -> str:
        return self.to.node


class Graph(IRModel):
    """Nodes, edges and schema snapshots produced by one conversion call."""

    nodes: List[Union[SubqueryNode, Node]] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    snapshots: List[SchemaSnapshot] = Field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[Node]:
        """Return the node with the given id, or None."""
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def find_nodes(
        self, kind: Optional[NodeKind] = None, label: Optional[str] = None
    ) -> List[Node]:
        """Return nodes matching the given kind and/or label, in insertion order."""
        return [
            node
            for node in self.nodes
            if (kind is None or node.kind == kind)
            and (label is None or node.label == label)
        ]

    def subquery_nodes(self) -> List[SubqueryNode]:
        return [node for node in self.nodes if isinstance(node, SubqueryNode)]

    def snapshot_for(self, node_id: str) -> Optional[SchemaSnapshot]:
        """Return the snapshot captured for a node, or None."""
        for snapshot in self.snapshots:
            if snapshot.node_id == node_id:
                return snapshot
        return None

    def outgoing(self, node_id: str, kind: Optional[EdgeKind] = None) -> List[Edge]:
        return [
            edge
            for edge in self.edges
            if edge.source == node_id and (kind is None or edge.kind == kind)
        ]

    def incoming(self, node_id: str, kind: Optional[EdgeKind] = None) -> List[Edge]:
        return [
            edge
            for edge in self.edges
            if edge.target == node_id and (kind is None or edge.kind == kind)
        ]

    def to_dict(self) -> Dict[str, Any]:
        """Dump using the camelCase wire names, omitting unset optionals."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(indent=indent, by_alias=True, exclude_none=True)


SubqueryNode.model_rebuild()
Graph.model_rebuild()
