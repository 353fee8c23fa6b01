"""Mutable state threaded through one conversion call."""

import itertools
from typing import Dict, Iterator, List, Optional, Union

from pydantic import BaseModel, Field

from sqloflow.converter.cache import ExpressionCache
from sqloflow.converter.transformations import SchemaState, capture_snapshot
from sqloflow.errors import WarningCallback
from sqloflow.ir.models import (
    ColumnSchema,
    Edge,
    EdgeEndpoint,
    EdgeKind,
    Node,
    NodeKind,
    SchemaSnapshot,
    SubqueryNode,
)
from sqloflow.schema.models import SchemaCatalog
from sqloflow.syntax.models import SubqueryExpr


class FlowFragment(BaseModel):
    """Nodes and edges produced by converting part of a statement.

    ``terminal`` is the id of the node whose output is the fragment's result
    (the last step of its flow), if any.
    """

    nodes: List[Union[SubqueryNode, Node]] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    terminal: Optional[str] = None

    def extend(self, other: "FlowFragment") -> None:
        self.nodes.extend(other.nodes)
        self.edges.extend(other.edges)


class ConversionContext:
    """Per-conversion state: id counters, schema state and snapshot log.

    A context is owned by exactly one conversion call. Subquery conversion
    works on a forked context that shares the read-only catalog, the
    subquery token counter and the expression cache, but has its own
    counters, snapshot log and placeholders.
    """

    def __init__(
        self,
        catalog: Optional[SchemaCatalog] = None,
        expression_cache: Optional[ExpressionCache] = None,
        on_warning: Optional[WarningCallback] = None,
        subquery_ids: Optional[Iterator[int]] = None,
        id_prefix: str = "",
    ):
        self.catalog = catalog or SchemaCatalog()
        self.expression_cache = expression_cache
        self.on_warning = on_warning
        self.subquery_ids = subquery_ids or itertools.count(1)
        self.id_prefix = id_prefix

        self._node_ids = itertools.count()
        self._edge_ids = itertools.count()

        self.relations: SchemaState = {}
        self.snapshots: List[SchemaSnapshot] = []
        self.cte_nodes: Dict[str, str] = {}
        self.cte_columns: Dict[str, List[ColumnSchema]] = {}
        self.table_source_nodes: Dict[str, str] = {}
        self.enclosing_aliases: List[str] = []

        self._placeholders: Dict[int, str] = {}
        # Keeps placeholder keys alive so id() values are never reused
        self._placeholder_exprs: List[SubqueryExpr] = []

    def next_node_id(self) -> str:
        return f"{self.id_prefix}node_{next(self._node_ids)}"

    def create_node(
        self, kind: NodeKind, label: str, sql: Optional[str] = None
    ) -> Node:
        return Node(id=self.next_node_id(), kind=kind, label=label, sql=sql)

    def create_edge(
        self,
        kind: EdgeKind,
        source: str,
        target: str,
        label: Optional[str] = None,
    ) -> Edge:
        return Edge(
            id=f"{self.id_prefix}edge_{next(self._edge_ids)}",
            kind=kind,
            from_=EdgeEndpoint(node=source),
            to=EdgeEndpoint(node=target),
            label=label,
        )

    def link(self, fragment: FlowFragment, source: Optional[str], target: str) -> None:
        """Append a flow edge to a fragment when there is a previous step."""
        if source is not None:
            fragment.edges.append(self.create_edge(EdgeKind.FLOW, source, target))

    def capture(self, node_id: str) -> SchemaSnapshot:
        """Append a snapshot of the current relations for a node."""
        snapshot = capture_snapshot(self.relations, node_id)
        self.snapshots.append(snapshot)
        return snapshot

    def snapshot_for(self, node_id: str) -> Optional[SchemaSnapshot]:
        for snapshot in self.snapshots:
            if snapshot.node_id == node_id:
                return snapshot
        return None

    def placeholder_for(self, expr: SubqueryExpr) -> str:
        """Stable placeholder text for a subquery: ``expr``, ``expr2``, ..."""
        key = id(expr)
        if key not in self._placeholders:
            count = len(self._placeholders) + 1
            self._placeholders[key] = "expr" if count == 1 else f"expr{count}"
            self._placeholder_exprs.append(expr)
        return self._placeholders[key]

    def warn(self, message: str) -> None:
        if self.on_warning is not None:
            self.on_warning(message)

    def begin_statement(self) -> None:
        """Reset per-statement state before converting a top-level statement."""
        self.relations = {}
        self.cte_nodes = {}
        self.cte_columns = {}
        self.table_source_nodes = {}
        self.enclosing_aliases = []
        self._placeholders = {}
        self._placeholder_exprs = []

    def fork(
        self, enclosing_aliases: List[str], id_prefix: str = ""
    ) -> "ConversionContext":
        """Create an isolated context for converting a subquery.

        Ids allocated by the child start from zero and carry ``id_prefix``.
        """
        child = ConversionContext(
            catalog=self.catalog,
            expression_cache=self.expression_cache,
            on_warning=self.on_warning,
            subquery_ids=self.subquery_ids,
            id_prefix=id_prefix,
        )
        # Outer CTEs stay resolvable by name; their nodes live in the outer graph
        child.cte_columns = dict(self.cte_columns)
        child.enclosing_aliases = list(enclosing_aliases)
        return child
