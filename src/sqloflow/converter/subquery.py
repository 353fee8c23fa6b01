"""Conversion of nested SELECTs into subquery nodes with inner graphs."""

from typing import List, Optional, Set

from sqloflow.converter.context import ConversionContext, FlowFragment
from sqloflow.converter.expressions import find_subqueries, iter_column_refs
from sqloflow.ir.models import EdgeKind, Graph, SubqueryNode, SubqueryType
from sqloflow.syntax.models import Expression, SelectStatement, SubqueryExpr


def convert_subquery(
    ctx: ConversionContext,
    subquery: SubqueryExpr,
    enclosing_aliases: List[str],
) -> SubqueryNode:
    """
    Convert a subquery into a SubqueryNode carrying its own inner graph.

    The body is converted on a forked context whose node and edge ids carry
    a ``subq_<n>_`` token, unique for the whole conversion and appended to
    the enclosing context's own prefix, so the inner graph can be flattened
    into any outer graph without collisions. Anchors that point at outer
    nodes (columns of an enclosing CTE) keep their outer ids.

    Args:
        ctx: Context of the enclosing query
        subquery: Subquery expression to convert
        enclosing_aliases: FROM aliases of every enclosing query scope

    Returns:
        The SubqueryNode (not yet connected to its consumer)
    """
    # Imported here because SELECT conversion recurses into this module
    from sqloflow.converter.statements import convert_select

    token = f"{ctx.id_prefix}subq_{next(ctx.subquery_ids)}_"
    child = ctx.fork(enclosing_aliases, id_prefix=token)
    fragment = convert_select(child, subquery.query)

    inner_graph = Graph(
        nodes=fragment.nodes, edges=fragment.edges, snapshots=child.snapshots
    )
    correlated = detect_correlated_fields(subquery.query, enclosing_aliases)
    subquery_type = SubqueryType(subquery.subquery_type)

    return SubqueryNode(
        id=ctx.next_node_id(),
        label=f"Subquery ({subquery_type.value})",
        sql=subquery.query.sql,
        subquery_type=subquery_type,
        inner_graph=inner_graph,
        correlated_fields=correlated or None,
    )


def attach_subqueries(
    ctx: ConversionContext,
    fragment: FlowFragment,
    expr: Optional[Expression],
    consumer_id: str,
    enclosing_aliases: List[str],
) -> None:
    """
    Convert each top-level subquery of an expression and wire it up.

    Adds a ``subqueryResult`` edge into the consuming node, labeled with the
    placeholder the expression text uses for that subquery, plus one
    ``correlation`` edge from the node that introduced each correlated alias.
    Only aliases of this scope get an edge: a reference that skips a level
    is already listed on the enclosing subquery node, which is where the
    enclosing scope draws it, since an edge must stay inside one graph.
    """
    for subquery in find_subqueries(expr):
        node = convert_subquery(ctx, subquery, enclosing_aliases)
        fragment.nodes.append(node)
        fragment.edges.append(
            ctx.create_edge(
                EdgeKind.SUBQUERY_RESULT,
                node.id,
                consumer_id,
                label=ctx.placeholder_for(subquery),
            )
        )
        for field in node.correlated_fields or []:
            alias = field.split(".", 1)[0].lower()
            for name, source_id in ctx.table_source_nodes.items():
                if name.lower() == alias:
                    fragment.edges.append(
                        ctx.create_edge(
                            EdgeKind.CORRELATION, source_id, node.id, label=field
                        )
                    )
                    break


def detect_correlated_fields(
    query: SelectStatement, enclosing_aliases: List[str]
) -> List[str]:
    """
    Collect ``alias.column`` references a query makes to enclosing scopes.

    Scans WHERE, HAVING, the select list, GROUP BY, ORDER BY and JOIN ON
    conditions of every set-operation branch, and descends into nested
    subqueries. An alias declared in the query's own FROM list shadows an
    enclosing alias of the same name.

    Args:
        query: Subquery body
        enclosing_aliases: FROM aliases visible from enclosing queries

    Returns:
        Distinct qualified references, in source order
    """
    found: List[str] = []
    _collect_correlations(query, {alias.lower() for alias in enclosing_aliases}, found)
    return found


def _collect_correlations(
    query: SelectStatement, outer: Set[str], found: List[str]
) -> None:
    branch: Optional[SelectStatement] = query
    while branch is not None:
        local = {item.reference_name.lower() for item in branch.from_items}
        visible = outer - local

        for expr in _scanned_expressions(branch):
            for ref in iter_column_refs(expr):
                if ref.table and ref.table.lower() in visible:
                    field = f"{ref.table}.{ref.column}"
                    if field not in found:
                        found.append(field)
            for nested in find_subqueries(expr):
                _collect_correlations(nested.query, visible, found)

        branch = branch.next


def _scanned_expressions(query: SelectStatement) -> List[Expression]:
    expressions: List[Expression] = [item.expr for item in query.columns]
    expressions.extend(item.on for item in query.from_items if item.on is not None)
    if query.where is not None:
        expressions.append(query.where)
    expressions.extend(query.group_by)
    if query.having is not None:
        expressions.append(query.having)
    expressions.extend(item.expr for item in query.order_by)
    expressions.extend(item.expr for item in query.set_order_by)
    return expressions
