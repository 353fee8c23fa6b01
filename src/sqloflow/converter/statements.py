"""Per-statement conversion into flow graph fragments."""

from typing import List, Optional

from sqloflow.converter.context import ConversionContext, FlowFragment
from sqloflow.converter.expressions import (
    expression_to_sql,
    group_by_to_sql,
    limit_to_sql,
    order_by_to_sql,
    select_list_to_sql,
)
from sqloflow.converter.from_clause import convert_cte, convert_from_clause
from sqloflow.converter.subquery import attach_subqueries
from sqloflow.converter.transformations import (
    add_relation,
    apply_group_by,
    apply_select,
    apply_union,
    discover_columns,
)
from sqloflow.errors import ConversionError
from sqloflow.ir.models import ColumnOrigin, ColumnSchema, NodeKind
from sqloflow.syntax.models import (
    CreateStatement,
    DeleteStatement,
    Expression,
    InsertStatement,
    OrderItem,
    SelectStatement,
    Statement,
    UpdateStatement,
)


def convert_statement(ctx: ConversionContext, statement: Statement) -> FlowFragment:
    """
    Convert one top-level statement.

    Args:
        ctx: Conversion context (reset for this statement by the caller)
        statement: Statement to convert

    Returns:
        Fragment with the statement's nodes and edges

    Raises:
        ConversionError: If the statement kind is not supported
    """
    if isinstance(statement, SelectStatement):
        return convert_select(ctx, statement)
    if isinstance(statement, UpdateStatement):
        return convert_update(ctx, statement)
    if isinstance(statement, InsertStatement):
        return convert_insert(ctx, statement)
    if isinstance(statement, DeleteStatement):
        return convert_delete(ctx, statement)
    if isinstance(statement, CreateStatement):
        return convert_create(ctx, statement)
    raise ConversionError(
        f"Unsupported statement type: {statement.type}", statement.type
    )


def convert_select(ctx: ConversionContext, stmt: SelectStatement) -> FlowFragment:
    """
    Convert a SELECT (and any set-operation chain hanging off it).

    Clauses are emitted in evaluation order: CTEs, FROM/JOIN, WHERE,
    GROUP BY, HAVING, SELECT, ORDER BY, LIMIT, then the set operation and
    the ORDER BY / LIMIT of the whole chain. A snapshot is captured after
    FROM, each JOIN, WHERE, GROUP BY, HAVING, SELECT and the set operation.
    """
    fragment = FlowFragment()
    ctx.relations = {}

    for cte in stmt.ctes:
        fragment.extend(convert_cte(ctx, cte))

    scope = ctx.enclosing_aliases + [item.reference_name for item in stmt.from_items]
    last: Optional[str] = None

    if stmt.from_items:
        from_fragment = convert_from_clause(ctx, stmt.from_items)
        fragment.extend(from_fragment)
        last = from_fragment.terminal

    if stmt.where is not None:
        where = ctx.create_node(
            NodeKind.CLAUSE, "WHERE", expression_to_sql(stmt.where, ctx)
        )
        fragment.nodes.append(where)
        ctx.link(fragment, last, where.id)
        last = where.id
        ctx.relations = discover_columns(
            ctx.relations, stmt.where, ctx.table_source_nodes
        )
        attach_subqueries(ctx, fragment, stmt.where, where.id, scope)
        ctx.capture(where.id)

    if stmt.group_by:
        group_by = ctx.create_node(
            NodeKind.OP, "GROUP BY", group_by_to_sql(stmt.group_by, ctx)
        )
        fragment.nodes.append(group_by)
        ctx.link(fragment, last, group_by.id)
        last = group_by.id
        ctx.relations = apply_group_by(
            ctx.relations, stmt.group_by, lambda e: expression_to_sql(e, ctx)
        )
        ctx.capture(group_by.id)

    if stmt.having is not None:
        having = ctx.create_node(
            NodeKind.CLAUSE, "HAVING", expression_to_sql(stmt.having, ctx)
        )
        fragment.nodes.append(having)
        ctx.link(fragment, last, having.id)
        last = having.id
        ctx.relations = discover_columns(
            ctx.relations, stmt.having, ctx.table_source_nodes
        )
        attach_subqueries(ctx, fragment, stmt.having, having.id, scope)
        ctx.capture(having.id)

    select = ctx.create_node(
        NodeKind.OP,
        "SELECT",
        select_list_to_sql(stmt.columns, ctx, distinct=stmt.distinct),
    )
    fragment.nodes.append(select)
    ctx.link(fragment, last, select.id)
    last = select.id
    for item in stmt.columns:
        attach_subqueries(ctx, fragment, item.expr, select.id, scope)
    ctx.relations = apply_select(
        ctx.relations, stmt.columns, lambda e: expression_to_sql(e, ctx)
    )
    ctx.capture(select.id)

    last = _order_and_limit(
        ctx, fragment, last, stmt.order_by, stmt.limit, stmt.offset, scope
    )

    if stmt.next is not None and stmt.set_op:
        left_state = ctx.relations
        set_op = stmt.set_op.upper()
        union = ctx.create_node(NodeKind.OP, set_op, set_op)
        fragment.nodes.append(union)
        ctx.link(fragment, last, union.id)

        right = convert_select(ctx, stmt.next)
        fragment.extend(right)
        ctx.link(fragment, right.terminal, union.id)

        ctx.relations = apply_union(left_state, ctx.relations)
        ctx.capture(union.id)
        last = _order_and_limit(
            ctx,
            fragment,
            union.id,
            stmt.set_order_by,
            stmt.set_limit,
            stmt.set_offset,
            scope,
        )

    fragment.terminal = last
    return fragment


def _order_and_limit(
    ctx: ConversionContext,
    fragment: FlowFragment,
    last: Optional[str],
    order_by: List[OrderItem],
    limit: Optional[Expression],
    offset: Optional[Expression],
    scope: List[str],
) -> Optional[str]:
    """Append ORDER BY and LIMIT steps after ``last``; return the new last step."""
    if order_by:
        order_node = ctx.create_node(
            NodeKind.OP, "ORDER BY", order_by_to_sql(order_by, ctx)
        )
        fragment.nodes.append(order_node)
        ctx.link(fragment, last, order_node.id)
        last = order_node.id
        for item in order_by:
            attach_subqueries(ctx, fragment, item.expr, order_node.id, scope)

    if limit is not None or offset is not None:
        limit_node = ctx.create_node(
            NodeKind.OP, "LIMIT", limit_to_sql(limit, offset, ctx)
        )
        fragment.nodes.append(limit_node)
        ctx.link(fragment, last, limit_node.id)
        last = limit_node.id

    return last


def convert_update(ctx: ConversionContext, stmt: UpdateStatement) -> FlowFragment:
    """UPDATE becomes an ``UPDATE`` op node, then a ``WHERE`` clause node."""
    assignments = ", ".join(
        f"{a.column} = {expression_to_sql(a.value, ctx)}" for a in stmt.assignments
    )
    sql = f"UPDATE {stmt.table}"
    if assignments:
        sql += f" SET {assignments}"
    fragment = _modification(
        ctx, "UPDATE", sql, stmt.table, stmt.alias, stmt.where
    )
    root = fragment.nodes[0].id
    scope = [stmt.alias or stmt.table]
    for assignment in stmt.assignments:
        attach_subqueries(ctx, fragment, assignment.value, root, scope)
    return fragment


def convert_delete(ctx: ConversionContext, stmt: DeleteStatement) -> FlowFragment:
    """DELETE becomes a ``DELETE`` op node, then a ``WHERE`` clause node."""
    return _modification(
        ctx, "DELETE", f"DELETE FROM {stmt.table}", stmt.table, stmt.alias, stmt.where
    )


def convert_insert(ctx: ConversionContext, stmt: InsertStatement) -> FlowFragment:
    """INSERT becomes a single ``INSERT`` op node."""
    sql = f"INSERT INTO {stmt.table}"
    if stmt.columns:
        sql += f" ({', '.join(stmt.columns)})"
    node = ctx.create_node(NodeKind.OP, "INSERT", sql)
    return FlowFragment(nodes=[node], terminal=node.id)


def convert_create(ctx: ConversionContext, stmt: CreateStatement) -> FlowFragment:
    """
    CREATE TABLE/VIEW ... AS SELECT: the query, then a materializing node.

    The ``CREATE TABLE`` (or ``CREATE VIEW``) node is fed by the query's
    terminal step and receives a snapshot of the query's result columns.
    Plain DDL produces no nodes; its columns are already in the catalog.
    """
    if stmt.query is None:
        return FlowFragment()

    fragment = convert_select(ctx, stmt.query)
    node = ctx.create_node(NodeKind.OP, f"CREATE {stmt.keyword.upper()}", stmt.table)
    fragment.nodes.append(node)
    ctx.link(fragment, fragment.terminal, node.id)
    ctx.capture(node.id)
    fragment.terminal = node.id
    return fragment


def _modification(
    ctx: ConversionContext,
    label: str,
    sql: str,
    table: str,
    alias: Optional[str],
    where: Optional[Expression],
) -> FlowFragment:
    root = ctx.create_node(NodeKind.OP, label, sql)
    fragment = FlowFragment(nodes=[root], terminal=root.id)

    reference = alias or table
    ctx.table_source_nodes[reference] = root.id
    columns = _target_columns(ctx, table, reference, root.id)
    ctx.relations = add_relation({}, reference, table, columns)
    ctx.capture(root.id)

    if where is not None:
        clause = ctx.create_node(
            NodeKind.CLAUSE, "WHERE", expression_to_sql(where, ctx)
        )
        fragment.nodes.append(clause)
        ctx.link(fragment, root.id, clause.id)
        ctx.relations = discover_columns(ctx.relations, where, ctx.table_source_nodes)
        attach_subqueries(ctx, fragment, where, clause.id, [reference])
        ctx.capture(clause.id)
        fragment.terminal = clause.id

    return fragment


def _target_columns(
    ctx: ConversionContext, table: str, reference: str, node_id: str
) -> List[ColumnSchema]:
    declared = ctx.catalog.get_table(table)
    if declared is None:
        return []
    return [
        ColumnSchema(
            id=f"{reference}.{column.name}",
            name=column.name,
            type=column.type,
            source=reference,
            table=declared.name,
            source_node_id=node_id,
            origin=ColumnOrigin.DECLARED,
        )
        for column in declared.columns
    ]
