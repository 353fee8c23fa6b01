"""FROM/JOIN chain, CTE and derived-table conversion."""

from typing import List, Optional, Tuple

from sqloflow.converter.context import ConversionContext, FlowFragment
from sqloflow.converter.expressions import expression_to_sql
from sqloflow.converter.subquery import attach_subqueries
from sqloflow.converter.transformations import add_relation, discover_columns
from sqloflow.ir.models import (
    ColumnOrigin,
    ColumnSchema,
    EdgeKind,
    NodeKind,
    SchemaSnapshot,
)
from sqloflow.syntax.models import (
    ColumnRef,
    CommonTableExpr,
    ExprList,
    FromItem,
    SelectStatement,
)


def table_label(item: FromItem) -> str:
    """Display text of a FROM entry, e.g. ``users AS u``."""
    name = "(...)" if item.subquery is not None else item.qualified_table
    if item.alias and (item.subquery is not None or item.alias != item.table):
        return f"{name} AS {item.alias}"
    return name


def convert_cte(ctx: ConversionContext, cte: CommonTableExpr) -> FlowFragment:
    """
    Convert a CTE body and register the CTE by name.

    The body becomes an ordinary SELECT flow whose terminal node ``defines``
    a ``CTE: <name>`` relation node. The columns of the body's final snapshot
    become the CTE's exposed columns (renamed by an explicit column list).
    """
    fragment, node_id, columns = _convert_named_body(
        ctx,
        cte.query,
        name=cte.name,
        label=f"CTE: {cte.name}",
        sql=f"WITH {cte.name} AS (...)",
        renames=cte.columns,
    )
    ctx.cte_nodes[cte.name.lower()] = node_id
    ctx.cte_columns[cte.name.lower()] = columns
    return fragment


def convert_from_clause(
    ctx: ConversionContext, items: List[FromItem]
) -> FlowFragment:
    """
    Convert a FROM list into a FROM node followed by a chain of joins.

    The first entry becomes the ``FROM`` op node. Every further entry adds a
    ``relation`` node for the joined table and a ``<JOIN TYPE>`` op node fed
    by both the current root and that relation node. A snapshot is captured
    after the FROM node and after every join.

    Args:
        ctx: Conversion context
        items: FROM entries in source order

    Returns:
        Fragment whose terminal is the last FROM/JOIN node
    """
    fragment = FlowFragment()
    root: Optional[str] = None
    previous_alias: Optional[str] = None

    for index, item in enumerate(items):
        alias = item.reference_name
        upstream: Optional[str] = None
        derived_columns: Optional[List[ColumnSchema]] = None
        is_cte = item.subquery is None and item.db is None and (
            item.table.lower() in ctx.cte_nodes
        )

        if item.subquery is not None:
            derived, upstream, derived_columns = _convert_named_body(
                ctx,
                item.subquery,
                name=alias,
                label=f"Derived table: {alias}",
                sql=table_label(item),
            )
            fragment.extend(derived)
        elif is_cte:
            upstream = ctx.cte_nodes[item.table.lower()]

        if index == 0:
            step = ctx.create_node(NodeKind.OP, "FROM", f"FROM {table_label(item)}")
            fragment.nodes.append(step)
            ctx.link(fragment, upstream, step.id)
            source_node = step.id
            ctx.relations = {}
        else:
            join_type = item.join or "CROSS JOIN"
            relation = ctx.create_node(
                NodeKind.RELATION,
                f"WITH {item.table}" if is_cte else table_label(item),
                table_label(item),
            )
            step = ctx.create_node(NodeKind.OP, join_type, _join_sql(ctx, item))
            fragment.nodes.extend([relation, step])
            ctx.link(fragment, root, step.id)
            ctx.link(fragment, relation.id, step.id)
            ctx.link(fragment, upstream, relation.id)
            source_node = relation.id

        ctx.table_source_nodes[alias] = source_node
        if derived_columns is not None:
            columns = [
                c.model_copy(update={"id": f"{alias}.{c.name}", "source": alias})
                for c in derived_columns
            ]
            table = alias
        else:
            columns, table = _relation_columns(ctx, item, alias, source_node)
        ctx.relations = add_relation(ctx.relations, alias, table, columns)

        if index > 0:
            if item.on is not None:
                ctx.relations = discover_columns(
                    ctx.relations, item.on, ctx.table_source_nodes
                )
            if item.using:
                refs = []
                for column in item.using:
                    if previous_alias is not None:
                        refs.append(ColumnRef(table=previous_alias, column=column))
                    refs.append(ColumnRef(table=alias, column=column))
                ctx.relations = discover_columns(
                    ctx.relations, ExprList(items=refs), ctx.table_source_nodes
                )
            scope = ctx.enclosing_aliases + [i.reference_name for i in items[: index + 1]]
            attach_subqueries(ctx, fragment, item.on, step.id, scope)

        ctx.capture(step.id)
        root = step.id
        previous_alias = alias

    fragment.terminal = root
    return fragment


def _join_sql(ctx: ConversionContext, item: FromItem) -> str:
    text = f"{item.join or 'CROSS JOIN'} {table_label(item)}"
    if item.on is not None:
        text += f" ON {expression_to_sql(item.on, ctx)}"
    elif item.using:
        text += f" USING ({', '.join(item.using)})"
    return text


def _relation_columns(
    ctx: ConversionContext, item: FromItem, alias: str, node_id: str
) -> Tuple[List[ColumnSchema], str]:
    """Columns a table or CTE reference exposes under its alias."""
    key = item.table.lower()
    if item.db is None and key in ctx.cte_columns:
        columns = [
            column.model_copy(
                update={"id": f"{alias}.{column.name}", "source": alias}
            )
            for column in ctx.cte_columns[key]
        ]
        return columns, item.table

    table = ctx.catalog.get_table(item.qualified_table)
    if table is None:
        return [], item.qualified_table

    columns = [
        ColumnSchema(
            id=f"{alias}.{column.name}",
            name=column.name,
            type=column.type,
            source=alias,
            table=table.name,
            source_node_id=node_id,
            origin=ColumnOrigin.DECLARED,
        )
        for column in table.columns
    ]
    return columns, table.name


def _convert_named_body(
    ctx: ConversionContext,
    query: SelectStatement,
    name: str,
    label: str,
    sql: str,
    renames: Optional[List[str]] = None,
) -> Tuple[FlowFragment, str, List[ColumnSchema]]:
    # Imported here because SELECT conversion recurses into this module
    from sqloflow.converter.statements import convert_select

    saved_relations = ctx.relations
    saved_sources = dict(ctx.table_source_nodes)
    first_snapshot = len(ctx.snapshots)

    body = convert_select(ctx, query)
    node = ctx.create_node(NodeKind.RELATION, label, sql)
    fragment = FlowFragment(nodes=body.nodes + [node], edges=list(body.edges))
    if body.terminal is not None:
        fragment.edges.append(
            ctx.create_edge(EdgeKind.DEFINES, body.terminal, node.id)
        )
    fragment.terminal = node.id

    columns = _exposed_columns(
        ctx.snapshots[first_snapshot:], name, node.id, renames or []
    )

    ctx.relations = saved_relations
    ctx.table_source_nodes = saved_sources
    return fragment, node.id, columns


def _exposed_columns(
    snapshots: List[SchemaSnapshot],
    name: str,
    node_id: str,
    renames: List[str],
) -> List[ColumnSchema]:
    if not snapshots:
        return []
    exposed = []
    for index, column in enumerate(snapshots[-1].columns):
        column_name = renames[index] if index < len(renames) else column.name
        exposed.append(
            ColumnSchema(
                id=f"{name}.{column_name}",
                name=column_name,
                type=column.type,
                source=name,
                table=name,
                source_node_id=node_id,
                origin=ColumnOrigin.DECLARED,
            )
        )
    return exposed
