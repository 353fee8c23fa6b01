"""Schema state transitions applied by each relational operator.

Every function here is pure: it takes the prior schema state plus the
operator's syntax fragment and returns a new state, leaving its inputs
untouched. The converter captures a snapshot right after each transition.
"""

from typing import Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from sqloflow.converter.expressions import is_aggregate, iter_column_refs
from sqloflow.ir.models import ColumnOrigin, ColumnSchema, SchemaSnapshot, SnapshotSchema
from sqloflow.syntax.models import ColumnRef, Expression, SelectItem, Star

GROUPED = "_grouped"
RESULT = "_result"
AGGREGATE = "_aggregate"
EXPRESSION = "_expression"
UNQUALIFIED = "_unqualified"

SYNTHETIC_RELATIONS = frozenset({GROUPED, RESULT, UNQUALIFIED})

ExpressionPrinter = Callable[[Expression], str]


class RelationSchema(BaseModel):
    """Columns visible under one relation name (alias, CTE or synthetic)."""

    name: str = Field(..., description="Relation alias, or a synthetic name")
    table: Optional[str] = Field(None, description="Underlying table or CTE name")
    columns: List[ColumnSchema] = Field(default_factory=list)

    @property
    def synthetic(self) -> bool:
        return self.name in SYNTHETIC_RELATIONS


# Ordered alias -> relation mapping
SchemaState = Dict[str, RelationSchema]


def flatten(state: Mapping[str, RelationSchema]) -> List[ColumnSchema]:
    """Flat list of every visible column, in relation order."""
    return [column for relation in state.values() for column in relation.columns]


def find_relation(state: Mapping[str, RelationSchema], name: str) -> Optional[str]:
    """Return the state key matching a relation name, case-insensitively."""
    if name in state:
        return name
    lowered = name.lower()
    for key in state:
        if key.lower() == lowered:
            return key
    return None


def add_relation(
    state: Mapping[str, RelationSchema],
    alias: str,
    table: Optional[str],
    columns: List[ColumnSchema],
) -> SchemaState:
    """
    Add a FROM/JOIN relation to the state.

    Existing relations keep all their columns. A repeated alias is made
    distinct by appending a numeric suffix.

    Args:
        state: Prior schema state
        alias: Name the query uses for the relation
        table: Underlying table (or CTE) name
        columns: Columns exposed by the relation

    Returns:
        New schema state with the relation appended
    """
    key = alias
    suffix = 2
    while find_relation(state, key) is not None:
        key = f"{alias}_{suffix}"
        suffix += 1

    if key != alias:
        columns = [
            column.model_copy(update={"id": f"{key}.{column.name}", "source": key})
            for column in columns
        ]

    new_state = dict(state)
    new_state[key] = RelationSchema(name=key, table=table, columns=list(columns))
    return new_state


def discover_columns(
    state: Mapping[str, RelationSchema],
    expr: Optional[Expression],
    source_nodes: Optional[Mapping[str, str]] = None,
) -> SchemaState:
    """
    Add columns referenced by a WHERE/HAVING/ON expression but not yet known.

    Qualified references are added to the relation they name; references to
    an alias that is not part of the state (outer-query references) are left
    alone. An unqualified reference is attributed to the only non-synthetic
    relation; with zero or several candidates it is kept, without a source,
    in the synthetic `_unqualified` relation. Column references inside
    subqueries are not considered.

    Args:
        state: Prior schema state
        expr: Expression to scan
        source_nodes: Alias -> id of the node that introduced the alias

    Returns:
        New schema state including the discovered columns
    """
    new_state = dict(state)
    if expr is None:
        return new_state
    source_nodes = source_nodes or {}

    for ref in iter_column_refs(expr):
        if ref.table:
            key = find_relation(new_state, ref.table)
            if key is None:
                continue
        else:
            if _has_column(flatten(new_state), ref.column):
                continue
            candidates = [k for k, r in new_state.items() if not r.synthetic]
            if len(candidates) != 1:
                new_state = _add_unqualified(new_state, ref.column)
                continue
            key = candidates[0]

        relation = new_state[key]
        if _has_column(relation.columns, ref.column):
            continue

        discovered = ColumnSchema(
            id=f"{key}.{ref.column}",
            name=ref.column,
            source=key,
            table=relation.table,
            source_node_id=source_nodes.get(key),
            origin=ColumnOrigin.INFERRED,
        )
        new_state[key] = relation.model_copy(
            update={"columns": relation.columns + [discovered]}
        )

    return new_state


def resolve_column(
    state: Mapping[str, RelationSchema], ref: ColumnRef
) -> Optional[ColumnSchema]:
    """
    Find the visible column a reference points to.

    Qualified references match the named relation, or any column whose
    ``source`` is that alias (columns keep their source after GROUP BY).
    Unqualified references match the first column with that name.
    """
    name = ref.column.lower()
    if ref.table:
        key = find_relation(state, ref.table)
        if key is not None:
            for column in state[key].columns:
                if column.name.lower() == name:
                    return column
        qualifier = ref.table.lower()
        for column in flatten(state):
            if (
                column.source is not None
                and column.source.lower() == qualifier
                and column.name.lower() == name
            ):
                return column
        return None

    for column in flatten(state):
        if column.name.lower() == name:
            return column
    return None


def apply_group_by(
    state: Mapping[str, RelationSchema],
    expressions: List[Expression],
    print_expr: ExpressionPrinter,
) -> SchemaState:
    """Collapse the state into a `_grouped` relation of the grouping keys."""
    columns: List[ColumnSchema] = []
    for expr in expressions:
        if isinstance(expr, ColumnRef):
            resolved = resolve_column(state, expr)
            if resolved is not None:
                columns.append(resolved.model_copy(update={"id": expr.qualified_name}))
            else:
                columns.append(_unresolved(state, expr, expr.column))
        else:
            text = print_expr(expr)
            columns.append(
                ColumnSchema(
                    id=text,
                    name=text,
                    source=EXPRESSION,
                    origin=ColumnOrigin.DERIVED,
                )
            )
    return {GROUPED: RelationSchema(name=GROUPED, columns=columns)}


def apply_select(
    state: Mapping[str, RelationSchema],
    items: List[SelectItem],
    print_expr: ExpressionPrinter,
) -> SchemaState:
    """
    Collapse the state into a `_result` relation of the projection.

    ``*`` copies every column of every non-synthetic relation (or of the
    synthetic ones when nothing else is left) and ``t.*`` copies the columns
    of ``t``. Column references resolve through the state; unresolved ones
    become untyped ``unresolved`` entries. Aggregates produce a numeric
    ``_aggregate`` column and any other expression an untyped
    ``_expression`` column.

    Args:
        state: Schema state after FROM/WHERE/GROUP BY/HAVING
        items: Select list
        print_expr: Printer used to name unaliased expressions

    Returns:
        New schema state holding only the `_result` relation
    """
    concrete = [r for r in state.values() if not r.synthetic] or list(state.values())
    columns: List[ColumnSchema] = []

    for item in items:
        expr = item.expr
        if isinstance(expr, Star):
            if expr.table:
                key = find_relation(state, expr.table)
                source = state[key].columns if key is not None else []
            else:
                source = [c for relation in concrete for c in relation.columns]
            columns.extend(column.model_copy() for column in source)
            continue

        if isinstance(expr, ColumnRef):
            name = item.alias or expr.column
            resolved = resolve_column(state, expr)
            if resolved is not None:
                columns.append(resolved.model_copy(update={"id": name, "name": name}))
            else:
                columns.append(_unresolved(state, expr, name))
            continue

        name = item.alias or print_expr(expr)
        if is_aggregate(expr):
            columns.append(
                ColumnSchema(
                    id=name,
                    name=name,
                    type="numeric",
                    source=AGGREGATE,
                    origin=ColumnOrigin.DERIVED,
                )
            )
        else:
            columns.append(
                ColumnSchema(
                    id=name,
                    name=name,
                    source=EXPRESSION,
                    origin=ColumnOrigin.DERIVED,
                )
            )

    return {RESULT: RelationSchema(name=RESULT, columns=columns)}


def apply_union(
    left: Mapping[str, RelationSchema], right: Mapping[str, RelationSchema]
) -> SchemaState:
    """
    Merge the final schemas of two set-operation branches.

    Columns are matched by position. Names and sources come from the left
    branch; a type missing on the left is taken from the right. Extra
    right-hand columns are appended as they are.
    """
    left_columns = flatten(left)
    right_columns = flatten(right)
    merged: List[ColumnSchema] = []

    for index in range(max(len(left_columns), len(right_columns))):
        if index >= len(left_columns):
            merged.append(right_columns[index].model_copy())
            continue
        column = left_columns[index]
        if column.type is None and index < len(right_columns):
            column = column.model_copy(update={"type": right_columns[index].type})
        else:
            column = column.model_copy()
        merged.append(column)

    return {RESULT: RelationSchema(name=RESULT, columns=merged)}


def capture_snapshot(
    state: Mapping[str, RelationSchema], node_id: str
) -> SchemaSnapshot:
    """Freeze the current state as the snapshot of a node."""
    return SchemaSnapshot(
        node_id=node_id,
        schema=SnapshotSchema(
            columns=[column.model_copy(deep=True) for column in flatten(state)]
        ),
    )


def _has_column(columns: List[ColumnSchema], name: str) -> bool:
    lowered = name.lower()
    return any(column.name.lower() == lowered for column in columns)


def _add_unqualified(state: SchemaState, name: str) -> SchemaState:
    relation = state.get(UNQUALIFIED) or RelationSchema(name=UNQUALIFIED)
    discovered = ColumnSchema(id=name, name=name, origin=ColumnOrigin.INFERRED)
    state[UNQUALIFIED] = relation.model_copy(
        update={"columns": relation.columns + [discovered]}
    )
    return state


def _unresolved(
    state: Mapping[str, RelationSchema], ref: ColumnRef, name: str
) -> ColumnSchema:
    key = find_relation(state, ref.table) if ref.table else None
    return ColumnSchema(
        id=name,
        name=name,
        source=ref.table,
        table=state[key].table if key is not None else None,
        origin=ColumnOrigin.UNRESOLVED,
    )
