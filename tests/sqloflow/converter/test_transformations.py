"""Tests for schema state transitions."""

import pytest

from sqloflow.converter.expressions import expression_to_sql
from sqloflow.converter.transformations import (
    AGGREGATE,
    EXPRESSION,
    GROUPED,
    RESULT,
    UNQUALIFIED,
    RelationSchema,
    add_relation,
    apply_group_by,
    apply_select,
    apply_union,
    capture_snapshot,
    discover_columns,
    flatten,
    resolve_column,
)
from sqloflow.ir.models import ColumnOrigin, ColumnSchema
from sqloflow.syntax.models import (
    BinaryExpr,
    ColumnRef,
    FunctionCall,
    LiteralValue,
    SelectItem,
    Star,
)


def column(alias: str, name: str, type: str = None, table: str = None) -> ColumnSchema:
    return ColumnSchema(
        id=f"{alias}.{name}", name=name, type=type, source=alias, table=table or alias
    )


@pytest.fixture
def joined_state():
    """State after FROM users u JOIN orders o."""
    state = add_relation(
        {},
        "u",
        "users",
        [column("u", "id", "int", "users"), column("u", "name", "text", "users")],
    )
    return add_relation(
        state,
        "o",
        "orders",
        [
            column("o", "id", "int", "orders"),
            column("o", "user_id", "int", "orders"),
            column("o", "total", "decimal(10,2)", "orders"),
        ],
    )


class TestAddRelation:
    """Tests for add_relation."""

    def test_appends_relation(self, joined_state):
        """Test relations keep insertion order and all their columns."""
        assert list(joined_state) == ["u", "o"]
        assert len(flatten(joined_state)) == 5

    def test_does_not_mutate_input(self):
        """Test the prior state is left untouched."""
        state = {}
        add_relation(state, "t", "t", [])

        assert state == {}

    def test_duplicate_alias_gets_suffix(self):
        """Test a repeated alias is made distinct."""
        state = add_relation({}, "t", "t", [column("t", "a")])
        state = add_relation(state, "t", "t", [column("t", "a")])

        assert list(state) == ["t", "t_2"]
        assert state["t_2"].columns[0].source == "t_2"
        assert state["t_2"].columns[0].id == "t_2.a"


class TestDiscoverColumns:
    """Tests for discover_columns."""

    def test_qualified_reference(self):
        """Test qualified references are added to the named relation."""
        state = add_relation({}, "u", "users", [])
        expr = BinaryExpr(
            operator="=",
            left=ColumnRef(table="u", column="active"),
            right=LiteralValue(value=True, literal_type="boolean"),
        )

        result = discover_columns(state, expr, {"u": "node_0"})

        discovered = result["u"].columns[0]
        assert discovered.name == "active"
        assert discovered.source == "u"
        assert discovered.table == "users"
        assert discovered.source_node_id == "node_0"
        assert discovered.origin == ColumnOrigin.INFERRED
        assert state["u"].columns == []

    def test_unqualified_single_relation(self):
        """Test unqualified references go to the only relation."""
        state = add_relation({}, "users", "users", [])

        result = discover_columns(state, ColumnRef(column="email"))

        assert [c.name for c in result["users"].columns] == ["email"]

    def test_unqualified_ambiguous_kept_without_source(self, joined_state):
        """Test an unqualified reference with several candidates is synthesized."""
        result = discover_columns(joined_state, ColumnRef(column="status"))

        assert list(result) == ["u", "o", UNQUALIFIED]
        discovered = result[UNQUALIFIED].columns
        assert [c.name for c in discovered] == ["status"]
        assert discovered[0].source is None
        assert discovered[0].type is None
        assert discovered[0].origin == ColumnOrigin.INFERRED
        assert UNQUALIFIED not in joined_state

    def test_unqualified_reference_added_once(self, joined_state):
        """Test a repeated unqualified reference is synthesized once."""
        expr = BinaryExpr(
            operator="AND",
            left=ColumnRef(column="status"),
            right=ColumnRef(column="STATUS"),
        )

        result = discover_columns(joined_state, expr)

        assert len(result[UNQUALIFIED].columns) == 1

    def test_unqualified_without_relations(self):
        """Test references with no relation in scope are still synthesized."""
        result = discover_columns({}, ColumnRef(column="flag"))

        assert [c.name for c in flatten(result)] == ["flag"]

    def test_star_skips_unqualified_columns(self, joined_state):
        """Test SELECT * copies only the concrete relations."""
        state = discover_columns(joined_state, ColumnRef(column="status"))

        result = apply_select(state, [SelectItem(expr=Star())], str)

        assert len(result[RESULT].columns) == 5

    def test_select_resolves_unqualified_column(self, joined_state):
        """Test a projection finds a synthesized unqualified column."""
        state = discover_columns(joined_state, ColumnRef(column="status"))

        result = apply_select(
            state, [SelectItem(expr=ColumnRef(column="status"))], str
        )

        assert result[RESULT].columns[0].origin == ColumnOrigin.INFERRED

    def test_outer_reference_is_skipped(self, joined_state):
        """Test references to aliases outside the state are ignored."""
        result = discover_columns(joined_state, ColumnRef(table="c", column="id"))

        assert flatten(result) == flatten(joined_state)

    def test_known_column_not_duplicated(self, joined_state):
        """Test already visible columns are not added again."""
        result = discover_columns(joined_state, ColumnRef(table="u", column="ID"))

        assert len(result["u"].columns) == 2


class TestApplySelect:
    """Tests for apply_select and apply_group_by."""

    def test_star_after_join(self, joined_state):
        """Test * exposes every column of every joined relation."""
        result = apply_select(
            joined_state, [SelectItem(expr=Star())], expression_to_sql
        )

        columns = result[RESULT].columns
        assert [c.source for c in columns] == ["u", "u", "o", "o", "o"]
        assert [c.type for c in columns][-1] == "decimal(10,2)"

    def test_qualified_star(self, joined_state):
        """Test t.* exposes only that relation."""
        result = apply_select(
            joined_state, [SelectItem(expr=Star(table="o"))], expression_to_sql
        )

        assert [c.name for c in result[RESULT].columns] == ["id", "user_id", "total"]

    def test_column_alias_and_resolution(self, joined_state):
        """Test resolved columns keep type and source under their alias."""
        items = [SelectItem(expr=ColumnRef(table="u", column="id"), alias="user_id")]

        result = apply_select(joined_state, items, expression_to_sql)

        selected = result[RESULT].columns[0]
        assert selected.name == "user_id"
        assert selected.type == "int"
        assert selected.source == "u"

    def test_unresolved_column(self, joined_state):
        """Test unknown references become unresolved entries."""
        items = [SelectItem(expr=ColumnRef(table="u", column="missing"))]

        selected = apply_select(joined_state, items, expression_to_sql)[RESULT].columns[0]

        assert selected.origin == ColumnOrigin.UNRESOLVED
        assert selected.type is None
        assert selected.table == "users"

    def test_aggregate_and_expression(self, joined_state):
        """Test aggregates are numeric and other expressions untyped."""
        items = [
            SelectItem(
                expr=FunctionCall(name="COUNT", args=[Star()], aggregate=True)
            ),
            SelectItem(
                expr=BinaryExpr(
                    operator="+",
                    left=ColumnRef(column="total"),
                    right=LiteralValue(value=1, literal_type="number"),
                ),
                alias="plus_one",
            ),
        ]

        aggregate, expression = apply_select(joined_state, items, expression_to_sql)[
            RESULT
        ].columns

        assert aggregate.name == "COUNT(*)"
        assert aggregate.type == "numeric"
        assert aggregate.source == AGGREGATE
        assert expression.name == "plus_one"
        assert expression.type is None
        assert expression.source == EXPRESSION

    def test_group_by_then_select(self, joined_state):
        """Test grouping keys stay resolvable by their original qualifier."""
        grouped = apply_group_by(
            joined_state, [ColumnRef(table="u", column="name")], expression_to_sql
        )

        assert list(grouped) == [GROUPED]
        assert grouped[GROUPED].columns[0].source == "u"

        result = apply_select(
            grouped,
            [SelectItem(expr=ColumnRef(table="u", column="name"))],
            expression_to_sql,
        )
        assert result[RESULT].columns[0].type == "text"


class TestApplyUnion:
    """Tests for apply_union."""

    def test_positional_merge(self):
        """Test names come from the left and missing types from the right."""
        left = {RESULT: RelationSchema(name=RESULT, columns=[column("a", "x")])}
        right = {
            RESULT: RelationSchema(
                name=RESULT,
                columns=[column("b", "y", "int"), column("b", "z", "text")],
            )
        }

        merged = apply_union(left, right)[RESULT].columns

        assert [c.name for c in merged] == ["x", "z"]
        assert merged[0].type == "int"
        assert merged[0].source == "a"


class TestResolveAndSnapshot:
    """Tests for resolve_column and capture_snapshot."""

    def test_resolve_unqualified(self, joined_state):
        """Test unqualified names take the first visible match."""
        resolved = resolve_column(joined_state, ColumnRef(column="id"))

        assert resolved.source == "u"

    def test_snapshot_is_a_copy(self, joined_state):
        """Test a snapshot does not change when the state does."""
        snapshot = capture_snapshot(joined_state, "node_2")
        joined_state["u"].columns[0].type = "bigint"

        assert snapshot.node_id == "node_2"
        assert snapshot.columns[0].type == "int"
        assert len(snapshot.columns) == 5
