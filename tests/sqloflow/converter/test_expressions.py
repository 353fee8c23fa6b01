"""Tests for the expression printer and walkers."""

from sqloflow.converter.context import ConversionContext
from sqloflow.converter.expressions import (
    expression_to_sql,
    find_subqueries,
    iter_column_refs,
    limit_to_sql,
    order_by_to_sql,
    select_list_to_sql,
)
from sqloflow.syntax import parse_sql
from sqloflow.syntax.models import (
    BinaryExpr,
    ColumnRef,
    FunctionCall,
    IntervalExpr,
    LiteralValue,
    OrderItem,
    SelectItem,
    SelectStatement,
    Star,
    SubqueryExpr,
    UnaryExpr,
    UnknownExpr,
)


def col(name: str, table: str = None) -> ColumnRef:
    return ColumnRef(table=table, column=name)


def num(value) -> LiteralValue:
    return LiteralValue(value=value, literal_type="number")


def select_of(sql: str) -> SelectStatement:
    return parse_sql(sql)[0]


class TestExpressionToSql:
    """Tests for expression_to_sql."""

    def test_arithmetic(self):
        """Test a simple binary expression."""
        expr = BinaryExpr(operator="+", left=col("price"), right=num(10))

        assert expression_to_sql(expr) == "price + 10"

    def test_qualified_column(self):
        """Test qualified column references keep their qualifier."""
        assert expression_to_sql(col("id", "u")) == "u.id"

    def test_interval(self):
        """Test INTERVAL literal with unit."""
        expr = IntervalExpr(value=LiteralValue(value="30"), unit="DAY")

        assert expression_to_sql(expr) == "INTERVAL '30' DAY"

    def test_string_literal_escaping(self):
        """Test quotes inside string literals are doubled."""
        assert expression_to_sql(LiteralValue(value="O'Brien")) == "'O''Brien'"

    def test_null_and_boolean_literals(self):
        """Test NULL and boolean literals."""
        assert expression_to_sql(LiteralValue(literal_type="null")) == "NULL"
        assert (
            expression_to_sql(LiteralValue(value=False, literal_type="boolean"))
            == "FALSE"
        )

    def test_unknown_with_value(self):
        """Test unknown shapes print their raw SQL text."""
        assert expression_to_sql(UnknownExpr(value="CURRENT_DATE")) == "CURRENT_DATE"

    def test_unknown_without_value(self):
        """Test unknown shapes without text print the fallback."""
        assert expression_to_sql(UnknownExpr()) == "expr"

    def test_none_prints_empty(self):
        """Test a missing expression prints as empty text."""
        assert expression_to_sql(None) == ""

    def test_parenthesizes_lower_precedence(self):
        """Test lower precedence operands are wrapped in parentheses."""
        expr = BinaryExpr(
            operator="*",
            left=BinaryExpr(operator="+", left=col("a"), right=col("b")),
            right=col("c"),
        )

        assert expression_to_sql(expr) == "(a + b) * c"

    def test_right_nested_subtraction(self):
        """Test non-associative operators keep right-hand grouping."""
        expr = BinaryExpr(
            operator="-",
            left=col("a"),
            right=BinaryExpr(operator="-", left=col("b"), right=col("c")),
        )

        assert expression_to_sql(expr) == "a - (b - c)"

    def test_or_inside_and(self):
        """Test OR nested under AND is parenthesized."""
        where = select_of("SELECT 1 FROM t WHERE (a = 1 OR b = 2) AND c = 3").where

        assert expression_to_sql(where) == "(a = 1 OR b = 2) AND c = 3"

    def test_not_of_conjunction(self):
        """Test NOT over a conjunction keeps its parentheses."""
        expr = UnaryExpr(
            operator="NOT",
            operand=BinaryExpr(operator="AND", left=col("a"), right=col("b")),
        )

        assert expression_to_sql(expr) == "NOT (a AND b)"

    def test_between_and_in_list(self):
        """Test BETWEEN bounds and IN value lists."""
        where = select_of(
            "SELECT 1 FROM t WHERE x BETWEEN 1 AND 5 AND y IN ('a', 'b')"
        ).where

        assert expression_to_sql(where) == "x BETWEEN 1 AND 5 AND y IN ('a', 'b')"

    def test_function_with_distinct_and_window(self):
        """Test DISTINCT arguments and OVER clauses."""
        count = FunctionCall(
            name="count", args=[col("user_id")], distinct=True, aggregate=True
        )
        ranked = FunctionCall(name="RANK", over="ORDER BY score DESC")

        assert expression_to_sql(count) == "COUNT(DISTINCT user_id)"
        assert expression_to_sql(ranked) == "RANK() OVER (ORDER BY score DESC)"

    def test_case_expression(self):
        """Test CASE prints its branches."""
        expr = select_of(
            "SELECT CASE WHEN age > 18 THEN 'adult' ELSE 'minor' END FROM p"
        ).columns[0].expr

        assert (
            expression_to_sql(expr)
            == "CASE WHEN age > 18 THEN 'adult' ELSE 'minor' END"
        )

    def test_subquery_without_context(self):
        """Test subqueries print as the fallback without a context."""
        where = select_of(
            "SELECT 1 FROM users WHERE id IN (SELECT user_id FROM orders)"
        ).where

        assert expression_to_sql(where) == "id IN (expr)"

    def test_subquery_placeholders_are_stable(self):
        """Test each subquery keeps the placeholder it was first given."""
        ctx = ConversionContext()
        statement = select_of(
            "SELECT 1 FROM t WHERE a > (SELECT MAX(a) FROM t) "
            "AND EXISTS (SELECT 1 FROM s)"
        )

        first = expression_to_sql(statement.where, ctx)
        second = expression_to_sql(statement.where, ctx)

        assert first == "a > expr AND EXISTS (expr2)"
        assert second == first

    def test_printer_failure_degrades_to_fallback(self, mocker):
        """Test the printer reports a warning instead of raising."""
        warnings = []
        ctx = ConversionContext(on_warning=warnings.append)
        mocker.patch(
            "sqloflow.converter.expressions._print", side_effect=RuntimeError("boom")
        )

        assert expression_to_sql(col("a"), ctx) == "expr"
        assert "boom" in warnings[0]


class TestClauseText:
    """Tests for select list, ORDER BY and LIMIT text."""

    def test_select_list_aliases(self):
        """Test projections with and without aliases."""
        items = [
            SelectItem(expr=col("id"), alias="user_id"),
            SelectItem(
                expr=FunctionCall(
                    name="COALESCE", args=[col("name"), LiteralValue(value="Unknown")]
                ),
                alias="display_name",
            ),
        ]

        assert (
            select_list_to_sql(items)
            == "id AS user_id, COALESCE(name, 'Unknown') AS display_name"
        )

    def test_select_list_aggregates(self):
        """Test aggregate projections parsed from SQL."""
        statement = select_of(
            "SELECT COUNT(*), MAX(total_amount) AS max_total FROM orders"
        )

        assert (
            select_list_to_sql(statement.columns)
            == "COUNT(*), MAX(total_amount) AS max_total"
        )

    def test_select_distinct(self):
        """Test DISTINCT prefix."""
        items = [SelectItem(expr=col("city"))]

        assert select_list_to_sql(items, distinct=True) == "DISTINCT city"

    def test_order_by(self):
        """Test ORDER BY items carry their direction."""
        items = [OrderItem(expr=col("a")), OrderItem(expr=col("b"), direction="DESC")]

        assert order_by_to_sql(items) == "a ASC, b DESC"

    def test_limit_with_offset(self):
        """Test LIMIT and OFFSET text."""
        assert limit_to_sql(num(10)) == "10"
        assert limit_to_sql(num(10), num(20)) == "10 OFFSET 20"
        assert limit_to_sql(None, num(5)) == "ALL OFFSET 5"


class TestWalkers:
    """Tests for column and subquery walkers."""

    def test_iter_column_refs_skips_subqueries(self):
        """Test column references inside subqueries are not yielded."""
        where = select_of(
            "SELECT 1 FROM t WHERE t.a = 1 AND b IN (SELECT c FROM s WHERE s.d = 2)"
        ).where

        refs = [ref.qualified_name for ref in iter_column_refs(where)]

        assert refs == ["t.a", "b"]

    def test_find_subqueries_top_level_only(self):
        """Test only the outermost subqueries are returned."""
        where = select_of(
            "SELECT 1 FROM t WHERE a IN (SELECT b FROM s WHERE b > (SELECT 1))"
        ).where

        found = find_subqueries(where)

        assert len(found) == 1
        assert isinstance(found[0], SubqueryExpr)
        assert found[0].subquery_type == "in"

    def test_star_has_no_column_refs(self):
        """Test a star yields no references."""
        assert list(iter_column_refs(Star())) == []
