"""Display-text printer and walkers for syntax expressions."""

from typing import TYPE_CHECKING, Iterator, List, Optional

from sqloflow.syntax.models import (
    BinaryExpr,
    CaseExpr,
    CastExpr,
    ColumnRef,
    Expression,
    ExprList,
    FunctionCall,
    IntervalExpr,
    LiteralValue,
    OrderItem,
    SelectItem,
    Star,
    SubqueryExpr,
    UnaryExpr,
    UnknownExpr,
)

if TYPE_CHECKING:
    from sqloflow.converter.context import ConversionContext

FALLBACK_TEXT = "expr"

# Binding strength of binary operators; higher binds tighter
PRECEDENCE = {
    "OR": 1,
    "AND": 2,
    "=": 4,
    "<>": 4,
    "!=": 4,
    "<": 4,
    "<=": 4,
    ">": 4,
    ">=": 4,
    "LIKE": 4,
    "NOT LIKE": 4,
    "ILIKE": 4,
    "NOT ILIKE": 4,
    "IN": 4,
    "NOT IN": 4,
    "IS": 4,
    "IS NOT": 4,
    "BETWEEN": 4,
    "NOT BETWEEN": 4,
    "||": 5,
    "+": 6,
    "-": 6,
    "*": 7,
    "/": 7,
    "%": 7,
}
NOT_PRECEDENCE = 3
DEFAULT_PRECEDENCE = 4
NON_ASSOCIATIVE = {"-", "/", "%"}


def expression_to_sql(
    expr: Optional[Expression], ctx: Optional["ConversionContext"] = None
) -> str:
    """
    Print an expression as SQL-like display text.

    When a context is given, subqueries print as the placeholder the context
    assigns to them (``expr``, ``expr2``, ...), and subquery-free expressions
    go through the context's expression cache. This function never raises:
    anything it cannot print degrades to ``expr``.

    Args:
        expr: Expression to print
        ctx: Optional conversion context (placeholders, cache, warnings)

    Returns:
        Display text
    """
    if expr is None:
        return ""

    cache = ctx.expression_cache if ctx is not None else None
    if cache is not None and not contains_subquery(expr):
        cached = cache.get(expr)
        if cached is not None:
            return cached
        text = _safe_print(expr, ctx)
        cache.set(expr, text)
        return text

    return _safe_print(expr, ctx)


def _safe_print(expr: Expression, ctx: Optional["ConversionContext"]) -> str:
    try:
        return _print(expr, ctx)
    except Exception as e:
        if ctx is not None:
            ctx.warn(f"Could not print {expr.type} expression: {e}")
        return FALLBACK_TEXT


def _print(expr: Expression, ctx: Optional["ConversionContext"]) -> str:
    if isinstance(expr, ColumnRef):
        return expr.qualified_name
    if isinstance(expr, Star):
        return f"{expr.table}.*" if expr.table else "*"
    if isinstance(expr, LiteralValue):
        return _print_literal(expr)
    if isinstance(expr, BinaryExpr):
        return _print_binary(expr, ctx)
    if isinstance(expr, UnaryExpr):
        return _print_unary(expr, ctx)
    if isinstance(expr, FunctionCall):
        args = ", ".join(_print(arg, ctx) for arg in expr.args)
        text = f"{expr.name.upper()}({'DISTINCT ' if expr.distinct else ''}{args})"
        if expr.over is not None:
            text += f" OVER ({expr.over})"
        return text
    if isinstance(expr, CaseExpr):
        parts = ["CASE"]
        if expr.operand is not None:
            parts.append(_print(expr.operand, ctx))
        for when in expr.whens:
            parts.append(
                f"WHEN {_print(when.condition, ctx)} THEN {_print(when.result, ctx)}"
            )
        if expr.default is not None:
            parts.append(f"ELSE {_print(expr.default, ctx)}")
        parts.append("END")
        return " ".join(parts)
    if isinstance(expr, CastExpr):
        return f"CAST({_print(expr.expr, ctx)} AS {expr.to})"
    if isinstance(expr, IntervalExpr):
        value = _print(expr.value, ctx)
        return f"INTERVAL {value} {expr.unit}" if expr.unit else f"INTERVAL {value}"
    if isinstance(expr, ExprList):
        return "(" + ", ".join(_print(item, ctx) for item in expr.items) + ")"
    if isinstance(expr, SubqueryExpr):
        return ctx.placeholder_for(expr) if ctx is not None else FALLBACK_TEXT
    if isinstance(expr, UnknownExpr):
        return expr.value if expr.value else FALLBACK_TEXT
    return FALLBACK_TEXT


def _print_literal(literal: LiteralValue) -> str:
    if literal.literal_type == "null" or literal.value is None:
        return "NULL"
    if literal.literal_type == "boolean":
        return "TRUE" if literal.value else "FALSE"
    if literal.literal_type == "number":
        return str(literal.value)
    escaped = str(literal.value).replace("'", "''")
    return f"'{escaped}'"


def _print_binary(expr: BinaryExpr, ctx: Optional["ConversionContext"]) -> str:
    operator = expr.operator.upper()
    precedence = PRECEDENCE.get(operator, DEFAULT_PRECEDENCE)
    left = _print_operand(expr.left, ctx, precedence, right_side=False, parent=operator)

    if operator in ("IN", "NOT IN"):
        if isinstance(expr.right, SubqueryExpr):
            return f"{left} {operator} ({_print(expr.right, ctx)})"
        return f"{left} {operator} {_print(expr.right, ctx)}"

    if operator in ("BETWEEN", "NOT BETWEEN") and isinstance(expr.right, ExprList):
        low, high = (list(expr.right.items) + [UnknownExpr(), UnknownExpr()])[:2]
        return f"{left} {operator} {_print(low, ctx)} AND {_print(high, ctx)}"

    right = _print_operand(expr.right, ctx, precedence, right_side=True, parent=operator)
    return f"{left} {operator} {right}"


def _print_operand(
    operand: Expression,
    ctx: Optional["ConversionContext"],
    parent_precedence: int,
    right_side: bool,
    parent: str,
) -> str:
    text = _print(operand, ctx)
    if isinstance(operand, BinaryExpr):
        precedence = PRECEDENCE.get(operand.operator.upper(), DEFAULT_PRECEDENCE)
        if precedence < parent_precedence or (
            right_side and precedence == parent_precedence and parent in NON_ASSOCIATIVE
        ):
            return f"({text})"
    elif isinstance(operand, UnaryExpr) and operand.operator.upper() == "NOT":
        if NOT_PRECEDENCE < parent_precedence:
            return f"({text})"
    return text


def _print_unary(expr: UnaryExpr, ctx: Optional["ConversionContext"]) -> str:
    operator = expr.operator.upper()
    operand = _print(expr.operand, ctx)
    if operator in ("EXISTS", "NOT EXISTS"):
        return f"{operator} ({operand})"
    if operator == "NOT":
        if isinstance(expr.operand, BinaryExpr) and PRECEDENCE.get(
            expr.operand.operator.upper(), DEFAULT_PRECEDENCE
        ) < NOT_PRECEDENCE:
            return f"NOT ({operand})"
        return f"NOT {operand}"
    if isinstance(expr.operand, BinaryExpr):
        return f"{operator}({operand})"
    return f"{operator}{operand}"


def select_list_to_sql(
    items: List[SelectItem],
    ctx: Optional["ConversionContext"] = None,
    distinct: bool = False,
) -> str:
    """Print a select list, e.g. ``COUNT(*), MAX(total) AS max_total``."""
    text = ", ".join(
        f"{expression_to_sql(item.expr, ctx)} AS {item.alias}"
        if item.alias
        else expression_to_sql(item.expr, ctx)
        for item in items
    )
    return f"DISTINCT {text}" if distinct else text


def group_by_to_sql(
    expressions: List[Expression], ctx: Optional["ConversionContext"] = None
) -> str:
    return ", ".join(expression_to_sql(expr, ctx) for expr in expressions)


def order_by_to_sql(
    items: List[OrderItem], ctx: Optional["ConversionContext"] = None
) -> str:
    return ", ".join(
        f"{expression_to_sql(item.expr, ctx)} {item.direction}" for item in items
    )


def limit_to_sql(
    limit: Optional[Expression],
    offset: Optional[Expression] = None,
    ctx: Optional["ConversionContext"] = None,
) -> str:
    text = expression_to_sql(limit, ctx) if limit is not None else "ALL"
    if offset is not None:
        text += f" OFFSET {expression_to_sql(offset, ctx)}"
    return text


def child_expressions(expr: Expression) -> List[Expression]:
    """Direct sub-expressions of an expression (subquery bodies excluded)."""
    if isinstance(expr, BinaryExpr):
        return [expr.left, expr.right]
    if isinstance(expr, UnaryExpr):
        return [expr.operand]
    if isinstance(expr, FunctionCall):
        return list(expr.args)
    if isinstance(expr, CaseExpr):
        children: List[Expression] = []
        if expr.operand is not None:
            children.append(expr.operand)
        for when in expr.whens:
            children.extend([when.condition, when.result])
        if expr.default is not None:
            children.append(expr.default)
        return children
    if isinstance(expr, CastExpr):
        return [expr.expr]
    if isinstance(expr, IntervalExpr):
        return [expr.value]
    if isinstance(expr, ExprList):
        return list(expr.items)
    return []


def iter_column_refs(expr: Optional[Expression]) -> Iterator[ColumnRef]:
    """Yield column references in source order, skipping nested subqueries."""
    if expr is None:
        return
    if isinstance(expr, ColumnRef):
        yield expr
        return
    for child in child_expressions(expr):
        yield from iter_column_refs(child)


def find_subqueries(expr: Optional[Expression]) -> List[SubqueryExpr]:
    """Top-level subqueries of an expression, in source order."""
    if expr is None:
        return []
    if isinstance(expr, SubqueryExpr):
        return [expr]
    found: List[SubqueryExpr] = []
    for child in child_expressions(expr):
        found.extend(find_subqueries(child))
    return found


def contains_subquery(expr: Optional[Expression]) -> bool:
    return bool(find_subqueries(expr))


def is_aggregate(expr: Expression) -> bool:
    """True for a top-level aggregate function call such as ``COUNT(*)``."""
    return isinstance(expr, FunctionCall) and expr.aggregate
