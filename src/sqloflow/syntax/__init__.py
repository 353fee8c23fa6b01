"""Typed SQL syntax tree and the SQLGlot adapter that produces it."""

from sqloflow.syntax.builder import StatementBuilder, parse_sql, resolve_dialect
from sqloflow.syntax.models import (
    ColumnRef,
    Expression,
    SelectStatement,
    Statement,
    SubqueryExpr,
)

__all__ = [
    "ColumnRef",
    "Expression",
    "SelectStatement",
    "Statement",
    "StatementBuilder",
    "SubqueryExpr",
    "parse_sql",
    "resolve_dialect",
]
