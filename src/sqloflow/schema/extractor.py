"""Builds the static schema catalog from CREATE TABLE statements."""

import re
from typing import List, Optional, Set

from sqloflow.errors import WarningCallback
from sqloflow.schema.models import CatalogColumn, SchemaCatalog, TableSchema
from sqloflow.syntax.models import CreateStatement, Statement

UNKNOWN_TYPE = "unknown"

_WHITESPACE = re.compile(r"\s+")


def normalize_type(data_type: Optional[str]) -> str:
    """Lower-case a SQL type, keeping its length/precision suffix.

    ``VARCHAR(100)`` becomes ``varchar(100)`` and ``DECIMAL(10, 2)`` becomes
    ``decimal(10,2)``. A missing type becomes ``unknown``.
    """
    if not data_type or not data_type.strip():
        return UNKNOWN_TYPE
    normalized = data_type.strip().lower()
    # Collapse spaces inside the parenthesized suffix only ("double precision" stays)
    normalized = re.sub(r"\(\s*(.*?)\s*\)", _compact_args, normalized)
    return _WHITESPACE.sub(" ", normalized)


def _compact_args(match: "re.Match[str]") -> str:
    return "(" + _WHITESPACE.sub("", match.group(1)) + ")"


def extract_schema(
    statements: List[Statement],
    on_warning: Optional[WarningCallback] = None,
) -> SchemaCatalog:
    """
    Extract table definitions from CREATE TABLE statements.

    Statements of any other kind are ignored, as are CREATE statements
    without column definitions (e.g. CREATE TABLE ... AS SELECT). Column
    definitions without a name, or repeating a name already declared for the
    same table, are skipped with a warning.

    Args:
        statements: Parsed statements, in source order
        on_warning: Optional callback receiving warning messages

    Returns:
        SchemaCatalog of every declared table
    """
    catalog = SchemaCatalog()

    for statement in statements:
        if not isinstance(statement, CreateStatement) or not statement.columns:
            continue

        table = TableSchema(name=statement.table)
        seen: Set[str] = set()
        for definition in statement.columns:
            if not definition.name:
                _warn(
                    on_warning,
                    f"Skipping column definition without a name in table "
                    f"'{statement.table}'",
                )
                continue
            if definition.name.lower() in seen:
                _warn(
                    on_warning,
                    f"Skipping duplicate column '{definition.name}' in table "
                    f"'{statement.table}'",
                )
                continue
            seen.add(definition.name.lower())

            table.columns.append(
                CatalogColumn(
                    name=definition.name,
                    type=normalize_type(definition.data_type),
                    nullable=definition.nullable,
                    primary_key=definition.primary_key,
                    unique=definition.unique,
                    default=definition.default,
                )
            )

        if statement.table.lower() in catalog.tables:
            _warn(
                on_warning,
                f"Table '{statement.table}' is defined more than once; "
                "using the last definition",
            )
        catalog.add_table(table)

    return catalog


def _warn(on_warning: Optional[WarningCallback], message: str) -> None:
    if on_warning is not None:
        on_warning(message)
