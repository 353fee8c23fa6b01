"""Output formatters for the extracted schema catalog."""

import csv
import json
from io import StringIO

from sqloflow.schema.models import CatalogColumn, SchemaCatalog


def _attributes(column: CatalogColumn) -> str:
    parts = []
    if column.primary_key:
        parts.append("primary key")
    if column.unique:
        parts.append("unique")
    if column.nullable is False:
        parts.append("not null")
    if column.default is not None:
        parts.append(f"default {column.default}")
    return ", ".join(parts)


def format_schema_text(catalog: SchemaCatalog) -> str:
    """Format a schema catalog as human-readable text.

    Output format:
        orders
          id integer (primary key)
          total decimal(10,2)

        users
          id integer (primary key, not null)
          name varchar(100)

    Args:
        catalog: Catalog extracted from CREATE TABLE statements.

    Returns:
        Text-formatted string.
    """
    lines: list[str] = []
    for key in sorted(catalog.tables):
        table = catalog.tables[key]
        if lines:
            lines.append("")
        lines.append(table.name)
        for column in table.columns:
            attributes = _attributes(column)
            suffix = f" ({attributes})" if attributes else ""
            lines.append(f"  {column.name} {column.type}{suffix}")
    return "\n".join(lines) + "\n" if lines else ""


def format_schema_json(catalog: SchemaCatalog) -> str:
    """Format a schema catalog as JSON.

    The document maps each table name to its column list, tables sorted by
    name and columns in declaration order.
    """
    document = {
        catalog.tables[key].name: {
            "columns": [
                column.model_dump(exclude_none=True)
                for column in catalog.tables[key].columns
            ]
        }
        for key in sorted(catalog.tables)
    }
    return json.dumps(document, indent=2)


def format_schema_csv(catalog: SchemaCatalog) -> str:
    """Format a schema catalog as CSV.

    Output format:
        table,column,type,nullable,primary_key,unique,default
        users,id,integer,false,true,false,
    """
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(
        ["table", "column", "type", "nullable", "primary_key", "unique", "default"]
    )
    for key in sorted(catalog.tables):
        table = catalog.tables[key]
        for column in table.columns:
            writer.writerow(
                [
                    table.name,
                    column.name,
                    column.type,
                    "" if column.nullable is None else str(column.nullable).lower(),
                    str(column.primary_key).lower(),
                    str(column.unique).lower(),
                    column.default or "",
                ]
            )
    return output.getvalue()


def format_schema(catalog: SchemaCatalog, output_format: str = "text") -> str:
    """Format a schema catalog in the specified format.

    Args:
        catalog: Catalog to format.
        output_format: One of "text", "json", or "csv".

    Returns:
        Formatted string.

    Raises:
        ValueError: If output_format is not recognized.
    """
    formatters = {
        "text": format_schema_text,
        "json": format_schema_json,
        "csv": format_schema_csv,
    }
    formatter = formatters.get(output_format)
    if formatter is None:
        raise ValueError(
            f"Invalid schema format '{output_format}'. Use 'text', 'json', or 'csv'."
        )
    return formatter(catalog)
