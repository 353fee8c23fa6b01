"""Static schema catalog extraction for sqloflow."""

from sqloflow.schema.extractor import extract_schema, normalize_type
from sqloflow.schema.formatters import format_schema
from sqloflow.schema.models import CatalogColumn, SchemaCatalog, TableSchema

__all__ = [
    "CatalogColumn",
    "SchemaCatalog",
    "TableSchema",
    "extract_schema",
    "format_schema",
    "normalize_type",
]
