"""sqloflow: turn SQL into data flow graphs."""

from sqloflow.converter import convert
from sqloflow.errors import ConversionError, RenderError, SqloflowError
from sqloflow.ir.models import Graph
from sqloflow.renderers import render
from sqloflow.syntax import parse_sql

__version__ = "0.1.0"

__all__ = [
    "ConversionError",
    "Graph",
    "RenderError",
    "SqloflowError",
    "convert",
    "parse_sql",
    "render",
]
