"""Shared models and enums used across sqloflow modules."""

from enum import Enum


class OutputFormat(str, Enum):
    """Output format for rendered flow graphs."""

    JSON = "json"
    MERMAID = "mermaid"
    DOT = "dot"


class SchemaFormat(str, Enum):
    """Output format for the extracted schema catalog."""

    TEXT = "text"
    JSON = "json"
    CSV = "csv"
