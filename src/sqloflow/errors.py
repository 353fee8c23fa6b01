"""Exception types raised by sqloflow."""

from typing import Callable

WarningCallback = Callable[[str], None]


class SqloflowError(Exception):
    """Base exception for sqloflow errors."""

    pass


class ConversionError(SqloflowError):
    """Raised when a statement cannot be converted into a flow graph."""

    def __init__(self, message: str, statement_type: str):
        super().__init__(message)
        self.statement_type = statement_type


class RenderError(SqloflowError):
    """Raised when a graph cannot be rendered in the requested format."""

    def __init__(self, message: str, format: str):
        super().__init__(message)
        self.format = format
