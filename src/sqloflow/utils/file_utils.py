"""File utility functions for sqloflow."""

import sys
from pathlib import Path
from typing import Optional


def read_sql_file(file_path: Path) -> str:
    """
    Read a SQL file and return its contents as a string.

    Args:
        file_path: Path to the SQL file to read

    Returns:
        The contents of the SQL file as a string

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the path is not a regular file
        PermissionError: If the file cannot be read
        UnicodeDecodeError: If the file encoding is not UTF-8
    """
    if not file_path.exists():
        raise FileNotFoundError(f"SQL file not found: {file_path}")

    if not file_path.is_file():
        raise ValueError(f"Path is not a file: {file_path}")

    try:
        return file_path.read_text(encoding="utf-8")
    except PermissionError as e:
        raise PermissionError(f"Cannot read file {file_path}: {e}") from e
    except UnicodeDecodeError as e:
        raise UnicodeDecodeError(
            e.encoding,
            e.object,
            e.start,
            e.end,
            f"File {file_path} is not valid UTF-8: {e.reason}",
        ) from e


def read_sql_input(
    sql: Optional[str] = None, sql_file: Optional[Path] = None
) -> str:
    """
    Resolve SQL text from an inline string, a file, or standard input.

    Priority order:
    1. Inline SQL text
    2. SQL file (``-`` reads standard input)
    3. Standard input, when it is not a terminal

    Raises:
        ValueError: If no SQL source is available or the SQL is empty
    """
    if sql is not None:
        text = sql
    elif sql_file is not None and str(sql_file) != "-":
        text = read_sql_file(sql_file)
    elif sql_file is not None or not sys.stdin.isatty():
        text = sys.stdin.read()
    else:
        raise ValueError("No SQL given. Pass a SQL file, --sql, or pipe SQL to stdin.")

    if not text.strip():
        raise ValueError("No SQL statements to convert (input is empty)")
    return text
