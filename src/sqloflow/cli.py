"""CLI entry point for sqloflow."""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from sqlglot.errors import ParseError

from sqloflow.converter import ExpressionCache
from sqloflow.converter import convert as convert_statements
from sqloflow.errors import SqloflowError
from sqloflow.global_models import OutputFormat, SchemaFormat
from sqloflow.ir.validation import validate_graph
from sqloflow.renderers import OutputWriter, render
from sqloflow.schema import extract_schema, format_schema
from sqloflow.syntax import parse_sql
from sqloflow.utils.config import load_config
from sqloflow.utils.file_utils import read_sql_file, read_sql_input

app = typer.Typer(
    name="sqloflow",
    help="Visualize how data flows through SQL queries.",
    invoke_without_command=False,
)
console = Console()
err_console = Console(stderr=True)


def _warn(message: str) -> None:
    err_console.print(f"[yellow]Warning:[/yellow] {escape(message)}")


@app.callback()
def main():
    """sqloflow - SQL data flow visualizer."""
    pass


@app.command()
def convert(
    sql_file: Optional[Path] = typer.Argument(
        None,
        help="Path to SQL file to convert ('-' or omitted reads stdin)",
    ),
    sql: Optional[str] = typer.Option(
        None,
        "--sql",
        "-s",
        help="SQL text to convert instead of a file",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        "-f",
        help="Output format: 'json', 'mermaid', or 'dot' (default: json, or from config)",
    ),
    dialect: Optional[str] = typer.Option(
        None,
        "--dialect",
        "-d",
        help="SQL dialect (default: postgres, or from config)",
    ),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output-file",
        "-o",
        help="Write output to file instead of stdout",
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Disable memoization of printed expressions",
    ),
) -> None:
    """
    Convert SQL into a flow graph and render it.

    Configuration can be set in sqloflow.toml in the current directory.
    CLI arguments override configuration file values.

    Examples:

        # Render a query as a Mermaid flowchart
        sqloflow convert query.sql -f mermaid

        # Convert inline SQL to the JSON graph
        sqloflow convert --sql "SELECT id FROM users WHERE active = TRUE"

        # Read SQL from stdin and write a Graphviz schema view
        cat query.sql | sqloflow convert -f dot -o flow.dot

        # Use a different SQL dialect
        sqloflow convert query.sql --dialect mysql
    """
    config = load_config()

    # Apply priority resolution: CLI args > config > defaults
    dialect = dialect or config.dialect or "postgres"
    output_format = output_format or config.output_format or "json"
    use_cache = not no_cache and config.cache_expressions is not False

    if output_format not in [f.value for f in OutputFormat]:
        err_console.print(
            f"[red]Error:[/red] Invalid output format '{output_format}'. "
            "Use 'json', 'mermaid', or 'dot'."
        )
        raise typer.Exit(1)

    try:
        text = read_sql_input(sql=sql, sql_file=sql_file)
        statements = parse_sql(text, dialect=dialect)

        cache = ExpressionCache() if use_cache else None
        graph = convert_statements(
            statements, on_warning=_warn, use_cache=use_cache, cache=cache
        )

        for problem in validate_graph(graph):
            _warn(problem)

        OutputWriter.write(render(graph, output_format), output_file)
        if output_file:
            console.print(f"[green]Success:[/green] Flow graph written to {output_file}")

    except FileNotFoundError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    except ParseError as e:
        err_console.print(f"[red]Error:[/red] Failed to parse SQL: {e}")
        raise typer.Exit(1)

    except SqloflowError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    except Exception as e:
        err_console.print(f"[red]Error:[/red] Unexpected error: {e}")
        raise typer.Exit(1)


@app.command()
def schema(
    sql_file: Path = typer.Argument(
        ...,
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
        help="Path to SQL file with CREATE TABLE statements",
    ),
    dialect: Optional[str] = typer.Option(
        None,
        "--dialect",
        "-d",
        help="SQL dialect (default: postgres, or from config)",
    ),
    output_format: Optional[str] = typer.Option(
        None,
        "--output-format",
        "-f",
        help="Output format: 'text', 'json', or 'csv' (default: text, or from config)",
    ),
    output_file: Optional[Path] = typer.Option(
        None,
        "--output-file",
        "-o",
        help="Write output to file instead of stdout",
    ),
) -> None:
    """
    Show the table schemas declared by CREATE TABLE statements.

    Examples:

        # Print the catalog as text
        sqloflow schema ddl.sql

        # Export the catalog as CSV
        sqloflow schema ddl.sql -f csv -o schema.csv
    """
    config = load_config()

    dialect = dialect or config.dialect or "postgres"
    output_format = output_format or config.schema_format or "text"

    if output_format not in [f.value for f in SchemaFormat]:
        err_console.print(
            f"[red]Error:[/red] Invalid output format '{output_format}'. "
            "Use 'text', 'json', or 'csv'."
        )
        raise typer.Exit(1)

    try:
        statements = parse_sql(read_sql_file(sql_file), dialect=dialect)
        catalog = extract_schema(statements, on_warning=_warn)

        if not catalog.tables:
            _warn(f"No CREATE TABLE statements found in {sql_file}")

        OutputWriter.write(format_schema(catalog, output_format), output_file)
        if output_file:
            console.print(f"[green]Success:[/green] Schema written to {output_file}")

    except ParseError as e:
        err_console.print(f"[red]Error:[/red] Failed to parse SQL: {e}")
        raise typer.Exit(1)

    except ValueError as e:
        err_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    except Exception as e:
        err_console.print(f"[red]Error:[/red] Unexpected error: {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
