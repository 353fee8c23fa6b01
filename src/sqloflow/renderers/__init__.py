"""Renderers turning flow graphs into JSON, Mermaid or DOT text."""

from pathlib import Path
from typing import Optional, Union

from sqloflow.errors import RenderError
from sqloflow.global_models import OutputFormat
from sqloflow.ir.models import Graph
from sqloflow.renderers.diagram_formatters import DotFormatter, MermaidFormatter


def render(graph: Graph, output_format: Union[OutputFormat, str] = "json") -> str:
    """
    Render a flow graph in the requested format.

    Args:
        graph: Converted flow graph
        output_format: One of "json", "mermaid" or "dot"

    Returns:
        Rendered text

    Raises:
        RenderError: If the format is not supported
    """
    try:
        fmt = OutputFormat(output_format)
    except ValueError as e:
        raise RenderError(
            f"Unsupported output format '{output_format}'. "
            "Use 'json', 'mermaid', or 'dot'.",
            str(output_format),
        ) from e

    if fmt == OutputFormat.MERMAID:
        return MermaidFormatter.format_graph(graph)
    if fmt == OutputFormat.DOT:
        return DotFormatter.format_graph(graph)
    return graph.to_json(indent=2)


class OutputWriter:
    """Write formatted output to file or stdout."""

    @staticmethod
    def write(content: str, output_file: Optional[Path] = None) -> None:
        """
        Write content to file or stdout.

        Args:
            content: The content to write
            output_file: Optional file path. If None, writes to stdout.
        """
        if output_file:
            output_file.write_text(content, encoding="utf-8")
        else:
            print(content)


__all__ = ["DotFormatter", "MermaidFormatter", "OutputWriter", "render"]
