"""Conversion of parsed SQL statements into a flow graph."""

from typing import List, Optional

from sqloflow.converter.cache import CacheStats, ExpressionCache
from sqloflow.converter.context import ConversionContext, FlowFragment
from sqloflow.converter.expressions import expression_to_sql
from sqloflow.converter.statements import convert_select, convert_statement
from sqloflow.errors import WarningCallback
from sqloflow.ir.models import Edge, Graph, Node
from sqloflow.schema.extractor import extract_schema
from sqloflow.schema.models import SchemaCatalog
from sqloflow.syntax.models import Statement


def convert(
    statements: List[Statement],
    on_warning: Optional[WarningCallback] = None,
    use_cache: bool = True,
    cache: Optional[ExpressionCache] = None,
    catalog: Optional[SchemaCatalog] = None,
) -> Graph:
    """
    Convert parsed statements into one flow graph.

    The schema catalog is extracted from the CREATE TABLE statements of the
    same list (unless one is given), then every statement is converted in
    order with fresh per-statement state.

    Args:
        statements: Parsed statements, in source order
        on_warning: Optional callback receiving warning messages
        use_cache: Memoize printed expression text
        cache: Cache instance to use (created when omitted and caching is on)
        catalog: Pre-built catalog to use instead of extracting one

    Returns:
        Graph with every statement's nodes, edges and snapshots

    Raises:
        ConversionError: If a statement kind is not supported
    """
    if catalog is None:
        catalog = extract_schema(statements, on_warning=on_warning)
    if cache is None and use_cache:
        cache = ExpressionCache()

    ctx = ConversionContext(
        catalog=catalog,
        expression_cache=cache if use_cache else None,
        on_warning=on_warning,
    )

    nodes: List[Node] = []
    edges: List[Edge] = []
    for statement in statements:
        ctx.begin_statement()
        fragment = convert_statement(ctx, statement)
        nodes.extend(fragment.nodes)
        edges.extend(fragment.edges)

    return Graph(nodes=nodes, edges=edges, snapshots=ctx.snapshots)


__all__ = [
    "CacheStats",
    "ConversionContext",
    "ExpressionCache",
    "FlowFragment",
    "convert",
    "convert_select",
    "convert_statement",
    "expression_to_sql",
]
