"""Tests for graph renderers."""

import json

import pytest

from sqloflow.converter import convert
from sqloflow.errors import RenderError
from sqloflow.ir.models import Graph, Node, NodeKind
from sqloflow.renderers import OutputWriter, render
from sqloflow.renderers.diagram_formatters import (
    DotFormatter,
    MermaidFormatter,
    cte_groups,
    node_text,
)
from sqloflow.syntax import parse_sql


def convert_sql(sql: str) -> Graph:
    return convert(parse_sql(sql))


class TestNodeText:
    """Tests for node_text."""

    def test_sql_starting_with_label(self):
        """Test FROM nodes show their SQL as-is."""
        node = Node(id="n", kind=NodeKind.OP, label="FROM", sql="FROM users")

        assert node_text(node) == "FROM users"

    def test_label_and_sql(self):
        """Test other nodes show label followed by SQL."""
        node = Node(id="n", kind=NodeKind.CLAUSE, label="WHERE", sql="a = 1")

        assert node_text(node) == "WHERE a = 1"

    def test_relation_shows_label(self):
        """Test relation nodes show only their label."""
        node = Node(id="n", kind=NodeKind.RELATION, label="orders AS o", sql="x")

        assert node_text(node) == "orders AS o"


class TestMermaidFormatter:
    """Tests for MermaidFormatter."""

    def test_simple_query(self):
        """Test node shapes and flow edges of a simple query."""
        output = MermaidFormatter.format_graph(
            convert_sql("SELECT id FROM users WHERE active = TRUE")
        )

        lines = output.splitlines()
        assert lines[0] == "flowchart LR"
        assert '    node_0["FROM users"]' in lines
        assert '    node_1{{"WHERE active = TRUE"}}' in lines
        assert '    node_2["SELECT id"]' in lines
        assert "    node_0 --> node_1" in lines
        assert "    node_1 --> node_2" in lines

    def test_cte_subgraph(self):
        """Test CTE bodies are grouped in a subgraph."""
        output = MermaidFormatter.format_graph(
            convert_sql(
                "WITH active AS (SELECT id FROM users) SELECT id FROM active"
            )
        )

        assert 'subgraph cte_node_2 ["CTE: active"]' in output
        assert 'node_2[("CTE: active")]' in output
        assert "node_1 ==> node_2" in output

    def test_subquery_subgraph(self):
        """Test subquery inner graphs are nested and results labeled."""
        output = MermaidFormatter.format_graph(
            convert_sql(
                "SELECT name FROM users WHERE id IN (SELECT user_id FROM orders)"
            )
        )

        assert 'node_2[["Subquery (in)"]]' in output
        assert "subgraph node_2_body" in output
        assert "subq_1_node_0" in output
        assert "node_2 -->|expr| node_1" in output
        assert "node_2_body -.-> node_2" in output

    def test_escapes_quotes(self):
        """Test double quotes in labels are escaped."""
        graph = Graph(
            nodes=[Node(id="n-1", kind=NodeKind.OP, label='SELECT "x"')]
        )

        output = MermaidFormatter.format_graph(graph)

        assert 'n_1["SELECT &quot;x&quot;"]' in output


class TestDotFormatter:
    """Tests for DotFormatter."""

    def test_records_list_snapshot_columns(self):
        """Test node records list the columns of their snapshot."""
        output = DotFormatter.format_graph(
            convert_sql(
                "CREATE TABLE users (id INT, name TEXT); "
                "SELECT u.name FROM users u"
            )
        )

        assert output.startswith("digraph sqloflow {")
        assert output.rstrip().endswith("}")
        assert '"node_0" [label="{FROM users AS u|u.id : int\\l' in output
        assert "u.name : text\\l" in output
        assert '"node_0" -> "node_1";' in output

    def test_subquery_cluster_and_correlation(self):
        """Test subquery clusters and correlation edge styling."""
        output = DotFormatter.format_graph(
            convert_sql(
                "SELECT * FROM customers c WHERE EXISTS "
                "(SELECT 1 FROM orders o WHERE o.customer_id = c.customer_id)"
            )
        )

        assert 'subgraph "cluster_node_2" {' in output
        assert '"subq_1_node_2" -> "node_2" [style=dotted];' in output
        assert (
            '"node_0" -> "node_2" [style=dotted, color=gray40, '
            'label="c.customer_id"];'
        ) in output

    def test_escapes_record_characters(self):
        """Test record metacharacters in labels are escaped."""
        graph = Graph(
            nodes=[Node(id="n", kind=NodeKind.CLAUSE, label="WHERE", sql="a <> b")]
        )

        output = DotFormatter.format_graph(graph)

        assert "WHERE a \\<\\> b" in output


class TestCteGroups:
    """Tests for cte_groups."""

    def test_body_nodes_grouped(self):
        """Test every node of the CTE body is grouped under the CTE node."""
        graph = convert_sql(
            "WITH active AS (SELECT id FROM users WHERE on_line = TRUE) "
            "SELECT id FROM active"
        )

        assert cte_groups(graph) == {"node_3": ["node_0", "node_1", "node_2", "node_3"]}


class TestRender:
    """Tests for render and OutputWriter."""

    def test_json(self):
        """Test JSON rendering uses the wire format."""
        output = render(convert_sql("SELECT id FROM users"), "json")

        data = json.loads(output)
        assert [n["label"] for n in data["nodes"]] == ["FROM", "SELECT"]
        assert data["edges"][0]["from"]["node"] == "node_0"

    def test_default_is_json(self):
        """Test JSON is the default format."""
        graph = convert_sql("SELECT 1")

        assert render(graph) == graph.to_json(indent=2)

    def test_mermaid_and_dot(self):
        """Test format names dispatch to their formatter."""
        graph = convert_sql("SELECT id FROM users")

        assert render(graph, "mermaid").startswith("flowchart LR")
        assert render(graph, "dot").startswith("digraph sqloflow")

    def test_unknown_format(self):
        """Test an unknown format raises RenderError."""
        with pytest.raises(RenderError) as exc_info:
            render(Graph(), "ascii")

        assert exc_info.value.format == "ascii"

    def test_output_writer_file(self, tmp_path):
        """Test writing content to a file."""
        target = tmp_path / "out.mmd"

        OutputWriter.write("flowchart LR", target)

        assert target.read_text(encoding="utf-8") == "flowchart LR"

    def test_output_writer_stdout(self, capsys):
        """Test writing content to stdout."""
        OutputWriter.write("hello")

        assert capsys.readouterr().out == "hello\n"
