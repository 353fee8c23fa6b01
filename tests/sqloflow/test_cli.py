"""Tests for CLI commands."""

import json

import pytest
from typer.testing import CliRunner

from sqloflow.cli import app

runner = CliRunner()


@pytest.fixture
def sample_sql_file(tmp_path):
    """Create a SQL file with DDL and a correlated query."""
    sql_file = tmp_path / "query.sql"
    sql_file.write_text(
        """
        CREATE TABLE customers (customer_id INT PRIMARY KEY, name VARCHAR(100));
        CREATE TABLE orders (id INT, customer_id INT, total DECIMAL(10, 2));

        SELECT c.name
        FROM customers c
        WHERE EXISTS (
            SELECT 1 FROM orders o WHERE o.customer_id = c.customer_id
        );
        """,
        encoding="utf-8",
    )
    return sql_file


@pytest.fixture
def invalid_sql_file(tmp_path):
    """Create a file with invalid SQL."""
    sql_file = tmp_path / "invalid.sql"
    sql_file.write_text("SELECT * FROM (", encoding="utf-8")
    return sql_file


class TestConvertCommand:
    """Tests for the convert command."""

    def test_convert_default_json(self, sample_sql_file):
        """Test converting a file prints the JSON graph."""
        result = runner.invoke(app, ["convert", str(sample_sql_file)])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert [n["label"] for n in data["nodes"]] == [
            "FROM",
            "WHERE",
            "Subquery (exists)",
            "SELECT",
        ]
        assert data["nodes"][2]["correlatedFields"] == ["c.customer_id"]

    def test_convert_mermaid(self, sample_sql_file):
        """Test Mermaid output format."""
        result = runner.invoke(
            app, ["convert", str(sample_sql_file), "--output-format", "mermaid"]
        )

        assert result.exit_code == 0
        assert result.stdout.startswith("flowchart LR")

    def test_convert_dot(self, sample_sql_file):
        """Test DOT output format."""
        result = runner.invoke(app, ["convert", str(sample_sql_file), "-f", "dot"])

        assert result.exit_code == 0
        assert "digraph sqloflow" in result.stdout
        assert "c.name : varchar(100)" in result.stdout

    def test_convert_inline_sql(self):
        """Test converting SQL given with --sql."""
        result = runner.invoke(app, ["convert", "--sql", "SELECT id FROM users"])

        assert result.exit_code == 0
        assert '"FROM users"' in result.stdout

    def test_convert_stdin(self):
        """Test converting SQL piped on stdin."""
        result = runner.invoke(
            app, ["convert", "-f", "mermaid"], input="SELECT id FROM users"
        )

        assert result.exit_code == 0
        assert "FROM users" in result.stdout

    def test_convert_output_file(self, sample_sql_file, tmp_path):
        """Test writing output to a file."""
        output_file = tmp_path / "flow.mmd"

        result = runner.invoke(
            app,
            [
                "convert",
                str(sample_sql_file),
                "-f",
                "mermaid",
                "--output-file",
                str(output_file),
            ],
        )

        assert result.exit_code == 0
        assert "Success" in result.stdout
        assert output_file.read_text(encoding="utf-8").startswith("flowchart LR")

    def test_convert_no_cache(self, sample_sql_file):
        """Test --no-cache produces the same graph."""
        cached = runner.invoke(app, ["convert", str(sample_sql_file)])
        uncached = runner.invoke(app, ["convert", str(sample_sql_file), "--no-cache"])

        assert uncached.exit_code == 0
        assert uncached.stdout == cached.stdout

    def test_convert_invalid_sql(self, invalid_sql_file):
        """Test error handling for invalid SQL."""
        result = runner.invoke(app, ["convert", str(invalid_sql_file)])

        assert result.exit_code == 1
        assert "Failed to parse SQL" in result.output

    def test_convert_missing_file(self):
        """Test error handling for a missing file."""
        result = runner.invoke(app, ["convert", "/nonexistent/query.sql"])

        assert result.exit_code == 1
        assert "not found" in result.output

    def test_convert_unsupported_statement(self):
        """Test unsupported statement kinds exit with an error."""
        result = runner.invoke(app, ["convert", "--sql", "DROP TABLE users"])

        assert result.exit_code == 1
        assert "Unsupported statement type: drop" in result.output

    def test_convert_invalid_output_format(self, sample_sql_file):
        """Test error handling for an invalid output format."""
        result = runner.invoke(
            app, ["convert", str(sample_sql_file), "--output-format", "xml"]
        )

        assert result.exit_code == 1
        assert "Invalid output format" in result.output

    def test_convert_empty_input(self):
        """Test empty stdin exits with an error."""
        result = runner.invoke(app, ["convert"], input="")

        assert result.exit_code == 1

    def test_convert_warnings_printed(self):
        """Test schema warnings are reported on the console."""
        result = runner.invoke(
            app,
            [
                "convert",
                "--sql",
                "CREATE TABLE t (a INT); CREATE TABLE t (b INT); SELECT b FROM t",
            ],
        )

        assert result.exit_code == 0
        assert "Warning:" in result.output


class TestSchemaCommand:
    """Tests for the schema command."""

    def test_schema_text(self, sample_sql_file):
        """Test the default text catalog output."""
        result = runner.invoke(app, ["schema", str(sample_sql_file)])

        assert result.exit_code == 0
        assert "customers" in result.stdout
        assert "name varchar(100)" in result.stdout

    def test_schema_csv(self, sample_sql_file):
        """Test CSV catalog output."""
        result = runner.invoke(app, ["schema", str(sample_sql_file), "-f", "csv"])

        assert result.exit_code == 0
        assert "table,column,type" in result.stdout
        assert "orders,total,decimal(10,2)" in result.stdout

    def test_schema_json_to_file(self, sample_sql_file, tmp_path):
        """Test JSON catalog output written to a file."""
        output_file = tmp_path / "schema.json"

        result = runner.invoke(
            app,
            [
                "schema",
                str(sample_sql_file),
                "-f",
                "json",
                "-o",
                str(output_file),
            ],
        )

        assert result.exit_code == 0
        data = json.loads(output_file.read_text(encoding="utf-8"))
        assert set(data) == {"customers", "orders"}

    def test_schema_invalid_format(self, sample_sql_file):
        """Test error handling for an invalid schema format."""
        result = runner.invoke(app, ["schema", str(sample_sql_file), "-f", "xml"])

        assert result.exit_code == 1

    def test_schema_missing_file(self):
        """Test error handling for a missing file."""
        result = runner.invoke(app, ["schema", "/nonexistent/ddl.sql"])

        # Typer returns exit code 2 for missing files
        assert result.exit_code in [1, 2]


class TestConfigIntegration:
    """Tests for sqloflow.toml defaults in the CLI."""

    def test_config_output_format(self, sample_sql_file, tmp_path, monkeypatch):
        """Test the configured output format is used by default."""
        (tmp_path / "sqloflow.toml").write_text(
            '[sqloflow]\noutput_format = "mermaid"\n', encoding="utf-8"
        )
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["convert", str(sample_sql_file)])

        assert result.exit_code == 0
        assert result.stdout.startswith("flowchart LR")

    def test_cli_overrides_config(self, sample_sql_file, tmp_path, monkeypatch):
        """Test command line options take precedence over the config file."""
        (tmp_path / "sqloflow.toml").write_text(
            '[sqloflow]\noutput_format = "mermaid"\n', encoding="utf-8"
        )
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(app, ["convert", str(sample_sql_file), "-f", "dot"])

        assert result.exit_code == 0
        assert result.stdout.startswith("digraph sqloflow")

    def test_config_dialect(self, tmp_path, monkeypatch):
        """Test the configured dialect is used for parsing."""
        (tmp_path / "sqloflow.toml").write_text(
            '[sqloflow]\ndialect = "mysql"\n', encoding="utf-8"
        )
        monkeypatch.chdir(tmp_path)

        result = runner.invoke(
            app, ["convert", "--sql", "SELECT `id` FROM `users`", "-f", "mermaid"]
        )

        assert result.exit_code == 0
        assert "FROM users" in result.stdout


def test_help():
    """Test the top-level help lists both commands."""
    result = runner.invoke(app, ["--help"])

    assert result.exit_code == 0
    assert "convert" in result.stdout
    assert "schema" in result.stdout
