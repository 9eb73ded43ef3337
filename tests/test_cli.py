"""Integration tests for CLI commands."""

import json
from pathlib import Path

from typer.testing import CliRunner

from gqlmap_cli import __version__
from gqlmap_cli.cli import app


runner = CliRunner()


class TestAnalyzeCommand:
    """Tests for 'gqlmap analyze'."""

    def test_analyze_prints_table(self, sample_app_path: Path):
        result = runner.invoke(app, ["analyze", str(sample_app_path)])

        assert result.exit_code == 0
        assert "GetUser" in result.stdout
        assert "ListProducts" in result.stdout
        assert "filesScanned" in result.stdout

    def test_analyze_writes_json(self, sample_app_path: Path, temp_dir: Path):
        output = temp_dir / "ops.json"
        result = runner.invoke(app, ["analyze", str(sample_app_path), "--output", str(output)])

        assert result.exit_code == 0
        assert "Wrote 5 operations" in result.stdout
        data = json.loads(output.read_text())
        names = {op["name"] for op in data["operations"]}
        assert "GetFollowPage" in names
        assert data["coverage"]["codegenExportsFound"] == 2

    def test_analyze_with_extra_hook(self, write_tree, temp_dir: Path):
        root = write_tree({
            "ops.graphql": "query GetCart { cart { id } }",
            "src/cart.ts": "export const r = useCartData(GetCartDocument);\n",
        })
        output = temp_dir / "out.json"
        result = runner.invoke(
            app, ["analyze", str(root), "--hook", "useCartData", "--max-pattern-names", "1", "-o", str(output)]
        )

        assert result.exit_code == 0
        data = json.loads(output.read_text())
        assert data["operations"][0]["usedIn"] == ["src/cart.ts"]
        assert data["coverage"]["coarsePassSkipped"] is True

    def test_analyze_nonexistent_path(self):
        result = runner.invoke(app, ["analyze", "/nonexistent/path"])
        assert result.exit_code != 0


class TestOperationsCommand:
    """Tests for 'gqlmap operations'."""

    def test_lists_consumers(self, sample_app_path: Path):
        result = runner.invoke(app, ["operations", str(sample_app_path)])

        assert result.exit_code == 0
        assert "ListProducts (query)" in result.stdout
        assert "src/pages/products.tsx [ssr]" in result.stdout

    def test_unused_only(self, sample_app_path: Path):
        result = runner.invoke(app, ["operations", str(sample_app_path), "--unused"])

        assert result.exit_code == 0
        assert "UserFields (fragment)" in result.stdout
        assert "GetUser (query)" not in result.stdout

    def test_empty_repository(self, temp_dir: Path):
        result = runner.invoke(app, ["operations", str(temp_dir)])
        assert result.exit_code == 0
        assert "No operations found" in result.stdout


def test_coverage_command(sample_app_path: Path):
    result = runner.invoke(app, ["coverage", str(sample_app_path)])
    assert result.exit_code == 0
    assert "graphqlParseFailures" in result.stdout


def test_version():
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.stdout
