"""End-to-end tests for analysis sessions."""

import json
from pathlib import Path

import pytest

from gqlmap_cli.config import ScanSettings
from gqlmap_cli.engine import AnalysisSession, analyze_repository
from gqlmap_cli.models import GraphQLFileSource


@pytest.fixture
def sample_result(sample_app_path: Path):
    return analyze_repository(sample_app_path, ScanSettings())


def _by_name(result):
    return {op.name: op for op in result.operations}


class TestSampleApp:
    """Analysis of tests/fixtures/sample_app."""

    def test_operations_found(self, sample_result):
        assert sorted(_by_name(sample_result)) == [
            "CreatePost",
            "GetFollowPage",
            "GetUser",
            "ListProducts",
            "UserFields",
        ]

    def test_codegen_resolution(self, sample_result):
        """Test useQuery(GetUserDocument) credits the consumer file."""
        get_user = _by_name(sample_result)["GetUser"]
        assert "src/components/UserCard.tsx" in get_user.used_in
        assert get_user.definition_file == "graphql/user.graphql"
        assert "GetUserDocument" in get_user.aliases

    def test_type_only_import_is_not_a_usage(self, sample_result):
        get_user = _by_name(sample_result)["GetUser"]
        assert "src/components/TypeOnly.tsx" not in get_user.used_in

    def test_broken_file_keeps_document_hit(self, sample_result):
        get_user = _by_name(sample_result)["GetUser"]
        assert get_user.used_in == {"src/components/UserCard.tsx", "src/components/Broken.tsx"}

    def test_alias_indirection(self, sample_result):
        follow = _by_name(sample_result)["GetFollowPage"]
        assert follow.used_in == {"src/pages/follow.tsx"}
        assert follow.aliases == {"Query", "GetFollowPageDocument"}

    def test_merge_across_declaration_forms(self, sample_result):
        """Test the .graphql definition wins and the inline binding is merged in."""
        create = _by_name(sample_result)["CreatePost"]
        assert create.definition_file == "graphql/posts.graphql"
        assert [v.name for v in create.variables] == ["title", "body"]
        assert "CREATE_POST" in create.aliases
        assert create.used_in == {"src/components/NewPost.tsx"}

    def test_ssr_usage(self, sample_result):
        products = _by_name(sample_result)["ListProducts"]
        assert products.definition_file == "src/__generated__/graphql.ts"
        assert products.used_in == {"src/pages/products.tsx"}
        assert products.ssr_used_in == {"src/pages/products.tsx"}

    def test_lookalike_hook_not_counted(self, sample_result):
        for op in sample_result.operations:
            assert "src/components/Search.tsx" not in op.used_in
            assert "src/hooks/useQueryParams.ts" not in op.used_in

    def test_unused_fragment(self, sample_result):
        assert _by_name(sample_result)["UserFields"].used_in == set()

    def test_coverage(self, sample_result):
        coverage = sample_result.coverage
        assert coverage.files_scanned == 10
        assert coverage.parse_failures == 1
        assert coverage.graphql_parse_failures == 1
        assert coverage.codegen_files_detected == 1
        assert coverage.codegen_files_parsed == 1
        assert coverage.codegen_exports_found == 2
        assert coverage.unresolved_call_sites == 0
        assert coverage.coarse_pass_skipped is False

    def test_json_shape(self, sample_result):
        data = json.loads(sample_result.to_json())
        assert set(data) == {"operations", "coverage"}
        op = next(o for o in data["operations"] if o["name"] == "GetUser")
        for key in ("name", "type", "filePath", "variables", "returnType", "fragments", "fields", "usedIn", "variableNames"):
            assert key in op
        assert op["type"] == "query"
        assert op["fragments"] == ["UserFields"]
        assert data["coverage"]["graphqlParseFailures"] == 1


def test_graceful_degradation_with_one_invalid_file(write_tree):
    """Test 1 invalid and 99 valid .graphql files give 99 operations."""
    files = {f"ops/op{i}.graphql": f"query Op{i} {{ field{i} }}" for i in range(99)}
    files["ops/zz_invalid.graphql"] = "query Invalid { field "
    root = write_tree(files)

    result = analyze_repository(root, ScanSettings())

    assert len(result.operations) == 99
    assert result.coverage.graphql_parse_failures == 1


def test_empty_repository(temp_dir: Path):
    result = analyze_repository(temp_dir, ScanSettings())
    assert result.operations == []
    assert result.coverage.files_scanned == 0


def test_session_steps_can_be_driven_individually(write_tree):
    """Test sources from an outside collaborator can be ingested directly."""
    root = write_tree({"src/page.ts": "export const r = useQuery(ExternalOpDocument);\n"})
    session = AnalysisSession(root, ScanSettings())

    session.ingest_sources([GraphQLFileSource("remote/schema.graphql", "query ExternalOp { ok }")])
    session.scan(["src/page.ts"])
    result = session.result()

    assert [op.name for op in result.operations] == ["ExternalOp"]
    assert result.operations[0].used_in == {"src/page.ts"}
