"""Tests for discovery, extraction and source-to-operation conversion."""

from gqlmap_cli.config import ScanSettings
from gqlmap_cli.coverage import CoverageTracker
from gqlmap_cli.extractors import (
    CodegenExtractor,
    GraphQLFileExtractor,
    InlineTemplateExtractor,
    discover_files,
    literal_value,
    matches_any,
    operations_from_source,
)
from gqlmap_cli.models import CodegenExportSource, GraphQLFileSource, InlineTemplateSource
from gqlmap_cli.parser import SourceParser

CODEGEN_MODULE = """
import type { TypedDocumentNode as DocumentNode } from '@graphql-typed-document-node/core';
export type GetUserQuery = { user?: { id: string } | null };
export const UserFieldsFragmentDoc = {"kind":"Document","definitions":[{"kind":"FragmentDefinition","name":{"kind":"Name","value":"UserFields"},"typeCondition":{"kind":"NamedType","name":{"kind":"Name","value":"User"}},"selectionSet":{"kind":"SelectionSet","selections":[{"kind":"Field","name":{"kind":"Name","value":"id"}}]}}]} as unknown as DocumentNode<unknown, unknown>;
export const GetUserDocument = {"kind":"Document","definitions":[{"kind":"OperationDefinition","operation":"query","name":{"kind":"Name","value":"GetUser"},"selectionSet":{"kind":"SelectionSet","selections":[{"kind":"Field","name":{"kind":"Name","value":"user"},"selectionSet":{"kind":"SelectionSet","selections":[{"kind":"FragmentSpread","name":{"kind":"Name","value":"UserFields"}}]}}]}},{"kind":"FragmentDefinition","name":{"kind":"Name","value":"UserFields"},"typeCondition":{"kind":"NamedType","name":{"kind":"Name","value":"User"}},"selectionSet":{"kind":"SelectionSet","selections":[{"kind":"Field","name":{"kind":"Name","value":"id"}}]}}]} as unknown as DocumentNode<GetUserQuery, unknown>;
export const DeletePostDocument = ({"kind":"Document","definitions":[{"kind":"OperationDefinition","operation":"mutation","name":{"kind":"Name","value":"DeletePost"},"selectionSet":{"kind":"SelectionSet","selections":[{"kind":"Field","name":{"kind":"Name","value":"deletePost"}}]}}]}) satisfies object;
const InternalDocument = {"kind":"Document","definitions":[]};
export const notADocument = { kind: "Other" };
"""


def test_matches_any_handles_root_level_files():
    assert matches_any("a.test.ts", ["**/*.test.*"])
    assert matches_any("src/a.test.ts", ["**/*.test.*"])
    assert matches_any("src/__generated__/graphql.ts", ["**/__generated__/**"])
    assert not matches_any("src/a.ts", ["**/*.test.*"])


def test_discover_files_skips_excluded_dirs(write_tree):
    root = write_tree({
        "a.ts": "",
        "src/b.tsx": "",
        "src/b.test.tsx": "",
        "node_modules/pkg/index.ts": "",
        "dist/out.js": "",
        "README.md": "",
    })
    found = discover_files(root, ["**/*.ts", "**/*.tsx", "**/*.js"], ["node_modules", "dist"], ["**/*.test.*"])
    assert found == ["a.ts", "src/b.tsx"]


def test_graphql_file_extractor(write_tree, coverage: CoverageTracker):
    root = write_tree({
        "schema/user.graphql": "query GetUser { me { id } }",
        "schema/empty.gql": "   \n",
        "node_modules/x/ops.graphql": "query Vendor { x }",
    })
    sources = list(GraphQLFileExtractor(root, ScanSettings(), coverage).extract())
    assert sources == [GraphQLFileSource("schema/user.graphql", "query GetUser { me { id } }")]


def test_inline_template_extractor(write_tree, coverage: CoverageTracker):
    """Test gql templates are found with their enclosing declarator."""
    root = write_tree({
        "src/queries.ts": (
            "import { gql } from '@apollo/client';\n"
            "export const FEED = gql`\n"
            "  query Feed { posts { ...PostFields } }\n"
            "  ${POST_FIELDS}\n"
            "`;\n"
            "export const SAVE = graphql(`mutation Save { save }`);\n"
        ),
        "src/plain.ts": "export const x = 1;\n",
        "src/queries.test.ts": "const T = gql`query InTest { a }`;\n",
        "src/broken.ts": "const Q = gql`query X { a }`;\nfunction (\n",
    })
    sources = list(InlineTemplateExtractor(root, ScanSettings(), coverage, SourceParser()).extract())

    assert [(s.enclosing_variable_name, s.line) for s in sources] == [("FEED", 2), ("SAVE", 6)]
    assert "${" not in sources[0].text
    assert "query Feed" in sources[0].text
    assert coverage.metrics.parse_failures == 1


def test_codegen_extractor(write_tree, coverage: CoverageTracker):
    """Test exported Document constants are read from codegen output."""
    root = write_tree({
        "src/__generated__/graphql.ts": CODEGEN_MODULE,
        "src/__generated__/gql.ts": "export const unrelated = 1;\n",
    })
    sources = list(CodegenExtractor(root, ScanSettings(), coverage, SourceParser()).extract())

    assert [s.document_name for s in sources] == [
        "UserFieldsFragmentDoc",
        "GetUserDocument",
        "DeletePostDocument",
    ]
    assert coverage.metrics.codegen_files_detected == 1
    assert coverage.metrics.codegen_files_parsed == 1
    assert coverage.metrics.codegen_exports_found == 3


def test_literal_value(parse_ts):
    parsed = parse_ts('const v = { a: [1, 2.5, "s"], "b": true, c: null, d: { e: false } };', "v.ts")
    declarator = parsed.root.named_children[0].named_children[0]
    value = declarator.child_by_field_name("value")
    assert literal_value(value, parsed.source) == {
        "a": [1, 2.5, "s"],
        "b": True,
        "c": None,
        "d": {"e": False},
    }


def test_operations_from_graphql_file(coverage: CoverageTracker):
    ops = operations_from_source(
        GraphQLFileSource("a.graphql", "query A { a }\nfragment F on T { b }"), coverage
    )
    assert [op.name for op in ops] == ["A", "F"]
    assert ops[0].aliases == set()


def test_invalid_graphql_is_counted(coverage: CoverageTracker):
    assert operations_from_source(GraphQLFileSource("bad.graphql", "query {"), coverage) == []
    assert coverage.metrics.graphql_parse_failures == 1


def test_inline_source_aliases(coverage: CoverageTracker):
    """Test inline operations gain the binding name and Document form."""
    ops = operations_from_source(
        InlineTemplateSource("src/q.ts", "\n query GetFollowPage { id }", "Query", line=3), coverage
    )
    assert ops[0].aliases == {"Query", "GetFollowPageDocument"}
    assert ops[0].line == 4

    anonymous = operations_from_source(InlineTemplateSource("src/q.ts", "{ id }", "Q", line=9), coverage)
    assert anonymous[0].is_anonymous
    assert anonymous[0].aliases == {"Q"}


def test_codegen_source_conversion(coverage: CoverageTracker, parse_ts):
    parsed = parse_ts(CODEGEN_MODULE, "src/__generated__/graphql.ts")
    exports = list(CodegenExtractor.exports_in(parsed))
    ops = [op for source in exports for op in operations_from_source(source, coverage)]

    # Fragment-only documents are skipped; bundled fragments stay with their operation.
    assert [op.name for op in ops] == ["GetUser", "DeletePost"]
    get_user = ops[0]
    assert get_user.aliases == {"GetUserDocument"}
    assert get_user.fragment_references == {"UserFields"}
    assert get_user.definition_file == "src/__generated__/graphql.ts"
    assert get_user.line == exports[1].line
    assert ops[1].kind == "mutation"


def test_codegen_source_without_named_operation(coverage: CoverageTracker):
    source = CodegenExportSource(
        "gen.ts",
        "AnonDocument",
        {"kind": "Document", "definitions": [{"kind": "OperationDefinition", "operation": "query"}]},
    )
    assert operations_from_source(source, coverage) == []
