"""Operation extractors: turn repository files into raw operation sources.

Three declaration forms are supported:

* standalone ``.graphql`` / ``.gql`` documents,
* inline ``gql`...``` / ``graphql(`...`)`` templates in TS/JS code,
* codegen output exporting ``const XxxDocument = {kind: "Document", ...}``.

Each extractor yields :class:`~gqlmap_cli.models.RawOperationSource`
records; :func:`operations_from_source` converts those into
:class:`~gqlmap_cli.models.Operation` candidates for the registry.
"""

from __future__ import annotations

import fnmatch
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from graphql import GraphQLError

from .config import ScanSettings
from .coverage import CoverageTracker
from .graphql_parser import document_from_dict, operations_from_document, parse_operations
from .js_ast import (
    CallExpression,
    StringLiteral,
    TaggedTemplate,
    TemplateLiteral,
    declarator_name,
    is_gql_tag,
    node_text,
    to_expression,
    unwrap,
    walk_with_declarators,
)
from .models import (
    CodegenExportSource,
    GraphQLFileSource,
    InlineTemplateSource,
    Operation,
    RawOperationSource,
)
from .parser import ParsedSource, SourceParseError, SourceParser

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Discovery
# ---------------------------------------------------------------------------

def matches_any(rel_path: str, globs: Iterable[str]) -> bool:
    """fnmatch with ``**/`` also matching at the repository root."""
    for pattern in globs:
        if fnmatch.fnmatch(rel_path, pattern):
            return True
        if pattern.startswith("**/") and fnmatch.fnmatch(rel_path, pattern[3:]):
            return True
    return False


def discover_files(
    root: Path,
    patterns: Sequence[str],
    exclude_dirs: Iterable[str] = (),
    exclude_globs: Iterable[str] = (),
) -> List[str]:
    """Relative POSIX paths under *root* matching any of *patterns*, sorted."""
    root = Path(root)
    skip = set(exclude_dirs)
    excluded = list(exclude_globs)
    found = set()
    for pattern in patterns:
        for path in root.glob(pattern):
            if not path.is_file():
                continue
            rel = path.relative_to(root)
            if any(part in skip for part in rel.parts[:-1]):
                continue
            rel_path = rel.as_posix()
            if excluded and matches_any(rel_path, excluded):
                continue
            found.add(rel_path)
    return sorted(found)


def _read(root: Path, rel_path: str, coverage: CoverageTracker) -> Optional[str]:
    try:
        return (root / rel_path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        coverage.parse_failed(rel_path, exc)
        return None


# ---------------------------------------------------------------------------
# .graphql files
# ---------------------------------------------------------------------------

class GraphQLFileExtractor:
    def __init__(self, root: Path, settings: ScanSettings, coverage: CoverageTracker) -> None:
        self.root = Path(root)
        self.settings = settings
        self.coverage = coverage

    def files(self) -> List[str]:
        return discover_files(self.root, self.settings.graphql_patterns, self.settings.exclude_dirs)

    def extract(self) -> Iterator[GraphQLFileSource]:
        for rel_path in self.files():
            text = _read(self.root, rel_path, self.coverage)
            if text is not None and text.strip():
                yield GraphQLFileSource(rel_path, text)


# ---------------------------------------------------------------------------
# Inline gql templates
# ---------------------------------------------------------------------------

def inline_template_text(expr: Any) -> Optional[str]:
    """GraphQL text of ``gql`...``` or ``gql(`...`)``/``gql("...")``, else None."""
    if isinstance(expr, TaggedTemplate) and is_gql_tag(expr.tag):
        return expr.template.text
    if isinstance(expr, CallExpression) and is_gql_tag(expr.callee):
        first = expr.first_argument
        if isinstance(first, TemplateLiteral):
            return first.text
        if isinstance(first, StringLiteral):
            return first.value
    return None


class InlineTemplateExtractor:
    def __init__(
        self,
        root: Path,
        settings: ScanSettings,
        coverage: CoverageTracker,
        parser: SourceParser,
    ) -> None:
        self.root = Path(root)
        self.settings = settings
        self.coverage = coverage
        self.parser = parser

    def files(self) -> List[str]:
        return discover_files(
            self.root,
            self.settings.source_patterns,
            self.settings.exclude_dirs,
            self.settings.inline_exclude_globs,
        )

    def extract(self) -> Iterator[InlineTemplateSource]:
        for rel_path in self.files():
            if not self.parser.supports(rel_path):
                continue
            text = _read(self.root, rel_path, self.coverage)
            if text is None or ("gql" not in text and "graphql" not in text):
                continue
            try:
                parsed = self.parser.parse(rel_path, text)
            except SourceParseError as exc:
                self.coverage.parse_failed(rel_path, exc)
                continue
            yield from self.templates_in(parsed)

    @staticmethod
    def templates_in(parsed: ParsedSource) -> Iterator[InlineTemplateSource]:
        for node, declarator in walk_with_declarators(parsed.root, parsed.source):
            if node.type != "call_expression":
                continue
            text = inline_template_text(to_expression(node, parsed.source))
            if text and text.strip():
                yield InlineTemplateSource(
                    file_path=parsed.file_path,
                    text=text,
                    enclosing_variable_name=declarator,
                    line=node.start_point[0] + 1,
                )


# ---------------------------------------------------------------------------
# Codegen modules
# ---------------------------------------------------------------------------

_LITERALS = {"true": True, "false": False, "null": None, "undefined": None}


def literal_value(node: Any, source: bytes) -> Any:
    """Plain Python data for a JS object/array/string/number/boolean literal."""
    node = unwrap(node)
    if node is None:
        return None
    kind = node.type
    if kind == "object":
        result: Dict[str, Any] = {}
        for child in node.named_children:
            if child.type != "pair":
                continue
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            if key is None or value is None:
                continue
            name = node_text(key, source)
            if key.type == "string":
                name = name[1:-1]
            result[name] = literal_value(value, source)
        return result
    if kind == "array":
        return [literal_value(child, source) for child in node.named_children if child.type != "comment"]
    if kind == "string":
        return node_text(node, source)[1:-1]
    if kind == "number":
        text = node_text(node, source)
        try:
            return int(text)
        except ValueError:
            try:
                return float(text)
            except ValueError:
                return None
    if kind in _LITERALS:
        return _LITERALS[kind]
    return None


def exported_declarators(root: Any) -> Iterator[Any]:
    """``variable_declarator`` nodes of top-level ``export const`` statements."""
    for statement in root.named_children:
        if statement.type != "export_statement":
            continue
        declaration = statement.child_by_field_name("declaration")
        if declaration is None or declaration.type not in ("lexical_declaration", "variable_declaration"):
            continue
        for declarator in declaration.named_children:
            if declarator.type == "variable_declarator":
                yield declarator


class CodegenExtractor:
    """Document constants exported by graphql-codegen style modules."""

    def __init__(
        self,
        root: Path,
        settings: ScanSettings,
        coverage: CoverageTracker,
        parser: SourceParser,
    ) -> None:
        self.root = Path(root)
        self.settings = settings
        self.coverage = coverage
        self.parser = parser

    def files(self) -> List[str]:
        return discover_files(self.root, self.settings.codegen_patterns, self.settings.exclude_dirs)

    def extract(self) -> Iterator[CodegenExportSource]:
        for rel_path in self.files():
            text = _read(self.root, rel_path, self.coverage)
            if text is None or "Document" not in text or "definitions" not in text:
                continue
            self.coverage.codegen_detected()
            try:
                parsed = self.parser.parse(rel_path, text)
            except SourceParseError as exc:
                self.coverage.parse_failed(rel_path, exc)
                continue
            exports = list(self.exports_in(parsed))
            self.coverage.codegen_parsed(len(exports))
            logger.debug("Codegen module %s: %d document exports", rel_path, len(exports))
            yield from exports

    @staticmethod
    def exports_in(parsed: ParsedSource) -> Iterator[CodegenExportSource]:
        for declarator in exported_declarators(parsed.root):
            name = declarator_name(declarator, parsed.source)
            value = declarator.child_by_field_name("value")
            if name is None or value is None or unwrap(value).type != "object":
                continue
            document = literal_value(value, parsed.source)
            if isinstance(document, dict) and document.get("kind") == "Document":
                yield CodegenExportSource(
                    file_path=parsed.file_path,
                    document_name=name,
                    parsed_document=document,
                    line=declarator.start_point[0] + 1,
                )


# ---------------------------------------------------------------------------
# Source -> Operation candidates
# ---------------------------------------------------------------------------

def _first_named_operation(document: Dict[str, Any]) -> bool:
    definitions = document.get("definitions") or []
    if not definitions or not isinstance(definitions[0], dict):
        return False
    first = definitions[0]
    return first.get("kind") == "OperationDefinition" and isinstance(first.get("name"), dict)


def operations_from_source(source: RawOperationSource, coverage: CoverageTracker) -> List[Operation]:
    """Operation candidates for one raw source; invalid input is counted and yields nothing."""
    if isinstance(source, GraphQLFileSource):
        try:
            return parse_operations(source.text, source.file_path)
        except GraphQLError as exc:
            coverage.graphql_parse_failed(source.file_path, exc)
            return []

    if isinstance(source, InlineTemplateSource):
        try:
            operations = parse_operations(source.text, source.file_path, line_offset=source.line - 1)
        except GraphQLError as exc:
            coverage.graphql_parse_failed(source.file_path, exc)
            return []
        for op in operations:
            if source.enclosing_variable_name:
                op.aliases.add(source.enclosing_variable_name)
            if not op.is_anonymous:
                op.aliases.add(f"{op.name}Document")
        return operations

    if isinstance(source, CodegenExportSource):
        if not _first_named_operation(source.parsed_document):
            return []
        document = document_from_dict(source.parsed_document)
        if document is None:
            return []
        operations = operations_from_document(document, source.file_path)
        for op in operations:
            op.line = source.line
            op.aliases.add(source.document_name)
        # Fragments bundled into an operation's document belong to that operation.
        return operations[:1]

    raise TypeError(f"unknown operation source: {type(source).__name__}")


def extract_all(
    root: Path,
    settings: ScanSettings,
    coverage: CoverageTracker,
    parser: SourceParser,
) -> Tuple[List[RawOperationSource], List[str]]:
    """Run every extractor; returns the sources and the codegen module paths."""
    graphql = GraphQLFileExtractor(root, settings, coverage)
    inline = InlineTemplateExtractor(root, settings, coverage, parser)
    codegen = CodegenExtractor(root, settings, coverage, parser)

    sources: List[RawOperationSource] = []
    sources.extend(graphql.extract())
    sources.extend(inline.extract())
    sources.extend(codegen.extract())
    logger.info("Extracted %d raw operation sources", len(sources))
    return sources, codegen.files()
