"""Core data models shared by the extractors, registry, resolver and scanner."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Union

QUERY = "query"
MUTATION = "mutation"
SUBSCRIPTION = "subscription"
FRAGMENT = "fragment"

ANONYMOUS = "anonymous"

# Selection sets deeper than this are truncated.
MAX_SELECTION_DEPTH = 5


@dataclass
class VariableInfo:
    name: str
    type: str
    required: bool

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "required": self.required}


@dataclass
class Field:
    """One entry of an operation's selection tree.

    ``kind`` is ``"field"`` for a plain field, ``"fragment"`` for a
    ``...Name`` spread and ``"inline-fragment"`` for ``... on Type``.
    """

    name: str
    arg_summary: Optional[str] = None
    children: Optional[List[Field]] = None
    kind: str = "field"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"name": self.name}
        if self.kind != "field":
            out["type"] = self.kind
        elif self.arg_summary:
            out["type"] = self.arg_summary
        if self.children is not None:
            out["fields"] = [child.to_dict() for child in self.children]
        return out


@dataclass
class Operation:
    """A declared query, mutation, subscription or fragment."""

    name: str
    kind: str
    definition_file: str
    line: Optional[int] = None
    column: Optional[int] = None
    variables: List[VariableInfo] = field(default_factory=list)
    selection: List[Field] = field(default_factory=list)
    fragment_references: Set[str] = field(default_factory=set)
    return_type: str = "unknown"
    aliases: Set[str] = field(default_factory=set)
    used_in: Set[str] = field(default_factory=set)
    ssr_used_in: Set[str] = field(default_factory=set)

    @property
    def is_anonymous(self) -> bool:
        return self.name == ANONYMOUS

    @property
    def key(self) -> str:
        """Registry identity.

        Unnamed operations are keyed by their declaration site so that two
        unrelated anonymous queries never collapse into one entry.
        """
        if self.is_anonymous:
            return f"{ANONYMOUS}@{self.definition_file}:{self.line or 0}"
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "type": self.kind,
            "filePath": self.definition_file,
            "line": self.line,
            "column": self.column,
            "variables": [v.to_dict() for v in self.variables],
            "returnType": self.return_type,
            "fragments": sorted(self.fragment_references),
            "fields": [f.to_dict() for f in self.selection],
            "usedIn": sorted(self.used_in),
            "ssrUsedIn": sorted(self.ssr_used_in),
            "variableNames": sorted(self.aliases),
        }


@dataclass
class CoverageMetrics:
    files_scanned: int = 0
    parse_failures: int = 0
    graphql_parse_failures: int = 0
    codegen_files_detected: int = 0
    codegen_files_parsed: int = 0
    codegen_exports_found: int = 0
    unresolved_call_sites: int = 0
    coarse_pass_skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filesScanned": self.files_scanned,
            "parseFailures": self.parse_failures,
            "graphqlParseFailures": self.graphql_parse_failures,
            "codegenFilesDetected": self.codegen_files_detected,
            "codegenFilesParsed": self.codegen_files_parsed,
            "codegenExportsFound": self.codegen_exports_found,
            "unresolvedCallSites": self.unresolved_call_sites,
            "coarsePassSkipped": self.coarse_pass_skipped,
        }


# ---------------------------------------------------------------------------
# Raw operation sources handed over by the extractors
# ---------------------------------------------------------------------------

@dataclass
class GraphQLFileSource:
    file_path: str
    text: str


@dataclass
class InlineTemplateSource:
    file_path: str
    text: str
    enclosing_variable_name: Optional[str] = None
    line: int = 1


@dataclass
class CodegenExportSource:
    file_path: str
    document_name: str
    parsed_document: Dict[str, Any]
    line: int = 1


RawOperationSource = Union[GraphQLFileSource, InlineTemplateSource, CodegenExportSource]


@dataclass
class AnalysisResult:
    operations: List[Operation]
    coverage: CoverageMetrics

    def to_dict(self) -> Dict[str, Any]:
        return {
            "operations": [op.to_dict() for op in self.operations],
            "coverage": self.coverage.to_dict(),
        }

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent)
