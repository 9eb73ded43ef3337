"""Resolve call sites in consumer code to canonical GraphQL operation names.

A call such as ``useQuery(...)`` rarely names its operation directly. The
reference may arrive as a type argument (``useQuery<GetUserQuery>``), a
codegen constant (``GetUserDocument``), a local binding
(``const Query = gql`query GetUser {...}```), a static property
(``Page.Query``) or an inline template. :class:`SymbolResolver` tries each
of these in a fixed order and stops at the first one that names a known
operation.
"""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional, Sequence, Set, Tuple

from .graphql_parser import operation_name_from_text
from .js_ast import (
    CallExpression,
    Expression,
    Identifier,
    MemberExpression,
    ObjectExpression,
    StringLiteral,
    TaggedTemplate,
    TemplateLiteral,
    TypeReference,
    callee_name,
    declarator_name,
    is_gql_tag,
    iter_calls,
    node_text,
    to_expression,
    walk_with_declarators,
)
from .models import Operation
from .parser import ParsedSource
from .registry import GENERIC_NAMES, OperationRegistry

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Hook vocabulary
# ---------------------------------------------------------------------------

GRAPHQL_QUERY_HOOKS = (
    "useQuery",
    "useLazyQuery",
    "useSuspenseQuery",
    "useBackgroundQuery",
    "useReadQuery",
)
GRAPHQL_MUTATION_HOOKS = ("useMutation",)
GRAPHQL_OTHER_HOOKS = ("useSubscription", "useFragment", "useApolloClient")
ALL_GRAPHQL_HOOKS = GRAPHQL_QUERY_HOOKS + GRAPHQL_MUTATION_HOOKS + GRAPHQL_OTHER_HOOKS

CLIENT_METHODS = ("query", "mutate")
DOCUMENT_KEYS = ("query", "mutation")

# Substrings that make a file worth looking at at all.
GRAPHQL_INDICATORS = (
    "Document",
    "useQuery",
    "useMutation",
    "useLazyQuery",
    "useSuspenseQuery",
    "useBackgroundQuery",
    "useSubscription",
    "Query",
    "Mutation",
    "gql",
    "graphql",
    "GET_",
    "FETCH_",
    "SEARCH_",
    "CREATE_",
    "UPDATE_",
    "DELETE_",
    "SUBSCRIBE_",
    "@apollo",
    "ApolloClient",
)

_CUSTOM_QUERY_HOOK = re.compile(r"^use[A-Z].*Query$")
_CUSTOM_MUTATION_HOOK = re.compile(r"^use[A-Z].*Mutation$")
_GENERATED_HOOK = re.compile(r"^use([A-Z]\w*?)(?:Lazy|Suspense)?(?:Query|Mutation|Subscription)$")
_SPAN_GENERIC = re.compile(rb"^\s*<\s*(\w+)(?:Query|Mutation|Variables|Subscription)?[\s,>]")
_SPAN_FALLBACK_BYTES = 150

_GRAPHQL_SOURCES = ("__generated__", "generated", "graphql")


def has_graphql_indicators(text: str) -> bool:
    return any(indicator in text for indicator in GRAPHQL_INDICATORS)


def is_query_hook(name: str) -> bool:
    return name in GRAPHQL_QUERY_HOOKS or bool(_CUSTOM_QUERY_HOOK.match(name))


def is_mutation_hook(name: str) -> bool:
    return name in GRAPHQL_MUTATION_HOOKS or bool(_CUSTOM_MUTATION_HOOK.match(name))


@functools.lru_cache(maxsize=256)
def _compile_hook_pattern(pattern: str) -> Optional[re.Pattern]:
    try:
        return re.compile(pattern)
    except re.error:
        logger.warning("Ignoring invalid hook pattern %r", pattern)
        return None


def is_graphql_hook(name: str, extra_patterns: Sequence[str] = ()) -> bool:
    """True for Apollo-style hooks.

    ``useQueryParams`` or ``useQueryClient`` are not hooks: custom names must
    *end* in ``Query``/``Mutation``.
    """
    if not name.startswith("use"):
        return False
    if name in ALL_GRAPHQL_HOOKS or is_query_hook(name) or is_mutation_hook(name):
        return True
    for pattern in extra_patterns:
        if name == pattern:
            return True
        compiled = _compile_hook_pattern(pattern)
        if compiled is not None and compiled.fullmatch(name):
            return True
    return False


def hook_type(name: str) -> str:
    if name in ("useLazyQuery", "useSuspenseQuery", "useBackgroundQuery", "useReadQuery"):
        return name[3:].replace("Query", "").lower() or "query"
    if is_query_hook(name):
        return "query"
    if is_mutation_hook(name):
        return "mutation"
    if name == "useSubscription":
        return "subscription"
    if name == "useFragment":
        return "fragment"
    return "client"


def clean_operation_name(name: str) -> str:
    """``GET_USER_QUERY`` / ``GetUserDocument`` / ``GetUserQueryVariables`` -> base name."""
    name = re.sub(r"^(GET_|FETCH_|CREATE_|UPDATE_|DELETE_)", "", name)
    name = re.sub(r"_QUERY$|_MUTATION$", "", name)
    name = re.sub(r"Document$", "", name)
    name = re.sub(r"Variables$", "", name)
    return re.sub(r"Query$|Mutation$|Subscription$", "", name)


def inline_operation_name(expr: Expression, source: bytes) -> Optional[str]:
    """Operation name declared by a ``gql`...``` / ``gql(`...`)`` expression."""
    if isinstance(expr, TaggedTemplate) and is_gql_tag(expr.tag):
        return operation_name_from_text(expr.template.text)
    if isinstance(expr, CallExpression) and is_gql_tag(expr.callee):
        first = expr.first_argument
        if isinstance(first, TemplateLiteral):
            return operation_name_from_text(first.text)
        if isinstance(first, StringLiteral):
            return operation_name_from_text(first.value)
        if expr.arguments:
            return operation_name_from_text(node_text(expr.node, source))
    return None


# ---------------------------------------------------------------------------
# Per-file alias tables
# ---------------------------------------------------------------------------

@dataclass
class FileContext:
    """Alias tables collected from one consumer file."""

    # import { GetUserDocument as UserDoc } -> {"UserDoc": "GetUser"}
    document_imports: Dict[str, str] = field(default_factory=dict)
    # const Query = gql`query GetFollowPage {...}` -> {"Query": "GetFollowPage"}
    variable_operations: Dict[str, str] = field(default_factory=dict)
    # const doc = GetUserDocument -> {"doc": "GetUserDocument"}
    variable_references: Dict[str, str] = field(default_factory=dict)
    # Page.Query = gql`query PageData {...}` -> {"Page.Query": "PageData"}
    static_properties: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def build(cls, parsed: ParsedSource) -> "FileContext":
        ctx = cls()
        source = parsed.source
        for node, declarator in walk_with_declarators(parsed.root, source):
            if node.type == "import_statement":
                ctx._add_imports(node, source)
            elif node.type == "call_expression":
                if declarator is None or declarator in ctx.variable_operations:
                    continue
                name = inline_operation_name(to_expression(node, source), source)
                if name:
                    ctx.variable_operations[declarator] = name
            elif node.type == "variable_declarator":
                ctx._add_reference(node, source)
            elif node.type == "assignment_expression":
                ctx._add_static_property(node, source)
        return ctx

    def _add_imports(self, node, source: bytes) -> None:
        if any(child.type == "type" for child in node.children):
            return
        source_node = node.child_by_field_name("source")
        module = node_text(source_node, source)[1:-1] if source_node is not None else ""
        from_graphql = any(marker in module for marker in _GRAPHQL_SOURCES) or module.endswith(".graphql")

        for imported, local in _import_bindings(node, source):
            if local.endswith("Document") or from_graphql:
                self.document_imports[local] = re.sub(r"Document$", "", imported)
            if imported.endswith("Query") or imported.endswith("Mutation"):
                self.document_imports[local] = re.sub(r"Query$|Mutation$", "", imported)

    def _add_reference(self, node, source: bytes) -> None:
        name = declarator_name(node, source)
        value = node.child_by_field_name("value")
        if name is None or value is None:
            return
        expr = to_expression(value, source)
        if isinstance(expr, Identifier) and expr.name.endswith(("Document", "Query", "Mutation")):
            self.variable_references[name] = expr.name

    def _add_static_property(self, node, source: bytes) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        if left is None or right is None:
            return
        target = to_expression(left, source)
        if not (isinstance(target, MemberExpression) and isinstance(target.object, Identifier)):
            return
        name = inline_operation_name(to_expression(right, source), source)
        if name:
            self.static_properties[f"{target.object.name}.{target.property}"] = name


def _import_bindings(node, source: bytes) -> Iterator[Tuple[str, str]]:
    """Yield ``(imported name, local name)`` for value imports of an import statement."""
    for clause in node.named_children:
        if clause.type != "import_clause":
            continue
        for child in clause.named_children:
            if child.type == "identifier":
                name = node_text(child, source)
                yield name, name
            elif child.type == "named_imports":
                for specifier in child.named_children:
                    if specifier.type != "import_specifier":
                        continue
                    if any(c.type == "type" for c in specifier.children):
                        continue
                    imported = specifier.child_by_field_name("name")
                    alias = specifier.child_by_field_name("alias")
                    if imported is None:
                        continue
                    imported_name = node_text(imported, source)
                    yield imported_name, node_text(alias, source) if alias else imported_name


# ---------------------------------------------------------------------------
# Call classification
# ---------------------------------------------------------------------------

def document_argument(call: CallExpression) -> Optional[Expression]:
    """``client.query({ query: X })`` -> ``X``."""
    first = call.first_argument
    if isinstance(first, ObjectExpression):
        for key in DOCUMENT_KEYS:
            value = first.get(key)
            if value is not None:
                return value
    return None


def is_client_call(call: CallExpression) -> bool:
    return (
        isinstance(call.callee, MemberExpression)
        and call.callee.property in CLIENT_METHODS
        and document_argument(call) is not None
    )


def is_graphql_call(call: CallExpression, extra_patterns: Sequence[str] = ()) -> bool:
    name = callee_name(call.callee)
    if name is None:
        return False
    return is_graphql_hook(name, extra_patterns) or is_client_call(call)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

class SymbolResolver:
    """Turn a GraphQL call site into an operation name.

    Strategies, in order: explicit type argument, raw-source type argument,
    first argument, generated hook name. With a registry, a strategy only
    succeeds when its candidate names a registered operation and the
    canonical name is returned; without one, the first candidate wins.
    """

    def __init__(
        self,
        registry: Optional[OperationRegistry] = None,
        context: Optional[FileContext] = None,
        source: bytes = b"",
    ) -> None:
        self.registry = registry
        self.context = context or FileContext()
        self.source = source

    def resolve(self, call: CallExpression) -> Optional[str]:
        name, _ = self._resolve(call)
        return name

    def resolve_operation(self, call: CallExpression) -> Optional[Operation]:
        _, op = self._resolve(call)
        return op

    def _resolve(self, call: CallExpression) -> Tuple[Optional[str], Optional[Operation]]:
        for candidate in self._candidates(call):
            if not candidate:
                continue
            if self.registry is None:
                return clean_operation_name(candidate) or candidate, None
            op = self.registry.resolve_alias(candidate)
            if op is None:
                op = self.registry.resolve_alias(clean_operation_name(candidate))
            if op is not None:
                return op.name, op
        return None, None

    def _candidates(self, call: CallExpression) -> Iterator[str]:
        yield from self._from_type_arguments(call)
        yield from self._from_source_span(call)
        first = call.first_argument
        if first is not None:
            yield from self._from_expression(first, depth=0)
        if self.registry is not None:
            yield from self._from_hook_name(call)

    # 1. useQuery<GetUserQuery>(...)
    def _from_type_arguments(self, call: CallExpression) -> Iterator[str]:
        if call.type_arguments and isinstance(call.type_arguments[0], TypeReference):
            yield call.type_arguments[0].name

    # 2. same, read from the raw text when the tree has no usable type node
    def _from_source_span(self, call: CallExpression) -> Iterator[str]:
        if call.type_arguments and isinstance(call.type_arguments[0], TypeReference):
            return
        callee_node = call.callee.node
        if callee_node is None or not self.source:
            return
        start = callee_node.end_byte
        end = min(start + _SPAN_FALLBACK_BYTES, call.node.end_byte)
        match = _SPAN_GENERIC.match(self.source[start:end])
        if match:
            yield match.group(1).decode("utf-8")

    # 3. first argument
    def _from_expression(self, expr: Expression, depth: int) -> Iterator[str]:
        if isinstance(expr, Identifier):
            yield from self._from_identifier(expr.name, set())
        elif isinstance(expr, MemberExpression):
            if isinstance(expr.object, Identifier):
                static = self.context.static_properties.get(f"{expr.object.name}.{expr.property}")
                if static:
                    yield static
            yield expr.property
        elif isinstance(expr, (TaggedTemplate, CallExpression)):
            name = inline_operation_name(expr, self.source)
            if name:
                yield name
        elif isinstance(expr, TemplateLiteral):
            name = operation_name_from_text(expr.text)
            if name:
                yield name
        elif isinstance(expr, ObjectExpression) and depth == 0:
            for key in DOCUMENT_KEYS:
                value = expr.get(key)
                if value is not None:
                    yield from self._from_expression(value, depth + 1)
                    break

    def _from_identifier(self, name: str, seen: Set[str]) -> Iterator[str]:
        if name in seen:
            return
        seen.add(name)

        resolved = self.context.variable_operations.get(name)
        if resolved:
            yield resolved
        referenced = self.context.variable_references.get(name)
        if referenced:
            yield from self._from_identifier(referenced, seen)
        imported = self.context.document_imports.get(name)
        if imported:
            yield imported
        if GENERIC_NAMES.match(name):
            return
        yield name

    # 4. useGetUserQuery() from codegen's hook presets
    def _from_hook_name(self, call: CallExpression) -> Iterator[str]:
        name = callee_name(call.callee)
        if name is None or name in ALL_GRAPHQL_HOOKS:
            return
        match = _GENERATED_HOOK.match(name)
        if match:
            yield match.group(1)


def iter_graphql_calls(
    parsed: ParsedSource,
    extra_patterns: Iterable[str] = (),
    root=None,
) -> Iterator[CallExpression]:
    """Typed GraphQL call expressions under *root* (default: whole file)."""
    patterns = tuple(extra_patterns)
    for node in iter_calls(root if root is not None else parsed.root):
        expr = to_expression(node, parsed.source)
        if isinstance(expr, CallExpression) and is_graphql_call(expr, patterns):
            yield expr
