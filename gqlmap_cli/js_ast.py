"""Typed view over the tree-sitter expression nodes the engine cares about.

Tree-sitter hands back untyped nodes tagged by a ``type`` string. The
resolver and extractors only ever look at a handful of expression shapes, so
those are lifted into a closed set of small classes here and everything else
becomes :class:`Unknown`. Callers dispatch with ``isinstance`` on these
classes rather than poking at node type strings.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterator, List, Optional, Tuple, Union


@dataclass(frozen=True)
class Identifier:
    name: str
    node: Any


@dataclass(frozen=True)
class MemberExpression:
    object: "Expression"
    property: str
    node: Any


@dataclass(frozen=True)
class TypeReference:
    name: str
    node: Any


@dataclass(frozen=True)
class TemplateLiteral:
    # Template body without the backticks; ``${...}`` interpolations removed.
    text: str
    node: Any


@dataclass(frozen=True)
class StringLiteral:
    value: str
    node: Any


@dataclass(frozen=True)
class TaggedTemplate:
    tag: "Expression"
    template: TemplateLiteral
    node: Any


@dataclass(frozen=True)
class ObjectExpression:
    properties: Tuple[Tuple[str, "Expression"], ...]
    node: Any

    def get(self, key: str) -> Optional["Expression"]:
        for name, value in self.properties:
            if name == key:
                return value
        return None


@dataclass(frozen=True)
class CallExpression:
    callee: "Expression"
    arguments: Tuple["Expression", ...]
    type_arguments: Tuple[Union[TypeReference, "Unknown"], ...]
    node: Any

    @property
    def first_argument(self) -> Optional["Expression"]:
        return self.arguments[0] if self.arguments else None


@dataclass(frozen=True)
class Unknown:
    node: Any


Expression = Union[
    Identifier,
    MemberExpression,
    CallExpression,
    TaggedTemplate,
    TemplateLiteral,
    StringLiteral,
    ObjectExpression,
    Unknown,
]

# Wrappers that do not change what an expression refers to.
_TRANSPARENT = {
    "parenthesized_expression",
    "as_expression",
    "satisfies_expression",
    "non_null_expression",
}


def node_text(node: Any, source: bytes) -> str:
    return source[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def unwrap(node: Any) -> Any:
    """Strip parentheses and type-only wrappers (``as``, ``satisfies``, ``!``, ``<T>x``)."""
    while node is not None:
        if node.type in _TRANSPARENT and node.named_children:
            node = node.named_children[0]
        elif node.type == "type_assertion" and node.named_children:
            node = node.named_children[-1]
        else:
            break
    return node


def to_expression(node: Any, source: bytes) -> Expression:
    """Convert a tree-sitter expression node into one of the typed variants."""
    node = unwrap(node)
    if node is None:
        return Unknown(node)

    kind = node.type
    if kind == "identifier":
        return Identifier(node_text(node, source), node)

    if kind == "member_expression":
        obj = node.child_by_field_name("object")
        prop = node.child_by_field_name("property")
        if obj is None or prop is None:
            return Unknown(node)
        return MemberExpression(to_expression(obj, source), node_text(prop, source), node)

    if kind == "call_expression":
        return _call(node, source)

    if kind == "template_string":
        return TemplateLiteral(template_text(node, source), node)

    if kind == "string":
        return StringLiteral(node_text(node, source)[1:-1], node)

    if kind == "object":
        return ObjectExpression(tuple(_object_properties(node, source)), node)

    return Unknown(node)


def _call(node: Any, source: bytes) -> Expression:
    function = node.child_by_field_name("function")
    arguments = node.child_by_field_name("arguments")
    if function is None or arguments is None:
        return Unknown(node)

    # tree-sitter parses ``tag`...``` as a call whose arguments are the template.
    if arguments.type == "template_string":
        return TaggedTemplate(
            to_expression(function, source),
            TemplateLiteral(template_text(arguments, source), arguments),
            node,
        )

    args = tuple(
        to_expression(child, source)
        for child in arguments.named_children
        if child.type != "comment"
    )
    return CallExpression(
        callee=to_expression(function, source),
        arguments=args,
        type_arguments=_type_arguments(node.child_by_field_name("type_arguments"), source),
        node=node,
    )


def _type_arguments(node: Any, source: bytes) -> Tuple[Union[TypeReference, Unknown], ...]:
    if node is None:
        return ()
    refs: List[Union[TypeReference, Unknown]] = []
    for child in node.named_children:
        target = child
        if child.type == "generic_type":
            target = child.child_by_field_name("name") or child
        if target.type == "type_identifier":
            refs.append(TypeReference(node_text(target, source), child))
        elif target.type == "nested_type_identifier":
            name = target.child_by_field_name("name")
            refs.append(TypeReference(node_text(name, source), child) if name else Unknown(child))
        else:
            refs.append(Unknown(child))
    return tuple(refs)


def _object_properties(node: Any, source: bytes) -> Iterator[Tuple[str, Expression]]:
    for child in node.named_children:
        if child.type == "pair":
            key = child.child_by_field_name("key")
            value = child.child_by_field_name("value")
            if key is None or value is None or key.type == "computed_property_name":
                continue
            name = node_text(key, source)
            if key.type == "string":
                name = name[1:-1]
            yield name, to_expression(value, source)
        elif child.type == "shorthand_property_identifier":
            name = node_text(child, source)
            yield name, Identifier(name, child)


def template_text(node: Any, source: bytes) -> str:
    """Body of a template string with backticks and ``${...}`` parts removed."""
    start, end = node.start_byte + 1, node.end_byte - 1
    parts: List[bytes] = []
    cursor = start
    for child in node.named_children:
        if child.type == "template_substitution":
            parts.append(source[cursor:child.start_byte])
            cursor = child.end_byte
    parts.append(source[cursor:max(cursor, end)])
    return b"".join(parts).decode("utf-8", errors="replace")


def callee_name(expr: Expression) -> Optional[str]:
    """``foo(...)`` -> ``foo``; ``client.query(...)`` -> ``query``."""
    if isinstance(expr, Identifier):
        return expr.name
    if isinstance(expr, MemberExpression):
        return expr.property
    return None


def is_gql_tag(expr: Expression) -> bool:
    return callee_name(expr) in ("gql", "graphql")


# ---------------------------------------------------------------------------
# Traversal
# ---------------------------------------------------------------------------

def walk(root: Any) -> Iterator[Any]:
    """Pre-order walk without recursion (minified bundles nest deeply)."""
    stack = [root]
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def iter_calls(root: Any) -> Iterator[Any]:
    for node in walk(root):
        if node.type == "call_expression":
            yield node


def declarator_name(node: Any, source: bytes) -> Optional[str]:
    if node.type != "variable_declarator":
        return None
    name = node.child_by_field_name("name")
    if name is None or name.type != "identifier":
        return None
    return node_text(name, source)


def walk_with_declarators(root: Any, source: bytes) -> Iterator[Tuple[Any, Optional[str]]]:
    """Pre-order walk yielding ``(node, innermost enclosing declarator name)``.

    The name of a ``const X = ...`` declarator is pushed before its subtree
    is visited and popped after it, so a ``gql`` template nested anywhere in
    the initializer sees ``X`` as its enclosing variable.
    """
    names: List[str] = []
    stack: List[Tuple[Any, bool]] = [(root, False)]
    while stack:
        node, leaving = stack.pop()
        if leaving:
            names.pop()
            continue
        name = declarator_name(node, source)
        if name is not None:
            names.append(name)
            stack.append((node, True))
        yield node, names[-1] if names else None
        stack.extend((child, False) for child in reversed(node.children))
