"""GraphQL document parsing built on graphql-core.

Converts ``.graphql`` text, inline ``gql`` template text and codegen
document objects into :class:`~gqlmap_cli.models.Operation` candidates.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Optional, Set

from graphql import parse
from graphql.language import (
    ArgumentNode,
    DefinitionNode,
    DocumentNode,
    FieldNode,
    FragmentDefinitionNode,
    FragmentSpreadNode,
    InlineFragmentNode,
    ListTypeNode,
    NamedTypeNode,
    NameNode,
    NonNullTypeNode,
    NullValueNode,
    OperationDefinitionNode,
    OperationType,
    SelectionSetNode,
    TypeNode,
    VariableDefinitionNode,
    VariableNode,
    get_location,
)

from .models import ANONYMOUS, FRAGMENT, MAX_SELECTION_DEPTH, Field, Operation, VariableInfo

_OPERATION_HEADER = re.compile(r"(?:query|mutation|subscription)\s+(\w+)", re.IGNORECASE)


def operation_name_from_text(text: str) -> Optional[str]:
    """Return the name in the first ``query|mutation|subscription Name`` header."""
    match = _OPERATION_HEADER.search(text)
    return match.group(1) if match else None


# ---------------------------------------------------------------------------
# Document -> Operation
# ---------------------------------------------------------------------------

def parse_operations(text: str, file_path: str, line_offset: int = 0) -> List[Operation]:
    """Parse *text* and return one operation per definition.

    Raises ``graphql.GraphQLError`` on malformed input; callers are expected
    to count the failure and drop the source.
    """
    document = parse(text)
    return operations_from_document(document, file_path, line_offset=line_offset)


def operations_from_document(
    document: DocumentNode,
    file_path: str,
    line_offset: int = 0,
) -> List[Operation]:
    operations: List[Operation] = []
    for definition in document.definitions:
        operation = _operation_from_definition(definition, file_path, line_offset)
        if operation is not None:
            operations.append(operation)
    return operations


def _operation_from_definition(
    definition: DefinitionNode,
    file_path: str,
    line_offset: int,
) -> Optional[Operation]:
    line, column = _definition_location(definition)
    if line is not None:
        line += line_offset

    if isinstance(definition, OperationDefinitionNode):
        return Operation(
            name=definition.name.value if definition.name else ANONYMOUS,
            kind=definition.operation.value,
            definition_file=file_path,
            line=line,
            column=column,
            variables=extract_variables(definition),
            selection=extract_fields(definition.selection_set),
            fragment_references=extract_fragment_references(definition),
            return_type=infer_return_type(definition),
        )

    if isinstance(definition, FragmentDefinitionNode):
        return Operation(
            name=definition.name.value,
            kind=FRAGMENT,
            definition_file=file_path,
            line=line,
            column=column,
            selection=extract_fields(definition.selection_set),
            fragment_references=extract_fragment_references(definition),
            return_type=definition.type_condition.name.value,
        )

    # Schema definitions and extensions are not operations.
    return None


def _definition_location(definition: DefinitionNode):
    loc = definition.loc
    if loc is None or loc.source is None:
        return None, None
    location = get_location(loc.source, loc.start)
    return location.line, location.column


def type_to_string(type_node: Optional[TypeNode]) -> str:
    if isinstance(type_node, NonNullTypeNode):
        return f"{type_to_string(type_node.type)}!"
    if isinstance(type_node, ListTypeNode):
        return f"[{type_to_string(type_node.type)}]"
    if isinstance(type_node, NamedTypeNode):
        return type_node.name.value
    return "unknown"


def extract_variables(definition: OperationDefinitionNode) -> List[VariableInfo]:
    return [
        VariableInfo(
            name=var_def.variable.name.value,
            type=type_to_string(var_def.type),
            required=isinstance(var_def.type, NonNullTypeNode),
        )
        for var_def in definition.variable_definitions or ()
    ]


def extract_fields(selection_set: Optional[SelectionSetNode], depth: int = 0) -> List[Field]:
    """Model a selection set as a tree of :class:`Field`, cut off below the depth cap."""
    if selection_set is None or depth > MAX_SELECTION_DEPTH:
        return []

    fields: List[Field] = []
    for selection in selection_set.selections or ():
        if isinstance(selection, FieldNode):
            arguments = selection.arguments or ()
            fields.append(Field(
                name=selection.name.value,
                arg_summary=f"({', '.join(a.name.value for a in arguments)})" if arguments else None,
                children=(
                    extract_fields(selection.selection_set, depth + 1)
                    if selection.selection_set is not None
                    else None
                ),
            ))
        elif isinstance(selection, FragmentSpreadNode):
            fields.append(Field(name=f"...{selection.name.value}", kind="fragment"))
        elif isinstance(selection, InlineFragmentNode) and selection.selection_set is not None:
            type_name = selection.type_condition.name.value if selection.type_condition else "inline"
            fields.append(Field(
                name=f"... on {type_name}",
                kind="inline-fragment",
                children=extract_fields(selection.selection_set, depth + 1),
            ))
    return fields


def extract_fragment_references(definition: DefinitionNode) -> Set[str]:
    found: Set[str] = set()

    def _visit(selection_set: Optional[SelectionSetNode]) -> None:
        if selection_set is None:
            return
        for selection in selection_set.selections or ():
            if isinstance(selection, FragmentSpreadNode):
                found.add(selection.name.value)
            elif isinstance(selection, (FieldNode, InlineFragmentNode)):
                _visit(selection.selection_set)

    _visit(getattr(definition, "selection_set", None))
    return found


def infer_return_type(definition: OperationDefinitionNode) -> str:
    selections = definition.selection_set.selections if definition.selection_set else ()
    if selections and isinstance(selections[0], FieldNode):
        return selections[0].name.value
    return "unknown"


# ---------------------------------------------------------------------------
# Codegen object literal -> DocumentNode
# ---------------------------------------------------------------------------

def document_from_dict(obj: Dict[str, Any]) -> Optional[DocumentNode]:
    """Rebuild a graphql-core document from a codegen ``{"kind": "Document"}`` object.

    Codegen emits the parsed document as a JSON-like literal. Only the node
    kinds this tool reads are rebuilt; anything else is dropped.
    """
    if not isinstance(obj, dict) or obj.get("kind") != "Document":
        return None
    definitions = [_node_from_dict(d) for d in obj.get("definitions") or []]
    return DocumentNode(definitions=tuple(d for d in definitions if d is not None))


def _name(obj: Any) -> Optional[NameNode]:
    if isinstance(obj, dict) and isinstance(obj.get("value"), str):
        return NameNode(value=obj["value"])
    return None


def _children(obj: Dict[str, Any], key: str) -> tuple:
    items = obj.get(key) or []
    nodes = (_node_from_dict(item) for item in items if isinstance(item, dict))
    return tuple(node for node in nodes if node is not None)


def _selection_set(obj: Dict[str, Any]) -> Optional[SelectionSetNode]:
    raw = obj.get("selectionSet")
    if not isinstance(raw, dict):
        return None
    return SelectionSetNode(selections=_children(raw, "selections"))


def _type(obj: Any) -> Optional[TypeNode]:
    node = _node_from_dict(obj) if isinstance(obj, dict) else None
    return node if isinstance(node, TypeNode) else None


def _operation_definition(obj: Dict[str, Any]) -> Optional[OperationDefinitionNode]:
    try:
        operation = OperationType(obj.get("operation", "query"))
    except ValueError:
        return None
    return OperationDefinitionNode(
        operation=operation,
        name=_name(obj.get("name")),
        variable_definitions=_children(obj, "variableDefinitions"),
        directives=(),
        selection_set=_selection_set(obj),
    )


def _fragment_definition(obj: Dict[str, Any]) -> Optional[FragmentDefinitionNode]:
    name = _name(obj.get("name"))
    type_condition = _type(obj.get("typeCondition"))
    if name is None or not isinstance(type_condition, NamedTypeNode):
        return None
    return FragmentDefinitionNode(
        name=name,
        type_condition=type_condition,
        directives=(),
        selection_set=_selection_set(obj),
    )


def _variable_definition(obj: Dict[str, Any]) -> Optional[VariableDefinitionNode]:
    variable = obj.get("variable") or {}
    name = _name(variable.get("name"))
    if name is None:
        return None
    return VariableDefinitionNode(
        variable=VariableNode(name=name),
        type=_type(obj.get("type")),
        directives=(),
    )


def _field(obj: Dict[str, Any]) -> Optional[FieldNode]:
    name = _name(obj.get("name"))
    if name is None:
        return None
    arguments = tuple(
        ArgumentNode(name=_name(arg.get("name")), value=NullValueNode())
        for arg in obj.get("arguments") or []
        if isinstance(arg, dict) and _name(arg.get("name")) is not None
    )
    return FieldNode(
        alias=_name(obj.get("alias")),
        name=name,
        arguments=arguments,
        directives=(),
        selection_set=_selection_set(obj),
    )


def _fragment_spread(obj: Dict[str, Any]) -> Optional[FragmentSpreadNode]:
    name = _name(obj.get("name"))
    return FragmentSpreadNode(name=name, directives=()) if name else None


def _inline_fragment(obj: Dict[str, Any]) -> InlineFragmentNode:
    type_condition = _type(obj.get("typeCondition"))
    return InlineFragmentNode(
        type_condition=type_condition if isinstance(type_condition, NamedTypeNode) else None,
        directives=(),
        selection_set=_selection_set(obj),
    )


def _named_type(obj: Dict[str, Any]) -> Optional[NamedTypeNode]:
    name = _name(obj.get("name"))
    return NamedTypeNode(name=name) if name else None


def _wrapped_type(node_class):
    def _build(obj: Dict[str, Any]):
        inner = _type(obj.get("type"))
        return node_class(type=inner) if inner is not None else None
    return _build


_NODE_BUILDERS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "OperationDefinition": _operation_definition,
    "FragmentDefinition": _fragment_definition,
    "VariableDefinition": _variable_definition,
    "Field": _field,
    "FragmentSpread": _fragment_spread,
    "InlineFragment": _inline_fragment,
    "NamedType": _named_type,
    "NonNullType": _wrapped_type(NonNullTypeNode),
    "ListType": _wrapped_type(ListTypeNode),
}


def _node_from_dict(obj: Dict[str, Any]):
    builder = _NODE_BUILDERS.get(obj.get("kind", ""))
    return builder(obj) if builder else None
