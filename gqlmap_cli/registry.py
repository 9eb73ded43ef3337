"""Canonical store of GraphQL operations and their alias index."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Set

from .models import Operation

logger = logging.getLogger(__name__)

TYPE_SUFFIXES = ("Query", "Mutation", "Subscription")

# Local binding names too generic to identify an operation outside their file.
GENERIC_NAMES = re.compile(r"^(Query|Mutation|Document)$", re.IGNORECASE)

USAGE_HOOK = "hook"
USAGE_CLIENT = "client"
USAGE_SSR = "ssr"
USAGE_DOCUMENT = "document"


@dataclass
class AliasIndex:
    """Lookup tables from a syntactic name to an operation, in priority order."""

    by_name: Dict[str, Operation] = field(default_factory=dict)
    by_document: Dict[str, Operation] = field(default_factory=dict)
    by_type: Dict[str, Operation] = field(default_factory=dict)
    by_alias: Dict[str, Operation] = field(default_factory=dict)

    @property
    def tiers(self) -> List[Dict[str, Operation]]:
        return [self.by_name, self.by_document, self.by_type, self.by_alias]

    @classmethod
    def build(cls, operations: List[Operation]) -> "AliasIndex":
        index = cls()
        for op in operations:
            if not op.is_anonymous:
                index.by_name.setdefault(op.name, op)
                index.by_document.setdefault(f"{op.name}Document", op)
                for suffix in TYPE_SUFFIXES:
                    index.by_type.setdefault(f"{op.name}{suffix}", op)
                    index.by_type.setdefault(f"{op.name}{suffix}Variables", op)
            for alias in sorted(op.aliases):
                if not GENERIC_NAMES.match(alias):
                    index.by_alias.setdefault(alias, op)
        return index


class OperationRegistry:
    """Operations keyed by name, merged on re-declaration.

    The first declaration seen for a name supplies the definition metadata
    (file, variables, selection). Later declarations only contribute their
    aliases and usages.
    """

    def __init__(self) -> None:
        self._operations: Dict[str, Operation] = {}
        self._index: Optional[AliasIndex] = None

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(self, candidate: Operation) -> None:
        existing = self._operations.get(candidate.key)
        if existing is None:
            self._operations[candidate.key] = candidate
        else:
            existing.aliases |= candidate.aliases
            existing.used_in |= candidate.used_in
            existing.ssr_used_in |= candidate.ssr_used_in
            logger.debug(
                "Merged duplicate declaration of %s from %s",
                candidate.name, candidate.definition_file,
            )
        self._index = None

    # ------------------------------------------------------------------
    # Alias index
    # ------------------------------------------------------------------

    def build_index(self) -> AliasIndex:
        self._index = AliasIndex.build(self.all())
        logger.debug(
            "Alias index: %d names, %d free-form aliases",
            len(self._index.by_name), len(self._index.by_alias),
        )
        return self._index

    @property
    def index(self) -> AliasIndex:
        if self._index is None:
            return self.build_index()
        return self._index

    def resolve_alias(self, token: str) -> Optional[Operation]:
        """Exact name, then ``<name>Document``, then type suffixes, then free-form aliases."""
        for tier in self.index.tiers:
            op = tier.get(token)
            if op is not None:
                return op
        return None

    def document_operation(self, token: str) -> Optional[Operation]:
        """Resolve only Document-qualified references (``GetUserDocument``)."""
        index = self.index
        op = index.by_document.get(token)
        if op is None and token.endswith("Document"):
            op = index.by_alias.get(token)
        return op

    def searchable_names(self) -> Set[str]:
        names: Set[str] = set()
        for op in self._operations.values():
            if not op.is_anonymous:
                names.add(op.name)
                names.add(f"{op.name}Document")
                names.update(f"{op.name}{suffix}" for suffix in TYPE_SUFFIXES)
            names.update(op.aliases)
        return names

    # ------------------------------------------------------------------
    # Usages
    # ------------------------------------------------------------------

    def record_usage(self, operation: Operation, file_path: str, *, via: str = USAGE_HOOK) -> bool:
        """Mark *file_path* as a consumer of *operation*; returns True if it is new."""
        added = file_path not in operation.used_in
        operation.used_in.add(file_path)
        if via == USAGE_SSR:
            operation.ssr_used_in.add(file_path)
        if added:
            logger.debug("%s used in %s (%s)", operation.name, file_path, via)
        return added

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def all(self) -> List[Operation]:
        return list(self._operations.values())

    def get(self, name: str) -> Optional[Operation]:
        return self._operations.get(name)

    def __len__(self) -> int:
        return len(self._operations)

    def __contains__(self, name: object) -> bool:
        return name in self._operations

    def __iter__(self) -> Iterator[Operation]:
        return iter(list(self._operations.values()))
