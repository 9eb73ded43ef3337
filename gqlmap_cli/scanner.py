"""Two-phase sweep that records which files consume which operations.

Phase 1 runs one combined regular expression over the text of every file
that looks GraphQL-related and trusts only ``<Name>Document`` hits. Phase 2
parses those files and confirms hook and client calls through the
:class:`~gqlmap_cli.resolver.SymbolResolver`.
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Any, AsyncIterator, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from .config import ScanSettings
from .coverage import CoverageTracker
from .js_ast import (
    CallExpression,
    callee_name,
    declarator_name,
    iter_calls,
    node_text,
    to_expression,
    walk,
)
from .parser import ParsedSource, SourceParseError, SourceParser
from .registry import USAGE_CLIENT, USAGE_DOCUMENT, USAGE_HOOK, USAGE_SSR, OperationRegistry
from .resolver import (
    FileContext,
    SymbolResolver,
    has_graphql_indicators,
    hook_type,
    is_client_call,
    iter_graphql_calls,
)

logger = logging.getLogger(__name__)

SSR_LOADERS = ("getServerSideProps",)


class CoarseMatcher:
    """One compiled ``\\b(name|...)\\b`` alternation over the whole alias universe."""

    def __init__(self, names: Iterable[str], max_names: int = 2000) -> None:
        self.names = sorted(set(n for n in names if n), key=lambda n: (-len(n), n))
        self.skipped = not self.names or len(self.names) > max_names
        self._pattern: Optional[re.Pattern] = None
        if not self.skipped:
            alternation = "|".join(re.escape(name) for name in self.names)
            self._pattern = re.compile(rf"\b(?:{alternation})\b")

    def find(self, text: str) -> Set[str]:
        if self._pattern is None:
            return set()
        return {match.group(0) for match in self._pattern.finditer(text)}


class UsageScanner:
    """Records usages into an :class:`OperationRegistry` whose index is final."""

    def __init__(
        self,
        root: Path,
        registry: OperationRegistry,
        coverage: CoverageTracker,
        settings: Optional[ScanSettings] = None,
        parser: Optional[SourceParser] = None,
    ) -> None:
        self.root = Path(root)
        self.registry = registry
        self.coverage = coverage
        self.settings = settings or ScanSettings()
        self.parser = parser or SourceParser()
        self._hook_patterns = tuple(self.settings.extra_hook_patterns)

        registry.build_index()
        universe = registry.searchable_names()
        self.matcher = CoarseMatcher(universe, max_names=self.settings.max_pattern_names)
        if universe and self.matcher.skipped:
            coverage.coarse_pass_skipped(len(universe))

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def read_batch(self, batch: List[str]) -> Dict[str, str]:
        """Read one batch of files, at most ``concurrency`` in flight."""
        semaphore = asyncio.Semaphore(max(1, self.settings.concurrency))

        async def _read(rel_path: str) -> Optional[str]:
            async with semaphore:
                try:
                    return await asyncio.to_thread(
                        (self.root / rel_path).read_text, encoding="utf-8"
                    )
                except (OSError, UnicodeDecodeError) as exc:
                    self.coverage.parse_failed(rel_path, exc)
                    return None

        texts: Dict[str, str] = {}
        results = await asyncio.gather(*(_read(path) for path in batch))
        for rel_path, text in zip(batch, results):
            self.coverage.file_scanned()
            if text is not None:
                texts[rel_path] = text
        return texts

    async def iter_batches(self, files: List[str]) -> AsyncIterator[Dict[str, str]]:
        """Yield the texts of ``batch_size`` files at a time."""
        batch_size = max(1, self.settings.batch_size)
        for i in range(0, len(files), batch_size):
            batch = files[i:i + batch_size]
            logger.debug("Reading batch %d (%d files)", i // batch_size + 1, len(batch))
            yield await self.read_batch(batch)

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def coarse_pass(self, texts: Dict[str, str]) -> Tuple[Dict[str, str], int]:
        """Promote Document-qualified name hits.

        Returns the files worth parsing and the number of usages promoted.
        """
        candidates: Dict[str, str] = {}
        promoted = 0
        for rel_path, text in texts.items():
            if not has_graphql_indicators(text):
                continue
            candidates[rel_path] = text
            for token in self.matcher.find(text):
                op = self.registry.document_operation(token)
                if op is None or op.definition_file == rel_path:
                    continue
                if self.registry.record_usage(op, rel_path, via=USAGE_DOCUMENT):
                    promoted += 1
        logger.debug(
            "Coarse pass: %d of %d files look GraphQL-related, %d usages promoted",
            len(candidates), len(texts), promoted,
        )
        return candidates, promoted

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def precise_pass(self, candidates: Dict[str, str]) -> int:
        return sum(self.scan_file(rel_path, text) for rel_path, text in candidates.items())

    def scan_file(self, rel_path: str, text: str) -> int:
        """Confirm usages in one file; returns the number of resolved call sites."""
        if not self.parser.supports(rel_path):
            return 0
        try:
            parsed = self.parser.parse(rel_path, text)
        except SourceParseError as exc:
            self.coverage.parse_failed(rel_path, exc)
            return 0

        resolver = SymbolResolver(self.registry, FileContext.build(parsed), parsed.source)
        resolved = 0
        for call in iter_graphql_calls(parsed, self._hook_patterns):
            op = resolver.resolve_operation(call)
            name = callee_name(call.callee) or "?"
            if op is None:
                self.coverage.call_site_unresolved()
                logger.debug(
                    "Unresolved %s call at %s:%d", name, rel_path, call.node.start_point[0] + 1,
                )
                continue
            via = USAGE_CLIENT if is_client_call(call) else USAGE_HOOK
            logger.debug("%s (%s) -> %s in %s", name, hook_type(name), op.name, rel_path)
            self.registry.record_usage(op, rel_path, via=via)
            resolved += 1

        for call in self._ssr_client_calls(parsed):
            op = resolver.resolve_operation(call)
            if op is not None:
                self.registry.record_usage(op, rel_path, via=USAGE_SSR)
        return resolved

    def _ssr_client_calls(self, parsed: ParsedSource) -> Iterator[CallExpression]:
        for loader in _ssr_loaders(parsed.root, parsed.source):
            for node in iter_calls(loader):
                expr = to_expression(node, parsed.source)
                if isinstance(expr, CallExpression) and is_client_call(expr):
                    yield expr

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def scan(self, files: List[str]) -> None:
        """Run both phases batch by batch; only one batch of texts is held at a time."""
        candidates_seen = promoted = confirmed = 0
        async for texts in self.iter_batches(files):
            candidates, batch_promoted = self.coarse_pass(texts)
            confirmed += self.precise_pass(candidates)
            candidates_seen += len(candidates)
            promoted += batch_promoted
        logger.info(
            "Scanned %d files: %d look GraphQL-related, %d usages promoted, %d call sites confirmed",
            len(files), candidates_seen, promoted, confirmed,
        )

    def scan_sync(self, files: List[str]) -> None:
        asyncio.run(self.scan(files))


def _ssr_loaders(root: Any, source: bytes) -> Iterator[Any]:
    """Bodies of ``function getServerSideProps`` / ``const getServerSideProps = ...``."""
    for node in walk(root):
        if node.type == "function_declaration":
            name = node.child_by_field_name("name")
            if name is not None and node_text(name, source) in SSR_LOADERS:
                yield node
        elif node.type == "variable_declarator" and declarator_name(node, source) in SSR_LOADERS:
            value = node.child_by_field_name("value")
            if value is not None:
                yield value
