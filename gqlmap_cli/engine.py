"""One analysis run: extract, ingest, index, scan, report."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Iterable, List, Optional

from .config import ScanSettings, load_settings
from .coverage import CoverageTracker
from .extractors import discover_files, extract_all, operations_from_source
from .models import AnalysisResult, RawOperationSource
from .parser import SourceParser
from .registry import OperationRegistry
from .scanner import UsageScanner

logger = logging.getLogger(__name__)


class AnalysisSession:
    """Owns the registry, coverage counters and parsers for a single run.

    Nothing here is shared between runs; create a new session per analysis.
    """

    def __init__(
        self,
        root: Path,
        settings: Optional[ScanSettings] = None,
        parser: Optional[SourceParser] = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.settings = settings or load_settings(self.root)
        self.coverage = CoverageTracker()
        self.registry = OperationRegistry()
        self.parser = parser or SourceParser()
        self._codegen_files: List[str] = []

    def extract(self) -> List[RawOperationSource]:
        sources, self._codegen_files = extract_all(
            self.root, self.settings, self.coverage, self.parser,
        )
        return sources

    def ingest_sources(self, sources: Iterable[RawOperationSource]) -> int:
        count = 0
        for source in sources:
            for candidate in operations_from_source(source, self.coverage):
                self.registry.ingest(candidate)
                count += 1
        logger.info("Ingested %d candidates into %d operations", count, len(self.registry))
        return count

    def scan_files(self) -> List[str]:
        """Consumer files: every source file except codegen output."""
        generated = set(self._codegen_files)
        return [
            rel_path
            for rel_path in discover_files(
                self.root, self.settings.source_patterns, self.settings.exclude_dirs,
            )
            if rel_path not in generated
        ]

    async def scan_async(self, files: Optional[List[str]] = None) -> None:
        scanner = UsageScanner(
            self.root, self.registry, self.coverage, self.settings, self.parser,
        )
        await scanner.scan(files if files is not None else self.scan_files())

    def scan(self, files: Optional[List[str]] = None) -> None:
        asyncio.run(self.scan_async(files))

    def result(self) -> AnalysisResult:
        return AnalysisResult(operations=self.registry.all(), coverage=self.coverage.metrics)

    async def run_async(self) -> AnalysisResult:
        self.ingest_sources(self.extract())
        await self.scan_async()
        result = self.result()
        logger.info(
            "Analysis of %s: %d operations, %d files scanned, %d parse failures",
            self.root, len(result.operations),
            result.coverage.files_scanned, result.coverage.parse_failures,
        )
        return result

    def run(self) -> AnalysisResult:
        return asyncio.run(self.run_async())


def analyze_repository(root: Path, settings: Optional[ScanSettings] = None) -> AnalysisResult:
    return AnalysisSession(root, settings).run()
