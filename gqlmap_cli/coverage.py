"""Observability counters for one analysis run."""

from __future__ import annotations

import logging
from typing import Set

from .models import CoverageMetrics

logger = logging.getLogger(__name__)


class CoverageTracker:
    """Owns the :class:`CoverageMetrics` of a single analysis session.

    Counters only grow while the session is alive, so a consumer can tell "half the
    repository failed to parse" apart from "nothing uses GraphQL".
    """

    def __init__(self) -> None:
        self.metrics = CoverageMetrics()
        self._failed_files: Set[str] = set()

    def file_scanned(self) -> None:
        self.metrics.files_scanned += 1

    def parse_failed(self, file_path: str, exc: BaseException) -> None:
        # A file read by several passes is still one failure.
        if file_path in self._failed_files:
            return
        self._failed_files.add(file_path)
        self.metrics.parse_failures += 1
        logger.debug("Source parse failed for %s: %s", file_path, exc)

    def graphql_parse_failed(self, file_path: str, exc: BaseException) -> None:
        self.metrics.graphql_parse_failures += 1
        logger.warning("Invalid GraphQL in %s: %s", file_path, exc)

    def codegen_detected(self) -> None:
        self.metrics.codegen_files_detected += 1

    def codegen_parsed(self, exports_found: int) -> None:
        self.metrics.codegen_files_parsed += 1
        self.metrics.codegen_exports_found += exports_found

    def call_site_unresolved(self) -> None:
        self.metrics.unresolved_call_sites += 1

    def coarse_pass_skipped(self, universe_size: int) -> None:
        self.metrics.coarse_pass_skipped = True
        logger.info(
            "Skipping combined-name pass: %d names exceeds the pattern cap", universe_size,
        )
