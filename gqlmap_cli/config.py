"""Configuration for gqlmap: paths and scan settings loaded from TOML."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import toml

logger = logging.getLogger(__name__)

GQLMAP_HOME = Path(os.environ.get("GQLMAP_HOME", str(Path.home() / ".gqlmap"))).expanduser()
CONFIG_FILE = GQLMAP_HOME / "config.toml"
REPO_CONFIG_NAME = ".gqlmap.toml"

DEFAULT_SOURCE_PATTERNS = ["**/*.ts", "**/*.tsx", "**/*.js", "**/*.jsx", "**/*.mjs", "**/*.cjs"]
DEFAULT_GRAPHQL_PATTERNS = ["**/*.graphql", "**/*.gql"]
DEFAULT_CODEGEN_PATTERNS = [
    "**/__generated__/graphql.ts",
    "**/__generated__/graphql.tsx",
    "**/__generated__/gql.ts",
    "**/generated/graphql.ts",
    "**/generated/graphql.tsx",
    "**/graphql/generated.ts",
    "**/gql/graphql.ts",
    "**/*.generated.ts",
    "**/*.generated.tsx",
]
DEFAULT_EXCLUDE_DIRS = [
    "node_modules",
    ".git",
    ".next",
    "dist",
    "build",
    "out",
    "coverage",
    ".turbo",
    ".cache",
]
DEFAULT_INLINE_EXCLUDE_GLOBS = [
    "**/*.test.*",
    "**/*.spec.*",
    "**/__tests__/**",
    "**/__generated__/**",
    "**/generated/**",
    "**/*.d.ts",
]


@dataclass
class ScanSettings:
    batch_size: int = 50
    concurrency: int = 8
    max_pattern_names: int = 2000
    extra_hook_patterns: List[str] = field(default_factory=list)
    source_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_SOURCE_PATTERNS))
    graphql_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_GRAPHQL_PATTERNS))
    codegen_patterns: List[str] = field(default_factory=lambda: list(DEFAULT_CODEGEN_PATTERNS))
    exclude_dirs: List[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_DIRS))
    inline_exclude_globs: List[str] = field(
        default_factory=lambda: list(DEFAULT_INLINE_EXCLUDE_GLOBS)
    )

    def apply(self, values: Dict[str, Any]) -> None:
        """Overlay known keys from *values*; unknown keys and ``None`` values are ignored."""
        known = {f.name: f for f in fields(self)}
        for key, value in values.items():
            if value is None:
                continue
            if key not in known:
                logger.warning("Ignoring unknown scan setting '%s'", key)
                continue
            current = getattr(self, key)
            if isinstance(current, list):
                value = [value] if isinstance(value, str) else list(value)
            elif isinstance(current, int):
                try:
                    value = int(value)
                except (TypeError, ValueError):
                    logger.warning("Ignoring non-integer value %r for '%s'", value, key)
                    continue
            setattr(self, key, value)


def _read_scan_table(path: Path) -> Dict[str, Any]:
    """Return the ``[scan]`` table of a TOML file, or ``{}`` if missing or unreadable."""
    if not path.exists():
        return {}
    try:
        with open(path, "r") as f:
            data = toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Could not read config %s: %s", path, exc)
        return {}
    scan = data.get("scan", {})
    if not isinstance(scan, dict):
        logger.warning("Config %s: [scan] is not a table", path)
        return {}
    return scan


def load_settings(
    repo_root: Optional[Path] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> ScanSettings:
    """Defaults, then ``~/.gqlmap/config.toml``, then ``<repo>/.gqlmap.toml``, then *overrides*."""
    settings = ScanSettings()
    settings.apply(_read_scan_table(CONFIG_FILE))
    if repo_root is not None:
        settings.apply(_read_scan_table(Path(repo_root) / REPO_CONFIG_NAME))
    if overrides:
        settings.apply(overrides)
    return settings

