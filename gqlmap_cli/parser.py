"""TypeScript / JavaScript source parsing using Tree-sitter.

Consumer files are parsed with the per-language grammar packages
(``tree-sitter-typescript`` for ``.ts``/``.tsx``, ``tree-sitter-javascript``
for plain JS). Tree-sitter never throws on bad input; instead it embeds
``ERROR`` nodes. A tree containing any of them is reported as a
:class:`SourceParseError` so that callers can count it and move on.
"""

from __future__ import annotations

import importlib
import logging
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any, Dict, List, Optional, Tuple


logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
}

# language -> (grammar module, function returning the Language capsule)
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
    "javascript": ("tree_sitter_javascript", "language"),
}


class SourceParseError(ValueError):
    """A consumer source file could not be turned into a usable syntax tree."""


@dataclass
class ParsedSource:
    file_path: str
    source: bytes
    tree: Any

    @property
    def root(self) -> Any:
        return self.tree.root_node


def language_for(file_path: str) -> Optional[str]:
    return LANGUAGE_MAP.get(PurePosixPath(file_path).suffix.lower())


class SourceParser:
    """Error-reporting wrapper around one Tree-sitter parser per language."""

    def __init__(self, languages: Optional[List[str]] = None) -> None:
        self._parsers: Dict[str, Any] = {}
        self._requested_languages = languages or list(_GRAMMAR_MODULES)
        self._init_parsers()

    def _init_parsers(self) -> None:
        from tree_sitter import Language, Parser as TSParser

        for lang in self._requested_languages:
            grammar = _GRAMMAR_MODULES.get(lang)
            if grammar is None:
                logger.warning("No grammar module mapped for language '%s'", lang)
                continue
            mod_name, factory = grammar
            try:
                mod = importlib.import_module(mod_name)
                self._parsers[lang] = TSParser(Language(getattr(mod, factory)()))
                logger.debug("Loaded tree-sitter parser for %s", lang)
            except ImportError:
                logger.warning(
                    "Grammar package '%s' not installed for language '%s'. "
                    "Install with: pip install %s",
                    mod_name, lang, mod_name.replace("_", "-"),
                )

    def supports_language(self, language: str) -> bool:
        return language in self._parsers

    def supports(self, file_path: str) -> bool:
        lang = language_for(file_path)
        return lang is not None and self.supports_language(lang)

    def parse(self, file_path: str, source: str) -> ParsedSource:
        lang = language_for(file_path)
        if lang is None or lang not in self._parsers:
            raise SourceParseError(f"unsupported source type: {file_path}")

        source_bytes = source.encode("utf-8")
        tree = self._parsers[lang].parse(source_bytes)
        if tree.root_node.has_error:
            raise SourceParseError(f"syntax error in {file_path}")
        return ParsedSource(file_path=file_path, source=source_bytes, tree=tree)
