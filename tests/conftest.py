"""Pytest configuration and fixtures for gqlmap tests."""

import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

from gqlmap_cli.config import ScanSettings
from gqlmap_cli.coverage import CoverageTracker
from gqlmap_cli.parser import ParsedSource, SourceParser
from gqlmap_cli.registry import OperationRegistry


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    """Keep tests away from the user's ~/.gqlmap/config.toml."""
    home = tmp_path_factory.mktemp("gqlmap_home")
    monkeypatch.setattr("gqlmap_cli.config.GQLMAP_HOME", home)
    monkeypatch.setattr("gqlmap_cli.config.CONFIG_FILE", home / "config.toml")


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app_path() -> Path:
    """Get path to the sample Next.js/Apollo application."""
    return Path(__file__).parent / "fixtures" / "sample_app"


@pytest.fixture(scope="session")
def source_parser() -> SourceParser:
    return SourceParser()


@pytest.fixture
def parse_ts(source_parser: SourceParser) -> Callable[..., ParsedSource]:
    """Parse a TS/TSX snippet; the file name picks the grammar."""

    def _parse(code: str, file_path: str = "snippet.tsx") -> ParsedSource:
        return source_parser.parse(file_path, code)

    return _parse


@pytest.fixture
def coverage() -> CoverageTracker:
    return CoverageTracker()


@pytest.fixture
def registry() -> OperationRegistry:
    return OperationRegistry()


@pytest.fixture
def settings() -> ScanSettings:
    return ScanSettings()


@pytest.fixture
def write_tree(temp_dir: Path) -> Callable[[dict], Path]:
    """Write ``{relative path: text}`` under a temporary root and return it."""

    def _write(files: dict) -> Path:
        for rel_path, text in files.items():
            path = temp_dir / rel_path
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        return temp_dir

    return _write
