"""Shared test fixtures for httpstash.

Provides fixtures for isolated config environments, output state, blob
engines, and the CLI runner. Discovered automatically by pytest.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from httpstash.cache import DiskcacheEngine, MemoryEngine
from httpstash.models import GIB
from httpstash.output import OutputFormat, OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager after every test.

    The OutputManager keeps references to sys.stdout/sys.stderr from the
    moment it was created; CliRunner swaps those streams, so a manager left
    over from one test would write to closed files in the next.
    """
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Points XDG_CONFIG_HOME, XDG_CACHE_HOME, and XDG_DATA_HOME at
    subdirectories of tmp_path, clears HTTPSTASH_* variables, and changes
    the working directory to tmp_path.

    Returns:
        The tmp_path root directory.
    """
    monkeypatch.setattr("httpstash.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["HTTPSTASH_DIR", "HTTPSTASH_LISTEN", "HTTPSTASH_PRIVATE"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def verbose_output() -> OutputManager:
    """Install a plain, colourless, verbose OutputManager so debug lines reach stderr."""
    output = OutputManager(format=OutputFormat.PLAIN, no_color=True, verbose=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def memory_engine() -> MemoryEngine:
    return MemoryEngine()


@pytest.fixture
def disk_engine(tmp_path: Path) -> DiskcacheEngine:
    """A diskcache-backed engine in tmp_path with the production bounds."""
    engine = DiskcacheEngine(tmp_path / "blobs", target_bytes=7 * GIB, limit_bytes=8 * GIB)
    yield engine
    engine.close()


@pytest.fixture(params=["memory", "disk"])
def engine(request: pytest.FixtureRequest, tmp_path: Path):
    """Each blob engine implementation in turn."""
    if request.param == "memory":
        yield MemoryEngine()
        return
    engine = DiskcacheEngine(tmp_path / "blobs", target_bytes=7 * GIB, limit_bytes=8 * GIB)
    yield engine
    engine.close()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()
