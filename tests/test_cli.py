"""
Tests for the command-line interface.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from boxcache import __version__
from boxcache.cli.main import app
from boxcache.config import Settings

from conftest import StubFetcher


@pytest.fixture
def runner() -> CliRunner:
    """Provide a CLI runner."""
    return CliRunner()


@pytest.fixture
def offline(monkeypatch: pytest.MonkeyPatch, fetcher: StubFetcher) -> StubFetcher:
    """Route every CLI fetch through the stub fetcher."""

    class OfflineResponseFetcher:
        @staticmethod
        def from_settings(settings: Settings, transport: object = None) -> StubFetcher:
            return fetcher

    monkeypatch.setattr("boxcache.coordinator.ResponseFetcher", OfflineResponseFetcher)
    return fetcher


class TestInfoCommands:
    """Test commands that do not touch the cache."""

    def test_version(self, runner: CliRunner) -> None:
        """Test the version command."""
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_config(self, runner: CliRunner, mock_settings: Settings) -> None:
        """Test that config shows the loaded settings."""
        result = runner.invoke(app, ["config"])

        assert result.exit_code == 0
        assert "test_box" in result.output
        assert "test_registry" in result.output

    def test_heal_flags_are_exclusive(self, runner: CliRunner) -> None:
        """Test that --box and --all cannot be combined."""
        result = runner.invoke(app, ["heal", "--box", "p", "--all"])

        assert result.exit_code == 1
        assert "mutually exclusive" in result.output


class TestCacheCommands:
    """Test commands that run the coordinator against a temporary cache."""

    def test_empty_cache(self, runner: CliRunner, mock_settings: Settings, offline: StubFetcher) -> None:
        """Test listing and purging when nothing has been cached."""
        result = runner.invoke(app, ["boxes"])
        assert result.exit_code == 0
        assert "No boxes registered" in result.output

        result = runner.invoke(app, ["purge", "--box", "ghost"])
        assert result.exit_code == 0
        assert "does not exist" in result.output

    def test_add_validate_purge(
        self, runner: CliRunner, mock_settings: Settings, offline: StubFetcher
    ) -> None:
        """Test a box's lifecycle across separate CLI invocations."""
        result = runner.invoke(app, ["add", "http://x/a", "http://x/b", "--cache", "C", "--box", "p"])
        assert result.exit_code == 0, result.output
        assert offline.fetched == ["http://x/a", "http://x/b"]

        result = runner.invoke(app, ["boxes"])
        assert result.exit_code == 0
        assert "p" in result.output

        result = runner.invoke(app, ["validate", "--box", "p"])
        assert result.exit_code == 0
        assert "VALID" in result.output
        assert "INVALID" not in result.output

        result = runner.invoke(app, ["get", "http://x/a", "--cache", "C", "--body"])
        assert result.exit_code == 0
        assert "data for http://x/a" in result.output

        result = runner.invoke(app, ["purge", "--box", "p"])
        assert result.exit_code == 0
        assert "Purged p" in result.output

        result = runner.invoke(app, ["boxes"])
        assert "No boxes registered" in result.output

    def test_namespace_mismatch_exits_with_error(
        self, runner: CliRunner, mock_settings: Settings, offline: StubFetcher
    ) -> None:
        """Test that re-binding a box reports the mismatch."""
        runner.invoke(app, ["add", "http://x/a", "--cache", "C", "--box", "p"])

        result = runner.invoke(app, ["add", "http://x/b", "--cache", "D", "--box", "p"])

        assert result.exit_code == 1
        assert "Cache name mismatch" in result.output

    def test_heal_after_failed_add(
        self, runner: CliRunner, mock_settings: Settings, offline: StubFetcher
    ) -> None:
        """Test that heal re-caches URLs whose first fetch failed."""
        offline.failing = {"http://x/a"}
        result = runner.invoke(app, ["add", "http://x/a", "--cache", "C"])
        assert result.exit_code == 0
        assert "heal" in result.output

        offline.failing = set()
        result = runner.invoke(app, ["heal"])

        assert result.exit_code == 0
        assert "1 URL(s) re-cached" in result.output

    def test_get_missing(self, runner: CliRunner, mock_settings: Settings, offline: StubFetcher) -> None:
        """Test that looking up an uncached URL exits non-zero."""
        result = runner.invoke(app, ["get", "http://x/none", "--cache", "C"])

        assert result.exit_code == 1
        assert "Not cached" in result.output

    def test_unusable_cache_dir(
        self,
        runner: CliRunner,
        mock_env_vars: dict[str, str],
        temp_dir: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a cache directory that cannot be created is a configuration error."""
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        monkeypatch.setenv("BOXCACHE_CACHE_DIR", str(blocker / "cache"))

        result = runner.invoke(app, ["boxes"])

        assert result.exit_code == 1
        assert "Configuration error" in result.output
