"""
Tests for the update/upgrade/install/reinstall workflows (better_brew/operations.py).
"""

from __future__ import annotations

import io
import threading
from dataclasses import dataclass
from unittest.mock import patch

import pytest

from better_brew.brew import BrewError
from better_brew.config import Config
from better_brew.fanout import ConfigurationError, Outcome, WorkItem
from better_brew.operations import (
    OperationReport,
    dedupe,
    install,
    reinstall,
    update,
    upgrade,
)


@dataclass(frozen=True)
class FakeResult:
    success: bool
    exit_code: int = 0
    error_message: str | None = None
    duration_seconds: float = 0.0


class FakeRunner:
    """Command runner that fails for selected packages and records calls."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.calls = []
        self._lock = threading.Lock()

    def __call__(self, operation, packages):
        with self._lock:
            self.calls.append((operation, tuple(packages)))
        if self.failing.intersection(packages):
            return FakeResult(success=False, exit_code=1, error_message="Command failed with exit code 1: Error: nope")
        return FakeResult(success=True)


@pytest.fixture
def brew_present():
    with patch("better_brew.operations.check_homebrew", return_value="/opt/homebrew/bin/brew") as mock_check:
        yield mock_check


@pytest.fixture
def streaming():
    with patch("better_brew.operations.run_streaming") as mock_stream:
        yield mock_stream


def run_kwargs(**extra):
    return {"progress_stream": io.StringIO(), "live": False, **extra}


class TestOperationReport:
    """Tests for OperationReport."""

    def _report(self, failures=()):
        outcomes = tuple(
            Outcome.failure(WorkItem(name, "install"), "boom") if name in failures
            else Outcome.ok(WorkItem(name, "install"))
            for name in ("a", "b", "c")
        )
        return OperationReport(operation="install", packages=("a", "b", "c"), outcomes=outcomes)

    def test_all_succeeded(self):
        report = self._report()
        assert report.exit_code == 0
        assert report.summary() == "3 package(s) installed"
        assert report.failed_packages == []

    def test_some_failed(self):
        report = self._report(failures={"b"})
        assert report.exit_code == 1
        assert report.failed_packages == ["b"]
        assert report.summary() == "1 of 3 package(s) failed (2 installed)"

    def test_non_fatal_failures(self):
        report = OperationReport(
            operation="upgrade",
            outcomes=(Outcome.failure(WorkItem("a", "fetch"), "boom"),),
            failures_are_fatal=False,
        )
        assert report.exit_code == 0
        assert report.summary() == "1 of 1 package(s) failed (0 fetched)"

    def test_empty_summary_uses_message(self):
        report = OperationReport(operation="upgrade", message="All packages are up to date!")
        assert report.summary() == "All packages are up to date!"

    def test_to_dict(self):
        data = self._report(failures={"c"}).to_dict()
        assert data["operation"] == "install"
        assert data["succeeded"] == 2
        assert data["failed"] == ["c"]
        assert data["exit_code"] == 1
        assert len(data["outcomes"]) == 3


class TestDedupe:
    def test_dedupe_keeps_order(self):
        assert dedupe(["wget", "curl", "wget", " ", "jq"]) == ["wget", "curl", "jq"]


class TestUpdate:
    """Tests for update."""

    def test_update_runs_brew_update(self, brew_present, streaming, capsys):
        report = update(config=Config())
        streaming.assert_called_once_with(["update"], brew_path="brew", verbose=False)
        assert report.exit_code == 0
        assert "Update complete!" in capsys.readouterr().out

    def test_update_dry_run(self, brew_present, streaming, capsys):
        report = update(dry_run=True)
        streaming.assert_not_called()
        assert report.dry_run is True
        assert "Would run: brew update" in capsys.readouterr().out

    def test_update_without_brew(self, streaming):
        with patch("better_brew.operations.check_homebrew", side_effect=BrewError("missing")):
            with pytest.raises(BrewError):
                update()
        streaming.assert_not_called()


class TestUpgrade:
    """Tests for upgrade."""

    def test_nothing_outdated(self, brew_present, streaming, capsys):
        runner = FakeRunner()
        with patch("better_brew.operations.get_outdated_packages", return_value=[]):
            report = upgrade(config=Config(), runner=runner, **run_kwargs())

        assert report.exit_code == 0
        assert report.message == "All packages are up to date!"
        assert runner.calls == []
        streaming.assert_called_once_with(["update"], brew_path="brew", verbose=False)
        assert "All packages are up to date!" in capsys.readouterr().out

    def test_fetches_in_parallel_then_upgrades(self, brew_present, streaming):
        runner = FakeRunner()
        with patch("better_brew.operations.get_outdated_packages", return_value=["wget", "curl", "firefox"]):
            report = upgrade(config=Config(max_concurrent=2), runner=runner, **run_kwargs())

        assert sorted(runner.calls) == [("fetch", ("curl",)), ("fetch", ("firefox",)), ("fetch", ("wget",))]
        assert [o.package for o in report.outcomes] == ["wget", "curl", "firefox"]
        assert [c.args[0] for c in streaming.call_args_list] == [["update"], ["upgrade"]]
        assert report.exit_code == 0

    def test_fetch_failures_are_warnings(self, brew_present, streaming, capsys):
        runner = FakeRunner(failing={"curl"})
        with patch("better_brew.operations.get_outdated_packages", return_value=["wget", "curl"]):
            report = upgrade(config=Config(), runner=runner, **run_kwargs())

        err = capsys.readouterr().err
        assert "1 package(s) failed to fetch: curl" in err
        assert report.failed_packages == ["curl"]
        assert report.exit_code == 0
        # brew upgrade still runs
        assert streaming.call_args_list[-1].args[0] == ["upgrade"]

    def test_skip_update_before_upgrade(self, brew_present, streaming):
        with patch("better_brew.operations.get_outdated_packages", return_value=[]):
            upgrade(config=Config(update_before_upgrade=False), runner=FakeRunner(), **run_kwargs())
        streaming.assert_not_called()

    def test_dry_run_runs_nothing(self, brew_present, streaming, capsys):
        runner = FakeRunner()
        with patch("better_brew.operations.get_outdated_packages", return_value=["wget"]):
            report = upgrade(runner=runner, dry_run=True, **run_kwargs())

        assert runner.calls == []
        streaming.assert_not_called()
        assert report.packages == ("wget",)
        out = capsys.readouterr().out
        assert "Would run: brew fetch wget" in out
        assert "Would run: brew upgrade" in out

    def test_outdated_listing_error_propagates(self, brew_present, streaming):
        with patch("better_brew.operations.get_outdated_packages", side_effect=BrewError("bad json")):
            with pytest.raises(BrewError):
                upgrade(runner=FakeRunner(), **run_kwargs())


class TestInstall:
    """Tests for install."""

    def test_no_packages_is_configuration_error(self, brew_present):
        with pytest.raises(ConfigurationError, match="No packages specified to install"):
            install([])
        brew_present.assert_not_called()

    def test_install_in_batches(self, brew_present, capsys):
        runner = FakeRunner()
        packages = [f"pkg{i}" for i in range(5)]
        report = install(packages, config=Config(batch_size=2), runner=runner, **run_kwargs())

        assert sorted(runner.calls) == [
            ("install", ("pkg0", "pkg1")),
            ("install", ("pkg2", "pkg3")),
            ("install", ("pkg4",)),
        ]
        assert report.exit_code == 0
        assert [o.package for o in report.outcomes] == packages
        out = capsys.readouterr().out
        assert "Installing in 3 batch(es) with 4 concurrent operations..." in out
        assert "Successfully installed 5 package(s)" in out
        assert "Install complete!" in out

    def test_install_failure_fails_run(self, brew_present, capsys):
        runner = FakeRunner(failing={"bad"})
        report = install(["good", "bad"], config=Config(batch_size=1), runner=runner, **run_kwargs())

        assert report.exit_code == 1
        assert report.failed_packages == ["bad"]
        captured = capsys.readouterr()
        assert "Successfully installed 1 package(s)" in captured.out
        assert "1 package(s) failed to install: bad" in captured.err

    def test_install_dedupes(self, brew_present):
        runner = FakeRunner()
        report = install(["wget", "wget"], runner=runner, **run_kwargs())
        assert runner.calls == [("install", ("wget",))]
        assert report.packages == ("wget",)

    def test_install_dry_run(self, brew_present, capsys):
        runner = FakeRunner()
        report = install(["a", "b", "c"], config=Config(batch_size=2), runner=runner, dry_run=True, **run_kwargs())
        assert runner.calls == []
        assert report.dry_run is True
        out = capsys.readouterr().out
        assert "Would run: brew install a b" in out
        assert "Would run: brew install c" in out


class TestReinstall:
    """Tests for reinstall."""

    def test_requires_packages_or_all(self, brew_present):
        with pytest.raises(ConfigurationError, match="Use --all"):
            reinstall([])
        brew_present.assert_not_called()

    def test_reinstall_explicit(self, brew_present):
        runner = FakeRunner()
        report = reinstall(["jq"], runner=runner, **run_kwargs())
        assert runner.calls == [("reinstall", ("jq",))]
        assert report.exit_code == 0

    def test_reinstall_all_lists_installed(self, brew_present):
        runner = FakeRunner()
        with patch("better_brew.operations.get_installed_packages", return_value=["git", "wget"]) as mock_list:
            report = reinstall(["ignored"], all_installed=True, runner=runner, **run_kwargs())

        mock_list.assert_called_once()
        assert runner.calls == [("reinstall", ("git", "wget"))]
        assert report.packages == ("git", "wget")

    def test_reinstall_all_nothing_installed(self, brew_present, capsys):
        runner = FakeRunner()
        with patch("better_brew.operations.get_installed_packages", return_value=[]):
            report = reinstall(all_installed=True, runner=runner, **run_kwargs())

        assert runner.calls == []
        assert report.exit_code == 0
        assert "No packages to reinstall!" in capsys.readouterr().out

    def test_reinstall_batch_failure(self, brew_present, capsys):
        runner = FakeRunner(failing={"b"})
        report = reinstall(["a", "b", "c"], config=Config(batch_size=2), runner=runner, **run_kwargs())

        assert [o.success for o in report.outcomes] == [False, False, True]
        assert report.exit_code == 1
        assert "2 package(s) failed to reinstall: a, b" in capsys.readouterr().err
