"""
The update, upgrade, install and reinstall workflows.

Each workflow lists or receives packages, fans the per-package brew commands
out with the configured concurrency cap, prints one result line per package
and returns an OperationReport the CLI turns into an exit status.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Sequence, TextIO

from .brew import (
    BrewRunner,
    check_homebrew,
    get_installed_packages,
    get_outdated_packages,
    run_streaming,
)
from .common import format_command, pluralize, vlog
from .config import Config
from .fanout import CommandRunner, ConfigurationError, Outcome, WorkItem, fan_out, make_batches
from .logging_config import get_logger
from .progress import ConsoleProgress, ProgressSink
from .render import banner, failure_line, format_package_list, success_line, warning_line


_PAST = {
    "update": "updated",
    "upgrade": "upgraded",
    "fetch": "fetched",
    "install": "installed",
    "reinstall": "reinstalled",
}


@dataclass(frozen=True)
class OperationReport:
    """
    Aggregate result of one workflow run.

    Attributes:
        operation: Workflow name ("update", "upgrade", "install", "reinstall")
        packages: Packages the workflow worked on, in order
        outcomes: Per-package outcomes, aligned with ``packages``
        duration_seconds: Total wall time
        dry_run: Whether commands were only planned
        failures_are_fatal: Whether failed outcomes make the run fail
        message: Closing message shown to the user
    """
    operation: str
    packages: tuple[str, ...] = ()
    outcomes: tuple[Outcome, ...] = ()
    duration_seconds: float = 0.0
    dry_run: bool = False
    failures_are_fatal: bool = True
    message: str = ""

    @property
    def succeeded(self) -> tuple[Outcome, ...]:
        return tuple(o for o in self.outcomes if o.success)

    @property
    def failed(self) -> tuple[Outcome, ...]:
        return tuple(o for o in self.outcomes if not o.success)

    @property
    def failed_packages(self) -> list[str]:
        return [o.package for o in self.failed]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed and self.failures_are_fatal else 0

    def summary(self) -> str:
        """One-line 'N of M failed' style summary."""
        total = len(self.outcomes)
        if not total:
            return self.message or f"Nothing to {self.operation}"
        failed = len(self.failed)
        past = _PAST.get(self.outcomes[0].item.operation, self.operation)
        if failed:
            return f"{failed} of {total} package(s) failed ({total - failed} {past})"
        return f"{total} package(s) {past}"

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "operation": self.operation,
            "packages": list(self.packages),
            "outcomes": [o.to_dict() for o in self.outcomes],
            "succeeded": len(self.succeeded),
            "failed": self.failed_packages,
            "duration_seconds": self.duration_seconds,
            "dry_run": self.dry_run,
            "exit_code": self.exit_code,
            "message": self.message,
        }


def dedupe(packages: Sequence[str]) -> list[str]:
    """Drop blank and repeated names, keeping first-seen order."""
    seen: set[str] = set()
    unique: list[str] = []
    for name in packages:
        name = name.strip()
        if name and name not in seen:
            seen.add(name)
            unique.append(name)
    return unique


def run_parallel(
    operation: str,
    packages: Sequence[str],
    config: Config,
    batch_size: int,
    runner: CommandRunner | None = None,
    progress_stream: TextIO | None = None,
    live: bool | None = None,
    verbose: bool = False,
) -> list[Outcome]:
    """
    Fan ``brew <operation>`` out over packages behind a progress bar.

    Returns:
        One Outcome per package, in package order
    """
    if runner is None:
        runner = BrewRunner(config.brew_path, config.timeout_seconds, verbose)

    items = [WorkItem(package, operation) for package in packages]
    sink = ProgressSink(total=len(items))
    progress = ConsoleProgress(len(items), stream=progress_stream, live=live).attach(sink)

    outcomes = fan_out(
        items,
        runner,
        cap=config.max_concurrent,
        sink=sink,
        batch_size=batch_size,
        verbose=verbose,
    )
    progress.finish(f"{operation.capitalize()} complete")

    get_logger().debug(
        f"brew {operation}: {sum(o.success for o in outcomes)} ok, "
        f"{sum(not o.success for o in outcomes)} failed"
    )
    return outcomes


def update(
    config: Config | None = None,
    dry_run: bool = False,
    verbose: bool = False,
) -> OperationReport:
    """Update Homebrew itself and fetch the latest package definitions."""
    config = config or Config()
    start_time = time.monotonic()
    banner("Update")

    check_homebrew(config.brew_path, verbose)
    if dry_run:
        print(f"Would run: {format_command([config.brew_path, 'update'])}")
    else:
        run_streaming(["update"], brew_path=config.brew_path, verbose=verbose)

    print("")
    success_line("Update complete!")
    return OperationReport(
        operation="update",
        duration_seconds=time.monotonic() - start_time,
        dry_run=dry_run,
        message="Update complete!",
    )


def upgrade(
    config: Config | None = None,
    runner: CommandRunner | None = None,
    dry_run: bool = False,
    progress_stream: TextIO | None = None,
    live: bool | None = None,
    verbose: bool = False,
) -> OperationReport:
    """
    Fetch every outdated package in parallel, then run ``brew upgrade``.

    Fetch failures are reported as warnings; ``brew upgrade`` downloads
    whatever the parallel fetch missed.
    """
    config = config or Config()
    start_time = time.monotonic()
    banner("Upgrade")

    check_homebrew(config.brew_path, verbose)

    if config.update_before_upgrade:
        print("Updating package definitions...")
        if dry_run:
            print(f"Would run: {format_command([config.brew_path, 'update'])}")
        else:
            run_streaming(["update"], brew_path=config.brew_path, verbose=verbose)
        print("")

    print("Checking for outdated packages...")
    packages = get_outdated_packages(config.brew_path, config.timeout_seconds, verbose)

    if not packages:
        success_line("All packages are up to date!")
        return OperationReport(
            operation="upgrade",
            duration_seconds=time.monotonic() - start_time,
            dry_run=dry_run,
            message="All packages are up to date!",
        )

    print(f"Found {pluralize(len(packages), 'outdated package')}: {format_package_list(packages)}")
    print("")

    if dry_run:
        for package in packages:
            print(f"Would run: {format_command([config.brew_path, 'fetch', package])}")
        print(f"Would run: {format_command([config.brew_path, 'upgrade'])}")
        return OperationReport(
            operation="upgrade",
            packages=tuple(packages),
            duration_seconds=time.monotonic() - start_time,
            dry_run=True,
            failures_are_fatal=False,
            message=f"Would upgrade {pluralize(len(packages))}",
        )

    print(f"Fetching packages with {config.max_concurrent} concurrent operations...")
    outcomes = run_parallel(
        "fetch",
        packages,
        config,
        batch_size=config.fetch_batch_size,
        runner=runner,
        progress_stream=progress_stream,
        live=live,
        verbose=verbose,
    )

    failed = [o for o in outcomes if not o.success]
    for outcome in failed:
        failure_line(f"Error: Failed to fetch {outcome.package}: {outcome.error_message}")
    if failed:
        print("")
        warning_line(
            f"{pluralize(len(failed))} failed to fetch: "
            f"{format_package_list([o.package for o in failed])}"
        )

    print("")
    print("=== Installing upgrades ===")
    print("")
    run_streaming(["upgrade"], brew_path=config.brew_path, verbose=verbose)

    print("")
    success_line("Upgrade complete!")
    return OperationReport(
        operation="upgrade",
        packages=tuple(packages),
        outcomes=tuple(outcomes),
        duration_seconds=time.monotonic() - start_time,
        failures_are_fatal=False,
        message="Upgrade complete!",
    )


def install(
    packages: Sequence[str],
    config: Config | None = None,
    runner: CommandRunner | None = None,
    dry_run: bool = False,
    progress_stream: TextIO | None = None,
    live: bool | None = None,
    verbose: bool = False,
) -> OperationReport:
    """
    Install packages in parallel batches.

    Raises:
        ConfigurationError: If no packages are given
    """
    config = config or Config()
    packages = dedupe(packages)
    if not packages:
        raise ConfigurationError("No packages specified to install")

    banner("Install")
    check_homebrew(config.brew_path, verbose)
    return _batched("install", packages, config, runner, dry_run, progress_stream, live, verbose)


def reinstall(
    packages: Sequence[str] = (),
    all_installed: bool = False,
    config: Config | None = None,
    runner: CommandRunner | None = None,
    dry_run: bool = False,
    progress_stream: TextIO | None = None,
    live: bool | None = None,
    verbose: bool = False,
) -> OperationReport:
    """
    Reinstall packages (or every installed formula) in parallel batches.

    Explicit package names are ignored when ``all_installed`` is set.

    Raises:
        ConfigurationError: If neither packages nor ``all_installed`` are given
    """
    config = config or Config()
    packages = dedupe(packages)
    if not all_installed and not packages:
        raise ConfigurationError(
            "No packages specified to reinstall. Use --all to reinstall all packages"
        )

    banner("Reinstall")
    check_homebrew(config.brew_path, verbose)

    if all_installed:
        if packages:
            vlog(f"--all given, ignoring explicit packages: {packages}", verbose)
        print("Reinstalling ALL installed packages...")
        print("")
        packages = get_installed_packages(config.brew_path, config.timeout_seconds, verbose)

    if not packages:
        success_line("No packages to reinstall!")
        return OperationReport(operation="reinstall", dry_run=dry_run, message="No packages to reinstall!")

    return _batched("reinstall", packages, config, runner, dry_run, progress_stream, live, verbose)


def _batched(
    operation: str,
    packages: list[str],
    config: Config,
    runner: CommandRunner | None,
    dry_run: bool,
    progress_stream: TextIO | None,
    live: bool | None,
    verbose: bool,
) -> OperationReport:
    """Shared body of install and reinstall."""
    start_time = time.monotonic()
    verb = operation.capitalize()
    past = _PAST[operation]

    print(f"{verb}ing {pluralize(len(packages))}")
    print("")

    batches = make_batches([WorkItem(p, operation) for p in packages], config.batch_size)

    if dry_run:
        for batch in batches:
            print(f"Would run: {format_command([config.brew_path, operation, *batch.packages])}")
        return OperationReport(
            operation=operation,
            packages=tuple(packages),
            duration_seconds=time.monotonic() - start_time,
            dry_run=True,
            message=f"Would {operation} {pluralize(len(packages))}",
        )

    print(
        f"{verb}ing in {len(batches)} batch(es) with "
        f"{config.max_concurrent} concurrent operations..."
    )
    outcomes = run_parallel(
        operation,
        packages,
        config,
        batch_size=config.batch_size,
        runner=runner,
        progress_stream=progress_stream,
        live=live,
        verbose=verbose,
    )

    succeeded = [o for o in outcomes if o.success]
    failed = [o for o in outcomes if not o.success]

    print("")
    if succeeded:
        success_line(f"Successfully {past} {pluralize(len(succeeded))}")

    if failed:
        failure_line(
            f"{pluralize(len(failed))} failed to {operation}: "
            f"{', '.join(o.package for o in failed)}"
        )
        message = f"Some packages failed to {operation}"
    else:
        print("")
        success_line(f"{operation.capitalize()} complete!")
        message = f"{operation.capitalize()} complete!"

    return OperationReport(
        operation=operation,
        packages=tuple(packages),
        outcomes=tuple(outcomes),
        duration_seconds=time.monotonic() - start_time,
        message=message,
    )
