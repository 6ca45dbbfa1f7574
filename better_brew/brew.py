"""
Homebrew command execution and package listing.

Everything that shells out to ``brew`` lives here: the per-operation command
runner used by the fan-out, the streaming runner for ``brew update`` and
``brew upgrade``, and the outdated/installed package listers.
"""

from __future__ import annotations

import json
import shutil
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import Sequence

from .common import format_command, vlog
from .fanout import OPERATIONS


HOMEBREW_INSTALL_URL = "https://brew.sh"

# Characters of stderr kept in failure messages
STDERR_EXCERPT = 200


class BrewError(Exception):
    """
    Failure talking to Homebrew outside of a per-package command.

    Attributes:
        message: Human-readable error message
        remediation: Suggested fix for the error
    """
    def __init__(self, message: str, remediation: str | None = None):
        self.message = message
        self.remediation = remediation
        super().__init__(message)

    def __str__(self) -> str:
        if self.remediation:
            return f"{self.message}\n{self.remediation}"
        return self.message


@dataclass(frozen=True)
class CommandResult:
    """
    Result of running one brew command.

    Attributes:
        command: Full argv that was run
        success: Whether the command exited 0
        stdout: Standard output
        stderr: Standard error
        exit_code: Process exit code (127 if not found, -1 on timeout)
        duration_seconds: Wall time of the command
        error_message: Human-readable error message if failed
    """
    command: tuple[str, ...]
    success: bool
    stdout: str
    stderr: str
    exit_code: int
    duration_seconds: float
    error_message: str | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "command": list(self.command),
            "success": self.success,
            "stdout": self.stdout,
            "stderr": self.stderr,
            "exit_code": self.exit_code,
            "duration_seconds": self.duration_seconds,
            "error_message": self.error_message,
        }


def check_homebrew(brew_path: str = "brew", verbose: bool = False) -> str:
    """
    Make sure Homebrew is installed and on PATH.

    Returns:
        Resolved path of the brew executable

    Raises:
        BrewError: If brew cannot be found
    """
    resolved = shutil.which(brew_path)
    if not resolved:
        raise BrewError(
            "Homebrew is not installed or not in PATH.",
            remediation=f"Please install Homebrew first: {HOMEBREW_INSTALL_URL}",
        )
    vlog(f"Using Homebrew at {resolved}", verbose)
    return resolved


def run_brew(
    args: Sequence[str],
    brew_path: str = "brew",
    timeout: int | None = None,
    verbose: bool = False,
) -> CommandResult:
    """
    Run ``brew <args>`` capturing its output.

    Never raises for command failures; inspect ``CommandResult.success``.

    Args:
        args: Arguments after the brew executable
        brew_path: Homebrew executable
        timeout: Command timeout in seconds
        verbose: Enable verbose logging
    """
    command = (brew_path, *args)
    start_time = time.monotonic()
    vlog(f"Executing: {format_command(command)}", verbose)

    try:
        result = subprocess.run(
            command,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return CommandResult(
            command=command,
            success=False,
            stdout=_decode(e.stdout),
            stderr=_decode(e.stderr),
            exit_code=-1,
            duration_seconds=time.monotonic() - start_time,
            error_message=f"Command timed out after {timeout}s: {format_command(command)}",
        )
    except FileNotFoundError:
        return CommandResult(
            command=command,
            success=False,
            stdout="",
            stderr="",
            exit_code=127,
            duration_seconds=time.monotonic() - start_time,
            error_message=f"Command not found: {brew_path}",
        )
    except OSError as e:
        return CommandResult(
            command=command,
            success=False,
            stdout="",
            stderr=str(e),
            exit_code=126,
            duration_seconds=time.monotonic() - start_time,
            error_message=f"Failed to execute {format_command(command)}: {e}",
        )

    duration = time.monotonic() - start_time
    success = result.returncode == 0
    error_message = None
    if not success:
        error_message = f"Command failed with exit code {result.returncode}"
        stderr = (result.stderr or "").strip()
        if stderr:
            error_message += f": {stderr[:STDERR_EXCERPT]}"

    return CommandResult(
        command=command,
        success=success,
        stdout=result.stdout or "",
        stderr=result.stderr or "",
        exit_code=result.returncode,
        duration_seconds=duration,
        error_message=error_message,
    )


def _decode(output: bytes | str | None) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode("utf-8", errors="replace")
    return output


def run_operation(
    operation: str,
    packages: Sequence[str],
    brew_path: str = "brew",
    timeout: int | None = None,
    verbose: bool = False,
) -> CommandResult:
    """
    Run ``brew <operation> <packages...>``.

    Raises:
        ValueError: If the operation is unknown or no packages are given
    """
    if operation not in OPERATIONS:
        raise ValueError(f"Unknown brew operation: {operation}")
    if not packages:
        raise ValueError(f"No packages given for brew {operation}")
    return run_brew([operation, *packages], brew_path=brew_path, timeout=timeout, verbose=verbose)


class BrewRunner:
    """
    Command runner bound to one brew executable and timeout.

    Instances are the ``runner`` handed to ``fanout.fan_out``.
    """

    def __init__(self, brew_path: str = "brew", timeout: int | None = None, verbose: bool = False):
        self.brew_path = brew_path
        self.timeout = timeout
        self.verbose = verbose

    def __call__(self, operation: str, packages: Sequence[str]) -> CommandResult:
        return run_operation(
            operation,
            packages,
            brew_path=self.brew_path,
            timeout=self.timeout,
            verbose=self.verbose,
        )


def run_streaming(
    args: Sequence[str],
    brew_path: str = "brew",
    verbose: bool = False,
) -> None:
    """
    Run ``brew <args>`` with output going straight to the terminal.

    Raises:
        BrewError: If the command cannot be started or exits non-zero
    """
    command = (brew_path, *args)
    vlog(f"Running: {format_command(command)}", verbose)
    try:
        returncode = subprocess.run(command, check=False, stdout=_inherited_stdout()).returncode
    except OSError as e:
        raise BrewError(f"Failed to execute: {format_command(command)} ({e})") from e
    if returncode != 0:
        raise BrewError(f"Command failed: {format_command(command)} (exit code {returncode})")


def _inherited_stdout():
    """Child stdout: follows contextlib.redirect_stdout when it targets a real file."""
    if sys.stdout is sys.__stdout__:
        return None
    try:
        sys.stdout.fileno()
    except (AttributeError, OSError, ValueError):
        return None
    return sys.stdout


def parse_outdated(payload: str) -> list[str]:
    """
    Parse ``brew outdated --json`` output.

    Returns:
        Formula names followed by cask names

    Raises:
        BrewError: If the payload is not the expected JSON document
    """
    try:
        data = json.loads(payload)
        formulae = [entry["name"] for entry in data.get("formulae", [])]
        casks = [entry["name"] for entry in data.get("casks", [])]
    except (json.JSONDecodeError, AttributeError, KeyError, TypeError) as e:
        raise BrewError(f"Failed to parse JSON output from brew outdated: {e}") from e
    return formulae + casks


def parse_package_list(output: str) -> list[str]:
    """Parse one-package-per-line output, dropping blank lines."""
    return [line.strip() for line in output.splitlines() if line.strip()]


def get_outdated_packages(
    brew_path: str = "brew",
    timeout: int | None = None,
    verbose: bool = False,
) -> list[str]:
    """
    List outdated formulae and casks.

    Raises:
        BrewError: If brew fails or its output cannot be parsed
    """
    result = run_brew(["outdated", "--json"], brew_path=brew_path, timeout=timeout, verbose=verbose)
    if not result.success:
        raise BrewError(f"Failed to get outdated packages: {result.stderr.strip() or result.error_message}")
    packages = parse_outdated(result.stdout)
    vlog(f"Outdated packages: {packages}", verbose)
    return packages


def get_installed_packages(
    brew_path: str = "brew",
    timeout: int | None = None,
    verbose: bool = False,
) -> list[str]:
    """
    List installed formulae (casks are not included).

    Raises:
        BrewError: If brew fails
    """
    result = run_brew(["list", "--formula", "-1"], brew_path=brew_path, timeout=timeout, verbose=verbose)
    if not result.success:
        raise BrewError(f"Failed to get installed packages: {result.stderr.strip() or result.error_message}")
    packages = parse_package_list(result.stdout)
    vlog(f"Installed packages: {len(packages)}", verbose)
    return packages
