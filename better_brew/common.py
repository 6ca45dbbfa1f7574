"""
Common utilities shared across better_brew modules.
"""

from __future__ import annotations

import os
import shlex
from typing import Sequence

from .logging_config import get_logger


def is_ci_environment() -> bool:
    """
    Check if running in a CI/CD environment.

    Returns:
        True if CI indicators are present, False otherwise.
    """
    ci_indicators = [
        "CI",
        "CONTINUOUS_INTEGRATION",
        "GITHUB_ACTIONS",
        "GITLAB_CI",
        "CIRCLECI",
        "TRAVIS",
        "JENKINS_HOME",
        "BUILDKITE",
        "DRONE",
        "APPVEYOR",
        "CODEBUILD_BUILD_ID",
        "TF_BUILD",  # Azure Pipelines
    ]
    return any(os.environ.get(var) for var in ci_indicators)


def format_command(command: Sequence[str]) -> str:
    """Render an argv sequence as a copy-pasteable shell string."""
    return " ".join(shlex.quote(part) for part in command)


def pluralize(count: int, word: str = "package") -> str:
    """Return '3 package(s)' style counts used in messages."""
    return f"{count} {word}(s)"


def vlog(msg: str, verbose: bool = False) -> None:
    """
    Log verbose message using structured logging.

    Args:
        msg: Message to log
        verbose: Whether verbose mode is enabled
    """
    if verbose or os.environ.get("BBREW_DEBUG", "0") == "1":
        get_logger().info(msg)
