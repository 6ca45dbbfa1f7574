"""
Terminal output helpers: banners, status icons, colors and summaries.
"""

import os
import sys
from typing import Optional, Sequence, TextIO


USE_COLOR = os.environ.get("BBREW_COLOR", "1") == "1" and "NO_COLOR" not in os.environ

# ANSI color codes
GREEN = "\033[32m"
YELLOW = "\033[33m"
RED = "\033[31m"
BOLD = "\033[1m"
RESET = "\033[0m"


def status_icon(success: bool) -> str:
    """Icon printed in front of a success or failure line."""
    return "✓" if success else "✗"


def colorize(text: str, color: str, stream: Optional[TextIO] = None) -> str:
    """Apply color to text.

    Colors are skipped when disabled by environment or when the target
    stream is not a terminal.
    """
    if not USE_COLOR or not text:
        return text
    if stream is not None and not getattr(stream, "isatty", lambda: False)():
        return text
    return f"{color}{text}{RESET}"


def banner(title: str, stream: Optional[TextIO] = None) -> None:
    """Print the '=== Better Brew Upgrade ===' heading."""
    stream = stream or sys.stdout
    print(colorize(f"=== Better Brew {title} ===", BOLD, stream), file=stream)
    print("", file=stream)


def success_line(message: str, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stdout
    print(colorize(f"{status_icon(True)} {message}", GREEN, stream), file=stream)


def failure_line(message: str, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stderr
    print(colorize(f"{status_icon(False)} {message}", RED, stream), file=stream)


def warning_line(message: str, stream: Optional[TextIO] = None) -> None:
    stream = stream or sys.stderr
    print(colorize(f"Warning: {message}", YELLOW, stream), file=stream)


def format_package_list(packages: Sequence[str], limit: int = 20) -> str:
    """Comma-join package names, eliding the middle of very long lists."""
    if len(packages) <= limit:
        return ", ".join(packages)
    shown = ", ".join(packages[:limit])
    return f"{shown}, ... ({len(packages) - limit} more)"
