"""
Better Brew - parallel Homebrew package operations.

Core Modules:
- Fan-out: bounded concurrent execution of independent brew commands
- Progress: shared progress state and its console renderer
- Homebrew: command runner and package listers
- Operations: update, upgrade, install and reinstall workflows
- Foundation: configuration and logging
"""

__version__ = "0.2.0"

VERSION = __version__

# Fan-out
from .fanout import (
    OPERATIONS,
    ConfigurationError,
    ExecutionLimiter,
    Outcome,
    WorkBatch,
    WorkItem,
    fan_out,
    make_batches,
)
from .progress import ConsoleProgress, ProgressSink

# Homebrew
from .brew import (
    BrewError,
    BrewRunner,
    CommandResult,
    check_homebrew,
    get_installed_packages,
    get_outdated_packages,
    run_brew,
    run_operation,
)

# Foundation
from .config import Config, load_config, load_config_file, validate_config
from .logging_config import get_logger, setup_logging

# Operations
from .operations import OperationReport, install, reinstall, update, upgrade

__all__ = [
    # Version
    "__version__",
    "VERSION",
    # Fan-out
    "OPERATIONS",
    "ConfigurationError",
    "ExecutionLimiter",
    "Outcome",
    "WorkBatch",
    "WorkItem",
    "fan_out",
    "make_batches",
    "ConsoleProgress",
    "ProgressSink",
    # Homebrew
    "BrewError",
    "BrewRunner",
    "CommandResult",
    "check_homebrew",
    "get_installed_packages",
    "get_outdated_packages",
    "run_brew",
    "run_operation",
    # Foundation
    "Config",
    "load_config",
    "load_config_file",
    "validate_config",
    "get_logger",
    "setup_logging",
    # Operations
    "OperationReport",
    "install",
    "reinstall",
    "update",
    "upgrade",
]
