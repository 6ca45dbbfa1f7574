"""
Command-line interface: ``bbrew update|upgrade|install|reinstall``.
"""

from __future__ import annotations

import argparse
import contextlib
import json
import sys
from typing import Sequence

from . import __version__
from .brew import BrewError
from .config import Config, load_config, validate_config
from .fanout import ConfigurationError
from .logging_config import get_logger, setup_logging
from .operations import OperationReport, install, reinstall, update, upgrade
from .render import failure_line, warning_line


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per workflow."""
    parser = argparse.ArgumentParser(
        prog="bbrew",
        description="Better Brew - parallel Homebrew package downloads and upgrades",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Verbose output",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors",
    )
    parser.add_argument(
        "--log-file",
        metavar="PATH",
        help="Also write a DEBUG log to PATH",
    )
    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Configuration file to load before the standard locations",
    )
    parser.add_argument(
        "--max-concurrent", "-j",
        type=int,
        metavar="N",
        help="Maximum brew commands running at once (default: 4)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        metavar="N",
        help="Packages per install/reinstall command (default: 10)",
    )
    parser.add_argument(
        "--dry-run", "-n",
        action="store_true",
        help="Show which brew commands would run without running them",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the final report as JSON on stdout",
    )

    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    subparsers.required = True

    subparsers.add_parser(
        "update",
        help="Update Homebrew and fetch latest package definitions",
    )
    subparsers.add_parser(
        "upgrade",
        help="Upgrade outdated packages (downloads run in parallel)",
    )

    install_parser = subparsers.add_parser(
        "install",
        help="Install packages in parallel",
    )
    install_parser.add_argument("packages", nargs="*", help="Packages to install")

    reinstall_parser = subparsers.add_parser(
        "reinstall",
        help="Reinstall packages in parallel",
    )
    reinstall_parser.add_argument(
        "--all", "-a",
        dest="all_installed",
        action="store_true",
        help="Reinstall all installed formulae",
    )
    reinstall_parser.add_argument(
        "packages",
        nargs="*",
        help="Packages to reinstall (ignored if --all is given)",
    )

    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    """Load config files and environment, then apply command-line flags."""
    config = load_config(custom_path=args.config, verbose=args.verbose)
    config = config.with_overrides(
        max_concurrent=args.max_concurrent,
        batch_size=args.batch_size,
    )
    for warning in validate_config(config):
        get_logger().warning(warning)
    return config


def dispatch(args: argparse.Namespace, config: Config) -> OperationReport:
    """Run the workflow selected on the command line."""
    common = {"config": config, "dry_run": args.dry_run, "verbose": args.verbose}
    if args.command == "update":
        return update(**common)
    if args.command == "upgrade":
        return upgrade(**common)
    if args.command == "install":
        return install(args.packages, **common)
    if args.command == "reinstall":
        return reinstall(args.packages, all_installed=args.all_installed, **common)
    raise ConfigurationError(f"Unknown command: {args.command}")


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point; returns the process exit status."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)
    logger = get_logger()

    try:
        config = resolve_config(args)
    except ValueError as e:
        failure_line(f"Error: {e}")
        return EXIT_USAGE

    logger.debug(f"bbrew {args.command} with {config.to_dict()}")

    # JSON mode keeps stdout for the report alone
    redirect = contextlib.redirect_stdout(sys.stderr) if args.json else contextlib.nullcontext()
    try:
        with redirect:
            report = dispatch(args, config)
    except ConfigurationError as e:
        failure_line(f"Error: {e}")
        return EXIT_USAGE
    except BrewError as e:
        failure_line(f"Error: {e}")
        logger.debug(f"bbrew {args.command} aborted: {e.message}")
        return EXIT_FAILURE

    if args.json:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    elif report.failed and not report.failures_are_fatal:
        warning_line(report.summary())

    logger.debug(f"bbrew {args.command} finished: {report.summary()} in {report.duration_seconds:.1f}s")
    return report.exit_code


def run() -> None:
    """Console-script entry point."""
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(EXIT_INTERRUPTED)
