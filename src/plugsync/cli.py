#!/usr/bin/env python3
"""plugsync command line.

Usage:
    plugsync [--config FILE] [--data-dir DIR] [-v] COMMAND ...

Commands:
    sync [--dry-run] [--verbose]          Converge plugins to the declared list
    adopt NAME | --all [--yes]            Declare an experimental plugin
    try SPEC                              Load a plugin without declaring it
    status [--verbose|--machine-readable] Show declared and experimental plugins
    diff [--verbose]                      Preview sync (exit 0 = drift, 1 = in sync)

Exit codes: 0 success, 1 failure, 2 invalid plugin specification.
diff never exits 1 on error: 2 for an invalid specification, 3 when the
config file or state cannot be read.
"""
import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from .collaborators import ActivationError, DeferredLoader, FetchError, LocalFetcher
from .config import ConfigFileError, Settings
from .engine import (
    DIFF_EXIT_ERROR,
    AlreadyDeclaredError,
    NotLoadedError,
    PluginEngine,
    TryStatus,
    summarize_drift,
)
from .spec import ValidationError
from .state_store import PluginStateEntry
from .utils import setup_audit_logging, setup_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_INVALID = 2


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for all subcommands."""
    parser = argparse.ArgumentParser(
        prog="plugsync",
        description="Declarative plugin manager: keep loaded plugins in sync with plugins=( ... )",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # See what would change
    plugsync diff

    # Apply the declared list
    plugsync sync

    # Try a plugin, then keep it
    plugsync try zsh-users/zsh-autosuggestions
    plugsync adopt zsh-users/zsh-autosuggestions

Environment:
    PLUGSYNC_DATA_DIR       State, logs and audit trail
    PLUGSYNC_PLUGIN_DIR     Downloaded plugins
    PLUGSYNC_CONFIG_FILE    File with the plugins=( ... ) array
    PLUGSYNC_LOG_LEVEL      Console log level (default: WARNING)

Exit codes:
    0 success, 1 failure, 2 invalid plugin specification
    diff: 0 drift, 1 in sync, 2 invalid specification, 3 unreadable config or state
""",
    )
    parser.add_argument(
        "--config",
        type=Path,
        help="File declaring plugins=( ... ) (default: $ZDOTDIR/.zshrc)",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Directory for state and logs (default: $XDG_DATA_HOME/plugsync)",
    )
    parser.add_argument(
        "-v",
        dest="debug",
        action="store_true",
        help="Enable debug logging",
    )

    commands = parser.add_subparsers(dest="command", metavar="COMMAND")
    commands.required = True

    sync = commands.add_parser("sync", help="Converge plugins to the declared list")
    sync.add_argument("--dry-run", action="store_true", help="Show changes without applying")
    sync.add_argument("--verbose", action="store_true", help="Show per-plugin details")

    adopt = commands.add_parser("adopt", help="Add an experimental plugin to the config file")
    adopt.add_argument("name", nargs="?", help="Plugin name (owner/name)")
    adopt.add_argument("--all", action="store_true", help="Adopt every experimental plugin")
    adopt.add_argument("--yes", "-y", action="store_true", help="Do not ask for confirmation")

    try_cmd = commands.add_parser("try", help="Load a plugin for this session only")
    try_cmd.add_argument("spec", help="owner/name[@version][:subpath]")

    status = commands.add_parser("status", help="Show declared and experimental plugins")
    output = status.add_mutually_exclusive_group()
    output.add_argument("--verbose", action="store_true", help="Show specs, paths and load times")
    output.add_argument(
        "--machine-readable", "--json",
        dest="machine_readable",
        action="store_true",
        help="Print JSON",
    )

    diff = commands.add_parser("diff", help="Preview what sync would change")
    diff.add_argument("--verbose", action="store_true", help="Also list unchanged plugins")

    return parser


def cmd_sync(engine: PluginEngine, args: argparse.Namespace) -> int:
    result = engine.sync(dry_run=args.dry_run)

    for message in result.invalid:
        print(f"Skipped: {message}", file=sys.stderr)

    if result.already_in_sync:
        print("Already in sync with declared configuration")
        return EXIT_INVALID if result.invalid else EXIT_OK

    if result.dry_run:
        print("[DRY RUN] " + summarize_drift(result.drift))
        print("")
        print("Run 'plugsync sync' without --dry-run to apply these changes")
        return EXIT_INVALID if result.invalid else EXIT_OK

    if args.verbose:
        print(summarize_drift(result.drift))
        print("")

    for label, names in (
        ("Removed", result.removed),
        ("Installed", result.installed),
        ("Updated", result.updated),
    ):
        if names:
            print(f"{label} {len(names)} plugin(s): {', '.join(sorted(names))}")

    if args.verbose:
        for unit in result.units:
            if unit.success and unit.error:
                print(f"  warning: {unit.error}")

    if result.failed:
        print(f"Failed {len(result.failed)} plugin(s):", file=sys.stderr)
        for name, error in sorted(result.failed.items()):
            print(f"  {name}: {error}", file=sys.stderr)
        return EXIT_FAILURE

    if result.invalid:
        return EXIT_INVALID

    print("Restart your shell to apply changes")
    return EXIT_OK


def _confirm(names: list[str]) -> bool:
    print("Experimental plugins to adopt:")
    for name in names:
        print(f"  {name}")
    try:
        answer = input(f"Adopt {len(names)} plugin(s) into your configuration? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def cmd_adopt(engine: PluginEngine, args: argparse.Namespace) -> int:
    if args.all == bool(args.name):
        print("Usage: plugsync adopt <name> | --all [--yes]", file=sys.stderr)
        return EXIT_INVALID

    if args.name:
        try:
            result = engine.adopt(args.name)
        except AlreadyDeclaredError as e:
            print(str(e), file=sys.stderr)
            return EXIT_OK
        print(f"Adopted {result.name} into {result.config_file}")
        if result.backup_file:
            print(f"Backup: {result.backup_file}")
        return EXIT_OK

    summary = engine.adopt_all(confirm=_confirm, assume_yes=args.yes)
    if not summary.candidates:
        print("No experimental plugins to adopt")
        return EXIT_OK
    if summary.cancelled:
        print("Cancelled")
        return EXIT_OK

    adopted = sorted(summary.adopted_names)
    if adopted:
        print(f"Adopted {len(adopted)} plugin(s): {', '.join(adopted)}")
    for name, error in sorted(summary.failed.items()):
        print(f"Failed to adopt {name}: {error}", file=sys.stderr)
    return EXIT_FAILURE if summary.failed else EXIT_OK


def cmd_try(engine: PluginEngine, args: argparse.Namespace) -> int:
    result = engine.try_plugin(args.spec)

    if result.status == TryStatus.ALREADY_DECLARED:
        print(f"{result.name} is already declared in your configuration", file=sys.stderr)
    elif result.status == TryStatus.ALREADY_EXPERIMENTAL:
        print(f"{result.name} is already loaded experimentally", file=sys.stderr)
    else:
        print(f"Loaded {result.name} [{result.entry.resolved_version}] for this session")
        print(f"To keep it: plugsync adopt {result.name}")
    return EXIT_OK


def _print_entry(entry: PluginStateEntry, marker: str, verbose: bool) -> None:
    print(f"  {marker} {entry.name} [{entry.resolved_version}]")
    if verbose:
        print(f"      spec: {entry.specification}")
        print(f"      path: {entry.path}")
        if entry.installed_at:
            loaded = datetime.fromtimestamp(entry.installed_at).isoformat(sep=" ")
            print(f"      loaded: {loaded}")


def cmd_status(engine: PluginEngine, args: argparse.Namespace) -> int:
    report = engine.status()

    if args.machine_readable:
        print(json.dumps(report.to_dict(), indent=2))
        return EXIT_OK

    print("=== Plugin Status ===")
    print("")

    if report.declared:
        print(f"Declared plugins ({len(report.declared)}):")
        for entry in report.declared:
            _print_entry(entry, "*", args.verbose)
    else:
        print("Declared plugins: (none)")
    print("")

    if report.experimental:
        print(f"Experimental plugins ({len(report.experimental)}):")
        for entry in report.experimental:
            _print_entry(entry, "~", args.verbose)
    else:
        print("Experimental plugins: (none)")
    print("")

    if report.in_sync:
        print("In sync with declared configuration")
    else:
        print("Out of sync; run 'plugsync diff' to see changes")
    return EXIT_OK


def cmd_diff(engine: PluginEngine, args: argparse.Namespace) -> int:
    report = engine.diff()

    print(summarize_drift(report.drift))
    if args.verbose and report.unchanged:
        print("")
        print(f"Unchanged ({len(report.unchanged)}):")
        for name in report.unchanged:
            print(f"  [=] {name}")
    if report.has_drift:
        print("")
        print("Run 'plugsync sync' to apply these changes")
    return report.exit_code


COMMANDS = {
    "sync": cmd_sync,
    "adopt": cmd_adopt,
    "try": cmd_try,
    "status": cmd_status,
    "diff": cmd_diff,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point for the plugsync CLI."""
    args = build_parser().parse_args(argv)

    settings = Settings.from_env(data_dir=args.data_dir, config_file=args.config)
    setup_logging(settings.data_dir, console_level=logging.DEBUG if args.debug else None)
    try:
        setup_audit_logging(settings.data_dir)
    except OSError as e:
        logger.warning(f"Audit logging disabled: {e}")

    engine = PluginEngine(
        settings,
        fetcher=LocalFetcher(settings.plugin_dir),
        loader=DeferredLoader(),
    )

    try:
        return COMMANDS[args.command](engine, args)
    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        print(f"Expected format: {e.remedy}", file=sys.stderr)
        return EXIT_INVALID
    except NotLoadedError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except (FetchError, ActivationError, ConfigFileError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return DIFF_EXIT_ERROR if args.command == "diff" else EXIT_FAILURE
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        return 130
    except Exception as e:
        logger.exception(f"{args.command} failed with exception: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return DIFF_EXIT_ERROR if args.command == "diff" else EXIT_FAILURE


if __name__ == "__main__":
    sys.exit(main())
