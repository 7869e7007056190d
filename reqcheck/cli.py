"""
Command line entry point.

Resolves the project root and settings, inspects the PHP runtime (live or
from a snapshot file), runs the audit and prints the report. The exit status
is 0 when every mandatory requirement is met, 1 otherwise and 2 when the
audit cannot run.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Tuple

import yaml

from reqcheck import __version__
from reqcheck.builder import run_audit
from reqcheck.config import AuditSettings, load_settings, read_yaml_document
from reqcheck.database import DatabaseProbe, DatabaseStatus, MySQLDatabaseProbe, StaticDatabaseProbe
from reqcheck.exceptions import ReqcheckError, SettingsError
from reqcheck.manifest import find_project_root
from reqcheck.report import Reporter, format_json, format_plain
from reqcheck.sources import ConfigSource, RuntimeSnapshot, SnapshotConfigSource, collect_php_snapshot
from reqcheck.ui import console

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REQUIREMENTS_FAILED = 1
EXIT_SETUP_ERROR = 2
EXIT_CANCELLED = 130


def configure_logging(verbose: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # Suppress driver chatter in normal operation
    logging.getLogger("pymysql").setLevel(logging.WARNING)


def load_snapshot_file(path: str) -> Tuple[RuntimeSnapshot, Optional[DatabaseStatus]]:
    """
    Read a snapshot file with a ``runtime`` section and an optional ``database`` section.

    Raises:
        SettingsError: If the file is unreadable or its sections are malformed
    """
    document = read_yaml_document(path)
    runtime = document.get("runtime") or {}
    database = document.get("database")

    try:
        snapshot = RuntimeSnapshot.from_dict(runtime)
        status = DatabaseStatus.from_dict(database) if database is not None else None
    except (AttributeError, TypeError, ValueError) as e:
        raise SettingsError(f"Invalid snapshot {path}: {e}") from e
    return snapshot, status


def dump_snapshot(snapshot: RuntimeSnapshot, path: str) -> None:
    try:
        with open(path, "w", encoding="utf-8") as f:
            yaml.safe_dump({"runtime": snapshot.to_dict()}, f, sort_keys=False, allow_unicode=True)
    except OSError as e:
        raise SettingsError(f"Cannot write snapshot {path}: {e}") from e
    logger.info(f"Runtime snapshot written to {path}")


def resolve_runtime(args: argparse.Namespace, settings: AuditSettings) -> Tuple[ConfigSource, DatabaseProbe]:
    """Pick the runtime facts and database probe for this run."""
    status = None
    if args.snapshot:
        snapshot, status = load_snapshot_file(args.snapshot)
    else:
        snapshot = collect_php_snapshot(settings.php_binary, settings.root_dir)

    if args.dump_snapshot:
        dump_snapshot(snapshot, args.dump_snapshot)

    probe = StaticDatabaseProbe(status) if status is not None else MySQLDatabaseProbe()
    return SnapshotConfigSource(snapshot), probe


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="reqcheck",
        description="Check that this machine can run the PHP application in ROOT",
        epilog="Exit status is 0 when every mandatory requirement is met, 1 otherwise and 2 on setup errors.",
    )
    parser.add_argument("root", nargs="?", default=".", help="Project directory (default: current directory)")
    parser.add_argument("--env", help="Application environment, overrides APP_ENV")
    parser.add_argument("--database-url", help="Database URL, overrides DATABASE_URL")
    parser.add_argument("--php-binary", help="PHP interpreter to inspect (default: php)")
    parser.add_argument("--config", help="YAML file with audit settings")
    parser.add_argument("--snapshot", help="Audit a recorded runtime snapshot instead of a live interpreter")
    parser.add_argument("--dump-snapshot", metavar="FILE", help="Write the inspected runtime to FILE as YAML")

    output = parser.add_mutually_exclusive_group()
    output.add_argument("--json", action="store_true", help="Output as JSON")
    output.add_argument("--plain", action="store_true", help="Output plain text without colors")

    parser.add_argument("--verbose", "-v", action="store_true", help="Show passed checks and debug logs")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        root_dir = find_project_root(Path(args.root))
        settings = load_settings(
            root_dir,
            config_file=args.config,
            overrides={
                "app_env": args.env,
                "database_url": args.database_url,
                "php_binary": args.php_binary,
            },
        )
        config_source, probe = resolve_runtime(args, settings)
        registry = run_audit(settings, config_source, probe)
    except KeyboardInterrupt:
        print("\n❌ Operation cancelled", file=sys.stderr)
        return EXIT_CANCELLED
    except ReqcheckError as e:
        if args.json:
            print(f"❌ Error: {e}", file=sys.stderr)
        else:
            console.error("Cannot run the requirements check", details=str(e))
        return EXIT_SETUP_ERROR

    if args.json:
        print(format_json(registry, settings))
    elif args.plain:
        print(format_plain(registry, verbose=args.verbose))
    else:
        Reporter(console=console.rich, verbose=args.verbose).render(registry, settings)

    return EXIT_OK if registry.is_fully_satisfied() else EXIT_REQUIREMENTS_FAILED


if __name__ == "__main__":
    sys.exit(main())
