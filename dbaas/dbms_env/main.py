"""
dbms-env command line entry point.

Usage:
    dbms-env install <name> <version> [--password PW]
    dbms-env start|stop|status <dbms-id>...
    dbms-env list [--json]
    dbms-env uninstall <dbms-id>
    dbms-env ext-versions [--json]
    dbms-env ext-install <name> [<version>]
    dbms-env ext-link <path>
    dbms-env ext-list [--json]
    dbms-env ext-uninstall <name>

Configuration is entirely via environment variables (see config.py).
Lifecycle commands (start, stop, status) go through the configured account
and work for remote environments too; everything else needs a local one.

Exit codes:
    0   success
    1   operation failed (for batches: at least one id failed)
    2   invalid usage or configuration
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from collections.abc import Sequence
from pathlib import Path

import json_log_formatter

from .accounts import create_account
from .config import AppConfig, EnvironmentType
from .dbms import DbmsOperationResult
from .environments import LocalEnvironment
from .errors import DbmsEnvError

logger = logging.getLogger(__name__)

LIFECYCLE_COMMANDS = ("start", "stop", "status")


def setup_logging(config: AppConfig, verbose: bool = False) -> None:
    """Configure logging based on configuration.

    Args:
        config: Application configuration
        verbose: Force DEBUG level
    """
    level_name = "DEBUG" if verbose else config.observability.log_level.upper()
    level = getattr(logging, level_name, logging.WARNING)

    if config.observability.log_format == "json":
        formatter: logging.Formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dbms-env", description="Install and run local DBMS instances")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    install_parser = subparsers.add_parser("install", help="Install a new DBMS instance")
    install_parser.add_argument("name", help="Instance name")
    install_parser.add_argument("version", help="Semver range, or path to an archive or distribution")
    install_parser.add_argument(
        "--password",
        default=os.getenv("DBMS_ENV_INITIAL_PASSWORD", ""),
        help="Initial password (default: $DBMS_ENV_INITIAL_PASSWORD)",
    )

    for command in LIFECYCLE_COMMANDS:
        lifecycle_parser = subparsers.add_parser(command, help=f"{command.capitalize()} DBMS instances")
        lifecycle_parser.add_argument("dbms_ids", nargs="+", metavar="dbms-id", help="Instance id")

    list_parser = subparsers.add_parser("list", help="List installed DBMS instances")
    list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    uninstall_parser = subparsers.add_parser("uninstall", help="Stop and remove a DBMS instance")
    uninstall_parser.add_argument("dbms_id", metavar="dbms-id", help="Instance id")

    ext_versions_parser = subparsers.add_parser("ext-versions", help="List cached and online extension versions")
    ext_versions_parser.add_argument("--json", action="store_true", help="Output as JSON")

    ext_install_parser = subparsers.add_parser("ext-install", help="Install an extension")
    ext_install_parser.add_argument("name", help="Extension name")
    ext_install_parser.add_argument("version", nargs="?", default="*", help="Semver range (default: *)")

    ext_link_parser = subparsers.add_parser("ext-link", help="Link an extension (useful for development)")
    ext_link_parser.add_argument("path", type=Path, help="Extension directory")

    ext_list_parser = subparsers.add_parser("ext-list", help="List installed extensions")
    ext_list_parser.add_argument("--json", action="store_true", help="Output as JSON")

    ext_uninstall_parser = subparsers.add_parser("ext-uninstall", help="Remove an installed extension")
    ext_uninstall_parser.add_argument("name", help="Extension name")

    return parser


def _print_results(results: Sequence[DbmsOperationResult]) -> int:
    failed = 0
    for result in results:
        if result.ok:
            print(f"{result.dbms_id}\t{result.status.value}")
        else:
            failed += 1
            print(f"{result.dbms_id}\terror\t{result.message}")
    return 1 if failed else 0


async def run(args: argparse.Namespace, config: AppConfig) -> int:
    """Execute a parsed command. Returns the process exit code."""
    env_config = config.environment

    if args.command in LIFECYCLE_COMMANDS:
        account = create_account(env_config, registry=config.registry)
        try:
            operation = getattr(account, f"{args.command}_dbmss")
            return _print_results(await operation(args.dbms_ids))
        finally:
            await account.close()

    if env_config.type != EnvironmentType.LOCAL:
        print(f"'{args.command}' requires a local environment", file=sys.stderr)
        return 2

    env = LocalEnvironment(env_config, config.registry)
    try:
        if args.command == "install":
            print(await env.install_dbms(args.name, args.password, args.version))

        elif args.command == "list":
            dbmss = env.list_dbmss()
            if args.json:
                print(json.dumps([info.to_dict() for info in dbmss], indent=2))
            else:
                for info in dbmss:
                    print(f"{info.id}\t{info.name}\t{info.version}\t{info.edition}")

        elif args.command == "uninstall":
            await env.uninstall_dbms(args.dbms_id)
            print(f"Uninstalled {args.dbms_id}")

        elif args.command == "ext-versions":
            versions = await env.extensions.fetch_extension_versions()
            if args.json:
                print(json.dumps([v.to_dict() for v in versions], indent=2))
            else:
                for v in versions:
                    print(f"{v.name}\t{v.version}\t{v.origin.value}")

        elif args.command == "ext-install":
            meta = await env.extensions.install_extension(args.name, args.version)
            print(f"Installed {meta.name}@{meta.version} ({meta.type.value})")

        elif args.command == "ext-link":
            meta = await env.extensions.link_extension(args.path)
            print(f"Linked {meta.name}@{meta.version} -> {meta.dist}")

        elif args.command == "ext-list":
            installed = await env.extensions.list_installed_extensions()
            if args.json:
                print(json.dumps(
                    [{"name": m.name, "version": m.version, "type": m.type.value, "root": str(m.dist)} for m in installed],
                    indent=2,
                ))
            else:
                for meta in installed:
                    print(f"{meta.name}\t{meta.version}\t{meta.type.value}")

        elif args.command == "ext-uninstall":
            await env.extensions.uninstall_extension(args.name)
            print(f"Uninstalled {args.name}")

        return 0
    finally:
        await env.close()


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = AppConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    setup_logging(config, verbose=args.verbose)
    config.log_config()

    try:
        return asyncio.run(run(args, config))
    except DbmsEnvError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"{e.code}: {e.message}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
