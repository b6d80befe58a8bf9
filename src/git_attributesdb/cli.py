import argparse
import datetime
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import NoReturn

from rich.console import Console
from rich.table import Table

from . import ops
from .codec import NS_PER_SECOND, Database, format_mode
from .config import Config
from .constants import (
    APP_NAME,
    DATABASE_FILE,
    EXTRA_FILE,
    RESTORE_MODES,
    STORE_MODES,
)
from .git_wrapper import GitRepo
from .paths import expand_expression, read_extra_expressions

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)


class HookArgumentParser(argparse.ArgumentParser):
    """Argument parser that reports usage errors with exit code 1."""

    def error(self, message: str) -> NoReturn:
        self.print_usage(sys.stderr)
        err_console.print(f"[bold red]ERROR:[/bold red] {message}")
        sys.exit(1)


def setup_logging(config: Config) -> None:
    """Configures the logging subsystem.

    Hook output goes to stderr, which git relays to the user. When a log file
    is configured, records are also written there with rotation enabled.

    Args:
        config (Config): The loaded configuration.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )
    logger.setLevel(config.logging.level)
    logger.handlers.clear()

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if config.logging.file:
        try:
            file_handler = RotatingFileHandler(
                Path(config.logging.file).expanduser(),
                maxBytes=config.logging.max_log_size,
                backupCount=3,
            )
        except OSError as e:
            logger.warning(f"Could not open log file {config.logging.file}: {e}")
            return
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def _format_ns(ns: int) -> str:
    ts = datetime.datetime.fromtimestamp(ns / NS_PER_SECOND)
    return ts.strftime("%Y-%m-%d %H:%M:%S")


def show_database(database_file: Path) -> None:
    """Prints the decoded contents of the attribute database as a table."""
    database = Database.load(database_file)
    if not len(database):
        console.print(f"[dim]No entries in {database_file.name}.[/dim]")
        return

    table = Table(title=f"{database_file.name} ({len(database)} entries)")
    table.add_column("Path", style="cyan")
    table.add_column("Modified", style="green")
    table.add_column("Owner")
    table.add_column("Mode", style="yellow", justify="right")
    table.add_column("ACL", justify="center")
    table.add_column("XAttr", justify="center")

    for _key, record in database:
        table.add_row(
            record.path,
            _format_ns(record.mtime_ns),
            f"{record.owner}:{record.group}",
            format_mode(record.mode),
            "yes" if record.acl else "-",
            "yes" if record.xattr else "-",
        )

    console.print(table)


def show_extra(extra_file: Path) -> None:
    """Prints each extra-path expression and what it currently expands to."""
    expressions = list(read_extra_expressions(extra_file))
    if not expressions:
        console.print(f"[dim]No expressions in {extra_file.name}.[/dim]")
        return

    table = Table(title=extra_file.name)
    table.add_column("Expression", style="cyan")
    table.add_column("Matches")

    for expression in expressions:
        matches = expand_expression(expression)
        table.add_row(
            expression, "\n".join(matches) if matches else "[dim]none[/dim]"
        )

    console.print(table)


def build_parser() -> argparse.ArgumentParser:
    """Builds the command-line parser (one sub-command per hook plus helpers)."""
    parser = HookArgumentParser(
        prog=APP_NAME,
        description="Store and restore filesystem attributes from git hooks.",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")

    for mode in STORE_MODES:
        hook = subparsers.add_parser(
            mode, help=f"Store attributes into {DATABASE_FILE} and stage it"
        )
        hook.add_argument("hook_args", nargs="*", help=argparse.SUPPRESS)
    for mode in RESTORE_MODES:
        hook = subparsers.add_parser(
            mode, help=f"Restore attributes recorded in {DATABASE_FILE}"
        )
        hook.add_argument("hook_args", nargs="*", help=argparse.SUPPRESS)

    subparsers.add_parser("show", help="List the entries of the attribute database")
    subparsers.add_parser(
        "extra", help=f"List the expressions in {EXTRA_FILE} and their matches"
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the git-attributesdb CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.error("a command is required")

    try:
        repo = GitRepo.discover(Path.cwd())
        git_dir = repo.git_dir()
    except (RuntimeError, ValueError) as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)

    config = Config.load(git_dir)
    setup_logging(config)

    try:
        if args.command == "show":
            show_database(repo.path / DATABASE_FILE)
        elif args.command == "extra":
            os.chdir(repo.path)
            show_extra(repo.path / EXTRA_FILE)
        else:
            ops.run_phase(args.command, repo, config)
    except (ops.AttributesDBError, RuntimeError, OSError) as e:
        err_console.print(f"[bold red]ERROR:[/bold red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
