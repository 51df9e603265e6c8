"""CLI module for PostgreSQL snapshots, restores, and maintenance.

Provides commands for database profile management, schema and data dumps,
transactional restore, and destructive maintenance.

Usage:
    db-snapshot connect --profile local
    db-snapshot status
    db-snapshot profiles
    db-snapshot list
    db-snapshot schema
    db-snapshot dump --with-schema
    db-snapshot restore --list
    db-snapshot restore --latest --yes
    db-snapshot drop --confirm
    db-snapshot truncate --tables orders,order_items --confirm

Commands:
    connect   - Test a profile's connection and make it the current profile
    status    - Show current connection status
    profiles  - List available profiles (db.toml and .env)
    list      - List tables with their size
    schema    - Export the schema (types, sequences, tables, FKs, indexes)
    dump      - Dump table data (optionally with the schema)
    restore   - Replay a dump file in one transaction
    drop      - Drop all tables and enum types
    truncate  - Empty tables and reset their identity sequences
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

import psycopg
from rich.console import Console
from rich.logging import RichHandler
from rich.prompt import Confirm
from rich.table import Table
from sqlalchemy.exc import SQLAlchemyError

from db_snapshot.adapters import AsyncPostgresAdapter
from db_snapshot.config.loader import load_db_config, load_profiles
from db_snapshot.config.models import SnapshotSettings
from db_snapshot.errors import ConfigurationError, ReplayStatementError, SnapshotError
from db_snapshot.factory import (
    connect_and_validate,
    get_active_profile,
    read_profile_lock,
    resolve_url,
)
from db_snapshot.schema.graph import build_table_graph
from db_snapshot.schema.introspector import SchemaIntrospector
from db_snapshot.snapshot.assembler import create_snapshot, write_artifact
from db_snapshot.snapshot.maintenance import drop_all, plan_drop, truncate_tables
from db_snapshot.snapshot.paths import (
    BACKUPS_DIRNAME,
    find_artifacts,
    get_dump_file_path,
    latest_artifact,
)
from db_snapshot.snapshot.replay import replay_file

console = Console()

logger = logging.getLogger(__name__)

# Errors that mean "the database or the artifact said no"
_OPERATION_ERRORS = (SnapshotError, psycopg.Error, SQLAlchemyError, OSError)


# ============================================================================
# Shared helpers
# ============================================================================


def _configure_logging(verbose: bool) -> None:
    """Send library logs through rich (INFO, or DEBUG with --verbose)."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )
    # Driver chatter is only useful when debugging the drivers themselves
    for noisy in ("sqlalchemy", "asyncio", "psycopg"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def _config_path(args: argparse.Namespace) -> Path | None:
    config = getattr(args, "config", None)
    return Path(config) if config else None


def _load_settings(args: argparse.Namespace) -> SnapshotSettings:
    """Read ``[snapshot]`` from db.toml; defaults when there is no db.toml."""
    try:
        return load_db_config(_config_path(args)).snapshot
    except FileNotFoundError:
        return SnapshotSettings()


def _resolve_target(args: argparse.Namespace) -> tuple[str, str] | None:
    """Resolve (profile name, URL), printing the problem if there is one."""
    try:
        name, profile = get_active_profile(
            getattr(args, "profile", None),
            env_prefix=getattr(args, "env_prefix", ""),
            config_path=_config_path(args),
        )
        return name, resolve_url(profile)
    except ConfigurationError as e:
        console.print(f"[red]Error: {e}[/red]")
        return None


def _make_introspector(url: str, settings: SnapshotSettings) -> SchemaIntrospector:
    excluded = set(SchemaIntrospector.EXCLUDED_TABLES_DEFAULT) | set(settings.excluded_tables)
    return SchemaIntrospector(url, schema_name=settings.schema_name, excluded_tables=excluded)


def _backups_root(settings: SnapshotSettings) -> Path:
    return Path(settings.backups_dir) / BACKUPS_DIRNAME


def _parse_table_list(value: str | None) -> list[str]:
    if not value:
        return []
    return [t.strip() for t in value.split(",") if t.strip()]


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_connect(args: argparse.Namespace) -> int:
    """Async implementation for connect command.

    Returns:
        0 on success, 1 on failure.
    """
    previous_profile = read_profile_lock()

    console.print("Connecting to database...", style="dim")

    result = await connect_and_validate(
        profile_name=getattr(args, "profile", None),
        env_prefix=getattr(args, "env_prefix", ""),
        config_path=_config_path(args),
    )

    console.print()
    if not result.success:
        console.print(f"[bold red]x[/bold red] {result.error}")
        return 1

    console.print(
        f"[bold green]v[/bold green] Connected to profile: "
        f"[bold cyan]{result.profile_name}[/bold cyan]"
    )
    console.print(f"  Tables: {result.table_count}")

    if previous_profile and previous_profile != result.profile_name:
        console.print(
            f"\n[dim]Switched from[/dim] [bold]{previous_profile}[/bold] "
            f"[dim]to[/dim] [bold cyan]{result.profile_name}[/bold cyan]"
        )
    return 0


async def _async_list(args: argparse.Namespace) -> int:
    """Async implementation for list command."""
    target = _resolve_target(args)
    if target is None:
        return 1
    name, url = target
    settings = _load_settings(args)

    try:
        async with _make_introspector(url, settings) as introspector:
            sizes = await introspector.get_table_sizes()
    except _OPERATION_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not sizes:
        console.print(f"[dim]No tables found in schema '{settings.schema_name}'.[/dim]")
        return 0

    table = Table(title=f"Tables in {name} ({settings.schema_name})", show_header=True, header_style="bold")
    table.add_column("Table", style="cyan")
    table.add_column("Size", style="yellow", justify="right")
    for size in sizes:
        table.add_row(size.name, size.total_size)
    console.print(table)
    return 0


async def _async_schema(args: argparse.Namespace) -> int:
    """Async implementation for schema command."""
    target = _resolve_target(args)
    if target is None:
        return 1
    name, url = target
    settings = _load_settings(args)

    try:
        async with _make_introspector(url, settings) as introspector:
            snapshot = await create_snapshot(introspector, with_schema=True, data=False)
        output = Path(args.output) if args.output else get_dump_file_path(
            name, "schema", base_dir=Path(settings.backups_dir)
        )
        write_artifact(snapshot.artifact, output)
    except _OPERATION_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    console.print(snapshot.summary.format_report())
    console.print(f"\n[bold green]v[/bold green] Schema SQL generated at [cyan]{output}[/cyan]")
    return 1 if snapshot.summary.has_failures else 0


async def _async_dump(args: argparse.Namespace) -> int:
    """Async implementation for dump command."""
    target = _resolve_target(args)
    if target is None:
        return 1
    name, url = target
    settings = _load_settings(args)
    batch_size = args.batch_size or settings.batch_size

    adapter = AsyncPostgresAdapter(url)
    try:
        async with _make_introspector(url, settings) as introspector:
            snapshot = await create_snapshot(
                introspector,
                adapter,
                with_schema=args.with_schema,
                batch_size=batch_size,
            )
        output = Path(args.output) if args.output else get_dump_file_path(
            name, "dump", base_dir=Path(settings.backups_dir)
        )
        write_artifact(snapshot.artifact, output)
    except _OPERATION_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1
    finally:
        await adapter.close()

    console.print(snapshot.summary.format_report())
    console.print(f"\n[bold green]v[/bold green] Dump SQL generated at [cyan]{output}[/cyan]")
    return 1 if snapshot.summary.has_failures else 0


def _pick_restore_file(args: argparse.Namespace, settings: SnapshotSettings) -> Path | None:
    root = _backups_root(settings)
    if args.latest:
        path = latest_artifact(root)
        if path is None:
            console.print(f"[red]No dump file found in {root}[/red]")
        return path
    if not args.file:
        console.print("[red]Error: give a dump FILE or --latest (see --list)[/red]")
        return None
    path = Path(args.file)
    if not path.exists() and (root / args.file).exists():
        path = root / args.file
    if not path.exists():
        console.print(f"[red]Dump file not found: {args.file}[/red]")
        return None
    return path


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command."""
    settings = _load_settings(args)

    if args.list:
        root = _backups_root(settings)
        dumps = find_artifacts(root)
        if not dumps:
            console.print(f"[yellow]No dump file found in {root}[/yellow]")
            return 0
        for dump in dumps:
            console.print(f"  {dump}")
        return 0

    path = _pick_restore_file(args, settings)
    if path is None:
        return 1

    target = _resolve_target(args)
    if target is None:
        return 1
    name, url = target

    if not args.yes and not Confirm.ask(
        f"Import [cyan]{path}[/cyan] into [bold]{name}[/bold]?", console=console
    ):
        console.print("[yellow]Aborted.[/yellow]")
        return 1

    console.print(f"[dim]Importing file: {path}...[/dim]")
    adapter = AsyncPostgresAdapter(url)
    try:
        result = await replay_file(adapter, path)
    except ReplayStatementError as e:
        console.print("[bold red]x[/bold red] Import failed, nothing was applied.")
        console.print(f"  Error at: [red]{e.prefix}...[/red]")
        console.print(f"  {e.__cause__}")
        return 1
    except (ValueError, *_OPERATION_ERRORS) as e:
        console.print(f"[bold red]x[/bold red] Import failed: {e}")
        return 1
    finally:
        await adapter.close()

    console.print(
        f"[bold green]v[/bold green] Dump successfully imported "
        f"({result.statement_count} statements)"
    )
    return 0


async def _async_drop(args: argparse.Namespace) -> int:
    """Async implementation for drop command.

    Without ``--confirm`` only the plan is shown.
    """
    target = _resolve_target(args)
    if target is None:
        return 1
    name, url = target
    settings = _load_settings(args)

    try:
        async with _make_introspector(url, settings) as introspector:
            catalog = await introspector.introspect()
    except _OPERATION_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    if not args.confirm:
        plan = plan_drop(build_table_graph(catalog.tables), catalog.table_names, catalog.enums)
        console.print(f"[bold]Drop plan for {name}[/bold] ({len(plan.order)} tables):")
        if plan.cycle_fallback:
            console.print(
                f"[yellow]Cycle detected ({' -> '.join(plan.cycle)}); "
                f"all tables will be dropped with CASCADE[/yellow]"
            )
        for statement in plan.statements:
            console.print(f"  {statement}")
        console.print("\n[dim]Run with[/dim] [cyan]--confirm[/cyan] [dim]to apply.[/dim]")
        return 0

    adapter = AsyncPostgresAdapter(url)
    try:
        plan = await drop_all(adapter, catalog)
    except _OPERATION_ERRORS as e:
        console.print(f"[bold red]x[/bold red] Drop failed: {e}")
        return 1
    finally:
        await adapter.close()

    how = "with CASCADE (order ignored)" if plan.cycle_fallback else "in dependency order"
    console.print(
        f"[bold green]v[/bold green] Removed {len(plan.order)} tables {how} "
        f"and {len(catalog.enums)} types"
    )
    return 0


async def _async_truncate(args: argparse.Namespace) -> int:
    """Async implementation for truncate command.

    Without ``--confirm`` only the selection is shown.
    """
    target = _resolve_target(args)
    if target is None:
        return 1
    _, url = target
    settings = _load_settings(args)

    try:
        async with _make_introspector(url, settings) as introspector:
            available = await introspector.get_table_names()
    except _OPERATION_ERRORS as e:
        console.print(f"[red]Error: {e}[/red]")
        return 1

    tables = available if args.all else _parse_table_list(args.tables)
    if not tables:
        console.print("[yellow]No table selected.[/yellow]")
        return 1

    unknown = sorted(set(tables) - set(available))
    if unknown:
        console.print(f"[red]Unknown tables: {', '.join(unknown)}[/red]")
        return 1

    if not args.confirm:
        console.print(f"Tables to truncate: [cyan]{', '.join(tables)}[/cyan]")
        console.print("\n[dim]Run with[/dim] [cyan]--confirm[/cyan] [dim]to apply.[/dim]")
        return 0

    adapter = AsyncPostgresAdapter(url)
    try:
        await truncate_tables(adapter, tables, available)
    except (ValueError, *_OPERATION_ERRORS) as e:
        console.print(f"[bold red]x[/bold red] Error during TRUNCATE: {e}")
        return 1
    finally:
        await adapter.close()

    console.print(f"[bold green]v[/bold green] Tables {', '.join(tables)} successfully truncated")
    return 0


# ============================================================================
# Command entry points
# ============================================================================


def cmd_connect(args: argparse.Namespace) -> int:
    """Test a profile's connection and make it the current profile.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_connect(args))


def cmd_status(args: argparse.Namespace) -> int:
    """Show current connection status.

    Reads only local files (lock file, db.toml, .env) -- no database calls.

    Returns:
        0 always (informational command).
    """
    profile = read_profile_lock()

    if not profile:
        console.print("[yellow]No current profile.[/yellow]")
        console.print("[dim]Run:[/dim] [cyan]db-snapshot connect --profile <name>[/cyan]")
        return 0

    table = Table(title="Connection Status", show_header=False)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    table.add_row("Current profile", f"[bold cyan]{profile}[/bold cyan]")
    table.add_row("Profile source", ".db-profile")

    profiles = load_profiles(_config_path(args))
    if profile in profiles:
        p = profiles[profile]
        table.add_row("Provider", p.provider)
        if p.description:
            table.add_row("Description", p.description)
    else:
        table.add_row("Warning", "[yellow]profile is no longer configured[/yellow]")

    console.print(table)
    return 0


def cmd_profiles(args: argparse.Namespace) -> int:
    """List available profiles from db.toml and .env.

    Returns:
        0 on success, 1 if no profile is configured anywhere.
    """
    profiles = load_profiles(_config_path(args))
    if not profiles:
        console.print("[red]No database connection found in db.toml or .env.[/red]")
        return 1

    current = read_profile_lock()

    table = Table(title="Database Profiles", show_header=True, header_style="bold")
    table.add_column("", width=2)
    table.add_column("Profile")
    table.add_column("Provider")
    table.add_column("Description")

    for name, profile in profiles.items():
        marker = "[bold green]*[/bold green]" if name == current else " "
        table.add_row(
            marker,
            f"[bold cyan]{name}[/bold cyan]" if name == current else name,
            profile.provider,
            profile.description or "",
        )

    console.print(table)

    if current:
        console.print("\n[bold green]*[/bold green] = current profile")
    return 0


def cmd_list(args: argparse.Namespace) -> int:
    """List tables with their total size."""
    return asyncio.run(_async_list(args))


def cmd_schema(args: argparse.Namespace) -> int:
    """Export the schema to a SQL file."""
    return asyncio.run(_async_schema(args))


def cmd_dump(args: argparse.Namespace) -> int:
    """Dump table data (and optionally the schema) to a SQL file."""
    return asyncio.run(_async_dump(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Replay a dump file in one transaction."""
    return asyncio.run(_async_restore(args))


def cmd_drop(args: argparse.Namespace) -> int:
    """Drop all tables and enum types."""
    return asyncio.run(_async_drop(args))


def cmd_truncate(args: argparse.Namespace) -> int:
    """Empty tables and reset their identity sequences."""
    return asyncio.run(_async_truncate(args))


# ============================================================================
# Main entry point
# ============================================================================


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with all subcommands."""
    parser = argparse.ArgumentParser(
        prog="db-snapshot",
        description="PostgreSQL snapshot, restore, and maintenance toolkit",
    )

    # Global options
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_DB_PROFILE)"
        ),
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to db.toml (default: ./db.toml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show debug logs",
    )

    # Options shared by every command that talks to a database
    target = argparse.ArgumentParser(add_help=False)
    target.add_argument(
        "--profile",
        "-p",
        default=None,
        help="Profile to use (default: current profile)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # connect command
    p_connect = subparsers.add_parser(
        "connect",
        parents=[target],
        help="Test a profile's connection and make it the current profile",
    )
    p_connect.set_defaults(func=cmd_connect)

    # status command
    p_status = subparsers.add_parser(
        "status",
        help="Show current connection status",
    )
    p_status.set_defaults(func=cmd_status)

    # profiles command
    p_profiles = subparsers.add_parser(
        "profiles",
        help="List available profiles",
    )
    p_profiles.set_defaults(func=cmd_profiles)

    # list command
    p_list = subparsers.add_parser(
        "list",
        parents=[target],
        help="List tables with their size",
    )
    p_list.set_defaults(func=cmd_list)

    # schema command
    p_schema = subparsers.add_parser(
        "schema",
        parents=[target],
        help="Export the schema to a SQL file",
    )
    p_schema.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output file (default: backups/<db>/schema-DD-MM-YYYY-<ms>.sql)",
    )
    p_schema.set_defaults(func=cmd_schema)

    # dump command
    p_dump = subparsers.add_parser(
        "dump",
        parents=[target],
        help="Dump table data to a SQL file",
    )
    p_dump.add_argument(
        "--with-schema",
        action="store_true",
        help="Include types, sequences, tables, FKs and indexes before the data",
    )
    p_dump.add_argument(
        "--output",
        "-o",
        default=None,
        help="Output file (default: backups/<db>/dump-DD-MM-YYYY-<ms>.sql)",
    )
    p_dump.add_argument(
        "--batch-size",
        type=int,
        default=None,
        help="Maximum rows per INSERT statement (default: from db.toml, else 1000)",
    )
    p_dump.set_defaults(func=cmd_dump)

    # restore command
    p_restore = subparsers.add_parser(
        "restore",
        parents=[target],
        help="Replay a dump file in one transaction",
    )
    p_restore.add_argument(
        "file",
        nargs="?",
        default=None,
        help="Dump file (path, or path relative to backups/)",
    )
    p_restore.add_argument(
        "--latest",
        action="store_true",
        help="Use the most recent dump file in backups/",
    )
    p_restore.add_argument(
        "--list",
        action="store_true",
        help="List dump files in backups/ and exit",
    )
    p_restore.add_argument(
        "--yes",
        "-y",
        action="store_true",
        help="Do not ask for confirmation",
    )
    p_restore.set_defaults(func=cmd_restore)

    # drop command
    p_drop = subparsers.add_parser(
        "drop",
        parents=[target],
        help="Drop all tables and enum types",
    )
    p_drop.add_argument(
        "--confirm",
        action="store_true",
        help="Actually drop (otherwise only the plan is shown)",
    )
    p_drop.set_defaults(func=cmd_drop)

    # truncate command
    p_truncate = subparsers.add_parser(
        "truncate",
        parents=[target],
        help="Empty tables and reset their identity sequences",
    )
    selection = p_truncate.add_mutually_exclusive_group(required=True)
    selection.add_argument(
        "--tables",
        help="Comma-separated list of tables (e.g., orders,order_items)",
    )
    selection.add_argument(
        "--all",
        action="store_true",
        help="Truncate every table",
    )
    p_truncate.add_argument(
        "--confirm",
        action="store_true",
        help="Actually truncate (otherwise only the selection is shown)",
    )
    p_truncate.set_defaults(func=cmd_truncate)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, non-zero for errors).
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return args.func(args)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted.[/yellow]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
