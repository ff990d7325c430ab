# Copyright © 2025 Sierra Labs LLC
# SPDX-License-Identifier: AGPL-3.0-only
# License-Filename: LICENSE

"""
Main CLI entry point for the HostScan worker.
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Any, List, Tuple

import click
import yaml
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from .. import __version__
from ..config import Config
from ..processing.database.duckdb_store import DuckDBStore
from ..processing.decomposer import decompose
from ..processing.envelope import describe, resolve
from ..processing.server import create_job_queue, create_redis_client, serve, setup_logging
from .examples import example_jobs

# Create console for rich output
console = Console()

pass_config = click.make_pass_decorator(Config)


def _load_jobs(paths: Tuple[str, ...]) -> List[Any]:
    """Read jobs from JSON files; a top-level array holds several jobs."""
    jobs: List[Any] = []
    for path in paths:
        data = json.loads(Path(path).read_text())
        if isinstance(data, list):
            jobs.extend(data)
        else:
            jobs.append(data)
    return jobs


@click.group(invoke_without_command=True)
@click.version_option(version=__version__, prog_name="hostscan")
@click.option(
    "--config", "config_path",
    envvar="HOSTSCAN_CONFIG",
    type=click.Path(dir_okay=False),
    help="Path to config.yaml"
)
@click.option(
    "--debug",
    envvar="HOSTSCAN_DEBUG",
    is_flag=True,
    help="Enable debug logging"
)
@click.pass_context
def cli(ctx, config_path: str, debug: bool):
    """
    HostScan - host telemetry scan ingestion.

    Consumes scan jobs from Redis Streams and writes them to DuckDB
    analytics tables.

    Examples:
        hostscan serve --concurrency 20
        hostscan enqueue --examples
        hostscan counts
    """
    config = Config(config_path=Path(config_path) if config_path else None)
    if debug:
        config.logging.level = "DEBUG"
    ctx.obj = config

    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command("serve")
@click.option("--concurrency", "-c", type=int, help="Jobs processed at once")
@click.option("--log-every", type=int, help="Jobs between throughput log lines")
@pass_config
def serve_command(config: Config, concurrency: int, log_every: int):
    """Run the ingestion worker until interrupted."""
    if concurrency is not None:
        config.worker.concurrency = concurrency
    if log_every is not None:
        config.worker.log_every = log_every

    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]Configuration error:[/red] {error}")
        sys.exit(2)

    setup_logging(config.logging.level)
    asyncio.run(serve(config))


@cli.command()
@click.argument("files", nargs=-1, type=click.Path(exists=True, dir_okay=False))
@click.option("--examples", is_flag=True, help="Enqueue the bundled example jobs")
@pass_config
def enqueue(config: Config, files: Tuple[str, ...], examples: bool):
    """Enqueue scan jobs from JSON files."""
    jobs = _load_jobs(files)
    if examples:
        jobs.extend(example_jobs())

    if not jobs:
        raise click.UsageError("Nothing to enqueue: pass JSON files or --examples")

    redis_client = create_redis_client(config)
    queue = create_job_queue(config, redis_client)

    async def push() -> List[str]:
        return [await queue.enqueue(job) for job in jobs]

    try:
        message_ids = asyncio.run(push())
    finally:
        redis_client.close()

    for message_id in message_ids:
        console.print(f"[green]✓[/green] Added job {message_id} to {queue.stream_name}")


@cli.command("init-db")
@pass_config
def init_db(config: Config):
    """Create the analytics tables."""
    store = DuckDBStore(config.store.resolved_path())
    try:
        store.connect()
    finally:
        store.close()
    console.print(f"[green]✓[/green] Schema ready in {store.database_path}")


@cli.command()
@pass_config
def counts(config: Config):
    """Show row counts per analytics table."""
    store = DuckDBStore(config.store.resolved_path())
    try:
        store.connect()
        table_counts = store.table_counts()
    finally:
        store.close()

    table = Table(title="Analytics tables")
    table.add_column("Table", style="cyan")
    table.add_column("Rows", justify="right")
    for name, count in table_counts.items():
        table.add_row(name, str(count))
    console.print(table)


@cli.command("config")
@click.option("--get", "key", help="Get specific configuration key (e.g. queue.stream)")
@click.option("--save", is_flag=True, help="Write the effective configuration to the config file")
@click.option("--validate", is_flag=True, help="Validate configuration")
@pass_config
def config_command(config: Config, key: str, save: bool, validate: bool):
    """
    Show the effective configuration.

    Examples:
        hostscan config                      # Show all settings
        hostscan config --get redis.host     # Get specific value
        hostscan config --save               # Write config.yaml
    """
    if key:
        value = config.get(key)
        if value is None:
            raise click.ClickException(f"Configuration key not found: {key}")
        console.print(f"{key}: {value}")
        return

    if validate:
        errors = config.validate()
        if errors:
            for error in errors:
                console.print(f"[red]Configuration error:[/red] {error}")
            sys.exit(2)
        console.print("[green]✓[/green] Configuration is valid")
        return

    if save:
        config.save_to_file()
        console.print(f"[green]✓[/green] Configuration saved to {config.config_path}")
        return

    text = yaml.dump(config.to_dict(), default_flow_style=False, sort_keys=False)
    console.print(Syntax(text, "yaml", theme="monokai"))


@cli.command("resolve")
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def resolve_command(file: str):
    """Resolve and decompose a job file without writing anything."""
    for job in _load_jobs((file,)):
        event = resolve(job)
        summary = describe(event)
        console.print(
            f"[bold]{summary['scan_type']}[/bold] scan for tenant {summary['tenant_id']} "
            f"host {summary['host_id']} at {summary['timestamp']}"
        )

        record_sets = decompose(event)
        if not record_sets:
            console.print("  [yellow]no tables (scan type has no rule)[/yellow]")
        for table_name, rows in record_sets.items():
            console.print(f"  {table_name}: {len(rows)} row(s)")


def main():
    """Main entry point for the CLI."""
    try:
        cli(standalone_mode=False)
    except click.exceptions.Abort:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except click.ClickException as e:
        e.show()
        sys.exit(e.exit_code)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        if os.environ.get("HOSTSCAN_DEBUG") or "--debug" in sys.argv:
            console.print_exception()
        else:
            console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
