"""CLI commands for httpmitm."""

from __future__ import annotations

import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from httpmitm.config import MitmSettings, load_config
from httpmitm.testdata import DirectoryStore

EXIT_SUCCESS = 0
EXIT_FAILURE = 1


def setup_logging(verbose: bool, level: str = "WARNING") -> None:
    """Configure logging based on verbosity level."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level, logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def get_store(ctx: click.Context, directory: str | None) -> DirectoryStore:
    config: MitmSettings = ctx.obj["config"]
    return DirectoryStore(directory or config.testdata_dir)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """httpmitm - inspect recorded responses and settings."""
    ctx.ensure_object(dict)

    config_obj = load_config(config)
    ctx.obj["config"] = config_obj
    ctx.obj["verbose"] = verbose

    setup_logging(verbose, config_obj.log_level)


@cli.group()
def testdata() -> None:
    """Manage recorded responses."""


@testdata.command("list")
@click.option("--dir", "-d", "directory", type=click.Path(), help="Testdata directory")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def testdata_list(ctx: click.Context, directory: str | None, output_json: bool) -> None:
    """List recorded responses.

    \b
    Examples:
        httpmitm testdata list
        httpmitm testdata list --dir tests/testdata --json
    """
    store = get_store(ctx, directory)
    keys = store.keys()

    if output_json:
        data = [
            {"key": key, "file": store.path_for(key).name, "size": len(store.read(key))}
            for key in keys
        ]
        click.echo(json.dumps(data, indent=2))
        return

    console = Console()
    if not keys:
        console.print(f"[yellow]No recorded responses in {store.directory}[/yellow]")
        return

    table = Table(title=f"Recorded responses ({store.directory})")
    table.add_column("Key", style="cyan")
    table.add_column("File")
    table.add_column("Size", justify="right")

    for key in keys:
        table.add_row(key, store.path_for(key).name, str(len(store.read(key))))

    console.print(table)


@testdata.command("show")
@click.argument("key")
@click.option("--dir", "-d", "directory", type=click.Path(), help="Testdata directory")
@click.pass_context
def testdata_show(ctx: click.Context, key: str, directory: str | None) -> None:
    """Print the recorded body of KEY, e.g. "GET /users"."""
    store = get_store(ctx, directory)
    try:
        data = store.read(key)
    except KeyError:
        click.echo(f"No recorded response for: {key}", err=True)
        sys.exit(EXIT_FAILURE)

    click.echo(data.decode("utf-8", errors="replace"))


@testdata.command("clear")
@click.argument("key", required=False)
@click.option("--dir", "-d", "directory", type=click.Path(), help="Testdata directory")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def testdata_clear(ctx: click.Context, key: str | None, directory: str | None, yes: bool) -> None:
    """Delete the recording of KEY, or every recording."""
    store = get_store(ctx, directory)

    if key is not None:
        if not store.delete(key):
            click.echo(f"No recorded response for: {key}", err=True)
            sys.exit(EXIT_FAILURE)
        click.echo(f"Deleted {key}")
        return

    if not yes:
        click.confirm(f"Delete every recording in {store.directory}?", abort=True)

    removed = store.clear()
    click.echo(f"Deleted {removed} recording(s)")


@cli.command("config")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
@click.pass_context
def show_config(ctx: click.Context, output_json: bool) -> None:
    """Show the effective settings."""
    config: MitmSettings = ctx.obj["config"]
    data = config.model_dump()

    if output_json:
        click.echo(json.dumps(data, indent=2))
        return

    table = Table(title="httpmitm settings")
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    for name, value in data.items():
        table.add_row(name, str(value))
    Console().print(table)
