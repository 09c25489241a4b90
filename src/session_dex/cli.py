"""Command line entry point.

Runs the ingestion pipeline by hand:
    session-dex sources
    session-dex ingest --source codex --output conversations.jsonl
"""

import json
import sys
from pathlib import Path

import click

from session_dex.config import Config, build_adapters, load_config
from session_dex.logging import setup_logging
from session_dex.models import SOURCE_DISPLAY_NAMES, Source
from session_dex.processor.pipeline import ingest_all


def _load(config_path: Path | None) -> Config:
    try:
        return load_config(config_path)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False, exists=True),
    help="Path to a session-dex YAML config file",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """Index coding assistant session histories."""
    config = _load(config_path)
    setup_logging("pipeline", config.log_dir, config.log_level_value)
    setup_logging("parsers", config.log_dir, config.log_level_value, console=False)
    ctx.obj = config


@cli.command()
@click.option("--verbose", "-v", is_flag=True, help="List every discovered location")
@click.pass_obj
def sources(config: Config, verbose: bool) -> None:
    """Show which session stores exist on this machine."""
    for adapter in build_adapters(config):
        name = SOURCE_DISPLAY_NAMES[adapter.source]
        if not adapter.detect():
            click.echo(f"{name}: not found")
            continue

        locations = adapter.discover()
        click.echo(f"{name}: {len(locations)} locations")
        if verbose:
            for location in locations:
                click.echo(f"  {location.workspace_path}  {location.db_path}")


@cli.command()
@click.option(
    "--source",
    "source_tag",
    type=click.Choice([s.value for s in Source]),
    help="Only ingest this source",
)
@click.option(
    "--output",
    "-o",
    type=click.File("w", encoding="utf-8", lazy=False),
    default="-",
    help="JSON Lines output file (defaults to stdout)",
)
@click.pass_obj
def ingest(config: Config, source_tag: str | None, output) -> None:
    """Normalize all sessions and write one JSON document per conversation."""
    adapters = build_adapters(config)
    if source_tag:
        adapters = [a for a in adapters if a.source == Source(source_tag)]
        if not adapters:
            raise click.ClickException(f"Source is disabled in config: {source_tag}")

    report = ingest_all(adapters)

    for conversation in report.conversations:
        output.write(json.dumps(conversation.to_dict()) + "\n")

    for source, result in report.results.items():
        name = SOURCE_DISPLAY_NAMES[source]
        if result.detected:
            click.echo(f"{name}: {len(result.conversations)} conversations", err=True)
        else:
            click.echo(f"{name}: not found", err=True)

    for source, error in report.errors.items():
        click.echo(f"{SOURCE_DISPLAY_NAMES[source]}: error: {error}", err=True)

    if report.errors:
        sys.exit(1)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
