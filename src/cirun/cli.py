# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Main CLI entry point for cirun.

Dumb trigger: parses args, loads the pipeline, runs it, renders the record.
Exit codes for `run`:
    0   success
    1   invalid pipeline, inputs or configuration
    2   step failure or missing required output
    130 interrupted
"""

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import typer

from cirun import __version__
from cirun.backends import ShellBackend
from cirun.config import ConfigError, backend_config, load_config
from cirun.errors import DefinitionError, ValidationError
from cirun.event_client import EventClient
from cirun.graph import build_graph
from cirun.loader import load_pipeline
from cirun.pipeline import run_pipeline
from cirun.render import render_run_record
from cirun.schemas import RunStatus
from cirun.validator import validate_inputs


EXIT_OK = 0
EXIT_INVALID = 1
EXIT_STEP_FAILED = 2
EXIT_INTERRUPTED = 130

EXIT_CODES = {
    RunStatus.SUCCEEDED: EXIT_OK,
    RunStatus.INVALID: EXIT_INVALID,
    RunStatus.FAILED: EXIT_STEP_FAILED,
    RunStatus.INTERRUPTED: EXIT_INTERRUPTED,
}

app = typer.Typer(
    name="cirun",
    help="Lightweight CI pipeline orchestrator",
    no_args_is_help=True,
)


def _parse_kv_args(args: Optional[List[str]]) -> Dict[str, str]:
    """Parse key=value arguments into a dict.

    Values stay strings; the input validator coerces them to declared types.
    """
    if not args:
        return {}
    result = {}
    for arg in args:
        if "=" not in arg:
            raise ValueError(f"expected key=value, got: {arg}")
        key, value = arg.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError(f"empty input name in: {arg}")
        result[key] = value
    return result


def _parse_inputs_or_exit(args: Optional[List[str]]) -> Dict[str, str]:
    try:
        return _parse_kv_args(args)
    except ValueError as e:
        typer.echo(f"Input error: {e}", err=True)
        raise typer.Exit(EXIT_INVALID)


def _load_config_or_exit(ctx: typer.Context) -> dict:
    config_path = (ctx.obj or {}).get("config_path")
    try:
        return load_config(config_path)
    except (FileNotFoundError, ConfigError) as e:
        typer.echo(f"Config error: {e}", err=True)
        raise typer.Exit(EXIT_INVALID)


def _load_pipeline_or_exit(pipeline_file: Path):
    try:
        return load_pipeline(pipeline_file)
    except DefinitionError as e:
        typer.echo(f"Definition error: {e}", err=True)
        raise typer.Exit(EXIT_INVALID)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", envvar="CIRUN_CONFIG", help="Path to config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Lightweight CI pipeline orchestrator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    ctx.obj = {"config_path": config_path, "verbose": verbose}


@app.command()
def run(
    ctx: typer.Context,
    pipeline_file: Path = typer.Argument(..., help="Pipeline YAML file"),
    inputs: Optional[List[str]] = typer.Option(None, "--input", "-i", help="key=value pipeline input (repeatable)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would run without executing"),
    format: str = typer.Option("text", "--format", "-f", help="Output format: text, json"),
    events_log: Optional[Path] = typer.Option(None, "--events-log", help="Append run events to this JSONL file"),
):
    """Run a pipeline with key=value inputs."""
    if format not in ("text", "json"):
        typer.echo(f"Error: unknown format: {format}", err=True)
        raise typer.Exit(EXIT_INVALID)

    raw_inputs = _parse_inputs_or_exit(inputs)
    config = _load_config_or_exit(ctx)
    definition = _load_pipeline_or_exit(pipeline_file)

    backend = ShellBackend(
        backend_config(config, os.environ),
        dry_run=dry_run,
        verbose=(ctx.obj or {}).get("verbose", False),
    )
    log_path = events_log or config.get("events_log")
    events = EventClient(Path(log_path)) if log_path else None

    record = run_pipeline(definition, raw_inputs, backend, events=events)
    render_run_record(record, format_type=format)
    raise typer.Exit(EXIT_CODES[record.status])


@app.command()
def validate(
    pipeline_file: Path = typer.Argument(..., help="Pipeline YAML file"),
    inputs: Optional[List[str]] = typer.Option(None, "--input", "-i", help="Also validate these key=value inputs"),
):
    """Check a pipeline definition (and optionally inputs) without running it."""
    definition = _load_pipeline_or_exit(pipeline_file)
    try:
        step_graph = build_graph(definition)
        if inputs:
            validate_inputs(definition.inputs, _parse_inputs_or_exit(inputs))
    except DefinitionError as e:
        typer.echo(f"Definition error: {e}", err=True)
        raise typer.Exit(EXIT_INVALID)
    except ValidationError as e:
        typer.echo("Validation error:", err=True)
        for field, message in e.problems:
            typer.echo(f"  {field}: {message}", err=True)
        raise typer.Exit(EXIT_INVALID)

    typer.echo(f"Pipeline '{definition.name}' is valid ({len(step_graph)} steps)")


@app.command()
def graph(
    pipeline_file: Path = typer.Argument(..., help="Pipeline YAML file"),
):
    """Print steps in execution order with their dependencies."""
    definition = _load_pipeline_or_exit(pipeline_file)
    try:
        step_graph = build_graph(definition)
    except DefinitionError as e:
        typer.echo(f"Definition error: {e}", err=True)
        raise typer.Exit(EXIT_INVALID)

    for node in step_graph:
        if node.needs:
            typer.echo(f"{node.name} <- {', '.join(node.needs)}")
        else:
            typer.echo(node.name)


@app.command()
def version():
    """Show version information."""
    typer.echo(f"cirun version {__version__}")


# Static commands
from cirun.commands import config as config_command

app.add_typer(config_command.app, name="config")


def main():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
