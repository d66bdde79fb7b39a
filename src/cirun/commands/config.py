# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Config command for cirun.

Provides basic configuration validation.
"""

from pathlib import Path
from typing import Optional

import typer

from cirun.config import DEFAULT_CONFIG_PATH, ConfigError, load_config

app = typer.Typer(help="Manage and validate configuration")


@app.command()
def validate(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to config file"),
):
    """
    Validate configuration file.

    Checks that the config file exists, is valid YAML and has valid values.
    """
    if config_path is None and ctx.obj:
        config_path = ctx.obj.get("config_path")

    typer.echo("Validating configuration...")
    typer.echo()

    try:
        config = load_config(config_path)
    except FileNotFoundError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    except ConfigError as e:
        typer.echo(f"Validation failed: {e}", err=True)
        raise typer.Exit(1)

    source = config_path or DEFAULT_CONFIG_PATH
    typer.echo(f"Configuration structure is valid ({source})")
    typer.echo()
    typer.echo(f"Shell: {config['shell']}")
    typer.echo(f"Timeout: {config['timeout_s'] or 'none'}")
    typer.echo(f"Inherit environment: {'yes' if config['inherit_env'] else 'no'}")
    if config["events_log"]:
        typer.echo(f"Events log: {config['events_log']}")
    if config["env"]:
        typer.echo(f"Extra env: {', '.join(sorted(config['env']))}")
    typer.echo()
    typer.echo("Configuration validation complete!")
