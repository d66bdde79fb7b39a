"""
Configuration loading for cirun.

Config file (YAML), default location ~/.cirun/config.yaml:

    shell: /bin/bash
    timeout_s: 600
    working_dir: ~/src/app
    events_log: ~/.cirun/events.jsonl
    inherit_env: true
    env:
      CI: "true"

A missing default file yields the defaults; an explicitly named file must exist.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from cirun.backends import BackendConfig
from cirun.errors import CirunError


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("~/.cirun/config.yaml")

DEFAULTS: Dict[str, Any] = {
    "shell": "/bin/sh",
    "timeout_s": None,
    "working_dir": None,
    "events_log": None,
    "inherit_env": True,
    "env": {},
}


class ConfigError(CirunError):
    """Raised when the configuration file is invalid."""
    pass


def _check(config: Dict[str, Any], source: str) -> None:
    unknown = sorted(set(config) - set(DEFAULTS))
    if unknown:
        raise ConfigError(f"Unknown config keys in {source}: {', '.join(unknown)}")

    if not isinstance(config["shell"], str) or not config["shell"]:
        raise ConfigError(f"'shell' must be a non-empty string in {source}")

    timeout_s = config["timeout_s"]
    if timeout_s is not None and (isinstance(timeout_s, bool) or not isinstance(timeout_s, int) or timeout_s <= 0):
        raise ConfigError(f"'timeout_s' must be a positive integer in {source}, got: {timeout_s}")

    if not isinstance(config["inherit_env"], bool):
        raise ConfigError(f"'inherit_env' must be true or false in {source}")

    if not isinstance(config["env"], dict):
        raise ConfigError(f"'env' must be a mapping in {source}")


def load_config(config_path: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """
    Load configuration, merged over DEFAULTS.

    Args:
        config_path: Explicit config file; None uses ~/.cirun/config.yaml if present

    Returns:
        Config dict with every DEFAULTS key present

    Raises:
        FileNotFoundError: If an explicit config_path does not exist
        ConfigError: If the file is not valid YAML or has invalid values
    """
    if config_path is None:
        path = DEFAULT_CONFIG_PATH.expanduser()
        if not path.exists():
            logger.debug(f"No config file at {path}, using defaults")
            return dict(DEFAULTS, env={})
    else:
        path = Path(config_path).expanduser()
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}")
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a YAML mapping")

    config = dict(DEFAULTS, env={})
    config.update(data)
    _check(config, str(path))
    config["env"] = {str(k): str(v) for k, v in config["env"].items()}
    logger.debug(f"Loaded config from {path}")
    return config


def backend_config(config: Mapping[str, Any], environ: Mapping[str, str]) -> BackendConfig:
    """
    Build the explicit BackendConfig handed to command backends.

    Args:
        config: Loaded configuration
        environ: Parent process environment; only used when inherit_env is set
    """
    env: Dict[str, str] = dict(environ) if config.get("inherit_env", True) else {}
    env.update(config.get("env") or {})
    working_dir = config.get("working_dir")
    return BackendConfig(
        env=env,
        working_dir=Path(working_dir).expanduser() if working_dir else None,
        shell=config.get("shell") or DEFAULTS["shell"],
        timeout_s=config.get("timeout_s"),
    )
