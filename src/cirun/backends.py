"""
Command backends for cirun.

The executor treats a backend as an opaque boundary: it hands over a rendered
command and the validated inputs, and gets back an exit code and captured
outputs. Everything a backend needs (environment, working directory, shell)
arrives through an explicit BackendConfig; nothing is read from the ambient
process environment here.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

import logging
import os
import re
import subprocess
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Protocol

from cirun.schemas import DEFAULT_TIMEOUT_S


# Exit code reported when a command exceeds its timeout (matches coreutils `timeout`)
TIMEOUT_EXIT_CODE = 124

OUTPUT_FILE_VAR = "CIRUN_OUTPUT"
INPUT_VAR_PREFIX = "CIRUN_INPUT_"

_HEREDOC_START = re.compile(r"^([A-Za-z_][A-Za-z0-9_-]*)<<(\S+)$")


@dataclass(frozen=True)
class BackendConfig:
    """Explicit execution settings handed to a backend."""
    env: Mapping[str, str] = field(default_factory=dict)
    working_dir: Optional[Path] = None
    shell: str = "/bin/sh"
    timeout_s: Optional[int] = None


@dataclass
class CommandResult:
    """What a backend reports back for one command."""
    exit_code: int
    outputs: Dict[str, str] = field(default_factory=dict)
    stdout: str = ""
    stderr: str = ""
    # Set when nothing actually ran
    dry_run: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class CommandBackend(Protocol):
    """Command invocation interface."""

    def execute(
        self,
        command: str,
        rendered_inputs: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
        timeout_s: Optional[int] = None,
    ) -> CommandResult:
        ...


def parse_output_file(text: str) -> Dict[str, str]:
    """
    Parse step outputs written by a command.

    Supports single-line and multi-line (heredoc) forms:

        image=registry/app:1.2.3
        notes<<EOF
        line one
        line two
        EOF

    Raises:
        ValueError: If a heredoc is not terminated or a line is malformed
    """
    outputs: Dict[str, str] = {}
    lines = text.splitlines()
    i = 0
    while i < len(lines):
        line = lines[i]
        i += 1
        if not line.strip():
            continue

        heredoc = _HEREDOC_START.match(line)
        if heredoc:
            key, delimiter = heredoc.groups()
            body = []
            while i < len(lines) and lines[i] != delimiter:
                body.append(lines[i])
                i += 1
            if i >= len(lines):
                raise ValueError(f"Unterminated output '{key}': missing delimiter {delimiter}")
            i += 1  # skip delimiter
            outputs[key] = "\n".join(body)
            continue

        if "=" not in line:
            raise ValueError(f"Malformed output line (expected key=value): {line!r}")
        key, value = line.split("=", 1)
        outputs[key.strip()] = value
    return outputs


def input_env(rendered_inputs: Mapping[str, Any]) -> Dict[str, str]:
    """Expose inputs as CIRUN_INPUT_<NAME> variables."""
    env = {}
    for name, value in rendered_inputs.items():
        if value is None:
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        key = INPUT_VAR_PREFIX + re.sub(r"[^A-Za-z0-9_]", "_", name).upper()
        env[key] = str(value)
    return env


class ShellBackend:
    """Runs step commands through a shell subprocess."""

    def __init__(self, config: Optional[BackendConfig] = None, dry_run: bool = False, verbose: bool = False):
        """
        Initialize shell backend.

        Args:
            config: Explicit environment, working directory, shell and timeout
            dry_run: If True, only log what would be executed
            verbose: Log command stdout at debug level
        """
        self.config = config or BackendConfig()
        self.dry_run = dry_run
        self.verbose = verbose
        self.logger = logging.getLogger(__name__)

    def _build_env(
        self,
        rendered_inputs: Mapping[str, Any],
        step_env: Optional[Mapping[str, str]],
        output_path: Path,
    ) -> Dict[str, str]:
        env = dict(self.config.env)
        env.update(input_env(rendered_inputs))
        env.update(step_env or {})
        env[OUTPUT_FILE_VAR] = str(output_path)
        return env

    def execute(
        self,
        command: str,
        rendered_inputs: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
        timeout_s: Optional[int] = None,
    ) -> CommandResult:
        """
        Execute a rendered command.

        Args:
            command: Rendered shell command
            rendered_inputs: Validated pipeline inputs
            env: Step-level environment variables
            timeout_s: Timeout in seconds (falls back to config.timeout_s, then DEFAULT_TIMEOUT_S)

        Returns:
            CommandResult; outputs are read from the file named by $CIRUN_OUTPUT
        """
        if self.dry_run:
            self.logger.info("[DRY RUN] Would execute:")
            self.logger.info(f"  {command}")
            return CommandResult(exit_code=0, dry_run=True)

        if len(command) > 100:
            log_msg = f"Executing: {command[:100]}..."
        else:
            log_msg = f"Executing: {command}"
        self.logger.info(log_msg)

        timeout = timeout_s or self.config.timeout_s or DEFAULT_TIMEOUT_S
        fd, output_name = tempfile.mkstemp(prefix="cirun-output-", suffix=".txt")
        os.close(fd)
        output_path = Path(output_name)

        try:
            try:
                result = subprocess.run(
                    command,
                    shell=True,
                    executable=self.config.shell,
                    env=self._build_env(rendered_inputs, env, output_path),
                    cwd=str(self.config.working_dir) if self.config.working_dir else None,
                    capture_output=True,
                    text=True,
                    timeout=timeout,
                )
            except subprocess.TimeoutExpired as e:
                self.logger.error(f"Command timed out after {timeout}s")
                return CommandResult(
                    exit_code=TIMEOUT_EXIT_CODE,
                    stdout=_as_text(e.stdout),
                    stderr=_as_text(e.stderr) + f"\ncommand timed out after {timeout}s",
                )

            if self.verbose and result.stdout:
                self.logger.debug(f"STDOUT:\n{result.stdout}")
            if result.stderr:
                self.logger.warning(f"STDERR:\n{result.stderr}")

            if result.returncode != 0:
                self.logger.error(f"Command failed with exit code {result.returncode}")
                return CommandResult(
                    exit_code=result.returncode,
                    stdout=result.stdout,
                    stderr=result.stderr,
                )

            outputs = parse_output_file(output_path.read_text())
            return CommandResult(
                exit_code=0,
                outputs=outputs,
                stdout=result.stdout,
                stderr=result.stderr,
            )
        finally:
            output_path.unlink(missing_ok=True)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode(errors="replace")
    return value
