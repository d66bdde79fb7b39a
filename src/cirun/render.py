# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Render a RunRecord for the terminal.

text: aggregated outputs as key=value lines on stdout, step report on stderr
json: the whole record as one JSON document on stdout
"""

import json
from typing import Any, Dict, List

import typer

from cirun.schemas import RunRecord, StepOutcome, StepStatus


STATUS_MARKS = {
    StepStatus.SUCCEEDED: "ok",
    StepStatus.FAILED: "FAILED",
    StepStatus.SKIPPED: "skipped",
    StepStatus.RUNNING: "running",
    StepStatus.PENDING: "pending",
}


def format_output_value(value: Any) -> str:
    """Format an output value for a key=value line.

    Multi-line values are JSON-quoted so each output stays on one line.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    text = "" if value is None else str(value)
    if "\n" in text:
        return json.dumps(text)
    return text


def format_outputs(outputs: Dict[str, Any]) -> List[str]:
    return [f"{key}={format_output_value(value)}" for key, value in outputs.items()]


def _describe(outcome: StepOutcome) -> str:
    line = f"  {outcome.step}: {STATUS_MARKS[outcome.status]}"
    if outcome.exit_code not in (None, 0):
        line += f" (exit {outcome.exit_code})"
    if outcome.status is StepStatus.SKIPPED and outcome.reason:
        line += f" - {outcome.reason}"
    elif outcome.status is StepStatus.FAILED and outcome.error:
        line += f" - {outcome.error}"
    return line


def format_report(record: RunRecord) -> List[str]:
    """Per-step status report lines."""
    lines = [f"Pipeline: {record.pipeline}", f"Run ID: {record.run_id}", f"Status: {record.status.value}"]
    if record.failed_step and record.exit_code is not None:
        lines.append(f"Failed step: {record.failed_step} (exit {record.exit_code})")
    elif record.failed_step:
        lines.append(f"Failed step: {record.failed_step} ({record.error})")
    elif record.error is not None:
        lines.append(f"Error: {record.error}")
    lines.append("Steps:")
    lines.extend(_describe(outcome) for outcome in record.outcomes)
    return lines


def render_run_record(record: RunRecord, format_type: str = "text") -> None:
    """Render a RunRecord to stdout/stderr."""
    if format_type == "json":
        typer.echo(json.dumps(record.to_dict(), indent=2))
        return

    for line in format_report(record):
        typer.echo(line, err=True)
    for line in format_outputs(record.outputs):
        typer.echo(line)
