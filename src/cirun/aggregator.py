# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Output Aggregator - collect declared pipeline outputs from a finished run."""

from typing import Any, Dict

from cirun.errors import MissingOutputError
from cirun.graph import resolve_output_sources
from cirun.schemas import PipelineDefinition
from cirun.state import ExecutionState


def aggregate_outputs(
    definition: PipelineDefinition,
    state: ExecutionState,
    strict: bool = True,
) -> Dict[str, Any]:
    """
    Flatten the declared outputs of a run into one mapping.

    An output whose producing step was Skipped or Failed (or did not emit it)
    is simply absent, unless the OutputSpec marks it required.
    With strict=False, required outputs are left absent as well; used to
    report partial outputs of a run that already failed.

    Raises:
        MissingOutputError: Listing every required output that is absent
    """
    sources = resolve_output_sources(definition)
    result: Dict[str, Any] = {}
    missing = []

    for spec in definition.outputs:
        step_name, output_name = sources[spec.name]
        produced = state.outputs(step_name) if step_name in state else {}
        if output_name in produced:
            result[spec.name] = produced[output_name]
        elif spec.required:
            missing.append(spec.name)

    if missing and strict:
        raise MissingOutputError(missing)
    return result
