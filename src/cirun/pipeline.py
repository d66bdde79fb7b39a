# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Pipeline runner - build → validate → execute → aggregate.

run_pipeline() never raises cirun errors: definition, validation, step and
output errors all come back inside the RunRecord, together with a status for
every step.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from cirun.aggregator import aggregate_outputs
from cirun.backends import CommandBackend
from cirun.errors import DefinitionError, MissingOutputError, ValidationError
from cirun.event_client import RUN_FINISHED, RUN_STARTED, EventClient
from cirun.executor import execute, failure_reason
from cirun.graph import build_graph
from cirun.schemas import PipelineDefinition, RunRecord, RunStatus
from cirun.state import ExecutionState, StateError
from cirun.validator import validate_inputs


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


def _finish(record: RunRecord, events: Optional[EventClient]) -> RunRecord:
    record.completed_at = _utcnow()
    if events is not None:
        events.log_event(
            event_type=RUN_FINISHED,
            correlation_id=record.run_id,
            status=record.status.value,
            payload={
                "pipeline": record.pipeline,
                "failed_step": record.failed_step,
                "exit_code": record.exit_code,
            },
            error_message=str(record.error) if record.error else None,
        )
    return record


def run_pipeline(
    definition: PipelineDefinition,
    raw_inputs: Optional[Mapping[str, Any]],
    backend: CommandBackend,
    events: Optional[EventClient] = None,
    state: Optional[ExecutionState] = None,
) -> RunRecord:
    """
    Run a pipeline end to end.

    Args:
        definition: Loaded pipeline definition
        raw_inputs: Raw input values (strings from the CLI are coerced)
        backend: Command backend that runs each step
        events: Optional JSONL event log
        state: Optional ExecutionState, for callers that want to watch
            progress or inspect it after an interruption; it must be fresh
            (one pending entry per step), otherwise the run is INVALID

    Returns:
        RunRecord with status:
        - INVALID: DefinitionError, ValidationError or StateError, no step ran
        - FAILED: a step failed (failed_step/exit_code set) or a required
          output is missing (MissingOutputError)
        - INTERRUPTED: KeyboardInterrupt during a step
        - SUCCEEDED: otherwise
    """
    run_id = str(uuid.uuid4())
    record = RunRecord(
        run_id=run_id,
        pipeline=definition.name,
        status=RunStatus.INVALID,
        started_at=_utcnow(),
    )
    step_names = [step.name for step in definition.steps]
    if state is None:
        state = ExecutionState(step_names)
    elif not state.is_fresh_for(step_names):
        record.error = StateError(
            f"Pipeline '{definition.name}' needs a fresh ExecutionState with every step pending"
        )
        logger.error(str(record.error))
        record.outcomes = ExecutionState(step_names).outcomes()
        return _finish(record, events)

    try:
        graph = build_graph(definition)
        inputs = validate_inputs(definition.inputs, raw_inputs)
    except (DefinitionError, ValidationError) as e:
        logger.error(f"Pipeline '{definition.name}' rejected: {e}")
        record.error = e
        record.outcomes = state.outcomes()
        return _finish(record, events)

    logger.info(f"Running pipeline '{definition.name}' ({len(graph)} steps, run {run_id})")
    if events is not None:
        events.log_event(
            event_type=RUN_STARTED,
            correlation_id=run_id,
            status="running",
            payload={"pipeline": definition.name, "steps": list(graph.order)},
        )

    execute(graph, inputs, backend, state=state, events=events, run_id=run_id)
    record.outcomes = state.outcomes()

    failure = failure_reason(graph, state)
    if failure is not None:
        record.failed_step = failure.step
        record.exit_code = failure.exit_code
        record.error = failure

    if state.interrupted:
        record.status = RunStatus.INTERRUPTED
        record.outputs = aggregate_outputs(definition, state, strict=False)
    elif failure is not None:
        record.status = RunStatus.FAILED
        record.outputs = aggregate_outputs(definition, state, strict=False)
    else:
        try:
            record.outputs = aggregate_outputs(definition, state)
            record.status = RunStatus.SUCCEEDED
        except MissingOutputError as e:
            record.status = RunStatus.FAILED
            record.error = e
            record.outputs = aggregate_outputs(definition, state, strict=False)

    logger.info(f"Pipeline '{definition.name}' {record.status.value}")
    return _finish(record, events)
