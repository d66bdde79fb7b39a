# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Executor - Run a StepGraph against validated inputs.

Walks steps in topological order, one at a time:
- dependency Skipped/Failed and condition not failure-tolerant → Skipped
- condition false → Skipped (the backend is never called)
- otherwise render the command, call the backend, record the outcome

Command failures are recorded, never retried and never raised.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from cirun.backends import CommandBackend
from cirun.errors import StepExecutionError
from cirun.event_client import STEP_FINISHED, EventClient
from cirun.expressions import (
    ExpressionError,
    evaluate_condition,
    render_template,
    status_functions,
)
from cirun.graph import StepGraph, StepNode
from cirun.schemas import StepStatus
from cirun.state import ExecutionState


logger = logging.getLogger(__name__)

# Step status → the outcome word used in conditions (steps.build.outcome == 'failure')
OUTCOME_WORDS = {
    StepStatus.PENDING: "pending",
    StepStatus.RUNNING: "running",
    StepStatus.SKIPPED: "skipped",
    StepStatus.SUCCEEDED: "success",
    StepStatus.FAILED: "failure",
}


def dry_run_placeholder(step: str, output: str) -> str:
    """Value recorded for a declared output when the step was only dry-run."""
    return f"<dry-run:{step}.{output}>"


# =============================================================================
# Expression context
# =============================================================================

def _build_context(node: StepNode, inputs: Mapping[str, Any], state: ExecutionState) -> Dict[str, Any]:
    """
    Build the namespaces a step's condition and templates see.

    Only the step's own dependencies are visible under `steps`.
    """
    steps = {}
    for dependency in node.needs:
        status = state.status(dependency)
        steps[dependency] = {
            "status": status.value,
            "outcome": OUTCOME_WORDS[status],
            "outputs": state.outputs(dependency),
        }
    context: Dict[str, Any] = {"inputs": dict(inputs), "steps": steps}
    context.update(status_functions(
        (state.status(d).value for d in node.needs),
        (state.status(u).value for u in node.upstream),
    ))
    return context


# =============================================================================
# Step Execution
# =============================================================================

def _run_step(
    node: StepNode,
    inputs: Mapping[str, Any],
    backend: CommandBackend,
    state: ExecutionState,
) -> None:
    """Run one step and record its outcome in state."""
    spec = node.spec

    blocked = [
        dependency for dependency in node.needs
        if state.status(dependency) in (StepStatus.SKIPPED, StepStatus.FAILED)
    ]
    if blocked and not node.tolerates_failure:
        reason = f"dependency did not succeed: {', '.join(blocked)}"
        logger.info(f"Skipping step '{spec.name}' ({reason})")
        state.mark_skipped(spec.name, reason)
        return

    context = _build_context(node, inputs, state)

    try:
        should_run = evaluate_condition(spec.condition, context)
    except ExpressionError as e:
        logger.error(f"Step '{spec.name}': {e}")
        state.mark_failed(spec.name, error=str(e))
        return

    if not should_run:
        reason = f"condition is false: {spec.condition}"
        logger.info(f"Skipping step '{spec.name}' ({reason})")
        state.mark_skipped(spec.name, reason)
        return

    try:
        command = render_template(spec.run, context)
        env = {key: render_template(value, context) for key, value in spec.env}
    except ExpressionError as e:
        logger.error(f"Step '{spec.name}': {e}")
        state.mark_failed(spec.name, error=str(e))
        return

    logger.info(f"Running step '{spec.name}'")
    state.mark_running(spec.name)

    try:
        result = backend.execute(command, dict(inputs), env=env, timeout_s=spec.timeout_s)
    except Exception as e:
        logger.error(f"Step '{spec.name}' backend error: {e}")
        state.mark_failed(spec.name, error=f"{type(e).__name__}: {e}")
        return

    if result.exit_code != 0:
        error = StepExecutionError(spec.name, result.exit_code)
        logger.error(str(error))
        state.mark_failed(spec.name, exit_code=result.exit_code, error=str(error))
        return

    undeclared = sorted(set(result.outputs) - set(spec.outputs))
    if undeclared:
        logger.warning(f"Step '{spec.name}' emitted undeclared outputs (ignored): {', '.join(undeclared)}")
    outputs = {name: result.outputs[name] for name in spec.outputs if name in result.outputs}
    if result.dry_run:
        # Placeholders let dependents render and required outputs resolve
        for name in spec.outputs:
            outputs.setdefault(name, dry_run_placeholder(spec.name, name))
    state.mark_succeeded(spec.name, outputs)


def execute(
    graph: StepGraph,
    inputs: Mapping[str, Any],
    backend: CommandBackend,
    state: Optional[ExecutionState] = None,
    events: Optional[EventClient] = None,
    run_id: Optional[str] = None,
) -> ExecutionState:
    """
    Execute a pipeline's steps.

    Args:
        graph: Step graph from build_graph()
        inputs: Validated input mapping from validate_inputs()
        backend: Command backend that runs rendered commands
        state: Fresh ExecutionState to fill (created if omitted); passing one in
            lets the caller inspect partial progress
        events: Optional event log for step.finished events
        run_id: Correlation ID for events

    Returns:
        The ExecutionState with a final status for every step reached.
        On KeyboardInterrupt the running step is marked Failed, later steps
        stay Pending and state.interrupted is set.
    """
    if state is None:
        state = ExecutionState(graph.order)

    for node in graph:
        try:
            _run_step(node, inputs, backend, state)
        except KeyboardInterrupt:
            logger.warning(f"Interrupted during step '{node.name}'")
            if not state.status(node.name).is_terminal:
                state.mark_failed(node.name, error="interrupted")
            state.interrupted = True
            break
        finally:
            if events is not None and state.status(node.name).is_terminal:
                outcome = state.outcome(node.name)
                events.log_event(
                    event_type=STEP_FINISHED,
                    correlation_id=run_id or "",
                    status=outcome.status.value,
                    payload={"step": node.name, "exit_code": outcome.exit_code},
                    error_message=outcome.error,
                )

    return state


def failure_reason(graph: StepGraph, state: ExecutionState) -> Optional[StepExecutionError]:
    """
    The run's failure reason: the first Failed step not marked continue_on_error.

    Returns:
        StepExecutionError carrying that step's name and exit code, or None
    """
    for node in graph:
        outcome = state.outcome(node.name)
        if outcome.status is StepStatus.FAILED and not node.spec.continue_on_error:
            return StepExecutionError(node.name, outcome.exit_code, outcome.error)
    return None
