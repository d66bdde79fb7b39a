"""Execution state for a single pipeline run.

Created fresh per run, mutated only by the executor, discarded once the run's
outputs are aggregated. Every step always has a last known status, so a caller
can inspect partial progress after an interruption.

Copyright 2025 Ben Mensi
Licensed under the Apache License, Version 2.0
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from cirun.errors import CirunError
from cirun.schemas import StepOutcome, StepStatus


def _utcnow() -> datetime:
    """Return current UTC time."""
    return datetime.now(timezone.utc)


class StateError(CirunError):
    """Raised when an ExecutionState cannot be used for a run."""
    pass


class InvalidTransitionError(StateError):
    """Raised when a step is moved to a status its current status forbids."""
    pass


# Allowed status transitions
_TRANSITIONS = {
    StepStatus.PENDING: {StepStatus.RUNNING, StepStatus.SKIPPED, StepStatus.FAILED},
    StepStatus.RUNNING: {StepStatus.SUCCEEDED, StepStatus.FAILED},
    StepStatus.SKIPPED: set(),
    StepStatus.SUCCEEDED: set(),
    StepStatus.FAILED: set(),
}


class ExecutionState:
    """Per-run table of step name → StepOutcome."""

    def __init__(self, step_names: Iterable[str]):
        self._outcomes: Dict[str, StepOutcome] = {
            name: StepOutcome(step=name, status=StepStatus.PENDING) for name in step_names
        }
        self.interrupted = False

    def __contains__(self, name: str) -> bool:
        return name in self._outcomes

    def outcome(self, name: str) -> StepOutcome:
        return self._outcomes[name]

    def status(self, name: str) -> StepStatus:
        return self._outcomes[name].status

    def outputs(self, name: str) -> Dict[str, Any]:
        """Outputs of a step; always empty unless the step succeeded."""
        outcome = self._outcomes[name]
        if outcome.status is not StepStatus.SUCCEEDED:
            return {}
        return dict(outcome.outputs)

    def outcomes(self) -> List[StepOutcome]:
        """Outcomes in declaration order."""
        return list(self._outcomes.values())

    def failed(self) -> List[StepOutcome]:
        return [o for o in self._outcomes.values() if o.status is StepStatus.FAILED]

    def is_fresh_for(self, step_names: Iterable[str]) -> bool:
        """True if this state has exactly these steps, all still pending."""
        return (
            not self.interrupted
            and list(self._outcomes) == list(step_names)
            and all(o.status is StepStatus.PENDING for o in self._outcomes.values())
        )

    @property
    def finished(self) -> bool:
        return all(o.status.is_terminal for o in self._outcomes.values())

    def _move(self, name: str, status: StepStatus) -> StepOutcome:
        outcome = self._outcomes[name]
        if status not in _TRANSITIONS[outcome.status]:
            raise InvalidTransitionError(
                f"Step '{name}' cannot move from {outcome.status.value} to {status.value}"
            )
        outcome.status = status
        return outcome

    def mark_running(self, name: str) -> None:
        outcome = self._move(name, StepStatus.RUNNING)
        outcome.started_at = _utcnow()

    def mark_skipped(self, name: str, reason: str) -> None:
        outcome = self._move(name, StepStatus.SKIPPED)
        outcome.reason = reason
        outcome.completed_at = _utcnow()

    def mark_succeeded(self, name: str, outputs: Optional[Mapping[str, Any]] = None) -> None:
        outcome = self._move(name, StepStatus.SUCCEEDED)
        outcome.outputs = dict(outputs or {})
        outcome.exit_code = 0
        outcome.completed_at = _utcnow()

    def mark_failed(self, name: str, exit_code: Optional[int] = None, error: Optional[str] = None) -> None:
        outcome = self._move(name, StepStatus.FAILED)
        # Failed steps never contribute outputs
        outcome.outputs = {}
        outcome.exit_code = exit_code
        outcome.error = error
        outcome.completed_at = _utcnow()
