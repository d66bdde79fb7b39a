# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Run result schemas for cirun."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class StepStatus(Enum):
    """Lifecycle of a step within one run.

    Skipped means "did not run"; Failed means "ran and failed".
    """

    PENDING = "pending"
    SKIPPED = "skipped"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (StepStatus.SKIPPED, StepStatus.SUCCEEDED, StepStatus.FAILED)


class RunStatus(Enum):
    """Overall result of a run."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    INVALID = "invalid"  # rejected before any step ran
    INTERRUPTED = "interrupted"


@dataclass
class StepOutcome:
    """Result of a single step."""
    step: str
    status: StepStatus
    outputs: Dict[str, Any] = field(default_factory=dict)
    exit_code: Optional[int] = None
    error: Optional[str] = None
    reason: Optional[str] = None  # why a step was skipped
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"step": self.step, "status": self.status.value}
        if self.outputs:
            data["outputs"] = dict(self.outputs)
        if self.exit_code is not None:
            data["exit_code"] = self.exit_code
        if self.error:
            data["error"] = self.error
        if self.reason:
            data["reason"] = self.reason
        return data


@dataclass
class RunRecord:
    """Result of running a pipeline, including a full per-step report."""
    run_id: str
    pipeline: str
    status: RunStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    outcomes: List[StepOutcome] = field(default_factory=list)
    outputs: Dict[str, Any] = field(default_factory=dict)
    failed_step: Optional[str] = None
    exit_code: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.status is RunStatus.SUCCEEDED

    def outcome(self, step: str) -> StepOutcome:
        for outcome in self.outcomes:
            if outcome.step == step:
                return outcome
        raise KeyError(step)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_step": self.failed_step,
            "exit_code": self.exit_code,
            "error": str(self.error) if self.error else None,
            "error_type": type(self.error).__name__ if self.error else None,
            "outputs": dict(self.outputs),
            "steps": [outcome.to_dict() for outcome in self.outcomes],
        }
