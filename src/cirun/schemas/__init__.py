# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""cirun pipeline and run schemas."""

from cirun.schemas.pipeline_def import (
    DEFAULT_CONDITION,
    DEFAULT_TIMEOUT_S,
    InputSpec,
    InputType,
    OutputSpec,
    PipelineDefinition,
    StepSpec,
)
from cirun.schemas.run_record import (
    RunRecord,
    RunStatus,
    StepOutcome,
    StepStatus,
)

__all__ = [
    "DEFAULT_CONDITION",
    "DEFAULT_TIMEOUT_S",
    "InputSpec",
    "InputType",
    "OutputSpec",
    "PipelineDefinition",
    "StepSpec",
    "RunRecord",
    "RunStatus",
    "StepOutcome",
    "StepStatus",
]
