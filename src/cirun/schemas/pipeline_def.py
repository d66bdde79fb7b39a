# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Pipeline definition schemas for cirun.

Pipeline YAML → load → PipelineDefinition → build_graph → StepGraph
Definitions are frozen once loaded; runs never mutate them.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


DEFAULT_CONDITION = "success()"
DEFAULT_TIMEOUT_S = 300


class InputType(Enum):
    """Types an input value is coerced to."""

    STRING = "string"
    BOOL = "bool"
    ENUM = "enum"
    NUMBER = "number"


@dataclass(frozen=True)
class InputSpec:
    """A declared pipeline input.

    An optional input with no default resolves to None when not supplied.
    """
    name: str
    type: InputType = InputType.STRING
    default: Any = None
    required: bool = False
    options: Tuple[str, ...] = ()  # enum only
    description: str = ""

    @property
    def has_default(self) -> bool:
        return self.default is not None


@dataclass(frozen=True)
class OutputSpec:
    """A declared pipeline output.

    source is "<step>.<output>"; when None, the producer is the last step
    declaring an output with the same name.
    """
    name: str
    source: Optional[str] = None
    required: bool = False
    description: str = ""

    def split_source(self) -> Tuple[Optional[str], str]:
        """Return (step, output_name) for this output's source."""
        if self.source is None:
            return None, self.name
        step, _, output = self.source.partition(".")
        return step, output or self.name


@dataclass(frozen=True)
class StepSpec:
    """A single step: a run condition, a command template, outputs and needs."""
    name: str
    run: str
    condition: str = DEFAULT_CONDITION
    outputs: Tuple[str, ...] = ()
    needs: Tuple[str, ...] = ()
    env: Tuple[Tuple[str, str], ...] = ()
    # None defers to the backend config, then DEFAULT_TIMEOUT_S
    timeout_s: Optional[int] = None
    continue_on_error: bool = False

    @property
    def env_dict(self) -> Dict[str, str]:
        return dict(self.env)


@dataclass(frozen=True)
class PipelineDefinition:
    """A loaded pipeline: ordered steps plus declared inputs and outputs."""
    name: str
    steps: Tuple[StepSpec, ...] = field(default_factory=tuple)
    inputs: Tuple[InputSpec, ...] = field(default_factory=tuple)
    outputs: Tuple[OutputSpec, ...] = field(default_factory=tuple)
    description: str = ""

    def step(self, name: str) -> StepSpec:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(name)

    @property
    def step_names(self) -> Tuple[str, ...]:
        return tuple(step.name for step in self.steps)
