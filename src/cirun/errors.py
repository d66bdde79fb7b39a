# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""Error taxonomy for cirun.

- ValidationError: bad or missing pipeline inputs, reported before any step runs
- DefinitionError: malformed pipeline document or step graph, caught at build time
- StepExecutionError: a step command failed, recorded per step
- MissingOutputError: a required pipeline output never materialized
"""

from typing import List, Optional, Sequence, Tuple


class CirunError(Exception):
    """Base class for all cirun errors."""
    pass


class ValidationError(CirunError):
    """Raised when pipeline inputs fail validation.

    Carries every offending field, not just the first one.
    """

    def __init__(self, problems: Sequence[Tuple[str, str]]):
        self.problems: List[Tuple[str, str]] = list(problems)
        details = "; ".join(f"{field}: {message}" for field, message in self.problems)
        super().__init__(f"Invalid inputs ({len(self.problems)}): {details}")

    @property
    def fields(self) -> List[str]:
        return [field for field, _ in self.problems]


class DefinitionError(CirunError):
    """Raised when a pipeline definition is malformed."""
    pass


class DuplicateNameError(DefinitionError):
    """Raised when two steps, inputs or outputs share a name."""
    pass


class UnknownDependencyError(DefinitionError):
    """Raised when a step needs (or reads) a step that does not exist."""

    def __init__(self, step: str, dependency: str, message: Optional[str] = None):
        self.step = step
        self.dependency = dependency
        super().__init__(message or f"Step '{step}' needs unknown step '{dependency}'")


class CycleError(DefinitionError):
    """Raised when step dependencies form a cycle."""

    def __init__(self, cycle: Sequence[str]):
        self.cycle = list(cycle)
        super().__init__(f"Dependency cycle: {' -> '.join(self.cycle)}")


class ForwardReferenceError(DefinitionError):
    """Raised when a step needs a step declared after it."""

    def __init__(self, step: str, dependency: str):
        self.step = step
        self.dependency = dependency
        super().__init__(
            f"Step '{step}' needs '{dependency}', which is declared after it; "
            f"dependencies must refer to earlier steps"
        )


class StepExecutionError(CirunError):
    """A step's command failed.

    Never raised out of the engine; attached to the step outcome and the run record.
    """

    def __init__(self, step: str, exit_code: Optional[int], message: Optional[str] = None):
        self.step = step
        self.exit_code = exit_code
        if message is None:
            message = f"Step '{step}' failed with exit code {exit_code}"
        super().__init__(message)


class MissingOutputError(CirunError):
    """Raised when required pipeline outputs were not produced."""

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        super().__init__(f"Required outputs not produced: {', '.join(self.missing)}")
