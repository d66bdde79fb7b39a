# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Step Graph Builder - PipelineDefinition → StepGraph.

Dependencies may only point at steps declared earlier, so declaration order is
already a topological order and the graph is acyclic by construction. The
builder enforces that constraint and reports the offending edge:

- unknown step in needs              → UnknownDependencyError
- step needs itself / forward cycle  → CycleError
- forward reference without a cycle  → ForwardReferenceError
- duplicate step name                → DuplicateNameError

It also checks that templates and conditions only read steps listed in needs,
and that every declared pipeline output has a producing step.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from cirun.errors import (
    CycleError,
    DefinitionError,
    DuplicateNameError,
    ForwardReferenceError,
    UnknownDependencyError,
)
from cirun.expressions import (
    ExpressionError,
    condition_reads_steps,
    template_reads_steps,
    tolerates_failure,
)
from cirun.schemas import OutputSpec, PipelineDefinition, StepSpec


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepNode:
    """A step plus the facts the engine needs about it."""
    spec: StepSpec
    index: int
    tolerates_failure: bool
    # Every step this one transitively depends on, in declaration order
    upstream: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.spec.name

    @property
    def needs(self) -> Tuple[str, ...]:
        return self.spec.needs


class StepGraph:
    """Dependency DAG of a pipeline's steps.

    Iteration yields StepNodes in topological (declaration) order.
    """

    def __init__(self, definition: PipelineDefinition, nodes: List[StepNode]):
        self.definition = definition
        self._nodes = {node.name: node for node in nodes}
        self._order = tuple(node.name for node in nodes)
        self._dependents: Dict[str, List[str]] = {name: [] for name in self._order}
        for node in nodes:
            for dependency in node.needs:
                self._dependents[dependency].append(node.name)

    def __iter__(self):
        return (self._nodes[name] for name in self._order)

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, name: str) -> bool:
        return name in self._nodes

    def node(self, name: str) -> StepNode:
        return self._nodes[name]

    @property
    def order(self) -> Tuple[str, ...]:
        return self._order

    def dependencies(self, name: str) -> Tuple[str, ...]:
        return self._nodes[name].needs

    def dependents(self, name: str) -> Tuple[str, ...]:
        return tuple(self._dependents[name])

    def upstream(self, name: str) -> Tuple[str, ...]:
        """All steps name transitively depends on, in topological order."""
        return self._nodes[name].upstream

    def downstream(self, name: str) -> Tuple[str, ...]:
        """All steps that transitively depend on name, in topological order."""
        reached: Set[str] = set()
        frontier = [name]
        while frontier:
            current = frontier.pop()
            for dependent in self._dependents[current]:
                if dependent not in reached:
                    reached.add(dependent)
                    frontier.append(dependent)
        return tuple(step for step in self._order if step in reached)

    def edges(self) -> List[Tuple[str, str]]:
        """(dependency, dependent) pairs in topological order of the dependent."""
        return [
            (dependency, name)
            for name in self._order
            for dependency in self._nodes[name].needs
        ]


def _find_cycle(definition: PipelineDefinition, start: str) -> Optional[List[str]]:
    """Return a dependency cycle through start, if one exists."""
    needs = {step.name: step.needs for step in definition.steps}
    path: List[str] = []
    visiting: Set[str] = set()
    done: Set[str] = set()

    def visit(name: str) -> Optional[List[str]]:
        if name in visiting:
            return path[path.index(name):] + [name]
        if name in done:
            return None
        visiting.add(name)
        path.append(name)
        for dependency in needs.get(name, ()):
            found = visit(dependency)
            if found:
                return found
        path.pop()
        visiting.discard(name)
        done.add(name)
        return None

    return visit(start)


def _check_reads(step: StepSpec, known: Set[str]) -> None:
    """Templates and conditions may only read steps listed in needs."""
    try:
        reads = set(template_reads_steps(step.run))
        for _, value in step.env:
            reads |= template_reads_steps(value)
        reads |= condition_reads_steps(step.condition)
    except ExpressionError as e:
        raise DefinitionError(f"Step '{step.name}': {e}")

    for read in sorted(reads):
        if read not in known:
            raise UnknownDependencyError(
                step.name, read, f"Step '{step.name}' reads unknown step '{read}'"
            )
        if read not in step.needs:
            raise DefinitionError(
                f"Step '{step.name}' reads steps.{read} but does not list '{read}' in needs"
            )


def _resolve_output(spec: OutputSpec, definition: PipelineDefinition) -> Tuple[str, str]:
    """Find the (step, output) pair that produces a pipeline output."""
    step_name, output_name = spec.split_source()
    if step_name is not None:
        try:
            step = definition.step(step_name)
        except KeyError:
            raise DefinitionError(f"Output '{spec.name}' comes from unknown step '{step_name}'")
        if output_name not in step.outputs:
            raise DefinitionError(
                f"Output '{spec.name}' comes from '{step_name}.{output_name}', "
                f"but step '{step_name}' does not declare output '{output_name}'"
            )
        return step_name, output_name

    producers = [step.name for step in definition.steps if output_name in step.outputs]
    if not producers:
        raise DefinitionError(f"No step declares output '{spec.name}'")
    return producers[-1], output_name


def resolve_output_sources(definition: PipelineDefinition) -> Dict[str, Tuple[str, str]]:
    """Map each declared pipeline output to its (step, output) producer."""
    sources: Dict[str, Tuple[str, str]] = {}
    for spec in definition.outputs:
        if spec.name in sources:
            raise DuplicateNameError(f"Duplicate output name: {spec.name}")
        sources[spec.name] = _resolve_output(spec, definition)
    return sources


def build_graph(definition: PipelineDefinition) -> StepGraph:
    """
    Build the step dependency graph for a pipeline.

    Args:
        definition: Loaded pipeline definition

    Returns:
        StepGraph whose order is consistent with every step's needs

    Raises:
        DefinitionError: DuplicateNameError, UnknownDependencyError,
            CycleError, ForwardReferenceError, or invalid expressions/outputs
    """
    all_names = [step.name for step in definition.steps]
    declared: Set[str] = set()
    upstream_of: Dict[str, Set[str]] = {}
    nodes: List[StepNode] = []

    for index, step in enumerate(definition.steps):
        if step.name in declared:
            raise DuplicateNameError(f"Duplicate step name: {step.name}")

        for dependency in step.needs:
            if dependency == step.name:
                raise CycleError([step.name, step.name])
            if dependency in declared:
                continue
            if dependency not in all_names:
                raise UnknownDependencyError(step.name, dependency)
            cycle = _find_cycle(definition, step.name)
            if cycle:
                raise CycleError(cycle)
            raise ForwardReferenceError(step.name, dependency)

        if len(set(step.outputs)) != len(step.outputs):
            raise DuplicateNameError(f"Step '{step.name}' declares an output twice")

        _check_reads(step, set(all_names))

        try:
            tolerant = tolerates_failure(step.condition)
        except ExpressionError as e:
            raise DefinitionError(f"Step '{step.name}': {e}")

        reached = set(step.needs)
        for dependency in step.needs:
            reached |= upstream_of[dependency]
        upstream_of[step.name] = reached
        upstream = tuple(name for name in all_names if name in reached)

        nodes.append(StepNode(spec=step, index=index, tolerates_failure=tolerant, upstream=upstream))
        declared.add(step.name)

    input_names = [spec.name for spec in definition.inputs]
    if len(set(input_names)) != len(input_names):
        raise DuplicateNameError("Duplicate input name")

    resolve_output_sources(definition)

    logger.debug(f"Built graph for '{definition.name}': {len(nodes)} steps")
    return StepGraph(definition, nodes)
