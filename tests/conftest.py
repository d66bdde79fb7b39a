"""Shared fixtures for cirun tests."""

from typing import Any, Dict, List, Mapping, Optional

import pytest

from cirun.backends import CommandResult
from cirun.graph import build_graph
from cirun.loader import loads_pipeline


class FakeBackend:
    """Command backend that records calls and returns scripted results.

    results maps a rendered command to an exit code, a CommandResult,
    or an exception to raise. Unlisted commands succeed with no outputs.
    """

    def __init__(self, results: Optional[Dict[str, Any]] = None):
        self.results = results or {}
        self.calls: List[Dict[str, Any]] = []

    def execute(
        self,
        command: str,
        rendered_inputs: Mapping[str, Any],
        env: Optional[Mapping[str, str]] = None,
        timeout_s: Optional[int] = None,
    ) -> CommandResult:
        self.calls.append({
            "command": command,
            "inputs": dict(rendered_inputs),
            "env": dict(env or {}),
            "timeout_s": timeout_s,
        })
        result = self.results.get(command, 0)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, int):
            return CommandResult(exit_code=result)
        return result

    @property
    def commands(self) -> List[str]:
        return [call["command"] for call in self.calls]


@pytest.fixture
def make_backend():
    """Factory for FakeBackend instances."""
    return FakeBackend


@pytest.fixture
def pipeline():
    """Parse pipeline YAML text into a PipelineDefinition."""
    def _parse(text: str):
        return loads_pipeline(text, name="test")
    return _parse


@pytest.fixture
def graph_of(pipeline):
    """Parse pipeline YAML text and build its step graph."""
    def _build(text: str):
        return build_graph(pipeline(text))
    return _build


RELEASE_PIPELINE = """
name: release
inputs:
  version: {type: string, required: true}
  publish: {type: bool, default: true}
outputs:
  image: {from: build.image}
  url: {from: publish.url}
steps:
  - name: build
    run: make build VERSION=${{ inputs.version }}
    outputs: [image]
  - name: publish
    needs: [build]
    if: success() and inputs.publish
    run: push ${{ steps.build.outputs.image }}
    outputs: [url]
"""


@pytest.fixture
def release_yaml():
    return RELEASE_PIPELINE
