# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Loader - Transform pipeline YAML into a frozen PipelineDefinition.

Document layout:

    name: release
    inputs:
      version: {type: string, required: true}
      publish: {type: bool, default: false}
    outputs:
      image: {from: build.image, required: true}
    steps:
      - name: build
        run: make build VERSION=${{ inputs.version }}
        outputs: [image]
      - name: publish
        needs: [build]
        if: inputs.publish
        run: make publish IMAGE=${{ steps.build.outputs.image }}

Step ordering and dependency checks belong to the graph builder; the loader
only checks document shape and input defaults.
"""

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from cirun.errors import DefinitionError, DuplicateNameError
from cirun.schemas import (
    DEFAULT_CONDITION,
    InputSpec,
    InputType,
    OutputSpec,
    PipelineDefinition,
    StepSpec,
)
from cirun.validator import CoercionError, coerce_value, option_text


# Aliases accepted for input types (GitHub Actions spellings included)
TYPE_ALIASES = {
    "string": InputType.STRING,
    "str": InputType.STRING,
    "bool": InputType.BOOL,
    "boolean": InputType.BOOL,
    "enum": InputType.ENUM,
    "choice": InputType.ENUM,
    "number": InputType.NUMBER,
}

STEP_KEYS = {"name", "run", "if", "condition", "outputs", "needs", "env", "timeout_s", "continue_on_error"}


def load_pipeline_yaml(path: Union[str, Path]) -> Dict[str, Any]:
    """Load a pipeline document from a YAML file."""
    yaml_path = Path(path).expanduser()
    if not yaml_path.exists():
        raise DefinitionError(f"Pipeline file not found: {yaml_path}")
    try:
        data = yaml.safe_load(yaml_path.read_text())
    except yaml.YAMLError as e:
        raise DefinitionError(f"Invalid YAML in {yaml_path}: {e}")
    if not isinstance(data, dict):
        raise DefinitionError(f"Pipeline file {yaml_path} must contain a YAML mapping")
    data.setdefault("name", yaml_path.stem)
    return data


def load_pipeline(path: Union[str, Path]) -> PipelineDefinition:
    """Load and parse a pipeline file."""
    return parse_pipeline(load_pipeline_yaml(path))


def loads_pipeline(text: str, name: Optional[str] = None) -> PipelineDefinition:
    """Parse a pipeline from YAML text."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DefinitionError(f"Invalid YAML: {e}")
    if not isinstance(data, dict):
        raise DefinitionError("Pipeline document must be a YAML mapping")
    if name is not None:
        data.setdefault("name", name)
    return parse_pipeline(data)


def parse_pipeline(data: Mapping[str, Any]) -> PipelineDefinition:
    """
    Parse a pipeline document mapping.

    Args:
        data: Mapping with top-level name, inputs, outputs and steps

    Returns:
        PipelineDefinition

    Raises:
        DefinitionError: If the document is malformed
    """
    name = data.get("name")
    if not name or not isinstance(name, str):
        raise DefinitionError("Pipeline requires a string 'name'")

    steps_data = data.get("steps")
    if not isinstance(steps_data, list) or not steps_data:
        raise DefinitionError(f"Pipeline '{name}' requires a non-empty 'steps' list")

    return PipelineDefinition(
        name=name,
        description=str(data.get("description") or ""),
        inputs=tuple(_parse_inputs(data.get("inputs") or {})),
        outputs=tuple(_parse_outputs(data.get("outputs") or {})),
        steps=tuple(_parse_step(step_data, index) for index, step_data in enumerate(steps_data)),
    )


def _named_entries(section: Any, section_name: str) -> List[tuple]:
    """
    Normalize a section into (name, body) pairs.

    Accepts either a mapping of name → body or a list of bodies with a 'name' key.
    """
    if isinstance(section, dict):
        return list(section.items())
    if isinstance(section, list):
        entries = []
        seen = set()
        for item in section:
            if not isinstance(item, dict) or "name" not in item:
                raise DefinitionError(f"Each entry in '{section_name}' needs a 'name'")
            entry_name = item["name"]
            if entry_name in seen:
                raise DuplicateNameError(f"Duplicate name in '{section_name}': {entry_name}")
            seen.add(entry_name)
            entries.append((entry_name, {k: v for k, v in item.items() if k != "name"}))
        return entries
    raise DefinitionError(f"'{section_name}' must be a mapping or a list")


def _parse_inputs(section: Any) -> List[InputSpec]:
    specs = []
    for input_name, body in _named_entries(section, "inputs"):
        body = body or {}
        if not isinstance(body, dict):
            raise DefinitionError(f"Input '{input_name}' must be a mapping")

        type_name = str(body.get("type", "string")).lower()
        if type_name not in TYPE_ALIASES:
            raise DefinitionError(f"Input '{input_name}' has unknown type: {type_name}")
        input_type = TYPE_ALIASES[type_name]

        options = tuple(option_text(option) for option in body.get("options") or ())
        if input_type is InputType.ENUM and not options:
            raise DefinitionError(f"Enum input '{input_name}' requires 'options'")

        spec = InputSpec(
            name=str(input_name),
            type=input_type,
            default=body.get("default"),
            required=bool(body.get("required", False)),
            options=options,
            description=str(body.get("description") or ""),
        )
        if spec.has_default:
            try:
                spec = InputSpec(
                    name=spec.name,
                    type=spec.type,
                    default=coerce_value(spec, spec.default),
                    required=spec.required,
                    options=spec.options,
                    description=spec.description,
                )
            except CoercionError as e:
                raise DefinitionError(f"Default for input '{input_name}' is invalid: {e}")
        specs.append(spec)
    return specs


def _parse_outputs(section: Any) -> List[OutputSpec]:
    specs = []
    for output_name, body in _named_entries(section, "outputs"):
        # Shorthand: `image: build.image`
        if body is None or isinstance(body, str):
            body = {"from": body}
        if not isinstance(body, dict):
            raise DefinitionError(f"Output '{output_name}' must be a mapping or a 'step.output' string")
        source = body.get("from", body.get("source"))
        if source is not None and (not isinstance(source, str) or "." not in source):
            raise DefinitionError(f"Output '{output_name}' source must look like 'step.output', got: {source}")
        specs.append(OutputSpec(
            name=str(output_name),
            source=source,
            required=bool(body.get("required", False)),
            description=str(body.get("description") or ""),
        ))
    return specs


def _as_name_list(value: Any, field_name: str, step_name: str) -> tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    if isinstance(value, list) and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise DefinitionError(f"Step '{step_name}' field '{field_name}' must be a string or list of strings")


def _parse_step(step_data: Any, index: int) -> StepSpec:
    if not isinstance(step_data, dict):
        raise DefinitionError(f"Step #{index + 1} must be a mapping")

    step_name = step_data.get("name")
    if not step_name or not isinstance(step_name, str):
        raise DefinitionError(f"Step #{index + 1} requires a string 'name'")

    unknown = sorted(set(step_data) - STEP_KEYS)
    if unknown:
        raise DefinitionError(f"Step '{step_name}' has unknown keys: {', '.join(unknown)}")

    run = step_data.get("run")
    if not isinstance(run, str) or not run.strip():
        raise DefinitionError(f"Step '{step_name}' requires a 'run' command")

    if "if" in step_data and "condition" in step_data:
        raise DefinitionError(f"Step '{step_name}' sets both 'if' and 'condition'")
    condition = step_data.get("if", step_data.get("condition"))
    if condition is None:
        condition = DEFAULT_CONDITION
    elif isinstance(condition, bool):
        condition = "true" if condition else "false"
    condition = str(condition).strip()
    # Tolerate `${{ expr }}` wrapping as written in workflow files
    if condition.startswith("${{") and condition.endswith("}}"):
        condition = condition[3:-2].strip()

    env = step_data.get("env") or {}
    if not isinstance(env, dict):
        raise DefinitionError(f"Step '{step_name}' field 'env' must be a mapping")

    timeout_s = step_data.get("timeout_s")
    if timeout_s is not None and (isinstance(timeout_s, bool) or not isinstance(timeout_s, int) or timeout_s <= 0):
        raise DefinitionError(f"Step '{step_name}' timeout_s must be a positive integer, got: {timeout_s}")

    return StepSpec(
        name=step_name,
        run=run,
        condition=condition,
        outputs=_as_name_list(step_data.get("outputs"), "outputs", step_name),
        needs=_as_name_list(step_data.get("needs"), "needs", step_name),
        env=tuple((str(k), str(v)) for k, v in env.items()),
        timeout_s=timeout_s,
        continue_on_error=bool(step_data.get("continue_on_error", False)),
    )


# =============================================================================
# Serialization
# =============================================================================

def pipeline_to_dict(definition: PipelineDefinition) -> Dict[str, Any]:
    """Convert a PipelineDefinition back into its document form."""
    data: Dict[str, Any] = {"name": definition.name}
    if definition.description:
        data["description"] = definition.description

    if definition.inputs:
        inputs: Dict[str, Any] = {}
        for spec in definition.inputs:
            body: Dict[str, Any] = {"type": spec.type.value}
            if spec.has_default:
                body["default"] = spec.default
            if spec.required:
                body["required"] = True
            if spec.options:
                body["options"] = list(spec.options)
            if spec.description:
                body["description"] = spec.description
            inputs[spec.name] = body
        data["inputs"] = inputs

    if definition.outputs:
        outputs: Dict[str, Any] = {}
        for spec in definition.outputs:
            body = {}
            if spec.source is not None:
                body["from"] = spec.source
            if spec.required:
                body["required"] = True
            if spec.description:
                body["description"] = spec.description
            outputs[spec.name] = body
        data["outputs"] = outputs

    steps = []
    for step in definition.steps:
        step_data: Dict[str, Any] = {"name": step.name}
        if step.needs:
            step_data["needs"] = list(step.needs)
        if step.condition != DEFAULT_CONDITION:
            step_data["if"] = step.condition
        step_data["run"] = step.run
        if step.outputs:
            step_data["outputs"] = list(step.outputs)
        if step.env:
            step_data["env"] = step.env_dict
        if step.timeout_s is not None:
            step_data["timeout_s"] = step.timeout_s
        if step.continue_on_error:
            step_data["continue_on_error"] = True
        steps.append(step_data)
    data["steps"] = steps
    return data


def dump_pipeline(definition: PipelineDefinition) -> str:
    """Serialize a PipelineDefinition to YAML text."""
    return yaml.safe_dump(pipeline_to_dict(definition), sort_keys=False, default_flow_style=False)
