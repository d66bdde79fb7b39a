# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
Input Validator - normalize raw pipeline inputs against declared InputSpecs.

Pure: no I/O, no logging side effects beyond debug output.
Every offending field is reported in a single ValidationError.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from cirun.errors import ValidationError
from cirun.schemas import InputSpec, InputType


TRUE_STRINGS = ("true", "yes", "1")
FALSE_STRINGS = ("false", "no", "0")


class CoercionError(ValueError):
    """Raised when a single value cannot be coerced to its declared type."""
    pass


def _to_bool(value: Any) -> bool:
    """Convert value to boolean, accepting string forms from the command line."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_STRINGS:
            return True
        if lowered in FALSE_STRINGS:
            return False
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise CoercionError(f"expected a boolean, got {value!r}")


def _to_string(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise CoercionError(f"expected a string, got {type(value).__name__}")


def _to_number(value: Any):
    if isinstance(value, bool):
        raise CoercionError(f"expected a number, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                pass
    raise CoercionError(f"expected a number, got {value!r}")


def option_text(value: Any) -> str:
    """Canonical string form of an enum option or value.

    YAML reads unquoted yes/no/true/false as booleans; they become "true"/"false".
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _to_enum(value: Any, options: Tuple[str, ...]) -> str:
    text = option_text(value) if isinstance(value, bool) else _to_string(value)
    if text in options:
        return text
    # "yes" on the command line matches an option YAML loaded as a boolean
    try:
        flag = option_text(_to_bool(text))
    except CoercionError:
        flag = None
    if flag in options:
        return flag
    raise CoercionError(f"must be one of {', '.join(options)}; got {text!r}")


def coerce_value(spec: InputSpec, value: Any) -> Any:
    """Coerce a single raw value to the type declared by spec.

    Raises:
        CoercionError: If the value does not fit the declared type
    """
    if spec.type is InputType.BOOL:
        return _to_bool(value)
    if spec.type is InputType.NUMBER:
        return _to_number(value)
    if spec.type is InputType.ENUM:
        return _to_enum(value, spec.options)
    return _to_string(value)


def validate_inputs(
    specs: Iterable[InputSpec],
    raw: Optional[Mapping[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Validate raw inputs against the declared InputSpecs.

    Args:
        specs: Declared inputs of the pipeline
        raw: Raw key/value pairs (e.g. from --input key=value)

    Returns:
        Mapping of every declared input name to its coerced value.
        Optional inputs with no default and no value map to None.

    Raises:
        ValidationError: Listing every missing, unknown or mistyped field
    """
    raw = dict(raw or {})
    specs = list(specs)
    declared = {spec.name for spec in specs}
    problems: List[Tuple[str, str]] = []
    validated: Dict[str, Any] = {}

    for spec in specs:
        if spec.name in raw and raw[spec.name] is not None:
            value = raw[spec.name]
        elif spec.has_default:
            value = spec.default
        elif spec.required:
            problems.append((spec.name, "required input not provided"))
            continue
        else:
            validated[spec.name] = None
            continue

        try:
            validated[spec.name] = coerce_value(spec, value)
        except CoercionError as e:
            problems.append((spec.name, str(e)))

    for name in sorted(raw):
        if name not in declared:
            problems.append((name, "unknown input"))

    if problems:
        raise ValidationError(problems)
    return validated
