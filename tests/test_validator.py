"""Tests for the input validator."""

import pytest

from cirun.errors import ValidationError
from cirun.schemas import InputSpec, InputType
from cirun.validator import CoercionError, _to_bool, coerce_value, option_text, validate_inputs


# =============================================================================
# Coercion helpers
# =============================================================================


class TestToBool:
    """Tests for _to_bool helper function."""

    def test_bool_passthrough(self):
        """Booleans are returned unchanged."""
        assert _to_bool(True) is True
        assert _to_bool(False) is False

    def test_string_forms(self):
        """true/yes/1 and false/no/0 are accepted case-insensitively."""
        assert _to_bool("true") is True
        assert _to_bool("TRUE") is True
        assert _to_bool("yes") is True
        assert _to_bool("1") is True
        assert _to_bool("False") is False
        assert _to_bool("no") is False
        assert _to_bool("0") is False

    def test_rejects_other_strings(self):
        """Anything else is an error, not a silent False."""
        with pytest.raises(CoercionError):
            _to_bool("maybe")

    def test_rejects_other_ints(self):
        """Only 0 and 1 are accepted as integers."""
        with pytest.raises(CoercionError):
            _to_bool(2)


class TestCoerceValue:
    """Tests for coerce_value per input type."""

    def test_string_accepts_numbers(self):
        """Numbers are stringified for string inputs."""
        spec = InputSpec(name="version", type=InputType.STRING)
        assert coerce_value(spec, 3) == "3"
        assert coerce_value(spec, 1.5) == "1.5"

    def test_string_rejects_lists(self):
        """Non-scalar values are rejected for string inputs."""
        spec = InputSpec(name="version", type=InputType.STRING)
        with pytest.raises(CoercionError):
            coerce_value(spec, ["a"])

    def test_string_rejects_bool(self):
        """Booleans are not silently turned into strings."""
        spec = InputSpec(name="version", type=InputType.STRING)
        with pytest.raises(CoercionError):
            coerce_value(spec, True)

    def test_number_parses_strings(self):
        """Numeric strings become int or float."""
        spec = InputSpec(name="retries", type=InputType.NUMBER)
        assert coerce_value(spec, "3") == 3
        assert coerce_value(spec, "2.5") == 2.5

    def test_number_rejects_text(self):
        """Non-numeric strings are rejected."""
        spec = InputSpec(name="retries", type=InputType.NUMBER)
        with pytest.raises(CoercionError):
            coerce_value(spec, "three")

    def test_enum_accepts_option(self):
        """Values in options are accepted."""
        spec = InputSpec(name="env", type=InputType.ENUM, options=("dev", "prod"))
        assert coerce_value(spec, "prod") == "prod"

    def test_enum_rejects_unknown_option(self):
        """Values outside options are rejected with the allowed list."""
        spec = InputSpec(name="env", type=InputType.ENUM, options=("dev", "prod"))
        with pytest.raises(CoercionError, match="dev, prod"):
            coerce_value(spec, "staging")

    def test_enum_boolean_options(self):
        """yes/no values match options that YAML loaded as booleans."""
        spec = InputSpec(name="mode", type=InputType.ENUM, options=("true", "false", "auto"))

        assert coerce_value(spec, "yes") == "true"
        assert coerce_value(spec, "no") == "false"
        assert coerce_value(spec, True) == "true"
        assert coerce_value(spec, "auto") == "auto"

    def test_enum_boolean_words_need_boolean_options(self):
        """yes is not accepted when no option is a boolean."""
        spec = InputSpec(name="env", type=InputType.ENUM, options=("dev", "prod"))
        with pytest.raises(CoercionError, match="got 'yes'"):
            coerce_value(spec, "yes")


class TestOptionText:
    """Tests for option_text."""

    def test_booleans_are_lowercase(self):
        assert option_text(True) == "true"
        assert option_text(False) == "false"

    def test_other_values_are_stringified(self):
        assert option_text(3) == "3"
        assert option_text("dev") == "dev"


# =============================================================================
# validate_inputs
# =============================================================================


SPECS = [
    InputSpec(name="version", type=InputType.STRING, required=True),
    InputSpec(name="publish", type=InputType.BOOL, default=False),
    InputSpec(name="env", type=InputType.ENUM, options=("dev", "prod"), default="dev"),
    InputSpec(name="token", type=InputType.STRING),
]


class TestValidateInputs:
    """Tests for validate_inputs."""

    def test_applies_defaults(self):
        """Declared defaults fill in missing inputs."""
        result = validate_inputs(SPECS, {"version": "1.2.3"})
        assert result == {"version": "1.2.3", "publish": False, "env": "dev", "token": None}

    def test_coerces_cli_strings(self):
        """String values from the command line are coerced to declared types."""
        result = validate_inputs(SPECS, {"version": "1.2.3", "publish": "true", "env": "prod"})
        assert result["publish"] is True
        assert result["env"] == "prod"

    def test_optional_without_default_is_none(self):
        """An optional input with no default and no value maps to None."""
        result = validate_inputs(SPECS, {"version": "1.0"})
        assert "token" in result
        assert result["token"] is None

    def test_missing_required(self):
        """A required input with no default and no value is an error."""
        with pytest.raises(ValidationError) as exc_info:
            validate_inputs(SPECS, {})
        assert exc_info.value.fields == ["version"]

    def test_reports_every_problem(self):
        """All offending fields are listed, not just the first."""
        with pytest.raises(ValidationError) as exc_info:
            validate_inputs(SPECS, {"publish": "perhaps", "env": "staging", "colour": "red"})

        error = exc_info.value
        assert set(error.fields) == {"version", "publish", "env", "colour"}
        assert "colour: unknown input" in str(error)
        assert "4" in str(error)

    def test_none_value_uses_default(self):
        """An explicit None falls back to the default."""
        result = validate_inputs(SPECS, {"version": "1.0", "publish": None})
        assert result["publish"] is False

    def test_does_not_mutate_raw(self):
        """The raw mapping is left untouched."""
        raw = {"version": "1.0", "publish": "yes"}
        validate_inputs(SPECS, raw)
        assert raw == {"version": "1.0", "publish": "yes"}

    def test_no_specs_no_inputs(self):
        """A pipeline without inputs validates an empty mapping."""
        assert validate_inputs([], None) == {}
