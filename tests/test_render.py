"""Tests for run record rendering."""

from datetime import datetime, timezone

from cirun.errors import ValidationError
from cirun.render import format_output_value, format_outputs, format_report
from cirun.schemas import RunRecord, RunStatus, StepOutcome, StepStatus


def _record(**kwargs):
    defaults = dict(
        run_id="run-1",
        pipeline="release",
        status=RunStatus.SUCCEEDED,
        started_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )
    defaults.update(kwargs)
    return RunRecord(**defaults)


class TestFormatOutputs:
    """Tests for key=value output lines."""

    def test_simple_values(self):
        """Outputs are printed as key=value in declaration order."""
        assert format_outputs({"image": "app:1", "ok": True}) == ["image=app:1", "ok=true"]

    def test_multiline_values_are_quoted(self):
        """Multi-line values stay on one line."""
        assert format_output_value("a\nb") == '"a\\nb"'


class TestFormatReport:
    """Tests for the per-step report."""

    def test_failed_run(self):
        """The report names the failing step and each step's status."""
        record = _record(
            status=RunStatus.FAILED,
            failed_step="build",
            exit_code=1,
            outcomes=[
                StepOutcome(step="build", status=StepStatus.FAILED, exit_code=1, error="Step 'build' failed with exit code 1"),
                StepOutcome(step="publish", status=StepStatus.SKIPPED, reason="dependency did not succeed: build"),
            ],
        )

        lines = format_report(record)

        assert "Status: failed" in lines
        assert "Failed step: build (exit 1)" in lines
        assert "  build: FAILED (exit 1) - Step 'build' failed with exit code 1" in lines
        assert "  publish: skipped - dependency did not succeed: build" in lines

    def test_invalid_run(self):
        """Errors without a failing step are shown as-is."""
        record = _record(
            status=RunStatus.INVALID,
            error=ValidationError([("version", "required input not provided")]),
            outcomes=[StepOutcome(step="build", status=StepStatus.PENDING)],
        )

        lines = format_report(record)

        assert any(line.startswith("Error: Invalid inputs") for line in lines)
        assert "  build: pending" in lines
