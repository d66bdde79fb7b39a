"""Tests for command backends."""

import logging
import os
import subprocess

import pytest

from cirun.backends import (
    TIMEOUT_EXIT_CODE,
    BackendConfig,
    CommandResult,
    ShellBackend,
    input_env,
    parse_output_file,
)
from cirun.loader import loads_pipeline
from cirun.pipeline import run_pipeline
from cirun.schemas import DEFAULT_TIMEOUT_S, RunStatus


@pytest.fixture
def shell_config(tmp_path):
    """Explicit config with just enough environment to find coreutils."""
    return BackendConfig(
        env={"PATH": os.environ.get("PATH", "/usr/bin:/bin")},
        working_dir=tmp_path,
    )


class TestParseOutputFile:
    """Tests for parse_output_file."""

    def test_key_value_lines(self):
        """Single-line outputs are key=value."""
        assert parse_output_file("image=app:1\ndigest=sha256:abc=def\n") == {
            "image": "app:1",
            "digest": "sha256:abc=def",
        }

    def test_heredoc(self):
        """Multi-line outputs use the key<<DELIMITER form."""
        text = "notes<<EOF\nline one\nline two\nEOF\ntag=v1\n"
        assert parse_output_file(text) == {"notes": "line one\nline two", "tag": "v1"}

    def test_blank_lines_ignored(self):
        """Blank lines between outputs are skipped."""
        assert parse_output_file("\na=1\n\nb=2\n") == {"a": "1", "b": "2"}

    def test_unterminated_heredoc(self):
        """A heredoc without its delimiter is an error."""
        with pytest.raises(ValueError, match="Unterminated"):
            parse_output_file("notes<<EOF\nline\n")

    def test_malformed_line(self):
        """Lines without '=' are an error."""
        with pytest.raises(ValueError, match="Malformed"):
            parse_output_file("just text\n")

    def test_last_value_wins(self):
        """Writing the same key twice keeps the last value."""
        assert parse_output_file("a=1\na=2\n") == {"a": "2"}


class TestInputEnv:
    """Tests for input_env."""

    def test_names_and_values(self):
        """Inputs become CIRUN_INPUT_<NAME> with shell-friendly values."""
        env = input_env({"version": "1.2", "dry-run": True, "token": None, "count": 3})
        assert env == {
            "CIRUN_INPUT_VERSION": "1.2",
            "CIRUN_INPUT_DRY_RUN": "true",
            "CIRUN_INPUT_COUNT": "3",
        }


class TestShellBackend:
    """Tests for ShellBackend command execution."""

    def test_init_defaults(self):
        """ShellBackend defaults to an empty explicit config."""
        backend = ShellBackend()
        assert backend.dry_run is False
        assert backend.config == BackendConfig()
        assert backend.logger is not None

    def test_success(self, shell_config, caplog):
        """A zero exit is reported with captured stdout."""
        backend = ShellBackend(shell_config)

        with caplog.at_level(logging.INFO):
            result = backend.execute("echo 'test output'", {})

        assert isinstance(result, CommandResult)
        assert result.ok
        assert result.stdout.strip() == "test output"
        assert "Executing:" in caplog.text

    def test_failure_exit_code(self, shell_config, caplog):
        """A non-zero exit is returned, not raised."""
        backend = ShellBackend(shell_config)

        with caplog.at_level(logging.ERROR):
            result = backend.execute("exit 3", {})

        assert result.exit_code == 3
        assert result.outputs == {}
        assert "exit code 3" in caplog.text

    def test_outputs_written_to_file(self, shell_config):
        """Commands emit outputs by appending to $CIRUN_OUTPUT."""
        backend = ShellBackend(shell_config)

        result = backend.execute('echo "image=app:1" >> "$CIRUN_OUTPUT"', {})

        assert result.outputs == {"image": "app:1"}

    def test_outputs_discarded_on_failure(self, shell_config):
        """Outputs written before a failure are not reported."""
        backend = ShellBackend(shell_config)

        result = backend.execute('echo "image=app:1" >> "$CIRUN_OUTPUT"; exit 1', {})

        assert result.exit_code == 1
        assert result.outputs == {}

    def test_inputs_and_step_env(self, shell_config):
        """Inputs and step env reach the command as environment variables."""
        backend = ShellBackend(shell_config)

        result = backend.execute(
            'echo "$CIRUN_INPUT_VERSION-$TARGET"',
            {"version": "1.2.3"},
            env={"TARGET": "prod"},
        )

        assert result.stdout.strip() == "1.2.3-prod"

    def test_only_explicit_environment(self, tmp_path, monkeypatch):
        """The parent environment is not inherited implicitly."""
        monkeypatch.setenv("CIRUN_TEST_SECRET", "leaked")
        backend = ShellBackend(BackendConfig(env={}, working_dir=tmp_path))

        result = backend.execute('echo "[$CIRUN_TEST_SECRET]"', {})

        assert result.stdout.strip() == "[]"

    def test_working_dir(self, shell_config, tmp_path):
        """Commands run in the configured working directory."""
        (tmp_path / "marker.txt").write_text("here")
        backend = ShellBackend(shell_config)

        result = backend.execute("cat marker.txt", {})

        assert result.stdout == "here"

    def test_timeout(self, shell_config):
        """Commands exceeding their timeout report exit code 124."""
        backend = ShellBackend(shell_config)

        result = backend.execute("exec sleep 5", {}, timeout_s=1)

        assert result.exit_code == TIMEOUT_EXIT_CODE
        assert "timed out" in result.stderr

    def test_dry_run(self, shell_config, caplog, tmp_path):
        """Dry run logs the command and executes nothing."""
        backend = ShellBackend(shell_config, dry_run=True)

        with caplog.at_level(logging.INFO):
            result = backend.execute("touch created.txt", {})

        assert result.ok
        assert "[DRY RUN]" in caplog.text
        assert "touch created.txt" in caplog.text
        assert not (tmp_path / "created.txt").exists()

    def test_long_command_truncated_in_log(self, shell_config, caplog):
        """Log lines for long commands are truncated."""
        backend = ShellBackend(shell_config)
        command = "echo " + "x" * 200

        with caplog.at_level(logging.INFO):
            backend.execute(command, {})

        assert "..." in caplog.text
        assert command not in caplog.text


class TestShellBackendTimeouts:
    """Tests for how ShellBackend picks a command timeout."""

    @pytest.fixture
    def recorded_run(self, monkeypatch):
        """Replace subprocess.run and record its keyword arguments."""
        calls = []

        def fake_run(command, **kwargs):
            calls.append(kwargs)
            return subprocess.CompletedProcess(command, 0, stdout="", stderr="")

        monkeypatch.setattr("cirun.backends.subprocess.run", fake_run)
        return calls

    def test_config_timeout_used_when_step_sets_none(self, recorded_run, tmp_path):
        """A step without timeout_s gets the configured timeout."""
        backend = ShellBackend(BackendConfig(env={}, working_dir=tmp_path, timeout_s=600))

        backend.execute("make", {}, timeout_s=None)

        assert recorded_run[0]["timeout"] == 600

    def test_step_timeout_wins(self, recorded_run, tmp_path):
        """A step timeout overrides the configured one."""
        backend = ShellBackend(BackendConfig(env={}, working_dir=tmp_path, timeout_s=600))

        backend.execute("make", {}, timeout_s=30)

        assert recorded_run[0]["timeout"] == 30

    def test_default_timeout(self, recorded_run, tmp_path):
        """Without step or config timeout the default applies."""
        backend = ShellBackend(BackendConfig(env={}, working_dir=tmp_path))

        backend.execute("make", {})

        assert recorded_run[0]["timeout"] == DEFAULT_TIMEOUT_S

    def test_config_timeout_reaches_pipeline_steps(self, recorded_run, tmp_path):
        """The configured timeout applies to steps loaded without timeout_s."""
        definition = loads_pipeline("name: t\nsteps:\n  - name: build\n    run: make\n")
        backend = ShellBackend(BackendConfig(env={}, working_dir=tmp_path, timeout_s=600))

        record = run_pipeline(definition, {}, backend)

        assert record.status is RunStatus.SUCCEEDED
        assert recorded_run[0]["timeout"] == 600
