"""Tests for the JSONL event client."""

import json

from cirun.event_client import RUN_FINISHED, RUN_STARTED, EventClient


class TestEventClient:
    """Tests for EventClient."""

    def test_creates_parent_directory(self, tmp_path):
        """The log directory is created on demand."""
        log_path = tmp_path / "nested" / "events.jsonl"
        EventClient(log_path)
        assert log_path.parent.is_dir()

    def test_appends_events(self, tmp_path):
        """Each event is one JSON line."""
        client = EventClient(tmp_path / "events.jsonl")

        client.log_event("run.started", "run-1", "running", payload={"pipeline": "release"})
        client.log_event("run.finished", "run-1", "failed", error_message="boom")

        lines = (tmp_path / "events.jsonl").read_text().splitlines()
        assert len(lines) == 2
        first, second = (json.loads(line) for line in lines)
        assert first["event_type"] == "run.started"
        assert first["payload"] == {"pipeline": "release"}
        assert "error_message" not in first
        assert second["status"] == "failed"
        assert second["error_message"] == "boom"
        assert "payload" not in second
        assert "timestamp" in second

    def test_read_events_for_one_run(self, tmp_path):
        """Events can be filtered by correlation ID."""
        client = EventClient(tmp_path / "events.jsonl")
        client.log_event(RUN_STARTED, "run-1", "running")
        client.log_event(RUN_STARTED, "run-2", "running")
        client.log_event(RUN_FINISHED, "run-1", "succeeded")

        events = client.read_events("run-1")

        assert [e["event_type"] for e in events] == [RUN_STARTED, RUN_FINISHED]

    def test_read_events_missing_file(self, tmp_path):
        """Reading a log that was never written returns nothing."""
        client = EventClient(tmp_path / "events.jsonl")
        assert client.read_events() == []
