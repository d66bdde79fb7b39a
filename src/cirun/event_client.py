# Copyright 2025 Ben Mensi
# SPDX-License-Identifier: Apache-2.0

"""
JSONL run event log.

One line per event, appended as the run progresses:
    run.started   pipeline name and step order
    step.finished one per step that reached a final status
    run.finished  run status, failing step and exit code

Every event carries the run ID as its correlation_id.
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


RUN_STARTED = "run.started"
STEP_FINISHED = "step.finished"
RUN_FINISHED = "run.finished"


class EventClient:
    """Append-only JSONL event log for pipeline runs."""

    def __init__(self, log_path: Union[str, Path]):
        self.log_path = Path(log_path).expanduser()
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log_event(
        self,
        event_type: str,
        correlation_id: str,
        status: str,
        payload: Optional[Dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Append one event. Empty payload and error_message are left out."""
        event: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": event_type,
            "correlation_id": correlation_id,
            "status": status,
        }
        if payload:
            event["payload"] = payload
        if error_message:
            event["error_message"] = error_message

        with open(self.log_path, "a") as f:
            f.write(json.dumps(event, default=str) + "\n")

    def read_events(self, correlation_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """Read back logged events, oldest first, optionally for one run only."""
        if not self.log_path.exists():
            return []
        with open(self.log_path) as f:
            events = [json.loads(line) for line in f if line.strip()]
        if correlation_id is None:
            return events
        return [event for event in events if event.get("correlation_id") == correlation_id]
