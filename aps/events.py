"""Consumer callback contract and log entries emitted during a run."""

import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Literal, TypedDict

LogKind = Literal["info", "success", "error", "system"]


class LogEntry(TypedDict):
    id: str
    timestamp: str
    agent: str
    message: str
    kind: LogKind
    code_block: str | None


def create_log(
    agent: str, message: str, kind: LogKind = "info", code_block: str | None = None
) -> LogEntry:
    return {
        "id": uuid.uuid4().hex[:9],
        "timestamp": datetime.now().strftime("%H:%M:%S"),
        "agent": agent,
        "message": message,
        "kind": kind,
        "code_block": code_block,
    }


def _noop(*_args: Any) -> None:
    return None


@dataclass
class WorkflowCallbacks:
    """Hooks a consumer registers on the orchestrator.

    Exactly one of on_complete / on_error fires per run, as the last event.
    on_state_update is optional; leave it as None to skip state snapshots.
    """

    on_log: Callable[[LogEntry], None] = _noop
    on_phase_change: Callable[[str], None] = _noop
    on_state_update: Callable[[dict], None] | None = None
    on_complete: Callable[[Any], None] = _noop
    on_error: Callable[[BaseException], None] = _noop

    def log(self, agent: str, message: str, kind: LogKind = "info", code_block: str | None = None) -> None:
        self.on_log(create_log(agent, message, kind, code_block))

    def state_update(self, state: dict) -> None:
        if self.on_state_update is not None:
            self.on_state_update(state)
