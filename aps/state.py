"""APS State — single source of truth passed through the graph."""

from datetime import datetime, timezone
from typing import Literal, TypedDict

Phase = Literal["planning", "designing", "architecting", "coding", "patching", "ready"]
Status = Literal[
    "in_progress", "ready", "fatal", "max_iterations_reached", "human_help_requested"
]


class FileEntry(TypedDict):
    path: str  # Unique key within the file set.
    content: str | None  # None until the Coder fills it.
    kind: Literal["file", "directory"]
    last_modified: str  # ISO-8601 timestamp.


class BuildAttempt(TypedDict):
    stdout_lines: list[str]
    stderr_lines: list[str]
    exit_code: int
    timestamp: str


class APSState(TypedDict):
    intent: str  # Original user goal. Immutable after init.
    plan: dict | None  # Written once by the Planning phase.
    design_tokens: dict | None  # Written once by the Designing phase.
    file_set: list[FileEntry]
    build_log: list[BuildAttempt]  # Append-only, one entry per validation.
    last_validation: dict | None  # Latest ValidationResult + "recoverable".
    iteration: int  # Patch attempts so far. Starts at 0.
    max_iterations: int
    phase: Phase
    status: Status
    help_requested: bool  # Set by a Patch response asking for human review.
    stagnation_count: int  # Consecutive attempts that reproduced the same stderr.
    failure_reason: str


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def initial_state(intent: str, max_iterations: int) -> APSState:
    """Fresh state for one run. Never reuse across runs."""
    return {
        "intent": intent,
        "plan": None,
        "design_tokens": None,
        "file_set": [],
        "build_log": [],
        "last_validation": None,
        "iteration": 0,
        "max_iterations": max_iterations,
        "phase": "planning",
        "status": "in_progress",
        "help_requested": False,
        "stagnation_count": 0,
        "failure_reason": "",
    }
