"""Shared fixtures for the APS test suite."""

import json
from unittest.mock import patch

import pytest

from aps.events import WorkflowCallbacks
from aps.state import initial_state


@pytest.fixture(autouse=True)
def mock_config(tmp_path):
    """Patch the config singleton with test-friendly values."""
    test_config = {
        "model": "test-model",
        "mode": "simulation",
        "generation": {"temperature": 0.7, "top_k": 40, "top_p": 0.95, "max_output_tokens": 2048},
        "llm_max_retries": 3,
        "retry_initial_delay": 1.0,
        "retry_max_delay": 10.0,
        "max_iterations": 3,
        "guidance_enabled": False,
        "output_path": str(tmp_path / "output" / "report.md"),
    }
    with patch("aps.config._config", test_config):
        yield test_config


@pytest.fixture
def base_state():
    """Minimal valid APSState."""
    return initial_state("Build a revenue dashboard", max_iterations=3)


@pytest.fixture
def make_response():
    """Return a helper that renders a payload the way the model answers."""
    def _make(payload: dict, phase: str | None = None) -> str:
        tag = f"[PHASE: {phase.upper()}]\n" if phase else ""
        return f"{tag}```json\n{json.dumps(payload, indent=2)}\n```"
    return _make


class EventRecorder:
    """Collects every callback in emission order."""

    def __init__(self):
        self.events = []
        self.logs = []
        self.phases = []
        self.snapshots = []
        self.completed = []
        self.errors = []

    def callbacks(self, **overrides) -> WorkflowCallbacks:
        hooks = {
            "on_log": self._on_log,
            "on_phase_change": self._on_phase_change,
            "on_state_update": self._on_state_update,
            "on_complete": self._on_complete,
            "on_error": self._on_error,
        }
        hooks.update(overrides)
        return WorkflowCallbacks(**hooks)

    def _on_log(self, entry):
        self.logs.append(entry)
        self.events.append(("log", entry["message"]))

    def _on_phase_change(self, phase):
        self.phases.append(phase)
        self.events.append(("phase", phase))

    def _on_state_update(self, state):
        self.snapshots.append(state)
        self.events.append(("state", state["status"]))

    def _on_complete(self, result):
        self.completed.append(result)
        self.events.append(("complete", result.outcome))

    def _on_error(self, exc):
        self.errors.append(exc)
        self.events.append(("error", type(exc).__name__))

    def messages(self, agent: str | None = None) -> list[str]:
        return [e["message"] for e in self.logs if agent is None or e["agent"] == agent]


@pytest.fixture
def recorder():
    return EventRecorder()
