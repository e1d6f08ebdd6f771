"""Pipeline orchestrator — runs the phase graph once per start() call.

Single-flight: one run at a time per orchestrator. The stop flag is polled
between graph steps, so stop() never interrupts an in-flight completion call
but guarantees no further phase starts after it.
"""

import threading
from dataclasses import dataclass
from typing import Literal

from aps.agents.phases import PhaseRunner
from aps.config import get_config
from aps.events import WorkflowCallbacks
from aps.graph import build_graph, recursion_limit
from aps.state import APSState, initial_state
from aps.utils import parsing
from aps.utils.buildability import BuildValidator
from aps.utils.validator import validate_input

Outcome = Literal["ready", "escalated", "fatal", "failed", "stopped"]


class WorkflowAlreadyRunningError(RuntimeError):
    """start() was called while a run is still in flight."""


class FatalBuildError(RuntimeError):
    """The build failed with a diagnostic that needs human intervention."""


@dataclass
class RunResult:
    outcome: Outcome
    state: APSState | None = None
    reason: str = ""  # e.g. "max_iterations_reached" / "human_help_requested" for escalations.
    error: BaseException | None = None


_ESCALATION_STATUSES = {"max_iterations_reached", "human_help_requested"}


class PipelineOrchestrator:
    """Drives Plan → Design → Architect → Code → Validate → [Patch ⟲] → Ready.

    Args:
        client: Completion client (anything with send(system, user, history)).
        callbacks: Consumer hooks; defaults to no-ops.
        validator: BuildValidator; built from config when omitted.
        parser: Response parser callable (raw_text, phase) -> ParseResult.
        max_iterations: Patch budget; defaults to config max_iterations.
    """

    def __init__(self, client, callbacks: WorkflowCallbacks | None = None,
                 validator: BuildValidator | None = None, parser=parsing.extract,
                 max_iterations: int | None = None):
        self.client = client
        self.callbacks = callbacks or WorkflowCallbacks()
        self.validator = validator
        self.parser = parser
        self.max_iterations = max_iterations
        self.state: APSState | None = None
        self._run_lock = threading.Lock()
        self._stop_requested = False

    @property
    def is_running(self) -> bool:
        return self._run_lock.locked()

    def stop(self) -> None:
        """Request a cooperative stop before the next phase."""
        self._stop_requested = True

    def start(self, intent: str) -> RunResult:
        """Run the whole pipeline for one intent and return its tagged result.

        Raises WorkflowAlreadyRunningError if a run is already in flight; every
        other failure is reported through on_error and the returned result.
        """
        if not self._run_lock.acquire(blocking=False):
            raise WorkflowAlreadyRunningError("Workflow already running")

        self._stop_requested = False
        try:
            result = self._run(intent)
        except Exception as exc:
            result = RunResult("failed", state=self.state, reason=str(exc), error=exc)
        finally:
            self._run_lock.release()

        if result.error is not None:
            self.callbacks.on_error(result.error)
        else:
            self.callbacks.on_complete(result)
        return result

    def _run(self, intent: str) -> RunResult:
        validated = validate_input(intent)
        max_iterations = self.max_iterations
        if max_iterations is None:
            max_iterations = get_config().get("max_iterations", 3)

        self.state = initial_state(validated, max_iterations)
        runner = PhaseRunner(self.client, self.callbacks, self.validator or BuildValidator(), self.parser)
        graph = build_graph(runner)

        self.callbacks.log("SYSTEM", "Initializing closed-loop pipeline", "system")
        self.callbacks.log("SYSTEM", f'User intent: "{validated}"')

        if self._stop_requested:
            return self._stopped()

        for snapshot in graph.stream(
            self.state,
            {"recursion_limit": recursion_limit(max_iterations)},
            stream_mode="values",
        ):
            self.state = snapshot
            self.callbacks.state_update(snapshot)
            if self._stop_requested and snapshot["status"] == "in_progress":
                return self._stopped()

        return self._result_from(self.state)

    def _stopped(self) -> RunResult:
        self.callbacks.log("SYSTEM", "Workflow stopped before the next phase.", "system")
        return RunResult("stopped", state=self.state, reason="stopped")

    @staticmethod
    def _result_from(state: APSState) -> RunResult:
        status = state["status"]
        if status == "ready":
            return RunResult("ready", state=state)
        if status in _ESCALATION_STATUSES:
            return RunResult("escalated", state=state, reason=status)
        if status == "fatal":
            error = FatalBuildError(state["failure_reason"])
            return RunResult("fatal", state=state, reason=state["failure_reason"], error=error)
        # The graph always ends in a terminal node; anything else is a wiring bug.
        error = RuntimeError(f"Pipeline ended without a terminal status ({status!r})")
        return RunResult("failed", state=state, reason=str(error), error=error)
