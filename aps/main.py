"""Entry point: validates input, runs the pipeline, writes the run report."""

import sys

from aps.config import get_config
from aps.events import LogEntry, WorkflowCallbacks
from aps.llm.modes import VALID_MODES, make_client
from aps.orchestrator import PipelineOrchestrator, RunResult
from aps.utils.formatter import write_report


def _print_log(entry: LogEntry) -> None:
    stream = sys.stderr if entry["kind"] == "error" else sys.stdout
    print(f"[{entry['timestamp']}] {entry['agent']}: {entry['message']}", file=stream)
    if entry["code_block"]:
        print(entry["code_block"], file=stream)


def _print_phase(phase: str) -> None:
    print(f"\n=== PHASE: {phase.upper()} ===\n")


def run(intent: str, mode: str | None = None) -> RunResult:
    """Run the full pipeline on an intent string.

    Args:
        intent: The user's goal for the generated application.
        mode: simulation | ai | hybrid. None uses config default.
    """
    mode = mode or get_config().get("mode", "hybrid")
    client = make_client(
        mode,
        on_fallback=lambda exc: print(
            f"[APS] AI unavailable ({exc}), continuing in simulation mode...", file=sys.stderr
        ),
    )

    callbacks = WorkflowCallbacks(
        on_log=_print_log,
        on_phase_change=_print_phase,
        on_error=lambda exc: print(f"[APS] Workflow error: {exc}", file=sys.stderr),
    )
    result = PipelineOrchestrator(client, callbacks).start(intent)

    print(f"[APS] Outcome: {result.outcome}" + (f" ({result.reason})" if result.reason else ""))
    if result.state is not None:
        print(f"[APS] Patch attempts: {result.state['iteration']}")
        output_path = write_report(result.state)
        print(f"[APS] Report written to: {output_path}")
    return result


def main() -> None:
    """CLI entry point — accepts the intent as argument or from stdin."""
    mode = None
    args = sys.argv[1:]

    for arg in list(args):
        if arg.startswith("--mode="):
            mode = arg.split("=", 1)[1]
            args.remove(arg)
    if mode is not None and mode not in VALID_MODES:
        print(f"Invalid mode '{mode}'. Must be one of: {sorted(VALID_MODES)}", file=sys.stderr)
        sys.exit(2)

    if args:
        intent = " ".join(args)
    else:
        print("Describe the app you want (Ctrl+D / Ctrl+Z to submit):")
        intent = sys.stdin.read()

    result = run(intent, mode=mode)
    sys.exit(0 if result.outcome == "ready" else 1)


if __name__ == "__main__":
    main()
