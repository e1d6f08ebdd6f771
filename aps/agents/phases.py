"""Phase nodes for the StateGraph.

A PhaseRunner owns the collaborators of one run (completion client,
validator, event sink) plus the conversation history, and exposes one node
method per pipeline step. Nodes read the state and return the keys they
change; lists are copied, never mutated in place.
"""

from aps.agents.prompts import SYSTEM_PROMPT, build_instruction
from aps.events import WorkflowCallbacks
from aps.state import APSState, BuildAttempt, FileEntry, now_iso
from aps.utils import parsing
from aps.utils.buildability import BuildValidator, extract_error_context
from aps.utils.guidance import load_guidance

AGENT_NAMES = {
    "planning": "PLANNER",
    "designing": "DESIGNER",
    "architecting": "ARCHITECT",
    "coding": "CODER",
    "patching": "PATCHER",
}


def merge_file_set(file_set: list[FileEntry], entries: list[dict]) -> list[FileEntry]:
    """Add scaffolded paths that are not yet present. Existing entries are kept."""
    merged = [dict(entry) for entry in file_set]
    known = {entry["path"] for entry in merged}
    for entry in entries:
        if entry["path"] in known:
            continue
        known.add(entry["path"])
        merged.append({
            "path": entry["path"],
            "content": None,
            "kind": entry.get("kind", "file"),
            "last_modified": now_iso(),
        })
    return merged


def merge_generated_files(file_set: list[FileEntry], files: list[dict]) -> list[FileEntry]:
    """Fill content for generated files, appending entries for paths the tree missed."""
    merged = [dict(entry) for entry in file_set]
    by_path = {entry["path"]: entry for entry in merged}
    for generated in files:
        existing = by_path.get(generated["path"])
        if existing is not None:
            existing["content"] = generated["content"]
            existing["kind"] = "file"
            existing["last_modified"] = now_iso()
        else:
            entry = {
                "path": generated["path"],
                "content": generated["content"],
                "kind": "file",
                "last_modified": now_iso(),
            }
            merged.append(entry)
            by_path[entry["path"]] = entry
    return merged


def apply_fixes(file_set: list[FileEntry], fixes: list[dict]) -> tuple[list[FileEntry], list[dict]]:
    """Apply before/after fixes in order against the same in-memory content.

    Only the first occurrence of ``before`` is replaced. A fix whose file is
    missing (or has no content) or whose ``before`` text is absent leaves the
    file set untouched. Returns the new file set and one outcome record per
    fix: {"fix", "applied", "reason"}.
    """
    patched = [dict(entry) for entry in file_set]
    by_path = {entry["path"]: entry for entry in patched}
    outcomes = []
    for fix in fixes:
        target = by_path.get(fix["path"])
        if target is None or target.get("content") is None:
            outcomes.append({"fix": fix, "applied": False, "reason": "file not found"})
            continue
        if not fix["before"] or fix["before"] not in target["content"]:
            outcomes.append({"fix": fix, "applied": False, "reason": "before text not found"})
            continue
        target["content"] = target["content"].replace(fix["before"], fix["after"], 1)
        target["last_modified"] = now_iso()
        outcomes.append({"fix": fix, "applied": True, "reason": ""})
    return patched, outcomes


class PhaseRunner:
    """Node implementations bound to one run's collaborators."""

    def __init__(self, client, callbacks: WorkflowCallbacks, validator: BuildValidator | None = None,
                 parser=parsing.extract):
        self.client = client
        self.callbacks = callbacks
        self.validator = validator or BuildValidator()
        self.parse = parser
        self.history: list[tuple[str, str]] = []

    # --- helpers ---

    def _system_instruction(self) -> str:
        guidance = load_guidance()
        if guidance:
            return f"{SYSTEM_PROMPT}\n\n## Operating Rules\n{guidance}"
        return SYSTEM_PROMPT

    def _enter(self, phase: str, banner: str) -> None:
        self.callbacks.on_phase_change(phase)
        self.callbacks.log(AGENT_NAMES[phase], banner)

    def _ask(self, phase: str, state: APSState) -> dict:
        """One request/response/parse cycle. CompletionError propagates."""
        instruction = build_instruction(phase, state)
        completion = self.client.send(self._system_instruction(), instruction, list(self.history))
        self.history.extend([("user", instruction), ("model", completion.text)])

        agent = AGENT_NAMES[phase]
        if completion.phase and completion.phase != phase:
            self.callbacks.log(
                agent, f"Response tagged {completion.phase.upper()}, expected {phase.upper()}", "error"
            )

        result = self.parse(completion.text, phase)
        payload = result.payload
        if result.raw:
            self.callbacks.log(
                agent, "Response was not structured; phase produced no changes", "error",
                code_block=payload["output"][:500],
            )
        elif payload.get("thought"):
            self.callbacks.log(agent, payload["thought"])
        return payload

    # --- prompting phases ---

    def plan_node(self, state: APSState) -> dict:
        self._enter("planning", "Starting Planning Phase: analyzing user intent...")
        payload = self._ask("planning", state)
        plan = payload.get("plan")
        if not plan:
            return {"phase": "planning"}

        features = plan.get("features") or []
        models = plan.get("dataModels") or plan.get("data_models") or []
        self.callbacks.log("PLANNER", f"Defined {len(features)} core features", "success")
        self.callbacks.log("PLANNER", f"Created {len(models)} data models", "success")
        return {"phase": "planning", "plan": plan}

    def design_node(self, state: APSState) -> dict:
        self._enter("designing", "Starting Design Phase: translating the vibe into tokens...")
        payload = self._ask("designing", state)
        tokens = payload.get("design_tokens")
        if not tokens:
            return {"phase": "designing"}

        self.callbacks.log("DESIGNER", f"Theme: {tokens.get('theme', 'unspecified')}", "success")
        palette = tokens.get("colorPalette") or {}
        if isinstance(palette, dict):
            self.callbacks.log("DESIGNER", f"Color palette: {len(palette)} semantic tokens", "success")
        return {"phase": "designing", "design_tokens": tokens}

    def architect_node(self, state: APSState) -> dict:
        self._enter("architecting", "Starting Architecture Phase: scaffolding the file tree...")
        payload = self._ask("architecting", state)
        entries = payload.get("file_set") or []
        if not entries:
            return {"phase": "architecting"}

        file_set = merge_file_set(state["file_set"], entries)
        files = sum(1 for e in file_set if e["kind"] == "file")
        self.callbacks.log(
            "ARCHITECT", f"Created {files} files and {len(file_set) - files} directories", "success",
            code_block="\n".join(e["path"] for e in file_set[:5]),
        )
        return {"phase": "architecting", "file_set": file_set}

    def code_node(self, state: APSState) -> dict:
        self._enter("coding", "Starting Coding Phase: implementing every file...")
        payload = self._ask("coding", state)
        files = payload.get("files") or []
        if not files:
            return {"phase": "coding"}

        file_set = merge_generated_files(state["file_set"], files)
        self.callbacks.log("CODER", f"Generated {len(files)} files", "success")
        return {"phase": "coding", "file_set": file_set}

    # --- validation and self-healing ---

    def validate_node(self, state: APSState) -> dict:
        self.callbacks.log("SYSTEM", "Starting compilation validation...", "system")
        result = self.validator.validate(state["file_set"])
        recoverable = self.validator.is_recoverable(result)

        attempt: BuildAttempt = {
            "stdout_lines": result["stdout"].split("\n"),
            "stderr_lines": result["stderr"].split("\n"),
            "exit_code": result["exit_code"],
            "timestamp": now_iso(),
        }
        updates = {
            "build_log": state["build_log"] + [attempt],
            "last_validation": {**result, "recoverable": recoverable},
        }

        if result["success"]:
            self.callbacks.log("SYSTEM", "Compilation successful!", "success", code_block=result["stdout"])
            return updates

        context = extract_error_context(result)
        self.callbacks.log(
            "SYSTEM",
            f"Build failed with {len(result['diagnostics'])} problem(s) in "
            f"{len(context['affected_files'])} file(s): {context['primary_error']}",
            "error",
        )
        self.callbacks.log("STDERR", result["stderr"], "error")

        previous = state["last_validation"]
        if state["iteration"] > 0 and previous and previous["stderr"] == result["stderr"]:
            self.callbacks.log(
                "PATCHER", f"Same error persists after attempt {state['iteration']}", "error"
            )
            updates["stagnation_count"] = state["stagnation_count"] + 1
        elif state["stagnation_count"]:
            updates["stagnation_count"] = 0
        return updates

    def increment_node(self, state: APSState) -> dict:
        """Bump the iteration counter before each Patch attempt."""
        iteration = state["iteration"] + 1
        self.callbacks.log(
            "PATCHER", f"Healing attempt {iteration}/{state['max_iterations']}..."
        )
        return {"iteration": iteration}

    def patch_node(self, state: APSState) -> dict:
        self._enter("patching", "Analyzing error logs...")
        payload = self._ask("patching", state)

        if payload.get("request_human_help"):
            self.callbacks.log("PATCHER", "Complex error detected. Human review requested.", "error")
            return {"phase": "patching", "help_requested": True}

        fixes = payload.get("fixes") or []
        if not fixes:
            self.callbacks.log("PATCHER", "No fixes proposed in this attempt", "error")
            return {"phase": "patching"}

        file_set, outcomes = apply_fixes(state["file_set"], fixes)
        self.callbacks.log("PATCHER", f"Identified {len(fixes)} fixes", "success")
        for index, outcome in enumerate(outcomes, 1):
            fix = outcome["fix"]
            where = f"{fix['path']}:{fix['line_hint']}" if fix["line_hint"] else fix["path"]
            if outcome["applied"]:
                self.callbacks.log("PATCHER", f"  {index}. {where} - applied surgical fix", "success")
            else:
                self.callbacks.log("PATCHER", f"  {index}. {where} - skipped ({outcome['reason']})", "error")
        return {"phase": "patching", "file_set": file_set}

    # --- terminal nodes ---

    def ready_node(self, state: APSState) -> dict:
        self.callbacks.on_phase_change("ready")
        self.callbacks.log("SYSTEM", "Application ready! All agents completed successfully.", "success")
        return {"phase": "ready", "status": "ready"}

    def fatal_node(self, state: APSState) -> dict:
        stderr = (state["last_validation"] or {}).get("stderr", "")
        self.callbacks.log("PATCHER", "Fatal error detected. Human intervention required.", "error")
        return {"status": "fatal", "failure_reason": f"Fatal build error: {stderr}"}

    def timeout_node(self, state: APSState) -> dict:
        self.callbacks.log(
            "PATCHER", "Max healing iterations reached. Requesting human assistance.", "error"
        )
        return {
            "status": "max_iterations_reached",
            "failure_reason": f"Build still failing after {state['iteration']} patch attempts",
        }

    def escalate_node(self, state: APSState) -> dict:
        self.callbacks.log("SYSTEM", "Patcher requested human review. Please review the logs.", "error")
        return {
            "status": "human_help_requested",
            "failure_reason": f"Patcher requested human help on attempt {state['iteration']}",
        }
