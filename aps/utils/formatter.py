"""Run report — renders the final pipeline state as a Markdown document."""

from pathlib import Path

from aps.config import get_config
from aps.state import APSState

_STATUS_LABELS = {
    "ready": "Ready",
    "fatal": "Fatal build error",
    "max_iterations_reached": "Escalated: max iterations reached",
    "human_help_requested": "Escalated: human help requested",
    "in_progress": "Stopped",
}


def _render_markdown(state: APSState) -> str:
    """Convert a final state into a Markdown run report."""
    lines = ["# Pipeline Run Report", ""]

    lines.append("## Intent")
    lines.append("")
    lines.append(state.get("intent", ""))
    lines.append("")

    lines.append(f"- **Status:** {_STATUS_LABELS.get(state['status'], state['status'])}")
    lines.append(f"- **Patch attempts:** {state['iteration']}/{state['max_iterations']}")
    lines.append("")

    # Plan
    plan = state.get("plan") or {}
    features = plan.get("features") or []
    if features:
        lines.append("## Features")
        lines.append("")
        for feature in features:
            lines.append(f"- {feature}")
        lines.append("")

    # Design
    tokens = state.get("design_tokens") or {}
    if tokens:
        lines.append("## Design System")
        lines.append("")
        lines.append(f"- **Theme:** {tokens.get('theme', 'unspecified')}")
        typography = tokens.get("typography") or {}
        if isinstance(typography, dict) and typography:
            fonts = ", ".join(f"{role}: `{font}`" for role, font in typography.items())
            lines.append(f"- **Typography:** {fonts}")
        lines.append("")

    # File set
    file_set = state.get("file_set") or []
    if file_set:
        lines.append("## Files")
        lines.append("")
        lines.append("| Path | Kind | Lines |")
        lines.append("|------|------|-------|")
        for entry in file_set:
            content = entry.get("content")
            count = len(content.splitlines()) if content else 0
            lines.append(f"| `{entry['path']}` | {entry['kind']} | {count} |")
        lines.append("")

    # Build log
    build_log = state.get("build_log") or []
    if build_log:
        lines.append("## Build Log")
        lines.append("")
        for number, attempt in enumerate(build_log, 1):
            lines.append(f"{number}. exit code `{attempt['exit_code']}` at {attempt['timestamp']}")
        lines.append("")

    return "\n".join(lines)


def render_report(state: APSState) -> str:
    """Render the report, appending a trace log when the run did not reach Ready."""
    content = _render_markdown(state)

    if state["status"] in ("fatal", "max_iterations_reached", "human_help_requested"):
        diagnostics = (state.get("last_validation") or {}).get("diagnostics") or []
        content += "\n---\n\n## Trace Log — Unresolved Diagnostics\n\n"
        if state.get("failure_reason"):
            content += f"{state['failure_reason']}\n\n"
        for d in diagnostics:
            content += f"- **[{d['kind']}]** `{d['path']}:{d['line']}:{d['column']}` {d['message']}\n"

    return content


def write_report(state: APSState) -> Path:
    """Write the run report to the configured output directory.

    Returns the Path to the written file; never overwrites an earlier report.
    """
    config = get_config()
    base_path = Path(__file__).resolve().parent.parent.parent / config["output_path"]
    output_dir = base_path.parent
    output_dir.mkdir(parents=True, exist_ok=True)

    output_path = output_dir / f"{base_path.stem}.md"
    counter = 1
    while output_path.exists():
        counter += 1
        output_path = output_dir / f"{base_path.stem} ({counter}).md"

    output_path.write_text(render_report(state), encoding="utf-8")
    return output_path
