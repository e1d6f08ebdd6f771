"""Per-phase instructions.

INSTRUCTION_BUILDERS maps each prompting phase to a pure function
(state) -> contextual instruction text. build_instruction() prefixes the
phase tag and the agent persona so the model (and the scripted client) can
tell which phase is asking.
"""

import json

from aps.state import APSState

SYSTEM_PROMPT = """\
You are the engine of a closed-loop application studio. You build, structure and repair \
Next.js 14 applications by working through a fixed pipeline of specialist agents. You do not \
hand out snippets; you maintain a project.

Each request names exactly one phase in a [PHASE: NAME] tag. Answer as the agent for that \
phase only, start your reply with the same tag, and put the payload in a single fenced \
```json block with the structure the phase asks for. Always include a short "thought" field \
with your reasoning.\
"""

AGENT_PROMPTS = {
    "planning": """\
# ROLE: PLANNER
Turn the user's request into a technical plan the Designer, Architect and Coder can execute \
without guessing. Break the request into 3-7 concrete features, define every entity with typed \
fields, and describe a realistic mock data set of at least 20 records.

Output:
```json
{"thought": "...", "plan": {"features": ["..."], "dataModels": [{"name": "...", "fields": \
[{"name": "...", "type": "..."}]}], "technicalRequirements": ["..."], "mockDataSchema": {}}}
```""",
    "designing": """\
# ROLE: VISUAL DESIGNER
Translate the aesthetic of the request into concrete Tailwind design tokens: semantic colors \
(primary, secondary, accent, background, text), a heading/body/code font pairing, spacing \
tokens and a theme name.

Output:
```json
{"thought": "...", "design_system": {"colorPalette": {}, "typography": {}, "spacing": {}, \
"theme": "..."}}
```""",
    "architecting": """\
# ROLE: ARCHITECT
Scaffold the file tree of a Next.js 14 App Router project (src/app/layout.tsx and \
src/app/page.tsx are required, mock data lives in src/lib/mockData.ts). List paths only; the \
Coder writes the content.

Output:
```json
{"thought": "...", "file_system": [{"path": "src/app/page.tsx", "type": "file"}, \
{"path": "src/components", "type": "directory"}]}
```""",
    "coding": """\
# ROLE: CODER
Write complete, working TypeScript for every file in the tree. Apply the design tokens \
directly, import mock data from '@/lib/mockData', and leave no placeholders of any kind.

Output:
```json
{"thought": "...", "files": [{"path": "src/app/page.tsx", "content": "..."}]}
```""",
    "patching": """\
# ROLE: PATCHER
The build failed. Read stderr first, find the root cause, and answer with surgical edits: \
each fix replaces an exact "before" snippet of one file with an "after" snippet. Do not \
rewrite whole files. If you cannot make progress, answer {"request_human_help": true}.

Output:
```json
{"thought": "...", "fixes": [{"file": "src/...", "line": 1, "before": "...", "after": "..."}]}
```""",
}


def _dump(value) -> str:
    return json.dumps(value, indent=2)


def planning_instruction(state: APSState) -> str:
    return (
        f"## USER REQUEST\n\"{state['intent']}\"\n\n"
        "## YOUR TASK\n"
        "Analyze the request and produce the plan. Remember the mock data mandate: "
        "at least 20 realistic records."
    )


def designing_instruction(state: APSState) -> str:
    return (
        f"## USER REQUEST\n\"{state['intent']}\"\n\n"
        f"## EXISTING PLAN\n{_dump(state['plan'])}\n\n"
        "## YOUR TASK\n"
        f"Create a design system that matches the vibe of \"{state['intent']}\"."
    )


def architecting_instruction(state: APSState) -> str:
    plan = state["plan"] or {}
    theme = (state["design_tokens"] or {}).get("theme", "professional")
    return (
        "## PROJECT CONTEXT\n"
        f"Features: {_dump(plan.get('features', []))}\n"
        f"Theme: {theme}\n\n"
        "## YOUR TASK\n"
        "Create the complete file tree: every directory and file path, no content yet."
    )


def coding_instruction(state: APSState) -> str:
    paths = [entry["path"] for entry in state["file_set"] if entry["kind"] == "file"]
    return (
        "## PROJECT CONTEXT\n"
        f"Plan: {_dump(state['plan'])}\n"
        f"Design System: {_dump(state['design_tokens'])}\n"
        f"File Tree: {_dump(paths)}\n\n"
        "## YOUR TASK\n"
        "Generate complete, functional code for every file in the tree."
    )


def patching_instruction(state: APSState) -> str:
    last = state["build_log"][-1] if state["build_log"] else None
    if last is None:
        exit_code = "unknown"
        stderr = "No error output available"
        stdout = "No output"
    else:
        exit_code = last["exit_code"]
        stderr = "\n".join(last["stderr_lines"]) or "No error output available"
        stdout = "\n".join(last["stdout_lines"][-10:]) or "No output"
    return (
        "## BUILD ERROR DETECTED\n\n"
        f"Exit Code: {exit_code}\n\n"
        f"stderr:\n```\n{stderr}\n```\n\n"
        f"stdout (last 10 lines):\n```\n{stdout}\n```\n\n"
        f"## CURRENT ITERATION: {state['iteration']} / {state['max_iterations']}\n\n"
        "## YOUR TASK\n"
        "1. Identify the root cause from stderr.\n"
        "2. Determine which file(s) need fixes.\n"
        "3. Return surgical before/after edits.\n"
        "4. If the same error keeps coming back, return {\"request_human_help\": true}."
    )


INSTRUCTION_BUILDERS = {
    "planning": planning_instruction,
    "designing": designing_instruction,
    "architecting": architecting_instruction,
    "coding": coding_instruction,
    "patching": patching_instruction,
}


def build_instruction(phase: str, state: APSState) -> str:
    """Full user instruction for a phase: tag, persona, then the state-derived context."""
    return f"[PHASE: {phase.upper()}]\n\n{AGENT_PROMPTS[phase]}\n\n{INSTRUCTION_BUILDERS[phase](state)}"
