"""Response parsing — pull a structured payload out of loosely-structured model output.

Malformed output is expected, not exceptional: extract() never raises.
It returns one of three result variants and callers branch on the variant
(or on the shared ``raw`` flag).
"""

import json
import re
from dataclasses import dataclass

_FENCE_RE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)

UNSTRUCTURED_THOUGHT = "Extracted from unstructured response"

# Key spellings the model uses interchangeably, per canonical field.
_KEY_ALIASES = {
    "design_tokens": ("design_tokens", "designTokens", "design_system", "designSystem"),
    "file_set": ("file_set", "fileSet", "file_system", "fileSystem"),
    "path": ("path", "file", "file_path", "filePath"),
    "line_hint": ("line_hint", "lineHint", "line"),
    "request_human_help": ("request_human_help", "requestHumanHelp"),
}

VALID_KINDS = {"file", "directory"}


def strip_fences(text: str) -> str:
    """Strip markdown code fences from LLM output if present."""
    match = _FENCE_RE.search(text)
    return match.group(1).strip() if match else text.strip()


@dataclass(frozen=True)
class StructuredOk:
    """Payload parsed from a fenced JSON block."""

    payload: dict
    raw: bool = False


@dataclass(frozen=True)
class StructuredFallback:
    """No usable fenced block; the whole text parsed as JSON."""

    payload: dict
    raw: bool = False


@dataclass(frozen=True)
class RawRepresentation:
    """Nothing parsed; payload carries the text verbatim."""

    payload: dict
    raw: bool = True


ParseResult = StructuredOk | StructuredFallback | RawRepresentation


def _load_object(text: str) -> dict | None:
    try:
        data = json.loads(text)
    except (ValueError, TypeError, RecursionError):
        return None
    return data if isinstance(data, dict) else None


def _first(data: dict, field: str, default=None):
    for key in _KEY_ALIASES.get(field, (field,)):
        if key in data:
            return data[key]
    return default


def _normalize_file_set(entries) -> list[dict]:
    file_set = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        path = _first(entry, "path")
        if not isinstance(path, str) or not path.strip():
            continue
        kind = entry.get("kind", entry.get("type", "file"))
        file_set.append({"path": path.strip(), "kind": kind if kind in VALID_KINDS else "file"})
    return file_set


def _normalize_files(entries) -> list[dict]:
    files = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        path = _first(entry, "path")
        content = entry.get("content")
        if isinstance(path, str) and path.strip() and isinstance(content, str):
            files.append({"path": path.strip(), "content": content})
    return files


def _normalize_fixes(entries) -> list[dict]:
    fixes = []
    for entry in entries if isinstance(entries, list) else []:
        if not isinstance(entry, dict):
            continue
        path = _first(entry, "path")
        before = entry.get("before")
        if not isinstance(path, str) or not isinstance(before, str):
            continue
        after = entry.get("after")
        line_hint = _first(entry, "line_hint")
        fixes.append({
            "path": path.strip(),
            "line_hint": line_hint if isinstance(line_hint, int) else None,
            "before": before,
            "after": after if isinstance(after, str) else "",
        })
    return fixes


def normalize_payload(data: dict, phase: str) -> dict:
    """Reduce a parsed object to the canonical payload shape for a phase."""
    thought = data.get("thought")
    payload = {"thought": thought if isinstance(thought, str) else "", "raw": False}

    if phase == "planning":
        plan = data.get("plan")
        payload["plan"] = plan if isinstance(plan, dict) else None
    elif phase == "designing":
        tokens = _first(data, "design_tokens")
        payload["design_tokens"] = tokens if isinstance(tokens, dict) else None
    elif phase == "architecting":
        payload["file_set"] = _normalize_file_set(_first(data, "file_set"))
    elif phase == "coding":
        payload["files"] = _normalize_files(data.get("files"))
    elif phase == "patching":
        payload["fixes"] = _normalize_fixes(data.get("fixes"))
        payload["request_human_help"] = _first(data, "request_human_help") is True
    return payload


def extract(raw_text: str, expected_phase: str) -> ParseResult:
    """Extract the structured payload for ``expected_phase`` from raw completion text.

    Tries a fenced block first, then the whole text; otherwise returns a
    RawRepresentation flagged ``raw``.
    """
    text = raw_text if isinstance(raw_text, str) else ""

    if _FENCE_RE.search(text):
        data = _load_object(strip_fences(text))
        if data is not None:
            return StructuredOk(normalize_payload(data, expected_phase))

    data = _load_object(text.strip())
    if data is not None:
        return StructuredFallback(normalize_payload(data, expected_phase))

    return RawRepresentation({"thought": UNSTRUCTURED_THOUGHT, "output": text, "raw": True})
