"""Build validation — deterministic static checks over the generated file set.

Stands in for a real compiler: every source file is run through an ordered
list of independent rules and the diagnostics are rendered as compiler-style
stderr for the Patcher to read.
"""

import re
from typing import TypedDict

from aps.config import get_config
from aps.utils.rules import Diagnostic, default_rules, make_diagnostic

DEFAULT_SOURCE_PATTERN = r"\.(tsx?|jsx?)$"
DEFAULT_FATAL_PATTERNS = (
    "ENOSPC",  # Out of disk space
    "ENOMEM",  # Out of memory
    "permission denied",
    "cannot find module '@/",  # Path alias misconfiguration
)

SUCCESS_STDOUT = [
    "Build started...",
    "Analyzing dependencies...",
    "✓ Static analysis passed",
    "✓ All components validated",
    "✓ Build completed",
]


class ValidationResult(TypedDict):
    success: bool
    stdout: str
    stderr: str
    exit_code: int  # 0 ok, 1 diagnostics, 2 validator failure.
    diagnostics: list[Diagnostic]


def format_diagnostic(diagnostic: Diagnostic) -> str:
    """Render one diagnostic the way a bundler prints a build error."""
    return (
        f"ERROR in {diagnostic['path']}:{diagnostic['line']}:{diagnostic['column']}\n"
        f"{diagnostic['kind'].upper()} ERROR: {diagnostic['message']}"
    )


class BuildValidator:
    """Runs the rule set over a file set and classifies the outcome.

    All arguments default to the ``validator`` section of config.yaml.
    """

    def __init__(self, rules=None, source_pattern: str | None = None, fatal_patterns=None):
        cfg = get_config().get("validator") or {}
        self.rules = rules if rules is not None else default_rules(cfg)
        self.source_re = re.compile(source_pattern or cfg.get("source_pattern", DEFAULT_SOURCE_PATTERN))
        self.fatal_patterns = tuple(
            fatal_patterns if fatal_patterns is not None
            else cfg.get("fatal_patterns", DEFAULT_FATAL_PATTERNS)
        )

    def check_buildability(self, file_set: list[dict]) -> list[Diagnostic]:
        """Return every diagnostic in the file set. Empty list = buildable."""
        paths = {entry["path"] for entry in file_set if entry.get("kind", "file") == "file"}
        diagnostics = []
        for entry in file_set:
            if entry.get("kind", "file") != "file" or not entry.get("content"):
                continue
            if not self.source_re.search(entry["path"]):
                continue
            for rule in self.rules:
                diagnostics.extend(rule.check(entry["path"], entry["content"], paths))
        return diagnostics

    def validate(self, file_set: list[dict]) -> ValidationResult:
        try:
            sources = [
                entry for entry in file_set
                if entry.get("kind", "file") == "file" and entry.get("content")
                and self.source_re.search(entry["path"])
            ]
            diagnostics = self.check_buildability(file_set)
        except Exception as exc:
            # The validator itself broke; report it as a runtime diagnostic.
            return {
                "success": False,
                "stdout": "",
                "stderr": f"Fatal build error: {exc}",
                "exit_code": 2,
                "diagnostics": [make_diagnostic("build", 0, 0, str(exc), "runtime")],
            }

        if diagnostics:
            return {
                "success": False,
                "stdout": "\n".join([
                    "Build started...",
                    f"Analyzing {len(sources)} source files...",
                    f"Found {len(diagnostics)} problem(s).",
                ]),
                "stderr": "\n\n".join(format_diagnostic(d) for d in diagnostics),
                "exit_code": 1,
                "diagnostics": diagnostics,
            }

        return {
            "success": True,
            "stdout": "\n".join(SUCCESS_STDOUT),
            "stderr": "",
            "exit_code": 0,
            "diagnostics": [],
        }

    def is_recoverable(self, result: ValidationResult) -> bool:
        """Whether the Patcher may attempt a fix.

        False on success (nothing to fix) and when stderr carries a fatal
        signature that needs human intervention.
        """
        if result["success"]:
            return False
        stderr = result["stderr"].lower()
        return not any(pattern.lower() in stderr for pattern in self.fatal_patterns)


def extract_error_context(result: ValidationResult) -> dict:
    """Summarize a failed result: primary error, affected files, kind, raw stderr."""
    diagnostics = result.get("diagnostics") or []
    affected = list(dict.fromkeys(d["path"] for d in diagnostics))
    return {
        "primary_error": diagnostics[0]["message"] if diagnostics else "Unknown error",
        "affected_files": affected,
        "error_kind": diagnostics[0]["kind"] if diagnostics else "unknown",
        "stack_trace": result.get("stderr", ""),
    }
