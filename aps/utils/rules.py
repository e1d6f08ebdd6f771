"""Declarative static-check rules applied by the build validator.

Each rule is independent: check(path, content, paths) returns the
diagnostics it finds in one source file. ``paths`` is the set of file paths
in the whole file set, for rules that resolve cross-file references.
"""

import re
from typing import Literal, TypedDict

DiagnosticKind = Literal["syntax", "type", "import", "runtime"]

DEFAULT_PLACEHOLDERS = (
    "// ... rest of code",
    "TODO:",
    "// Implement later",
    "// Add more",
    "Lorem ipsum",
    "Sample Product 1",
)
DEFAULT_BAD_IMPORTS = (
    {"module": "recharts", "symbol": "LineChart", "suggestion": "Line"},
)
DEFAULT_PATH_ALIASES = {"@/": "src/"}

_RESOLVE_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx")

# A quote right after a word character is an apostrophe in JSX text, not a string opener.
_STRING_RE = re.compile(r"(?<!\w)'(?:\\.|[^'\\])*'|\"(?:\\.|[^\"\\])*\"|`(?:\\.|[^`\\])*`")
_INLINE_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/")
_LINE_COMMENT_RE = re.compile(r"//.*$")
_NAMED_IMPORT_RE = re.compile(r"import\s+(?:type\s+)?\{([^}]*)\}\s*from\s*['\"]([^'\"]+)['\"]")
_MODULE_SPEC_RE = re.compile(r"(?:\bfrom|\bimport|\brequire\()\s*\(?\s*['\"]([^'\"]+)['\"]")
_INTERFACE_START_RE = re.compile(r"^\s*(?:export\s+)?interface\s+\w+[^{]*\{")
_MEMBER_RE = re.compile(r"^\w+\??:\s*[\w\[\]<>|.'\" ]+$")


class Diagnostic(TypedDict):
    path: str
    line: int  # 1-based; 0 when not tied to a line.
    column: int  # 0-based.
    message: str
    kind: DiagnosticKind


def make_diagnostic(path: str, line: int, column: int, message: str, kind: DiagnosticKind) -> Diagnostic:
    return {"path": path, "line": line, "column": max(column, 0), "message": message, "kind": kind}


def _blank(match: re.Match) -> str:
    return " " * len(match.group(0))


def code_only(line: str) -> str:
    """Blank out string literals and comments, keeping column positions."""
    line = _STRING_RE.sub(_blank, line)
    line = _INLINE_BLOCK_COMMENT_RE.sub(_blank, line)
    return _LINE_COMMENT_RE.sub(_blank, line)


class ForbiddenPlaceholderRule:
    """Banned substrings that signal incomplete ("lazy") output."""

    def __init__(self, patterns=DEFAULT_PLACEHOLDERS):
        self.patterns = tuple(patterns)

    def check(self, path: str, content: str, paths: set[str]) -> list[Diagnostic]:
        diagnostics = []
        for number, line in enumerate(content.split("\n"), 1):
            for pattern in self.patterns:
                if pattern in line:
                    diagnostics.append(make_diagnostic(
                        path, number, line.index(pattern),
                        f'Forbidden placeholder detected: "{pattern}". '
                        "All code must be complete and functional.",
                        "syntax",
                    ))
        return diagnostics


class BraceBalanceRule:
    """Running brace depth across the file; flags stray closers and unclosed openers."""

    def check(self, path: str, content: str, paths: set[str]) -> list[Diagnostic]:
        diagnostics = []
        depth = 0
        lines = content.split("\n")
        for number, line in enumerate(lines, 1):
            for column, char in enumerate(code_only(line)):
                if char == "{":
                    depth += 1
                elif char == "}":
                    if depth == 0:
                        diagnostics.append(make_diagnostic(
                            path, number, column, "Unexpected token '}'", "syntax"
                        ))
                    else:
                        depth -= 1
        if depth > 0:
            last = len(lines)
            diagnostics.append(make_diagnostic(
                path, last, len(lines[-1]),
                f"'}}' expected: {depth} unclosed brace(s) at end of file", "syntax",
            ))
        return diagnostics


class KnownBadImportRule:
    """Named imports of symbols a library is known not to export."""

    def __init__(self, signatures=DEFAULT_BAD_IMPORTS):
        self.signatures = [dict(sig) for sig in signatures]

    def check(self, path: str, content: str, paths: set[str]) -> list[Diagnostic]:
        diagnostics = []
        for number, line in enumerate(content.split("\n"), 1):
            for match in _NAMED_IMPORT_RE.finditer(line):
                names = {part.strip().split(" as ")[0].strip() for part in match.group(1).split(",")}
                module = match.group(2)
                for sig in self.signatures:
                    if sig.get("module") != module or sig.get("symbol") not in names:
                        continue
                    symbol = sig["symbol"]
                    message = f"Module \"{module}\" has no exported member '{symbol}'."
                    if sig.get("suggestion"):
                        message += f" Did you mean '{sig['suggestion']}'?"
                    diagnostics.append(make_diagnostic(
                        path, number, line.find(symbol, match.start()), message, "import"
                    ))
        return diagnostics


class InterfaceSemicolonRule:
    """Interface members written as ``name: Type`` with no terminator."""

    def check(self, path: str, content: str, paths: set[str]) -> list[Diagnostic]:
        diagnostics = []
        depth = 0
        for number, line in enumerate(content.split("\n"), 1):
            code = code_only(line)
            if depth == 0:
                if _INTERFACE_START_RE.match(code):
                    depth = code.count("{") - code.count("}")
                continue

            stripped = line.strip()
            if depth == 1 and _MEMBER_RE.match(stripped) and not stripped.endswith((";", ",")):
                diagnostics.append(make_diagnostic(
                    path, number, len(line.rstrip()),
                    "Missing semicolon in interface definition", "syntax",
                ))
            depth += code.count("{") - code.count("}")
            depth = max(depth, 0)
        return diagnostics


class PathAliasRule:
    """Alias imports (e.g. '@/lib/x') that resolve to no file in the set."""

    def __init__(self, aliases=None):
        self.aliases = dict(aliases if aliases is not None else DEFAULT_PATH_ALIASES)

    def _resolves(self, target: str, paths: set[str]) -> bool:
        candidates = [target]
        candidates += [target + ext for ext in _RESOLVE_EXTENSIONS]
        candidates += [f"{target}/index{ext}" for ext in _RESOLVE_EXTENSIONS]
        return any(candidate in paths for candidate in candidates)

    def check(self, path: str, content: str, paths: set[str]) -> list[Diagnostic]:
        diagnostics = []
        for number, line in enumerate(content.split("\n"), 1):
            for match in _MODULE_SPEC_RE.finditer(line):
                spec = match.group(1)
                for prefix, directory in self.aliases.items():
                    if not spec.startswith(prefix):
                        continue
                    if not self._resolves(directory + spec[len(prefix):], paths):
                        diagnostics.append(make_diagnostic(
                            path, number, match.start(1),
                            f"Module '{spec}' not found in the file set ('{prefix}' resolves to '{directory}').",
                            "import",
                        ))
                    break
        return diagnostics


def default_rules(validator_config: dict | None = None) -> list:
    """The ordered rule set, with config overrides applied."""
    cfg = validator_config or {}
    return [
        ForbiddenPlaceholderRule(cfg.get("forbidden_placeholders", DEFAULT_PLACEHOLDERS)),
        BraceBalanceRule(),
        KnownBadImportRule(cfg.get("known_bad_imports", DEFAULT_BAD_IMPORTS)),
        InterfaceSemicolonRule(),
        PathAliasRule(cfg.get("path_aliases", DEFAULT_PATH_ALIASES)),
    ]
