"""Tests for aps.utils.buildability and aps.utils.rules."""

from aps.utils.buildability import BuildValidator, extract_error_context
from aps.utils.rules import (
    BraceBalanceRule,
    ForbiddenPlaceholderRule,
    InterfaceSemicolonRule,
    KnownBadImportRule,
    PathAliasRule,
    code_only,
    make_diagnostic,
)

CLEAN_PAGE = """\
import { revenue } from '@/lib/mockData';

export default function HomePage() {
  return <p className="total">{revenue.length}</p>;
}
"""

MOCK_DATA = """\
export interface RevenuePoint {
  month: string;
  amount: number;
}

export const revenue: RevenuePoint[] = [{ month: 'Jan', amount: 1 }];
"""


def _entry(path, content, kind="file"):
    return {"path": path, "content": content, "kind": kind, "last_modified": "2026-01-01T00:00:00+00:00"}


def _clean_file_set():
    return [
        _entry("src/app", None, kind="directory"),
        _entry("src/app/page.tsx", CLEAN_PAGE),
        _entry("src/lib/mockData.ts", MOCK_DATA),
    ]


# --- BuildValidator.validate ---

class TestValidate:
    def test_clean_file_set_passes(self):
        result = BuildValidator().validate(_clean_file_set())
        assert result["success"] is True
        assert result["exit_code"] == 0
        assert result["diagnostics"] == []
        assert result["stderr"] == ""

    def test_todo_placeholder_is_one_syntax_diagnostic(self):
        content = "export default function Page() {\n  // TODO: wire up data\n  return null;\n}\n"
        result = BuildValidator().validate([_entry("src/app/page.tsx", content)])

        assert result["success"] is False
        assert result["exit_code"] == 1
        assert len(result["diagnostics"]) == 1
        diagnostic = result["diagnostics"][0]
        assert diagnostic["kind"] == "syntax"
        assert diagnostic["line"] == 2
        assert "TODO:" in diagnostic["message"]

    def test_stderr_renders_location_and_kind(self):
        content = "import { LineChart } from 'recharts';\n"
        result = BuildValidator().validate([_entry("src/chart.tsx", content)])
        assert "ERROR in src/chart.tsx:1:9" in result["stderr"]
        assert "IMPORT ERROR: Module \"recharts\" has no exported member 'LineChart'." in result["stderr"]

    def test_non_source_files_are_ignored(self):
        result = BuildValidator().validate([_entry("README.md", "TODO: write docs")])
        assert result["success"] is True

    def test_files_without_content_are_ignored(self):
        result = BuildValidator().validate([_entry("src/app/page.tsx", None)])
        assert result["success"] is True

    def test_directories_are_ignored(self):
        result = BuildValidator().validate([_entry("src/TODO:.tsx", "TODO:", kind="directory")])
        assert result["success"] is True

    def test_custom_source_pattern(self):
        validator = BuildValidator(source_pattern=r"\.py$")
        result = validator.validate([_entry("app.py", "# TODO: later"), _entry("a.ts", "TODO:")])
        assert [d["path"] for d in result["diagnostics"]] == ["app.py"]

    def test_internal_failure_exit_code_2(self):
        class ExplodingRule:
            def check(self, path, content, paths):
                raise RuntimeError("rule crashed")

        result = BuildValidator(rules=[ExplodingRule()]).validate([_entry("a.ts", "x")])

        assert result["success"] is False
        assert result["exit_code"] == 2
        assert result["stderr"] == "Fatal build error: rule crashed"
        assert result["diagnostics"][0]["kind"] == "runtime"

    def test_success_iff_no_diagnostics(self):
        for file_set in (_clean_file_set(), [_entry("a.ts", "}")]):
            result = BuildValidator().validate(file_set)
            assert result["success"] == (len(result["diagnostics"]) == 0)


# --- BuildValidator.is_recoverable ---

class TestIsRecoverable:
    def _failed(self, stderr):
        return {"success": False, "stdout": "", "stderr": stderr, "exit_code": 1, "diagnostics": []}

    def test_success_is_not_recoverable(self):
        result = BuildValidator().validate(_clean_file_set())
        assert BuildValidator().is_recoverable(result) is False

    def test_plain_diagnostics_are_recoverable(self):
        assert BuildValidator().is_recoverable(self._failed("SYNTAX ERROR: Unexpected token '}'")) is True

    def test_fatal_patterns(self):
        validator = BuildValidator()
        for stderr in (
            "ENOSPC: no space left on device",
            "FATAL: enomem while bundling",
            "EACCES: Permission Denied, open 'dist/index.js'",
            "Cannot find module '@/lib/utils'",
        ):
            assert validator.is_recoverable(self._failed(stderr)) is False, stderr

    def test_unresolved_alias_import_is_recoverable(self):
        content = "import { revenue } from '@/lib/mockDat';\n// TODO: later\n"
        validator = BuildValidator()
        result = validator.validate([
            _entry("src/app/page.tsx", content),
            _entry("src/lib/mockData.ts", MOCK_DATA),
        ])
        assert [d["kind"] for d in result["diagnostics"]] == ["syntax", "import"]
        assert validator.is_recoverable(result) is True

    def test_custom_fatal_patterns(self):
        validator = BuildValidator(fatal_patterns=["segfault"])
        assert validator.is_recoverable(self._failed("permission denied")) is True
        assert validator.is_recoverable(self._failed("SEGFAULT in worker")) is False


# --- individual rules ---

class TestForbiddenPlaceholderRule:
    def test_each_pattern_reported_with_column(self):
        rule = ForbiddenPlaceholderRule(["Lorem ipsum"])
        diagnostics = rule.check("a.tsx", "const a = 1;\n<p>Lorem ipsum dolor</p>", set())
        assert diagnostics == [make_diagnostic(
            "a.tsx", 2, 3,
            'Forbidden placeholder detected: "Lorem ipsum". All code must be complete and functional.',
            "syntax",
        )]

    def test_rest_of_code_marker(self):
        diagnostics = ForbiddenPlaceholderRule().check("a.ts", "  // ... rest of code", set())
        assert len(diagnostics) == 1


class TestBraceBalanceRule:
    def test_balanced_across_lines(self):
        assert BraceBalanceRule().check("a.ts", "function f() {\n  return 1;\n}\n", set()) == []

    def test_stray_closer(self):
        diagnostics = BraceBalanceRule().check("a.ts", "const a = 1;\n}\n", set())
        assert len(diagnostics) == 1
        assert diagnostics[0]["line"] == 2
        assert diagnostics[0]["message"] == "Unexpected token '}'"

    def test_unclosed_opener(self):
        diagnostics = BraceBalanceRule().check("a.ts", "function f() {\n  return 1;\n", set())
        assert len(diagnostics) == 1
        assert "unclosed" in diagnostics[0]["message"]

    def test_braces_in_strings_and_comments_ignored(self):
        content = "const s = '}';\nconst t = \"{{\";\n// }\nconst u = `${a}`;\n"
        assert BraceBalanceRule().check("a.ts", content, set()) == []

    def test_apostrophe_in_jsx_text_next_to_expression(self):
        content = (
            "export function Greeting({ isAdmin }: { isAdmin: boolean }) {\n"
            "  return <p>You're {isAdmin ? 'admin' : 'user'}</p>;\n"
            "}\n"
        )
        assert BraceBalanceRule().check("a.tsx", content, set()) == []

    def test_apostrophes_do_not_hide_real_strays(self):
        content = "const label = <span>Don't stop</span>;\n}\n"
        diagnostics = BraceBalanceRule().check("a.tsx", content, set())
        assert [(d["line"], d["message"]) for d in diagnostics] == [(2, "Unexpected token '}'")]

    def test_code_only_keeps_columns(self):
        line = "const s = '}'; // }"
        assert len(code_only(line)) == len(line)
        assert "}" not in code_only(line)


class TestKnownBadImportRule:
    def test_flags_signature_with_suggestion(self):
        diagnostics = KnownBadImportRule().check(
            "c.tsx", "import { XAxis, LineChart as Chart } from 'recharts';", set()
        )
        assert len(diagnostics) == 1
        assert diagnostics[0]["kind"] == "import"
        assert "Did you mean 'Line'?" in diagnostics[0]["message"]

    def test_other_module_not_flagged(self):
        assert KnownBadImportRule().check("c.tsx", "import { LineChart } from './charts';", set()) == []

    def test_correct_import_not_flagged(self):
        assert KnownBadImportRule().check("c.tsx", "import { Line } from 'recharts';", set()) == []

    def test_configurable_signatures(self):
        rule = KnownBadImportRule([{"module": "react", "symbol": "useStore"}])
        diagnostics = rule.check("a.tsx", "import { useState, useStore } from 'react';", set())
        assert diagnostics[0]["message"] == "Module \"react\" has no exported member 'useStore'."


class TestInterfaceSemicolonRule:
    def test_missing_terminator_in_interface(self):
        content = "interface Props {\n  title: string\n  count: number;\n}\n"
        diagnostics = InterfaceSemicolonRule().check("a.ts", content, set())
        assert [d["line"] for d in diagnostics] == [2]
        assert diagnostics[0]["message"] == "Missing semicolon in interface definition"

    def test_object_literals_outside_interfaces_ignored(self):
        content = "const config = {\n  mode: dark\n};\n"
        assert InterfaceSemicolonRule().check("a.ts", content, set()) == []

    def test_nested_type_members_not_checked(self):
        content = "export interface A {\n  meta: {\n    id: string\n  };\n}\n"
        assert InterfaceSemicolonRule().check("a.ts", content, set()) == []


class TestPathAliasRule:
    def test_resolves_with_extension(self):
        rule = PathAliasRule()
        content = "import { revenue } from '@/lib/mockData';"
        assert rule.check("src/app/page.tsx", content, {"src/lib/mockData.ts"}) == []

    def test_resolves_index_file(self):
        rule = PathAliasRule()
        assert rule.check("a.tsx", "import x from '@/components';", {"src/components/index.tsx"}) == []

    def test_unresolved_alias(self):
        diagnostics = PathAliasRule().check("a.tsx", "import x from '@/lib/nope';", set())
        assert diagnostics[0]["message"] == "Module '@/lib/nope' not found in the file set ('@/' resolves to 'src/')."
        assert diagnostics[0]["kind"] == "import"

    def test_relative_imports_ignored(self):
        assert PathAliasRule().check("a.tsx", "import x from './nope';", set()) == []


# --- extract_error_context ---

class TestExtractErrorContext:
    def test_summarizes_failure(self):
        result = BuildValidator().validate([
            _entry("a.ts", "}\n"),
            _entry("b.ts", "// TODO: x\n"),
            _entry("a2.ts", "}\n"),
        ])
        context = extract_error_context(result)
        assert context["primary_error"] == "Unexpected token '}'"
        assert context["affected_files"] == ["a.ts", "b.ts", "a2.ts"]
        assert context["error_kind"] == "syntax"
        assert context["stack_trace"] == result["stderr"]

    def test_success_has_no_primary_error(self):
        context = extract_error_context(BuildValidator().validate([]))
        assert context["primary_error"] == "Unknown error"
