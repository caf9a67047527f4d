"""Tests for the write-path gate."""

import pytest

from butler.core.errors import PathNotAllowed, WorkflowEditBlocked
from butler.tools.path_gate import PathGate, compile_glob, normalize_path


@pytest.fixture
def gate():
    return PathGate(["src/**", "supabase/**", "package.json", "docs/*.md"], workflow_key="wf-key")


class TestGlobs:
    """Tests for glob compilation."""

    def test_double_star_matches_any_depth(self):
        rx = compile_glob("src/**")
        assert rx.match("src/a.py")
        assert rx.match("src/a/b/c.py")
        assert not rx.match("lib/src/a.py")

    def test_double_star_slash_matches_zero_directories(self):
        rx = compile_glob("**/*.md")
        assert rx.match("README.md")
        assert rx.match("docs/guide/intro.md")

    def test_single_star_stays_in_segment(self):
        rx = compile_glob("docs/*.md")
        assert rx.match("docs/a.md")
        assert not rx.match("docs/sub/a.md")

    def test_literal_characters_are_escaped(self):
        rx = compile_glob("package.json")
        assert rx.match("package.json")
        assert not rx.match("packageXjson")

    def test_trailing_newline_is_not_a_match(self):
        assert not compile_glob("package.json").match("package.json\n")
        assert not compile_glob("docs/*.md").match("docs/a.md\n")


class TestPathGate:
    """Tests for PathGate classification."""

    def test_normalize(self):
        assert normalize_path("./src\\a.py") == "src/a.py"
        assert normalize_path("././src/a.py") == "src/a.py"

    @pytest.mark.parametrize("path", ["src/hello.txt", "./src/x/y.ts", "package.json", "docs/api.md"])
    def test_allowed(self, gate, path):
        assert gate.is_allowed(path)

    @pytest.mark.parametrize("path", [
        "", "/etc/passwd", "src/../secrets", "README.md", ".github/CODEOWNERS", "docs/a/b.md",
        "package.json\n", "docs/api.md\n",
    ])
    def test_denied(self, gate, path):
        assert not gate.is_allowed(path)

    def test_workflow_paths(self, gate):
        assert gate.is_workflow_path(".github/workflows/ci.yml")
        assert gate.is_workflow_path("./.github/workflows/nested/deploy.yml")
        assert not gate.is_workflow_path(".github/dependabot.yml")
        # Workflow paths are in the allow set, but gated separately
        assert gate.is_allowed(".github/workflows/ci.yml")

    def test_total_over_odd_strings(self, gate):
        for path in ["\x00", "*", "**", "\\\\", "..", "src/\n", "ü/ñ"]:
            assert gate.is_allowed(path) in (True, False)
            assert gate.is_workflow_path(path) in (True, False)

    def test_pure_function_of_path(self, gate):
        results = {gate.is_allowed("src/a.py") for _ in range(5)}
        assert results == {True}

    def test_check_blocks_workflow_without_approval(self, gate):
        with pytest.raises(WorkflowEditBlocked):
            gate.check([".github/workflows/ci.yml"])
        with pytest.raises(WorkflowEditBlocked):
            gate.check([".github/workflows/ci.yml"], approval="wrong")

    def test_check_allows_workflow_with_approval(self, gate):
        gate.check([".github/workflows/ci.yml", "src/a.py"], approval="wf-key")

    def test_workflow_blocked_when_server_has_no_key(self):
        gate = PathGate(["src/**"], workflow_key=None)
        with pytest.raises(WorkflowEditBlocked):
            gate.check([".github/workflows/ci.yml"], approval="anything")

    def test_workflow_reported_before_other_paths(self, gate):
        with pytest.raises(WorkflowEditBlocked):
            gate.check(["lib/nope.py", ".github/workflows/ci.yml"])

    def test_check_rejects_disallowed_path(self, gate):
        with pytest.raises(PathNotAllowed) as exc_info:
            gate.check(["src/ok.py", "lib/nope.py"])
        assert exc_info.value.details["path"] == "lib/nope.py"
        assert exc_info.value.status_code == 400
