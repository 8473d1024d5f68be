"""
Tests for interpreter resolution.

Capability and filesystem checks are injected, so no real interpreters are run.
"""

import pytest

from kernel_bridge.errors import InterpreterNotFound
from kernel_bridge.resolver import (
    REMEDIATION, InterpreterResolver, candidate_interpreters, is_bare_python,
)


class TestBarePython:
    """Tests for bare command detection."""

    @pytest.mark.parametrize("command", ["python", "python3", "python3.11"])
    def test_bare(self, command):
        assert is_bare_python(command)

    @pytest.mark.parametrize("command", ["/usr/bin/python3", "python2", "ipython", "julia"])
    def test_not_bare(self, command):
        assert not is_bare_python(command)


class TestCandidates:
    """Tests for candidate ordering."""

    def test_virtualenv_first(self):
        candidates = candidate_interpreters(home="/home/u", env={"VIRTUAL_ENV": "/venv"}, platform="linux")
        assert candidates[0] == "/venv/bin/python3"

    def test_specific_before_system(self):
        candidates = candidate_interpreters(home="/home/u", env={}, platform="darwin")
        assert candidates.index("/home/u/.pyenv/shims/python3") < candidates.index("/opt/homebrew/bin/python3")
        assert candidates.index("/opt/homebrew/bin/python3") < candidates.index("/usr/bin/python3")

    def test_windows_launcher(self):
        assert "py" in candidate_interpreters(home="C:\\Users\\u", env={}, platform="win32")
        assert "py" not in candidate_interpreters(home="/home/u", env={}, platform="linux")


class TestResolve:
    """Tests for InterpreterResolver.resolve."""

    def test_fast_path(self):
        checked = []

        def check(python):
            checked.append(python)
            return True

        resolver = InterpreterResolver(check=check, candidates=lambda: ["/other/python3"])
        assert resolver.resolve("python3") == "python3"
        assert checked == ["python3"]

    def test_first_working_candidate(self):
        working = {"/b/python3", "/c/python3"}
        resolver = InterpreterResolver(
            check=lambda p: p in working,
            exists=lambda p: True,
            candidates=lambda: ["/a/python3", "/b/python3", "/c/python3"],
        )
        assert resolver.resolve("python3") == "/b/python3"

    def test_nonexistent_candidates_not_checked(self):
        checked = []

        def check(python):
            checked.append(python)
            return python == "/present/python3"

        resolver = InterpreterResolver(
            check=check,
            exists=lambda p: p == "/present/python3",
            candidates=lambda: ["/absent/python3", "/present/python3"],
        )
        assert resolver.resolve("python3") == "/present/python3"
        assert "/absent/python3" not in checked

    def test_py_launcher_checked_without_exists(self):
        resolver = InterpreterResolver(
            check=lambda p: p == "py",
            exists=lambda p: False,
            candidates=lambda: ["py"],
        )
        assert resolver.resolve("python") == "py"

    def test_not_found(self):
        resolver = InterpreterResolver(
            check=lambda p: False,
            exists=lambda p: True,
            candidates=lambda: ["/a/python3"],
        )
        with pytest.raises(InterpreterNotFound) as exc:
            resolver.resolve("python3")
        assert str(exc.value) == REMEDIATION
        assert "pip3 install ipykernel" in str(exc.value)


class TestResolveArgv:
    """Tests for InterpreterResolver.resolve_argv."""

    def test_replaces_bare_python(self):
        resolver = InterpreterResolver(
            check=lambda p: p == "/good/python3",
            exists=lambda p: True,
            candidates=lambda: ["/good/python3"],
        )
        argv = ["python3", "-m", "ipykernel_launcher", "-f", "{connection_file}"]
        assert resolver.resolve_argv(argv) == ["/good/python3"] + argv[1:]

    def test_other_commands_untouched(self):
        def check(python):
            raise AssertionError("should not run the check")

        resolver = InterpreterResolver(check=check)
        assert resolver.resolve_argv(["julia", "-i"]) == ["julia", "-i"]
        assert resolver.resolve_argv(["/usr/bin/python3", "-m", "x"]) == ["/usr/bin/python3", "-m", "x"]
        assert resolver.resolve_argv([]) == []
