"""
Tests for shell command analysis — segment splitting and executable extraction.
"""

from execsafe.core.services.capabilities.domain.command_analyzer import (
    collect_executables,
    extract_executable,
    is_env_assignment,
    split_command_segments,
    tokenize_segment,
)


class TestSplitCommandSegments:
    def test_splits_on_all_operators(self):
        assert split_command_segments("a && b || c; d | e") == ["a", "b", "c", "d", "e"]

    def test_double_quotes_suppress_splitting(self):
        assert split_command_segments('echo "a; b" && rg x') == ['echo "a; b"', "rg x"]

    def test_single_quotes_suppress_splitting(self):
        assert split_command_segments("echo 'a|b'") == ["echo 'a|b'"]

    def test_escaped_operator_is_literal(self):
        assert split_command_segments(r"echo a\;b") == [r"echo a\;b"]

    def test_redirections_are_not_operators(self):
        assert split_command_segments("make 2>&1 | tee log") == ["make 2>&1", "tee log"]
        assert split_command_segments("make &>build.log") == ["make &>build.log"]

    def test_background_ampersand_splits(self):
        assert split_command_segments("sleep 1 & rg x") == ["sleep 1", "rg x"]

    def test_newline_splits(self):
        assert split_command_segments("rg a\njq .") == ["rg a", "jq ."]

    def test_blank_input(self):
        assert split_command_segments("") == []
        assert split_command_segments("   ;  ; ") == []

    def test_unclosed_quote_stays_open(self):
        assert split_command_segments("echo 'a; b && c") == ["echo 'a; b && c"]


class TestTokenizeSegment:
    def test_quoted_runs_stay_together(self):
        assert tokenize_segment("rg \"a b\" 'c d'") == ["rg", "a b", "c d"]

    def test_inner_quotes_kept(self):
        assert tokenize_segment('tool --name="a b"') == ["tool", '--name="a b"']


class TestExtractExecutable:
    def test_skips_env_assignments(self):
        assert extract_executable("FOO=bar BAZ=1 rg -n test src") == "rg"

    def test_basename_of_path(self):
        assert extract_executable("/usr/bin/rg pattern") == "rg"

    def test_subshell_prefix(self):
        assert extract_executable("(rg x)") == "rg"

    def test_builtins_return_none(self):
        assert extract_executable("cd /tmp") is None
        assert extract_executable("export A=1") is None

    def test_substitutions_return_none(self):
        assert extract_executable("$(which rg) x") is None
        assert extract_executable("`which rg` x") is None

    def test_only_assignments(self):
        assert extract_executable("FOO=bar") is None

    def test_env_assignment_detection(self):
        assert is_env_assignment("FOO=bar")
        assert is_env_assignment("_X1=")
        assert not is_env_assignment("--flag=1")
        assert not is_env_assignment("1A=b")


class TestCollectExecutables:
    def test_distinct_in_first_seen_order(self):
        assert collect_executables("rg a | rg b && jq . ; fd x") == ["rg", "jq", "fd"]

    def test_builtins_only(self):
        assert collect_executables("cd src && echo hi") == []
