"""Tests for worker environment sanitization."""

from mcfaas.local.environment import parse_assignments, sanitize, to_env_value


class TestToEnvValue:

    def test_booleans_are_lowercase(self):
        assert to_env_value(True) == "true"
        assert to_env_value(False) == "false"

    def test_none_is_empty_string(self):
        assert to_env_value(None) == ""

    def test_numbers_use_str(self):
        assert to_env_value(3) == "3"
        assert to_env_value(2.5) == "2.5"


class TestSanitize:

    def test_only_string_values(self):
        env = sanitize({"PATH": "/bin"}, [("FLAG", True), ("COUNT", 2), ("EMPTY", None)])
        assert env == {"PATH": "/bin", "FLAG": "true", "COUNT": "2", "EMPTY": ""}
        assert all(isinstance(k, str) and isinstance(v, str) for k, v in env.items())

    def test_overrides_win_over_ambient(self):
        env = sanitize({"FLAG": "ambient", "KEEP": "1"}, [("FLAG", "override")])
        assert env["FLAG"] == "override"
        assert env["KEEP"] == "1"

    def test_later_override_wins(self):
        env = sanitize({}, [("A", "1"), ("A", "2")])
        assert env == {"A": "2"}

    def test_inputs_are_not_modified(self):
        ambient = {"A": "1"}
        sanitize(ambient, [("B", True)])
        assert ambient == {"A": "1"}

    def test_deterministic(self):
        overrides = [("FLAG", True), ("N", 1)]
        assert sanitize({"X": "y"}, overrides) == sanitize({"X": "y"}, overrides)


class TestParseAssignments:

    def test_key_value_strings(self):
        assert parse_assignments(["FLAG=true", "URL=http://x?a=b"]) == [("FLAG", "true"), ("URL", "http://x?a=b")]

    def test_name_value_mappings(self):
        assert parse_assignments([{"name": "FLAG", "value": True}]) == [("FLAG", True)]

    def test_empty_value_is_kept(self):
        assert parse_assignments(["EMPTY="]) == [("EMPTY", "")]

    def test_malformed_assignments_are_skipped(self):
        assert parse_assignments(["NOEQUALS", "=value", {"value": 1}, 42, "OK=1"]) == [("OK", "1")]

    def test_none_means_no_assignments(self):
        assert parse_assignments(None) == []
