"""Tests for Job/Step nodes and permission blocks."""

import pytest

from agenticci.errors import ContractError
from agenticci.model import Job, Quoted, Step
from agenticci.permissions import NONE, READ, WRITE, Permissions, contents_read, with_contents_read, writes


# ============================================================================
# Job
# ============================================================================


class TestJob:
    def test_empty_name_is_rejected(self):
        with pytest.raises(ContractError):
            Job(name="")

    def test_uses_and_steps_are_exclusive(self):
        with pytest.raises(ContractError, match="cannot also define steps"):
            Job(name="call", uses="org/repo/.github/workflows/x.yml@main", steps=[Step(run="echo")])

    def test_needs_are_deduplicated_in_order(self):
        job = Job(name="j", needs=["b", "a", "b"])
        assert job.needs == ["b", "a"]

    def test_add_needs_is_idempotent(self):
        job = Job(name="conclusion", needs=["agent"])
        assert job.add_needs("push_repo_memory", "agent") == ["push_repo_memory"]
        assert job.add_needs("push_repo_memory") == []
        assert job.needs == ["agent", "push_repo_memory"]

    def test_add_outputs_keeps_existing_values(self):
        job = Job(name="j", outputs={"a": "1"})
        assert job.add_outputs({"a": "2", "b": "3"}) == ["b"]
        assert job.outputs == {"a": "1", "b": "3"}


# ============================================================================
# Step
# ============================================================================


class TestStep:
    def test_to_dict_key_order(self):
        step = Step(
            name="Run",
            id="run",
            if_="always()",
            uses="actions/github-script@v8",
            with_={"script": "x"},
            env={"A": "1"},
        )
        assert list(step.to_dict()) == ["name", "id", "if", "uses", "with", "env"]

    def test_empty_fields_are_omitted(self):
        assert Step(name="Echo", run="echo hi").to_dict() == {"name": "Echo", "run": "echo hi"}

    def test_from_mapping_keeps_user_step_verbatim(self):
        raw = {"name": "Custom", "run": "make", "continue-on-error": True, "timeout-minutes": 5}
        step = Step.from_mapping(raw)
        assert step.name == "Custom"
        assert step.to_dict() == raw

    def test_quoted_is_a_string(self):
        value = Quoted("1")
        assert value == "1"
        assert isinstance(value, str)


# ============================================================================
# Permissions
# ============================================================================


class TestPermissions:
    def test_of_normalizes_keyword_scopes(self):
        perms = Permissions.of(pull_requests=WRITE, contents=READ)
        assert perms.as_dict() == {"contents": "read", "pull-requests": "write"}

    def test_invalid_level_is_rejected(self):
        with pytest.raises(ValueError, match="invalid permission level"):
            Permissions.of(contents="admin")

    @pytest.mark.parametrize("value", [None, {}])
    def test_parse_empty(self, value):
        assert Permissions.parse(value).is_empty()

    def test_parse_shorthand(self):
        perms = Permissions.parse("read-all")
        assert perms.render() == "read-all"
        assert perms.get("issues") == READ

    def test_parse_rejects_unknown_shorthand(self):
        with pytest.raises(ValueError):
            Permissions.parse("admin-all")

    def test_with_at_least_raises_level(self):
        perms = Permissions.of(contents=NONE)
        assert perms.with_at_least("contents", READ).get("contents") == READ

    def test_with_at_least_never_lowers(self):
        perms = Permissions.of(contents=WRITE)
        assert perms.with_at_least("contents", READ) is perms

    def test_write_scopes_are_sorted(self):
        perms = Permissions.of({"pull-requests": WRITE, "issues": WRITE, "contents": READ})
        assert perms.write_scopes() == ["issues", "pull-requests"]

    def test_merged_keeps_higher_level(self):
        merged = contents_read().merged(writes("contents", "issues"))
        assert merged.as_dict() == {"contents": "write", "issues": "write"}

    def test_with_contents_read(self):
        assert with_contents_read(["discussions"]).render() == {"contents": "read", "discussions": "write"}
