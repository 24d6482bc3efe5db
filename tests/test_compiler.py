"""End-to-end tests for Compiler.compile."""

import pytest

from agenticci.compiler import Compiler, compile_workflow
from agenticci.config import CompilerConfig
from agenticci.errors import CompileError, DuplicateJobError, UnknownDependencyError
from agenticci.ir import (
    CacheMemoryEntry,
    CreateIssueConfig,
    CreatePullRequestConfig,
    CustomJobDecl,
    NetworkPolicy,
    ProjectRef,
    RepoMemoryEntry,
    SafeOutputsConfig,
    SandboxPolicy,
)
from agenticci.permissions import Permissions


@pytest.fixture
def pr_workflow(make_ir):
    """Command-triggered workflow with a stop-time and one pull-request output."""
    return make_ir(
        events=("issue_comment",),
        on={"issue_comment": {"types": ["created", "edited"]}},
        roles=("all",),
        commands=("fix",),
        stop_time="2030-06-01 00:00:00",
        safe_outputs=SafeOutputsConfig(create_pull_request=CreatePullRequestConfig()),
    )


# ============================================================================
# Reference scenario
# ============================================================================


class TestEndToEnd:
    def test_reference_scenario(self, pr_workflow):
        store = Compiler().compile(pr_workflow).store

        assert store.names() == ["pre_activation", "activation", "agent", "create_pull_request", "conclusion"]

        gating = store.get_job("pre_activation")
        assert gating.outputs["activated"] == (
            "${{ (steps.check_stop_time.outputs.stop_time_ok == 'true') && "
            "(steps.check_command_position.outputs.command_position_ok == 'true') }}"
        )
        assert "matched_command" in gating.outputs

        activation = store.get_job("activation")
        assert activation.needs == ["pre_activation"]
        assert activation.if_ == "needs.pre_activation.outputs.activated == 'true'"
        assert activation.outputs["slash_command"] == "${{ needs.pre_activation.outputs.matched_command }}"

        assert store.get_job("agent").needs == ["activation"]

        pr_job = store.get_job("create_pull_request")
        assert pr_job.needs == ["agent"]
        main_step = next(s for s in pr_job.steps if s.id == "create_pull_request")
        assert main_step.env["GH_AW_CREATE_PULL_REQUEST_MAX"] == "1"

        conclusion = store.get_job("conclusion")
        assert set(conclusion.needs) == {"pre_activation", "activation", "agent", "create_pull_request"}
        assert conclusion.if_ == "always()"

    def test_compiling_twice_is_identical(self, pr_workflow):
        compiler = Compiler()
        first = compiler.compile(pr_workflow).store
        second = compiler.compile(pr_workflow).store

        assert first.names() == second.names()
        for name in first.names():
            assert set(first.get_job(name).needs) == set(second.get_job(name).needs)
            assert first.get_job(name).if_ == second.get_job(name).if_
        assert first.get_job("agent") is not second.get_job("agent")

    def test_result_is_topologically_ordered(self, pr_workflow):
        store = compile_workflow(pr_workflow).store
        seen = set()
        for name in store.topo_order():
            assert set(store.get_job(name).needs) <= seen
            seen.add(name)


# ============================================================================
# Phases
# ============================================================================


class TestPhases:
    def test_minimal_workflow(self, make_ir):
        store = Compiler().compile(make_ir()).store

        assert store.names() == ["activation", "agent", "conclusion"]
        activation = store.get_job("activation")
        assert activation.needs == []
        assert activation.if_ == ""
        assert store.get_job("agent").permissions.get("contents") == "read"
        assert store.get_job("conclusion").needs == ["activation", "agent"]

    def test_user_if_is_combined_with_gate(self, make_ir):
        ir = make_ir(events=("issues",), if_="${{ github.actor != 'dependabot[bot]' }}")
        activation = Compiler().compile(ir).store.get_job("activation")
        assert activation.if_ == (
            "(needs.pre_activation.outputs.activated == 'true') && (github.actor != 'dependabot[bot]')"
        )

    def test_user_if_also_guards_gating_job(self, make_ir):
        ir = make_ir(events=("issues",), reaction="eyes", if_="github.event.issue.user.login != 'octocat'")
        store = Compiler().compile(ir).store

        assert store.get_job("pre_activation").if_ == "github.event.issue.user.login != 'octocat'"
        assert store.get_job("activation").if_.endswith("&& (github.event.issue.user.login != 'octocat')")

    def test_comment_outputs_only_with_reaction(self, make_ir):
        plain = Compiler().compile(make_ir()).store.get_job("activation")
        assert "comment_id" not in plain.outputs
        assert "comment_repo" not in plain.outputs

        reacting = Compiler().compile(make_ir(events=("issues",), reaction="eyes")).store.get_job("activation")
        assert reacting.outputs["comment_id"] == "${{ steps.add_comment.outputs.comment-id }}"
        assert reacting.permissions.render() == {
            "contents": "read",
            "discussions": "write",
            "issues": "write",
            "pull-requests": "write",
        }

    def test_workflow_run_safety_guard(self, make_ir):
        ir = make_ir(events=("workflow_run",), roles=("all",))
        activation = Compiler().compile(ir).store.get_job("activation")
        assert activation.if_.startswith("(!(github.event_name == 'workflow_run')) || ")
        assert "github.event.workflow_run.repository.fork" in activation.if_
        assert "pre_activation" not in activation.if_

    def test_threat_detection(self, make_ir):
        safe = SafeOutputsConfig(threat_detection=True, create_issue=CreateIssueConfig())
        store = Compiler().compile(make_ir(safe_outputs=safe)).store

        assert store.names() == ["activation", "agent", "detection", "create_issue", "conclusion"]
        assert store.get_job("detection").needs == ["agent"]
        assert store.get_job("create_issue").needs == ["agent", "detection"]
        assert "detection" in store.get_job("conclusion").needs

    def test_threat_detection_without_outputs_is_ignored(self, make_ir):
        store = Compiler().compile(make_ir(safe_outputs=SafeOutputsConfig(threat_detection=True))).store
        assert "detection" not in store

    def test_main_job_outputs_with_safe_outputs(self, make_ir):
        safe = SafeOutputsConfig(create_pull_request=CreatePullRequestConfig())
        agent = Compiler().compile(make_ir(safe_outputs=safe)).store.get_job("agent")
        assert {"output", "output_types", "has_patch"} <= set(agent.outputs)
        assert any(s.with_.get("name") == "agent-artifacts" for s in agent.steps)

    def test_main_job_keeps_workflow_permissions(self, make_ir):
        ir = make_ir(permissions=Permissions.of(issues="read", contents="none"))
        agent = Compiler().compile(ir).store.get_job("agent")
        assert agent.permissions.render() == {"contents": "read", "issues": "read"}

    def test_project_auto_configuration(self, make_ir):
        ir = make_ir(project=ProjectRef("https://github.com/orgs/acme/projects/3"))
        store = Compiler().compile(ir).store
        assert "update_project" in store
        assert "create_project_status_update" in store
        assert ir.safe_outputs is None


# ============================================================================
# Persistence and custom jobs
# ============================================================================


class TestPersistenceWiring:
    def test_repo_memory_joins_conclusion(self, make_ir):
        store = Compiler().compile(make_ir(repo_memory=(RepoMemoryEntry(),))).store

        assert store.get_job("push_repo_memory").needs == ["agent"]
        assert store.get_job("conclusion").needs == ["activation", "agent", "push_repo_memory"]
        assert store.pending_needs() == []

    def test_cache_memory_with_threat_detection(self, make_ir):
        ir = make_ir(
            cache_memory=(CacheMemoryEntry(),),
            repo_memory=(RepoMemoryEntry(),),
            safe_outputs=SafeOutputsConfig(threat_detection=True, create_issue=CreateIssueConfig()),
        )
        store = Compiler().compile(ir).store

        conclusion_needs = store.get_job("conclusion").needs
        assert conclusion_needs[-2:] == ["push_repo_memory", "update_cache_memory"]
        assert conclusion_needs.count("update_cache_memory") == 1
        agent_steps = [s.name for s in store.get_job("agent").steps]
        assert "Upload cache-memory artifact (default)" in agent_steps

    def test_cache_memory_retention_days(self, make_ir):
        ir = make_ir(
            cache_memory=(CacheMemoryEntry(retention_days=7),),
            safe_outputs=SafeOutputsConfig(threat_detection=True, create_issue=CreateIssueConfig()),
        )
        agent = Compiler().compile(ir).store.get_job("agent")
        upload = next(s for s in agent.steps if s.name == "Upload cache-memory artifact (default)")
        assert upload.with_["retention-days"] == 7

    def test_cache_memory_saved_by_agent_without_detection(self, make_ir):
        store = Compiler().compile(make_ir(cache_memory=(CacheMemoryEntry(),))).store
        assert "update_cache_memory" not in store
        agent_steps = [s.name for s in store.get_job("agent").steps]
        assert agent_steps.index("Restore cache-memory (default)") < agent_steps.index("Execute copilot agent")
        assert "Save cache-memory (default)" in agent_steps


class TestCustomJobs:
    def test_custom_jobs_are_added_in_dependency_order(self, make_ir):
        ir = make_ir(custom_jobs=(
            CustomJobDecl(name="publish", needs=("build",)),
            CustomJobDecl(name="build"),
        ))
        store = Compiler().compile(ir).store

        names = store.names()
        assert names.index("build") < names.index("publish")
        assert store.get_job("build").needs == ["activation"]
        assert "build" not in store.get_job("conclusion").needs

    def test_custom_job_may_follow_agent(self, make_ir):
        ir = make_ir(custom_jobs=(CustomJobDecl(name="report", needs=("agent",)),))
        assert Compiler().compile(ir).store.get_job("report").needs == ["agent"]

    def test_unknown_need(self, make_ir):
        ir = make_ir(custom_jobs=(CustomJobDecl(name="deploy", needs=("build",)),))
        with pytest.raises(UnknownDependencyError) as exc:
            Compiler().compile(ir)
        assert exc.value.missing == "build"

    def test_name_clash_with_generated_job(self, make_ir):
        ir = make_ir(custom_jobs=(CustomJobDecl(name="agent"),))
        with pytest.raises(DuplicateJobError):
            Compiler().compile(ir)


# ============================================================================
# Validators and configuration
# ============================================================================


class TestGateValidators:
    def test_failure_stops_compilation(self, make_ir):
        ir = make_ir(permissions=Permissions.of(contents="write"))
        with pytest.raises(CompileError) as exc:
            Compiler().compile(ir)
        assert exc.value.kind == "dangerous_permissions"

    def test_strict_default_comes_from_config(self, make_ir):
        ir = make_ir(network=NetworkPolicy(allowed=("example.com",)))
        assert Compiler().compile(ir).strict is False
        with pytest.raises(CompileError):
            Compiler(CompilerConfig(strict=True)).compile(ir)

    def test_workflow_strict_overrides_config(self, make_ir):
        ir = make_ir(strict=False, sandbox=SandboxPolicy(agent=None, agent_disabled=True))
        result = Compiler(CompilerConfig(strict=True)).compile(ir)
        assert result.strict is False
        assert [w.check for w in result.warnings] == ["sandbox"]

    def test_compilers_with_different_settings(self, make_ir):
        release = Compiler(CompilerConfig(version="v1.4.0", action_mode="release"))
        dev = Compiler()
        ir = make_ir()

        release_setup = release.compile(ir).store.get_job("agent").steps[0].uses
        dev_setup = dev.compile(ir).store.get_job("agent").steps[0].uses

        assert release_setup == "githubnext/gh-aw/actions/setup@v1.4.0"
        assert dev_setup == "./actions/setup"

    def test_invalid_action_mode(self):
        with pytest.raises(ValueError):
            CompilerConfig(action_mode="nightly")

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("AGENTICCI_VERSION", "v2.0.0")
        monkeypatch.setenv("AGENTICCI_RELEASE", "true")
        monkeypatch.setenv("AGENTICCI_STRICT", "1")
        monkeypatch.delenv("AGENTICCI_ACTION_MODE", raising=False)

        config = CompilerConfig.from_env()
        assert config.action_mode == "release"
        assert config.strict is True
        assert config.setup_action.endswith("@v2.0.0")
