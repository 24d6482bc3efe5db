"""Tests for the compilation gate validators."""

import pytest

from agenticci.domains import ecosystem_for_domain, unknown_entries
from agenticci.errors import CompileError
from agenticci.ir import (
    AddLabelsConfig,
    CreateIssueConfig,
    NetworkPolicy,
    ProjectRef,
    RepoMemoryEntry,
    SafeOutputsConfig,
    SandboxPolicy,
)
from agenticci.permissions import Permissions
from agenticci.validation import (
    detect_campaign,
    run_validators,
    validate_campaign_project,
    validate_dangerous_permissions,
    validate_strict_firewall,
)

CAMPAIGN_ISSUES = SafeOutputsConfig(create_issue=CreateIssueConfig(labels=("agentic-campaign",)))


# ============================================================================
# Dangerous permissions
# ============================================================================


class TestDangerousPermissions:
    def test_write_permissions_are_rejected(self, make_ir):
        ir = make_ir(permissions=Permissions.of(contents="write", issues="write", actions="read"))
        with pytest.raises(CompileError) as exc:
            validate_dangerous_permissions(ir)

        err = exc.value
        assert err.kind == "dangerous_permissions"
        assert err.message == "Write permissions are not allowed."
        assert "  - contents: write" in err.details
        assert "  - issues: write" in err.details
        assert "  - actions: write" not in err.details
        assert "contents: read" in err.suggestion

    def test_feature_flag_allows_writes(self, make_ir):
        ir = make_ir(
            permissions=Permissions.of(contents="write"),
            features=frozenset({"dangerous-permissions-write"}),
        )
        validate_dangerous_permissions(ir)

    def test_write_all_shorthand_is_rejected(self, make_ir):
        with pytest.raises(CompileError):
            validate_dangerous_permissions(make_ir(permissions=Permissions.parse("write-all")))

    @pytest.mark.parametrize("perms", [Permissions(), Permissions.parse("read-all"), Permissions.of({"id-token": "write"})])
    def test_harmless_permissions_pass(self, perms, make_ir):
        validate_dangerous_permissions(make_ir(permissions=perms))


# ============================================================================
# Campaign project
# ============================================================================


class TestCampaignProject:
    def test_campaign_label_without_project(self, make_ir):
        with pytest.raises(CompileError) as exc:
            validate_campaign_project(make_ir(safe_outputs=CAMPAIGN_ISSUES))

        err = exc.value
        assert err.kind == "campaign_project"
        assert "GitHub Project URL" in err.message
        assert "campaign labels" in err.message
        assert err.reason.startswith("campaign labels")

    def test_campaign_id_without_project(self, make_ir):
        ir = make_ir(repo_memory=(RepoMemoryEntry(campaign_id="q3-cleanup"),))
        with pytest.raises(CompileError) as exc:
            validate_campaign_project(ir)
        assert "GitHub Project URL" in exc.value.message
        assert "campaign-id" in exc.value.message

    def test_prefixed_label_in_allowed_list(self, make_ir):
        safe = SafeOutputsConfig(add_labels=AddLabelsConfig(allowed=("bug", "z_campaign_security")))
        assert detect_campaign(make_ir(safe_outputs=safe)) is not None

    def test_blank_project_is_a_distinct_error(self, make_ir):
        with pytest.raises(CompileError) as exc:
            validate_campaign_project(make_ir(safe_outputs=CAMPAIGN_ISSUES, project=ProjectRef("")))
        assert "non-empty" in exc.value.message
        assert "campaign labels" in exc.value.message

    def test_object_without_url(self, make_ir):
        ir = make_ir(safe_outputs=CAMPAIGN_ISSUES, project=ProjectRef(None, is_object=True))
        with pytest.raises(CompileError) as exc:
            validate_campaign_project(ir)
        assert "must include a 'url' field" in exc.value.message

    def test_object_with_blank_url(self, make_ir):
        ir = make_ir(safe_outputs=CAMPAIGN_ISSUES, project=ProjectRef("  ", is_object=True))
        with pytest.raises(CompileError) as exc:
            validate_campaign_project(ir)
        assert "URL must be a non-empty string" in exc.value.message

    def test_campaign_with_project_passes(self, make_ir):
        validate_campaign_project(
            make_ir(safe_outputs=CAMPAIGN_ISSUES, project=ProjectRef("https://github.com/orgs/acme/projects/1"))
        )

    def test_no_markers_and_no_project_passes(self, make_ir):
        ir = make_ir(safe_outputs=SafeOutputsConfig(create_issue=CreateIssueConfig(labels=("bug",))))
        assert detect_campaign(ir) is None
        validate_campaign_project(ir)

    def test_blank_campaign_id_is_not_a_marker(self, make_ir):
        assert detect_campaign(make_ir(repo_memory=(RepoMemoryEntry(campaign_id="  "),))) is None


# ============================================================================
# Strict mode
# ============================================================================


class TestStrictFirewall:
    def test_disabled_sandbox_rejected_in_strict_mode(self, make_ir):
        ir = make_ir(sandbox=SandboxPolicy(agent=None, agent_disabled=True))
        with pytest.raises(CompileError) as exc:
            validate_strict_firewall(ir, strict=True)
        assert exc.value.kind == "strict_sandbox"

    def test_disabled_sandbox_rejected_even_with_gateway_engine(self, make_ir):
        ir = make_ir(engine="codex", sandbox=SandboxPolicy(agent=None, agent_disabled=True), network=NetworkPolicy(allowed=("*",)))
        with pytest.raises(CompileError, match="sandbox.agent: false"):
            validate_strict_firewall(ir, strict=True)

    def test_disabled_sandbox_warns_outside_strict_mode(self, make_ir):
        warnings = validate_strict_firewall(make_ir(sandbox=SandboxPolicy(agent=None, agent_disabled=True)), strict=False)
        assert [w.check for w in warnings] == ["sandbox"]

    def test_disabled_firewall_with_allow_list(self, make_ir):
        ir = make_ir(network=NetworkPolicy(allowed=("python",), firewall_enabled=False))
        with pytest.raises(CompileError, match="cannot disable firewall"):
            validate_strict_firewall(ir, strict=True)
        assert [w.check for w in validate_strict_firewall(ir, strict=False)] == ["firewall"]

    def test_unknown_domain_rejected(self, make_ir):
        ir = make_ir(network=NetworkPolicy(allowed=("python", "example.com", "api.internal.corp")))
        with pytest.raises(CompileError) as exc:
            validate_strict_firewall(ir, strict=True)
        assert exc.value.kind == "strict_network"
        assert "example.com, api.internal.corp" in exc.value.message

    @pytest.mark.parametrize(
        "allowed",
        [
            ("defaults", "python", "node"),
            ("pypi.org", "registry.npmjs.org"),
            ("*.pypi.org",),
            ("*",),
            ("example.com", "*"),
        ],
    )
    def test_known_or_wildcard_entries_pass(self, allowed, make_ir):
        assert validate_strict_firewall(make_ir(network=NetworkPolicy(allowed=allowed)), strict=True) == []

    def test_gateway_engine_bypasses_domain_check(self, make_ir):
        ir = make_ir(engine="codex", network=NetworkPolicy(allowed=("example.com",)))
        assert validate_strict_firewall(ir, strict=True) == []

    def test_unknown_domain_ignored_outside_strict_mode(self, make_ir):
        ir = make_ir(network=NetworkPolicy(allowed=("example.com",)))
        assert validate_strict_firewall(ir, strict=False) == []

    def test_unset_network_passes(self, make_ir):
        assert validate_strict_firewall(make_ir(), strict=True) == []


class TestDomains:
    def test_ecosystem_lookup(self):
        assert ecosystem_for_domain("PyPI.org") == "python"
        assert ecosystem_for_domain("*.crates.io") == "rust"
        assert ecosystem_for_domain("example.com") is None

    def test_unknown_entries_keep_order(self):
        assert unknown_entries(["b.example", "github", "a.example"]) == ["b.example", "a.example"]


def test_run_validators_checks_permissions_first(make_ir):
    ir = make_ir(
        permissions=Permissions.of(contents="write"),
        safe_outputs=CAMPAIGN_ISSUES,
    )
    with pytest.raises(CompileError) as exc:
        run_validators(ir, strict=False)
    assert exc.value.kind == "dangerous_permissions"
