# validation.py
"""
Pre-flight checks run before any job is built.

Each check either passes, raises a CompileError (compilation stops and nothing
is emitted), or returns ValidationWarning records for findings that only fail
in strict mode.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from .constants import CAMPAIGN_LABEL, CAMPAIGN_LABEL_PREFIX, DANGEROUS_PERMISSIONS_FEATURE
from .domains import unknown_entries
from .errors import CompileError, ValidationWarning
from .ir import WorkflowIR
from .permissions import WRITE_SAFE_SCOPES

log = logging.getLogger(__name__)

# engines that route model traffic through their own LLM gateway
LLM_GATEWAY_ENGINES = frozenset({"codex"})

CAMPAIGN_LABELS_REASON = "campaign labels in safe-outputs (agentic-campaign or z_campaign_*)"
CAMPAIGN_ID_REASON = "campaign-id in repo-memory configuration"


# ---------------------------------------------------------------------
# Dangerous permissions
# ---------------------------------------------------------------------

def find_write_permissions(ir: WorkflowIR) -> List[str]:
    return [s for s in ir.permissions.write_scopes() if s not in WRITE_SAFE_SCOPES]


def validate_dangerous_permissions(ir: WorkflowIR) -> None:
    """
    Reject write access in the workflow's top-level permissions unless the
    ``dangerous-permissions-write`` feature is enabled. Job-local blocks built
    by the compiler are not checked here.
    """
    if ir.feature_enabled(DANGEROUS_PERMISSIONS_FEATURE):
        log.debug("%s feature enabled, allowing write permissions", DANGEROUS_PERMISSIONS_FEATURE)
        return

    scopes = find_write_permissions(ir)
    if not scopes:
        return

    details = ["", "Found write permissions:"]
    details.extend(f"  - {scope}: write" for scope in scopes)
    fix = ["To fix this issue, change write permissions to read:", "permissions:"]
    fix.extend(f"  {scope}: read" for scope in scopes)
    raise CompileError(
        kind="dangerous_permissions",
        message="Write permissions are not allowed.",
        field="permissions",
        details=details,
        suggestion="\n".join(fix),
    )


# ---------------------------------------------------------------------
# Campaign / project tracking
# ---------------------------------------------------------------------

def _is_campaign_label(label: str) -> bool:
    return label == CAMPAIGN_LABEL or label.startswith(CAMPAIGN_LABEL_PREFIX)


def _campaign_labels(ir: WorkflowIR) -> Iterable[str]:
    safe = ir.safe_outputs
    if safe is None:
        return
    if safe.add_labels is not None:
        yield from safe.add_labels.allowed
    for cfg in (safe.create_issue, safe.create_pull_request, safe.create_discussion):
        if cfg is not None:
            yield from cfg.labels


def detect_campaign(ir: WorkflowIR) -> Optional[str]:
    """Return why the workflow counts as a campaign, or None."""
    if any(_is_campaign_label(label) for label in _campaign_labels(ir)):
        return CAMPAIGN_LABELS_REASON
    if any(entry.campaign_id and entry.campaign_id.strip() for entry in ir.repo_memory):
        return CAMPAIGN_ID_REASON
    return None


def validate_campaign_project(ir: WorkflowIR) -> None:
    reason = detect_campaign(ir)
    if reason is None:
        return
    log.debug("Campaign detected via: %s", reason)

    project = ir.project
    if project is None:
        raise CompileError(
            kind="campaign_project",
            message=(
                "campaign orchestrator requires a GitHub Project URL to track work items. "
                "Please add a 'project' field to the frontmatter with a valid GitHub Project URL "
                "(e.g., project: https://github.com/orgs/myorg/projects/123). "
                f"Campaign detected via: {reason}"
            ),
            field="project",
            reason=reason,
        )
    if project.is_object:
        if project.url is None:
            raise CompileError(
                kind="campaign_project",
                message=(
                    "campaign orchestrator project configuration must include a 'url' field with a "
                    f"valid GitHub Project URL. Campaign detected via: {reason}"
                ),
                field="project.url",
                reason=reason,
            )
        if not project.url.strip():
            raise CompileError(
                kind="campaign_project",
                message=f"campaign orchestrator project URL must be a non-empty string. Campaign detected via: {reason}",
                field="project.url",
                reason=reason,
            )
    elif not project.url or not project.url.strip():
        raise CompileError(
            kind="campaign_project",
            message=f"campaign orchestrator requires a non-empty GitHub Project URL. Campaign detected via: {reason}",
            field="project",
            reason=reason,
        )


# ---------------------------------------------------------------------
# Strict mode network / sandbox
# ---------------------------------------------------------------------

def supports_llm_gateway(engine: str) -> bool:
    return engine in LLM_GATEWAY_ENGINES


def validate_strict_firewall(ir: WorkflowIR, strict: bool) -> List[ValidationWarning]:
    """
    In strict mode:
      - ``sandbox.agent: false`` is always rejected,
      - a ``*`` allow-list skips the domain check,
      - otherwise every allowed entry must be an ecosystem identifier or one
        of its domains, unless the engine has its own LLM gateway,
      - a disabled firewall with an allow-list is rejected.

    Outside strict mode the same findings come back as warnings where they
    would weaken sandboxing.
    """
    warnings: List[ValidationWarning] = []
    network = ir.network
    engine = ir.engine

    if ir.sandbox.agent_disabled:
        if strict:
            if supports_llm_gateway(engine):
                message = "strict mode: 'sandbox.agent: false' is not allowed. Remove it or disable strict mode."
            else:
                message = (
                    f"strict mode: engine '{engine}' does not support LLM gateway and requires the agent "
                    "sandbox. 'sandbox.agent: false' is not allowed in strict mode."
                )
            raise CompileError(kind="strict_sandbox", message=message, field="sandbox.agent")
        warnings.append(ValidationWarning(
            "sandbox", "sandbox.agent is disabled; the agent runs without network firewalling"
        ))

    if not network.firewall_enabled and network.allowed:
        if strict:
            raise CompileError(
                kind="strict_network",
                message="strict mode: cannot disable firewall when network restrictions (network.allowed) are set",
                field="network.firewall",
            )
        warnings.append(ValidationWarning(
            "firewall",
            "Firewall is disabled but network restrictions are specified (network.allowed). "
            "Network may not be properly sandboxed.",
        ))

    if not strict or network.allowed is None:
        return warnings
    if network.allows_all:
        log.debug("Wildcard network allow-list, skipping ecosystem check")
        return warnings
    if supports_llm_gateway(engine):
        log.debug("Engine '%s' supports LLM gateway, skipping ecosystem check", engine)
        return warnings

    unknown = unknown_entries(network.allowed)
    if unknown:
        raise CompileError(
            kind="strict_network",
            message=(
                "strict mode: network domains must be from known ecosystems (e.g., 'defaults', "
                f"'python', 'node') for engine '{engine}'. Unknown entries: {', '.join(unknown)}"
            ),
            field="network.allowed",
            suggestion="Use ecosystem identifiers instead of custom domains, or disable strict mode.",
        )
    return warnings


# ---------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------

def run_validators(ir: WorkflowIR, strict: bool) -> List[ValidationWarning]:
    """
    Raises:
        CompileError: the first failing check.
    """
    validate_dangerous_permissions(ir)
    validate_campaign_project(ir)
    return validate_strict_firewall(ir, strict)
