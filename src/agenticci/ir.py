# ir.py
"""
Typed, read-only representation of one workflow.

Produced once by the loader (or any other front end) and only read by the
compiler. Nothing in here holds raw frontmatter maps except the opaque pieces
that are passed through to emission untouched (``on``, user steps).
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .constants import DEFAULT_ROLES
from .permissions import Permissions


# ---------------------------------------------------------------------
# Gating inputs
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class SkipQuery:
    """Search query plus its threshold (max for skip-if-match, min for skip-if-no-match)."""
    query: str
    threshold: int = 1


# Safe output kinds in the order their jobs are built
SAFE_OUTPUT_KINDS = (
    "create_issue",
    "create_discussion",
    "add_comment",
    "create_pull_request",
    "add_labels",
    "update_project",
    "create_project_status_update",
)


# ---------------------------------------------------------------------
# Network / sandbox
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class NetworkPolicy:
    """
    ``allowed`` is None when the workflow did not configure a network block
    (the ``defaults`` ecosystem applies); an empty tuple denies everything.
    """
    allowed: Optional[Tuple[str, ...]] = None
    firewall_enabled: bool = True

    @property
    def allows_all(self) -> bool:
        return self.allowed is not None and "*" in self.allowed


@dataclass(frozen=True)
class SandboxPolicy:
    """Canonical sandbox selection; legacy shapes are normalized by the loader."""
    agent: Optional[str] = "awf"
    agent_disabled: bool = False
    mounts: Tuple[str, ...] = ()


# ---------------------------------------------------------------------
# Safe outputs
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class SafeOutputKindConfig:
    """Fields shared by every output kind."""
    max: Optional[int] = None
    github_token: Optional[str] = None
    target_repo: Optional[str] = None


@dataclass(frozen=True)
class CreateIssueConfig(SafeOutputKindConfig):
    title_prefix: Optional[str] = None
    labels: Tuple[str, ...] = ()
    allowed_labels: Tuple[str, ...] = ()
    assignees: Tuple[str, ...] = ()
    expires: Optional[int] = None


@dataclass(frozen=True)
class AddCommentConfig(SafeOutputKindConfig):
    target: Optional[str] = None
    hide_older_comments: bool = False
    discussion: bool = False


@dataclass(frozen=True)
class AddLabelsConfig(SafeOutputKindConfig):
    allowed: Tuple[str, ...] = ()
    target: Optional[str] = None


@dataclass(frozen=True)
class CreatePullRequestConfig(SafeOutputKindConfig):
    title_prefix: Optional[str] = None
    labels: Tuple[str, ...] = ()
    allowed_labels: Tuple[str, ...] = ()
    reviewers: Tuple[str, ...] = ()
    draft: Optional[bool] = None
    if_no_changes: Optional[str] = None
    allow_empty: bool = False
    auto_merge: bool = False
    base_branch: Optional[str] = None
    expires: Optional[int] = None
    max_patch_size: Optional[int] = None


@dataclass(frozen=True)
class CreateDiscussionConfig(SafeOutputKindConfig):
    title_prefix: Optional[str] = None
    category: Optional[str] = None
    labels: Tuple[str, ...] = ()
    allowed_labels: Tuple[str, ...] = ()
    close_older_discussions: bool = False
    expires: Optional[int] = None


@dataclass(frozen=True)
class UpdateProjectConfig(SafeOutputKindConfig):
    project: Optional[str] = None
    views: Tuple[Mapping[str, Any], ...] = ()


@dataclass(frozen=True)
class ProjectStatusUpdateConfig(SafeOutputKindConfig):
    project: Optional[str] = None


@dataclass(frozen=True)
class SafeOutputsConfig:
    github_token: Optional[str] = None
    threat_detection: bool = False
    max_patch_size: Optional[int] = None

    create_issue: Optional[CreateIssueConfig] = None
    add_comment: Optional[AddCommentConfig] = None
    add_labels: Optional[AddLabelsConfig] = None
    create_pull_request: Optional[CreatePullRequestConfig] = None
    create_discussion: Optional[CreateDiscussionConfig] = None
    update_project: Optional[UpdateProjectConfig] = None
    create_project_status_update: Optional[ProjectStatusUpdateConfig] = None

    def enabled_kinds(self) -> Tuple[str, ...]:
        return tuple(k for k in SAFE_OUTPUT_KINDS if getattr(self, k) is not None)

    def any_enabled(self) -> bool:
        return bool(self.enabled_kinds())


# ---------------------------------------------------------------------
# Project / memory / custom jobs
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectRef:
    """
    Tracking project reference. ``is_object`` records that the user wrote the
    object form, where a missing ``url`` is reported differently.
    """
    url: Optional[str]
    is_object: bool = False


@dataclass(frozen=True)
class RepoMemoryEntry:
    id: str = "default"
    branch_name: Optional[str] = None
    campaign_id: Optional[str] = None
    file_glob: Tuple[str, ...] = ()
    max_file_size: Optional[int] = None


@dataclass(frozen=True)
class CacheMemoryEntry:
    id: str = "default"
    key: Optional[str] = None
    read_only: bool = False
    retention_days: Optional[int] = None


@dataclass(frozen=True)
class CustomJobDecl:
    """
    A user-declared job under `jobs:`.

    ``needs`` is None when the user did not write the key, which is different
    from an explicit empty list.
    """
    name: str
    needs: Optional[Tuple[str, ...]] = None
    runs_on: Optional[str] = None
    if_: Optional[str] = None
    permissions: Optional[Permissions] = None
    outputs: Tuple[Tuple[str, str], ...] = ()
    steps: Tuple[Mapping[str, Any], ...] = ()
    uses: Optional[str] = None
    with_: Tuple[Tuple[str, Any], ...] = ()
    secrets: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class PreActivationExtension:
    """User steps/outputs merged into the generated gating job."""
    steps: Tuple[Mapping[str, Any], ...] = ()
    outputs: Tuple[Tuple[str, str], ...] = ()


# ---------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class WorkflowIR:
    name: str
    workflow_id: str = ""
    events: Tuple[str, ...] = ()
    on: Mapping[str, Any] = field(default_factory=dict)

    # gating
    commands: Tuple[str, ...] = ()
    roles: Tuple[str, ...] = DEFAULT_ROLES
    stop_time: Optional[str] = None
    skip_if_match: Optional[SkipQuery] = None
    skip_if_no_match: Optional[SkipQuery] = None
    reaction: Optional[str] = None
    pre_activation: Optional[PreActivationExtension] = None

    # agent job
    if_: Optional[str] = None
    runs_on: Optional[str] = None
    permissions: Permissions = field(default_factory=Permissions)
    engine: str = "copilot"
    model: Optional[str] = None
    github_token: Optional[str] = None
    timeout_minutes: Optional[int] = None
    env: Tuple[Tuple[str, str], ...] = ()
    github_mode: Optional[str] = None

    # policy
    strict: Optional[bool] = None
    features: FrozenSet[str] = frozenset()
    network: NetworkPolicy = field(default_factory=NetworkPolicy)
    sandbox: SandboxPolicy = field(default_factory=SandboxPolicy)

    safe_outputs: Optional[SafeOutputsConfig] = None
    project: Optional[ProjectRef] = None

    custom_jobs: Tuple[CustomJobDecl, ...] = ()
    repo_memory: Tuple[RepoMemoryEntry, ...] = ()
    cache_memory: Tuple[CacheMemoryEntry, ...] = ()

    @property
    def has_command_trigger(self) -> bool:
        return bool(self.commands)

    @property
    def has_workflow_run_trigger(self) -> bool:
        return "workflow_run" in self.events

    @property
    def threat_detection_enabled(self) -> bool:
        return self.safe_outputs is not None and self.safe_outputs.threat_detection

    def feature_enabled(self, name: str) -> bool:
        return name in self.features

    def env_dict(self) -> Dict[str, str]:
        return dict(self.env)
