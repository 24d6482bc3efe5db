# schema.py
"""
Pydantic models for workflow frontmatter.

The loader validates raw YAML against these models and converts the result
into the frozen IR. Field aliases use the hyphenated spelling found in
workflow files (``title-prefix``, ``hide-older-comments``); the Python name
is accepted too.

Shape problems (a string where a flag is expected, ``max: "three"``) fail
validation here. Settings that have the right shape but an unsupported value
(sandbox type, github mode, mount syntax) are checked by the loader.
"""
from __future__ import annotations

from datetime import date
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, StrictBool, StrictInt, field_validator, model_validator


def _hyphenate(name: str) -> str:
    return name.rstrip("_").replace("_", "-")


def _as_list(value: Any) -> Any:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return value


# a single string is shorthand for a one-element list
StringList = Annotated[List[str], BeforeValidator(_as_list)]
Count = Annotated[StrictInt, Field(ge=1)]
RetentionDays = Annotated[StrictInt, Field(ge=1, le=90)]


class FrontmatterModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=_hyphenate,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

class SkipQueryModel(FrontmatterModel):
    """``skip-if-match`` / ``skip-if-no-match``; a bare string is the query."""

    query: str
    max: Optional[Count] = None
    min: Optional[Count] = None

    @model_validator(mode="before")
    @classmethod
    def _query_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"query": data}
        return data

    @field_validator("query")
    @classmethod
    def _non_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must be a non-empty string")
        return v


class GatingModel(FrontmatterModel):
    """Keys under ``on:`` that configure the gating job instead of naming events."""

    command: Optional[StringList] = None
    slash_command: Optional[StringList] = None
    stop_after: Optional[str] = None
    skip_if_match: Optional[SkipQueryModel] = None
    skip_if_no_match: Optional[SkipQueryModel] = None
    reaction: Optional[str] = None
    roles: Optional[StringList] = None

    @field_validator("command", "slash_command", mode="before")
    @classmethod
    def _command_name(cls, v: Any) -> Any:
        if isinstance(v, dict):
            return v.get("name")
        return v

    @field_validator("stop_after", mode="before")
    @classmethod
    def _stop_after_text(cls, v: Any) -> Any:
        # an unquoted timestamp arrives as a date/datetime
        if isinstance(v, date):
            return str(v)
        return v

    @field_validator("reaction", mode="before")
    @classmethod
    def _signed_reaction(cls, v: Any) -> Any:
        # YAML reads +1 / -1 as integers
        if isinstance(v, int) and not isinstance(v, bool):
            return "%+d" % v
        return v

    def commands(self) -> List[str]:
        names = self.command if self.command is not None else self.slash_command
        return [c.lstrip("/") for c in names or []]


# ---------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------

class CustomJobModel(FrontmatterModel):
    needs: Optional[StringList] = None
    runs_on: Optional[str] = None
    if_: Optional[str] = None
    permissions: Any = None
    outputs: Optional[Dict[str, str]] = None
    steps: Optional[List[Dict[str, Any]]] = None
    uses: Optional[str] = None
    with_: Optional[Dict[str, Any]] = None
    secrets: Optional[Dict[str, str]] = None


class PreActivationModel(FrontmatterModel):
    steps: Optional[List[Dict[str, Any]]] = None
    outputs: Optional[Dict[str, str]] = None


# ---------------------------------------------------------------------
# Engine / tools / network / sandbox
# ---------------------------------------------------------------------

class EngineModel(FrontmatterModel):
    id: str = Field(min_length=1)
    model: Optional[str] = None

    @model_validator(mode="before")
    @classmethod
    def _engine_shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"id": data}
        return data


class GitHubToolModel(FrontmatterModel):
    mode: Optional[str] = None


class RepoMemoryModel(FrontmatterModel):
    id: str = "default"
    branch_name: Optional[str] = None
    campaign_id: Optional[str] = None
    file_glob: StringList = Field(default_factory=list)
    max_file_size: Optional[Count] = None


class CacheMemoryModel(FrontmatterModel):
    id: str = "default"
    key: Optional[str] = None
    read_only: StrictBool = False
    retention_days: Optional[RetentionDays] = None


def _memory_entries(value: Any) -> Any:
    """``true`` enables one default entry; a mapping is a single entry."""
    if value is None or value is False:
        return []
    if value is True:
        return [{}]
    if isinstance(value, dict):
        return [value]
    return value


class ToolsModel(FrontmatterModel):
    github: Optional[GitHubToolModel] = None
    repo_memory: List[RepoMemoryModel] = Field(default_factory=list)
    cache_memory: List[CacheMemoryModel] = Field(default_factory=list)

    @field_validator("github", mode="before")
    @classmethod
    def _github_settings(cls, v: Any) -> Any:
        # `github:` with no settings (or a flag) just enables the tool
        if not isinstance(v, dict):
            return None
        return v

    @field_validator("repo_memory", "cache_memory", mode="before")
    @classmethod
    def _entries(cls, v: Any) -> Any:
        return _memory_entries(v)


class FirewallModel(FrontmatterModel):
    enabled: StrictBool = True


class NetworkModel(FrontmatterModel):
    """``network: defaults`` or ``{allowed: [...], firewall: ...}``."""

    allowed: Optional[StringList] = None
    firewall: Union[StrictBool, FirewallModel, str] = True

    @model_validator(mode="before")
    @classmethod
    def _defaults_keyword(cls, data: Any) -> Any:
        if data is None or data == "defaults":
            return {}
        return data

    @property
    def firewall_enabled(self) -> bool:
        if isinstance(self.firewall, FirewallModel):
            return self.firewall.enabled
        return self.firewall not in (False, "disable", "disabled")


class SandboxAgentModel(FrontmatterModel):
    id: Optional[str] = None
    type: Optional[str] = None
    mounts: StringList = Field(default_factory=list)


class SandboxModel(FrontmatterModel):
    agent: Union[Literal[False], str, SandboxAgentModel, None] = None
    type: Optional[str] = None


# ---------------------------------------------------------------------
# Safe outputs
# ---------------------------------------------------------------------

class SafeOutputKindModel(FrontmatterModel):
    max: Optional[Count] = None
    github_token: Optional[str] = None
    target_repo: Optional[str] = None


class CreateIssueModel(SafeOutputKindModel):
    title_prefix: Optional[str] = None
    labels: StringList = Field(default_factory=list)
    allowed_labels: StringList = Field(default_factory=list)
    assignees: StringList = Field(default_factory=list)
    expires: Optional[Count] = None


class AddCommentModel(SafeOutputKindModel):
    target: Optional[str] = None
    hide_older_comments: StrictBool = False
    discussion: StrictBool = False


class AddLabelsModel(SafeOutputKindModel):
    allowed: StringList = Field(default_factory=list)
    target: Optional[str] = None


class CreatePullRequestModel(SafeOutputKindModel):
    title_prefix: Optional[str] = None
    labels: StringList = Field(default_factory=list)
    allowed_labels: StringList = Field(default_factory=list)
    reviewers: StringList = Field(default_factory=list)
    draft: Optional[StrictBool] = None
    if_no_changes: Optional[str] = None
    allow_empty: StrictBool = False
    auto_merge: StrictBool = False
    base_branch: Optional[str] = None
    expires: Optional[Count] = None
    max_patch_size: Optional[Count] = None


class CreateDiscussionModel(SafeOutputKindModel):
    title_prefix: Optional[str] = None
    category: Optional[str] = None
    labels: StringList = Field(default_factory=list)
    allowed_labels: StringList = Field(default_factory=list)
    close_older_discussions: StrictBool = False
    expires: Optional[Count] = None


class UpdateProjectModel(SafeOutputKindModel):
    project: Optional[str] = None
    views: List[Dict[str, Any]] = Field(default_factory=list)

    @field_validator("views", mode="before")
    @classmethod
    def _no_views(cls, v: Any) -> Any:
        return [] if v is None else v


class ProjectStatusUpdateModel(SafeOutputKindModel):
    project: Optional[str] = None


class ThreatDetectionModel(FrontmatterModel):
    enabled: StrictBool = True


SAFE_OUTPUT_KEYS = (
    "create-issue",
    "add-comment",
    "add-labels",
    "create-pull-request",
    "create-discussion",
    "update-project",
    "create-project-status-update",
)


class SafeOutputsModel(FrontmatterModel):
    github_token: Optional[str] = None
    threat_detection: Union[StrictBool, ThreatDetectionModel] = False
    max_patch_size: Optional[Count] = None

    create_issue: Optional[CreateIssueModel] = None
    add_comment: Optional[AddCommentModel] = None
    add_labels: Optional[AddLabelsModel] = None
    create_pull_request: Optional[CreatePullRequestModel] = None
    create_discussion: Optional[CreateDiscussionModel] = None
    update_project: Optional[UpdateProjectModel] = None
    create_project_status_update: Optional[ProjectStatusUpdateModel] = None

    @model_validator(mode="before")
    @classmethod
    def _kind_switches(cls, data: Any) -> Any:
        # `kind:` with no value (or true) enables defaults, `kind: false` disables
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in SAFE_OUTPUT_KEYS:
            if key not in data:
                continue
            if data[key] is False:
                del data[key]
            elif data[key] is None or data[key] is True:
                data[key] = {}
        return data

    @property
    def threat_detection_enabled(self) -> bool:
        if isinstance(self.threat_detection, ThreatDetectionModel):
            return self.threat_detection.enabled
        return self.threat_detection


# ---------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------

class WorkflowFrontmatter(FrontmatterModel):
    """
    Top-level frontmatter. ``on``, ``permissions``, ``jobs``, ``sandbox`` and
    ``project`` have several legal shapes and are read by the loader directly.
    """

    name: Optional[str] = None
    roles: Optional[StringList] = None
    if_: Optional[str] = None
    runs_on: Optional[str] = None
    engine: Optional[EngineModel] = None
    github_token: Optional[str] = None
    timeout_minutes: Optional[Count] = None
    env: Optional[Dict[str, Union[StrictBool, str]]] = None
    strict: Optional[StrictBool] = None
    features: Optional[Dict[str, StrictBool]] = None
    network: NetworkModel = Field(default_factory=NetworkModel)
    tools: ToolsModel = Field(default_factory=ToolsModel)
    safe_outputs: Optional[SafeOutputsModel] = None

    @field_validator("network", "tools", mode="before")
    @classmethod
    def _absent_section(cls, v: Any) -> Any:
        return {} if v is None else v
