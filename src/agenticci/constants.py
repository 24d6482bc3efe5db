# constants.py
"""
Names shared between the compiled job graph and the scripts that run inside it.

These are a wire contract: already-compiled pipelines read them by name, so
they must not change between releases.
"""
from __future__ import annotations


# ---------------------------------------------------------------------
# Job names
# ---------------------------------------------------------------------

PRE_ACTIVATION_JOB = "pre_activation"
ACTIVATION_JOB = "activation"
AGENT_JOB = "agent"
DETECTION_JOB = "detection"
CONCLUSION_JOB = "conclusion"
PUSH_REPO_MEMORY_JOB = "push_repo_memory"
UPDATE_CACHE_MEMORY_JOB = "update_cache_memory"

# Accepted spellings of the user-extensible gating job under `jobs:`
PRE_ACTIVATION_ALIASES = ("pre-activation", "pre_activation")


# ---------------------------------------------------------------------
# Gating job: step ids and their boolean outputs
# ---------------------------------------------------------------------

CHECK_MEMBERSHIP_STEP = "check_membership"
CHECK_STOP_TIME_STEP = "check_stop_time"
CHECK_SKIP_IF_MATCH_STEP = "check_skip_if_match"
CHECK_SKIP_IF_NO_MATCH_STEP = "check_skip_if_no_match"
CHECK_COMMAND_POSITION_STEP = "check_command_position"
REACTION_STEP = "react"

IS_TEAM_MEMBER_OUTPUT = "is_team_member"
STOP_TIME_OK_OUTPUT = "stop_time_ok"
SKIP_CHECK_OK_OUTPUT = "skip_check_ok"
SKIP_NO_MATCH_CHECK_OK_OUTPUT = "skip_no_match_check_ok"
COMMAND_POSITION_OK_OUTPUT = "command_position_ok"
MATCHED_COMMAND_OUTPUT = "matched_command"

ACTIVATED_OUTPUT = "activated"


# ---------------------------------------------------------------------
# Main job outputs read by safe-output jobs
# ---------------------------------------------------------------------

OUTPUT_TYPES_OUTPUT = "output_types"
AGENT_OUTPUT_ARTIFACT = "agent-output"
AGENT_PATCH_ARTIFACT = "agent-artifacts"
COLLECT_OUTPUT_STEP = "collect_output"


# ---------------------------------------------------------------------
# Tokens, env var prefixes, campaign markers
# ---------------------------------------------------------------------

DEFAULT_GITHUB_TOKEN = "${{ secrets.GH_AW_GITHUB_TOKEN || secrets.GITHUB_TOKEN }}"
ENV_PREFIX = "GH_AW_"

CAMPAIGN_LABEL = "agentic-campaign"
CAMPAIGN_LABEL_PREFIX = "z_campaign_"

DEFAULT_ROLES = ("admin", "maintainer", "write")
SAFE_EVENTS = frozenset({"schedule", "merge_group"})

DEFAULT_RUNNER = "ubuntu-latest"
GATING_RUNNER = "ubuntu-slim"

DANGEROUS_PERMISSIONS_FEATURE = "dangerous-permissions-write"
