# config.py
from __future__ import annotations

import os
from dataclasses import dataclass

from .constants import DEFAULT_RUNNER, GATING_RUNNER

ACTION_MODES = ("dev", "release", "script")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class CompilerConfig:
    """
    Settings for one Compiler instance.

    Passed to the constructor instead of living in module globals, so several
    compilers with different settings can run side by side.

    Env:
      AGENTICCI_VERSION       version stamped into generated jobs
      AGENTICCI_RELEASE       1/true selects the release action mode unless
                              AGENTICCI_ACTION_MODE says otherwise
      AGENTICCI_ACTION_MODE   dev | release | script
      AGENTICCI_STRICT        default strict mode when a workflow does not say
    """
    version: str = "dev"
    action_mode: str = "dev"
    strict: bool = False
    default_runner: str = DEFAULT_RUNNER
    gating_runner: str = GATING_RUNNER
    setup_action_ref: str = "githubnext/gh-aw/actions/setup"

    def __post_init__(self) -> None:
        if self.action_mode not in ACTION_MODES:
            raise ValueError(f"invalid action mode {self.action_mode!r}; expected one of {list(ACTION_MODES)}")

    @classmethod
    def from_env(cls) -> "CompilerConfig":
        release = _env_flag("AGENTICCI_RELEASE")
        return cls(
            version=os.getenv("AGENTICCI_VERSION", "dev"),
            action_mode=os.getenv("AGENTICCI_ACTION_MODE", "release" if release else "dev"),
            strict=_env_flag("AGENTICCI_STRICT"),
        )

    @property
    def setup_action(self) -> str:
        """Reference of the setup action used as the first step of generated jobs."""
        if self.action_mode == "release" and self.version != "dev":
            return f"{self.setup_action_ref}@{self.version}"
        return "./actions/setup"

    def effective_strict(self, workflow_strict: bool | None) -> bool:
        return self.strict if workflow_strict is None else workflow_strict
