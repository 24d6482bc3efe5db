# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .errors import ContractError
from .permissions import Permissions


@dataclass(frozen=True)
class Step:
    """
    A single step inside a job.

    Generated steps fill the typed fields; user-declared steps arrive already
    validated and are carried verbatim in ``raw``. The emitter never looks
    inside either kind beyond ``to_dict``.
    """
    name: str | None = None
    id: str | None = None
    if_: str | None = None
    uses: str | None = None
    run: str | None = None
    with_: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    raw: Optional[Dict[str, Any]] = None

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "Step":
        return cls(name=mapping.get("name"), id=mapping.get("id"), raw=dict(mapping))

    def to_dict(self) -> Dict[str, Any]:
        if self.raw is not None:
            return dict(self.raw)
        out: Dict[str, Any] = {}
        if self.name:
            out["name"] = self.name
        if self.id:
            out["id"] = self.id
        if self.if_:
            out["if"] = self.if_
        if self.uses:
            out["uses"] = self.uses
        if self.with_:
            out["with"] = dict(self.with_)
        if self.env:
            out["env"] = dict(self.env)
        if self.run:
            out["run"] = self.run
        return out


@dataclass
class Job:
    """
    One node of the job graph.

    ``needs`` is an ordered set of job names that must finish first.
    ``if_`` is a rendered condition, empty for unconditional jobs.
    A job either carries inline ``steps`` or calls a reusable workflow through
    ``uses`` (with ``with_``/``secrets``), never both.

    After a job is added to a JobGraphStore only ``add_needs`` and
    ``add_outputs`` may change it.
    """
    name: str
    needs: List[str] = field(default_factory=list)
    if_: str = ""
    runs_on: str | None = None
    permissions: Permissions | None = None
    steps: List[Step] = field(default_factory=list)
    outputs: Dict[str, str] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    timeout_minutes: int | None = None

    # reusable workflow call
    uses: str | None = None
    with_: Dict[str, Any] = field(default_factory=dict)
    secrets: Dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.name:
            raise ContractError("job name must not be empty")
        if self.uses and self.steps:
            raise ContractError(
                f"job '{self.name}' calls reusable workflow '{self.uses}' and cannot also define steps"
            )
        deduped: List[str] = []
        for need in self.needs:
            if need not in deduped:
                deduped.append(need)
        self.needs = deduped

    # ---- sanctioned append-only mutations ----
    def add_needs(self, *names: str) -> List[str]:
        """Append dependencies not already present. Returns the ones added."""
        added = []
        for name in names:
            if name not in self.needs:
                self.needs.append(name)
                added.append(name)
        return added

    def add_outputs(self, outputs: Mapping[str, str]) -> List[str]:
        """Append outputs whose names are new. Existing outputs are kept."""
        added = []
        for key, value in outputs.items():
            if key not in self.outputs:
                self.outputs[key] = value
                added.append(key)
        return added


class Quoted(str):
    """A string value the emitter must always write as a quoted scalar."""
    __slots__ = ()
