# permissions.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Tuple

READ = "read"
WRITE = "write"
NONE = "none"
LEVELS = (READ, WRITE, NONE)

SCOPES = (
    "actions",
    "attestations",
    "checks",
    "contents",
    "deployments",
    "discussions",
    "id-token",
    "issues",
    "metadata",
    "models",
    "packages",
    "pages",
    "pull-requests",
    "repository-projects",
    "organization-projects",
    "security-events",
    "statuses",
)

# write on these never grants access to repository data
WRITE_SAFE_SCOPES = frozenset({"id-token", "metadata"})

_RANK = {NONE: 0, READ: 1, WRITE: 2}


@dataclass(frozen=True)
class Permissions:
    """
    A permission block for one job (or the workflow top level).

    ``shorthand`` holds ``read-all`` / ``write-all`` when the block was given as
    a single string. Scopes are kept sorted so rendering is stable.
    """
    scopes: Tuple[Tuple[str, str], ...] = ()
    shorthand: str | None = None

    @classmethod
    def of(cls, mapping: Mapping[str, str] | None = None, **kwargs: str) -> "Permissions":
        merged: Dict[str, str] = dict(mapping or {})
        for key, value in kwargs.items():
            merged[key.replace("_", "-")] = value
        for scope, level in merged.items():
            if level not in LEVELS:
                raise ValueError(f"invalid permission level {level!r} for scope {scope!r}")
        return cls(scopes=tuple(sorted(merged.items())))

    @classmethod
    def parse(cls, value: str | Mapping[str, str] | None) -> "Permissions":
        """Accept ``read-all``/``write-all``/``{}`` or a scope mapping."""
        if value is None or value == {}:
            return cls()
        if isinstance(value, str):
            if value not in ("read-all", "write-all"):
                raise ValueError(f"invalid permissions shorthand {value!r}")
            return cls(shorthand=value)
        return cls.of(value)

    def as_dict(self) -> Dict[str, str]:
        if self.shorthand == "read-all":
            return {scope: READ for scope in SCOPES}
        if self.shorthand == "write-all":
            return {scope: WRITE for scope in SCOPES}
        return dict(self.scopes)

    def get(self, scope: str) -> str | None:
        return self.as_dict().get(scope)

    def is_empty(self) -> bool:
        return not self.scopes and self.shorthand is None

    def with_at_least(self, scope: str, level: str) -> "Permissions":
        """Return a copy where ``scope`` is raised to ``level`` if lower."""
        current = self.as_dict()
        if _RANK[current.get(scope, NONE)] >= _RANK[level]:
            return self
        current[scope] = level
        return Permissions.of(current)

    def merged(self, other: "Permissions") -> "Permissions":
        """Union of two blocks, keeping the higher level per scope."""
        result = self
        for scope, level in other.as_dict().items():
            result = result.with_at_least(scope, level)
        return result

    def write_scopes(self) -> list[str]:
        return sorted(s for s, level in self.as_dict().items() if level == WRITE)

    def render(self) -> str | Dict[str, str]:
        """Value for the emitted `permissions:` key."""
        if self.shorthand is not None:
            return self.shorthand
        return dict(self.scopes)


def writes(*scopes: str) -> Permissions:
    return Permissions.of({s: WRITE for s in scopes})


def contents_read() -> Permissions:
    return Permissions.of(contents=READ)


def with_contents_read(extra: Iterable[str] = ()) -> Permissions:
    perms = contents_read()
    for scope in extra:
        perms = perms.with_at_least(scope, WRITE)
    return perms
