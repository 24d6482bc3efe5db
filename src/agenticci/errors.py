# errors.py
from __future__ import annotations

import dataclasses
from dataclasses import dataclass


class AgenticCIError(Exception):
    """Base class for every error raised by agenticci."""


@dataclass(eq=False)
class CompileError(AgenticCIError):
    """
    Structured compilation failure with enough context for:
      - clean CLI output (title, offending field, suggested fix)
      - explaining *why* a requirement kicked in (detection reason)

    Always fatal: no job graph is produced once one is raised.
    """
    kind: str
    message: str
    field: str | None = None
    reason: str | None = None
    suggestion: str | None = None
    details: list[str] = dataclasses.field(default_factory=list)

    def __str__(self) -> str:
        lines = [self.message]
        if self.field:
            lines.append(f"field={self.field}")
        if self.reason:
            lines.append(f"reason={self.reason}")
        lines.extend(self.details)
        if self.suggestion:
            lines.append(self.suggestion)
        return "\n".join(lines)


class DuplicateJobError(CompileError):
    def __init__(self, name: str):
        super().__init__(
            kind="duplicate_job",
            message=f"Duplicate job name found: '{name}'",
            field="jobs",
        )
        self.name = name


class UnknownDependencyError(CompileError):
    def __init__(self, job: str, missing: str, known: list[str]):
        super().__init__(
            kind="unknown_dependency",
            message=f"Job '{job}' needs missing job '{missing}'. Known jobs: {sorted(known)}",
            field=f"jobs.{job}.needs",
        )
        self.job = job
        self.missing = missing


class ContractError(AgenticCIError):
    """
    Raised when calling code breaks a builder contract (folding no conditions,
    building a job for a disabled output kind, ...). Indicates a bug, never bad
    user input.
    """


class LoadError(AgenticCIError):
    """Raised when a workflow file cannot be turned into a WorkflowIR."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path:
            return f"{self.path}: {self.message}"
        return self.message


@dataclass(frozen=True)
class ValidationWarning:
    """A policy finding that is only an error in strict mode."""
    check: str
    message: str
