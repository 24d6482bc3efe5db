"""Shared fixtures for agenticci tests."""

from __future__ import annotations

import pytest

from agenticci.config import CompilerConfig
from agenticci.ir import WorkflowIR


@pytest.fixture
def config() -> CompilerConfig:
    return CompilerConfig()


@pytest.fixture
def make_ir():
    """
    Factory for WorkflowIR instances.

    Defaults describe a schedule-only workflow, so no gating check is enabled
    unless a test asks for one.
    """

    def _make(**overrides) -> WorkflowIR:
        fields = {
            "name": "Test Workflow",
            "workflow_id": "test-workflow",
            "events": ("schedule",),
            "on": {"schedule": [{"cron": "0 9 * * 1"}]},
        }
        fields.update(overrides)
        return WorkflowIR(**fields)

    return _make


@pytest.fixture
def write_workflow(tmp_path):
    """Write a markdown workflow file and return its path."""

    def _write(frontmatter: str, name: str = "workflow.md", body: str = "Do the thing.\n"):
        path = tmp_path / name
        path.write_text(f"---\n{frontmatter.strip()}\n---\n\n{body}", encoding="utf-8")
        return path

    return _write
