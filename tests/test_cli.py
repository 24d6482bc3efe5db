"""Tests for the agenticci command line."""

from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner

from agenticci.cli import cli
from agenticci.errors import ContractError

WORKFLOW = """---
name: Weekly summary
on:
  schedule:
    - cron: "0 9 * * 1"
permissions:
  contents: read
safe-outputs:
  create-issue:
    labels: [report]
---

Summarize last week's activity.
"""

DANGEROUS = """---
on: push
permissions:
  contents: write
---

Push things.
"""


@pytest.fixture
def runner():
    return CliRunner()


def test_compile_writes_lock_file(runner):
    with runner.isolated_filesystem():
        Path("summary.md").write_text(WORKFLOW, encoding="utf-8")
        result = runner.invoke(cli, ["compile", "summary.md"])

        assert result.exit_code == 0, result.output
        assert "COMPILED" in result.output
        lock = yaml.safe_load(Path("summary.lock.yml").read_text(encoding="utf-8"))
        assert lock["name"] == "Weekly summary"
        assert list(lock["jobs"]) == ["activation", "agent", "create_issue", "conclusion"]


def test_compile_without_suffix_and_custom_output(runner):
    with runner.isolated_filesystem():
        Path("summary.md").write_text(WORKFLOW, encoding="utf-8")
        result = runner.invoke(cli, ["compile", "summary", "--output", "out/summary.lock.yml"])

        assert result.exit_code == 0, result.output
        assert Path("out/summary.lock.yml").exists()


def test_compile_discovers_workflows(runner):
    with runner.isolated_filesystem():
        workflows = Path(".github/workflows")
        workflows.mkdir(parents=True)
        (workflows / "summary.md").write_text(WORKFLOW, encoding="utf-8")
        result = runner.invoke(cli, ["compile"])

        assert result.exit_code == 0, result.output
        assert (workflows / "summary.lock.yml").exists()


def test_compile_error_is_reported(runner):
    with runner.isolated_filesystem():
        Path("danger.md").write_text(DANGEROUS, encoding="utf-8")
        result = runner.invoke(cli, ["compile", "danger.md"])

        assert result.exit_code == 1
        assert "Dangerous permissions" in result.output
        assert "contents: write" in result.output
        assert not Path("danger.lock.yml").exists()


def test_missing_workflow(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["compile", "nope.md"])
        assert result.exit_code == 1
        assert "Workflow file not found" in result.output


def test_no_workflows_found(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 1
        assert "No workflow file found" in result.output


def test_strict_flag(runner):
    strict_workflow = WORKFLOW.replace("safe-outputs:", "network:\n  allowed: [example.com]\nsafe-outputs:")
    with runner.isolated_filesystem():
        Path("summary.md").write_text(strict_workflow, encoding="utf-8")
        assert runner.invoke(cli, ["compile", "summary.md"]).exit_code == 0

        result = runner.invoke(cli, ["compile", "--strict", "summary.md"])
        assert result.exit_code == 1
        assert "Strict mode network violation" in result.output


def test_graph_prints_levels(runner):
    with runner.isolated_filesystem():
        Path("summary.md").write_text(WORKFLOW, encoding="utf-8")
        result = runner.invoke(cli, ["graph", "summary.md"])

        assert result.exit_code == 0, result.output
        assert "LEVEL 0" in result.output
        assert "create_issue <- agent" in result.output


def test_compile_many_reports_summary(runner):
    with runner.isolated_filesystem():
        Path("summary.md").write_text(WORKFLOW, encoding="utf-8")
        Path("danger.md").write_text(DANGEROUS, encoding="utf-8")
        result = runner.invoke(cli, ["compile", "summary.md", "danger.md"])

        assert result.exit_code == 1
        assert Path("summary.lock.yml").exists()
        assert "1 of 2 workflow(s) compiled" in result.output


def test_contract_error_is_reported(runner, monkeypatch):
    def broken(self, ir):
        raise ContractError("no conditions to fold")

    monkeypatch.setattr("agenticci.cli.Compiler.compile", broken)
    with runner.isolated_filesystem():
        Path("summary.md").write_text(WORKFLOW, encoding="utf-8")
        result = runner.invoke(cli, ["compile", "summary.md"])

        assert result.exit_code == 1
        assert "Error: no conditions to fold" in result.output
        assert not Path("summary.lock.yml").exists()

        result = runner.invoke(cli, ["graph", "summary.md"])
        assert result.exit_code == 1
        assert "Error: no conditions to fold" in result.output
