"""Integration tests for CLI commands.

This module drives the Typer application with a scripted generation
backend, an on-disk knowledge store and a mocked GitHub API.
"""

from __future__ import annotations

import json
import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterator

import httpx
import pytest
import structlog
from typer.testing import CliRunner

import codetutor.cli.review as review_cli
from codetutor.integrations.github import GitHubClient
from codetutor.knowledge.models import Convention
from codetutor.main import app
from codetutor.review.models import PRDiffInput
from conftest import (
    EXPLAIN_PROMPT,
    FORMAT_PROMPT,
    NAMING_PROMPT,
    QUESTION_PROMPT,
    SUMMARY_PROMPT,
    ScriptedGenerator,
)

REPO = "acme/payments"


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI runner."""
    return CliRunner()


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Isolated working directory with quiet logging and a local knowledge store."""
    for name in list(os.environ):
        if name.startswith("CODETUTOR_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.setenv("CODETUTOR_LOGGING__LEVEL", "CRITICAL")
    monkeypatch.setenv("CODETUTOR_KNOWLEDGE__PATH", str(tmp_path / "knowledge"))
    yield tmp_path
    logging.getLogger().handlers.clear()
    structlog.reset_defaults()


@pytest.fixture
def generator(monkeypatch: pytest.MonkeyPatch) -> ScriptedGenerator:
    """Replace the generation backend with a scripted one."""
    scripted = ScriptedGenerator(
        {
            NAMING_PROMPT: json.dumps(
                [{"issue": "snake_case function", "conventionId": "conv-naming", "line": 1}]
            ),
            EXPLAIN_PROMPT: "Names should match the codebase.",
            FORMAT_PROMPT: "Rename to camelCase.",
            SUMMARY_PROMPT: "One naming issue per file.",
            QUESTION_PROMPT: "We use apiClient so retries are consistent.",
        }
    )

    @asynccontextmanager
    async def fake_open_generator(config: object) -> AsyncIterator[ScriptedGenerator]:
        yield scripted

    monkeypatch.setattr("codetutor.main.open_generator", fake_open_generator)
    return scripted


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _conventions_file(workspace: Path, conventions: list[Convention]) -> Path:
    return _write_json(
        workspace / "conventions.json", [c.model_dump(mode="json") for c in conventions]
    )


def _seed_store(workspace: Path, conventions: list[Convention]) -> None:
    target = workspace / "knowledge" / "acme__payments" / "conventions.json"
    target.parent.mkdir(parents=True)
    _write_json(target, [c.model_dump(mode="json") for c in conventions])


def _diff_file(workspace: Path, pr_diff: PRDiffInput) -> Path:
    return _write_json(workspace / "pr.json", pr_diff.model_dump(mode="json", by_alias=True))


@pytest.mark.integration
class TestReviewFileCLI:
    """Tests for `codetutor review file`."""

    def test_json_output(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        sample_conventions: list[Convention],
        sample_pr_diff: PRDiffInput,
    ) -> None:
        result = cli_runner.invoke(
            app,
            [
                "review",
                "file",
                str(_diff_file(workspace, sample_pr_diff)),
                "--conventions",
                str(_conventions_file(workspace, sample_conventions)),
                "--json",
            ],
        )

        assert result.exit_code == 0, result.output
        payload = json.loads(result.stdout)
        assert payload["summary"] == "One naming issue per file."
        assert [c["path"] for c in payload["comments"]] == [
            "src/controllers/user.ts",
            "src/services/user.ts",
        ]
        assert all(c["body"] == "Rename to camelCase." for c in payload["comments"])

    def test_console_report_from_knowledge_store(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        sample_conventions: list[Convention],
        sample_pr_diff: PRDiffInput,
    ) -> None:
        _seed_store(workspace, sample_conventions)

        result = cli_runner.invoke(
            app,
            ["review", "file", str(_diff_file(workspace, sample_pr_diff)), "--repo", REPO],
        )

        assert result.exit_code == 0, result.output
        assert "PR #42 Review Summary" in result.stdout
        assert "src/services/user.ts:1" in result.stdout

    def test_missing_repository(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        sample_pr_diff: PRDiffInput,
    ) -> None:
        result = cli_runner.invoke(
            app, ["review", "file", str(_diff_file(workspace, sample_pr_diff))]
        )

        assert result.exit_code == 1
        assert "No repository configured" in result.stdout
        assert generator.prompts == []

    def test_invalid_document(
        self, cli_runner: CliRunner, workspace: Path, generator: ScriptedGenerator
    ) -> None:
        bad = _write_json(workspace / "pr.json", {"title": "no number"})

        result = cli_runner.invoke(app, ["review", "file", str(bad), "--repo", REPO])

        assert result.exit_code == 1
        assert "Invalid input document" in result.stdout


@pytest.mark.integration
class TestReviewRunCLI:
    """Tests for `codetutor review run` against a mocked GitHub API."""

    def test_fetch_review_and_post(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        sample_conventions: list[Convention],
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        _seed_store(workspace, sample_conventions)
        monkeypatch.setenv("CODETUTOR_GITHUB__TOKEN", "t0ken")
        posted: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "POST":
                posted.append(json.loads(request.content))
                return httpx.Response(200, json={"id": 7})
            if request.url.path.endswith("/files"):
                return httpx.Response(
                    200, json=[{"filename": "src/a.ts", "patch": "+def x", "status": "added"}]
                )
            return httpx.Response(
                200,
                json={
                    "title": "Add a",
                    "base": {"ref": "main"},
                    "head": {"ref": "feature/a", "sha": "abc123"},
                },
            )

        monkeypatch.setattr(
            review_cli,
            "GitHubClient",
            lambda config: GitHubClient(config, transport=httpx.MockTransport(handler)),
        )

        result = cli_runner.invoke(app, ["review", "run", REPO, "7", "--post"])

        assert result.exit_code == 0, result.output
        assert f"Review posted to {REPO}#7" in result.stdout
        (review,) = posted
        assert review["event"] == "COMMENT"
        assert review["commit_id"] == "abc123"
        assert review["comments"] == [
            {"path": "src/a.ts", "line": 1, "body": "Rename to camelCase."}
        ]

    def test_missing_token(
        self, cli_runner: CliRunner, workspace: Path, generator: ScriptedGenerator
    ) -> None:
        result = cli_runner.invoke(app, ["review", "run", REPO, "7"])

        assert result.exit_code == 1
        assert "GitHub token not configured" in result.stdout

    def test_invalid_repository(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("CODETUTOR_GITHUB__TOKEN", "t0ken")

        result = cli_runner.invoke(app, ["review", "run", "acme", "7"])

        assert result.exit_code == 1
        assert "Invalid repository" in result.stdout
        assert "owner/repo" in result.stdout
        assert "GitHub error" not in result.stdout


@pytest.mark.integration
class TestAskCLI:
    """Tests for `codetutor ask`."""

    def test_answer(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        sample_conventions: list[Convention],
    ) -> None:
        _seed_store(workspace, sample_conventions)

        result = cli_runner.invoke(app, ["ask", "Why not axios?", "--repo", REPO])

        assert result.exit_code == 0, result.output
        assert "apiClient" in result.stdout
        assert "Use the shared HTTP client" in generator.prompts[0]

    def test_repository_from_environment(
        self,
        cli_runner: CliRunner,
        workspace: Path,
        generator: ScriptedGenerator,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("CODETUTOR_REPOSITORY__FULL_NAME", REPO)

        result = cli_runner.invoke(app, ["ask", "How do we name things?"])

        assert result.exit_code == 0, result.output
        assert "No team conventions are recorded yet." in generator.prompts[0]

    def test_missing_repository(
        self, cli_runner: CliRunner, workspace: Path, generator: ScriptedGenerator
    ) -> None:
        result = cli_runner.invoke(app, ["ask", "Anything?"])

        assert result.exit_code == 1
        assert "No repository configured" in result.stdout
