"""Unit tests for the GitHub adapter."""

from __future__ import annotations

import json
from typing import Callable

import httpx
import pytest

from codetutor.config import GitHubConfig
from codetutor.integrations.github import (
    GitHubClient,
    GitHubError,
    map_file_status,
    split_repository,
)
from codetutor.knowledge.models import Severity
from codetutor.review.models import FileStatus, FormattedComment

REPO = "acme/payments"
PR_URL = "/repos/acme/payments/pulls/42"

PR_BODY = {
    "title": "Add user service",
    "base": {"ref": "main"},
    "head": {"ref": "feature/user", "sha": "abc123"},
}


def _comment(line: int, severity: Severity) -> FormattedComment:
    return FormattedComment(
        id=f"comment-{line}",
        file="src/a.ts",
        line=line,
        body=f"body {line}",
        severity=severity,
        type="naming",
    )


def _client(handler: Callable[[httpx.Request], httpx.Response]) -> GitHubClient:
    return GitHubClient(
        GitHubConfig(api_url="https://api.github.test", token="t0ken"),
        transport=httpx.MockTransport(handler),
    )


class TestHelpers:
    """Tests for module helpers."""

    def test_map_file_status(self) -> None:
        assert map_file_status("added") == FileStatus.ADDED
        assert map_file_status("removed") == FileStatus.DELETED
        assert map_file_status("renamed") == FileStatus.RENAMED
        assert map_file_status("changed") == FileStatus.MODIFIED

    def test_split_repository(self) -> None:
        assert split_repository(REPO) == ("acme", "payments")

    @pytest.mark.parametrize("value", ["", "acme", "acme/", "/payments", "a/b/c"])
    def test_split_repository_rejects(self, value: str) -> None:
        with pytest.raises(ValueError):
            split_repository(value)


class TestGitHubClient:
    """Tests for GitHubClient against a mock transport."""

    @pytest.mark.asyncio
    async def test_requires_token(self) -> None:
        with pytest.raises(GitHubError, match="token"):
            async with GitHubClient(GitHubConfig(token="")):
                pass

    @pytest.mark.asyncio
    async def test_fetch_pr_diff_paginates(self) -> None:
        pages = {
            "1": [
                {"filename": f"src/f{i}.ts", "patch": "+x", "status": "modified", "additions": 1}
                for i in range(100)
            ],
            "2": [{"filename": "src/gone.ts", "status": "removed", "deletions": 4}],
        }
        seen_auth: list[str] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen_auth.append(request.headers["Authorization"])
            if request.url.path == PR_URL:
                return httpx.Response(200, json=PR_BODY)
            if request.url.path == f"{PR_URL}/files":
                return httpx.Response(200, json=pages[request.url.params["page"]])
            return httpx.Response(404)

        async with _client(handler) as client:
            pr_diff = await client.fetch_pr_diff(REPO, 42)

        assert pr_diff.pr_number == 42
        assert pr_diff.title == "Add user service"
        assert pr_diff.base_branch == "main"
        assert pr_diff.head_branch == "feature/user"
        assert len(pr_diff.files) == 101
        assert pr_diff.files[0].path == "src/f0.ts"
        last = pr_diff.files[-1]
        assert (last.path, last.status, last.diff, last.deletions) == (
            "src/gone.ts",
            FileStatus.DELETED,
            "",
            4,
        )
        assert set(seen_auth) == {"Bearer t0ken"}

    @pytest.mark.asyncio
    async def test_http_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        async with _client(handler) as client:
            with pytest.raises(GitHubError) as exc_info:
                await client.fetch_pr_diff(REPO, 42)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_transport_error_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        async with _client(handler) as client:
            with pytest.raises(GitHubError, match="request failed"):
                await client.fetch_pr_diff(REPO, 42)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("severities", "event"),
        [
            ([Severity.WARNING, Severity.ERROR], "REQUEST_CHANGES"),
            ([Severity.WARNING, Severity.SUGGESTION], "COMMENT"),
            ([], "COMMENT"),
        ],
    )
    async def test_post_review(self, severities: list[Severity], event: str) -> None:
        posted: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            if request.method == "GET":
                return httpx.Response(200, json=PR_BODY)
            posted.append(json.loads(request.content))
            return httpx.Response(200, json={"id": 1})

        comments = [_comment(i + 1, s) for i, s in enumerate(severities)]
        async with _client(handler) as client:
            review = await client.post_review(REPO, 42, "Summary", comments)

        assert review == {"id": 1}
        (body,) = posted
        assert body["event"] == event
        assert body["commit_id"] == "abc123"
        assert body["body"] == "Summary"
        assert body["comments"] == [
            {"path": "src/a.ts", "line": c.line, "body": c.body} for c in comments
        ]

    @pytest.mark.asyncio
    async def test_post_line_comments_skips_failures(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            payload = json.loads(request.content)
            if payload["line"] == 2:
                return httpx.Response(422, text="line not in diff")
            return httpx.Response(201, json={"id": payload["line"]})

        comments = [_comment(i, Severity.WARNING) for i in (1, 2, 3)]
        async with _client(handler) as client:
            posted = await client.post_line_comments(REPO, 42, "abc123", comments)

        assert posted == 2
