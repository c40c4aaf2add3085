"""GitHub REST client for fetching pull request diffs and posting reviews."""

from __future__ import annotations

from typing import Any

import httpx

from codetutor.config import GitHubConfig
from codetutor.knowledge.models import Severity
from codetutor.logging import get_logger
from codetutor.review.models import FileStatus, FormattedComment, PRDiffInput, PRFileDiff

logger = get_logger(__name__)

_PER_PAGE = 100
_MAX_FILE_PAGES = 30

_STATUS_MAP: dict[str, FileStatus] = {
    "added": FileStatus.ADDED,
    "removed": FileStatus.DELETED,
    "renamed": FileStatus.RENAMED,
}


class GitHubError(Exception):
    """Raised when the GitHub API cannot be reached or rejects a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        super().__init__(message)


def map_file_status(status: str) -> FileStatus:
    """Map a GitHub file status onto ``FileStatus``; unknown values are modifications."""
    return _STATUS_MAP.get(status, FileStatus.MODIFIED)


def split_repository(repository: str) -> tuple[str, str]:
    """Split ``owner/repo`` into its parts.

    Raises:
        ValueError: If the identifier is not of the form ``owner/repo``.
    """
    owner, sep, repo = repository.partition("/")
    if not sep or not owner or not repo or "/" in repo:
        raise ValueError(f"Repository must be in owner/repo form, got {repository!r}")
    return owner, repo


class GitHubClient:
    """Async client for the pull request endpoints used by the review pipeline.

    Attributes:
        config: GitHub configuration (API URL, token, timeout)
    """

    def __init__(
        self,
        config: GitHubConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.config = config
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self.logger = get_logger(__name__)

    async def __aenter__(self) -> GitHubClient:
        """Async context manager entry."""
        if not self.config.token:
            raise GitHubError(
                "GitHub token not configured. Set CODETUTOR_GITHUB__TOKEN."
            )
        self._client = httpx.AsyncClient(
            base_url=self.config.api_url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
            transport=self._transport,
            headers={
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {self.config.token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        if self._client is None:
            raise RuntimeError("GitHubClient must be used as async context manager")

        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.RequestError as e:
            self.logger.error("github_request_error", method=method, url=url, error=str(e))
            raise GitHubError(f"GitHub request failed: {e}") from e

        if not response.is_success:
            self.logger.warning(
                "github_request_failed",
                method=method,
                url=url,
                status_code=response.status_code,
                response_text=response.text[:200],
            )
            raise GitHubError(
                f"GitHub API error: HTTP {response.status_code} for {method} {url}",
                status_code=response.status_code,
            )
        return response.json()

    async def fetch_pr_diff(self, repository: str, pr_number: int) -> PRDiffInput:
        """Fetch a pull request and its changed files.

        Args:
            repository: Repository identifier (``owner/repo``)
            pr_number: Pull request number

        Returns:
            Pipeline input with files in GitHub's order
        """
        owner, repo = split_repository(repository)
        base = f"/repos/{owner}/{repo}/pulls/{pr_number}"

        pr = await self._request("GET", base)
        files: list[PRFileDiff] = []
        for page in range(1, _MAX_FILE_PAGES + 1):
            batch = await self._request(
                "GET", f"{base}/files", params={"per_page": _PER_PAGE, "page": page}
            )
            files.extend(
                PRFileDiff(
                    path=item["filename"],
                    diff=item.get("patch") or "",
                    status=map_file_status(item.get("status", "")),
                    additions=item.get("additions", 0),
                    deletions=item.get("deletions", 0),
                )
                for item in batch
            )
            if len(batch) < _PER_PAGE:
                break

        self.logger.info(
            "github_pr_fetched",
            repository=repository,
            pr_number=pr_number,
            files=len(files),
        )
        return PRDiffInput(
            pr_number=pr_number,
            title=pr.get("title", ""),
            files=files,
            base_branch=pr["base"]["ref"],
            head_branch=pr["head"]["ref"],
        )

    async def post_review(
        self,
        repository: str,
        pr_number: int,
        summary: str,
        comments: list[FormattedComment],
    ) -> dict[str, Any]:
        """Post a review with the summary as body and one comment per finding.

        The review requests changes when any comment is an error and is a
        plain comment otherwise.

        Returns:
            The created review as returned by GitHub
        """
        owner, repo = split_repository(repository)
        base = f"/repos/{owner}/{repo}/pulls/{pr_number}"

        pr = await self._request("GET", base)
        has_errors = any(c.severity == Severity.ERROR for c in comments)
        event = "REQUEST_CHANGES" if has_errors else "COMMENT"

        review = await self._request(
            "POST",
            f"{base}/reviews",
            json={
                "commit_id": pr["head"]["sha"],
                "body": summary,
                "event": event,
                "comments": [
                    {"path": c.file, "line": c.line, "body": c.body} for c in comments
                ],
            },
        )
        self.logger.info(
            "github_review_posted",
            repository=repository,
            pr_number=pr_number,
            event=event,
            comments=len(comments),
        )
        return review

    async def post_line_comments(
        self,
        repository: str,
        pr_number: int,
        commit_sha: str,
        comments: list[FormattedComment],
    ) -> int:
        """Post comments one by one; failures are logged and skipped.

        Returns:
            Number of comments posted
        """
        owner, repo = split_repository(repository)
        url = f"/repos/{owner}/{repo}/pulls/{pr_number}/comments"

        posted = 0
        for comment in comments:
            try:
                await self._request(
                    "POST",
                    url,
                    json={
                        "commit_id": commit_sha,
                        "path": comment.file,
                        "line": comment.line,
                        "body": comment.body,
                    },
                )
            except GitHubError as e:
                self.logger.warning(
                    "github_comment_failed",
                    file=comment.file,
                    line=comment.line,
                    error=str(e),
                )
                continue
            posted += 1

        self.logger.info(
            "github_line_comments_posted",
            repository=repository,
            pr_number=pr_number,
            posted=posted,
            total=len(comments),
        )
        return posted
