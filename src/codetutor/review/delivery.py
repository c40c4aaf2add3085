"""Delivery formatters: pure projections of the final feedback state."""

from __future__ import annotations

from typing import Any

from codetutor.review.state import FeedbackRunState

_BANNER = "=" * 60
_RULE = "-" * 60
_COMMENT_RULE = "-" * 40


def format_for_github(state: FeedbackRunState) -> dict[str, Any]:
    """Build the review payload: ``{summary, comments: [{path, line, body}]}``."""
    return {
        "summary": state.summary,
        "comments": [
            {"path": c.file, "line": c.line, "body": c.body} for c in state.formatted_comments
        ],
    }


def format_for_console(state: FeedbackRunState) -> str:
    """Render a plain-text report of the summary and every comment."""
    parts = [
        "",
        _BANNER,
        f"📋 PR #{state.pr_number} Review Summary",
        _BANNER,
        "",
        state.summary,
        "",
        _RULE,
        "Detailed Feedback:",
        _RULE,
        "",
    ]
    for comment in state.formatted_comments:
        parts.extend([f"📁 {comment.file}:{comment.line}", comment.body, "", _COMMENT_RULE, ""])
    return "\n".join(parts) + "\n"
