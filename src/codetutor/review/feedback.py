"""Feedback controller.

Prepares explained feedback for delivery:

    PENDING -> FORMATTING -> READY -> COMPLETE

    1. Deduplicate by (file, line, type), keeping the first occurrence.
    2. Format each surviving item as a markdown comment. Calls run
       concurrently under a semaphore; the comment list keeps feedback
       order regardless of completion order. A failed call falls back to a
       deterministic template.
    3. Summarize the formatted comments in one generation call.
    4. Finalize.
"""

from __future__ import annotations

import asyncio

import structlog

from codetutor.generation.client import GenerationAPIError, TextGenerator
from codetutor.knowledge.models import Severity
from codetutor.review.models import ExplainedFeedback, FormattedComment
from codetutor.review.state import FeedbackRunState, FeedbackStatus

logger = structlog.get_logger(__name__)

NO_ISSUES_SUMMARY = "No issues found. This PR looks good to merge."

SEVERITY_EMOJI: dict[Severity, str] = {
    Severity.ERROR: "🔴",
    Severity.WARNING: "🟡",
    Severity.SUGGESTION: "💡",
}

FORMAT_COMMENT_PROMPT = """You are formatting code review feedback for a developer. Make it clear, actionable, and educational.

## Original Feedback:
- Issue: {issue}
- Explanation: {explanation}
- Team Expectation: {team_expectation}
- Severity: {severity}

## Code Example (if available):
Before: {code_before}
After: {code_after}

## Instructions:
Format this as a helpful GitHub PR comment that:
1. Clearly states the issue
2. Explains why it matters
3. Shows the fix
4. Is encouraging, not condescending

Keep it concise but complete. Use markdown formatting.
"""

SUMMARY_PROMPT = """You are creating a summary of code review feedback for a pull request.

## Feedback Items:
{feedback_items}

## Statistics:
- Total issues: {total}
- Errors: {errors}
- Warnings: {warnings}
- Suggestions: {suggestions}

## Instructions:
Create a brief, professional summary that:
1. Gives an overview of the review
2. Highlights the most important issues
3. Acknowledges what's done well (if applicable)
4. Ends with encouragement

Use markdown formatting. Keep it under 200 words.
"""


def deduplicate_feedback(items: list[ExplainedFeedback]) -> list[ExplainedFeedback]:
    """Keep the first item for each (file, line, type) key, in input order."""
    seen: set[tuple[str, int, str]] = set()
    unique: list[ExplainedFeedback] = []
    for item in items:
        key = item.violation.dedup_key
        if key not in seen:
            seen.add(key)
            unique.append(item)
    return unique


def format_fallback_comment(feedback: ExplainedFeedback) -> str:
    """Render a comment from the feedback fields without generation."""
    violation = feedback.violation
    body = (
        f"{SEVERITY_EMOJI[violation.severity]} **{violation.type.upper()}**: {violation.issue}\n\n"
        f"**Why this matters:** {feedback.explanation}\n\n"
        f"**What to do:** {feedback.team_expectation}"
    )
    if feedback.code_example is not None:
        body += (
            "\n\n**Example fix:**\n```diff\n"
            f"- {feedback.code_example.before}\n"
            f"+ {feedback.code_example.after}\n```"
        )
    return body


def severity_counts(comments: list[FormattedComment]) -> dict[Severity, int]:
    counts = {severity: 0 for severity in Severity}
    for comment in comments:
        counts[comment.severity] += 1
    return counts


def fallback_summary(comments: list[FormattedComment]) -> str:
    """Deterministic summary used when summary generation fails."""
    counts = severity_counts(comments)
    return (
        f"## Review Summary\n\n"
        f"Found {len(comments)} issue(s): {counts[Severity.ERROR]} error(s), "
        f"{counts[Severity.WARNING]} warning(s), {counts[Severity.SUGGESTION]} suggestion(s). "
        f"See the inline comments for details."
    )


class FeedbackController:
    """Deduplicates, formats and summarizes explained feedback.

    Attributes:
        generator: Generation backend
        summary_sample_size: Comments listed in the summary prompt
        format_concurrency: Maximum concurrent formatting calls
    """

    def __init__(
        self,
        generator: TextGenerator,
        summary_sample_size: int = 10,
        format_concurrency: int = 4,
    ) -> None:
        self.generator = generator
        self.summary_sample_size = summary_sample_size
        self.format_concurrency = format_concurrency
        self._logger = logger.bind(component="FeedbackController")

    async def prepare(
        self,
        explained_feedback: list[ExplainedFeedback],
        pr_number: int,
    ) -> FeedbackRunState:
        """Run all feedback stages.

        Args:
            explained_feedback: Explained feedback in review order
            pr_number: Pull request number

        Returns:
            Completed state with comments and summary
        """
        state = FeedbackRunState(pr_number=pr_number, explained_feedback=list(explained_feedback))

        unique = deduplicate_feedback(state.explained_feedback)
        self._logger.info(
            "feedback_deduplicated",
            before=len(state.explained_feedback),
            after=len(unique),
        )
        state = state.apply({"explained_feedback": unique, "status": FeedbackStatus.FORMATTING})

        state = state.apply(await self._format_comments(state.explained_feedback))
        state = state.apply(await self._summarize(state.formatted_comments))
        state = state.apply({"status": FeedbackStatus.COMPLETE})

        self._logger.info(
            "feedback_ready",
            comments=len(state.formatted_comments),
            errors=len(state.errors),
        )
        return state

    async def _format_comments(self, items: list[ExplainedFeedback]) -> dict[str, list]:
        semaphore = asyncio.Semaphore(self.format_concurrency)
        errors: list[str] = []

        async def _format(feedback: ExplainedFeedback) -> FormattedComment:
            async with semaphore:
                try:
                    body = await self._generate_comment(feedback)
                except Exception as e:
                    self._logger.warning(
                        "comment_format_fallback",
                        feedback_id=feedback.id,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    errors.append(f"formatting failed for {feedback.id}: {e}")
                    body = format_fallback_comment(feedback)

            return FormattedComment(
                id=f"comment-{feedback.id}",
                file=feedback.violation.file,
                line=feedback.violation.line,
                body=body,
                severity=feedback.violation.severity,
                type=feedback.violation.type,
            )

        # gather returns results in argument order
        comments = await asyncio.gather(*(_format(item) for item in items))
        return {"formatted_comments": list(comments), "errors": errors}

    async def _generate_comment(self, feedback: ExplainedFeedback) -> str:
        example = feedback.code_example
        prompt = FORMAT_COMMENT_PROMPT.format(
            issue=feedback.violation.issue,
            explanation=feedback.explanation,
            team_expectation=feedback.team_expectation,
            severity=feedback.violation.severity.value,
            code_before=example.before if example else "N/A",
            code_after=example.after if example else "N/A",
        )
        body = await self.generator.generate(prompt)
        if not body.strip():
            raise GenerationAPIError("Empty comment returned")
        return body.strip()

    async def _summarize(self, comments: list[FormattedComment]) -> dict[str, object]:
        if not comments:
            return {"summary": NO_ISSUES_SUMMARY, "status": FeedbackStatus.READY}

        counts = severity_counts(comments)
        sample = "\n".join(
            f"- [{c.severity.value}] {c.file}:{c.line} - {c.type}"
            for c in comments[: self.summary_sample_size]
        )
        prompt = SUMMARY_PROMPT.format(
            feedback_items=sample,
            total=len(comments),
            errors=counts[Severity.ERROR],
            warnings=counts[Severity.WARNING],
            suggestions=counts[Severity.SUGGESTION],
        )

        try:
            summary = (await self.generator.generate(prompt)).strip()
            if not summary:
                raise GenerationAPIError("Empty summary returned")
        except Exception as e:
            self._logger.warning(
                "summary_fallback", error=str(e), error_type=type(e).__name__
            )
            return {
                "summary": fallback_summary(comments),
                "status": FeedbackStatus.READY,
                "errors": [f"summary generation failed: {e}"],
            }

        return {"summary": summary, "status": FeedbackStatus.READY}
