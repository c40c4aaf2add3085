"""Routing plan builder.

Asks the generation backend which analyzer categories each changed file
needs. The plan is advisory: an unusable response yields ``None`` and the
orchestrator falls back to running every category on every file.
"""

from __future__ import annotations

import structlog

from codetutor.generation.client import GenerationError, TextGenerator
from codetutor.generation.parsing import parse_json_payload
from codetutor.review.models import FileRouting, PRFileDiff

logger = structlog.get_logger(__name__)

_DIFF_PREVIEW_CHARS = 1500

ROUTING_PROMPT = """You are the Reviewer Orchestrator for a code review system.
Decide which specialized reviewers must examine each changed file.

Available reviewers: {categories}

## Changed files:
{files}

Return ONLY a JSON array with one entry per file:
[{{"filePath": string, "assignedReviewers": [reviewer, ...], "reasoning": string}}]
"""


def _describe_file(file: PRFileDiff) -> str:
    return (
        f"### {file.path} ({file.status.value}, +{file.additions}/-{file.deletions})\n"
        f"{file.diff[:_DIFF_PREVIEW_CHARS]}"
    )


async def plan_routing(
    generator: TextGenerator,
    files: list[PRFileDiff],
    categories: list[str],
) -> list[FileRouting] | None:
    """Build a per-file routing plan.

    Args:
        generator: Generation backend
        files: Changed files to route
        categories: Categories available for assignment

    Returns:
        The routing plan with unknown categories removed, or None when the
        backend failed or answered with something unusable
    """
    if not files:
        return []

    prompt = ROUTING_PROMPT.format(
        categories=", ".join(categories),
        files="\n\n".join(_describe_file(f) for f in files),
    )

    try:
        response = await generator.generate(prompt)
    except GenerationError as e:
        logger.warning("routing_generation_failed", error=str(e))
        return None

    result = parse_json_payload(response, list[FileRouting])
    if not result.ok:
        logger.warning("routing_parse_failed", reason=result.error)
        return None

    allowed = set(categories)
    plan = [
        routing.model_copy(
            update={
                "assigned_reviewers": [
                    r.lower() for r in routing.assigned_reviewers if r.lower() in allowed
                ]
            }
        )
        for routing in result.value or []
    ]
    logger.info("routing_planned", files=len(files), routed=len(plan))
    return plan
