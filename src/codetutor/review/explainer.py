"""Explainer: turns violations into teaching feedback.

Every violation yields exactly one ``ExplainedFeedback``, in input order.
Violations are explained one generation call at a time to bound the load
on the generation backend. When a call fails the item gets a deterministic
fallback explanation instead of being dropped.

The module also answers ad-hoc questions about team conventions.
"""

from __future__ import annotations

import re

import structlog

from codetutor.generation.client import GenerationAPIError, GenerationError, TextGenerator
from codetutor.knowledge.models import Convention
from codetutor.knowledge.store import search_conventions
from codetutor.review.models import CodeExample, ExplainedFeedback, Violation
from codetutor.review.state import ExplainerRunState, ExplainerStatus

logger = structlog.get_logger(__name__)

DEFAULT_PATTERN = "Follow the documented team pattern."
GENERIC_EXPECTATION = "Follow team conventions"

_NEWLINES = re.compile(r"\s*\n+\s*")
_TRAILING_PERIODS = re.compile(r"\.\.+$")

EXPLAIN_PROMPT = """You are a calm engineering tutor.

Violation:
{file}:{line}
{code}

Issue:
{issue}
{context}
Team rule:
{rule}

Why this rule exists:
{description}

Approved pattern:
{pattern}

Instructions:
Keep the explanation concise (4-6 sentences).
Explain why it matters to the team and what to do instead.
Teach. Do not shame.
"""

QUESTION_PROMPT = """You are a concise engineering tutor.

Answer the question in 3-4 sentences max.
Do NOT give long explanations.
Focus only on team reasoning.

Relevant team conventions:
{conventions}

Question:
{question}
"""


def cap_sentences(text: str, max_sentences: int) -> str:
    """Collapse newlines and keep at most ``max_sentences`` sentences.

    Sentences are split on ". "; the result always ends with a single period.
    """
    collapsed = _NEWLINES.sub(" ", text).strip()
    capped = ". ".join(collapsed.split(". ")[:max_sentences]) + "."
    return _TRAILING_PERIODS.sub(".", capped)


def approved_pattern(convention: Convention | None) -> str:
    """Return the pattern a developer is expected to follow for a convention."""
    if convention is None:
        return GENERIC_EXPECTATION
    if convention.examples:
        first = convention.examples[0]
        if first.good:
            return first.good
        if first.explanation:
            return first.explanation
    return DEFAULT_PATTERN


def code_example(convention: Convention | None) -> CodeExample | None:
    """Return a before/after example when the convention has a complete one."""
    if convention is None:
        return None
    for example in convention.examples:
        if example.bad and example.good:
            return CodeExample(before=example.bad, after=example.good)
    return None


def fallback_explanation(violation: Violation) -> str:
    return f"This code violates: {violation.issue}"


class Explainer:
    """Explains violations one at a time.

    Attributes:
        generator: Generation backend
        max_sentences: Sentence cap applied to generated explanations
    """

    def __init__(self, generator: TextGenerator, max_sentences: int = 5) -> None:
        self.generator = generator
        self.max_sentences = max_sentences
        self._logger = logger.bind(component="Explainer")

    async def explain(
        self,
        violations: list[Violation],
        conventions: list[Convention],
    ) -> ExplainerRunState:
        """Explain an ordered list of violations.

        Args:
            violations: Violations in review order
            conventions: Conventions used to look up rules and approved patterns

        Returns:
            Completed state whose ``explained_feedback`` matches ``violations``
            one to one, in the same order
        """
        state = ExplainerRunState().apply(
            {"violations": list(violations), "status": ExplainerStatus.EXPLAINING}
        )
        by_id = {c.id: c for c in conventions}

        explained: list[ExplainedFeedback] = []
        errors: list[str] = []
        for violation in state.violations:
            convention = by_id.get(violation.convention_id) if violation.convention_id else None
            try:
                explanation = await self._generate_explanation(violation, convention)
            except Exception as e:
                self._logger.warning(
                    "explanation_fallback",
                    violation_id=violation.id,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                errors.append(f"explanation failed for {violation.id}: {e}")
                explanation = fallback_explanation(violation)

            explained.append(
                ExplainedFeedback(
                    id=f"explain-{violation.id}",
                    violation=violation,
                    explanation=explanation,
                    team_expectation=approved_pattern(convention),
                    code_example=code_example(convention),
                )
            )

        state = state.apply(
            {
                "explained_feedback": explained,
                "errors": errors,
                "status": ExplainerStatus.COMPLETE,
            }
        )
        self._logger.info(
            "explanations_completed",
            explained=len(state.explained_feedback),
            fallbacks=len(errors),
        )
        return state

    async def _generate_explanation(
        self, violation: Violation, convention: Convention | None
    ) -> str:
        context_lines = [
            f"{label}: {value}"
            for label, value in (
                ("Reasoning", violation.reasoning),
                ("Impact", violation.impact),
                ("Recommendation", violation.recommendation),
            )
            if value
        ]
        prompt = EXPLAIN_PROMPT.format(
            file=violation.file,
            line=violation.line,
            code=violation.code or "(no snippet)",
            issue=violation.issue,
            context="\n".join(context_lines) + "\n" if context_lines else "",
            rule=convention.rule if convention else "No matching team rule was found.",
            description=convention.description if convention else "N/A",
            pattern=approved_pattern(convention),
        )
        text = await self.generator.generate(prompt)
        if not text.strip():
            raise GenerationAPIError("Empty explanation returned")
        return cap_sentences(text, self.max_sentences)


async def answer_question(
    generator: TextGenerator,
    question: str,
    conventions: list[Convention],
    max_sentences: int = 4,
    max_context: int = 5,
) -> str:
    """Answer a free-form question using team conventions as context.

    Args:
        generator: Generation backend
        question: The developer's question
        conventions: Conventions available for context
        max_sentences: Sentence cap for the answer
        max_context: Maximum conventions embedded in the prompt

    Returns:
        The capped answer

    Raises:
        GenerationError: If the backend fails or returns nothing
    """
    relevant = search_conventions(conventions, question, limit=max_context)
    if not relevant:
        relevant = sorted(conventions, key=lambda c: c.confidence, reverse=True)[:max_context]

    context = "\n".join(f"- [{c.category}] {c.rule}: {c.description}" for c in relevant)
    prompt = QUESTION_PROMPT.format(
        conventions=context or "No team conventions are recorded yet.",
        question=question,
    )

    text = await generator.generate(prompt)
    if not text.strip():
        raise GenerationAPIError("Empty answer returned")

    logger.info("question_answered", context_conventions=len(relevant))
    return cap_sentences(text, max_sentences)
