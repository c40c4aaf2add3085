"""End-to-end review pipeline.

Cascades one pull request through the three stages:

    ReviewOrchestrator -> Explainer -> FeedbackController

Each stage receives the previous stage's final output and owns its own
run state; no two stages run at the same time.

Example usage:
    >>> pipeline = ReviewPipeline.from_config(config, generator, store)
    >>> outcome = await pipeline.run(pr_diff)
    >>> print(outcome.console_report())
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Any

import structlog

from codetutor.config import CodetutorConfig
from codetutor.generation.client import TextGenerator
from codetutor.knowledge.models import Convention
from codetutor.knowledge.store import KnowledgeStore
from codetutor.logging import bind_review_context, set_correlation_id
from codetutor.review.delivery import format_for_console, format_for_github
from codetutor.review.explainer import Explainer
from codetutor.review.feedback import FeedbackController
from codetutor.review.models import FileRouting, PRDiffInput
from codetutor.review.orchestrator import ReviewOrchestrator
from codetutor.review.state import (
    ExplainerRunState,
    FeedbackRunState,
    FeedbackStatus,
    ReviewRunState,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ReviewOutcome:
    """Final states of all three stages for one review run."""

    review: ReviewRunState
    explanation: ExplainerRunState
    feedback: FeedbackRunState

    @property
    def errors(self) -> list[str]:
        """Recoverable failures from every stage, in stage order."""
        return [*self.review.errors, *self.explanation.errors, *self.feedback.errors]

    @property
    def is_complete(self) -> bool:
        return self.feedback.status == FeedbackStatus.COMPLETE

    def github_payload(self) -> dict[str, Any]:
        return format_for_github(self.feedback)

    def console_report(self) -> str:
        return format_for_console(self.feedback)


class ReviewPipeline:
    """Runs review, explanation and feedback for a pull request."""

    def __init__(
        self,
        orchestrator: ReviewOrchestrator,
        explainer: Explainer,
        feedback_controller: FeedbackController,
    ) -> None:
        self.orchestrator = orchestrator
        self.explainer = explainer
        self.feedback_controller = feedback_controller
        self._logger = logger.bind(component="ReviewPipeline")

    @classmethod
    def from_config(
        cls,
        config: CodetutorConfig,
        generator: TextGenerator,
        knowledge_store: KnowledgeStore,
        repository_id: str | None = None,
    ) -> ReviewPipeline:
        """Assemble a pipeline from configuration.

        Args:
            config: Loaded configuration
            generator: Generation backend shared by all stages
            knowledge_store: Source of conventions
            repository_id: Overrides ``config.repository.full_name``
        """
        review = config.review
        return cls(
            orchestrator=ReviewOrchestrator(
                knowledge_store=knowledge_store,
                generator=generator,
                repository_id=(
                    repository_id if repository_id is not None else config.repository.full_name
                ),
                categories=review.categories,
                use_llm_routing=review.use_llm_routing,
            ),
            explainer=Explainer(generator, max_sentences=review.explanation_max_sentences),
            feedback_controller=FeedbackController(
                generator,
                summary_sample_size=review.summary_sample_size,
                format_concurrency=review.format_concurrency,
            ),
        )

    async def run(
        self,
        pr_diff: PRDiffInput,
        conventions: list[Convention] | None = None,
        routing: list[FileRouting] | None = None,
    ) -> ReviewOutcome:
        """Review, explain and format feedback for a pull request.

        Raises:
            RepositoryNotConfiguredError: Propagated from the orchestrator;
                no partial outcome is produced.
        """
        set_correlation_id(str(uuid.uuid4()))
        bind_review_context(self.orchestrator.repository_id, pr_diff.pr_number)
        self._logger.info("pipeline_started", files=len(pr_diff.files))

        review_state = await self.orchestrator.review(pr_diff, conventions, routing)
        explainer_state = await self.explainer.explain(
            review_state.violations, review_state.conventions
        )
        feedback_state = await self.feedback_controller.prepare(
            explainer_state.explained_feedback, pr_diff.pr_number
        )

        outcome = ReviewOutcome(
            review=review_state,
            explanation=explainer_state,
            feedback=feedback_state,
        )
        self._logger.info(
            "pipeline_completed",
            violations=len(review_state.violations),
            comments=len(feedback_state.formatted_comments),
            errors=len(outcome.errors),
        )
        return outcome
