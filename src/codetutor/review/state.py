"""Run-state records and status state machines for the review pipeline.

Each pipeline stage owns a typed run-state record. Stages never mutate a
record directly: they return a delta (a dict of the fields they changed)
and ``RunState.apply`` folds it into a new record using the merge policy
declared for each field:

    REPLACE: the delta's value wins
    APPEND:  the delta's items are concatenated after the existing items

Status fields are validated against the record's transition table, so a
stage cannot skip or reverse a lifecycle step.

Review lifecycle:
    PENDING -> LOADING_CONVENTIONS -> REVIEWING -> AGGREGATING -> COMPLETE
    Any non-terminal state can transition to ERROR.

Explainer lifecycle:
    PENDING -> EXPLAINING -> COMPLETE

Feedback lifecycle:
    PENDING -> FORMATTING -> READY -> COMPLETE
"""

from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, Field

from codetutor.knowledge.models import Convention
from codetutor.review.models import (
    ExplainedFeedback,
    FileRouting,
    FormattedComment,
    Violation,
)

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class MergePolicy(str, Enum):
    """How a stage's value for a field combines with the current value."""

    REPLACE = "replace"
    APPEND = "append"


class ReviewStatus(str, Enum):
    """Lifecycle states of the review orchestrator."""

    PENDING = "pending"
    LOADING_CONVENTIONS = "loading-conventions"
    REVIEWING = "reviewing"
    AGGREGATING = "aggregating"
    COMPLETE = "complete"
    ERROR = "error"


class ExplainerStatus(str, Enum):
    """Lifecycle states of the explainer."""

    PENDING = "pending"
    EXPLAINING = "explaining"
    COMPLETE = "complete"


class FeedbackStatus(str, Enum):
    """Lifecycle states of the feedback controller."""

    PENDING = "pending"
    FORMATTING = "formatting"
    READY = "ready"
    COMPLETE = "complete"


# ---------------------------------------------------------------------------
# Valid state transitions
# ---------------------------------------------------------------------------

VALID_REVIEW_TRANSITIONS: dict[ReviewStatus, set[ReviewStatus]] = {
    ReviewStatus.PENDING: {ReviewStatus.LOADING_CONVENTIONS, ReviewStatus.ERROR},
    ReviewStatus.LOADING_CONVENTIONS: {ReviewStatus.REVIEWING, ReviewStatus.ERROR},
    ReviewStatus.REVIEWING: {ReviewStatus.AGGREGATING, ReviewStatus.ERROR},
    ReviewStatus.AGGREGATING: {ReviewStatus.COMPLETE, ReviewStatus.ERROR},
    ReviewStatus.COMPLETE: set(),
    ReviewStatus.ERROR: set(),
}

VALID_EXPLAINER_TRANSITIONS: dict[ExplainerStatus, set[ExplainerStatus]] = {
    ExplainerStatus.PENDING: {ExplainerStatus.EXPLAINING},
    ExplainerStatus.EXPLAINING: {ExplainerStatus.COMPLETE},
    ExplainerStatus.COMPLETE: set(),
}

VALID_FEEDBACK_TRANSITIONS: dict[FeedbackStatus, set[FeedbackStatus]] = {
    FeedbackStatus.PENDING: {FeedbackStatus.FORMATTING},
    FeedbackStatus.FORMATTING: {FeedbackStatus.READY},
    FeedbackStatus.READY: {FeedbackStatus.COMPLETE},
    FeedbackStatus.COMPLETE: set(),
}


class InvalidStatusTransitionError(Exception):
    """Raised when a stage attempts an illegal status transition.

    Attributes:
        current: The current status.
        target: The attempted target status.
        run_id: The ID of the run that failed to transition.
    """

    def __init__(self, current: Enum, target: Enum, run_id: str | None = None) -> None:
        self.current = current
        self.target = target
        self.run_id = run_id
        msg = f"Invalid status transition from {current.value} to {target.value}"
        if run_id:
            msg += f" for run {run_id}"
        super().__init__(msg)


def validate_transition(
    transitions: dict[Any, set[Any]],
    current: Enum,
    target: Enum,
) -> bool:
    """Validate if a status transition is allowed.

    Args:
        transitions: Transition table for the status enum.
        current: Current status.
        target: Target status.

    Returns:
        True if the transition is listed in the table.
    """
    return target in transitions.get(current, set())


# ---------------------------------------------------------------------------
# Run state
# ---------------------------------------------------------------------------


class RunState(BaseModel):
    """Base class for run-state records with declared merge policies.

    Subclasses declare ``MERGE_POLICIES`` for every field a stage may
    update, and ``STATUS_TRANSITIONS`` for their ``status`` field.
    """

    model_config = ConfigDict(frozen=True)

    MERGE_POLICIES: ClassVar[dict[str, MergePolicy]] = {}
    STATUS_TRANSITIONS: ClassVar[dict[Any, set[Any]]] = {}

    run_id: str = Field(default_factory=lambda: str(uuid.uuid4()))

    def apply(self, delta: dict[str, Any]) -> Any:
        """Fold a stage delta into a new record.

        Args:
            delta: Field name to new value, for the fields the stage changed.

        Returns:
            A new record of the same type; ``self`` is left untouched.

        Raises:
            KeyError: If the delta names a field without a merge policy.
            InvalidStatusTransitionError: If the delta moves ``status`` along
                an edge missing from the transition table.
        """
        updates: dict[str, Any] = {}
        for name, value in delta.items():
            policy = self.MERGE_POLICIES.get(name)
            if policy is None:
                raise KeyError(f"{type(self).__name__} has no merge policy for field {name!r}")

            if name == "status":
                current = getattr(self, "status")
                if value != current and not validate_transition(
                    self.STATUS_TRANSITIONS, current, value
                ):
                    raise InvalidStatusTransitionError(current, value, self.run_id)
                if value != current:
                    logger.info(
                        "status_transition",
                        state=type(self).__name__,
                        run_id=self.run_id,
                        from_status=current.value,
                        to_status=value.value,
                    )

            if policy is MergePolicy.APPEND:
                updates[name] = [*getattr(self, name), *value]
            else:
                updates[name] = value

        return self.model_copy(update=updates)


class ReviewRunState(RunState):
    """State threaded through the review orchestrator.

    Attributes:
        repository_id: Repository under review (``owner/repo``), may be empty
        pr_number: Pull request number
        conventions: Conventions in effect for this run
        routing: Optional per-file routing plan
        findings: Raw analyzer output accumulated across the per-file fan-out
        violations: Ordered aggregate of ``findings``
        reviewed_files: Files whose analysis has settled
        status: Review lifecycle status
        errors: Recoverable failures recorded during the run
    """

    MERGE_POLICIES: ClassVar[dict[str, MergePolicy]] = {
        "conventions": MergePolicy.REPLACE,
        "routing": MergePolicy.REPLACE,
        "findings": MergePolicy.APPEND,
        "violations": MergePolicy.REPLACE,
        "reviewed_files": MergePolicy.APPEND,
        "status": MergePolicy.REPLACE,
        "errors": MergePolicy.APPEND,
    }
    STATUS_TRANSITIONS: ClassVar[dict[Any, set[Any]]] = VALID_REVIEW_TRANSITIONS

    repository_id: str = ""
    pr_number: int = 0
    conventions: list[Convention] = Field(default_factory=list)
    routing: list[FileRouting] | None = None
    findings: list[Violation] = Field(default_factory=list)
    violations: list[Violation] = Field(default_factory=list)
    reviewed_files: list[str] = Field(default_factory=list)
    status: ReviewStatus = ReviewStatus.PENDING
    errors: list[str] = Field(default_factory=list)


class ExplainerRunState(RunState):
    """State threaded through the explainer.

    Attributes:
        violations: Ordered violations to explain
        explained_feedback: One explained item per violation, same order
        status: Explainer lifecycle status
        errors: Per-item generation failures
    """

    MERGE_POLICIES: ClassVar[dict[str, MergePolicy]] = {
        "violations": MergePolicy.REPLACE,
        "explained_feedback": MergePolicy.REPLACE,
        "status": MergePolicy.REPLACE,
        "errors": MergePolicy.APPEND,
    }
    STATUS_TRANSITIONS: ClassVar[dict[Any, set[Any]]] = VALID_EXPLAINER_TRANSITIONS

    violations: list[Violation] = Field(default_factory=list)
    explained_feedback: list[ExplainedFeedback] = Field(default_factory=list)
    status: ExplainerStatus = ExplainerStatus.PENDING
    errors: list[str] = Field(default_factory=list)


class FeedbackRunState(RunState):
    """State threaded through the feedback controller.

    Attributes:
        pr_number: Pull request number
        explained_feedback: Deduplicated explained feedback
        formatted_comments: Delivery-ready comments, in feedback order
        summary: Aggregate markdown summary
        status: Feedback lifecycle status
        errors: Per-item formatting and summary failures
    """

    MERGE_POLICIES: ClassVar[dict[str, MergePolicy]] = {
        "explained_feedback": MergePolicy.REPLACE,
        "formatted_comments": MergePolicy.APPEND,
        "summary": MergePolicy.REPLACE,
        "status": MergePolicy.REPLACE,
        "errors": MergePolicy.APPEND,
    }
    STATUS_TRANSITIONS: ClassVar[dict[Any, set[Any]]] = VALID_FEEDBACK_TRANSITIONS

    pr_number: int = 0
    explained_feedback: list[ExplainedFeedback] = Field(default_factory=list)
    formatted_comments: list[FormattedComment] = Field(default_factory=list)
    summary: str = ""
    status: FeedbackStatus = FeedbackStatus.PENDING
    errors: list[str] = Field(default_factory=list)
