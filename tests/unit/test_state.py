"""Unit tests for run-state records and merge policies."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from codetutor.knowledge.models import Severity
from codetutor.review.models import Violation
from codetutor.review.state import (
    VALID_REVIEW_TRANSITIONS,
    ExplainerRunState,
    ExplainerStatus,
    FeedbackRunState,
    FeedbackStatus,
    InvalidStatusTransitionError,
    ReviewRunState,
    ReviewStatus,
    validate_transition,
)


def _violation(file: str, line: int = 1, severity: Severity = Severity.WARNING) -> Violation:
    return Violation(
        id=f"naming-{file}-{line}",
        type="naming",
        file=file,
        line=line,
        issue="Bad name",
        severity=severity,
    )


class TestMergePolicies:
    """Tests for RunState.apply."""

    def test_append_concatenates(self) -> None:
        state = ReviewRunState(findings=[_violation("a.ts")])

        updated = state.apply({"findings": [_violation("b.ts")]})

        assert [v.file for v in updated.findings] == ["a.ts", "b.ts"]

    def test_replace_overwrites(self) -> None:
        state = ReviewRunState(violations=[_violation("a.ts")])

        updated = state.apply({"violations": [_violation("b.ts")]})

        assert [v.file for v in updated.violations] == ["b.ts"]

    def test_apply_returns_new_record(self) -> None:
        state = ReviewRunState(pr_number=7)

        updated = state.apply({"reviewed_files": ["a.ts"], "errors": ["boom"]})

        assert state.reviewed_files == []
        assert state.errors == []
        assert updated.reviewed_files == ["a.ts"]
        assert updated.errors == ["boom"]
        assert updated.run_id == state.run_id
        assert updated.pr_number == 7

    def test_errors_accumulate_across_deltas(self) -> None:
        state = FeedbackRunState()
        state = state.apply({"errors": ["first"]})
        state = state.apply({"errors": ["second", "third"]})

        assert state.errors == ["first", "second", "third"]

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(KeyError, match="pr_number"):
            ReviewRunState().apply({"pr_number": 3})

    def test_records_are_frozen(self) -> None:
        state = ExplainerRunState()
        with pytest.raises(ValidationError):
            state.status = ExplainerStatus.COMPLETE  # type: ignore[misc]


class TestStatusTransitions:
    """Tests for status validation during apply."""

    def test_review_happy_path(self) -> None:
        state = ReviewRunState()
        for status in (
            ReviewStatus.LOADING_CONVENTIONS,
            ReviewStatus.REVIEWING,
            ReviewStatus.AGGREGATING,
            ReviewStatus.COMPLETE,
        ):
            state = state.apply({"status": status})

        assert state.status == ReviewStatus.COMPLETE

    def test_review_status_values(self) -> None:
        assert [s.value for s in ReviewStatus] == [
            "pending",
            "loading-conventions",
            "reviewing",
            "aggregating",
            "complete",
            "error",
        ]

    def test_review_skip_rejected(self) -> None:
        state = ReviewRunState()

        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            state.apply({"status": ReviewStatus.COMPLETE})

        assert exc_info.value.current == ReviewStatus.PENDING
        assert exc_info.value.target == ReviewStatus.COMPLETE
        assert state.run_id in str(exc_info.value)

    def test_error_reachable_from_non_terminal(self) -> None:
        for status, targets in VALID_REVIEW_TRANSITIONS.items():
            if targets:
                assert ReviewStatus.ERROR in targets, status

    def test_terminal_states_have_no_exits(self) -> None:
        assert VALID_REVIEW_TRANSITIONS[ReviewStatus.COMPLETE] == set()
        assert VALID_REVIEW_TRANSITIONS[ReviewStatus.ERROR] == set()

    def test_same_status_is_noop(self) -> None:
        state = FeedbackRunState()

        assert state.apply({"status": FeedbackStatus.PENDING}).status == FeedbackStatus.PENDING

    def test_feedback_cannot_go_backwards(self) -> None:
        state = FeedbackRunState().apply({"status": FeedbackStatus.FORMATTING})
        state = state.apply({"status": FeedbackStatus.READY})

        with pytest.raises(InvalidStatusTransitionError):
            state.apply({"status": FeedbackStatus.FORMATTING})

    def test_validate_transition(self) -> None:
        assert validate_transition(
            VALID_REVIEW_TRANSITIONS, ReviewStatus.PENDING, ReviewStatus.LOADING_CONVENTIONS
        )
        assert not validate_transition(
            VALID_REVIEW_TRANSITIONS, ReviewStatus.REVIEWING, ReviewStatus.PENDING
        )
