"""Review pipeline for Codetutor.

This package reviews a pull request against team conventions and turns the
findings into teaching feedback. It provides the category analyzers, the
review orchestrator with per-file fan-out, the explainer, the feedback
controller, delivery formatters, and the run-state records with their
merge policies and status state machines.
"""

from codetutor.review.analyzers import (
    ANALYZERS,
    CategoryAnalyzer,
    NamingAnalyzer,
    PatternAnalyzer,
    StructureAnalyzer,
    TestingAnalyzer,
    build_analyzers,
)
from codetutor.review.delivery import format_for_console, format_for_github
from codetutor.review.explainer import Explainer, answer_question
from codetutor.review.feedback import FeedbackController, deduplicate_feedback
from codetutor.review.models import (
    CodeExample,
    ExplainedFeedback,
    FileRouting,
    FileStatus,
    FormattedComment,
    PRDiffInput,
    PRFileDiff,
    Violation,
)
from codetutor.review.orchestrator import ReviewOrchestrator, aggregate_violations
from codetutor.review.pipeline import ReviewOutcome, ReviewPipeline
from codetutor.review.state import (
    ExplainerRunState,
    ExplainerStatus,
    FeedbackRunState,
    FeedbackStatus,
    InvalidStatusTransitionError,
    MergePolicy,
    ReviewRunState,
    ReviewStatus,
)

__all__ = [
    "ANALYZERS",
    "CategoryAnalyzer",
    "CodeExample",
    "ExplainedFeedback",
    "Explainer",
    "ExplainerRunState",
    "ExplainerStatus",
    "FeedbackController",
    "FeedbackRunState",
    "FeedbackStatus",
    "FileRouting",
    "FileStatus",
    "FormattedComment",
    "InvalidStatusTransitionError",
    "MergePolicy",
    "NamingAnalyzer",
    "PRDiffInput",
    "PRFileDiff",
    "PatternAnalyzer",
    "ReviewOrchestrator",
    "ReviewOutcome",
    "ReviewPipeline",
    "ReviewRunState",
    "ReviewStatus",
    "StructureAnalyzer",
    "TestingAnalyzer",
    "Violation",
    "aggregate_violations",
    "answer_question",
    "build_analyzers",
    "deduplicate_feedback",
    "format_for_console",
    "format_for_github",
]
