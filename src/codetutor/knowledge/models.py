"""Convention models for the team knowledge base."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Severity(str, Enum):
    """Severity of a convention or a detected violation.

    Levels:
        ERROR: Must be fixed before merging.
        WARNING: Should be fixed.
        SUGGESTION: Optional improvement.
    """

    ERROR = "error"
    WARNING = "warning"
    SUGGESTION = "suggestion"


class ConventionExample(BaseModel):
    """A worked example attached to a convention.

    Attributes:
        good: Code that follows the convention, if any
        bad: Code that violates the convention, if any
        explanation: Why the good form is preferred
    """

    model_config = ConfigDict(frozen=True)

    good: str | None = None
    bad: str | None = None
    explanation: str = ""


class Convention(BaseModel):
    """A team coding rule used as ground truth during review.

    Conventions are owned by the knowledge store and never change during
    a review run.

    Attributes:
        id: Stable convention identifier
        category: Analyzer category (naming, structure, pattern, testing, or
            any other team-defined category)
        rule: Short statement of the rule
        description: Longer description of the rule
        severity: Default severity for violations of this rule
        confidence: How sure the learning process is about the rule (0.0 to 1.0)
        tags: Free-form tags; ``forbid:<keyword>`` tags become review directives
        examples: Ordered worked examples
    """

    model_config = ConfigDict(frozen=True)

    id: str
    category: str
    rule: str
    description: str = ""
    severity: Severity = Severity.WARNING
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    tags: list[str] = Field(default_factory=list)
    examples: list[ConventionExample] = Field(default_factory=list)

    def forbidden_keywords(self) -> list[str]:
        """Return the keywords named by ``forbid:<keyword>`` tags."""
        keywords = []
        for tag in self.tags:
            prefix, sep, keyword = tag.partition(":")
            if sep and prefix.strip().lower() == "forbid" and keyword.strip():
                keywords.append(keyword.strip())
        return keywords
