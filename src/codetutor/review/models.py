"""Data models flowing through the review pipeline.

Models serialize with camelCase aliases (``conventionId``, ``prNumber``) so
they round-trip with the JSON documents exchanged with generation backends
and source-control adapters, while Python code uses snake_case attributes.

Flow:
    PRDiffInput + Convention -> Violation -> ExplainedFeedback -> FormattedComment
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from codetutor.knowledge.models import Severity

# Sort rank used when ordering violations; lower is more severe.
SEVERITY_RANK: dict[Severity, int] = {
    Severity.ERROR: 0,
    Severity.WARNING: 1,
    Severity.SUGGESTION: 2,
}


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class FileStatus(str, Enum):
    """Change status of a file in a pull request."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class PRFileDiff(_CamelModel):
    """One changed file of a pull request.

    Attributes:
        path: Repository-relative file path
        diff: Unified diff text for the file
        status: Change status
        additions: Added line count
        deletions: Deleted line count
    """

    path: str
    diff: str = ""
    status: FileStatus = FileStatus.MODIFIED
    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)


class PRDiffInput(_CamelModel):
    """Pipeline input describing a pull request.

    Attributes:
        pr_number: Pull request number
        title: Pull request title
        files: Changed files in diff order
        base_branch: Target branch
        head_branch: Source branch
    """

    pr_number: int
    title: str = ""
    files: list[PRFileDiff] = Field(default_factory=list)
    base_branch: str = "main"
    head_branch: str = ""


class FileRouting(_CamelModel):
    """Assignment of analyzer categories to one file.

    Attributes:
        file_path: File the assignment applies to
        assigned_reviewers: Categories whose analyzers run on the file
        reasoning: Why these categories were chosen
    """

    file_path: str
    assigned_reviewers: list[str] = Field(default_factory=list)
    reasoning: str = ""


class Violation(_CamelModel):
    """A single detected deviation from a team convention.

    Attributes:
        id: Unique identifier stamped at detection time
        type: Category of the analyzer that found it
        file: File path
        line: 1-based line number (1 for file-level issues)
        code: Offending snippet, possibly empty
        issue: Description of the problem
        severity: error, warning or suggestion
        convention_id: Back-reference to the violated convention, "" if none
        reasoning: Why the team follows the convention
        impact: What breaks if the issue is ignored
        recommendation: What to do instead
    """

    id: str
    type: str
    file: str
    line: int = Field(default=1, ge=1)
    code: str = ""
    issue: str
    severity: Severity = Severity.WARNING
    convention_id: str = ""
    reasoning: str | None = None
    impact: str | None = None
    recommendation: str | None = None

    @property
    def dedup_key(self) -> tuple[str, int, str]:
        """Identity used to collapse duplicate feedback."""
        return (self.file, self.line, self.type)


class CodeExample(_CamelModel):
    """Before/after illustration of a fix."""

    before: str
    after: str


class ExplainedFeedback(_CamelModel):
    """A violation paired with a teaching explanation.

    Attributes:
        id: Derived from the source violation id
        violation: The embedded source violation
        explanation: Why the issue matters, a few sentences
        team_expectation: The approved pattern to follow
        code_example: Optional before/after example from the convention
    """

    id: str
    violation: Violation
    explanation: str
    team_expectation: str
    code_example: CodeExample | None = None


class FormattedComment(_CamelModel):
    """A delivery-ready markdown comment anchored to a file line."""

    id: str
    file: str
    line: int
    body: str
    severity: Severity
    type: str
