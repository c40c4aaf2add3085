"""Category analyzers.

One analyzer per convention category. Every analyzer shares the same
contract:

    1. Keep only the conventions of its own category; with none, return []
       without calling the generation backend.
    2. Prompt the backend with those conventions and the file diff, asking
       for a JSON array of findings.
    3. Decode the response strictly. A generation failure, a response with
       no JSON, or a payload that is not a findings array all yield [] and a
       warning log. Individual findings that fail validation are skipped.
    4. Stamp each finding with a fresh id, the analyzer category and the
       caller's file path.

Analyzers hold no state between calls and never mutate their inputs.
"""

from __future__ import annotations

import uuid
from typing import Any, ClassVar

import structlog
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from codetutor.generation.client import GenerationError, TextGenerator
from codetutor.generation.parsing import parse_json_payload
from codetutor.knowledge.models import Convention, Severity
from codetutor.review.models import Violation

logger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Response schema
# ---------------------------------------------------------------------------


class RawFinding(BaseModel):
    """One finding as reported by the generation backend.

    Validation is lenient on shape (missing optional fields, numeric strings)
    and normalization happens when the finding becomes a ``Violation``.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    issue: str = Field(min_length=1)
    convention_id: str | None = Field(default="", alias="conventionId")
    file: str | None = None
    line: int | None = 1
    code: str | None = ""
    severity: str | None = None
    reasoning: str | None = None
    impact: str | None = None
    recommendation: str | None = None

    @field_validator("line", mode="before")
    @classmethod
    def coerce_line(cls, v: object) -> object:
        """Treat missing line numbers as file-level."""
        if v is None or v == "":
            return 1
        return v


class FindingsEnvelope(BaseModel):
    """Object form of the response: ``{"violations": [...]}``."""

    model_config = ConfigDict(extra="ignore")

    violations: list[Any]


# Items are validated one at a time so a single bad finding does not
# discard the rest.
FINDINGS_SCHEMA = list[Any] | FindingsEnvelope

_SEVERITY_VALUES = {s.value for s in Severity}


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------

_RESPONSE_FORMAT = """Return ONLY a JSON array of violations. Each violation must be:
{
  "issue": string,
  "conventionId": string,
  "file": string,
  "line": number,
  "code": string,
  "severity": "error" | "warning" | "suggestion",
  "reasoning": string,
  "impact": string,
  "recommendation": string
}
Use only the convention ids listed above. Never invent conventions that are
not listed. If nothing violates these conventions, return []."""


def render_conventions(conventions: list[Convention]) -> str:
    """Render conventions as a prompt section, including forbid directives."""
    blocks = []
    for convention in conventions:
        lines = [
            f"### [{convention.id}] {convention.rule}",
            convention.description,
            f"Default severity: {convention.severity.value}",
        ]
        if convention.tags:
            lines.append(f"Tags: {', '.join(convention.tags)}")
        for keyword in convention.forbidden_keywords():
            lines.append(f"DIRECTIVE: flag any use of `{keyword}` as a violation of this rule.")
        for example in convention.examples:
            if example.good:
                lines.append(f"Good:\n{example.good}")
            if example.bad:
                lines.append(f"Bad:\n{example.bad}")
        blocks.append("\n".join(line for line in lines if line))
    return "\n---\n".join(blocks)


# ---------------------------------------------------------------------------
# Analyzers
# ---------------------------------------------------------------------------


class CategoryAnalyzer:
    """Base analyzer; subclasses set ``category`` and ``focus``.

    Attributes:
        generator: Generation backend used for analysis
    """

    category: ClassVar[str] = ""
    focus: ClassVar[tuple[str, ...]] = ()

    def __init__(self, generator: TextGenerator) -> None:
        self.generator = generator
        self._logger = logger.bind(component=type(self).__name__, category=self.category)

    def relevant_conventions(self, conventions: list[Convention]) -> list[Convention]:
        """Return the conventions of this analyzer's category."""
        return [c for c in conventions if c.category.lower() == self.category]

    def build_prompt(self, diff_text: str, file_path: str, conventions: list[Convention]) -> str:
        focus = "\n".join(f"- {item}" for item in self.focus)
        return (
            f"You are a specialized {self.category} reviewer. Your ONLY job is to "
            f"detect {self.category} issues that violate the team conventions below.\n\n"
            f"## Team {self.category.title()} Conventions:\n"
            f"{render_conventions(conventions)}\n\n"
            f"## Focus:\n{focus}\n\n"
            f"## File path: {file_path}\n\n"
            f"## Code diff:\n{diff_text}\n\n"
            f"{_RESPONSE_FORMAT}\n"
        )

    async def analyze(
        self,
        diff_text: str,
        file_path: str,
        conventions: list[Convention],
    ) -> list[Violation]:
        """Analyze one file diff against this category's conventions.

        Args:
            diff_text: Unified diff of the file
            file_path: Path stamped onto every violation
            conventions: Conventions in effect; filtered to this category here

        Returns:
            A new list of violations, empty when nothing was found or the
            response could not be used
        """
        relevant = self.relevant_conventions(conventions)
        if not relevant:
            self._logger.debug("analyzer_skipped_no_conventions", file=file_path)
            return []

        prompt = self.build_prompt(diff_text, file_path, relevant)
        try:
            response = await self.generator.generate(prompt)
        except GenerationError as e:
            self._logger.warning("analyzer_generation_failed", file=file_path, error=str(e))
            return []

        result = parse_json_payload(response, FINDINGS_SCHEMA)
        if not result.ok:
            self._logger.warning(
                "analyzer_parse_failed",
                file=file_path,
                reason=result.error,
                response_preview=response[:200],
            )
            return []

        raw = result.value
        items = raw.violations if isinstance(raw, FindingsEnvelope) else raw
        by_id = {c.id: c for c in relevant}
        violations = [
            self._to_violation(finding, file_path, by_id)
            for finding in self._validate_findings(items, file_path)
        ]

        self._logger.info("analyzer_completed", file=file_path, violations=len(violations))
        return violations

    def _validate_findings(self, items: list[Any], file_path: str) -> list[RawFinding]:
        findings = []
        for index, item in enumerate(items):
            try:
                findings.append(RawFinding.model_validate(item))
            except ValidationError as e:
                self._logger.warning(
                    "analyzer_finding_skipped",
                    file=file_path,
                    index=index,
                    errors=e.error_count(),
                )
        return findings

    def _to_violation(
        self,
        finding: RawFinding,
        file_path: str,
        conventions_by_id: dict[str, Convention],
    ) -> Violation:
        convention_id = (finding.convention_id or "").strip()
        convention = conventions_by_id.get(convention_id)
        if convention is None:
            if convention_id:
                self._logger.debug(
                    "analyzer_unknown_convention_dropped",
                    file=file_path,
                    convention_id=convention_id,
                )
            convention_id = ""

        return Violation(
            id=f"{self.category}-{uuid.uuid4().hex[:12]}",
            type=self.category,
            file=file_path,
            line=max(1, finding.line or 1),
            code=finding.code or "",
            issue=finding.issue.strip(),
            severity=_normalize_severity(finding.severity, convention),
            convention_id=convention_id,
            reasoning=finding.reasoning,
            impact=finding.impact,
            recommendation=finding.recommendation,
        )


def _normalize_severity(value: str | None, convention: Convention | None) -> Severity:
    """Map a reported severity onto the enum, falling back to the convention default."""
    normalized = (value or "").strip().lower()
    if normalized in _SEVERITY_VALUES:
        return Severity(normalized)
    return convention.severity if convention is not None else Severity.WARNING


class NamingAnalyzer(CategoryAnalyzer):
    """Checks file, variable, function and type names."""

    category: ClassVar[str] = "naming"
    focus: ClassVar[tuple[str, ...]] = (
        "File names and their casing",
        "Variable, function, class and constant names",
        "Consistency with the naming style used in the rest of the codebase",
    )


class StructureAnalyzer(CategoryAnalyzer):
    """Checks module placement, layering and file organization."""

    category: ClassVar[str] = "structure"
    focus: ClassVar[tuple[str, ...]] = (
        "Where the file lives and what it is allowed to import",
        "Layering and separation of concerns",
        "Size and organization of modules, classes and functions",
    )


class PatternAnalyzer(CategoryAnalyzer):
    """Checks use of the team's standard architectural and API patterns."""

    category: ClassVar[str] = "pattern"
    focus: ClassVar[tuple[str, ...]] = (
        "API consistency",
        "Latency implications",
        "Coupling and long-term maintainability",
        "Why the team standardized this pattern",
    )


class TestingAnalyzer(CategoryAnalyzer):
    """Checks test coverage, structure and isolation."""

    __test__ = False

    category: ClassVar[str] = "testing"
    focus: ClassVar[tuple[str, ...]] = (
        "Whether new code has corresponding tests",
        "Test naming and structure (arrange-act-assert, given-when-then)",
        "Edge case coverage",
        "Mock and stub usage, test isolation and async test handling",
    )


ANALYZERS: dict[str, type[CategoryAnalyzer]] = {
    cls.category: cls
    for cls in (NamingAnalyzer, StructureAnalyzer, PatternAnalyzer, TestingAnalyzer)
}


def build_analyzers(
    generator: TextGenerator,
    categories: list[str] | None = None,
) -> dict[str, CategoryAnalyzer]:
    """Instantiate analyzers for the requested categories, in request order.

    Raises:
        ValueError: If a category has no analyzer.
    """
    selected = categories if categories is not None else list(ANALYZERS)
    unknown = [c for c in selected if c not in ANALYZERS]
    if unknown:
        raise ValueError(f"No analyzer for categories: {unknown}")
    return {category: ANALYZERS[category](generator) for category in selected}
