"""Shared fixtures for Codetutor tests.

Provides a scripted generator that answers prompts by substring match, so
tests can drive every pipeline stage without a generation backend.
"""

from __future__ import annotations

from typing import Callable, Union

import pytest

from codetutor.knowledge.models import Convention, ConventionExample, Severity
from codetutor.review.models import PRDiffInput, PRFileDiff

Response = Union[str, Exception, Callable[[str], str]]

# Substrings identifying the prompt of each stage.
NAMING_PROMPT = "specialized naming reviewer"
STRUCTURE_PROMPT = "specialized structure reviewer"
PATTERN_PROMPT = "specialized pattern reviewer"
TESTING_PROMPT = "specialized testing reviewer"
ROUTING_PROMPT = "Reviewer Orchestrator"
EXPLAIN_PROMPT = "You are a calm engineering tutor"
FORMAT_PROMPT = "You are formatting code review feedback"
SUMMARY_PROMPT = "You are creating a summary"
QUESTION_PROMPT = "You are a concise engineering tutor"


class ScriptedGenerator:
    """Generator returning canned responses keyed by prompt substring.

    Rules are checked in insertion order; the first substring found in the
    prompt decides the response. A response may be a string, an exception
    to raise, or a callable receiving the prompt.
    """

    def __init__(self, rules: dict[str, Response] | None = None, default: str = "[]") -> None:
        self.rules: dict[str, Response] = dict(rules or {})
        self.default = default
        self.prompts: list[str] = []

    def calls_matching(self, substring: str) -> list[str]:
        return [p for p in self.prompts if substring in p]

    async def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        for substring, response in self.rules.items():
            if substring in prompt:
                if isinstance(response, Exception):
                    raise response
                if callable(response):
                    return response(prompt)
                return response
        return self.default


def make_convention(
    convention_id: str,
    category: str,
    rule: str = "Follow the rule",
    **kwargs: object,
) -> Convention:
    """Build a Convention with sensible defaults."""
    return Convention(id=convention_id, category=category, rule=rule, **kwargs)


@pytest.fixture
def scripted_generator() -> ScriptedGenerator:
    """Generator with no rules; every prompt gets an empty JSON array."""
    return ScriptedGenerator()


@pytest.fixture
def sample_conventions() -> list[Convention]:
    """One convention per analyzer category."""
    return [
        make_convention(
            "conv-naming",
            "naming",
            rule="Use camelCase for functions",
            description="Functions are named in camelCase across the codebase.",
            severity=Severity.WARNING,
            examples=[
                ConventionExample(
                    good="function getUser() {}",
                    bad="function get_user() {}",
                    explanation="camelCase keeps names consistent.",
                )
            ],
        ),
        make_convention(
            "conv-structure",
            "structure",
            rule="Controllers live in src/controllers",
            description="Keep HTTP handlers in the controllers directory.",
        ),
        make_convention(
            "conv-pattern",
            "pattern",
            rule="Use the shared HTTP client",
            description="All outbound requests go through apiClient.",
            tags=["http", "forbid:axios"],
            severity=Severity.ERROR,
        ),
        make_convention(
            "conv-testing",
            "testing",
            rule="Every service has a unit test",
            description="New services ship with tests.",
            severity=Severity.SUGGESTION,
        ),
    ]


@pytest.fixture
def sample_pr_diff() -> PRDiffInput:
    """Two-file pull request."""
    return PRDiffInput(
        pr_number=42,
        title="Add user service",
        files=[
            PRFileDiff(
                path="src/services/user.ts",
                diff="+function get_user() {\n+  return axios.get('/user')\n+}",
                additions=3,
            ),
            PRFileDiff(
                path="src/controllers/user.ts",
                diff="+export const handler = () => getUser()",
                additions=1,
            ),
        ],
        base_branch="main",
        head_branch="feature/user-service",
    )
