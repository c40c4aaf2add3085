"""Review orchestrator.

Sequences the review of one pull request:

    LOADING_CONVENTIONS -> REVIEWING -> AGGREGATING -> COMPLETE

Files are reviewed one at a time in diff order. For each file the assigned
category analyzers run concurrently and the orchestrator waits for all of
them to settle before moving on, so findings never interleave across files.
A failing analyzer only costs its own findings: the exception is logged and
recorded in the run's ``errors`` while its siblings still contribute.

The only fault that aborts a run is a missing repository configuration
when conventions have to be loaded from the knowledge store.
"""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from codetutor.config import ConfigurationError, RepositoryNotConfiguredError
from codetutor.generation.client import TextGenerator
from codetutor.knowledge.models import Convention
from codetutor.knowledge.store import KnowledgeStore, KnowledgeStoreError
from codetutor.review.analyzers import CategoryAnalyzer, build_analyzers
from codetutor.review.models import SEVERITY_RANK, FileRouting, PRDiffInput, PRFileDiff, Violation
from codetutor.review.router import plan_routing
from codetutor.review.state import ReviewRunState, ReviewStatus

logger = structlog.get_logger(__name__)


def aggregate_violations(violations: list[Violation]) -> list[Violation]:
    """Order violations by severity, then file path.

    The sort is stable, so violations of equal severity in the same file
    keep their detection order.
    """
    return sorted(violations, key=lambda v: (SEVERITY_RANK[v.severity], v.file))


def categories_for(
    file_path: str,
    categories: list[str],
    routing: list[FileRouting] | None,
) -> list[str]:
    """Resolve which categories apply to a file.

    Without a routing plan, or when the plan does not mention the file,
    every configured category applies. Otherwise only the assigned
    categories run, in configured order.
    """
    if routing is None:
        return list(categories)
    for entry in routing:
        if entry.file_path == file_path:
            assigned = set(entry.assigned_reviewers)
            return [c for c in categories if c in assigned]
    return list(categories)


class ReviewOrchestrator:
    """Runs the category analyzers over a pull request.

    Attributes:
        knowledge_store: Source of conventions when none are supplied
        repository_id: Repository whose conventions are loaded (``owner/repo``)
        categories: Analyzer categories in effect
        use_llm_routing: Ask the backend for a routing plan when none is supplied
    """

    def __init__(
        self,
        knowledge_store: KnowledgeStore,
        generator: TextGenerator,
        repository_id: str = "",
        categories: list[str] | None = None,
        use_llm_routing: bool = False,
        analyzers: dict[str, CategoryAnalyzer] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            knowledge_store: Knowledge store queried for conventions
            generator: Generation backend shared by analyzers and routing
            repository_id: Repository identifier; empty means not configured
            categories: Analyzer categories to run (default: all)
            use_llm_routing: Build a routing plan with the generation backend
            analyzers: Pre-built analyzers keyed by category, overriding
                ``categories``
        """
        self.knowledge_store = knowledge_store
        self.generator = generator
        self.repository_id = repository_id
        self._analyzers = analyzers if analyzers is not None else build_analyzers(
            generator, categories
        )
        self.categories = list(self._analyzers)
        self.use_llm_routing = use_llm_routing
        self._logger = logger.bind(component="ReviewOrchestrator")

    async def review(
        self,
        pr_diff: PRDiffInput,
        conventions: list[Convention] | None = None,
        routing: list[FileRouting] | None = None,
    ) -> ReviewRunState:
        """Review a pull request.

        Args:
            pr_diff: Pull request files in diff order
            conventions: Pre-loaded conventions; when given the knowledge
                store is not queried
            routing: Optional routing plan restricting categories per file

        Returns:
            The completed run state with ordered ``violations``

        Raises:
            RepositoryNotConfiguredError: If conventions must be loaded and no
                repository is configured. Raised before any file is analyzed.
            KnowledgeStoreError: If the stored conventions cannot be read.
        """
        state = ReviewRunState(repository_id=self.repository_id, pr_number=pr_diff.pr_number)
        log = self._logger.bind(run_id=state.run_id, pr_number=pr_diff.pr_number)
        log.info("review_started", files=len(pr_diff.files), categories=self.categories)

        state = state.apply({"status": ReviewStatus.LOADING_CONVENTIONS})
        try:
            state = state.apply(await self._load_conventions(conventions))
        except (ConfigurationError, KnowledgeStoreError) as e:
            state = state.apply({"status": ReviewStatus.ERROR, "errors": [str(e)]})
            log.error("review_aborted", error=str(e))
            raise

        state = state.apply({"status": ReviewStatus.REVIEWING})
        if routing is None and self.use_llm_routing:
            routing = await plan_routing(self.generator, pr_diff.files, self.categories)
        state = state.apply({"routing": routing})

        for file in pr_diff.files:
            state = state.apply(await self._analyze_file(file, state))

        state = state.apply({"status": ReviewStatus.AGGREGATING})
        state = state.apply(
            {
                "violations": aggregate_violations(state.findings),
                "status": ReviewStatus.COMPLETE,
            }
        )

        log.info(
            "review_completed",
            violations=len(state.violations),
            files_reviewed=len(state.reviewed_files),
            errors=len(state.errors),
        )
        return state

    async def _load_conventions(self, conventions: list[Convention] | None) -> dict[str, Any]:
        if conventions is not None:
            self._logger.info("conventions_supplied", count=len(conventions))
            return {"conventions": list(conventions)}

        if not self.repository_id:
            raise RepositoryNotConfiguredError()

        loaded = await self.knowledge_store.get_all_conventions(self.repository_id)
        self._logger.info(
            "conventions_loaded",
            repository=self.repository_id,
            count=len(loaded),
        )
        return {"conventions": loaded}

    async def _analyze_file(self, file: PRFileDiff, state: ReviewRunState) -> dict[str, Any]:
        """Fan out the assigned analyzers for one file and join their results."""
        assigned = categories_for(file.path, self.categories, state.routing)
        self._logger.debug("file_review_started", file=file.path, categories=assigned)

        results = await asyncio.gather(
            *(
                self._analyzers[category].analyze(file.diff, file.path, state.conventions)
                for category in assigned
            ),
            return_exceptions=True,
        )

        findings: list[Violation] = []
        errors: list[str] = []
        for category, result in zip(assigned, results):
            if isinstance(result, Exception):
                self._logger.warning(
                    "analyzer_failed",
                    file=file.path,
                    category=category,
                    error=str(result),
                    error_type=type(result).__name__,
                )
                errors.append(f"{category} analyzer failed for {file.path}: {result}")
            elif isinstance(result, BaseException):
                raise result
            else:
                findings.extend(result)

        self._logger.info(
            "file_reviewed",
            file=file.path,
            violations=len(findings),
            failed_analyzers=len(errors),
        )
        return {"findings": findings, "reviewed_files": [file.path], "errors": errors}
