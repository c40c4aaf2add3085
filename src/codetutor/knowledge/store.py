"""Knowledge store backends.

The review pipeline reads conventions through the ``KnowledgeStore``
protocol: ``get_all_conventions(repository_id)`` returns the active set for
a repository and an empty list for a repository that was never seeded.

Two backends are provided:
    - ``InMemoryKnowledgeStore`` for tests and embedding callers
    - ``JsonKnowledgeStore`` reading ``<root>/<owner>__<repo>/conventions.json``
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog
from pydantic import TypeAdapter, ValidationError

from codetutor.knowledge.models import Convention

logger = structlog.get_logger(__name__)

_CONVENTION_LIST = TypeAdapter(list[Convention])


class KnowledgeStoreError(Exception):
    """Raised when a stored convention file cannot be read or validated."""

    pass


@runtime_checkable
class KnowledgeStore(Protocol):
    """Read-only view of the team knowledge base."""

    async def get_all_conventions(self, repository_id: str) -> list[Convention]: ...


class InMemoryKnowledgeStore:
    """Knowledge store holding conventions in a dictionary keyed by repository."""

    def __init__(self, conventions: dict[str, list[Convention]] | None = None) -> None:
        self._conventions: dict[str, list[Convention]] = {
            repo: list(items) for repo, items in (conventions or {}).items()
        }

    def add_convention(self, repository_id: str, convention: Convention) -> None:
        """Add or replace a convention for a repository."""
        items = self._conventions.setdefault(repository_id, [])
        items[:] = [c for c in items if c.id != convention.id]
        items.append(convention)

    async def get_all_conventions(self, repository_id: str) -> list[Convention]:
        return list(self._conventions.get(repository_id, []))


class JsonKnowledgeStore:
    """Knowledge store backed by one JSON file per repository.

    Attributes:
        root: Directory holding ``<owner>__<repo>/conventions.json`` files
    """

    def __init__(self, root: Path) -> None:
        self.root = root
        self._logger = logger.bind(component="JsonKnowledgeStore")

    def path_for(self, repository_id: str) -> Path:
        """Return the conventions file path for a repository."""
        return self.root / repository_id.replace("/", "__") / "conventions.json"

    async def get_all_conventions(self, repository_id: str) -> list[Convention]:
        """Load the conventions stored for a repository.

        Args:
            repository_id: Repository identifier (``owner/repo``)

        Returns:
            Stored conventions, or an empty list when none were saved

        Raises:
            KnowledgeStoreError: If the file exists but is not a valid
                convention list
        """
        path = self.path_for(repository_id)
        if not path.exists():
            self._logger.info("knowledge_not_seeded", repository=repository_id, path=str(path))
            return []

        raw = await asyncio.to_thread(path.read_text, encoding="utf-8")
        try:
            conventions = _CONVENTION_LIST.validate_python(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as e:
            raise KnowledgeStoreError(f"Invalid conventions file {path}: {e}") from e

        self._logger.info(
            "conventions_loaded",
            repository=repository_id,
            count=len(conventions),
        )
        return conventions

    async def save_conventions(self, repository_id: str, conventions: list[Convention]) -> Path:
        """Write the full convention set for a repository.

        Returns:
            Path of the written file
        """
        path = self.path_for(repository_id)
        payload = json.dumps(
            [c.model_dump(mode="json") for c in conventions], indent=2
        )

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(payload, encoding="utf-8")

        await asyncio.to_thread(_write)
        self._logger.info("conventions_saved", repository=repository_id, count=len(conventions))
        return path


def search_conventions(
    conventions: list[Convention], query: str, limit: int | None = None
) -> list[Convention]:
    """Keyword search over rule, description and tags.

    The query is split into words; a convention matches when any word of
    three or more characters (or the whole query) appears in its rule,
    description or one of its tags. Results are ranked by the number of
    matching words, ties keeping input order.

    Args:
        conventions: Conventions to search
        query: Free-text query
        limit: Optional cap on the number of results

    Returns:
        Matching conventions, best first
    """
    lowered = query.lower().strip()
    if not lowered:
        return []

    terms = {w.strip("?.,!:;\"'`()") for w in lowered.split()}
    terms = {t for t in terms if len(t) >= 3}
    terms.add(lowered)

    scored: list[tuple[int, int, Convention]] = []
    for index, convention in enumerate(conventions):
        haystacks = [convention.rule.lower(), convention.description.lower()]
        haystacks.extend(tag.lower() for tag in convention.tags)
        score = sum(1 for term in terms if any(term in h for h in haystacks))
        if score:
            scored.append((-score, index, convention))

    scored.sort(key=lambda item: (item[0], item[1]))
    results = [c for _, _, c in scored]
    return results[:limit] if limit is not None else results
