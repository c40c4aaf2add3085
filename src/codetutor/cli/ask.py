"""Ask CLI command: answer questions about team conventions."""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from codetutor.config import RepositoryNotConfiguredError
from codetutor.generation.client import GenerationError
from codetutor.knowledge.store import KnowledgeStoreError
from codetutor.review.explainer import answer_question

console = Console()


def ask(
    question: Annotated[str, typer.Argument(help="Question about team conventions")],
    repository: Annotated[
        Optional[str],
        typer.Option("--repo", "-r", help="Repository whose conventions are used"),
    ] = None,
) -> None:
    """Answer a question using the repository's conventions as context.

    Args:
        question: Free-form question
        repository: Repository override (default: repository.full_name)
    """
    from codetutor.main import get_app_context, open_generator

    ctx = get_app_context()
    repository_id = repository or ctx.config.repository.full_name

    async def _ask() -> str:
        if not repository_id:
            raise RepositoryNotConfiguredError()
        conventions = await ctx.knowledge_store.get_all_conventions(repository_id)
        async with open_generator(ctx.config) as generator:
            return await answer_question(generator, question, conventions)

    try:
        answer = asyncio.run(_ask())
    except (RepositoryNotConfiguredError, KnowledgeStoreError) as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except GenerationError as e:
        console.print(f"[red]Generation failed:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    console.print(Panel(Text(answer), title="Answer", border_style="cyan"))
