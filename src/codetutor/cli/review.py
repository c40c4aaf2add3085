"""Review CLI commands.

This module provides commands that run the review pipeline on a GitHub pull
request or on a local pull request document.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Optional

import typer
from pydantic import TypeAdapter, ValidationError
from rich.console import Console
from rich.markup import escape

from codetutor.config import ConfigurationError
from codetutor.integrations.github import GitHubClient, GitHubError, split_repository
from codetutor.knowledge.models import Convention
from codetutor.knowledge.store import KnowledgeStoreError
from codetutor.review.models import PRDiffInput
from codetutor.review.pipeline import ReviewOutcome, ReviewPipeline

app = typer.Typer(help="Review commands")
console = Console()


def _print_outcome(outcome: ReviewOutcome, as_json: bool) -> None:
    if as_json:
        # Machine-readable output stays the only thing on stdout
        console.print(
            json.dumps(outcome.github_payload(), indent=2),
            markup=False,
            emoji=False,
            highlight=False,
            soft_wrap=True,
        )
        return

    console.print(
        outcome.console_report(), markup=False, emoji=False, highlight=False, soft_wrap=True
    )
    if outcome.errors:
        console.print(
            f"[yellow]{len(outcome.errors)} recoverable error(s) during review[/yellow]"
        )


@app.command()
def run(
    repository: Annotated[str, typer.Argument(help="Repository in owner/repo form")],
    pr_number: Annotated[int, typer.Argument(help="Pull request number")],
    post: Annotated[
        bool,
        typer.Option("--post/--no-post", help="Post the review to GitHub"),
    ] = False,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the review payload as JSON"),
    ] = False,
) -> None:
    """Review a GitHub pull request.

    Args:
        repository: Repository in owner/repo form
        pr_number: Pull request number
        post: Post the resulting review to the pull request
        as_json: Print the GitHub payload instead of the text report
    """
    from codetutor.main import get_app_context, open_generator

    try:
        split_repository(repository)
    except ValueError as e:
        console.print(f"[red]Invalid repository:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    ctx = get_app_context()

    async def _run() -> ReviewOutcome:
        async with GitHubClient(ctx.config.github) as github:
            pr_diff = await github.fetch_pr_diff(repository, pr_number)
            async with open_generator(ctx.config) as generator:
                pipeline = ReviewPipeline.from_config(
                    ctx.config, generator, ctx.knowledge_store, repository_id=repository
                )
                outcome = await pipeline.run(pr_diff)
            if post:
                await github.post_review(
                    repository,
                    pr_number,
                    outcome.feedback.summary,
                    outcome.feedback.formatted_comments,
                )
        return outcome

    try:
        outcome = asyncio.run(_run())
    except (ConfigurationError, KnowledgeStoreError) as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    except GitHubError as e:
        console.print(f"[red]GitHub error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    _print_outcome(outcome, as_json)
    if post and not as_json:
        console.print(f"[green]Review posted to {repository}#{pr_number}[/green]")


@app.command()
def file(
    diff_json: Annotated[
        Path,
        typer.Argument(
            help="Pull request document (prNumber, title, files, baseBranch, headBranch)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ],
    repository: Annotated[
        Optional[str],
        typer.Option("--repo", "-r", help="Repository whose conventions are loaded"),
    ] = None,
    conventions_path: Annotated[
        Optional[Path],
        typer.Option(
            "--conventions",
            help="JSON list of conventions to use instead of the knowledge store",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    as_json: Annotated[
        bool,
        typer.Option("--json", help="Print the review payload as JSON"),
    ] = False,
) -> None:
    """Review a local pull request document.

    Args:
        diff_json: Path to a JSON pull request document
        repository: Repository override (default: repository.full_name)
        conventions_path: Optional convention list bypassing the knowledge store
        as_json: Print the GitHub payload instead of the text report
    """
    from codetutor.main import get_app_context, open_generator

    ctx = get_app_context()

    try:
        pr_diff = PRDiffInput.model_validate_json(diff_json.read_text(encoding="utf-8"))
        conventions = (
            TypeAdapter(list[Convention]).validate_json(
                conventions_path.read_text(encoding="utf-8")
            )
            if conventions_path is not None
            else None
        )
    except ValidationError as e:
        console.print(f"[red]Invalid input document:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    async def _run() -> ReviewOutcome:
        async with open_generator(ctx.config) as generator:
            pipeline = ReviewPipeline.from_config(
                ctx.config, generator, ctx.knowledge_store, repository_id=repository
            )
            return await pipeline.run(pr_diff, conventions=conventions)

    try:
        outcome = asyncio.run(_run())
    except (ConfigurationError, KnowledgeStoreError) as e:
        console.print(f"[red]Configuration error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    _print_outcome(outcome, as_json)
