"""Main CLI entry point for Codetutor.

This module provides the main Typer application with sub-commands for
reviewing pull requests and asking questions about team conventions.

Usage:
    codetutor review run acme/payments 42 --post
    codetutor review file pr.json --repo acme/payments --json
    codetutor ask "How do we name React hooks?" --repo acme/payments
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import Annotated, AsyncIterator, Optional

import typer
from rich.console import Console
from rich.markup import escape

from codetutor.cli import ask as ask_cli
from codetutor.cli import review as review_cli
from codetutor.config import CodetutorConfig, load_config
from codetutor.generation.client import BoundedGenerator, OllamaGenerator, TextGenerator
from codetutor.knowledge.store import JsonKnowledgeStore, KnowledgeStore
from codetutor.logging import setup_logging

app = typer.Typer(
    name="codetutor",
    help="Codetutor: convention-aware pull request reviews that teach",
    no_args_is_help=True,
)

app.add_typer(review_cli.app, name="review", help="Review pull requests")
app.command(name="ask")(ask_cli.ask)

console = Console()


class AppContext:
    """Application context shared across CLI commands.

    Attributes:
        config: Loaded Codetutor configuration
        knowledge_store: Store serving conventions per repository
    """

    def __init__(self, config: CodetutorConfig):
        self.config = config
        self.knowledge_store: KnowledgeStore = JsonKnowledgeStore(config.knowledge.path)


_app_context: AppContext | None = None


def get_app_context() -> AppContext:
    """Get the shared application context.

    Raises:
        RuntimeError: If context has not been initialized
    """
    if _app_context is None:
        raise RuntimeError("Application context not initialized. Call initialize_context first.")
    return _app_context


def initialize_context(config: CodetutorConfig) -> AppContext:
    """Initialize the global application context."""
    global _app_context
    _app_context = AppContext(config)
    return _app_context


@asynccontextmanager
async def open_generator(config: CodetutorConfig) -> AsyncIterator[TextGenerator]:
    """Open the configured generation backend with a per-call deadline."""
    async with OllamaGenerator(config.generation) as backend:
        yield BoundedGenerator(backend, timeout_seconds=config.generation.timeout_seconds)


@app.callback()
def main_callback(
    config_path: Annotated[
        Optional[Path],
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file (TOML format)",
            exists=True,
            dir_okay=False,
            readable=True,
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Configure global options and initialize application context.

    Args:
        config_path: Optional path to TOML configuration file
        verbose: Enable debug-level logging
    """
    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error loading configuration:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    logging_config = config.logging
    if verbose:
        logging_config = logging_config.model_copy(update={"level": "DEBUG"})
    setup_logging(logging_config)

    initialize_context(config)

    if verbose:
        console.print("[dim]Debug logging enabled[/dim]")


if __name__ == "__main__":
    app()
