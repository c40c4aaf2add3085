"""Text generation clients.

This module defines the generation capability used by every review stage
and an async HTTP backend for Ollama-compatible servers. The backend
handles timeouts, retries with exponential backoff, and error logging.
``BoundedGenerator`` caps the wall-clock time of a single call for any
generator implementation.

Example usage:
    >>> from codetutor.config import GenerationConfig
    >>> config = GenerationConfig(url="http://localhost:11434", model="llama3.1")
    >>> async with OllamaGenerator(config) as backend:
    ...     generator = BoundedGenerator(backend, timeout_seconds=60)
    ...     text = await generator.generate("Explain this diff")
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from codetutor.config import GenerationConfig

logger = structlog.get_logger(__name__)


class GenerationError(Exception):
    """Base exception for text generation errors."""

    pass


class GenerationTimeoutError(GenerationError):
    """Raised when a generation request times out."""

    pass


class GenerationConnectionError(GenerationError):
    """Raised when unable to connect to the generation backend."""

    pass


class GenerationAPIError(GenerationError):
    """Raised when the generation backend returns an error response."""

    pass


@runtime_checkable
class TextGenerator(Protocol):
    """Anything that turns a prompt into text."""

    async def generate(self, prompt: str) -> str: ...


class OllamaGenerator:
    """Async client for the Ollama ``/api/generate`` endpoint.

    Attributes:
        config: Generation configuration containing URL, model, and timeout settings
    """

    def __init__(self, config: GenerationConfig, initial_backoff: float = 1.0) -> None:
        """Initialize the Ollama generator.

        Args:
            config: GenerationConfig instance with connection settings
            initial_backoff: Initial retry delay in seconds
        """
        self.config = config
        self.initial_backoff = initial_backoff
        self._client: httpx.AsyncClient | None = None
        logger.info(
            "generation_client_initialized",
            url=config.url,
            model=config.model,
            timeout=config.timeout_seconds,
        )

    async def __aenter__(self) -> OllamaGenerator:
        """Async context manager entry."""
        self._client = httpx.AsyncClient(
            base_url=self.config.url,
            timeout=httpx.Timeout(self.config.timeout_seconds),
        )
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        """Get the active HTTP client.

        Raises:
            RuntimeError: If called outside async context manager
        """
        if self._client is None:
            raise RuntimeError("OllamaGenerator must be used as async context manager")
        return self._client

    async def generate(self, prompt: str) -> str:
        """Generate a completion for the prompt.

        Retries on timeouts, connection errors and 5xx status codes with
        exponential backoff.

        Args:
            prompt: Full prompt text

        Returns:
            Generated text

        Raises:
            GenerationTimeoutError: If request times out after all retries
            GenerationConnectionError: If unable to connect after all retries
            GenerationAPIError: If the backend returns an error response
        """
        client = self._get_client()
        max_retries = self.config.max_retries
        payload = {
            "model": self.config.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.config.temperature},
        }

        for attempt in range(max_retries + 1):
            backoff = self.initial_backoff * (2**attempt)
            try:
                logger.debug(
                    "generation_request",
                    attempt=attempt + 1,
                    max_attempts=max_retries + 1,
                    prompt_length=len(prompt),
                )

                response = await client.post("/api/generate", json=payload)

                if response.status_code == 200:
                    try:
                        text = response.json().get("response")
                    except (ValueError, AttributeError, TypeError) as e:
                        raise GenerationAPIError(
                            f"Invalid response body: {response.text[:200]}"
                        ) from e
                    if not isinstance(text, str):
                        raise GenerationAPIError(
                            "Invalid response format: missing or invalid 'response' field"
                        )

                    logger.debug(
                        "generation_completed",
                        prompt_length=len(prompt),
                        response_length=len(text),
                        attempt=attempt + 1,
                    )
                    return text

                error_msg = f"API error: HTTP {response.status_code}: {response.text[:200]}"

                if 500 <= response.status_code < 600 and attempt < max_retries:
                    logger.warning(
                        "generation_server_error_retry",
                        status_code=response.status_code,
                        attempt=attempt + 1,
                        backoff_seconds=backoff,
                    )
                    await asyncio.sleep(backoff)
                    continue

                raise GenerationAPIError(error_msg)

            except httpx.TimeoutException as e:
                if attempt < max_retries:
                    logger.warning(
                        "generation_timeout_retry",
                        attempt=attempt + 1,
                        backoff_seconds=backoff,
                        error=str(e),
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error(
                    "generation_timeout_exhausted",
                    max_retries=max_retries,
                    timeout_seconds=self.config.timeout_seconds,
                )
                raise GenerationTimeoutError(
                    f"Request timed out after {max_retries} retries"
                ) from e

            except httpx.TransportError as e:
                if attempt < max_retries:
                    logger.warning(
                        "generation_connection_error_retry",
                        attempt=attempt + 1,
                        backoff_seconds=backoff,
                        error=str(e),
                    )
                    await asyncio.sleep(backoff)
                    continue
                logger.error(
                    "generation_connection_exhausted",
                    url=self.config.url,
                    max_retries=max_retries,
                )
                raise GenerationConnectionError(
                    f"Failed to connect to generation backend at {self.config.url}"
                ) from e

        raise GenerationError("Unexpected retry loop exit")


class BoundedGenerator:
    """Wraps a generator so that no single call runs longer than a deadline.

    Attributes:
        inner: Wrapped generator
        timeout_seconds: Per-call deadline
    """

    def __init__(self, inner: TextGenerator, timeout_seconds: float) -> None:
        self.inner = inner
        self.timeout_seconds = timeout_seconds

    async def generate(self, prompt: str) -> str:
        try:
            return await asyncio.wait_for(
                self.inner.generate(prompt), timeout=self.timeout_seconds
            )
        except asyncio.TimeoutError as e:
            logger.warning("generation_deadline_exceeded", timeout_seconds=self.timeout_seconds)
            raise GenerationTimeoutError(
                f"Generation exceeded {self.timeout_seconds}s deadline"
            ) from e
