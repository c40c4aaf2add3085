"""Generation capability for Codetutor.

Provides the prompt-to-text protocol every review stage depends on, an
Ollama-compatible HTTP backend, a per-call deadline wrapper, and strict
JSON extraction for structured responses.
"""

from codetutor.generation.client import (
    BoundedGenerator,
    GenerationAPIError,
    GenerationConnectionError,
    GenerationError,
    GenerationTimeoutError,
    OllamaGenerator,
    TextGenerator,
)
from codetutor.generation.parsing import ParseResult, extract_json_block, parse_json_payload

__all__ = [
    "BoundedGenerator",
    "GenerationAPIError",
    "GenerationConnectionError",
    "GenerationError",
    "GenerationTimeoutError",
    "OllamaGenerator",
    "ParseResult",
    "TextGenerator",
    "extract_json_block",
    "parse_json_payload",
]
