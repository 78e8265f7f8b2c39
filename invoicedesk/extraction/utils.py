"""Provider output parsing utilities.

Even in JSON mode, chat models occasionally wrap their answer in markdown
fences or leave trailing commas. Parsed output is validated against a
Pydantic schema.
"""

from __future__ import annotations

import json
import re
from typing import Any

from pydantic import BaseModel, ValidationError


class LlmParseError(Exception):
    """Raised when provider output cannot be parsed into the expected schema."""

    def __init__(self, message: str, raw_output: str) -> None:
        super().__init__(message)
        self.raw_output = raw_output


def parse_llm_json[T: BaseModel](raw: str, schema: type[T]) -> tuple[T, dict[str, Any]]:
    """Parse provider text output into a Pydantic model.

    Returns:
        The validated model and the decoded JSON object it came from.

    Raises:
        LlmParseError: If JSON parsing or Pydantic validation fails.
    """
    cleaned = _strip_markdown_fences(raw.strip())
    cleaned = _fix_trailing_commas(cleaned)

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise LlmParseError(f"Invalid JSON: {exc}", raw_output=raw) from exc

    if not isinstance(data, dict):
        raise LlmParseError(f"Expected a JSON object, got {type(data).__name__}", raw_output=raw)

    try:
        return schema.model_validate(data), data
    except ValidationError as exc:
        raise LlmParseError(
            f"Schema validation failed: {exc.error_count()} errors",
            raw_output=raw,
        ) from exc


def _strip_markdown_fences(text: str) -> str:
    """Remove markdown code fences wrapping JSON."""
    match = re.search(r"```(?:json)?\s*\n?(.*?)\n?\s*```", text, re.DOTALL)
    if match:
        return match.group(1).strip()
    return text


def _fix_trailing_commas(text: str) -> str:
    """Remove trailing commas before } or ]."""
    return re.sub(r",\s*([}\]])", r"\1", text)
