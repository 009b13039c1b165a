"""Helpers for turning raw model output into structured data."""

import json
import re
from typing import Any

from futurecast.core.errors import ResponseValidationError


def _strip_llm_fences(raw_output: str) -> str:
    """Strip markdown code fences from LLM output.

    Handles: ```json ... ```, ``` ... ```, leading/trailing whitespace.
    """
    cleaned = raw_output.strip()

    fence_match = re.search(r"```(?:json)?\s*\n?(.*?)```", cleaned, re.DOTALL)
    if fence_match:
        return fence_match.group(1).strip()

    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_llm_json_dict(raw_output: str) -> dict[str, Any]:
    """
    Parse LLM output as a JSON object.

    Args:
        raw_output: Raw string from the generator

    Returns:
        Parsed dict

    Raises:
        ResponseValidationError: If the output is not a JSON object
    """
    cleaned = _strip_llm_fences(raw_output or "")
    if not cleaned:
        raise ResponseValidationError("Empty response from generator")
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise ResponseValidationError(f"Response is not valid JSON: {e}") from e
    if not isinstance(parsed, dict):
        raise ResponseValidationError(
            f"Expected a JSON object, got {type(parsed).__name__}"
        )
    return parsed


def coerce_str(value: Any, default: str = "") -> str:
    """Return value if it is a non-blank string, else default."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return default


def coerce_str_list(value: Any) -> list[str]:
    """Return the string items of a list; anything that is not a list becomes []."""
    if not isinstance(value, list):
        return []
    return [str(item).strip() for item in value if item is not None and str(item).strip()]
