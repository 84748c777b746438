"""Utility helpers for the CineLoop service."""

from __future__ import annotations

import json
import re
from typing import Any


JSON_BLOCK_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL)
BARE_JSON_RE = re.compile(r"\{.*\}", re.DOTALL)
LIKE_SPECIAL_RE = re.compile(r"([\\%_])")


def extract_json_object(content: str) -> dict[str, Any]:
    """Extract and parse the first JSON object from the model response."""

    match = JSON_BLOCK_RE.search(content)
    if match:
        payload = match.group(1)
    else:
        match = BARE_JSON_RE.search(content)
        if not match:
            raise ValueError("No JSON object found in response")
        payload = match.group(0)

    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError as exc:
        raise ValueError("Invalid JSON payload produced by the model") from exc
    if not isinstance(parsed, dict):
        raise ValueError("Model response is not a JSON object")
    return parsed


def escape_like(value: str) -> str:
    """Escape LIKE wildcards so the query matches literally."""

    return LIKE_SPECIAL_RE.sub(r"\\\1", value)


def matches_name(name: str | None, query: str) -> bool:
    """Case-insensitive substring test used by title search."""

    if not name:
        return False
    return query.lower() in name.lower()


def name_match_rank(name: str, query: str) -> tuple[int, str]:
    """Sort key placing exact matches first, then prefix matches, then by name."""

    lowered = name.lower()
    needle = query.lower()
    if lowered == needle:
        return 0, lowered
    if lowered.startswith(needle):
        return 1, lowered
    return 2, lowered
