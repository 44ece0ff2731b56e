"""
Tolerant JSON parsing for model responses.

Models wrap JSON in code fences or prose often enough that every response in
this package goes through safe_parse_json() instead of json.loads().
"""

import json
import re
from typing import Any, Dict, Optional

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)\n?\s*```", re.DOTALL)


def _first_object_span(text: str) -> Optional[str]:
    """Return the first balanced {...} span, honoring strings and escapes."""
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def safe_parse_json(text: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Parse a JSON object out of a model response.

    Attempts, in order:
    1. Strip a ```json fence if present, then parse directly
    2. Parse the first balanced {...} span in the text

    Args:
        text: Raw response text

    Returns:
        Parsed dict, or None if no JSON object could be recovered
    """
    if not text or not isinstance(text, str):
        return None

    cleaned = text.strip()
    fence = _FENCE.search(cleaned)
    if fence:
        cleaned = fence.group(1).strip()

    try:
        parsed = json.loads(cleaned)
        return parsed if isinstance(parsed, dict) else None
    except json.JSONDecodeError:
        pass

    span = _first_object_span(cleaned)
    if span is None:
        return None
    try:
        parsed = json.loads(span)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None
