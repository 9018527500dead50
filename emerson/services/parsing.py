"""Decoding of model output that is supposed to be a JSON object."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

_FENCE_PATTERN = re.compile(r"```(?:json|JSON)?\s*(.*?)\s*```", re.DOTALL)


@dataclass(frozen=True)
class JSONParseResult:
    ok: bool
    value: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: Dict[str, Any]) -> "JSONParseResult":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: str) -> "JSONParseResult":
        return cls(ok=False, error=error)


def strip_code_fences(raw_text: str) -> str:
    text = (raw_text or "").strip()
    fence_match = _FENCE_PATTERN.search(text)
    if fence_match:
        return fence_match.group(1).strip()
    # An opening fence without its closing partner.
    if text.startswith("```"):
        text = text[3:]
        if text[:4].lower() == "json":
            text = text[4:]
    return text.strip()


def parse_json_object(raw_text: Optional[str]) -> JSONParseResult:
    """Decode ``raw_text`` into a JSON object without ever raising."""

    if not raw_text or not raw_text.strip():
        return JSONParseResult.failure("empty response")

    text = strip_code_fences(raw_text)
    if not text.startswith("{"):
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return JSONParseResult.failure("no JSON object found")
        text = text[start : end + 1]

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as exc:
        return JSONParseResult.failure(f"invalid JSON: {exc.msg}")

    if not isinstance(parsed, dict):
        return JSONParseResult.failure(f"expected a JSON object, got {type(parsed).__name__}")
    return JSONParseResult.success(parsed)


def clean_string(value: object) -> Optional[str]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    return cleaned or None


def clean_string_list(value: object) -> List[str]:
    if not isinstance(value, list):
        return []
    items: List[str] = []
    for item in value:
        cleaned = clean_string(item)
        if cleaned:
            items.append(cleaned)
    return items
