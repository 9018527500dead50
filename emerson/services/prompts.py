from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, Optional

from flask import current_app

PROMPT_CACHE_KEY = "_PROMPT_CONFIG_CACHE"
PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")


class PromptConfigurationError(RuntimeError):
    """Raised when the prompt configuration file is missing or malformed."""


def load_prompt_entry(key: str) -> Dict[str, Any]:
    config = _load_prompt_config()
    try:
        entry = config[key]
    except KeyError as exc:  # pragma: no cover - configuration issues are caught at runtime
        raise PromptConfigurationError(f"Prompt configuration is missing the '{key}' entry.") from exc
    if not isinstance(entry, dict):
        raise PromptConfigurationError(f"Prompt configuration entry '{key}' must be a dictionary.")
    if not entry.get("prompt_template"):
        raise PromptConfigurationError(f"Prompt configuration entry '{key}' is missing the template text.")
    return entry


def _load_prompt_config() -> Dict[str, Any]:
    app = current_app
    cached = app.config.get(PROMPT_CACHE_KEY)
    if isinstance(cached, dict):
        return cached

    config_path = app.config.get("PROMPT_CONFIG_PATH")
    if not config_path:
        raise PromptConfigurationError("PROMPT_CONFIG_PATH is not configured.")

    path = Path(config_path)
    if not path.exists():
        raise PromptConfigurationError(f"Prompt configuration file not found at: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            data = json.load(fh)
        except json.JSONDecodeError as exc:  # pragma: no cover - malformed file should be obvious at runtime
            raise PromptConfigurationError(f"Unable to parse prompt configuration: {exc.msg}") from exc

    if not isinstance(data, dict):
        raise PromptConfigurationError("Prompt configuration must be a JSON object.")

    app.config[PROMPT_CACHE_KEY] = data
    return data


_GENERATION_PARAMETER_KEYS = {
    "temperature",
    "max_tokens",
}


def extract_generation_parameters(parameters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Filter a raw parameters dictionary to the fields of a generation request."""

    if not isinstance(parameters, dict):
        return {}

    kwargs: Dict[str, Any] = {}
    for key in _GENERATION_PARAMETER_KEYS:
        if key in parameters and parameters[key] is not None:
            kwargs[key] = parameters[key]
    return kwargs


def apply_template(template: str, **values: object) -> str:
    """Fill ``{name}`` placeholders in one pass; unknown names are left as written."""

    def substitute(match: "re.Match[str]") -> str:
        key = match.group(1)
        if key not in values:
            return match.group(0)
        return str(values[key])

    return PLACEHOLDER_PATTERN.sub(substitute, template)
