"""Persisted user settings: the OpenRouter key and per-task model choices."""
from __future__ import annotations

from typing import Any, Dict, Optional

from flask import current_app

from api_handler import DEFAULT_MODELS

from ..extensions import db
from ..models import AppSetting

API_KEY_SETTING = "openrouter_api_key"
MODEL_PREFERENCES_SETTING = "model_preferences"


def get_setting(key: str, default: Any = None) -> Any:
    entry = db.session.get(AppSetting, key)
    if entry is None or entry.value is None:
        return default
    return entry.value


def set_setting(key: str, value: Any) -> None:
    entry = db.session.get(AppSetting, key)
    if entry is None:
        entry = AppSetting(key=key)
        db.session.add(entry)
    entry.value = value


def get_api_key() -> Optional[str]:
    stored = get_setting(API_KEY_SETTING)
    if isinstance(stored, str) and stored.strip():
        return stored.strip()
    configured = (current_app.config.get("OPENROUTER_API_KEY") or "").strip()
    return configured or None


def get_model_preferences() -> Dict[str, str]:
    preferences = dict(DEFAULT_MODELS)
    stored = get_setting(MODEL_PREFERENCES_SETTING, {})
    if isinstance(stored, dict):
        for task, model in stored.items():
            if task in preferences and isinstance(model, str) and model:
                preferences[task] = model
    return preferences
