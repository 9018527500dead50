from __future__ import annotations

from typing import Any, Optional

from flask import current_app

from .app_settings import get_api_key

GATEWAY_CACHE_KEY = "_MODEL_GATEWAY_INSTANCE"


def _get_model_gateway() -> Optional[Any]:  # pragma: no cover - integration point
    """Return the configured model gateway, or ``None`` when none is available.

    An OpenRouter key (stored setting or ``OPENROUTER_API_KEY``) takes
    precedence over a local ``TEXT_GENERATOR_MODEL_PATH`` checkpoint.
    """
    app = current_app
    if GATEWAY_CACHE_KEY in app.config:
        return app.config[GATEWAY_CACHE_KEY]

    gateway = None
    api_key = get_api_key()
    model_path = app.config.get("TEXT_GENERATOR_MODEL_PATH")

    if api_key:
        from api_handler import GatewayError, OpenRouterGateway

        try:
            gateway = OpenRouterGateway(api_key, base_url=app.config["OPENROUTER_BASE_URL"])
        except GatewayError as exc:
            app.logger.warning("Failed to initialise OpenRouter gateway: %s", exc)
    elif model_path:
        try:
            from text_generator import TextGenerator

            app.logger.info("Initialising local text generator with model path: %s", model_path)
            gateway = TextGenerator(model_path=model_path)
        except Exception as exc:
            app.logger.warning("Failed to initialise text generator at '%s': %s", model_path, exc)
    else:
        app.logger.info("No OpenRouter key or local model configured; model calls are disabled.")

    app.config[GATEWAY_CACHE_KEY] = gateway
    return gateway


def reset_model_gateway() -> None:
    current_app.config.pop(GATEWAY_CACHE_KEY, None)
