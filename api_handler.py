# api_handler.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import openai

LOGGER = logging.getLogger(__name__)

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"


@dataclass(frozen=True)
class ModelInfo:
    id: str
    name: str
    context_window: int
    cost_per_1k_input: float
    cost_per_1k_output: float


MODELS: Dict[str, ModelInfo] = {
    # Analysis (cheap, fast)
    "google/gemini-flash-1.5": ModelInfo(
        "google/gemini-flash-1.5", "Gemini Flash 1.5", 1_000_000, 0.000075, 0.0003
    ),
    "anthropic/claude-3-haiku": ModelInfo(
        "anthropic/claude-3-haiku", "Claude 3 Haiku", 200_000, 0.00025, 0.00125
    ),
    # Writing
    "anthropic/claude-sonnet-4": ModelInfo(
        "anthropic/claude-sonnet-4", "Claude Sonnet 4", 200_000, 0.003, 0.015
    ),
    "anthropic/claude-3.5-sonnet": ModelInfo(
        "anthropic/claude-3.5-sonnet", "Claude 3.5 Sonnet", 200_000, 0.003, 0.015
    ),
    # Brainstorming
    "anthropic/claude-opus-4": ModelInfo(
        "anthropic/claude-opus-4", "Claude Opus 4", 200_000, 0.015, 0.075
    ),
    "openai/gpt-4o": ModelInfo("openai/gpt-4o", "GPT-4o", 128_000, 0.005, 0.015),
}

DEFAULT_MODELS: Dict[str, str] = {
    "analysis": "google/gemini-flash-1.5",
    "writing": "anthropic/claude-sonnet-4",
    "brainstorm": "anthropic/claude-opus-4",
}


class GatewayError(RuntimeError):
    """Raised when the completion endpoint rejects or fails a request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass
class GenerationRequest:
    model: str
    system_prompt: str
    user_prompt: str
    temperature: float = 0.7
    max_tokens: int = 4096


@dataclass
class TokenUsage:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0.0


@dataclass
class GenerationResponse:
    content: str
    model: str
    usage: TokenUsage = field(default_factory=TokenUsage)


class OpenRouterGateway:
    """
    Chat completion client for OpenRouter's OpenAI compatible endpoint.

    Only models listed in :data:`MODELS` are accepted so every response can be
    priced from the token usage the provider reports.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = OPENROUTER_BASE_URL,
        app_title: str = "Emerson",
        timeout: float = 120.0,
    ) -> None:
        self.api_key = (api_key or "").strip()
        if not self.api_key:
            raise GatewayError("An OpenRouter API key is required.", status_code=401)
        self.base_url = base_url
        self._client = openai.OpenAI(
            api_key=self.api_key,
            base_url=base_url,
            timeout=timeout,
            default_headers={"X-Title": app_title},
        )

    # ---------------- public API ----------------
    def generate(self, request: GenerationRequest) -> GenerationResponse:
        model = MODELS.get(request.model)
        if model is None:
            raise GatewayError(f"Unknown model: {request.model}")
        max_tokens = int(request.max_tokens or 4096)
        if max_tokens <= 0:
            raise ValueError("max_tokens must be positive.")

        try:
            resp = self._client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=float(request.temperature),
            )
        except openai.APIStatusError as exc:
            message = _provider_message(exc) or f"API error: {exc.status_code}"
            LOGGER.warning("OpenRouter rejected request for %s (%s): %s", request.model, exc.status_code, message)
            raise GatewayError(message, status_code=exc.status_code) from exc
        except openai.APIError as exc:
            LOGGER.warning("OpenRouter request for %s failed: %s", request.model, exc)
            raise GatewayError(str(exc)) from exc

        return GenerationResponse(
            content=self._extract_text(resp),
            model=request.model,
            usage=self._usage(resp, model),
        )

    def signature(self) -> Tuple[str, str]:
        # Never return raw secrets
        redacted = (self.api_key[:4] + "…" + self.api_key[-4:]) if self.api_key else ""
        return (self.base_url, redacted)

    # ---------------- extractors ----------------
    def _extract_text(self, resp: Any) -> str:
        choices = getattr(resp, "choices", []) or []
        if not choices:
            return ""
        msg = getattr(choices[0], "message", None)
        return str(getattr(msg, "content", None) or "")

    def _usage(self, resp: Any, model: ModelInfo) -> TokenUsage:
        usage = getattr(resp, "usage", None)
        prompt_tokens = int(getattr(usage, "prompt_tokens", 0) or 0)
        completion_tokens = int(getattr(usage, "completion_tokens", 0) or 0)
        cost = (
            prompt_tokens / 1000 * model.cost_per_1k_input
            + completion_tokens / 1000 * model.cost_per_1k_output
        )
        return TokenUsage(prompt_tokens=prompt_tokens, completion_tokens=completion_tokens, cost=cost)


def _provider_message(exc: "openai.APIStatusError") -> Optional[str]:
    body = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
        if isinstance(body.get("message"), str):
            return body["message"]
    return None


__all__ = [
    "DEFAULT_MODELS",
    "GatewayError",
    "GenerationRequest",
    "GenerationResponse",
    "MODELS",
    "ModelInfo",
    "OpenRouterGateway",
    "TokenUsage",
]
