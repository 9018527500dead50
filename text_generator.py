"""Local model backend for the Emerson model gateway.

:class:`TextGenerator` wraps a Hugging Face Transformers causal language model
behind the same ``generate(GenerationRequest) -> GenerationResponse`` contract
as :class:`api_handler.OpenRouterGateway`, so the ingestion pipeline can run
entirely offline when ``TEXT_GENERATOR_MODEL_PATH`` points at a model folder.

* 4-bit loading is used when ``bitsandbytes`` and a GPU are available and
  silently skipped otherwise.
* System and user prompts are rendered with the tokenizer's chat template when
  the model ships one, and joined as plain text when it does not.
* Token usage is reported from the tokenizer; cost is always zero.

The request's ``model`` field is echoed back but does not select a model: one
generator instance serves one local checkpoint.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Optional

import torch
from transformers import AutoModelForCausalLM, AutoTokenizer, BitsAndBytesConfig

from api_handler import GatewayError, GenerationRequest, GenerationResponse, TokenUsage


LOGGER = logging.getLogger(__name__)


class TextGenerator:
    def __init__(
        self,
        model_path: str,
        *,
        top_p: Optional[float] = 0.95,
        seed: int = 42,
        device_map: str | Dict[str, Any] | None = "auto",
        use_4bit: bool = True,
        trust_remote_code: bool = False,
    ):
        self.model_path = model_path
        self.top_p = top_p
        self.seed = seed
        self.use_4bit = use_4bit

        # Seed CPU (+ all GPUs if present)
        torch.manual_seed(seed)
        if torch.cuda.is_available():
            torch.cuda.manual_seed_all(seed)

        model_kwargs: Dict[str, Any] = {
            "device_map": device_map,
            "torch_dtype": "auto",
            "trust_remote_code": trust_remote_code,
        }
        quantization_config = self._build_quantization_config()
        if quantization_config is not None:
            model_kwargs["quantization_config"] = quantization_config

        self.model = AutoModelForCausalLM.from_pretrained(model_path, **model_kwargs)
        self.model.eval()

        self.tokenizer = AutoTokenizer.from_pretrained(
            model_path,
            trust_remote_code=trust_remote_code,
        )
        if self.tokenizer.pad_token is None:
            self.tokenizer.pad_token = self.tokenizer.eos_token
        if self.tokenizer.padding_side != "left":
            self.tokenizer.padding_side = "left"

    def _build_quantization_config(self) -> Optional[BitsAndBytesConfig]:
        """Return a 4-bit quantisation config when supported.

        Without a GPU or without ``bitsandbytes`` the model loads in standard
        precision.
        """

        if not self.use_4bit:
            return None

        if not torch.cuda.is_available():
            LOGGER.info("CUDA is not available; skipping 4-bit quantisation.")
            return None

        try:  # bitsandbytes is only needed for quantised loading.
            import bitsandbytes  # type: ignore  # noqa: F401
        except ImportError:
            LOGGER.info("bitsandbytes not installed; using full precision model loading.")
            return None

        LOGGER.info("Loading model with 4-bit quantisation enabled.")
        return BitsAndBytesConfig(
            load_in_4bit=True,
            bnb_4bit_use_double_quant=True,
            bnb_4bit_quant_type="nf4",
            bnb_4bit_compute_dtype=torch.float16,
        )

    def _render_prompt(self, request: GenerationRequest) -> str:
        messages = [
            {"role": "system", "content": request.system_prompt},
            {"role": "user", "content": request.user_prompt},
        ]
        if getattr(self.tokenizer, "chat_template", None):
            return self.tokenizer.apply_chat_template(
                messages,
                tokenize=False,
                add_generation_prompt=True,
            )
        return f"{request.system_prompt}\n\n{request.user_prompt}\n\n"

    def generate(self, request: GenerationRequest) -> GenerationResponse:
        """Generate a completion for ``request`` without echoing the prompt."""

        max_new_tokens = int(request.max_tokens or 0)
        if max_new_tokens <= 0:
            raise ValueError("max_tokens must be a positive integer")

        prompt = self._render_prompt(request)
        generation_kwargs: Dict[str, Any] = {
            "max_new_tokens": max_new_tokens,
            "do_sample": request.temperature > 0,
            "pad_token_id": self.tokenizer.pad_token_id,
        }
        if request.temperature > 0:
            generation_kwargs["temperature"] = request.temperature
            if self.top_p is not None:
                generation_kwargs["top_p"] = self.top_p

        try:
            enc = self.tokenizer(prompt, return_tensors="pt").to(self.model.device)
            t0 = time.perf_counter()
            with torch.no_grad():
                out = self.model.generate(**enc, **generation_kwargs)
            elapsed = time.perf_counter() - t0
        except (RuntimeError, ValueError) as exc:
            raise GatewayError(f"Local generation failed: {exc}") from exc

        prompt_len = enc["input_ids"].shape[-1]
        generated_ids = out[0, prompt_len:]
        content = ""
        if generated_ids.numel() > 0:
            content = self.tokenizer.decode(generated_ids, skip_special_tokens=True).strip()

        LOGGER.info(
            "Local generation produced %d tokens in %.1fs",
            int(generated_ids.numel()),
            elapsed,
        )
        return GenerationResponse(
            content=content,
            model=request.model,
            usage=TokenUsage(
                prompt_tokens=int(prompt_len),
                completion_tokens=int(generated_ids.numel()),
                cost=0.0,
            ),
        )

    def signature(self) -> tuple[str, str]:
        return (self.model_path, "")
