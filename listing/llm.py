"""Claude client for multimodal listing calls."""

import logging
import os
from typing import Optional, Protocol

import anthropic

from config import LISTING_MAX_TOKENS, LISTING_MODEL
from listing.errors import ModelError, QuotaExhausted, RateLimited

logger = logging.getLogger(__name__)

_JSON_INSTRUCTION = (
    "\n\nRespond ONLY with a single valid JSON object. "
    "No markdown, no code fences, no commentary."
)
_QUOTA_MARKERS = ("credit balance", "quota", "billing")


class ModelClient(Protocol):
    """Anything that can turn a prompt plus images into text."""

    def complete(
        self,
        system_prompt: str,
        content: list[dict],
        *,
        json_mode: bool = True,
        max_tokens: int = LISTING_MAX_TOKENS,
        model: Optional[str] = None,
    ) -> str: ...


def text_part(text: str) -> dict:
    return {"type": "text", "text": text}


def image_part(url: str) -> dict:
    return {"type": "image", "source": {"type": "url", "url": url}}


def _check_model(model: str):
    # Bulk listing runs must stay on the cheaper tiers
    if not any(m in model.lower() for m in ("haiku", "sonnet")):
        raise ModelError(
            f"Listing model must be Haiku or Sonnet, got '{model}'. "
            "Refusing to use Opus for bulk generation."
        )


def _translate_error(e: anthropic.APIError) -> ModelError:
    """Map SDK errors onto rate-limited / quota / generic failures."""
    if isinstance(e, anthropic.RateLimitError):
        return RateLimited("Rate limit exceeded. Please try again in a moment.", 429)
    if isinstance(e, anthropic.APIStatusError):
        message = str(e).lower()
        if e.status_code == 402 or any(m in message for m in _QUOTA_MARKERS):
            return QuotaExhausted("AI credits exhausted. Please add more credits.", e.status_code)
        if e.status_code == 529:
            return RateLimited("Model provider overloaded. Please try again shortly.", 529)
        return ModelError(f"Model call failed ({e.status_code}): {e}", e.status_code)
    return ModelError(f"Model call failed: {e}")


class AnthropicClient:
    """Thin wrapper around the Messages API."""

    def __init__(self, api_key: Optional[str] = None, model: str = LISTING_MODEL):
        api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        if not api_key:
            raise ModelError("ANTHROPIC_API_KEY is not configured")
        self.default_model = model
        self._client = anthropic.Anthropic(api_key=api_key)

    def complete(
        self,
        system_prompt: str,
        content: list[dict],
        *,
        json_mode: bool = True,
        max_tokens: int = LISTING_MAX_TOKENS,
        model: Optional[str] = None,
    ) -> str:
        model = model or self.default_model
        _check_model(model)
        system = system_prompt + _JSON_INSTRUCTION if json_mode else system_prompt

        n_images = sum(1 for part in content if part.get("type") == "image")
        logger.debug(f"Calling {model} with {n_images} images")
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                system=system,
                messages=[{"role": "user", "content": content}],
            )
        except anthropic.APIError as e:
            raise _translate_error(e) from e

        if response.stop_reason == "max_tokens":
            logger.debug(f"{model} hit max_tokens ({max_tokens}); output may be truncated")
        return "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        ).strip()


_client: Optional[AnthropicClient] = None


def get_client() -> AnthropicClient:
    global _client
    if _client is None:
        _client = AnthropicClient()
    return _client
