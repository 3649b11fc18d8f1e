import logging
import os
import time
from typing import Any, Iterable, Mapping, Optional

from ChatApp.errors import GatewayError, ValidationError
from ChatApp.services.openai_compatible_client import (
    DEFAULT_PROVIDER,
    get_async_openai_compatible_client,
    provider_api_key,
    provider_key_env,
)

logger = logging.getLogger(__name__)


DEFAULT_MODEL = {
    "gemini": "gemini-2.0-flash",
    "openai": "gpt-4o-mini",
    "grok": "grok-4-fast",
    "anthropic": "claude-sonnet-4-5",
}
DEFAULT_IMAGE_MODEL = "gemini-2.0-flash-preview-image-generation"


def chat_provider() -> str:
    return (os.getenv("CHAT_PROVIDER") or DEFAULT_PROVIDER).strip().lower()


def chat_model() -> str:
    return os.getenv("CHAT_MODEL") or DEFAULT_MODEL.get(chat_provider()) or DEFAULT_MODEL[DEFAULT_PROVIDER]


def image_model() -> str:
    return os.getenv("IMAGE_MODEL") or DEFAULT_IMAGE_MODEL


def _timeout_seconds() -> float:
    return float(os.getenv("GENERATION_TIMEOUT_SECONDS") or 60)


def generation_configured() -> bool:
    return bool(provider_api_key(chat_provider()))


# Logs (but tolerates) a missing provider key; requests will fail at call time instead
def check_generation_config() -> bool:
    if generation_configured():
        return True
    logger.error("%s is not set in environment variables", provider_key_env(chat_provider()))
    return False


def _field(item: Any, name: str) -> Optional[str]:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


# Drops leading non-user turns and maps `assistant` to the model role
def normalize_history(history: Optional[Iterable[Any]]) -> list[dict]:
    items = list(history or [])
    while items and _field(items[0], "role") != "user":
        items.pop(0)

    normalized: list[dict] = []
    for item in items:
        if _field(item, "role") == "user":
            text = _field(item, "query") or _field(item, "content") or ""
            normalized.append({"role": "user", "content": text})
        else:
            text = _field(item, "datatext") or _field(item, "content") or ""
            normalized.append({"role": "model", "content": text})
    return normalized


# OpenAI-compatible endpoints call the model role `assistant`
def _to_wire_messages(history: list[dict]) -> list[dict]:
    return [
        {"role": "assistant" if m["role"] == "model" else "user", "content": m["content"]}
        for m in history
    ]


# Prefixes the prompt with the prior conversation for the image model
def build_image_prompt(prompt: str, history: Optional[Iterable[Any]]) -> str:
    items = list(history or [])
    if not items:
        return prompt
    context = " ".join(_field(m, "content") or "" for m in items)
    return f"Based on our conversation: {context}\n\nNow, {prompt}"


async def _complete(*, model: str, messages: list[dict]) -> str:
    client = get_async_openai_compatible_client(chat_provider(), timeout=_timeout_seconds())
    t0 = time.perf_counter()
    try:
        response = await client.chat.completions.create(model=model, messages=messages)
    finally:
        try:
            await client.close()
        except Exception:
            pass

    content = response.choices[0].message.content if response.choices else None
    if not isinstance(content, str) or not content:
        raise GatewayError("Model returned an empty response")
    logger.info("generation.done: model=%s chars=%d ms=%d", model, len(content), int((time.perf_counter() - t0) * 1000))
    return content


async def generate_text(prompt: Optional[str], history: Optional[Iterable[Any]] = None) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required")

    messages = [*_to_wire_messages(normalize_history(history)), {"role": "user", "content": prompt}]
    logger.debug("generation.text: history=%d", len(messages) - 1)
    try:
        return await _complete(model=chat_model(), messages=messages)
    except GatewayError:
        raise
    except Exception as e:
        raise GatewayError(f"Text generation failed: {e}") from e


async def generate_image(prompt: Optional[str], history: Optional[Iterable[Any]] = None) -> str:
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("Prompt is required")

    context_prompt = build_image_prompt(prompt, history)
    try:
        return await _complete(model=image_model(), messages=[{"role": "user", "content": context_prompt}])
    except GatewayError:
        raise
    except Exception as e:
        raise GatewayError(f"Image generation failed: {e}") from e
