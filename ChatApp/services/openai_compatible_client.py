import os
from typing import Dict, Optional

from openai import AsyncOpenAI


_PROVIDER_CFG: Dict[str, Dict[str, Optional[str]]] = {
    "gemini": {"env": "GEMINI_API_KEY", "base_url": "https://generativelanguage.googleapis.com/v1beta/openai"},
    "openai": {"env": "OPENAI_API_KEY", "base_url": None},
    "grok": {"env": "GROK_API_KEY", "base_url": "https://api.x.ai/v1"},
    "anthropic": {"env": "ANTHROPIC_API_KEY", "base_url": "https://api.anthropic.com/v1"},
}

DEFAULT_PROVIDER = "gemini"


def _provider_cfg(provider: Optional[str]) -> tuple[str, Dict[str, Optional[str]]]:
    provider_l = (provider or DEFAULT_PROVIDER).strip().lower()
    cfg = _PROVIDER_CFG.get(provider_l)
    if cfg is None:
        raise ValueError(f"Unsupported provider: {provider_l}")
    return provider_l, cfg


# Name of the env var holding the API key for a provider
def provider_key_env(provider: Optional[str]) -> str:
    _, cfg = _provider_cfg(provider)
    return cfg["env"] or ""


# Returns the configured API key for a provider, or None when unset
def provider_api_key(provider: Optional[str]) -> Optional[str]:
    env_var = provider_key_env(provider)
    return os.getenv(env_var) if env_var else None


# Create an async OpenAI-compatible client for multiple model providers
def get_async_openai_compatible_client(provider: Optional[str], *, timeout: Optional[float] = None) -> AsyncOpenAI:
    provider_l, cfg = _provider_cfg(provider)

    api_key = provider_api_key(provider_l)
    if not api_key:
        raise ValueError(f"Missing API key for provider '{provider_l}'. Set {cfg['env']}.")

    kwargs = {"api_key": api_key}
    if cfg["base_url"]:
        kwargs["base_url"] = cfg["base_url"]
    if timeout is not None:
        kwargs["timeout"] = timeout
    return AsyncOpenAI(**kwargs)
