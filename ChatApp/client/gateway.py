import logging
import os
from typing import Iterable, Optional

import httpx

from ChatApp.client.state import DisplayMessage
from ChatApp.errors import GatewayError, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:8000"
DEFAULT_TIMEOUT_SECONDS = 60.0


# Calls the /api/chat and /api/image generation routes with one explicit timeout per request
class GatewayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        base_url = base_url or os.getenv("GATEWAY_BASE_URL") or DEFAULT_BASE_URL
        if timeout is None:
            timeout = float(os.getenv("GATEWAY_TIMEOUT_SECONDS") or DEFAULT_TIMEOUT_SECONDS)
        self._client = httpx.AsyncClient(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def generate_text(self, prompt: str, history: Iterable[DisplayMessage] = ()) -> str:
        return await self._generate("/api/chat", prompt, history)

    async def generate_image(self, prompt: str, history: Iterable[DisplayMessage] = ()) -> str:
        return await self._generate("/api/image", prompt, history)

    async def _generate(self, path: str, prompt: str, history: Iterable[DisplayMessage]) -> str:
        if not isinstance(prompt, str) or not prompt.strip():
            raise ValidationError("Prompt is required")

        body = {"prompt": prompt, "history": [m.to_history_item() for m in history]}
        try:
            response = await self._client.post(path, json=body)
        except httpx.TimeoutException as e:
            logger.error("chat.gateway.timeout: path=%s", path)
            raise GatewayError(f"API timeout: {path}") from e
        except httpx.HTTPError as e:
            logger.error("chat.gateway.unreachable: path=%s error=%s", path, e)
            raise GatewayError(f"API unreachable: {e}") from e

        if response.is_error:
            try:
                message = response.json().get("error") or "Unknown error"
            except ValueError:
                message = "Unknown error"
            logger.error("chat.gateway.error: path=%s status=%d error=%s", path, response.status_code, message)
            raise GatewayError(f"API error: {message}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError("API returned a non-JSON body") from e
        text = data.get("text") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise GatewayError("API response is missing text")
        return text

    # Returns True when the server reports a configured generation key
    async def ping(self) -> bool:
        try:
            response = await self._client.get("/api/status")
            response.raise_for_status()
            return bool(response.json().get("gateway"))
        except (httpx.HTTPError, ValueError):
            return False
