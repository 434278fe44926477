"""
Vapi REST client.

Provides:
- Async HTTP calls with a per-request timeout (30s by default)
- Exponential backoff with jitter, only for network errors and 5xx responses
- 4xx responses fail immediately with a VapiError
- Deletes that return 404 count as success, so a retried cascade is safe
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from voicematrix.config import VapiSettings
from voicematrix.exceptions import VapiError
from voicematrix.utils.logging import Timer

logger = logging.getLogger(__name__)

VAPI_USER_AGENT = "VoiceMatrix/1.0"
RETRY_MAX_DELAY = 10.0

_CLIENT_ERROR_MESSAGES = {
    400: "Invalid request to voice provider",
    401: "Voice provider rejected the API key",
    403: "Voice provider denied the request",
    404: "Voice provider resource not found",
    409: "Resource already exists at voice provider",
    422: "Voice provider could not process the request",
}


class VoiceProvider(ABC):
    """Operations the services need from the voice-assistant provider."""

    @abstractmethod
    async def create_assistant(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create an assistant; the response carries the provider id in "id"."""

    @abstractmethod
    async def update_assistant(self, vapi_assistant_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete_assistant(self, vapi_assistant_id: str) -> None:
        ...

    @abstractmethod
    async def create_phone_number(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def update_phone_number(self, vapi_phone_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        ...

    @abstractmethod
    async def delete_phone_number(self, vapi_phone_id: str) -> None:
        ...

    async def close(self) -> None:
        """Release HTTP resources. The default does nothing."""


class VapiClient(VoiceProvider):
    """httpx-based VoiceProvider for https://api.vapi.ai."""

    def __init__(
        self,
        api_token: str,
        base_url: str = "https://api.vapi.ai",
        timeout_seconds: float = 30.0,
        max_retries: int = 3,
        retry_base_delay: float = 0.5,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._http_client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=httpx.Timeout(timeout_seconds),
            headers={
                "Authorization": f"Bearer {api_token}",
                "Content-Type": "application/json",
                "User-Agent": VAPI_USER_AGENT,
            },
            limits=httpx.Limits(max_connections=50, max_keepalive_connections=10),
            transport=transport,
        )

    @classmethod
    def from_settings(cls, settings: VapiSettings) -> "VapiClient":
        token = settings.vapi_api_token.get_secret_value() if settings.vapi_api_token else ""
        return cls(
            api_token=token,
            base_url=settings.vapi_base_url,
            timeout_seconds=settings.vapi_timeout_seconds,
            max_retries=settings.vapi_max_retries,
            retry_base_delay=settings.vapi_retry_base_delay,
        )

    async def close(self) -> None:
        if not self._http_client.is_closed:
            await self._http_client.aclose()

    def _calculate_retry_delay(self, attempt: int) -> float:
        """Exponential backoff (base, 2x base, 4x base, ...) plus up to 25% jitter."""
        delay = self._retry_base_delay * (2 ** (attempt - 1))
        jitter = random.uniform(0, delay * 0.25)
        return min(delay + jitter, RETRY_MAX_DELAY)

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
        missing_ok: bool = False,
    ) -> Dict[str, Any]:
        attempts = self._max_retries + 1
        last_error: Optional[VapiError] = None

        for attempt in range(1, attempts + 1):
            try:
                with Timer(f"vapi {method} {path}", logger):
                    response = await self._http_client.request(method, path, json=payload)
            except httpx.TimeoutException as e:
                last_error = VapiError("Voice provider timed out", original_error=e)
                logger.warning("Vapi %s %s timed out (attempt %s/%s)", method, path, attempt, attempts)
            except httpx.RequestError as e:
                last_error = VapiError("Voice provider unreachable", original_error=e)
                logger.warning(
                    "Vapi %s %s request error: %s (attempt %s/%s)",
                    method, path, type(e).__name__, attempt, attempts,
                )
            else:
                status = response.status_code
                if 200 <= status < 300:
                    return response.json() if response.content else {}
                if status == 404 and missing_ok:
                    logger.info("Vapi %s %s returned 404, treating as already deleted", method, path)
                    return {}
                if status < 500:
                    logger.warning("Vapi %s %s failed with %s: %s", method, path, status, response.text[:200])
                    raise VapiError(
                        _CLIENT_ERROR_MESSAGES.get(status, "Voice provider rejected the request"),
                        provider_status=status,
                        internal_message=response.text[:500],
                    )
                last_error = VapiError(
                    "Voice provider error",
                    provider_status=status,
                    internal_message=response.text[:500],
                )
                logger.warning("Vapi %s %s returned %s (attempt %s/%s)", method, path, status, attempt, attempts)

            if attempt < attempts:
                await asyncio.sleep(self._calculate_retry_delay(attempt))

        logger.error("Vapi %s %s failed after %s attempts", method, path, attempts)
        raise last_error

    async def create_assistant(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/assistant", payload)

    async def update_assistant(self, vapi_assistant_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/assistant/{vapi_assistant_id}", payload)

    async def delete_assistant(self, vapi_assistant_id: str) -> None:
        await self._request("DELETE", f"/assistant/{vapi_assistant_id}", missing_ok=True)

    async def create_phone_number(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/phone-number", payload)

    async def update_phone_number(self, vapi_phone_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("PATCH", f"/phone-number/{vapi_phone_id}", payload)

    async def delete_phone_number(self, vapi_phone_id: str) -> None:
        await self._request("DELETE", f"/phone-number/{vapi_phone_id}", missing_ok=True)
