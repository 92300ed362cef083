"""Provider adapter interfaces."""

from __future__ import annotations

import json
import logging
import time
from typing import Any, ClassVar

import httpx

from freightflow.core.exceptions import ProviderCallError
from freightflow.storage.configurations import CredentialView

from .utils import RateLimitClassifier, extract_error_body, is_rate_limited

logger = logging.getLogger("freightflow.providers")

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_TEMPERATURE = 0.7

JSON_ARRAY_INSTRUCTION = (
    "IMPORTANTE: Debes responder con un array JSON. Si hay UNA carga, responde "
    "[{...carga...}]. Si hay MÚLTIPLES cargas, responde [{...carga1...}, {...carga2...}].\n"
    "El formato debe ser SIEMPRE un array, nunca un objeto suelto."
)


class ProviderAdapter:
    """Maps one logical extraction request onto a vendor's HTTP schema and back.

    Subclasses supply ``encode``/``decode`` plus the endpoint and auth headers; the
    HTTP exchange and failure translation are shared.
    """

    provider_id: ClassVar[str]
    display_name: ClassVar[str]
    extra_rate_limit_indicators: ClassVar[tuple[str, ...]] = ()

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout
        self._classifier: RateLimitClassifier = (
            is_rate_limited.extend(self.extra_rate_limit_indicators)
            if self.extra_rate_limit_indicators
            else is_rate_limited
        )

    def endpoint(self, credential: CredentialView) -> str:
        raise NotImplementedError

    def headers(self, credential: CredentialView) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {credential.api_key}",
            "Content-Type": "application/json",
        }

    def encode(
        self, credential: CredentialView, system_prompt: str, user_content: str
    ) -> dict[str, Any]:
        raise NotImplementedError

    def decode(self, data: Any) -> str | None:
        raise NotImplementedError

    def is_rate_limited(self, error: BaseException) -> bool:
        return self._classifier(error)

    async def call(
        self, credential: CredentialView, system_prompt: str, user_content: str
    ) -> str:
        """Issue one POST and return the completion text."""
        payload = self.encode(credential, system_prompt, user_content)
        data = await self._post(credential, payload)
        text = self.decode(data)
        if not text:
            raise ProviderCallError(self.provider_id, f"empty response from {self.display_name}")
        return text

    async def validate_api_key(self, credential: CredentialView) -> None:
        """Run a minimal request to confirm the credential works."""
        payload = self.encode(credential, "Responde solo con []", "healthcheck")
        await self._post(credential, payload)

    async def _post(self, credential: CredentialView, payload: dict[str, Any]) -> Any:
        url = self.endpoint(credential)
        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(url, json=payload, headers=self.headers(credential))
        except httpx.RequestError as exc:
            raise ProviderCallError(
                self.provider_id, f"failed to send request: {exc}"
            ) from exc

        elapsed = time.perf_counter() - started
        logger.info(
            "Provider responded",
            extra={
                "event": "provider_response",
                "provider": self.provider_id,
                "credential_id": credential.id,
                "status_code": response.status_code,
                "elapsed_s": round(elapsed, 3),
            },
        )

        if response.is_error:
            body = extract_error_body(response)
            raise ProviderCallError(
                self.provider_id,
                f"{self.provider_id} API error {response.status_code}: {body}",
                status_code=response.status_code,
                body=body,
            )

        try:
            return response.json()
        except (ValueError, json.JSONDecodeError) as exc:
            raise ProviderCallError(
                self.provider_id, f"failed to parse {self.display_name} response: {exc}"
            ) from exc


__all__ = ["JSON_ARRAY_INSTRUCTION", "ProviderAdapter"]
