"""Provider selection and bounded cross-credential retry."""

from __future__ import annotations

import logging
from types import ModuleType

from freightflow.core.exceptions import (
    ConfigurationError,
    CredentialPoolExhaustedError,
    NoCandidateError,
    ProviderCallError,
    RetriesExhaustedError,
)
from freightflow.providers.base import DEFAULT_TIMEOUT_SECONDS, ProviderAdapter
from freightflow.providers.gemini import GeminiProvider
from freightflow.providers.openai_compat import DeepSeekProvider, GrokProvider, GroqProvider
from freightflow.providers.qwen import QwenProvider
from freightflow.storage import configurations
from freightflow.storage.configurations import CredentialView
from freightflow.telemetry.events import record_event

from .cache import ActiveCredentialCache
from .rotation import RotationEngine

logger = logging.getLogger("freightflow.router")

DEFAULT_MAX_RETRIES = 2


class ProviderRegistry:
    """Registry handling provider adapters."""

    _adapter_map: dict[str, type[ProviderAdapter]] = {
        "deepseek": DeepSeekProvider,
        "gemini": GeminiProvider,
        "grok": GrokProvider,
        "groq": GroqProvider,
        "qwen": QwenProvider,
    }

    def __init__(self, timeout: float = DEFAULT_TIMEOUT_SECONDS) -> None:
        self._timeout = timeout
        self._instances: dict[str, ProviderAdapter] = {}

    @classmethod
    def supported(cls) -> list[str]:
        return sorted(cls._adapter_map)

    def get_adapter(self, provider_name: str) -> ProviderAdapter:
        if provider_name not in self._instances:
            adapter_cls = self._adapter_map.get(provider_name)
            if not adapter_cls:
                raise ConfigurationError(f"unsupported AI provider: {provider_name}")
            self._instances[provider_name] = adapter_cls(timeout=self._timeout)
        return self._instances[provider_name]


class FailoverExecutor:
    """Run one extraction call, rotating credentials when a vendor is rate limited.

    At most ``max_retries`` rotations happen per call, so a message costs at most
    ``max_retries + 1`` vendor calls and never reuses a credential it already tried.
    Failures that are not rate limiting propagate immediately.
    """

    def __init__(
        self,
        cache: ActiveCredentialCache,
        rotation: RotationEngine,
        *,
        registry: ProviderRegistry | None = None,
        max_retries: int = DEFAULT_MAX_RETRIES,
        store: ModuleType = configurations,
    ) -> None:
        self._cache = cache
        self._rotation = rotation
        self._registry = registry or ProviderRegistry()
        self._max_retries = max_retries
        self._store = store

    @property
    def max_retries(self) -> int:
        return self._max_retries

    async def process(self, system_prompt: str, user_content: str) -> str:
        tried: set[int] = set()
        rotations = 0
        credential = self._cache.get_active()

        while True:
            tried.add(credential.id)
            adapter = self._registry.get_adapter(credential.provider_name)
            try:
                text = await adapter.call(credential, system_prompt, user_content)
            except ProviderCallError as exc:
                self._on_failure(credential, exc, attempt=rotations + 1)
                if not adapter.is_rate_limited(exc):
                    raise
                if rotations >= self._max_retries:
                    self._on_retries_exhausted(credential, exc)
                    raise RetriesExhaustedError(self._max_retries) from exc
                try:
                    next_credential = self._rotation.rotate_to_next()
                except NoCandidateError as rotate_exc:
                    raise CredentialPoolExhaustedError(len(tried), rotate_exc.message) from exc
                if next_credential.id in tried:
                    logger.warning(
                        "No untried credential left",
                        extra={
                            "event": "credential_pool_exhausted",
                            "credential_id": next_credential.id,
                            "tried": len(tried),
                        },
                    )
                    raise CredentialPoolExhaustedError(len(tried)) from exc
                rotations += 1
                logger.info(
                    "Retrying with next credential",
                    extra={
                        "event": "credential_switched",
                        "credential_from": credential.id,
                        "credential_to": next_credential.id,
                        "attempt": rotations + 1,
                    },
                )
                credential = next_credential
                continue

            self._store.report_success(credential.id)
            return text

    def _on_failure(self, credential: CredentialView, exc: ProviderCallError, *, attempt: int) -> None:
        self._store.report_error(credential.id, exc.message)
        logger.warning(
            "Provider call failed",
            extra={
                "event": "credential_fail",
                "credential_id": credential.id,
                "provider": credential.provider_name,
                "status_code": exc.status_code,
                "error_message": exc.message,
                "attempt": attempt,
            },
        )
        record_event(
            "credential_fail",
            "WARNING",
            credential_from=credential.id,
            provider=credential.provider_name,
            error_code=str(exc.status_code) if exc.status_code else None,
            message=exc.message,
            meta={"attempt": attempt},
        )

    def _on_retries_exhausted(self, credential: CredentialView, exc: ProviderCallError) -> None:
        logger.error(
            "Retry limit reached",
            extra={
                "event": "retries_exhausted",
                "credential_id": credential.id,
                "max_retries": self._max_retries,
            },
        )
        record_event(
            "retries_exhausted",
            "ERROR",
            credential_from=credential.id,
            provider=credential.provider_name,
            message=exc.message,
            meta={"max_retries": self._max_retries},
        )


__all__ = ["FailoverExecutor", "ProviderRegistry"]
