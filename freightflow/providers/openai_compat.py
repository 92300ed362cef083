"""Adapters for vendors exposing the OpenAI chat completions schema."""

from __future__ import annotations

from typing import Any, ClassVar

from freightflow.storage.configurations import CredentialView

from .base import DEFAULT_TEMPERATURE, JSON_ARRAY_INSTRUCTION, ProviderAdapter
from .utils import dig

CHAT_COMPLETIONS_PATH = "/v1/chat/completions"


class OpenAICompatibleProvider(ProviderAdapter):
    """Shared encode/decode for ``choices[0].message.content`` style APIs."""

    default_base_url: ClassVar[str]
    json_response_format: ClassVar[bool] = False

    def endpoint(self, credential: CredentialView) -> str:
        base_url = (credential.provider_base_url or self.default_base_url).rstrip("/")
        return f"{base_url}{CHAT_COMPLETIONS_PATH}"

    def encode(
        self, credential: CredentialView, system_prompt: str, user_content: str
    ) -> dict[str, Any]:
        system_text = f"{system_prompt}\n\n{JSON_ARRAY_INSTRUCTION}" if system_prompt else JSON_ARRAY_INSTRUCTION
        payload: dict[str, Any] = {
            "model": credential.model_name,
            "messages": [
                {"role": "system", "content": system_text},
                {"role": "user", "content": user_content},
            ],
            "temperature": DEFAULT_TEMPERATURE,
            "max_tokens": credential.max_tokens,
        }
        if self.json_response_format:
            payload["response_format"] = {"type": "json_object"}
        return payload

    def decode(self, data: Any) -> str | None:
        content = dig(data, "choices", 0, "message", "content")
        return content if isinstance(content, str) else None


class GroqProvider(OpenAICompatibleProvider):
    provider_id = "groq"
    display_name = "Groq"
    default_base_url = "https://api.groq.com/openai"


class GrokProvider(OpenAICompatibleProvider):
    provider_id = "grok"
    display_name = "Grok"
    default_base_url = "https://api.x.ai"
    json_response_format = True


class DeepSeekProvider(OpenAICompatibleProvider):
    provider_id = "deepseek"
    display_name = "DeepSeek"
    default_base_url = "https://api.deepseek.com"
    extra_rate_limit_indicators = ("server is busy",)


__all__ = ["DeepSeekProvider", "GrokProvider", "GroqProvider", "OpenAICompatibleProvider"]
