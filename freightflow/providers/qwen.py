"""Qwen (Alibaba DashScope) provider adapter."""

from __future__ import annotations

from typing import Any

from freightflow.storage.configurations import CredentialView

from .base import DEFAULT_TEMPERATURE, JSON_ARRAY_INSTRUCTION, ProviderAdapter
from .utils import dig

DEFAULT_BASE_URL = "https://dashscope.aliyuncs.com"
GENERATION_PATH = "/api/v1/services/aigc/text-generation/generation"


class QwenProvider(ProviderAdapter):
    provider_id = "qwen"
    display_name = "Qwen"
    extra_rate_limit_indicators = ("throttling",)

    def endpoint(self, credential: CredentialView) -> str:
        base_url = (credential.provider_base_url or DEFAULT_BASE_URL).rstrip("/")
        return f"{base_url}{GENERATION_PATH}"

    def encode(
        self, credential: CredentialView, system_prompt: str, user_content: str
    ) -> dict[str, Any]:
        system_text = f"{system_prompt}\n\n{JSON_ARRAY_INSTRUCTION}" if system_prompt else JSON_ARRAY_INSTRUCTION
        return {
            "model": credential.model_name,
            "input": {
                "messages": [
                    {"role": "system", "content": system_text},
                    {"role": "user", "content": user_content},
                ]
            },
            "parameters": {
                "temperature": DEFAULT_TEMPERATURE,
                "max_tokens": credential.max_tokens,
                "result_format": "message",
            },
        }

    def decode(self, data: Any) -> str | None:
        content = dig(data, "output", "choices", 0, "message", "content")
        if isinstance(content, str):
            return content
        # Older DashScope responses return plain text under output.text.
        text = dig(data, "output", "text")
        return text if isinstance(text, str) else None
