"""Gemini provider adapter."""

from __future__ import annotations

from typing import Any

from freightflow.storage.configurations import CredentialView

from .base import DEFAULT_TEMPERATURE, ProviderAdapter

DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com"
GENERATE_PATH = "/v1beta/models/{model}:generateContent"


class GeminiProvider(ProviderAdapter):
    provider_id = "gemini"
    display_name = "Gemini"

    def endpoint(self, credential: CredentialView) -> str:
        base_url = (credential.provider_base_url or DEFAULT_BASE_URL).rstrip("/")
        model_slug = credential.model_name.removeprefix("models/")
        return f"{base_url}{GENERATE_PATH.format(model=model_slug)}"

    def headers(self, credential: CredentialView) -> dict[str, str]:
        return {
            "x-goog-api-key": credential.api_key,
            "Content-Type": "application/json",
        }

    def encode(
        self, credential: CredentialView, system_prompt: str, user_content: str
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "contents": [{"role": "user", "parts": [{"text": user_content}]}],
            "generationConfig": {
                "temperature": DEFAULT_TEMPERATURE,
                "maxOutputTokens": credential.max_tokens,
                "responseMimeType": "application/json",
            },
        }
        if system_prompt:
            payload["systemInstruction"] = {"parts": [{"text": system_prompt}]}
        return payload

    def decode(self, data: Any) -> str | None:
        candidate = self._select_candidate(data.get("candidates") if isinstance(data, dict) else None)
        if not candidate:
            return None
        content = candidate.get("content")
        parts = content.get("parts", []) if isinstance(content, dict) else []
        return "".join(
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        )

    def _select_candidate(self, candidates: Any) -> dict[str, Any] | None:
        if not isinstance(candidates, list):
            return None
        for candidate in candidates:
            if isinstance(candidate, dict):
                return candidate
        return None
