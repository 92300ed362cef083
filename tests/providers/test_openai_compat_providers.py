from __future__ import annotations

from http import HTTPStatus

import pytest

from freightflow.core.exceptions import ProviderCallError
from freightflow.providers.base import JSON_ARRAY_INSTRUCTION
from freightflow.providers.openai_compat import DeepSeekProvider, GrokProvider, GroqProvider
from freightflow.providers.qwen import QwenProvider
from tests.factories import FakeResponse, credential_view, stub_async_client


def _completion(text: str) -> dict:
    return {"choices": [{"index": 0, "message": {"role": "assistant", "content": text}}]}


def _patch_client(monkeypatch, response: FakeResponse) -> list[dict]:
    recorder: list[dict] = []
    monkeypatch.setattr(
        "freightflow.providers.base.httpx.AsyncClient",
        stub_async_client(lambda _call: response, recorder),
    )
    return recorder


@pytest.mark.asyncio
async def test_groq_request_shape(monkeypatch):
    credential = credential_view(
        1,
        api_key="groq-key",
        provider_name="groq",
        provider_base_url="https://api.groq.com/openai",
        model_name="llama-3.3-70b-versatile",
        max_tokens=4096,
    )
    recorder = _patch_client(monkeypatch, FakeResponse(HTTPStatus.OK, _completion("[]")))

    assert await GroqProvider().call(credential, "Sistema", "Teléfono del cliente: 1\n\nhola") == "[]"

    (call,) = recorder
    assert call["url"] == "https://api.groq.com/openai/v1/chat/completions"
    assert call["headers"]["Authorization"] == "Bearer groq-key"
    body = call["json"]
    assert body["model"] == "llama-3.3-70b-versatile"
    assert body["max_tokens"] == 4096
    assert body["messages"][0] == {
        "role": "system",
        "content": f"Sistema\n\n{JSON_ARRAY_INSTRUCTION}",
    }
    assert body["messages"][1]["content"].startswith("Teléfono del cliente: 1")
    assert "response_format" not in body


@pytest.mark.asyncio
async def test_grok_requests_json_object(monkeypatch):
    credential = credential_view(2, provider_name="grok", provider_base_url="")
    recorder = _patch_client(monkeypatch, FakeResponse(HTTPStatus.OK, _completion("{}")))

    await GrokProvider().call(credential, "Sistema", "texto")

    assert recorder[0]["url"] == "https://api.x.ai/v1/chat/completions"
    assert recorder[0]["json"]["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_deepseek_error_is_classified(monkeypatch):
    credential = credential_view(3, provider_name="deepseek", provider_base_url="https://api.deepseek.com")
    _patch_client(
        monkeypatch,
        FakeResponse(HTTPStatus.SERVICE_UNAVAILABLE, text="Server is busy, please retry"),
    )
    adapter = DeepSeekProvider()

    with pytest.raises(ProviderCallError) as excinfo:
        await adapter.call(credential, "Sistema", "texto")

    assert excinfo.value.message == "deepseek API error 503: Server is busy, please retry"
    assert adapter.is_rate_limited(excinfo.value) is True
    assert adapter.is_rate_limited(ProviderCallError("deepseek", "server is busy")) is True
    assert GroqProvider().is_rate_limited(ProviderCallError("groq", "server is busy")) is False


@pytest.mark.asyncio
async def test_missing_content_is_empty_response(monkeypatch):
    credential = credential_view(4, provider_name="groq")
    _patch_client(monkeypatch, FakeResponse(HTTPStatus.OK, {"choices": []}))

    with pytest.raises(ProviderCallError) as excinfo:
        await GroqProvider().call(credential, "Sistema", "texto")

    assert excinfo.value.message == "empty response from Groq"


@pytest.mark.asyncio
async def test_qwen_request_and_response(monkeypatch):
    credential = credential_view(
        5,
        api_key="dash-key",
        provider_name="qwen",
        provider_base_url="https://dashscope.aliyuncs.com",
        model_name="qwen-plus",
    )
    payload = {"output": {"choices": [{"message": {"role": "assistant", "content": "[{\"a\": 1}]"}}]}}
    recorder = _patch_client(monkeypatch, FakeResponse(HTTPStatus.OK, payload))

    text = await QwenProvider().call(credential, "Sistema", "texto")

    assert text == "[{\"a\": 1}]"
    call = recorder[0]
    assert call["url"] == (
        "https://dashscope.aliyuncs.com/api/v1/services/aigc/text-generation/generation"
    )
    assert call["json"]["input"]["messages"][1] == {"role": "user", "content": "texto"}
    assert call["json"]["parameters"]["result_format"] == "message"


def test_qwen_decodes_legacy_text_output():
    assert QwenProvider().decode({"output": {"text": "[]"}}) == "[]"
    assert QwenProvider().decode({"output": {}}) is None
