"""
Unit tests for the provider HTTP client.

Uses httpx.MockTransport; no real network calls.
"""
import json

import httpx
import pytest

from genrelay.services.provider import (
    ProviderClient,
    ProviderResponseError,
    get_provider_client,
    make_generate_task,
)

API_KEY = "sk-test-0123456789"


def completion(text):
    return {
        "choices": [{"message": {"role": "assistant", "content": text}}],
        "usage": {"prompt_tokens": 3, "completion_tokens": 2},
    }


class RecordingHandler:
    def __init__(self, status=200, body=None):
        self.status = status
        self.body = body if body is not None else completion("OK")
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status, json=self.body)


def make_client(handler):
    return ProviderClient(
        api_base="https://api.example.test/v1/",
        model="test-model",
        timeout_seconds=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_generate_posts_chat_completion():
    handler = RecordingHandler(body=completion("Hello!"))
    client = make_client(handler)

    text = await client.generate(API_KEY, "Say hello", max_tokens=16)

    assert text == "Hello!"
    request = handler.requests[0]
    assert str(request.url) == "https://api.example.test/v1/chat/completions"
    assert request.headers["Authorization"] == f"Bearer {API_KEY}"
    payload = json.loads(request.content)
    assert payload["model"] == "test-model"
    assert payload["messages"] == [{"role": "user", "content": "Say hello"}]
    assert payload["max_tokens"] == 16


@pytest.mark.asyncio
async def test_error_status_raises_http_status_error():
    client = make_client(RecordingHandler(status=503, body={"error": "overloaded"}))
    with pytest.raises(httpx.HTTPStatusError) as exc_info:
        await client.generate(API_KEY, "x")
    assert exc_info.value.response.status_code == 503


@pytest.mark.asyncio
async def test_malformed_body_raises_provider_response_error():
    client = make_client(RecordingHandler(body={"choices": []}))
    with pytest.raises(ProviderResponseError):
        await client.generate(API_KEY, "x")


@pytest.mark.asyncio
async def test_generate_task_forwards_prompt_and_options():
    handler = RecordingHandler(body=completion("done"))
    task = make_generate_task(make_client(handler))

    result = await task(API_KEY, {"prompt": "do it", "temperature": 0.0, "ignored": True})

    assert result == "done"
    payload = json.loads(handler.requests[0].content)
    assert payload["messages"][0]["content"] == "do it"
    assert payload["temperature"] == 0.0


@pytest.mark.asyncio
async def test_generate_task_requires_prompt():
    task = make_generate_task(make_client(RecordingHandler()))
    with pytest.raises(ValueError):
        await task(API_KEY, {"prompt": "   "})


def test_get_provider_client_from_settings(monkeypatch):
    from genrelay.core.config import reset_settings

    monkeypatch.setenv("GENRELAY_API_BASE", "https://llm.internal.test/v1")
    monkeypatch.setenv("GENRELAY_MODEL", "gemini-flash")
    reset_settings()

    client = get_provider_client()
    assert client is get_provider_client()
    assert client.api_base == "https://llm.internal.test/v1"
    assert client.model == "gemini-flash"
