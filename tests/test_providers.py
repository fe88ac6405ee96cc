import asyncio
import json

import httpx
import pytest

from cdemaker.config import AppConfig
from cdemaker.services.errors import RateLimitedError, TerminalModelError, UnknownModelError
from cdemaker.services.providers import DummyModelClient, GeminiClient, get_model_client, image_part, text_part


def _client(handler):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GeminiClient(http, api_key="k", model="gemini-2.0-flash", base_url="https://gemini.test/v1beta")


def test_generate_returns_text_and_sends_parts():
    seen = {}

    def handler(request: httpx.Request):
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": '{"findings": '}, {"text": "[]}"}]}}]})

    client = _client(handler)
    text = asyncio.run(client.generate([text_part("hi"), image_part("QUFB", "image/png")]))
    assert text == '{"findings": []}'
    assert seen["url"].startswith("https://gemini.test/v1beta/models/gemini-2.0-flash:generateContent")
    assert "key=k" in seen["url"]
    parts = seen["body"]["contents"][0]["parts"]
    assert parts[1] == {"inline_data": {"mime_type": "image/png", "data": "QUFB"}}
    assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"


@pytest.mark.parametrize("status,body,expected", [
    (429, {"error": {"code": 429, "message": "slow down", "status": "RESOURCE_EXHAUSTED"}}, RateLimitedError),
    (403, {"error": {"code": 403, "message": "Quota exceeded for quota metric", "status": "PERMISSION_DENIED"}}, RateLimitedError),
    (400, {"error": {"code": 400, "message": "Invalid image", "status": "INVALID_ARGUMENT"}}, TerminalModelError),
    (500, None, TerminalModelError),
])
def test_http_errors_are_typed(status, body, expected):
    def handler(request):
        if body is None:
            return httpx.Response(status, text="upstream broke")
        return httpx.Response(status, json=body)

    with pytest.raises(expected) as info:
        asyncio.run(_client(handler).generate([text_part("x")]))
    assert info.value.status_code == status


def test_transport_errors_are_unknown():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(UnknownModelError):
        asyncio.run(_client(handler).generate([text_part("x")]))


def test_blocked_prompt_is_terminal():
    def handler(request):
        return httpx.Response(200, json={"promptFeedback": {"blockReason": "SAFETY"}})

    with pytest.raises(TerminalModelError, match="SAFETY"):
        asyncio.run(_client(handler).generate([text_part("x")]))


def test_dummy_without_key():
    client = get_model_client(AppConfig(gemini_key=None))
    assert isinstance(client, DummyModelClient)
    assert json.loads(asyncio.run(client.generate([]))) == {"findings": []}


def test_gemini_with_key():
    client = get_model_client(AppConfig(gemini_key="secret", gemini_model="gemini-x"))
    assert isinstance(client, GeminiClient)
    assert client.model == "gemini-x"
    asyncio.run(client.aclose())


@pytest.mark.parametrize("body", [
    [{"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}}],
    {"error": "Too many requests"},
    "slow down",
])
def test_429_is_rate_limited_whatever_the_body(body):
    def handler(request):
        if isinstance(body, str):
            return httpx.Response(429, text=body)
        return httpx.Response(429, json=body)

    with pytest.raises(RateLimitedError) as info:
        asyncio.run(_client(handler).generate([text_part("x")]))
    assert info.value.status_code == 429


def test_list_body_429_is_rate_limited_in_executor(rows, pages):
    from cdemaker.services.executor import execute_batch

    def handler(request):
        return httpx.Response(429, json=[{"error": {"status": "RESOURCE_EXHAUSTED"}}])

    outcome = asyncio.run(execute_batch(_client(handler), rows, pages, 1))
    assert outcome.error_kind == "rate_limited"


def test_non_object_success_body_is_terminal():
    def handler(request):
        return httpx.Response(200, text="<html>gateway</html>")

    with pytest.raises(TerminalModelError, match="unreadable"):
        asyncio.run(_client(handler).generate([text_part("x")]))
