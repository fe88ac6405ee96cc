from __future__ import annotations
from typing import Any, Dict, List, Optional
import json
import logging
import httpx

from cdemaker.config import AppConfig
from cdemaker.services.errors import (
    RateLimitedError,
    TerminalModelError,
    UnknownModelError,
    is_rate_limit_message,
)

log = logging.getLogger(__name__)

Part = Dict[str, Any]


def text_part(text: str) -> Part:
    return {"text": text}


def image_part(base64_data: str, mime_type: str) -> Part:
    return {"inline_data": {"mime_type": mime_type, "data": base64_data}}


class ModelClient:
    """Pluggable generative-model interface.

    generate() returns the raw response text or raises a ModelCallError
    subclass. Classification happens here, at the network boundary.
    """
    name: str = "base"

    async def generate(self, parts: List[Part]) -> str:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class DummyModelClient(ModelClient):
    """Answers every batch with no findings so the flow works without an API key."""
    name = "dummy"

    async def generate(self, parts: List[Part]) -> str:
        return json.dumps({"findings": []})


class GeminiClient(ModelClient):
    name = "gemini"

    def __init__(self, http: httpx.AsyncClient, *, api_key: str, model: str, base_url: str, timeout: float = 120.0):
        self._http = http
        self._api_key = api_key
        self.model = model
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def generate(self, parts: List[Part]) -> str:
        url = f"{self._base_url}/models/{self.model}:generateContent"
        payload = {
            "contents": [{"role": "user", "parts": parts}],
            "generationConfig": {"responseMimeType": "application/json", "temperature": 0.1},
        }
        try:
            r = await self._http.post(url, params={"key": self._api_key}, json=payload, timeout=self._timeout)
        except httpx.TimeoutException as e:
            raise UnknownModelError(f"Gemini request timed out: {e}") from e
        except httpx.TransportError as e:
            raise UnknownModelError(f"Gemini transport error: {e}") from e

        if r.status_code >= 400:
            raise _error_from_response(r)

        data = _json_or_none(r)
        if not isinstance(data, dict):
            raise TerminalModelError(f"Gemini returned an unreadable body: {r.text[:200]!r}", status_code=r.status_code)
        candidates = data.get("candidates") or []
        if not candidates:
            reason = (data.get("promptFeedback") or {}).get("blockReason") or "no candidates"
            raise TerminalModelError(f"Gemini returned no content ({reason})", status_code=r.status_code)
        parts_out = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(p.get("text", "") for p in parts_out if isinstance(p, dict))

    async def aclose(self) -> None:
        await self._http.aclose()


def _json_or_none(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return None


def _error_details(body: Any) -> Dict[str, Any]:
    """The `error` object of a Gemini error body, which may come wrapped in a list."""
    if isinstance(body, list) and body:
        body = body[0]
    if not isinstance(body, dict):
        return {}
    err = body.get("error")
    if isinstance(err, dict):
        return err
    if isinstance(err, str):
        return {"message": err}
    return {}


def _error_from_response(r: httpx.Response) -> Exception:
    err = _error_details(_json_or_none(r))
    status = err.get("status")
    if not isinstance(status, str):
        status = ""
    message = err.get("message")
    if not isinstance(message, str) or not message:
        message = r.text[:200]
    text = f"[{r.status_code} {status}] {message}" if status else f"[{r.status_code}] {message}"
    if r.status_code == 429:
        return RateLimitedError(text, status_code=r.status_code)
    if status == "RESOURCE_EXHAUSTED" or is_rate_limit_message(message):
        return RateLimitedError(text, status_code=r.status_code)
    return TerminalModelError(text, status_code=r.status_code)


def get_model_client(config: AppConfig, http: Optional[httpx.AsyncClient] = None) -> ModelClient:
    if not config.gemini_key:
        log.warning("GEMINI_KEY is not set; using the dummy model client")
        return DummyModelClient()
    return GeminiClient(
        http or httpx.AsyncClient(timeout=config.gemini_timeout),
        api_key=config.gemini_key,
        model=config.gemini_model,
        base_url=config.gemini_base_url,
        timeout=config.gemini_timeout,
    )
