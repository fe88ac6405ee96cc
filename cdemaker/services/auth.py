from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlencode
import json
import logging
import httpx
from fastapi import Request
from starlette.responses import RedirectResponse

from cdemaker.config import AppConfig

log = logging.getLogger(__name__)

TOKEN_HEADER = "x-stack-access-token"
TOKEN_COOKIE = "stack-access"
SIGN_IN_URL = "/handler/sign-in"


class AuthUnavailableError(Exception):
    """Stack Auth could not answer whether a token is valid."""


@dataclass(frozen=True)
class AuthUser:
    id: str
    display_name: Optional[str] = None
    primary_email: Optional[str] = None


class StackAuthClient:
    """Server-side lookups against the Stack Auth REST API."""

    def __init__(self, http: httpx.AsyncClient, *, api_url: str, project_id: str, secret_server_key: Optional[str]):
        self._http = http
        self._api_url = api_url.rstrip("/")
        self._project_id = project_id
        self._secret = secret_server_key

    async def get_user(self, access_token: str) -> Optional[AuthUser]:
        """The user owning access_token, or None when Stack rejects the token.

        Any other failure raises AuthUnavailableError; a broken lookup must
        never pass for an anonymous request.
        """
        headers = {
            "x-stack-access-type": "server",
            "x-stack-project-id": self._project_id,
            "x-stack-access-token": access_token,
        }
        if self._secret:
            headers["x-stack-secret-server-key"] = self._secret
        try:
            r = await self._http.get(f"{self._api_url}/users/me", headers=headers, timeout=10.0)
        except httpx.HTTPError as e:
            log.warning("[auth] user lookup failed: %s", e)
            raise AuthUnavailableError(f"user lookup failed: {e}") from e
        if r.status_code in (401, 403, 404):
            return None
        if r.status_code >= 400:
            log.warning("[auth] user lookup returned %d: %s", r.status_code, r.text[:200])
            raise AuthUnavailableError(f"user lookup returned {r.status_code}")
        try:
            data = r.json()
        except ValueError as e:
            log.warning("[auth] user lookup returned a non-JSON body: %r", r.text[:200])
            raise AuthUnavailableError("user lookup returned a non-JSON body") from e
        if not isinstance(data, dict):
            raise AuthUnavailableError("user lookup returned an unexpected body")
        if not data.get("id"):
            return None
        return AuthUser(id=data["id"], display_name=data.get("display_name"), primary_email=data.get("primary_email"))

    async def aclose(self) -> None:
        await self._http.aclose()


def _token_from_request(request: Request) -> Optional[str]:
    token = (request.headers.get(TOKEN_HEADER) or "").strip()
    if token:
        return token
    raw = (request.cookies.get(TOKEN_COOKIE) or "").strip()
    if raw.startswith("["):
        # cookie holds ["<refresh token>", "<access token>"]
        try:
            parts = json.loads(raw)
        except ValueError:
            return None
        return parts[-1] if isinstance(parts, list) and parts and isinstance(parts[-1], str) else None
    return raw or None


class AuthCapability:
    """Whether authentication exists at all, decided once at startup.

    With no project id configured the capability is disabled and every
    request is anonymous; the provider is never contacted.
    """

    def __init__(self, enabled: bool, client: Optional[StackAuthClient] = None, sign_in_url: str = SIGN_IN_URL):
        if enabled and client is None:
            raise ValueError("an enabled auth capability needs a client")
        self.enabled = enabled
        self.client = client
        self.sign_in_url = sign_in_url

    @classmethod
    def from_config(cls, config: AppConfig, http: Optional[httpx.AsyncClient] = None) -> "AuthCapability":
        if not config.auth_enabled:
            return cls(enabled=False)
        client = StackAuthClient(
            http or httpx.AsyncClient(),
            api_url=config.stack_api_url,
            project_id=config.stack_project_id or "",
            secret_server_key=config.stack_secret_server_key,
        )
        return cls(enabled=True, client=client)

    async def current_user(self, request: Request) -> Optional[AuthUser]:
        if not self.enabled:
            return None
        token = _token_from_request(request)
        if not token:
            return None
        return await self.client.get_user(token)

    def redirect_to_sign_in(self, after: str = "/") -> RedirectResponse:
        return RedirectResponse(url=f"{self.sign_in_url}?{urlencode({'after_auth_return_to': after})}", status_code=303)

    async def aclose(self) -> None:
        if self.client is not None:
            await self.client.aclose()


def get_auth(request: Request) -> AuthCapability:
    return request.app.state.auth


async def get_current_user(request: Request) -> Optional[AuthUser]:
    return await get_auth(request).current_user(request)
