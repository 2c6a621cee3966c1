"""Session gate backed by the platform's auth REST service.

Sign-in uses the OAuth PKCE flow; the resulting access token is kept in an
http-only cookie and resolved to an :class:`Identity` on every request.
"""
from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx
from fastapi import Depends, Request

from nextinbox.config import Settings, get_settings
from nextinbox.services.shared.ttl_cache import TtlCache

logger = logging.getLogger(__name__)

ACCESS_TOKEN_COOKIE = "nib_access_token"
CODE_VERIFIER_COOKIE = "nib_code_verifier"
OAUTH_PROVIDERS = ("github", "google")


class LoginRequired(Exception):
    """No authenticated identity for this request."""


class AuthError(Exception):
    """The auth service rejected a sign-in step."""


@dataclass(frozen=True)
class Identity:
    id: str
    email: str
    name: str = ""

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "Identity":
        metadata = payload.get("user_metadata") or {}
        return cls(
            id=str(payload["id"]),
            email=str(payload.get("email") or ""),
            name=str(metadata.get("full_name") or metadata.get("name") or ""),
        )


def new_code_verifier() -> str:
    return secrets.token_urlsafe(48)


def code_challenge(verifier: str) -> str:
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


class AuthClient:
    def __init__(
        self,
        base_url: str,
        anon_key: str,
        cache_ttl_seconds: float = 30.0,
        timeout_seconds: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = f"{base_url.rstrip('/')}/auth/v1"
        self.anon_key = anon_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._identities = TtlCache(ttl_seconds=cache_ttl_seconds, max_entries=1024)

    def _client(self) -> httpx.Client:
        return httpx.Client(
            base_url=self.base_url,
            headers={"apikey": self.anon_key},
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    def authorize_url(self, provider: str, redirect_to: str, verifier: str) -> str:
        if provider not in OAUTH_PROVIDERS:
            raise AuthError(f"Unsupported provider '{provider}'")
        query = urlencode(
            {
                "provider": provider,
                "redirect_to": redirect_to,
                "code_challenge": code_challenge(verifier),
                "code_challenge_method": "s256",
            }
        )
        return f"{self.base_url}/authorize?{query}"

    def exchange_code(self, auth_code: str, verifier: str) -> tuple[str, Identity]:
        with self._client() as client:
            response = client.post(
                "/token",
                params={"grant_type": "pkce"},
                json={"auth_code": auth_code, "code_verifier": verifier},
            )
        if not response.is_success:
            try:
                payload = response.json()
            except ValueError:
                payload = {}
            message = payload.get("error_description") or payload.get("msg") or f"status {response.status_code}"
            raise AuthError(str(message))
        session = response.json()
        identity = Identity.from_payload(session["user"])
        self._identities.set(session["access_token"], identity)
        return session["access_token"], identity

    def get_user(self, access_token: str | None) -> Identity | None:
        if not access_token:
            return None

        def _load() -> Identity | None:
            try:
                with self._client() as client:
                    response = client.get("/user", headers={"Authorization": f"Bearer {access_token}"})
            except httpx.HTTPError as exc:
                logger.warning("Identity lookup failed: %s", exc)
                return None
            if response.status_code != 200:
                return None
            return Identity.from_payload(response.json())

        return self._identities.cached(access_token, _load)

    def sign_out(self, access_token: str | None) -> None:
        if not access_token:
            return
        self._identities.invalidate(access_token)
        try:
            with self._client() as client:
                client.post("/logout", headers={"Authorization": f"Bearer {access_token}"})
        except httpx.HTTPError as exc:
            logger.warning("Sign-out request failed: %s", exc)


_auth_client: AuthClient | None = None


def get_auth_client(settings: Settings = Depends(get_settings)) -> AuthClient:
    global _auth_client
    if _auth_client is None:
        _auth_client = AuthClient(
            settings.supabase_url,
            settings.supabase_anon_key,
            cache_ttl_seconds=settings.auth_cache_ttl_seconds,
        )
    return _auth_client


def require_identity(request: Request, auth: AuthClient = Depends(get_auth_client)) -> Identity:
    identity = auth.get_user(request.cookies.get(ACCESS_TOKEN_COOKIE))
    if identity is None:
        raise LoginRequired()
    return identity
