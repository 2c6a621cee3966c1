from __future__ import annotations

import logging
import asyncio
import re
from dataclasses import dataclass, field
from typing import Any, Literal

import httpx

logger = logging.getLogger(__name__)

Outcome = Literal["success", "validation", "busy", "timeout", "connection", "http_error", "rejected"]

MISSING_FIELDS_MESSAGE = "Please fill in all fields"
BUSY_MESSAGE = "A test mail is already being sent"
TIMEOUT_MESSAGE = "Request timed out. The server might be down or not responding."
CONNECTION_MESSAGE = "Unable to connect to the API. Please check your internet connection or try again later."
SEND_FAILED_MESSAGE = "Failed to send test mail"
SUCCESS_MESSAGE = "Test mail sent successfully!"

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z0-9_.-]+)\s*\}\}")


@dataclass(frozen=True)
class DispatchResult:
    outcome: Outcome
    message: str
    errors: list[str] = field(default_factory=list)
    status_code: int | None = None

    @property
    def ok(self) -> bool:
        return self.outcome == "success"

    def as_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome,
            "success": self.ok,
            "message": self.message,
            "errors": list(self.errors),
            "status_code": self.status_code,
        }


def render_placeholders(content: str, mappings: dict[str, str], values: dict[str, str]) -> str:
    """Replace ``{{placeholder}}`` tokens using ``mappings`` (placeholder -> field) into ``values``."""

    def _substitute(match: re.Match[str]) -> str:
        placeholder = match.group(1)
        if placeholder not in mappings:
            return match.group(0)
        return values.get(mappings[placeholder], "") or ""

    return _PLACEHOLDER_RE.sub(_substitute, content or "")


def _error_list(payload: dict[str, Any], fallback: str) -> list[str]:
    errors = payload.get("errors")
    if isinstance(errors, list) and errors:
        return [str(item) for item in errors]
    return [fallback]


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


class TestMailDispatcher:
    """Sends one templated test email through the external send API."""

    __test__ = False

    def __init__(
        self,
        api_url: str,
        app_name: str,
        timeout_seconds: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_url = api_url.rstrip("/")
        self.app_name = app_name
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        # Owners with a request in flight; only touched from the event loop.
        self._inflight: set[str] = set()

    @property
    def recipient_name(self) -> str:
        return f"{self.app_name} User"

    def build_payload(self, user_key: str, service_id: str, template_id: str, email: str) -> dict[str, Any]:
        return {
            "user_key": user_key,
            "service_id": service_id,
            "template_id": template_id,
            "recipients": [{"email_address": email, "name": self.recipient_name}],
            "parameters": {"name": self.recipient_name},
        }

    @staticmethod
    def validate(service_id: str | None, template_id: str | None, email: str | None) -> DispatchResult | None:
        if not all((value or "").strip() for value in (service_id, template_id, email)):
            return DispatchResult("validation", MISSING_FIELDS_MESSAGE)
        return None

    async def send(
        self,
        user_key: str,
        service_id: str,
        template_id: str,
        email: str,
        owner: str = "",
    ) -> DispatchResult:
        invalid = self.validate(service_id, template_id, email)
        if invalid is not None:
            return invalid
        service_id, template_id, email = service_id.strip(), template_id.strip(), email.strip()

        if owner in self._inflight:
            return DispatchResult("busy", BUSY_MESSAGE)
        self._inflight.add(owner)
        try:
            result = await self._post(self.build_payload(user_key, service_id, template_id, email))
        finally:
            self._inflight.discard(owner)

        if result.ok:
            logger.info("Test mail sent service=%s template=%s", service_id, template_id)
        else:
            logger.warning("Test mail failed outcome=%s message=%s", result.outcome, result.message)
        return result

    async def _request(self, payload: dict[str, Any]) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
            return await client.post(f"{self.api_url}/send-emails", json=payload)

    async def _post(self, payload: dict[str, Any]) -> DispatchResult:
        # httpx timeouts apply per phase; wait_for bounds the whole exchange.
        try:
            response = await asyncio.wait_for(self._request(payload), timeout=self.timeout_seconds)
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return DispatchResult("timeout", TIMEOUT_MESSAGE)
        except httpx.TransportError:
            return DispatchResult("connection", CONNECTION_MESSAGE)

        body = _json_or_empty(response)
        if not response.is_success:
            message = str(body.get("message") or f"HTTP error! status: {response.status_code}")
            return DispatchResult("http_error", message, _error_list(body, "HTTP error occurred"), response.status_code)

        if not body.get("success"):
            return DispatchResult("rejected", SEND_FAILED_MESSAGE, _error_list(body, "Unknown error occurred"), response.status_code)

        return DispatchResult("success", SUCCESS_MESSAGE, status_code=response.status_code)
