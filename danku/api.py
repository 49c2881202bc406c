"""
api.py

Responsibility: Shared JSON-over-HTTP plumbing for the provider REST clients.

Provider modules (`github_client.py`, `cloudflare_client.py`) subclass
`JsonApiClient`, supply their headers and translate error payloads. Everything
that sends a request goes through `JsonApiClient._request`, so the HTTP status of
a failure is always available to callers as `ApiError.status`.
"""

from __future__ import annotations

import logging
from typing import Any

import requests

LOG = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30


class ApiError(RuntimeError):
    """An HTTP error response (status >= 400) from a provider API."""

    provider = "API"

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status

    @property
    def is_not_found(self) -> bool:
        return self.status == 404


class JsonApiClient:
    error_class: type[ApiError] = ApiError
    user_agent = "danku"

    def __init__(self, token: str, api_base: str, *, session: requests.Session | None = None) -> None:
        if not token.strip():
            raise self.error_class(f"{self.error_class.provider} token is required.")
        self._token = token
        self._api_base = api_base.rstrip("/")
        self._session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._token}",
            "User-Agent": self.user_agent,
        }

    def _error_message(self, payload: Any) -> str:
        if isinstance(payload, dict):
            return str(payload.get("message", payload))
        return str(payload)

    def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
    ) -> Any:
        url = f"{self._api_base}{path}"
        LOG.debug("%s %s", method, url)
        r = self._session.request(
            method,
            url,
            headers=self._headers(),
            json=json_body,
            params=params,
            files=files,
            timeout=DEFAULT_TIMEOUT,
        )
        if r.status_code >= 400:
            try:
                payload = r.json()
            except ValueError:
                payload = {"message": r.text}
            raise self.error_class(
                f"{self.error_class.provider} API error {r.status_code} {method} {path}: {self._error_message(payload)}",
                status=r.status_code,
            )
        if r.status_code == 204 or not r.content:
            return None
        return r.json()
