"""
cloudflare_client.py

Responsibility: Isolate all direct Cloudflare REST API (v4) interaction.

Cloudflare wraps every response in an envelope:
`{"success": bool, "errors": [{"code": int, "message": str}], "result": ...}`.
`_call` unwraps `result`; `_paginate` walks `result_info` pages.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterator

import requests

from danku.api import ApiError, JsonApiClient


class CloudflareError(ApiError):
    provider = "Cloudflare"


@dataclass(frozen=True)
class Zone:
    id: str
    name: str


@dataclass(frozen=True)
class D1Database:
    uuid: str
    name: str


class CloudflareClient(JsonApiClient):
    error_class = CloudflareError

    def __init__(
        self,
        token: str,
        account_id: str,
        api_base: str = "https://api.cloudflare.com/client/v4",
        *,
        session: requests.Session | None = None,
    ) -> None:
        super().__init__(token, api_base, session=session)
        self.account_id = account_id

    def _error_message(self, payload: Any) -> str:
        if isinstance(payload, dict) and payload.get("errors"):
            return "; ".join(str(e.get("message", e)) for e in payload["errors"])
        return super()._error_message(payload)

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        data = self._request(method, path, **kwargs)
        if data is None:
            return None
        if not data.get("success", True):
            raise CloudflareError(f"Cloudflare API error {method} {path}: {self._error_message(data)}")
        return data.get("result")

    def _paginate(self, path: str, params: dict[str, Any] | None = None) -> Iterator[Any]:
        page = 1
        while True:
            data = self._request("GET", path, params={**(params or {}), "page": page, "per_page": 100})
            yield from data.get("result") or []
            info = data.get("result_info") or {}
            total_pages = info.get("total_pages")
            if total_pages is None:
                count, per_page = info.get("total_count"), info.get("per_page")
                total_pages = -(-count // per_page) if count and per_page else page
            if page >= total_pages:
                return
            page += 1

    def verify_token(self) -> str:
        """
        Return the token status (`active`, `disabled`, `expired`).
        """
        result = self._call("GET", f"/accounts/{self.account_id}/tokens/verify")
        return str(result.get("status", ""))

    def list_zones(self, name: str) -> list[Zone]:
        result = self._call("GET", "/zones", params={"name": name})
        return [Zone(id=str(z["id"]), name=str(z["name"])) for z in result or []]

    def worker_script_names(self) -> list[str]:
        result = self._call("GET", f"/accounts/{self.account_id}/workers/scripts")
        return [str(s["id"]) for s in result or []]

    def d1_databases(self) -> list[D1Database]:
        return [
            D1Database(uuid=str(db["uuid"]), name=str(db["name"]))
            for db in self._paginate(f"/accounts/{self.account_id}/d1/database")
        ]

    def create_d1_database(self, name: str) -> D1Database:
        result = self._call("POST", f"/accounts/{self.account_id}/d1/database", json_body={"name": name})
        return D1Database(uuid=str(result.get("uuid") or ""), name=str(result.get("name") or name))

    def upload_worker_module(self, name: str, source: str, *, compatibility_date: str) -> None:
        """
        Create or replace a Worker script made of a single ES module `index.js`.
        """
        metadata = {"main_module": "index.js", "compatibility_date": compatibility_date}
        files = {
            "metadata": (None, json.dumps(metadata), "application/json"),
            "index.js": ("index.js", source.encode("utf-8"), "application/javascript+module"),
        }
        self._call("PUT", f"/accounts/{self.account_id}/workers/scripts/{name}", files=files)

    def attach_worker_domain(self, *, hostname: str, service: str, zone_id: str, environment: str = "production") -> None:
        """
        Bind a custom domain to a Worker (creates or updates the binding).
        """
        self._call(
            "PUT",
            f"/accounts/{self.account_id}/workers/domains",
            json_body={"environment": environment, "hostname": hostname, "service": service, "zone_id": zone_id},
        )
