"""Async HTTP client for a REST-like system of record.

Transport failures, non-2xx answers and undecodable bodies are mapped onto the
:mod:`core.errors` remote taxonomy so the sync engine never sees ``httpx``
exceptions.
"""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from core.errors import RemoteDecodeError, RemoteHTTPError, RemoteNetworkError
from core.logs import get_sync_logger
from core.settings import REMOTE, RemoteSettings


class ApiClient:
    def __init__(
        self,
        settings: RemoteSettings = REMOTE,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.settings = settings
        self._base_url = settings.base_url.rstrip("/")
        self._http_client = http_client
        self._owns_client = http_client is None
        self.logger = get_sync_logger("fieldsync.api")

    def _get_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        if self.settings.api_token:
            headers["Authorization"] = f"Bearer {self.settings.api_token}"
        return headers

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            limits = httpx.Limits(max_connections=self.settings.max_connections)
            self._http_client = httpx.AsyncClient(timeout=self.settings.timeout_sec, limits=limits)
        return self._http_client

    async def aclose(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        client = self._get_client()
        try:
            response = await client.request(method, url, params=params, json=json, headers=self._get_headers())
        except httpx.HTTPError as exc:
            self.logger.warning("%s %s failed: %s", method, url, exc)
            raise RemoteNetworkError(str(exc)) from exc

        if response.status_code >= 400:
            message = response.text[:500]
            self.logger.error("%s %s returned %d: %s", method, url, response.status_code, message)
            raise RemoteHTTPError(response.status_code, message, url)

        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise RemoteDecodeError(f"Invalid JSON from {url}: {exc}") from exc

    async def get(self, path: str, **params) -> Any:
        clean = {key: value for key, value in params.items() if value is not None}
        return await self.request("GET", path, params=clean or None)

    async def post(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self.request("POST", path, json=payload)

    async def patch(self, path: str, payload: Dict[str, Any]) -> Any:
        return await self.request("PATCH", path, json=payload)

    async def delete(self, path: str) -> Any:
        return await self.request("DELETE", path)


__all__ = ["ApiClient"]
