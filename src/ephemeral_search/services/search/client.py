"""Thin async client for the search service REST API.

Management calls (data sources, indexes, skillsets, indexers) and document
queries share one `httpx.AsyncClient`; they differ only in api-version. All
PUTs are create-or-replace.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Literal, Optional
from urllib.parse import quote

import httpx

from src.ephemeral_search.domain.errors import SearchServiceError
from src.ephemeral_search.settings import Settings

logger = logging.getLogger(__name__)

Collection = Literal["datasources", "indexes", "skillsets", "indexers"]


def _error_message(resp: httpx.Response) -> tuple[str, Any]:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or resp.reason_phrase, resp.text
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return str(body["error"].get("message") or body["error"].get("code") or resp.reason_phrase), body
    return resp.reason_phrase, body


class SearchClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        mgmt_api_version: str = "2024-07-01",
        query_api_version: str = "2024-07-01",
    ) -> None:
        self._http = http
        self.mgmt_api_version = mgmt_api_version
        self.query_api_version = query_api_version

    @classmethod
    def from_settings(cls, settings: Settings, *, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SearchClient":
        if not settings.search_api_key:
            raise RuntimeError("AZURE_SEARCH_API_KEY is not configured")
        http = httpx.AsyncClient(
            base_url=settings.search_base_url,
            headers={"api-key": settings.search_api_key, "Content-Type": "application/json"},
            timeout=settings.search_timeout_s,
            transport=transport,
        )
        return cls(
            http,
            mgmt_api_version=settings.search_mgmt_api_version,
            query_api_version=settings.search_query_api_version,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        label: str,
        api_version: Optional[str] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        params = {"api-version": api_version or self.mgmt_api_version}
        resp = await self._http.request(method, path, params=params, json=json, headers=headers)
        if resp.is_success:
            return resp
        message, body = _error_message(resp)
        if resp.status_code == 404:
            logger.debug("[search %s] not found: %s", label, path)
        else:
            logger.error("[search %s] HTTP %s: %s", label, resp.status_code, body)
        raise SearchServiceError(label, resp.status_code, message, body)

    # ---------------- Management ---------------- #

    async def put_resource(self, collection: Collection, name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._request(
            "PUT",
            f"/{collection}/{quote(name, safe='')}",
            label=f"PUT /{collection}",
            json=body,
            headers={"Prefer": "return=representation"},
        )
        return resp.json() if resp.content else {}

    async def get_resource(self, collection: Collection, name: str) -> Dict[str, Any]:
        resp = await self._request("GET", f"/{collection}/{quote(name, safe='')}", label=f"GET /{collection}")
        return resp.json()

    async def delete_resource(self, collection: Collection, name: str) -> bool:
        """Delete a resource; False when it did not exist."""
        try:
            await self._request("DELETE", f"/{collection}/{quote(name, safe='')}", label=f"DELETE /{collection}")
        except SearchServiceError as e:
            if e.is_not_found:
                return False
            raise
        return True

    async def run_indexer(self, name: str) -> bool:
        """Trigger an on-demand run; False when a run is already in progress."""
        try:
            await self._request("POST", f"/indexers/{quote(name, safe='')}/run", label="POST /indexers/run")
        except SearchServiceError as e:
            if e.status_code == 409:
                logger.info("Indexer %s already running; waiting on the current run", name)
                return False
            raise
        return True

    async def get_indexer_status(self, name: str) -> Dict[str, Any]:
        resp = await self._request("GET", f"/indexers/{quote(name, safe='')}/status", label="GET /indexers/status")
        return resp.json()

    async def get_service_statistics(self) -> Dict[str, Any]:
        resp = await self._request("GET", "/servicestats", label="GET /servicestats")
        return resp.json()

    # ---------------- Query ---------------- #

    async def search_documents(self, index_name: str, body: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._request(
            "POST",
            f"/indexes/{quote(index_name, safe='')}/docs/search",
            label="POST /indexes/docs/search",
            api_version=self.query_api_version,
            json=body,
        )
        return resp.json()
