"""External data endpoint resolvers."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

import httpx

from gfx_engines.common.errors import NotFoundError
from gfx_engines.config.runtime_config import get_data_endpoint_base_url, get_remote_token
from gfx_engines.data_binding.models import DataEndpoint

logger = logging.getLogger(__name__)


class DataEndpointResolver(Protocol):
    async def fetch_records(self, slug: str) -> List[Dict[str, Any]]:
        ...

    async def resolve_endpoint_by_slug(self, slug: str) -> Optional[DataEndpoint]:
        ...

    async def resolve_endpoint_by_id(self, endpoint_id: str) -> Optional[DataEndpoint]:
        ...

    async def list_endpoints(self) -> List[DataEndpoint]:
        ...


class InMemoryDataEndpointResolver:
    """Endpoints and records held in memory; counts fetches per slug."""

    def __init__(self, records: Optional[Dict[str, List[Dict[str, Any]]]] = None, endpoints: Optional[List[DataEndpoint]] = None):
        self._records: Dict[str, List[Dict[str, Any]]] = dict(records or {})
        self._endpoints: List[DataEndpoint] = list(endpoints or [])
        self.fetch_calls: List[str] = []

    def register(self, endpoint: DataEndpoint, records: List[Dict[str, Any]]) -> None:
        self._endpoints = [e for e in self._endpoints if e.id != endpoint.id] + [endpoint]
        self._records[endpoint.slug] = records

    async def fetch_records(self, slug: str) -> List[Dict[str, Any]]:
        self.fetch_calls.append(slug)
        if slug not in self._records:
            raise NotFoundError(f"Endpoint {slug!r} not found")
        return [dict(r) for r in self._records[slug]]

    async def resolve_endpoint_by_slug(self, slug: str) -> Optional[DataEndpoint]:
        return next((e for e in self._endpoints if e.slug == slug), None)

    async def resolve_endpoint_by_id(self, endpoint_id: str) -> Optional[DataEndpoint]:
        return next((e for e in self._endpoints if e.id == endpoint_id), None)

    async def list_endpoints(self) -> List[DataEndpoint]:
        return list(self._endpoints)


class HttpDataEndpointResolver:
    """Data endpoints served over HTTP.

    ``GET {base}/endpoints`` lists endpoints and ``GET {base}/endpoints/{slug}``
    returns the record array.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = (base_url or get_data_endpoint_base_url() or "").rstrip("/")
        self.token = token if token is not None else get_remote_token()
        self._client = client
        self.timeout_s = timeout_s

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _get(self, path: str) -> Any:
        if not self.base_url:
            raise ValueError("Data endpoint base URL not configured.")
        url = f"{self.base_url}/{path.lstrip('/')}"
        if self._client is not None:
            resp = await self._client.get(url, headers=self._headers())
        else:
            async with httpx.AsyncClient(timeout=self.timeout_s) as client:
                resp = await client.get(url, headers=self._headers())
        if resp.status_code == 404:
            raise NotFoundError(f"{path} not found")
        if resp.status_code >= 400:
            raise RuntimeError(f"Data endpoint request failed: {resp.status_code} - {resp.text}")
        return resp.json()

    async def fetch_records(self, slug: str) -> List[Dict[str, Any]]:
        data = await self._get(f"endpoints/{slug}")
        if isinstance(data, dict) and isinstance(data.get("data"), list):
            data = data["data"]
        if not isinstance(data, list):
            logger.warning("Endpoint %s returned a non-list payload", slug)
            return []
        return [r for r in data if isinstance(r, dict)]

    async def list_endpoints(self) -> List[DataEndpoint]:
        data = await self._get("endpoints")
        if isinstance(data, dict):
            data = data.get("data") or []
        return [DataEndpoint.model_validate(item) for item in data]

    async def resolve_endpoint_by_slug(self, slug: str) -> Optional[DataEndpoint]:
        return next((e for e in await self.list_endpoints() if e.slug == slug), None)

    async def resolve_endpoint_by_id(self, endpoint_id: str) -> Optional[DataEndpoint]:
        return next((e for e in await self.list_endpoints() if e.id == endpoint_id), None)
