"""Remote entity store collaborators."""
from __future__ import annotations

import asyncio
import copy
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

import httpx

from gfx_engines.config.runtime_config import get_remote_base_url, get_remote_token
from gfx_engines.data_binding.models import Binding
from gfx_engines.designer.models import Layer, Project, Template
from gfx_engines.persistence.models import EntityKind, WriteResult
from gfx_engines.scene_graph.models import Element
from gfx_engines.timeline.models import Animation, Keyframe

logger = logging.getLogger(__name__)

TABLES: Dict[EntityKind, str] = {
    EntityKind.PROJECT: "gfx_projects",
    EntityKind.LAYERS: "gfx_layers",
    EntityKind.TEMPLATES: "gfx_templates",
    EntityKind.ELEMENTS: "gfx_elements",
    EntityKind.ANIMATIONS: "gfx_animations",
    EntityKind.KEYFRAMES: "gfx_keyframes",
    EntityKind.BINDINGS: "gfx_bindings",
}


class RemoteEntityStore(Protocol):
    async def fetch_project(self, project_id: str) -> Optional[Project]:
        ...

    async def fetch_layers(self, project_id: str) -> List[Layer]:
        ...

    async def fetch_templates(self, project_id: str) -> List[Template]:
        ...

    async def fetch_elements(self, template_id: str) -> List[Element]:
        ...

    async def fetch_animations(self, template_id: str) -> List[Animation]:
        ...

    async def fetch_bindings(self, template_id: str) -> List[Binding]:
        ...

    async def fetch_keyframes(self, animation_id: str) -> List[Keyframe]:
        ...

    async def update_project(self, project_id: str, record: Dict[str, Any]) -> WriteResult:
        ...

    async def batch_upsert(self, kind: EntityKind, records: List[Dict[str, Any]]) -> WriteResult:
        ...

    async def batch_delete(self, kind: EntityKind, ids: List[str]) -> WriteResult:
        ...


class InMemoryRemoteEntityStore:
    """Dict-backed store. Template deletion archives instead of removing.

    ``failures`` holds ``(operation, kind)`` pairs that answer with a failed
    ``WriteResult`` (or raise, for fetches); ``delays`` maps an operation name
    to seconds of artificial latency.
    """

    def __init__(self) -> None:
        self.rows: Dict[EntityKind, Dict[str, Dict[str, Any]]] = {kind: {} for kind in TABLES}
        self.calls: List[Tuple[str, str]] = []
        self.failures: Set[Tuple[str, str]] = set()
        self.delays: Dict[str, float] = {}

    async def _enter(self, operation: str, kind: EntityKind) -> None:
        self.calls.append((operation, kind.value))
        delay = self.delays.get(operation)
        if delay:
            await asyncio.sleep(delay)

    def _failing(self, operation: str, kind: EntityKind) -> bool:
        return (operation, kind.value) in self.failures

    def seed(self, kind: EntityKind, *models: Any) -> None:
        for model in models:
            self.rows[EntityKind(kind)][model.id] = model.model_dump(mode="json")

    def _select(self, kind: EntityKind, **match: Any) -> List[Dict[str, Any]]:
        rows = [
            copy.deepcopy(row) for row in self.rows[kind].values()
            if all(row.get(k) == v for k, v in match.items())
        ]
        return sorted(rows, key=lambda r: (r.get("sort_order") or 0, r.get("position") or 0))

    async def _fetch(self, operation: str, kind: EntityKind, **match: Any) -> List[Dict[str, Any]]:
        await self._enter(operation, kind)
        if self._failing(operation, kind):
            raise RuntimeError(f"{operation} failed for {kind.value}")
        return self._select(kind, **match)

    async def fetch_project(self, project_id: str) -> Optional[Project]:
        rows = await self._fetch("fetch_project", EntityKind.PROJECT, id=project_id)
        return Project.model_validate(rows[0]) if rows else None

    async def fetch_layers(self, project_id: str) -> List[Layer]:
        rows = await self._fetch("fetch_layers", EntityKind.LAYERS, project_id=project_id)
        return [Layer.model_validate(r) for r in rows]

    async def fetch_templates(self, project_id: str) -> List[Template]:
        rows = await self._fetch("fetch_templates", EntityKind.TEMPLATES, project_id=project_id, archived=False)
        return [Template.model_validate(r) for r in rows]

    async def fetch_elements(self, template_id: str) -> List[Element]:
        rows = await self._fetch("fetch_elements", EntityKind.ELEMENTS, template_id=template_id)
        return [Element.model_validate(r) for r in rows]

    async def fetch_animations(self, template_id: str) -> List[Animation]:
        rows = await self._fetch("fetch_animations", EntityKind.ANIMATIONS, template_id=template_id)
        return [Animation.model_validate(r) for r in rows]

    async def fetch_bindings(self, template_id: str) -> List[Binding]:
        rows = await self._fetch("fetch_bindings", EntityKind.BINDINGS, template_id=template_id)
        return [Binding.model_validate(r) for r in rows]

    async def fetch_keyframes(self, animation_id: str) -> List[Keyframe]:
        rows = await self._fetch("fetch_keyframes", EntityKind.KEYFRAMES, animation_id=animation_id)
        return [Keyframe.model_validate(r) for r in rows]

    async def update_project(self, project_id: str, record: Dict[str, Any]) -> WriteResult:
        await self._enter("update_project", EntityKind.PROJECT)
        if self._failing("update_project", EntityKind.PROJECT):
            return WriteResult(success=False, error="update_project rejected")
        existing = self.rows[EntityKind.PROJECT].get(project_id)
        if existing is None:
            return WriteResult(success=False, error=f"Project {project_id} not found")
        existing.update(copy.deepcopy(record))
        return WriteResult(success=True, count=1)

    async def batch_upsert(self, kind: EntityKind, records: List[Dict[str, Any]]) -> WriteResult:
        kind = EntityKind(kind)
        await self._enter("batch_upsert", kind)
        if self._failing("batch_upsert", kind):
            return WriteResult(success=False, error=f"upsert {kind.value} rejected")
        if len({frozenset(r) for r in records}) > 1:
            return WriteResult(success=False, error=f"non-uniform {kind.value} batch")
        table = self.rows[kind]
        for record in records:
            table[record["id"]] = {**table.get(record["id"], {}), **copy.deepcopy(record)}
        return WriteResult(success=True, count=len(records))

    async def batch_delete(self, kind: EntityKind, ids: List[str]) -> WriteResult:
        kind = EntityKind(kind)
        await self._enter("batch_delete", kind)
        if self._failing("batch_delete", kind):
            return WriteResult(success=False, error=f"delete {kind.value} rejected")
        table = self.rows[kind]
        count = 0
        for entity_id in ids:
            if entity_id not in table:
                continue
            if kind == EntityKind.TEMPLATES:
                table[entity_id]["archived"] = True
            else:
                del table[entity_id]
            count += 1
        return WriteResult(success=True, count=count)


class HttpRemoteEntityStore:
    """PostgREST-style tables (``gfx_*``) over httpx with a bearer token."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = (base_url or get_remote_base_url() or "").rstrip("/")
        self.token = token if token is not None else get_remote_token()
        self._client = client
        self.timeout_s = timeout_s

    def _headers(self, **extra: str) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json", **extra}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
            headers["apikey"] = self.token
        return headers

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json_body: Any = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        if not self.base_url:
            raise ValueError("Remote store base URL not configured.")
        url = f"{self.base_url}/{table}"
        kwargs: Dict[str, Any] = {"params": params, "headers": headers or self._headers()}
        if json_body is not None:
            kwargs["json"] = json_body
        if self._client is not None:
            return await self._client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout_s) as client:
            return await client.request(method, url, **kwargs)

    async def _select(self, kind: EntityKind, params: Dict[str, str]) -> List[Dict[str, Any]]:
        resp = await self._request("GET", TABLES[kind], params={"select": "*", **params})
        if resp.status_code >= 400:
            raise RuntimeError(f"Fetch {TABLES[kind]} failed: {resp.status_code} - {resp.text}")
        data = resp.json()
        return data if isinstance(data, list) else []

    async def fetch_project(self, project_id: str) -> Optional[Project]:
        rows = await self._select(EntityKind.PROJECT, {"id": f"eq.{project_id}"})
        return Project.model_validate(rows[0]) if rows else None

    async def fetch_layers(self, project_id: str) -> List[Layer]:
        rows = await self._select(EntityKind.LAYERS, {"project_id": f"eq.{project_id}", "order": "sort_order"})
        return [Layer.model_validate(r) for r in rows]

    async def fetch_templates(self, project_id: str) -> List[Template]:
        rows = await self._select(
            EntityKind.TEMPLATES,
            {"project_id": f"eq.{project_id}", "archived": "eq.false", "order": "sort_order"},
        )
        return [Template.model_validate(r) for r in rows]

    async def fetch_elements(self, template_id: str) -> List[Element]:
        rows = await self._select(EntityKind.ELEMENTS, {"template_id": f"eq.{template_id}", "order": "sort_order"})
        return [Element.model_validate(r) for r in rows]

    async def fetch_animations(self, template_id: str) -> List[Animation]:
        rows = await self._select(EntityKind.ANIMATIONS, {"template_id": f"eq.{template_id}"})
        return [Animation.model_validate(r) for r in rows]

    async def fetch_bindings(self, template_id: str) -> List[Binding]:
        rows = await self._select(EntityKind.BINDINGS, {"template_id": f"eq.{template_id}"})
        return [Binding.model_validate(r) for r in rows]

    async def fetch_keyframes(self, animation_id: str) -> List[Keyframe]:
        rows = await self._select(EntityKind.KEYFRAMES, {"animation_id": f"eq.{animation_id}", "order": "position"})
        return [Keyframe.model_validate(r) for r in rows]

    async def _write(self, label: str, method: str, table: str, count: int, **kwargs: Any) -> WriteResult:
        try:
            resp = await self._request(method, table, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("%s failed: %s", label, exc)
            return WriteResult(success=False, error=str(exc) or exc.__class__.__name__)
        if resp.status_code >= 400:
            return WriteResult(success=False, error=f"{resp.status_code} - {resp.text}")
        return WriteResult(success=True, count=count)

    async def update_project(self, project_id: str, record: Dict[str, Any]) -> WriteResult:
        return await self._write(
            "update_project", "PATCH", TABLES[EntityKind.PROJECT], 1,
            params={"id": f"eq.{project_id}"}, json_body=record,
        )

    async def batch_upsert(self, kind: EntityKind, records: List[Dict[str, Any]]) -> WriteResult:
        kind = EntityKind(kind)
        if not records:
            return WriteResult(success=True, count=0)
        return await self._write(
            f"upsert {kind.value}", "POST", TABLES[kind], len(records),
            params={"on_conflict": "id"},
            json_body=records,
            headers=self._headers(Prefer="resolution=merge-duplicates,return=minimal"),
        )

    async def batch_delete(self, kind: EntityKind, ids: List[str]) -> WriteResult:
        kind = EntityKind(kind)
        if not ids:
            return WriteResult(success=True, count=0)
        params = {"id": f"in.({','.join(ids)})"}
        if kind == EntityKind.TEMPLATES:
            # Templates are archived, never hard-deleted remotely.
            return await self._write(
                "archive templates", "PATCH", TABLES[kind], len(ids),
                params=params,
                json_body={"archived": True, "updated_at": datetime.now(timezone.utc).isoformat()},
            )
        return await self._write(f"delete {kind.value}", "DELETE", TABLES[kind], len(ids), params=params)
