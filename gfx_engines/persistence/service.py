"""Persistence coordinator: ordered remote sync, deletion drain, local backup and load."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Optional, TypeVar

import httpx

from gfx_engines.common.errors import DesignerError, NotFoundError
from gfx_engines.common.timeouts import with_timeout
from gfx_engines.config.runtime_config import get_fetch_timeout_s, get_save_timeout_s
from gfx_engines.designer.models import (
    default_layers,
    default_templates,
    demo_project,
    is_local_project_id,
)
from gfx_engines.persistence.local_cache import InMemoryProjectCache, ProjectCache
from gfx_engines.persistence.models import (
    DELETION_ORDER,
    UPSERT_ORDER,
    EntityKind,
    LoadedProject,
    LocalProjectBlob,
    SaveReport,
    SaveStep,
    WriteResult,
)
from gfx_engines.persistence.remote import InMemoryRemoteEntityStore, RemoteEntityStore
from gfx_engines.persistence.serializers import serialize_project, serialize_rows

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.designer.state import DesignerState

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures of a single remote call; logged and recorded, never fatal to the cycle.
REMOTE_ERRORS = (DesignerError, httpx.HTTPError, RuntimeError, ValueError)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PersistenceCoordinator:
    def __init__(
        self,
        state: "DesignerState",
        remote: Optional[RemoteEntityStore] = None,
        cache: Optional[ProjectCache] = None,
        save_timeout_s: Optional[float] = None,
        fetch_timeout_s: Optional[float] = None,
    ):
        self.state = state
        self.remote = remote or InMemoryRemoteEntityStore()
        self.cache = cache or InMemoryProjectCache()
        self.save_timeout_s = save_timeout_s if save_timeout_s is not None else get_save_timeout_s()
        self.fetch_timeout_s = fetch_timeout_s if fetch_timeout_s is not None else get_fetch_timeout_s()

    # --- save ---

    async def sync(self) -> Optional[SaveReport]:
        """Push local state to the remote store, then back it up locally.

        Steps run in dependency order; a failed step is logged and recorded
        and the remaining steps still run.
        """
        state = self.state
        project = state.project
        if project is None:
            logger.warning("sync: no project loaded")
            return None

        project.updated_at = _now()
        report = SaveReport(project_id=project.id, remote=not is_local_project_id(project.id))
        state.is_saving = True
        state.error = None
        try:
            if report.remote:
                await self._sync_remote(report)
            else:
                logger.info("Local project %s: saving to local cache only", project.id)
        finally:
            report.local_backup_written = self.write_local_backup()
            state.is_saving = False
            report.finished_at = _now()

        if not report.local_backup_written and not report.remote:
            report.steps.append(SaveStep(action="backup", kind=EntityKind.PROJECT, success=False, error="local backup failed"))

        if report.ok:
            state.is_dirty = False
            state.last_saved = report.finished_at
            logger.info("Saved project %s (%d steps)", project.id, len(report.steps))
        else:
            failed = ", ".join(f"{s.action}:{s.kind.value}" for s in report.failed_steps)
            state.error = f"Save incomplete, failed steps: {failed}"
            logger.error("Save of project %s incomplete: %s", project.id, failed)
        return report

    async def _sync_remote(self, report: SaveReport) -> None:
        state = self.state
        project = state.project
        await self._run_step(
            report, "update", EntityKind.PROJECT, 1,
            self.remote.update_project(project.id, serialize_project(project)),
        )
        for kind in UPSERT_ORDER:
            items = list(getattr(state, kind.value))
            if not items:
                continue
            rows = serialize_rows(kind, items, project.id)
            await self._run_step(report, "upsert", kind, len(rows), self.remote.batch_upsert(kind, rows))
        await self.drain_deletions(report)

    async def drain_deletions(self, report: SaveReport) -> None:
        """Delete queued ids remotely, children first; failed kinds stay queued."""
        pending = self.state.pending_deletions
        for kind in DELETION_ORDER:
            ids = list(pending.queue(kind))
            if not ids:
                continue
            ok = await self._run_step(report, "delete", kind, len(ids), self.remote.batch_delete(kind, ids))
            if ok:
                # Only the ids we sent; anything queued meanwhile waits for the next save.
                pending.discard(kind, ids)

    async def _run_step(
        self,
        report: SaveReport,
        action: str,
        kind: EntityKind,
        count: int,
        call: Awaitable[WriteResult],
    ) -> bool:
        label = f"{action} {kind.value}"
        try:
            result = await with_timeout(call, self.save_timeout_s, label)
        except REMOTE_ERRORS as exc:
            result = WriteResult(success=False, error=str(exc) or exc.__class__.__name__)
        if not result.success:
            logger.error("Save step %s failed: %s", label, result.error)
        report.steps.append(
            SaveStep(action=action, kind=kind, success=result.success, count=result.count or count, error=result.error)
        )
        return result.success

    def local_blob(self) -> LocalProjectBlob:
        state = self.state
        return LocalProjectBlob(
            project=state.project,
            layers=state.layers,
            templates=state.templates,
            elements=state.elements,
            animations=state.animations,
            keyframes=state.keyframes,
            bindings=state.bindings,
        )

    def write_local_backup(self) -> bool:
        if self.state.project is None:
            return False
        try:
            self.cache.set(self.state.project.id, self.local_blob())
        except (OSError, ValueError, TypeError) as exc:
            logger.error("Local backup of %s failed: %s", self.state.project.id, exc)
            return False
        return True

    async def persist_project(self) -> Optional[SaveStep]:
        """Write only the project row; used by settings changes."""
        project = self.state.project
        if project is None or is_local_project_id(project.id):
            return None
        report = SaveReport(project_id=project.id)
        await self._run_step(
            report, "update", EntityKind.PROJECT, 1,
            self.remote.update_project(project.id, serialize_project(project)),
        )
        return report.steps[-1]

    async def archive_template(self, template_id: str) -> Optional[SaveStep]:
        """Immediately archive one template remotely."""
        project = self.state.project
        if project is None or is_local_project_id(project.id):
            return None
        report = SaveReport(project_id=project.id)
        ok = await self._run_step(
            report, "delete", EntityKind.TEMPLATES, 1,
            self.remote.batch_delete(EntityKind.TEMPLATES, [template_id]),
        )
        if ok:
            self.state.pending_deletions.discard(EntityKind.TEMPLATES, [template_id])
        return report.steps[-1]

    # --- load ---

    async def _fetch(self, call: Awaitable[T], label: str) -> T:
        return await with_timeout(call, self.fetch_timeout_s, label)

    def _from_blob(self, blob: LocalProjectBlob, degraded: Optional[Dict[str, str]] = None) -> LoadedProject:
        return LoadedProject(
            project=blob.project,
            layers=blob.layers,
            templates=blob.templates,
            elements=blob.elements,
            animations=blob.animations,
            keyframes=blob.keyframes,
            bindings=blob.bindings,
            source="local_cache",
            degraded=degraded or {},
        )

    async def load(self, project_id: str) -> LoadedProject:
        """Load a project, degrading to whatever could be fetched.

        Raises ``NotFoundError`` when the remote store has no such project, or
        the transport error when the project row is unreachable and no local
        copy exists.
        """
        if is_local_project_id(project_id):
            blob = self.cache.get(project_id)
            if blob is not None:
                logger.info("Loaded local project %s from cache", project_id)
                return self._from_blob(blob)
            project = demo_project(project_id)
            layers = default_layers(project_id)
            logger.info("Created demo project %s", project_id)
            return LoadedProject(
                project=project,
                layers=layers,
                templates=default_templates(project_id, layers),
                source="demo",
            )

        try:
            project = await self._fetch(self.remote.fetch_project(project_id), f"fetch_project({project_id})")
        except REMOTE_ERRORS as exc:
            blob = self.cache.get(project_id)
            if blob is None:
                raise
            logger.warning("Remote project %s unavailable (%s); using local cache", project_id, exc)
            return self._from_blob(blob, {"project": str(exc)})
        if project is None:
            raise NotFoundError(f"Project {project_id} not found")

        degraded: Dict[str, str] = {}
        layers = await self._fetch_or_empty(self.remote.fetch_layers(project_id), "layers", degraded)
        if not layers:
            logger.info("Project %s has no layers; creating defaults", project_id)
            layers = default_layers(project_id, project.canvas_width, project.canvas_height)
        templates = await self._fetch_or_empty(self.remote.fetch_templates(project_id), "templates", degraded)
        for item in [*layers, *templates]:
            item.enabled = True

        loaded = LoadedProject(project=project, layers=layers, templates=templates, degraded=degraded)
        for template in templates:
            elements, animations, bindings = await asyncio.gather(
                self._fetch_or_empty(self.remote.fetch_elements(template.id), f"elements:{template.id}", degraded),
                self._fetch_or_empty(self.remote.fetch_animations(template.id), f"animations:{template.id}", degraded),
                self._fetch_or_empty(self.remote.fetch_bindings(template.id), f"bindings:{template.id}", degraded),
            )
            loaded.elements.extend(elements)
            loaded.animations.extend(animations)
            loaded.bindings.extend(bindings)
            for animation in animations:
                loaded.keyframes.extend(
                    await self._fetch_or_empty(
                        self.remote.fetch_keyframes(animation.id), f"keyframes:{animation.id}", degraded
                    )
                )
        if degraded:
            logger.warning("Project %s loaded with %d degraded fetch(es)", project_id, len(degraded))
        else:
            logger.info("Loaded project %s: %d templates, %d elements", project_id, len(templates), len(loaded.elements))
        return loaded

    async def _fetch_or_empty(self, call: Awaitable[List[Any]], label: str, degraded: Dict[str, str]) -> List[Any]:
        try:
            result = await self._fetch(call, f"fetch {label}")
        except REMOTE_ERRORS as exc:
            logger.warning("Fetch %s failed, continuing without it: %s", label, exc)
            degraded[label] = str(exc) or exc.__class__.__name__
            return []
        return list(result or [])
