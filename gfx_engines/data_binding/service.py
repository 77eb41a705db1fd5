"""Per-template data cache, hydration and record navigation."""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Dict, List, Optional

import httpx

from gfx_engines.common.errors import DesignerError
from gfx_engines.common.timeouts import with_timeout
from gfx_engines.config.runtime_config import get_fetch_timeout_s
from gfx_engines.data_binding.endpoints import DataEndpointResolver, InMemoryDataEndpointResolver
from gfx_engines.data_binding.models import (
    FALLBACK_MATCH_THRESHOLD,
    Binding,
    BindingType,
    DataBindingState,
    DataEndpoint,
    DataSourceConfig,
    TemplateDataCacheEntry,
)
from gfx_engines.data_binding.resolver import MISSING, default_target_property, get_nested_value, match_ratio
from gfx_engines.persistence.models import EntityKind

if TYPE_CHECKING:  # pragma: no cover
    from gfx_engines.designer.state import DesignerState
    from gfx_engines.history.service import HistoryManager

logger = logging.getLogger(__name__)

DISPLAY_FIELD_CANDIDATES = ("name", "title", "label", "State", "location.name")

# Failures a data fetch may surface; each is logged and degrades to "no data".
FETCH_ERRORS = (DesignerError, httpx.HTTPError, RuntimeError, ValueError)


def detect_display_field(records: List[Dict[str, Any]]) -> Optional[str]:
    if not records:
        return None
    first = records[0]
    for candidate in DISPLAY_FIELD_CANDIDATES:
        value = get_nested_value(first, candidate, MISSING)
        if isinstance(value, str) and value:
            return candidate
    return None


class DataBindingService:
    def __init__(
        self,
        state: "DesignerState",
        history: "HistoryManager",
        endpoints: Optional[DataEndpointResolver] = None,
        fetch_timeout_s: Optional[float] = None,
    ):
        self.state = state
        self.history = history
        self.endpoints = endpoints or InMemoryDataEndpointResolver()
        self.fetch_timeout_s = fetch_timeout_s if fetch_timeout_s is not None else get_fetch_timeout_s()
        # Bumped whenever a template's data source changes; fetches issued under an older value are dropped.
        self._generations: Dict[str, int] = {}

    @property
    def live(self) -> DataBindingState:
        return self.state.data

    # --- hydration ---

    def hydrate(self, template_id: Optional[str]) -> Optional[Awaitable[Any]]:
        """Populate live data for ``template_id``.

        Cache hits and templates without data resolve synchronously. Otherwise
        the returned awaitable performs the fetch (or fallback matching) and
        must be scheduled by the caller.
        """
        template = self.state.template(template_id)
        if template is None:
            self._clear_live(None)
            return None

        entry = self.state.template_data_cache.get(template.id)
        if entry is not None:
            self._apply_entry(template.id, entry)
            return None

        config = template.data_source_config
        if template.data_source_id and config is not None and config.slug:
            self.state.data = DataBindingState(
                data_source_id=template.data_source_id,
                data_source_name=config.name,
                data_source_slug=config.slug,
                display_field=config.display_field,
                is_async_fetch=True,
                hydrated_template_id=template.id,
            )
            return self._fetch_and_commit(template.id, template.data_source_id, config, self._generation(template.id))

        self._clear_live(template.id)
        if self.bindings_for_template(template.id):
            return self.match_fallback_endpoint(template.id)
        return None

    async def _fetch_records(self, slug: str) -> List[Dict[str, Any]]:
        return await with_timeout(self.endpoints.fetch_records(slug), self.fetch_timeout_s, f"fetch_records({slug})")

    def _generation(self, template_id: str) -> int:
        return self._generations.get(template_id, 0)

    def _bump(self, template_id: str) -> int:
        self._generations[template_id] = self._generation(template_id) + 1
        return self._generations[template_id]

    def _is_stale(self, template_id: str, generation: int) -> bool:
        return self._generation(template_id) != generation

    async def _fetch_and_commit(
        self, template_id: str, data_source_id: str, config: DataSourceConfig, generation: int
    ) -> bool:
        try:
            records = await self._fetch_records(config.slug)
        except FETCH_ERRORS as exc:
            if self._is_stale(template_id, generation):
                return False
            logger.warning("Hydration fetch for template %s (%s) failed: %s", template_id, config.slug, exc)
            if self._is_current(template_id) and self.live.is_async_fetch:
                self.live.is_async_fetch = False
            return False
        if self._is_stale(template_id, generation):
            logger.debug("Dropping fetch for %s; its data source changed", template_id)
            return False

        entry = TemplateDataCacheEntry(
            data_source_id=data_source_id,
            data_source_name=config.name,
            data_source_slug=config.slug,
            records=records,
            display_field=config.display_field or detect_display_field(records),
            active_record_index=0,
        )
        # Always cache for the issuing template; only touch live state if it is still current.
        self.state.template_data_cache[template_id] = entry
        if self._is_current(template_id):
            self._apply_entry(template_id, entry)
        else:
            logger.debug("Discarding live commit for %s; current template changed", template_id)
        return True

    def _is_current(self, template_id: str) -> bool:
        return self.state.current_template_id == template_id

    def _apply_entry(self, template_id: str, entry: TemplateDataCacheEntry) -> None:
        last = max(0, len(entry.records) - 1)
        self.state.data = DataBindingState(
            data_source_id=entry.data_source_id,
            data_source_name=entry.data_source_name,
            data_source_slug=entry.data_source_slug,
            records=list(entry.records),
            display_field=entry.display_field,
            current_record_index=min(entry.active_record_index, last),
            hydrated_template_id=template_id,
        )

    def _clear_live(self, template_id: Optional[str]) -> None:
        self.state.data = DataBindingState(hydrated_template_id=template_id)

    def set_payload(self, template_id: str, records: List[Dict[str, Any]]) -> bool:
        """Optimistically assign records; refused while a fetch for the current template is outstanding."""
        if self.live.is_async_fetch and self._is_current(template_id):
            logger.info("Ignoring payload for %s while a fetch is in flight", template_id)
            return False
        entry = self.state.template_data_cache.get(template_id) or TemplateDataCacheEntry()
        entry.records = list(records)
        entry.active_record_index = 0
        self.state.template_data_cache[template_id] = entry
        if self._is_current(template_id):
            self._apply_entry(template_id, entry)
        return True

    async def match_fallback_endpoint(self, template_id: str) -> Optional[DataEndpoint]:
        """Link a template that has bindings but no data source to the first endpoint that fits."""
        template = self.state.template(template_id)
        keys = [b.binding_key for b in self.bindings_for_template(template_id)]
        if template is None or not keys or template.data_source_id:
            return None
        generation = self._generation(template_id)
        try:
            endpoints = await with_timeout(self.endpoints.list_endpoints(), self.fetch_timeout_s, "list_endpoints")
        except FETCH_ERRORS as exc:
            logger.warning("Fallback matching for %s could not list endpoints: %s", template_id, exc)
            return None

        for endpoint in endpoints:
            try:
                records = await self._fetch_records(endpoint.slug)
            except FETCH_ERRORS as exc:
                logger.warning("Fallback probe of %s failed: %s", endpoint.slug, exc)
                continue
            if self._is_stale(template_id, generation):
                return None
            if match_ratio(records, keys) >= FALLBACK_MATCH_THRESHOLD:
                logger.info("Template %s auto-linked to endpoint %s", template_id, endpoint.slug)
                self._associate(template_id, endpoint, records)
                return endpoint
        return None

    def _associate(self, template_id: str, endpoint: DataEndpoint, records: List[Dict[str, Any]]) -> TemplateDataCacheEntry:
        template = self.state.template(template_id)
        display_field = detect_display_field(records)
        template.data_source_id = endpoint.id
        template.data_source_config = DataSourceConfig(slug=endpoint.slug, name=endpoint.name, display_field=display_field)
        entry = TemplateDataCacheEntry(
            data_source_id=endpoint.id,
            data_source_name=endpoint.name,
            data_source_slug=endpoint.slug,
            records=records,
            display_field=display_field,
        )
        self.state.template_data_cache[template_id] = entry
        if self._is_current(template_id):
            self._apply_entry(template_id, entry)
        self.state.mark_dirty()
        return entry

    # --- data source selection ---

    async def select_data_source(self, template_id: str, endpoint: DataEndpoint) -> Optional[TemplateDataCacheEntry]:
        if self.state.template(template_id) is None:
            logger.warning("select_data_source: unknown template %s", template_id)
            return None
        generation = self._bump(template_id)
        if self._is_current(template_id):
            self.live.is_async_fetch = True
        try:
            records = await self._fetch_records(endpoint.slug)
        except FETCH_ERRORS as exc:
            if self._is_stale(template_id, generation):
                return None
            logger.warning("select_data_source %s failed: %s", endpoint.slug, exc)
            if self._is_current(template_id):
                self.live.is_async_fetch = False
            self.state.error = f"Failed to load data source {endpoint.name}: {exc}"
            return None
        if self._is_stale(template_id, generation):
            logger.debug("Dropping data source %s for %s; superseded", endpoint.slug, template_id)
            return None
        return self._associate(template_id, endpoint, records)

    def clear_data_source(self, template_id: str) -> bool:
        template = self.state.template(template_id)
        if template is None:
            return False
        self._bump(template_id)
        template.data_source_id = None
        template.data_source_config = None
        self.state.template_data_cache.pop(template_id, None)
        if self._is_current(template_id):
            self._clear_live(template_id)
        self.state.mark_dirty()
        return True

    def invalidate(self, template_id: str) -> None:
        """Drop the cached entry so the next selection refetches."""
        self._bump(template_id)
        self.state.template_data_cache.pop(template_id, None)

    # --- records ---

    def set_current_record_index(self, index: int) -> int:
        records = self.live.records
        clamped = max(0, min(int(index), len(records) - 1)) if records else 0
        self.live.current_record_index = clamped
        template_id = self.state.current_template_id
        entry = self.state.template_data_cache.get(template_id) if template_id else None
        if entry is not None:
            entry.active_record_index = clamped
        return clamped

    def next_record(self) -> int:
        return self.set_current_record_index(self.live.current_record_index + 1)

    def prev_record(self) -> int:
        return self.set_current_record_index(self.live.current_record_index - 1)

    def current_record(self) -> Optional[Dict[str, Any]]:
        records = self.live.records
        if not records:
            return None
        return records[self.live.current_record_index]

    # --- bindings ---

    def add_binding(
        self,
        element_id: str,
        binding_key: str,
        target_property: Optional[str] = None,
        binding_type: BindingType = BindingType.TEXT,
        **options: Any,
    ) -> Optional[str]:
        element = self.state.element(element_id)
        if element is None:
            logger.warning("add_binding: unknown element %s", element_id)
            return None
        binding = Binding(
            template_id=element.template_id,
            element_id=element_id,
            binding_key=binding_key,
            target_property=target_property or default_target_property(element.element_type),
            binding_type=BindingType(binding_type),
            **options,
        )
        self.state.bindings.append(binding)
        self.state.mark_dirty()
        self.history.push(f"Bind {binding_key}")
        return binding.id

    def delete_binding(self, binding_id: str) -> bool:
        before = len(self.state.bindings)
        self.state.bindings = [b for b in self.state.bindings if b.id != binding_id]
        if len(self.state.bindings) == before:
            return False
        self.state.pending_deletions.enqueue(EntityKind.BINDINGS, [binding_id])
        self.state.mark_dirty()
        self.history.push("Delete binding")
        return True

    def bindings_for_template(self, template_id: Optional[str]) -> List[Binding]:
        return [b for b in self.state.bindings if b.template_id == template_id]
