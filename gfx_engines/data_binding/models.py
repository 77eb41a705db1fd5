"""Data binding models: bindings, endpoints and the per-template cache."""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Share of a template's binding keys an endpoint must resolve to be auto-linked.
FALLBACK_MATCH_THRESHOLD = 0.5


class BindingType(str, Enum):
    TEXT = "text"
    NUMBER = "number"
    IMAGE = "image"
    COLOR = "color"
    BOOLEAN = "boolean"


class Binding(BaseModel):
    """Links an element property to a field of the active data record."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    template_id: str
    element_id: str
    binding_key: str
    target_property: str
    binding_type: BindingType = BindingType.TEXT
    default_value: Optional[str] = None
    formatter: Optional[str] = None
    formatter_options: Optional[Dict[str, Any]] = None
    required: bool = False


class DataEndpoint(BaseModel):
    id: str
    name: str
    slug: str


class DataSourceConfig(BaseModel):
    """Data-source declaration stored on a template."""
    slug: Optional[str] = None
    name: Optional[str] = None
    display_field: Optional[str] = None


class TemplateDataCacheEntry(BaseModel):
    data_source_id: Optional[str] = None
    data_source_name: Optional[str] = None
    data_source_slug: Optional[str] = None
    records: List[Dict[str, Any]] = Field(default_factory=list)
    display_field: Optional[str] = None
    active_record_index: int = 0


class DataBindingState(BaseModel):
    """Live data fields for the current template."""
    data_source_id: Optional[str] = None
    data_source_name: Optional[str] = None
    data_source_slug: Optional[str] = None
    records: List[Dict[str, Any]] = Field(default_factory=list)
    display_field: Optional[str] = None
    current_record_index: int = 0
    is_async_fetch: bool = False
    hydrated_template_id: Optional[str] = None
