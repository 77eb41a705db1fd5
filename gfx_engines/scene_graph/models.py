"""Scene graph models: elements and their typed content."""
from __future__ import annotations

import uuid
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class ElementType(str, Enum):
    DIV = "div"
    TEXT = "text"
    LINE = "line"
    IMAGE = "image"
    SHAPE = "shape"
    GROUP = "group"
    VIDEO = "video"
    LOTTIE = "lottie"
    CHART = "d3-chart"
    MAP = "map"
    TICKER = "ticker"
    TOPIC_BADGE = "topic-badge"
    SVG = "svg"
    ICON = "icon"
    TABLE = "table"
    COUNTDOWN = "countdown"


# --- Content variants (one tag per element kind) ---

class _Content(BaseModel):
    # Unknown keys from older saves are preserved on round-trip.
    model_config = ConfigDict(extra="allow")


class DivContent(_Content):
    type: Literal["div"] = "div"
    fit_to_content: bool = False
    padding: Optional[Dict[str, float]] = None


class GroupContent(_Content):
    type: Literal["group"] = "group"
    fit_to_content: bool = False
    padding: Optional[Dict[str, float]] = None


class TextContent(_Content):
    type: Literal["text"] = "text"
    text: str = "New Text"


class LinePoint(BaseModel):
    x: float
    y: float


class LineArrow(BaseModel):
    enabled: bool = False
    type: str = "none"


class LineContent(_Content):
    type: Literal["line"] = "line"
    points: List[LinePoint] = Field(default_factory=lambda: [LinePoint(x=0, y=1), LinePoint(x=200, y=1)])
    stroke: str = "#FFFFFF"
    stroke_width: float = 2
    stroke_linecap: str = "round"
    stroke_linejoin: str = "round"
    arrow_start: LineArrow = Field(default_factory=LineArrow)
    arrow_end: LineArrow = Field(default_factory=LineArrow)
    opacity: float = 1


class ImageContent(_Content):
    type: Literal["image"] = "image"
    src: str = ""
    fit: str = "cover"


class ShapeContent(_Content):
    type: Literal["shape"] = "shape"
    shape: str = "rectangle"
    fill: str = "#3B82F6"


class ChartContent(_Content):
    type: Literal["chart"] = "chart"
    chart_type: str = "bar"
    data: Dict[str, Any] = Field(default_factory=dict)
    options: Dict[str, Any] = Field(default_factory=dict)


class MapContent(_Content):
    type: Literal["map"] = "map"
    map_style: str = "dark"
    center: Tuple[float, float] = (-74.006, 40.7128)
    zoom: float = 12
    pitch: float = 0
    bearing: float = 0
    markers: List[Dict[str, Any]] = Field(default_factory=list)


class VideoContent(_Content):
    type: Literal["video"] = "video"
    src: str = ""
    loop: bool = True
    muted: bool = True
    autoplay: bool = True
    video_type: str = "file"


class LottieContent(_Content):
    type: Literal["lottie"] = "lottie"
    src: str = ""
    loop: bool = True
    autoplay: bool = True


class TickerItem(BaseModel):
    id: str
    content: str


class TickerContent(_Content):
    type: Literal["ticker"] = "ticker"
    items: List[TickerItem] = Field(default_factory=list)
    config: Dict[str, Any] = Field(default_factory=dict)


class TopicBadgeContent(_Content):
    type: Literal["topic-badge"] = "topic-badge"
    default_topic: str = "news"
    show_icon: bool = True
    animated: bool = True


class SvgContent(_Content):
    type: Literal["svg"] = "svg"
    svg_content: str = ""
    preserve_aspect_ratio: str = "xMidYMid meet"


class IconContent(_Content):
    type: Literal["icon"] = "icon"
    library: str = "lucide"
    icon_name: str = "Sparkles"
    size: float = 48
    color: str = "#FFFFFF"


class TableContent(_Content):
    type: Literal["table"] = "table"
    columns: List[Dict[str, Any]] = Field(default_factory=list)
    data: List[Dict[str, Any]] = Field(default_factory=list)
    show_header: bool = True
    striped: bool = False
    bordered: bool = False
    compact: bool = False


class CountdownContent(_Content):
    type: Literal["countdown"] = "countdown"
    mode: str = "duration"
    duration_seconds: int = 60
    target_datetime: Optional[str] = None
    show_days: bool = True
    show_hours: bool = True
    show_minutes: bool = True
    show_seconds: bool = True
    show_milliseconds: bool = False
    show_labels: bool = True
    separator: str = ":"
    pad_zeros: bool = True
    on_complete: str = "stop"
    clock_format: str = "24h"
    show_date: bool = False
    timezone: str = "local"


ElementContent = Annotated[
    Union[
        DivContent,
        GroupContent,
        TextContent,
        LineContent,
        ImageContent,
        ShapeContent,
        ChartContent,
        MapContent,
        VideoContent,
        LottieContent,
        TickerContent,
        TopicBadgeContent,
        SvgContent,
        IconContent,
        TableContent,
        CountdownContent,
    ],
    Field(discriminator="type"),
]


class Element(BaseModel):
    """A node in a template's scene tree. Positions are relative to the parent."""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    template_id: str
    name: str = "Element"
    element_id: str = ""
    element_type: ElementType = ElementType.DIV
    parent_element_id: Optional[str] = None
    sort_order: int = 0
    z_index: int = 0

    position_x: float = 0.0
    position_y: float = 0.0
    width: Optional[float] = None
    height: Optional[float] = None
    rotation: float = 0.0
    scale_x: float = 1.0
    scale_y: float = 1.0
    anchor_x: float = 0.5
    anchor_y: float = 0.5
    opacity: float = 1.0

    content: ElementContent = Field(default_factory=DivContent)
    styles: Dict[str, Union[str, float, int]] = Field(default_factory=dict)
    classes: List[str] = Field(default_factory=list)
    visible: bool = True
    locked: bool = False
