"""Type -> defaults table for newly created elements.

Every ElementType has exactly one row; ``defaults_for`` fails loudly if a new
type is added without one.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Union

from gfx_engines.scene_graph.models import (
    ChartContent,
    CountdownContent,
    DivContent,
    ElementType,
    GroupContent,
    IconContent,
    ImageContent,
    LineContent,
    LottieContent,
    MapContent,
    ShapeContent,
    SvgContent,
    TableContent,
    TextContent,
    TickerContent,
    TickerItem,
    TopicBadgeContent,
    VideoContent,
)

VIDEO_Z_INDEX = 0
TICKER_Z_INDEX = 500
Z_STEP = 10


@dataclass(frozen=True)
class ElementDefaults:
    name: str
    content: Callable[[], object]
    width: Optional[float] = 200
    height: Optional[float] = 100
    styles: Dict[str, Union[str, int, float]] = field(default_factory=dict)


def _chart_content() -> ChartContent:
    return ChartContent(
        data={
            "labels": ["Team A", "Team B", "Team C", "Team D"],
            "datasets": [{"label": "Points", "data": [65, 59, 80, 45]}],
        },
        options={"showLegend": True, "animated": True},
    )


def _ticker_content() -> TickerContent:
    return TickerContent(
        items=[
            TickerItem(id="1", content="Breaking: First ticker item"),
            TickerItem(id="2", content="Second ticker item with more text"),
            TickerItem(id="3", content="Third ticker item"),
        ],
        config={
            "mode": "scroll",
            "direction": "left",
            "speed": 50,
            "pauseOnHover": True,
            "delay": 3000,
            "gap": 60,
            "loop": True,
            "gradient": True,
            "gradientWidth": 50,
        },
    )


def _table_content() -> TableContent:
    return TableContent(
        columns=[
            {"id": "col1", "header": "Team", "accessorKey": "team", "width": 200, "align": "left", "format": "text"},
            {"id": "col2", "header": "W", "accessorKey": "wins", "width": 80, "align": "center", "format": "number"},
            {"id": "col3", "header": "L", "accessorKey": "losses", "width": 80, "align": "center", "format": "number"},
            {"id": "col4", "header": "PCT", "accessorKey": "pct", "width": 100, "align": "right", "format": "percentage"},
        ],
        data=[
            {"id": "row1", "team": "Team A", "wins": 10, "losses": 2, "pct": 0.833},
            {"id": "row2", "team": "Team B", "wins": 8, "losses": 4, "pct": 0.667},
            {"id": "row3", "team": "Team C", "wins": 6, "losses": 6, "pct": 0.5},
        ],
    )


_TEXT_STYLES = {"fontSize": "32px", "fontFamily": "Inter", "fontWeight": 600, "color": "#FFFFFF"}
_COUNTDOWN_STYLES = {"fontSize": "48px", "fontFamily": "Inter", "fontWeight": 700, "color": "#FFFFFF"}

DEFAULTS: Dict[ElementType, ElementDefaults] = {
    ElementType.DIV: ElementDefaults("Container", DivContent),
    ElementType.TEXT: ElementDefaults("Text", TextContent, width=None, height=None, styles=_TEXT_STYLES),
    ElementType.LINE: ElementDefaults("Line", LineContent, width=200, height=2),
    ElementType.IMAGE: ElementDefaults("Image", ImageContent),
    ElementType.SHAPE: ElementDefaults("Shape", ShapeContent, styles={"borderRadius": "8px"}),
    ElementType.GROUP: ElementDefaults("Group", GroupContent),
    ElementType.VIDEO: ElementDefaults("Video", VideoContent),
    ElementType.LOTTIE: ElementDefaults("Lottie", LottieContent),
    ElementType.CHART: ElementDefaults("Chart", _chart_content),
    ElementType.MAP: ElementDefaults("Map", MapContent),
    ElementType.TICKER: ElementDefaults("Ticker", _ticker_content),
    ElementType.TOPIC_BADGE: ElementDefaults("Topic Badge", TopicBadgeContent),
    ElementType.SVG: ElementDefaults("SVG", SvgContent),
    ElementType.ICON: ElementDefaults("Icon", IconContent),
    ElementType.TABLE: ElementDefaults("Table", _table_content),
    ElementType.COUNTDOWN: ElementDefaults("Countdown", CountdownContent, styles=_COUNTDOWN_STYLES),
}


def defaults_for(element_type: ElementType) -> ElementDefaults:
    try:
        return DEFAULTS[ElementType(element_type)]
    except KeyError as exc:  # pragma: no cover
        raise KeyError(f"No defaults registered for element type {element_type!r}") from exc


def pinned_z_index(element_type: ElementType, current_max: Optional[int]) -> int:
    """z-index for a new element: video at the bottom, ticker fixed, others on top."""
    element_type = ElementType(element_type)
    if element_type == ElementType.VIDEO:
        return VIDEO_Z_INDEX
    if element_type == ElementType.TICKER:
        return TICKER_Z_INDEX
    return (current_max or 0) + Z_STEP
