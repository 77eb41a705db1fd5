"""Geometry value types shared by the scene graph and fit-to-content."""
from __future__ import annotations

from typing import Dict, Optional, Protocol, Union

from pydantic import BaseModel, Field


class Point(BaseModel):
    x: float = 0.0
    y: float = 0.0


class Rect(BaseModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class Bounds(BaseModel):
    """Axis-aligned box in min/max form."""
    min_x: float
    min_y: float
    max_x: float
    max_y: float

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y


class Padding(BaseModel):
    top: float = 16.0
    right: float = 16.0
    bottom: float = 16.0
    left: float = 16.0


class TextSpec(BaseModel):
    """What a text child needs measured when it has no stored size."""
    text: str
    font_family: str = "Inter"
    font_size: Union[float, str] = 16
    font_weight: Union[int, str] = 400
    font_style: str = "normal"
    wrap_width: Optional[float] = None


class FitChild(BaseModel):
    """A child participating in fit-to-content; x/y relative to the parent."""
    id: str
    x: float
    y: float
    width: Optional[float] = None
    height: Optional[float] = None
    text: Optional[TextSpec] = None


class FitResult(BaseModel):
    parent: Rect
    child_positions: Dict[str, Point] = Field(default_factory=dict)


class TextSize(BaseModel):
    width: float
    height: float


class TextMeasurer(Protocol):
    """Collaborator that measures rendered text."""

    def measure(
        self,
        text: str,
        font_family: str,
        font_size: Union[float, str],
        font_weight: Union[int, str] = 400,
        font_style: str = "normal",
        wrap_width: Optional[float] = None,
    ) -> TextSize:
        ...
