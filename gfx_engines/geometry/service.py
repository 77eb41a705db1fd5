"""Coordinate transforms, bounds union and fit-to-content."""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from gfx_engines.common.errors import ValidationError
from gfx_engines.geometry.models import (
    Bounds,
    FitChild,
    FitResult,
    Padding,
    Point,
    Rect,
    TextMeasurer,
)

logger = logging.getLogger(__name__)


def to_relative(point: Point, parent_origin: Point) -> Point:
    """Express an absolute point in the frame of ``parent_origin``."""
    return Point(x=point.x - parent_origin.x, y=point.y - parent_origin.y)


def to_absolute(point: Point, parent_origin: Point) -> Point:
    """Inverse of ``to_relative``."""
    return Point(x=point.x + parent_origin.x, y=point.y + parent_origin.y)


def union_bounds(rects: Iterable[Rect]) -> Bounds:
    """Smallest box covering every rect. Callers guard on at least one rect."""
    rects = list(rects)
    if not rects:
        raise ValidationError("union_bounds requires at least one rect")
    return Bounds(
        min_x=min(r.x for r in rects),
        min_y=min(r.y for r in rects),
        max_x=max(r.x + r.width for r in rects),
        max_y=max(r.y + r.height for r in rects),
    )


def _child_size(child: FitChild, measurer: Optional[TextMeasurer]) -> Tuple[float, float]:
    if child.width is not None and child.height is not None:
        return child.width, child.height
    if child.text is not None and measurer is not None:
        spec = child.text
        size = measurer.measure(
            spec.text,
            spec.font_family,
            spec.font_size,
            spec.font_weight,
            spec.font_style,
            spec.wrap_width,
        )
        width = child.width if child.width is not None else size.width
        height = child.height if child.height is not None else size.height
        return width, height
    if child.text is not None:
        logger.warning("No text measurer available for child %s; treating as 0x0", child.id)
    return child.width or 0.0, child.height or 0.0


def fit_to_content(
    parent: Rect,
    children: List[FitChild],
    padding: Optional[Padding] = None,
    measurer: Optional[TextMeasurer] = None,
) -> FitResult:
    """Resize ``parent`` around its children plus padding.

    Children positions come in relative to the current parent origin and are
    returned relative to the new one, so nothing moves on screen.
    """
    if not children:
        raise ValidationError("fit_to_content requires at least one child")
    padding = padding or Padding()
    origin = Point(x=parent.x, y=parent.y)

    absolute: List[Tuple[FitChild, Rect]] = []
    for child in children:
        width, height = _child_size(child, measurer)
        abs_pos = to_absolute(Point(x=child.x, y=child.y), origin)
        absolute.append((child, Rect(x=abs_pos.x, y=abs_pos.y, width=width, height=height)))

    bounds = union_bounds(rect for _, rect in absolute)
    new_parent = Rect(
        x=bounds.min_x - padding.left,
        y=bounds.min_y - padding.top,
        width=bounds.width + padding.left + padding.right,
        height=bounds.height + padding.top + padding.bottom,
    )
    new_origin = Point(x=new_parent.x, y=new_parent.y)
    positions = {
        child.id: to_relative(Point(x=rect.x, y=rect.y), new_origin)
        for child, rect in absolute
    }
    return FitResult(parent=new_parent, child_positions=positions)
