"""Pillow-backed text measurement used by fit-to-content."""
from __future__ import annotations

import logging
import re
from collections import OrderedDict
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from PIL import ImageFont

from gfx_engines.geometry.models import TextSize

logger = logging.getLogger(__name__)

_WEIGHT_NAMES = {
    "thin": 100,
    "extralight": 200,
    "light": 300,
    "normal": 400,
    "regular": 400,
    "medium": 500,
    "semibold": 600,
    "bold": 700,
    "extrabold": 800,
    "black": 900,
}


def parse_font_size(size: Union[float, int, str, None]) -> float:
    """CSS font-size to pixels (px, pt, em/rem against a 16px base)."""
    if size is None:
        return 16.0
    if isinstance(size, (int, float)):
        return float(size)
    value = size.strip().lower()
    match = re.match(r"^(-?\d+(?:\.\d+)?)", value)
    if not match:
        return 16.0
    number = float(match.group(1))
    if value.endswith("pt"):
        return number * 1.333
    if value.endswith("rem") or value.endswith("em"):
        return number * 16
    return number


def parse_font_weight(weight: Union[int, str, None]) -> int:
    if weight is None:
        return 400
    if isinstance(weight, int):
        return weight
    normalized = re.sub(r"[-_\s]", "", weight.lower())
    if normalized in _WEIGHT_NAMES:
        return _WEIGHT_NAMES[normalized]
    try:
        return int(normalized)
    except ValueError:
        return 400


class PillowTextMeasurer:
    """Measures text with FreeType fonts, wrapping on word boundaries.

    ``font_paths`` maps a family (optionally ``"Family:700"`` or
    ``"Family:700:italic"``) to a font file. Unknown families fall back to
    Pillow's bundled default font at the requested size.
    """

    def __init__(self, font_paths: Optional[Dict[str, str]] = None, cache_limit: int = 128):
        self._font_paths = {k.lower(): v for k, v in (font_paths or {}).items()}
        self._fonts: Dict[Tuple[str, int, str, int], ImageFont.ImageFont] = {}
        self._cache: "OrderedDict[tuple, TextSize]" = OrderedDict()
        self._cache_limit = cache_limit

    def measure(
        self,
        text: str,
        font_family: str,
        font_size: Union[float, str],
        font_weight: Union[int, str] = 400,
        font_style: str = "normal",
        wrap_width: Optional[float] = None,
    ) -> TextSize:
        size_px = parse_font_size(font_size)
        weight = parse_font_weight(font_weight)
        key = (text, font_family, size_px, weight, font_style, wrap_width)
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        font = self._resolve_font(font_family, size_px, weight, font_style)
        lines = self._wrap_text(text, font, wrap_width)
        width = max((self._measure_line(line, font) for line in lines), default=0.0)
        line_height = self._line_height(font)
        result = TextSize(width=float(width), height=float(line_height * len(lines)))

        self._cache[key] = result
        if len(self._cache) > self._cache_limit:
            self._cache.popitem(last=False)
        return result

    def _resolve_font(self, family: str, size_px: float, weight: int, style: str):
        clean = family.replace('"', "").replace("'", "").split(",")[0].strip()
        cache_key = (clean.lower(), weight, style, int(round(size_px)))
        if cache_key in self._fonts:
            return self._fonts[cache_key]

        candidates = [
            f"{clean}:{weight}:{style}".lower(),
            f"{clean}:{weight}".lower(),
            clean.lower(),
        ]
        font = None
        for candidate in candidates:
            path = self._font_paths.get(candidate)
            if not path:
                continue
            try:
                font = ImageFont.truetype(str(Path(path)), size=max(1, int(round(size_px))))
                break
            except OSError as exc:
                logger.warning("Font %s could not be loaded from %s: %s", clean, path, exc)
        if font is None:
            try:
                font = ImageFont.truetype(f"{clean}.ttf", size=max(1, int(round(size_px))))
            except OSError:
                font = ImageFont.load_default(size=max(1, int(round(size_px))))
        self._fonts[cache_key] = font
        return font

    def _wrap_text(self, text: str, font, wrap_width: Optional[float]) -> List[str]:
        if not text:
            return [""]
        lines: List[str] = []
        for raw_line in text.splitlines() or [""]:
            if wrap_width is None:
                lines.append(raw_line)
                continue
            current: List[str] = []
            for word in raw_line.split(" "):
                candidate = " ".join(current + [word]).strip() or word
                if self._measure_line(candidate, font) <= wrap_width:
                    current.append(word)
                elif current:
                    lines.append(" ".join(current).strip())
                    current = [word]
                else:
                    lines.append(word)
            if current:
                lines.append(" ".join(current).strip())
            elif not raw_line:
                lines.append("")
        return lines or [""]

    def _measure_line(self, line: str, font) -> float:
        if not line:
            return 0.0
        left, _, right, _ = font.getbbox(line)
        return float(right - left)

    def _line_height(self, font) -> float:
        try:
            ascent, descent = font.getmetrics()
            return float(ascent + descent)
        except AttributeError:
            _, top, _, bottom = font.getbbox("Mg")
            return float(bottom - top)
