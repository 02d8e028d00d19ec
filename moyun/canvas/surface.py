"""Freehand ink surface.

Pointer input (mouse, pen or touch) is funnelled through :func:`surface_point`
into surface-local coordinates and painted onto a Pillow raster that is
upscaled by the device pixel ratio. The raster never leaves the surface except
as an encoded PNG snapshot.
"""

from __future__ import annotations

import base64
import io
import math
from dataclasses import dataclass, field

from PIL import Image, ImageChops, ImageColor, ImageDraw, ImageFilter

from moyun.config import CanvasStyle

PNG_MEDIA_TYPE = "image/png"


class EmptyCanvasError(ValueError):
    pass


@dataclass(frozen=True)
class BoundingRect:
    left: float = 0.0
    top: float = 0.0
    width: float = 0.0
    height: float = 0.0


@dataclass
class PointerEvent:
    kind: str = "mouse"
    client_x: float = 0.0
    client_y: float = 0.0
    touches: list[tuple[float, float]] = field(default_factory=list)
    default_prevented: bool = False

    @classmethod
    def mouse(cls, x: float, y: float) -> PointerEvent:
        return cls(kind="mouse", client_x=x, client_y=y)

    @classmethod
    def touch(cls, *points: tuple[float, float]) -> PointerEvent:
        return cls(kind="touch", touches=list(points))

    def prevent_default(self) -> None:
        self.default_prevented = True


def surface_point(event: PointerEvent, rect: BoundingRect) -> tuple[float, float]:
    if event.kind == "touch":
        if not event.touches:
            return 0.0, 0.0
        client_x, client_y = event.touches[0]
    else:
        client_x, client_y = event.client_x, event.client_y
    return client_x - rect.left, client_y - rect.top


class DrawingSurface:
    def __init__(self, style: CanvasStyle | None = None, *, dpr: float = 1.0) -> None:
        self.style = style or CanvasStyle()
        self.rect = BoundingRect(0.0, 0.0, float(self.style.width), float(self.style.height))
        self._ink = ImageColor.getrgb(self.style.ink_color)[:3]
        self.resize(self.style.width, self.style.height, dpr=dpr)

    @property
    def has_ink(self) -> bool:
        return self._has_ink

    @property
    def drawing(self) -> bool:
        return self._last is not None

    @property
    def pixel_size(self) -> tuple[int, int]:
        return self._raster.size

    def resize(self, width: int, height: int, *, dpr: float = 1.0) -> None:
        if width <= 0 or height <= 0:
            raise ValueError("surface size must be positive")
        if dpr <= 0:
            raise ValueError("device pixel ratio must be positive")
        self.width = int(width)
        self.height = int(height)
        self.dpr = float(dpr)
        self.rect = BoundingRect(self.rect.left, self.rect.top, float(self.width), float(self.height))
        size = (max(1, round(self.width * self.dpr)), max(1, round(self.height * self.dpr)))
        self._raster = Image.new("RGBA", size, (0, 0, 0, 0))
        self._last: tuple[float, float] | None = None
        self._has_ink = False

    def begin(self, event: PointerEvent) -> None:
        event.prevent_default()
        self._last = surface_point(event, self.rect)

    def extend(self, event: PointerEvent) -> None:
        event.prevent_default()
        if self._last is None:
            return
        point = surface_point(event, self.rect)
        self._paint_segment(self._last, point)
        self._last = point
        self._has_ink = True

    def end(self) -> None:
        self._last = None

    leave = end

    def reset(self) -> None:
        # Clear in raster pixels, which are dpr-scaled relative to the logical size.
        self._raster.paste((0, 0, 0, 0), (0, 0, *self._raster.size))
        self._last = None
        self._has_ink = False

    def replay(self, strokes: list[list[tuple[float, float]]]) -> None:
        for stroke in strokes:
            if not stroke:
                continue
            first_x, first_y = stroke[0]
            self.begin(PointerEvent.mouse(self.rect.left + first_x, self.rect.top + first_y))
            for x, y in stroke[1:]:
                self.extend(PointerEvent.mouse(self.rect.left + x, self.rect.top + y))
            self.end()

    def export(self) -> bytes:
        if not self._has_ink:
            raise EmptyCanvasError("canvas has no ink to export")
        buf = io.BytesIO()
        self._raster.save(buf, format="PNG")
        return buf.getvalue()

    def export_data_url(self) -> str:
        encoded = base64.b64encode(self.export()).decode("ascii")
        return f"data:{PNG_MEDIA_TYPE};base64,{encoded}"

    def _paint_segment(self, start: tuple[float, float], stop: tuple[float, float]) -> None:
        scale = self.dpr
        line_width = max(1.0, self.style.line_width * scale)
        blur = max(0.0, self.style.blur_radius * scale)
        x0, y0 = start[0] * scale, start[1] * scale
        x1, y1 = stop[0] * scale, stop[1] * scale

        pad = line_width / 2 + blur * 3 + 2
        raster_w, raster_h = self._raster.size
        left = max(0, math.floor(min(x0, x1) - pad))
        top = max(0, math.floor(min(y0, y1) - pad))
        right = min(raster_w, math.ceil(max(x0, x1) + pad))
        bottom = min(raster_h, math.ceil(max(y0, y1) + pad))
        if right <= left or bottom <= top:
            return

        mask = Image.new("L", (right - left, bottom - top), 0)
        draw = ImageDraw.Draw(mask)
        a = (x0 - left, y0 - top)
        b = (x1 - left, y1 - top)
        draw.line([a, b], fill=255, width=max(1, round(line_width)))
        radius = line_width / 2
        for cx, cy in (a, b):
            draw.ellipse([cx - radius, cy - radius, cx + radius, cy + radius], fill=255)
        if blur:
            mask = ImageChops.lighter(mask, mask.filter(ImageFilter.GaussianBlur(blur)))

        layer = Image.new("RGBA", mask.size, (*self._ink, 0))
        layer.putalpha(mask)
        self._raster.alpha_composite(layer, dest=(left, top))
