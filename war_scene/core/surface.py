"""
Raster drawing surface with a canvas-style 2D API.

Pixels are stored as premultiplied float32 RGBA. Filled paths are
rasterised into an anti-aliased coverage mask with Pillow's ``ImageDraw``
(supersampled) and then composited with NumPy, using either the
``source-over`` or the additive ``lighter`` operator.

Path coordinates are transformed by the current transform when they are
added to the path. Gradients live in user space and are evaluated through
the inverse of the transform in effect at fill time.
"""

import math
import re

import numpy as np
from PIL import Image, ImageDraw
from typing import List, Optional, Sequence, Tuple, Union

from .errors import SurfaceUnavailable

RGBA = Tuple[float, float, float, float]
ColorLike = Union[str, Sequence[float]]

COMPOSITE_OPERATIONS = ("source-over", "lighter")

# Rows are composited in bands of roughly this many pixels
_BAND_PIXELS = 1 << 20

_RGB_FUNC = re.compile(r"^rgba?\(\s*([^)]*)\)$")


def parse_color(value: ColorLike) -> RGBA:
    """
    Parse a CSS-like colour into non-premultiplied RGBA floats in [0, 1].

    Accepts ``#rgb``, ``#rrggbb``, ``rgb(r,g,b)``, ``rgba(r,g,b,a)`` and
    tuples of 3 or 4 numbers (channels 0-255, alpha 0-1).
    """
    if isinstance(value, str):
        text = value.strip().lower()
        if text.startswith("#"):
            digits = text[1:]
            if len(digits) == 3:
                digits = "".join(ch * 2 for ch in digits)
            if len(digits) != 6:
                raise ValueError(f"Invalid hex colour: {value!r}")
            try:
                r, g, b = (int(digits[i:i + 2], 16) for i in (0, 2, 4))
            except ValueError:
                raise ValueError(f"Invalid hex colour: {value!r}") from None
            return (r / 255.0, g / 255.0, b / 255.0, 1.0)

        match = _RGB_FUNC.match(text)
        if not match:
            raise ValueError(f"Unsupported colour: {value!r}")
        try:
            parts = [float(part) for part in match.group(1).split(",")]
        except ValueError:
            raise ValueError(f"Invalid colour components: {value!r}") from None
        return parse_color(parts)

    components = [float(c) for c in value]
    if len(components) == 3:
        components.append(1.0)
    if len(components) != 4:
        raise ValueError(f"Colour needs 3 or 4 components, got {len(components)}")
    r, g, b, a = components
    return (_clamp(r, 255.0) / 255.0, _clamp(g, 255.0) / 255.0,
            _clamp(b, 255.0) / 255.0, _clamp(a, 1.0))


def _clamp(value: float, upper: float) -> float:
    return min(max(value, 0.0), upper)


class Gradient:
    """Base class for multi-stop gradients defined in user space."""

    def __init__(self):
        self.stops: List[Tuple[float, RGBA]] = []

    def add_color_stop(self, offset: float, color: ColorLike) -> None:
        """Add a colour stop at ``offset`` in [0, 1]."""
        if not 0.0 <= offset <= 1.0:
            raise ValueError(f"Gradient stop offset must be in [0, 1], got {offset}")
        self.stops.append((float(offset), parse_color(color)))
        # Stable sort keeps insertion order for equal offsets
        self.stops.sort(key=lambda stop: stop[0])

    def colors_at(self, t: np.ndarray) -> np.ndarray:
        """Interpolate non-premultiplied colours for parameter values ``t``."""
        out = np.zeros(t.shape + (4,), dtype=np.float64)
        if not self.stops:
            return out
        offsets = np.array([stop[0] for stop in self.stops])
        colors = np.array([stop[1] for stop in self.stops])
        t = np.clip(t, 0.0, 1.0)
        for channel in range(4):
            out[..., channel] = np.interp(t, offsets, colors[:, channel])
        return out

    def parameter(self, ux: np.ndarray, uy: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Return gradient parameter and validity mask for user-space points."""
        raise NotImplementedError

    def shade(self, ux: np.ndarray, uy: np.ndarray) -> np.ndarray:
        """Premultiplied colours for user-space points."""
        t, valid = self.parameter(ux, uy)
        colors = self.colors_at(t)
        colors[..., :3] *= colors[..., 3:4]
        colors[~valid] = 0.0
        return colors


class LinearGradient(Gradient):
    """Gradient along the line from (x0, y0) to (x1, y1)."""

    def __init__(self, x0: float, y0: float, x1: float, y1: float):
        super().__init__()
        self.x0, self.y0, self.x1, self.y1 = x0, y0, x1, y1

    def parameter(self, ux, uy):
        dx = self.x1 - self.x0
        dy = self.y1 - self.y0
        length_sq = dx * dx + dy * dy
        if length_sq == 0:
            # Degenerate line paints nothing
            return np.zeros_like(ux), np.zeros(ux.shape, dtype=bool)
        t = ((ux - self.x0) * dx + (uy - self.y0) * dy) / length_sq
        return t, np.ones(ux.shape, dtype=bool)


class RadialGradient(Gradient):
    """Two-circle radial gradient from (x0, y0, r0) to (x1, y1, r1)."""

    def __init__(self, x0: float, y0: float, r0: float, x1: float, y1: float, r1: float):
        if r0 < 0 or r1 < 0:
            raise ValueError("Radial gradient radii must be non-negative")
        super().__init__()
        self.x0, self.y0, self.r0 = x0, y0, r0
        self.x1, self.y1, self.r1 = x1, y1, r1

    def parameter(self, ux, uy):
        cdx = self.x1 - self.x0
        cdy = self.y1 - self.y0
        dr = self.r1 - self.r0
        if cdx == 0 and cdy == 0 and dr == 0:
            return np.zeros_like(ux), np.zeros(ux.shape, dtype=bool)

        pdx = ux - self.x0
        pdy = uy - self.y0
        a = cdx * cdx + cdy * cdy - dr * dr
        b = pdx * cdx + pdy * cdy + self.r0 * dr
        c = pdx * pdx + pdy * pdy - self.r0 * self.r0

        if abs(a) < 1e-12:
            with np.errstate(divide="ignore", invalid="ignore"):
                t = c / (2 * b)
            valid = (b != 0) & (self.r0 + t * dr >= 0)
            return np.where(valid, t, 0.0), valid

        disc = b * b - a * c
        root = np.sqrt(np.maximum(disc, 0.0))
        t_hi = np.maximum((b + root) / a, (b - root) / a)
        t_lo = np.minimum((b + root) / a, (b - root) / a)
        hi_ok = self.r0 + t_hi * dr >= 0
        lo_ok = self.r0 + t_lo * dr >= 0
        t = np.where(hi_ok, t_hi, t_lo)
        valid = (disc >= 0) & (hi_ok | lo_ok)
        return np.where(valid, t, 0.0), valid


class DrawingSurface:
    """
    Addressable RGBA raster with filled paths, gradients and a transform stack.

    Args:
        width: Width in device pixels
        height: Height in device pixels
        antialias: Supersampling factor for coverage masks (1 disables)
        max_mask_pixels: Budget for one supersampled mask; larger fills
            fall back to a lower supersampling factor
    """

    def __init__(self, width: int, height: int, antialias: int = 4,
                 max_mask_pixels: int = 8_000_000):
        if int(width) <= 0 or int(height) <= 0:
            raise SurfaceUnavailable(f"Cannot create a {width}x{height} surface")
        self.width = int(width)
        self.height = int(height)
        self.antialias = max(1, int(antialias))
        self.max_mask_pixels = max(1, int(max_mask_pixels))
        try:
            self._pixels = np.zeros((self.height, self.width, 4), dtype=np.float32)
        except MemoryError as e:
            raise SurfaceUnavailable(
                f"Not enough memory for a {self.width}x{self.height} surface"
            ) from e

        self._transform = np.identity(3)
        self._state_stack: list = []
        self._fill_style: Union[RGBA, Gradient] = (0.0, 0.0, 0.0, 1.0)
        self._composite_operation = "source-over"
        self._subpaths: List[List[Tuple[float, float]]] = []
        self.fill_count = 0

    # State

    @property
    def fill_style(self) -> Union[RGBA, Gradient]:
        return self._fill_style

    @fill_style.setter
    def fill_style(self, value: Union[ColorLike, Gradient]) -> None:
        if isinstance(value, Gradient):
            self._fill_style = value
        else:
            self._fill_style = parse_color(value)

    @property
    def composite_operation(self) -> str:
        return self._composite_operation

    @composite_operation.setter
    def composite_operation(self, value: str) -> None:
        if value not in COMPOSITE_OPERATIONS:
            raise ValueError(
                f"Unsupported composite operation {value!r}; expected one of {COMPOSITE_OPERATIONS}"
            )
        self._composite_operation = value

    def save(self) -> None:
        """Push transform, fill style and composite operation."""
        self._state_stack.append(
            (self._transform.copy(), self._fill_style, self._composite_operation)
        )

    def restore(self) -> None:
        """Pop the state pushed by the matching :meth:`save`."""
        if not self._state_stack:
            return
        self._transform, self._fill_style, self._composite_operation = self._state_stack.pop()

    # Transforms

    @property
    def transform(self) -> np.ndarray:
        return self._transform.copy()

    def set_transform(self, a: float, b: float, c: float, d: float, e: float, f: float) -> None:
        self._transform = np.array([[a, c, e], [b, d, f], [0.0, 0.0, 1.0]])

    def reset_transform(self) -> None:
        self._transform = np.identity(3)

    def translate(self, tx: float, ty: float) -> None:
        self._transform = self._transform @ np.array(
            [[1.0, 0.0, tx], [0.0, 1.0, ty], [0.0, 0.0, 1.0]]
        )

    def rotate(self, angle: float) -> None:
        cos_a = math.cos(angle)
        sin_a = math.sin(angle)
        self._transform = self._transform @ np.array(
            [[cos_a, -sin_a, 0.0], [sin_a, cos_a, 0.0], [0.0, 0.0, 1.0]]
        )

    def scale(self, sx: float, sy: float) -> None:
        self._transform = self._transform @ np.array(
            [[sx, 0.0, 0.0], [0.0, sy, 0.0], [0.0, 0.0, 1.0]]
        )

    def _to_device(self, x: float, y: float) -> Tuple[float, float]:
        m = self._transform
        return (m[0, 0] * x + m[0, 1] * y + m[0, 2],
                m[1, 0] * x + m[1, 1] * y + m[1, 2])

    # Paths

    def begin_path(self) -> None:
        self._subpaths = []

    def move_to(self, x: float, y: float) -> None:
        self._subpaths.append([self._to_device(x, y)])

    def line_to(self, x: float, y: float) -> None:
        if not self._subpaths:
            self.move_to(x, y)
            return
        self._subpaths[-1].append(self._to_device(x, y))

    def close_path(self) -> None:
        if self._subpaths and self._subpaths[-1]:
            self._subpaths.append([self._subpaths[-1][0]])

    def arc(self, x: float, y: float, radius: float, start_angle: float,
            end_angle: float, anticlockwise: bool = False) -> None:
        """Append a circular arc, connected by a line from the current point."""
        if radius < 0:
            raise ValueError("Arc radius must be non-negative")
        full_turn = 2 * math.pi
        if not anticlockwise:
            sweep = end_angle - start_angle
            sweep = full_turn if sweep >= full_turn else sweep % full_turn
        else:
            sweep = start_angle - end_angle
            sweep = -full_turn if sweep >= full_turn else -(sweep % full_turn)

        device_scale = math.sqrt(abs(np.linalg.det(self._transform[:2, :2])))
        arc_length = abs(sweep) * radius * device_scale
        segments = int(min(4096, max(16, math.ceil(arc_length / 2.0))))
        for k in range(segments + 1):
            angle = start_angle + sweep * k / segments
            self.line_to(x + radius * math.cos(angle), y + radius * math.sin(angle))

    def rect(self, x: float, y: float, w: float, h: float) -> None:
        self.move_to(x, y)
        self.line_to(x + w, y)
        self.line_to(x + w, y + h)
        self.line_to(x, y + h)
        self.close_path()

    def fill(self) -> None:
        """Fill the current path with the current fill style."""
        self._fill_polygons(self._subpaths)

    def fill_rect(self, x: float, y: float, w: float, h: float) -> None:
        """Fill a rectangle without touching the current path."""
        if w == 0 or h == 0:
            return
        corners = [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]
        self._fill_polygons([[self._to_device(px, py) for px, py in corners]])

    def clear(self) -> None:
        """Reset every pixel to transparent black."""
        self._pixels.fill(0.0)

    def clear_rect(self, x: float, y: float, w: float, h: float) -> None:
        """Clear a (transformed) rectangle to transparent black."""
        corners = [(x, y), (x + w, y), (x + w, y + h), (x, y + h)]
        polygon = [self._to_device(px, py) for px, py in corners]
        region = self._coverage([polygon])
        if region is None:
            return
        coverage, x0, y0 = region
        h_px, w_px = coverage.shape
        self._pixels[y0:y0 + h_px, x0:x0 + w_px] *= (1.0 - coverage)[..., None]

    # Gradients

    def create_linear_gradient(self, x0: float, y0: float, x1: float, y1: float) -> LinearGradient:
        return LinearGradient(x0, y0, x1, y1)

    def create_radial_gradient(self, x0: float, y0: float, r0: float,
                               x1: float, y1: float, r1: float) -> RadialGradient:
        return RadialGradient(x0, y0, r0, x1, y1, r1)

    # Rasterisation

    def _coverage(self, polygons) -> Optional[Tuple[np.ndarray, int, int]]:
        """Anti-aliased coverage of ``polygons`` over their clipped bounding box."""
        polygons = [poly for poly in polygons if len(poly) >= 3 and _polygon_area(poly) > 1e-12]
        if not polygons:
            return None

        xs = [x for poly in polygons for x, _ in poly]
        ys = [y for poly in polygons for _, y in poly]
        x0 = max(0, int(math.floor(min(xs))))
        y0 = max(0, int(math.floor(min(ys))))
        x1 = min(self.width, int(math.ceil(max(xs))))
        y1 = min(self.height, int(math.ceil(max(ys))))
        if x1 <= x0 or y1 <= y0:
            return None
        box_w = x1 - x0
        box_h = y1 - y0

        ss = self.antialias
        while ss > 1 and box_w * box_h * ss * ss > self.max_mask_pixels:
            ss -= 1

        mask = Image.new("L", (box_w * ss, box_h * ss), 0)
        draw = ImageDraw.Draw(mask)
        for poly in polygons:
            # Pillow samples at integer coordinates; shift so they land on sub-pixel centres
            points = [((px - x0) * ss - 0.5, (py - y0) * ss - 0.5) for px, py in poly]
            draw.polygon(points, fill=255)

        coverage = np.asarray(mask, dtype=np.float32)
        if ss > 1:
            coverage = coverage.reshape(box_h, ss, box_w, ss).mean(axis=(1, 3))
        return coverage / 255.0, x0, y0

    def _source(self, x0: int, y0: int, cols: int, rows: int) -> np.ndarray:
        """Premultiplied source colour for a block of device pixels."""
        style = self._fill_style
        if not isinstance(style, Gradient):
            r, g, b, a = style
            return np.array([r * a, g * a, b * a, a])

        inverse = np.linalg.inv(self._transform)
        px = x0 + np.arange(cols) + 0.5
        py = y0 + np.arange(rows) + 0.5
        gx, gy = np.meshgrid(px, py)
        ux = inverse[0, 0] * gx + inverse[0, 1] * gy + inverse[0, 2]
        uy = inverse[1, 0] * gx + inverse[1, 1] * gy + inverse[1, 2]
        return style.shade(ux, uy)

    def _fill_polygons(self, polygons) -> None:
        region = self._coverage(polygons)
        if region is None:
            return
        coverage, x0, y0 = region
        box_h, box_w = coverage.shape
        band = max(1, _BAND_PIXELS // box_w)

        for start in range(0, box_h, band):
            stop = min(box_h, start + band)
            cov = coverage[start:stop]
            if not cov.any():
                continue
            src = self._source(x0, y0 + start, box_w, stop - start) * cov[..., None]
            dst = self._pixels[y0 + start:y0 + stop, x0:x0 + box_w]
            if self._composite_operation == "lighter":
                np.minimum(dst + src, 1.0, out=dst)
            else:
                dst *= 1.0 - src[..., 3:4]
                dst += src
        self.fill_count += 1

    # Output

    def to_rgba8(self) -> np.ndarray:
        """
        Return the raster as non-premultiplied ``uint8`` RGBA, shape (H, W, 4).

        Converted in row bands so the temporaries stay small next to the
        float32 buffer.
        """
        out = np.empty(self._pixels.shape, dtype=np.uint8)
        band = max(1, _BAND_PIXELS // self.width)
        for start in range(0, self.height, band):
            stop = min(self.height, start + band)
            pixels = self._pixels[start:stop].astype(np.float64)
            alpha = pixels[..., 3:4]
            rgb = np.divide(pixels[..., :3], alpha, out=np.zeros_like(pixels[..., :3]), where=alpha > 0)
            out[start:stop, :, :3] = np.clip(np.rint(rgb * 255.0), 0, 255)
            out[start:stop, :, 3:4] = np.clip(np.rint(alpha * 255.0), 0, 255)
        return out


def _polygon_area(points: Sequence[Tuple[float, float]]) -> float:
    """Absolute shoelace area."""
    area = 0.0
    n = len(points)
    for i in range(n):
        x_a, y_a = points[i]
        x_b, y_b = points[(i + 1) % n]
        area += x_a * y_b - x_b * y_a
    return abs(area) / 2.0
