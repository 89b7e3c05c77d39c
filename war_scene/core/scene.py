"""
Scene orchestration: one seed in, one RGBA raster out.

Each call builds its own random stream, noise field and surface, runs the
layers in order and returns the finished pixels. Nothing is shared between
calls, so a preview and an export of the same seed can be produced
independently (even from different threads).
"""

import math
import time

import numpy as np
import structlog
from typing import Callable, Optional

from ..config import settings
from ..utils.seeds import normalize_seed
from .errors import GenerationCancelled, InvalidDimensions
from .layers import SCENE_LAYERS, DrawContext
from .mulberry_prng import MulberryPRNG
from .perlin import PerlinNoise
from .surface import DrawingSurface

logger = structlog.get_logger()

ProgressCallback = Callable[[str, int, int], None]


def _is_positive(value) -> bool:
    try:
        return math.isfinite(value) and value > 0
    except TypeError:
        return False


def validate_dimensions(width, height) -> None:
    """Raise :class:`InvalidDimensions` unless both sides are positive and finite."""
    if isinstance(width, bool) or isinstance(height, bool):
        raise InvalidDimensions(width, height)
    if not (_is_positive(width) and _is_positive(height)):
        raise InvalidDimensions(width, height)


def pixel_size(width: float, height: float, pixel_ratio: float = 1.0):
    """Device pixel size of a ``width`` x ``height`` layout at ``pixel_ratio``."""
    return (max(1, int(math.floor(width * pixel_ratio))),
            max(1, int(math.floor(height * pixel_ratio))))


def generate(
    width: float,
    height: float,
    seed: int,
    pixel_ratio: float = 1.0,
    progress: Optional[ProgressCallback] = None,
    cancel=None,
    antialias: Optional[int] = None,
    max_mask_pixels: Optional[int] = None,
) -> np.ndarray:
    """
    Render the war scene for ``seed`` at ``width`` x ``height``.

    Args:
        width: Layout width; every layer scales from it
        height: Layout height
        seed: 32-bit seed; other integers are reduced modulo 2**32
        pixel_ratio: Device pixels per layout unit
        progress: Called as ``progress(layer_name, completed, total)``
            after every layer
        cancel: Object with ``is_set()`` (e.g. ``threading.Event``); checked
            between layers only
        antialias: Supersampling factor, defaults to ``settings.antialias``
        max_mask_pixels: Mask budget, defaults to ``settings.max_mask_pixels``

    Returns:
        ``uint8`` RGBA array of shape (pixel height, pixel width, 4)

    Raises:
        InvalidDimensions: width or height is not positive
        SurfaceUnavailable: the raster could not be allocated
        GenerationCancelled: ``cancel`` was set before the last layer ran
    """
    validate_dimensions(width, height)
    if not _is_positive(pixel_ratio):
        raise ValueError(f"pixel_ratio must be positive, got {pixel_ratio!r}")

    seed = normalize_seed(seed)
    started = time.perf_counter()
    device_width, device_height = pixel_size(width, height, pixel_ratio)
    logger.info(
        "Generating scene",
        seed=seed,
        width=width,
        height=height,
        pixel_width=device_width,
        pixel_height=device_height,
    )

    surface = DrawingSurface(
        device_width,
        device_height,
        antialias=settings.antialias if antialias is None else antialias,
        max_mask_pixels=settings.max_mask_pixels if max_mask_pixels is None else max_mask_pixels,
    )
    random = MulberryPRNG(seed)
    noise = PerlinNoise(random)
    ctx = DrawContext(surface=surface, width=width, height=height, random=random, noise=noise)

    surface.clear()
    if pixel_ratio != 1.0:
        surface.scale(pixel_ratio, pixel_ratio)

    completed = []
    total = len(SCENE_LAYERS)
    for name, layer in SCENE_LAYERS:
        if cancel is not None and cancel.is_set():
            logger.info("Scene generation cancelled", seed=seed, completed_layers=completed)
            raise GenerationCancelled(completed)
        surface.save()
        layer(ctx)
        surface.restore()
        completed.append(name)
        logger.debug("Layer drawn", seed=seed, layer=name, random_calls=random.call_count)
        if progress is not None:
            progress(name, len(completed), total)

    pixels = surface.to_rgba8()
    logger.info(
        "Scene generated",
        seed=seed,
        pixel_width=device_width,
        pixel_height=device_height,
        random_calls=random.call_count,
        fills=surface.fill_count,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )
    return pixels
