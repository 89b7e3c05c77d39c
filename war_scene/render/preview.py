"""
Interactive preview rendering.

The preview is laid out in viewport units and rendered at the device pixel
ratio, so the scene composition follows the viewport while the buffer
matches the physical display.
"""

import numpy as np
import structlog
from typing import Optional, Tuple

from ..core.scene import generate
from ..utils.seeds import new_seed, normalize_seed

logger = structlog.get_logger()


def render_preview(width: float, height: float, seed: int, pixel_ratio: float = 1.0) -> np.ndarray:
    """Render ``seed`` for a ``width`` x ``height`` viewport at ``pixel_ratio``."""
    return generate(width, height, seed, pixel_ratio=pixel_ratio)


class PreviewRenderer:
    """
    Keeps the preview in sync with the current seed and viewport.

    The scene is re-rendered whenever the seed or the viewport changes;
    asking again with the same inputs returns the cached raster.
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = normalize_seed(seed) if seed is not None else new_seed()
        self._key: Optional[Tuple[int, float, float, float]] = None
        self._raster: Optional[np.ndarray] = None

    def render(self, width: float, height: float, pixel_ratio: float = 1.0) -> np.ndarray:
        """Render for the given viewport, reusing the last raster when nothing changed."""
        key = (self.seed, width, height, pixel_ratio)
        if key != self._key or self._raster is None:
            self._raster = render_preview(width, height, self.seed, pixel_ratio)
            self._key = key
        return self._raster

    def regenerate(self) -> int:
        """Switch to a fresh seed; the next :meth:`render` draws a new scene."""
        self.seed = new_seed(previous=self.seed)
        logger.info("Preview seed regenerated", seed=self.seed)
        return self.seed
