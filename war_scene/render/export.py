"""
High-resolution export of a scene to a compressed image file.
"""

import io
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import numpy as np
import structlog
from PIL import Image

from ..config import settings
from ..core.scene import ProgressCallback, generate
from ..utils.seeds import normalize_seed

logger = structlog.get_logger()

_CONTENT_TYPES = {"JPEG": "image/jpeg", "PNG": "image/png"}


@dataclass
class ExportResult:
    """Encoded export ready to be offered as a download."""

    seed: int
    width: int
    height: int
    filename: str
    data: bytes
    content_type: str = "image/jpeg"


def export_filename(seed: int, extension: str = "jpg") -> str:
    """Download name for ``seed``, e.g. ``war-background-42.jpg``."""
    return f"war-background-{normalize_seed(seed)}.{extension}"


def encode_raster(raster: np.ndarray, fmt: str = "JPEG", quality: Optional[int] = None) -> bytes:
    """
    Encode an RGBA raster.

    JPEG has no alpha channel, so pixels are composited onto black first.

    Args:
        raster: ``uint8`` array of shape (H, W, 4)
        fmt: ``JPEG`` or ``PNG``
        quality: JPEG quality (1-100), defaults to ``settings.export_quality``

    Returns:
        Encoded image bytes
    """
    fmt = fmt.upper()
    if fmt not in _CONTENT_TYPES:
        raise ValueError(f"Unsupported export format: {fmt}")
    if raster.ndim != 3 or raster.shape[2] != 4 or raster.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 (H, W, 4) raster, got {raster.dtype} {raster.shape}")

    buffer = io.BytesIO()
    if fmt == "JPEG":
        alpha = raster[..., 3:4].astype(np.uint16)
        rgb = (raster[..., :3].astype(np.uint16) * alpha + 127) // 255
        image = Image.fromarray(rgb.astype(np.uint8), "RGB")
        image.save(buffer, format="JPEG", quality=settings.export_quality if quality is None else quality)
    else:
        Image.fromarray(raster, "RGBA").save(buffer, format="PNG")
    return buffer.getvalue()


def export_scene(
    seed: int,
    width: Optional[int] = None,
    height: Optional[int] = None,
    quality: Optional[int] = None,
    progress: Optional[ProgressCallback] = None,
    cancel=None,
) -> ExportResult:
    """
    Render ``seed`` at export resolution and encode it as JPEG.

    Args:
        seed: Scene seed
        width: Export width, defaults to ``settings.export_width``
        height: Export height, defaults to ``settings.export_height``
        quality: JPEG quality, defaults to ``settings.export_quality``
        progress: Forwarded to :func:`generate`
        cancel: Forwarded to :func:`generate`
    """
    seed = normalize_seed(seed)
    width = settings.export_width if width is None else width
    height = settings.export_height if height is None else height
    quality = settings.export_quality if quality is None else quality

    raster = generate(width, height, seed, progress=progress, cancel=cancel)
    data = encode_raster(raster, "JPEG", quality)
    logger.info("Scene exported", seed=seed, width=width, height=height, bytes=len(data))
    return ExportResult(
        seed=seed,
        width=raster.shape[1],
        height=raster.shape[0],
        filename=export_filename(seed),
        data=data,
    )


def save_export(result: ExportResult, directory: Optional[str] = None) -> Path:
    """Write an export to ``directory`` (``settings.export_dir`` by default)."""
    target_dir = Path(directory or settings.export_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / result.filename
    path.write_bytes(result.data)
    logger.info("Export saved", path=str(path))
    return path
