#!/usr/bin/env python3
"""
Simple demo script rendering a few war scenes and saving them as JPEG files.
"""

import sys

import numpy as np
from war_scene.core import generate
from war_scene.logging_setup import configure_logging
from war_scene.render import encode_raster, export_filename, save_export, ExportResult
from war_scene.utils.seeds import new_seed


def describe(pixels):
    """Print a few statistics about a rendered scene."""
    luminance = pixels[..., :3].astype(float) @ np.array([0.299, 0.587, 0.114])
    hot = np.sum((pixels[..., 0] > 200) & (pixels[..., 1] > 80) & (pixels[..., 2] < 100))

    print(f"  Size: {pixels.shape[1]}x{pixels.shape[0]}")
    print(f"  Mean luminance: {luminance.mean():.1f}")
    print(f"  Brightest pixel: {luminance.max():.1f}")
    print(f"  Hot pixels: {hot} ({hot / luminance.size * 100:.2f}%)")


def main():
    """Render a handful of scenes at preview size."""
    configure_logging(level="WARNING", fmt="console")

    print("War Scene Generation Demo")
    print("=" * 40)

    width, height = 960, 540
    seeds = [int(s) for s in sys.argv[1:]] or [42, 1337, new_seed()]

    for seed in seeds:
        print(f"\nSeed {seed}:")
        print("-" * 30)

        def progress(layer, completed, total):
            print(f"  [{completed}/{total}] {layer}")

        pixels = generate(width, height, seed, progress=progress)
        describe(pixels)

        result = ExportResult(
            seed=seed,
            width=width,
            height=height,
            filename=export_filename(seed),
            data=encode_raster(pixels, "JPEG", quality=90),
        )
        path = save_export(result, "demo_output")
        print(f"  Saved to {path}")

    print("\nDemo complete!")


if __name__ == "__main__":
    main()
