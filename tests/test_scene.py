"""Tests for scene generation end to end."""

import threading
from unittest.mock import patch

import pytest
import numpy as np

from war_scene.core.errors import GenerationCancelled, InvalidDimensions
from war_scene.core.scene import generate, pixel_size, validate_dimensions


def luminance(pixels):
    rgb = pixels[..., :3].astype(float)
    return rgb @ np.array([0.299, 0.587, 0.114])


def block_means(values, blocks_x, blocks_y):
    h, w = values.shape
    bh, bw = h // blocks_y, w // blocks_x
    trimmed = values[:bh * blocks_y, :bw * blocks_x]
    return trimmed.reshape(blocks_y, bh, blocks_x, bw).mean(axis=(1, 3))


class TestValidation:
    """Test dimension validation."""

    @pytest.mark.parametrize("width,height", [
        (0, 600), (800, -1), (-5, -5), (float("nan"), 100), (100, float("inf")), (True, 100), ("800", 600),
    ])
    def test_invalid_dimensions(self, width, height):
        with pytest.raises(InvalidDimensions):
            validate_dimensions(width, height)

    def test_valid_dimensions(self):
        validate_dimensions(1, 1)
        validate_dimensions(0.5, 1920.25)

    @pytest.mark.parametrize("width,height", [(0, 600), (800, -1)])
    def test_generate_rejects_before_drawing(self, width, height):
        with patch("war_scene.core.scene.DrawingSurface") as surface_cls:
            with pytest.raises(InvalidDimensions) as exc_info:
                generate(width, height, 123)

        surface_cls.assert_not_called()
        assert exc_info.value.width == width
        assert exc_info.value.height == height

    def test_invalid_dimensions_is_value_error(self):
        with pytest.raises(ValueError):
            generate(0, 600, 123)

    def test_invalid_pixel_ratio(self):
        with pytest.raises(ValueError):
            generate(100, 50, 1, pixel_ratio=0)


class TestPixelSize:
    """Test device pixel sizing."""

    def test_identity(self):
        assert pixel_size(800, 450) == (800, 450)

    def test_floors(self):
        assert pixel_size(101, 51, 1.5) == (151, 76)

    def test_at_least_one_pixel(self):
        assert pixel_size(0.2, 0.2) == (1, 1)


class TestGenerate:
    """Test generation properties."""

    def test_deterministic(self):
        first = generate(160, 90, 7)
        second = generate(160, 90, 7)

        assert first.dtype == np.uint8
        assert first.shape == (90, 160, 4)
        assert np.array_equal(first, second)

    def test_seed_sensitivity(self):
        for seed in range(10):
            a = generate(96, 54, seed).astype(int)
            b = generate(96, 54, seed + 1000).astype(int)

            assert np.abs(a - b).mean() > 0.5, f"seeds {seed} and {seed + 1000} look alike"

    def test_seed_wraps_to_32_bits(self):
        assert np.array_equal(generate(32, 18, -1), generate(32, 18, 0xFFFFFFFF))

    def test_opaque(self):
        pixels = generate(64, 36, 3)

        assert np.all(pixels[..., 3] == 255)

    def test_pixel_ratio_buffer_size(self):
        pixels = generate(100, 50, 3, pixel_ratio=2)

        assert pixels.shape == (100, 200, 4)

    def test_fractional_pixel_ratio(self):
        pixels = generate(101, 51, 3, pixel_ratio=1.5)

        assert pixels.shape == (76, 151, 4)

    def test_pixel_ratio_preserves_composition(self):
        """A 2x device ratio renders the same layout at twice the detail."""
        layout = generate(120, 60, 9, pixel_ratio=2).astype(float)
        sharp = luminance(layout)
        coarse = sharp.reshape(60, 2, 120, 2).mean(axis=(1, 3))
        reference = luminance(generate(120, 60, 9))

        assert np.abs(coarse - reference).mean() < 3.0

    def test_resolution_independent_composition(self):
        small = luminance(generate(800, 450, 2024))
        large = luminance(generate(1600, 900, 2024))

        diff = np.abs(block_means(small, 16, 9) - block_means(large, 16, 9))
        assert diff.mean() < 10.0

    def test_reference_frame(self):
        pixels = generate(1920, 1080, 42)
        height, width = pixels.shape[:2]

        assert pixels.shape == (1080, 1920, 4)

        # Background is a vertical gradient; later layers must break up rows
        uniform_rows = sum(
            1 for row in pixels if np.all(row == row[0])
        )
        assert uniform_rows == 0

        # Hot explosion or ember pixels in the lower middle
        region = pixels[int(height * 0.4):int(height * 0.9), int(width * 0.2):int(width * 0.8)].astype(int)
        r, g, b = region[..., 0], region[..., 1], region[..., 2]
        assert np.any((r > 200) & (g > 80) & (b < 100))


class TestProgressAndCancel:
    """Test progress reporting and cancellation."""

    def test_progress_reports_every_layer(self):
        calls = []
        generate(48, 27, 5, progress=lambda name, done, total: calls.append((name, done, total)))

        assert calls == [
            ("background", 1, 6),
            ("explosion", 2, 6),
            ("smoke", 3, 6),
            ("embers", 4, 6),
            ("terrain", 5, 6),
            ("atmospheric_dust", 6, 6),
        ]

    def test_cancel_before_start(self):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(GenerationCancelled) as exc_info:
            generate(48, 27, 5, cancel=cancel)

        assert exc_info.value.completed_layers == []

    def test_cancel_between_layers(self):
        cancel = threading.Event()

        def on_progress(name, done, total):
            if name == "smoke":
                cancel.set()

        with pytest.raises(GenerationCancelled) as exc_info:
            generate(48, 27, 5, progress=on_progress, cancel=cancel)

        assert exc_info.value.completed_layers == ["background", "explosion", "smoke"]

    def test_unset_cancel_completes(self):
        pixels = generate(48, 27, 5, cancel=threading.Event())

        assert np.array_equal(pixels, generate(48, 27, 5))
