"""
Scene layers, painted in a fixed order onto a shared surface.

Every layer takes the same :class:`DrawContext` and draws from the run's
single random stream, so the number and order of ``random()`` calls inside
each layer is part of the scene's identity: changing it changes every
scene drawn after that point.

All sizes are expressed as fractions of the layout width/height so the
composition is independent of resolution.
"""

import math

import numpy as np
from dataclasses import dataclass
from typing import Callable, List, Tuple

from .mulberry_prng import MulberryPRNG
from .perlin import PerlinNoise
from .surface import DrawingSurface

# Noise is sampled as if the scene were this wide, so every output size
# sees the same smoke, ember and horizon patterns.
NOISE_REFERENCE_WIDTH = 1920.0


@dataclass(frozen=True)
class DrawContext:
    """Resources shared by all layers of one generation run."""

    surface: DrawingSurface
    width: float
    height: float
    random: MulberryPRNG
    noise: PerlinNoise

    @property
    def noise_scale(self) -> float:
        """Factor mapping layout units to noise reference units."""
        return NOISE_REFERENCE_WIDTH / self.width


def _sample_positions(width: float, steps: int) -> List[float]:
    """x positions 0, width/steps, ... up to width, accumulated step by step."""
    step = width / steps
    positions = []
    x = 0.0
    while x <= width:
        positions.append(x)
        x += step
    return positions


def fill_background(ctx: DrawContext) -> None:
    """Night sky gradient plus a ground-level fire glow over the bottom 45%."""
    surface, width, height = ctx.surface, ctx.width, ctx.height

    sky = surface.create_linear_gradient(0, 0, 0, height)
    sky.add_color_stop(0, "#05070b")
    sky.add_color_stop(0.3, "#0d1117")
    sky.add_color_stop(0.65, "#1a1a1f")
    sky.add_color_stop(1, "#2c1c14")
    surface.fill_style = sky
    surface.fill_rect(0, 0, width, height)

    glow = surface.create_linear_gradient(0, height * 0.55, 0, height)
    glow.add_color_stop(0, "rgba(255,120,30,0.25)")
    glow.add_color_stop(0.35, "rgba(210,80,20,0.15)")
    glow.add_color_stop(1, "rgba(20,12,10,0.85)")
    surface.fill_style = glow
    surface.fill_rect(0, height * 0.55, width, height * 0.45)


def draw_explosion(ctx: DrawContext) -> None:
    """Three or four overlapping radial-gradient fireballs around the centre."""
    surface, width, height, random = ctx.surface, ctx.width, ctx.height, ctx.random

    fireball_count = 3 + int(random() * 2)
    for _ in range(fireball_count):
        base_x = width * (0.38 + random() * 0.24)
        base_y = height * (0.62 + random() * 0.06)
        radius = width * (0.12 + random() * 0.08)

        gradient = surface.create_radial_gradient(base_x, base_y, radius * 0.1, base_x, base_y, radius)
        gradient.add_color_stop(0, "rgba(255,245,200,0.95)")
        gradient.add_color_stop(0.2, "rgba(255,190,90,0.9)")
        gradient.add_color_stop(0.45, "rgba(220,90,20,0.75)")
        gradient.add_color_stop(0.85, "rgba(70,25,12,0.2)")
        gradient.add_color_stop(1, "rgba(20,10,8,0)")
        surface.fill_style = gradient
        surface.begin_path()
        surface.arc(base_x, base_y, radius, 0, math.pi * 2)
        surface.fill()


def draw_smoke(ctx: DrawContext) -> None:
    """Sixteen translucent noise-edged smoke banks, fading layer by layer."""
    surface, width, height = ctx.surface, ctx.width, ctx.height
    xs = np.array(_sample_positions(width, 160))
    us = xs * ctx.noise_scale

    for layer in range(16):
        opacity = 0.25 - layer * 0.01
        offset = ctx.random() * 1000
        y_base = height * (0.55 + layer * 0.015)
        ys = y_base - ctx.noise.sample(us * 0.002 + offset, layer * 0.25 + offset * 0.01) * height * 0.22

        surface.begin_path()
        surface.move_to(0, height)
        for x, y in zip(xs, ys):
            surface.line_to(float(x), float(y))
        surface.line_to(width, height)
        surface.close_path()
        surface.fill_style = (28, 24, 30, opacity)
        surface.fill()


def draw_embers(ctx: DrawContext) -> None:
    """Glowing streaks scattered where the noise field is bright."""
    surface, width, height, random, noise = ctx.surface, ctx.width, ctx.height, ctx.random, ctx.noise

    count = int(math.floor(width * 0.7))
    scale = ctx.noise_scale
    for _ in range(count):
        x = random() * width
        y = height * (0.4 + random() * 0.45)
        if noise.noise(x * scale * 0.03, y * scale * 0.03) < 0.45:
            continue

        size = 0.8 + random() * 1.6
        surface.save()
        surface.translate(x, y)
        surface.rotate((random() - 0.5) * math.pi * 0.3)
        gradient = surface.create_linear_gradient(0, 0, 0, size * 6)
        gradient.add_color_stop(0, (255, 210, 120, 0.85 + random() * 0.1))
        gradient.add_color_stop(0.5, "rgba(255,120,30,0.4)")
        gradient.add_color_stop(1, "rgba(60,20,10,0)")
        surface.fill_style = gradient
        surface.fill_rect(-size, 0, size * 2, size * 6 + random() * 18)
        surface.restore()


def _draw_structure(ctx: DrawContext, index: int, total: int, horizon: float) -> None:
    surface, width, height, random = ctx.surface, ctx.width, ctx.height, ctx.random

    x = (index / total) * width + random() * width * 0.04
    base_height = height * (0.12 + random() * 0.12)
    width_factor = width * (0.02 + random() * 0.03)

    surface.save()
    surface.translate(x, horizon - random() * height * 0.08)
    surface.scale(1, 1 + random() * 0.2)
    surface.begin_path()
    surface.move_to(-width_factor * 0.6, 0)
    surface.line_to(-width_factor * 0.3, -base_height * (0.3 + random() * 0.2))
    surface.line_to(-width_factor * 0.4, -base_height * (0.7 + random() * 0.2))
    surface.line_to(width_factor * 0.2, -base_height)
    surface.line_to(width_factor * 0.4, -base_height * (0.7 + random() * 0.2))
    surface.line_to(width_factor * 0.7, -base_height * (0.3 + random() * 0.2))
    surface.line_to(width_factor * 0.9, 0)
    surface.close_path()
    surface.fill_style = "rgba(10,10,14,0.9)"
    surface.fill()
    surface.restore()


def draw_terrain(ctx: DrawContext) -> None:
    """Ground silhouette, jagged ruins along the horizon and an additive haze band."""
    surface, width, height = ctx.surface, ctx.width, ctx.height
    horizon = height * 0.68

    xs = np.array(_sample_positions(width, 200))
    ys = horizon + ctx.noise.sample(xs * ctx.noise_scale * 0.003, 20.0) * height * 0.18
    surface.begin_path()
    surface.move_to(0, height)
    for x, y in zip(xs, ys):
        surface.line_to(float(x), float(y))
    surface.line_to(width, height)
    surface.close_path()
    surface.fill_style = "#050406"
    surface.fill()

    structures = 12 + int(ctx.random() * 6)
    for i in range(structures):
        _draw_structure(ctx, i, structures, horizon)

    surface.composite_operation = "lighter"
    haze = surface.create_linear_gradient(0, horizon - height * 0.1, 0, horizon + height * 0.2)
    haze.add_color_stop(0, "rgba(255,130,60,0.06)")
    haze.add_color_stop(0.5, "rgba(255,90,40,0.1)")
    haze.add_color_stop(1, "rgba(30,10,10,0)")
    surface.fill_style = haze
    surface.fill_rect(0, horizon - height * 0.1, width, height * 0.3)
    surface.composite_operation = "source-over"


def draw_atmospheric_dust(ctx: DrawContext) -> None:
    """Fine warm grain over the whole frame."""
    surface, width, height, random = ctx.surface, ctx.width, ctx.height, ctx.random

    density = int(math.floor(width * 3.6))
    for _ in range(density):
        x = random() * width
        y = random() * height
        alpha = 0.02 + random() * 0.04
        size = random() * 2
        surface.fill_style = (240, 200, 140, alpha)
        surface.fill_rect(x, y, size, size)


# Later layers paint over earlier ones; the order is fixed.
SCENE_LAYERS: Tuple[Tuple[str, Callable[[DrawContext], None]], ...] = (
    ("background", fill_background),
    ("explosion", draw_explosion),
    ("smoke", draw_smoke),
    ("embers", draw_embers),
    ("terrain", draw_terrain),
    ("atmospheric_dust", draw_atmospheric_dust),
)
