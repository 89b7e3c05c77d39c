"""
Core scene generation functionality.
"""

from .errors import GenerationCancelled, InvalidDimensions, SurfaceUnavailable, WarSceneError
from .mulberry_prng import MulberryPRNG
from .perlin import PerlinNoise
from .surface import DrawingSurface, LinearGradient, RadialGradient, parse_color
from .layers import DrawContext, SCENE_LAYERS
from .scene import generate, pixel_size, validate_dimensions

__all__ = ['GenerationCancelled', 'InvalidDimensions', 'SurfaceUnavailable', 'WarSceneError',
           'MulberryPRNG', 'PerlinNoise', 'DrawingSurface', 'LinearGradient', 'RadialGradient',
           'parse_color', 'DrawContext', 'SCENE_LAYERS', 'generate', 'pixel_size',
           'validate_dimensions']
