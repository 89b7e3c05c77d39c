"""
Procedural, seed-driven war scene backgrounds.
"""

from .core import generate, GenerationCancelled, InvalidDimensions, SurfaceUnavailable, WarSceneError

__version__ = "0.1.0"

__all__ = ['generate', 'GenerationCancelled', 'InvalidDimensions', 'SurfaceUnavailable',
           'WarSceneError', '__version__']
