"""
Configuration for scene generation and the HTTP service.
"""

from .config import Settings, settings

__all__ = ['Settings', 'settings']
