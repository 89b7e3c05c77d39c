"""
Preview and export front-ends around :func:`war_scene.core.generate`.
"""

from .export import ExportResult, encode_raster, export_filename, export_scene, save_export
from .preview import PreviewRenderer, render_preview

__all__ = ['ExportResult', 'encode_raster', 'export_filename', 'export_scene', 'save_export',
           'PreviewRenderer', 'render_preview']
