"""
Core image processing modules for the film negative effect.

This package contains:
- Pixel operators (invert, color cast, grain, sprocket holes)
- Grain random source
- Codec adapter (decode / encode via OpenCV and Pillow)
- Processing pipeline for both directions
"""

from .image_processor import FilmProcessor, ProcessMode, ProcessingOutcome

__all__ = ["FilmProcessor", "ProcessMode", "ProcessingOutcome"]
