"""
Data models for the annotation store.
"""

from .annotation import Box, BoxSnapshot, Image, LoadedBox, LoadResult

__all__ = ["Box", "BoxSnapshot", "Image", "LoadedBox", "LoadResult"]
