"""
Core annotation components.
"""

from .annotation_store import AnnotationStore, CurrentImageState
from .file_access import FileAccess, LocalFileAccess

__all__ = ["AnnotationStore", "CurrentImageState", "FileAccess", "LocalFileAccess"]
