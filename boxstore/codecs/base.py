"""
Shared capability interface for annotation codecs.

A codec translates between the canonical model and one on-disk encoding. It
keeps whatever per-folder state it needs (parsed document, discovered file
name) on the instance, so one instance serves one opened folder.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
import logging
from typing import List, Optional, Sequence, Tuple

from boxstore.core.file_access import FileAccess
from boxstore.models.annotation import Image, LoadResult

DEFAULT_CLASSES = ("object", )


def synthesize_class_names(max_class_id: int) -> List[str]:
  """Placeholder names class_0..class_<max_class_id>."""
  return [f"class_{i}" for i in range(max_class_id + 1)]


class AnnotationCodec(ABC):
  name: str = ""

  def __init__(self):
    self._log = logging.getLogger(f"boxstore.codecs.{self.name}")

  @abstractmethod
  async def load(self, files: FileAccess, images: Sequence[Image]) -> LoadResult:
    """Read annotations for `images`; result boxes are keyed by Image.id."""

  @abstractmethod
  async def save(self, files: FileAccess, image: Image, boxes: Sequence, classes: Sequence[str]) -> None:
    """Persist `boxes` (objects with class_id/x/y/width/height) for one image."""

  def get_label_path(self, image_path: str) -> Optional[str]:
    """Per-image label file for formats that have one."""
    return None

  async def _probe(self, files: FileAccess, candidates: Sequence[str]) -> Optional[Tuple[str, str]]:
    """Return (path, text) of the first candidate with non-empty content."""
    for path in candidates:
      text = await files.read_text(path)
      if text is not None and text.strip():
        self._log.info("found %s annotations: %s", self.name, path)
        return path, text
    self._log.info("no %s annotation file among %s", self.name, list(candidates))
    return None
