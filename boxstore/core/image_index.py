"""Discover the images of an annotation folder."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Iterable, List

from PIL import Image as PILImage, UnidentifiedImageError

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp"}

_log = logging.getLogger("boxstore.core.image_index")


@dataclass(frozen=True, slots=True)
class DiscoveredImage:
  file_name: str
  file_path: str
  width: int
  height: int


def discover_images(root: Path, *, extensions: Iterable[str] | None = None) -> List[DiscoveredImage]:
  """Scan the top level of `root` for images, sorted by file name.

    Subdirectories are not descended into. Files Pillow cannot identify are
    logged and skipped.
    """
  root = Path(root)
  if not root.is_dir():
    raise FileNotFoundError(f"Image folder does not exist: {root}")

  allowed = {ext.lower() for ext in (extensions or SUPPORTED_EXTENSIONS)}
  found: List[DiscoveredImage] = []
  for entry in sorted(root.iterdir(), key=lambda p: p.name):
    if not entry.is_file() or entry.suffix.lower() not in allowed:
      continue
    try:
      with PILImage.open(entry) as img:
        width, height = img.size
    except (UnidentifiedImageError, OSError):
      _log.warning("skipping unreadable image %s", entry.name, exc_info=True)
      continue
    found.append(DiscoveredImage(file_name=entry.name, file_path=entry.name, width=int(width), height=int(height)))

  _log.debug("discover_images root=%s count=%d", root, len(found))
  return found
