"""
Test doubles and builders shared by unit and integration tests.
"""

from pathlib import Path
from typing import Dict, Optional

from PIL import Image as PILImage

from boxstore.models.annotation import Image


class MemoryFileAccess:
  """In-memory FileAccess used to drive codecs without touching disk."""

  def __init__(self, files: Optional[Dict[str, str]] = None):
    self.files: Dict[str, str] = dict(files or {})
    self.reads = []
    self.writes = []

  async def read_text(self, path: str) -> Optional[str]:
    self.reads.append(path)
    return self.files.get(path)

  async def write_text(self, path: str, text: str) -> None:
    self.writes.append(path)
    self.files[path] = text

  async def exists(self, path: str) -> bool:
    return path in self.files


class FailingFileAccess(MemoryFileAccess):
  """Reads like MemoryFileAccess, but every write raises OSError."""

  async def write_text(self, path: str, text: str) -> None:
    raise OSError(f"disk full: {path}")


def make_image(image_id: str = "img_1", file_name: str = "a.jpg", width: int = 640, height: int = 480) -> Image:
  return Image(id=image_id, file_name=file_name, file_path=file_name, width=width, height=height)


def write_images(folder: Path, sizes: Dict[str, tuple]) -> Path:
  """Write small RGB images named by `sizes` keys into `folder`."""
  folder.mkdir(parents=True, exist_ok=True)
  for name, size in sizes.items():
    PILImage.new("RGB", size, color=(120, 30, 200)).save(folder / name)
  return folder


def box_rows(result) -> Dict[str, set]:
  """Per-image sets of (class_id, x, y, width, height), rounded for float-safe comparison."""
  return {
    image_id: {(b.class_id, round(b.x, 3), round(b.y, 3), round(b.width, 3), round(b.height, 3)) for b in boxes}
    for image_id, boxes in result.boxes.items()
  }
