"""
Canonical in-memory records for images, boxes and codec load results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class Image:
  """An image of the opened folder. Pixel dimensions are fixed at discovery."""

  id: str
  file_name: str
  file_path: str
  width: int
  height: int
  box_ids: List[str] = field(default_factory=list)

  def to_dict(self) -> Dict[str, Any]:
    return {
      "id": self.id,
      "file_name": self.file_name,
      "file_path": self.file_path,
      "width": self.width,
      "height": self.height,
      "box_ids": list(self.box_ids),
    }


@dataclass(frozen=True)
class BoxSnapshot:
  """Immutable copy of a box, used as the rollback baseline."""

  id: str
  image_id: str
  class_id: int
  x: float
  y: float
  width: float
  height: float
  annotation_id: Optional[int] = None


@dataclass
class Box:
  id: str
  image_id: str
  class_id: int
  x: float
  y: float
  width: float
  height: float
  # Native id attached by a codec on load (COCO annotation id).
  annotation_id: Optional[int] = None

  EDITABLE_FIELDS = ("class_id", "x", "y", "width", "height")

  def snapshot(self) -> BoxSnapshot:
    return BoxSnapshot(
      id=self.id,
      image_id=self.image_id,
      class_id=self.class_id,
      x=self.x,
      y=self.y,
      width=self.width,
      height=self.height,
      annotation_id=self.annotation_id,
    )

  @classmethod
  def from_snapshot(cls, snap: BoxSnapshot, new_id: str) -> "Box":
    return cls(
      id=new_id,
      image_id=snap.image_id,
      class_id=snap.class_id,
      x=snap.x,
      y=snap.y,
      width=snap.width,
      height=snap.height,
      annotation_id=snap.annotation_id,
    )

  def to_dict(self) -> Dict[str, Any]:
    return {
      "id": self.id,
      "image_id": self.image_id,
      "class_id": self.class_id,
      "x": self.x,
      "y": self.y,
      "width": self.width,
      "height": self.height,
      "annotation_id": self.annotation_id,
    }


@dataclass(frozen=True)
class LoadedBox:
  """Box as produced by a codec, before the store assigns ids."""

  class_id: int
  x: float
  y: float
  width: float
  height: float
  annotation_id: Optional[int] = None


@dataclass
class LoadResult:
  """Output of a codec load: boxes keyed by store image id plus the class list."""

  boxes: Dict[str, List[LoadedBox]] = field(default_factory=dict)
  classes: List[str] = field(default_factory=list)

  @property
  def box_count(self) -> int:
    return sum(len(v) for v in self.boxes.values())
