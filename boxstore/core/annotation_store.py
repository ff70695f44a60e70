"""
In-memory annotation model: images, boxes and the class table.

Only the current image is edit-tracked. Selecting an image snapshots its boxes
as the baseline; unsaved edits are rolled back to that baseline when another
image is selected. Edits to any other image are applied but never tracked.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum
import logging
from typing import Any, Callable, Dict, List, Optional, Tuple

from boxstore.core.coords import PixelBox, clamp_box
from boxstore.models.annotation import Box, BoxSnapshot, Image, LoadResult

Listener = Callable[[Any], None]


class CurrentImageState(str, Enum):
  NONE = "none"
  ACTIVE_CLEAN = "active-clean"
  ACTIVE_DIRTY = "active-dirty"


class AnnotationStore:
  """Canonical model with CRUD, change notifications and per-image rollback."""

  EVENTS = (
    "format",
    "images",
    "boxes",
    "classes",
    "current_image",
    "selected_box",
    "current_class",
    "modified",
    "clear",
  )

  def __init__(self):
    self._images: Dict[str, Image] = {}
    self._boxes: Dict[str, Box] = {}
    self._classes: List[str] = []
    self._listeners: Dict[str, List[Listener]] = defaultdict(list)
    self._next_box_id = 1
    self._next_image_id = 1
    self._baseline: Optional[Tuple[BoxSnapshot, ...]] = None
    self.format: Optional[str] = None
    self.current_image_id: Optional[str] = None
    self.selected_box_id: Optional[str] = None
    self.current_class_id = 0
    self.current_image_modified = False
    self._log = logging.getLogger("boxstore.core.AnnotationStore")

  # ---------------- notifications ----------------

  def on(self, event: str, callback: Listener) -> None:
    if event not in self.EVENTS:
      raise ValueError(f"unknown event: {event}")
    self._listeners[event].append(callback)

  def off(self, event: str, callback: Listener) -> None:
    callbacks = self._listeners.get(event)
    if callbacks and callback in callbacks:
      callbacks.remove(callback)

  def notify(self, event: str, data: Any) -> None:
    for callback in list(self._listeners.get(event, ())):
      callback(data)

  def set_format(self, format_id: str) -> None:
    self.format = format_id
    self.notify("format", format_id)

  # ---------------- images ----------------

  def add_image(self,
                file_name: str,
                file_path: str,
                width: int,
                height: int,
                image_id: Optional[str] = None) -> str:
    """Register an image; re-adding an existing id updates its metadata and keeps its boxes."""
    if image_id is None:
      image_id = self._new_image_id()
    existing = self._images.get(image_id)
    box_ids = existing.box_ids if existing is not None else []
    self._images[image_id] = Image(
      id=image_id,
      file_name=file_name,
      file_path=file_path,
      width=int(width),
      height=int(height),
      box_ids=box_ids,
    )
    self.notify("images", self._images)
    return image_id

  def _new_image_id(self) -> str:
    # Explicit ids may already occupy the img_<n> sequence.
    while f"img_{self._next_image_id}" in self._images:
      self._next_image_id += 1
    image_id = f"img_{self._next_image_id}"
    self._next_image_id += 1
    return image_id

  def get_image(self, image_id: Optional[str]) -> Optional[Image]:
    if image_id is None:
      return None
    return self._images.get(image_id)

  def get_all_images(self) -> List[Image]:
    return list(self._images.values())

  def get_current_image(self) -> Optional[Image]:
    return self.get_image(self.current_image_id)

  # ---------------- boxes ----------------

  def _new_box_id(self) -> str:
    box_id = f"box_{self._next_box_id}"
    self._next_box_id += 1
    return box_id

  def _insert_box(self, image: Image, class_id: int, x: float, y: float, width: float, height: float,
                  annotation_id: Optional[int]) -> Box:
    box = Box(
      id=self._new_box_id(),
      image_id=image.id,
      class_id=max(int(class_id), 0),
      x=float(x),
      y=float(y),
      width=max(float(width), 0.0),
      height=max(float(height), 0.0),
      annotation_id=annotation_id,
    )
    self._boxes[box.id] = box
    image.box_ids.append(box.id)
    return box

  def add_box(self,
              image_id: str,
              class_id: int,
              x: float,
              y: float,
              width: float,
              height: float,
              annotation_id: Optional[int] = None,
              clamp: bool = False) -> str:
    """Add a box to an image and return its id.

        Negative class ids and sizes default to zero. With clamp=True the box
        is clipped to the image rectangle first.
        """
    image = self._images.get(image_id)
    if image is None:
      raise KeyError(f"Image not found: {image_id}")
    if clamp:
      clipped = clamp_box(PixelBox(x, y, width, height), image.width, image.height)
      x, y, width, height = clipped.x, clipped.y, clipped.width, clipped.height
    box = self._insert_box(image, class_id, x, y, width, height, annotation_id)
    self._mark_modified(image_id)
    self.notify("boxes", self._boxes)
    return box.id

  def update_box(self, box_id: str, **updates: Any) -> Optional[Box]:
    """Apply field updates to a box; unknown box ids are ignored."""
    unknown = set(updates) - set(Box.EDITABLE_FIELDS)
    if unknown:
      raise TypeError(f"update_box got unexpected fields: {sorted(unknown)}")
    box = self._boxes.get(box_id)
    if box is None:
      self._log.debug("update_box ignored unknown box_id=%s", box_id)
      return None
    for key, value in updates.items():
      if key == "class_id":
        box.class_id = max(int(value), 0)
      elif key in ("width", "height"):
        setattr(box, key, max(float(value), 0.0))
      else:
        setattr(box, key, float(value))
    self._mark_modified(box.image_id)
    self.notify("boxes", self._boxes)
    return box

  def delete_box(self, box_id: str) -> bool:
    box = self._boxes.pop(box_id, None)
    if box is None:
      self._log.debug("delete_box ignored unknown box_id=%s", box_id)
      return False
    image = self._images.get(box.image_id)
    if image is not None:
      image.box_ids = [bid for bid in image.box_ids if bid != box_id]
      self._mark_modified(box.image_id)
    if self.selected_box_id == box_id:
      self.selected_box_id = None
    self.notify("boxes", self._boxes)
    return True

  def get_box(self, box_id: Optional[str]) -> Optional[Box]:
    if box_id is None:
      return None
    return self._boxes.get(box_id)

  def get_boxes_for_image(self, image_id: Optional[str]) -> List[Box]:
    image = self.get_image(image_id)
    if image is None:
      return []
    return [self._boxes[bid] for bid in image.box_ids if bid in self._boxes]

  def ingest(self, result: LoadResult) -> int:
    """Bulk-add codec output without marking anything modified.

        The class list is replaced by the codec's canonical list. Boxes for
        image ids the store does not know are skipped. Returns the number of
        boxes added.
        """
    self.set_classes(result.classes)
    added = 0
    for image_id, boxes in result.boxes.items():
      image = self._images.get(image_id)
      if image is None:
        self._log.warning("ingest skipped %d boxes for unknown image_id=%s", len(boxes), image_id)
        continue
      for lb in boxes:
        self._insert_box(image, lb.class_id, lb.x, lb.y, lb.width, lb.height, lb.annotation_id)
        added += 1
    if self.current_image_id is not None:
      self._take_snapshot()
    self.notify("boxes", self._boxes)
    return added

  # ---------------- classes ----------------

  def set_classes(self, classes: List[str]) -> None:
    self._classes = [str(c) for c in classes]
    self.notify("classes", self._classes)

  def add_class(self, name: str) -> int:
    """Append a class and return its id; an existing name returns its current id."""
    name = (name or "").strip()
    if not name:
      raise ValueError("class name required")
    if name in self._classes:
      return self._classes.index(name)
    self._classes.append(name)
    self.notify("classes", self._classes)
    return len(self._classes) - 1

  def get_classes(self) -> List[str]:
    return list(self._classes)

  def class_name(self, class_id: int) -> str:
    if 0 <= class_id < len(self._classes):
      return self._classes[class_id]
    return f"class_{class_id}"

  def set_current_class(self, class_id: int) -> None:
    self.current_class_id = max(int(class_id), 0)
    self.notify("current_class", self.current_class_id)

  # ---------------- current image / rollback ----------------

  @property
  def state(self) -> CurrentImageState:
    if self.current_image_id is None:
      return CurrentImageState.NONE
    if self.current_image_modified:
      return CurrentImageState.ACTIVE_DIRTY
    return CurrentImageState.ACTIVE_CLEAN

  def set_current_image(self, image_id: Optional[str]) -> None:
    """Select an image, rolling back unsaved edits of the previous one."""
    if self.current_image_id is not None and self.current_image_modified:
      self._log.info("discarding unsaved edits image_id=%s", self.current_image_id)
      self.discard_current_image_edits()

    if image_id is not None and image_id not in self._images:
      self._log.debug("set_current_image unknown image_id=%s", image_id)
      image_id = None

    self.current_image_id = image_id
    self.selected_box_id = None
    self.current_image_modified = False
    self._take_snapshot()
    self.notify("current_image", image_id)
    self.notify("modified", False)

  def set_selected_box(self, box_id: Optional[str]) -> None:
    self.selected_box_id = box_id if box_id is not None and box_id in self._boxes else None
    self.notify("selected_box", self.selected_box_id)

  def get_selected_box(self) -> Optional[Box]:
    return self.get_box(self.selected_box_id)

  def _mark_modified(self, image_id: str) -> None:
    if self.current_image_id is not None and image_id == self.current_image_id:
      self.current_image_modified = True
      self.notify("modified", True)

  def clear_image_modified(self) -> None:
    """Accept the current boxes as saved; later discards roll back to this state."""
    self.current_image_modified = False
    self._take_snapshot()
    self.notify("modified", False)

  def _take_snapshot(self) -> None:
    if self.current_image_id is None or self.current_image_id not in self._images:
      self._baseline = None
      return
    self._baseline = tuple(box.snapshot() for box in self.get_boxes_for_image(self.current_image_id))

  def discard_current_image_edits(self) -> None:
    """Restore the current image's boxes to the baseline under fresh ids."""
    if self.current_image_id is None or self._baseline is None:
      return
    image = self._images.get(self.current_image_id)
    if image is None:
      return

    for box_id in image.box_ids:
      self._boxes.pop(box_id, None)
      if self.selected_box_id == box_id:
        self.selected_box_id = None
    image.box_ids = []
    restored = []
    for snap in self._baseline:
      box = Box.from_snapshot(snap, self._new_box_id())
      self._boxes[box.id] = box
      image.box_ids.append(box.id)
      restored.append(box.snapshot())
    self._baseline = tuple(restored)

    self.current_image_modified = False
    self.notify("boxes", self._boxes)
    self.notify("modified", False)

  # ---------------- reset ----------------

  def clear(self) -> None:
    self._images.clear()
    self._boxes.clear()
    self._classes = []
    self.current_image_id = None
    self.selected_box_id = None
    self.current_image_modified = False
    self._baseline = None
    self._next_box_id = 1
    self._next_image_id = 1
    self.notify("clear", None)

  def stats(self) -> Dict[str, Any]:
    per_class: Dict[str, int] = {}
    for box in self._boxes.values():
      name = self.class_name(box.class_id)
      per_class[name] = per_class.get(name, 0) + 1
    return {
      "images": len(self._images),
      "annotated_images": sum(1 for img in self._images.values() if img.box_ids),
      "boxes": len(self._boxes),
      "classes": len(self._classes),
      "boxes_per_class": per_class,
    }
