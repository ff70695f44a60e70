"""
YOLO text labels: one `<image-stem>.txt` per image, one box per line.

Line format: `<class_id> <center_x> <center_y> <width> <height>`, all
coordinates normalized to [0, 1] and written with 6 decimals. Class names live
in a shared `classes.txt`, one per line.
"""
from __future__ import annotations

import math
from pathlib import PurePosixPath
from typing import Dict, List, Sequence

from boxstore.codecs.base import DEFAULT_CLASSES, AnnotationCodec, synthesize_class_names
from boxstore.core.coords import NormalizedBox, clamp_unit, normalized_to_pixel, pixel_to_normalized
from boxstore.core.file_access import FileAccess
from boxstore.models.annotation import Image, LoadedBox, LoadResult

CLASSES_FILE = "classes.txt"
CLASSES_CANDIDATES = (CLASSES_FILE, "labels/classes.txt")
LABEL_SUFFIX = ".txt"


class YoloCodec(AnnotationCodec):
  name = "yolo"

  def __init__(self):
    super().__init__()
    self.classes: List[str] = list(DEFAULT_CLASSES)

  def get_label_path(self, image_path: str) -> str:
    stem = PurePosixPath(image_path.replace("\\", "/")).stem
    return f"{stem}{LABEL_SUFFIX}"

  # ---------------- text conversions ----------------

  def parse(self, content: str, image_width: int, image_height: int) -> List[LoadedBox]:
    """Parse a label file; malformed lines are skipped."""
    boxes: List[LoadedBox] = []
    for line_no, line in enumerate(content.splitlines(), start=1):
      parts = line.split()
      if len(parts) < 5:
        if parts:
          self._log.debug("skipping short label line %d: %r", line_no, line)
        continue
      try:
        class_id = int(float(parts[0]))
        values = [float(p) for p in parts[1:5]]
      except (ValueError, OverflowError):
        self._log.debug("skipping unparseable label line %d: %r", line_no, line)
        continue
      if not all(math.isfinite(v) for v in values):
        self._log.debug("skipping non-finite label line %d: %r", line_no, line)
        continue
      norm = NormalizedBox(*(clamp_unit(v) for v in values))
      px = normalized_to_pixel(norm, image_width, image_height)
      boxes.append(LoadedBox(class_id=max(class_id, 0), x=px.x, y=px.y, width=px.width, height=px.height))
    return boxes

  def stringify(self, boxes: Sequence, image_width: int, image_height: int) -> str:
    lines = []
    for box in boxes:
      n = pixel_to_normalized(box, image_width, image_height)
      lines.append(f"{int(box.class_id)} {n.center_x:.6f} {n.center_y:.6f} {n.width:.6f} {n.height:.6f}")
    return "\n".join(lines) + ("\n" if lines else "")

  @staticmethod
  def parse_classes(content: str) -> List[str]:
    return [line.strip() for line in content.splitlines() if line.strip()]

  @staticmethod
  def stringify_classes(classes: Sequence[str]) -> str:
    return "\n".join(classes) + "\n"

  # ---------------- codec interface ----------------

  async def load(self, files: FileAccess, images: Sequence[Image]) -> LoadResult:
    found = await self._probe(files, CLASSES_CANDIDATES)
    using_default = True
    classes = list(DEFAULT_CLASSES)
    if found is not None:
      parsed = self.parse_classes(found[1])
      if parsed:
        classes = parsed
        using_default = False

    boxes: Dict[str, List[LoadedBox]] = {}
    max_class_id = 0
    for image in images:
      label_path = self.get_label_path(image.file_path)
      content = await files.read_text(label_path)
      if content is None:
        continue
      parsed_boxes = self.parse(content, image.width, image.height)
      if parsed_boxes:
        boxes[image.id] = parsed_boxes
        max_class_id = max(max_class_id, max(b.class_id for b in parsed_boxes))

    if using_default and max_class_id > 0:
      self._log.info("no class list found; synthesizing %d class names", max_class_id + 1)
      classes = synthesize_class_names(max_class_id)

    self.classes = classes
    result = LoadResult(boxes=boxes, classes=list(classes))
    self._log.info("loaded %d boxes across %d images", result.box_count, len(boxes))
    return result

  async def save(self, files: FileAccess, image: Image, boxes: Sequence, classes: Sequence[str]) -> None:
    label_path = self.get_label_path(image.file_path)
    await files.write_text(label_path, self.stringify(boxes, image.width, image.height))
    if not await files.exists(CLASSES_FILE):
      await files.write_text(CLASSES_FILE, self.stringify_classes(classes))
      self._log.info("wrote %s with %d classes", CLASSES_FILE, len(classes))
    self.classes = list(classes)
    self._log.debug("saved %d boxes to %s", len(boxes), label_path)
