"""
COCO detection JSON: a single document holding images, annotations and categories.

Boxes are stored in pixels as `bbox: [x, y, width, height]`. Category ids are
1-based, so the canonical class id is `category_id - 1`. Image ids may be 0;
every existence check below is a membership test, never truthiness.
"""
from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Optional, Sequence

from boxstore.codecs.base import DEFAULT_CLASSES, AnnotationCodec
from boxstore.core.errors import AnnotationParseError
from boxstore.core.file_access import FileAccess
from boxstore.models.annotation import Image, LoadedBox, LoadResult

CANDIDATE_FILES = ("annotations.json", "instances_default.json", "_annotations.coco.json")
DEFAULT_FILE = "annotations.json"


def _int_ids(records: List[Dict[str, Any]]) -> List[int]:
  out = []
  for r in records:
    rid = r.get("id") if isinstance(r, dict) else None
    if isinstance(rid, int) and not isinstance(rid, bool):
      out.append(rid)
  return out


class CocoCodec(AnnotationCodec):
  name = "coco"

  def __init__(self):
    super().__init__()
    self.annotation_file: Optional[str] = None
    self.init_empty()

  def init_empty(self) -> None:
    self.data: Dict[str, Any] = {"images": [], "annotations": [], "categories": []}
    self.next_image_id = 1
    self.next_annotation_id = 1
    self._image_ids: Dict[str, int] = {}

  # ---------------- document handling ----------------

  def parse(self, content: str, source: Optional[str] = None) -> Dict[str, Any]:
    """Load a COCO document into this codec; invalid JSON raises AnnotationParseError."""
    try:
      data = json.loads(content)
    except json.JSONDecodeError as e:
      raise AnnotationParseError(f"Invalid COCO JSON format: {e.msg}", source=source, line_no=e.lineno) from e
    if not isinstance(data, dict):
      raise AnnotationParseError("Invalid COCO JSON format: top level must be an object", source=source)

    for key in ("images", "annotations", "categories"):
      if not isinstance(data.get(key), list):
        data[key] = []
    self.data = data

    self._image_ids = {}
    for img in data["images"]:
      if isinstance(img, dict) and "file_name" in img and "id" in img:
        self._image_ids[str(img["file_name"])] = img["id"]

    image_ids = _int_ids(data["images"])
    ann_ids = _int_ids(data["annotations"])
    self.next_image_id = max(image_ids) + 1 if image_ids else 1
    self.next_annotation_id = max(ann_ids) + 1 if ann_ids else 1
    return self.data

  def stringify(self) -> str:
    return json.dumps(self.data, indent=2, ensure_ascii=False) + "\n"

  def categories_to_classes(self) -> List[str]:
    """Dense class list from 1-based categories; id gaps become class_<i>."""
    by_id: Dict[int, str] = {}
    for cat in self.data["categories"]:
      if not isinstance(cat, dict):
        continue
      cid = cat.get("id")
      if not isinstance(cid, int) or isinstance(cid, bool) or cid < 1:
        self._log.debug("skipping category with invalid id: %r", cat)
        continue
      by_id[cid] = str(cat.get("name", f"class_{cid - 1}"))
    if not by_id:
      return list(DEFAULT_CLASSES)
    return [by_id.get(cid, f"class_{cid - 1}") for cid in range(1, max(by_id) + 1)]

  def boxes_for_file(self, file_name: str) -> List[LoadedBox]:
    if file_name not in self._image_ids:
      return []
    image_id = self._image_ids[file_name]
    boxes: List[LoadedBox] = []
    for ann in self.data["annotations"]:
      if not isinstance(ann, dict) or ann.get("image_id") != image_id:
        continue
      bbox = ann.get("bbox")
      try:
        x, y, w, h = (float(v) for v in bbox)
        class_id = int(ann.get("category_id", 1)) - 1
      except (TypeError, ValueError):
        self._log.debug("skipping malformed annotation id=%r", ann.get("id"))
        continue
      ann_id = ann.get("id")
      boxes.append(
        LoadedBox(
          class_id=max(class_id, 0),
          x=x,
          y=y,
          width=max(w, 0.0),
          height=max(h, 0.0),
          annotation_id=ann_id if isinstance(ann_id, int) and not isinstance(ann_id, bool) else None,
        ))
    return boxes

  def ensure_image(self, file_name: str, width: int, height: int) -> int:
    """Return the document image id for `file_name`, creating the record once."""
    if file_name in self._image_ids:
      image_id = self._image_ids[file_name]
      for img in self.data["images"]:
        if isinstance(img, dict) and img.get("id") == image_id:
          img["width"] = width
          img["height"] = height
      return image_id
    image_id = self.next_image_id
    self.next_image_id += 1
    self.data["images"].append({"id": image_id, "file_name": file_name, "width": width, "height": height})
    self._image_ids[file_name] = image_id
    return image_id

  def set_categories(self, classes: Sequence[str]) -> None:
    self.data["categories"] = [{
      "id": idx + 1,
      "name": name,
      "supercategory": "none",
    } for idx, name in enumerate(classes)]

  def set_boxes_for_image(self, file_name: str, width: int, height: int, boxes: Sequence) -> int:
    image_id = self.ensure_image(file_name, width, height)
    self.data["annotations"] = [
      ann for ann in self.data["annotations"] if not (isinstance(ann, dict) and ann.get("image_id") == image_id)
    ]
    for box in boxes:
      ann_id = getattr(box, "annotation_id", None)
      if ann_id is None:
        ann_id = self.next_annotation_id
        self.next_annotation_id += 1
      else:
        self.next_annotation_id = max(self.next_annotation_id, int(ann_id) + 1)
      self.data["annotations"].append({
        "id": ann_id,
        "image_id": image_id,
        "category_id": int(box.class_id) + 1,
        "bbox": [box.x, box.y, box.width, box.height],
        "area": box.width * box.height,
        "iscrowd": 0,
      })
    return image_id

  # ---------------- codec interface ----------------

  async def load(self, files: FileAccess, images: Sequence[Image]) -> LoadResult:
    found = await self._probe(files, CANDIDATE_FILES)
    if found is None:
      self.annotation_file = None
      self.init_empty()
      return LoadResult(boxes={}, classes=list(DEFAULT_CLASSES))

    self.annotation_file, content = found
    self.parse(content, source=self.annotation_file)
    classes = self.categories_to_classes()
    boxes: Dict[str, List[LoadedBox]] = {}
    for image in images:
      image_boxes = self.boxes_for_file(image.file_name)
      if image_boxes:
        boxes[image.id] = image_boxes
    result = LoadResult(boxes=boxes, classes=classes)
    self._log.info("loaded %d boxes across %d images from %s", result.box_count, len(boxes), self.annotation_file)
    return result

  def _checkpoint(self):
    return copy.deepcopy(self.data), self.next_image_id, self.next_annotation_id, dict(self._image_ids)

  def _rollback(self, checkpoint) -> None:
    self.data, self.next_image_id, self.next_annotation_id, self._image_ids = checkpoint

  async def save(self, files: FileAccess, image: Image, boxes: Sequence, classes: Sequence[str]) -> None:
    """Rewrite the document with `boxes` for `image`.

    A failed write restores the cached document, so the next save of another
    image does not carry these boxes to disk.
    """
    checkpoint = self._checkpoint()
    self.set_categories(classes)
    self.set_boxes_for_image(image.file_name, image.width, image.height, boxes)
    target = self.annotation_file or DEFAULT_FILE
    try:
      await files.write_text(target, self.stringify())
    except Exception:
      self._rollback(checkpoint)
      raise
    self.annotation_file = target
    self._log.debug("saved %d boxes for %s to %s", len(boxes), image.file_name, target)
