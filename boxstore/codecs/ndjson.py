"""
Ultralytics-style NDJSON: one JSON record per line.

The first record is the dataset record (`type: dataset`) carrying
`class_names` keyed by stringified class index. Each following record
describes one image (`type: image`) with boxes stored as
`[class_id, center_x, center_y, width, height]`, normalized, 5 decimals.
"""
from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from boxstore.codecs.base import DEFAULT_CLASSES, AnnotationCodec
from boxstore.core.coords import NormalizedBox, clamp_unit, normalized_to_pixel, pixel_to_normalized
from boxstore.core.file_access import FileAccess
from boxstore.models.annotation import Image, LoadedBox, LoadResult

_BASENAMES = ("dataset", "annotations", "data")
CANDIDATE_FILES = tuple(f"{b}.ndjson" for b in _BASENAMES) + tuple(f"{b}.json" for b in _BASENAMES)
DEFAULT_FILE = "dataset.ndjson"

# Image record fields written by this codec; anything else is carried over.
_OWNED_FIELDS = ("type", "file", "width", "height")


def class_names_to_array(class_names: Union[Mapping[str, Any], Sequence[str], None]) -> List[str]:
  """Dense class list from an index map; missing indices become class_<i>."""
  if class_names is None:
    return []
  if isinstance(class_names, (list, tuple)):
    return [str(n) for n in class_names]
  indexed: Dict[int, str] = {}
  for key, value in class_names.items():
    try:
      idx = int(key)
    except (TypeError, ValueError):
      continue
    if idx >= 0:
      indexed[idx] = str(value)
  if not indexed:
    return []
  return [indexed.get(i, f"class_{i}") for i in range(max(indexed) + 1)]


def array_to_class_names(classes: Sequence[str]) -> Dict[str, str]:
  return {str(idx): name for idx, name in enumerate(classes)}


def _empty_dataset() -> Dict[str, Any]:
  return {"type": "dataset", "task": "detect", "class_names": {}}


class NdjsonCodec(AnnotationCodec):
  name = "ndjson"

  def __init__(self):
    super().__init__()
    self.annotation_file = DEFAULT_FILE
    self.init_empty()

  def init_empty(self) -> None:
    self.dataset: Optional[Dict[str, Any]] = _empty_dataset()
    self.image_records: Dict[str, Dict[str, Any]] = {}

  # ---------------- record handling ----------------

  def parse(self, content: str) -> None:
    """Classify records by type; lines that are not JSON objects are skipped."""
    self.dataset = None
    self.image_records = {}
    for line_no, line in enumerate(content.splitlines(), start=1):
      if not line.strip():
        continue
      try:
        record = json.loads(line)
      except json.JSONDecodeError:
        self._log.warning("skipping unparseable NDJSON line %d", line_no)
        continue
      if not isinstance(record, dict):
        self._log.warning("skipping non-object NDJSON line %d", line_no)
        continue
      rtype = record.get("type")
      if rtype == "dataset":
        if self.dataset is None:
          self.dataset = record
        else:
          self._log.warning("ignoring extra dataset record on line %d", line_no)
      elif rtype == "image":
        file_name = record.get("file")
        if isinstance(file_name, str) and file_name:
          self.image_records[file_name] = record
        else:
          self._log.debug("skipping image record without file on line %d", line_no)
      else:
        self._log.debug("skipping record of type %r on line %d", rtype, line_no)

    if self.dataset is None:
      self.dataset = _empty_dataset()

  def stringify(self,
                dataset: Optional[Dict[str, Any]] = None,
                image_records: Optional[Dict[str, Dict[str, Any]]] = None) -> str:
    dataset = self.dataset if dataset is None else dataset
    image_records = self.image_records if image_records is None else image_records
    lines = []
    if dataset is not None:
      lines.append(json.dumps(dataset, ensure_ascii=False))
    for file_name in sorted(image_records):
      lines.append(json.dumps(image_records[file_name], ensure_ascii=False))
    return "\n".join(lines) + ("\n" if lines else "")

  def parse_boxes(self, raw_boxes: Any, image_width: int, image_height: int) -> List[LoadedBox]:
    boxes: List[LoadedBox] = []
    if not isinstance(raw_boxes, list):
      return boxes
    for raw in raw_boxes:
      if not isinstance(raw, (list, tuple)) or len(raw) < 5:
        continue
      try:
        class_id = int(float(raw[0]))
        values = [float(v) for v in raw[1:5]]
      except (TypeError, ValueError, OverflowError):
        self._log.debug("skipping malformed box %r", raw)
        continue
      if not all(math.isfinite(v) for v in values):
        continue
      px = normalized_to_pixel(NormalizedBox(*(clamp_unit(v) for v in values)), image_width, image_height)
      boxes.append(LoadedBox(class_id=max(class_id, 0), x=px.x, y=px.y, width=px.width, height=px.height))
    return boxes

  def stringify_boxes(self, boxes: Sequence, image_width: int, image_height: int) -> List[List[float]]:
    out = []
    for box in boxes:
      n = pixel_to_normalized(box, image_width, image_height)
      out.append([
        int(box.class_id),
        round(n.center_x, 5),
        round(n.center_y, 5),
        round(n.width, 5),
        round(n.height, 5),
      ])
    return out

  # ---------------- codec interface ----------------

  async def load(self, files: FileAccess, images: Sequence[Image]) -> LoadResult:
    found = await self._probe(files, CANDIDATE_FILES)
    if found is None:
      self.annotation_file = DEFAULT_FILE
      self.init_empty()
      return LoadResult(boxes={}, classes=list(DEFAULT_CLASSES))

    self.annotation_file, content = found
    self.parse(content)
    classes = class_names_to_array(self.dataset.get("class_names")) or list(DEFAULT_CLASSES)

    boxes: Dict[str, List[LoadedBox]] = {}
    for image in images:
      record = self.image_records.get(image.file_name)
      if record is None:
        continue
      annotations = record.get("annotations")
      if not isinstance(annotations, dict):
        continue
      image_boxes = self.parse_boxes(annotations.get("boxes"), image.width, image.height)
      if image_boxes:
        boxes[image.id] = image_boxes
    result = LoadResult(boxes=boxes, classes=classes)
    self._log.info("loaded %d boxes across %d images from %s", result.box_count, len(boxes), self.annotation_file)
    return result

  async def save(self, files: FileAccess, image: Image, boxes: Sequence, classes: Sequence[str]) -> None:
    """Write `boxes` for `image`; the cached records change only once the write succeeded."""
    dataset = dict(self.dataset or _empty_dataset())
    dataset["class_names"] = array_to_class_names(classes)

    existing = self.image_records.get(image.file_name) or {}
    record: Dict[str, Any] = {
      "type": "image",
      "file": image.file_name,
      "width": image.width,
      "height": image.height,
    }
    record.update({k: v for k, v in existing.items() if k not in _OWNED_FIELDS})
    prior = existing.get("annotations")
    annotations = dict(prior) if isinstance(prior, dict) else {}
    annotations["boxes"] = self.stringify_boxes(boxes, image.width, image.height)
    record["annotations"] = annotations
    image_records = dict(self.image_records)
    image_records[image.file_name] = record

    await files.write_text(self.annotation_file, self.stringify(dataset, image_records))
    self.dataset = dataset
    self.image_records = image_records
    self._log.debug("saved %d boxes for %s to %s", len(boxes), image.file_name, self.annotation_file)
