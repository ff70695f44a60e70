"""
Format id -> codec lookup.

Codecs hold per-folder state, so each registry owns its own instances and
`fresh()` hands out a clean one whenever a new folder is opened.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Mapping, Optional

from boxstore.codecs.base import AnnotationCodec
from boxstore.codecs.coco import CocoCodec
from boxstore.codecs.ndjson import NdjsonCodec
from boxstore.codecs.yolo import YoloCodec
from boxstore.core.errors import UnknownFormatError

CodecFactory = Callable[[], AnnotationCodec]

DEFAULT_CODECS: Dict[str, CodecFactory] = {
  YoloCodec.name: YoloCodec,
  CocoCodec.name: CocoCodec,
  NdjsonCodec.name: NdjsonCodec,
}


class CodecRegistry:

  def __init__(self, factories: Optional[Mapping[str, CodecFactory]] = None):
    self._factories: Dict[str, CodecFactory] = dict(DEFAULT_CODECS if factories is None else factories)
    self._instances: Dict[str, AnnotationCodec] = {}

  def formats(self) -> List[str]:
    return list(self._factories)

  def __contains__(self, format_id: str) -> bool:
    return format_id in self._factories

  def register(self, format_id: str, factory: CodecFactory) -> None:
    self._factories[format_id] = factory
    self._instances.pop(format_id, None)

  def get(self, format_id: str) -> AnnotationCodec:
    if format_id not in self._factories:
      raise UnknownFormatError(format_id)
    if format_id not in self._instances:
      self._instances[format_id] = self._factories[format_id]()
    return self._instances[format_id]

  def fresh(self, format_id: str) -> AnnotationCodec:
    """Replace the cached instance with a new one and return it."""
    self._instances.pop(format_id, None)
    return self.get(format_id)
