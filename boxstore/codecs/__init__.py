"""
Annotation codecs: YOLO text labels, COCO JSON and NDJSON records.
"""

from .base import AnnotationCodec
from .coco import CocoCodec
from .ndjson import NdjsonCodec, array_to_class_names, class_names_to_array
from .registry import CodecRegistry
from .yolo import YoloCodec

__all__ = [
  "AnnotationCodec",
  "CocoCodec",
  "CodecRegistry",
  "NdjsonCodec",
  "YoloCodec",
  "array_to_class_names",
  "class_names_to_array",
]
