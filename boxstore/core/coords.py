"""
Conversions between pixel boxes (top-left origin) and normalized center boxes.

Normalized values are always clamped into [0, 1]. Pixel values produced from
normalized ones are not clamped here; callers that need in-image boxes use
`clamp_box`.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class PixelBox:
  x: float
  y: float
  width: float
  height: float


@dataclass(frozen=True, slots=True)
class NormalizedBox:
  """Center-based box with every field in [0, 1]."""

  center_x: float
  center_y: float
  width: float
  height: float


def clamp_unit(value: float) -> float:
  return min(max(float(value), 0.0), 1.0)


def _check_dims(image_width: float, image_height: float) -> None:
  if image_width <= 0 or image_height <= 0:
    raise ValueError(f"image dimensions must be positive, got {image_width}x{image_height}")


def pixel_to_normalized(box, image_width: float, image_height: float) -> NormalizedBox:
  """Normalize any object with x/y/width/height attributes."""
  _check_dims(image_width, image_height)
  center_x = (box.x + box.width / 2) / image_width
  center_y = (box.y + box.height / 2) / image_height
  return NormalizedBox(
    center_x=clamp_unit(center_x),
    center_y=clamp_unit(center_y),
    width=clamp_unit(box.width / image_width),
    height=clamp_unit(box.height / image_height),
  )


def normalized_to_pixel(norm: NormalizedBox, image_width: float, image_height: float) -> PixelBox:
  width = norm.width * image_width
  height = norm.height * image_height
  return PixelBox(
    x=norm.center_x * image_width - width / 2,
    y=norm.center_y * image_height - height / 2,
    width=width,
    height=height,
  )


def clamp_box(box, image_width: float, image_height: float) -> PixelBox:
  """Clip a pixel box to the image rectangle; negative sizes collapse to zero."""
  _check_dims(image_width, image_height)
  x = min(max(float(box.x), 0.0), float(image_width))
  y = min(max(float(box.y), 0.0), float(image_height))
  right = min(max(float(box.x) + max(float(box.width), 0.0), x), float(image_width))
  bottom = min(max(float(box.y) + max(float(box.height), 0.0), y), float(image_height))
  return PixelBox(x=x, y=y, width=right - x, height=bottom - y)
