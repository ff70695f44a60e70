from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class ErrorResponse(BaseModel):
  code: str
  message: str
  details: Optional[Dict[str, Any]] = None


def _strip(v):
  return v.strip() if isinstance(v, str) else v


class OpenFolderRequest(BaseModel):
  path: str
  format: Optional[str] = None

  @field_validator("path", "format", mode="before")
  def _trim(cls, v):
    return _strip(v)

  @field_validator("path")
  def _path_required(cls, v):
    if not v:
      raise ValueError("path must not be empty")
    return v

  @field_validator("format")
  def _lower_format(cls, v):
    return v.lower() if v else None


class SetCurrentImageRequest(BaseModel):
  image_id: str

  @field_validator("image_id", mode="before")
  def _trim_image_id(cls, v):
    return _strip(v)


class NavigateRequest(BaseModel):
  offset: int = 1


class AddBoxRequest(BaseModel):
  image_id: str
  class_id: int = Field(ge=0)
  x: float
  y: float
  width: float = Field(ge=0)
  height: float = Field(ge=0)

  @field_validator("image_id", mode="before")
  def _trim_image_id(cls, v):
    return _strip(v)


class UpdateBoxRequest(BaseModel):
  class_id: Optional[int] = Field(default=None, ge=0)
  x: Optional[float] = None
  y: Optional[float] = None
  width: Optional[float] = Field(default=None, ge=0)
  height: Optional[float] = Field(default=None, ge=0)

  @model_validator(mode="after")
  def _require_any_field(self):
    if not self.changes():
      raise ValueError("At least one of class_id, x, y, width, height must be provided")
    return self

  def changes(self) -> Dict[str, Any]:
    return self.model_dump(exclude_none=True)


class AddClassRequest(BaseModel):
  name: str

  @field_validator("name", mode="before")
  def _trim_name(cls, v):
    return _strip(v)

  @field_validator("name")
  def _name_required(cls, v):
    if not v:
      raise ValueError("name must not be empty")
    return v


class ExportRequest(BaseModel):
  format: str

  @field_validator("format", mode="before")
  def _normalize_format(cls, v):
    return v.strip().lower() if isinstance(v, str) else v
