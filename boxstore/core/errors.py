"""
Exception types raised by the annotation core.

Missing annotation files are not errors: codecs start from an empty dataset
instead. Read/write failures at the file boundary surface as plain OSError.
"""


class AnnotationError(Exception):
  """Base class for annotation core failures."""


class AnnotationParseError(AnnotationError, ValueError):
  """A line, record or document could not be parsed."""

  def __init__(self, message: str, source: str | None = None, line_no: int | None = None):
    super().__init__(message)
    self.source = source
    self.line_no = line_no


class NoFolderOpenError(AnnotationError, LookupError):
  """An operation needs an opened folder but none is loaded."""


class NoCurrentImageError(AnnotationError, LookupError):
  """An operation needs a current image but none is selected."""


class UnknownFormatError(AnnotationError, KeyError):
  """No codec is registered under the requested format id."""

  def __init__(self, format_id: str):
    super().__init__(format_id)
    self.format_id = format_id

  def __str__(self) -> str:
    return f"Unknown annotation format: {self.format_id!r}"
