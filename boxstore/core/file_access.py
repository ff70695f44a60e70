"""
Relative-path file access used by every codec.

Codecs never see absolute paths: they ask a FileAccess rooted at the opened
folder to read, write or probe `/`-separated relative paths.
"""
from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable


@runtime_checkable
class FileAccess(Protocol):

  async def read_text(self, path: str) -> str | None:
    """Return file contents, or None when the file does not exist."""
    ...

  async def write_text(self, path: str, text: str) -> None:
    ...

  async def exists(self, path: str) -> bool:
    ...


class LocalFileAccess:
  """FileAccess over a directory on local disk.

    Blocking I/O runs in a worker thread. Writes go to a sibling temp file that
    then replaces the target, so readers never observe a half-written file.
    """

  def __init__(self, root: str | Path):
    self.root = Path(root).resolve()
    self._log = logging.getLogger("boxstore.core.LocalFileAccess")

  def resolve(self, path: str) -> Path:
    rel = PurePosixPath(path.replace("\\", "/"))
    if rel.is_absolute() or not rel.parts:
      raise ValueError(f"expected a relative path, got {path!r}")
    target = (self.root / Path(*rel.parts)).resolve()
    if target != self.root and self.root not in target.parents:
      raise ValueError(f"path escapes folder root: {path!r}")
    return target

  def _read(self, target: Path) -> str | None:
    try:
      return target.read_text(encoding="utf-8")
    except FileNotFoundError:
      return None

  def _write(self, target: Path, text: str) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    tmp = target.with_name(f".{target.name}.tmp")
    try:
      tmp.write_text(text, encoding="utf-8")
      os.replace(tmp, target)
    except OSError:
      tmp.unlink(missing_ok=True)
      raise

  async def read_text(self, path: str) -> str | None:
    target = self.resolve(path)
    text = await asyncio.to_thread(self._read, target)
    self._log.debug("read_text path=%s found=%s", path, text is not None)
    return text

  async def write_text(self, path: str, text: str) -> None:
    target = self.resolve(path)
    await asyncio.to_thread(self._write, target, text)
    self._log.debug("write_text path=%s bytes=%d", path, len(text))

  async def exists(self, path: str) -> bool:
    target = self.resolve(path)
    return await asyncio.to_thread(target.is_file)
