"""Application-level configuration read from the environment."""

from __future__ import annotations

from dataclasses import dataclass
import os
from pathlib import Path

from boxstore.codecs.registry import DEFAULT_CODECS


@dataclass(frozen=True)
class AppConfig:
  data_root: Path
  default_format: str
  host: str
  port: int


def build_config(base_dir: Path | None = None) -> AppConfig:
  """Construct a configuration using environment overrides when available.

	Environment variables:
	- BOXSTORE_DATA_ROOT: base directory for relative folder paths (default cwd)
	- BOXSTORE_DEFAULT_FORMAT: yolo, coco or ndjson (default yolo)
	- BOXSTORE_HOST / BOXSTORE_PORT: bind address for `boxstore serve`
	"""
  base_dir = base_dir or Path.cwd()
  data_root = Path(os.getenv("BOXSTORE_DATA_ROOT", base_dir)).expanduser().resolve()

  default_format = os.getenv("BOXSTORE_DEFAULT_FORMAT", "yolo").strip().lower()
  if default_format not in DEFAULT_CODECS:
    raise ValueError(f"BOXSTORE_DEFAULT_FORMAT must be one of {sorted(DEFAULT_CODECS)}, got {default_format!r}")

  host = os.getenv("BOXSTORE_HOST", "127.0.0.1")
  port_raw = os.getenv("BOXSTORE_PORT", "5000")
  try:
    port = int(port_raw)
  except ValueError as e:
    raise ValueError(f"BOXSTORE_PORT must be an integer, got {port_raw!r}") from e

  return AppConfig(data_root=data_root, default_format=default_format, host=host, port=port)
