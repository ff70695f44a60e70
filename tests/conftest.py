"""
Pytest configuration and shared fixtures for boxstore tests.
"""

# Ensure the project root is on sys.path so `boxstore` and `tests.fixtures` import without installing
import sys
from pathlib import Path as _Path

_THIS_DIR = _Path(__file__).resolve().parent
_PROJECT_ROOT = _THIS_DIR.parent
if str(_PROJECT_ROOT) not in sys.path:
  sys.path.insert(0, str(_PROJECT_ROOT))

import pytest
import shutil
import tempfile
from pathlib import Path
from typing import Generator

from flask import Flask
from flask.testing import FlaskClient

from boxstore.api import create_annotation_api
from boxstore.codecs.registry import CodecRegistry
from boxstore.config import AppConfig
from boxstore.core.annotation_store import AnnotationStore
from boxstore.services.annotation_service import AnnotationService
from tests.fixtures.helpers import MemoryFileAccess, write_images


@pytest.fixture
def temp_data_dir() -> Generator[Path, None, None]:
  """Create a temporary directory for test data."""
  temp_dir = Path(tempfile.mkdtemp(prefix="boxstore_test_"))
  try:
    yield temp_dir
  finally:
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def image_folder(temp_data_dir: Path) -> Path:
  """Folder with two images: a.jpg 640x480 and b.png 100x50."""
  return write_images(temp_data_dir / "images", {"a.jpg": (640, 480), "b.png": (100, 50)})


@pytest.fixture
def memory_files() -> MemoryFileAccess:
  return MemoryFileAccess()


@pytest.fixture
def store() -> AnnotationStore:
  return AnnotationStore()


@pytest.fixture
def populated_store(store: AnnotationStore) -> AnnotationStore:
  """Store with two images, one box on img_1, and img_1 current and clean."""
  store.set_classes(["cat", "dog"])
  store.add_image("a.jpg", "a.jpg", 640, 480, image_id="img_1")
  store.add_image("b.png", "b.png", 100, 50, image_id="img_2")
  store.add_box("img_1", 0, 10, 20, 30, 40)
  store.set_current_image("img_1")
  return store


@pytest.fixture
def service() -> AnnotationService:
  return AnnotationService(store=AnnotationStore(), registry=CodecRegistry())


@pytest.fixture
def app_config(temp_data_dir: Path) -> AppConfig:
  return AppConfig(data_root=temp_data_dir, default_format="yolo", host="127.0.0.1", port=5000)


@pytest.fixture(scope="function")
def app(app_config: AppConfig, service: AnnotationService) -> Generator[Flask, None, None]:
  """Flask app with the annotation API registered against a fresh service."""
  app = Flask(__name__)
  app.config.update({"TESTING": True})
  app.register_blueprint(create_annotation_api(service, app_config, name="annotation_api"))
  yield app


@pytest.fixture
def client(app: Flask) -> FlaskClient:
  return app.test_client()


@pytest.fixture
def restore_logging() -> Generator[None, None, None]:
  """Undo setup_logging() side effects on the root logger."""
  import logging

  root = logging.getLogger()
  handlers, level = list(root.handlers), root.level
  try:
    yield
  finally:
    for handler in list(root.handlers):
      if handler not in handlers:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
      if handler not in root.handlers:
        root.addHandler(handler)
    root.setLevel(level)
