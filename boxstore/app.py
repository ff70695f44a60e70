"""
Flask application factory for the annotation HTTP API.
"""

from __future__ import annotations

import logging
from typing import Optional

from flask import Flask

from boxstore.api import create_annotation_api
from boxstore.config import AppConfig, build_config
from boxstore.logging_setup import install_flask_request_hooks, setup_logging
from boxstore.services.annotation_service import AnnotationService


def create_app(config: Optional[AppConfig] = None,
               service: Optional[AnnotationService] = None,
               debug: Optional[bool] = None) -> Flask:
  config = config or build_config()
  service = service or AnnotationService(default_format=config.default_format)

  setup_logging(app_debug=debug)
  app = Flask(__name__)
  app.config["BOXSTORE"] = config
  install_flask_request_hooks(app)

  api_bp = create_annotation_api(service, config, name="annotation_api")
  app.register_blueprint(api_bp)
  app.extensions["boxstore.service"] = service

  logging.getLogger("boxstore.app").info("app ready data_root=%s default_format=%s", config.data_root,
                                         config.default_format)
  return app
