"""
Root logging configuration shared by the web app and the CLI.

Every record carries a `request_id`: the id of the HTTP request being served,
or "-" outside of one (CLI runs, startup).
"""
import contextvars
import logging
import logging.config
import os
import sys
import time
import uuid
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s [req=%(request_id)s] %(message)s"
JSON_FIELDS = "%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"
REQUEST_ID_HEADER = "X-Request-Id"

_request_id: contextvars.ContextVar[str] = contextvars.ContextVar("boxstore_request_id", default="-")


class RequestContextFilter(logging.Filter):
  """Copies the current request id onto each record."""

  def filter(self, record: logging.LogRecord) -> bool:
    record.request_id = _request_id.get()
    return True


def generate_request_id(header_value: Optional[str] = None) -> str:
  """Reuse a caller-supplied id (trimmed, at most 128 chars) or mint a uuid4."""
  incoming = (header_value or "").strip()[:128]
  return incoming or str(uuid.uuid4())


def set_request_id(request_id: str) -> None:
  _request_id.set(request_id)


def current_request_id() -> str:
  return _request_id.get()


def _env_flag(name: str) -> bool:
  return os.getenv(name, "").strip().lower() in ("1", "true", "yes")


def _json_formatter() -> logging.Formatter:
  return JsonFormatter(JSON_FIELDS, json_ensure_ascii=False)


def _output_handler(log_file: Optional[str], formatter: str) -> Dict[str, Any]:
  if log_file:
    return {
      "class": "logging.handlers.RotatingFileHandler",
      "filename": log_file,
      "maxBytes": 10 * 1024 * 1024,
      "backupCount": 3,
      "encoding": "utf-8",
      "formatter": formatter,
      "filters": ["request_context"],
    }
  return {
    "class": "logging.StreamHandler",
    "stream": sys.stdout,
    "formatter": formatter,
    "filters": ["request_context"],
  }


def setup_logging(app_debug: Optional[bool] = None) -> None:
  """Install one root handler writing text or JSON lines.

  BOXSTORE_LOG_LEVEL picks the level (INFO, or DEBUG when `app_debug`),
  BOXSTORE_LOG_JSON=1 switches to JSON records and BOXSTORE_LOG_FILE sends
  output to a rotating file instead of stdout.
  """
  default_level = "DEBUG" if app_debug else "INFO"
  level_name = (os.getenv("BOXSTORE_LOG_LEVEL") or default_level).upper()
  level = logging.getLevelName(level_name)
  if not isinstance(level, int):
    level = logging.INFO

  formatter = "json" if _env_flag("BOXSTORE_LOG_JSON") else "text"
  logging.config.dictConfig({
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {"request_context": {"()": RequestContextFilter}},
    "formatters": {
      "text": {"format": TEXT_FORMAT, "datefmt": "%Y-%m-%dT%H:%M:%S%z"},
      "json": {"()": _json_formatter},
    },
    "handlers": {"main": _output_handler(os.getenv("BOXSTORE_LOG_FILE"), formatter)},
    "root": {"level": level, "handlers": ["main"]},
    # Pillow logs every plugin probe at DEBUG.
    "loggers": {"PIL": {"level": "WARNING"}},
  })


def install_flask_request_hooks(app) -> None:
  """Tag each request with an id, echo it back in a header and log one access line.

  The werkzeug server log duplicates the access line, so it is limited to
  warnings unless the root logger is at DEBUG.
  """
  from flask import g, request

  access_log = logging.getLogger("boxstore.access")
  if logging.getLogger().getEffectiveLevel() > logging.DEBUG:
    logging.getLogger("werkzeug").setLevel(logging.WARNING)

  @app.before_request
  def _assign_request_id():
    g.boxstore_started = time.perf_counter()
    set_request_id(generate_request_id(request.headers.get(REQUEST_ID_HEADER)))

  @app.after_request
  def _log_access(response):
    started = g.get("boxstore_started")
    elapsed = f"{(time.perf_counter() - started) * 1000:.0f}ms" if started is not None else "-"
    path = request.full_path if request.query_string else request.path
    access_log.info("%s %s %s %s", request.method, path, response.status_code, elapsed)
    response.headers[REQUEST_ID_HEADER] = current_request_id()
    return response
