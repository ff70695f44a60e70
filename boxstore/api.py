from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from flask import Blueprint, jsonify, request
from pydantic import ValidationError

from boxstore.config import AppConfig
from boxstore.core.errors import (
  AnnotationParseError,
  NoCurrentImageError,
  NoFolderOpenError,
  UnknownFormatError,
)
from boxstore.dto import (
  AddBoxRequest,
  AddClassRequest,
  ErrorResponse,
  ExportRequest,
  NavigateRequest,
  OpenFolderRequest,
  SetCurrentImageRequest,
  UpdateBoxRequest,
)
from boxstore.services.annotation_service import AnnotationService


def _err(code: str, message: str, status: int, details: Optional[Dict[str, Any]] = None):
  err = ErrorResponse(code=code, message=message, details=details)
  return jsonify(err.model_dump()), status


def _bad_payload(e: Exception):
  return _err("bad_request", "Invalid payload", 400, {"error": str(e)})


def create_annotation_api(service: AnnotationService,
                          config: Optional[AppConfig] = None,
                          name: str = "annotation_api") -> Blueprint:
  bp = Blueprint(name, __name__)
  log = logging.getLogger(f"boxstore.api.{name}")
  data_root = config.data_root if config is not None else Path.cwd()

  @bp.before_request
  def _bp_log_request():
    log.debug("request %s %s qs=%s", request.method, request.path, request.query_string)

  @bp.after_request
  def _bp_log_response(resp):
    log.debug("response %s %s -> %s", request.method, request.path, resp.status_code)
    return resp

  # -------------------- formats / folder --------------------
  @bp.route("/api/formats", methods=["GET"])
  def api_list_formats():
    return jsonify(service.formats())

  @bp.route("/api/folder", methods=["POST"])
  def api_open_folder():
    """Open an image folder with an explicitly chosen format.

        Body: {"path": "<folder>", "format": "yolo|coco|ndjson"}
        Relative paths resolve against the configured data root.
        """
    try:
      payload = OpenFolderRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)

    folder = Path(payload.path)
    if not folder.is_absolute():
      folder = data_root / folder
    try:
      summary = service.run(service.open_folder(folder, payload.format))
      return jsonify(summary)
    except UnknownFormatError as e:
      return _err("unknown_format", str(e), 400, {"formats": service.formats()})
    except FileNotFoundError as e:
      return _err("not_found", str(e), 404)
    except AnnotationParseError as e:
      return _err("parse_error", str(e), 422, {"source": e.source, "line": e.line_no})
    except Exception as e:
      log.exception("open_folder_error")
      return _err("open_folder_error", "Failed to open folder", 500, {"error": str(e)})

  @bp.route("/api/state", methods=["GET"])
  def api_state():
    return jsonify(service.summary())

  @bp.route("/api/stats", methods=["GET"])
  def api_stats():
    return jsonify(service.stats())

  # -------------------- images --------------------
  @bp.route("/api/images", methods=["GET"])
  def api_list_images():
    return jsonify(service.list_images())

  @bp.route("/api/images/current", methods=["POST"])
  def api_set_current_image():
    try:
      payload = SetCurrentImageRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)
    try:
      return jsonify(service.set_current_image(payload.image_id))
    except KeyError:
      return _err("not_found", f"Image not found: {payload.image_id}", 404)

  @bp.route("/api/images/navigate", methods=["POST"])
  def api_navigate():
    try:
      payload = NavigateRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)
    try:
      return jsonify(service.navigate(payload.offset))
    except NoFolderOpenError as e:
      return _err("no_folder", str(e), 404)

  @bp.route("/api/images/<image_id>/boxes", methods=["GET"])
  def api_image_boxes(image_id: str):
    try:
      return jsonify(service.boxes_for_image(image_id))
    except KeyError:
      return _err("not_found", f"Image not found: {image_id}", 404)

  # -------------------- boxes --------------------
  @bp.route("/api/boxes", methods=["POST"])
  def api_add_box():
    try:
      payload = AddBoxRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)
    try:
      box = service.add_box(payload.image_id, payload.class_id, payload.x, payload.y, payload.width, payload.height)
      return jsonify(box), 201
    except KeyError:
      return _err("not_found", f"Image not found: {payload.image_id}", 404)

  @bp.route("/api/boxes/<box_id>", methods=["PUT"])
  def api_update_box(box_id: str):
    try:
      payload = UpdateBoxRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)
    try:
      return jsonify(service.update_box(box_id, **payload.changes()))
    except KeyError:
      return _err("not_found", f"Box not found: {box_id}", 404)

  @bp.route("/api/boxes/<box_id>", methods=["DELETE"])
  def api_delete_box(box_id: str):
    if not service.delete_box(box_id):
      return _err("not_found", f"Box not found: {box_id}", 404)
    return jsonify({"deleted": 1})

  # -------------------- classes --------------------
  @bp.route("/api/classes", methods=["GET"])
  def api_list_classes():
    return jsonify(service.list_classes())

  @bp.route("/api/classes", methods=["POST"])
  def api_add_class():
    try:
      payload = AddClassRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)
    return jsonify(service.add_class(payload.name)), 201

  # -------------------- save / discard / export --------------------
  @bp.route("/api/save", methods=["POST"])
  def api_save():
    try:
      return jsonify({"success": True, "saved": service.run(service.save_current())})
    except NoFolderOpenError as e:
      return _err("no_folder", str(e), 404)
    except NoCurrentImageError as e:
      return _err("no_current_image", str(e), 409)
    except OSError as e:
      log.exception("save_error")
      return _err("save_error", "Failed to save annotations", 500, {"error": str(e)})

  @bp.route("/api/discard", methods=["POST"])
  def api_discard():
    try:
      return jsonify(service.discard_current())
    except NoCurrentImageError as e:
      return _err("no_current_image", str(e), 409)

  @bp.route("/api/export", methods=["POST"])
  def api_export():
    try:
      payload = ExportRequest.model_validate(request.get_json(silent=True) or {})
    except ValidationError as e:
      return _bad_payload(e)
    try:
      return jsonify(service.run(service.export(payload.format)))
    except UnknownFormatError as e:
      return _err("unknown_format", str(e), 400, {"formats": service.formats()})
    except NoFolderOpenError as e:
      return _err("no_folder", str(e), 404)
    except AnnotationParseError as e:
      return _err("parse_error", str(e), 422, {"source": e.source, "line": e.line_no})
    except ValueError as e:
      return _err("validation_error", str(e), 400)
    except OSError as e:
      log.exception("export_error")
      return _err("export_error", "Failed to export annotations", 500, {"error": str(e)})

  return bp
