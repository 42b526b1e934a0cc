"""Routes for the extension message protocol, capture ingest, and read/export."""
from __future__ import annotations

import logging

from flask import Blueprint, Response, jsonify, request

from harvester.api.routes.extension_runtime import get_cascade, get_router, get_store
from harvester.api.routes.extension_utils import (
    parse_capture_descriptor,
    parse_json_body,
    require_ingest_auth,
    require_key,
)

logger = logging.getLogger(__name__)

extension_bp = Blueprint("extension", __name__, url_prefix="/api/extension")


@extension_bp.route("/messages", methods=["POST"])
def post_message():
    """Handle one protocol message; operation failures keep HTTP 200."""
    try:
        require_ingest_auth(request)
        message = parse_json_body(request)
        response = get_router().handle(message)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except PermissionError as exc:
        return jsonify({"error": str(exc)}), 401
    except Exception as exc:
        logger.exception("message handling failed")
        return jsonify({"error": "message handling failed", "details": str(exc)}), 500
    return jsonify(response)


@extension_bp.route("/captures", methods=["POST"])
def post_capture():
    """Run one observed network exchange through the interception cascade."""
    try:
        require_ingest_auth(request)
        descriptor = parse_capture_descriptor(parse_json_body(request))
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    except PermissionError as exc:
        return jsonify({"error": str(exc)}), 401

    event = get_cascade().observe(descriptor)
    if event is None:
        return jsonify({"success": True, "captured": False})
    return jsonify(
        {
            "success": True,
            "captured": True,
            "category": event.category,
            "endpoint": event.pathname,
            "queryId": event.query_identifier,
        }
    )


@extension_bp.route("/data", methods=["GET"])
def get_all_data():
    result = get_store().get_all()
    return jsonify(result), (200 if result.get("success") else 500)


@extension_bp.route("/data/<key>", methods=["GET"])
def get_data(key: str):
    result = get_store().get(key)
    return jsonify(result), (200 if result.get("success") else 500)


@extension_bp.route("/data", methods=["DELETE"])
def clear_data():
    try:
        require_ingest_auth(request)
    except PermissionError as exc:
        return jsonify({"error": str(exc)}), 401
    result = get_store().clear()
    return jsonify(result), (200 if result.get("success") else 500)


@extension_bp.route("/stats", methods=["GET"])
def get_stats():
    result = get_store().stats()
    return jsonify(result), (200 if result.get("success") else 500)


def _download(result: dict, mimetype: str):
    if not result.get("success"):
        return jsonify(result), 404
    return Response(
        result["content"],
        mimetype=mimetype,
        headers={"Content-Disposition": f'attachment; filename="{result["filename"]}"'},
    )


@extension_bp.route("/export.json", methods=["GET"])
def export_json():
    return _download(get_router().handle({"type": "EXPORT_JSON"}), "application/json")


@extension_bp.route("/export.csv", methods=["GET"])
def export_csv():
    try:
        key = require_key(request)
    except ValueError as exc:
        return jsonify({"error": str(exc)}), 400
    return _download(get_router().handle({"type": "EXPORT_CSV", "dataKey": key}), "text/csv")
