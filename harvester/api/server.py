"""Flask application factory."""
from __future__ import annotations

import logging
import logging.handlers
import os
import time
from pathlib import Path
from typing import Optional
from uuid import uuid4

from flask import Flask, g, jsonify, request
from flask_cors import CORS

from harvester.api.request_context import RequestIdFilter, clear_req_id, set_req_id
from harvester.api.routes.extension import extension_bp
from harvester.api.routes.extension_runtime import get_store
from harvester.config import get_log_dir

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-Id"


def create_app(config_overrides: Optional[dict] = None) -> Flask:
    """Initialize and configure the Flask application."""
    app = Flask(__name__)
    CORS(app)

    app.config["STARTUP_TIME"] = time.time()
    if config_overrides:
        app.config.update(config_overrides)

    if not app.config.get("SKIP_FILE_LOGGING"):
        _configure_logging(get_log_dir())

    @app.before_request
    def _assign_request_id() -> None:
        req_id = (request.headers.get(REQUEST_ID_HEADER) or "").strip() or uuid4().hex[:8]
        g.req_id = req_id
        set_req_id(req_id)

    @app.after_request
    def _echo_request_id(response):
        response.headers[REQUEST_ID_HEADER] = g.get("req_id", "-")
        return response

    @app.teardown_request
    def _clear_request_id(exc: Optional[BaseException]) -> None:
        clear_req_id()

    @app.route("/api/health", methods=["GET"])
    def health():
        return jsonify({"status": "ok", "uptimeSeconds": round(time.time() - app.config["STARTUP_TIME"], 1)})

    app.register_blueprint(extension_bp)

    # Seed extension_settings the first time the namespace is opened.
    try:
        get_store()
    except Exception as exc:
        logger.warning("Store initialization deferred: %s", exc)

    logger.info("Harvester API initialized")
    return app


def _configure_logging(log_dir: Path = Path("logs")) -> None:
    """Attach a rotating file handler (with request ids) for API diagnostics."""
    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "api.log"

    log_level_name = os.getenv("API_LOG_LEVEL", "INFO").upper()
    log_level = getattr(logging, log_level_name, logging.INFO)

    root = logging.getLogger()

    # Avoid adding duplicate handlers if re-initializing
    already_configured = any(
        isinstance(h, logging.handlers.RotatingFileHandler)
        and getattr(h, "baseFilename", "") == str(log_path.resolve())
        for h in root.handlers
    )
    if already_configured:
        return

    root.setLevel(log_level)

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=5 * 1024 * 1024, backupCount=5
    )
    file_handler.setLevel(log_level)
    file_handler.addFilter(RequestIdFilter())
    file_handler.setFormatter(
        logging.Formatter(
            "%(asctime)s [%(levelname)s] [req=%(req_id)s] %(name)s:%(lineno)d: %(message)s"
        )
    )
    root.addHandler(file_handler)


if __name__ == "__main__":
    # Dev server entry point
    app = create_app()
    port = int(os.getenv("PORT", 8000))
    app.run(host="0.0.0.0", port=port, debug=True)
