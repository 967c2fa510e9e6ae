"""
HTTP surface of the decision bridge.

Routes:
    POST /signal  - shared-secret protected decision endpoint
    GET  /health  - liveness, no credential required
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from bridge_config import BridgeConfig
from core.auth import AUTH_HEADER
from core.decision import TradeDecision
from core.handler import BridgeHandler


def create_app(config: BridgeConfig, handler: Optional[BridgeHandler] = None) -> Flask:
    """Build the Flask app around one handler instance."""
    app = Flask(__name__)
    bridge = handler or BridgeHandler(config)
    app.extensions["bridge_handler"] = bridge

    @app.get("/health")
    def health():
        return jsonify(
            {
                "status": "ok",
                "model": config.llm_model,
                "instrument": config.instrument,
                "llm_configured": config.llm_configured,
                "time": datetime.now(timezone.utc).isoformat(),
            }
        )

    @app.post("/signal")
    def signal():
        payload = request.get_json(silent=True)
        result = bridge.handle(
            credential=request.headers.get(AUTH_HEADER),
            payload=payload,
            origin=request.remote_addr,
        )
        return jsonify(result.body), result.status_code

    @app.errorhandler(Exception)
    def unhandled(exc):
        if isinstance(exc, HTTPException):
            return exc
        # The trading client parses the body unconditionally, so even a
        # crash on the decision route answers with a HOLD body.
        logging.exception("Unhandled error on %s", request.path)
        if request.path == "/signal":
            return jsonify(TradeDecision.hold("Internal error; holding").to_response()), 200
        return jsonify({"error": "Internal error"}), 500

    return app


def run_server(config: BridgeConfig, host: Optional[str] = None, port: Optional[int] = None) -> None:
    bind_host = host or config.host
    bind_port = port or config.port
    line = "=" * 50
    logging.info(line)
    logging.info("  Decision Bridge - %s", config.instrument)
    logging.info("  Port: %s", bind_port)
    logging.info("  Model: %s", config.llm_model)
    logging.info("  Deadlines: request %.1fs, completion %.1fs", config.request_timeout, config.completion_timeout)
    logging.info(line)

    app = create_app(config)
    app.run(host=bind_host, port=bind_port, threaded=True)
