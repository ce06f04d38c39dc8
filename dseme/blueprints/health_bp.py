"""
Probes for the orchestrator.

    GET  /api/v1/health/live                    process is up, no dependencies touched
    GET  /api/v1/health/ready                   database round-trip; 503 when it fails
"""

import logging
import time

from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from dseme.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health_bp", __name__, url_prefix="/api/v1/health")


@health_bp.route("/live", methods=["GET"])
def live():
    return jsonify({"status": "ok"}), 200


@health_bp.route("/ready", methods=["GET"])
def ready():
    started = time.perf_counter()
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Readiness probe: database unavailable (%s)", exc.__class__.__name__)
        return jsonify({
            "status": "unavailable",
            "checks": {"database": {"status": "error", "detail": exc.__class__.__name__}},
        }), 503

    latency = round((time.perf_counter() - started) * 1000, 1)
    return jsonify({
        "status": "ok",
        "checks": {"database": {"status": "ok", "latency_ms": latency}},
    }), 200
