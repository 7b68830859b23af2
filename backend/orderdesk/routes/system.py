# Overview: Flask API routes for health checks.

import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Order, SessionToken, StockUnit, User
from orderdesk.time_utils import to_utc_z, utcnow


system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.
    """
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "orders": db.session.query(Order).count(),
            "stock_units": db.session.query(StockUnit).count(),
            "active_sessions": db.session.query(SessionToken).filter_by(is_revoked=False).count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }
    return response, 200 if healthy else 503
