# Overview: Liveness/readiness endpoint for operators and load balancers.
"""
GET /health

Reports database reachability and which geolocation resolver is wired in.
The resolver is never called from here, so a slow upstream cannot fail a
readiness probe.
"""

from time import perf_counter

from flask import Blueprint, current_app
from ..extensions import db
from ..models import Transaction, Voucher
from ..services.geolocation_service import StaticGeolocationResolver
from voucherhub.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def _elapsed_ms(started: float) -> float:
    return round((perf_counter() - started) * 1000, 2)


def check_database_health() -> dict:
    started = perf_counter()
    try:
        counts = {
            "vouchers": db.session.query(Voucher).count(),
            "transactions": db.session.query(Transaction).count(),
        }
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(started), "error": "Database error"}

    return {"status": "healthy", "latency_ms": _elapsed_ms(started), "details": counts}


def describe_geolocation() -> dict:
    resolver = current_app.extensions.get("geolocation")
    if resolver is None:
        return {"status": "degraded", "warning": "No geolocation resolver registered"}
    if isinstance(resolver, StaticGeolocationResolver):
        return {"status": "healthy", "details": {"mode": "static", "label": resolver.label}}
    return {
        "status": "healthy",
        "details": {"mode": "http", "timeout_seconds": resolver.timeout, "field": resolver.field},
    }


@system_bp.get("/health")
def health():
    started = perf_counter()
    checks = {
        "database": check_database_health(),
        "geolocation": describe_geolocation(),
    }

    # Only the database is fatal; everything else degrades
    if checks["database"]["status"] == "unhealthy":
        status, http_status = "unhealthy", 503
    elif any(check["status"] != "healthy" for check in checks.values()):
        status, http_status = "degraded", 200
    else:
        status, http_status = "healthy", 200

    return {
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(started),
        "checks": checks,
    }, http_status
