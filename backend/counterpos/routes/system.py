# backend/counterpos/routes/system.py
"""
System health and backup endpoints.
"""

import time
from flask import Blueprint, current_app, jsonify, request

from ..decorators import require_auth, require_permission
from ..extensions import db
from ..models import Product, Sale, Shift, User
from ..permissions import MANAGE_SETTINGS
from ..services import backup_service, settings_service
from ..services.backup_service import BackupError
from counterpos.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity with a few cheap counts.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "sales": db.session.query(Sale).count(),
            "active_shifts": db.session.query(Shift).filter_by(status="active").count(),
        }
        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": details,
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    configured = database["status"] == "healthy" and settings_service.get_shop_settings() is not None
    status = "healthy" if database["status"] == "healthy" else "unhealthy"
    return jsonify({
        "status": status,
        "timestamp": to_utc_z(utcnow()),
        "database": database,
        "configured": configured,
    }), 200 if status == "healthy" else 503


@system_bp.get("/api/system/backup")
@require_auth
@require_permission(MANAGE_SETTINGS)
def export_backup_route():
    return jsonify(backup_service.export_snapshot()), 200


@system_bp.post("/api/system/backup")
@require_auth
@require_permission(MANAGE_SETTINGS)
def import_backup_route():
    """Replace all business data with an exported snapshot."""
    try:
        counts = backup_service.import_snapshot(request.get_json(silent=True))
        current_app.logger.info("Backup restored: %s", counts)
        return jsonify({"ok": True, "counts": counts}), 200
    except BackupError as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to restore backup")
        return jsonify({"error": "Internal server error"}), 500
