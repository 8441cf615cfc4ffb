# Overview: Flask API routes for cashier shifts and drawer expenses.

"""
Shift routes.

Every route acts on the authenticated user's own shift, except the
history and report routes, where MANAGE_SHIFTS widens the view to all
users.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..permissions import ACCESS_SHIFTS, MANAGE_SHIFTS
from ..services import shift_service
from ..services.shift_service import ShiftError
from ..decorators import require_auth, require_permission
from ..validation import ValidationError, parse_number, require_text


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")


def _can_manage() -> bool:
    return MANAGE_SHIFTS in g.current_user.effective_permissions()


@shifts_bp.get("/active")
@require_auth
@require_permission(ACCESS_SHIFTS)
def active_shift_route():
    shift = shift_service.get_active_shift(g.current_user.id)
    return jsonify({"shift": shift.to_dict() if shift else None}), 200


@shifts_bp.post("/start")
@require_auth
@require_permission(ACCESS_SHIFTS)
def start_shift_route():
    """Body: {"starting_cash": float}"""
    try:
        data = request.get_json(silent=True) or {}
        starting_cash = parse_number(data.get("starting_cash"), "starting_cash", default=0.0)
        shift = shift_service.start_shift(g.current_user, starting_cash)
        return jsonify({"shift": shift.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ShiftError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to start shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/end")
@require_auth
@require_permission(ACCESS_SHIFTS)
def end_shift_route():
    """
    Close the user's active shift.

    Body: {"counted_cash": float}
    Returns the frozen shift snapshot with expected cash and difference.
    """
    try:
        data = request.get_json(silent=True) or {}
        counted = parse_number(data.get("counted_cash"), "counted_cash")
        shift = shift_service.end_shift(g.current_user, counted)
        return jsonify({"shift": shift.to_dict()}), 200

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ShiftError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to end shift")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.post("/expenses")
@require_auth
@require_permission(ACCESS_SHIFTS)
def add_expense_route():
    """Body: {"description": str, "amount": float}"""
    try:
        data = request.get_json(silent=True) or {}
        expense = shift_service.add_expense(
            g.current_user,
            require_text(data.get("description"), "description"),
            parse_number(data.get("amount"), "amount", allow_zero=False),
        )
        return jsonify({"expense": expense.to_dict()}), 201

    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ShiftError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to record expense")
        return jsonify({"error": "Internal server error"}), 500


@shifts_bp.get("/")
@require_auth
@require_permission(ACCESS_SHIFTS)
def list_shifts_route():
    """Query params: status, user_id (MANAGE_SHIFTS only)"""
    user_id = g.current_user.id
    if _can_manage():
        user_id = request.args.get("user_id", type=int)
    shifts = shift_service.list_shifts(user_id=user_id, status=request.args.get("status"))
    return jsonify({"shifts": [s.to_dict() for s in shifts]}), 200


@shifts_bp.get("/<int:shift_id>/report")
@require_auth
@require_permission(ACCESS_SHIFTS)
def shift_report_route(shift_id: int):
    shift = shift_service.get_shift(shift_id)
    if not shift or (shift.user_id != g.current_user.id and not _can_manage()):
        return jsonify({"error": "Shift not found"}), 404
    return jsonify(shift_service.shift_report(shift_id)), 200
