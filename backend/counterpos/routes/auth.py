# Overview: Flask API routes for PIN login, logout and user management.

"""
Authentication API routes

- PIN login returns a bearer token for the Authorization header
- Users are created by administrators only (MANAGE_USERS or the CLI)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..permissions import MANAGE_USERS, VALID_ROLES
from ..services import auth_service
from ..services import session_service
from ..services.auth_service import AuthError
from ..decorators import require_auth, require_permission
from ..validation import ValidationError, require_text, parse_choice


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate by user name and PIN and create a session token.

    Body: {"name": str, "pin": str}
    """
    try:
        data = request.get_json(silent=True) or {}
        name = data.get("name")
        pin = data.get("pin")

        if not name or not pin:
            return jsonify({"error": "name and pin required"}), 400

        user = auth_service.authenticate(str(name), str(pin))
        if not user:
            current_app.logger.warning("Failed login for '%s' from %s", name, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user.id)

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    token = request.headers["Authorization"].split(" ", 1)[1]
    session_service.revoke_session(token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@auth_bp.get("/users")
@require_auth
@require_permission(MANAGE_USERS)
def list_users_route():
    return jsonify({"users": [u.to_dict() for u in auth_service.list_users()]}), 200


@auth_bp.post("/users")
@require_auth
@require_permission(MANAGE_USERS)
def create_user_route():
    """Body: {"name", "pin", "role", "permissions" (custom role only)}"""
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            name=require_text(data.get("name"), "name", max_length=128),
            pin=str(data.get("pin") or ""),
            role=parse_choice(data.get("role"), "role", VALID_ROLES, default="cashier"),
            permissions=data.get("permissions") or [],
        )
        return jsonify({"user": user.to_dict()}), 201

    except (ValidationError, AuthError) as e:
        return jsonify({"error": str(e)}), 400


@auth_bp.put("/users/<int:user_id>")
@require_auth
@require_permission(MANAGE_USERS)
def update_user_route(user_id: int):
    if not auth_service.get_user(user_id):
        return jsonify({"error": "User not found"}), 404
    try:
        data = request.get_json(silent=True) or {}
        is_active = data.get("is_active")
        if is_active is not None and not isinstance(is_active, bool):
            raise ValidationError("is_active must be a boolean")

        user = auth_service.update_user(
            user_id,
            name=data.get("name"),
            role=parse_choice(data["role"], "role", VALID_ROLES) if "role" in data else None,
            permissions=data.get("permissions"),
            pin=str(data["pin"]) if data.get("pin") else None,
            is_active=is_active,
        )
        if is_active is False:
            session_service.revoke_all_user_sessions(user_id, reason="User deactivated")

        return jsonify({"user": user.to_dict()}), 200

    except (ValidationError, AuthError) as e:
        return jsonify({"error": str(e)}), 400
