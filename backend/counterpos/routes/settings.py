from __future__ import annotations

from flask import Blueprint, jsonify, request

from ..decorators import require_auth, require_permission
from ..permissions import MANAGE_SETTINGS
from ..services import settings_service
from ..services.settings_service import SettingsError
from ..validation import ValidationError, parse_number, require_text, optional_text


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


def _parse_bool(value, field: str) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f"{field} must be a boolean")
    return value


def _parse_updates(payload: dict) -> dict:
    patch = {}
    if "name" in payload:
        patch["name"] = require_text(payload.get("name"), "name", max_length=128)
    if "address" in payload:
        patch["address"] = optional_text(payload.get("address"), "address")
    if "phone" in payload:
        patch["phone"] = optional_text(payload.get("phone"), "phone", max_length=32)
    for key in ("loyalty_enabled", "tax_enabled"):
        if key in payload:
            patch[key] = _parse_bool(payload[key], key)
    for key in ("points_per_currency_unit", "currency_per_point", "tax_rate"):
        if key in payload:
            patch[key] = parse_number(payload[key], key)
    return patch


@settings_bp.get("")
@require_auth
def get_settings_route():
    """Any logged-in user can read the shop settings (receipts, pricing)."""
    settings = settings_service.get_shop_settings()
    if settings is None:
        return jsonify({"error": "Shop settings are not configured"}), 404
    return jsonify({"settings": settings.to_dict()}), 200


@settings_bp.put("")
@require_auth
@require_permission(MANAGE_SETTINGS)
def update_settings_route():
    try:
        patch = _parse_updates(request.get_json(silent=True) or {})
        settings = settings_service.update_shop_settings(patch)
    except (ValidationError, SettingsError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"settings": settings.to_dict()}), 200
