# Overview: Flask API routes for customers, suppliers and ledger payments.

from flask import Blueprint, request, jsonify, current_app

from ..permissions import (
    VIEW_CUSTOMERS, MANAGE_CUSTOMERS,
    VIEW_SUPPLIERS, MANAGE_SUPPLIERS,
    VIEW_PAYMENTS, MANAGE_PAYMENTS,
)
from ..services import party_service
from ..services.party_service import PartyError, PARTY_CUSTOMER, VALID_PARTY_TYPES
from ..decorators import require_auth, require_permission
from ..validation import ValidationError, parse_number, parse_int, require_text, optional_text, parse_choice


parties_bp = Blueprint("parties", __name__, url_prefix="/api")


def _parse_party(data: dict, *, partial: bool) -> dict:
    patch = {}
    if not partial or "name" in data:
        patch["name"] = require_text(data.get("name"), "name", max_length=128)
    if "phone" in data:
        patch["phone"] = optional_text(data.get("phone"), "phone", max_length=32)
    if "address" in data:
        patch["address"] = optional_text(data.get("address"), "address")
    return patch


# =============================================================================
# CUSTOMERS
# =============================================================================

@parties_bp.get("/customers")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def list_customers_route():
    customers = party_service.list_customers(search=request.args.get("q"))
    return jsonify({"customers": [c.to_dict() for c in customers]}), 200


@parties_bp.get("/customers/<int:customer_id>")
@require_auth
@require_permission(VIEW_CUSTOMERS)
def get_customer_route(customer_id: int):
    customer = party_service.get_customer(customer_id)
    if not customer:
        return jsonify({"error": "Customer not found"}), 404
    return jsonify({"customer": customer.to_dict()}), 200


@parties_bp.post("/customers")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def create_customer_route():
    try:
        fields = _parse_party(request.get_json(silent=True) or {}, partial=False)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    customer = party_service.create_customer(**fields)
    return jsonify({"customer": customer.to_dict()}), 201


@parties_bp.put("/customers/<int:customer_id>")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def update_customer_route(customer_id: int):
    try:
        patch = _parse_party(request.get_json(silent=True) or {}, partial=True)
        customer = party_service.update_customer(customer_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PartyError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"customer": customer.to_dict()}), 200


@parties_bp.delete("/customers/<int:customer_id>")
@require_auth
@require_permission(MANAGE_CUSTOMERS)
def delete_customer_route(customer_id: int):
    try:
        party_service.delete_customer(customer_id)
    except PartyError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True}), 200


# =============================================================================
# SUPPLIERS
# =============================================================================

@parties_bp.get("/suppliers")
@require_auth
@require_permission(VIEW_SUPPLIERS)
def list_suppliers_route():
    suppliers = party_service.list_suppliers(search=request.args.get("q"))
    return jsonify({"suppliers": [s.to_dict() for s in suppliers]}), 200


@parties_bp.get("/suppliers/<int:supplier_id>")
@require_auth
@require_permission(VIEW_SUPPLIERS)
def get_supplier_route(supplier_id: int):
    supplier = party_service.get_supplier(supplier_id)
    if not supplier:
        return jsonify({"error": "Supplier not found"}), 404
    return jsonify({"supplier": supplier.to_dict()}), 200


@parties_bp.post("/suppliers")
@require_auth
@require_permission(MANAGE_SUPPLIERS)
def create_supplier_route():
    try:
        fields = _parse_party(request.get_json(silent=True) or {}, partial=False)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    supplier = party_service.create_supplier(**fields)
    return jsonify({"supplier": supplier.to_dict()}), 201


@parties_bp.put("/suppliers/<int:supplier_id>")
@require_auth
@require_permission(MANAGE_SUPPLIERS)
def update_supplier_route(supplier_id: int):
    try:
        patch = _parse_party(request.get_json(silent=True) or {}, partial=True)
        supplier = party_service.update_supplier(supplier_id, patch)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PartyError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"supplier": supplier.to_dict()}), 200


@parties_bp.delete("/suppliers/<int:supplier_id>")
@require_auth
@require_permission(MANAGE_SUPPLIERS)
def delete_supplier_route(supplier_id: int):
    try:
        party_service.delete_supplier(supplier_id)
    except PartyError as e:
        return jsonify({"error": str(e)}), 404
    return jsonify({"ok": True}), 200


# =============================================================================
# LEDGER PAYMENTS
# =============================================================================

@parties_bp.get("/payments")
@require_auth
@require_permission(VIEW_PAYMENTS)
def list_payments_route():
    """Query params: party_type (customer/supplier), entity_id"""
    payments = party_service.list_payments(
        party_type=request.args.get("party_type"),
        entity_id=request.args.get("entity_id", type=int),
    )
    return jsonify({"payments": [p.to_dict() for p in payments]}), 200


@parties_bp.post("/payments")
@require_auth
@require_permission(MANAGE_PAYMENTS)
def record_payment_route():
    """
    Record a payment received from a customer or paid to a supplier.

    Body: {"party_type", "entity_id", "amount", "note"}
    """
    try:
        data = request.get_json(silent=True) or {}
        party_type = parse_choice(data.get("party_type"), "party_type", VALID_PARTY_TYPES)
        payment, party = party_service.record_payment(
            party_type,
            parse_int(data.get("entity_id"), "entity_id", minimum=1),
            parse_number(data.get("amount"), "amount", allow_zero=False),
            note=optional_text(data.get("note"), "note"),
        )
        key = "customer" if party_type == PARTY_CUSTOMER else "supplier"
        return jsonify({"payment": payment.to_dict(), key: party.to_dict()}), 201

    except (ValidationError, PartyError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return jsonify({"error": "Internal server error"}), 500
