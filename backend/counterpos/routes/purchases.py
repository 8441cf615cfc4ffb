# Overview: Flask API routes for supplier purchase invoices.

from flask import Blueprint, request, jsonify, current_app

from ..permissions import VIEW_PURCHASES, MANAGE_PURCHASES
from ..services import purchase_service
from ..services.purchase_service import PurchaseError
from ..decorators import require_auth, require_permission
from ..validation import ValidationError, parse_number, parse_int


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")


@purchases_bp.get("/")
@require_auth
@require_permission(VIEW_PURCHASES)
def list_invoices_route():
    invoices = purchase_service.list_invoices(supplier_id=request.args.get("supplier_id", type=int))
    return jsonify({"invoices": [i.to_dict() for i in invoices]}), 200


@purchases_bp.get("/<int:invoice_id>")
@require_auth
@require_permission(VIEW_PURCHASES)
def get_invoice_route(invoice_id: int):
    invoice = purchase_service.get_invoice(invoice_id)
    if not invoice:
        return jsonify({"error": "Invoice not found"}), 404
    return jsonify({"invoice": invoice.to_dict()}), 200


@purchases_bp.post("/")
@require_auth
@require_permission(MANAGE_PURCHASES)
def create_invoice_route():
    """
    Post a purchase invoice.

    Body: {"supplier_id": int, "items": [{"product_id", "quantity", "cost"}, ...]}
    Raises product stock and the amount owed to the supplier.
    """
    try:
        data = request.get_json(silent=True) or {}
        items = data.get("items")
        if not isinstance(items, list) or not items:
            raise ValidationError("items must be a non-empty list")

        lines = []
        for idx, raw in enumerate(items):
            if not isinstance(raw, dict):
                raise ValidationError(f"items[{idx}] must be an object")
            lines.append({
                "product_id": parse_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1),
                "quantity": parse_number(raw.get("quantity"), f"items[{idx}].quantity", allow_zero=False),
                "cost": parse_number(raw.get("cost"), f"items[{idx}].cost"),
            })

        invoice = purchase_service.add_purchase_invoice(
            parse_int(data.get("supplier_id"), "supplier_id", minimum=1),
            lines,
        )
        return jsonify({
            "invoice": invoice.to_dict(),
            "supplier": invoice.supplier.to_dict(),
        }), 201

    except (ValidationError, PurchaseError) as e:
        return jsonify({"error": str(e)}), 400
    except Exception:
        current_app.logger.exception("Failed to post purchase invoice")
        return jsonify({"error": "Internal server error"}), 500
