# Overview: Flask API routes for checkout, sale history and cancellation.

"""Sales API routes with permission enforcement"""

from flask import Blueprint, request, jsonify, g, current_app

from ..permissions import ACCESS_SALES, GIVE_DISCOUNT, VIEW_SALES_HISTORY, CANCEL_SALES
from ..services import sales_service
from ..services.sales_service import SaleError
from ..services.cart_service import CartError, build_cart
from ..services.pricing_service import DiscountSpec, PaymentDetails, VALID_DISCOUNT_TYPES, DISCOUNT_NONE
from ..services.stock_service import ITEM_PRODUCT, ITEM_RECIPE
from ..decorators import require_auth, require_permission
from ..time_utils import parse_range_bound
from ..validation import (
    ValidationError,
    parse_number,
    parse_int,
    optional_text,
    parse_choice,
)


sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _parse_cart_lines(raw_items) -> list[dict]:
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    lines = []
    for idx, raw in enumerate(raw_items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        addon_ids = raw.get("addon_ids") or []
        if not isinstance(addon_ids, list):
            raise ValidationError(f"items[{idx}].addon_ids must be a list")
        lines.append({
            "item_type": parse_choice(raw.get("item_type"), f"items[{idx}].item_type", (ITEM_PRODUCT, ITEM_RECIPE)),
            "item_id": parse_int(raw.get("item_id"), f"items[{idx}].item_id", minimum=1),
            "quantity": parse_int(raw.get("quantity"), f"items[{idx}].quantity", minimum=1, default=1),
            "addon_ids": [parse_int(a, f"items[{idx}].addon_ids", minimum=1) for a in addon_ids],
            "notes": optional_text(raw.get("notes"), f"items[{idx}].notes", max_length=500),
        })
    return lines


def _parse_checkout_payload(data: dict) -> dict:
    """
    Shared by quote and checkout:
    {items, is_wholesale, customer_id, discount: {type, value}, redeemed_points, delivery_fee}
    """
    lines = _parse_cart_lines(data.get("items"))

    discount_raw = data.get("discount") or {}
    if not isinstance(discount_raw, dict):
        raise ValidationError("discount must be an object")
    discount = DiscountSpec(
        type=parse_choice(discount_raw.get("type"), "discount.type", VALID_DISCOUNT_TYPES, default=DISCOUNT_NONE),
        value=parse_number(discount_raw.get("value"), "discount.value", default=0.0),
    )

    customer_id = data.get("customer_id")
    return {
        "cart": build_cart(lines, is_wholesale=bool(data.get("is_wholesale"))),
        "customer_id": parse_int(customer_id, "customer_id", minimum=1) if customer_id is not None else None,
        "discount": discount,
        "redeemed_points": parse_int(data.get("redeemed_points"), "redeemed_points", default=0),
        "delivery_fee": parse_number(data.get("delivery_fee"), "delivery_fee", default=0.0),
    }


def _discount_allowed(discount: DiscountSpec) -> bool:
    return discount.value == 0 or GIVE_DISCOUNT in g.current_user.effective_permissions()


@sales_bp.post("/quote")
@require_auth
@require_permission(ACCESS_SALES)
def quote_route():
    """
    Price a cart without committing it.

    Requires: ACCESS_SALES permission
    """
    try:
        payload = _parse_checkout_payload(request.get_json() or {})
        result = sales_service.quote(
            payload["cart"],
            customer_id=payload["customer_id"],
            discount=payload["discount"],
            redeemed_points=payload["redeemed_points"],
            delivery_fee=payload["delivery_fee"],
        )
        return jsonify({
            "cart": payload["cart"].to_dict(),
            "quote": result.to_dict(),
        }), 200

    except (ValidationError, CartError) as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to quote sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.post("/checkout")
@require_auth
@require_permission(ACCESS_SALES)
def checkout_route():
    """
    Commit a cart as a completed sale.

    Body: quote payload plus payment: {cash, card, credit}
    Requires: ACCESS_SALES (GIVE_DISCOUNT for a general discount)
    """
    try:
        data = request.get_json() or {}
        payload = _parse_checkout_payload(data)

        if not _discount_allowed(payload["discount"]):
            return jsonify({
                "error": "Permission denied",
                "required_permission": GIVE_DISCOUNT,
            }), 403

        payment_raw = data.get("payment") or {}
        if not isinstance(payment_raw, dict):
            raise ValidationError("payment must be an object")
        payment = PaymentDetails(
            cash=parse_number(payment_raw.get("cash"), "payment.cash", default=0.0),
            card=parse_number(payment_raw.get("card"), "payment.card", default=0.0),
            credit=parse_number(payment_raw.get("credit"), "payment.credit", default=0.0),
        )

        result = sales_service.process_sale(
            payload["cart"],
            user=g.current_user,
            payment=payment,
            customer_id=payload["customer_id"],
            discount=payload["discount"],
            redeemed_points=payload["redeemed_points"],
            delivery_fee=payload["delivery_fee"],
        )
        return jsonify(result.to_dict()), 201

    except (ValidationError, CartError) as e:
        return jsonify({"error": str(e)}), 400
    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 400
    except Exception:
        current_app.logger.exception("Failed to process sale")
        return jsonify({"error": "Internal server error"}), 500


@sales_bp.get("/")
@require_auth
@require_permission(VIEW_SALES_HISTORY)
def list_sales_route():
    """
    List sales, newest first.

    Query: status, shift_id, customer_id, user_id, from, to (ISO-8601 date or datetime), limit
    """
    try:
        args = request.args
        sales = sales_service.list_sales(
            status=args.get("status") or None,
            shift_id=parse_int(args.get("shift_id"), "shift_id", minimum=1) if args.get("shift_id") else None,
            customer_id=parse_int(args.get("customer_id"), "customer_id", minimum=1) if args.get("customer_id") else None,
            user_id=parse_int(args.get("user_id"), "user_id", minimum=1) if args.get("user_id") else None,
            date_from=parse_range_bound(args.get("from"), "from"),
            date_to=parse_range_bound(args.get("to"), "to", end=True),
            limit=parse_int(args.get("limit"), "limit", minimum=1) if args.get("limit") else None,
        )
        return jsonify({"sales": [s.to_dict() for s in sales]}), 200

    except ValueError as e:
        return jsonify({"error": str(e)}), 400


@sales_bp.get("/<int:sale_id>")
@require_auth
@require_permission(VIEW_SALES_HISTORY)
def get_sale_route(sale_id: int):
    sale = sales_service.get_sale(sale_id)
    if not sale:
        return jsonify({"error": "Sale not found"}), 404
    return jsonify({"sale": sale.to_dict()}), 200


@sales_bp.post("/<int:sale_id>/cancel")
@require_auth
@require_permission(CANCEL_SALES)
def cancel_sale_route(sale_id: int):
    """
    Cancel a completed sale and reverse its stock and ledger effects.

    Requires: CANCEL_SALES permission
    Available to: admin, manager
    """
    try:
        result = sales_service.cancel_sale(sale_id, user=g.current_user)
        if result is None:
            return jsonify({"error": "Sale not found"}), 404
        return jsonify(result.to_dict()), 200

    except SaleError as e:
        return jsonify({"error": str(e), "details": e.details}), 409
    except Exception:
        current_app.logger.exception("Failed to cancel sale")
        return jsonify({"error": "Internal server error"}), 500
