"""
Sale Transaction Manager - checkout and cancellation.

LIFECYCLE: none -> completed -> canceled (terminal)

CHECKOUT (process_sale):
1. Preconditions: shop settings loaded, acting user has an active shift,
   cart not empty, customer present for credit tenders and point
   redemption, redemption within the cap, tenders cover the total
2. Price the cart (pricing_service.price_cart, same as the preview)
3. Persist the Sale with a deep copy of the cart lines
4. Deplete stock (stock_service, commit mode)
5. Customer ledger: balance -= credit; points += earned - redeemed
6. Clear the cart

Steps 3-5 share one database transaction. A failure rolls everything
back and propagates; nothing is partially applied.

CANCELLATION (cancel_sale) runs the same chain in reverse and is refused
for sales of a closed shift, whose report is frozen.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Sale, SaleLine, Shift, Customer, User
from counterpos.time_utils import utcnow
from . import party_service, settings_service, shift_service
from .cart_service import Cart
from .concurrency import begin_write, lock_for_update, run_with_retry
from .pricing_service import (
    DiscountSpec,
    PaymentDetails,
    PricedBreakdown,
    VALID_DISCOUNT_TYPES,
    DISCOUNT_PERCENTAGE,
    change_due,
    max_redeemable_points,
    payment_covers_total,
    price_cart,
    PAYMENT_EPSILON,
)
from .stock_service import MODE_COMMIT, MODE_REVERSAL, StockAdjustment, apply_lines


STATUS_COMPLETED = "completed"
STATUS_CANCELED = "canceled"


class SaleError(Exception):
    """Raised for sale operation errors."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.details = details or {}


@dataclass
class Quote:
    breakdown: PricedBreakdown
    max_redeemable_points: int
    customer: Customer | None = None

    def to_dict(self) -> dict:
        data = self.breakdown.to_dict()
        data["max_redeemable_points"] = self.max_redeemable_points
        return data


@dataclass
class CheckoutResult:
    sale: Sale
    breakdown: PricedBreakdown
    stock: StockAdjustment
    customer: Customer | None = None
    change_due: float = 0.0

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "change_due": self.change_due,
            "stock": self.stock.to_dict(),
            "products": [p.to_dict() for p in self.stock.products],
            "customer": self.customer.to_dict() if self.customer else None,
        }


@dataclass
class CancelResult:
    sale: Sale
    already_canceled: bool = False
    stock: StockAdjustment = field(default_factory=StockAdjustment)
    customer: Customer | None = None

    def to_dict(self) -> dict:
        return {
            "sale": self.sale.to_dict(),
            "already_canceled": self.already_canceled,
            "stock": self.stock.to_dict(),
            "products": [p.to_dict() for p in self.stock.products],
            "customer": self.customer.to_dict() if self.customer else None,
        }


# =============================================================================
# PRICING PRECONDITIONS (shared by preview and checkout)
# =============================================================================

def _price_with_redemption(
    cart: Cart,
    *,
    settings,
    customer: Customer | None,
    discount: DiscountSpec,
    redeemed_points: int,
    delivery_fee: float,
) -> Quote:
    if discount.type not in VALID_DISCOUNT_TYPES:
        raise SaleError(f"Invalid discount type: {discount.type}")
    if discount.value < 0 or delivery_fee < 0 or redeemed_points < 0:
        raise SaleError("Discount, delivery fee and points must not be negative")
    if discount.type == DISCOUNT_PERCENTAGE and discount.value > 100:
        raise SaleError("Percentage discount cannot exceed 100")

    tax = settings_service.tax_config(settings)
    loyalty = settings_service.loyalty_config(settings)
    has_customer = customer is not None

    # Price once without redemption to know the redeemable cap
    base = price_cart(
        cart.items,
        discount=discount,
        redeemed_points=0,
        delivery_fee=delivery_fee,
        tax=tax,
        loyalty=loyalty,
        has_customer=has_customer,
    )

    cap = 0
    if customer is not None and loyalty.enabled:
        cap = max_redeemable_points(
            customer.loyalty_points,
            base.total_after_general_discount,
            loyalty.currency_per_point,
        )

    if redeemed_points:
        if customer is None:
            raise SaleError("Select a customer to redeem loyalty points")
        if not loyalty.enabled:
            raise SaleError("Loyalty program is disabled")
        if redeemed_points > cap:
            raise SaleError(
                f"Cannot redeem more than {cap} points on this sale",
                details={"requested_points": redeemed_points, "max_redeemable_points": cap},
            )
        breakdown = price_cart(
            cart.items,
            discount=discount,
            redeemed_points=redeemed_points,
            delivery_fee=delivery_fee,
            tax=tax,
            loyalty=loyalty,
            has_customer=has_customer,
        )
    else:
        breakdown = base

    return Quote(breakdown=breakdown, max_redeemable_points=cap, customer=customer)


def _load_customer(customer_id: int | None) -> Customer | None:
    if customer_id is None:
        return None
    customer = party_service.get_customer(customer_id)
    if customer is None:
        raise SaleError("Customer not found")
    return customer


def quote(
    cart: Cart,
    *,
    customer_id: int | None = None,
    discount: DiscountSpec | None = None,
    redeemed_points: int | None = None,
    delivery_fee: float | None = None,
) -> Quote:
    """
    Checkout preview. Same calculation as process_sale, no writes.

    Does not require an active shift: the cashier may price a cart before
    opening the drawer, but cannot commit it.
    """
    settings = settings_service.get_shop_settings()
    if settings is None:
        raise SaleError("Shop settings are not configured")

    return _price_with_redemption(
        cart,
        settings=settings,
        customer=_load_customer(customer_id),
        discount=discount if discount is not None else cart.discount,
        redeemed_points=redeemed_points if redeemed_points is not None else cart.redeemed_points,
        delivery_fee=delivery_fee if delivery_fee is not None else cart.delivery_fee,
    )


# =============================================================================
# CHECKOUT
# =============================================================================

def _snapshot_lines(cart: Cart) -> list[SaleLine]:
    return [
        SaleLine(
            cart_item_id=item.cart_item_id,
            item_type=item.item_type,
            item_id=item.item_id,
            name=item.name,
            unit_price=item.unit_price,
            unit_cost=item.unit_cost,
            quantity=item.quantity,
            addons=[a.to_dict() for a in item.selected_addons],
            notes=item.notes or None,
        )
        for item in cart.snapshot()
    ]


def process_sale(
    cart: Cart,
    *,
    user: User,
    payment: PaymentDetails,
    customer_id: int | None = None,
    redeemed_points: int | None = None,
    discount: DiscountSpec | None = None,
    delivery_fee: float | None = None,
) -> CheckoutResult:
    """
    Commit the cart as a completed sale.

    Discount, delivery fee and points default to the cart's transient
    values when not passed. Cash beyond the total is change: the sale
    records only the cash that stays in the drawer.

    Raises:
        SaleError: a precondition failed; nothing was written
    """
    settings = settings_service.get_shop_settings()
    if settings is None:
        raise SaleError("Shop settings are not configured")

    shift = shift_service.get_active_shift(user.id)
    if shift is None:
        raise SaleError("Start a shift before processing sales")

    if cart.is_empty:
        raise SaleError("Cannot process an empty cart")

    if payment.cash < 0 or payment.card < 0 or payment.credit < 0:
        raise SaleError("Payment amounts must not be negative")

    customer = _load_customer(customer_id)
    if payment.credit > 0 and customer is None:
        raise SaleError("Select a customer to sell on credit")

    discount = discount if discount is not None else cart.discount
    delivery_fee = delivery_fee if delivery_fee is not None else cart.delivery_fee
    redeemed_points = redeemed_points if redeemed_points is not None else cart.redeemed_points

    priced = _price_with_redemption(
        cart,
        settings=settings,
        customer=customer,
        discount=discount,
        redeemed_points=redeemed_points,
        delivery_fee=delivery_fee,
    )
    breakdown = priced.breakdown

    if not payment_covers_total(payment, breakdown.total_amount):
        raise SaleError(
            "Payment does not cover the sale total",
            details={
                "total_amount": breakdown.total_amount,
                "paid": payment.total,
                "remaining": breakdown.total_amount - payment.total,
            },
        )
    if payment.card + payment.credit - breakdown.total_amount > PAYMENT_EPSILON:
        raise SaleError("Card and credit tenders cannot exceed the sale total")

    change = change_due(payment, breakdown.total_amount)
    cash_kept = payment.cash - change
    loyalty_enabled = settings.loyalty_enabled

    def _op():
        begin_write()
        active = shift_service.get_active_for_update(user.id)
        if active is None or active.id != shift.id:
            raise SaleError("Start a shift before processing sales")

        sale = Sale(
            status=STATUS_COMPLETED,
            created_at=utcnow(),
            user_id=user.id,
            user_name=user.name,
            shift_id=shift.id,
            customer_id=customer.id if customer else None,
            sub_total=breakdown.sub_total,
            discount_type=discount.type,
            discount_value=discount.value,
            general_discount_amount=breakdown.general_discount_amount,
            loyalty_discount_amount=breakdown.loyalty_discount_amount,
            tax_amount=breakdown.tax_amount,
            delivery_fee=breakdown.delivery_fee,
            total_amount=breakdown.total_amount,
            total_cost=breakdown.total_cost,
            cash_amount=cash_kept,
            card_amount=payment.card,
            credit_amount=payment.credit,
            points_redeemed=breakdown.points_redeemed,
            points_earned=breakdown.points_earned,
        )
        sale.lines = _snapshot_lines(cart)
        db.session.add(sale)
        db.session.flush()

        stock = apply_lines(sale.lines, MODE_COMMIT)
        if stock.has_skips:
            current_app.logger.warning(
                "Sale %s completed with unresolved references; no stock depleted for "
                "recipes %s, products %s",
                sale.id, stock.skipped_recipe_ids, stock.missing_product_ids,
            )

        updated_customer = None
        if customer is not None:
            points_delta = 0
            if loyalty_enabled:
                points_delta = breakdown.points_earned - breakdown.points_redeemed
            updated_customer = party_service.apply_customer_delta(
                customer.id,
                balance_delta=-payment.credit,
                points_delta=points_delta,
            )
            if updated_customer is None:
                raise SaleError("Customer not found")

        db.session.commit()
        return CheckoutResult(
            sale=sale,
            breakdown=breakdown,
            stock=stock,
            customer=updated_customer,
            change_due=change,
        )

    result = run_with_retry(_op)

    current_app.logger.info(
        "Sale %s completed: total=%.2f shift=%s user=%s",
        result.sale.id, result.sale.total_amount, shift.id, user.id,
    )
    cart.clear()
    return result


# =============================================================================
# CANCELLATION
# =============================================================================

def cancel_sale(sale_id: int, *, user: User | None = None) -> CancelResult | None:
    """
    Cancel a completed sale and reverse its stock and ledger effects.

    Returns None if the sale does not exist; an already canceled sale is
    returned untouched with already_canceled=True.

    Raises:
        SaleError: the sale belongs to a closed shift; nothing was written
    """
    def _op():
        begin_write()
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if not sale:
            return None

        if sale.status == STATUS_CANCELED:
            return CancelResult(sale=sale, already_canceled=True)

        if sale.shift_id is not None:
            shift = db.session.query(Shift).filter_by(id=sale.shift_id).first()
            if shift is not None and shift.status == shift_service.STATUS_CLOSED:
                raise SaleError(
                    "Cannot cancel a sale belonging to a closed shift",
                    details={"sale_id": sale.id, "shift_id": shift.id},
                )

        stock = apply_lines(sale.lines, MODE_REVERSAL)
        if stock.has_skips:
            current_app.logger.warning(
                "Sale %s canceled with unresolved references; no stock restored for "
                "recipes %s, products %s",
                sale.id, stock.skipped_recipe_ids, stock.missing_product_ids,
            )

        updated_customer = None
        if sale.customer_id is not None:
            updated_customer = party_service.apply_customer_delta(
                sale.customer_id,
                balance_delta=sale.credit_amount,
                points_delta=sale.points_redeemed - sale.points_earned,
            )
            if updated_customer is None:
                current_app.logger.warning(
                    "Sale %s canceled but customer %s no longer exists; ledger not reversed",
                    sale.id, sale.customer_id,
                )

        sale.status = STATUS_CANCELED
        sale.canceled_at = utcnow()
        sale.canceled_by_user_id = user.id if user else None

        db.session.commit()
        return CancelResult(sale=sale, stock=stock, customer=updated_customer)

    return run_with_retry(_op)


# =============================================================================
# QUERIES
# =============================================================================

def get_sale(sale_id: int) -> Sale | None:
    return db.session.query(Sale).filter_by(id=sale_id).first()


def list_sales(
    *,
    status: str | None = None,
    shift_id: int | None = None,
    customer_id: int | None = None,
    user_id: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int | None = None,
) -> list[Sale]:
    query = db.session.query(Sale)
    if status:
        query = query.filter(Sale.status == status)
    if shift_id is not None:
        query = query.filter(Sale.shift_id == shift_id)
    if customer_id is not None:
        query = query.filter(Sale.customer_id == customer_id)
    if user_id is not None:
        query = query.filter(Sale.user_id == user_id)
    if date_from is not None:
        query = query.filter(Sale.created_at >= date_from)
    if date_to is not None:
        query = query.filter(Sale.created_at <= date_to)
    query = query.order_by(Sale.created_at.desc(), Sale.id.desc())
    if limit:
        query = query.limit(limit)
    return query.all()
