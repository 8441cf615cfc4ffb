"""
Pricing & Discount Calculator

WHY: The checkout preview and the committed sale must show the same
numbers. Both go through price_cart(), a pure function with no database
access and no side effects.

ORDER OF OPERATIONS:
1. sub_total = sum of (unit price + addon prices) * quantity
2. general discount (fixed amount or percentage of sub_total)
3. loyalty discount (redeemed points * currency_per_point)
4. taxable amount = max(0, sub_total - general - loyalty)
5. tax on the taxable amount
6. total = taxable + tax + delivery fee

Points are earned on the amount after the general discount, before
loyalty redemption, tax and delivery.

Money is plain float; comparisons use the tolerances below.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, asdict
from typing import Any, Iterable


# Payment-covers-total comparisons (cash drawer UI used 0.001)
PAYMENT_EPSILON = 0.001
# Currency equality for totals and reconciliation checks
MONEY_TOLERANCE = 0.01

DISCOUNT_NONE = "none"
DISCOUNT_FIXED = "fixed"
DISCOUNT_PERCENTAGE = "percentage"

VALID_DISCOUNT_TYPES = (DISCOUNT_NONE, DISCOUNT_FIXED, DISCOUNT_PERCENTAGE)


class PricingError(ValueError):
    """Raised for malformed pricing inputs."""


@dataclass(frozen=True)
class DiscountSpec:
    type: str = DISCOUNT_NONE
    value: float = 0.0


@dataclass(frozen=True)
class TaxConfig:
    enabled: bool = False
    rate: float = 0.0  # Percent


@dataclass(frozen=True)
class LoyaltyConfig:
    enabled: bool = False
    points_per_currency_unit: float = 0.0
    currency_per_point: float = 0.0


@dataclass(frozen=True)
class PaymentDetails:
    cash: float = 0.0
    card: float = 0.0
    credit: float = 0.0

    @property
    def total(self) -> float:
        return self.cash + self.card + self.credit


@dataclass(frozen=True)
class PricedBreakdown:
    sub_total: float
    general_discount_amount: float
    total_after_general_discount: float
    loyalty_discount_amount: float
    taxable_amount: float
    tax_amount: float
    delivery_fee: float
    total_amount: float
    total_cost: float
    points_redeemed: int
    points_earned: int
    line_totals: tuple[float, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["line_totals"] = list(self.line_totals)
        return data


def _addon_price(addon: Any) -> float:
    if isinstance(addon, dict):
        return float(addon.get("price") or 0.0)
    return float(addon.price)


def addons_total(item: Any) -> float:
    """Sum of the selected addon price deltas for one unit of a line."""
    addons = getattr(item, "selected_addons", None)
    if addons is None:
        addons = getattr(item, "addons", None) or []
    return sum(_addon_price(a) for a in addons)


def line_total(item: Any) -> float:
    """(unit price + addons) * quantity. Works on cart items and sale lines."""
    return (item.unit_price + addons_total(item)) * item.quantity


def general_discount_amount(sub_total: float, discount: DiscountSpec) -> float:
    if discount.type == DISCOUNT_PERCENTAGE:
        return sub_total * (discount.value / 100)
    if discount.type == DISCOUNT_FIXED:
        return discount.value
    if discount.type == DISCOUNT_NONE:
        return 0.0
    raise PricingError(f"Unknown discount type: {discount.type}")


def max_redeemable_points(
    customer_points: int,
    total_after_general_discount: float,
    currency_per_point: float,
) -> int:
    """
    Cap a redemption so it never discounts more than the amount due
    after the general discount.
    """
    if currency_per_point <= 0 or customer_points <= 0:
        return 0
    # Small epsilon so 30 / 0.05 floors to 600, not 599
    by_amount = math.floor(max(0.0, total_after_general_discount) / currency_per_point + 1e-9)
    return max(0, min(int(customer_points), by_amount))


def price_cart(
    items: Iterable[Any],
    *,
    discount: DiscountSpec | None = None,
    redeemed_points: int = 0,
    delivery_fee: float = 0.0,
    tax: TaxConfig | None = None,
    loyalty: LoyaltyConfig | None = None,
    has_customer: bool = False,
) -> PricedBreakdown:
    """
    Price a cart.

    redeemed_points is trusted as given; callers clamp it with
    max_redeemable_points() first.
    """
    discount = discount or DiscountSpec()
    tax = tax or TaxConfig()
    loyalty = loyalty or LoyaltyConfig()
    items = list(items)

    line_totals = tuple(line_total(item) for item in items)
    sub_total = sum(line_totals)
    total_cost = sum(item.unit_cost * item.quantity for item in items)

    general = general_discount_amount(sub_total, discount)
    total_after_general = sub_total - general

    loyalty_discount = redeemed_points * loyalty.currency_per_point
    taxable = max(0.0, total_after_general - loyalty_discount)

    tax_amount = taxable * (tax.rate / 100) if tax.enabled and tax.rate > 0 else 0.0
    total_amount = taxable + tax_amount + delivery_fee

    points_earned = 0
    if loyalty.enabled and has_customer:
        # An oversized fixed discount never takes points away
        points_earned = max(0, math.floor(total_after_general * loyalty.points_per_currency_unit))

    return PricedBreakdown(
        sub_total=sub_total,
        general_discount_amount=general,
        total_after_general_discount=total_after_general,
        loyalty_discount_amount=loyalty_discount,
        taxable_amount=taxable,
        tax_amount=tax_amount,
        delivery_fee=delivery_fee,
        total_amount=total_amount,
        total_cost=total_cost,
        points_redeemed=redeemed_points,
        points_earned=points_earned,
        line_totals=line_totals,
    )


def payment_covers_total(payment: PaymentDetails, total_amount: float) -> bool:
    return total_amount - payment.total <= PAYMENT_EPSILON


def change_due(payment: PaymentDetails, total_amount: float) -> float:
    """Cash to hand back when tenders exceed the total."""
    over = payment.total - total_amount
    return over if over > PAYMENT_EPSILON else 0.0


def money_equal(a: float, b: float, tolerance: float = MONEY_TOLERANCE) -> bool:
    return abs(a - b) <= tolerance


def discount_label(discount_type: str, discount_value: float) -> str:
    """Receipt label for the general discount line."""
    if discount_type == DISCOUNT_PERCENTAGE:
        return f"{discount_value:g}%"
    if discount_type == DISCOUNT_FIXED:
        return f"{discount_value:.2f}"
    return ""
