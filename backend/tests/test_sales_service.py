"""
Checkout and cancellation tests.

Covers the full chain: pricing, sale snapshot, stock depletion,
customer ledger and the closed-shift guard on cancellation.
"""

import logging

import pytest

from counterpos.extensions import db
from counterpos.models import Product, Customer, Sale
from counterpos.services import sales_service, shift_service, settings_service
from counterpos.services.pricing_service import (
    DiscountSpec,
    PaymentDetails,
    DISCOUNT_PERCENTAGE,
    money_equal,
)
from counterpos.services.sales_service import SaleError, STATUS_COMPLETED, STATUS_CANCELED


@pytest.fixture
def loyalty_on(shop_settings):
    """One point per currency unit, each point worth 0.05."""
    return settings_service.update_shop_settings({
        "loyalty_enabled": True,
        "points_per_currency_unit": 1.0,
        "currency_per_point": 0.05,
    })


def stock_of(product_id):
    return db.session.get(Product, product_id).stock


class TestCheckout:
    def test_sale_depletes_recipe_ingredients(self, cashier, active_shift, bread, flour, cart_with):
        cart = cart_with((bread, 3))
        result = sales_service.process_sale(cart, user=cashier, payment=PaymentDetails(cash=15))

        assert result.sale.status == STATUS_COMPLETED
        assert result.sale.total_amount == pytest.approx(15)
        assert result.sale.total_cost == pytest.approx(1.8)
        assert stock_of(flour.id) == pytest.approx(9.1)

    def test_sale_tagged_to_cashier_and_shift(self, cashier, active_shift, make_product, cart_with):
        soda = make_product("Soda", price=2.0, stock=10)
        result = sales_service.process_sale(
            cart_with((soda, 2)), user=cashier, payment=PaymentDetails(card=4)
        )
        assert result.sale.shift_id == active_shift.id
        assert result.sale.user_id == cashier.id
        assert result.sale.user_name == "cashier"
        assert stock_of(soda.id) == 8

    def test_totals_decompose(self, cashier, active_shift, make_product, cart_with):
        settings_service.update_shop_settings({"tax_enabled": True, "tax_rate": 15})
        soda = make_product("Soda", price=50.0, stock=10)
        result = sales_service.process_sale(
            cart_with((soda, 2)),
            user=cashier,
            payment=PaymentDetails(cash=200),
            discount=DiscountSpec(DISCOUNT_PERCENTAGE, 10),
            delivery_fee=4,
        )
        sale = result.sale
        rebuilt = (
            sale.sub_total
            - sale.general_discount_amount
            - sale.loyalty_discount_amount
            + sale.tax_amount
            + sale.delivery_fee
        )
        assert money_equal(sale.total_amount, rebuilt)
        assert sale.total_amount == pytest.approx(107.5)
        assert sale.discount_type == DISCOUNT_PERCENTAGE

    def test_change_is_not_kept_in_drawer(self, cashier, active_shift, bread, cart_with):
        result = sales_service.process_sale(
            cart_with((bread, 4)), user=cashier, payment=PaymentDetails(cash=50)
        )
        assert result.change_due == pytest.approx(30)
        assert result.sale.cash_amount == pytest.approx(20)

    def test_credit_tender_moves_customer_balance(self, cashier, active_shift, bread, customer, cart_with):
        sales_service.process_sale(
            cart_with((bread, 2)),
            user=cashier,
            payment=PaymentDetails(cash=4, credit=6),
            customer_id=customer.id,
        )
        assert db.session.get(Customer, customer.id).balance == pytest.approx(-6)

    def test_cart_is_cleared_and_lines_survive(self, cashier, active_shift, bread, cart_with):
        cart = cart_with((bread, 2))
        cart.delivery_fee = 3.0
        result = sales_service.process_sale(cart, user=cashier, payment=PaymentDetails(cash=13))

        assert cart.is_empty
        assert cart.delivery_fee == 0.0
        sale = db.session.get(Sale, result.sale.id)
        assert len(sale.lines) == 1
        assert sale.lines[0].name == "Bread"
        assert sale.lines[0].quantity == 2
        assert sale.delivery_fee == pytest.approx(3)

    def test_sale_lines_are_a_copy_of_the_cart(self, cashier, active_shift, bread, cart_with):
        cart = cart_with((bread, 1))
        lines = sales_service._snapshot_lines(cart)
        cart.items[0].quantity = 9
        cart.items[0].name = "Changed"
        assert lines[0].quantity == 1
        assert lines[0].name == "Bread"

    def test_product_deleted_after_carting_is_logged(self, cashier, active_shift, make_product, cart_with, caplog):
        soda = make_product("Soda", price=2.0, stock=10)
        cart = cart_with((soda, 1))
        soda_id = soda.id
        db.session.delete(soda)
        db.session.commit()

        with caplog.at_level(logging.WARNING):
            result = sales_service.process_sale(cart, user=cashier, payment=PaymentDetails(cash=2))

        assert result.sale.status == STATUS_COMPLETED
        assert result.stock.missing_product_ids == [soda_id]
        assert "unresolved references" in caplog.text


class TestCheckoutPreconditions:
    def test_requires_settings(self, cashier, make_product, cart_with):
        soda = make_product("Soda")
        with pytest.raises(SaleError, match="settings"):
            sales_service.process_sale(cart_with((soda, 1)), user=cashier, payment=PaymentDetails(cash=10))

    def test_requires_active_shift(self, cashier, shop_settings, make_product, cart_with):
        soda = make_product("Soda")
        with pytest.raises(SaleError, match="shift"):
            sales_service.process_sale(cart_with((soda, 1)), user=cashier, payment=PaymentDetails(cash=10))

    def test_rejects_empty_cart(self, cashier, active_shift, cart_with):
        with pytest.raises(SaleError, match="empty"):
            sales_service.process_sale(cart_with(), user=cashier, payment=PaymentDetails(cash=10))

    def test_credit_requires_customer(self, cashier, active_shift, bread, cart_with):
        with pytest.raises(SaleError, match="customer"):
            sales_service.process_sale(
                cart_with((bread, 1)), user=cashier, payment=PaymentDetails(credit=5)
            )

    def test_underpayment_rejected_without_side_effects(self, cashier, active_shift, bread, flour, cart_with):
        with pytest.raises(SaleError) as exc_info:
            sales_service.process_sale(
                cart_with((bread, 2)), user=cashier, payment=PaymentDetails(cash=9.5)
            )
        assert exc_info.value.details["remaining"] == pytest.approx(0.5)
        assert stock_of(flour.id) == pytest.approx(10)
        assert db.session.query(Sale).count() == 0

    def test_card_cannot_exceed_total(self, cashier, active_shift, bread, cart_with):
        with pytest.raises(SaleError, match="Card"):
            sales_service.process_sale(
                cart_with((bread, 1)), user=cashier, payment=PaymentDetails(card=6)
            )

    def test_percentage_over_100_rejected(self, cashier, active_shift, bread, cart_with):
        with pytest.raises(SaleError):
            sales_service.process_sale(
                cart_with((bread, 1)),
                user=cashier,
                payment=PaymentDetails(cash=5),
                discount=DiscountSpec(DISCOUNT_PERCENTAGE, 150),
            )

    def test_redemption_requires_customer(self, cashier, active_shift, loyalty_on, bread, cart_with):
        with pytest.raises(SaleError, match="customer"):
            sales_service.process_sale(
                cart_with((bread, 1)), user=cashier, payment=PaymentDetails(cash=5), redeemed_points=10
            )

    def test_redemption_over_cap_rejected(self, cashier, active_shift, loyalty_on, bread, customer, cart_with):
        customer.loyalty_points = 50
        db.session.commit()
        with pytest.raises(SaleError) as exc_info:
            sales_service.process_sale(
                cart_with((bread, 1)),
                user=cashier,
                payment=PaymentDetails(cash=5),
                customer_id=customer.id,
                redeemed_points=51,
            )
        assert exc_info.value.details["max_redeemable_points"] == 50


class TestLoyalty:
    def test_points_earned_and_redeemed(self, cashier, active_shift, loyalty_on, bread, customer, cart_with):
        customer.loyalty_points = 100
        db.session.commit()

        result = sales_service.process_sale(
            cart_with((bread, 4)),
            user=cashier,
            payment=PaymentDetails(cash=15),
            customer_id=customer.id,
            redeemed_points=100,
        )

        assert result.sale.loyalty_discount_amount == pytest.approx(5)
        assert result.sale.total_amount == pytest.approx(15)
        assert result.sale.points_earned == 20
        assert db.session.get(Customer, customer.id).loyalty_points == 20

    def test_cancel_restores_points_and_balance(self, cashier, active_shift, loyalty_on, bread, customer, cart_with):
        customer.loyalty_points = 100
        db.session.commit()

        result = sales_service.process_sale(
            cart_with((bread, 4)),
            user=cashier,
            payment=PaymentDetails(cash=5, credit=10),
            customer_id=customer.id,
            redeemed_points=100,
        )
        sales_service.cancel_sale(result.sale.id, user=cashier)

        restored = db.session.get(Customer, customer.id)
        assert restored.loyalty_points == 100
        assert restored.balance == pytest.approx(0)

    def test_quote_reports_cap_without_writing(self, shop_settings, loyalty_on, bread, customer, cart_with):
        customer.loyalty_points = 1000
        db.session.commit()

        cart = cart_with((bread, 6))
        result = sales_service.quote(cart, customer_id=customer.id)

        assert result.max_redeemable_points == 600
        assert result.to_dict()["max_redeemable_points"] == 600
        assert db.session.query(Sale).count() == 0
        assert not cart.is_empty


class TestCancel:
    def test_cancel_restores_stock(self, cashier, active_shift, bread, flour, cart_with):
        result = sales_service.process_sale(
            cart_with((bread, 3)), user=cashier, payment=PaymentDetails(cash=15)
        )
        canceled = sales_service.cancel_sale(result.sale.id, user=cashier)

        assert canceled.sale.status == STATUS_CANCELED
        assert canceled.sale.canceled_by_user_id == cashier.id
        assert canceled.sale.canceled_at is not None
        assert stock_of(flour.id) == pytest.approx(10)

    def test_cancel_twice_is_a_no_op(self, cashier, active_shift, bread, flour, cart_with):
        result = sales_service.process_sale(
            cart_with((bread, 3)), user=cashier, payment=PaymentDetails(cash=15)
        )
        sales_service.cancel_sale(result.sale.id)
        again = sales_service.cancel_sale(result.sale.id)

        assert again.already_canceled
        assert stock_of(flour.id) == pytest.approx(10)

    def test_cancel_unknown_sale(self, db_session):
        assert sales_service.cancel_sale(999) is None

    def test_closed_shift_sale_cannot_be_canceled(self, cashier, active_shift, bread, flour, customer, cart_with):
        result = sales_service.process_sale(
            cart_with((bread, 2)),
            user=cashier,
            payment=PaymentDetails(credit=10),
            customer_id=customer.id,
        )
        sale_id = result.sale.id
        shift_service.end_shift(cashier, 100.0)

        with pytest.raises(SaleError, match="closed shift"):
            sales_service.cancel_sale(sale_id, user=cashier)

        assert db.session.get(Sale, sale_id).status == STATUS_COMPLETED
        assert stock_of(flour.id) == pytest.approx(9.4)
        assert db.session.get(Customer, customer.id).balance == pytest.approx(-10)

    def test_cancel_survives_deleted_recipe(self, cashier, active_shift, make_product, bread, cart_with):
        soda = make_product("Soda", price=1.0, stock=5)
        result = sales_service.process_sale(
            cart_with((soda, 2), (bread, 1)), user=cashier, payment=PaymentDetails(cash=7)
        )
        soda_id = soda.id
        db.session.delete(bread)
        db.session.commit()

        canceled = sales_service.cancel_sale(result.sale.id)
        assert canceled.sale.status == STATUS_CANCELED
        assert canceled.stock.has_skips
        assert stock_of(soda_id) == 5


def test_list_sales_filters_by_status(cashier, active_shift, bread, cart_with):
    first = sales_service.process_sale(cart_with((bread, 1)), user=cashier, payment=PaymentDetails(cash=5))
    sales_service.process_sale(cart_with((bread, 1)), user=cashier, payment=PaymentDetails(cash=5))
    sales_service.cancel_sale(first.sale.id)

    assert len(sales_service.list_sales()) == 2
    assert [s.id for s in sales_service.list_sales(status=STATUS_CANCELED)] == [first.sale.id]
    assert len(sales_service.list_sales(shift_id=active_shift.id, status=STATUS_COMPLETED)) == 1
