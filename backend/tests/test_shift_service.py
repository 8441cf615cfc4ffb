import pytest

from counterpos.services import sales_service, shift_service
from counterpos.services.pricing_service import PaymentDetails
from counterpos.services.shift_service import ShiftError, STATUS_ACTIVE, STATUS_CLOSED


class TestShiftLifecycle:
    def test_start_shift(self, cashier, shop_settings):
        shift = shift_service.start_shift(cashier, 150.0)
        assert shift.status == STATUS_ACTIVE
        assert shift.starting_cash == 150.0
        assert shift_service.get_active_shift(cashier.id).id == shift.id

    def test_one_active_shift_per_user(self, cashier, active_shift):
        with pytest.raises(ShiftError, match="already has an active shift"):
            shift_service.start_shift(cashier, 50.0)

    def test_users_have_independent_shifts(self, cashier, manager, active_shift):
        other = shift_service.start_shift(manager, 20.0)
        assert other.id != active_shift.id

    def test_negative_starting_cash_rejected(self, cashier, shop_settings):
        with pytest.raises(ShiftError):
            shift_service.start_shift(cashier, -1)

    def test_end_without_active_shift(self, cashier, shop_settings):
        with pytest.raises(ShiftError, match="No active shift"):
            shift_service.end_shift(cashier, 0.0)

    def test_new_shift_after_close(self, cashier, active_shift):
        shift_service.end_shift(cashier, 100.0)
        again = shift_service.start_shift(cashier, 80.0)
        assert again.id != active_shift.id
        assert len(shift_service.list_shifts(user_id=cashier.id)) == 2


class TestCashAccountability:
    def test_cash_identity(self, cashier, active_shift, bread, customer, cart_with):
        # 100 float + 15 cash - 7.5 expenses
        sales_service.process_sale(cart_with((bread, 3)), user=cashier, payment=PaymentDetails(cash=20))
        sales_service.process_sale(cart_with((bread, 2)), user=cashier, payment=PaymentDetails(card=10))
        sales_service.process_sale(
            cart_with((bread, 1)),
            user=cashier,
            payment=PaymentDetails(credit=5),
            customer_id=customer.id,
        )
        shift_service.add_expense(cashier, "Milk run", 7.5)

        shift = shift_service.end_shift(cashier, 105.0)

        assert shift.status == STATUS_CLOSED
        assert shift.cash_sales == pytest.approx(15)
        assert shift.card_sales == pytest.approx(10)
        assert shift.total_sales == pytest.approx(30)
        assert shift.total_expenses == pytest.approx(7.5)
        assert shift.expected_cash == pytest.approx(107.5)
        assert shift.difference == pytest.approx(-2.5)
        assert shift.end_time is not None

    def test_canceled_sales_excluded(self, cashier, active_shift, bread, cart_with):
        kept = sales_service.process_sale(cart_with((bread, 1)), user=cashier, payment=PaymentDetails(cash=5))
        dropped = sales_service.process_sale(cart_with((bread, 2)), user=cashier, payment=PaymentDetails(cash=10))
        sales_service.cancel_sale(dropped.sale.id)

        shift = shift_service.end_shift(cashier, 105.0)
        assert kept.sale.shift_id == shift.id
        assert shift.cash_sales == pytest.approx(5)
        assert shift.difference == pytest.approx(0)

    def test_closed_snapshot_is_frozen(self, cashier, active_shift, bread, cart_with):
        sale = sales_service.process_sale(cart_with((bread, 1)), user=cashier, payment=PaymentDetails(cash=5))
        shift = shift_service.end_shift(cashier, 105.0)

        with pytest.raises(sales_service.SaleError):
            sales_service.cancel_sale(sale.sale.id)

        report = shift_service.shift_report(shift.id)
        assert report["provisional"] is False
        assert report["shift"]["cash_sales"] == pytest.approx(5)
        assert report["completed_sales_count"] == 1
        assert report["canceled_sales_count"] == 0


class TestExpenses:
    def test_expense_requires_active_shift(self, cashier, shop_settings):
        with pytest.raises(ShiftError, match="Start a shift"):
            shift_service.add_expense(cashier, "Ice", 3.0)

    def test_expense_amount_must_be_positive(self, cashier, active_shift):
        with pytest.raises(ShiftError):
            shift_service.add_expense(cashier, "Ice", 0)

    def test_expense_description_required(self, cashier, active_shift):
        with pytest.raises(ShiftError):
            shift_service.add_expense(cashier, "   ", 2.0)

    def test_expense_tagged_to_shift(self, cashier, active_shift):
        expense = shift_service.add_expense(cashier, "  Ice  ", 3.0)
        assert expense.shift_id == active_shift.id
        assert expense.description == "Ice"
        assert [e.id for e in shift_service.list_expenses(active_shift.id)] == [expense.id]


def test_live_report_for_active_shift(cashier, active_shift, bread, cart_with):
    sales_service.process_sale(cart_with((bread, 2)), user=cashier, payment=PaymentDetails(cash=10))
    shift_service.add_expense(cashier, "Bags", 1.0)

    report = shift_service.shift_report(active_shift.id)

    assert report["provisional"] is True
    assert report["shift"]["cash_sales"] == pytest.approx(10)
    assert report["shift"]["expected_cash"] == pytest.approx(109)
    assert len(report["expenses"]) == 1


def test_report_unknown_shift(db_session):
    assert shift_service.shift_report(404) is None
