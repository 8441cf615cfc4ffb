import pytest

from counterpos.extensions import db
from counterpos.models import Customer, Supplier
from counterpos.services import party_service, purchase_service
from counterpos.services.party_service import PartyError, PARTY_CUSTOMER, PARTY_SUPPLIER
from counterpos.services.purchase_service import PurchaseError


class TestCustomers:
    def test_new_customer_starts_at_zero(self, db_session):
        customer = party_service.create_customer(name="Bob", phone="555-0202")
        assert customer.balance == 0.0
        assert customer.loyalty_points == 0

    def test_update_ignores_ledger_fields(self, customer):
        party_service.update_customer(customer.id, {"phone": "555-9999", "balance": 1000, "loyalty_points": 5})
        stored = db.session.get(Customer, customer.id)
        assert stored.phone == "555-9999"
        assert stored.balance == 0.0
        assert stored.loyalty_points == 0

    def test_search_by_name_or_phone(self, customer):
        party_service.create_customer(name="Bob", phone="555-0202")
        assert [c.name for c in party_service.list_customers("ali")] == ["Alice"]
        assert [c.name for c in party_service.list_customers("0202")] == ["Bob"]

    def test_delta_on_missing_customer(self, db_session):
        assert party_service.apply_customer_delta(404, balance_delta=1.0) is None


class TestPayments:
    def test_customer_settles_debt(self, customer):
        party_service.apply_customer_delta(customer.id, balance_delta=-30.0)
        db.session.commit()

        payment, party = party_service.record_payment(PARTY_CUSTOMER, customer.id, 20.0, note="cash")

        assert payment.amount == 20.0
        assert party.balance == pytest.approx(-10)
        assert [p.id for p in party_service.list_payments(PARTY_CUSTOMER, customer.id)] == [payment.id]

    def test_shop_pays_supplier(self, supplier):
        _, party = party_service.record_payment(PARTY_SUPPLIER, supplier.id, 50.0)
        assert party.balance == pytest.approx(50)

    def test_amount_must_be_positive(self, customer):
        with pytest.raises(PartyError, match="positive"):
            party_service.record_payment(PARTY_CUSTOMER, customer.id, 0)

    def test_invalid_party_type(self, customer):
        with pytest.raises(PartyError, match="Invalid party type"):
            party_service.record_payment("employee", customer.id, 5)

    def test_unknown_party(self, db_session):
        with pytest.raises(PartyError, match="not found"):
            party_service.record_payment(PARTY_SUPPLIER, 99, 5)
        assert party_service.list_payments() == []


class TestPurchases:
    def test_invoice_raises_stock_and_supplier_debt(self, supplier, flour, make_product):
        cups = make_product("Cups", stock=10)
        invoice = purchase_service.add_purchase_invoice(
            supplier.id,
            [
                {"product_id": flour.id, "quantity": 25, "cost": 1.8},
                {"product_id": cups.id, "quantity": 100, "cost": 0.05},
            ],
        )

        assert invoice.total_amount == pytest.approx(50)
        assert len(invoice.lines) == 2
        assert db.session.get(Supplier, supplier.id).balance == pytest.approx(-50)
        assert flour.stock == pytest.approx(35)
        assert cups.stock == pytest.approx(110)

    def test_invoice_then_payment_nets_to_zero(self, supplier, flour):
        purchase_service.add_purchase_invoice(supplier.id, [{"product_id": flour.id, "quantity": 10, "cost": 2}])
        party_service.record_payment(PARTY_SUPPLIER, supplier.id, 20)
        assert db.session.get(Supplier, supplier.id).balance == pytest.approx(0)

    def test_unknown_supplier_leaves_stock_untouched(self, flour):
        with pytest.raises(PurchaseError, match="Supplier not found"):
            purchase_service.add_purchase_invoice(404, [{"product_id": flour.id, "quantity": 5, "cost": 2}])
        assert flour.stock == pytest.approx(10)

    @pytest.mark.parametrize("line", [
        {"quantity": 0, "cost": 1.0},
        {"quantity": 1, "cost": -1.0},
    ])
    def test_invalid_lines(self, supplier, flour, line):
        with pytest.raises(PurchaseError):
            purchase_service.add_purchase_invoice(supplier.id, [dict(line, product_id=flour.id)])

    def test_unknown_product(self, supplier):
        with pytest.raises(PurchaseError, match="Products not found"):
            purchase_service.add_purchase_invoice(supplier.id, [{"product_id": 8, "quantity": 1, "cost": 1}])

    def test_empty_invoice(self, supplier):
        with pytest.raises(PurchaseError):
            purchase_service.add_purchase_invoice(supplier.id, [])
