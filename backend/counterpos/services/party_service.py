"""
Party Ledger: customers and suppliers with running balances.

BALANCE SIGN CONVENTION (both party types):
- negative: the other side owes money (customer owes shop / shop owes supplier)
- positive: credit in the other direction

Balance and loyalty point changes go through the apply_* functions so
sales, cancellations, purchases and ledger payments share one code path.
The apply_* functions flush but do not commit; the caller owns the
transaction.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import Customer, Supplier, LedgerPayment
from .concurrency import lock_for_update, run_with_retry


PARTY_CUSTOMER = "customer"
PARTY_SUPPLIER = "supplier"
VALID_PARTY_TYPES = (PARTY_CUSTOMER, PARTY_SUPPLIER)

PARTY_MUTABLE_FIELDS = {"name", "phone", "address"}


class PartyError(Exception):
    """Raised for customer/supplier ledger errors."""
    pass


# =============================================================================
# CUSTOMERS
# =============================================================================

def get_customer(customer_id: int) -> Customer | None:
    return db.session.query(Customer).filter_by(id=customer_id).first()


def list_customers(search: str | None = None) -> list[Customer]:
    query = db.session.query(Customer)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Customer.name.ilike(like), Customer.phone.ilike(like)))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def create_customer(*, name: str, phone: str | None = None, address: str | None = None) -> Customer:
    """New customers start with a zero balance and no points."""
    customer = Customer(name=name, phone=phone, address=address, balance=0.0, loyalty_points=0)
    db.session.add(customer)
    db.session.commit()
    return customer


def update_customer(customer_id: int, patch: dict) -> Customer:
    customer = get_customer(customer_id)
    if not customer:
        raise PartyError("Customer not found")
    for k, v in patch.items():
        if k in PARTY_MUTABLE_FIELDS:
            setattr(customer, k, v)
    db.session.commit()
    return customer


def delete_customer(customer_id: int) -> None:
    customer = get_customer(customer_id)
    if not customer:
        raise PartyError("Customer not found")
    db.session.delete(customer)
    db.session.commit()


def apply_customer_delta(
    customer_id: int,
    *,
    balance_delta: float = 0.0,
    points_delta: int = 0,
) -> Customer | None:
    """
    Adjust a customer's balance and loyalty points under a row lock.

    Returns None when the customer no longer exists; the caller decides
    whether that is an error.
    """
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        return None

    if balance_delta:
        customer.balance = (customer.balance or 0.0) + balance_delta
    if points_delta:
        customer.loyalty_points = (customer.loyalty_points or 0) + points_delta

    db.session.flush()
    return customer


# =============================================================================
# SUPPLIERS
# =============================================================================

def get_supplier(supplier_id: int) -> Supplier | None:
    return db.session.query(Supplier).filter_by(id=supplier_id).first()


def list_suppliers(search: str | None = None) -> list[Supplier]:
    query = db.session.query(Supplier)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Supplier.name.ilike(like), Supplier.phone.ilike(like)))
    return query.order_by(Supplier.name.asc(), Supplier.id.asc()).all()


def create_supplier(*, name: str, phone: str | None = None, address: str | None = None) -> Supplier:
    supplier = Supplier(name=name, phone=phone, address=address, balance=0.0)
    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier(supplier_id)
    if not supplier:
        raise PartyError("Supplier not found")
    for k, v in patch.items():
        if k in PARTY_MUTABLE_FIELDS:
            setattr(supplier, k, v)
    db.session.commit()
    return supplier


def delete_supplier(supplier_id: int) -> None:
    supplier = get_supplier(supplier_id)
    if not supplier:
        raise PartyError("Supplier not found")
    db.session.delete(supplier)
    db.session.commit()


def apply_supplier_delta(supplier_id: int, *, balance_delta: float) -> Supplier | None:
    supplier = lock_for_update(db.session.query(Supplier).filter_by(id=supplier_id)).first()
    if not supplier:
        return None
    supplier.balance = (supplier.balance or 0.0) + balance_delta
    db.session.flush()
    return supplier


# =============================================================================
# LEDGER PAYMENTS
# =============================================================================

def record_payment(
    party_type: str,
    entity_id: int,
    amount: float,
    note: str | None = None,
) -> tuple[LedgerPayment, Customer | Supplier]:
    """
    Record a standalone payment and move the party's balance by +amount.

    A customer paying off what they owe, or the shop paying a supplier,
    both move the balance back toward zero from the negative side.

    Returns (payment, updated party).
    """
    if party_type not in VALID_PARTY_TYPES:
        raise PartyError(f"Invalid party type: {party_type}. Must be one of {VALID_PARTY_TYPES}")
    if amount <= 0:
        raise PartyError("Payment amount must be positive")

    def _op():
        if party_type == PARTY_CUSTOMER:
            party = apply_customer_delta(entity_id, balance_delta=amount)
        else:
            party = apply_supplier_delta(entity_id, balance_delta=amount)

        if party is None:
            raise PartyError(f"{party_type.capitalize()} not found")

        payment = LedgerPayment(party_type=party_type, entity_id=entity_id, amount=amount, note=note)
        db.session.add(payment)
        db.session.commit()
        return payment, party

    return run_with_retry(_op)


def list_payments(party_type: str | None = None, entity_id: int | None = None) -> list[LedgerPayment]:
    query = db.session.query(LedgerPayment)
    if party_type:
        query = query.filter(LedgerPayment.party_type == party_type)
    if entity_id is not None:
        query = query.filter(LedgerPayment.entity_id == entity_id)
    return query.order_by(LedgerPayment.created_at.desc(), LedgerPayment.id.desc()).all()
