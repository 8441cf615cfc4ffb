from __future__ import annotations

from ..extensions import db
from counterpos.time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer account with a running balance and loyalty points.

    BALANCE SIGN:
    - negative: customer owes the shop (sales on account)
    - positive: shop owes the customer (store credit)

    balance and loyalty_points are only changed through party_service,
    never assigned directly by callers.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        db.Index("ix_customers_phone", "phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    balance = db.Column(db.Float, nullable=False, default=0.0)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "balance": self.balance,
            "loyalty_points": self.loyalty_points,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class Supplier(db.Model):
    """Supplier account. Negative balance means the shop owes the supplier."""
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    balance = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "address": self.address,
            "balance": self.balance,
            "created_at": to_utc_z(self.created_at),
            "version_id": self.version_id,
        }


class LedgerPayment(db.Model):
    """
    Standalone payment against a customer or supplier balance.

    Independent of sales (e.g. a customer settling what they owe, or the
    shop paying a supplier invoice). IMMUTABLE once recorded.
    """
    __tablename__ = "ledger_payments"
    __table_args__ = (
        db.Index("ix_ledger_payments_party", "party_type", "entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    party_type = db.Column(db.String(16), nullable=False)  # customer, supplier
    entity_id = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Float, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "party_type": self.party_type,
            "entity_id": self.entity_id,
            "amount": self.amount,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
