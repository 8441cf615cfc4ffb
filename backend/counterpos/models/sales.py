from __future__ import annotations

from ..extensions import db
from counterpos.time_utils import to_utc_z


class Sale(db.Model):
    """
    Committed sale (checkout result).

    LIFECYCLE:
    - completed: created exactly once per checkout
    - canceled: terminal; stock and party ledger effects reversed

    IMMUTABLE: every column except status (and its cancel audit fields)
    is frozen at creation. Sales are never physically deleted.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_shift_status", "shift_id", "status"),
        db.Index("ix_sales_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    # Cashier (trusted from the session)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=False)

    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True)
    customer_id = db.Column(db.Integer, nullable=True)

    # Priced breakdown
    sub_total = db.Column(db.Float, nullable=False, default=0.0)
    discount_type = db.Column(db.String(16), nullable=False, default="none")  # none, fixed, percentage
    discount_value = db.Column(db.Float, nullable=False, default=0.0)
    general_discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    loyalty_discount_amount = db.Column(db.Float, nullable=False, default=0.0)
    tax_amount = db.Column(db.Float, nullable=False, default=0.0)
    delivery_fee = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_cost = db.Column(db.Float, nullable=False, default=0.0)

    # Tenders
    cash_amount = db.Column(db.Float, nullable=False, default=0.0)
    card_amount = db.Column(db.Float, nullable=False, default=0.0)
    credit_amount = db.Column(db.Float, nullable=False, default=0.0)

    points_redeemed = db.Column(db.Integer, nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=0)

    # Cancel audit trail
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_by_user_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("Shift", backref=db.backref("sales", lazy=True))
    lines = db.relationship(
        "SaleLine",
        backref="sale",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="SaleLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def payment_details(self) -> dict:
        return {"cash": self.cash_amount, "card": self.card_amount, "credit": self.credit_amount}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "user_id": self.user_id,
            "user_name": self.user_name,
            "shift_id": self.shift_id,
            "customer_id": self.customer_id,
            "items": [line.to_dict() for line in self.lines],
            "sub_total": self.sub_total,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "general_discount_amount": self.general_discount_amount,
            "loyalty_discount_amount": self.loyalty_discount_amount,
            "tax_amount": self.tax_amount,
            "delivery_fee": self.delivery_fee,
            "total_amount": self.total_amount,
            "total_cost": self.total_cost,
            "payment_details": self.payment_details,
            "points_redeemed": self.points_redeemed,
            "points_earned": self.points_earned,
            "canceled_at": to_utc_z(self.canceled_at) if self.canceled_at else None,
            "canceled_by_user_id": self.canceled_by_user_id,
            "version_id": self.version_id,
        }


class SaleLine(db.Model):
    """
    Snapshot of one cart line at checkout.

    item_id is deliberately not a foreign key: the referenced product or
    recipe is protected from deletion by catalog_service, and reversal
    tolerates it going missing anyway.
    """
    __tablename__ = "sale_lines"
    __table_args__ = (
        db.Index("ix_sale_lines_item", "item_type", "item_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)

    cart_item_id = db.Column(db.String(64), nullable=False)
    item_type = db.Column(db.String(16), nullable=False)  # product, recipe
    item_id = db.Column(db.Integer, nullable=False)
    name = db.Column(db.String(255), nullable=False)

    unit_price = db.Column(db.Float, nullable=False)
    unit_cost = db.Column(db.Float, nullable=False, default=0.0)
    quantity = db.Column(db.Float, nullable=False)

    # [{"id": 1, "name": "Extra cheese", "price": 2.0}, ...]
    addons = db.Column(db.JSON, nullable=False, default=list)
    notes = db.Column(db.String(255), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "cart_item_id": self.cart_item_id,
            "item_type": self.item_type,
            "item_id": self.item_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "unit_cost": self.unit_cost,
            "quantity": self.quantity,
            "selected_addons": list(self.addons or []),
            "notes": self.notes,
        }
