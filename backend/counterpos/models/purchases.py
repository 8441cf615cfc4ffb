from __future__ import annotations

from ..extensions import db
from counterpos.time_utils import to_utc_z


class PurchaseInvoice(db.Model):
    """
    Incoming goods from a supplier.

    Posting an invoice raises product stock and moves the supplier
    balance toward negative (shop owes supplier) by total_amount.
    """
    __tablename__ = "purchase_invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    supplier = db.relationship("Supplier", backref=db.backref("purchase_invoices", lazy=True))
    lines = db.relationship(
        "PurchaseLine",
        backref="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="PurchaseLine.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "total_amount": self.total_amount,
            "items": [line.to_dict() for line in self.lines],
            "created_at": to_utc_z(self.created_at),
        }


class PurchaseLine(db.Model):
    __tablename__ = "purchase_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey("purchase_invoices.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)
    cost = db.Column(db.Float, nullable=False)  # Per unit

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "cost": self.cost,
        }
