from __future__ import annotations

from ..extensions import db
from counterpos.time_utils import to_utc_z


class Shift(db.Model):
    """
    Cashier shift with cash accountability.

    LIFECYCLE:
    - active: drawer open, sales and expenses are tagged with this shift
    - closed: counted, aggregates frozen

    IMMUTABLE: Once closed, the snapshot is never recomputed, even if a
    sale of the shift would later be canceled (which sales_service rejects).
    At most one active shift per user (enforced by shift_service).
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index("ix_shifts_user_status", "user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    user_name = db.Column(db.String(128), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)  # active, closed

    start_time = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    end_time = db.Column(db.DateTime(timezone=True), nullable=True)

    starting_cash = db.Column(db.Float, nullable=False, default=0.0)
    ending_cash = db.Column(db.Float, nullable=False, default=0.0)  # Counted at close

    # Aggregates (zero while active)
    cash_sales = db.Column(db.Float, nullable=False, default=0.0)
    card_sales = db.Column(db.Float, nullable=False, default=0.0)
    total_expenses = db.Column(db.Float, nullable=False, default=0.0)
    total_sales = db.Column(db.Float, nullable=False, default=0.0)
    expected_cash = db.Column(db.Float, nullable=False, default=0.0)  # starting + cash sales - expenses
    difference = db.Column(db.Float, nullable=False, default=0.0)  # ending - expected

    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("shifts", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "status": self.status,
            "start_time": to_utc_z(self.start_time),
            "end_time": to_utc_z(self.end_time) if self.end_time else None,
            "starting_cash": self.starting_cash,
            "ending_cash": self.ending_cash,
            "cash_sales": self.cash_sales,
            "card_sales": self.card_sales,
            "total_expenses": self.total_expenses,
            "total_sales": self.total_sales,
            "expected_cash": self.expected_cash,
            "difference": self.difference,
            "version_id": self.version_id,
        }


class Expense(db.Model):
    """Cash paid out of the drawer during a shift."""
    __tablename__ = "expenses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    description = db.Column(db.String(255), nullable=False)
    amount = db.Column(db.Float, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    shift = db.relationship("Shift", backref=db.backref("expenses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "shift_id": self.shift_id,
            "description": self.description,
            "amount": self.amount,
            "created_at": to_utc_z(self.created_at),
        }
