"""
Shift Manager: cashier shifts and cash accountability.

DESIGN PRINCIPLES:
- At most one active shift per user
- Closed shifts are immutable; the close snapshot is never recomputed
- Variance tracking: expected = starting + cash sales - expenses,
  difference = counted - expected
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Shift, Expense, Sale, User
from counterpos.time_utils import utcnow
from .concurrency import begin_write, lock_for_update, run_with_retry


STATUS_ACTIVE = "active"
STATUS_CLOSED = "closed"


class ShiftError(Exception):
    """Raised for shift management errors."""
    pass


def get_active_shift(user_id: int) -> Shift | None:
    """Get the active shift for a user, if any."""
    return db.session.query(Shift).filter_by(
        user_id=user_id,
        status=STATUS_ACTIVE,
    ).first()


def get_active_for_update(user_id: int) -> Shift | None:
    return lock_for_update(db.session.query(Shift).filter_by(
        user_id=user_id,
        status=STATUS_ACTIVE,
    )).first()


def get_shift(shift_id: int) -> Shift | None:
    return db.session.query(Shift).filter_by(id=shift_id).first()


def list_shifts(*, user_id: int | None = None, status: str | None = None) -> list[Shift]:
    query = db.session.query(Shift)
    if user_id is not None:
        query = query.filter(Shift.user_id == user_id)
    if status:
        query = query.filter(Shift.status == status)
    return query.order_by(Shift.start_time.desc(), Shift.id.desc()).all()


def start_shift(user: User, starting_cash: float) -> Shift:
    """
    Open a shift for the user.

    Raises:
        ShiftError: user already has an active shift, or negative float
    """
    if starting_cash < 0:
        raise ShiftError("Starting cash must not be negative")

    def _op():
        begin_write()
        existing = get_active_shift(user.id)
        if existing:
            raise ShiftError(f"User already has an active shift (shift {existing.id})")

        shift = Shift(
            user_id=user.id,
            user_name=user.name,
            status=STATUS_ACTIVE,
            start_time=utcnow(),
            starting_cash=starting_cash,
        )
        db.session.add(shift)
        db.session.commit()
        return shift

    shift = run_with_retry(_op)
    current_app.logger.info("Shift %s started by user %s with %.2f", shift.id, user.id, starting_cash)
    return shift


def _completed_sales_totals(shift_id: int) -> tuple[float, float, float]:
    cash, card, total = db.session.query(
        func.coalesce(func.sum(Sale.cash_amount), 0.0),
        func.coalesce(func.sum(Sale.card_amount), 0.0),
        func.coalesce(func.sum(Sale.total_amount), 0.0),
    ).filter(
        Sale.shift_id == shift_id,
        Sale.status == "completed",
    ).one()
    return float(cash), float(card), float(total)


def _expenses_total(shift_id: int) -> float:
    total = db.session.query(
        func.coalesce(func.sum(Expense.amount), 0.0)
    ).filter(Expense.shift_id == shift_id).scalar()
    return float(total or 0.0)


def end_shift(user: User, counted_cash: float) -> Shift:
    """
    Close the user's active shift and freeze its cash snapshot.

    Canceled sales are excluded from the aggregates. Credit tenders count
    toward total_sales but not toward the drawer.

    Raises:
        ShiftError: no active shift, or negative count
    """
    if counted_cash < 0:
        raise ShiftError("Counted cash must not be negative")

    def _op():
        begin_write()
        shift = get_active_for_update(user.id)
        if not shift:
            raise ShiftError("No active shift to end")

        cash_sales, card_sales, total_sales = _completed_sales_totals(shift.id)
        total_expenses = _expenses_total(shift.id)
        expected = shift.starting_cash + cash_sales - total_expenses

        shift.status = STATUS_CLOSED
        shift.end_time = utcnow()
        shift.ending_cash = counted_cash
        shift.cash_sales = cash_sales
        shift.card_sales = card_sales
        shift.total_sales = total_sales
        shift.total_expenses = total_expenses
        shift.expected_cash = expected
        shift.difference = counted_cash - expected

        db.session.commit()
        return shift

    shift = run_with_retry(_op)
    current_app.logger.info(
        "Shift %s closed: expected=%.2f counted=%.2f difference=%.2f",
        shift.id, shift.expected_cash, shift.ending_cash, shift.difference,
    )
    return shift


def add_expense(user: User, description: str, amount: float) -> Expense:
    """Record cash paid out of the drawer against the user's active shift."""
    if not description or not description.strip():
        raise ShiftError("Expense description is required")
    if amount <= 0:
        raise ShiftError("Expense amount must be positive")

    shift = get_active_shift(user.id)
    if not shift:
        raise ShiftError("Start a shift before recording expenses")

    expense = Expense(
        shift_id=shift.id,
        description=description.strip(),
        amount=amount,
        created_at=utcnow(),
    )
    db.session.add(expense)
    db.session.commit()
    return expense


def list_expenses(shift_id: int) -> list[Expense]:
    return db.session.query(Expense).filter_by(shift_id=shift_id).order_by(
        Expense.created_at.asc(), Expense.id.asc()
    ).all()


def shift_report(shift_id: int) -> dict | None:
    """
    Z-report for a shift.

    For a closed shift the stored snapshot is reported as-is. For an
    active shift the figures are computed live and marked provisional.
    """
    shift = get_shift(shift_id)
    if not shift:
        return None

    completed = db.session.query(func.count(Sale.id)).filter(
        Sale.shift_id == shift.id, Sale.status == "completed"
    ).scalar() or 0
    canceled = db.session.query(func.count(Sale.id)).filter(
        Sale.shift_id == shift.id, Sale.status == "canceled"
    ).scalar() or 0

    data = shift.to_dict()
    if shift.is_active:
        cash_sales, card_sales, total_sales = _completed_sales_totals(shift.id)
        total_expenses = _expenses_total(shift.id)
        data.update({
            "cash_sales": cash_sales,
            "card_sales": card_sales,
            "total_sales": total_sales,
            "total_expenses": total_expenses,
            "expected_cash": shift.starting_cash + cash_sales - total_expenses,
        })

    return {
        "shift": data,
        "provisional": shift.is_active,
        "expenses": [e.to_dict() for e in list_expenses(shift.id)],
        "completed_sales_count": int(completed),
        "canceled_sales_count": int(canceled),
    }
