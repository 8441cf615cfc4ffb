"""
Purchase invoices: goods received from suppliers.

Posting an invoice, in one transaction:
- total = sum(quantity * cost)
- supplier balance -= total (shop owes the supplier)
- product stock += quantity for each line
"""

from __future__ import annotations

from ..extensions import db
from ..models import Product, PurchaseInvoice, PurchaseLine
from counterpos.time_utils import utcnow
from . import party_service
from .concurrency import begin_write, run_with_retry
from .stock_service import apply_stock_deltas


class PurchaseError(Exception):
    """Raised for purchase invoice errors."""
    pass


def add_purchase_invoice(supplier_id: int, lines: list[dict]) -> PurchaseInvoice:
    """
    Post a purchase invoice.

    Args:
        supplier_id: Supplier delivering the goods
        lines: [{"product_id", "quantity", "cost"}, ...] with quantity > 0
            and cost >= 0 (per unit)

    Raises:
        PurchaseError: no lines, invalid line, unknown supplier or product
    """
    if not lines:
        raise PurchaseError("Purchase invoice must have at least one line")

    deltas: dict[int, float] = {}
    for line in lines:
        if line["quantity"] <= 0:
            raise PurchaseError("Purchase quantity must be positive")
        if line["cost"] < 0:
            raise PurchaseError("Purchase cost must not be negative")
        deltas[line["product_id"]] = deltas.get(line["product_id"], 0.0) + line["quantity"]

    known = {
        pid for (pid,) in db.session.query(Product.id).filter(Product.id.in_(list(deltas.keys()))).all()
    }
    missing = sorted(set(deltas) - known)
    if missing:
        raise PurchaseError(f"Products not found: {missing}")

    total = sum(line["quantity"] * line["cost"] for line in lines)

    def _op():
        begin_write()
        supplier = party_service.apply_supplier_delta(supplier_id, balance_delta=-total)
        if supplier is None:
            raise PurchaseError("Supplier not found")

        invoice = PurchaseInvoice(
            supplier_id=supplier_id,
            total_amount=total,
            created_at=utcnow(),
        )
        invoice.lines = [
            PurchaseLine(product_id=line["product_id"], quantity=line["quantity"], cost=line["cost"])
            for line in lines
        ]
        db.session.add(invoice)

        apply_stock_deltas(deltas)

        db.session.commit()
        return invoice

    return run_with_retry(_op)


def get_invoice(invoice_id: int) -> PurchaseInvoice | None:
    return db.session.query(PurchaseInvoice).filter_by(id=invoice_id).first()


def list_invoices(supplier_id: int | None = None) -> list[PurchaseInvoice]:
    query = db.session.query(PurchaseInvoice)
    if supplier_id is not None:
        query = query.filter(PurchaseInvoice.supplier_id == supplier_id)
    return query.order_by(PurchaseInvoice.created_at.desc(), PurchaseInvoice.id.desc()).all()
