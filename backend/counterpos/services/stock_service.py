"""
Stock Ledger: turns sale lines into per-product stock deltas.

RESOLUTION:
- product line: delta on that product = -quantity (commit) / +quantity (reversal)
- recipe line: for each ingredient, delta on ingredient product =
  -(ingredient.quantity * line quantity) (commit) / the inverse (reversal)

Deltas for the same product are summed first, so a product sold directly
and consumed by two recipes in one sale gets a single net adjustment.

DANGLING REFERENCES: a recipe (or product) that no longer exists
contributes no delta. The sale already happened; reversal must still go
through for the lines that resolve. Skipped ids are reported back in
StockAdjustment so the caller can warn the operator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable

from ..extensions import db
from ..models import Product, Recipe
from .concurrency import lock_for_update, run_with_retry


MODE_COMMIT = "commit"
MODE_REVERSAL = "reversal"

ITEM_PRODUCT = "product"
ITEM_RECIPE = "recipe"


class StockError(Exception):
    """Raised for stock operation errors."""
    pass


@dataclass
class StockAdjustment:
    """Result of applying one batch of deltas."""
    deltas: dict[int, float] = field(default_factory=dict)
    products: list[Product] = field(default_factory=list)
    skipped_recipe_ids: list[int] = field(default_factory=list)
    missing_product_ids: list[int] = field(default_factory=list)

    @property
    def has_skips(self) -> bool:
        return bool(self.skipped_recipe_ids or self.missing_product_ids)

    def to_dict(self) -> dict:
        return {
            "deltas": {str(k): v for k, v in self.deltas.items()},
            "skipped_recipe_ids": list(self.skipped_recipe_ids),
            "missing_product_ids": list(self.missing_product_ids),
        }


def resolve_stock_deltas(lines: Iterable[Any], mode: str) -> tuple[dict[int, float], list[int]]:
    """
    Sum per-product deltas for a set of cart items or sale lines.

    Lines need item_type, item_id and quantity. Returns (deltas,
    skipped_recipe_ids). Pure apart from reading recipes.
    """
    if mode not in (MODE_COMMIT, MODE_REVERSAL):
        raise StockError(f"Unknown stock mode: {mode}")
    sign = -1.0 if mode == MODE_COMMIT else 1.0
    lines = list(lines)

    recipe_ids = {line.item_id for line in lines if line.item_type == ITEM_RECIPE}
    recipes: dict[int, Recipe] = {}
    if recipe_ids:
        recipes = {
            r.id: r
            for r in db.session.query(Recipe).filter(Recipe.id.in_(recipe_ids)).all()
        }

    deltas: dict[int, float] = {}
    skipped: list[int] = []
    for line in lines:
        if line.item_type == ITEM_PRODUCT:
            deltas[line.item_id] = deltas.get(line.item_id, 0.0) + sign * line.quantity
        elif line.item_type == ITEM_RECIPE:
            recipe = recipes.get(line.item_id)
            if recipe is None:
                if line.item_id not in skipped:
                    skipped.append(line.item_id)
                continue
            for ingredient in recipe.ingredients:
                qty = ingredient.quantity * line.quantity
                deltas[ingredient.product_id] = deltas.get(ingredient.product_id, 0.0) + sign * qty
        else:
            raise StockError(f"Unknown line type: {line.item_type}")

    return deltas, skipped


def apply_stock_deltas(deltas: dict[int, float]) -> StockAdjustment:
    """
    Apply summed deltas to Product.stock under row locks.

    Flushes but does not commit: stock moves in the same transaction as
    the sale, cancellation or purchase that caused it.
    """
    result = StockAdjustment(deltas=dict(deltas))
    if not deltas:
        return result

    products = (
        lock_for_update(db.session.query(Product).filter(Product.id.in_(list(deltas.keys()))))
        .order_by(Product.id)
        .all()
    )
    by_id = {p.id: p for p in products}

    for product_id, delta in deltas.items():
        product = by_id.get(product_id)
        if product is None:
            result.missing_product_ids.append(product_id)
            continue
        if delta:
            product.stock = (product.stock or 0.0) + delta
        result.products.append(product)

    db.session.flush()
    return result


def apply_lines(lines: Iterable[Any], mode: str) -> StockAdjustment:
    """Resolve and apply in one step."""
    deltas, skipped = resolve_stock_deltas(lines, mode)
    result = apply_stock_deltas(deltas)
    result.skipped_recipe_ids = skipped
    return result


def adjust_product_stock(product_id: int, delta: float) -> Product:
    """
    Manual stock correction (count, spoilage, opening stock).

    Stock may go negative; the shop keeps selling when the count is off.
    """
    def _op():
        result = apply_stock_deltas({product_id: delta})
        if result.missing_product_ids:
            raise StockError("Product not found")
        db.session.commit()
        return result.products[0]

    return run_with_retry(_op)
