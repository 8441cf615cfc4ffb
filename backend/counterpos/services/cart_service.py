"""
In-memory cart used by checkout.

WHY: The cart is transient; it is never persisted on its own. A sale
deep-copies the cart lines at checkout, so mutating or clearing the cart
afterwards cannot change sale history.

Unit price and unit cost are frozen when a line is added:
- price: retail price, or the product's wholesale price in wholesale mode
- cost: product cost, or the recipe's ingredient cost at that moment
"""

from __future__ import annotations

import copy
import uuid
from dataclasses import dataclass, field, asdict

from ..models import Product, Recipe
from . import catalog_service
from .pricing_service import DiscountSpec
from .stock_service import ITEM_PRODUCT, ITEM_RECIPE


class CartError(Exception):
    """Raised for invalid cart operations."""
    pass


@dataclass(frozen=True)
class SelectedAddon:
    id: int
    name: str
    price: float

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class CartItem:
    cart_item_id: str
    item_id: int
    item_type: str
    name: str
    unit_price: float
    unit_cost: float
    quantity: int = 1
    selected_addons: list[SelectedAddon] = field(default_factory=list)
    notes: str = ""
    addon_group_ids: tuple[int, ...] = ()

    def to_dict(self) -> dict:
        return {
            "cart_item_id": self.cart_item_id,
            "item_id": self.item_id,
            "item_type": self.item_type,
            "name": self.name,
            "unit_price": self.unit_price,
            "unit_cost": self.unit_cost,
            "quantity": self.quantity,
            "selected_addons": [a.to_dict() for a in self.selected_addons],
            "notes": self.notes,
        }


def _new_cart_item_id(item_type: str, item_id: int) -> str:
    return f"{item_type}-{item_id}-{uuid.uuid4().hex[:12]}"


class Cart:
    """
    Cart lines plus the transient checkout state the cashier sets
    (general discount, delivery fee, wholesale mode, points to redeem).
    """

    def __init__(self, *, is_wholesale: bool = False):
        self.items: list[CartItem] = []
        self.is_wholesale = is_wholesale
        self.discount = DiscountSpec()
        self.delivery_fee = 0.0
        self.redeemed_points = 0

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, cart_item_id: str) -> CartItem | None:
        for item in self.items:
            if item.cart_item_id == cart_item_id:
                return item
        return None

    def add(self, item: Product | Recipe, item_type: str) -> CartItem:
        """Append a new line with quantity 1 and frozen price/cost."""
        if item_type == ITEM_PRODUCT:
            if item.is_raw_material:
                raise CartError(f"'{item.name}' is a raw material and cannot be sold")
            price = item.price
            if self.is_wholesale and item.wholesale_price:
                price = item.wholesale_price
            cost = item.cost or 0.0
        elif item_type == ITEM_RECIPE:
            price = item.price
            cost = catalog_service.recipe_cost(item)
        else:
            raise CartError(f"Unknown item type: {item_type}")

        line = CartItem(
            cart_item_id=_new_cart_item_id(item_type, item.id),
            item_id=item.id,
            item_type=item_type,
            name=item.name,
            unit_price=price,
            unit_cost=cost,
            addon_group_ids=tuple(g.id for g in item.addon_groups),
        )
        self.items.append(line)
        return line

    def update(
        self,
        cart_item_id: str,
        *,
        quantity: int | None = None,
        notes: str | None = None,
        selected_addon_ids: list[int] | None = None,
    ) -> CartItem | None:
        """
        Update a line. A quantity below 1 removes the line and returns None.
        """
        line = self.find(cart_item_id)
        if line is None:
            raise CartError("Cart item not found")

        if quantity is not None and quantity < 1:
            self.remove(cart_item_id)
            return None

        if selected_addon_ids is not None:
            line.selected_addons = _resolve_selected_addons(line, selected_addon_ids)
        if quantity is not None:
            line.quantity = quantity
        if notes is not None:
            line.notes = notes
        return line

    def remove(self, cart_item_id: str) -> None:
        self.items = [i for i in self.items if i.cart_item_id != cart_item_id]

    def clear(self) -> None:
        """Empty the cart and reset discount, delivery fee, points and wholesale mode."""
        self.items = []
        self.discount = DiscountSpec()
        self.delivery_fee = 0.0
        self.redeemed_points = 0
        self.is_wholesale = False

    def snapshot(self) -> list[CartItem]:
        """Deep copy of the lines, detached from later cart edits."""
        return copy.deepcopy(self.items)

    def to_dict(self) -> dict:
        return {
            "items": [i.to_dict() for i in self.items],
            "is_wholesale": self.is_wholesale,
            "discount": {"type": self.discount.type, "value": self.discount.value},
            "delivery_fee": self.delivery_fee,
            "redeemed_points": self.redeemed_points,
        }


def _resolve_selected_addons(line: CartItem, addon_ids: list[int]) -> list[SelectedAddon]:
    """
    Check an addon selection against the line's eligible addon groups.

    Every addon must belong to one of the groups; a "single" group allows
    at most one of its addons.
    """
    if not addon_ids:
        return []
    if len(set(addon_ids)) != len(addon_ids):
        raise CartError("An addon can only be selected once per line")

    groups = [catalog_service.get_addon_group(gid) for gid in line.addon_group_ids]
    groups = [g for g in groups if g is not None]

    selected: list[SelectedAddon] = []
    per_group: dict[int, int] = {}
    for addon_id in addon_ids:
        owner = None
        addon = None
        for group in groups:
            for candidate in group.addons:
                if candidate.id == addon_id:
                    owner, addon = group, candidate
                    break
            if owner:
                break
        if owner is None:
            raise CartError(f"Addon {addon_id} is not available for '{line.name}'")

        per_group[owner.id] = per_group.get(owner.id, 0) + 1
        if owner.selection_type == "single" and per_group[owner.id] > 1:
            raise CartError(f"Only one addon can be chosen from '{owner.name}'")

        selected.append(SelectedAddon(id=addon.id, name=addon.name, price=addon.price))
    return selected


def build_cart(lines: list[dict], *, is_wholesale: bool = False) -> Cart:
    """
    Build a cart from validated request lines:
    [{"item_type", "item_id", "quantity", "addon_ids", "notes"}, ...]
    """
    cart = Cart(is_wholesale=is_wholesale)
    for raw in lines:
        item_type = raw["item_type"]
        item_id = raw["item_id"]
        if item_type == ITEM_PRODUCT:
            item = catalog_service.get_product(item_id)
        elif item_type == ITEM_RECIPE:
            item = catalog_service.get_recipe(item_id)
        else:
            raise CartError(f"Unknown item type: {item_type}")
        if item is None:
            raise CartError(f"{item_type.capitalize()} {item_id} not found")

        line = cart.add(item, item_type)
        cart.update(
            line.cart_item_id,
            quantity=raw.get("quantity", 1),
            notes=raw.get("notes"),
            selected_addon_ids=raw.get("addon_ids") or [],
        )
    return cart
