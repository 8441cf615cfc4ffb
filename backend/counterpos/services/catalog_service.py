# backend/counterpos/services/catalog_service.py
"""
Catalog Store: products, recipes, categories, addons and addon groups.

DELETION GUARDS:
- A product used as a recipe ingredient cannot be deleted
- A product or recipe referenced by any sale line (directly, or for a
  product as an ingredient of a sold recipe) cannot be deleted

WHY: Historical sales must stay reversible and printable.

Stock is NOT writable here after creation; it only moves through
stock_service (sales, cancellations, purchases, manual adjustments).
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..models import (
    Category,
    Product,
    Recipe,
    RecipeIngredient,
    Addon,
    AddonGroup,
    SaleLine,
    addon_group_members,
    product_addon_groups,
    recipe_addon_groups,
)
from ..validation import ConflictError

PRODUCT_MUTABLE_FIELDS = {
    "name", "price", "wholesale_price", "cost", "unit", "is_raw_material",
    "low_stock_threshold", "barcode", "category_id",
}

ADDON_SELECTION_TYPES = ("single", "multiple")


class CatalogError(Exception):
    """Raised for catalog operation errors."""
    pass


# =============================================================================
# LOOKUPS
# =============================================================================

def get_product(product_id: int) -> Product | None:
    return db.session.query(Product).filter_by(id=product_id).first()


def get_recipe(recipe_id: int) -> Recipe | None:
    return db.session.query(Recipe).filter_by(id=recipe_id).first()


def get_addon(addon_id: int) -> Addon | None:
    return db.session.query(Addon).filter_by(id=addon_id).first()


def get_addon_group(group_id: int) -> AddonGroup | None:
    return db.session.query(AddonGroup).filter_by(id=group_id).first()


def get_category(category_id: int) -> Category | None:
    return db.session.query(Category).filter_by(id=category_id).first()


def find_product_by_barcode(barcode: str) -> Product | None:
    if not barcode:
        return None
    return db.session.query(Product).filter_by(barcode=barcode.strip()).first()


def list_products(
    *,
    is_raw_material: bool | None = None,
    category_id: int | None = None,
    search: str | None = None,
) -> list[Product]:
    query = db.session.query(Product)
    if is_raw_material is not None:
        query = query.filter(Product.is_raw_material == is_raw_material)
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(like), Product.barcode == search.strip()))
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def list_low_stock_products() -> list[Product]:
    """Products at or below their low-stock threshold (threshold must be set)."""
    return (
        db.session.query(Product)
        .filter(Product.low_stock_threshold.isnot(None))
        .filter(Product.stock <= Product.low_stock_threshold)
        .order_by(Product.stock.asc(), Product.name.asc())
        .all()
    )


def list_recipes(*, category_id: int | None = None) -> list[Recipe]:
    query = db.session.query(Recipe)
    if category_id is not None:
        query = query.filter(Recipe.category_id == category_id)
    return query.order_by(Recipe.name.asc(), Recipe.id.asc()).all()


def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def list_addons() -> list[Addon]:
    return db.session.query(Addon).order_by(Addon.id.asc()).all()


def list_addon_groups() -> list[AddonGroup]:
    return db.session.query(AddonGroup).order_by(AddonGroup.id.asc()).all()


def recipe_cost(recipe: Recipe) -> float:
    """
    Cost of one unit of a recipe from current raw-material costs.

    Ingredients whose product no longer exists cost nothing.
    """
    product_ids = [i.product_id for i in recipe.ingredients]
    if not product_ids:
        return 0.0
    costs = {
        p.id: p.cost
        for p in db.session.query(Product).filter(Product.id.in_(product_ids)).all()
    }
    return sum(costs.get(i.product_id, 0.0) * i.quantity for i in recipe.ingredients)


# =============================================================================
# HISTORY REFERENCES
# =============================================================================

def recipe_referenced_by_sales(recipe_id: int) -> bool:
    return db.session.query(
        db.session.query(SaleLine).filter_by(item_type="recipe", item_id=recipe_id).exists()
    ).scalar()


def product_referenced_by_sales(product_id: int) -> bool:
    """True if the product was sold directly or as an ingredient of a sold recipe."""
    sold_directly = db.session.query(
        db.session.query(SaleLine).filter_by(item_type="product", item_id=product_id).exists()
    ).scalar()
    if sold_directly:
        return True

    recipe_ids = [
        row.recipe_id
        for row in db.session.query(RecipeIngredient.recipe_id).filter_by(product_id=product_id).all()
    ]
    if not recipe_ids:
        return False
    return db.session.query(
        db.session.query(SaleLine)
        .filter(SaleLine.item_type == "recipe", SaleLine.item_id.in_(recipe_ids))
        .exists()
    ).scalar()


# =============================================================================
# CATEGORIES
# =============================================================================

def create_category(name: str) -> Category:
    category = Category(name=name)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(category_id: int, name: str) -> Category:
    category = get_category(category_id)
    if not category:
        raise CatalogError("Category not found")
    category.name = name
    db.session.commit()
    return category


def delete_category(category_id: int) -> None:
    """Delete a category; its products and recipes become uncategorised."""
    category = get_category(category_id)
    if not category:
        raise CatalogError("Category not found")

    db.session.query(Product).filter_by(category_id=category_id).update(
        {"category_id": None}, synchronize_session="fetch"
    )
    db.session.query(Recipe).filter_by(category_id=category_id).update(
        {"category_id": None}, synchronize_session="fetch"
    )
    db.session.delete(category)
    db.session.commit()


# =============================================================================
# PRODUCTS
# =============================================================================

def _resolve_addon_groups(group_ids: list[int] | None) -> list[AddonGroup]:
    if not group_ids:
        return []
    groups = db.session.query(AddonGroup).filter(AddonGroup.id.in_(group_ids)).all()
    found = {g.id for g in groups}
    missing = [gid for gid in group_ids if gid not in found]
    if missing:
        raise CatalogError(f"Addon groups not found: {missing}")
    return groups


def _ensure_barcode_free(barcode: str | None, product_id: int | None = None) -> None:
    if not barcode:
        return
    existing = find_product_by_barcode(barcode)
    if existing and existing.id != product_id:
        raise ConflictError(f"Barcode '{barcode}' already used by product {existing.id}")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def create_product(*, patch: dict, stock: float = 0.0, addon_group_ids: list[int] | None = None) -> Product:
    """Create a product. Initial stock is the only stock write outside stock_service."""
    if not patch.get("name"):
        raise CatalogError("Product name required")
    _ensure_barcode_free(patch.get("barcode"))

    product = Product(stock=stock, cost=0.0, price=0.0)
    apply_product_patch(product, patch)
    product.addon_groups = _resolve_addon_groups(addon_group_ids)

    db.session.add(product)
    db.session.commit()
    return product


def update_product(product_id: int, *, patch: dict, addon_group_ids: list[int] | None = None) -> Product:
    product = get_product(product_id)
    if not product:
        raise CatalogError("Product not found")

    if "barcode" in patch:
        _ensure_barcode_free(patch.get("barcode"), product_id)

    if patch.get("is_raw_material") is False and product.is_raw_material:
        used = db.session.query(RecipeIngredient).filter_by(product_id=product_id).first()
        if used:
            raise CatalogError("Product is used as a recipe ingredient and must stay a raw material")

    apply_product_patch(product, patch)
    if addon_group_ids is not None:
        product.addon_groups = _resolve_addon_groups(addon_group_ids)

    db.session.commit()
    return product


def delete_product(product_id: int) -> None:
    product = get_product(product_id)
    if not product:
        raise CatalogError("Product not found")

    in_recipe = db.session.query(RecipeIngredient).filter_by(product_id=product_id).first()
    if in_recipe:
        raise ConflictError("Cannot delete a product used in a recipe; remove it from recipes first")

    if product_referenced_by_sales(product_id):
        raise ConflictError("Cannot delete a product that appears in past sales")

    db.session.delete(product)
    db.session.commit()


# =============================================================================
# RECIPES
# =============================================================================

def _build_ingredients(ingredients: list[dict]) -> list[RecipeIngredient]:
    """
    Validate ingredient rows: each must reference an existing raw material,
    with a positive quantity, at most once per recipe.
    """
    if not ingredients:
        raise CatalogError("Recipe needs at least one ingredient")

    seen: set[int] = set()
    rows = []
    for ing in ingredients:
        product_id = ing["product_id"]
        quantity = ing["quantity"]
        if product_id in seen:
            raise CatalogError(f"Ingredient {product_id} listed twice")
        seen.add(product_id)

        product = get_product(product_id)
        if not product:
            raise CatalogError(f"Ingredient product {product_id} not found")
        if not product.is_raw_material:
            raise CatalogError(f"Product '{product.name}' is not a raw material")
        if quantity <= 0:
            raise CatalogError("Ingredient quantity must be positive")

        rows.append(RecipeIngredient(product_id=product_id, quantity=quantity))
    return rows


def create_recipe(
    *,
    name: str,
    price: float,
    ingredients: list[dict],
    category_id: int | None = None,
    addon_group_ids: list[int] | None = None,
) -> Recipe:
    recipe = Recipe(name=name, price=price, category_id=category_id)
    recipe.ingredients = _build_ingredients(ingredients)
    recipe.addon_groups = _resolve_addon_groups(addon_group_ids)

    db.session.add(recipe)
    db.session.commit()
    return recipe


def update_recipe(
    recipe_id: int,
    *,
    name: str | None = None,
    price: float | None = None,
    ingredients: list[dict] | None = None,
    category_id: int | None = None,
    addon_group_ids: list[int] | None = None,
) -> Recipe:
    recipe = get_recipe(recipe_id)
    if not recipe:
        raise CatalogError("Recipe not found")

    if name is not None:
        recipe.name = name
    if price is not None:
        recipe.price = price
    if category_id is not None:
        recipe.category_id = category_id
    if ingredients is not None:
        new_rows = _build_ingredients(ingredients)
        recipe.ingredients = []
        db.session.flush()
        recipe.ingredients = new_rows
    if addon_group_ids is not None:
        recipe.addon_groups = _resolve_addon_groups(addon_group_ids)

    db.session.commit()
    return recipe


def delete_recipe(recipe_id: int) -> None:
    recipe = get_recipe(recipe_id)
    if not recipe:
        raise CatalogError("Recipe not found")

    if recipe_referenced_by_sales(recipe_id):
        raise ConflictError("Cannot delete a recipe that appears in past sales")

    db.session.delete(recipe)
    db.session.commit()


# =============================================================================
# ADDONS
# =============================================================================

def create_addon(*, name: str, price: float) -> Addon:
    addon = Addon(name=name, price=price)
    db.session.add(addon)
    db.session.commit()
    return addon


def update_addon(addon_id: int, *, name: str | None = None, price: float | None = None) -> Addon:
    addon = get_addon(addon_id)
    if not addon:
        raise CatalogError("Addon not found")
    if name is not None:
        addon.name = name
    if price is not None:
        addon.price = price
    db.session.commit()
    return addon


def delete_addon(addon_id: int) -> None:
    """Past sales keep their own addon snapshot, so addons can always be deleted."""
    addon = get_addon(addon_id)
    if not addon:
        raise CatalogError("Addon not found")
    db.session.execute(addon_group_members.delete().where(addon_group_members.c.addon_id == addon_id))
    db.session.delete(addon)
    db.session.commit()


def _resolve_addons(addon_ids: list[int]) -> list[Addon]:
    if not addon_ids:
        return []
    addons = db.session.query(Addon).filter(Addon.id.in_(addon_ids)).all()
    found = {a.id for a in addons}
    missing = [aid for aid in addon_ids if aid not in found]
    if missing:
        raise CatalogError(f"Addons not found: {missing}")
    return addons


def create_addon_group(*, name: str, selection_type: str, addon_ids: list[int]) -> AddonGroup:
    if selection_type not in ADDON_SELECTION_TYPES:
        raise CatalogError(f"selection_type must be one of {ADDON_SELECTION_TYPES}")

    group = AddonGroup(name=name, selection_type=selection_type)
    group.addons = _resolve_addons(addon_ids)
    db.session.add(group)
    db.session.commit()
    return group


def update_addon_group(
    group_id: int,
    *,
    name: str | None = None,
    selection_type: str | None = None,
    addon_ids: list[int] | None = None,
) -> AddonGroup:
    group = get_addon_group(group_id)
    if not group:
        raise CatalogError("Addon group not found")
    if selection_type is not None:
        if selection_type not in ADDON_SELECTION_TYPES:
            raise CatalogError(f"selection_type must be one of {ADDON_SELECTION_TYPES}")
        group.selection_type = selection_type
    if name is not None:
        group.name = name
    if addon_ids is not None:
        group.addons = _resolve_addons(addon_ids)
    db.session.commit()
    return group


def delete_addon_group(group_id: int) -> None:
    group = get_addon_group(group_id)
    if not group:
        raise CatalogError("Addon group not found")
    db.session.execute(product_addon_groups.delete().where(product_addon_groups.c.addon_group_id == group_id))
    db.session.execute(recipe_addon_groups.delete().where(recipe_addon_groups.c.addon_group_id == group_id))
    db.session.delete(group)
    db.session.commit()
