# Overview: Flask API routes for the catalog (categories, products, recipes, addons).

"""
Catalog routes.

SECURITY: All routes require authentication.
- Menu reads require VIEW_MENU; recipe/addon/category writes MANAGE_MENU
- Product writes and stock corrections require MANAGE_INVENTORY
"""

from flask import Blueprint, request, jsonify, current_app

from ..permissions import VIEW_MENU, MANAGE_MENU, VIEW_INVENTORY, MANAGE_INVENTORY
from ..services import catalog_service, stock_service
from ..services.catalog_service import CatalogError, ADDON_SELECTION_TYPES
from ..services.stock_service import StockError
from ..decorators import require_auth, require_permission, require_any_permission
from ..validation import (
    ValidationError,
    ConflictError,
    parse_number,
    parse_int,
    require_text,
    optional_text,
    parse_choice,
)


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


def _id_list(value, field: str) -> list[int] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list")
    return [parse_int(v, field, minimum=1) for v in value]


def _optional_id(value, field: str) -> int | None:
    if value is None:
        return None
    return parse_int(value, field, minimum=1)


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
@require_auth
@require_permission(VIEW_MENU)
def list_categories_route():
    return jsonify({"categories": [c.to_dict() for c in catalog_service.list_categories()]}), 200


@catalog_bp.post("/categories")
@require_auth
@require_permission(MANAGE_MENU)
def create_category_route():
    try:
        data = request.get_json(silent=True) or {}
        category = catalog_service.create_category(require_text(data.get("name"), "name", max_length=128))
        return jsonify({"category": category.to_dict()}), 201
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@catalog_bp.put("/categories/<int:category_id>")
@require_auth
@require_permission(MANAGE_MENU)
def update_category_route(category_id: int):
    if not catalog_service.get_category(category_id):
        return jsonify({"error": "Category not found"}), 404
    try:
        data = request.get_json(silent=True) or {}
        category = catalog_service.update_category(
            category_id, require_text(data.get("name"), "name", max_length=128)
        )
        return jsonify({"category": category.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_permission(MANAGE_MENU)
def delete_category_route(category_id: int):
    if not catalog_service.get_category(category_id):
        return jsonify({"error": "Category not found"}), 404
    catalog_service.delete_category(category_id)
    return jsonify({"ok": True}), 200


# =============================================================================
# PRODUCTS
# =============================================================================

def _parse_product_patch(data: dict, *, partial: bool) -> dict:
    """Coerce the writable product fields present in the payload."""
    patch = {}
    if not partial or "name" in data:
        patch["name"] = require_text(data.get("name"), "name")
    if not partial or "price" in data:
        patch["price"] = parse_number(data.get("price"), "price", default=0.0 if not partial else None)
    if "wholesale_price" in data:
        wp = data.get("wholesale_price")
        patch["wholesale_price"] = None if wp is None else parse_number(wp, "wholesale_price")
    if "cost" in data:
        patch["cost"] = parse_number(data.get("cost"), "cost")
    if "unit" in data:
        patch["unit"] = require_text(data.get("unit"), "unit", max_length=32)
    if "is_raw_material" in data:
        if not isinstance(data["is_raw_material"], bool):
            raise ValidationError("is_raw_material must be a boolean")
        patch["is_raw_material"] = data["is_raw_material"]
    if "low_stock_threshold" in data:
        t = data.get("low_stock_threshold")
        patch["low_stock_threshold"] = None if t is None else parse_number(t, "low_stock_threshold")
    if "barcode" in data:
        patch["barcode"] = optional_text(data.get("barcode"), "barcode", max_length=64)
    if "category_id" in data:
        patch["category_id"] = _optional_id(data.get("category_id"), "category_id")
    return patch


@catalog_bp.get("/products")
@require_auth
@require_any_permission(VIEW_MENU, VIEW_INVENTORY)
def list_products_route():
    """
    Query params:
    - raw: "true"/"false" (optional) - filter raw materials
    - category_id: int (optional)
    - q: str (optional) - name or barcode search
    """
    raw = request.args.get("raw")
    is_raw = None if raw is None else raw.lower() in ("1", "true", "yes")
    products = catalog_service.list_products(
        is_raw_material=is_raw,
        category_id=request.args.get("category_id", type=int),
        search=request.args.get("q"),
    )
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@catalog_bp.get("/products/low-stock")
@require_auth
@require_permission(VIEW_INVENTORY)
def low_stock_route():
    products = catalog_service.list_low_stock_products()
    return jsonify({"products": [p.to_dict() for p in products]}), 200


@catalog_bp.get("/products/barcode/<string:barcode>")
@require_auth
@require_any_permission(VIEW_MENU, VIEW_INVENTORY)
def product_by_barcode_route(barcode: str):
    product = catalog_service.find_product_by_barcode(barcode)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()}), 200


@catalog_bp.get("/products/<int:product_id>")
@require_auth
@require_any_permission(VIEW_MENU, VIEW_INVENTORY)
def get_product_route(product_id: int):
    product = catalog_service.get_product(product_id)
    if not product:
        return jsonify({"error": "Product not found"}), 404
    return jsonify({"product": product.to_dict()}), 200


@catalog_bp.post("/products")
@require_auth
@require_permission(MANAGE_INVENTORY)
def create_product_route():
    """Body: product fields, optional opening stock and addon_group_ids."""
    payload = request.get_json(silent=True) or {}
    try:
        patch = _parse_product_patch(payload, partial=False)
        stock = parse_number(payload.get("stock"), "stock", minimum=None, default=0.0)
        group_ids = _id_list(payload.get("addon_group_ids"), "addon_group_ids")
        product = catalog_service.create_product(patch=patch, stock=stock, addon_group_ids=group_ids)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CatalogError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"product": product.to_dict()}), 201


@catalog_bp.put("/products/<int:product_id>")
@require_auth
@require_permission(MANAGE_INVENTORY)
def update_product_route(product_id: int):
    """Partial update. Stock is not writable here; use the stock endpoint."""
    if not catalog_service.get_product(product_id):
        return jsonify({"error": "Product not found"}), 404

    payload = request.get_json(silent=True) or {}
    try:
        patch = _parse_product_patch(payload, partial=True)
        group_ids = _id_list(payload.get("addon_group_ids"), "addon_group_ids")
        product = catalog_service.update_product(product_id, patch=patch, addon_group_ids=group_ids)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except CatalogError as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"product": product.to_dict()}), 200


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_permission(MANAGE_INVENTORY)
def delete_product_route(product_id: int):
    if not catalog_service.get_product(product_id):
        return jsonify({"error": "Product not found"}), 404
    try:
        catalog_service.delete_product(product_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


@catalog_bp.post("/products/<int:product_id>/stock")
@require_auth
@require_permission(MANAGE_INVENTORY)
def adjust_stock_route(product_id: int):
    """
    Manual stock correction.

    Body: {"delta": float} (may be negative)
    """
    try:
        data = request.get_json(silent=True) or {}
        delta = parse_number(data.get("delta"), "delta", minimum=None, allow_zero=False)
        product = stock_service.adjust_product_stock(product_id, delta)
        return jsonify({"product": product.to_dict()}), 200
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except StockError as e:
        return jsonify({"error": str(e)}), 404
    except Exception:
        current_app.logger.exception("Failed to adjust stock")
        return jsonify({"error": "Internal server error"}), 500


# =============================================================================
# RECIPES
# =============================================================================

def _parse_ingredients(value) -> list[dict] | None:
    if value is None:
        return None
    if not isinstance(value, list):
        raise ValidationError("ingredients must be a list")
    rows = []
    for idx, raw in enumerate(value):
        if not isinstance(raw, dict):
            raise ValidationError(f"ingredients[{idx}] must be an object")
        rows.append({
            "product_id": parse_int(raw.get("product_id"), f"ingredients[{idx}].product_id", minimum=1),
            "quantity": parse_number(raw.get("quantity"), f"ingredients[{idx}].quantity", allow_zero=False),
        })
    return rows


@catalog_bp.get("/recipes")
@require_auth
@require_permission(VIEW_MENU)
def list_recipes_route():
    recipes = catalog_service.list_recipes(category_id=request.args.get("category_id", type=int))
    return jsonify({"recipes": [r.to_dict() for r in recipes]}), 200


@catalog_bp.get("/recipes/<int:recipe_id>")
@require_auth
@require_permission(VIEW_MENU)
def get_recipe_route(recipe_id: int):
    recipe = catalog_service.get_recipe(recipe_id)
    if not recipe:
        return jsonify({"error": "Recipe not found"}), 404
    data = recipe.to_dict()
    data["cost"] = catalog_service.recipe_cost(recipe)
    return jsonify({"recipe": data}), 200


@catalog_bp.post("/recipes")
@require_auth
@require_permission(MANAGE_MENU)
def create_recipe_route():
    data = request.get_json(silent=True) or {}
    try:
        recipe = catalog_service.create_recipe(
            name=require_text(data.get("name"), "name"),
            price=parse_number(data.get("price"), "price"),
            ingredients=_parse_ingredients(data.get("ingredients")) or [],
            category_id=_optional_id(data.get("category_id"), "category_id"),
            addon_group_ids=_id_list(data.get("addon_group_ids"), "addon_group_ids"),
        )
    except (ValidationError, CatalogError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"recipe": recipe.to_dict()}), 201


@catalog_bp.put("/recipes/<int:recipe_id>")
@require_auth
@require_permission(MANAGE_MENU)
def update_recipe_route(recipe_id: int):
    if not catalog_service.get_recipe(recipe_id):
        return jsonify({"error": "Recipe not found"}), 404

    data = request.get_json(silent=True) or {}
    try:
        recipe = catalog_service.update_recipe(
            recipe_id,
            name=require_text(data["name"], "name") if "name" in data else None,
            price=parse_number(data["price"], "price") if "price" in data else None,
            ingredients=_parse_ingredients(data.get("ingredients")),
            category_id=_optional_id(data.get("category_id"), "category_id"),
            addon_group_ids=_id_list(data.get("addon_group_ids"), "addon_group_ids"),
        )
    except (ValidationError, CatalogError) as e:
        return jsonify({"error": str(e)}), 400

    return jsonify({"recipe": recipe.to_dict()}), 200


@catalog_bp.delete("/recipes/<int:recipe_id>")
@require_auth
@require_permission(MANAGE_MENU)
def delete_recipe_route(recipe_id: int):
    if not catalog_service.get_recipe(recipe_id):
        return jsonify({"error": "Recipe not found"}), 404
    try:
        catalog_service.delete_recipe(recipe_id)
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    return jsonify({"ok": True}), 200


# =============================================================================
# ADDONS & ADDON GROUPS
# =============================================================================

@catalog_bp.get("/addons")
@require_auth
@require_permission(VIEW_MENU)
def list_addons_route():
    return jsonify({"addons": [a.to_dict() for a in catalog_service.list_addons()]}), 200


@catalog_bp.post("/addons")
@require_auth
@require_permission(MANAGE_MENU)
def create_addon_route():
    data = request.get_json(silent=True) or {}
    try:
        addon = catalog_service.create_addon(
            name=require_text(data.get("name"), "name", max_length=128),
            price=parse_number(data.get("price"), "price", default=0.0),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"addon": addon.to_dict()}), 201


@catalog_bp.put("/addons/<int:addon_id>")
@require_auth
@require_permission(MANAGE_MENU)
def update_addon_route(addon_id: int):
    if not catalog_service.get_addon(addon_id):
        return jsonify({"error": "Addon not found"}), 404
    data = request.get_json(silent=True) or {}
    try:
        addon = catalog_service.update_addon(
            addon_id,
            name=require_text(data["name"], "name", max_length=128) if "name" in data else None,
            price=parse_number(data["price"], "price") if "price" in data else None,
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"addon": addon.to_dict()}), 200


@catalog_bp.delete("/addons/<int:addon_id>")
@require_auth
@require_permission(MANAGE_MENU)
def delete_addon_route(addon_id: int):
    if not catalog_service.get_addon(addon_id):
        return jsonify({"error": "Addon not found"}), 404
    catalog_service.delete_addon(addon_id)
    return jsonify({"ok": True}), 200


@catalog_bp.get("/addon-groups")
@require_auth
@require_permission(VIEW_MENU)
def list_addon_groups_route():
    groups = catalog_service.list_addon_groups()
    return jsonify({"addon_groups": [g.to_dict() for g in groups]}), 200


@catalog_bp.post("/addon-groups")
@require_auth
@require_permission(MANAGE_MENU)
def create_addon_group_route():
    data = request.get_json(silent=True) or {}
    try:
        group = catalog_service.create_addon_group(
            name=require_text(data.get("name"), "name", max_length=128),
            selection_type=parse_choice(data.get("selection_type"), "selection_type",
                                        ADDON_SELECTION_TYPES, default="multiple"),
            addon_ids=_id_list(data.get("addon_ids"), "addon_ids") or [],
        )
    except (ValidationError, CatalogError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"addon_group": group.to_dict()}), 201


@catalog_bp.put("/addon-groups/<int:group_id>")
@require_auth
@require_permission(MANAGE_MENU)
def update_addon_group_route(group_id: int):
    if not catalog_service.get_addon_group(group_id):
        return jsonify({"error": "Addon group not found"}), 404
    data = request.get_json(silent=True) or {}
    try:
        group = catalog_service.update_addon_group(
            group_id,
            name=require_text(data["name"], "name", max_length=128) if "name" in data else None,
            selection_type=parse_choice(data["selection_type"], "selection_type", ADDON_SELECTION_TYPES)
            if "selection_type" in data else None,
            addon_ids=_id_list(data.get("addon_ids"), "addon_ids"),
        )
    except (ValidationError, CatalogError) as e:
        return jsonify({"error": str(e)}), 400
    return jsonify({"addon_group": group.to_dict()}), 200


@catalog_bp.delete("/addon-groups/<int:group_id>")
@require_auth
@require_permission(MANAGE_MENU)
def delete_addon_group_route(group_id: int):
    if not catalog_service.get_addon_group(group_id):
        return jsonify({"error": "Addon group not found"}), 404
    catalog_service.delete_addon_group(group_id)
    return jsonify({"ok": True}), 200
