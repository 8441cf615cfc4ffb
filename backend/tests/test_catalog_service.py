import pytest

from counterpos.extensions import db
from counterpos.models import Product, Recipe
from counterpos.services import catalog_service, sales_service
from counterpos.services.catalog_service import CatalogError
from counterpos.services.pricing_service import PaymentDetails
from counterpos.validation import ConflictError


class TestProducts:
    def test_create_product_with_stock(self, make_product):
        soda = make_product("Soda", price=2.0, stock=12, barcode="400")
        assert soda.stock == 12
        assert catalog_service.find_product_by_barcode("400").id == soda.id

    def test_name_required(self, db_session):
        with pytest.raises(CatalogError):
            catalog_service.create_product(patch={"price": 1.0})

    def test_barcode_must_be_unique(self, make_product):
        make_product("Soda", barcode="400")
        with pytest.raises(ConflictError):
            make_product("Cola", barcode="400")

    def test_update_keeps_own_barcode(self, make_product):
        soda = make_product("Soda", barcode="400")
        updated = catalog_service.update_product(soda.id, patch={"barcode": "400", "price": 3.0})
        assert updated.price == 3.0

    def test_update_ignores_stock(self, make_product):
        soda = make_product("Soda", stock=5)
        catalog_service.update_product(soda.id, patch={"stock": 500})
        assert db.session.get(Product, soda.id).stock == 5

    def test_ingredient_must_stay_raw_material(self, bread, flour):
        with pytest.raises(CatalogError, match="raw material"):
            catalog_service.update_product(flour.id, patch={"is_raw_material": False})

    def test_low_stock_listing(self, make_product):
        low = make_product("Ice", stock=1, low_stock_threshold=2)
        make_product("Cups", stock=50, low_stock_threshold=10)
        make_product("Straws", stock=0)
        assert [p.id for p in catalog_service.list_low_stock_products()] == [low.id]


class TestDeletionGuards:
    def test_ingredient_cannot_be_deleted(self, bread, flour):
        with pytest.raises(ConflictError, match="recipe"):
            catalog_service.delete_product(flour.id)

    def test_sold_product_cannot_be_deleted(self, cashier, active_shift, make_product, cart_with):
        soda = make_product("Soda", price=1.0, stock=3)
        sales_service.process_sale(cart_with((soda, 1)), user=cashier, payment=PaymentDetails(cash=1))
        with pytest.raises(ConflictError, match="past sales"):
            catalog_service.delete_product(soda.id)

    def test_sold_recipe_cannot_be_deleted(self, cashier, active_shift, bread, cart_with):
        sales_service.process_sale(cart_with((bread, 1)), user=cashier, payment=PaymentDetails(cash=5))
        with pytest.raises(ConflictError, match="past sales"):
            catalog_service.delete_recipe(bread.id)

    def test_unsold_recipe_and_ingredient_can_be_deleted(self, bread, flour):
        bread_id, flour_id = bread.id, flour.id
        catalog_service.delete_recipe(bread_id)
        catalog_service.delete_product(flour_id)
        assert db.session.get(Recipe, bread_id) is None
        assert db.session.get(Product, flour_id) is None

    def test_delete_unknown_product(self, db_session):
        with pytest.raises(CatalogError, match="not found"):
            catalog_service.delete_product(31337)


class TestRecipes:
    def test_ingredients_must_be_raw_materials(self, make_product):
        soda = make_product("Soda")
        with pytest.raises(CatalogError, match="not a raw material"):
            catalog_service.create_recipe(
                name="Float", price=3.0, ingredients=[{"product_id": soda.id, "quantity": 1}]
            )

    def test_recipe_needs_ingredients(self, db_session):
        with pytest.raises(CatalogError):
            catalog_service.create_recipe(name="Air", price=1.0, ingredients=[])

    def test_duplicate_ingredient_rejected(self, flour):
        with pytest.raises(CatalogError, match="twice"):
            catalog_service.create_recipe(
                name="Dough",
                price=1.0,
                ingredients=[
                    {"product_id": flour.id, "quantity": 0.1},
                    {"product_id": flour.id, "quantity": 0.2},
                ],
            )

    def test_quantity_must_be_positive(self, flour):
        with pytest.raises(CatalogError, match="positive"):
            catalog_service.create_recipe(
                name="Dough", price=1.0, ingredients=[{"product_id": flour.id, "quantity": 0}]
            )

    def test_replace_ingredients(self, bread, flour, make_product):
        salt = make_product("Salt", is_raw_material=True, unit="kg", cost=1.0)
        recipe = catalog_service.update_recipe(
            bread.id,
            ingredients=[
                {"product_id": flour.id, "quantity": 0.25},
                {"product_id": salt.id, "quantity": 0.01},
            ],
        )
        assert [(i.product_id, i.quantity) for i in recipe.ingredients] == [
            (flour.id, 0.25),
            (salt.id, 0.01),
        ]
        assert catalog_service.recipe_cost(recipe) == pytest.approx(0.51)


class TestAddons:
    def test_group_selection_type_validated(self, db_session):
        with pytest.raises(CatalogError):
            catalog_service.create_addon_group(name="Sizes", selection_type="some", addon_ids=[])

    def test_deleting_group_detaches_products(self, make_product):
        addon = catalog_service.create_addon(name="Ice", price=0.0)
        group = catalog_service.create_addon_group(name="Extras", selection_type="multiple", addon_ids=[addon.id])
        soda = make_product("Soda", addon_group_ids=[group.id])

        catalog_service.delete_addon_group(group.id)
        db.session.expire_all()

        assert db.session.get(Product, soda.id).addon_groups == []
        assert catalog_service.get_addon(addon.id) is not None


def test_delete_category_uncategorises_items(make_product):
    drinks = catalog_service.create_category("Drinks")
    soda = make_product("Soda", category_id=drinks.id)
    catalog_service.delete_category(drinks.id)
    assert db.session.get(Product, soda.id).category_id is None
