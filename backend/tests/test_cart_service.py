import pytest

from counterpos.services import catalog_service
from counterpos.services.cart_service import Cart, CartError, build_cart
from counterpos.services.stock_service import ITEM_PRODUCT, ITEM_RECIPE


@pytest.fixture
def milk_options(db_session):
    """Single-choice milk group and a multiple-choice extras group."""
    oat = catalog_service.create_addon(name="Oat", price=0.5)
    soy = catalog_service.create_addon(name="Soy", price=0.4)
    shot = catalog_service.create_addon(name="Shot", price=0.8)
    syrup = catalog_service.create_addon(name="Syrup", price=0.3)
    milks = catalog_service.create_addon_group(name="Milk", selection_type="single", addon_ids=[oat.id, soy.id])
    extras = catalog_service.create_addon_group(name="Extras", selection_type="multiple", addon_ids=[shot.id, syrup.id])
    return {"oat": oat, "soy": soy, "shot": shot, "syrup": syrup, "milks": milks, "extras": extras}


class TestAddItems:
    def test_product_price_and_cost_frozen(self, make_product):
        soda = make_product("Soda", price=2.0, cost=0.7)
        cart = Cart()
        line = cart.add(soda, ITEM_PRODUCT)

        catalog_service.update_product(soda.id, patch={"price": 9.0})

        assert line.unit_price == 2.0
        assert line.unit_cost == 0.7
        assert line.quantity == 1

    def test_wholesale_price(self, make_product):
        soda = make_product("Soda", price=2.0, wholesale_price=1.5)
        line = Cart(is_wholesale=True).add(soda, ITEM_PRODUCT)
        assert line.unit_price == 1.5

    def test_wholesale_falls_back_to_retail(self, make_product):
        soda = make_product("Soda", price=2.0)
        line = Cart(is_wholesale=True).add(soda, ITEM_PRODUCT)
        assert line.unit_price == 2.0

    def test_recipe_cost_from_ingredients(self, bread):
        line = Cart().add(bread, ITEM_RECIPE)
        assert line.unit_price == 5.0
        assert line.unit_cost == pytest.approx(0.6)

    def test_raw_material_rejected(self, flour):
        with pytest.raises(CartError, match="raw material"):
            Cart().add(flour, ITEM_PRODUCT)

    def test_same_item_twice_gives_two_lines(self, make_product):
        soda = make_product("Soda")
        cart = Cart()
        first = cart.add(soda, ITEM_PRODUCT)
        second = cart.add(soda, ITEM_PRODUCT)
        assert first.cart_item_id != second.cart_item_id
        assert len(cart) == 2


class TestUpdate:
    def test_quantity_below_one_removes_line(self, make_product):
        soda = make_product("Soda")
        cart = Cart()
        line = cart.add(soda, ITEM_PRODUCT)
        assert cart.update(line.cart_item_id, quantity=0) is None
        assert cart.is_empty

    def test_unknown_line(self):
        with pytest.raises(CartError):
            Cart().update("nope", quantity=2)

    def test_single_group_allows_one_addon(self, make_product, milk_options):
        latte = make_product("Latte", addon_group_ids=[milk_options["milks"].id])
        cart = Cart()
        line = cart.add(latte, ITEM_PRODUCT)
        with pytest.raises(CartError, match="Only one"):
            cart.update(line.cart_item_id, selected_addon_ids=[milk_options["oat"].id, milk_options["soy"].id])

    def test_multiple_group_allows_several(self, make_product, milk_options):
        latte = make_product(
            "Latte",
            addon_group_ids=[milk_options["milks"].id, milk_options["extras"].id],
        )
        cart = Cart()
        line = cart.add(latte, ITEM_PRODUCT)
        cart.update(
            line.cart_item_id,
            selected_addon_ids=[milk_options["oat"].id, milk_options["shot"].id, milk_options["syrup"].id],
        )
        assert [a.name for a in line.selected_addons] == ["Oat", "Shot", "Syrup"]

    def test_addon_outside_eligible_groups_rejected(self, make_product, milk_options):
        soda = make_product("Soda", addon_group_ids=[milk_options["extras"].id])
        cart = Cart()
        line = cart.add(soda, ITEM_PRODUCT)
        with pytest.raises(CartError, match="not available"):
            cart.update(line.cart_item_id, selected_addon_ids=[milk_options["oat"].id])


class TestClear:
    def test_clear_resets_transient_state(self, make_product):
        cart = Cart(is_wholesale=True)
        cart.add(make_product("Soda"), ITEM_PRODUCT)
        cart.delivery_fee = 5.0
        cart.redeemed_points = 10
        cart.clear()
        assert cart.is_empty
        assert cart.delivery_fee == 0.0
        assert cart.redeemed_points == 0
        assert cart.is_wholesale is False

    def test_snapshot_is_detached(self, make_product):
        cart = Cart()
        cart.add(make_product("Soda"), ITEM_PRODUCT)
        snapshot = cart.snapshot()
        cart.items[0].quantity = 4
        assert snapshot[0].quantity == 1


def test_build_cart_from_request_lines(make_product, bread):
    soda = make_product("Soda", price=2.0)
    cart = build_cart([
        {"item_type": ITEM_PRODUCT, "item_id": soda.id, "quantity": 3},
        {"item_type": ITEM_RECIPE, "item_id": bread.id, "quantity": 1, "notes": "sliced"},
    ])
    assert [(i.name, i.quantity) for i in cart] == [("Soda", 3), ("Bread", 1)]
    assert cart.items[1].notes == "sliced"


def test_build_cart_unknown_item(db_session):
    with pytest.raises(CartError, match="not found"):
        build_cart([{"item_type": ITEM_PRODUCT, "item_id": 777, "quantity": 1}])
