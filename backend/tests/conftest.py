"""
Pytest fixtures for counterpos backend tests.

Provides test database setup, catalog/party factories, users with a
shift, and a test client.
"""

import pytest

from counterpos import create_app
from counterpos.extensions import db
from counterpos.models import User, Customer, Supplier, ShopSettings
from counterpos.services import catalog_service, shift_service
from counterpos.services.auth_service import hash_pin
from counterpos.services.cart_service import Cart
from counterpos.services.stock_service import ITEM_PRODUCT, ITEM_RECIPE


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def shop_settings(db_session):
    """Settings row with tax and loyalty off."""
    settings = ShopSettings(id=1, name="Test Shop")
    db_session.add(settings)
    db_session.commit()
    return settings


@pytest.fixture(scope='function')
def cashier(db_session):
    """Cashier with a placeholder PIN hash (service tests never log in)."""
    user = User(name="cashier", role="cashier", pin_hash="x", permissions=[])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def manager(db_session):
    user = User(name="manager", role="manager", pin_hash="x", permissions=[])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def active_shift(cashier, shop_settings):
    """Cashier's shift opened with 100.00 in the drawer."""
    return shift_service.start_shift(cashier, 100.0)


@pytest.fixture(scope='function')
def make_product(db_session):
    """Factory: make_product(name, price=..., stock=..., **fields)."""
    def _make(name="Widget", *, stock=0.0, addon_group_ids=None, **fields):
        patch = {"name": name, "price": 10.0, "cost": 4.0}
        patch.update(fields)
        return catalog_service.create_product(patch=patch, stock=stock, addon_group_ids=addon_group_ids)
    return _make


@pytest.fixture(scope='function')
def flour(make_product):
    """Raw material sold by the kilo."""
    return make_product("Flour", price=0.0, cost=2.0, unit="kg", is_raw_material=True, stock=10.0)


@pytest.fixture(scope='function')
def bread(db_session, flour):
    """Recipe consuming 0.3 kg of flour per unit."""
    return catalog_service.create_recipe(
        name="Bread",
        price=5.0,
        ingredients=[{"product_id": flour.id, "quantity": 0.3}],
    )


@pytest.fixture(scope='function')
def customer(db_session):
    customer = Customer(name="Alice", phone="555-0101", balance=0.0, loyalty_points=0)
    db_session.add(customer)
    db_session.commit()
    return customer


@pytest.fixture(scope='function')
def supplier(db_session):
    supplier = Supplier(name="Mill Co", balance=0.0)
    db_session.add(supplier)
    db_session.commit()
    return supplier


@pytest.fixture(scope='function')
def cart_with(db_session):
    """
    Factory: cart_with((item, quantity), ...). Recipes are detected by
    their ingredients attribute.
    """
    def _make(*entries, is_wholesale=False) -> Cart:
        cart = Cart(is_wholesale=is_wholesale)
        for item, quantity in entries:
            item_type = ITEM_RECIPE if hasattr(item, "ingredients") else ITEM_PRODUCT
            line = cart.add(item, item_type)
            cart.update(line.cart_item_id, quantity=quantity)
        return cart
    return _make


@pytest.fixture(scope='function')
def admin_with_pin(db_session, shop_settings):
    """Admin able to log in with PIN 1234."""
    user = User(name="admin", role="admin", pin_hash=hash_pin("1234"), permissions=[])
    db_session.add(user)
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def cashier_with_pin(db_session, shop_settings):
    """Cashier able to log in with PIN 5678."""
    user = User(name="till", role="cashier", pin_hash=hash_pin("5678"), permissions=[])
    db_session.add(user)
    db_session.commit()
    return user


def get_auth_token(client, name: str, pin: str) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'name': name,
        'pin': pin
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_with_pin):
    return auth_headers(get_auth_token(client, "admin", "1234"))


@pytest.fixture(scope='function')
def cashier_headers(client, cashier_with_pin):
    return auth_headers(get_auth_token(client, "till", "5678"))
