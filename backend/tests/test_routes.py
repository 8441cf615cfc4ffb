"""
HTTP-level tests: authentication, permission enforcement and the
checkout flow end to end.
"""

import logging

import pytest

from counterpos.extensions import db
from counterpos.models import Product
from counterpos.services import shift_service

from conftest import get_auth_token, auth_headers


# =============================================================================
# UNAUTHENTICATED ACCESS — 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/sales/quote"),
            ("POST", "/api/sales/checkout"),
            ("GET", "/api/sales/"),
            ("POST", "/api/sales/1/cancel"),
            ("GET", "/api/catalog/products"),
            ("POST", "/api/catalog/recipes"),
            ("GET", "/api/customers"),
            ("POST", "/api/payments"),
            ("POST", "/api/purchases/"),
            ("POST", "/api/shifts/start"),
            ("GET", "/api/settings"),
            ("GET", "/api/system/backup"),
            ("GET", "/api/auth/users"),
        ],
    )
    def test_requires_token(self, client, db_session, method, path):
        response = client.open(path, method=method, json={})
        assert response.status_code == 401


class TestAuthentication:
    def test_login_returns_token(self, client, cashier_with_pin):
        response = client.post('/api/auth/login', json={'name': 'till', 'pin': '5678'})
        assert response.status_code == 200
        assert len(response.json['token']) == 64
        assert response.json['user']['role'] == 'cashier'

    def test_login_wrong_pin(self, client, cashier_with_pin):
        response = client.post('/api/auth/login', json={'name': 'till', 'pin': '0000'})
        assert response.status_code == 401

    def test_login_missing_fields(self, client, db_session):
        response = client.post('/api/auth/login', json={'name': 'till'})
        assert response.status_code == 400

    def test_no_token(self, client, db_session):
        response = client.get('/api/auth/me')
        assert response.status_code == 401

    def test_bad_token(self, client, db_session):
        response = client.get('/api/auth/me', headers=auth_headers('nope'))
        assert response.status_code == 401

    def test_logout_revokes_token(self, client, cashier_headers):
        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 200
        assert client.post('/api/auth/logout', headers=cashier_headers).status_code == 200
        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 401


class TestPermissions:
    def test_cashier_cannot_cancel_sales(self, client, cashier_headers):
        response = client.post('/api/sales/1/cancel', headers=cashier_headers)
        assert response.status_code == 403
        assert response.json['required_permission'] == 'CANCEL_SALES'

    def test_cashier_cannot_manage_menu(self, client, cashier_headers):
        response = client.post('/api/catalog/products', json={'name': 'Soda'}, headers=cashier_headers)
        assert response.status_code == 403

    def test_cashier_cannot_manage_users(self, client, cashier_headers):
        response = client.get('/api/auth/users', headers=cashier_headers)
        assert response.status_code == 403

    def test_cashier_cannot_export_backup(self, client, cashier_headers):
        assert client.get('/api/system/backup', headers=cashier_headers).status_code == 403

    def test_admin_creates_user_who_can_log_in(self, client, admin_headers):
        response = client.post('/api/auth/users', json={
            'name': 'sara', 'pin': '2468', 'role': 'manager',
        }, headers=admin_headers)
        assert response.status_code == 201
        assert get_auth_token(client, 'sara', '2468') is not None

    def test_deactivated_user_loses_session(self, client, admin_headers, cashier_with_pin, cashier_headers):
        response = client.put(
            f'/api/auth/users/{cashier_with_pin.id}',
            json={'is_active': False},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert client.get('/api/auth/me', headers=cashier_headers).status_code == 401


class TestCheckoutFlow:
    @pytest.fixture
    def till_open(self, client, cashier_headers):
        response = client.post('/api/shifts/start', json={'starting_cash': 50}, headers=cashier_headers)
        assert response.status_code == 201
        return response.json['shift']

    def test_checkout_without_shift(self, client, cashier_headers, bread):
        response = client.post('/api/sales/checkout', json={
            'items': [{'item_type': 'recipe', 'item_id': bread.id, 'quantity': 1}],
            'payment': {'cash': 5},
        }, headers=cashier_headers)
        assert response.status_code == 400
        assert 'shift' in response.json['error']

    def test_quote_then_checkout(self, client, cashier_headers, till_open, bread, flour):
        payload = {'items': [{'item_type': 'recipe', 'item_id': bread.id, 'quantity': 2}]}

        quote = client.post('/api/sales/quote', json=payload, headers=cashier_headers)
        assert quote.status_code == 200
        assert quote.json['quote']['total_amount'] == pytest.approx(10)

        response = client.post(
            '/api/sales/checkout',
            json=dict(payload, payment={'cash': 20}),
            headers=cashier_headers,
        )
        assert response.status_code == 201
        assert response.json['change_due'] == pytest.approx(10)
        assert response.json['sale']['shift_id'] == till_open['id']
        assert response.json['sale']['payment_details']['cash'] == pytest.approx(10)
        assert db.session.get(Product, flour.id).stock == pytest.approx(9.4)

    def test_discount_needs_permission(self, client, cashier_headers, till_open, bread):
        response = client.post('/api/sales/checkout', json={
            'items': [{'item_type': 'recipe', 'item_id': bread.id, 'quantity': 1}],
            'discount': {'type': 'fixed', 'value': 1},
            'payment': {'cash': 5},
        }, headers=cashier_headers)
        assert response.status_code == 403
        assert response.json['required_permission'] == 'GIVE_DISCOUNT'

    def test_invalid_quantity(self, client, cashier_headers, till_open, bread):
        response = client.post('/api/sales/checkout', json={
            'items': [{'item_type': 'recipe', 'item_id': bread.id, 'quantity': 1.5}],
            'payment': {'cash': 5},
        }, headers=cashier_headers)
        assert response.status_code == 400

    def test_admin_cancels_then_closed_shift_blocks(self, client, cashier_headers, admin_headers, till_open, bread, flour):
        def sell():
            response = client.post('/api/sales/checkout', json={
                'items': [{'item_type': 'recipe', 'item_id': bread.id, 'quantity': 1}],
                'payment': {'cash': 5},
            }, headers=cashier_headers)
            assert response.status_code == 201
            return response.json['sale']['id']

        first = sell()
        response = client.post(f'/api/sales/{first}/cancel', headers=admin_headers)
        assert response.status_code == 200
        assert response.json['sale']['status'] == 'canceled'

        second = sell()
        response = client.post('/api/shifts/end', json={'counted_cash': 55}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json['shift']['expected_cash'] == pytest.approx(55)

        response = client.post(f'/api/sales/{second}/cancel', headers=admin_headers)
        assert response.status_code == 409
        assert db.session.get(Product, flour.id).stock == pytest.approx(9.7)

    def test_cancel_unknown_sale(self, client, admin_headers):
        assert client.post('/api/sales/999/cancel', headers=admin_headers).status_code == 404


def test_health_reports_configuration(client, db_session):
    response = client.get('/health')
    assert response.status_code == 200
    assert response.json['configured'] is False


def test_settings_update_requires_manage_settings(client, cashier_headers, admin_headers):
    body = {'tax_enabled': True, 'tax_rate': 5}
    assert client.put('/api/settings', json=body, headers=cashier_headers).status_code == 403

    response = client.put('/api/settings', json=body, headers=admin_headers)
    assert response.status_code == 200
    assert response.json['settings']['tax_rate'] == 5


def test_expense_persistence_failure_is_logged(client, cashier_headers, monkeypatch, caplog):
    def broken(*args, **kwargs):
        raise RuntimeError("disk full")

    monkeypatch.setattr(shift_service, 'add_expense', broken)
    with caplog.at_level(logging.ERROR):
        response = client.post('/api/shifts/expenses', json={
            'description': 'Ice', 'amount': 3,
        }, headers=cashier_headers)

    assert response.status_code == 500
    assert response.json['error'] == 'Internal server error'
    assert 'Failed to record expense' in caplog.text
