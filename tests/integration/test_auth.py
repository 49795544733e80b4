"""
Integration tests for login and logout on the JSON API.
"""

from pharmapos.models import Sale


class TestLogin:
    """Session login and logout through the JSON endpoints."""

    def test_login_then_checkout(self, client, session, stocked, cashier):
        """A cashier who logs in through the API can check out."""
        paracetamol, _ = stocked
        response = client.post('/auth/login', json={'email': 'cajero@farmacia.test', 'password': 'password123'})

        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'cashier'

        response = client.post('/sales/checkout', json={
            'items': [{'product_id': paracetamol.id, 'quantity': 1}],
            'payment_method': 'card',
        })
        assert response.status_code == 201
        assert session.query(Sale).filter_by(cashier_id=cashier.id).count() == 1

    def test_wrong_password(self, client, cashier):
        response = client.post('/auth/login', json={'email': cashier.email, 'password': 'otra-clave'})

        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'
        assert client.get('/auth/me').status_code == 401

    def test_inactive_user_rejected(self, client, session, cashier):
        cashier.active = False
        session.commit()

        response = client.post('/auth/login', json={'email': 'cajero@farmacia.test', 'password': 'password123'})
        assert response.status_code == 401

    def test_missing_fields(self, client):
        response = client.post('/auth/login', json={'email': ''})
        assert response.status_code == 400

    def test_logout_ends_session(self, client, cashier):
        client.post('/auth/login', json={'email': cashier.email, 'password': 'password123'})
        assert client.get('/auth/me').get_json()['user']['email'] == 'cajero@farmacia.test'

        assert client.post('/auth/logout').status_code == 200
        assert client.get('/auth/me').status_code == 401
