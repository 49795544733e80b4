"""
Integration tests for cash register sessions.
"""

import pytest
from decimal import Decimal

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.services import cash_register_service


class TestRegisterService:

    def test_open_and_current(self, session, cashier):
        register = cash_register_service.open_register(session, cashier.id, '150.00', 'Caja 1')

        assert register.status == 'open'
        assert register.opening_amount == Decimal('150.00')
        assert cash_register_service.current_session(session, cashier.id).id == register.id

    def test_only_one_open_register_per_user(self, session, cashier):
        cash_register_service.open_register(session, cashier.id, '100')
        with pytest.raises(BusinessLogicError):
            cash_register_service.open_register(session, cashier.id, '100')

    def test_negative_opening_rejected(self, session, cashier):
        with pytest.raises(BusinessLogicError):
            cash_register_service.open_register(session, cashier.id, '-1')

    def test_close_reports_shortfall(self, session, cashier):
        register = cash_register_service.open_register(session, cashier.id, '100')
        cash_register_service.record_sale(register, Decimal('40.00'), 'cash')
        cash_register_service.record_sale(register, Decimal('25.00'), 'transfer')
        session.commit()

        register = cash_register_service.close_register(session, register.id, '130.00', 'Faltante')

        assert register.status == 'closed'
        assert register.expected_cash == Decimal('140.00')
        assert register.total_other == Decimal('25.00')
        assert register.difference == Decimal('-10.00')
        assert cash_register_service.current_session(session, cashier.id) is None

    def test_close_twice(self, session, cashier):
        register = cash_register_service.open_register(session, cashier.id, '0')
        cash_register_service.close_register(session, register.id, '0')
        with pytest.raises(BusinessLogicError):
            cash_register_service.close_register(session, register.id, '0')

    def test_close_unknown(self, session):
        with pytest.raises(NotFoundError):
            cash_register_service.close_register(session, 999, '0')


class TestRegisterApi:

    def test_open_requires_login(self, client):
        response = client.post('/cash/open', json={'opening_amount': '100'})
        assert response.status_code == 401

    def test_open_close_flow(self, client, login, cashier):
        login(cashier)

        response = client.post('/cash/open', json={'opening_amount': '100.00', 'register_name': 'Caja 2'})
        assert response.status_code == 201
        register_id = response.get_json()['register']['id']

        current = client.get('/cash/current').get_json()['register']
        assert current['id'] == register_id
        assert current['register_name'] == 'Caja 2'

        response = client.post(f'/cash/{register_id}/close', json={'closing_amount': '100.00'})
        assert response.status_code == 200
        data = response.get_json()
        assert data['register']['status'] == 'closed'
        assert data['register']['difference'] == '0.00'
        assert 'CIERRE DE CAJA' in data['ticket']
        assert 'SIN DIFERENCIAS' in data['ticket']

    def test_second_open_is_bad_request(self, client, login, cashier):
        login(cashier)
        client.post('/cash/open', json={'opening_amount': '10'})

        response = client.post('/cash/open', json={'opening_amount': '10'})
        assert response.status_code == 400
        assert response.get_json()['status'] == 'error'
