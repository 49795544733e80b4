"""
Integration tests for the sales HTTP API, metrics endpoint and CLI.
"""

from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError

from pharmapos.models import AppUser, CashRegisterSession, Sale, UserRole
from pharmapos.services import loyalty_service
from pharmapos.services.sales_service import build_cart, process_sale


def _checkout(client, products, **extra):
    paracetamol, ibuprofeno = products
    body = {
        'items': [
            {'product_id': paracetamol.id, 'quantity': 2},
            {'product_id': ibuprofeno.id, 'quantity': 1},
        ],
        'payment_method': 'cash',
        'amount_received': '60.00',
    }
    body.update(extra)
    return client.post('/sales/checkout', json=body)


class TestCheckoutEndpoint:

    def test_requires_login(self, client, stocked):
        response = _checkout(client, stocked)
        assert response.status_code == 401
        assert response.get_json()['status'] == 'error'

    def test_viewer_forbidden(self, client, login, session, stocked):
        viewer = AppUser(email='auditor@farmacia.test', full_name='Auditor', role=UserRole.VIEWER.value)
        session.add(viewer)
        session.commit()
        login(viewer)
        assert _checkout(client, stocked).status_code == 403

    def test_checkout_returns_sale_and_receipt(self, client, login, session, stocked, cashier):
        login(cashier)

        response = _checkout(client, stocked)

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'success'
        assert data['sale']['total_amount'] == '52.78'
        assert data['change_amount'] == '7.22'
        assert data['issues'] == []
        assert len(data['items']) == 2
        assert 'CAJERO: Ana Cajera' in data['receipt']
        assert 'CAMBIO:' in data['receipt']

        sale = session.get(Sale, data['sale']['id'])
        assert sale.cashier_id == cashier.id

    def test_open_register_gets_the_sale(self, client, login, session, stocked, cashier):
        login(cashier)
        register_id = client.post('/cash/open', json={'opening_amount': '20'}).get_json()['register']['id']

        assert _checkout(client, stocked).status_code == 201

        register = session.get(CashRegisterSession, register_id)
        session.refresh(register)
        assert register.total_cash == Decimal('52.78')
        assert register.total_transactions == 1

    def test_partial_checkout_is_still_created(self, client, login, customer, stocked, cashier, monkeypatch):
        def broken(*args, **kwargs):
            raise SQLAlchemyError('ledger offline')

        monkeypatch.setattr(loyalty_service, 'apply_sale_loyalty', broken)
        login(cashier)

        response = _checkout(client, stocked, client_id=customer.id)

        assert response.status_code == 201
        data = response.get_json()
        assert data['status'] == 'partial'
        assert data['issues'][0]['step'] == 'loyalty'

    def test_validation_error_is_json(self, client, login, stocked, cashier):
        login(cashier)
        response = _checkout(client, stocked, payment_method='')
        assert response.status_code == 400
        assert 'método de pago' in response.get_json()['message']

    def test_unknown_product_is_404(self, client, login, stocked, cashier):
        login(cashier)
        response = client.post('/sales/checkout', json={'items': [{'product_id': 9999}], 'payment_method': 'cash'})
        assert response.status_code == 404


class TestSaleQueries:

    def test_list_detail_and_receipt(self, client, login, session, stocked, cashier):
        paracetamol, _ = stocked
        sale = process_sale(session, build_cart(session, [{'product_id': paracetamol.id, 'quantity': 1}]),
                            'card', cashier_id=cashier.id).sale
        login(cashier)

        sales = client.get('/sales/').get_json()['sales']
        assert [s['sale_number'] for s in sales] == [sale.sale_number]

        detail = client.get(f'/sales/{sale.id}').get_json()['sale']
        assert detail['items'][0]['product_name'] == 'Paracetamol 500mg'
        assert detail['payment_method'] == 'card'

        response = client.get(f'/sales/{sale.id}/receipt')
        assert response.status_code == 200
        assert response.mimetype == 'text/plain'
        assert f'FACTURA: {sale.sale_number}' in response.get_data(as_text=True)

    def test_missing_sale(self, client, login, cashier):
        login(cashier)
        assert client.get('/sales/31337').status_code == 404

    def test_bad_date_filter(self, client, login, cashier):
        login(cashier)
        assert client.get('/sales/?start=ayer').status_code == 400


class TestMetrics:

    def test_checkout_counters_exposed(self, client, login, stocked, cashier):
        login(cashier)
        _checkout(client, stocked)

        response = client.get('/metrics')
        assert response.status_code == 200
        body = response.get_data(as_text=True)
        assert 'pos_checkouts_total{status="success"}' in body
        assert 'http_requests_total' in body


class TestPrintReceiptCommand:

    def test_prints_ticket(self, app, session, stocked):
        paracetamol, _ = stocked
        sale = process_sale(session, build_cart(session, [{'product_id': paracetamol.id, 'quantity': 2}]),
                            'cash', amount_received='30').sale

        result = app.test_cli_runner().invoke(args=['print-receipt', sale.sale_number])

        assert result.exit_code == 0
        assert f'FACTURA: {sale.sale_number}' in result.output
        assert 'RECIBIDO:' in result.output

    def test_unknown_sale_number(self, app):
        result = app.test_cli_runner().invoke(args=['print-receipt', 'VTA-00000000'])
        assert result.exit_code != 0
        assert 'no encontrada' in result.output
