"""
Integration tests for the checkout orchestration (sales_service.process_sale).
"""

import pytest
from decimal import Decimal
from sqlalchemy.exc import SQLAlchemyError

from pharmapos.exceptions import BusinessLogicError, CheckoutError, InsufficientStockError, NotFoundError
from pharmapos.models import (
    CashRegisterSession, InventoryMovement, LoyaltyTransaction, MovementType, Payment, Product, Sale, SaleItem,
)
from pharmapos.services import cash_register_service, loyalty_service, sales_service
from pharmapos.services.cart import CartLine
from pharmapos.services.sales_service import build_cart, generate_sale_number, process_sale


def _cart(session, *items):
    return build_cart(session, [{'product_id': product.id, 'quantity': quantity} for product, quantity in items])


class TestBuildCart:

    def test_duplicate_products_merge(self, session, stocked):
        paracetamol, _ = stocked
        cart = build_cart(session, [
            {'product_id': paracetamol.id, 'quantity': 2},
            {'product_id': str(paracetamol.id), 'quantity': '3'},
        ])
        assert len(cart) == 1
        assert cart.lines[0].quantity == 5
        assert cart.lines[0].unit_price == Decimal('10.00')

    def test_unknown_product(self, session, stocked):
        with pytest.raises(NotFoundError):
            build_cart(session, [{'product_id': 9999, 'quantity': 1}])

    def test_inactive_product(self, session, stocked):
        paracetamol, _ = stocked
        paracetamol.active = False
        session.commit()
        with pytest.raises(BusinessLogicError):
            build_cart(session, [{'product_id': paracetamol.id}])


class TestCheckoutHappyPath:
    """A complete checkout writes every record in one go."""

    def test_sale_items_payment_and_stock(self, session, stocked, locations, stock_of):
        paracetamol, ibuprofeno = stocked
        counter, _ = locations

        result = process_sale(session, _cart(session, (paracetamol, 2), (ibuprofeno, 1)), 'card')

        assert result.status == 'success'
        assert result.issues == []
        sale = session.get(Sale, result.sale.id)
        assert sale.sale_number.startswith('VTA-')
        assert sale.subtotal_amount == Decimal('45.50')
        assert sale.tax_amount == Decimal('7.28')
        assert sale.total_amount == Decimal('52.78')
        assert session.query(SaleItem).filter_by(sale_id=sale.id).count() == 2
        payment = session.query(Payment).filter_by(sale_id=sale.id).one()
        assert payment.amount == Decimal('52.78')
        assert payment.change_amount is None

        assert stock_of(paracetamol.id, counter.id) == 98
        assert stock_of(ibuprofeno.id, counter.id) == 49

    def test_movements_match_written_stock(self, session, stocked, locations):
        paracetamol, _ = stocked
        result = process_sale(session, _cart(session, (paracetamol, 3)), 'cash')

        movement = session.query(InventoryMovement).filter_by(reference_id=result.sale.id).one()
        assert movement.movement_type == MovementType.SALE
        assert movement.quantity == -3
        assert (movement.stock_before, movement.stock_after) == (100, 97)

    def test_cash_change(self, session, stocked):
        paracetamol, _ = stocked
        result = process_sale(session, _cart(session, (paracetamol, 3)), 'cash', amount_received='50')

        assert result.sale.total_amount == Decimal('34.80')
        assert result.change_amount == Decimal('15.20')
        payment = session.query(Payment).filter_by(sale_id=result.sale.id).one()
        assert payment.amount_received == Decimal('50.00')
        assert payment.change_amount == Decimal('15.20')

    def test_card_ignores_amount_received(self, session, stocked):
        """Only cash records a tendered amount and change."""
        paracetamol, _ = stocked
        result = process_sale(session, _cart(session, (paracetamol, 1)), 'card', amount_received='50')

        assert result.amount_received is None
        assert result.change_amount is None
        payment = session.query(Payment).filter_by(sale_id=result.sale.id).one()
        assert payment.amount_received is None

    def test_explicit_tax_rate(self, session, stocked):
        paracetamol, _ = stocked
        result = process_sale(session, _cart(session, (paracetamol, 1)), 'card', tax_rate=0)
        assert result.sale.total_amount == Decimal('10.00')

    def test_sale_numbers_unique_within_same_millisecond(self, session, stocked):
        paracetamol, _ = stocked
        first = process_sale(session, _cart(session, (paracetamol, 1)), 'card')
        number = int(first.sale.sale_number[len('VTA-'):])

        assert generate_sale_number(session, now_ms=number) == f'VTA-{number + 1:08d}'


class TestLocationSelection:

    def test_highest_stock_row_by_default(self, session, stocked, locations, stock_of):
        _, ibuprofeno = stocked
        counter, back = locations

        process_sale(session, _cart(session, (ibuprofeno, 1)), 'card')

        assert stock_of(ibuprofeno.id, counter.id) == 49
        assert stock_of(ibuprofeno.id, back.id) == 20

    def test_explicit_location(self, session, stocked, locations, stock_of):
        _, ibuprofeno = stocked
        counter, back = locations

        process_sale(session, _cart(session, (ibuprofeno, 1)), 'card', location_id=back.id)

        assert stock_of(ibuprofeno.id, counter.id) == 50
        assert stock_of(ibuprofeno.id, back.id) == 19


class TestLoyaltyAtCheckout:

    def test_redeem_then_earn(self, session, stocked, customer, loyalty_plan):
        """100 points, redeem 50 on a 30.00 purchase: balance 80."""
        paracetamol, _ = stocked
        loyalty_service.add_points(session, customer.id, 100, 'Saldo inicial')
        session.commit()

        result = process_sale(session, _cart(session, (paracetamol, 3)), 'card',
                              client_id=customer.id, points_redeemed=50, tax_rate=0)

        assert result.status == 'success'
        assert result.loyalty == {'redeemed': 50, 'earned': 30, 'balance': 80}
        session.refresh(customer)
        assert customer.loyalty_points == 80
        assert customer.total_purchases == Decimal('30.00')

        points = [entry.points for entry in session.query(LoyaltyTransaction)
                  .filter_by(client_id=customer.id, reference_id=result.sale.id)
                  .order_by(LoyaltyTransaction.id)]
        assert points == [-50, 30]
        assert loyalty_service.ledger_balance(session, customer.id) == customer.loyalty_points

    def test_manual_adjustments_keep_ledger_in_step(self, session, customer):
        loyalty_service.add_points(session, customer.id, 25, 'Bono de bienvenida')
        loyalty_service.redeem_points(session, customer.id, 10, 'Canje en mostrador')
        session.commit()

        with pytest.raises(BusinessLogicError):
            loyalty_service.redeem_points(session, customer.id, 16)

        session.refresh(customer)
        assert customer.loyalty_points == 15
        assert loyalty_service.ledger_balance(session, customer.id) == 15

    def test_walk_in_sale_touches_no_points(self, session, stocked, loyalty_plan):
        paracetamol, _ = stocked
        result = process_sale(session, _cart(session, (paracetamol, 1)), 'card')
        assert result.loyalty is None
        assert session.query(LoyaltyTransaction).count() == 0


class TestValidationBeforeWrites:
    """Rejected checkouts leave no trace."""

    def _assert_nothing_written(self, session, stock_of, paracetamol, counter):
        assert session.query(Sale).count() == 0
        assert session.query(Payment).count() == 0
        assert stock_of(paracetamol.id, counter.id) == 100

    def test_empty_cart(self, session, stocked):
        with pytest.raises(BusinessLogicError):
            process_sale(session, build_cart(session, []), 'cash')

    @pytest.mark.parametrize('method', [None, '', 'bitcoin'])
    def test_payment_method_required(self, session, stocked, locations, stock_of, method):
        paracetamol, _ = stocked
        with pytest.raises(BusinessLogicError):
            process_sale(session, _cart(session, (paracetamol, 1)), method)
        self._assert_nothing_written(session, stock_of, paracetamol, locations[0])

    def test_points_without_client(self, session, stocked, locations, stock_of):
        paracetamol, _ = stocked
        with pytest.raises(BusinessLogicError):
            process_sale(session, _cart(session, (paracetamol, 1)), 'cash', points_redeemed=10)
        self._assert_nothing_written(session, stock_of, paracetamol, locations[0])

    @pytest.mark.parametrize('points', [1.7, '1.5', 'abc', -5])
    def test_points_must_be_whole(self, session, stocked, locations, customer, stock_of, points):
        paracetamol, _ = stocked
        loyalty_service.add_points(session, customer.id, 10)
        session.commit()

        with pytest.raises(BusinessLogicError):
            process_sale(session, _cart(session, (paracetamol, 1)), 'cash',
                         client_id=customer.id, points_redeemed=points)
        self._assert_nothing_written(session, stock_of, paracetamol, locations[0])
        session.refresh(customer)
        assert customer.loyalty_points == 10

    def test_points_over_balance(self, session, stocked, locations, customer, stock_of):
        paracetamol, _ = stocked
        with pytest.raises(BusinessLogicError):
            process_sale(session, _cart(session, (paracetamol, 1)), 'cash',
                         client_id=customer.id, points_redeemed=1)
        self._assert_nothing_written(session, stock_of, paracetamol, locations[0])

    def test_unknown_client(self, session, stocked):
        paracetamol, _ = stocked
        with pytest.raises(NotFoundError):
            process_sale(session, _cart(session, (paracetamol, 1)), 'cash', client_id=424242)

    def test_cash_received_below_total(self, session, stocked, locations, stock_of):
        paracetamol, _ = stocked
        with pytest.raises(BusinessLogicError):
            process_sale(session, _cart(session, (paracetamol, 3)), 'cash', amount_received='30.00')
        self._assert_nothing_written(session, stock_of, paracetamol, locations[0])

    def test_closed_register(self, session, stocked, cashier):
        paracetamol, _ = stocked
        register = cash_register_service.open_register(session, cashier.id, '50')
        cash_register_service.close_register(session, register.id, '50')

        with pytest.raises(BusinessLogicError):
            process_sale(session, _cart(session, (paracetamol, 1)), 'cash', register_session_id=register.id)


class TestNegativeStock:

    def test_allowed_by_default(self, session, stocked, locations, stock_of):
        paracetamol, _ = stocked
        result = process_sale(session, _cart(session, (paracetamol, 120)), 'card')

        assert result.status == 'success'
        assert stock_of(paracetamol.id, locations[0].id) == -20

    def test_rejected_when_disabled(self, app, session, stocked, locations, stock_of):
        paracetamol, _ = stocked
        app.config['ALLOW_NEGATIVE_STOCK'] = False
        try:
            with pytest.raises(InsufficientStockError):
                process_sale(session, _cart(session, (paracetamol, 120)), 'card')
        finally:
            app.config['ALLOW_NEGATIVE_STOCK'] = True

        assert session.query(Sale).count() == 0
        assert stock_of(paracetamol.id, locations[0].id) == 100


class TestPartialCheckout:
    """Best-effort steps fail alone; the sale stands."""

    def test_loyalty_failure_reported(self, session, stocked, locations, customer, loyalty_plan, stock_of,
                                      monkeypatch):
        paracetamol, _ = stocked

        def broken(*args, **kwargs):
            raise SQLAlchemyError('loyalty ledger unavailable')

        monkeypatch.setattr(loyalty_service, 'apply_sale_loyalty', broken)

        result = process_sale(session, _cart(session, (paracetamol, 2)), 'card', client_id=customer.id)

        assert result.status == 'partial'
        assert [issue.step for issue in result.issues] == ['loyalty']
        assert session.query(Sale).count() == 1
        assert stock_of(paracetamol.id, locations[0].id) == 98
        session.refresh(customer)
        assert customer.loyalty_points == 0

    def test_line_without_inventory_row(self, session, stocked, locations, stock_of):
        """One line failing keeps the others' decrements."""
        paracetamol, _ = stocked
        gauze = Product(sku='GASA-10', name='Gasas estériles', sale_price=Decimal('1.50'))
        session.add(gauze)
        session.commit()

        result = process_sale(session, _cart(session, (paracetamol, 1), (gauze, 2)), 'card')

        assert result.status == 'partial'
        assert len(result.issues) == 1
        issue = result.issues[0]
        assert issue.step == 'inventory'
        assert issue.product_id == gauze.id
        assert stock_of(paracetamol.id, locations[0].id) == 99
        assert session.query(SaleItem).filter_by(sale_id=result.sale.id).count() == 2
        assert result.to_dict()['issues'][0]['product_id'] == gauze.id


class TestFatalCheckout:

    def test_payment_failure_rolls_back_everything(self, session, stocked, locations, customer, loyalty_plan,
                                                   stock_of, monkeypatch):
        paracetamol, _ = stocked
        loyalty_service.add_points(session, customer.id, 40)
        session.commit()

        def broken(*args, **kwargs):
            raise SQLAlchemyError('payment table locked')

        monkeypatch.setattr(sales_service, '_insert_payment', broken)

        with pytest.raises(CheckoutError) as excinfo:
            process_sale(session, _cart(session, (paracetamol, 2)), 'card',
                         client_id=customer.id, points_redeemed=20)

        assert excinfo.value.step == 'payment'
        assert session.query(Sale).count() == 0
        assert session.query(SaleItem).count() == 0
        assert session.query(InventoryMovement).count() == 0
        assert stock_of(paracetamol.id, locations[0].id) == 100
        session.refresh(customer)
        assert customer.loyalty_points == 40
        assert loyalty_service.ledger_balance(session, customer.id) == 40

    def test_item_failure_rolls_back_sale_and_loyalty(self, session, stocked, locations, customer, loyalty_plan,
                                                      stock_of):
        """A product deleted after the cart was built breaks the item insert."""
        paracetamol, _ = stocked
        loyalty_service.add_points(session, customer.id, 40)
        session.commit()

        cart = _cart(session, (paracetamol, 2))
        cart.lines.append(CartLine(product_id=987654, product_name='Producto retirado',
                                   unit_price=Decimal('3.00'), quantity=1))

        with pytest.raises(CheckoutError) as excinfo:
            process_sale(session, cart, 'cash', client_id=customer.id, points_redeemed=20)

        assert excinfo.value.step == 'items'
        assert session.query(Sale).count() == 0
        assert session.query(SaleItem).count() == 0
        assert session.query(Payment).count() == 0
        assert session.query(LoyaltyTransaction).filter(LoyaltyTransaction.reference_id.isnot(None)).count() == 0
        assert session.query(InventoryMovement).count() == 0
        assert stock_of(paracetamol.id, locations[0].id) == 100
        session.refresh(customer)
        assert customer.loyalty_points == 40
        assert loyalty_service.ledger_balance(session, customer.id) == 40


class TestRegisterTotals:

    def test_sales_accumulate_by_method(self, session, stocked, cashier):
        paracetamol, ibuprofeno = stocked
        register = cash_register_service.open_register(session, cashier.id, '100.00')

        process_sale(session, _cart(session, (paracetamol, 1)), 'cash',
                     register_session_id=register.id, cashier_id=cashier.id, tax_rate=0)
        process_sale(session, _cart(session, (ibuprofeno, 1)), 'card',
                     register_session_id=register.id, cashier_id=cashier.id, tax_rate=0)

        register = session.get(CashRegisterSession, register.id)
        assert register.total_sales == Decimal('35.50')
        assert register.total_cash == Decimal('10.00')
        assert register.total_card == Decimal('25.50')
        assert register.total_transactions == 2
        assert register.expected_cash == Decimal('110.00')
