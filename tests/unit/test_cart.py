"""
Unit tests for the cart accumulator and price calculations.
"""

import pytest
from decimal import Decimal
from types import SimpleNamespace

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.services.cart import (
    Cart, CartLine, calculate_quote_totals, calculate_totals, extract_embedded_tax, price_without_tax,
)

PARACETAMOL = SimpleNamespace(id=1, name='Paracetamol 500mg', sale_price=Decimal('10.00'))
IBUPROFENO = SimpleNamespace(id=2, name='Ibuprofeno 400mg', sale_price=Decimal('25.50'))


class TestCartLines:
    """Adding, updating and removing lines."""

    def test_add_line_starts_with_one_unit(self):
        cart = Cart()
        line = cart.add_line(PARACETAMOL)

        assert len(cart) == 1
        assert line.quantity == 1
        assert line.unit_price == Decimal('10.00')
        assert line.discount_amount == Decimal('0')
        assert line.total_price == Decimal('10.00')

    def test_adding_same_product_bumps_quantity(self):
        """A product already in the cart gets no second line."""
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.add_line(IBUPROFENO)
        cart.add_line(PARACETAMOL)

        assert len(cart) == 2
        assert cart.lines[0].quantity == 2
        assert cart.lines[0].total_price == Decimal('20.00')

    def test_line_total_follows_quantity_and_discount(self):
        cart = Cart()
        cart.add_line(IBUPROFENO)
        cart.update_quantity(0, 3)
        cart.update_discount(0, '6.50')

        assert cart.lines[0].total_price == Decimal('70.00')

    @pytest.mark.parametrize('quantity', [0, -1, 1.5, '2.5', 'abc', None, True])
    def test_invalid_quantity_rejected(self, quantity):
        cart = Cart()
        cart.add_line(PARACETAMOL)

        with pytest.raises(BusinessLogicError):
            cart.update_quantity(0, quantity)
        assert cart.lines[0].quantity == 1

    def test_integral_string_quantity_accepted(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.update_quantity(0, '4')
        assert cart.lines[0].quantity == 4

    def test_negative_discount_rejected(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        with pytest.raises(BusinessLogicError):
            cart.update_discount(0, '-1')

    def test_discount_cannot_exceed_line_amount(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.update_quantity(0, 2)

        cart.update_discount(0, '20.00')
        assert cart.lines[0].total_price == Decimal('0.00')

        with pytest.raises(BusinessLogicError):
            cart.update_discount(0, '20.01')

    def test_lowering_quantity_below_discount_rejected(self):
        """Quantity changes keep the discount within the new line amount."""
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.update_quantity(0, 3)
        cart.update_discount(0, '25.00')

        with pytest.raises(BusinessLogicError):
            cart.update_quantity(0, 2)
        assert cart.lines[0].quantity == 3

    def test_remove_line(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.add_line(IBUPROFENO)

        removed = cart.remove_line(0)

        assert removed.product_id == PARACETAMOL.id
        assert [line.product_id for line in cart] == [IBUPROFENO.id]

    @pytest.mark.parametrize('index', [-1, 1, 5, '0'])
    def test_bad_index_raises_not_found(self, index):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        with pytest.raises(NotFoundError):
            cart.remove_line(index)

    def test_clear(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.clear()
        assert cart.is_empty
        assert cart.to_list() == []


class TestTotals:
    """Derived totals."""

    def test_totals_tax_on_discounted_subtotal(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.update_quantity(0, 2)
        cart.add_line(IBUPROFENO)
        cart.update_discount(1, '5.00')

        totals = cart.totals('0.16')

        assert totals.subtotal == Decimal('45.50')
        assert totals.discount == Decimal('5.00')
        assert totals.tax == Decimal('6.48')
        assert totals.total == Decimal('46.98')

    def test_tax_rounds_half_up_to_cents(self):
        line = CartLine(product_id=1, product_name='Gasas', unit_price=Decimal('0.25'), quantity=1)
        # 0.25 * 0.1 = 0.025 -> 0.03
        assert calculate_totals([line], '0.10').tax == Decimal('0.03')

    def test_empty_cart_totals_are_zero(self):
        totals = Cart().totals('0.16')
        assert totals.total == Decimal('0.00')
        assert totals.to_dict() == {'subtotal': '0.00', 'discount': '0.00', 'tax': '0.00', 'total': '0.00'}

    def test_negative_tax_rate_rejected(self):
        with pytest.raises(BusinessLogicError):
            Cart().totals('-0.01')

    def test_totals_track_every_mutation(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        assert cart.totals(0).total == Decimal('10.00')
        cart.update_quantity(0, 5)
        assert cart.totals(0).total == Decimal('50.00')
        cart.remove_line(0)
        assert cart.totals(0).total == Decimal('0.00')


class TestTaxInclusivePrices:
    """Quote prices already include tax."""

    def test_extract_embedded_tax(self):
        assert extract_embedded_tax('116.00', '0.16') == Decimal('16')
        assert price_without_tax('116.00', '0.16') == Decimal('100')

    def test_extract_embedded_tax_zero_rate(self):
        assert extract_embedded_tax('50.00', 0) == Decimal('0')

    def test_quote_totals_keep_customer_price(self):
        lines = [
            CartLine(product_id=1, product_name='A', unit_price=Decimal('11.60'), quantity=2),
            CartLine(product_id=2, product_name='B', unit_price=Decimal('5.80'), quantity=1,
                     discount_amount=Decimal('0.80')),
        ]

        totals = calculate_quote_totals(lines, '0.16')

        assert totals.subtotal == Decimal('25.00')
        assert totals.tax == Decimal('4.00')
        assert totals.discount == Decimal('0.80')
        assert totals.total == Decimal('28.20')


class TestCartProperties:

    def test_two_units_of_ten(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.update_quantity(0, 2)

        totals = cart.totals('0.16')

        assert totals.subtotal == Decimal('20.00')
        assert totals.tax == Decimal('3.20')
        assert totals.total == Decimal('23.20')

    def test_totals_ignore_line_order(self):
        lines = [
            CartLine(product_id=1, product_name='A', unit_price=Decimal('10.00'), quantity=2),
            CartLine(product_id=2, product_name='B', unit_price=Decimal('25.50'), quantity=1,
                     discount_amount=Decimal('5.00')),
            CartLine(product_id=3, product_name='C', unit_price=Decimal('0.35'), quantity=7),
        ]
        assert calculate_totals(lines, '0.16') == calculate_totals(list(reversed(lines)), '0.16')

    def test_clear_is_idempotent(self):
        cart = Cart()
        cart.add_line(PARACETAMOL)
        cart.clear()
        once = (cart.to_list(), cart.totals(0))
        cart.clear()
        assert (cart.to_list(), cart.totals(0)) == once

    def test_embedded_tax_at_fifteen_percent(self):
        assert extract_embedded_tax('11.50', '0.15') == Decimal('1.50')
        assert price_without_tax('11.50', '0.15') == Decimal('10.00')
