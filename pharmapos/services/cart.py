"""
Cart accumulator and price calculations.

The cart is an in-memory, unpersisted selection of products. Line totals
and cart totals are derived on read, so they can never drift from the
quantities, prices and discounts they are computed from.
"""
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from pharmapos.exceptions import BusinessLogicError, NotFoundError

CENT = Decimal('0.01')
ZERO = Decimal('0')

Number = Union[int, float, str, Decimal]


def to_decimal(value: Number, field_name: str = 'valor') -> Decimal:
    """Parse user input into a Decimal, rejecting NaN/inf and garbage."""
    if isinstance(value, bool):
        raise BusinessLogicError(f'{field_name} inválido')
    try:
        number = Decimal(str(value).strip().replace(',', '.'))
    except (InvalidOperation, ValueError, TypeError):
        raise BusinessLogicError(f'{field_name} inválido: {value!r}')
    if not number.is_finite():
        raise BusinessLogicError(f'{field_name} inválido: {value!r}')
    return number


def money(value: Decimal) -> Decimal:
    """Round to cents, half up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_tax_rate(value: Number) -> Decimal:
    rate = to_decimal(value, 'Tasa de impuesto')
    if rate < 0:
        raise BusinessLogicError('La tasa de impuesto no puede ser negativa')
    return rate


def validate_quantity(quantity: Any) -> int:
    if isinstance(quantity, bool):
        raise BusinessLogicError('La cantidad debe ser un número entero')
    if isinstance(quantity, (str, Decimal, float)):
        try:
            as_decimal = Decimal(str(quantity).strip())
        except InvalidOperation:
            raise BusinessLogicError(f'Cantidad inválida: {quantity!r}')
        if as_decimal != as_decimal.to_integral_value():
            raise BusinessLogicError('La cantidad debe ser un número entero')
        quantity = int(as_decimal)
    if not isinstance(quantity, int):
        raise BusinessLogicError(f'Cantidad inválida: {quantity!r}')
    if quantity < 1:
        raise BusinessLogicError('La cantidad debe ser mayor o igual a 1')
    return quantity


@dataclass
class CartLine:
    """One product selection; `total_price` is always quantity*unit_price - discount."""

    product_id: int
    product_name: str
    unit_price: Decimal
    quantity: int = 1
    discount_amount: Decimal = ZERO

    def __post_init__(self):
        self.unit_price = to_decimal(self.unit_price, 'Precio unitario')
        if self.unit_price < 0:
            raise BusinessLogicError('El precio unitario no puede ser negativo')
        self.quantity = validate_quantity(self.quantity)
        self.discount_amount = to_decimal(self.discount_amount, 'Descuento')
        self._check_discount(self.discount_amount, self.quantity)

    @property
    def gross_amount(self) -> Decimal:
        return self.unit_price * self.quantity

    @property
    def total_price(self) -> Decimal:
        return self.gross_amount - self.discount_amount

    def _check_discount(self, discount: Decimal, quantity: int) -> None:
        if discount < 0:
            raise BusinessLogicError('El descuento no puede ser negativo')
        if discount > self.unit_price * quantity:
            raise BusinessLogicError(
                f'El descuento de "{self.product_name}" supera el importe de la línea'
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'product_id': self.product_id,
            'product_name': self.product_name,
            'quantity': self.quantity,
            'unit_price': str(self.unit_price),
            'discount_amount': str(self.discount_amount),
            'total_price': str(self.total_price),
        }


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {
            'subtotal': str(self.subtotal),
            'discount': str(self.discount),
            'tax': str(self.tax),
            'total': str(self.total),
        }


def calculate_totals(lines: Iterable[CartLine], tax_rate: Number) -> CartTotals:
    """Tax is charged on top of the discounted subtotal."""
    rate = parse_tax_rate(tax_rate)
    lines = list(lines)
    subtotal = sum((line.gross_amount for line in lines), ZERO)
    discount = sum((line.discount_amount for line in lines), ZERO)
    tax = money((subtotal - discount) * rate)
    subtotal = money(subtotal)
    discount = money(discount)
    return CartTotals(subtotal=subtotal, discount=discount, tax=tax, total=subtotal - discount + tax)


def extract_embedded_tax(price_with_tax: Number, tax_rate: Number) -> Decimal:
    """Tax contained in a tax-inclusive price: price * rate / (1 + rate)."""
    price = to_decimal(price_with_tax, 'Precio')
    rate = parse_tax_rate(tax_rate)
    return price * rate / (1 + rate)


def price_without_tax(price_with_tax: Number, tax_rate: Number) -> Decimal:
    price = to_decimal(price_with_tax, 'Precio')
    return price - extract_embedded_tax(price, tax_rate)


def calculate_quote_totals(lines: Iterable[CartLine], tax_rate: Number) -> CartTotals:
    """
    Totals for lines whose unit prices already include tax.

    The subtotal is the net (tax-free) amount before discounts; the total
    equals what the customer pays, i.e. the tax-inclusive gross minus
    discounts.
    """
    lines = list(lines)
    subtotal = ZERO
    tax = ZERO
    discount = ZERO
    for line in lines:
        embedded = extract_embedded_tax(line.unit_price, tax_rate)
        subtotal += (line.unit_price - embedded) * line.quantity
        tax += embedded * line.quantity
        discount += line.discount_amount
    subtotal = money(subtotal)
    tax = money(tax)
    discount = money(discount)
    return CartTotals(subtotal=subtotal, discount=discount, tax=tax, total=subtotal - discount + tax)


@dataclass
class Cart:
    """Ordered list of CartLines keyed by position, one line per product."""

    lines: List[CartLine] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)

    def __iter__(self) -> Iterator[CartLine]:
        return iter(self.lines)

    @property
    def is_empty(self) -> bool:
        return not self.lines

    def _line_at(self, index: int) -> CartLine:
        if not isinstance(index, int) or isinstance(index, bool) or not 0 <= index < len(self.lines):
            raise NotFoundError(f'No existe la línea {index} en el carrito')
        return self.lines[index]

    def find(self, product_id: int) -> Optional[int]:
        for index, line in enumerate(self.lines):
            if line.product_id == product_id:
                return index
        return None

    def add_line(self, product) -> CartLine:
        """
        Add one unit of `product` (anything with id, name and sale_price).

        A product already in the cart gets its quantity bumped instead of a
        second line.
        """
        index = self.find(product.id)
        if index is not None:
            return self.update_quantity(index, self.lines[index].quantity + 1)

        line = CartLine(
            product_id=product.id,
            product_name=product.name,
            unit_price=product.sale_price,
            quantity=1,
            discount_amount=ZERO,
        )
        self.lines.append(line)
        return line

    def update_quantity(self, index: int, quantity: Any) -> CartLine:
        line = self._line_at(index)
        quantity = validate_quantity(quantity)
        line._check_discount(line.discount_amount, quantity)
        line.quantity = quantity
        return line

    def update_discount(self, index: int, discount: Number) -> CartLine:
        line = self._line_at(index)
        discount = to_decimal(discount, 'Descuento')
        line._check_discount(discount, line.quantity)
        line.discount_amount = discount
        return line

    def remove_line(self, index: int) -> CartLine:
        self._line_at(index)
        return self.lines.pop(index)

    def clear(self) -> None:
        self.lines = []

    def totals(self, tax_rate: Number) -> CartTotals:
        return calculate_totals(self.lines, tax_rate)

    def to_list(self) -> List[Dict[str, Any]]:
        return [line.to_dict() for line in self.lines]
