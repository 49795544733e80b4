"""
Sales service - checkout orchestration.

A checkout runs as one database transaction:

1. insert the Sale header                     (mandatory)
2. redeem/earn loyalty points for the client  (best effort, SAVEPOINT)
3. insert the SaleItems                       (mandatory)
4. decrement inventory + movement per line    (best effort, SAVEPOINT per line)
5. insert the Payment                         (mandatory)
6. add the sale to the open register          (best effort, SAVEPOINT)

A failure in a mandatory step rolls the whole checkout back and raises.
A failure in a best-effort step only rolls back its own savepoint and is
reported in CheckoutResult.issues, so the caller decides whether to tell
the cashier.
"""
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import joinedload

from pharmapos.exceptions import BusinessLogicError, CheckoutError, NotFoundError, PosError
from pharmapos.models import (
    CashRegisterSession, Client, Payment, PaymentMethod, Product, Sale, SaleItem, SaleStatus,
    normalize_payment_method,
)
from pharmapos.services import cash_register_service, inventory_service, loyalty_service, settings_service
from pharmapos.services.cart import Cart, CartLine, CartTotals, money, to_decimal, validate_quantity

logger = logging.getLogger(__name__)

SALE_NUMBER_DIGITS = 8

STATUS_SUCCESS = 'success'
STATUS_PARTIAL = 'partial'


@dataclass
class CheckoutIssue:
    """A best-effort step that failed without aborting the sale."""
    step: str
    message: str
    product_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {'step': self.step, 'message': self.message, 'product_id': self.product_id}


@dataclass
class CheckoutResult:
    sale: Sale
    lines: List[CartLine]
    totals: CartTotals
    issues: List[CheckoutIssue] = field(default_factory=list)
    loyalty: Optional[Dict[str, int]] = None
    amount_received: Optional[Decimal] = None
    change_amount: Optional[Decimal] = None

    @property
    def status(self) -> str:
        return STATUS_PARTIAL if self.issues else STATUS_SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        sale = self.sale
        return {
            'status': self.status,
            'sale': {
                'id': sale.id,
                'sale_number': sale.sale_number,
                'client_id': sale.client_id,
                'subtotal_amount': str(sale.subtotal_amount),
                'discount_amount': str(sale.discount_amount),
                'tax_amount': str(sale.tax_amount),
                'total_amount': str(sale.total_amount),
                'payment_method': sale.payment_method,
                'status': sale.status.value,
                'notes': sale.notes,
                'created_at': sale.created_at.isoformat() if sale.created_at else None,
            },
            'items': [line.to_dict() for line in self.lines],
            'loyalty': self.loyalty,
            'amount_received': str(self.amount_received) if self.amount_received is not None else None,
            'change_amount': str(self.change_amount) if self.change_amount is not None else None,
            'issues': [issue.to_dict() for issue in self.issues],
        }


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def generate_sale_number(session, prefix: Optional[str] = None, now_ms: Optional[int] = None) -> str:
    """
    Prefix + last 8 digits of the millisecond timestamp.

    Two checkouts in the same millisecond would collide, so the number is
    bumped until it is unused.
    """
    if prefix is None:
        prefix = _config('SALE_NUMBER_PREFIX', 'VTA-')
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    modulo = 10 ** SALE_NUMBER_DIGITS
    number = now_ms % modulo
    while True:
        candidate = f'{prefix}{number:0{SALE_NUMBER_DIGITS}d}'
        taken = session.query(Sale.id).filter(Sale.sale_number == candidate).first()
        if not taken:
            return candidate
        number = (number + 1) % modulo


def build_cart(session, items: Iterable[Dict[str, Any]]) -> Cart:
    """
    Build a Cart from request items using catalogue prices.

    Each item is {'product_id', 'quantity', 'discount_amount'?}; repeated
    products are merged into one line.
    """
    cart = Cart()
    for raw in items or []:
        if not isinstance(raw, dict) or 'product_id' not in raw:
            raise BusinessLogicError('Cada ítem debe indicar product_id')
        try:
            product_id = int(raw['product_id'])
        except (TypeError, ValueError):
            raise BusinessLogicError(f"product_id inválido: {raw['product_id']!r}")

        product = session.get(Product, product_id)
        if product is None:
            raise NotFoundError(f'Producto {product_id} no encontrado')
        if not product.active:
            raise BusinessLogicError(f'El producto "{product.name}" no está activo')

        quantity = validate_quantity(raw.get('quantity', 1))
        discount = to_decimal(raw.get('discount_amount', 0) or 0, 'Descuento')

        index = cart.find(product.id)
        if index is None:
            cart.add_line(product)
            index = len(cart) - 1
            cart.update_quantity(index, quantity)
        else:
            existing = cart.lines[index]
            cart.update_quantity(index, existing.quantity + quantity)
            discount += existing.discount_amount
        if discount:
            cart.update_discount(index, discount)
    return cart


def _validate_points(points_redeemed) -> int:
    if points_redeemed in (None, ''):
        return 0
    if isinstance(points_redeemed, bool):
        raise BusinessLogicError('Puntos a canjear inválidos')
    try:
        as_decimal = Decimal(str(points_redeemed).strip())
    except InvalidOperation:
        raise BusinessLogicError(f'Puntos a canjear inválidos: {points_redeemed!r}')
    if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value():
        raise BusinessLogicError('Los puntos a canjear deben ser un número entero')
    points = int(as_decimal)
    if points < 0:
        raise BusinessLogicError('Los puntos a canjear no pueden ser negativos')
    return points


def _best_effort(session, issues: List[CheckoutIssue], step: str, action, product_id: Optional[int] = None):
    """Run `action` inside a SAVEPOINT; on failure roll it back and record an issue."""
    try:
        with session.begin_nested():
            return action()
    except (SQLAlchemyError, PosError) as exc:
        message = exc.message if isinstance(exc, PosError) else str(exc.__cause__ or exc)
        logger.error("Checkout step '%s' failed (product=%s): %s", step, product_id, message, exc_info=True)
        issues.append(CheckoutIssue(step=step, message=message, product_id=product_id))
        return None


def process_sale(
    session,
    cart: Cart,
    payment_method,
    client_id: Optional[int] = None,
    points_redeemed: int = 0,
    *,
    location_id: Optional[int] = None,
    cashier_id: Optional[int] = None,
    notes: Optional[str] = None,
    amount_received=None,
    register_session_id: Optional[int] = None,
    tax_rate=None,
) -> CheckoutResult:
    """Run a checkout for `cart` and return the created sale with any partial failures."""
    # Validation: nothing is written until all of this passes
    if cart is None or cart.is_empty:
        raise BusinessLogicError('El carrito está vacío')

    method = normalize_payment_method(payment_method)
    if method is None:
        if not payment_method:
            raise BusinessLogicError('Debe seleccionar un método de pago')
        raise BusinessLogicError(f'Método de pago inválido: {payment_method}')

    points_redeemed = _validate_points(points_redeemed)
    if points_redeemed and not client_id:
        raise BusinessLogicError('Para canjear puntos debe seleccionar un cliente')

    client = None
    if client_id:
        client = session.get(Client, client_id)
        if client is None:
            raise NotFoundError(f'Cliente {client_id} no encontrado')
        if points_redeemed:
            loyalty_service.validate_redemption(client, points_redeemed)

    register = None
    if register_session_id:
        register = session.get(CashRegisterSession, register_session_id)
        if register is None:
            raise NotFoundError(f'Sesión de caja {register_session_id} no encontrada')
        if register.status != cash_register_service.STATUS_OPEN:
            raise BusinessLogicError('La caja está cerrada')

    if tax_rate is None:
        tax_rate = settings_service.get_tax_rate(session)
    totals = cart.totals(tax_rate)

    received = None
    change = None
    # Only cash takes a tendered amount
    if method == PaymentMethod.CASH and amount_received not in (None, ''):
        received = money(to_decimal(amount_received, 'Monto recibido'))
        if received < totals.total:
            raise BusinessLogicError(
                f'El monto recibido ({received}) es menor al total ({totals.total})'
            )
        change = received - totals.total

    if not _config('ALLOW_NEGATIVE_STOCK', True):
        inventory_service.check_availability(session, cart.lines, location_id)

    lines = list(cart.lines)
    issues: List[CheckoutIssue] = []
    loyalty_outcome = None
    step = 'sale'

    try:
        # 1. Sale header
        sale = Sale(
            sale_number=generate_sale_number(session),
            client_id=client.id if client else None,
            cashier_id=cashier_id,
            register_session_id=register.id if register else None,
            subtotal_amount=totals.subtotal,
            discount_amount=totals.discount,
            tax_amount=totals.tax,
            total_amount=totals.total,
            payment_method=method.value,
            points_redeemed=points_redeemed,
            status=SaleStatus.COMPLETED,
            notes=notes,
            created_at=datetime.now(),
        )
        session.add(sale)
        session.flush()

        # 2. Loyalty
        if client is not None:
            step = 'loyalty'
            loyalty_outcome = _best_effort(
                session, issues, 'loyalty',
                lambda: loyalty_service.apply_sale_loyalty(session, client, sale, points_redeemed),
            )

        # 3. Sale items
        step = 'items'
        session.add_all([
            SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price=line.unit_price,
                discount_amount=line.discount_amount,
                total_price=line.total_price,
            )
            for line in lines
        ])
        session.flush()

        # 4. Inventory, one savepoint per line
        step = 'inventory'
        for line in lines:
            _best_effort(
                session, issues, 'inventory',
                lambda line=line: inventory_service.consume_stock(
                    session,
                    line.product_id,
                    line.quantity,
                    location_id=location_id,
                    reference_id=sale.id,
                    unit_cost=line.unit_price,
                    total_cost=line.total_price,
                    notes=f'Venta {sale.sale_number}',
                    product_name=line.product_name,
                ),
                product_id=line.product_id,
            )

        # 5. Payment
        step = 'payment'
        _insert_payment(session, sale, method, received, change)

        # 6. Register totals
        if register is not None:
            step = 'cash_register'
            _best_effort(
                session, issues, 'cash_register',
                lambda: _record_register_sale(session, register, sale, method),
            )

        session.commit()

    except PosError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.error("Checkout aborted at step '%s': %s", step, exc, exc_info=True)
        raise CheckoutError(f'Error al registrar la venta ({step}): {exc}', step=step)

    if issues:
        logger.warning("Sale %s completed with %d issue(s): %s", sale.sale_number, len(issues),
                       ', '.join(f'{i.step}:{i.product_id or "-"}' for i in issues))
    else:
        logger.info("Sale %s completed, total %s", sale.sale_number, sale.total_amount)

    return CheckoutResult(
        sale=sale,
        lines=lines,
        totals=totals,
        issues=issues,
        loyalty=loyalty_outcome,
        amount_received=received,
        change_amount=change,
    )


def _insert_payment(session, sale: Sale, method: PaymentMethod, received, change) -> Payment:
    payment = Payment(
        sale_id=sale.id,
        payment_method=method.value,
        amount=sale.total_amount,
        amount_received=received if method == PaymentMethod.CASH else None,
        change_amount=change if method == PaymentMethod.CASH else None,
    )
    session.add(payment)
    session.flush()
    return payment


def _record_register_sale(session, register, sale: Sale, method: PaymentMethod):
    cash_register_service.record_sale(register, sale.total_amount, method)
    session.flush()
    return register


def get_sale(session, sale_id: int) -> Sale:
    sale = (session.query(Sale)
            .options(joinedload(Sale.items).joinedload(SaleItem.product), joinedload(Sale.client))
            .filter(Sale.id == sale_id)
            .first())
    if sale is None:
        raise NotFoundError(f'Venta {sale_id} no encontrada')
    return sale


def get_sale_by_number(session, sale_number: str) -> Sale:
    sale = session.query(Sale).filter(Sale.sale_number == sale_number).first()
    if sale is None:
        raise NotFoundError(f'Venta {sale_number} no encontrada')
    return sale


def list_sales(session, start: Optional[datetime] = None, end: Optional[datetime] = None,
               limit: int = 50) -> List[Sale]:
    """Most recent first, optionally bounded by creation date."""
    query = session.query(Sale).options(joinedload(Sale.items))
    if start is not None:
        query = query.filter(Sale.created_at >= start)
    if end is not None:
        query = query.filter(Sale.created_at <= end)
    return query.order_by(Sale.created_at.desc(), Sale.id.desc()).limit(limit).all()
