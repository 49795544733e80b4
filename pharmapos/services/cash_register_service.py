"""Cash register sessions (apertura / cierre de caja)."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import CashRegisterSession, PaymentMethod, normalize_payment_method
from pharmapos.services.cart import money, to_decimal

logger = logging.getLogger(__name__)

STATUS_OPEN = 'open'
STATUS_CLOSED = 'closed'


def current_session(session, user_id: int) -> Optional[CashRegisterSession]:
    return (session.query(CashRegisterSession)
            .filter(CashRegisterSession.user_id == user_id,
                    CashRegisterSession.status == STATUS_OPEN)
            .order_by(CashRegisterSession.opened_at.desc(), CashRegisterSession.id.desc())
            .first())


def open_register(session, user_id: int, opening_amount, register_name: str = 'Principal') -> CashRegisterSession:
    """Open a register for `user_id`; a user can only hold one open session."""
    opening_amount = money(to_decimal(opening_amount, 'Monto de apertura'))
    if opening_amount < 0:
        raise BusinessLogicError('El monto de apertura no puede ser negativo')

    existing = current_session(session, user_id)
    if existing:
        raise BusinessLogicError(
            f'Ya existe una caja abierta ({existing.register_name}) para este usuario'
        )

    register = CashRegisterSession(
        user_id=user_id,
        register_name=(register_name or 'Principal').strip() or 'Principal',
        opening_amount=opening_amount,
        total_sales=Decimal('0'),
        total_cash=Decimal('0'),
        total_card=Decimal('0'),
        total_other=Decimal('0'),
        total_transactions=0,
        status=STATUS_OPEN,
        opened_at=datetime.now(timezone.utc),
    )
    session.add(register)
    session.commit()
    logger.info("Caja %s abierta por usuario %s con %s", register.id, user_id, opening_amount)
    return register


def record_sale(register: CashRegisterSession, amount: Decimal, payment_method) -> CashRegisterSession:
    """Add a sale to the session totals, bucketed by payment method. Caller flushes."""
    if register.status != STATUS_OPEN:
        raise BusinessLogicError('La caja está cerrada')
    method = normalize_payment_method(payment_method)
    register.total_sales = (register.total_sales or 0) + amount
    if method == PaymentMethod.CASH:
        register.total_cash = (register.total_cash or 0) + amount
    elif method == PaymentMethod.CARD:
        register.total_card = (register.total_card or 0) + amount
    else:
        register.total_other = (register.total_other or 0) + amount
    register.total_transactions = (register.total_transactions or 0) + 1
    return register


def close_register(session, register_id: int, closing_amount, notes: Optional[str] = None) -> CashRegisterSession:
    """Close with the counted cash; `difference` on the row reports over/short."""
    register = session.get(CashRegisterSession, register_id)
    if register is None:
        raise NotFoundError(f'Sesión de caja {register_id} no encontrada')
    if register.status != STATUS_OPEN:
        raise BusinessLogicError('La caja ya está cerrada')

    closing_amount = money(to_decimal(closing_amount, 'Monto de cierre'))
    if closing_amount < 0:
        raise BusinessLogicError('El monto de cierre no puede ser negativo')

    register.closing_amount = closing_amount
    register.status = STATUS_CLOSED
    register.closed_at = datetime.now(timezone.utc)
    register.notes = notes
    session.commit()

    difference = register.difference
    if difference:
        logger.warning("Caja %s cerrada con diferencia %s (esperado %s, contado %s)",
                       register.id, difference, register.expected_cash, closing_amount)
    else:
        logger.info("Caja %s cerrada sin diferencias", register.id)
    return register
