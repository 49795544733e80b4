"""Quotes (presupuestos). Catalogue prices already include tax."""
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Optional

from flask import current_app, has_app_context
from sqlalchemy.exc import SQLAlchemyError

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import Client, Quote, QuoteItem, QuoteStatus
from pharmapos.services import settings_service
from pharmapos.services.cart import calculate_quote_totals

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    QuoteStatus.DRAFT: {QuoteStatus.SENT, QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
    QuoteStatus.SENT: {QuoteStatus.ACCEPTED, QuoteStatus.REJECTED, QuoteStatus.EXPIRED},
    QuoteStatus.ACCEPTED: set(),
    QuoteStatus.REJECTED: set(),
    QuoteStatus.EXPIRED: set(),
}


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def generate_quote_number(session, today: Optional[date] = None) -> str:
    """PRES-YYYYMMDD-NNNN, NNNN being the day's sequence."""
    today = today or date.today()
    base = f"{_config('QUOTE_NUMBER_PREFIX', 'PRES-')}{today.strftime('%Y%m%d')}-"
    sequence = session.query(Quote).filter(Quote.quote_number.like(f'{base}%')).count() + 1
    while session.query(Quote.id).filter(Quote.quote_number == f'{base}{sequence:04d}').first():
        sequence += 1
    return f'{base}{sequence:04d}'


def create_quote(session, cart, client_id: Optional[int] = None, tax_rate=None,
                 notes: Optional[str] = None, valid_days: Optional[int] = None) -> Quote:
    """Persist a draft quote for the lines of `cart`."""
    if cart is None or cart.is_empty:
        raise BusinessLogicError('Carrito vacío.')
    if client_id is not None and session.get(Client, client_id) is None:
        raise NotFoundError(f'Cliente {client_id} no encontrado')
    if valid_days is None:
        valid_days = _config('QUOTE_VALID_DAYS', 15)
    if int(valid_days) < 0:
        raise BusinessLogicError('Los días de validez no pueden ser negativos')
    if tax_rate is None:
        tax_rate = settings_service.get_tax_rate(session)

    totals = calculate_quote_totals(cart.lines, tax_rate)
    try:
        quote = Quote(
            quote_number=generate_quote_number(session),
            client_id=client_id,
            subtotal_amount=totals.subtotal,
            discount_amount=totals.discount,
            tax_amount=totals.tax,
            total_amount=totals.total,
            status=QuoteStatus.DRAFT,
            notes=notes,
            valid_until=datetime.now().date() + timedelta(days=int(valid_days)),
            items=[
                QuoteItem(
                    product_id=line.product_id,
                    quantity=line.quantity,
                    unit_price=line.unit_price,
                    discount_amount=line.discount_amount,
                    total_price=line.total_price,
                )
                for line in cart.lines
            ],
        )
        session.add(quote)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    logger.info("Quote %s created, total %s", quote.quote_number, quote.total_amount)
    return quote


def update_quote_status(session, quote_id: int, status) -> Quote:
    try:
        new_status = status if isinstance(status, QuoteStatus) else QuoteStatus(str(status).lower())
    except ValueError:
        raise BusinessLogicError(f'Estado de presupuesto inválido: {status}')

    quote = session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError(f'Presupuesto {quote_id} no encontrado')
    if new_status == quote.status:
        return quote
    if new_status not in ALLOWED_TRANSITIONS[quote.status]:
        raise BusinessLogicError(
            f'No se puede pasar de {quote.status.value} a {new_status.value}'
        )
    if new_status == QuoteStatus.ACCEPTED and quote.valid_until and quote.valid_until < date.today():
        raise BusinessLogicError('El presupuesto está vencido')

    quote.status = new_status
    session.commit()
    logger.info("Quote %s -> %s", quote.quote_number, new_status.value)
    return quote


def quote_to_dict(quote: Quote) -> Dict[str, Any]:
    return {
        'id': quote.id,
        'quote_number': quote.quote_number,
        'client_id': quote.client_id,
        'subtotal_amount': str(quote.subtotal_amount),
        'discount_amount': str(quote.discount_amount),
        'tax_amount': str(quote.tax_amount),
        'total_amount': str(quote.total_amount),
        'status': quote.status.value,
        'valid_until': quote.valid_until.isoformat() if quote.valid_until else None,
        'notes': quote.notes,
        'items': [
            {
                'product_id': item.product_id,
                'quantity': item.quantity,
                'unit_price': str(item.unit_price),
                'discount_amount': str(item.discount_amount),
                'total_price': str(item.total_price),
            }
            for item in quote.items
        ],
    }
