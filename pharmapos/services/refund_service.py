"""Refunds (devoluciones): request, approve with restock, reject."""
import logging
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError

from pharmapos.exceptions import BusinessLogicError, NotFoundError, PosError
from pharmapos.models import (
    MovementReferenceType, MovementType, Refund, RefundItem, RefundStatus, Sale, SaleItem,
    SaleStatus, normalize_payment_method,
)
from pharmapos.services import inventory_service
from pharmapos.services.cart import ZERO, money, validate_quantity

logger = logging.getLogger(__name__)


def refunded_quantities(session, sale_id: int) -> Dict[int, int]:
    """product_id -> units already in pending or approved refunds of a sale."""
    rows = (session.query(RefundItem.product_id, func.sum(RefundItem.quantity))
            .join(Refund, Refund.id == RefundItem.refund_id)
            .filter(Refund.sale_id == sale_id,
                    Refund.status.in_([RefundStatus.PENDING, RefundStatus.APPROVED]))
            .group_by(RefundItem.product_id)
            .all())
    return {product_id: int(quantity or 0) for product_id, quantity in rows}


def create_refund(session, sale_id: int, items: Iterable[Dict[str, Any]], reason: str,
                  refund_method, user_id: Optional[int] = None) -> Refund:
    """
    Register a pending refund for some of a sale's items.

    Each item is {'product_id', 'quantity'}; a product cannot be refunded
    beyond what was sold minus what earlier refunds already cover. The unit
    price is the one actually charged (line discount included).
    """
    sale = session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f'Venta {sale_id} no encontrada')
    if sale.status != SaleStatus.COMPLETED:
        raise BusinessLogicError('Solo se pueden devolver ventas completadas')
    if not reason or not reason.strip():
        raise BusinessLogicError('Debe indicar el motivo de la devolución')
    method = normalize_payment_method(refund_method)
    if method is None:
        raise BusinessLogicError(f'Método de reembolso inválido: {refund_method}')

    sold: Dict[int, SaleItem] = {}
    sold_quantities: Dict[int, int] = {}
    for sale_item in sale.items:
        sold.setdefault(sale_item.product_id, sale_item)
        sold_quantities[sale_item.product_id] = sold_quantities.get(sale_item.product_id, 0) + sale_item.quantity

    already = refunded_quantities(session, sale_id)
    requested: Dict[int, int] = {}
    for raw in items or []:
        product_id = raw.get('product_id') if isinstance(raw, dict) else None
        try:
            product_id = int(product_id)
        except (TypeError, ValueError):
            raise BusinessLogicError(f'product_id inválido: {product_id!r}')
        if product_id not in sold:
            raise BusinessLogicError(f'El producto {product_id} no pertenece a la venta {sale.sale_number}')
        requested[product_id] = requested.get(product_id, 0) + validate_quantity(raw.get('quantity', 1))
    if not requested:
        raise BusinessLogicError('La devolución no tiene productos')

    refund_items: List[RefundItem] = []
    total = ZERO
    for product_id, quantity in requested.items():
        available = sold_quantities[product_id] - already.get(product_id, 0)
        if quantity > available:
            raise BusinessLogicError(
                f'No se pueden devolver {quantity} unidades del producto {product_id}: '
                f'quedan {available} sin devolver'
            )
        sale_item = sold[product_id]
        unit_price = money(Decimal(sale_item.total_price) / sale_item.quantity)
        line_total = money(unit_price * quantity)
        total += line_total
        refund_items.append(RefundItem(product_id=product_id, quantity=quantity,
                                       unit_price=unit_price, total_price=line_total))

    refund = Refund(
        sale_id=sale.id,
        client_id=sale.client_id,
        refund_reason=reason.strip(),
        refund_method=method.value,
        refund_amount=total,
        status=RefundStatus.PENDING,
        user_id=user_id,
        items=refund_items,
    )
    session.add(refund)
    session.commit()
    logger.info("Refund %s created for sale %s: %s", refund.id, sale.sale_number, total)
    return refund


def _pending_refund(session, refund_id: int) -> Refund:
    refund = session.get(Refund, refund_id)
    if refund is None:
        raise NotFoundError(f'Devolución {refund_id} no encontrada')
    if refund.status != RefundStatus.PENDING:
        raise BusinessLogicError(f'La devolución ya fue procesada ({refund.status.value})')
    return refund


def approve_refund(session, refund_id: int, approved_by: Optional[int] = None,
                   location_id: Optional[int] = None) -> Refund:
    """Approve a pending refund and put its units back in stock, all or nothing."""
    refund = _pending_refund(session, refund_id)
    try:
        for item in refund.items:
            inventory_service.restock(
                session,
                item.product_id,
                item.quantity,
                location_id=location_id,
                reference_type=MovementReferenceType.REFUND,
                movement_type=MovementType.REFUND,
                reference_id=refund.id,
                unit_cost=item.unit_price,
                total_cost=item.total_price,
                notes=f'Devolución {refund.id} de venta {refund.sale_id}',
            )
        refund.status = RefundStatus.APPROVED
        refund.approved_by = approved_by
        refund.processed_at = datetime.now(timezone.utc)
        session.commit()
    except (SQLAlchemyError, PosError):
        session.rollback()
        logger.error("Refund %s approval failed", refund_id, exc_info=True)
        raise

    logger.info("Refund %s approved by %s", refund.id, approved_by)
    return refund


def reject_refund(session, refund_id: int, approved_by: Optional[int] = None) -> Refund:
    refund = _pending_refund(session, refund_id)
    refund.status = RefundStatus.REJECTED
    refund.approved_by = approved_by
    refund.processed_at = datetime.now(timezone.utc)
    session.commit()
    logger.info("Refund %s rejected by %s", refund.id, approved_by)
    return refund
