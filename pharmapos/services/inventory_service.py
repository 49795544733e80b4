"""
Inventory service - stock reads, writes and the movement audit log.

Stock writes are compare-and-swap: the UPDATE only applies when
current_stock still holds the value read a moment earlier. When another
checkout got there first the record is re-read and the write retried, so
concurrent sales never lose a decrement.
"""
import logging
from typing import Dict, Iterable, Optional, Tuple

from flask import current_app, has_app_context
from sqlalchemy.sql import func

from pharmapos.exceptions import InsufficientStockError, NotFoundError, StockConflictError
from pharmapos.models import (
    InventoryMovement, InventoryRecord, Location, MovementReferenceType, MovementType, Product,
)

logger = logging.getLogger(__name__)

DEFAULT_WRITE_ATTEMPTS = 3


def _config(key, default):
    if has_app_context():
        return current_app.config.get(key, default)
    return default


def select_inventory_record(session, product_id: int, location_id: Optional[int] = None) -> Optional[InventoryRecord]:
    """
    Return the inventory row a sale of `product_id` should draw from.

    With an explicit `location_id` only that row qualifies. Without one, the
    row with the most stock wins, ties going to the lowest location id.
    Rows are always re-read from the database.
    """
    query = session.query(InventoryRecord).filter(InventoryRecord.product_id == product_id)
    if location_id is not None:
        query = query.filter(InventoryRecord.location_id == location_id)
    return (query
            .order_by(InventoryRecord.current_stock.desc(), InventoryRecord.location_id.asc())
            .populate_existing()
            .first())


def _compare_and_swap(session, record_id: int, expected: int, new_value: int) -> bool:
    """Write new_value only if current_stock still equals expected."""
    updated = (session.query(InventoryRecord)
               .filter(InventoryRecord.id == record_id,
                       InventoryRecord.current_stock == expected)
               .update({InventoryRecord.current_stock: new_value,
                        InventoryRecord.updated_at: func.now()},
                       synchronize_session=False))
    return updated == 1


def _apply_delta(
    session,
    product_id: int,
    delta: int,
    location_id: Optional[int],
    attempts: int,
    allow_negative: bool,
    product_name: Optional[str] = None,
) -> Tuple[InventoryRecord, int, int]:
    """Shared CAS loop; returns (record, stock_before, stock_after)."""
    for attempt in range(1, attempts + 1):
        record = select_inventory_record(session, product_id, location_id)
        if record is None:
            where = f' en la ubicación {location_id}' if location_id is not None else ''
            raise NotFoundError(f'No hay inventario para el producto {product_id}{where}')

        stock_before = record.current_stock
        stock_after = stock_before + delta

        if stock_after < 0:
            if not allow_negative:
                raise InsufficientStockError(product_name or f'producto {product_id}', -delta, stock_before)
            logger.warning(
                "Stock insuficiente para producto %s en ubicación %s: stock actual %s, cantidad solicitada %s",
                product_id, record.location_id, stock_before, -delta,
            )

        if _compare_and_swap(session, record.id, stock_before, stock_after):
            session.expire(record, ['current_stock', 'updated_at'])
            return record, stock_before, stock_after

        logger.info(
            "Stock de producto %s cambió durante la escritura (intento %s/%s), releyendo",
            product_id, attempt, attempts,
        )

    raise StockConflictError(product_id, attempts)


def consume_stock(
    session,
    product_id: int,
    quantity: int,
    *,
    location_id: Optional[int] = None,
    reference_id: Optional[int] = None,
    unit_cost=None,
    total_cost=None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
    product_name: Optional[str] = None,
    allow_negative: Optional[bool] = None,
    attempts: Optional[int] = None,
) -> InventoryMovement:
    """
    Decrement stock for a sale line and append the matching movement.

    The movement records the exact before/after values of the successful
    compare-and-swap, so stock_after always matches what was written.
    """
    if quantity <= 0:
        raise ValueError('quantity must be positive')
    if allow_negative is None:
        allow_negative = _config('ALLOW_NEGATIVE_STOCK', True)
    if attempts is None:
        attempts = _config('STOCK_WRITE_ATTEMPTS', DEFAULT_WRITE_ATTEMPTS)

    record, stock_before, stock_after = _apply_delta(
        session, product_id, -quantity, location_id, attempts, allow_negative, product_name,
    )

    movement = InventoryMovement(
        product_id=product_id,
        location_id=record.location_id,
        movement_type=MovementType.SALE,
        quantity=-quantity,
        unit_cost=unit_cost,
        total_cost=total_cost,
        stock_before=stock_before,
        stock_after=stock_after,
        reference_type=MovementReferenceType.SALE,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    session.add(movement)
    session.flush()
    return movement


def default_location_id(session) -> Optional[int]:
    location = (session.query(Location)
                .filter(Location.active.is_(True))
                .order_by(Location.id)
                .first())
    return location.id if location else None


def restock(
    session,
    product_id: int,
    quantity: int,
    *,
    location_id: Optional[int] = None,
    reference_type: MovementReferenceType = MovementReferenceType.REFUND,
    movement_type: MovementType = MovementType.REFUND,
    reference_id: Optional[int] = None,
    unit_cost=None,
    total_cost=None,
    notes: Optional[str] = None,
    created_by: Optional[str] = None,
    attempts: Optional[int] = None,
) -> InventoryMovement:
    """
    Return units to stock (refunds, purchases).

    Without a location the units go to the row the product would be sold
    from, or to the first active location when the product has no inventory
    row yet.
    """
    if quantity <= 0:
        raise ValueError('quantity must be positive')
    if attempts is None:
        attempts = _config('STOCK_WRITE_ATTEMPTS', DEFAULT_WRITE_ATTEMPTS)

    if select_inventory_record(session, product_id, location_id) is None:
        target_location = location_id if location_id is not None else default_location_id(session)
        if target_location is None:
            raise NotFoundError('No hay ubicaciones activas para recibir el stock')
        session.add(InventoryRecord(product_id=product_id, location_id=target_location, current_stock=0))
        session.flush()
        location_id = target_location

    record, stock_before, stock_after = _apply_delta(
        session, product_id, quantity, location_id, attempts, allow_negative=True,
    )

    movement = InventoryMovement(
        product_id=product_id,
        location_id=record.location_id,
        movement_type=movement_type,
        quantity=quantity,
        unit_cost=unit_cost,
        total_cost=total_cost,
        stock_before=stock_before,
        stock_after=stock_after,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by=created_by,
    )
    session.add(movement)
    session.flush()
    return movement


def check_availability(session, lines: Iterable, location_id: Optional[int] = None) -> None:
    """
    Raise InsufficientStockError for the first line the chosen rows cannot cover.

    Only a pre-check: the CAS write in consume_stock is what actually guards
    the stock.
    """
    requested: Dict[int, int] = {}
    names: Dict[int, str] = {}
    for line in lines:
        requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        names[line.product_id] = line.product_name

    for product_id, quantity in requested.items():
        record = select_inventory_record(session, product_id, location_id)
        available = record.current_stock if record else 0
        if available < quantity:
            raise InsufficientStockError(names[product_id], quantity, available)


def stock_by_location(session, product_id: int) -> Dict[int, int]:
    """Map location_id -> current_stock for one product."""
    product = session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f'Producto {product_id} no encontrado')
    return {record.location_id: record.current_stock for record in product.inventory}
