"""Loyalty points: plan lookup, earning/redemption and the points ledger."""
import logging
from datetime import datetime, timezone
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from sqlalchemy import func

from pharmapos.exceptions import BusinessLogicError, NotFoundError
from pharmapos.models import Client, LoyaltyPlan, LoyaltyTransaction, LoyaltyTransactionType

logger = logging.getLogger(__name__)


def get_active_plan(session) -> Optional[LoyaltyPlan]:
    """The active plan; if several are flagged active the newest one wins."""
    return (session.query(LoyaltyPlan)
            .filter(LoyaltyPlan.active.is_(True))
            .order_by(LoyaltyPlan.id.desc())
            .first())


def calculate_points_earned(total_amount: Decimal, plan: Optional[LoyaltyPlan]) -> int:
    """floor(total * points_per_currency); nothing below the plan's minimum purchase."""
    if plan is None or total_amount is None:
        return 0
    total_amount = Decimal(str(total_amount))
    if total_amount <= 0:
        return 0
    if plan.min_purchase_for_points and total_amount < Decimal(str(plan.min_purchase_for_points)):
        return 0
    earned = (total_amount * Decimal(str(plan.points_per_currency))).to_integral_value(rounding=ROUND_FLOOR)
    return max(int(earned), 0)


def _record(session, client, tx_type, points, description, reference_type=None, reference_id=None):
    entry = LoyaltyTransaction(
        client_id=client.id,
        transaction_type=tx_type,
        points=points,
        description=description,
        reference_type=reference_type,
        reference_id=reference_id,
    )
    session.add(entry)
    return entry


def validate_redemption(client: Client, points: int) -> None:
    if points < 0:
        raise BusinessLogicError('Los puntos a canjear no pueden ser negativos')
    if points > (client.loyalty_points or 0):
        raise BusinessLogicError(
            f'El cliente no tiene suficientes puntos ({client.loyalty_points} disponibles, {points} solicitados)'
        )


def apply_sale_loyalty(session, client: Client, sale, points_redeemed: int = 0,
                       plan: Optional[LoyaltyPlan] = None) -> dict:
    """
    Redeem, then earn, for one sale and update the client's purchase stats.

    Returns {'redeemed': n, 'earned': m, 'balance': new_balance}.
    """
    balance = client.loyalty_points or 0

    if points_redeemed and points_redeemed > 0:
        validate_redemption(client, points_redeemed)
        balance -= points_redeemed
        _record(session, client, LoyaltyTransactionType.REDEEM, -points_redeemed,
                f'Puntos canjeados en compra - {sale.sale_number}', 'sale', sale.id)

    if plan is None:
        plan = get_active_plan(session)
    earned = calculate_points_earned(sale.total_amount, plan)
    if earned > 0:
        balance += earned
        _record(session, client, LoyaltyTransactionType.EARN, earned,
                f'Puntos ganados por compra - {sale.sale_number}', 'sale', sale.id)

    client.loyalty_points = balance
    client.total_purchases = (client.total_purchases or Decimal('0')) + sale.total_amount
    client.last_purchase_date = datetime.now(timezone.utc)
    session.flush()

    logger.info("Loyalty for sale %s: client %s redeemed %s, earned %s, balance %s",
                sale.sale_number, client.id, points_redeemed or 0, earned, balance)
    return {'redeemed': points_redeemed or 0, 'earned': earned, 'balance': balance}


def _get_client(session, client_id: int) -> Client:
    client = session.get(Client, client_id)
    if client is None:
        raise NotFoundError(f'Cliente {client_id} no encontrado')
    return client


def add_points(session, client_id: int, points: int, description: Optional[str] = None,
               reference_id: Optional[int] = None, reference_type: Optional[str] = None) -> LoyaltyTransaction:
    """Manual credit of points; caller commits."""
    if points <= 0:
        raise BusinessLogicError('Los puntos deben ser mayores a 0')
    client = _get_client(session, client_id)
    entry = _record(session, client, LoyaltyTransactionType.EARN, points, description,
                    reference_type, reference_id)
    client.loyalty_points = (client.loyalty_points or 0) + points
    session.flush()
    return entry


def redeem_points(session, client_id: int, points: int, description: Optional[str] = None) -> LoyaltyTransaction:
    """Manual redemption; rejects balances that would go negative. Caller commits."""
    if points <= 0:
        raise BusinessLogicError('Los puntos deben ser mayores a 0')
    client = _get_client(session, client_id)
    validate_redemption(client, points)
    entry = _record(session, client, LoyaltyTransactionType.REDEEM, -points, description)
    client.loyalty_points = client.loyalty_points - points
    session.flush()
    return entry


def ledger_balance(session, client_id: int) -> int:
    """Sum of the client's ledger entries; should equal Client.loyalty_points."""
    total = (session.query(func.coalesce(func.sum(LoyaltyTransaction.points), 0))
             .filter(LoyaltyTransaction.client_id == client_id)
             .scalar())
    return int(total)
