"""Quotes blueprint (presupuestos)."""
from flask import Blueprint, request, jsonify
from pharmapos.database import get_session
from pharmapos.exceptions import BusinessLogicError
from pharmapos.models import UserRole
from pharmapos.services import quote_service, sales_service
from pharmapos.middleware import require_role

quotes_bp = Blueprint('quotes', __name__, url_prefix='/quotes')


@quotes_bp.route('', methods=['POST'])
@require_role(UserRole.CASHIER)
def create_quote():
    """Body: {items: [{product_id, quantity, discount_amount?}], client_id?, notes?, valid_days?}"""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    cart = sales_service.build_cart(db_session, payload.get('items') or [])

    valid_days = payload.get('valid_days')
    if valid_days is not None:
        try:
            valid_days = int(valid_days)
        except (TypeError, ValueError):
            raise BusinessLogicError('valid_days debe ser un número entero')

    quote = quote_service.create_quote(
        db_session, cart,
        client_id=payload.get('client_id'),
        notes=payload.get('notes'),
        valid_days=valid_days,
    )
    return jsonify({'status': 'ok', 'quote': quote_service.quote_to_dict(quote)}), 201


@quotes_bp.route('/<int:quote_id>/status', methods=['POST'])
@require_role(UserRole.CASHIER)
def update_status(quote_id):
    payload = request.get_json(silent=True) or {}
    if not payload.get('status'):
        raise BusinessLogicError('Debe indicar el nuevo estado')
    quote = quote_service.update_quote_status(get_session(), quote_id, payload['status'])
    return jsonify({'status': 'ok', 'quote': quote_service.quote_to_dict(quote)})
