"""Refunds blueprint. Cashiers request, managers approve or reject."""
from flask import Blueprint, request, jsonify, g
from pharmapos.database import get_session
from pharmapos.exceptions import BusinessLogicError
from pharmapos.models import UserRole
from pharmapos.services import refund_service
from pharmapos.middleware import require_role

refunds_bp = Blueprint('refunds', __name__, url_prefix='/refunds')


def refund_to_dict(refund):
    return {
        'id': refund.id,
        'sale_id': refund.sale_id,
        'client_id': refund.client_id,
        'refund_reason': refund.refund_reason,
        'refund_method': refund.refund_method,
        'refund_amount': str(refund.refund_amount),
        'status': refund.status.value,
        'user_id': refund.user_id,
        'approved_by': refund.approved_by,
        'processed_at': refund.processed_at.isoformat() if refund.processed_at else None,
        'items': [
            {
                'product_id': item.product_id,
                'quantity': item.quantity,
                'unit_price': str(item.unit_price),
                'total_price': str(item.total_price),
            }
            for item in refund.items
        ],
    }


@refunds_bp.route('', methods=['POST'])
@require_role(UserRole.CASHIER)
def create_refund():
    payload = request.get_json(silent=True) or {}
    try:
        sale_id = int(payload['sale_id'])
    except (KeyError, TypeError, ValueError):
        raise BusinessLogicError('Debe indicar la venta (sale_id)')
    refund = refund_service.create_refund(
        get_session(),
        sale_id,
        payload.get('items') or [],
        payload.get('reason') or '',
        payload.get('refund_method'),
        user_id=g.user.id,
    )
    return jsonify({'status': 'ok', 'refund': refund_to_dict(refund)}), 201


@refunds_bp.route('/<int:refund_id>/approve', methods=['POST'])
@require_role(UserRole.MANAGER)
def approve_refund(refund_id):
    payload = request.get_json(silent=True) or {}
    refund = refund_service.approve_refund(
        get_session(), refund_id, approved_by=g.user.id, location_id=payload.get('location_id'),
    )
    return jsonify({'status': 'ok', 'refund': refund_to_dict(refund)})


@refunds_bp.route('/<int:refund_id>/reject', methods=['POST'])
@require_role(UserRole.MANAGER)
def reject_refund(refund_id):
    refund = refund_service.reject_refund(get_session(), refund_id, approved_by=g.user.id)
    return jsonify({'status': 'ok', 'refund': refund_to_dict(refund)})
