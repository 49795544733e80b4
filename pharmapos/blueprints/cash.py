"""Cash register blueprint: open, close and current session."""
from flask import Blueprint, request, jsonify, g
from pharmapos.database import get_session
from pharmapos.models import UserRole
from pharmapos.services import cash_register_service, settings_service
from pharmapos.services.receipt_service import ReceiptOptions, format_cash_close
from pharmapos.middleware import require_login, require_role

cash_bp = Blueprint('cash', __name__, url_prefix='/cash')


def register_to_dict(register):
    difference = register.difference
    return {
        'id': register.id,
        'user_id': register.user_id,
        'register_name': register.register_name,
        'status': register.status,
        'opening_amount': str(register.opening_amount),
        'closing_amount': str(register.closing_amount) if register.closing_amount is not None else None,
        'total_sales': str(register.total_sales),
        'total_cash': str(register.total_cash),
        'total_card': str(register.total_card),
        'total_other': str(register.total_other),
        'total_transactions': register.total_transactions,
        'expected_cash': str(register.expected_cash),
        'difference': str(difference) if difference is not None else None,
        'opened_at': register.opened_at.isoformat() if register.opened_at else None,
        'closed_at': register.closed_at.isoformat() if register.closed_at else None,
    }


@cash_bp.route('/open', methods=['POST'])
@require_role(UserRole.CASHIER)
def open_register():
    payload = request.get_json(silent=True) or {}
    register = cash_register_service.open_register(
        get_session(),
        g.user.id,
        payload.get('opening_amount', 0),
        payload.get('register_name') or 'Principal',
    )
    return jsonify({'status': 'ok', 'register': register_to_dict(register)}), 201


@cash_bp.route('/<int:register_id>/close', methods=['POST'])
@require_role(UserRole.CASHIER)
def close_register(register_id):
    """Close with the counted cash; the response includes the closing ticket."""
    db_session = get_session()
    payload = request.get_json(silent=True) or {}
    register = cash_register_service.close_register(
        db_session, register_id, payload.get('closing_amount'), payload.get('notes'),
    )
    print_settings = settings_service.get_print_settings(db_session)
    ticket = format_cash_close(
        register,
        settings_service.get_company_info(db_session),
        ReceiptOptions(paper_width_mm=print_settings['paper_width'],
                       cashier_name=register.user.display_name if register.user else None),
    )
    return jsonify({'status': 'ok', 'register': register_to_dict(register), 'ticket': ticket})


@cash_bp.route('/current')
@require_login
def current_register():
    register = cash_register_service.current_session(get_session(), g.user.id)
    return jsonify({'status': 'ok', 'register': register_to_dict(register) if register else None})
