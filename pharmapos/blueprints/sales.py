"""Sales blueprint: checkout, history and receipts (JSON API)."""
from datetime import datetime
from flask import Blueprint, request, jsonify, current_app, g, Response
from pharmapos.database import get_session
from pharmapos.exceptions import BusinessLogicError, PosError
from pharmapos.models import Client, UserRole
from pharmapos.services import cash_register_service, sales_service, settings_service
from pharmapos.services.receipt_service import ReceiptOptions, format_receipt
from pharmapos.blueprints.metrics import record_checkout
from pharmapos.middleware import require_login, require_role

sales_bp = Blueprint('sales', __name__, url_prefix='/sales')


def _parse_date(value, field_name):
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise BusinessLogicError(f'Fecha inválida en {field_name}: {value}')


def _receipt_options(db_session, sale, **overrides):
    print_settings = settings_service.get_print_settings(db_session)
    options = ReceiptOptions(
        paper_width_mm=print_settings['paper_width'],
        footer=print_settings['footer_text'],
        cashier_name=sale.cashier.display_name if sale.cashier else None,
        tax_rate=settings_service.get_tax_rate(db_session),
    )
    for key, value in overrides.items():
        setattr(options, key, value)
    return options


def sale_to_dict(sale):
    payment = sale.payments[0] if sale.payments else None
    return {
        'id': sale.id,
        'sale_number': sale.sale_number,
        'client_id': sale.client_id,
        'cashier_id': sale.cashier_id,
        'subtotal_amount': str(sale.subtotal_amount),
        'discount_amount': str(sale.discount_amount),
        'tax_amount': str(sale.tax_amount),
        'total_amount': str(sale.total_amount),
        'payment_method': sale.payment_method,
        'points_redeemed': sale.points_redeemed,
        'status': sale.status.value,
        'notes': sale.notes,
        'created_at': sale.created_at.isoformat() if sale.created_at else None,
        'amount_received': str(payment.amount_received) if payment and payment.amount_received is not None else None,
        'change_amount': str(payment.change_amount) if payment and payment.change_amount is not None else None,
        'items': [
            {
                'product_id': item.product_id,
                'product_name': item.product.name if item.product else None,
                'quantity': item.quantity,
                'unit_price': str(item.unit_price),
                'discount_amount': str(item.discount_amount),
                'total_price': str(item.total_price),
            }
            for item in sale.items
        ],
    }


@sales_bp.route('/checkout', methods=['POST'])
@require_role(UserRole.CASHIER)
def checkout():
    """
    Run a checkout.

    Body: {items: [{product_id, quantity, discount_amount?}], payment_method,
    client_id?, points_redeemed?, location_id?, amount_received?, notes?,
    register_session_id?}. Without register_session_id the cashier's open
    register, if any, gets the sale.

    201 with status "success", or "partial" plus the issues when a
    best-effort step (loyalty, inventory) failed.
    """
    db_session = get_session()
    payload = request.get_json(silent=True) or {}

    try:
        cart = sales_service.build_cart(db_session, payload.get('items') or [])

        register_session_id = payload.get('register_session_id')
        if register_session_id is None:
            register = cash_register_service.current_session(db_session, g.user.id)
            register_session_id = register.id if register else None

        result = sales_service.process_sale(
            db_session,
            cart,
            payload.get('payment_method'),
            client_id=payload.get('client_id'),
            points_redeemed=payload.get('points_redeemed', 0),
            location_id=payload.get('location_id'),
            cashier_id=g.user.id,
            notes=payload.get('notes'),
            amount_received=payload.get('amount_received'),
            register_session_id=register_session_id,
        )
    except PosError:
        record_checkout('failed')
        raise

    record_checkout(result.status, result.issues)
    if result.issues:
        current_app.logger.warning(
            f"Sale {result.sale.sale_number} completed with issues: "
            f"{[issue.to_dict() for issue in result.issues]}"
        )

    client = db_session.get(Client, result.sale.client_id) if result.sale.client_id else None
    options = _receipt_options(db_session, result.sale,
                               amount_received=result.amount_received, change=result.change_amount)
    body = result.to_dict()
    body['receipt'] = format_receipt(result.sale, client, settings_service.get_company_info(db_session),
                                     options, items=result.lines)
    return jsonify(body), 201


@sales_bp.route('/')
@require_login
def list_sales():
    db_session = get_session()
    try:
        limit = min(int(request.args.get('limit', 50)), 500)
    except ValueError:
        raise BusinessLogicError('limit debe ser un número entero')
    sales = sales_service.list_sales(
        db_session,
        start=_parse_date(request.args.get('start'), 'start'),
        end=_parse_date(request.args.get('end'), 'end'),
        limit=limit,
    )
    return jsonify({'status': 'ok', 'sales': [sale_to_dict(sale) for sale in sales]})


@sales_bp.route('/<int:sale_id>')
@require_login
def sale_detail(sale_id):
    sale = sales_service.get_sale(get_session(), sale_id)
    return jsonify({'status': 'ok', 'sale': sale_to_dict(sale)})


@sales_bp.route('/<int:sale_id>/receipt')
@require_login
def sale_receipt(sale_id):
    """Plain-text ticket ready to send to the printer."""
    db_session = get_session()
    sale = sales_service.get_sale(db_session, sale_id)
    payment = sale.payments[0] if sale.payments else None
    options = _receipt_options(
        db_session, sale,
        amount_received=payment.amount_received if payment else None,
        change=payment.change_amount if payment else None,
    )
    text = format_receipt(sale, sale.client, settings_service.get_company_info(db_session), options)
    return Response(text, mimetype='text/plain')
