"""
Authentication blueprint (JSON).
Puts the logged-in user's id in the Flask session; middleware loads it into g.user.
"""

from flask import Blueprint, request, jsonify, session, g
import logging
from pharmapos.database import get_session
from pharmapos.exceptions import BusinessLogicError, UnauthorizedError
from pharmapos.models import AppUser
from pharmapos.middleware import require_login

logger = logging.getLogger(__name__)

auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def user_to_dict(user):
    return {
        'id': user.id,
        'email': user.email,
        'full_name': user.full_name,
        'role': user.role,
    }


@auth_bp.route('/login', methods=['POST'])
def login():
    """Body: {email, password}."""
    payload = request.get_json(silent=True) or {}
    email = (payload.get('email') or '').strip()
    password = payload.get('password') or ''

    if not email or not password:
        raise BusinessLogicError('Email y contraseña son requeridos.')

    user = get_session().query(AppUser).filter_by(email=email).first()
    if not user or not user.active or not user.check_password(password):
        logger.warning(f"Failed login for {email}")
        raise UnauthorizedError('Email o contraseña incorrectos.')

    session.clear()
    session['user_id'] = user.id
    session.permanent = True

    logger.info(f"User {user.id} logged in")
    return jsonify({'status': 'ok', 'user': user_to_dict(user)})


@auth_bp.route('/logout', methods=['POST'])
def logout():
    session.clear()
    return jsonify({'status': 'ok'})


@auth_bp.route('/me')
@require_login
def me():
    return jsonify({'status': 'ok', 'user': user_to_dict(g.user)})
