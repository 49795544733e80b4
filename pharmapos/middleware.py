"""Middleware for authentication and role checks on the JSON API."""
from functools import wraps
from flask import session, g, jsonify, current_app
from pharmapos.database import get_session
from pharmapos.models import AppUser, UserRole


def load_current_user():
    """
    Load the logged-in user into g.

    Called before each request. Sets g.user and g.user_role when the
    session carries the id of an active user.
    """
    g.user = None
    g.user_role = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    if not db_session:
        return

    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if user is None:
        session.pop('user_id', None)
        return

    g.user = user
    g.user_role = user.role


def require_login(f):
    """Decorator: 401 JSON when nobody is logged in."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({'status': 'error', 'message': 'Debes iniciar sesión.'}), 401
        return f(*args, **kwargs)
    return decorated_function


def require_role(min_role=UserRole.CASHIER):
    """
    Decorator: require `min_role` or a more privileged one.

    Roles hierarchy: admin > manager > cashier > viewer
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = g.get('user')
            if user is None:
                return jsonify({'status': 'error', 'message': 'Debes iniciar sesión.'}), 401
            if not user.has_role_at_least(min_role):
                current_app.logger.warning(
                    f"User {user.id} ({user.role}) denied on role {UserRole(min_role).value}"
                )
                return jsonify({
                    'status': 'error',
                    'message': f'Necesitas rol de {UserRole(min_role).value} o superior.',
                }), 403
            return f(*args, **kwargs)
        return decorated_function
    return decorator
