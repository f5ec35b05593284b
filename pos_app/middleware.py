"""Middleware for authentication context."""
from functools import wraps
from flask import session, g, jsonify, current_app
from pos_app.database import get_session
from pos_app.models import AppUser


def load_user():
    """
    Load current user into g (Flask's per-request global).

    Called before each request. Sets g.user, g.user_id and g.user_role
    when the session cookie carries an active user.
    """
    g.user = None
    g.user_id = None
    g.user_role = None

    user_id = session.get('user_id')
    if not user_id:
        return

    db_session = get_session()
    if not db_session:
        return

    user = db_session.query(AppUser).filter_by(id=user_id, active=True).first()
    if user:
        g.user = user
        g.user_id = user.id
        g.user_role = user.role
    else:
        current_app.logger.info(f"Session references unknown or inactive user #{user_id}")
        session.pop('user_id', None)


def require_login(f):
    """
    Decorator: Require user to be logged in.

    API endpoints answer 401 JSON instead of redirecting.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('user') is None:
            return jsonify({
                'status': 'error',
                'code': 'unauthenticated',
                'message': 'Debes iniciar sesión para continuar.'
            }), 401
        return f(*args, **kwargs)
    return decorated_function
