import functools

from flask import current_app, jsonify
from flask_login import current_user, login_required


def is_admin(user) -> bool:
    if not user or not user.is_authenticated:
        return False
    return bool(user.is_admin) or user.id in current_app.config.get('ADMIN_USER_IDS', [])


def admin_required(view):
    """Answer 403 unless the logged-in user has admin capability."""
    @functools.wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not is_admin(current_user):
            return jsonify({'error': 'Admin access required'}), 403
        return view(*args, **kwargs)
    return wrapper
