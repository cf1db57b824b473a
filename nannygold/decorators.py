from functools import wraps

from flask import abort
from flask_login import current_user

from nannygold.extensions import login_manager

ADMIN_ROLES = ("admin", "super_admin")


def role_required(*roles):
    """Reject the request unless the session user holds one of ``roles``."""

    def wrapper(func):
        @wraps(func)
        def inner(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()
            if current_user.role not in roles:
                abort(403)
            return func(*args, **kwargs)

        return inner

    return wrapper


admin_required = role_required(*ADMIN_ROLES)
