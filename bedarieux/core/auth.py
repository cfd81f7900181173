from dataclasses import dataclass
from functools import wraps
from typing import Optional

from flask import current_app, g, session

from .errors import AuthenticationRequired, PermissionDenied


@dataclass(frozen=True)
class Principal:
    """The authenticated user behind a request, as written to the session by
    the site's auth provider."""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None

    def has_role(self, roles):
        return self.role in roles


def current_principal():
    """Build a Principal from the session, or None for anonymous requests"""
    user_id = session.get('user_id')
    if not user_id:
        return None
    return Principal(
        user_id=str(user_id),
        email=session.get('user_email'),
        role=session.get('user_role'),
    )


def admin_required(f):
    """Decorator for admin API routes: 401 without a session, 403 for other roles.

    The principal is stored on flask.g for the view to pass into services.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = current_principal()
        if principal is None:
            raise AuthenticationRequired()

        allowed = current_app.config.get('NEWSLETTER_ADMIN_ROLES', ['admin'])
        if not principal.has_role(allowed):
            raise PermissionDenied()

        g.principal = principal
        return f(*args, **kwargs)
    return decorated_function


def login_required(f):
    """Decorator for signed-in user routes: 401 without a session email"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        principal = current_principal()
        if principal is None or not principal.email:
            raise AuthenticationRequired()
        g.principal = principal
        return f(*args, **kwargs)
    return decorated_function
