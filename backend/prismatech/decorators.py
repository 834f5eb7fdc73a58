# Overview: Request authentication, role and rate-limit decorators for API routes.

from functools import wraps

from flask import current_app, g, request

from .services import session_service
from .services.auth_service import check_permission
from .services.rate_limit_service import enforce
from .validation import AuthenticationError


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def authenticate_request():
    """
    Resolve the Authorization header to a SessionContext.

    Raises AuthenticationError if the header is missing or malformed, or
    the session is unknown, inactive or expired.
    """
    token = bearer_token()
    if token is None:
        raise AuthenticationError("Authentication token required")

    context = session_service.validate_session(token)
    if context is None:
        raise AuthenticationError("Invalid or expired token")
    return context


def require_auth(f):
    """
    Require a valid bearer token.

    Sets:
    - g.current_user: the authenticated User
    - g.current_session: the UserSession the token belongs to
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        context = authenticate_request()
        g.current_user = context.user
        g.current_session = context.session
        return f(*args, **kwargs)

    return decorated_function


def require_roles(*roles: str):
    """
    Require the authenticated user's role to be one of `roles`.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                raise AuthenticationError()
            check_permission(user, roles)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def rate_limit(action: str, max_requests: int, window_seconds: int):
    """
    Throttle a route per authenticated user, falling back to client IP.

    Disabled when RATE_LIMIT_ENABLED is false.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_app.config.get("RATE_LIMIT_ENABLED", True):
                user = getattr(g, "current_user", None)
                who = user.id if user is not None else request.remote_addr
                limiter = current_app.extensions["rate_limiter"]
                enforce(limiter, f"{action}:{who}", max_requests, window_seconds)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
