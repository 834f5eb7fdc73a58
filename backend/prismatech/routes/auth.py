# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/prismatech/routes/auth.py
"""
Authentication API routes

- Login by username or email, throttled per client IP
- Bearer session tokens, 8 hour lifetime
- Session listing and revocation for the current user
"""

from flask import Blueprint, g, request

from ..decorators import bearer_token, rate_limit, require_auth
from ..responses import get_json_body, success
from ..services import auth_service, session_service
from ..services.activity_service import log_activity
from ..time_utils import to_utc_z
from ..validation import NotFoundError, ValidationError


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")

LOGIN_MAX_ATTEMPTS = 10
LOGIN_WINDOW_SECONDS = 15 * 60


@auth_bp.post("/login")
@rate_limit("login", LOGIN_MAX_ATTEMPTS, LOGIN_WINDOW_SECONDS)
def login_route():
    """
    Authenticate and open a session.

    Token must be sent as `Authorization: Bearer <token>` on protected routes.
    """
    data = get_json_body()
    identifier = data.get("username") or data.get("email")

    result = auth_service.login(
        identifier,
        data.get("password"),
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    result["expires_at"] = to_utc_z(result["expires_at"])
    log_activity("login", {"session_id": result["session_id"]}, user_id=result["user"]["id"])
    return success(result, "Login successful")


@auth_bp.post("/logout")
def logout_route():
    """Deactivate the presented session, if any. Always succeeds."""
    token = bearer_token()
    if token:
        session = session_service.revoke_session(token)
        if session is not None:
            log_activity("logout", {"session_id": session.id}, user_id=session.user_id)
    return success(message="Logout successful")


@auth_bp.route("/verify", methods=["GET", "POST"])
@require_auth
def verify_route():
    return success({
        "valid": True,
        "user": g.current_user.to_dict(),
        "permissions": auth_service.get_role_permissions(g.current_user.role),
        "expires_at": to_utc_z(g.current_session.expires_at),
    }, "Token is valid")


@auth_bp.post("/change-password")
@require_auth
@rate_limit("change_password", 5, 15 * 60)
def change_password_route():
    data = get_json_body()
    revoked = auth_service.change_password(
        g.current_user,
        data.get("current_password"),
        data.get("new_password"),
        data.get("confirm_password"),
        current_session_id=g.current_session.id,
    )
    log_activity("password_changed", {"sessions_revoked": revoked}, user_id=g.current_user.id)
    return success({"sessions_revoked": revoked}, "Password changed successfully")


@auth_bp.get("/sessions")
@require_auth
def list_sessions_route():
    sessions = session_service.list_active_sessions(g.current_user.id)
    return success({
        "sessions": [s.to_dict(current_session_id=g.current_session.id) for s in sessions],
        "total": len(sessions),
    })


@auth_bp.delete("/sessions/<int:session_id>")
@require_auth
def revoke_session_route(session_id: int):
    if session_id == g.current_session.id:
        raise ValidationError("Cannot revoke the current session; use logout instead")

    session = session_service.get_user_session(g.current_user.id, session_id)
    if session is None:
        raise NotFoundError("Session not found", {"id": session_id})

    session_service.deactivate(session)
    return success({"id": session_id}, "Session revoked")
