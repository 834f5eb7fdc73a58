# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Secure session management with automatic expiry and revocation.
Tokens are cryptographically secure, hashed in database, and time-limited.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- Tokens hashed with SHA-256 before storage (fast, one-way)
- Absolute expiry SESSION_LIFETIME_HOURS after login (8 hours by default)
- Revocable on logout, password change, or from the sessions listing
- Tracks client IP and user agent for security monitoring
"""

import secrets
import hashlib
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app

from ..extensions import db
from ..models import UserSession, User
from ..time_utils import utcnow


DEFAULT_SESSION_LIFETIME = timedelta(hours=8)


@dataclass
class SessionContext:
    """Authenticated identity resolved from a bearer token."""
    user: User
    session: UserSession


def session_lifetime() -> timedelta:
    hours = current_app.config.get("SESSION_LIFETIME_HOURS")
    return timedelta(hours=hours) if hours else DEFAULT_SESSION_LIFETIME


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    This is the plaintext token sent to client (never stored).
    """
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    """
    Hash token for database storage using SHA-256.

    WHY SHA-256 not bcrypt: Tokens are already high-entropy (unlike passwords).
    """
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_session(
    user: User,
    user_agent: str | None = None,
    ip_address: str | None = None
) -> tuple[UserSession, str]:
    """
    Create new session for user.

    Returns (session_record, plaintext_token).
    Client receives plaintext_token, database stores only the hash.
    """
    plaintext_token = generate_token()
    now = utcnow()

    session = UserSession(
        user_id=user.id,
        token_hash=hash_token(plaintext_token),
        created_at=now,
        last_activity=now,
        expires_at=now + session_lifetime(),
        user_agent=(user_agent or "")[:255] or None,
        ip_address=ip_address,
        is_active=True,
    )
    db.session.add(session)
    db.session.commit()

    return session, plaintext_token


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its session and user.

    Returns None if the token is unknown, inactive or expired, or if the
    user account is no longer active. Touches last_activity on success.
    """
    now = utcnow()
    session = db.session.query(UserSession).filter_by(
        token_hash=hash_token(token),
        is_active=True,
    ).first()

    if not session:
        return None

    if session.expires_at < now:
        session.is_active = False
        db.session.commit()
        return None

    user = session.user
    if not user or not user.is_active:
        session.is_active = False
        db.session.commit()
        return None

    session.last_activity = now
    db.session.commit()

    return SessionContext(user=user, session=session)


def revoke_session(token: str) -> UserSession | None:
    """Deactivate the session for a plaintext token. Returns None if unknown."""
    session = db.session.query(UserSession).filter_by(
        token_hash=hash_token(token),
        is_active=True,
    ).first()
    if not session:
        return None
    deactivate(session)
    return session


def deactivate(session: UserSession) -> None:
    session.is_active = False
    db.session.commit()


def revoke_other_sessions(user_id: int, keep_session_id: int | None) -> int:
    """Deactivate every active session of a user except one. Returns count."""
    query = db.session.query(UserSession).filter(
        UserSession.user_id == user_id,
        UserSession.is_active.is_(True),
    )
    if keep_session_id is not None:
        query = query.filter(UserSession.id != keep_session_id)
    count = query.update({UserSession.is_active: False}, synchronize_session=False)
    db.session.commit()
    return count


def list_active_sessions(user_id: int) -> list[UserSession]:
    return db.session.query(UserSession).filter(
        UserSession.user_id == user_id,
        UserSession.is_active.is_(True),
        UserSession.expires_at > utcnow(),
    ).order_by(UserSession.last_activity.desc()).all()


def get_user_session(user_id: int, session_id: int) -> UserSession | None:
    return db.session.query(UserSession).filter_by(
        id=session_id,
        user_id=user_id,
        is_active=True,
    ).first()


def cleanup_expired_sessions() -> int:
    """Deactivate sessions past their expiry. Returns count."""
    count = db.session.query(UserSession).filter(
        UserSession.is_active.is_(True),
        UserSession.expires_at < utcnow(),
    ).update({UserSession.is_active: False}, synchronize_session=False)
    db.session.commit()
    return count
