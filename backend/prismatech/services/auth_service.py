# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, 12 by default)
- Minimum 8 characters with upper, lower and digit
- Session tokens managed separately (see session_service.py)
"""

import re

import bcrypt
from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import User, ROLES
from ..time_utils import utcnow
from ..validation import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    FieldErrors,
    is_valid_email,
)
from . import session_service


# Resource -> allowed actions per role. Returned at login so clients can
# hide controls the user cannot use; enforcement happens in require_roles.
ROLE_PERMISSIONS: dict[str, dict[str, list[str]]] = {
    "admin": {
        "products": ["create", "read", "update", "delete", "bulk"],
        "categories": ["create", "read", "update", "delete"],
        "customers": ["create", "read", "update", "delete"],
        "sales": ["create", "read", "update", "delete"],
        "inventory": ["create", "read", "update"],
        "reports": ["read"],
        "users": ["create", "read", "update", "delete"],
    },
    "manager": {
        "products": ["create", "read", "update"],
        "categories": ["create", "read", "update"],
        "customers": ["create", "read", "update"],
        "sales": ["create", "read", "update"],
        "inventory": ["create", "read", "update"],
        "reports": ["read"],
    },
    "employee": {
        "products": ["read", "update"],
        "categories": ["read"],
        "customers": ["create", "read"],
        "sales": ["create", "read"],
    },
}


def get_role_permissions(role: str) -> dict[str, list[str]]:
    return ROLE_PERMISSIONS.get(role, {})


def check_permission(user: User, allowed_roles) -> None:
    """Raise AuthorizationError when the user's role is not allowed."""
    if user.role not in allowed_roles:
        raise AuthorizationError(
            "Insufficient permissions for this operation",
            {"required_roles": list(allowed_roles), "user_role": user.role},
        )


def validate_password_strength(password: str) -> list[str]:
    """
    Return the list of unmet password requirements (empty when acceptable).

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    """
    problems = []
    if len(password) < 8:
        problems.append("Password must be at least 8 characters long")
    if not re.search(r'[A-Z]', password):
        problems.append("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        problems.append("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        problems.append("Password must contain at least one digit")
    return problems


def hash_password(password: str) -> str:
    """Hash password using bcrypt; the cost factor comes from config."""
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def create_user(
    username: str,
    email: str,
    password: str,
    role: str = "employee",
    full_name: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises ValidationError for bad input and ConflictError when the
    username or email is taken.
    """
    errors = FieldErrors()
    if not username or len(username) < 3:
        errors.add("username", "username must be at least 3 characters")
    if not is_valid_email(email):
        errors.add("email", "email is not a valid address")
    if role not in ROLES:
        errors.add("role", f"role must be one of: {', '.join(ROLES)}")
    for problem in validate_password_strength(password or ""):
        errors.add("password", problem)
    errors.raise_if_any("Invalid user data")

    existing = db.session.query(User).filter(
        or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        full_name=full_name,
        status="active",
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(identifier: str, password: str) -> User:
    """
    Check credentials given a username or email.

    Raises AuthenticationError on unknown user or wrong password and
    AuthorizationError when the account is inactive.
    """
    user = db.session.query(User).filter(
        or_(User.username == identifier, User.email == identifier)
    ).first()

    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid credentials")

    if not user.is_active:
        raise AuthorizationError("User account is inactive")

    return user


def login(identifier: str, password: str, *, user_agent: str | None, ip_address: str | None) -> dict:
    errors = FieldErrors()
    if not identifier:
        errors.add("username", "username or email is required")
    elif not isinstance(identifier, str):
        errors.add("username", "username must be a string")
    if not password:
        errors.add("password", "password is required")
    elif not isinstance(password, str):
        errors.add("password", "password must be a string")
    errors.raise_if_any("Invalid login credentials")

    user = authenticate(identifier, password)
    user.last_login = utcnow()
    session, token = session_service.create_session(user, user_agent=user_agent, ip_address=ip_address)

    return {
        "token": token,
        "token_type": "Bearer",
        "expires_at": session.expires_at,
        "session_id": session.id,
        "user": user.to_dict(),
        "permissions": get_role_permissions(user.role),
    }


def change_password(
    user: User,
    current_password: str | None,
    new_password: str | None,
    confirm_password: str | None,
    current_session_id: int,
) -> int:
    """
    Change a user's password and deactivate their other sessions.

    Returns the number of sessions revoked.
    """
    errors = FieldErrors()
    for name, value in (("current_password", current_password), ("new_password", new_password)):
        if not value:
            errors.add(name, f"{name} is required")
        elif not isinstance(value, str):
            errors.add(name, f"{name} must be a string")
    if confirm_password is not None and not isinstance(confirm_password, str):
        errors.add("confirm_password", "confirm_password must be a string")
    errors.raise_if_any("Invalid password fields")

    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    for problem in validate_password_strength(new_password):
        errors.add("new_password", problem)
    if new_password == current_password:
        errors.add("new_password", "New password must differ from the current one")
    if confirm_password is not None and confirm_password != new_password:
        errors.add("confirm_password", "Password confirmation does not match")
    errors.raise_if_any("Invalid new password")

    user.password_hash = hash_password(new_password)
    db.session.commit()

    return session_service.revoke_other_sessions(user.id, keep_session_id=current_session_id)


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id).all()


def ensure_user(username: str, email: str, password: str, role: str, full_name: str | None = None) -> tuple[User, bool]:
    """Return (user, created). Used by bootstrap commands; idempotent."""
    user = db.session.query(User).filter_by(username=username).first()
    if user:
        return user, False
    return create_user(username, email, password, role=role, full_name=full_name), True
