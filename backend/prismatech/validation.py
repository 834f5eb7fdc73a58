# Overview: Error taxonomy and field-level input validation helpers.

from __future__ import annotations

import re
import unicodedata
from decimal import Decimal, InvalidOperation
from typing import Any


# Maximum price: $9,999,999.99
# This prevents database overflow issues and nonsensical prices
MAX_PRICE = Decimal("9999999.99")

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[A-Za-z]{2,}$")
_MX_PHONE_RE = re.compile(r"^(\+52|52)?[0-9]{10}$")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")
_TRUE_STRINGS = {"1", "true", "yes", "on"}


class ApiError(Exception):
    """Base for every error that is rendered as the JSON error envelope."""

    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "Internal server error"

    def __init__(self, message: str | None = None, details: dict | None = None):
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)


class ValidationError(ApiError):
    """400-level input problem."""
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Invalid input"


class AuthenticationError(ApiError):
    status_code = 401
    code = "AUTHENTICATION_ERROR"
    default_message = "Authentication required"


class AuthorizationError(ApiError):
    status_code = 403
    code = "AUTHORIZATION_ERROR"
    default_message = "Insufficient permissions"


class NotFoundError(ApiError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class ConflictError(ApiError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409
    code = "CONFLICT"
    default_message = "Conflict with current state"


class RateLimitError(ApiError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"
    default_message = "Too many requests"


class InternalError(ApiError):
    pass


class FieldErrors:
    """
    Collects per-field failures so a request reports all of them at once
    instead of stopping at the first bad field.
    """

    def __init__(self) -> None:
        self.errors: list[dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.errors.append({"field": field, "message": message})

    def has(self, field: str) -> bool:
        return any(e["field"] == field for e in self.errors)

    def __bool__(self) -> bool:
        return bool(self.errors)

    def messages(self) -> list[str]:
        return [e["message"] for e in self.errors]

    def raise_if_any(self, message: str = "Validation failed") -> None:
        if self.errors:
            raise ValidationError(message, {"errors": list(self.errors)})


def sanitize(value: Any) -> Any:
    """Trim strings and strip control characters, recursing into containers."""
    if isinstance(value, str):
        return _CONTROL_CHARS_RE.sub("", value).strip()
    if isinstance(value, dict):
        return {k: sanitize(v) for k, v in value.items()}
    if isinstance(value, list):
        return [sanitize(v) for v in value]
    return value


def is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    if isinstance(value, (int, float)):
        return value != 0
    return str(value).strip().lower() in _TRUE_STRINGS


def parse_int(
    value: Any,
    field: str,
    errors: FieldErrors,
    *,
    minimum: int | None = None,
    maximum: int | None = None,
) -> int | None:
    """
    Strict integer coercion. Rejects booleans, decimals and scientific
    notation; accepts ints, integral floats and digit strings.
    """
    if isinstance(value, bool):
        errors.add(field, f"{field} must be an integer")
        return None

    result: int | None = None
    if isinstance(value, int):
        result = value
    elif isinstance(value, float):
        if value.is_integer():
            result = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if re.fullmatch(r"-?\d+", stripped):
            result = int(stripped)

    if result is None:
        errors.add(field, f"{field} must be an integer")
        return None
    if minimum is not None and result < minimum:
        errors.add(field, f"{field} must be at least {minimum}")
        return None
    if maximum is not None and result > maximum:
        errors.add(field, f"{field} must be at most {maximum}")
        return None
    return result


def parse_decimal(
    value: Any,
    field: str,
    errors: FieldErrors,
    *,
    minimum: Decimal | int | None = None,
    exclusive_minimum: bool = False,
    maximum: Decimal | int | None = None,
) -> Decimal | None:
    if isinstance(value, bool) or value is None:
        errors.add(field, f"{field} must be a number")
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        errors.add(field, f"{field} must be a number")
        return None
    if not result.is_finite():
        errors.add(field, f"{field} must be a number")
        return None

    if minimum is not None:
        floor = Decimal(minimum)
        if exclusive_minimum and result <= floor:
            errors.add(field, f"{field} must be greater than {floor}")
            return None
        if not exclusive_minimum and result < floor:
            errors.add(field, f"{field} must be at least {floor}")
            return None
    if maximum is not None and result > Decimal(maximum):
        errors.add(field, f"{field} must be at most {maximum}")
        return None
    return result


def require_text(
    payload: dict,
    field: str,
    errors: FieldErrors,
    *,
    min_length: int = 1,
    max_length: int | None = None,
) -> str | None:
    value = payload.get(field)
    if is_blank(value):
        errors.add(field, f"{field} is required")
        return None
    if isinstance(value, (dict, list, bool)):
        errors.add(field, f"{field} must be a string")
        return None
    text = str(value).strip()
    if len(text) < min_length:
        errors.add(field, f"{field} must be at least {min_length} characters")
        return None
    if max_length is not None and len(text) > max_length:
        errors.add(field, f"{field} must be at most {max_length} characters")
        return None
    return text


def optional_text(value: Any, field: str, errors: FieldErrors, *, max_length: int | None = None) -> str | None:
    if is_blank(value):
        return None
    if isinstance(value, (dict, list, bool)):
        errors.add(field, f"{field} must be a string")
        return None
    text = str(value).strip()
    if max_length is not None and len(text) > max_length:
        errors.add(field, f"{field} must be at most {max_length} characters")
        return None
    return text


def check_choice(value: Any, field: str, choices, errors: FieldErrors) -> str | None:
    if value not in choices:
        errors.add(field, f"{field} must be one of: {', '.join(sorted(choices))}")
        return None
    return value


def is_valid_email(value: str) -> bool:
    return bool(_EMAIL_RE.match(value or ""))


def normalize_phone(value: str) -> str:
    return re.sub(r"[\s\-()]", "", value or "")


def is_valid_mexican_phone(value: str) -> bool:
    return bool(_MX_PHONE_RE.match(normalize_phone(value)))


_ACCENT_FOLD = str.maketrans("áéíóúñü", "aeiounu")


def slugify(text: str) -> str:
    """
    Lowercase, fold Spanish accents, replace anything outside [a-z0-9-]
    with dashes, collapse runs of dashes and trim them from the ends.
    """
    s = (text or "").strip().lower().translate(_ACCENT_FOLD)
    s = unicodedata.normalize("NFKD", s).encode("ascii", "ignore").decode("ascii")
    s = re.sub(r"[^a-z0-9-]+", "-", s)
    s = re.sub(r"-{2,}", "-", s)
    return s.strip("-")
