"""
portfolio_status/security.py

Access control and credential helpers.

Key rules:
- UI is never trusted; all permission checks are server-side.
- Single role flag: "admin" may edit everything, "user" may read.
- Passwords are stored as werkzeug hashes, never in clear text.

IMPORTANT:
- Decorators must preserve wrapped function metadata to avoid Flask endpoint collisions.
  We use functools.wraps everywhere.
"""

from __future__ import annotations

import re
import secrets
import string
from functools import wraps
from typing import Any, Callable, Tuple

from email_validator import EmailNotValidError, validate_email
from flask import jsonify
from flask_login import current_user
from werkzeug.security import check_password_hash, generate_password_hash

from .exceptions import ValidationError

SPECIAL_CHARACTERS = "@$!%*?&"

# lower + upper + digit + special, at least 8 chars, only those character classes
PASSWORD_REGEX = re.compile(
    r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]{8,}$"
)

PASSWORD_RULES_MESSAGE = (
    "Password must contain at least one lowercase letter, one uppercase letter, "
    "one number, and one special character (@$!%*?&)"
)


# ---------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------
def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """False for any mismatch, including a malformed stored hash or a non-string password."""
    if not password_hash or not isinstance(password, str):
        return False
    try:
        return check_password_hash(password_hash, password)
    except ValueError:
        return False


def validate_password(password: str) -> None:
    """Raise ValidationError unless `password` meets the strength rules."""
    if not isinstance(password, str):
        raise ValidationError("Password must be a string", details={"password": "must be a string"})
    if len(password) < 8:
        raise ValidationError(
            "Password must be at least 8 characters long",
            details={"password": "too short"},
        )
    if not PASSWORD_REGEX.match(password):
        raise ValidationError(PASSWORD_RULES_MESSAGE, details={"password": "too weak"})


def generate_random_password(length: int = 12) -> str:
    """Random password that always satisfies PASSWORD_REGEX."""
    length = max(length, 8)
    pools = [string.ascii_lowercase, string.ascii_uppercase, string.digits, SPECIAL_CHARACTERS]
    chars = [secrets.choice(pool) for pool in pools]
    alphabet = "".join(pools)
    chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
    secrets.SystemRandom().shuffle(chars)
    return "".join(chars)


def validate_email_address(email: str) -> str:
    """
    Check the email format and return it unchanged.

    Lookups are case-sensitive on the stored value, so the normalized form
    returned by email_validator is NOT used.
    """
    try:
        validate_email(email or "", check_deliverability=False)
    except EmailNotValidError as exc:
        raise ValidationError(
            "Please enter a valid email address", details={"email": str(exc)}
        ) from exc
    return email


# ---------------------------------------------------------------------
# Access control
# ---------------------------------------------------------------------
def _forbidden(message: str = "Admin access required") -> Tuple[Any, int]:
    """Consistent JSON 403."""
    return jsonify({"success": False, "message": message}), 403


def is_admin() -> bool:
    """Return True if current user is authenticated and admin."""
    return bool(current_user.is_authenticated and getattr(current_user, "is_admin", False))


def admin_required(view_func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator: admin-only. Stack it under @login_required."""
    @wraps(view_func)
    def wrapper(*args: Any, **kwargs: Any):
        if not is_admin():
            return _forbidden()
        return view_func(*args, **kwargs)

    return wrapper
