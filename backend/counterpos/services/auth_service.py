"""
PIN authentication and user management.

WHY: Every sale, cancellation and shift is attributed to the acting user.
Cashiers log in with a short numeric PIN at a shared terminal.

SECURITY NOTES:
- PINs hashed with bcrypt (cost factor 12)
- 4 to 8 digits
- Login looks up the user by name, then checks the PIN
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re

import bcrypt

from ..extensions import db
from ..models import User
from counterpos.permissions import ALL_PERMISSIONS, VALID_ROLES
from counterpos.time_utils import utcnow


PIN_PATTERN = re.compile(r"^\d{4,8}$")


class AuthError(Exception):
    """Raised for user management errors."""
    pass


class PinValidationError(AuthError):
    """Raised when a PIN doesn't meet format requirements."""
    pass


def validate_pin(pin: str) -> None:
    if not pin or not PIN_PATTERN.match(pin):
        raise PinValidationError("PIN must be 4 to 8 digits")


def hash_pin(pin: str) -> str:
    """Validate and hash a PIN for storage."""
    validate_pin(pin)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(pin.encode("utf-8"), salt).decode("utf-8")


def verify_pin(pin: str, pin_hash: str) -> bool:
    """
    Check a PIN against its bcrypt hash.

    A malformed hash counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(pin.encode("utf-8"), pin_hash.encode("utf-8"))
    except ValueError:
        return False


def get_user(user_id: int) -> User | None:
    return db.session.query(User).filter_by(id=user_id).first()


def get_user_by_name(name: str) -> User | None:
    return db.session.query(User).filter_by(name=name).first()


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.name.asc()).all()


def _check_role(role: str, permissions: list[str] | None) -> list[str]:
    if role not in VALID_ROLES:
        raise AuthError(f"Invalid role: {role}. Must be one of {VALID_ROLES}")
    permissions = list(permissions or [])
    unknown = sorted(set(permissions) - ALL_PERMISSIONS)
    if unknown:
        raise AuthError(f"Unknown permissions: {unknown}")
    return permissions


def create_user(
    name: str,
    pin: str,
    role: str = "cashier",
    permissions: list[str] | None = None,
) -> User:
    """
    Create a user with a bcrypt-hashed PIN.

    Raises:
        AuthError: name taken, unknown role or permission code
        PinValidationError: PIN not 4 to 8 digits
    """
    name = (name or "").strip()
    if not name:
        raise AuthError("User name is required")
    permissions = _check_role(role, permissions)

    if get_user_by_name(name):
        raise AuthError(f"User '{name}' already exists")

    user = User(
        name=name,
        role=role,
        pin_hash=hash_pin(pin),
        permissions=permissions,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def update_user(
    user_id: int,
    *,
    name: str | None = None,
    role: str | None = None,
    permissions: list[str] | None = None,
    pin: str | None = None,
    is_active: bool | None = None,
) -> User:
    user = get_user(user_id)
    if not user:
        raise AuthError("User not found")

    if name is not None:
        name = name.strip()
        if not name:
            raise AuthError("User name is required")
        other = get_user_by_name(name)
        if other and other.id != user.id:
            raise AuthError(f"User '{name}' already exists")
        user.name = name

    if role is not None or permissions is not None:
        new_role = role if role is not None else user.role
        user.permissions = _check_role(new_role, permissions if permissions is not None else user.permissions)
        user.role = new_role

    if pin is not None:
        user.pin_hash = hash_pin(pin)
    if is_active is not None:
        user.is_active = is_active

    db.session.commit()
    return user


def authenticate(name: str, pin: str) -> User | None:
    """
    Return the user if the name and PIN match an active account.

    Updates last_login_at on success.
    """
    user = get_user_by_name(name)
    if not user or not user.is_active:
        return None
    if not verify_pin(pin, user.pin_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user
