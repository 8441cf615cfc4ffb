# Overview: Input coercion for the JSON routes; the core services assume validated numbers.

from __future__ import annotations

import math
from typing import Any


class ValidationError(ValueError):
    """400-level input problem."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate barcode)."""


def parse_number(
    value: Any,
    field: str,
    *,
    minimum: float | None = 0.0,
    allow_zero: bool = True,
    default: float | None = None,
) -> float:
    """
    Coerce a JSON value to float.

    Rejects booleans, NaN/inf, non-numeric strings and values below
    `minimum` (negatives by default).
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")

    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    else:
        raise ValidationError(f"{field} must be a number")

    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field} must be a finite number")
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum:g}")
    if not allow_zero and number == 0:
        raise ValidationError(f"{field} must not be zero")
    return number


def parse_int(value: Any, field: str, *, minimum: int | None = 0, default: int | None = None) -> int:
    """Strict integer coercion: rejects floats with a fractional part and scientific notation."""
    if value is None or (isinstance(value, str) and not value.strip()):
        if default is not None:
            return default
        raise ValidationError(f"{field} is required")

    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer, not a decimal")
        number = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if "e" in stripped.lower() or "." in stripped:
            raise ValidationError(f"{field} must be a plain integer")
        try:
            number = int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum}")
    return number


def require_text(value: Any, field: str, *, max_length: int = 255) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text


def optional_text(value: Any, field: str, *, max_length: int = 255) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    text = value.strip()
    if len(text) > max_length:
        raise ValidationError(f"{field} must be at most {max_length} characters")
    return text or None


def parse_choice(value: Any, field: str, choices: tuple[str, ...], *, default: str | None = None) -> str:
    if value is None and default is not None:
        return default
    if value not in choices:
        raise ValidationError(f"{field} must be one of {', '.join(choices)}")
    return value
