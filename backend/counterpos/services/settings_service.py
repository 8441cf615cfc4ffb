"""
Shop settings: the single ShopSettings row (id = 1).

Checkout refuses to run until settings exist (`system init` creates them);
get_shop_settings() never creates the row implicitly.
"""

from __future__ import annotations

from ..extensions import db
from ..models import ShopSettings
from .pricing_service import TaxConfig, LoyaltyConfig

SETTINGS_ID = 1

SETTINGS_MUTABLE_FIELDS = {
    "name", "address", "phone",
    "loyalty_enabled", "points_per_currency_unit", "currency_per_point",
    "tax_enabled", "tax_rate",
}


class SettingsError(Exception):
    """Raised for invalid shop settings."""
    pass


def get_shop_settings() -> ShopSettings | None:
    return db.session.query(ShopSettings).filter_by(id=SETTINGS_ID).first()


def ensure_shop_settings(name: str = "My Shop") -> ShopSettings:
    settings = get_shop_settings()
    if settings is None:
        settings = ShopSettings(id=SETTINGS_ID, name=name)
        db.session.add(settings)
        db.session.commit()
    return settings


def update_shop_settings(patch: dict) -> ShopSettings:
    for key in ("points_per_currency_unit", "currency_per_point", "tax_rate"):
        if key in patch and patch[key] is not None and patch[key] < 0:
            raise SettingsError(f"{key} must not be negative")
    if patch.get("tax_rate") is not None and patch["tax_rate"] > 100:
        raise SettingsError("tax_rate is a percentage and must be at most 100")

    settings = ensure_shop_settings()
    for k, v in patch.items():
        if k in SETTINGS_MUTABLE_FIELDS and v is not None:
            setattr(settings, k, v)

    if settings.loyalty_enabled and settings.currency_per_point <= 0:
        db.session.rollback()
        raise SettingsError("currency_per_point must be positive when loyalty is enabled")

    db.session.commit()
    return settings


def tax_config(settings: ShopSettings) -> TaxConfig:
    return TaxConfig(enabled=bool(settings.tax_enabled), rate=settings.tax_rate or 0.0)


def loyalty_config(settings: ShopSettings) -> LoyaltyConfig:
    return LoyaltyConfig(
        enabled=bool(settings.loyalty_enabled),
        points_per_currency_unit=settings.points_per_currency_unit or 0.0,
        currency_per_point=settings.currency_per_point or 0.0,
    )
