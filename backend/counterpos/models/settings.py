from __future__ import annotations

from ..extensions import db
from counterpos.time_utils import to_utc_z


class ShopSettings(db.Model):
    """
    Single-row shop configuration (id is always 1).

    LOYALTY:
    - points_per_currency_unit: points earned per 1 unit of spend
    - currency_per_point: value of one point when redeemed

    TAX:
    - tax_rate is a percentage, e.g. 15 for 15%
    """
    __tablename__ = "shop_settings"

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False, default="My Shop")
    address = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    loyalty_enabled = db.Column(db.Boolean, nullable=False, default=False)
    points_per_currency_unit = db.Column(db.Float, nullable=False, default=0.0)
    currency_per_point = db.Column(db.Float, nullable=False, default=0.0)

    tax_enabled = db.Column(db.Boolean, nullable=False, default=False)
    tax_rate = db.Column(db.Float, nullable=False, default=0.0)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "loyalty_enabled": self.loyalty_enabled,
            "points_per_currency_unit": self.points_per_currency_unit,
            "currency_per_point": self.currency_per_point,
            "tax_enabled": self.tax_enabled,
            "tax_rate": self.tax_rate,
            "updated_at": to_utc_z(self.updated_at),
        }
