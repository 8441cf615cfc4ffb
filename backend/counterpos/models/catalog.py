from __future__ import annotations

from ..extensions import db
from counterpos.time_utils import to_utc_z


addon_group_members = db.Table(
    "addon_group_members",
    db.Column("addon_group_id", db.Integer, db.ForeignKey("addon_groups.id"), primary_key=True),
    db.Column("addon_id", db.Integer, db.ForeignKey("addons.id"), primary_key=True),
)

product_addon_groups = db.Table(
    "product_addon_groups",
    db.Column("product_id", db.Integer, db.ForeignKey("products.id"), primary_key=True),
    db.Column("addon_group_id", db.Integer, db.ForeignKey("addon_groups.id"), primary_key=True),
)

recipe_addon_groups = db.Table(
    "recipe_addon_groups",
    db.Column("recipe_id", db.Integer, db.ForeignKey("recipes.id"), primary_key=True),
    db.Column("addon_group_id", db.Integer, db.ForeignKey("addon_groups.id"), primary_key=True),
)


class Category(db.Model):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name}


class Product(db.Model):
    """
    Sellable product or raw material.

    Raw materials (is_raw_material=True) are never put in a cart; they are
    consumed through recipes or adjusted by purchases.

    stock is fractional so that recipes can consume e.g. 0.1 kg.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("barcode", name="uq_products_barcode"),
        db.Index("ix_products_category_name", "category_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False, default=0.0)
    wholesale_price = db.Column(db.Float, nullable=True)
    cost = db.Column(db.Float, nullable=False, default=0.0)

    stock = db.Column(db.Float, nullable=False, default=0.0)
    unit = db.Column(db.String(32), nullable=False, default="piece")
    is_raw_material = db.Column(db.Boolean, nullable=False, default=False, index=True)
    low_stock_threshold = db.Column(db.Float, nullable=True)
    barcode = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    addon_groups = db.relationship("AddonGroup", secondary=product_addon_groups, lazy="selectin")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    @property
    def is_low_stock(self) -> bool:
        if self.low_stock_threshold is None:
            return False
        return self.stock <= self.low_stock_threshold

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "price": self.price,
            "wholesale_price": self.wholesale_price,
            "cost": self.cost,
            "stock": self.stock,
            "unit": self.unit,
            "is_raw_material": self.is_raw_material,
            "low_stock_threshold": self.low_stock_threshold,
            "is_low_stock": self.is_low_stock,
            "barcode": self.barcode,
            "addon_group_ids": [g.id for g in self.addon_groups],
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Recipe(db.Model):
    """
    Sellable item that consumes raw materials.

    Each ingredient quantity is consumed per ONE unit sold.
    """
    __tablename__ = "recipes"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)
    price = db.Column(db.Float, nullable=False, default=0.0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    category = db.relationship("Category", backref=db.backref("recipes", lazy=True))
    ingredients = db.relationship(
        "RecipeIngredient",
        backref="recipe",
        lazy="selectin",
        cascade="all, delete-orphan",
        order_by="RecipeIngredient.id",
    )
    addon_groups = db.relationship("AddonGroup", secondary=recipe_addon_groups, lazy="selectin")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "category_id": self.category_id,
            "name": self.name,
            "price": self.price,
            "ingredients": [i.to_dict() for i in self.ingredients],
            "addon_group_ids": [g.id for g in self.addon_groups],
            "created_at": to_utc_z(self.created_at),
        }


class RecipeIngredient(db.Model):
    __tablename__ = "recipe_ingredients"
    __table_args__ = (
        db.UniqueConstraint("recipe_id", "product_id", name="uq_recipe_ingredients_product"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    recipe_id = db.Column(db.Integer, db.ForeignKey("recipes.id"), nullable=False, index=True)
    # Not a hard FK: historical recipes may outlive a deleted raw material
    product_id = db.Column(db.Integer, nullable=False, index=True)
    quantity = db.Column(db.Float, nullable=False)

    def to_dict(self) -> dict:
        return {"product_id": self.product_id, "quantity": self.quantity}


class Addon(db.Model):
    """A named price delta applied on top of a cart line's unit price."""
    __tablename__ = "addons"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    price = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "price": self.price}


class AddonGroup(db.Model):
    """
    Bundle of addons with a selection policy.

    SELECTION TYPES:
    - single: at most one addon of the group per cart line
    - multiple: any subset
    """
    __tablename__ = "addon_groups"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    selection_type = db.Column(db.String(16), nullable=False, default="multiple")

    addons = db.relationship("Addon", secondary=addon_group_members, lazy="selectin", order_by="Addon.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "selection_type": self.selection_type,
            "addon_ids": [a.id for a in self.addons],
        }
