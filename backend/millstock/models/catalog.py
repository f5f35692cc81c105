from __future__ import annotations

from ..extensions import db
from millstock.time_utils import to_utc_z


class Supplier(db.Model):
    """
    Supplier of unmilled rice and other stock.

    Purchase orders carry exactly one supplier; products may name a default
    supplier used for reorders and copied onto derived milled products.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False, unique=True)

    contact_name = db.Column(db.String(255), nullable=True)
    contact_email = db.Column(db.String(255), nullable=True)
    contact_phone = db.Column(db.String(64), nullable=True)
    address = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "contact_name": self.contact_name,
            "contact_email": self.contact_email,
            "contact_phone": self.contact_phone,
            "address": self.address,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data (a rice variety, milled or unmilled).

    STOCK AGGREGATES:
    stock_on_hand, stock_allocated and stock_on_order are caches of the
    inventory ledger. They are only ever changed by the ledger services in the
    same DB transaction as the InventoryItem rows and InventoryTransaction log
    they summarise. Quiescent invariant:

        stock_on_hand == SUM(InventoryItem.quantity WHERE product_id = id)

    MILLING:
    is_milled_rice=False marks unmilled stock that can be fed to the mill.
    milling_yield_rate is the percentage of input weight recovered as milled
    output; it is copied onto the derived "Milled {name}" product.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("name", "is_milled_rice", name="uq_products_name_milled"),
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_hidden", "is_hidden"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    description = db.Column(db.Text, nullable=True)

    # Authoritative storage in cents (frontend may only format for display)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_milled_rice = db.Column(db.Boolean, nullable=False, default=False)
    milling_yield_rate = db.Column(db.Numeric(5, 2), nullable=True)

    stock_on_hand = db.Column(db.Integer, nullable=False, default=0)
    stock_allocated = db.Column(db.Integer, nullable=False, default=0)
    stock_on_order = db.Column(db.Integer, nullable=False, default=0)
    reorder_point = db.Column(db.Integer, nullable=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    is_hidden = db.Column(db.Boolean, nullable=False, default=False)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} milled={self.is_milled_rice}>"

    @property
    def is_low_stock(self) -> bool:
        return self.reorder_point is not None and self.stock_on_hand <= self.reorder_point

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "description": self.description,
            "price_cents": self.price_cents,
            "is_milled_rice": self.is_milled_rice,
            "milling_yield_rate": (
                str(self.milling_yield_rate) if self.milling_yield_rate is not None else None
            ),
            "stock_on_hand": self.stock_on_hand,
            "stock_allocated": self.stock_allocated,
            "stock_on_order": self.stock_on_order,
            "reorder_point": self.reorder_point,
            "is_low_stock": self.is_low_stock,
            "supplier_id": self.supplier_id,
            "is_hidden": self.is_hidden,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StorageLocation(db.Model):
    """
    Physical place stock can sit: WAREHOUSE > ZONE > SHELF > BIN.

    Locations form a tree through parent_id (cycles are rejected by
    location_service). Deletion is soft (is_active=False) and refused while
    any InventoryItem at the location still holds stock.
    """
    __tablename__ = "storage_locations"
    __table_args__ = (
        db.Index("ix_storage_locations_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    type = db.Column(db.String(16), nullable=False)
    description = db.Column(db.Text, nullable=True)

    parent_id = db.Column(db.Integer, db.ForeignKey("storage_locations.id"), nullable=True, index=True)
    capacity = db.Column(db.Integer, nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    parent = db.relationship(
        "StorageLocation", remote_side=[id], backref=db.backref("children", lazy=True)
    )

    def __repr__(self) -> str:
        return f"<StorageLocation id={self.id} code={self.code!r} type={self.type}>"

    def to_dict(self, *, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "type": self.type,
            "description": self.description,
            "parent_id": self.parent_id,
            "capacity": self.capacity,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
        if include_children:
            data["children"] = [
                {"id": c.id, "name": c.name, "code": c.code} for c in self.children
            ]
        return data


class PriceHistory(db.Model):
    """
    One row per change of Product.price_cents.

    Written by products_service in the same DB transaction as the price
    update; never edited afterwards.
    """
    __tablename__ = "price_history"
    __table_args__ = (
        db.Index("ix_price_history_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    old_price_cents = db.Column(db.Integer, nullable=False)
    new_price_cents = db.Column(db.Integer, nullable=False)

    changed_by = db.Column(db.String(120), nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "old_price_cents": self.old_price_cents,
            "new_price_cents": self.new_price_cents,
            "changed_by": self.changed_by,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
        }
