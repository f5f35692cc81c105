"""
Inventory Ledger Invariants (authoritative)

Storage:
- InventoryItem is the current-state row, unique per (product_id, location_id).
- InventoryTransaction is the append-only system of record.
- quantity on a transaction is an unsigned magnitude; kind gives the direction.

Business invariants:
- InventoryItem.quantity is never negative (CHECK constraint + service checks).
- Every change to an InventoryItem appends exactly one transaction row for
  that (product, location) pair in the same DB transaction.
- Replaying the located transactions of a product reproduces SUM(quantity)
  of its InventoryItem rows and Product.stock_on_hand.

Legacy:
- location_id is nullable only for RETURN_OUT rows written before returns were
  booked per location. Those rows are repaired by appending located rows that
  reference them via repairs_transaction_id; the legacy row is never edited.
"""

from __future__ import annotations

from sqlalchemy import event
from sqlalchemy.orm import object_session

from ..extensions import db
from ..validation import ConflictError
from millstock.time_utils import to_utc_z

KIND_STOCK_IN = "STOCK_IN"
KIND_STOCK_OUT = "STOCK_OUT"
KIND_ADJUSTMENT = "ADJUSTMENT"
KIND_MILLING_IN = "MILLING_IN"
KIND_MILLING_OUT = "MILLING_OUT"
KIND_RETURN_OUT = "RETURN_OUT"

INBOUND_KINDS = frozenset({KIND_STOCK_IN, KIND_MILLING_IN})
OUTBOUND_KINDS = frozenset({KIND_STOCK_OUT, KIND_MILLING_OUT, KIND_RETURN_OUT})
TRANSACTION_KINDS = INBOUND_KINDS | OUTBOUND_KINDS | {KIND_ADJUSTMENT}


class InventoryItem(db.Model):
    __tablename__ = "inventory_items"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_inventory_items_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_inventory_items_quantity_nonnegative"),
        db.Index("ix_inventory_items_product_created", "product_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("storage_locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    # FIFO/LIFO ordering key (ties broken by id)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("inventory_items", lazy=True))
    location = db.relationship("StorageLocation", backref=db.backref("inventory_items", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<InventoryItem id={self.id} product_id={self.product_id} "
            f"location_id={self.location_id} qty={self.quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "quantity": self.quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryTransaction(db.Model):
    __tablename__ = "inventory_transactions"

    id = db.Column(db.Integer, primary_key=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("storage_locations.id"), nullable=True, index=True)

    kind = db.Column(db.String(16), nullable=False, index=True)

    # Unsigned magnitude; direction comes from kind
    quantity = db.Column(db.Integer, nullable=False)

    unit_price_cents = db.Column(db.Integer, nullable=True)

    purchase_order_id = db.Column(db.Integer, db.ForeignKey("purchase_orders.id"), nullable=True, index=True)
    purchase_order_item_id = db.Column(db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=True)
    purchase_return_id = db.Column(db.Integer, db.ForeignKey("purchase_returns.id"), nullable=True, index=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=True)

    repairs_transaction_id = db.Column(
        db.Integer, db.ForeignKey("inventory_transactions.id"), nullable=True, index=True
    )

    note = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_by = db.Column(db.String(120), nullable=True)

    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_invtx_quantity_unsigned"),
        db.Index("ix_invtx_product_location", "product_id", "location_id"),
        db.Index("ix_invtx_product_kind_created", "product_id", "kind", "created_at"),
        {"sqlite_autoincrement": True},
    )

    product = db.relationship("Product")
    location = db.relationship("StorageLocation")

    @property
    def signed_quantity(self) -> int:
        if self.kind in INBOUND_KINDS:
            return self.quantity
        if self.kind in OUTBOUND_KINDS:
            return -self.quantity
        return 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "kind": self.kind,
            "quantity": self.quantity,
            "signed_quantity": self.signed_quantity,
            "unit_price_cents": self.unit_price_cents,
            "purchase_order_id": self.purchase_order_id,
            "purchase_order_item_id": self.purchase_order_item_id,
            "purchase_return_id": self.purchase_return_id,
            "order_id": self.order_id,
            "delivery_id": self.delivery_id,
            "repairs_transaction_id": self.repairs_transaction_id,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }


@event.listens_for(InventoryTransaction, "before_update")
def _reject_transaction_update(mapper, connection, target):
    session = object_session(target)
    if session is not None and session.is_modified(target, include_collections=False):
        raise ConflictError(f"Inventory transaction {target.id} is immutable")


@event.listens_for(InventoryTransaction, "before_delete")
def _reject_transaction_delete(mapper, connection, target):
    raise ConflictError(f"Inventory transaction {target.id} cannot be deleted")
