from __future__ import annotations

from ..extensions import db
from millstock.time_utils import to_utc_z


PO_STATUS_PENDING = "Pending"
PO_STATUS_ORDERED = "Ordered"
PO_STATUS_PARTIAL = "Partial"
PO_STATUS_COMPLETED = "Completed"
PO_STATUS_CANCELLED = "Cancelled"

LINE_STATUS_PENDING = "Pending"
LINE_STATUS_PARTIAL = "Partial"
LINE_STATUS_COMPLETED = "Completed"
LINE_STATUS_BACKORDERED = "Backordered"

BACKORDER_OPEN = "Open"
BACKORDER_REMINDED = "Reminded"
BACKORDER_PARTIAL = "Partial"
BACKORDER_CLOSED = "Closed"
BACKORDER_FULFILLED = "Fulfilled"

# Statuses whose quantity still counts toward a line's shortfall
UNSETTLED_BACKORDER_STATUSES = (BACKORDER_OPEN, BACKORDER_REMINDED, BACKORDER_PARTIAL)

PAYMENT_TYPES = ("FULL", "MONTHLY")


class PurchaseOrder(db.Model):
    """
    Purchase order against one supplier.

    status is derived: after every receive/return it is recomputed from the
    line items (see receive_service.derive_po_status). Only Pending -> Ordered
    and -> Cancelled are explicit transitions.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.Index("ix_purchase_orders_status_date", "status", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    status = db.Column(db.String(16), nullable=False, default=PO_STATUS_PENDING)

    # FULL or MONTHLY; monthly schedules are produced outside this service
    payment_type = db.Column(db.String(16), nullable=False, default="FULL")
    monthly_terms = db.Column(db.Integer, nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)

    note = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        backref="purchase_order",
        lazy=True,
        order_by="PurchaseOrderItem.id",
    )

    @property
    def total_cents(self) -> int:
        return sum(item.ordered_qty * item.price_cents for item in self.items)

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "order_date": to_utc_z(self.order_date),
            "status": self.status,
            "payment_type": self.payment_type,
            "monthly_terms": self.monthly_terms,
            "due_date": to_utc_z(self.due_date),
            "note": self.note,
            "total_cents": self.total_cents,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class PurchaseOrderItem(db.Model):
    """
    One product line on a purchase order.

    received_qty never exceeds ordered_qty (receiving clamps), and
    returned_qty never exceeds received_qty (CHECK constraint).
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("ordered_qty > 0", name="ck_po_items_ordered_positive"),
        db.CheckConstraint("received_qty >= 0", name="ck_po_items_received_nonnegative"),
        db.CheckConstraint("returned_qty <= received_qty", name="ck_po_items_returned_le_received"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    ordered_qty = db.Column(db.Integer, nullable=False)
    received_qty = db.Column(db.Integer, nullable=False, default=0)
    returned_qty = db.Column(db.Integer, nullable=False, default=0)

    # Unit cost in cents
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    line_status = db.Column(db.String(16), nullable=False, default=LINE_STATUS_PENDING)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product")
    backorders = db.relationship(
        "Backorder",
        backref="purchase_order_item",
        lazy=True,
        order_by="Backorder.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def shortfall(self) -> int:
        return max(0, self.ordered_qty - self.received_qty)

    @property
    def returnable_qty(self) -> int:
        return self.received_qty - self.returned_qty

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "ordered_qty": self.ordered_qty,
            "received_qty": self.received_qty,
            "returned_qty": self.returned_qty,
            "price_cents": self.price_cents,
            "line_status": self.line_status,
            "shortfall": self.shortfall,
        }


class Backorder(db.Model):
    __tablename__ = "backorders"
    __table_args__ = (
        db.CheckConstraint("quantity >= 0", name="ck_backorders_quantity_nonnegative"),
        db.Index("ix_backorders_item_status", "purchase_order_item_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_item_id = db.Column(
        db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=False, index=True
    )

    # Remaining shortfall still expected from the supplier
    quantity = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default=BACKORDER_OPEN)

    expected_date = db.Column(db.DateTime(timezone=True), nullable=True)
    reminded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    @property
    def is_unsettled(self) -> bool:
        return self.status in UNSETTLED_BACKORDER_STATUSES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_item_id": self.purchase_order_item_id,
            "quantity": self.quantity,
            "status": self.status,
            "expected_date": to_utc_z(self.expected_date),
            "reminded_at": to_utc_z(self.reminded_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class PurchaseReturn(db.Model):
    __tablename__ = "purchase_returns"
    __table_args__ = ({"sqlite_autoincrement": True},)

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer, db.ForeignKey("purchase_orders.id"), nullable=False, index=True
    )
    reason = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.String(120), nullable=True)

    purchase_order = db.relationship("PurchaseOrder", backref=db.backref("returns", lazy=True))
    items = db.relationship("PurchaseReturnItem", backref="purchase_return", lazy=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "reason": self.reason,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
            "items": [item.to_dict() for item in self.items],
        }


class PurchaseReturnItem(db.Model):
    __tablename__ = "purchase_return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_return_id = db.Column(
        db.Integer, db.ForeignKey("purchase_returns.id"), nullable=False, index=True
    )
    purchase_order_item_id = db.Column(
        db.Integer, db.ForeignKey("purchase_order_items.id"), nullable=False, index=True
    )

    quantity = db.Column(db.Integer, nullable=False)
    note = db.Column(db.String(255), nullable=True)

    purchase_order_item = db.relationship("PurchaseOrderItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_return_id": self.purchase_return_id,
            "purchase_order_item_id": self.purchase_order_item_id,
            "quantity": self.quantity,
            "note": self.note,
        }
