from __future__ import annotations

from ..extensions import db
from millstock.time_utils import to_utc_z


ORDER_STATUS_PROCESSING = "processing"
ORDER_STATUS_PARTIAL = "partial"
ORDER_STATUS_COMPLETED = "completed"

FULFILLMENT_PENDING = "pending"
FULFILLMENT_PARTIAL = "partial"
FULFILLMENT_FULFILLED = "fulfilled"

DELIVERY_PENDING = "pending"
DELIVERY_FULFILLED = "fulfilled"

SHIPMENT_PROCESSING = "Processing Order"
SHIPMENT_IN_TRANSIT = "In Transit"
SHIPMENT_DELIVERED = "Delivered"

# Forward-only progression
SHIPMENT_SEQUENCE = (SHIPMENT_PROCESSING, SHIPMENT_IN_TRANSIT, SHIPMENT_DELIVERED)


class Order(db.Model):
    """
    Customer sales order.

    Deliveries split an order into shipments; stock leaves the ledger only when
    a delivery is fulfilled. status/fulfillment_status are folds over the
    deliveries and are recomputed after every fulfillment.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(255), nullable=False)
    customer_email = db.Column(db.String(255), nullable=True)
    customer_phone = db.Column(db.String(64), nullable=True)
    shipping_address = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default=ORDER_STATUS_PROCESSING)
    fulfillment_status = db.Column(db.String(16), nullable=False, default=FULFILLMENT_PENDING)

    total_cents = db.Column(db.Integer, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")
    deliveries = db.relationship(
        "Delivery", backref="order", lazy=True, order_by="Delivery.delivery_number"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "shipping_address": self.shipping_address,
            "status": self.status,
            "fulfillment_status": self.fulfillment_status,
            "total_cents": self.total_cents,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "items": [item.to_dict() for item in self.items],
            "deliveries": [delivery.to_dict() for delivery in self.deliveries],
        }


class OrderItem(db.Model):
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        db.CheckConstraint("quantity_pending >= 0", name="ck_order_items_pending_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    quantity_fulfilled = db.Column(db.Integer, nullable=False, default=0)
    quantity_pending = db.Column(db.Integer, nullable=False)

    # Unit price captured at order time
    price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "quantity_fulfilled": self.quantity_fulfilled,
            "quantity_pending": self.quantity_pending,
            "price_cents": self.price_cents,
        }


class Delivery(db.Model):
    __tablename__ = "deliveries"
    __table_args__ = (
        db.UniqueConstraint("order_id", "delivery_number", name="uq_deliveries_order_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    # 1 is the in-stock portion; higher numbers wait on backordered stock
    delivery_number = db.Column(db.Integer, nullable=False)

    shipment_status = db.Column(db.String(32), nullable=False, default=SHIPMENT_PROCESSING)
    status = db.Column(db.String(16), nullable=False, default=DELIVERY_PENDING)

    scheduled_date = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    fulfilled_by = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship("DeliveryItem", backref="delivery", lazy=True, order_by="DeliveryItem.id")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "delivery_number": self.delivery_number,
            "shipment_status": self.shipment_status,
            "status": self.status,
            "scheduled_date": to_utc_z(self.scheduled_date),
            "delivered_at": to_utc_z(self.delivered_at),
            "fulfilled_at": to_utc_z(self.fulfilled_at),
            "fulfilled_by": self.fulfilled_by,
            "created_at": to_utc_z(self.created_at),
            "items": [item.to_dict() for item in self.items],
        }


class DeliveryItem(db.Model):
    __tablename__ = "delivery_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_delivery_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    order_item_id = db.Column(db.Integer, db.ForeignKey("order_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)

    order_item = db.relationship("OrderItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "delivery_id": self.delivery_id,
            "order_item_id": self.order_item_id,
            "product_id": self.order_item.product_id if self.order_item else None,
            "quantity": self.quantity,
        }
