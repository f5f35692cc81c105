# Overview: Service-layer operations for customer orders; delivery split, shipment and FIFO fulfillment.

"""
Order Fulfillment

ORDER CREATION:
- each item is priced from the product at order time
- stock available now goes into delivery 1; any shortfall goes into
  delivery 2, which waits for replenishment
- a SALE finance transaction is recorded for the order total

SHIPMENT (per delivery): Processing Order -> In Transit -> Delivered,
forward only. A backorder delivery (number > 1) cannot advance until the
stock for all of its items is on hand.

FULFILLMENT (per delivery, one DB transaction):
- requires shipment Delivered and status pending
- every item is deducted FIFO through ledger stock_out (STOCK_OUT, priced
  at the order item price); one short item aborts the whole delivery
- stock_allocated grows by the shipped quantity; order item counters move
  from pending to fulfilled
- order status is folded over the deliveries:
  all fulfilled -> completed, some -> partial, none -> processing
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Delivery, DeliveryItem, InventoryItem, Order, OrderItem
from ..models.sales import (
    DELIVERY_FULFILLED,
    DELIVERY_PENDING,
    FULFILLMENT_FULFILLED,
    FULFILLMENT_PARTIAL,
    FULFILLMENT_PENDING,
    ORDER_STATUS_COMPLETED,
    ORDER_STATUS_PARTIAL,
    ORDER_STATUS_PROCESSING,
    SHIPMENT_DELIVERED,
    SHIPMENT_PROCESSING,
    SHIPMENT_SEQUENCE,
)
from ..validation import ConflictError, NotFoundError, ValidationError
from millstock.time_utils import utcnow
from . import finance_service, ledger_service
from .concurrency import run_atomic


def _available(session, product_id: int) -> int:
    return int(
        session.query(func.coalesce(func.sum(InventoryItem.quantity), 0))
        .filter(InventoryItem.product_id == product_id)
        .scalar()
        or 0
    )


def derive_order_status(deliveries, items=()) -> tuple[str, str]:
    """
    (status, fulfillment_status) folded over the order's deliveries.

    An order whose items have nothing pending is complete even if a planned
    delivery was superseded by a direct fulfillment.
    """
    deliveries = list(deliveries)
    items = list(items)
    fulfilled = [d for d in deliveries if d.status == DELIVERY_FULFILLED]
    if items and all(item.quantity_pending == 0 for item in items):
        return ORDER_STATUS_COMPLETED, FULFILLMENT_FULFILLED
    if deliveries and len(fulfilled) == len(deliveries):
        return ORDER_STATUS_COMPLETED, FULFILLMENT_FULFILLED
    if fulfilled:
        return ORDER_STATUS_PARTIAL, FULFILLMENT_PARTIAL
    return ORDER_STATUS_PROCESSING, FULFILLMENT_PENDING


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def _delivery_for(uow, order_id: int, delivery_id: int) -> Delivery:
    delivery = uow.get(Delivery, delivery_id, label="Delivery", lock=True)
    if delivery.order_id != order_id:
        raise NotFoundError(f"Delivery {delivery_id} does not belong to order {order_id}")
    return delivery


def create_order(
    *,
    customer_name: str,
    items: list[dict],
    customer_email: str | None = None,
    customer_phone: str | None = None,
    shipping_address: str | None = None,
    actor: str | None = None,
) -> Order:
    """
    items: [{"product_id", "quantity"}]
    """
    if not customer_name or not customer_name.strip():
        raise ValidationError("customer_name is required")
    if not items:
        raise ValidationError("items must be a non-empty list")
    for entry in items:
        if entry["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    def _op(uow):
        order = uow.add(Order(
            customer_name=customer_name.strip(),
            customer_email=customer_email,
            customer_phone=customer_phone,
            shipping_address=shipping_address,
            status=ORDER_STATUS_PROCESSING,
            fulfillment_status=FULFILLMENT_PENDING,
            total_cents=0,
        ))
        uow.flush()

        in_stock_parts = []
        backorder_parts = []
        claimed: dict[int, int] = {}
        total = 0

        for entry in items:
            product = uow.product(entry["product_id"], lock=False)
            quantity = entry["quantity"]
            order_item = uow.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=quantity,
                quantity_fulfilled=0,
                quantity_pending=quantity,
                price_cents=product.price_cents,
            ))
            uow.flush()
            total += quantity * product.price_cents

            available = _available(uow.session, product.id) - claimed.get(product.id, 0)
            from_stock = min(quantity, max(0, available))
            claimed[product.id] = claimed.get(product.id, 0) + from_stock
            if from_stock > 0:
                in_stock_parts.append((order_item.id, from_stock))
            if quantity - from_stock > 0:
                backorder_parts.append((order_item.id, quantity - from_stock))
                current_app.logger.info(
                    "Order %s: %s of %s x %s backordered",
                    order.id, quantity - from_stock, quantity, product.name,
                )

        for number, parts in ((1, in_stock_parts), (2, backorder_parts)):
            if not parts:
                continue
            delivery = uow.add(Delivery(
                order_id=order.id,
                delivery_number=number,
                shipment_status=SHIPMENT_PROCESSING,
                status=DELIVERY_PENDING,
                created_at=utcnow(),
            ))
            uow.flush()
            for order_item_id, quantity in parts:
                uow.add(DeliveryItem(delivery_id=delivery.id, order_item_id=order_item_id, quantity=quantity))

        order.total_cents = total
        if total > 0:
            finance_service.record_sale(
                uow,
                order_id=order.id,
                amount_cents=total,
                description=f"Order {order.id} for {order.customer_name}",
            )
        uow.flush()
        return order

    return run_atomic(_op, actor=actor)


def _stock_report(uow, delivery: Delivery) -> list[dict]:
    needed_by_product: dict[int, int] = {}
    rows = []
    for item in delivery.items:
        order_item = item.order_item
        needed_by_product[order_item.product_id] = needed_by_product.get(order_item.product_id, 0) + item.quantity
        rows.append({
            "delivery_item_id": item.id,
            "order_item_id": order_item.id,
            "product_id": order_item.product_id,
            "product_name": order_item.product.name,
            "needed": item.quantity,
        })
    for row in rows:
        available = _available(uow.session, row["product_id"])
        row["available"] = available
        row["sufficient"] = available >= needed_by_product[row["product_id"]]
    return rows


def check_delivery_stock(order_id: int, delivery_id: int) -> dict:
    def _op(uow):
        delivery = _delivery_for(uow, order_id, delivery_id)
        items = _stock_report(uow, delivery)
        return {
            "delivery_id": delivery.id,
            "delivery_number": delivery.delivery_number,
            "can_fulfill": all(row["sufficient"] for row in items),
            "items": items,
        }

    return run_atomic(_op)


def update_shipment(order_id: int, delivery_id: int, shipment_status: str, *,
                    actor: str | None = None) -> Delivery:
    if shipment_status not in SHIPMENT_SEQUENCE:
        raise ValidationError(
            f"Invalid shipment status. Must be one of: {', '.join(SHIPMENT_SEQUENCE)}"
        )

    def _op(uow):
        delivery = _delivery_for(uow, order_id, delivery_id)
        current = SHIPMENT_SEQUENCE.index(delivery.shipment_status)
        target = SHIPMENT_SEQUENCE.index(shipment_status)
        if target < current:
            raise ConflictError(
                f"Shipment status cannot move back from {delivery.shipment_status} to {shipment_status}"
            )
        if target == current:
            return delivery

        if delivery.delivery_number > 1:
            short = [row for row in _stock_report(uow, delivery) if not row["sufficient"]]
            if short:
                details = "; ".join(
                    f"Insufficient stock for {row['product_name']}. "
                    f"Available: {row['available']}, Needed: {row['needed']}"
                    for row in short
                )
                raise ConflictError(f"Cannot update shipment status for backorder: {details}")

        delivery.shipment_status = shipment_status
        if shipment_status == SHIPMENT_DELIVERED:
            delivery.delivered_at = utcnow()
        uow.flush()
        return delivery

    return run_atomic(_op, actor=actor)


def _fulfill(uow, order: Order, delivery: Delivery) -> Order:
    if delivery.status != DELIVERY_PENDING:
        raise ConflictError(f"Delivery {delivery.id} is already fulfilled")
    if delivery.shipment_status != SHIPMENT_DELIVERED:
        raise ConflictError(
            "Delivery must be marked as 'Delivered' before fulfillment. "
            f"Current status: {delivery.shipment_status}"
        )

    for item in delivery.items:
        order_item = uow.get(OrderItem, item.order_item_id, label="Order item", lock=True)
        if item.quantity > order_item.quantity_pending:
            raise ConflictError(
                f"Cannot fulfill {item.quantity} of order item {order_item.id}: "
                f"only {order_item.quantity_pending} pending"
            )

        ledger_service.stock_out(
            uow,
            product_id=order_item.product_id,
            quantity=item.quantity,
            policy=ledger_service.POLICY_FIFO,
            unit_price_cents=order_item.price_cents,
            links={"order_id": order.id, "delivery_id": delivery.id},
            note=f"Delivery {delivery.delivery_number} fulfillment for Order #{order.id}",
        )
        product = uow.product(order_item.product_id)
        product.stock_allocated += item.quantity

        order_item.quantity_fulfilled += item.quantity
        order_item.quantity_pending -= item.quantity

    delivery.status = DELIVERY_FULFILLED
    delivery.fulfilled_at = utcnow()
    delivery.fulfilled_by = uow.actor
    uow.flush()

    order.status, order.fulfillment_status = derive_order_status(order.deliveries, order.items)
    uow.flush()
    return order


def fulfill_delivery(order_id: int, delivery_id: int, *, actor: str | None = None) -> Order:
    def _op(uow):
        order = uow.get(Order, order_id, label="Order", lock=True)
        delivery = _delivery_for(uow, order.id, delivery_id)
        return _fulfill(uow, order, delivery)

    return run_atomic(_op, actor=actor)


def fulfill_order(order_id: int, *, items: list[dict], actor: str | None = None) -> Order:
    """
    Direct fulfillment: ship the given quantities now.

    items: [{"order_item_id", "quantity"}]. Recorded as an extra delivery that
    is already Delivered, then fulfilled like any other.
    """
    if not items:
        raise ValidationError("items must be a non-empty list")
    for entry in items:
        if entry["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    def _op(uow):
        order = uow.get(Order, order_id, label="Order", lock=True)
        for entry in items:
            order_item = uow.get(OrderItem, entry["order_item_id"], label="Order item")
            if order_item.order_id != order.id:
                raise NotFoundError(f"Order item {order_item.id} does not belong to order {order.id}")

        next_number = max((d.delivery_number for d in order.deliveries), default=0) + 1
        now = utcnow()
        delivery = uow.add(Delivery(
            order_id=order.id,
            delivery_number=next_number,
            shipment_status=SHIPMENT_DELIVERED,
            status=DELIVERY_PENDING,
            delivered_at=now,
            created_at=now,
        ))
        uow.flush()
        for entry in items:
            uow.add(DeliveryItem(
                delivery_id=delivery.id,
                order_item_id=entry["order_item_id"],
                quantity=entry["quantity"],
            ))
        uow.flush()
        uow.session.expire(order, ["deliveries"])
        uow.session.expire(delivery, ["items"])
        return _fulfill(uow, order, delivery)

    return run_atomic(_op, actor=actor)
