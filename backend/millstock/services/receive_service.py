# Overview: Service-layer operations for purchase orders and receiving; encapsulates business logic.

"""
Purchase Order / Receiving Service

LIFECYCLE:
1. Pending:   created; stock_on_order raised, PAYABLE recorded
2. Ordered:   sent to the supplier (explicit mark_ordered)
3. Partial:   some quantity received on at least one line
4. Completed: every line received in full
5. Cancelled: remaining on-order quantity released, backorders closed

Partial/Completed/Ordered are derived from the lines after every receive and
return (derive_po_status). Cancelled is terminal.

RECEIVING (per line, all lines in one DB transaction):
- received_now is clamped to ordered_qty - received_qty; any excess is
  dropped and logged at WARNING
- stock_in at the chosen location, linked to the PO and line, priced at the
  line price; stock_on_order decreases by the same amount
- unsettled backorders are settled oldest first, then topped up so they
  cover whatever is still short
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Product, PurchaseOrder, PurchaseOrderItem, Supplier
from ..models.purchasing import (
    LINE_STATUS_BACKORDERED,
    LINE_STATUS_COMPLETED,
    LINE_STATUS_PARTIAL,
    LINE_STATUS_PENDING,
    PAYMENT_TYPES,
    PO_STATUS_CANCELLED,
    PO_STATUS_COMPLETED,
    PO_STATUS_ORDERED,
    PO_STATUS_PARTIAL,
    PO_STATUS_PENDING,
)
from ..validation import ConflictError, NotFoundError, ValidationError
from . import backorder_service, finance_service, ledger_service
from .concurrency import run_atomic


def derive_line_status(line: PurchaseOrderItem, received_now: int) -> str:
    if line.received_qty >= line.ordered_qty:
        return LINE_STATUS_COMPLETED
    if received_now == 0:
        return LINE_STATUS_BACKORDERED
    if line.received_qty > 0:
        return LINE_STATUS_PARTIAL
    return LINE_STATUS_PENDING


def derive_po_status(po: PurchaseOrder) -> str:
    """
    Fold over the lines. Returns are not subtracted: a returned quantity was
    still received and any replacement is a new order.
    """
    if po.status == PO_STATUS_CANCELLED:
        return PO_STATUS_CANCELLED
    lines = list(po.items)
    if lines and all(line.received_qty >= line.ordered_qty for line in lines):
        return PO_STATUS_COMPLETED
    if any(line.received_qty > 0 for line in lines):
        return PO_STATUS_PARTIAL
    return PO_STATUS_ORDERED


def get_purchase_order(purchase_order_id: int) -> PurchaseOrder:
    po = db.session.get(PurchaseOrder, purchase_order_id)
    if po is None:
        raise NotFoundError(f"Purchase order {purchase_order_id} not found")
    return po


def list_purchase_orders(*, status: str | None = None, supplier_id: int | None = None) -> list[PurchaseOrder]:
    query = db.session.query(PurchaseOrder)
    if status:
        query = query.filter(PurchaseOrder.status == status)
    if supplier_id is not None:
        query = query.filter(PurchaseOrder.supplier_id == supplier_id)
    return query.order_by(PurchaseOrder.order_date.desc(), PurchaseOrder.id.desc()).all()


def create_purchase_order(
    *,
    supplier_id: int,
    items: list[dict],
    payment_type: str = "FULL",
    monthly_terms: int | None = None,
    due_date: datetime | None = None,
    note: str | None = None,
    actor: str | None = None,
) -> PurchaseOrder:
    """
    items: [{"product_id", "quantity", "price_cents"}]
    """
    if not items:
        raise ValidationError("A purchase order needs at least one item")
    payment_type = (payment_type or "FULL").upper()
    if payment_type not in PAYMENT_TYPES:
        raise ValidationError(f"payment_type must be one of: {', '.join(PAYMENT_TYPES)}")
    if payment_type == "MONTHLY" and not monthly_terms:
        raise ValidationError("monthly_terms is required for MONTHLY payment")
    for entry in items:
        if entry["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")
        if entry["price_cents"] < 0:
            raise ValidationError("price_cents must be >= 0")

    def _op(uow):
        supplier = uow.get(Supplier, supplier_id, label="Supplier")
        if not supplier.is_active:
            raise ConflictError(f"Supplier {supplier.name} is inactive")

        po = uow.add(PurchaseOrder(
            supplier_id=supplier.id,
            status=PO_STATUS_PENDING,
            payment_type=payment_type,
            monthly_terms=monthly_terms if payment_type == "MONTHLY" else None,
            due_date=due_date,
            note=note,
            created_by=uow.actor,
        ))
        uow.flush()

        for entry in items:
            product = uow.product(entry["product_id"])
            uow.add(PurchaseOrderItem(
                purchase_order_id=po.id,
                product_id=product.id,
                ordered_qty=entry["quantity"],
                received_qty=0,
                returned_qty=0,
                price_cents=entry["price_cents"],
                line_status=LINE_STATUS_PENDING,
            ))
            product.stock_on_order += entry["quantity"]
        uow.flush()

        total = sum(entry["quantity"] * entry["price_cents"] for entry in items)
        if total > 0:
            finance_service.record_payable(
                uow,
                purchase_order_id=po.id,
                amount_cents=total,
                payment_type=payment_type,
                description=f"PO {po.id} from {supplier.name}",
            )
        uow.flush()
        return po

    return run_atomic(_op, actor=actor)


def mark_ordered(purchase_order_id: int, *, actor: str | None = None) -> PurchaseOrder:
    def _op(uow):
        po = uow.get(PurchaseOrder, purchase_order_id, label="Purchase order", lock=True)
        if po.status != PO_STATUS_PENDING:
            raise ConflictError(f"Only Pending purchase orders can be marked Ordered (is {po.status})")
        po.status = PO_STATUS_ORDERED
        return po

    return run_atomic(_op, actor=actor)


def cancel_purchase_order(purchase_order_id: int, *, actor: str | None = None) -> PurchaseOrder:
    def _op(uow):
        po = uow.get(PurchaseOrder, purchase_order_id, label="Purchase order", lock=True)
        if po.status in (PO_STATUS_COMPLETED, PO_STATUS_CANCELLED):
            raise ConflictError(f"Purchase order {po.id} is already {po.status}")

        for line in po.items:
            outstanding = line.shortfall
            if outstanding > 0:
                product = uow.product(line.product_id)
                product.stock_on_order = max(0, product.stock_on_order - outstanding)
            backorder_service.force_close(uow, line)

        po.status = PO_STATUS_CANCELLED
        uow.flush()
        current_app.logger.info("Purchase order %s cancelled by %s", po.id, uow.actor)
        return po

    return run_atomic(_op, actor=actor)


def _receive_line(uow, po: PurchaseOrder, entry: dict, note: str | None) -> dict:
    line = uow.get(PurchaseOrderItem, entry["purchase_order_item_id"], label="Purchase order line", lock=True)
    if line.purchase_order_id != po.id:
        raise NotFoundError(f"Line {line.id} does not belong to purchase order {po.id}")

    requested = entry["received_now"]
    if requested < 0:
        raise ValidationError("received_now must be >= 0")

    remaining = line.ordered_qty - line.received_qty
    received_now = min(requested, max(0, remaining))
    if received_now < requested:
        current_app.logger.warning(
            "PO %s line %s: received %s but only %s outstanding; excess of %s not booked",
            po.id, line.id, requested, max(0, remaining), requested - received_now,
        )

    if received_now > 0:
        location_id = entry.get("location_id")
        if location_id is None:
            raise ValidationError(f"location_id is required to receive line {line.id}")

        ledger_service.stock_in(
            uow,
            product_id=line.product_id,
            location_id=location_id,
            quantity=received_now,
            unit_price_cents=line.price_cents,
            links={"purchase_order_id": po.id, "purchase_order_item_id": line.id},
            note=note or "Receiving",
        )
        product = uow.product(line.product_id)
        product.stock_on_order = max(0, product.stock_on_order - received_now)
        line.received_qty += received_now

    settled = backorder_service.settle(uow, line, received_now) if received_now else []
    if line.received_qty >= line.ordered_qty:
        backorder_service.force_close(uow, line)
        topped_up = None
    else:
        topped_up = backorder_service.sync_shortfall(uow, line, expected_date=entry.get("expected_date"))

    line.line_status = derive_line_status(line, received_now)
    uow.flush()

    touched = {b.id: b for b in settled}
    if topped_up is not None:
        touched[topped_up.id] = topped_up
    return {
        "line": line,
        "requested": requested,
        "received_now": received_now,
        "backorders": list(touched.values()),
    }


def receive(
    purchase_order_id: int,
    *,
    lines: list[dict],
    note: str | None = None,
    actor: str | None = None,
) -> dict:
    """
    lines: [{"purchase_order_item_id", "location_id", "received_now", "expected_date"?}]

    All lines commit together or not at all.
    """
    if not lines:
        raise ValidationError("lines must be a non-empty list")

    def _op(uow):
        po = uow.get(PurchaseOrder, purchase_order_id, label="Purchase order", lock=True)
        if po.status == PO_STATUS_CANCELLED:
            raise ConflictError(f"Purchase order {po.id} is cancelled")
        if po.status == PO_STATUS_COMPLETED:
            raise ConflictError(f"Purchase order {po.id} is already fully received")

        results = [_receive_line(uow, po, entry, note) for entry in lines]

        po.status = derive_po_status(po)
        uow.flush()
        return {"purchase_order": po, "lines": results}

    return run_atomic(_op, actor=actor)


def outstanding_by_product(product_id: int) -> int:
    """On-order quantity from open POs for one product (what stock_on_order caches)."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    lines = (
        db.session.query(PurchaseOrderItem)
        .join(PurchaseOrder, PurchaseOrderItem.purchase_order_id == PurchaseOrder.id)
        .filter(
            PurchaseOrderItem.product_id == product_id,
            PurchaseOrder.status != PO_STATUS_CANCELLED,
        )
        .all()
    )
    return sum(line.shortfall for line in lines)
