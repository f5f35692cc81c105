# Overview: Service-layer operations for backorders; shortfall tracking per purchase-order line.

"""
Backorder Tracker

A backorder records quantity still expected from the supplier on one PO line.

Invariant (outside a receive call):
    SUM(quantity of Open/Reminded/Partial backorders on a line)
        == max(0, ordered_qty - received_qty)
  unless the PO was cancelled, in which case every backorder is Closed.

Lifecycle:
- settle: a receipt drains unsettled backorders oldest first;
  reaching 0 -> Closed, otherwise -> Partial
- sync_shortfall: if the line is still short by more than the unsettled
  total, the difference is added to an existing Open backorder or a new one
- force_close: once received_qty >= ordered_qty everything goes to 0/Closed
- remind: Open/Partial -> Reminded, fires the reminder hooks
"""

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Backorder, PurchaseOrder, PurchaseOrderItem
from ..models.purchasing import (
    BACKORDER_CLOSED,
    BACKORDER_OPEN,
    BACKORDER_PARTIAL,
    BACKORDER_REMINDED,
    UNSETTLED_BACKORDER_STATUSES,
)
from ..validation import ConflictError, NotFoundError
from millstock.time_utils import utcnow
from . import notification_service
from .concurrency import lock_for_update, run_atomic


def _unsettled(uow, purchase_order_item_id: int) -> list[Backorder]:
    query = (
        uow.session.query(Backorder)
        .filter(
            Backorder.purchase_order_item_id == purchase_order_item_id,
            Backorder.status.in_(UNSETTLED_BACKORDER_STATUSES),
        )
        .order_by(Backorder.created_at.asc(), Backorder.id.asc())
    )
    return lock_for_update(query).all()


def settle(uow, line: PurchaseOrderItem, received: int) -> list[Backorder]:
    """Apply a receipt to the line's unsettled backorders, oldest first."""
    touched = []
    remaining = received
    for backorder in _unsettled(uow, line.id):
        if remaining <= 0:
            break
        take = min(backorder.quantity, remaining)
        backorder.quantity -= take
        remaining -= take
        backorder.status = BACKORDER_CLOSED if backorder.quantity == 0 else BACKORDER_PARTIAL
        touched.append(backorder)
    return touched


def sync_shortfall(uow, line: PurchaseOrderItem, *, expected_date: datetime | None = None) -> Backorder | None:
    """Top up backorders so their unsettled total covers the line's shortfall."""
    short = line.shortfall
    if short <= 0:
        return None

    open_rows = _unsettled(uow, line.id)
    missing = short - sum(b.quantity for b in open_rows)
    if missing <= 0:
        if expected_date is not None and open_rows:
            open_rows[-1].expected_date = expected_date
            return open_rows[-1]
        return None

    existing = next((b for b in open_rows if b.status == BACKORDER_OPEN), None)
    if existing is not None:
        existing.quantity += missing
        if expected_date is not None:
            existing.expected_date = expected_date
        return existing

    backorder = uow.add(Backorder(
        purchase_order_item_id=line.id,
        quantity=missing,
        status=BACKORDER_OPEN,
        expected_date=expected_date,
        created_at=utcnow(),
    ))
    uow.flush()
    return backorder


def force_close(uow, line: PurchaseOrderItem) -> list[Backorder]:
    closed = []
    for backorder in _unsettled(uow, line.id):
        backorder.quantity = 0
        backorder.status = BACKORDER_CLOSED
        closed.append(backorder)
    return closed


def list_backorders(purchase_order_id: int, *, include_settled: bool = False) -> list[Backorder]:
    if db.session.get(PurchaseOrder, purchase_order_id) is None:
        raise NotFoundError(f"Purchase order {purchase_order_id} not found")
    query = (
        db.session.query(Backorder)
        .join(PurchaseOrderItem, Backorder.purchase_order_item_id == PurchaseOrderItem.id)
        .filter(PurchaseOrderItem.purchase_order_id == purchase_order_id)
    )
    if not include_settled:
        query = query.filter(Backorder.status.in_(UNSETTLED_BACKORDER_STATUSES))
    return query.order_by(Backorder.created_at.asc(), Backorder.id.asc()).all()


def remind(backorder_id: int, *, next_expected_date: datetime | None = None,
           actor: str | None = None) -> Backorder:
    """
    Mark a backorder as chased with the supplier.

    The status change commits first; reminder hooks run afterwards and can
    never undo it.
    """
    def _op(uow):
        backorder = uow.get(Backorder, backorder_id, label="Backorder", lock=True)
        if backorder.status not in UNSETTLED_BACKORDER_STATUSES:
            raise ConflictError(f"Backorder {backorder_id} is {backorder.status} and cannot be reminded")
        backorder.status = BACKORDER_REMINDED
        backorder.reminded_at = utcnow()
        if next_expected_date is not None:
            backorder.expected_date = next_expected_date
        uow.flush()

        line = backorder.purchase_order_item
        payload = notification_service.backorder_reminder_payload(
            backorder, line.purchase_order.supplier, line.product
        )
        return backorder, payload

    backorder, payload = run_atomic(_op, actor=actor)
    notification_service.send_backorder_reminder(payload)
    return backorder
