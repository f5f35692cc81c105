# backend/millstock/services/return_service.py
"""
Purchase returns: send received stock back to the supplier.

WHY LIFO: without lot tracking, the most recently stocked location is the
best guess for where the returned goods still sit.

RULES:
- quantity per line is clamped to received_qty - returned_qty (logged)
- a line with nothing left to return is a ConflictError
- every unit leaves through a located RETURN_OUT row; there is no path that
  lowers stock_on_hand without one
- if physical stock is short (already sold, milled, ...) the whole return
  fails with InsufficientStockError and nothing is written; the caller must
  resolve it with a manual adjustment
"""
from __future__ import annotations

from flask import current_app

from ..extensions import db
from ..models import PurchaseOrder, PurchaseOrderItem, PurchaseReturn, PurchaseReturnItem
from ..models.inventory import KIND_RETURN_OUT
from ..validation import ConflictError, NotFoundError, ValidationError
from millstock.time_utils import utcnow
from . import ledger_service
from .concurrency import run_atomic
from .receive_service import derive_po_status


def create_return(
    purchase_order_id: int,
    *,
    reason: str,
    items: list[dict],
    actor: str | None = None,
) -> PurchaseReturn:
    """
    items: [{"purchase_order_item_id", "quantity", "note"?}]
    """
    if not reason or not reason.strip():
        raise ValidationError("reason is required")
    if not items:
        raise ValidationError("items must be a non-empty list")
    for entry in items:
        if entry["quantity"] <= 0:
            raise ValidationError("quantity must be > 0")

    def _op(uow):
        po = uow.get(PurchaseOrder, purchase_order_id, label="Purchase order", lock=True)

        ret = uow.add(PurchaseReturn(
            purchase_order_id=po.id,
            reason=reason.strip(),
            created_at=utcnow(),
            created_by=uow.actor,
        ))
        uow.flush()

        for entry in items:
            line = uow.get(
                PurchaseOrderItem, entry["purchase_order_item_id"], label="Purchase order line", lock=True
            )
            if line.purchase_order_id != po.id:
                raise NotFoundError(f"Line {line.id} does not belong to purchase order {po.id}")

            returnable = line.returnable_qty
            if returnable <= 0:
                raise ConflictError(f"Line {line.id} has nothing left to return")

            requested = entry["quantity"]
            quantity = min(requested, returnable)
            if quantity < requested:
                current_app.logger.warning(
                    "PO %s line %s: return of %s clamped to %s (received %s, already returned %s)",
                    po.id, line.id, requested, quantity, line.received_qty, line.returned_qty,
                )

            ledger_service.stock_out(
                uow,
                product_id=line.product_id,
                quantity=quantity,
                policy=ledger_service.POLICY_LIFO,
                kind=KIND_RETURN_OUT,
                unit_price_cents=line.price_cents,
                links={
                    "purchase_order_id": po.id,
                    "purchase_order_item_id": line.id,
                    "purchase_return_id": ret.id,
                },
                note=reason.strip(),
            )

            uow.add(PurchaseReturnItem(
                purchase_return_id=ret.id,
                purchase_order_item_id=line.id,
                quantity=quantity,
                note=entry.get("note"),
            ))
            line.returned_qty += quantity

        po.status = derive_po_status(po)
        uow.flush()
        return ret

    return run_atomic(_op, actor=actor)


def list_returns(purchase_order_id: int) -> list[PurchaseReturn]:
    if db.session.get(PurchaseOrder, purchase_order_id) is None:
        raise NotFoundError(f"Purchase order {purchase_order_id} not found")
    return (
        db.session.query(PurchaseReturn)
        .filter(PurchaseReturn.purchase_order_id == purchase_order_id)
        .order_by(PurchaseReturn.created_at.asc(), PurchaseReturn.id.asc())
        .all()
    )
