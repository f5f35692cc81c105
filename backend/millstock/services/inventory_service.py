# Overview: Service-layer operations for inventory; atomic wrappers around the ledger primitives.

# backend/millstock/services/inventory_service.py

from __future__ import annotations

from ..extensions import db
from ..models import InventoryItem, InventoryTransaction, Product, PurchaseOrderItem, StorageLocation
from ..models.inventory import TRANSACTION_KINDS
from ..validation import NotFoundError, ValidationError
from . import ledger_service
from .concurrency import run_atomic


def assign_stock(
    *,
    product_id: int,
    location_id: int,
    quantity: int,
    note: str | None = None,
    unit_price_cents: int | None = None,
    actor: str | None = None,
) -> InventoryTransaction:
    """Place new stock at a location (manual stock-in)."""
    def _op(uow):
        return ledger_service.stock_in(
            uow,
            product_id=product_id,
            location_id=location_id,
            quantity=quantity,
            unit_price_cents=unit_price_cents,
            note=note or "Manual stock assignment",
        )

    return run_atomic(_op, actor=actor)


def transfer_stock(
    *,
    product_id: int,
    source_location_id: int,
    target_location_id: int,
    quantity: int,
    note: str | None = None,
    actor: str | None = None,
):
    def _op(uow):
        return ledger_service.transfer(
            uow,
            product_id=product_id,
            source_location_id=source_location_id,
            target_location_id=target_location_id,
            quantity=quantity,
            note=note,
        )

    return run_atomic(_op, actor=actor)


def adjust_stock(
    *,
    product_id: int,
    location_id: int,
    adjustment_type: str,
    quantity: int,
    reason: str,
    actor: str | None = None,
) -> dict:
    def _op(uow):
        return ledger_service.adjust(
            uow,
            product_id=product_id,
            location_id=location_id,
            adjustment_type=adjustment_type,
            quantity=quantity,
            reason=reason,
        )

    return run_atomic(_op, actor=actor)


def remove_empty_item(item_id: int) -> None:
    def _op(uow):
        ledger_service.remove_empty_item(uow, item_id)

    run_atomic(_op)


def list_inventory(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    low_stock: bool = False,
    include_empty: bool = True,
) -> list[InventoryItem]:
    """
    Current-state rows, oldest first.

    low_stock keeps rows whose product is at or below its reorder point.
    """
    query = db.session.query(InventoryItem).join(Product, InventoryItem.product_id == Product.id)
    if product_id is not None:
        query = query.filter(InventoryItem.product_id == product_id)
    if location_id is not None:
        query = query.filter(InventoryItem.location_id == location_id)
    if low_stock:
        query = query.filter(
            Product.reorder_point.isnot(None),
            Product.stock_on_hand <= Product.reorder_point,
        )
    if not include_empty:
        query = query.filter(InventoryItem.quantity > 0)
    return query.order_by(InventoryItem.created_at.asc(), InventoryItem.id.asc()).all()


def list_product_transactions(
    product_id: int,
    *,
    kind: str | None = None,
    location_id: int | None = None,
    limit: int = 200,
) -> list[InventoryTransaction]:
    """Most recent first."""
    if db.session.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    if kind is not None and kind not in TRANSACTION_KINDS:
        raise ValidationError(f"Unknown transaction kind: {kind}")
    if limit <= 0 or limit > 1000:
        raise ValidationError("limit must be within 1..1000")

    query = db.session.query(InventoryTransaction).filter(InventoryTransaction.product_id == product_id)
    if kind is not None:
        query = query.filter(InventoryTransaction.kind == kind)
    if location_id is not None:
        query = query.filter(InventoryTransaction.location_id == location_id)
    return (
        query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .limit(limit)
        .all()
    )


def list_purchase_order_item_transactions(purchase_order_item_id: int) -> list[InventoryTransaction]:
    """Receipt and return rows booked against one PO line, most recent first."""
    if db.session.get(PurchaseOrderItem, purchase_order_item_id) is None:
        raise NotFoundError(f"Purchase order item {purchase_order_item_id} not found")
    return (
        db.session.query(InventoryTransaction)
        .filter(InventoryTransaction.purchase_order_item_id == purchase_order_item_id)
        .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
        .all()
    )


def location_stock_summary(location_id: int) -> dict:
    location = db.session.get(StorageLocation, location_id)
    if location is None:
        raise NotFoundError(f"Storage location {location_id} not found")
    items = list_inventory(location_id=location_id, include_empty=False)
    return {
        "location": location.to_dict(),
        "total_quantity": sum(item.quantity for item in items),
        "items": [item.to_dict() for item in items],
    }
