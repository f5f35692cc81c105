# Overview: Service-layer operations for reconciliation; detects and repairs drift between ledger and caches.

"""
Reconciliation

Three views of a product's on-hand stock must agree:

    products.stock_on_hand                       (cached aggregate)
    SUM(inventory_items.quantity)                (per-location truth)
    SUM(signed quantity of located transactions) (ledger replay)

Legacy RETURN_OUT rows written before returns were located lowered
stock_on_hand but left the items untouched. Until they are repaired the
expected cache is therefore

    SUM(inventory_items.quantity) - SUM(unrepaired legacy return quantity)

reconcile() reports every product where the views differ or where legacy
returns are still unrepaired. With fix=True the cache is rewritten to the
expected value; items and the ledger are never edited here, so running it
before or after repair_unlocated_returns() gives the same end state.

repair_unlocated_returns() deducts each legacy quantity from items LIFO and
appends located RETURN_OUT rows pointing at the legacy row
(repairs_transaction_id). stock_on_hand is not touched again. A row that
cannot be covered by current stock is reported for manual adjustment and
left as is.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import case, func

from ..extensions import db
from ..models import InventoryItem, InventoryTransaction, Product
from ..models.inventory import INBOUND_KINDS, KIND_RETURN_OUT, OUTBOUND_KINDS
from ..validation import InsufficientStockError
from millstock.time_utils import utcnow
from .concurrency import run_atomic
from .receive_service import outstanding_by_product


def _item_totals(session) -> dict[int, int]:
    rows = (
        session.query(InventoryItem.product_id, func.coalesce(func.sum(InventoryItem.quantity), 0))
        .group_by(InventoryItem.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def _ledger_totals(session) -> dict[int, int]:
    signed = case(
        (InventoryTransaction.kind.in_(sorted(INBOUND_KINDS)), InventoryTransaction.quantity),
        (InventoryTransaction.kind.in_(sorted(OUTBOUND_KINDS)), -InventoryTransaction.quantity),
        else_=0,
    )
    rows = (
        session.query(InventoryTransaction.product_id, func.coalesce(func.sum(signed), 0))
        .filter(InventoryTransaction.location_id.isnot(None))
        .group_by(InventoryTransaction.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def _unrepaired_filter(session):
    repaired = (
        session.query(InventoryTransaction.repairs_transaction_id)
        .filter(InventoryTransaction.repairs_transaction_id.isnot(None))
    )
    return (
        InventoryTransaction.kind == KIND_RETURN_OUT,
        InventoryTransaction.location_id.is_(None),
        InventoryTransaction.id.notin_(repaired),
    )


def _unrepaired_totals(session) -> dict[int, int]:
    rows = (
        session.query(InventoryTransaction.product_id, func.coalesce(func.sum(InventoryTransaction.quantity), 0))
        .filter(*_unrepaired_filter(session))
        .group_by(InventoryTransaction.product_id)
        .all()
    )
    return {product_id: int(total) for product_id, total in rows}


def reconcile(*, fix: bool = False, include_on_order: bool = True, actor: str | None = None) -> dict:
    """
    Compare cached aggregates against the item rows and the ledger.

    Returns {"checked", "drifted": [...], "fixed"}. Each drift entry carries
    the three on-hand figures, the unrepaired legacy return quantity and the
    expected cache value. When include_on_order is set it also carries the
    cached and recomputed stock_on_order.
    """
    session = db.session
    items = _item_totals(session)
    ledger = _ledger_totals(session)
    unrepaired = _unrepaired_totals(session)

    drifted = []
    products = session.query(Product).order_by(Product.id.asc()).all()
    for product in products:
        item_total = items.get(product.id, 0)
        ledger_total = ledger.get(product.id, 0)
        pending = unrepaired.get(product.id, 0)
        expected_on_hand = item_total - pending
        entry = {
            "product_id": product.id,
            "product_name": product.name,
            "stock_on_hand": product.stock_on_hand,
            "item_total": item_total,
            "ledger_total": ledger_total,
            "unrepaired_returns": pending,
            "expected_on_hand": expected_on_hand,
        }
        drift = (
            product.stock_on_hand != expected_on_hand
            or item_total != ledger_total
            or pending > 0
        )
        if include_on_order:
            expected_on_order = outstanding_by_product(product.id)
            entry["stock_on_order"] = product.stock_on_order
            entry["expected_on_order"] = expected_on_order
            drift = drift or product.stock_on_order != expected_on_order
        if drift:
            drifted.append(entry)
            current_app.logger.warning(
                "Stock drift on product %s (%s): cached=%s items=%s ledger=%s unrepaired=%s",
                product.id, product.name, product.stock_on_hand, item_total, ledger_total, pending,
            )

    fixed = 0
    if fix and drifted:
        def _op(uow):
            count = 0
            # Recount inside the transaction; the report above may be stale.
            item_now = _item_totals(uow.session)
            pending_now = _unrepaired_totals(uow.session)
            for entry in drifted:
                product = uow.product(entry["product_id"])
                expected = item_now.get(product.id, 0) - pending_now.get(product.id, 0)
                changed = False
                if product.stock_on_hand != expected:
                    product.stock_on_hand = expected
                    changed = True
                if include_on_order:
                    on_order = outstanding_by_product(product.id)
                    if product.stock_on_order != on_order:
                        product.stock_on_order = on_order
                        changed = True
                if changed:
                    count += 1
            uow.flush()
            return count

        fixed = run_atomic(_op, actor=actor)
        current_app.logger.info("Reconciliation rewrote cached stock on %s product(s)", fixed)

    return {"checked": len(products), "drifted": drifted, "fixed": fixed}


def unlocated_returns() -> list[InventoryTransaction]:
    """Legacy RETURN_OUT rows with no location and no repair rows yet."""
    return (
        db.session.query(InventoryTransaction)
        .filter(*_unrepaired_filter(db.session))
        .order_by(InventoryTransaction.created_at.asc(), InventoryTransaction.id.asc())
        .all()
    )


def _repair_one(legacy_id: int, actor: str | None) -> list[dict]:
    def _op(uow):
        legacy = uow.get(InventoryTransaction, legacy_id, label="Inventory transaction")
        product = uow.product(legacy.product_id)
        items = uow.inventory_items(product.id, newest_first=True)
        available = sum(item.quantity for item in items)
        if available < legacy.quantity:
            raise InsufficientStockError(product.name, available, legacy.quantity)

        moved = []
        remaining = legacy.quantity
        for item in items:
            if remaining == 0:
                break
            if item.quantity == 0:
                continue
            take = min(item.quantity, remaining)
            item.quantity -= take
            remaining -= take
            uow.add(InventoryTransaction(
                product_id=product.id,
                location_id=item.location_id,
                kind=KIND_RETURN_OUT,
                quantity=take,
                unit_price_cents=legacy.unit_price_cents,
                purchase_order_id=legacy.purchase_order_id,
                purchase_order_item_id=legacy.purchase_order_item_id,
                purchase_return_id=legacy.purchase_return_id,
                repairs_transaction_id=legacy.id,
                note=f"{legacy.note or 'Returned to supplier'} [repair of transaction {legacy.id}]"[:255],
                created_at=utcnow(),
                created_by=uow.actor,
            ))
            moved.append({"location_id": item.location_id, "deducted": take})
        uow.flush()
        return moved

    return run_atomic(_op, actor=actor)


def repair_unlocated_returns(*, actor: str | None = None) -> dict:
    """
    Locate every legacy RETURN_OUT row, one DB transaction per row.

    Returns {"found", "repaired": [...], "skipped": [...]}.
    """
    legacy_rows = unlocated_returns()
    repaired = []
    skipped = []
    for legacy in legacy_rows:
        legacy_id = legacy.id
        try:
            moved = _repair_one(legacy_id, actor)
        except InsufficientStockError as exc:
            current_app.logger.warning("Cannot repair return transaction %s: %s", legacy_id, exc)
            skipped.append({"transaction_id": legacy_id, **exc.to_dict()})
            continue
        current_app.logger.info("Repaired return transaction %s across %s location(s)", legacy_id, len(moved))
        repaired.append({"transaction_id": legacy_id, "locations": moved})

    return {"found": len(legacy_rows), "repaired": repaired, "skipped": skipped}
