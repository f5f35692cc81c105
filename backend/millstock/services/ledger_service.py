# Overview: Service-layer operations for the inventory ledger; atomic stock-move primitives.

"""
Inventory Ledger Primitives

stock_in / stock_out / transfer / adjust are the only code paths that change
InventoryItem.quantity or Product.stock_on_hand. Each:

- takes a UnitOfWork and re-reads the product and item rows through it
- appends exactly one InventoryTransaction per (product, location) touched
- validates before mutating, so an error leaves every row untouched

They never commit. The caller (inventory_service, receive_service, ...) wraps
them in concurrency.run_atomic so a multi-step move is all-or-nothing.

Ordering policies:
- FIFO: oldest InventoryItem first (sales fulfillment, transfers)
- LIFO: newest InventoryItem first (purchase returns)
"""

from __future__ import annotations

from flask import current_app

from ..models import InventoryItem, InventoryTransaction
from ..models.inventory import (
    INBOUND_KINDS,
    OUTBOUND_KINDS,
    KIND_ADJUSTMENT,
    KIND_STOCK_IN,
    KIND_STOCK_OUT,
)
from ..validation import ConflictError, InsufficientStockError, ValidationError
from millstock.time_utils import utcnow


POLICY_FIFO = "FIFO"
POLICY_LIFO = "LIFO"

ADJUST_ADD = "ADD"
ADJUST_REMOVE = "REMOVE"
ADJUST_SET = "SET"
ADJUSTMENT_TYPES = (ADJUST_ADD, ADJUST_REMOVE, ADJUST_SET)

# Columns a caller may link a transaction row to
LINK_FIELDS = frozenset({
    "purchase_order_id",
    "purchase_order_item_id",
    "purchase_return_id",
    "order_id",
    "delivery_id",
    "repairs_transaction_id",
})


def _require_positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if quantity <= 0:
        raise ValidationError("quantity must be > 0")
    return quantity


def _check_links(links: dict | None) -> dict:
    links = dict(links or {})
    unknown = set(links) - LINK_FIELDS
    if unknown:
        raise ValidationError(f"Unknown transaction link(s): {', '.join(sorted(unknown))}")
    return links


def _append_transaction(
    uow,
    *,
    product_id: int,
    location_id: int | None,
    kind: str,
    quantity: int,
    unit_price_cents: int | None,
    links: dict,
    note: str | None,
) -> InventoryTransaction:
    tx = InventoryTransaction(
        product_id=product_id,
        location_id=location_id,
        kind=kind,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        note=note,
        created_at=utcnow(),
        created_by=uow.actor,
        **links,
    )
    return uow.add(tx)


def _get_or_create_item(uow, product_id: int, location_id: int) -> InventoryItem:
    item = uow.inventory_item(product_id, location_id)
    if item is None:
        item = uow.add(InventoryItem(
            product_id=product_id,
            location_id=location_id,
            quantity=0,
            created_at=utcnow(),
        ))
    return item


def stock_in(
    uow,
    *,
    product_id: int,
    location_id: int,
    quantity: int,
    kind: str = KIND_STOCK_IN,
    unit_price_cents: int | None = None,
    links: dict | None = None,
    note: str | None = None,
) -> InventoryTransaction:
    """Add quantity at one location, creating the InventoryItem on first receipt."""
    quantity = _require_positive(quantity)
    if kind not in INBOUND_KINDS:
        raise ValidationError(f"{kind} is not an inbound transaction kind")
    links = _check_links(links)

    product = uow.product(product_id)
    uow.location(location_id, require_active=True)

    item = _get_or_create_item(uow, product_id, location_id)
    item.quantity += quantity
    product.stock_on_hand += quantity

    tx = _append_transaction(
        uow,
        product_id=product_id,
        location_id=location_id,
        kind=kind,
        quantity=quantity,
        unit_price_cents=unit_price_cents,
        links=links,
        note=note,
    )
    uow.flush()
    return tx


def stock_out(
    uow,
    *,
    product_id: int,
    quantity: int,
    policy: str = POLICY_FIFO,
    kind: str = KIND_STOCK_OUT,
    location_id: int | None = None,
    unit_price_cents: int | None = None,
    links: dict | None = None,
    note: str | None = None,
) -> list[InventoryTransaction]:
    """
    Deduct quantity across the product's locations in policy order.

    Availability is checked against the locked rows before any row is
    changed. Zero-quantity rows are left in place; only transfer deletes a
    drained row.
    """
    quantity = _require_positive(quantity)
    if kind not in OUTBOUND_KINDS:
        raise ValidationError(f"{kind} is not an outbound transaction kind")
    if policy not in (POLICY_FIFO, POLICY_LIFO):
        raise ValidationError(f"Unknown stock policy: {policy}")
    links = _check_links(links)

    product = uow.product(product_id)
    where = None
    if location_id is not None:
        where = uow.location(location_id).name

    items = uow.inventory_items(
        product_id,
        newest_first=(policy == POLICY_LIFO),
        location_id=location_id,
    )
    available = sum(item.quantity for item in items)
    if available < quantity:
        raise InsufficientStockError(product.name, available, quantity, where)

    transactions = []
    remaining = quantity
    for item in items:
        if remaining == 0:
            break
        if item.quantity == 0:
            continue
        take = min(item.quantity, remaining)
        item.quantity -= take
        remaining -= take
        transactions.append(_append_transaction(
            uow,
            product_id=product_id,
            location_id=item.location_id,
            kind=kind,
            quantity=take,
            unit_price_cents=unit_price_cents,
            links=links,
            note=note,
        ))

    product.stock_on_hand -= quantity
    uow.flush()
    return transactions


def transfer(
    uow,
    *,
    product_id: int,
    source_location_id: int,
    target_location_id: int,
    quantity: int,
    note: str | None = None,
) -> tuple[InventoryTransaction, InventoryTransaction]:
    """
    Move quantity between two locations of the same product.

    Logged as STOCK_OUT at the source and STOCK_IN at the target; the source
    row is deleted when the move drains it exactly. stock_on_hand is unchanged.
    """
    quantity = _require_positive(quantity)
    if source_location_id == target_location_id:
        raise ValidationError("Source and target locations must differ")

    product = uow.product(product_id)
    source = uow.location(source_location_id)
    uow.location(target_location_id, require_active=True)

    source_item = uow.inventory_item(product_id, source_location_id)
    available = source_item.quantity if source_item is not None else 0
    if available < quantity:
        raise InsufficientStockError(product.name, available, quantity, source.name)

    if source_item.quantity == quantity:
        uow.delete(source_item)
    else:
        source_item.quantity -= quantity

    target_item = _get_or_create_item(uow, product_id, target_location_id)
    target_item.quantity += quantity

    out_tx = _append_transaction(
        uow,
        product_id=product_id,
        location_id=source_location_id,
        kind=KIND_STOCK_OUT,
        quantity=quantity,
        unit_price_cents=None,
        links={},
        note=note or f"Transfer to location {target_location_id}",
    )
    in_tx = _append_transaction(
        uow,
        product_id=product_id,
        location_id=target_location_id,
        kind=KIND_STOCK_IN,
        quantity=quantity,
        unit_price_cents=None,
        links={},
        note=note or f"Transfer from location {source_location_id}",
    )
    uow.flush()
    return out_tx, in_tx


def adjust(
    uow,
    *,
    product_id: int,
    location_id: int,
    adjustment_type: str,
    quantity: int,
    reason: str,
) -> dict:
    """
    Manual correction of a single location.

    ADD/REMOVE shift by quantity, SET replaces it. The log row is classified
    by the actual change: STOCK_IN (increase), STOCK_OUT (decrease) or
    ADJUSTMENT (no change).
    """
    adjustment_type = (adjustment_type or "").upper()
    if adjustment_type not in ADJUSTMENT_TYPES:
        raise ValidationError(
            f"Invalid adjustment type. Must be one of: {', '.join(ADJUSTMENT_TYPES)}"
        )
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("quantity must be an integer")
    if adjustment_type == ADJUST_SET:
        if quantity < 0:
            raise ValidationError("Cannot set quantity to a negative value")
    elif quantity <= 0:
        raise ValidationError("quantity must be > 0")
    if not reason or not str(reason).strip():
        raise ValidationError("reason is required")

    product = uow.product(product_id)
    location = uow.location(location_id, require_active=(adjustment_type != ADJUST_REMOVE))

    item = uow.inventory_item(product_id, location_id)
    before = item.quantity if item is not None else 0

    if adjustment_type == ADJUST_ADD:
        after = before + quantity
    elif adjustment_type == ADJUST_REMOVE:
        after = before - quantity
    else:
        after = quantity

    if after < 0:
        raise InsufficientStockError(product.name, before, quantity, location.name)

    if item is None:
        item = _get_or_create_item(uow, product_id, location_id)

    delta = after - before
    item.quantity = after
    product.stock_on_hand += delta

    if delta > 0:
        kind = KIND_STOCK_IN
    elif delta < 0:
        kind = KIND_STOCK_OUT
    else:
        kind = KIND_ADJUSTMENT

    tx = _append_transaction(
        uow,
        product_id=product_id,
        location_id=location_id,
        kind=kind,
        quantity=abs(delta),
        unit_price_cents=None,
        links={},
        note=f"{adjustment_type}: {str(reason).strip()} (Before: {before}, After: {after})"[:255],
    )
    uow.flush()

    if delta:
        current_app.logger.info(
            "Manual adjustment %s on product %s at location %s: %s -> %s",
            adjustment_type, product_id, location_id, before, after,
        )

    return {
        "inventory_item": item,
        "transaction": tx,
        "previous_quantity": before,
        "new_quantity": after,
        "quantity_change": delta,
    }


def remove_empty_item(uow, item_id: int) -> None:
    """Delete an InventoryItem that no longer holds stock. No log row: nothing moved."""
    item = uow.get(InventoryItem, item_id, label="Inventory item", lock=True)
    if item.quantity != 0:
        raise ConflictError(
            f"Inventory item {item_id} still holds {item.quantity} units; transfer or adjust it first"
        )
    uow.delete(item)
    uow.flush()
