# Overview: Unit-of-work capability handed to the ledger primitives.

"""
Unit of Work

The ledger primitives never reach for db.session directly. They receive a
UnitOfWork that exposes exactly the reads and writes they need:

- load a product / location / inventory item (with row locking)
- list a product's inventory items in FIFO or LIFO order
- add, delete, flush

Every read goes to the database inside the current transaction, so callers
always act on fresh state rather than an object carried over from an earlier
step. Transaction boundaries (commit/rollback/retry) belong to
concurrency.run_atomic, not to this class.
"""

from __future__ import annotations

from ..models import InventoryItem, Product, StorageLocation
from ..validation import ConflictError, NotFoundError
from .concurrency import lock_for_update


class UnitOfWork:
    def __init__(self, session, *, actor: str | None = None):
        self.session = session
        self.actor = actor

    def get(self, model, object_id: int, *, label: str | None = None, lock: bool = False):
        query = self.session.query(model).filter_by(id=object_id)
        if lock:
            query = lock_for_update(query)
        obj = query.first()
        if obj is None:
            raise NotFoundError(f"{label or model.__name__} {object_id} not found")
        return obj

    def product(self, product_id: int, *, lock: bool = True) -> Product:
        return self.get(Product, product_id, label="Product", lock=lock)

    def location(self, location_id: int, *, require_active: bool = False) -> StorageLocation:
        location = self.get(StorageLocation, location_id, label="Storage location")
        if require_active and not location.is_active:
            raise ConflictError(f"Storage location {location.name} is inactive")
        return location

    def inventory_item(self, product_id: int, location_id: int, *, lock: bool = True) -> InventoryItem | None:
        query = self.session.query(InventoryItem).filter_by(
            product_id=product_id, location_id=location_id
        )
        if lock:
            query = lock_for_update(query)
        return query.first()

    def inventory_items(
        self,
        product_id: int,
        *,
        newest_first: bool = False,
        location_id: int | None = None,
    ) -> list[InventoryItem]:
        """Rows for a product ordered by created_at (FIFO) or reversed (LIFO), tie-broken by id."""
        query = self.session.query(InventoryItem).filter(InventoryItem.product_id == product_id)
        if location_id is not None:
            query = query.filter(InventoryItem.location_id == location_id)
        if newest_first:
            query = query.order_by(InventoryItem.created_at.desc(), InventoryItem.id.desc())
        else:
            query = query.order_by(InventoryItem.created_at.asc(), InventoryItem.id.asc())
        return lock_for_update(query).all()

    def add(self, obj):
        self.session.add(obj)
        return obj

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        self.session.flush()
