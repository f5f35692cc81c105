# Overview: Service-layer operations for storage locations; hierarchy and soft delete.

"""
Storage Location Service

Locations form a tree (WAREHOUSE > ZONE > SHELF > BIN, loosely; types are
labels, not enforced nesting). Rules:

- name and code are unique; code is stored upper-cased
- a location may not become its own ancestor
- deletion is soft (is_active=False) and refused while stock sits there
- inactive locations keep their history but accept no new stock
"""

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import InventoryItem, StorageLocation
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update

LOCATION_MUTABLE_FIELDS = {"name", "code", "type", "description", "parent_id", "capacity", "is_active"}


def get_location(location_id: int) -> StorageLocation:
    location = db.session.get(StorageLocation, location_id)
    if location is None:
        raise NotFoundError(f"Storage location {location_id} not found")
    return location


def list_locations(*, include_inactive: bool = False, location_type: str | None = None) -> list[StorageLocation]:
    query = db.session.query(StorageLocation)
    if not include_inactive:
        query = query.filter(StorageLocation.is_active.is_(True))
    if location_type:
        query = query.filter(StorageLocation.type == location_type.upper())
    return query.order_by(StorageLocation.code.asc(), StorageLocation.id.asc()).all()


def _check_unique(patch: dict, *, exclude_id: int | None = None) -> None:
    for field in ("name", "code"):
        value = patch.get(field)
        if value is None:
            continue
        query = db.session.query(StorageLocation).filter(getattr(StorageLocation, field) == value)
        if exclude_id is not None:
            query = query.filter(StorageLocation.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"A storage location with {field} {value!r} already exists")


def _check_parent(location_id: int | None, parent_id: int | None) -> None:
    if parent_id is None:
        return
    parent = db.session.get(StorageLocation, parent_id)
    if parent is None:
        raise NotFoundError(f"Parent location {parent_id} not found")
    if location_id is None:
        return

    # Walk up from the proposed parent; meeting ourselves means a cycle
    seen = set()
    node = parent
    while node is not None:
        if node.id == location_id:
            raise ValidationError("A location cannot be placed under itself or one of its children")
        if node.id in seen:
            break
        seen.add(node.id)
        node = node.parent


def create_location(*, patch: dict) -> StorageLocation:
    if not patch.get("type"):
        patch["type"] = "WAREHOUSE"
    _check_unique(patch)
    _check_parent(None, patch.get("parent_id"))

    location = StorageLocation(**{k: v for k, v in patch.items() if k in LOCATION_MUTABLE_FIELDS})
    db.session.add(location)
    db.session.commit()
    return location


def update_location(*, location_id: int, patch: dict) -> StorageLocation:
    location = get_location(location_id)
    _check_unique(patch, exclude_id=location_id)
    if "parent_id" in patch:
        _check_parent(location_id, patch["parent_id"])

    if patch.get("is_active") is False and location.is_active:
        _ensure_empty(location)

    for key, value in patch.items():
        if key in LOCATION_MUTABLE_FIELDS:
            setattr(location, key, value)
    db.session.commit()
    return location


def location_stock(location_id: int) -> int:
    return int(
        db.session.query(func.coalesce(func.sum(InventoryItem.quantity), 0))
        .filter(InventoryItem.location_id == location_id)
        .scalar()
        or 0
    )


def _ensure_empty(location: StorageLocation) -> None:
    held = location_stock(location.id)
    if held > 0:
        raise ConflictError(
            f"Cannot delete location {location.name}: it still holds {held} units of stock"
        )


def delete_location(location_id: int) -> StorageLocation:
    """Soft delete. Refused while any InventoryItem here has quantity > 0."""
    location = lock_for_update(
        db.session.query(StorageLocation).filter_by(id=location_id)
    ).first()
    if location is None:
        raise NotFoundError(f"Storage location {location_id} not found")

    try:
        _ensure_empty(location)
        location.is_active = False
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return location
