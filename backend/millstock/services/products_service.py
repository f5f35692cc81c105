# backend/millstock/services/products_service.py
"""
Products Service

Product master data only. Stock aggregates (stock_on_hand, stock_allocated,
stock_on_order) are not writable here: the ledger, receiving and fulfillment
services own them.
"""
from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..extensions import db
from ..models import PriceHistory, Product, Supplier
from ..validation import ConflictError, NotFoundError, ValidationError


PRODUCT_MUTABLE_FIELDS = {
    "name",
    "category",
    "description",
    "price_cents",
    "is_milled_rice",
    "milling_yield_rate",
    "reorder_point",
    "supplier_id",
    "is_hidden",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def list_products(
    *,
    category: str | None = None,
    milled: bool | None = None,
    include_hidden: bool = False,
    low_stock: bool = False,
) -> list[Product]:
    query = db.session.query(Product)
    if category:
        query = query.filter(Product.category == category)
    if milled is not None:
        query = query.filter(Product.is_milled_rice.is_(milled))
    if not include_hidden:
        query = query.filter(Product.is_hidden.is_(False))
    if low_stock:
        query = query.filter(
            Product.reorder_point.isnot(None),
            Product.stock_on_hand <= Product.reorder_point,
        )
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def _check_supplier(supplier_id: int | None) -> None:
    if supplier_id is not None and db.session.get(Supplier, supplier_id) is None:
        raise NotFoundError(f"Supplier {supplier_id} not found")


def _check_name_free(name: str, is_milled_rice: bool, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(
        Product.name == name,
        Product.is_milled_rice.is_(bool(is_milled_rice)),
    )
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first() is not None:
        raise ConflictError(f"Product {name!r} already exists")


def create_product(*, patch: dict) -> Product:
    _check_supplier(patch.get("supplier_id"))
    _check_name_free(patch["name"], patch.get("is_milled_rice", False))

    p = Product()
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.commit()
    return p


def update_product(
    *,
    product_id: int,
    patch: dict,
    price_change_reason: str | None = None,
    actor: str | None = None,
) -> Product:
    """
    Apply a partial update. A change of price_cents appends a PriceHistory
    row in the same commit.
    """
    p = get_product(product_id)
    if "supplier_id" in patch:
        _check_supplier(patch["supplier_id"])
    if "name" in patch or "is_milled_rice" in patch:
        _check_name_free(
            patch.get("name", p.name),
            patch.get("is_milled_rice", p.is_milled_rice),
            exclude_id=p.id,
        )
    old_price = p.price_cents
    apply_product_patch(p, patch)
    if "price_cents" in patch and patch["price_cents"] != old_price:
        db.session.add(PriceHistory(
            product_id=p.id,
            old_price_cents=old_price,
            new_price_cents=patch["price_cents"],
            changed_by=actor or "system",
            reason=(price_change_reason or "Price updated")[:255],
        ))
        current_app.logger.info(
            "Price of product %s changed from %s to %s by %s", p.id, old_price, patch["price_cents"], actor,
        )
    db.session.commit()
    return p


def list_price_history(product_id: int) -> list[PriceHistory]:
    """Most recent first."""
    get_product(product_id)
    return (
        db.session.query(PriceHistory)
        .filter(PriceHistory.product_id == product_id)
        .order_by(PriceHistory.created_at.desc(), PriceHistory.id.desc())
        .all()
    )


def list_suppliers(*, include_inactive: bool = False) -> list[Supplier]:
    query = db.session.query(Supplier)
    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))
    return query.order_by(Supplier.name.asc()).all()


def create_supplier(*, name: str, contact_name: str | None = None,
                    contact_email: str | None = None, contact_phone: str | None = None) -> Supplier:
    if not name or not name.strip():
        raise ValidationError("name is required")
    if db.session.query(Supplier).filter_by(name=name.strip()).first() is not None:
        raise ConflictError(f"Supplier {name!r} already exists")
    supplier = Supplier(
        name=name.strip(),
        contact_name=contact_name,
        contact_email=contact_email,
        contact_phone=contact_phone,
    )
    db.session.add(supplier)
    db.session.commit()
    return supplier


def mark_unmilled(*, name_contains: str, yield_rate: Decimal) -> list[Product]:
    """
    Bulk-flag products as unmilled rice with a milling yield rate.

    Derived milling output ("Milled ...") is never flipped back, and a
    product whose unmilled twin already exists is skipped.
    """
    if not name_contains or not name_contains.strip():
        raise ValidationError("name_contains is required")
    if not (Decimal("0") < yield_rate <= Decimal("100")):
        raise ValidationError("yield_rate must be within (0, 100]")

    pattern = f"%{name_contains.strip()}%"
    candidates = (
        db.session.query(Product)
        .filter(Product.name.ilike(pattern))
        .order_by(Product.id.asc())
        .all()
    )
    unmilled_names = {p.name for p in candidates if not p.is_milled_rice}

    products = []
    for p in candidates:
        if p.name.startswith("Milled "):
            continue
        if p.is_milled_rice:
            if p.name in unmilled_names:
                current_app.logger.warning("Skipping product %s: an unmilled %r already exists", p.id, p.name)
                continue
            p.is_milled_rice = False
        p.milling_yield_rate = yield_rate
        products.append(p)
    db.session.commit()

    current_app.logger.info("Marked %s product(s) matching %r as unmilled at %s%%", len(products), name_contains, yield_rate)
    return products
