# Overview: Flask API routes for products and suppliers; parses input and returns JSON responses.

# backend/millstock/routes/products.py
"""
Product management routes.

SECURITY: All routes require the admin token.

Stock aggregates (stock_on_hand, stock_allocated, stock_on_order) are
read-only here; they move only through the inventory, receiving and
fulfillment endpoints.
"""
from flask import Blueprint, g, request

from ..decorators import require_admin
from ..models import Product
from ..responses import SERVICE_ERRORS, internal_error, ok, service_error
from ..services import inventory_service, products_service
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_product,
    optional_int,
    optional_str,
    validate_payload,
    ValidationError,
)

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={
        "name",
        "category",
        "description",
        "price_cents",
        "is_milled_rice",
        "milling_yield_rate",
        "reorder_point",
        "supplier_id",
        "is_hidden",
    },
    required_on_create={"name"},
    aliases={
        "priceCents": "price_cents",
        "isMilledRice": "is_milled_rice",
        "millingYieldRate": "milling_yield_rate",
        "reorderPoint": "reorder_point",
        "supplierId": "supplier_id",
        "isHidden": "is_hidden",
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/admin")


def _flag(name: str) -> bool | None:
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    return raw.lower() in ("1", "true", "yes")


@products_bp.get("/products")
@require_admin
def list_products_route():
    """
    Query params:
    - category: exact category label
    - milled: true | false
    - include_hidden: true to include hidden products
    - low_stock: true for products at or below their reorder point
    """
    try:
        products = products_service.list_products(
            category=request.args.get("category"),
            milled=_flag("milled"),
            include_hidden=bool(_flag("include_hidden")),
            low_stock=bool(_flag("low_stock")),
        )
        return ok([p.to_dict() for p in products])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list products")


@products_bp.post("/products")
@require_admin
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
        enforce_rules_product(patch)
        product = products_service.create_product(patch=patch)
        return ok(product.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("create product")


@products_bp.get("/products/<int:product_id>")
@require_admin
def get_product_route(product_id: int):
    """Product with its per-location inventory rows."""
    try:
        product = products_service.get_product(product_id)
        data = product.to_dict()
        data["inventory"] = [
            item.to_dict() for item in inventory_service.list_inventory(product_id=product_id)
        ]
        return ok(data)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("get product")


@products_bp.put("/products/<int:product_id>")
@require_admin
def update_product_route(product_id: int):
    """
    Partial update. Body may carry "priceChangeReason", recorded with the
    price history row when price_cents changes.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        payload = dict(payload)
        reason = optional_str(payload, "priceChangeReason", "price_change_reason")
        payload.pop("priceChangeReason", None)
        payload.pop("price_change_reason", None)
        patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
        enforce_rules_product(patch)
        product = products_service.update_product(
            product_id=product_id,
            patch=patch,
            price_change_reason=reason,
            actor=g.actor,
        )
        return ok(product.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("update product")


@products_bp.get("/products/<int:product_id>/price-history")
@require_admin
def list_price_history_route(product_id: int):
    """Price changes for one product, most recent first."""
    try:
        history = products_service.list_price_history(product_id)
        return ok([row.to_dict() for row in history])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list price history")


@products_bp.get("/products/<int:product_id>/transactions")
@require_admin
def list_product_transactions_route(product_id: int):
    """
    Ledger rows for one product, most recent first.

    Query params:
    - kind: STOCK_IN | STOCK_OUT | ADJUSTMENT | MILLING_IN | MILLING_OUT | RETURN_OUT
    - location_id: only rows at this location
    - limit: 1..1000 (default 200)
    """
    try:
        args = request.args.to_dict()
        transactions = inventory_service.list_product_transactions(
            product_id,
            kind=args.get("kind") or None,
            location_id=optional_int(args, "locationId", "location_id"),
            limit=optional_int(args, "limit") or 200,
        )
        return ok([tx.to_dict() for tx in transactions])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list product transactions")


@products_bp.get("/suppliers")
@require_admin
def list_suppliers_route():
    try:
        suppliers = products_service.list_suppliers(include_inactive=bool(_flag("include_inactive")))
        return ok([s.to_dict() for s in suppliers])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list suppliers")


@products_bp.post("/suppliers")
@require_admin
def create_supplier_route():
    data = request.get_json(silent=True) or {}
    try:
        name = optional_str(data, "name")
        if not name:
            raise ValidationError("name is required")
        supplier = products_service.create_supplier(
            name=name,
            contact_name=optional_str(data, "contactName", "contact_name"),
            contact_email=optional_str(data, "contactEmail", "contact_email"),
            contact_phone=optional_str(data, "contactPhone", "contact_phone", max_length=64),
        )
        return ok(supplier.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("create supplier")
