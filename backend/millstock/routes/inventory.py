# Overview: Flask API routes for inventory operations; parses input and returns JSON responses.

"""
Inventory Routes

SECURITY: All routes require the admin token; the X-Actor header is stored
as created_by on every ledger row.

Every write endpoint is one ledger operation and one DB transaction. Body
keys are accepted in camelCase or snake_case; categoryId is the legacy name
for productId.
"""

from flask import Blueprint, g, request

from ..decorators import require_admin
from ..responses import SERVICE_ERRORS, internal_error, ok, service_error
from ..services import inventory_service, milling_service, reconciliation_service
from ..validation import (
    ValidationError,
    optional_int,
    optional_str,
    require_int,
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/admin/inventory")

PRODUCT_KEYS = ("productId", "product_id", "categoryId")


def _truthy(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).lower() in ("1", "true", "yes")


@inventory_bp.get("")
@require_admin
def list_inventory_route():
    """
    Query params:
    - product_id / location_id: filters
    - low_stock: true for rows whose product is at or below its reorder point
    - include_empty: false to hide zero-quantity rows
    """
    try:
        args = request.args.to_dict()
        items = inventory_service.list_inventory(
            product_id=optional_int(args, *PRODUCT_KEYS),
            location_id=optional_int(args, "locationId", "location_id"),
            low_stock=_truthy(args.get("low_stock", False)),
            include_empty=_truthy(args.get("include_empty", True)),
        )
        return ok([item.to_dict() for item in items])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list inventory")


@inventory_bp.post("")
@require_admin
def assign_or_transfer_route():
    """
    Assign new stock to a location, or move stock between two locations.

    Assign:   {productId, locationId, quantity, notes?}
    Transfer: {productId, sourceLocationId, targetLocationId, quantity, notes?, isTransfer: true}
    """
    data = request.get_json(silent=True) or {}
    try:
        product_id = require_int(data, *PRODUCT_KEYS)
        quantity = require_int(data, "quantity", minimum=1)
        note = optional_str(data, "notes", "note")

        if _truthy(data.get("isTransfer", data.get("is_transfer", False))):
            out_tx, in_tx = inventory_service.transfer_stock(
                product_id=product_id,
                source_location_id=require_int(data, "sourceLocationId", "source_location_id"),
                target_location_id=require_int(data, "targetLocationId", "target_location_id"),
                quantity=quantity,
                note=note,
                actor=g.actor,
            )
            return ok({"transactions": [out_tx.to_dict(), in_tx.to_dict()]}, 201)

        tx = inventory_service.assign_stock(
            product_id=product_id,
            location_id=require_int(data, "locationId", "location_id"),
            quantity=quantity,
            note=note,
            unit_price_cents=optional_int(data, "unitPriceCents", "unit_price_cents", minimum=0),
            actor=g.actor,
        )
        return ok({"transactions": [tx.to_dict()]}, 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("assign inventory")


@inventory_bp.post("/adjust")
@require_admin
def adjust_route():
    """
    Body: {productId, locationId, adjustmentType: ADD|REMOVE|SET, quantity, reason}
    """
    data = request.get_json(silent=True) or {}
    try:
        reason = optional_str(data, "reason")
        if not reason:
            raise ValidationError("reason is required")
        adjustment_type = optional_str(data, "adjustmentType", "adjustment_type")
        if not adjustment_type:
            raise ValidationError("adjustmentType is required")

        result = inventory_service.adjust_stock(
            product_id=require_int(data, *PRODUCT_KEYS),
            location_id=require_int(data, "locationId", "location_id"),
            adjustment_type=adjustment_type,
            quantity=require_int(data, "quantity", minimum=0),
            reason=reason,
            actor=g.actor,
        )
        return ok({
            "inventory_item": result["inventory_item"].to_dict(),
            "transaction": result["transaction"].to_dict(),
            "previous_quantity": result["previous_quantity"],
            "new_quantity": result["new_quantity"],
            "quantity_change": result["quantity_change"],
        })
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("adjust inventory")


@inventory_bp.post("/mill-rice")
@require_admin
def mill_rice_route():
    """
    Body: {sourceProductId, sourceLocationId, targetLocationId, quantity}
    (sourceCategoryId accepted for sourceProductId)
    """
    data = request.get_json(silent=True) or {}
    try:
        result = milling_service.mill(
            source_product_id=require_int(
                data, "sourceProductId", "source_product_id", "sourceCategoryId"
            ),
            source_location_id=require_int(data, "sourceLocationId", "source_location_id"),
            target_location_id=require_int(data, "targetLocationId", "target_location_id"),
            quantity=require_int(data, "quantity", minimum=1),
            actor=g.actor,
        )
        return ok({
            "source_product": result["source_product"].to_dict(),
            "milled_product": result["milled_product"].to_dict(),
            "input_quantity": result["input_quantity"],
            "output_quantity": result["output_quantity"],
            "yield_rate": str(result["yield_rate"]),
            "transactions": [tx.to_dict() for tx in result["transactions"]],
        }, 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("mill rice")


@inventory_bp.delete("/<int:item_id>")
@require_admin
def remove_empty_item_route(item_id: int):
    try:
        inventory_service.remove_empty_item(item_id)
        return ok({"id": item_id, "deleted": True})
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("remove inventory item")


@inventory_bp.get("/reconcile")
@require_admin
def reconcile_route():
    """Read-only drift report; fixing is a CLI operation."""
    try:
        return ok(reconciliation_service.reconcile(fix=False))
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("reconcile inventory")
