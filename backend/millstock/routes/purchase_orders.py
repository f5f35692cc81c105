# Overview: Flask API routes for purchase orders, receiving, returns and backorders.

"""
Purchase Order Routes

SECURITY: All routes require the admin token.

LIFECYCLE (see receive_service):
    POST /purchase-orders                 -> Pending
    POST /purchase-orders/<id>/ordered    -> Ordered
    POST /purchase-orders/<id>/receive    -> Partial / Completed
    POST /purchase-orders/<id>/cancel     -> Cancelled

Money is integer cents throughout; "price" and "amount" keys are read as
cents.
"""

from flask import Blueprint, g, request

from ..decorators import require_admin
from ..responses import SERVICE_ERRORS, internal_error, ok, service_error
from ..services import backorder_service, finance_service, inventory_service, receive_service, return_service
from ..validation import (
    ValidationError,
    optional_datetime,
    optional_int,
    optional_str,
    require_int,
    require_list,
)

purchase_orders_bp = Blueprint("purchase_orders", __name__, url_prefix="/api/admin")


def _po_payload(po) -> dict:
    data = po.to_dict()
    data["payment"] = finance_service.payment_status(po.id)
    return data


# =============================================================================
# PURCHASE ORDERS
# =============================================================================

@purchase_orders_bp.get("/purchase-orders")
@require_admin
def list_purchase_orders_route():
    """
    Query params:
    - status: Pending | Ordered | Partial | Completed | Cancelled
    - supplier_id
    """
    try:
        args = request.args.to_dict()
        pos = receive_service.list_purchase_orders(
            status=args.get("status") or None,
            supplier_id=optional_int(args, "supplierId", "supplier_id"),
        )
        return ok([po.to_dict(include_items=False) for po in pos])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list purchase orders")


@purchase_orders_bp.post("/purchase-orders")
@require_admin
def create_purchase_order_route():
    """
    Request body:
    {
        "supplierId": 1,
        "items": [{"productId": 1, "quantity": 100, "priceCents": 4500}],
        "paymentType": "FULL" | "MONTHLY",
        "monthlyTerms": 3,        // required for MONTHLY
        "dueDate": "2025-01-31",  // optional
        "note": "..."             // optional
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        items = [
            {
                "product_id": require_int(entry, "productId", "product_id"),
                "quantity": require_int(entry, "quantity", minimum=1),
                "price_cents": require_int(entry, "priceCents", "price_cents", "price", minimum=0),
            }
            for entry in require_list(data, "items")
        ]
        po = receive_service.create_purchase_order(
            supplier_id=require_int(data, "supplierId", "supplier_id"),
            items=items,
            payment_type=optional_str(data, "paymentType", "payment_type") or "FULL",
            monthly_terms=optional_int(data, "monthlyTerms", "monthly_terms", minimum=1),
            due_date=optional_datetime(data, "dueDate", "due_date"),
            note=optional_str(data, "note", max_length=2000),
            actor=g.actor,
        )
        return ok(po.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("create purchase order")


@purchase_orders_bp.get("/purchase-orders/<int:po_id>")
@require_admin
def get_purchase_order_route(po_id: int):
    try:
        po = receive_service.get_purchase_order(po_id)
        data = _po_payload(po)
        data["backorders"] = [
            b.to_dict() for b in backorder_service.list_backorders(po_id, include_settled=True)
        ]
        data["returns"] = [r.to_dict() for r in return_service.list_returns(po_id)]
        return ok(data)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("get purchase order")


@purchase_orders_bp.post("/purchase-orders/<int:po_id>/ordered")
@require_admin
def mark_ordered_route(po_id: int):
    try:
        po = receive_service.mark_ordered(po_id, actor=g.actor)
        return ok(po.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("mark purchase order ordered")


@purchase_orders_bp.post("/purchase-orders/<int:po_id>/cancel")
@require_admin
def cancel_purchase_order_route(po_id: int):
    try:
        po = receive_service.cancel_purchase_order(po_id, actor=g.actor)
        return ok(po.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("cancel purchase order")


# =============================================================================
# RECEIVING
# =============================================================================

@purchase_orders_bp.post("/purchase-orders/<int:po_id>/receive")
@require_admin
def receive_route(po_id: int):
    """
    Request body:
    {
        "lines": [
            {"purchaseOrderItemId": 1, "locationId": 2, "receivedNow": 40, "expectedDate": "2025-02-01"}
        ],
        "note": "..."
    }

    Over-receipt is clamped to the outstanding quantity (logged, not an error).
    """
    data = request.get_json(silent=True) or {}
    try:
        lines = [
            {
                "purchase_order_item_id": require_int(entry, "purchaseOrderItemId", "purchase_order_item_id"),
                "location_id": optional_int(entry, "locationId", "location_id"),
                "received_now": optional_int(entry, "receivedNow", "received_now", minimum=0) or 0,
                "expected_date": optional_datetime(entry, "expectedDate", "expected_date"),
            }
            for entry in require_list(data, "lines")
        ]
        result = receive_service.receive(
            po_id,
            lines=lines,
            note=optional_str(data, "note"),
            actor=g.actor,
        )
        return ok({
            "purchase_order": result["purchase_order"].to_dict(),
            "lines": [
                {
                    "line": row["line"].to_dict(),
                    "requested": row["requested"],
                    "received_now": row["received_now"],
                    "backorders": [b.to_dict() for b in row["backorders"]],
                }
                for row in result["lines"]
            ],
        })
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("receive purchase order")


# =============================================================================
# RETURNS
# =============================================================================

@purchase_orders_bp.post("/purchase-orders/<int:po_id>/returns")
@require_admin
def create_return_route(po_id: int):
    """
    Request body:
    {
        "reason": "Damaged sacks",
        "items": [{"purchaseOrderItemId": 1, "quantity": 5, "note": "..."}]
    }

    Returns 409 with available/requested when the stock has already left.
    """
    data = request.get_json(silent=True) or {}
    try:
        reason = optional_str(data, "reason")
        if not reason:
            raise ValidationError("reason is required")
        items = [
            {
                "purchase_order_item_id": require_int(entry, "purchaseOrderItemId", "purchase_order_item_id"),
                "quantity": require_int(entry, "quantity", minimum=1),
                "note": optional_str(entry, "note"),
            }
            for entry in require_list(data, "items")
        ]
        ret = return_service.create_return(po_id, reason=reason, items=items, actor=g.actor)
        return ok(ret.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("create return")


@purchase_orders_bp.get("/purchase-orders/items/<int:item_id>/transactions")
@require_admin
def list_po_item_transactions_route(item_id: int):
    """Ledger rows (receipts, returns, repairs) linked to one PO line, newest first."""
    try:
        transactions = inventory_service.list_purchase_order_item_transactions(item_id)
        return ok([tx.to_dict() for tx in transactions])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list purchase order item transactions")


# =============================================================================
# BACKORDERS
# =============================================================================

@purchase_orders_bp.get("/purchase-orders/<int:po_id>/backorders")
@require_admin
def list_backorders_route(po_id: int):
    """?all=true includes Closed/Fulfilled backorders."""
    include_settled = request.args.get("all", "false").lower() == "true"
    try:
        backorders = backorder_service.list_backorders(po_id, include_settled=include_settled)
        return ok([b.to_dict() for b in backorders])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list backorders")


@purchase_orders_bp.patch("/backorders/<int:backorder_id>/remind")
@require_admin
def remind_backorder_route(backorder_id: int):
    """Body: {"nextExpectedDate": "2025-02-15"} (optional)"""
    data = request.get_json(silent=True) or {}
    try:
        backorder = backorder_service.remind(
            backorder_id,
            next_expected_date=optional_datetime(data, "nextExpectedDate", "next_expected_date"),
            actor=g.actor,
        )
        return ok(backorder.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("remind backorder")
