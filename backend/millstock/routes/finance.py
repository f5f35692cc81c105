# Overview: Flask API routes for the finance ledger; parses input and returns JSON responses.

"""
Finance Routes

SECURITY: All routes require the admin token.

Amounts are integer cents. Payables are booked automatically when a purchase
order is created; sales when a customer order is created.
"""

from flask import Blueprint, g, request

from ..decorators import require_admin
from ..responses import SERVICE_ERRORS, internal_error, ok, service_error
from ..services import finance_service
from ..validation import optional_int, optional_str, require_int

finance_bp = Blueprint("finance", __name__, url_prefix="/api/admin/finance")


@finance_bp.get("/summary")
@require_admin
def summary_route():
    try:
        recent = optional_int(request.args.to_dict(), "recent", minimum=1) or 20
        return ok(finance_service.summary(recent=min(recent, 200)))
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("load finance summary")


@finance_bp.get("/payables")
@require_admin
def payables_route():
    """?status=UNPAID|PARTIAL|PAID"""
    try:
        return ok(finance_service.list_payables(status=request.args.get("status") or None))
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list payables")


@finance_bp.post("/pay")
@require_admin
def pay_route():
    """Body: {"purchaseOrderId": 1, "amount": 150000, "paymentType": "FULL"}"""
    data = request.get_json(silent=True) or {}
    try:
        payment_type = optional_str(data, "paymentType", "payment_type")
        result = finance_service.pay_purchase_order(
            purchase_order_id=require_int(data, "purchaseOrderId", "purchase_order_id"),
            amount_cents=require_int(data, "amountCents", "amount_cents", "amount", minimum=1),
            payment_type=payment_type.upper() if payment_type else None,
            actor=g.actor,
        )
        return ok(result)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("pay purchase order")


@finance_bp.post("/deposit")
@require_admin
def deposit_route():
    """Body: {"amount": 500000, "description": "..."}"""
    data = request.get_json(silent=True) or {}
    try:
        account = finance_service.deposit(
            amount_cents=require_int(data, "amountCents", "amount_cents", "amount", minimum=1),
            description=optional_str(data, "description"),
            actor=g.actor,
        )
        return ok(account.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("record deposit")
