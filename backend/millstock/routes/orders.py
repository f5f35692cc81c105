# Overview: Flask API routes for customer orders, shipment progress and fulfillment.

"""
Order Routes

SECURITY: All routes require the admin token.

FLOW:
1. POST /orders                                 -> deliveries planned from stock
2. PATCH /orders/<id>/delivery-shipment         -> Processing Order -> In Transit -> Delivered
3. POST /orders/<id>/fulfill {deliveryId}       -> stock leaves FIFO
   POST /orders/<id>/fulfill {items: [...]}     -> direct fulfillment of given quantities
"""

from flask import Blueprint, g, request

from ..decorators import require_admin
from ..responses import SERVICE_ERRORS, internal_error, ok, service_error
from ..services import fulfillment_service
from ..validation import (
    ValidationError,
    optional_int,
    optional_str,
    require_int,
    require_list,
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/admin/orders")


@orders_bp.post("")
@require_admin
def create_order_route():
    """
    Request body:
    {
        "customerName": "...",
        "customerEmail": "...", "customerPhone": "...", "shippingAddress": "...",
        "items": [{"productId": 1, "quantity": 3}]
    }
    """
    data = request.get_json(silent=True) or {}
    try:
        customer_name = optional_str(data, "customerName", "customer_name")
        if not customer_name:
            raise ValidationError("customerName is required")
        items = [
            {
                "product_id": require_int(entry, "productId", "product_id"),
                "quantity": require_int(entry, "quantity", minimum=1),
            }
            for entry in require_list(data, "items")
        ]
        order = fulfillment_service.create_order(
            customer_name=customer_name,
            items=items,
            customer_email=optional_str(data, "customerEmail", "customer_email"),
            customer_phone=optional_str(data, "customerPhone", "customer_phone", max_length=64),
            shipping_address=optional_str(data, "shippingAddress", "shipping_address", max_length=2000),
            actor=g.actor,
        )
        return ok(order.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("create order")


@orders_bp.get("/<int:order_id>")
@require_admin
def get_order_route(order_id: int):
    try:
        return ok(fulfillment_service.get_order(order_id).to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("get order")


@orders_bp.patch("/<int:order_id>/delivery-shipment")
@require_admin
def update_delivery_shipment_route(order_id: int):
    """Body: {"deliveryId": 1, "shipmentStatus": "In Transit"}"""
    data = request.get_json(silent=True) or {}
    try:
        shipment_status = optional_str(data, "shipmentStatus", "shipment_status")
        if not shipment_status:
            raise ValidationError("shipmentStatus is required")
        delivery = fulfillment_service.update_shipment(
            order_id,
            require_int(data, "deliveryId", "delivery_id"),
            shipment_status,
            actor=g.actor,
        )
        return ok(delivery.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("update delivery shipment")


@orders_bp.get("/<int:order_id>/deliveries/<int:delivery_id>/stock-check")
@require_admin
def check_delivery_stock_route(order_id: int, delivery_id: int):
    try:
        return ok(fulfillment_service.check_delivery_stock(order_id, delivery_id))
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("check delivery stock")


@orders_bp.post("/<int:order_id>/fulfill")
@require_admin
def fulfill_route(order_id: int):
    """
    Body is one of:
    - {"deliveryId": 1}
    - {"items": [{"orderItemId": 1, "quantity": 2}]}

    All stock-outs of one call commit together; a single short item aborts
    the whole fulfillment with 409.
    """
    data = request.get_json(silent=True) or {}
    try:
        delivery_id = optional_int(data, "deliveryId", "delivery_id")
        if delivery_id is not None:
            order = fulfillment_service.fulfill_delivery(order_id, delivery_id, actor=g.actor)
        elif data.get("items") is not None:
            items = [
                {
                    "order_item_id": require_int(entry, "orderItemId", "order_item_id"),
                    "quantity": require_int(entry, "quantity", minimum=1),
                }
                for entry in require_list(data, "items")
            ]
            order = fulfillment_service.fulfill_order(order_id, items=items, actor=g.actor)
        else:
            raise ValidationError("deliveryId or items is required")
        return ok(order.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("fulfill order")
