# Overview: Reminder hooks for backorders; delivery transports live outside this service.

"""
Backorder reminder notifications.

Transports (email, SMS) are registered as plain callables taking a payload
dict. Delivery is fire-and-forget: a failing hook is logged and the next one
still runs; the caller never sees the error.
"""

from __future__ import annotations

from flask import current_app


_reminder_hooks: list = []


def register_reminder_hook(hook) -> None:
    if hook not in _reminder_hooks:
        _reminder_hooks.append(hook)


def clear_reminder_hooks() -> None:
    _reminder_hooks.clear()


def backorder_reminder_payload(backorder, supplier, product) -> dict:
    return {
        "backorder_id": backorder.id,
        "purchase_order_item_id": backorder.purchase_order_item_id,
        "quantity": backorder.quantity,
        "expected_date": backorder.to_dict()["expected_date"],
        "product_name": product.name if product else None,
        "supplier_name": supplier.name if supplier else None,
        "supplier_email": supplier.contact_email if supplier else None,
        "supplier_phone": supplier.contact_phone if supplier else None,
    }


def send_backorder_reminder(payload: dict) -> int:
    """Run every hook; returns how many succeeded."""
    current_app.logger.info(
        "Backorder %s reminder: %s x %s from %s",
        payload.get("backorder_id"),
        payload.get("quantity"),
        payload.get("product_name"),
        payload.get("supplier_name"),
    )
    delivered = 0
    for hook in list(_reminder_hooks):
        try:
            hook(payload)
            delivered += 1
        except Exception:
            current_app.logger.exception("Backorder reminder hook %r failed", hook)
    return delivered
