# Overview: JSON envelope helpers shared by every blueprint.

"""
Response Envelope

Every endpoint answers with one shape:

    {"ok": true,  "data": ...}
    {"ok": false, "error": "message", ...extra}

service_error() maps the domain exception taxonomy to status codes:

    ValidationError          -> 400
    NotFoundError            -> 404
    InsufficientStockError   -> 409 (+ product/available/requested)
    ConflictError            -> 409
    StaleDataError           -> 409 (retries exhausted)
    OperationalError         -> 503 (store busy or unreachable; caller may retry)
"""

from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .validation import ConflictError, InsufficientStockError, NotFoundError, ValidationError

# Exceptions a route hands to service_error(); anything else is a 500.
SERVICE_ERRORS = (ValidationError, NotFoundError, ConflictError, StaleDataError, OperationalError)


def ok(data=None, status: int = 200):
    return jsonify({"ok": True, "data": data}), status


def fail(message: str, status: int, **extra):
    body = {"ok": False, "error": message}
    body.update(extra)
    return jsonify(body), status


def service_error(exc: Exception):
    if isinstance(exc, InsufficientStockError):
        return fail(str(exc), 409, **exc.to_dict())
    if isinstance(exc, ValidationError):
        return fail(str(exc), 400)
    if isinstance(exc, NotFoundError):
        return fail(str(exc), 404)
    if isinstance(exc, ConflictError):
        return fail(str(exc), 409)
    if isinstance(exc, StaleDataError):
        current_app.logger.warning("Concurrent update retries exhausted: %s", exc)
        return fail("The record was changed by another request; please retry", 409)
    if isinstance(exc, OperationalError):
        current_app.logger.warning("Database unavailable: %s", exc.orig)
        return fail("Database is busy or unavailable; please retry", 503)
    raise exc


def internal_error(action: str):
    """Log the active exception with its traceback and answer 500."""
    current_app.logger.exception("Failed to %s", action)
    return fail("Internal server error", 500)
