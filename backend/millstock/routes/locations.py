# Overview: Flask API routes for storage locations; parses input and returns JSON responses.

"""
Storage Location Routes

SECURITY: All routes require the admin token.

DELETE is a soft delete and answers 409 while stock still sits at the
location.
"""

from flask import Blueprint, request

from ..decorators import require_admin
from ..models import StorageLocation
from ..responses import SERVICE_ERRORS, internal_error, ok, service_error
from ..services import inventory_service, location_service
from ..validation import ModelValidationPolicy, enforce_rules_location, validate_payload

LOCATION_POLICY = ModelValidationPolicy(
    writable_fields={"name", "code", "type", "description", "parent_id", "capacity", "is_active"},
    required_on_create={"name", "code"},
    aliases={"parentId": "parent_id", "isActive": "is_active"},
)

locations_bp = Blueprint("locations", __name__, url_prefix="/api/admin/storage-locations")


@locations_bp.get("")
@require_admin
def list_locations_route():
    """
    Query params:
    - include_inactive: "true" to include soft-deleted locations
    - type: WAREHOUSE | ZONE | SHELF | BIN
    """
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    location_type = request.args.get("type")
    try:
        locations = location_service.list_locations(
            include_inactive=include_inactive, location_type=location_type
        )
        return ok([loc.to_dict(include_children=True) for loc in locations])
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("list storage locations")


@locations_bp.post("")
@require_admin
def create_location_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=StorageLocation, payload=payload, policy=LOCATION_POLICY, partial=False)
        enforce_rules_location(patch)
        location = location_service.create_location(patch=patch)
        return ok(location.to_dict(), 201)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("create storage location")


@locations_bp.get("/<int:location_id>")
@require_admin
def get_location_route(location_id: int):
    """Location with its children and the stock currently held there."""
    try:
        location = location_service.get_location(location_id)
        data = location.to_dict(include_children=True)
        summary = inventory_service.location_stock_summary(location_id)
        data["total_quantity"] = summary["total_quantity"]
        data["inventory"] = summary["items"]
        return ok(data)
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("get storage location")


@locations_bp.put("/<int:location_id>")
@require_admin
def update_location_route(location_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(model=StorageLocation, payload=payload, policy=LOCATION_POLICY, partial=True)
        enforce_rules_location(patch)
        location = location_service.update_location(location_id=location_id, patch=patch)
        return ok(location.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("update storage location")


@locations_bp.delete("/<int:location_id>")
@require_admin
def delete_location_route(location_id: int):
    try:
        location = location_service.delete_location(location_id)
        return ok(location.to_dict())
    except SERVICE_ERRORS as e:
        return service_error(e)
    except Exception:
        return internal_error("delete storage location")
