# Overview: Request decorators for admin API routes.

import hmac
from functools import wraps

from flask import current_app, g, request

from .responses import fail

DEFAULT_ACTOR = "admin"
MAX_ACTOR_LENGTH = 100


def _token_matches(presented: str) -> bool:
    expected = current_app.config.get("ADMIN_API_TOKEN")
    if not expected:
        return False
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def require_admin(f):
    """
    Require the shared admin bearer token.

    Sets g.actor from the X-Actor header (default "admin"); services store it
    in created_by / fulfilled_by.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Token does not match ADMIN_API_TOKEN (or none is configured)
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return fail("Authentication required", 401)

        token = auth_header.split(" ", 1)[1].strip()
        if not _token_matches(token):
            current_app.logger.warning(
                "Rejected admin request %s %s from %s", request.method, request.path, request.remote_addr
            )
            return fail("Invalid admin token", 401)

        actor = (request.headers.get("X-Actor") or "").strip()
        g.actor = actor[:MAX_ACTOR_LENGTH] or DEFAULT_ACTOR

        return f(*args, **kwargs)

    return decorated_function
