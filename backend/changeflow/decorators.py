# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import NotFoundError
from .services import tenant_service


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user and establish tenant context.

    Credential checks belong to the authentication layer in front of this
    service; by the time a request arrives here it carries the verified
    user id in the X-User-Id header.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The acting User object
    - g.org_id: The organization ID (tenant context)

    Returns 401 if the header is missing, malformed, or names an unknown
    or deactivated user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required"}), 401

        try:
            user = tenant_service.require_user(int(raw))
        except NotFoundError:
            current_app.logger.warning("Rejected request for unknown user id %s on %s", raw, request.path)
            return jsonify({"error": "Invalid or inactive user"}), 401

        g.current_user = user
        g.org_id = user.org_id

        return f(*args, **kwargs)

    return decorated_function
