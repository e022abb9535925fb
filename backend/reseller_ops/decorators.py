# Overview: Request identity and environment-membership decorators for API routes.

import inspect
from functools import wraps
from flask import current_app, request, jsonify, g

from .services import tenant_service
from .services.tenant_service import MembershipError, TenantAccessError


def _is_authenticated() -> bool:
    return hasattr(g, 'user_id') and g.user_id is not None


def _guard(check):
    """
    Build a decorator from `check(kwargs) -> error response | None`.

    Works for sync and async views; async views stay coroutines so Flask awaits them.
    """
    def decorator(f):
        if inspect.iscoroutinefunction(f):
            @wraps(f)
            async def async_decorated_function(*args, **kwargs):
                error = check(kwargs)
                if error is not None:
                    return error
                return await f(*args, **kwargs)
            return async_decorated_function

        @wraps(f)
        def decorated_function(*args, **kwargs):
            error = check(kwargs)
            if error is not None:
                return error
            return f(*args, **kwargs)
        return decorated_function
    return decorator


def _check_user(kwargs):
    header = current_app.config.get("USER_ID_HEADER", "X-User-Id")
    user_id = (request.headers.get(header) or "").strip()
    if not user_id:
        return jsonify({"error": "Authentication required"}), 401
    g.user_id = user_id
    return None


# Require an authenticated user. Authentication happens upstream: the identity
# provider in front of this service asserts the user id in USER_ID_HEADER.
# Sets g.user_id; returns 401 if the header is missing or blank.
require_user = _guard(_check_user)


def require_membership(*roles):
    """
    Resolve the <env_slug> URL segment and require access to that environment.

    MULTI-TENANT: Sets g.environment and g.role. With no roles any member may
    pass (and any user, for the demo environment); with roles only those may.
    The slug argument is consumed; the wrapped view does not receive it.

    Returns 404 for unknown or foreign environments and 403 for a wrong role.
    """
    allowed = tuple(roles) or None

    def check(kwargs):
        if not _is_authenticated():
            return jsonify({"error": "Authentication required"}), 401

        slug = kwargs.pop("env_slug")
        try:
            env = tenant_service.get_environment_by_slug(slug)
            g.role = tenant_service.require_environment_access(env, g.user_id, allowed)
        except TenantAccessError:
            return jsonify({"error": "Environment not found"}), 404
        except MembershipError as e:
            return jsonify({
                "error": "Permission denied",
                "required_roles": list(allowed or ()),
                "message": str(e),
            }), 403

        g.environment = env
        return None

    return _guard(check)


def _check_system_admin(kwargs):
    if not _is_authenticated():
        return jsonify({"error": "Authentication required"}), 401
    if not tenant_service.is_system_admin(g.user_id):
        return jsonify({"error": "System administrator access required"}), 403
    return None


require_system_admin = _guard(_check_system_admin)
