# payroll_api/common/auth.py
from __future__ import annotations

from functools import wraps
from typing import Iterable, Set

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from payroll_api.common.http import fail


# ---------- helpers ----------

def _wildcard_match(user_perm: str, required: str) -> bool:
    """
    Match required permission against a user's permission with simple wildcards.
    Examples:
      user_perm: 'payroll.*'          matches required: 'payroll.process'
      user_perm: 'payroll.process'    matches only exact
    """
    if user_perm == required:
        return True
    if user_perm == "*":
        return True
    if user_perm.endswith(".*"):
        prefix = user_perm[:-2]
        return required.startswith(prefix + ".")
    return False


def _has_any_perm(user_perms: Set[str], required_perms: Iterable[str]) -> bool:
    if not required_perms:
        return True
    if not user_perms:
        return False
    for req in required_perms:
        if any(_wildcard_match(up, req) for up in user_perms):
            return True
    return False


def current_actor_id() -> int | None:
    """JWT identity as the integer user id stored in processed_by / approved_by / ..."""
    uid = get_jwt_identity()
    if uid is None:
        return None
    try:
        return int(uid)
    except (TypeError, ValueError):
        return None


def current_tenant_id() -> int | None:
    claims = get_jwt() or {}
    tid = claims.get("tenant_id")
    try:
        return int(tid) if tid is not None else None
    except (TypeError, ValueError):
        return None


# ---------- decorators ----------

def requires_perms(*perm_codes: str):
    """
    Require that the current user has ANY of the given permission codes.

    Permissions and roles are read from the JWT claims issued by the identity
    service ('perms', 'roles'). The 'admin' role always passes.

    Supports simple wildcards granted to the user:
      - 'payroll.*' or '*'
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            if not perm_codes:
                return fn(*args, **kwargs)

            if current_actor_id() is None:
                return fail("Unauthorized", status=401)

            # every route is tenant-scoped, admins included
            if current_tenant_id() is None:
                return fail("Tenant context required", status=403)

            claims = get_jwt() or {}
            jwt_roles = set(claims.get("roles") or [])
            if "admin" in jwt_roles:
                return fn(*args, **kwargs)

            jwt_perms = set(claims.get("perms") or [])
            if not _has_any_perm(jwt_perms, perm_codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
