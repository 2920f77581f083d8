"""
# `studyprep/core/security.py` - Role Gate & Ownership Gate

This module holds the **role based authorization** helpers. They run after the Identity Verifier
(`studyprep.core.auth.get_principal`) has attached a `Principal` to the request, and are used on
routes via `Depends(...)`.

---

## Flow

- **Fail closed:** every gate first calls `ensure_principal`. No Principal on the request means
  **401**, never an implicit permission.
- **Role check:** `principal.role` must be in the required set, otherwise **403**
  `{"error": "Forbidden - Insufficient permissions", "required": [...], "current": "<role>"}`.
- **Ownership check:** `owner`/`admin` pass unconditionally; anybody else must be the resource
  owner, otherwise **403** `{"error": "Forbidden - You do not own this resource"}`.
- **Internal errors:** an unexpected exception while evaluating is a **500**
  (`"Failed to verify role"` / `"Failed to verify ownership"`), so clients can tell
  "not allowed" apart from "could not decide".

---

## Dependencies

| Name | Allows |
|------|--------|
| `require_owner` | `owner` |
| `require_admin` | `owner`, `admin` |
| `require_role(*roles)` | any of `roles` |
| `require_resource_ownership(owner_id)` | privileged roles, or `principal.uid == owner_id` |
| `require_path_ownership(param)` | same, owner id read from the path parameter `param` |

All of them return the `Principal`, so handlers can take it as a parameter.
"""
import logging
from typing import Callable, Iterable

from fastapi import Request

from studyprep.core.errors import AuthenticationFailure, AuthorizationFailure, InternalFailure
from studyprep.schemas.principal import OWNER_ONLY, OWNER_OR_ADMIN, PRIVILEGED_ROLES, Principal

logger = logging.getLogger("studyprep.security")

INSUFFICIENT_PERMISSIONS = "Forbidden - Insufficient permissions"
NOT_RESOURCE_OWNER = "Forbidden - You do not own this resource"
ROLE_CHECK_FAILED = "Failed to verify role"
OWNERSHIP_CHECK_FAILED = "Failed to verify ownership"


def ensure_principal(request: Request) -> Principal:
    """
    Shared precondition of every gate: the request must carry a verified Principal.
    """
    principal = getattr(request.state, "principal", None)
    if principal is None:
        raise AuthenticationFailure()
    return principal


def check_roles(principal: Principal, required: Iterable[str]) -> Principal:
    """
    Allows the principal only if its role is in `required`.
    """
    allowed = sorted(set(required))
    try:
        role = principal.role
        permitted = role in allowed
    except Exception as exc:
        logger.exception("Role evaluation failed")
        raise InternalFailure(ROLE_CHECK_FAILED) from exc

    if not permitted:
        logger.info("Role %r denied, required one of %s", role, allowed)
        raise AuthorizationFailure(INSUFFICIENT_PERMISSIONS, required=allowed, current=role)
    return principal


def check_ownership(principal: Principal, resource_owner_id: str) -> Principal:
    """
    Privileged roles bypass the owner comparison entirely.
    """
    try:
        permitted = principal.role in PRIVILEGED_ROLES or principal.uid == resource_owner_id
    except Exception as exc:
        logger.exception("Ownership evaluation failed")
        raise InternalFailure(OWNERSHIP_CHECK_FAILED) from exc

    if not permitted:
        logger.info("Principal %s denied access to a resource of %s", principal.uid, resource_owner_id)
        raise AuthorizationFailure(NOT_RESOURCE_OWNER)
    return principal


# --------- FastAPI Dependencies --------- #

def require_role(*roles: str) -> Callable[[Request], Principal]:
    """Require the current principal to be in the allowed role set."""
    allowed = frozenset(roles)

    def _require(request: Request) -> Principal:
        return check_roles(ensure_principal(request), allowed)

    return _require


require_owner = require_role(*OWNER_ONLY)
require_admin = require_role(*OWNER_OR_ADMIN)


def require_resource_ownership(resource_owner_id: str) -> Callable[[Request], Principal]:
    """
    Ownership gate for a resource whose owner is known when the route is declared.
    """
    def _require(request: Request) -> Principal:
        return check_ownership(ensure_principal(request), resource_owner_id)

    return _require


def require_path_ownership(param: str = "firebase_uid") -> Callable[[Request], Principal]:
    """
    Ownership gate that takes the owner id from a path parameter of the current request.
    """
    def _require(request: Request) -> Principal:
        principal = ensure_principal(request)
        try:
            owner_id = request.path_params[param]
        except KeyError as exc:
            logger.error("Route has no path parameter %r for the ownership gate", param)
            raise InternalFailure(OWNERSHIP_CHECK_FAILED) from exc
        return check_ownership(principal, owner_id)

    return _require
