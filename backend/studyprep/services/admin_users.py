"""
# `studyprep/services/admin_users.py` - Admin user management

## Overview
Operations behind the `/admin/users` and `/admin/stats` endpoints. The routes are already
behind `require_admin`; the rules below are the ones that depend on **who** acts on **whom**.

## Role rules
| Action | Allowed for |
|--------|-------------|
| create a `user` | owner, admin |
| create an `admin` | owner |
| grant / revoke `admin`, grant `owner` | owner |
| change an `owner`'s role | nobody |
| deactivate an `owner` | nobody |

Role changes are mirrored into the Firebase custom claims when `SYNC_IDENTITY_PROVIDER` is on,
so the next ID token of the user carries the new role.
"""
import logging
import math
import secrets
import string
from typing import Any, Dict, Optional

from studyprep.config import settings
from studyprep.core import firebase
from studyprep.core.errors import AuthorizationFailure, Conflict, NotFound, ValidationFailure
from studyprep.core.security import check_roles
from studyprep.repositories.users import EMAIL_TAKEN, UserRepository
from studyprep.schemas.principal import OWNER_ONLY, ROLES, Principal
from studyprep.schemas.user import AdminUserList, DashboardStats, Pagination, User
from studyprep.services.storage import timestamp_ms
from studyprep.services.users import ensure_username_available, normalize_email

logger = logging.getLogger("studyprep.admin")

PLACEHOLDER_UID_PREFIX = "admin-created-"
CREATABLE_ROLES = frozenset({"user", "admin"})
ADMIN_FIELDS = ("display_name", "username", "email", "role")

_UID_ALPHABET = string.ascii_lowercase + string.digits


def placeholder_uid() -> str:
    """Uid for accounts created by an admin before the person ever signs in."""
    suffix = "".join(secrets.choice(_UID_ALPHABET) for _ in range(9))
    return f"{PLACEHOLDER_UID_PREFIX}{timestamp_ms()}-{suffix}"


def _get_target(repo: UserRepository, user_id: str) -> User:
    user = repo.get_by_id(user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def _check_role_change(actor: Principal, target: User, new_role: str) -> None:
    if new_role == target.role:
        return
    if target.role == "owner":
        raise AuthorizationFailure("Cannot modify owner role")
    # Anything that touches admin or owner is reserved to the owner
    if new_role in ("admin", "owner") or target.role == "admin":
        check_roles(actor, OWNER_ONLY)


def _sync_role_claim(target: User) -> None:
    if not settings.sync_identity_provider:
        return
    if target.firebase_uid.startswith(PLACEHOLDER_UID_PREFIX):
        logger.info("Skipping claim sync for placeholder account %s", target.firebase_uid)
        return
    try:
        firebase.set_role_claim(target.firebase_uid, target.role)
    except firebase.UserNotFoundError:
        logger.warning("No Firebase account for %s, role claim not updated", target.firebase_uid)


# ---------- Read ----------

def list_users(repo: UserRepository, page: int = 1, limit: Optional[int] = None) -> AdminUserList:
    limit = limit or settings.default_page_size
    page = max(page, 1)
    users = repo.list_active(offset=(page - 1) * limit, limit=limit)
    total = repo.count(is_active=True)
    return AdminUserList(
        users=users,
        pagination=Pagination(page=page, limit=limit, total=total, total_pages=math.ceil(total / limit)),
    )


def dashboard_stats(repo: UserRepository) -> DashboardStats:
    return DashboardStats(
        total_users=repo.count(is_active=True),
        inactive_users=repo.count(is_active=False),
        admin_count=repo.count(is_active=True, role="admin"),
        owner_count=repo.count(is_active=True, role="owner"),
    )


# ---------- Write ----------

def create_user(
    repo: UserRepository,
    actor: Principal,
    email: Optional[str],
    display_name: Optional[str] = None,
    username: Optional[str] = None,
    role: str = "user",
) -> User:
    email = normalize_email(email)
    if not email:
        raise ValidationFailure("Email is required")
    if role not in CREATABLE_ROLES:
        raise ValidationFailure("Invalid role. Can only create user or admin accounts")
    if role == "admin":
        check_roles(actor, OWNER_ONLY)

    if repo.find_by_email(email) is not None:
        raise Conflict(EMAIL_TAKEN)
    if username and repo.find_by_username(username) is not None:
        raise Conflict("Username already taken")

    user = repo.create(User(
        firebase_uid=placeholder_uid(),
        email=email,
        display_name=display_name or None,
        username=username or None,
        role=role,
        email_verified=False,
        sign_in_count=0,
        is_active=True,
    ))
    logger.info("%s created %s account %s", actor.uid, role, user.id)
    return user


def update_user_details(repo: UserRepository, actor: Principal, user_id: str, changes: Dict[str, Any]) -> User:
    """
    `changes` holds only the fields that were sent (display_name, username, email, role).
    """
    target = _get_target(repo, user_id)

    role = changes.get("role")
    if "role" in changes:
        # An explicit null counts as a role change too
        if role is not None and role not in ROLES:
            raise ValidationFailure("Invalid role. Must be user, admin, or owner")
        if target.role == "owner" and role != "owner":
            raise AuthorizationFailure("Cannot modify owner account role")
        if role is None:
            raise ValidationFailure("Invalid role. Must be user, admin, or owner")
        _check_role_change(actor, target, role)

    patch = {k: v for k, v in changes.items() if k in ADMIN_FIELDS}
    if "email" in patch:
        patch["email"] = normalize_email(patch["email"])
        if not patch["email"]:
            raise ValidationFailure("Email is required")
        if patch["email"] != target.email and repo.find_by_email(patch["email"]) is not None:
            raise Conflict("Email already taken")
    if patch.get("username") and patch["username"] != target.username:
        ensure_username_available(repo, patch["username"], target.firebase_uid)
    if not patch:
        return target

    updated = repo.update(target.firebase_uid, patch)
    if updated is None:
        raise NotFound("User not found")
    if role is not None and role != target.role:
        _sync_role_claim(updated)
    return updated


def change_role(repo: UserRepository, actor: Principal, user_id: str, role: Optional[str]) -> User:
    if role not in ROLES:
        raise ValidationFailure("Invalid role. Must be user, admin, or owner")
    target = _get_target(repo, user_id)
    _check_role_change(actor, target, role)

    updated = repo.update(target.firebase_uid, {"role": role})
    if updated is None:
        raise NotFound("User not found")
    logger.info("%s changed role of %s from %s to %s", actor.uid, target.id, target.role, role)
    _sync_role_claim(updated)
    return updated


def deactivate_user(repo: UserRepository, user_id: str) -> User:
    target = _get_target(repo, user_id)
    if target.role == "owner":
        raise AuthorizationFailure("Cannot deactivate owner account")
    updated = repo.update(target.firebase_uid, {"is_active": False})
    if updated is None:
        raise NotFound("User not found")
    logger.info("User %s deactivated by an administrator", target.id)
    return updated


def promote_first_user(repo: UserRepository) -> Optional[User]:
    """
    Bootstrap for an empty deployment: with no active users, the earliest created user
    (soft deleted or not) is reactivated and made `owner`. Returns None when nothing changed.
    """
    if repo.count(is_active=True) > 0:
        logger.info("Active users exist; no action taken")
        return None

    candidate = repo.earliest()
    if candidate is None:
        logger.info("No users found; nothing to promote")
        return None

    promoted = repo.update(candidate.firebase_uid, {"is_active": True, "role": "owner"})
    logger.info("Promoted user %s <%s> to owner", candidate.id, candidate.email)
    if promoted is not None:
        _sync_role_claim(promoted)
    return promoted
