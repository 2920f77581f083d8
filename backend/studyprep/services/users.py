"""
# `studyprep/services/users.py` - User lifecycle

## Operations
- `upsert_on_sign_in` - create the user on first sign-in, otherwise refresh the mutable profile
  fields and count the sign-in. Safe to call on every sign-in.
- `get_by_firebase_uid` - active **or** inactive record; missing -> 404.
- `update_profile` - partial update of username / avatar fields.
- `soft_delete` - `is_active=False`; the record is kept for audit.
- `upload_avatar` - stores the image and records `avatar_url` / `avatar_storage_path`.

Validation and not-found errors raised here reach the caller unchanged.
"""
import logging
from typing import Any, Dict, Optional

from studyprep.config import settings
from studyprep.core import firebase
from studyprep.core.errors import Conflict, NotFound, ValidationFailure
from studyprep.repositories.users import UserRepository
from studyprep.schemas.user import User
from studyprep.services.storage import StorageBackend, file_extension, timestamp_ms

logger = logging.getLogger("studyprep.users")

PROFILE_FIELDS = ("username", "avatar_url", "avatar_storage_path", "avatar_provider")


def normalize_email(email: Optional[str]) -> Optional[str]:
    if email is None:
        return None
    email = email.strip().lower()
    return email or None


def upsert_on_sign_in(
    repo: UserRepository,
    firebase_uid: str,
    email: Optional[str],
    display_name: Optional[str] = None,
    avatar_url: Optional[str] = None,
    avatar_provider: Optional[str] = None,
    email_verified: Optional[bool] = None,
) -> User:
    email = normalize_email(email)
    if not email:
        raise ValidationFailure("Email is required")
    if not firebase_uid:
        raise ValidationFailure("firebaseUid is required")

    profile: Dict[str, Any] = {
        "display_name": display_name,
        "avatar_url": avatar_url,
        "avatar_provider": avatar_provider,
        "email_verified": email_verified,
    }
    # Only what the provider actually sent overwrites stored values
    profile = {k: v for k, v in profile.items() if v is not None}

    user = repo.upsert_sign_in(firebase_uid, email, profile)
    logger.info("Sign-in recorded for %s (count=%s)", firebase_uid, user.sign_in_count)
    return user


def get_by_firebase_uid(repo: UserRepository, firebase_uid: str) -> User:
    user = repo.get(firebase_uid)
    if user is None:
        raise NotFound("User not found")
    return user


def ensure_username_available(repo: UserRepository, username: Optional[str], owner_uid: str) -> None:
    """Usernames are unique regardless of case."""
    if not username:
        return
    other = repo.find_by_username(username)
    if other is not None and other.firebase_uid != owner_uid:
        raise Conflict("Username already taken")


def update_profile(repo: UserRepository, firebase_uid: str, changes: Dict[str, Any]) -> User:
    """
    `changes` holds only the fields the caller sent; anything else stays as it is.
    """
    unknown = set(changes) - set(PROFILE_FIELDS)
    if unknown:
        raise ValidationFailure(f"Unsupported profile fields: {', '.join(sorted(unknown))}")

    current = get_by_firebase_uid(repo, firebase_uid)
    if not changes:
        return current

    if "username" in changes:
        ensure_username_available(repo, changes["username"], firebase_uid)

    updated = repo.update(firebase_uid, changes)
    if updated is None:
        raise NotFound("User not found")
    return updated


def soft_delete(repo: UserRepository, firebase_uid: str) -> None:
    get_by_firebase_uid(repo, firebase_uid)
    repo.update(firebase_uid, {"is_active": False})
    logger.info("User %s deactivated", firebase_uid)
    revoke_sessions(firebase_uid)


def revoke_sessions(firebase_uid: str) -> None:
    """Signs the user out everywhere; accounts unknown to Firebase are skipped."""
    if not settings.sync_identity_provider:
        return
    try:
        firebase.revoke_refresh_tokens(firebase_uid)
    except firebase.UserNotFoundError:
        logger.warning("No Firebase account for %s, nothing to revoke", firebase_uid)


def upload_avatar(
    repo: UserRepository,
    storage: StorageBackend,
    firebase_uid: str,
    data: bytes,
    filename: Optional[str],
    content_type: Optional[str],
) -> User:
    get_by_firebase_uid(repo, firebase_uid)
    if not data:
        raise ValidationFailure("No file provided")
    if content_type and not content_type.startswith("image/"):
        raise ValidationFailure("Avatar must be an image")

    # Timestamped name so a new avatar never collides with a cached old one
    path = f"avatars/{firebase_uid}_{timestamp_ms()}.{file_extension(filename)}"
    stored = storage.upload(data, path, content_type)
    return update_profile(repo, firebase_uid, {
        "avatar_url": stored.url,
        "avatar_storage_path": stored.path,
        "avatar_provider": "upload",
    })
