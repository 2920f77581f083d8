# studyprep/core/firebase.py
"""Thin wrappers around the Firebase Admin auth API (easy to monkeypatch in tests)."""
from __future__ import annotations

from typing import Dict, Optional, cast

from firebase_admin import auth as fb_auth

from studyprep.config import get_firebase_app, settings

UserNotFoundError = fb_auth.UserNotFoundError


def verify_id_token(id_token: str) -> Dict[str, object]:
    """Verify a Firebase ID token and return decoded claims."""
    app = get_firebase_app()
    decoded = fb_auth.verify_id_token(id_token, app=app, check_revoked=settings.check_revoked)
    return cast(Dict[str, object], decoded)


def get_user_by_email(email: str) -> Optional[fb_auth.UserRecord]:
    """Return a Firebase user by email, or None if not found."""
    app = get_firebase_app()
    try:
        return fb_auth.get_user_by_email(email, app=app)
    except fb_auth.UserNotFoundError:
        return None


def set_role_claim(uid: str, role: str) -> None:
    """
    Store the role as a custom claim, keeping any other claims on the account.
    The user has to refresh their ID token before the new role is visible.
    """
    app = get_firebase_app()
    record = fb_auth.get_user(uid, app=app)
    claims = dict(record.custom_claims or {})
    claims["role"] = role
    metadata = dict(claims.get("metadata") or {})
    metadata["role"] = role
    claims["metadata"] = metadata
    fb_auth.set_custom_user_claims(uid, claims, app=app)


def revoke_refresh_tokens(uid: str) -> None:
    """Invalidate every refresh token of the user (sign-out on all devices)."""
    fb_auth.revoke_refresh_tokens(uid, app=get_firebase_app())
