# studyprep/core/auth.py
"""
# `studyprep/core/auth.py` - Identity Verifier

## Overview
Validates the inbound `Authorization: Bearer <Firebase ID token>` credential and turns the
verified claims into a typed `Principal`. The Principal is attached to `request.state.principal`
so the role gates in `studyprep.core.security` can evaluate it.

## Failure behaviour
Missing header, wrong scheme, a token the identity provider rejects, or verified claims without a
user id all stop the request with **401** `{"error": "Unauthorized"}`. The handler never runs.

## Role resolution
1. `metadata.role` custom claim
2. top-level `role` custom claim
3. otherwise `"user"` (unknown values are also treated as `"user"`)

## Mock tokens (development)
With `ALLOW_MOCK_TOKENS=true`, tokens of the form `mock_jwt_token_<uid>` or
`mock_jwt_token_<uid>__<role>` are accepted without calling Firebase.
"""
import logging
from typing import Mapping, Optional

from fastapi import Request

from studyprep.config import settings
from studyprep.core import firebase
from studyprep.core.errors import AuthenticationFailure
from studyprep.schemas.principal import Principal, coerce_role

logger = logging.getLogger("studyprep.auth")

MOCK_TOKEN_PREFIX = "mock_jwt_token_"


def extract_bearer_token(request: Request) -> Optional[str]:
    """
    Reads the token from the `Authorization: Bearer <id_token>` header.
    Returns None when the header is missing or uses another scheme.
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None
    parts = auth_header.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


def _decode_mock_token(mock_token: str) -> dict:
    """
    Decodes a development token.
    Format: mock_jwt_token_<uid> or mock_jwt_token_<uid>__<role>
    """
    body = mock_token[len(MOCK_TOKEN_PREFIX):]
    uid, _, role = body.partition("__")
    if not uid:
        raise AuthenticationFailure()
    claims: dict = {"uid": uid, "email": None, "name": None, "email_verified": False}
    if role:
        claims["metadata"] = {"role": role}
    return claims


def decode_id_token(id_token: str) -> Mapping[str, object]:
    """
    Verifies the Firebase ID token (revocation check per `CHECK_REVOKED`).
    Invalid, revoked or expired tokens end in a 401.
    """
    if settings.allow_mock_tokens and id_token.startswith(MOCK_TOKEN_PREFIX):
        return _decode_mock_token(id_token)

    try:
        return firebase.verify_id_token(id_token)
    except Exception as exc:
        # Never log the token itself
        logger.warning("ID token rejected: %s", exc.__class__.__name__)
        raise AuthenticationFailure() from exc


def resolve_role(claims: Mapping[str, object]) -> str:
    metadata = claims.get("metadata")
    if isinstance(metadata, Mapping) and metadata.get("role"):
        return coerce_role(metadata.get("role"))
    return coerce_role(claims.get("role"))


def claims_to_principal(claims: Mapping[str, object]) -> Principal:
    """
    Builds the Principal from verified claims. The raw mapping stops here.
    """
    uid = claims.get("uid") or claims.get("user_id") or claims.get("sub")
    if not uid or not isinstance(uid, str):
        logger.warning("Verified token carried no user id")
        raise AuthenticationFailure()

    email = claims.get("email")
    name = claims.get("name")
    return Principal(
        uid=uid,
        role=resolve_role(claims),
        email=email if isinstance(email, str) else None,
        display_name=name if isinstance(name, str) else None,
        email_verified=claims.get("email_verified") is True,
    )


# --------- FastAPI Dependencies --------- #

def get_principal(request: Request) -> Principal:
    """
    Token required: verifies it, attaches the Principal to the request and returns it.
    """
    token = extract_bearer_token(request)
    if not token:
        raise AuthenticationFailure()
    principal = claims_to_principal(decode_id_token(token))
    request.state.principal = principal
    return principal

