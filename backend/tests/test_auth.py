from __future__ import annotations

import pytest
from starlette.requests import Request

from studyprep.config import settings
from studyprep.core import auth
from studyprep.core.errors import AuthenticationFailure


def _request(headers: dict[str, str]) -> Request:
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "headers": raw})


def test_missing_header_returns_401(client) -> None:
    """No credential at all is rejected before any handler runs."""
    response = client.get("/api/users/me")

    assert response.status_code == 401
    assert response.json() == {"error": "Unauthorized"}
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_wrong_scheme_returns_401(client, login) -> None:
    login("u1")
    response = client.get("/api/users/me", headers={"Authorization": "Basic dTE6cHc="})

    assert response.status_code == 401


def test_rejected_token_returns_401(client, login) -> None:
    """A token the identity provider rejects maps to 401."""
    response = client.get("/api/users/me", headers={"Authorization": "Bearer forged"})

    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


def test_claims_without_uid_return_401(client, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("studyprep.core.firebase.verify_id_token", lambda _: {"email": "a@b.com"})

    response = client.get("/api/users/me", headers={"Authorization": "Bearer token"})

    assert response.status_code == 401


def test_extract_bearer_token() -> None:
    assert auth.extract_bearer_token(_request({"Authorization": "Bearer abc"})) == "abc"
    assert auth.extract_bearer_token(_request({"Authorization": "bearer abc"})) == "abc"
    assert auth.extract_bearer_token(_request({"Authorization": "Token abc"})) is None
    assert auth.extract_bearer_token(_request({"Authorization": "Bearer"})) is None
    assert auth.extract_bearer_token(_request({})) is None


@pytest.mark.parametrize(
    "claims, expected",
    [
        ({"uid": "u1", "metadata": {"role": "owner"}, "role": "user"}, "owner"),
        ({"uid": "u1", "role": "admin"}, "admin"),
        ({"uid": "u1", "metadata": {}}, "user"),
        ({"uid": "u1"}, "user"),
        ({"uid": "u1", "role": "superuser"}, "user"),
        ({"uid": "u1", "metadata": {"role": "ADMIN"}}, "admin"),
    ],
)
def test_resolve_role(claims: dict, expected: str) -> None:
    assert auth.resolve_role(claims) == expected


def test_claims_to_principal_copies_standard_claims() -> None:
    principal = auth.claims_to_principal({
        "uid": "u1",
        "email": "u1@example.com",
        "name": "Una",
        "email_verified": True,
        "metadata": {"role": "admin"},
    })

    assert principal.uid == "u1"
    assert principal.role == "admin"
    assert principal.email == "u1@example.com"
    assert principal.display_name == "Una"
    assert principal.email_verified is True
    assert principal.is_privileged


def test_claims_to_principal_uid_fallbacks() -> None:
    assert auth.claims_to_principal({"user_id": "u2"}).uid == "u2"
    assert auth.claims_to_principal({"sub": "u3"}).uid == "u3"
    with pytest.raises(AuthenticationFailure):
        auth.claims_to_principal({"uid": ""})


def test_mock_tokens_only_when_enabled(monkeypatch: pytest.MonkeyPatch) -> None:
    def _reject(_: str) -> dict:
        raise ValueError("not a Firebase token")

    monkeypatch.setattr("studyprep.core.firebase.verify_id_token", _reject)

    with pytest.raises(AuthenticationFailure):
        auth.decode_id_token("mock_jwt_token_u1__admin")

    monkeypatch.setattr(settings, "allow_mock_tokens", True)
    claims = auth.decode_id_token("mock_jwt_token_u1__admin")

    assert claims["uid"] == "u1"
    assert auth.resolve_role(claims) == "admin"
    assert auth.decode_id_token("mock_jwt_token_u2")["uid"] == "u2"


def test_principal_is_attached_to_request(client, login) -> None:
    """A verified principal reaches the handler through the request."""
    headers = login("u1", email="u1@example.com")
    client.post("/api/users/signin", json={"firebaseUid": "u1", "email": "u1@example.com"}, headers=headers)

    response = client.get("/api/users/me", headers=headers)

    assert response.status_code == 200
    assert response.json()["user"]["firebaseUid"] == "u1"
