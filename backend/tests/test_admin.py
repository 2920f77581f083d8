from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import seed_user
from studyprep.config import settings
from studyprep.core import firebase
from studyprep.core.security import INSUFFICIENT_PERMISSIONS
from studyprep.services.admin_users import PLACEHOLDER_UID_PREFIX, promote_first_user


# ---------- Gate ----------

@pytest.mark.parametrize(
    "method, path",
    [
        ("get", "/api/admin/stats"),
        ("get", "/api/admin/users"),
        ("post", "/api/admin/users"),
        ("patch", "/api/admin/users/x"),
        ("patch", "/api/admin/users/x/role"),
        ("delete", "/api/admin/users/x"),
    ],
)
def test_admin_routes_reject_plain_users(client, login, method: str, path: str) -> None:
    kwargs = {"json": {"role": "user", "email": "n@example.com"}} if method in ("post", "patch") else {}

    response = getattr(client, method)(path, headers=login("u1"), **kwargs)

    assert response.status_code == 403
    assert response.json() == {"error": INSUFFICIENT_PERMISSIONS, "required": ["admin", "owner"], "current": "user"}


def test_admin_routes_require_credential(client) -> None:
    assert client.get("/api/admin/stats").status_code == 401


# ---------- Read ----------

def test_dashboard_stats(client, login, repo) -> None:
    seed_user(repo, "o1", role="owner")
    seed_user(repo, "a1", role="admin")
    seed_user(repo, "a2", role="admin", is_active=False)
    seed_user(repo, "u1")
    seed_user(repo, "u2", is_active=False)

    response = client.get("/api/admin/stats", headers=login("a1", "admin"))

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "stats": {"totalUsers": 3, "inactiveUsers": 2, "adminCount": 1, "ownerCount": 1},
    }


def test_list_users_paginates_by_last_sign_in(client, login, repo) -> None:
    for i in range(7):
        seed_user(repo, f"u{i}", minutes_ago=i)
    seed_user(repo, "gone", is_active=False)

    response = client.get("/api/admin/users", params={"page": 2, "limit": 3}, headers=login("a1", "admin"))

    body = response.json()
    assert response.status_code == 200
    assert [u["firebaseUid"] for u in body["users"]] == ["u3", "u4", "u5"]
    assert body["pagination"] == {"page": 2, "limit": 3, "total": 7, "totalPages": 3}


def test_list_users_default_page_size(client, login, repo) -> None:
    for i in range(8):
        seed_user(repo, f"u{i}", minutes_ago=i)

    body = client.get("/api/admin/users", headers=login("a1", "admin")).json()

    assert len(body["users"]) == 6
    assert body["pagination"]["totalPages"] == 2


# ---------- Create ----------

def test_admin_creates_user_account(client, login) -> None:
    response = client.post(
        "/api/admin/users",
        json={"email": "New@Example.com", "displayName": "New", "username": "newbie"},
        headers=login("a1", "admin"),
    )

    assert response.status_code == 201
    user = response.json()["user"]
    assert user["email"] == "new@example.com"
    assert user["role"] == "user"
    assert user["signInCount"] == 0
    assert user["firebaseUid"].startswith(PLACEHOLDER_UID_PREFIX)


def test_only_owner_creates_admins(client, login) -> None:
    payload = {"email": "boss@example.com", "role": "admin"}

    denied = client.post("/api/admin/users", json=payload, headers=login("a1", "admin"))
    allowed = client.post("/api/admin/users", json=payload, headers=login("o1", "owner"))

    assert denied.status_code == 403
    assert allowed.status_code == 201
    assert allowed.json()["user"]["role"] == "admin"


def test_create_owner_is_rejected(client, login) -> None:
    response = client.post("/api/admin/users", json={"email": "x@example.com", "role": "owner"}, headers=login("o1", "owner"))

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid role. Can only create user or admin accounts"}


def test_create_requires_email(client, login) -> None:
    response = client.post("/api/admin/users", json={"displayName": "Nobody"}, headers=login("a1", "admin"))

    assert response.status_code == 400
    assert response.json() == {"error": "Email is required"}


def test_create_duplicate_email(client, login, repo) -> None:
    seed_user(repo, "u1", email="taken@example.com")

    response = client.post("/api/admin/users", json={"email": "taken@example.com"}, headers=login("a1", "admin"))

    assert response.status_code == 409
    assert response.json() == {"error": "User with this email already exists"}


# ---------- Role changes ----------

def test_owner_grants_admin(client, login, repo) -> None:
    target = seed_user(repo, "u1")

    response = client.patch(f"/api/admin/users/{target.id}/role", json={"role": "admin"}, headers=login("o1", "owner"))

    assert response.status_code == 200
    assert response.json()["user"]["role"] == "admin"
    assert repo.get("u1").role == "admin"


def test_admin_cannot_grant_admin(client, login, repo) -> None:
    target = seed_user(repo, "u1")

    response = client.patch(f"/api/admin/users/{target.id}/role", json={"role": "admin"}, headers=login("a1", "admin"))

    assert response.status_code == 403
    assert response.json()["current"] == "admin"
    assert repo.get("u1").role == "user"


def test_admin_cannot_revoke_admin(client, login, repo) -> None:
    target = seed_user(repo, "a2", role="admin")

    response = client.patch(f"/api/admin/users/{target.id}/role", json={"role": "user"}, headers=login("a1", "admin"))

    assert response.status_code == 403


def test_owner_role_is_immutable(client, login, repo) -> None:
    target = seed_user(repo, "o2", role="owner")

    response = client.patch(f"/api/admin/users/{target.id}/role", json={"role": "user"}, headers=login("o1", "owner"))

    assert response.status_code == 403
    assert response.json() == {"error": "Cannot modify owner role"}


def test_invalid_role_and_unknown_user(client, login, repo) -> None:
    target = seed_user(repo, "u1")
    headers = login("o1", "owner")

    invalid = client.patch(f"/api/admin/users/{target.id}/role", json={"role": "root"}, headers=headers)
    missing = client.patch("/api/admin/users/nope/role", json={"role": "admin"}, headers=headers)

    assert invalid.status_code == 400
    assert invalid.json() == {"error": "Invalid role. Must be user, admin, or owner"}
    assert missing.status_code == 404


def test_role_change_syncs_claim(client, login, repo, monkeypatch: pytest.MonkeyPatch) -> None:
    synced = []
    monkeypatch.setattr(settings, "sync_identity_provider", True)
    monkeypatch.setattr(firebase, "set_role_claim", lambda uid, role: synced.append((uid, role)))
    target = seed_user(repo, "u1")

    client.patch(f"/api/admin/users/{target.id}/role", json={"role": "admin"}, headers=login("o1", "owner"))

    assert synced == [("u1", "admin")]


def test_placeholder_accounts_skip_claim_sync(client, login, monkeypatch: pytest.MonkeyPatch) -> None:
    synced = []
    monkeypatch.setattr(settings, "sync_identity_provider", True)
    monkeypatch.setattr(firebase, "set_role_claim", lambda uid, role: synced.append((uid, role)))
    headers = login("o1", "owner")
    created = client.post("/api/admin/users", json={"email": "p@example.com"}, headers=headers).json()["user"]

    response = client.patch(f"/api/admin/users/{created['id']}/role", json={"role": "admin"}, headers=headers)

    assert response.status_code == 200
    assert synced == []


# ---------- Update / deactivate ----------

def test_update_user_details(client, login, repo) -> None:
    target = seed_user(repo, "u1")

    response = client.patch(
        f"/api/admin/users/{target.id}",
        json={"displayName": "Renamed", "email": "RENAMED@example.com"},
        headers=login("a1", "admin"),
    )

    assert response.status_code == 200
    user = response.json()["user"]
    assert user["displayName"] == "Renamed"
    assert user["email"] == "renamed@example.com"


def test_update_user_details_conflicts(client, login, repo) -> None:
    seed_user(repo, "u1", username="una")
    target = seed_user(repo, "u2")
    headers = login("a1", "admin")

    email = client.patch(f"/api/admin/users/{target.id}", json={"email": "u1@example.com"}, headers=headers)
    username = client.patch(f"/api/admin/users/{target.id}", json={"username": "Una"}, headers=headers)

    assert email.status_code == 409
    assert email.json() == {"error": "Email already taken"}
    assert username.status_code == 409
    assert username.json() == {"error": "Username already taken"}


def test_update_cannot_demote_owner(client, login, repo) -> None:
    target = seed_user(repo, "o2", role="owner")

    response = client.patch(f"/api/admin/users/{target.id}", json={"role": "user"}, headers=login("o1", "owner"))

    assert response.status_code == 403
    assert response.json() == {"error": "Cannot modify owner account role"}


def test_update_null_role_keeps_owner(client, login, repo) -> None:
    owner = seed_user(repo, "o1", role="owner")
    headers = login("a1", "admin")

    response = client.patch(f"/api/admin/users/{owner.id}", json={"role": None}, headers=headers)

    assert response.status_code == 403
    assert response.json() == {"error": "Cannot modify owner account role"}
    assert repo.get("o1").role == "owner"
    stats = client.get("/api/admin/stats", headers=headers).json()["stats"]
    assert stats["ownerCount"] == 1


def test_update_null_role_is_invalid(client, login, repo) -> None:
    target = seed_user(repo, "u1", display_name="Una")

    response = client.patch(
        f"/api/admin/users/{target.id}",
        json={"role": None, "displayName": "Renamed"},
        headers=login("a1", "admin"),
    )

    assert response.status_code == 400
    assert response.json() == {"error": "Invalid role. Must be user, admin, or owner"}
    stored = repo.get("u1")
    assert stored.role == "user"
    assert stored.display_name == "Una"


def test_deactivate_user(client, login, repo) -> None:
    target = seed_user(repo, "u1")

    response = client.delete(f"/api/admin/users/{target.id}", headers=login("a1", "admin"))

    assert response.status_code == 200
    body = response.json()
    assert body["message"] == "User deactivated"
    assert body["user"]["isActive"] is False
    assert repo.get("u1") is not None


def test_owner_cannot_be_deactivated(client, login, repo) -> None:
    target = seed_user(repo, "o1", role="owner")

    response = client.delete(f"/api/admin/users/{target.id}", headers=login("o2", "owner"))

    assert response.status_code == 403
    assert response.json() == {"error": "Cannot deactivate owner account"}
    assert repo.get("o1").is_active is True


# ---------- Bootstrap ----------

def test_promote_first_user_picks_earliest(repo) -> None:
    now = datetime.now(timezone.utc)
    seed_user(repo, "late", is_active=False, created_at=now)
    seed_user(repo, "early", is_active=False, created_at=now - timedelta(days=3))

    promoted = promote_first_user(repo)

    assert promoted.firebase_uid == "early"
    assert promoted.role == "owner"
    assert promoted.is_active is True
    assert repo.get("late").role == "user"


def test_promote_first_user_noop_with_active_users(repo) -> None:
    seed_user(repo, "u1")

    assert promote_first_user(repo) is None
    assert repo.get("u1").role == "user"


def test_promote_first_user_empty_store(repo) -> None:
    assert promote_first_user(repo) is None
