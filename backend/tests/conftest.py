import os
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest

BACKEND_ROOT = Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.append(str(BACKEND_ROOT))

# Settings are read at import time
os.environ["USER_STORE_BACKEND"] = "memory"
os.environ["STORAGE_BACKEND"] = "local"
os.environ["SYNC_IDENTITY_PROVIDER"] = "false"
os.environ["ALLOW_MOCK_TOKENS"] = "false"
os.environ["API_PREFIX"] = "/api"
os.environ["DEFAULT_PAGE_SIZE"] = "6"

from fastapi.testclient import TestClient  # noqa: E402

from studyprep.main import app  # noqa: E402
from studyprep.repositories.users import InMemoryUserRepository, get_user_repository  # noqa: E402
from studyprep.schemas.user import User  # noqa: E402
from studyprep.services.storage import LocalStorage, get_storage  # noqa: E402


@pytest.fixture
def repo() -> InMemoryUserRepository:
    """Fresh in-memory user store per test."""
    return InMemoryUserRepository()


@pytest.fixture
def storage(tmp_path: Path) -> LocalStorage:
    return LocalStorage(root=str(tmp_path / "uploads"), base_url="/uploads")


@pytest.fixture
def client(repo: InMemoryUserRepository, storage: LocalStorage):
    """TestClient wired to the per-test store and storage."""
    app.dependency_overrides[get_user_repository] = lambda: repo
    app.dependency_overrides[get_storage] = lambda: storage
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login(monkeypatch: pytest.MonkeyPatch) -> Callable[..., Dict[str, str]]:
    """
    Replaces Firebase token verification. `login(uid, role)` registers a token and returns the
    Authorization header for it; unknown tokens are rejected like an invalid Firebase token.
    """
    tokens: Dict[str, dict] = {}

    def _verify(id_token: str) -> dict:
        try:
            return tokens[id_token]
        except KeyError:
            raise ValueError("invalid token") from None

    monkeypatch.setattr("studyprep.core.firebase.verify_id_token", _verify)

    def _login(uid: str, role: Optional[str] = None, email: Optional[str] = None, **claims) -> Dict[str, str]:
        token = f"token-{uid}-{role or 'none'}"
        data = {"uid": uid, "email": email or f"{uid}@example.com", **claims}
        if role:
            data["metadata"] = {"role": role}
        tokens[token] = data
        return {"Authorization": f"Bearer {token}"}

    return _login


def seed_user(
    repo: InMemoryUserRepository,
    uid: str,
    role: str = "user",
    is_active: bool = True,
    minutes_ago: int = 0,
    **fields,
) -> User:
    """Insert a user directly into the store."""
    signed_in = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
    return repo.create(User(
        firebase_uid=uid,
        email=fields.pop("email", f"{uid}@example.com"),
        role=role,
        is_active=is_active,
        sign_in_count=1,
        last_sign_in_at=signed_in,
        created_at=fields.pop("created_at", signed_in),
        **fields,
    ))
