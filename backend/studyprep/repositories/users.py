# studyprep/repositories/users.py
"""
User store.

Two backends share the `UserRepository` interface:
- `FirestoreUserRepository` - `users/{firebase_uid}` documents; sign-in upsert runs in a
  Firestore transaction and bumps the counter with `Increment(1)`.
- `InMemoryUserRepository` - process-local dict guarded by a lock (development, tests).

Both guarantee that concurrent sign-ins for the same uid never lose a `sign_in_count` update.
"""
from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from functools import lru_cache
from typing import Any, Dict, List, Optional

from firebase_admin import firestore
from google.api_core.exceptions import AlreadyExists
from google.cloud import firestore as gcf
from google.cloud.firestore_v1 import Query
from google.cloud.firestore_v1.base_query import FieldFilter
from pydantic import ValidationError

from studyprep.config import get_db, settings
from studyprep.core.errors import Conflict, ValidationFailure
from studyprep.schemas.user import User, utcnow

EMAIL_TAKEN = "User with this email already exists"


def apply_changes(current: User, changes: Dict[str, Any]) -> User:
    """Merged record, validated like a fresh one so a bad value never reaches the store."""
    try:
        return User.model_validate({**current.model_dump(), **changes})
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise ValidationFailure(f"Invalid value for: {', '.join(fields)}") from exc


class UserRepository(ABC):

    @abstractmethod
    def upsert_sign_in(self, firebase_uid: str, email: str, profile: Dict[str, Any]) -> User:
        """Create the user with sign_in_count=1, or apply `profile` and count one more sign-in."""

    @abstractmethod
    def get(self, firebase_uid: str) -> Optional[User]: ...

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def find_by_email(self, email: str) -> Optional[User]: ...

    @abstractmethod
    def find_by_username(self, username: str) -> Optional[User]:
        """Case-insensitive lookup."""

    @abstractmethod
    def create(self, user: User) -> User: ...

    @abstractmethod
    def update(self, firebase_uid: str, changes: Dict[str, Any]) -> Optional[User]:
        """Partial update; returns None if the user does not exist."""

    @abstractmethod
    def list_active(self, offset: int, limit: int) -> List[User]:
        """Active users, most recent sign-in first."""

    @abstractmethod
    def count(self, is_active: Optional[bool] = None, role: Optional[str] = None) -> int: ...

    @abstractmethod
    def earliest(self) -> Optional[User]:
        """Oldest record by created_at, active or not."""


# ---------- In-memory ----------

class InMemoryUserRepository(UserRepository):

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._lock = threading.RLock()

    def _find(self, predicate) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if predicate(user):
                    return user.model_copy(deep=True)
        return None

    def upsert_sign_in(self, firebase_uid: str, email: str, profile: Dict[str, Any]) -> User:
        with self._lock:
            clash = self._find(lambda u: u.email == email and u.firebase_uid != firebase_uid)
            if clash:
                raise Conflict(EMAIL_TAKEN)

            now = utcnow()
            current = self._users.get(firebase_uid)
            if current is None:
                user = User(
                    firebase_uid=firebase_uid,
                    email=email,
                    sign_in_count=1,
                    last_sign_in_at=now,
                    created_at=now,
                    updated_at=now,
                    **profile,
                )
            else:
                user = apply_changes(current, {
                    **profile,
                    "email": email,
                    "sign_in_count": current.sign_in_count + 1,
                    "last_sign_in_at": now,
                    "updated_at": now,
                })
            self._users[firebase_uid] = user
            return user.model_copy(deep=True)

    def get(self, firebase_uid: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(firebase_uid)
            return user.model_copy(deep=True) if user else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._find(lambda u: u.id == user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self._find(lambda u: u.email == email)

    def find_by_username(self, username: str) -> Optional[User]:
        wanted = username.lower()
        return self._find(lambda u: (u.username or "").lower() == wanted)

    def create(self, user: User) -> User:
        with self._lock:
            if user.firebase_uid in self._users:
                raise Conflict("User already exists")
            if self._find(lambda u: u.email == user.email):
                raise Conflict(EMAIL_TAKEN)
            self._users[user.firebase_uid] = user.model_copy(deep=True)
            return user.model_copy(deep=True)

    def update(self, firebase_uid: str, changes: Dict[str, Any]) -> Optional[User]:
        with self._lock:
            current = self._users.get(firebase_uid)
            if current is None:
                return None
            user = apply_changes(current, {**changes, "updated_at": utcnow()})
            self._users[firebase_uid] = user
            return user.model_copy(deep=True)

    def list_active(self, offset: int, limit: int) -> List[User]:
        with self._lock:
            active = [u for u in self._users.values() if u.is_active]
        # Descending, users who never signed in last
        active.sort(
            key=lambda u: (u.last_sign_in_at is not None, u.last_sign_in_at or datetime.min),
            reverse=True,
        )
        return [u.model_copy(deep=True) for u in active[offset:offset + limit]]

    def count(self, is_active: Optional[bool] = None, role: Optional[str] = None) -> int:
        with self._lock:
            return sum(
                1 for u in self._users.values()
                if (is_active is None or u.is_active == is_active) and (role is None or u.role == role)
            )

    def earliest(self) -> Optional[User]:
        with self._lock:
            if not self._users:
                return None
            return min(self._users.values(), key=lambda u: u.created_at).model_copy(deep=True)

    def clear(self) -> None:
        with self._lock:
            self._users.clear()


# ---------- Firestore ----------

def _to_user(snap) -> User:
    data = dict(snap.to_dict() or {})
    data.pop("username_lower", None)
    data["firebase_uid"] = snap.id
    return User.model_validate(data)


def _to_doc(user: User) -> Dict[str, Any]:
    doc = user.model_dump(exclude={"firebase_uid"})
    doc["username_lower"] = user.username.lower() if user.username else None
    return doc


def _apply_sign_in(transaction, collection, ref, email: str, profile: Dict[str, Any]) -> None:
    """
    Single atomic conditional write: create the document or bump the counter.
    All reads happen before the first write, as Firestore transactions require.
    """
    snap = ref.get(transaction=transaction)
    same_email = transaction.get(
        collection.where(filter=FieldFilter("email", "==", email)).limit(2)
    )
    if any(other.id != ref.id for other in same_email):
        raise Conflict(EMAIL_TAKEN)

    if snap.exists:
        transaction.update(ref, {
            **profile,
            "email": email,
            "sign_in_count": gcf.Increment(1),
            "last_sign_in_at": gcf.SERVER_TIMESTAMP,
            "updated_at": gcf.SERVER_TIMESTAMP,
        })
        return

    doc = _to_doc(User(firebase_uid=ref.id, email=email, sign_in_count=1, **profile))
    doc.update({
        "last_sign_in_at": gcf.SERVER_TIMESTAMP,
        "created_at": gcf.SERVER_TIMESTAMP,
        "updated_at": gcf.SERVER_TIMESTAMP,
    })
    transaction.set(ref, doc)


_upsert_in_transaction = firestore.transactional(_apply_sign_in)


class FirestoreUserRepository(UserRepository):

    def __init__(self, db=None, collection: Optional[str] = None) -> None:
        self._db = db or get_db()
        self._collection = self._db.collection(collection or settings.users_collection)

    def _first(self, field: str, value: Any) -> Optional[User]:
        q = self._collection.where(filter=FieldFilter(field, "==", value)).limit(1)
        for snap in q.stream():
            return _to_user(snap)
        return None

    def upsert_sign_in(self, firebase_uid: str, email: str, profile: Dict[str, Any]) -> User:
        ref = self._collection.document(firebase_uid)
        _upsert_in_transaction(self._db.transaction(), self._collection, ref, email, profile)
        return _to_user(ref.get())

    def get(self, firebase_uid: str) -> Optional[User]:
        snap = self._collection.document(firebase_uid).get()
        return _to_user(snap) if snap.exists else None

    def get_by_id(self, user_id: str) -> Optional[User]:
        return self._first("id", user_id)

    def find_by_email(self, email: str) -> Optional[User]:
        return self._first("email", email)

    def find_by_username(self, username: str) -> Optional[User]:
        return self._first("username_lower", username.lower())

    def create(self, user: User) -> User:
        if self.find_by_email(user.email):
            raise Conflict(EMAIL_TAKEN)
        ref = self._collection.document(user.firebase_uid)
        try:
            # create() fails if the document already exists
            ref.create(_to_doc(user))
        except AlreadyExists as exc:
            raise Conflict("User already exists") from exc
        return user

    def update(self, firebase_uid: str, changes: Dict[str, Any]) -> Optional[User]:
        ref = self._collection.document(firebase_uid)
        snap = ref.get()
        if not snap.exists:
            return None
        # Validate before writing; an invalid document could never be read back
        apply_changes(_to_user(snap), changes)
        patch = {**changes, "updated_at": gcf.SERVER_TIMESTAMP}
        if "username" in changes:
            patch["username_lower"] = changes["username"].lower() if changes["username"] else None
        ref.update(patch)
        return _to_user(ref.get())

    def list_active(self, offset: int, limit: int) -> List[User]:
        q = (
            self._collection.where(filter=FieldFilter("is_active", "==", True))
            .order_by("last_sign_in_at", direction=Query.DESCENDING)
            .offset(offset)
            .limit(limit)
        )
        return [_to_user(snap) for snap in q.stream()]

    def count(self, is_active: Optional[bool] = None, role: Optional[str] = None) -> int:
        q = self._collection
        if is_active is not None:
            q = q.where(filter=FieldFilter("is_active", "==", is_active))
        if role is not None:
            q = q.where(filter=FieldFilter("role", "==", role))
        result = q.count().get()
        return int(result[0][0].value)

    def earliest(self) -> Optional[User]:
        q = self._collection.order_by("created_at").limit(1)
        for snap in q.stream():
            return _to_user(snap)
        return None


@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
    """Store selected by `USER_STORE_BACKEND`; shared for the lifetime of the process."""
    if settings.user_store_backend == "memory":
        return InMemoryUserRepository()
    return FirestoreUserRepository()
