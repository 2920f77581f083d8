"""
# `studyprep/schemas/user.py` - User schemas

## Overview
Pydantic models for the persisted user record and the request/response bodies of the
`/users` and `/admin/users` endpoints. JSON uses camelCase (`firebaseUid`, `signInCount`, ...);
Python code uses the snake_case attribute names. Both spellings are accepted on input.

---

## `User`
| Field              | Type              | Notes |
|--------------------|-------------------|-------|
| id                 | `str`             | internal id (uuid4) |
| firebaseUid        | `str`             | identity provider key, unique |
| email              | `str`             | unique, required |
| displayName        | `str` / `null`    | |
| username           | `str` / `null`    | unique, case-insensitive |
| avatarUrl          | `str` / `null`    | |
| avatarStoragePath  | `str` / `null`    | storage token of the uploaded avatar |
| avatarProvider     | `str`             | `firebase`, `google`, `upload`, ... |
| emailVerified      | `bool`            | |
| signInCount        | `int`             | incremented on every sign-in |
| lastSignInAt       | `datetime` / `null` | |
| createdAt          | `datetime`        | |
| updatedAt          | `datetime`        | |
| metadata           | `dict`            | free-form |
| isActive           | `bool`            | `false` = soft deleted |
| role               | `user` / `admin` / `owner` | |

---

## Request bodies
- `UserSignIn` - `POST /users/signin`
- `UserProfileUpdate` - `PATCH /users/{firebaseUid}`
- `AdminUserCreate`, `AdminUserUpdate`, `RoleChange` - `/admin/users...`
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from studyprep.schemas.principal import Role

DEFAULT_AVATAR_PROVIDER = "firebase"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class User(CamelModel):
    """Persisted account."""
    id: str = Field(default_factory=lambda: str(uuid4()), description="Internal user id")
    firebase_uid: str = Field(..., description="Firebase UID")
    email: str = Field(..., description="E-mail address")
    display_name: Optional[str] = None
    username: Optional[str] = None
    avatar_url: Optional[str] = None
    avatar_storage_path: Optional[str] = None
    avatar_provider: str = DEFAULT_AVATAR_PROVIDER
    email_verified: bool = False
    sign_in_count: int = 0
    last_sign_in_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    is_active: bool = True
    role: Role = "user"


class UserSignIn(CamelModel):
    """Body of `POST /users/signin`. Email is checked by the service, not here."""
    firebase_uid: str = Field(..., min_length=1, description="Firebase UID")
    email: Optional[EmailStr] = Field(None, description="E-mail (required)")
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None
    avatar_provider: Optional[str] = None


class UserProfileUpdate(CamelModel):
    """Profile update - every field optional, omitted fields stay unchanged."""
    username: Optional[str] = Field(None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    avatar_url: Optional[str] = None
    avatar_storage_path: Optional[str] = None
    avatar_provider: Optional[str] = None

    @field_validator("avatar_provider")
    @classmethod
    def _provider_not_null(cls, value: Optional[str]) -> str:
        # Omit the field to keep the stored provider
        if value is None:
            raise ValueError("avatarProvider cannot be null")
        return value


class UserEnvelope(CamelModel):
    user: User


class AvatarUploadOut(CamelModel):
    user: User
    avatar_url: str
    avatar_storage_path: str


class UploadOut(CamelModel):
    url: str
    filename: str
    size: int
    type: Optional[str] = None


# ---------- Admin ----------

class AdminUserCreate(CamelModel):
    email: Optional[EmailStr] = Field(None, description="E-mail (required)")
    display_name: Optional[str] = None
    username: Optional[str] = Field(None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    role: str = "user"


class AdminUserUpdate(CamelModel):
    display_name: Optional[str] = None
    username: Optional[str] = Field(None, min_length=3, max_length=32, pattern=r"^[A-Za-z0-9_.-]+$")
    email: Optional[EmailStr] = None
    role: Optional[str] = None


class RoleChange(CamelModel):
    role: str


class AdminUserOut(CamelModel):
    success: bool = True
    message: Optional[str] = None
    user: User


class Pagination(CamelModel):
    page: int
    limit: int
    total: int
    total_pages: int


class AdminUserList(CamelModel):
    success: bool = True
    users: List[User]
    pagination: Pagination


class DashboardStats(CamelModel):
    total_users: int
    inactive_users: int
    admin_count: int
    owner_count: int


class DashboardStatsOut(CamelModel):
    success: bool = True
    stats: DashboardStats
