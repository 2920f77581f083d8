"""
studyprep/schemas/principal.py
Roles, role sets and the Principal model.
"""
from typing import FrozenSet, Literal, Optional, get_args
from pydantic import BaseModel, ConfigDict, Field

Role = Literal["user", "admin", "owner"]

ROLES: FrozenSet[str] = frozenset(get_args(Role))
DEFAULT_ROLE: Role = "user"

# Gate configurations, declared once and reused by every route
OWNER_ONLY: FrozenSet[str] = frozenset({"owner"})
OWNER_OR_ADMIN: FrozenSet[str] = frozenset({"owner", "admin"})
PRIVILEGED_ROLES = OWNER_OR_ADMIN


def coerce_role(value: object) -> Role:
    """Unknown or missing role claims fall back to the least privileged role."""
    if isinstance(value, str) and value.strip().lower() in ROLES:
        return value.strip().lower()  # type: ignore[return-value]
    return DEFAULT_ROLE


class Principal(BaseModel):
    """Authenticated caller, built once per request from verified token claims."""
    model_config = ConfigDict(frozen=True)

    uid: str = Field(..., description="Firebase UID")
    role: Role = Field(DEFAULT_ROLE, description="user | admin | owner")
    email: Optional[str] = Field(None, description="E-mail (if present)")
    display_name: Optional[str] = Field(None, description="Display name (if present)")
    email_verified: bool = Field(False, description="Provider-verified e-mail")

    @property
    def is_privileged(self) -> bool:
        return self.role in PRIVILEGED_ROLES
