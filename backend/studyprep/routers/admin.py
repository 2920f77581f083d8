# studyprep/routers/admin.py
"""
Admin endpoints (`/admin/...`). The whole router requires `owner` or `admin`; finer rules
(who may grant which role, owner protection) live in `studyprep.services.admin_users`.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from studyprep.core.auth import get_principal
from studyprep.core.security import require_admin
from studyprep.repositories.users import UserRepository, get_user_repository
from studyprep.schemas.principal import Principal
from studyprep.schemas.user import (
    AdminUserCreate,
    AdminUserList,
    AdminUserOut,
    AdminUserUpdate,
    DashboardStatsOut,
    RoleChange,
)
from studyprep.services import admin_users as svc

admin_router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    dependencies=[Depends(get_principal), Depends(require_admin)],
)


@admin_router.get("/stats", response_model=DashboardStatsOut, summary="Dashboard counters")
def get_dashboard_stats(repo: UserRepository = Depends(get_user_repository)):
    return DashboardStatsOut(stats=svc.dashboard_stats(repo))


@admin_router.get("/users", response_model=AdminUserList, summary="Active users, most recent sign-in first")
def list_users(
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    repo: UserRepository = Depends(get_user_repository),
):
    return svc.list_users(repo, page=page, limit=limit)


@admin_router.post("/users", response_model=AdminUserOut, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: AdminUserCreate,
    actor: Principal = Depends(require_admin),
    repo: UserRepository = Depends(get_user_repository),
):
    user = svc.create_user(
        repo,
        actor,
        email=payload.email,
        display_name=payload.display_name,
        username=payload.username,
        role=payload.role,
    )
    return AdminUserOut(user=user)


@admin_router.patch("/users/{user_id}", response_model=AdminUserOut)
def update_user(
    user_id: str,
    payload: AdminUserUpdate,
    actor: Principal = Depends(require_admin),
    repo: UserRepository = Depends(get_user_repository),
):
    changes = payload.model_dump(exclude_unset=True)
    return AdminUserOut(user=svc.update_user_details(repo, actor, user_id, changes))


@admin_router.patch("/users/{user_id}/role", response_model=AdminUserOut)
def change_role(
    user_id: str,
    payload: RoleChange,
    actor: Principal = Depends(require_admin),
    repo: UserRepository = Depends(get_user_repository),
):
    return AdminUserOut(user=svc.change_role(repo, actor, user_id, payload.role))


@admin_router.delete("/users/{user_id}", response_model=AdminUserOut)
def deactivate_user(user_id: str, repo: UserRepository = Depends(get_user_repository)):
    user = svc.deactivate_user(repo, user_id)
    return AdminUserOut(message="User deactivated", user=user)
