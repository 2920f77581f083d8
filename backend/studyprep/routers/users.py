"""
# `studyprep/routers/users.py` - User lifecycle endpoints

## Overview
Every route sits behind the Identity Verifier (`get_principal` on the router). Routes that act on
a specific account also pass the Ownership Gate: the caller must be that account, or `admin` /
`owner`.

| Method | Path | Gate | Response |
|--------|------|------|----------|
| `POST` | `/users/signin` | ownership of `firebaseUid` in the body | `{user}` |
| `GET` | `/users/me` | - | `{user}` |
| `GET` | `/users/{firebase_uid}` | ownership (path) | `{user}` |
| `PATCH` | `/users/{firebase_uid}` | ownership (path) | `{user}` |
| `DELETE` | `/users/{firebase_uid}` | ownership (path) | `204` |
| `POST` | `/users/{firebase_uid}/avatar` | ownership (path) | `{user, avatarUrl, avatarStoragePath}` |

`POST /users/signin` is idempotent from the caller's point of view: it creates the record on first
sign-in and counts every later one.
"""
from fastapi import APIRouter, Depends, File, Response, UploadFile, status

from studyprep.core.auth import get_principal
from studyprep.core.security import check_ownership, require_path_ownership
from studyprep.repositories.users import UserRepository, get_user_repository
from studyprep.schemas.principal import Principal
from studyprep.schemas.user import AvatarUploadOut, UserEnvelope, UserProfileUpdate, UserSignIn
from studyprep.services import users as svc
from studyprep.services.storage import StorageBackend, get_storage

router = APIRouter(prefix="/users", tags=["Users"], dependencies=[Depends(get_principal)])

owns_path_user = require_path_ownership("firebase_uid")


@router.post("/signin", response_model=UserEnvelope, summary="Create or update the user on sign-in")
def sign_in(
    payload: UserSignIn,
    principal: Principal = Depends(get_principal),
    repo: UserRepository = Depends(get_user_repository),
):
    # The owner id comes from the body, so the gate runs here instead of as a dependency
    check_ownership(principal, payload.firebase_uid)
    user = svc.upsert_on_sign_in(
        repo,
        firebase_uid=payload.firebase_uid,
        email=payload.email,
        display_name=payload.display_name,
        avatar_url=payload.avatar_url,
        avatar_provider=payload.avatar_provider,
        email_verified=principal.email_verified if principal.uid == payload.firebase_uid else None,
    )
    return UserEnvelope(user=user)


@router.get("/me", response_model=UserEnvelope, summary="Current user's record")
def get_me(
    principal: Principal = Depends(get_principal),
    repo: UserRepository = Depends(get_user_repository),
):
    return UserEnvelope(user=svc.get_by_firebase_uid(repo, principal.uid))


@router.get("/{firebase_uid}", response_model=UserEnvelope, dependencies=[Depends(owns_path_user)])
def get_user(firebase_uid: str, repo: UserRepository = Depends(get_user_repository)):
    return UserEnvelope(user=svc.get_by_firebase_uid(repo, firebase_uid))


@router.patch("/{firebase_uid}", response_model=UserEnvelope, dependencies=[Depends(owns_path_user)])
def update_user(
    firebase_uid: str,
    payload: UserProfileUpdate,
    repo: UserRepository = Depends(get_user_repository),
):
    changes = payload.model_dump(exclude_unset=True)
    return UserEnvelope(user=svc.update_profile(repo, firebase_uid, changes))


@router.delete(
    "/{firebase_uid}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(owns_path_user)],
    summary="Soft delete (isActive=false)",
)
def delete_user(firebase_uid: str, repo: UserRepository = Depends(get_user_repository)):
    svc.soft_delete(repo, firebase_uid)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/{firebase_uid}/avatar", response_model=AvatarUploadOut, dependencies=[Depends(owns_path_user)])
async def upload_avatar(
    firebase_uid: str,
    file: UploadFile = File(...),
    repo: UserRepository = Depends(get_user_repository),
    storage: StorageBackend = Depends(get_storage),
):
    data = await file.read()
    user = svc.upload_avatar(repo, storage, firebase_uid, data, file.filename, file.content_type)
    return AvatarUploadOut(user=user, avatar_url=user.avatar_url, avatar_storage_path=user.avatar_storage_path)
