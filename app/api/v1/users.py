# app/api/v1/users.py
from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends, File, Path, Response, UploadFile

from app.api.deps import get_auth_workflow, get_profile_service
from app.api.permissions import require_roles
from app.core.rbac import Role
from app.schemas.token import MessageOut
from app.schemas.user import (
    ProfileFieldUpdateOut,
    UpdateBioIn,
    UpdateOccupationIn,
    UpdateUsernameIn,
    UploadImageOut,
    UserOut,
)
from app.services.auth import AuthenticationWorkflow
from app.services.users import ProfileService

router = APIRouter()

authenticated = [Depends(require_roles())]
staff = [Depends(require_roles(Role.OWNER, Role.ADMIN))]


# --------------------------------------------------------------------------- #
# Reads (any authenticated caller)
# --------------------------------------------------------------------------- #

@router.get("/users", response_model=List[UserOut], dependencies=authenticated)
def list_users(profiles: ProfileService = Depends(get_profile_service)):
    return [UserOut.model_validate(u) for u in profiles.list_users()]


@router.get("/users/{user_id}", response_model=UserOut, dependencies=authenticated)
def get_user(user_id: int = Path(..., ge=1), profiles: ProfileService = Depends(get_profile_service)):
    return UserOut.model_validate(profiles.get_user(user_id))


@router.get("/users/fetch/{user_id}/image", dependencies=authenticated)
def fetch_image(user_id: int = Path(..., ge=1), profiles: ProfileService = Depends(get_profile_service)):
    return Response(content=profiles.fetch_image(user_id), media_type="image/jpeg")


# --------------------------------------------------------------------------- #
# Profile edits (owner/admin)
# --------------------------------------------------------------------------- #

def _updated(profiles: ProfileService, user_id: int, field: str, value: str) -> ProfileFieldUpdateOut:
    user = profiles.update_field(user_id, field, value)
    return ProfileFieldUpdateOut(message=f"User {field} updated", user=UserOut.model_validate(user))


@router.put("/users/update/{user_id}/bio", response_model=ProfileFieldUpdateOut, dependencies=staff)
def update_bio(body: UpdateBioIn, user_id: int = Path(..., ge=1), profiles: ProfileService = Depends(get_profile_service)):
    return _updated(profiles, user_id, "bio", body.bio)


@router.put("/users/update/{user_id}/occupation", response_model=ProfileFieldUpdateOut, dependencies=staff)
def update_occupation(
    body: UpdateOccupationIn,
    user_id: int = Path(..., ge=1),
    profiles: ProfileService = Depends(get_profile_service),
):
    return _updated(profiles, user_id, "occupation", body.occupation)


@router.put("/users/update/{user_id}/username", response_model=ProfileFieldUpdateOut, dependencies=staff)
def update_username(
    body: UpdateUsernameIn,
    user_id: int = Path(..., ge=1),
    profiles: ProfileService = Depends(get_profile_service),
):
    return _updated(profiles, user_id, "username", body.username)


@router.post("/users/update/{user_id}/image", response_model=UploadImageOut, status_code=201, dependencies=staff)
def upload_image(
    user_id: int = Path(..., ge=1),
    file: UploadFile = File(...),
    profiles: ProfileService = Depends(get_profile_service),
):
    image_id = profiles.upload_image(user_id, file.file.read())
    return UploadImageOut(message="File uploaded successfully", image_id=image_id)


# --------------------------------------------------------------------------- #
# Account deletion (owner only)
# --------------------------------------------------------------------------- #

@router.delete("/delete-user/{user_id}", response_model=MessageOut, dependencies=[Depends(require_roles(Role.OWNER))])
def delete_user(user_id: int = Path(..., ge=1), auth: AuthenticationWorkflow = Depends(get_auth_workflow)):
    auth.delete_account(user_id)
    return MessageOut(message="User deleted successfully")
