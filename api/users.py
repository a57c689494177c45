"""User lookup and profile update routes."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.encoders import jsonable_encoder

from accounts.dependencies import get_auth_service, get_current_principal
from accounts.models import Principal, User
from accounts.schemas import (
    ApiResponse,
    PublicProfile,
    UpdateDateOfBirthRequest,
    UpdateFullNameRequest,
    UpdateProfileRequest,
    UpdateUsernameRequest,
    UserProfile,
)
from accounts.services.auth_service import AuthenticationService

router = APIRouter(prefix="/user")


def _public(user: User) -> ApiResponse:
    profile = PublicProfile.model_validate(user.model_dump())
    return ApiResponse(
        success=True,
        message="User data retrieved successfully",
        data={"user": profile.model_dump(mode="json")},
    )


def _updated(user: User, changes: dict[str, Any], message: str) -> ApiResponse:
    profile = UserProfile.model_validate(user.model_dump())
    return ApiResponse(
        success=True,
        message=message,
        data={"user": profile.model_dump(mode="json"), "changes": jsonable_encoder(changes)},
    )


@router.get("/username/{username}", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def get_user_by_username(
    username: str,
    _: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    return _public(await auth_service.get_user_by_username(username))


@router.get("/{user_id}", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def get_user_by_id(
    user_id: str,
    _: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    return _public(await auth_service.get_user_by_id(user_id))


@router.put("/me/fullname", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def update_full_name(
    payload: UpdateFullNameRequest,
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    user, changes = await auth_service.update_profile(principal, full_name=payload.full_name)
    return _updated(user, changes, "Full name updated successfully")


@router.put("/me/username", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def update_username(
    payload: UpdateUsernameRequest,
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    user, changes = await auth_service.update_profile(principal, username=payload.username)
    return _updated(user, changes, "Username updated successfully")


@router.put("/me/dateofbirth", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def update_date_of_birth(
    payload: UpdateDateOfBirthRequest,
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    user, changes = await auth_service.update_profile(
        principal, date_of_birth=payload.date_of_birth
    )
    return _updated(user, changes, "Date of birth updated successfully")


@router.put("/me/profile", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def update_profile(
    payload: UpdateProfileRequest,
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    user, changes = await auth_service.update_profile(
        principal,
        full_name=payload.full_name,
        username=payload.username,
        date_of_birth=payload.date_of_birth,
    )
    return _updated(user, changes, "Profile updated successfully")
