"""Auth API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status

from accounts.dependencies import (
    client_metadata,
    enforce_login_rate_limit,
    get_auth_service,
    get_bearer_token,
    get_current_principal,
)
from accounts.models import Principal, TokenBundle
from accounts.schemas import ApiResponse, LoginRequest, LogoutRequest, RefreshRequest, UserProfile
from accounts.services.auth_service import AuthenticationService

router = APIRouter()


def _token_response(bundle: TokenBundle) -> ApiResponse:
    return ApiResponse(
        success=True,
        message=bundle.message,
        data=bundle.model_dump(mode="json", exclude={"message"}),
    )


@router.post("/login", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def login(
    payload: LoginRequest,
    request: Request,
    _: None = Depends(enforce_login_rate_limit),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    ip_address, device_info = client_metadata(request)
    bundle = await auth_service.login(
        payload.email, payload.password, ip_address=ip_address, device_info=device_info
    )
    return _token_response(bundle)


@router.post("/refresh", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def refresh(
    payload: RefreshRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    return _token_response(await auth_service.refresh(payload.refresh_token))


@router.post("/logout", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout(
    payload: LogoutRequest,
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    await auth_service.logout(payload.refresh_token)
    return ApiResponse(success=True, message="Logged out successfully", data={})


@router.post("/logout-all", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout_all(
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    removed = await auth_service.logout_all(principal)
    return ApiResponse(
        success=True,
        message="Logged out from all sessions",
        data={"sessions_removed": removed},
    )


@router.get("/validate", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def validate(
    access_token: str = Depends(get_bearer_token),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    principal = auth_service.validate_token(access_token)
    return ApiResponse(success=True, message="Token is valid", data=principal.model_dump())


@router.get("/me", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def me(
    principal: Principal = Depends(get_current_principal),
    auth_service: AuthenticationService = Depends(get_auth_service),
) -> ApiResponse:
    user = await auth_service.get_profile(principal)
    profile = UserProfile.model_validate(user.model_dump())
    return ApiResponse(
        success=True,
        message="User retrieved",
        data={"user": profile.model_dump(mode="json")},
    )
