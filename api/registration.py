"""Registration API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, status

from accounts.dependencies import enforce_register_rate_limit, get_registration_service
from accounts.models import RegistrationResult
from accounts.schemas import (
    ApiResponse,
    CompleteRegistrationRequest,
    RegisterDetailsRequest,
    RegisterEmailRequest,
    SessionTokenRequest,
    SetPasswordRequest,
    SetUsernameRequest,
    VerifyOtpRequest,
)
from accounts.services.registration_service import RegistrationService

router = APIRouter(prefix="/register")


def _response(result: RegistrationResult) -> ApiResponse:
    return ApiResponse(
        success=True,
        message=result.message,
        data=result.model_dump(mode="json", exclude={"message"}),
    )


@router.post("/email", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def register_email(
    payload: RegisterEmailRequest,
    _: None = Depends(enforce_register_rate_limit),
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    return _response(await registration.start_registration(payload.email))


@router.post("/resend-otp", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def resend_otp(
    payload: SessionTokenRequest,
    _: None = Depends(enforce_register_rate_limit),
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    return _response(await registration.resend_otp(payload.session_token))


@router.post("/verify-otp", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def verify_otp(
    payload: VerifyOtpRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    return _response(await registration.verify_otp(payload.session_token, payload.otp))


@router.post("/details", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def register_details(
    payload: RegisterDetailsRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    result = await registration.update_details(
        payload.session_token,
        full_name=payload.full_name,
        phone_number=payload.phone_number,
        country_code=payload.country_code,
        date_of_birth=payload.date_of_birth,
    )
    return _response(result)


@router.post("/password", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def set_password(
    payload: SetPasswordRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    result = await registration.set_password(
        payload.session_token, payload.password, payload.confirm_password
    )
    return _response(result)


@router.post("/username", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def set_username(
    payload: SetUsernameRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    return _response(await registration.set_username(payload.session_token, payload.username))


@router.post("/complete", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
async def complete_registration(
    payload: CompleteRegistrationRequest,
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    result = await registration.complete_registration(
        payload.session_token,
        full_name=payload.full_name,
        phone_number=payload.phone_number,
        country_code=payload.country_code,
        date_of_birth=payload.date_of_birth,
    )
    return _response(result)


@router.get("/username-available", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def username_available(
    username: str = Query(..., max_length=50),
    registration: RegistrationService = Depends(get_registration_service),
) -> ApiResponse:
    available = await registration.is_username_available(username)
    return ApiResponse(
        success=True,
        message="Username is available" if available else "Username is not available",
        data={"username": username, "available": available},
    )
