"""Active session API routes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from accounts.dependencies import get_bearer_token, get_current_principal, get_session_manager
from accounts.models import Principal
from accounts.schemas import ApiResponse, LogoutOtherSessionsRequest, SessionInfo, SessionLogoutRequest
from accounts.services.session_manager import SessionManager

router = APIRouter(prefix="/sessions")


@router.get("", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def list_sessions(
    principal: Principal = Depends(get_current_principal),
    session_manager: SessionManager = Depends(get_session_manager),
) -> ApiResponse:
    sessions = await session_manager.list_active_sessions(principal)
    return ApiResponse(
        success=True,
        message="Active sessions retrieved",
        data={
            "sessions": [
                SessionInfo.model_validate(s.model_dump()).model_dump(mode="json")
                for s in sessions
            ]
        },
    )


@router.get("/current", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def current_session(
    access_token: str = Depends(get_bearer_token),
    session_manager: SessionManager = Depends(get_session_manager),
) -> ApiResponse:
    refresh_token = await session_manager.get_current_session_refresh_token(access_token)
    return ApiResponse(
        success=True,
        message="Current session retrieved",
        data={"refresh_token": refresh_token},
    )


@router.post("/logout", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout_session(
    payload: SessionLogoutRequest,
    principal: Principal = Depends(get_current_principal),
    session_manager: SessionManager = Depends(get_session_manager),
) -> ApiResponse:
    await session_manager.delete_session_by_id(payload.session_id, principal)
    return ApiResponse(success=True, message="Session logged out successfully", data={})


@router.post("/logout-all-other", response_model=ApiResponse, status_code=status.HTTP_200_OK)
async def logout_other_sessions(
    payload: LogoutOtherSessionsRequest,
    principal: Principal = Depends(get_current_principal),
    session_manager: SessionManager = Depends(get_session_manager),
) -> ApiResponse:
    removed = await session_manager.delete_other_sessions(
        principal, keep_refresh_token=payload.refresh_token
    )
    return ApiResponse(
        success=True,
        message="Logged out from all other sessions",
        data={"sessions_removed": removed},
    )
