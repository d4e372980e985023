from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.deps import StaffPrincipal, client_ip, get_auth_service, require_officer
from schemas.auth import (
    AuthResponse,
    CurrentUserResponse,
    LoginRequest,
    LogoutResponse,
    RefreshRequest,
    SessionInfoResponse,
    SessionTerminationResponse,
)
from services.auth import AuthResult, AuthService

router = APIRouter(prefix="/api/v1/auth", tags=["auth"])


def _to_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        expires_in_seconds=result.expires_in_seconds,
        refresh_expires_in_seconds=result.refresh_expires_in_seconds,
        session_id=result.session_id,
        user_id=str(result.user.id),
        username=result.user.username,
        role=result.user.role,
    )


@router.post("/login", response_model=AuthResponse)
async def login(body: LoginRequest, request: Request, service: AuthService = Depends(get_auth_service)):
    result = await service.authenticate(
        body.username, body.password, client_ip(request), request.headers.get("user-agent")
    )
    return _to_response(result)


@router.post("/refresh", response_model=AuthResponse)
async def refresh(body: RefreshRequest, request: Request, service: AuthService = Depends(get_auth_service)):
    result = await service.refresh(body.refresh_token, client_ip(request), request.headers.get("user-agent"))
    return _to_response(result)


@router.post("/logout", response_model=LogoutResponse)
async def logout(
    principal: StaffPrincipal = Depends(require_officer),
    service: AuthService = Depends(get_auth_service),
):
    return LogoutResponse(revoked_tokens=await service.logout(principal.user_id, principal.session_id))


@router.get("/me", response_model=CurrentUserResponse)
async def current_user(
    principal: StaffPrincipal = Depends(require_officer),
    service: AuthService = Depends(get_auth_service),
):
    user = await service.current_user(principal.user_id)
    return CurrentUserResponse(
        user_id=str(user.id),
        username=user.username,
        email=user.email,
        role=user.role,
        last_login_at=user.last_login_at,
    )


@router.get("/sessions/current", response_model=SessionInfoResponse)
async def current_session(
    principal: StaffPrincipal = Depends(require_officer),
    service: AuthService = Depends(get_auth_service),
):
    return SessionInfoResponse.from_domain(await service.current_session(principal.session_id))


@router.delete("/sessions", response_model=SessionTerminationResponse)
async def terminate_own_sessions(
    principal: StaffPrincipal = Depends(require_officer),
    service: AuthService = Depends(get_auth_service),
):
    terminated = await service.terminate_all_sessions(principal.user_id, "Terminated by user")
    return SessionTerminationResponse(user_id=str(principal.user_id), terminated_sessions=terminated)
