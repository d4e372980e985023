from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from api.deps import (
    StaffPrincipal,
    get_auth_service,
    get_gdpr_service,
    get_rate_limit_policies,
    get_rate_limiter,
    get_review_service,
    require_admin,
    require_officer,
)
from domain.enums import ApplicationStatus
from domain.errors import ResourceNotFoundError
from schemas.auth import SessionCountResponse, SessionTerminationResponse
from schemas.application import ApplicationResponse, MessageResponse
from schemas.review import (
    ApplicationSummary,
    ApprovalResponse,
    RateLimitInfoResponse,
    RateLimitResetResponse,
    RateLimitRuleResponse,
    ReasonRequest,
)
from services.auth import AuthService
from services.gdpr import GdprService
from services.rate_limiter import RateLimiter, RateLimitPolicy
from services.review import ReviewService
from utils.masking import mask_key

compliance_router = APIRouter(prefix="/api/v1/compliance", tags=["compliance"])
admin_router = APIRouter(prefix="/api/v1/admin", tags=["admin"])


# -- compliance officer ---------------------------------------------------------


@compliance_router.get("/applications", response_model=list[ApplicationSummary])
async def list_applications(
    status: ApplicationStatus = Query(ApplicationStatus.SUBMITTED),
    principal: StaffPrincipal = Depends(require_officer),
    service: ReviewService = Depends(get_review_service),
):
    applications = await service.list_by_status(status, requested_by=principal.username)
    return [ApplicationSummary.from_domain(a) for a in applications]


@compliance_router.post("/applications/{application_id}/assign", response_model=ApplicationSummary)
async def assign_to_self(
    application_id: UUID,
    principal: StaffPrincipal = Depends(require_officer),
    service: ReviewService = Depends(get_review_service),
):
    return ApplicationSummary.from_domain(await service.assign_to_self(application_id, principal.username))


@compliance_router.post("/applications/{application_id}/verify", response_model=ApplicationSummary)
async def verify_application(
    application_id: UUID,
    principal: StaffPrincipal = Depends(require_officer),
    service: ReviewService = Depends(get_review_service),
):
    return ApplicationSummary.from_domain(await service.verify(application_id, principal.username))


@compliance_router.post("/applications/{application_id}/request-info", response_model=ApplicationSummary)
async def request_additional_info(
    application_id: UUID,
    body: ReasonRequest,
    _: StaffPrincipal = Depends(require_officer),
    service: ReviewService = Depends(get_review_service),
):
    return ApplicationSummary.from_domain(await service.request_more_info(application_id, body.reason))


@compliance_router.post("/applications/{application_id}/flag", response_model=ApplicationSummary)
async def flag_suspicious(
    application_id: UUID,
    body: ReasonRequest,
    _: StaffPrincipal = Depends(require_officer),
    service: ReviewService = Depends(get_review_service),
):
    return ApplicationSummary.from_domain(await service.flag_suspicious(application_id, body.reason))


# -- admin ----------------------------------------------------------------------


@admin_router.post("/applications/{application_id}/approve", response_model=ApprovalResponse)
async def approve_application(
    application_id: UUID,
    principal: StaffPrincipal = Depends(require_admin),
    service: ReviewService = Depends(get_review_service),
):
    result = await service.approve(application_id, principal.username)
    return ApprovalResponse(
        application_id=str(result.application.id),
        customer_id=str(result.customer.id),
        customer_reference=result.customer.customer_reference,
        account_number=result.customer.account_number,
        status=result.application.status,
    )


@admin_router.post("/applications/{application_id}/reject", response_model=ApplicationSummary)
async def reject_application(
    application_id: UUID,
    body: ReasonRequest,
    principal: StaffPrincipal = Depends(require_admin),
    service: ReviewService = Depends(get_review_service),
):
    return ApplicationSummary.from_domain(await service.reject(application_id, body.reason, principal.username))


@admin_router.get("/applications/by-account/{account_number}", response_model=ApplicationResponse)
async def find_by_account_number(
    account_number: str,
    _: StaffPrincipal = Depends(require_admin),
    service: ReviewService = Depends(get_review_service),
):
    return ApplicationResponse.from_domain(await service.find_by_account_number(account_number))


@admin_router.get("/metrics")
async def application_metrics(
    principal: StaffPrincipal = Depends(require_admin),
    service: ReviewService = Depends(get_review_service),
) -> dict[str, int]:
    return await service.metrics(requested_by=principal.username)


@admin_router.get("/applications/{application_id}/gdpr/export")
async def export_personal_data(
    application_id: UUID,
    principal: StaffPrincipal = Depends(require_admin),
    service: GdprService = Depends(get_gdpr_service),
) -> dict[str, Any]:
    return await service.export_data(application_id, requested_by=principal.username)


@admin_router.post("/applications/{application_id}/gdpr/process-deletion", response_model=MessageResponse)
async def process_data_deletion(
    application_id: UUID,
    _: StaffPrincipal = Depends(require_admin),
    service: GdprService = Depends(get_gdpr_service),
):
    await service.process_deletion(application_id)
    return MessageResponse(message="Personal data anonymized")


@admin_router.delete("/rate-limits/{resource}", response_model=RateLimitResetResponse)
async def reset_rate_limits(
    resource: str,
    _: StaffPrincipal = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    return RateLimitResetResponse(resource=resource, cleared=limiter.reset_resource(resource))


@admin_router.delete("/rate-limits/{resource}/{key}", response_model=RateLimitResetResponse)
async def reset_rate_limit_key(
    resource: str,
    key: str,
    _: StaffPrincipal = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
):
    limiter.reset(key, resource)
    return RateLimitResetResponse(resource=resource, cleared=1)


@admin_router.get("/rate-limits/info", response_model=RateLimitInfoResponse)
async def rate_limit_info(
    key: str = Query(..., min_length=1),
    resource: str = Query(..., min_length=1),
    _: StaffPrincipal = Depends(require_admin),
    limiter: RateLimiter = Depends(get_rate_limiter),
    policies: list[RateLimitPolicy] = Depends(get_rate_limit_policies),
):
    rule = next((r for p in policies for r in p.rules if r.resource == resource), None)
    if rule is None:
        raise ResourceNotFoundError("Rate limit resource", resource)
    info = limiter.get_info(key, resource, rule.limit, rule.window_ms)
    return RateLimitInfoResponse(
        key=mask_key(key),
        resource=resource,
        limit=info.limit,
        current=info.current,
        remaining=info.remaining,
        reset_at=info.reset_at,
    )


@admin_router.get("/rate-limits/config", response_model=list[RateLimitRuleResponse])
async def rate_limit_config(
    _: StaffPrincipal = Depends(require_admin),
    policies: list[RateLimitPolicy] = Depends(get_rate_limit_policies),
):
    return [
        RateLimitRuleResponse(
            resource=rule.resource,
            method=policy.method,
            path=policy.path.pattern,
            limit=rule.limit,
            window_seconds=rule.window_ms // 1000,
            key_source=rule.key_source.value,
        )
        for policy in policies
        for rule in policy.rules
    ]


@admin_router.post("/users/{user_id}/sessions/terminate", response_model=SessionTerminationResponse)
async def terminate_user_sessions(
    user_id: UUID,
    _: StaffPrincipal = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    terminated = await service.terminate_all_sessions(user_id, "Admin termination")
    return SessionTerminationResponse(user_id=str(user_id), terminated_sessions=terminated)


@admin_router.get("/users/{user_id}/sessions/count", response_model=SessionCountResponse)
async def user_session_count(
    user_id: UUID,
    _: StaffPrincipal = Depends(require_admin),
    service: AuthService = Depends(get_auth_service),
):
    return SessionCountResponse(user_id=str(user_id), active_sessions=await service.session_count(user_id))
