from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from api.deps import get_gdpr_service, get_onboarding_service, get_token_service, require_applicant
from domain.enums import ConsentType, DocumentType, UserRole
from schemas.application import (
    ApplicationCreate,
    ApplicationCreatedResponse,
    ApplicationResponse,
    ConsentRequest,
    ConsentResponse,
    DocumentResponse,
    MessageResponse,
    ProvideInfoRequest,
    SendOtpRequest,
    SendOtpResponse,
    TokenResponse,
    VerifyOtpRequest,
)
from services.gdpr import GdprService
from services.onboarding import OnboardingService
from services.tokens import TokenService

router = APIRouter(prefix="/api/v1/applications", tags=["applications"])


@router.post("", status_code=201, response_model=ApplicationCreatedResponse)
async def create_application(body: ApplicationCreate, service: OnboardingService = Depends(get_onboarding_service)):
    application = await service.create_application(body)
    return ApplicationCreatedResponse(
        application_id=str(application.id),
        status=application.status,
        message="Application created. Verify your email or phone to continue.",
    )


@router.get("/{application_id}", response_model=ApplicationResponse)
async def get_application(
    application_id: UUID = Depends(require_applicant),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return ApplicationResponse.from_domain(await service.get_application(application_id))


@router.post("/{application_id}/otp/send", response_model=SendOtpResponse)
async def send_otp(
    application_id: UUID, body: SendOtpRequest, service: OnboardingService = Depends(get_onboarding_service)
):
    dispatch = await service.send_otp(application_id, body.channel)
    return SendOtpResponse(
        channel=dispatch.channel,
        expires_in_seconds=dispatch.expires_in_seconds,
        message=f"Verification code sent to {dispatch.destination}",
    )


@router.post("/{application_id}/otp/verify", response_model=TokenResponse)
async def verify_otp(
    application_id: UUID,
    body: VerifyOtpRequest,
    service: OnboardingService = Depends(get_onboarding_service),
    tokens: TokenService = Depends(get_token_service),
):
    token = await service.verify_otp(application_id, body.channel, body.otp)
    return TokenResponse(access_token=token, expires_in_seconds=tokens.expiry_ms(UserRole.APPLICANT) // 1000)


@router.post("/{application_id}/documents", status_code=201, response_model=DocumentResponse)
async def upload_document(
    document_type: DocumentType = Form(..., alias="documentType"),
    file: UploadFile = File(...),
    application_id: UUID = Depends(require_applicant),
    service: OnboardingService = Depends(get_onboarding_service),
):
    content = await file.read()
    document = await service.upload_document(
        application_id, document_type, file.filename or "", content, file.content_type
    )
    return DocumentResponse(
        id=str(document.id),
        document_type=document.document_type,
        status=document.status,
        mime_type=document.mime_type,
        file_size=document.file_size,
        uploaded_at=document.uploaded_at,
    )


@router.post("/{application_id}/consents", status_code=201, response_model=ConsentResponse)
async def grant_consent(
    body: ConsentRequest,
    request: Request,
    application_id: UUID = Depends(require_applicant),
    service: OnboardingService = Depends(get_onboarding_service),
):
    consent = await service.grant_consent(
        application_id,
        body.consent_type,
        body.consent_text,
        body.version,
        ip_address=request.client.host if request.client else None,
    )
    return ConsentResponse(
        consent_type=consent.consent_type,
        version=consent.version,
        active=consent.is_active,
        granted_at=consent.granted_at,
    )


@router.delete("/{application_id}/consents/{consent_type}", response_model=ApplicationResponse)
async def revoke_consent(
    consent_type: ConsentType,
    application_id: UUID = Depends(require_applicant),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return ApplicationResponse.from_domain(await service.revoke_consent(application_id, consent_type))


@router.post("/{application_id}/submit", response_model=ApplicationResponse)
async def submit_application(
    application_id: UUID = Depends(require_applicant),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return ApplicationResponse.from_domain(await service.submit(application_id))


@router.post("/{application_id}/additional-info", response_model=ApplicationResponse)
async def provide_additional_info(
    body: ProvideInfoRequest,
    application_id: UUID = Depends(require_applicant),
    service: OnboardingService = Depends(get_onboarding_service),
):
    return ApplicationResponse.from_domain(await service.provide_more_info(application_id, body.information))


@router.get("/{application_id}/gdpr/export")
async def export_personal_data(
    application_id: UUID = Depends(require_applicant),
    service: GdprService = Depends(get_gdpr_service),
) -> dict[str, Any]:
    return await service.export_data(application_id, requested_by="DATA_SUBJECT")


@router.post("/{application_id}/gdpr/deletion", status_code=202, response_model=MessageResponse)
async def request_data_deletion(
    application_id: UUID = Depends(require_applicant),
    service: GdprService = Depends(get_gdpr_service),
):
    if await service.request_deletion(application_id):
        return MessageResponse(
            message="Data deletion request submitted. Data will be anonymized once the retention period ends."
        )
    return MessageResponse(message="Application is already marked for deletion")
