"""
FastAPI dependencies: process-wide collaborators, request-scoped repositories and services,
and bearer-token principals.

Process-wide objects are cached factories so tests can swap any of them through
app.dependency_overrides.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from domain.enums import UserRole
from repositories.ports import (
    ApplicationRepository,
    AuditRepository,
    CustomerRepository,
    OtpRepository,
    RefreshTokenRepository,
    StaffSessionRepository,
    StaffUserRepository,
)
from repositories.sql import (
    SqlApplicationRepository,
    SqlAuditRepository,
    SqlCustomerRepository,
    SqlOtpRepository,
    SqlRefreshTokenRepository,
    SqlStaffSessionRepository,
    SqlStaffUserRepository,
)
from services.audit import AuditTrail
from services.auth import AuthService
from services.document_store import DocumentStore, LocalDocumentStore
from services.event_sink import EventSink, LoggingEventSink, TransactionalEventSink
from services.gdpr import GdprService
from services.hashing import BcryptHasher, PasswordHasher
from services.notifications import LoggingOtpNotifier, OtpNotifier
from services.onboarding import OnboardingService
from services.otp import OtpService
from services.rate_limiter import RateLimiter, RateLimitPolicy, default_policies
from services.review import ReviewService
from services.tokens import APPLICANT_TOKEN_TYPE, EMPLOYEE_TOKEN_TYPE, TokenService
from utils.clock import Clock

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


# -- process-wide collaborators ---------------------------------------------


@lru_cache
def get_clock() -> Clock:
    return Clock()


@lru_cache
def get_hasher() -> PasswordHasher:
    return BcryptHasher(rounds=settings.bcrypt_rounds)


@lru_cache
def get_token_service() -> TokenService:
    return TokenService(clock=get_clock())


@lru_cache
def get_rate_limiter() -> RateLimiter:
    return RateLimiter(clock=get_clock())


@lru_cache
def get_rate_limit_policies() -> list[RateLimitPolicy]:
    return default_policies()


@lru_cache
def get_event_sink() -> EventSink:
    return LoggingEventSink()


@lru_cache
def get_document_store() -> DocumentStore:
    return LocalDocumentStore(settings.document_storage_dir)


@lru_cache
def get_otp_notifier() -> OtpNotifier:
    return LoggingOtpNotifier()


# -- request-scoped repositories ----------------------------------------------


def get_request_event_sink(
    db: AsyncSession = Depends(get_db), target: EventSink = Depends(get_event_sink)
) -> EventSink:
    """Events of this request reach the process-wide sink only once its session commits."""
    return TransactionalEventSink(db, target)


def get_application_repository(
    db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)
) -> ApplicationRepository:
    return SqlApplicationRepository(db, clock)


def get_otp_repository(db: AsyncSession = Depends(get_db)) -> OtpRepository:
    return SqlOtpRepository(db)


def get_customer_repository(db: AsyncSession = Depends(get_db)) -> CustomerRepository:
    return SqlCustomerRepository(db)


def get_staff_user_repository(db: AsyncSession = Depends(get_db)) -> StaffUserRepository:
    return SqlStaffUserRepository(db)


def get_refresh_token_repository(
    db: AsyncSession = Depends(get_db), clock: Clock = Depends(get_clock)
) -> RefreshTokenRepository:
    return SqlRefreshTokenRepository(db, clock)


def get_staff_session_repository(db: AsyncSession = Depends(get_db)) -> StaffSessionRepository:
    return SqlStaffSessionRepository(db)


def get_audit_repository(db: AsyncSession = Depends(get_db)) -> AuditRepository:
    return SqlAuditRepository(db)


def get_audit_trail(
    repository: AuditRepository = Depends(get_audit_repository), clock: Clock = Depends(get_clock)
) -> AuditTrail:
    return AuditTrail(repository, clock)


# -- services -----------------------------------------------------------------


def get_onboarding_service(
    applications: ApplicationRepository = Depends(get_application_repository),
    otps: OtpRepository = Depends(get_otp_repository),
    hasher: PasswordHasher = Depends(get_hasher),
    tokens: TokenService = Depends(get_token_service),
    events: EventSink = Depends(get_request_event_sink),
    audit: AuditTrail = Depends(get_audit_trail),
    documents: DocumentStore = Depends(get_document_store),
    notifier: OtpNotifier = Depends(get_otp_notifier),
    clock: Clock = Depends(get_clock),
) -> OnboardingService:
    otp_service = OtpService(
        hasher,
        clock=clock,
        length=settings.otp_length,
        expiry_minutes=settings.otp_expiry_minutes,
    )
    return OnboardingService(
        applications,
        otps,
        otp_service,
        tokens,
        events,
        audit,
        documents,
        notifier,
        clock=clock,
        max_otp_attempts=settings.otp_max_attempts,
    )


def get_review_service(
    applications: ApplicationRepository = Depends(get_application_repository),
    customers: CustomerRepository = Depends(get_customer_repository),
    events: EventSink = Depends(get_request_event_sink),
    audit: AuditTrail = Depends(get_audit_trail),
    clock: Clock = Depends(get_clock),
) -> ReviewService:
    return ReviewService(applications, customers, events, audit, clock=clock)


def get_gdpr_service(
    applications: ApplicationRepository = Depends(get_application_repository),
    events: EventSink = Depends(get_request_event_sink),
    audit: AuditTrail = Depends(get_audit_trail),
    documents: DocumentStore = Depends(get_document_store),
    clock: Clock = Depends(get_clock),
) -> GdprService:
    return GdprService(applications, events, audit, documents, clock=clock)


def get_auth_service(
    users: StaffUserRepository = Depends(get_staff_user_repository),
    refresh_tokens: RefreshTokenRepository = Depends(get_refresh_token_repository),
    sessions: StaffSessionRepository = Depends(get_staff_session_repository),
    tokens: TokenService = Depends(get_token_service),
    hasher: PasswordHasher = Depends(get_hasher),
    clock: Clock = Depends(get_clock),
) -> AuthService:
    return AuthService(
        users,
        refresh_tokens,
        sessions,
        tokens,
        hasher,
        clock=clock,
        idle_timeout_ms=settings.session_idle_timeout_ms,
        officer_absolute_ms=settings.session_officer_absolute_ms,
        admin_absolute_ms=settings.session_admin_absolute_ms,
        max_concurrent_sessions=settings.session_max_concurrent,
    )


# -- principals ---------------------------------------------------------------


@dataclass(frozen=True)
class StaffPrincipal:
    user_id: UUID
    username: str
    role: UserRole
    session_id: str


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _claims(credentials: Optional[HTTPAuthorizationCredentials], tokens: TokenService) -> dict:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _unauthorized("Missing bearer token")
    claims = tokens.validate(credentials.credentials)
    if claims is None:
        raise _unauthorized("Invalid or expired token")
    return claims


def require_applicant(
    application_id: UUID,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    tokens: TokenService = Depends(get_token_service),
) -> UUID:
    """Applicant session token bound to the application in the path."""
    claims = _claims(credentials, tokens)
    if claims.get("type") != APPLICANT_TOKEN_TYPE:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Applicant session required")
    if tokens.extract_application_id(claims) != application_id:
        logger.warning("Applicant token used for a different application %s", application_id)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Token not valid for this application")
    return application_id


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def require_staff(*roles: UserRole):
    """Employee token with one of `roles` whose server-side session is still valid."""
    allowed = set(roles)

    async def dependency(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        tokens: TokenService = Depends(get_token_service),
        auth: AuthService = Depends(get_auth_service),
    ) -> StaffPrincipal:
        claims = _claims(credentials, tokens)
        user_id = tokens.extract_user_id(claims)
        role = tokens.extract_role(claims)
        username = tokens.extract_username(claims)
        if claims.get("type") != EMPLOYEE_TOKEN_TYPE or user_id is None or role is None or username is None:
            raise _unauthorized("Invalid employee token")
        if role not in allowed:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")
        session = await auth.validate_session(
            tokens.extract_session_id(claims), client_ip(request), request.headers.get("user-agent")
        )
        if session.user_id != user_id:
            logger.warning("Session %s presented with a token for another user", session.id)
            raise _unauthorized("Invalid employee token")
        return StaffPrincipal(user_id=user_id, username=username, role=role, session_id=session.id)

    return dependency


require_officer = require_staff(UserRole.COMPLIANCE_OFFICER, UserRole.ADMIN)
require_admin = require_staff(UserRole.ADMIN)
