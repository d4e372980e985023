from schemas.application import (
    AddressSchema,
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
from schemas.auth import AuthResponse, LoginRequest, LogoutResponse, RefreshRequest
from schemas.review import ApplicationSummary, ApprovalResponse, RateLimitResetResponse, ReasonRequest

__all__ = [
    "AddressSchema",
    "ApplicationCreate",
    "ApplicationCreatedResponse",
    "ApplicationResponse",
    "ApplicationSummary",
    "ApprovalResponse",
    "AuthResponse",
    "ConsentRequest",
    "ConsentResponse",
    "DocumentResponse",
    "LoginRequest",
    "LogoutResponse",
    "MessageResponse",
    "ProvideInfoRequest",
    "RateLimitResetResponse",
    "ReasonRequest",
    "RefreshRequest",
    "SendOtpRequest",
    "SendOtpResponse",
    "TokenResponse",
    "VerifyOtpRequest",
]
