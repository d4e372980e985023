import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings
from database import dispose_db, init_db
from domain.errors import (
    AuthenticationError,
    BusinessRuleViolationError,
    ConcurrencyConflictError,
    DuplicateIdentityError,
    GenerationExhaustedError,
    InvalidStateTransitionError,
    OnboardingError,
    OtpExpiredError,
    OtpMaxAttemptsError,
    RateLimitExceededError,
    ResourceNotFoundError,
    TokenInvalidError,
)
from api.applications import router as applications_router
from api.auth import router as auth_router
from api.rate_limit import RateLimitMiddleware, rate_limit_exceeded_response
from api.review import admin_router, compliance_router

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Most specific class first; the first isinstance match wins.
ERROR_STATUS: list[tuple[type[OnboardingError], int]] = [
    (ResourceNotFoundError, 404),
    (DuplicateIdentityError, 409),
    (ConcurrencyConflictError, 409),
    (InvalidStateTransitionError, 422),
    (OtpExpiredError, 400),
    (OtpMaxAttemptsError, 429),
    (BusinessRuleViolationError, 422),
    (TokenInvalidError, 401),
    (AuthenticationError, 401),
    (GenerationExhaustedError, 500),
]


def status_for(exc: OnboardingError) -> int:
    for error_type, status_code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status_code
    return 400


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    yield
    await dispose_db()


app = FastAPI(
    title=settings.app_name,
    description="Retail customer onboarding: identity verification, compliance review and account opening",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(RateLimitMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(OnboardingError)
async def onboarding_error_handler(request: Request, exc: OnboardingError):
    if isinstance(exc, RateLimitExceededError):
        return rate_limit_exceeded_response(exc)
    status_code = status_for(exc)
    if status_code >= 500:
        logger.error("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    else:
        logger.info("%s on %s %s: %s", exc.code, request.method, request.url.path, exc.message)
    content = {"detail": exc.message, "error": exc.code}
    if isinstance(exc, DuplicateIdentityError):
        content["duplicateType"] = exc.duplicate_type
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=content, headers=headers)


app.include_router(applications_router)
app.include_router(compliance_router)
app.include_router(admin_router)
app.include_router(auth_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
