"""
Rate-limit middleware for the public applicant endpoints.

Requests are matched against the policy table in services/rate_limiter.py. Each
matching rule counts one hit, keyed by client IP or by the application id in the path.
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from api.deps import client_ip, get_rate_limit_policies, get_rate_limiter
from domain.errors import RateLimitExceededError
from services.rate_limiter import KeySource, RateLimitInfo, RateLimitPolicy, RateLimiter, find_policy
from utils.masking import mask_ip

logger = logging.getLogger(__name__)


def rate_limit_headers(info: RateLimitInfo) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(info.limit),
        "X-RateLimit-Remaining": str(info.remaining),
        "X-RateLimit-Reset": str(info.reset_at),
    }


def rate_limit_exceeded_response(exc: RateLimitExceededError) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "detail": exc.message,
            "error": exc.code,
            "resource": exc.resource,
            "retryAfterSeconds": exc.retry_after_seconds,
        },
        headers={
            "Retry-After": str(exc.retry_after_seconds),
            "X-RateLimit-Limit": str(exc.limit),
            "X-RateLimit-Remaining": str(exc.remaining),
        },
    )


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, policies: Optional[list[RateLimitPolicy]] = None):
        super().__init__(app)
        self.policies = policies if policies is not None else get_rate_limit_policies()

    def _limiter(self, request: Request) -> RateLimiter:
        factory = request.app.dependency_overrides.get(get_rate_limiter, get_rate_limiter)
        return factory()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        found = find_policy(self.policies, request.method, request.url.path)
        if found is None:
            return await call_next(request)

        policy, params = found
        limiter = self._limiter(request)
        ip = client_ip(request)
        last: Optional[RateLimitInfo] = None
        try:
            for rule in policy.rules:
                key = params.get("application_id") if rule.key_source is KeySource.APPLICATION else ip
                info = limiter.check_rate_limit(key, rule.resource, rule.limit, rule.window_ms)
                if info is not None and (last is None or info.remaining < last.remaining):
                    last = info
        except RateLimitExceededError as exc:
            logger.info("Rejected %s %s from %s (%s)", request.method, request.url.path, mask_ip(ip), exc.resource)
            return rate_limit_exceeded_response(exc)

        response = await call_next(request)
        if last is not None:
            response.headers.update(rate_limit_headers(last))
        return response
