"""
Session token issuance and validation (HS256 JWT via PyJWT).

Three token shapes share one builder driven by a per-role policy table:
applicant session tokens are bound to an application id, employee tokens
(compliance officer, admin) are bound to a user id and a session id.
Refresh tokens are opaque random values; only their SHA-256 hash is persisted.

validate() never raises: callers treat None as unauthenticated. Expired tokens
log at WARNING, tampered or malformed ones at ERROR.
"""
from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import jwt

from config import settings
from domain.enums import UserRole
from utils.clock import Clock

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
MIN_SECRET_LENGTH = 32
REFRESH_TOKEN_BYTES = 32

APPLICANT_TOKEN_TYPE = "applicant_session"
EMPLOYEE_TOKEN_TYPE = "employee"


@dataclass(frozen=True)
class TokenPolicy:
    token_type: str
    subject_prefix: str
    expiry_ms: int


@dataclass(frozen=True)
class RefreshTokenPair:
    """`token` goes to the caller exactly once; only `token_hash` is stored."""

    token: str
    token_hash: str


def default_policies() -> dict[UserRole, TokenPolicy]:
    return {
        UserRole.APPLICANT: TokenPolicy(APPLICANT_TOKEN_TYPE, "app", settings.jwt_applicant_expiry_ms),
        UserRole.COMPLIANCE_OFFICER: TokenPolicy(EMPLOYEE_TOKEN_TYPE, "user", settings.jwt_officer_expiry_ms),
        UserRole.ADMIN: TokenPolicy(EMPLOYEE_TOKEN_TYPE, "user", settings.jwt_admin_expiry_ms),
    }


def _strengthen_secret(secret: str) -> str:
    if len(secret) >= MIN_SECRET_LENGTH:
        return secret
    logger.warning(
        "JWT secret is shorter than %d characters; padding it. Configure a stronger secret.",
        MIN_SECRET_LENGTH,
    )
    return secret.ljust(MIN_SECRET_LENGTH, "0")


class TokenService:
    def __init__(
        self,
        secret: str | None = None,
        policies: dict[UserRole, TokenPolicy] | None = None,
        refresh_expiry_ms: int | None = None,
        clock: Clock | None = None,
    ):
        self._secret = _strengthen_secret(secret if secret is not None else settings.jwt_secret)
        self._policies = policies or default_policies()
        self.refresh_expiry_ms = refresh_expiry_ms or settings.jwt_refresh_expiry_ms
        self._clock = clock or Clock()

    def expiry_ms(self, role: UserRole) -> int:
        return self._policies[role].expiry_ms

    # -- issuance ----------------------------------------------------------

    def issue(self, role: UserRole, subject_id: UUID | str, claims: dict[str, Any] | None = None) -> str:
        """Sign a token for `role`; the policy supplies type tag, subject prefix and lifetime."""
        policy = self._policies[UserRole(role)]
        issued_at = self._clock.now_millis() // 1000
        payload: dict[str, Any] = {
            **(claims or {}),
            "sub": f"{policy.subject_prefix}-{subject_id}",
            "type": policy.token_type,
            "role": UserRole(role).value,
            "iat": issued_at,
            "exp": issued_at + policy.expiry_ms // 1000,
        }
        return jwt.encode(payload, self._secret, algorithm=ALGORITHM)

    def issue_applicant_token(self, application_id: UUID) -> str:
        logger.debug("Issuing applicant token for application %s", application_id)
        return self.issue(UserRole.APPLICANT, application_id, {"application_id": str(application_id)})

    def issue_staff_token(
        self, user_id: UUID, session_id: str, username: str, email: str, role: UserRole
    ) -> str:
        if role == UserRole.APPLICANT:
            raise ValueError("Staff tokens cannot carry the applicant role")
        logger.debug("Issuing %s token for user %s", role.value, username)
        return self.issue(
            role,
            user_id,
            {"session_id": session_id, "username": username, "email": email, "roles": [role.value]},
        )

    def issue_refresh_token(self) -> RefreshTokenPair:
        raw = secrets.token_bytes(REFRESH_TOKEN_BYTES)
        token = base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")
        return RefreshTokenPair(token=token, token_hash=self.hash_refresh_token(token))

    @staticmethod
    def hash_refresh_token(token: str) -> str:
        digest = hashlib.sha256(token.encode("utf-8")).digest()
        return base64.b64encode(digest).decode("ascii")

    # -- validation --------------------------------------------------------

    def validate(self, token: str | None) -> Optional[dict[str, Any]]:
        if not token:
            return None
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "exp", "type"]},
            )
        except jwt.InvalidSignatureError as e:
            logger.error("Token signature verification failed: %s", e)
            return None
        except jwt.InvalidTokenError as e:
            logger.error("Malformed token: %s", e)
            return None

        # Expiry is checked against the injected clock rather than wall time.
        if self.is_expired(claims):
            logger.warning("Token expired for subject %s", claims.get("sub"))
            return None
        return claims

    def is_expired(self, claims: dict[str, Any]) -> bool:
        return self.remaining_validity_ms(claims) <= 0

    def remaining_validity_ms(self, claims: dict[str, Any]) -> int:
        try:
            expires_ms = int(claims["exp"]) * 1000
        except (KeyError, TypeError, ValueError):
            return 0
        return max(0, expires_ms - self._clock.now_millis())

    # -- claim extraction (fail closed) -----------------------------------

    @staticmethod
    def extract_role(claims: dict[str, Any]) -> Optional[UserRole]:
        try:
            return UserRole(claims.get("role"))
        except (TypeError, ValueError):
            return None

    @staticmethod
    def extract_roles(claims: dict[str, Any]) -> list[str]:
        roles = claims.get("roles")
        if not isinstance(roles, list):
            return []
        return [r for r in roles if isinstance(r, str)]

    @staticmethod
    def extract_application_id(claims: dict[str, Any]) -> Optional[UUID]:
        if claims.get("type") != APPLICANT_TOKEN_TYPE:
            return None
        return _parse_uuid(claims.get("application_id"))

    @staticmethod
    def extract_user_id(claims: dict[str, Any]) -> Optional[UUID]:
        if claims.get("type") != EMPLOYEE_TOKEN_TYPE:
            return None
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject.startswith("user-"):
            return None
        return _parse_uuid(subject[len("user-"):])

    @staticmethod
    def extract_session_id(claims: dict[str, Any]) -> Optional[str]:
        value = claims.get("session_id")
        return value if isinstance(value, str) and value else None

    @staticmethod
    def extract_username(claims: dict[str, Any]) -> Optional[str]:
        value = claims.get("username")
        return value if isinstance(value, str) and value else None


def _parse_uuid(value: Any) -> Optional[UUID]:
    if not isinstance(value, str):
        return None
    try:
        return UUID(value)
    except ValueError:
        return None
