"""
Staff authentication: password login, refresh-token rotation, server-side sessions and logout.

Every staff access token names a session id. The session row decides whether the token is
still usable: it ends on logout, on an idle or absolute timeout, when the client IP or
user agent changes, and when a newer login pushes it past the concurrent-session limit.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional
from uuid import UUID

from domain.customer import RefreshToken, StaffSession, StaffUser
from domain.enums import UserRole
from domain.errors import AuthenticationError, BusinessRuleViolationError, ResourceNotFoundError, SessionExpiredError
from repositories.ports import RefreshTokenRepository, StaffSessionRepository, StaffUserRepository
from services.hashing import PasswordHasher
from services.tokens import TokenService
from utils.clock import Clock

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid username or password"


@dataclass(frozen=True)
class AuthResult:
    access_token: str
    refresh_token: str
    user: StaffUser
    expires_in_seconds: int
    refresh_expires_in_seconds: int
    session_id: str


class AuthService:
    def __init__(
        self,
        users: StaffUserRepository,
        refresh_tokens: RefreshTokenRepository,
        sessions: StaffSessionRepository,
        tokens: TokenService,
        hasher: PasswordHasher,
        clock: Clock | None = None,
        idle_timeout_ms: int = 900_000,
        officer_absolute_ms: int = 28_800_000,
        admin_absolute_ms: int = 14_400_000,
        max_concurrent_sessions: int = 1,
    ):
        self._users = users
        self._refresh_tokens = refresh_tokens
        self._sessions = sessions
        self._tokens = tokens
        self._hasher = hasher
        self._clock = clock or Clock()
        self.idle_timeout_ms = idle_timeout_ms
        self.officer_absolute_ms = officer_absolute_ms
        self.admin_absolute_ms = admin_absolute_ms
        self.max_concurrent_sessions = max_concurrent_sessions

    async def create_user(self, username: str, email: str, password: str, role: UserRole) -> StaffUser:
        if role == UserRole.APPLICANT:
            raise BusinessRuleViolationError("Applicants cannot be created as staff users")
        if await self._users.get_by_username(username) is not None:
            raise BusinessRuleViolationError(f"Username {username} is already taken")
        user = StaffUser(
            id=uuid.uuid4(),
            username=username,
            email=email,
            password_hash=self._hasher.encode(password),
            role=role,
        )
        await self._users.add(user)
        logger.info("Created %s user %s", role.value, username)
        return user

    async def _open_session(
        self, user: StaffUser, ip_address: Optional[str], user_agent: Optional[str]
    ) -> StaffSession:
        active = await self._sessions.list_active_for_user(user.id)
        if len(active) >= self.max_concurrent_sessions:
            logger.warning("Max concurrent sessions reached for %s; terminating %d", user.username, len(active))
            await self.terminate_all_sessions(user.id, "New login - max concurrent sessions exceeded")

        now = self._clock.now()
        absolute_ms = self.admin_absolute_ms if user.role == UserRole.ADMIN else self.officer_absolute_ms
        session = StaffSession(
            id=f"sess_{uuid.uuid4()}",
            user_id=user.id,
            role=user.role,
            ip_address=ip_address,
            user_agent=user_agent,
            created_at=now,
            last_activity_at=now,
            expires_at=now + timedelta(milliseconds=absolute_ms),
        )
        await self._sessions.add(session)
        logger.info("Session %s created for %s (absolute timeout %d ms)", session.id, user.username, absolute_ms)
        return session

    async def _issue(
        self, user: StaffUser, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> AuthResult:
        session = await self._open_session(user, ip_address, user_agent)
        access_token = self._tokens.issue_staff_token(user.id, session.id, user.username, user.email, user.role)
        pair = self._tokens.issue_refresh_token()
        now = self._clock.now()
        await self._refresh_tokens.add(
            RefreshToken(
                id=uuid.uuid4(),
                user_id=user.id,
                token_hash=pair.token_hash,
                expires_at=now + timedelta(milliseconds=self._tokens.refresh_expiry_ms),
                created_at=now,
            )
        )
        return AuthResult(
            access_token=access_token,
            refresh_token=pair.token,
            user=user,
            expires_in_seconds=self._tokens.expiry_ms(user.role) // 1000,
            refresh_expires_in_seconds=self._tokens.refresh_expiry_ms // 1000,
            session_id=session.id,
        )

    async def authenticate(
        self, username: str, password: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> AuthResult:
        logger.info("Authentication attempt for user %s", username)
        user = await self._users.get_by_username(username)
        if user is None:
            logger.warning("Authentication failed: unknown user %s", username)
            raise AuthenticationError(INVALID_CREDENTIALS)
        if not user.active:
            logger.warning("Authentication failed: user %s is inactive", username)
            raise AuthenticationError("User account is inactive")
        if not self._hasher.matches(password, user.password_hash):
            logger.warning("Authentication failed: invalid password for %s", username)
            raise AuthenticationError(INVALID_CREDENTIALS)

        user.last_login_at = self._clock.now()
        await self._users.update(user)
        result = await self._issue(user, ip_address, user_agent)
        logger.info("Authentication successful for user %s", username)
        return result

    async def refresh(
        self, refresh_token: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> AuthResult:
        """Exchange a refresh token for a new pair; the presented token is revoked."""
        if not refresh_token:
            raise AuthenticationError("Invalid refresh token")
        stored = await self._refresh_tokens.get_by_hash(self._tokens.hash_refresh_token(refresh_token))
        if stored is None:
            logger.warning("Refresh failed: token not found")
            raise AuthenticationError("Invalid refresh token")
        if not stored.is_usable(self._clock.now()):
            logger.warning("Refresh failed: token revoked or expired for user %s", stored.user_id)
            raise AuthenticationError("Refresh token is expired or revoked")

        user = await self._users.get(stored.user_id)
        if user is None or not user.active:
            raise AuthenticationError("User account is inactive")

        await self._refresh_tokens.revoke(stored.id)
        result = await self._issue(user, ip_address, user_agent)
        logger.info("Refreshed session for user %s", user.username)
        return result

    async def logout(self, user_id: UUID, session_id: Optional[str] = None) -> int:
        """End the current session and revoke every refresh token of the user."""
        if session_id:
            await self._terminate(session_id, "User logout")
        revoked = await self._refresh_tokens.revoke_all_for_user(user_id)
        logger.info("Logged out user %s (%d refresh tokens revoked)", user_id, revoked)
        return revoked

    # -- sessions ------------------------------------------------------------

    async def validate_session(
        self, session_id: Optional[str], ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> StaffSession:
        """Check the session behind a staff token and record activity on it.

        IP and user agent are compared only when both the stored and the presented value are known.
        """
        if not session_id:
            raise SessionExpiredError("No active session")
        session = await self._sessions.get(session_id)
        if session is None:
            logger.warning("Session not found: %s", session_id)
            raise SessionExpiredError("No active session")
        if not session.active:
            logger.warning("Session %s is no longer active (%s)", session_id, session.termination_reason)
            raise SessionExpiredError("Session has been terminated")

        now = self._clock.now()
        reason = None
        if session.is_expired(now):
            reason = "Session expired"
        elif session.is_idle(now, self.idle_timeout_ms):
            reason = "Idle timeout"
        elif session.ip_address and ip_address and session.ip_address != ip_address:
            logger.error("IP address change detected for session %s", session_id)
            reason = "IP address change detected"
        elif session.user_agent and user_agent and session.user_agent != user_agent:
            logger.error("User-Agent change detected for session %s", session_id)
            reason = "User-Agent change detected"
        if reason is not None:
            session.terminate(now, reason)
            await self._sessions.update(session)
            logger.warning("Session %s terminated: %s", session_id, reason)
            raise SessionExpiredError(reason)

        session.touch(now)
        await self._sessions.update(session)
        return session

    async def _terminate(self, session_id: str, reason: str) -> bool:
        session = await self._sessions.get(session_id)
        if session is None or not session.active:
            return False
        session.terminate(self._clock.now(), reason)
        await self._sessions.update(session)
        logger.info("Session %s terminated: %s", session_id, reason)
        return True

    async def terminate_all_sessions(self, user_id: UUID, reason: str = "Admin termination") -> int:
        terminated = 0
        for session in await self._sessions.list_active_for_user(user_id):
            if await self._terminate(session.id, reason):
                terminated += 1
        logger.info("Terminated %d sessions for user %s", terminated, user_id)
        return terminated

    async def session_count(self, user_id: UUID) -> int:
        """Sessions of the user that are neither terminated nor past their absolute or idle timeout."""
        now = self._clock.now()
        return sum(
            1
            for s in await self._sessions.list_active_for_user(user_id)
            if not s.is_expired(now) and not s.is_idle(now, self.idle_timeout_ms)
        )

    async def current_user(self, user_id: UUID) -> StaffUser:
        user = await self._users.get(user_id)
        if user is None:
            raise ResourceNotFoundError("User", user_id)
        return user

    async def current_session(self, session_id: str) -> StaffSession:
        session = await self._sessions.get(session_id)
        if session is None:
            raise SessionExpiredError("No active session")
        return session
