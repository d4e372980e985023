"""
Fixed-window rate limiting per (key, resource).

The window opens on the first hit and lasts `window_ms`. A hit is rejected once
`limit` hits have already been counted in the open window. Counters live in
process memory behind a lock, so increments from concurrent requests are never lost.

Which requests are limited, and by what key, is declared in a policy table
(`default_policies`) consumed by the HTTP middleware in api/rate_limit.py.
"""
from __future__ import annotations

import logging
import re
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from config import settings
from domain.errors import RateLimitExceededError
from utils.clock import Clock
from utils.masking import mask_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RateLimitInfo:
    limit: int
    current: int
    remaining: int
    reset_at: int  # epoch seconds


@dataclass
class _Window:
    started_ms: int
    window_ms: int
    count: int = 0

    def expired(self, now_ms: int) -> bool:
        return now_ms >= self.started_ms + self.window_ms


class RateLimiter:
    """In-process counters. Expired windows are swept at most once per `sweep_interval_ms`."""

    def __init__(self, clock: Clock | None = None, sweep_interval_ms: int = 60_000):
        self._clock = clock or Clock()
        self._windows: dict[tuple[str, str], _Window] = {}
        self._lock = threading.Lock()
        self._sweep_interval_ms = sweep_interval_ms
        self._last_sweep_ms = self._clock.now_millis()

    def _open_window(self, key: str, resource: str, window_ms: int, now_ms: int) -> _Window:
        window = self._windows.get((key, resource))
        if window is None or now_ms >= window.started_ms + window_ms:
            window = _Window(started_ms=now_ms, window_ms=window_ms)
            self._windows[(key, resource)] = window
        return window

    def _sweep(self, now_ms: int) -> None:
        # caller holds the lock
        if now_ms - self._last_sweep_ms < self._sweep_interval_ms:
            return
        self._last_sweep_ms = now_ms
        expired = [k for k, w in self._windows.items() if w.expired(now_ms)]
        for k in expired:
            del self._windows[k]
        if expired:
            logger.debug("Evicted %d expired rate limit windows", len(expired))

    def tracked_windows(self) -> int:
        with self._lock:
            return len(self._windows)

    def check_rate_limit(self, key: str | None, resource: str | None, limit: int, window_ms: int) -> Optional[RateLimitInfo]:
        """Count one hit. Raises RateLimitExceededError when the window is full.

        Fails open (returns None, nothing counted) when key or resource is missing.
        """
        if not key or not resource:
            logger.warning("Rate limit check skipped: missing key or resource (resource=%s)", resource)
            return None

        now_ms = self._clock.now_millis()
        with self._lock:
            self._sweep(now_ms)
            window = self._open_window(key, resource, window_ms, now_ms)
            reset_ms = window.started_ms + window_ms
            if window.count >= limit:
                logger.warning(
                    "Rate limit exceeded for %s on %s: %d/%d", mask_key(key), resource, window.count, limit
                )
                raise RateLimitExceededError(resource, limit, window_ms, max(0, reset_ms - now_ms))
            window.count += 1
            current = window.count

        logger.debug("Rate limit hit for %s on %s: %d/%d", mask_key(key), resource, current, limit)
        return RateLimitInfo(limit=limit, current=current, remaining=max(0, limit - current), reset_at=reset_ms // 1000)

    def get_info(self, key: str, resource: str, limit: int, window_ms: int) -> RateLimitInfo:
        """Current counters without counting a hit."""
        now_ms = self._clock.now_millis()
        with self._lock:
            window = self._windows.get((key, resource))
            if window is None or now_ms >= window.started_ms + window_ms:
                return RateLimitInfo(limit=limit, current=0, remaining=limit, reset_at=(now_ms + window_ms) // 1000)
            current = window.count
            reset_ms = window.started_ms + window_ms
        return RateLimitInfo(limit=limit, current=current, remaining=max(0, limit - current), reset_at=reset_ms // 1000)

    def reset(self, key: str, resource: str) -> None:
        with self._lock:
            self._windows.pop((key, resource), None)
        logger.info("Rate limit reset for %s on %s", mask_key(key), resource)

    def reset_resource(self, resource: str) -> int:
        with self._lock:
            stale = [k for k in self._windows if k[1] == resource]
            for k in stale:
                del self._windows[k]
        logger.info("Rate limits reset for resource %s (%d keys)", resource, len(stale))
        return len(stale)


class KeySource(str, Enum):
    IP = "ip"
    APPLICATION = "application"


@dataclass(frozen=True)
class RateLimitRule:
    resource: str
    limit: int
    window_ms: int
    key_source: KeySource


@dataclass(frozen=True)
class RateLimitPolicy:
    """Matcher (HTTP method + path regex) and the rules applied, in order, to matching requests."""

    method: str
    path: re.Pattern
    rules: tuple[RateLimitRule, ...]

    def match(self, method: str, path: str) -> Optional[dict[str, str]]:
        if method.upper() != self.method:
            return None
        m = self.path.fullmatch(path)
        return m.groupdict() if m else None


_APP = r"(?P<application_id>[^/]+)"


def default_policies(prefix: str = "/api/v1") -> list[RateLimitPolicy]:
    window = settings.rate_limit_window_ms
    apps = re.escape(prefix + "/applications")
    return [
        RateLimitPolicy(
            "POST",
            re.compile(apps + "/?"),
            (RateLimitRule("create_application", settings.rate_limit_create_application, window, KeySource.IP),),
        ),
        RateLimitPolicy(
            "POST",
            re.compile(apps + "/" + _APP + "/otp/send"),
            (RateLimitRule("send_otp", settings.rate_limit_send_otp, window, KeySource.IP),),
        ),
        RateLimitPolicy(
            "POST",
            re.compile(apps + "/" + _APP + "/otp/verify"),
            (
                RateLimitRule("verify_otp_app", settings.rate_limit_verify_otp_app, window, KeySource.APPLICATION),
                RateLimitRule("verify_otp_ip", settings.rate_limit_verify_otp_ip, window, KeySource.IP),
            ),
        ),
        RateLimitPolicy(
            "POST",
            re.compile(apps + "/" + _APP + "/documents"),
            (RateLimitRule("upload_document", settings.rate_limit_upload_document, window, KeySource.APPLICATION),),
        ),
    ]


def find_policy(
    policies: list[RateLimitPolicy], method: str, path: str
) -> Optional[tuple[RateLimitPolicy, dict[str, str]]]:
    """First policy matching the request, with its path parameters."""
    for policy in policies:
        params = policy.match(method, path)
        if params is not None:
            return policy, params
    return None
