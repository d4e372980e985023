from __future__ import annotations

import logging
from typing import Protocol

from domain.enums import OtpChannel
from utils.masking import mask_contact

logger = logging.getLogger(__name__)


class OtpNotifier(Protocol):
    def send_code(self, channel: OtpChannel, destination: str, code: str) -> None: ...


class LoggingOtpNotifier:
    """Delivery stub: records that a code went out, never the code itself."""

    def send_code(self, channel: OtpChannel, destination: str, code: str) -> None:
        logger.info("OTP dispatched via %s to %s", channel.value, mask_contact(destination))


class RecordingOtpNotifier:
    """Keeps the last code per destination so tests can complete the OTP flow."""

    def __init__(self) -> None:
        self.sent: dict[str, str] = {}

    def send_code(self, channel: OtpChannel, destination: str, code: str) -> None:
        self.sent[destination] = code
