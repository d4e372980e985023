"""
Masking helpers for log output.
Personal data (contacts, national ids, IPs, rate-limit keys, account numbers) never reaches logs unmasked.
"""
from __future__ import annotations


def mask_contact(contact: str | None) -> str:
    """Email -> 'jo***@example.com'; phone -> '+31****78'."""
    if not contact or len(contact) < 4:
        return "****"
    if "@" in contact:
        local, _, domain = contact.partition("@")
        return f"{local[:2]}***@{domain}"
    return f"{contact[:3]}****{contact[-2:]}"


def mask_key(key: str | None) -> str:
    if not key or len(key) <= 4:
        return "****"
    return f"{key[:2]}****{key[-2:]}"


def mask_ip(ip: str | None) -> str:
    if not ip:
        return "unknown"
    parts = ip.split(".")
    if len(parts) == 4:
        return f"{parts[0]}.{parts[1]}.***.***"
    return ip[:4] + "****"


def mask_national_id(value: str | None) -> str:
    if not value or len(value) < 4:
        return "*****"
    return "*****" + value[-4:]


def mask_account_number(account_number: str | None) -> str:
    """Keep country, check digits and bank code (first 8 chars)."""
    if not account_number or len(account_number) < 8:
        return "****"
    return account_number[:8] + "*" * 10
