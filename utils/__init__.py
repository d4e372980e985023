"""Shared utilities for the backend."""
from utils.clock import Clock, FixedClock, add_years
from utils.masking import mask_account_number, mask_contact, mask_ip, mask_key, mask_national_id

__all__ = [
    "Clock",
    "FixedClock",
    "add_years",
    "mask_account_number",
    "mask_contact",
    "mask_ip",
    "mask_key",
    "mask_national_id",
]
