import hashlib
import os
import re
import secrets
import time
import uuid
from typing import Optional

from .exceptions import ValidationFailed

_PHONE_SEPARATORS = re.compile(r"[\s\-\.\(\)]")
_DOMESTIC_PHONE = re.compile(r"^0\d{9,10}$")
_E164_PHONE = re.compile(r"^\+\d{8,15}$")
_VN_COUNTRY_CODE = "84"


# =========================
# Identifiers
# =========================
def new_account_id() -> str:
    """Time-ordered UUID (version 7): 48-bit unix millis followed by random bits."""
    unix_ms = time.time_ns() // 1_000_000
    rand = int.from_bytes(os.urandom(10), "big")
    value = (unix_ms & ((1 << 48) - 1)) << 80
    value |= 0x7 << 76
    value |= ((rand >> 62) & 0xFFF) << 64
    value |= 0b10 << 62
    value |= rand & ((1 << 62) - 1)
    return str(uuid.UUID(int=value))


# =========================
# Phone numbers
# =========================
def normalize_phone(phone: Optional[str]) -> str:
    """Canonical phone form used for account lookup, OTP and rate-limit keys.

    Vietnamese numbers collapse to the domestic ``0xxxxxxxxx`` form whether they
    arrive as ``0...``, ``84...`` or ``+84...``; other international numbers stay E.164.
    """
    if phone is None or not str(phone).strip():
        raise ValidationFailed("Phone number is required")
    cleaned = _PHONE_SEPARATORS.sub("", str(phone).strip())
    if cleaned.startswith("+" + _VN_COUNTRY_CODE):
        cleaned = "0" + cleaned[3:]
    elif cleaned.startswith(_VN_COUNTRY_CODE) and len(cleaned) == 11 and cleaned.isdigit():
        cleaned = "0" + cleaned[2:]
    if _DOMESTIC_PHONE.match(cleaned) or _E164_PHONE.match(cleaned):
        return cleaned
    raise ValidationFailed("Invalid phone number format", phone=str(phone))


def to_international(phone: str, with_plus: bool = False) -> str:
    """``0901234567`` -> ``84901234567`` (or ``+84901234567``)."""
    if phone.startswith("+"):
        return phone if with_plus else phone[1:]
    if phone.startswith("0"):
        phone = _VN_COUNTRY_CODE + phone[1:]
    return ("+" + phone) if with_plus else phone


def hash_phone_number(phone: str) -> str:
    """Hash phone number for audit logs (one-way hash)"""
    return hashlib.sha256(phone.encode()).hexdigest()


def mask_phone(phone: str) -> str:
    """Last four digits only, for application logs."""
    return f"***{phone[-4:]}"


# =========================
# OTP Generation
# =========================
def generate_otp(length: int = 6) -> str:
    """Uniformly random numeric code, leading zeros allowed."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def is_numeric_code(value: Optional[str], length: int = 6) -> bool:
    return isinstance(value, str) and len(value) == length and value.isascii() and value.isdigit()
