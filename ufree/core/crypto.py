"""Privacy-safe phone number hashing for contact matching.

Phone numbers are never uploaded. Both sides hash the digits only, so
"(555) 123-4567" and "555-123-4567" match.
"""

from __future__ import annotations

import hashlib


def normalize_phone_number(phone_number: str) -> str:
    """Keep decimal digits only."""
    return "".join(ch for ch in phone_number if ch.isdecimal())


def hash_phone_number(phone_number: str) -> str | None:
    """SHA-256 hex digest of the number's digits, or None if it has none."""
    digits = normalize_phone_number(phone_number or "")
    if not digits:
        return None
    return hashlib.sha256(digits.encode("utf-8")).hexdigest()
