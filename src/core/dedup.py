"""Message identity helpers used for deduplication (core domain)."""

from __future__ import annotations

from typing import Iterator

HASH_MODULUS = 1_000_000_007
_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def to_base36(value: int) -> str:
    """Format a non-negative integer in lowercase base 36."""

    if value < 0:
        raise ValueError("base36 formatting expects a non-negative value")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def _utf16_code_units(text: str) -> Iterator[int]:
    # Hash over UTF-16 code units so ids match ledgers written by the mobile app.
    for char in text:
        code = ord(char)
        if code > 0xFFFF:
            code -= 0x10000
            yield 0xD800 + (code >> 10)
            yield 0xDC00 + (code & 0x3FF)
        else:
            yield code


def rolling_hash(text: str) -> int:
    """Polynomial rolling hash, stable across processes and platforms."""

    value = 0
    for unit in _utf16_code_units(text):
        value = (value * 31 + unit) % HASH_MODULUS
    return value


def compute_message_id(address: str, date_ms: int, body: str) -> str:
    """Return the dedup identity for an SMS.

    Same (address, date, body) always yields the same id. This is a cheap
    content hash, not a cryptographic digest.
    """

    content = f"{address}_{date_ms}_{body}"
    return f"sms_{to_base36(abs(rolling_hash(content)))}_{date_ms}"
