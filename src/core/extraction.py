"""Amount and description extraction from bank SMS text (core domain)."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
import re
from typing import List, Optional

CURRENCY_SYMBOL = "₹"

_NUMBER = r"([0-9][0-9,]*(?:\.[0-9]{1,2})?)"
_CURRENCY = r"(?:(?<![a-z])rs\.?|(?<![a-z])inr|₹)"

# Order matters: explicit currency markers first, loose "paid" phrasing last,
# so reference numbers and balances are not mistaken for the amount.
AMOUNT_PATTERNS: List[re.Pattern] = [
    re.compile(_CURRENCY + r"\s*" + _NUMBER),
    re.compile(_NUMBER + r"\s*" + _CURRENCY),
    re.compile(r"amount\s*:?\s*" + _CURRENCY + r"?\s*" + _NUMBER),
    re.compile(r"(?:debited|withdrawn|paid|spent)\s*" + _CURRENCY + r"?\s*" + _NUMBER),
    re.compile(r"(?<![a-z])inr\s*" + _NUMBER + r"\s*is\s*paid"),
    re.compile(_NUMBER + r"\s*(?:is\s*paid|paid)"),
]

_TWO_PLACES = Decimal("0.01")

# Bodies without one of these (balance or credit alerts) are not payments.
PAYMENT_KEYWORDS = (
    "debited",
    "withdrawn",
    "paid",
    "spent",
    "transaction",
    "upi",
    "payment",
    "purchase",
    "charged",
    "deducted",
    "transfer",
)

_PAYMENT_KEYWORD = re.compile(r"\b(?:" + "|".join(map(re.escape, PAYMENT_KEYWORDS)) + r")")


def is_payment_sms(body: Optional[str]) -> bool:
    """True when the body mentions a payment keyword at the start of a word."""

    if not body:
        return False
    return _PAYMENT_KEYWORD.search(body.lower()) is not None


def _parse_amount(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(raw.replace(",", "")).quantize(_TWO_PLACES)
    except InvalidOperation:
        return None


def extract_amount(body: Optional[str]) -> Optional[Decimal]:
    """Return the transaction amount from the first matching pattern.

    Only the first pattern that matches is considered; a zero amount there
    means no payment rather than a fallback to later patterns.
    """

    if not body:
        return None
    lowered = body.lower()
    for pattern in AMOUNT_PATTERNS:
        match = pattern.search(lowered)
        if not match:
            continue
        amount = _parse_amount(match.group(1))
        if amount is None or amount <= 0:
            return None
        return amount
    return None


_STOP = r"(?:\s+on\b|\s+via\b|\.|$)"

MERCHANT_PATTERNS: List[re.Pattern] = [
    re.compile(r"\bat\s+([^.]+?)" + _STOP, re.IGNORECASE),
    re.compile(r"\bto\s+([^.]+?)" + _STOP, re.IGNORECASE),
    re.compile(r"\bfor\s+([^.]+?)" + _STOP, re.IGNORECASE),
]

_SENDER_JUNK = re.compile(r"[^A-Za-z0-9]")
_WHITESPACE = re.compile(r"\s+")


def extract_merchant(body: str) -> Optional[str]:
    """Return the merchant phrase from the first matching pattern, if any."""

    for pattern in MERCHANT_PATTERNS:
        match = pattern.search(body)
        if match:
            return _WHITESPACE.sub(" ", match.group(1)).strip()
    return None


def clean_sender(sender: Optional[str]) -> str:
    """Strip hyphens and other punctuation from an SMS header."""

    return _SENDER_JUNK.sub("", sender or "")


def describe(body: Optional[str], sender: Optional[str], amount: Decimal) -> str:
    """Build a short human-readable label for a detected payment."""

    merchant = extract_merchant(body or "")
    if merchant and len(merchant) > 3:
        return f"Payment to {merchant}"

    cleaned = clean_sender(sender)
    if cleaned and cleaned.upper() != "SMS" and len(cleaned) > 2:
        return f"Payment via {cleaned}"

    return f"SMS Payment {CURRENCY_SYMBOL}{amount:.2f}"
