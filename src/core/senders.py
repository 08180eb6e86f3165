"""Trusted sender heuristics (core domain).

Bank SMS headers look like ``VM-HDFCBK`` or ``AX-PAYTM``: a two-letter
operator/region prefix followed by the institution tag. We normalize the
header and look for a known institution fragment anywhere inside it.
"""

from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

# Substring containment only, so every fragment should be distinctive enough
# not to appear inside unrelated sender tags. Plain words (YES, UNION) are
# listed in their SMS header form instead.
TRUSTED_SENDER_FRAGMENTS: Tuple[str, ...] = (
    # Banks
    "HDFC",
    "ICICI",
    "SBI",
    "AXIS",
    "KOTAK",
    "PNB",
    "BOB",
    "CANARA",
    "UNIONB",
    "IDFC",
    "YESBNK",
    "INDUS",
    "FEDBNK",
    "CITI",
    "HSBC",
    # Card networks
    "VISA",
    "MASTER",
    "RUPAY",
    "AMEX",
    # UPI apps and rails
    "UPI",
    "BHIM",
    "PHONEPE",
    "GPAY",
    "NPCI",
    # Wallets
    "PAYTM",
    "AMAZONPAY",
    "MOBIKWIK",
    "FREECHARGE",
)

_NON_ALNUM = re.compile(r"[^A-Z0-9]")


def normalize_sender(address: Optional[str]) -> str:
    """Upper-case the address and drop everything that is not A-Z/0-9."""

    if not address:
        return ""
    return _NON_ALNUM.sub("", address.upper())


def build_trusted_fragments(extra: Iterable[str] = ()) -> Tuple[str, ...]:
    """Merge configured fragments into the built-in allow-list."""

    merged = list(TRUSTED_SENDER_FRAGMENTS)
    for fragment in extra:
        normalized = normalize_sender(fragment)
        if normalized and normalized not in merged:
            merged.append(normalized)
    return tuple(merged)


def is_trusted_sender(
    address: Optional[str],
    fragments: Iterable[str] = TRUSTED_SENDER_FRAGMENTS,
) -> bool:
    """Return True when the sender belongs to a known financial institution."""

    normalized = normalize_sender(address)
    if not normalized:
        return False
    return any(fragment in normalized for fragment in fragments)
