"""Core domain models.

These dataclasses are shared across the core and adapters to avoid tight
coupling to any inbox or storage-specific types.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class PaymentCategory(str, Enum):
    FOOD = "Food"
    TRAVEL = "Travel"
    CLOTHES = "Clothes"
    ENTERTAINMENT = "Entertainment"
    BILLS = "Bills"
    HEALTHCARE = "Healthcare"
    OTHERS = "Others"


class PaymentOrigin(str, Enum):
    MANUAL = "manual"
    SMS = "sms"


@dataclass(frozen=True)
class IncomingMessage:
    """A single inbox SMS as delivered by the device.

    ``date`` is the receive time in epoch milliseconds.
    """

    address: str
    body: str
    date: int


@dataclass(frozen=True)
class Payment:
    """Persisted representation of a single expense."""

    id: str
    amount: Decimal
    description: str
    category: PaymentCategory
    date: str
    origin: PaymentOrigin
    is_from_sms: bool
