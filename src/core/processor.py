"""Core SMS processing pipeline.

This module is inbox-agnostic. It only relies on ports for storage, enabling
other inbox sources or payment stores without changes here.

Per-message order:
1) Compute the message identity
2) Monitoring window cutoff
3) Ledger dedup
4) Trusted sender filter
5) Payment keyword check and amount extraction
6) Build category/description/Payment
7) Persist the Payment
8) Mark the identity as processed
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import logging
import time
from typing import Callable, Dict, Iterable, Optional
from uuid import uuid4

from core.classifier import classify
from core.dedup import compute_message_id, to_base36
from core.extraction import describe, extract_amount, is_payment_sms
from core.ledger import ProcessedMessageLedger
from core.models import IncomingMessage, Payment, PaymentOrigin
from core.ports import PaymentStorePort
from core.senders import TRUSTED_SENDER_FRAGMENTS, is_trusted_sender
from core.window import MonitoringWindow

LOGGER = logging.getLogger(__name__)


class SmsOutcome(str, Enum):
    CREATED = "created"
    BEFORE_WINDOW = "before_window"
    ALREADY_PROCESSED = "already_processed"
    UNTRUSTED_SENDER = "untrusted_sender"
    NO_AMOUNT = "no_amount"
    WRITE_FAILED = "write_failed"


@dataclass
class TickSummary:
    """Outcome counts for one pass over an inbox batch."""

    checked: int = 0
    counts: Dict[SmsOutcome, int] = field(default_factory=lambda: {outcome: 0 for outcome in SmsOutcome})

    def record(self, outcome: SmsOutcome) -> None:
        self.checked += 1
        self.counts[outcome] += 1

    @property
    def created(self) -> int:
        return self.counts[SmsOutcome.CREATED]

    def describe(self) -> str:
        parts = [f"checked={self.checked}"]
        parts.extend(f"{outcome.value}={count}" for outcome, count in self.counts.items())
        return ", ".join(parts)


def generate_payment_id() -> str:
    """Fresh unique id for an SMS-derived payment."""

    return f"sms_{int(time.time() * 1000)}_{to_base36(uuid4().int)[:9]}"


def iso_from_epoch_ms(date_ms: int) -> str:
    """Convert epoch milliseconds to an ISO-8601 UTC timestamp."""

    moment = datetime.fromtimestamp(date_ms / 1000, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_sms_for_payment(
    message: IncomingMessage,
    trusted_fragments: Iterable[str] = TRUSTED_SENDER_FRAGMENTS,
    id_factory: Callable[[], str] = generate_payment_id,
) -> Optional[Payment]:
    """Turn one SMS into a candidate Payment, or None when it is not one."""

    if not is_trusted_sender(message.address, trusted_fragments):
        return None

    if not is_payment_sms(message.body):
        return None

    amount = extract_amount(message.body)
    if amount is None:
        return None

    return Payment(
        id=id_factory(),
        amount=amount,
        description=describe(message.body, message.address, amount),
        category=classify(message.body, message.address),
        date=iso_from_epoch_ms(message.date),
        origin=PaymentOrigin.SMS,
        is_from_sms=True,
    )


class MessageProcessor:
    """Orchestrates window, dedup, extraction, and persistence for one SMS."""

    def __init__(
        self,
        store: PaymentStorePort,
        ledger: ProcessedMessageLedger,
        window: MonitoringWindow,
        trusted_fragments: Iterable[str] = TRUSTED_SENDER_FRAGMENTS,
        id_factory: Callable[[], str] = generate_payment_id,
    ) -> None:
        self._store = store
        self._ledger = ledger
        self._window = window
        self._trusted_fragments = tuple(trusted_fragments)
        self._id_factory = id_factory

    def handle(self, message: IncomingMessage) -> SmsOutcome:
        """Process one inbox message through the pipeline."""

        message_id = compute_message_id(message.address, message.date, message.body)

        # Window before dedup: a cleared ledger must not re-open the backlog.
        if self._window.is_before_cutoff(message.date):
            return SmsOutcome.BEFORE_WINDOW

        if self._ledger.is_processed(message_id):
            LOGGER.debug("SMS already processed, skipping %s", message_id)
            return SmsOutcome.ALREADY_PROCESSED

        # Rejected messages stay out of the ledger and are re-filtered every tick.
        if not is_trusted_sender(message.address, self._trusted_fragments):
            return SmsOutcome.UNTRUSTED_SENDER

        payment = parse_sms_for_payment(message, self._trusted_fragments, self._id_factory)
        if payment is None:
            LOGGER.debug("No payment found in SMS from %s", message.address)
            return SmsOutcome.NO_AMOUNT

        try:
            self._store.create(payment)
        except Exception:
            # Leave the id unmarked so the next tick retries the write.
            LOGGER.exception("Failed to save payment from SMS %s", message_id)
            return SmsOutcome.WRITE_FAILED

        self._ledger.mark_processed(message_id)
        LOGGER.info("Added payment from SMS: %s (%s)", payment.description, payment.category.value)
        return SmsOutcome.CREATED
