"""SMS ingestion service: lifecycle, polling loop, and debug triggers.

One ``SmsIngestionService`` owns all mutable pipeline state (the processed
ledger, the monitoring window, and the polling state). Build it once at
startup, call ``initialize()``, and ``shutdown()`` on exit.

State machine:
- STOPPED -> POLLING: parsing enabled and read permission granted
- POLLING -> STOPPED: parsing disabled (the monitoring window is cleared)
- POLLING -> POLLING: one tick every ``interval_seconds``

Ticks never overlap: the polling task awaits each tick before sleeping, and
manual checks share the same lock.
"""

from __future__ import annotations

import asyncio
import contextlib
from enum import Enum
import json
import logging
import time
from typing import Any, Callable, Dict, Iterable, Optional

from core.config import LedgerConfig, PollingConfig
from core.ledger import ProcessedMessageLedger
from core.ports import InboxPort, KeyValuePort, PaymentStorePort, PermissionPort
from core.processor import MessageProcessor, TickSummary, generate_payment_id, iso_from_epoch_ms
from core.senders import TRUSTED_SENDER_FRAGMENTS
from core.window import MonitoringWindow

LOGGER = logging.getLogger(__name__)

PARSING_ENABLED_KEY = "sms_parsing_enabled"


def _now_ms() -> int:
    return int(time.time() * 1000)


class IngestionState(str, Enum):
    STOPPED = "stopped"
    POLLING = "polling"


class SmsIngestionService:
    """Polls the inbox and turns new payment SMS into stored payments."""

    def __init__(
        self,
        inbox: InboxPort,
        permissions: PermissionPort,
        payments: PaymentStorePort,
        settings_store: KeyValuePort,
        polling: PollingConfig = PollingConfig(),
        ledger_config: LedgerConfig = LedgerConfig(),
        trusted_fragments: Iterable[str] = TRUSTED_SENDER_FRAGMENTS,
        clock: Callable[[], int] = _now_ms,
        id_factory: Callable[[], str] = generate_payment_id,
        poll_in_background: bool = True,
    ) -> None:
        self._inbox = inbox
        self._permissions = permissions
        self._settings_store = settings_store
        self._polling = polling
        self._clock = clock
        # One-shot CLI commands flip state without leaving a polling task behind.
        self._poll_in_background = poll_in_background

        self._ledger = ProcessedMessageLedger(settings_store, max_entries=ledger_config.max_entries)
        self._window = MonitoringWindow(settings_store)
        self._processor = MessageProcessor(
            store=payments,
            ledger=self._ledger,
            window=self._window,
            trusted_fragments=trusted_fragments,
            id_factory=id_factory,
        )

        self._state = IngestionState.STOPPED
        self._task: Optional[asyncio.Task] = None
        self._tick_lock = asyncio.Lock()

    @property
    def state(self) -> IngestionState:
        return self._state

    @property
    def ledger(self) -> ProcessedMessageLedger:
        return self._ledger

    @property
    def window(self) -> MonitoringWindow:
        return self._window

    async def initialize(self) -> None:
        """Hydrate persisted state and resume polling if it was enabled."""

        self._ledger.load()
        self._window.load()
        if self.is_parsing_enabled():
            await self.start_monitoring()

    def is_parsing_enabled(self) -> bool:
        try:
            raw = self._settings_store.get(PARSING_ENABLED_KEY)
            return bool(json.loads(raw)) if raw else False
        except Exception:
            LOGGER.exception("Failed to read the SMS parsing flag")
            return False

    async def set_parsing_enabled(self, value: bool) -> bool:
        """Toggle SMS parsing. Returns False when the change did not happen."""

        try:
            if value:
                if not await self._permissions.request_read_access():
                    LOGGER.warning("SMS read permission denied, parsing stays disabled")
                    return False
                self._settings_store.set(PARSING_ENABLED_KEY, json.dumps(True))
                await self.start_monitoring(permission_checked=True)
                return True

            self._settings_store.set(PARSING_ENABLED_KEY, json.dumps(False))
            self.stop_monitoring()
            return True
        except Exception:
            LOGGER.exception("Failed to change SMS parsing to %s", value)
            return False

    async def start_monitoring(self, permission_checked: bool = False) -> bool:
        """Enter POLLING if parsing is enabled and the inbox is readable."""

        if self._state is IngestionState.POLLING:
            return True
        if not self.is_parsing_enabled():
            return False
        if not permission_checked and not await self._permissions.request_read_access():
            LOGGER.warning("SMS read permission not granted, monitoring not started")
            return False

        if len(self._ledger) == 0:
            self._ledger.load()
        self._window.start(self._clock())
        self._state = IngestionState.POLLING
        LOGGER.info("SMS monitoring started (cutoff=%s)", self._window.cutoff())

        # A loop from an earlier session may still be sleeping; it picks up
        # the POLLING state again instead of running a second loop.
        if self._poll_in_background and (self._task is None or self._task.done()):
            self._task = asyncio.create_task(self._poll_forever())
        return True

    def stop_monitoring(self) -> None:
        """Leave POLLING; an in-flight tick still completes."""

        self._state = IngestionState.STOPPED
        self._window.stop()
        LOGGER.info("SMS monitoring stopped")

    async def shutdown(self) -> None:
        """Stop the polling task without touching the persisted flag or window."""

        self._state = IngestionState.STOPPED
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def tick(self, max_count: Optional[int] = None) -> Optional[TickSummary]:
        """Run one pass over the latest inbox messages.

        Returns None when the inbox could not be read.
        """

        async with self._tick_lock:
            count = max_count if max_count is not None else self._polling.max_count
            try:
                messages = await self._inbox.list_messages(count)
            except Exception:
                LOGGER.exception("Failed to read SMS inbox, retrying next cycle")
                return None

            summary = TickSummary()
            for message in messages:
                summary.record(self._processor.handle(message))
            LOGGER.info("SMS check summary: %s", summary.describe())
            return summary

    async def _poll_forever(self) -> None:
        while self._state is IngestionState.POLLING:
            try:
                await self.tick()
            except Exception:
                LOGGER.exception("Unexpected error during SMS check")
            if self._state is not IngestionState.POLLING:
                break
            await asyncio.sleep(self._polling.interval_seconds)
        LOGGER.debug("Polling loop exited")

    async def force_check_recent(self) -> Optional[TickSummary]:
        """Manually check the last few messages, honoring window and ledger."""

        if len(self._ledger) == 0:
            self._ledger.load()
        if not await self._permissions.request_read_access():
            LOGGER.warning("SMS read permission not granted, skipping forced check")
            return None
        return await self.tick(self._polling.force_check_count)

    def clear_ledger(self) -> None:
        self._ledger.clear()

    def clear_window(self) -> None:
        """Reset the monitoring window.

        While polling, the window re-opens at "now" so the inbox backlog stays
        excluded.
        """

        self._window.stop()
        if self._state is IngestionState.POLLING:
            self._window.start(self._clock())

    def debug_dump(self) -> Dict[str, Any]:
        cutoff = self._window.cutoff()
        return {
            "state": self._state.value,
            "parsing_enabled": self.is_parsing_enabled(),
            "ledger": {
                "total_processed": len(self._ledger),
                "max_entries": self._ledger.max_entries,
                "storage_key": self._ledger.storage_key,
                "sample": self._ledger.sample(5),
            },
            "window": {
                "storage_key": self._window.storage_key,
                "started_at": cutoff,
                "started_at_iso": iso_from_epoch_ms(cutoff) if cutoff is not None else None,
            },
        }
