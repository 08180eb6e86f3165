"""Monitoring window: only SMS received after monitoring began are imported."""

from __future__ import annotations

import logging
from typing import Optional

from core.ports import KeyValuePort

LOGGER = logging.getLogger(__name__)

MONITORING_WINDOW_STORAGE_KEY = "sms_monitoring_started_at"


class MonitoringWindow:
    """Persisted start timestamp (epoch ms) of the current monitoring session.

    While set, the value never moves; disabling monitoring clears it so the
    next enable starts a fresh window at "now".
    """

    def __init__(self, store: KeyValuePort, storage_key: str = MONITORING_WINDOW_STORAGE_KEY) -> None:
        self._store = store
        self._storage_key = storage_key
        self._started_at: Optional[int] = None

    @property
    def storage_key(self) -> str:
        return self._storage_key

    def load(self) -> None:
        try:
            raw = self._store.get(self._storage_key)
            self._started_at = int(raw) if raw else None
        except Exception:
            LOGGER.exception("Failed to load monitoring window, treating it as unset")
            self._started_at = None

    def start(self, now_ms: int) -> None:
        """Open the window at ``now_ms`` unless it is already open."""

        if self._started_at is not None:
            return
        self._started_at = now_ms
        LOGGER.info("Monitoring window opened at %s", now_ms)
        try:
            self._store.set(self._storage_key, str(now_ms))
        except Exception:
            LOGGER.exception("Failed to persist monitoring window")

    def stop(self) -> None:
        self._started_at = None
        try:
            self._store.remove(self._storage_key)
        except Exception:
            LOGGER.exception("Failed to clear persisted monitoring window")

    def cutoff(self) -> Optional[int]:
        return self._started_at

    def is_before_cutoff(self, date_ms: int) -> bool:
        return self._started_at is not None and date_ms < self._started_at
