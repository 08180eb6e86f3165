"""Bounded, persisted ledger of processed message identities."""

from __future__ import annotations

import json
import logging
from typing import Dict, List

from core.ports import KeyValuePort

LOGGER = logging.getLogger(__name__)

PROCESSED_SMS_STORAGE_KEY = "processed_sms_ids"


class ProcessedMessageLedger:
    """Ordered set of message ids that already produced a payment.

    The in-memory copy is authoritative. Storage failures are logged and the
    ledger keeps working from memory, which only risks re-processing after a
    restart.
    """

    def __init__(
        self,
        store: KeyValuePort,
        max_entries: int = 1000,
        storage_key: str = PROCESSED_SMS_STORAGE_KEY,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self._store = store
        self._max_entries = max_entries
        self._storage_key = storage_key
        # dict preserves insertion order, which drives eviction.
        self._ids: Dict[str, None] = {}

    @property
    def storage_key(self) -> str:
        return self._storage_key

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._ids)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._ids

    def load(self) -> None:
        """Hydrate the in-memory set from storage."""

        try:
            raw = self._store.get(self._storage_key)
            ids = json.loads(raw) if raw else []
            if not isinstance(ids, list):
                raise ValueError(f"Expected a JSON list under {self._storage_key}")
        except Exception:
            LOGGER.exception("Failed to load processed SMS ids, starting empty")
            self._ids = {}
            return

        self._ids = dict.fromkeys(str(message_id) for message_id in ids)
        self._truncate()
        LOGGER.info("Loaded %s processed SMS ids from storage", len(self._ids))

    def is_processed(self, message_id: str) -> bool:
        return message_id in self._ids

    def mark_processed(self, message_id: str) -> None:
        """Record a message id and persist the ledger immediately."""

        self._ids[message_id] = None
        self._truncate()
        self._persist()

    def clear(self) -> None:
        """Forget every processed id, in memory and in storage."""

        self._ids.clear()
        try:
            self._store.remove(self._storage_key)
        except Exception:
            LOGGER.exception("Failed to remove processed SMS ids from storage")
            return
        LOGGER.info("Cleared all processed SMS ids")

    def sample(self, limit: int = 5) -> List[str]:
        """Return the oldest ``limit`` ids, for diagnostics."""

        return list(self._ids)[:limit]

    def _truncate(self) -> None:
        overflow = len(self._ids) - self._max_entries
        if overflow <= 0:
            return
        for message_id in list(self._ids)[:overflow]:
            del self._ids[message_id]

    def _persist(self) -> None:
        try:
            self._store.set(self._storage_key, json.dumps(list(self._ids)))
        except Exception:
            LOGGER.exception("Failed to persist processed SMS ids")
