"""Core configuration dataclasses.

We keep config parsing outside the core, but these dataclasses define the
shape the core expects so adapters and app layers can build safely.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class PollingConfig:
    """Inbox polling settings for the ingestion loop."""

    interval_seconds: float = 30.0
    max_count: int = 20
    force_check_count: int = 10


@dataclass(frozen=True)
class LedgerConfig:
    """Bounds for the processed message ledger."""

    max_entries: int = 1000
