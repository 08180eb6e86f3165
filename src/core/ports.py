"""Ports (interfaces) used by the core pipeline.

Ports define the minimal contracts for inbox, permission, storage, and
settings adapters so that the core can be reused with different backends.
"""

from __future__ import annotations

from typing import List, Optional, Protocol

from core.models import IncomingMessage, Payment


class InboxPort(Protocol):
    """Read access to the device SMS inbox."""

    async def list_messages(self, max_count: int) -> List[IncomingMessage]:
        """Return up to ``max_count`` most recent inbox messages.

        Raises ``InboxReadError`` when the inbox cannot be read.
        """
        ...


class PermissionPort(Protocol):
    """Gate for the read-inbox permission."""

    async def request_read_access(self) -> bool:
        ...


class PaymentStorePort(Protocol):
    """Append-only payment store used by the pipeline."""

    def create(self, payment: Payment) -> Payment:
        ...


class KeyValuePort(Protocol):
    """String key-value persistence for flags and pipeline state."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...
