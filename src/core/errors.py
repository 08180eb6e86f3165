"""Errors raised across the core/adapter boundary."""

from __future__ import annotations


class InboxReadError(RuntimeError):
    """Raised by inbox adapters when the message inbox cannot be read."""
