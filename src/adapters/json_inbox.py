"""File-backed inbox adapter.

Reads an exported SMS dump (a JSON array of ``{address, body, date}``
objects, newest first) so the pipeline can run away from the phone or
against fixture data.
"""

from __future__ import annotations

import json
import os
from typing import List

from core.errors import InboxReadError
from core.models import IncomingMessage


class JsonFileInboxReader:
    """InboxPort implementation that re-reads a JSON export on every call."""

    def __init__(self, path: str) -> None:
        self._path = path

    def _load(self) -> list:
        if not os.path.exists(self._path):
            raise InboxReadError(f"Inbox export not found: {self._path}")
        try:
            with open(self._path, "r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except (OSError, json.JSONDecodeError) as exc:
            raise InboxReadError(f"Unable to read inbox export {self._path}: {exc}") from exc
        if not isinstance(payload, list):
            raise InboxReadError(f"Inbox export must be a JSON array: {self._path}")
        return payload

    async def list_messages(self, max_count: int) -> List[IncomingMessage]:
        messages: List[IncomingMessage] = []
        for entry in self._load():
            if len(messages) >= max_count:
                break
            try:
                messages.append(
                    IncomingMessage(
                        address=str(entry.get("address") or ""),
                        body=str(entry.get("body") or ""),
                        date=int(entry["date"]),
                    )
                )
            except (AttributeError, KeyError, TypeError, ValueError) as exc:
                raise InboxReadError(f"Malformed SMS entry in {self._path}: {entry!r}") from exc
        return messages


class StaticPermissionGate:
    """PermissionPort with a fixed answer, for file-backed inboxes."""

    def __init__(self, granted: bool = True) -> None:
        self._granted = granted

    async def request_read_access(self) -> bool:
        return self._granted
