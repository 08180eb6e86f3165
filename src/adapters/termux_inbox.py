"""Termux:API inbox adapter.

Reads the Android SMS inbox through the ``termux-sms-list`` command so the
watcher can run on the phone itself. Termux prints a JSON array of messages;
this module keeps that format out of the core pipeline.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
import json
import logging
from typing import Any, List, Optional

from core.errors import InboxReadError
from core.models import IncomingMessage

LOGGER = logging.getLogger(__name__)

DEFAULT_COMMAND = "termux-sms-list"


def _message_date_ms(entry: dict) -> Optional[int]:
    raw_date = entry.get("date")
    if isinstance(raw_date, (int, float)):
        return int(raw_date)

    received = entry.get("received")
    if not received:
        return None
    try:
        # Termux reports device-local wall time without an offset.
        return int(datetime.fromisoformat(str(received)).timestamp() * 1000)
    except ValueError:
        return None


def parse_termux_messages(raw: str) -> List[IncomingMessage]:
    """Map ``termux-sms-list`` JSON output to IncomingMessage objects."""

    try:
        payload: Any = json.loads(raw or "[]")
    except json.JSONDecodeError as exc:
        raise InboxReadError(f"termux-sms-list returned invalid JSON: {exc}") from exc

    if isinstance(payload, dict) and payload.get("error"):
        raise InboxReadError(f"termux-sms-list error: {payload['error']}")
    if not isinstance(payload, list):
        raise InboxReadError("termux-sms-list returned an unexpected payload")

    messages: List[IncomingMessage] = []
    for entry in payload:
        if not isinstance(entry, dict):
            continue
        # Only incoming messages can be bank alerts.
        if entry.get("type", "inbox") != "inbox":
            continue
        date_ms = _message_date_ms(entry)
        if date_ms is None:
            LOGGER.debug("Skipping SMS without a usable date: %s", entry.get("_id"))
            continue
        address = entry.get("number") or entry.get("address") or entry.get("sender") or ""
        messages.append(IncomingMessage(address=str(address), body=str(entry.get("body") or ""), date=date_ms))
    return messages


async def _run_command(*args: str) -> str:
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise InboxReadError(f"Unable to start {args[0]}: {exc}") from exc

    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip()
        raise InboxReadError(f"{args[0]} exited with {process.returncode}: {detail}")
    return stdout.decode("utf-8", errors="replace")


class TermuxInboxReader:
    """InboxPort implementation backed by ``termux-sms-list``."""

    def __init__(self, command: str = DEFAULT_COMMAND) -> None:
        self._command = command

    async def list_messages(self, max_count: int) -> List[IncomingMessage]:
        raw = await _run_command(self._command, "-d", "-n", "-t", "inbox", "-l", str(max_count))
        return parse_termux_messages(raw)


class TermuxPermissionGate:
    """PermissionPort that probes the inbox once.

    Termux:API shows the Android READ_SMS prompt on first use, so a one-message
    read doubles as the permission request.
    """

    def __init__(self, command: str = DEFAULT_COMMAND) -> None:
        self._command = command

    async def request_read_access(self) -> bool:
        try:
            parse_termux_messages(await _run_command(self._command, "-t", "inbox", "-l", "1"))
        except InboxReadError as exc:
            LOGGER.warning("SMS read access unavailable: %s", exc)
            return False
        return True
