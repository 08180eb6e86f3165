"""Application entry point for the spendwatch SMS payment watcher."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import re
import time
from logging.handlers import RotatingFileHandler
from typing import Optional

from art import tprint
from rich.console import Console

import settings
from adapters.json_inbox import JsonFileInboxReader, StaticPermissionGate
from adapters.payment_formatting import build_key_value_table, build_payments_table
from adapters.sqlite_storage import SQLiteStorage
from adapters.termux_inbox import TermuxInboxReader, TermuxPermissionGate
from core.classifier import classify
from core.dedup import compute_message_id
from core.extraction import describe, extract_amount, is_payment_sms
from core.senders import is_trusted_sender, normalize_sender
from core.service import IngestionState, SmsIngestionService

NAME = "SPENDWATCH"
FONT = "tarty-1"

console = Console()


def _print_banner() -> None:
    tprint(NAME, FONT, space=1)


class _RedactingFormatter(logging.Formatter):
    """Mask long digit runs (account numbers, OTPs) in log output."""

    def __init__(self, min_digits: int, fmt: str, datefmt: Optional[str] = None) -> None:
        super().__init__(fmt=fmt, datefmt=datefmt)
        self._pattern = re.compile(r"\d{%d,}" % min_digits) if min_digits > 0 else None

    @staticmethod
    def _mask(match: re.Match) -> str:
        digits = match.group(0)
        return "*" * (len(digits) - 4) + digits[-4:]

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if self._pattern is None:
            return message
        return self._pattern.sub(self._mask, message)


def _configure_logging() -> None:
    config = settings.LOGGING or {}
    if not config.get("enabled", False):
        return

    level_name = str(config.get("level", "INFO")).upper()
    level = getattr(logging, level_name, logging.INFO)

    fmt = "%(asctime)s %(levelname)s %(name)s: %(message)s"
    datefmt = "%Y-%m-%d %H:%M:%S"
    redact_cfg = config.get("redact", {})
    min_digits = int(redact_cfg.get("min_digits", 6)) if redact_cfg.get("enabled", False) else 0
    formatter = _RedactingFormatter(min_digits, fmt=fmt, datefmt=datefmt)

    handlers: list[logging.Handler] = []

    if config.get("console", True):
        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        handlers.append(console_handler)

    file_cfg = config.get("file", {})
    if file_cfg.get("enabled", False):
        path = file_cfg.get("path", "logs/spendwatch.log")
        if not os.path.isabs(path):
            path = os.path.join(settings.PROJECT_ROOT, path)
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        max_bytes = int(file_cfg.get("max_bytes", 5 * 1024 * 1024))
        backup_count = int(file_cfg.get("backup_count", 5))
        file_handler = RotatingFileHandler(
            path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        handlers.append(file_handler)

    if not handlers:
        return

    logging.basicConfig(level=level, handlers=handlers)


def _build_storage() -> SQLiteStorage:
    storage = SQLiteStorage(settings.DB_PATH)
    storage.init_db()
    return storage


def _build_service(storage: SQLiteStorage, poll_in_background: bool) -> SmsIngestionService:
    # Select the inbox adapter based on configuration to keep the core
    # pipeline independent from where messages come from.
    if settings.INBOX_BACKEND == "termux":
        inbox = TermuxInboxReader(settings.INBOX_COMMAND)
        permissions = TermuxPermissionGate(settings.INBOX_COMMAND)
    elif settings.INBOX_BACKEND == "file":
        inbox = JsonFileInboxReader(settings.INBOX_PATH)
        permissions = StaticPermissionGate(granted=True)
    else:
        raise RuntimeError("inbox.backend must be 'termux' or 'file'")
    logging.getLogger(__name__).info("Selected inbox backend - %s", settings.INBOX_BACKEND)

    return SmsIngestionService(
        inbox=inbox,
        permissions=permissions,
        payments=storage,
        settings_store=storage,
        polling=settings.POLLING,
        ledger_config=settings.LEDGER,
        trusted_fragments=settings.TRUSTED_SENDER_FRAGMENTS,
        poll_in_background=poll_in_background,
    )


async def _watch(service: SmsIngestionService) -> None:
    logger = logging.getLogger(__name__)
    await service.initialize()
    if not service.is_parsing_enabled():
        logger.warning("SMS parsing is disabled. Run 'spendwatch enable' first.")
        return
    if service.state is not IngestionState.POLLING:
        logger.warning("SMS monitoring could not start (permission denied?)")
        return

    logger.info("Watching the SMS inbox every %ss...", settings.POLLING.interval_seconds)
    try:
        # The polling task runs until cancelled; we only keep the loop alive.
        while True:
            await asyncio.sleep(3600)
    finally:
        await service.shutdown()


def _run() -> None:
    _print_banner()
    _configure_logging()
    logger = logging.getLogger(__name__)
    logger.info("Starting spendwatch")

    storage = _build_storage()
    service = _build_service(storage, poll_in_background=True)
    try:
        asyncio.run(_watch(service))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")


async def _one_shot(command: str, service: SmsIngestionService) -> None:
    await service.initialize()

    if command == "enable":
        if await service.set_parsing_enabled(True):
            console.print("SMS parsing enabled.")
        else:
            console.print("[red]Could not enable SMS parsing (permission denied).[/red]")
    elif command == "disable":
        await service.set_parsing_enabled(False)
        console.print("SMS parsing disabled.")
    elif command == "check":
        summary = await service.force_check_recent()
        if summary is None:
            console.print("[red]Inbox could not be read.[/red]")
        else:
            console.print(f"Forced check complete: {summary.describe()}")
    elif command == "clear-ledger":
        service.clear_ledger()
        console.print("Cleared all processed SMS ids.")
    elif command == "clear-window":
        service.clear_window()
        console.print("Monitoring window reset.")
    elif command == "debug":
        console.print(build_key_value_table("SMS processing debug info", service.debug_dump()))


def _service_command(command: str) -> None:
    _configure_logging()
    storage = _build_storage()
    service = _build_service(storage, poll_in_background=False)
    asyncio.run(_one_shot(command, service))


def _status() -> None:
    _configure_logging()
    storage = _build_storage()
    service = _build_service(storage, poll_in_background=False)
    service.ledger.load()
    service.window.load()
    dump = service.debug_dump()
    console.print(
        build_key_value_table(
            "Status",
            {
                "parsing_enabled": dump["parsing_enabled"],
                "monitoring_since": dump["window"]["started_at_iso"],
                "processed_sms": dump["ledger"]["total_processed"],
                "payments_stored": storage.count_payments(),
                "database": settings.DB_PATH,
            },
        )
    )


def _payments(limit: int) -> None:
    storage = _build_storage()
    console.print(build_payments_table(storage.list_payments(limit=limit)))


def _parse(sender: str, body: str, date_ms: Optional[int]) -> None:
    date_ms = date_ms if date_ms is not None else int(time.time() * 1000)
    amount = extract_amount(body)
    report = {
        "sender": sender,
        "normalized_sender": normalize_sender(sender),
        "trusted": is_trusted_sender(sender, settings.TRUSTED_SENDER_FRAGMENTS),
        "payment_keyword": is_payment_sms(body),
        "amount": amount,
        "category": classify(body, sender).value,
        "description": describe(body, sender, amount) if amount is not None else None,
        "message_id": compute_message_id(sender, date_ms, body),
    }
    console.print(build_key_value_table("Parsed SMS", report))


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="spendwatch")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("run", help="Start the SMS watcher")
    subparsers.add_parser("enable", help="Enable SMS parsing (requests inbox permission)")
    subparsers.add_parser("disable", help="Disable SMS parsing and close the monitoring window")
    subparsers.add_parser("status", help="Show parsing state and counters")
    subparsers.add_parser("check", help="Force a check of the most recent SMS")
    subparsers.add_parser("clear-ledger", help="Forget processed SMS ids")
    subparsers.add_parser("clear-window", help="Reset the monitoring window")
    subparsers.add_parser("debug", help="Dump ledger and window state")

    payments_parser = subparsers.add_parser("payments", help="List stored payments")
    payments_parser.add_argument("--limit", type=int, default=20)

    parse_parser = subparsers.add_parser("parse", help="Run the parser over a single SMS")
    parse_parser.add_argument("--sender", required=True)
    parse_parser.add_argument("--body", required=True)
    parse_parser.add_argument("--date", type=int, default=None, help="Epoch milliseconds")

    args = parser.parse_args(argv)
    if args.command in {"enable", "disable", "check", "clear-ledger", "clear-window", "debug"}:
        _service_command(args.command)
        return
    if args.command == "status":
        _status()
        return
    if args.command == "payments":
        _payments(args.limit)
        return
    if args.command == "parse":
        _parse(args.sender, args.body, args.date)
        return
    _run()


if __name__ == "__main__":
    main()
