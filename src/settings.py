"""Static configuration for spendwatch.

All user-editable settings (inbox, polling, ledger, trusted senders, logging)
live in a single JSON file for quick edits without touching Python.
"""

import json
import os

from dotenv import load_dotenv

from core.config import LedgerConfig, PollingConfig
from core.senders import build_trusted_fragments

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))

# Paths can be overridden per device via .env without editing config.json.
load_dotenv(os.path.join(PROJECT_ROOT, ".env"))

CONFIG_PATH = os.environ.get("SPENDWATCH_CONFIG", os.path.join(PROJECT_ROOT, "config.json"))


def _load_json_config() -> dict:
    """Load config.json with a flat, user-friendly schema."""

    if not os.path.exists(CONFIG_PATH):
        raise FileNotFoundError(f"Config file not found: {CONFIG_PATH}")

    with open(CONFIG_PATH, "r", encoding="utf-8") as handle:
        return json.load(handle)


def _resolve_path(path: str) -> str:
    if os.path.isabs(path):
        return path
    return os.path.join(PROJECT_ROOT, path)


_CONFIG = _load_json_config()

# Expose the raw config for modules that need structured access.
CONFIG = _CONFIG

# Where to store the SQLite database (payments + pipeline state).
_storage = _CONFIG.get("storage", {})
DB_PATH = _resolve_path(os.getenv("SPENDWATCH_DB_PATH") or _storage.get("db_path", "spendwatch.db"))

# Inbox backend:
# - "termux": read the phone inbox via termux-sms-list
# - "file": read an exported JSON array of {address, body, date}
_inbox = _CONFIG.get("inbox", {})
INBOX_BACKEND = _inbox.get("backend", "termux")
INBOX_PATH = _resolve_path(os.getenv("SPENDWATCH_INBOX_PATH") or _inbox.get("path", "inbox.json"))
INBOX_COMMAND = _inbox.get("command", "termux-sms-list")

# Polling cadence and batch sizes for the ingestion loop.
_polling = _CONFIG.get("polling", {})
POLLING = PollingConfig(
    interval_seconds=float(_polling.get("interval_seconds", 30)),
    max_count=int(_polling.get("max_count", 20)),
    force_check_count=int(_polling.get("force_check_count", 10)),
)

# Processed ledger bound; older ids are evicted first.
_ledger = _CONFIG.get("ledger", {})
LEDGER = LedgerConfig(max_entries=int(_ledger.get("max_entries", 1000)))

# Extra sender fragments extend the built-in allow-list (banks, UPI, wallets).
_trusted = _CONFIG.get("trusted_senders", {})
TRUSTED_SENDER_FRAGMENTS = build_trusted_fragments(_trusted.get("extra", []))

# Logging configuration (optional).
LOGGING = _CONFIG.get("logging", {})
