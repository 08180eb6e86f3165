"""SQLite storage adapter.

Implements the core PaymentStorePort and KeyValuePort using a simple SQLite
database.
"""

from __future__ import annotations

from decimal import Decimal
import sqlite3
from typing import List, Optional

from core.models import Payment, PaymentCategory, PaymentOrigin


class SQLiteStorage:
    """Thin SQLite wrapper that satisfies the payment store and settings contracts."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Create tables if they do not exist.

        Tables:
        - settings: string key-value pairs (parsing flag, ledger, window)
        - payments: append-only expense records
        """

        with self._connect() as conn:
            # settings mirrors a device key-value store: every value is a
            # string, structured values are JSON-encoded by the caller.
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )
            # payments keeps amounts as TEXT so Decimal values round-trip
            # without float drift.
            # Fields:
            # - id: payment id (PRIMARY KEY)
            # - amount: decimal string with two places
            # - description: short human-readable label
            # - category: one of the fixed spending categories
            # - date: ISO-8601 UTC timestamp of the transaction
            # - origin: "manual" or "sms"
            # - is_from_sms: 1 when created by the SMS pipeline
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS payments (
                    id TEXT PRIMARY KEY,
                    amount TEXT NOT NULL,
                    description TEXT NOT NULL,
                    category TEXT NOT NULL,
                    date TEXT NOT NULL,
                    origin TEXT NOT NULL,
                    is_from_sms INTEGER NOT NULL
                )
                """
            )

    def get(self, key: str) -> Optional[str]:
        """Return the stored value for a key, if any."""

        with self._connect() as conn:
            row = conn.execute("SELECT value FROM settings WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set(self, key: str, value: str) -> None:
        """Upsert a string value."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value)
                VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def remove(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    def create(self, payment: Payment) -> Payment:
        """Append a payment to the payments table."""

        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO payments (
                    id,
                    amount,
                    description,
                    category,
                    date,
                    origin,
                    is_from_sms
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    payment.id,
                    str(payment.amount),
                    payment.description,
                    payment.category.value,
                    payment.date,
                    payment.origin.value,
                    int(payment.is_from_sms),
                ),
            )
        return payment

    def list_payments(self, limit: Optional[int] = None) -> List[Payment]:
        """Return stored payments, newest first."""

        query = "SELECT * FROM payments ORDER BY date DESC, id DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        with self._connect() as conn:
            rows = conn.execute(query, params).fetchall()
        return [_row_to_payment(row) for row in rows]

    def count_payments(self) -> int:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) AS total FROM payments").fetchone()
        return int(row["total"])


def _row_to_payment(row: sqlite3.Row) -> Payment:
    return Payment(
        id=row["id"],
        amount=Decimal(row["amount"]),
        description=row["description"],
        category=PaymentCategory(row["category"]),
        date=row["date"],
        origin=PaymentOrigin(row["origin"]),
        is_from_sms=bool(row["is_from_sms"]),
    )
