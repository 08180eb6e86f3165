"""Shared payment formatting helpers for the CLI.

Keeping formatting here prevents drift between commands and keeps output
consistent regardless of which command printed it.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Mapping

from rich.table import Table
from rich.text import Text

from core.extraction import CURRENCY_SYMBOL
from core.models import Payment


def format_amount(payment: Payment) -> str:
    return f"{CURRENCY_SYMBOL}{payment.amount:,.2f}"


def format_payment_date(iso_date: str) -> str:
    """Render an ISO timestamp in local time, falling back to the raw value."""

    try:
        moment = datetime.fromisoformat(iso_date.replace("Z", "+00:00"))
    except ValueError:
        return iso_date
    return moment.astimezone().strftime("%d-%m-%Y %H:%M")


def build_payments_table(payments: Iterable[Payment]) -> Table:
    table = Table(title="Payments")
    table.add_column("Date")
    table.add_column("Category")
    table.add_column("Amount", justify="right")
    table.add_column("Description")
    table.add_column("Origin")

    # SMS text can contain square brackets, so cells are plain Text rather
    # than console markup.
    for payment in payments:
        table.add_row(
            Text(format_payment_date(payment.date)),
            Text(payment.category.value),
            Text(format_amount(payment)),
            Text(payment.description),
            Text(payment.origin.value),
        )
    return table


def _flatten(prefix: str, value: Any) -> Iterable[tuple[str, str]]:
    if isinstance(value, Mapping):
        for key, nested in value.items():
            yield from _flatten(f"{prefix}.{key}" if prefix else str(key), nested)
    elif isinstance(value, (list, tuple)):
        yield prefix, ", ".join(str(item) for item in value) or "-"
    else:
        yield prefix, "-" if value is None else str(value)


def build_key_value_table(title: str, data: Mapping[str, Any]) -> Table:
    """Render nested diagnostic data (debug dump, parse report) as two columns."""

    table = Table(title=title, show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    for key, value in _flatten("", data):
        table.add_row(Text(key), Text(value))
    return table
