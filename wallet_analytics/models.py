"""Wallet transaction records shared by every analytics module."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Iterable

import numpy as np
import pandas as pd

from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("models")


def as_utc(ts: datetime) -> datetime:
    """Return *ts* as an aware UTC datetime; naive values are taken as UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


_TRUE_STRINGS = {"true", "1"}
_FALSE_STRINGS = {"false", "0"}


def _parse_flag(value: Any) -> bool:
    """Strict boolean parsing; wallet exports may carry "true"/"false" strings."""
    if isinstance(value, (bool, np.bool_)):
        return bool(value)
    if isinstance(value, (int, np.integer)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"not a boolean flag: {value!r}")


@dataclass(frozen=True)
class Transaction:
    """One wallet transaction as delivered by the data-acquisition layer."""

    date: datetime
    type_id: int
    type_name: str
    is_buy: bool
    unit_price: float
    quantity: int
    location_id: int = 0
    location_name: str = ""
    transaction_id: int = 0

    @property
    def amount(self) -> float:
        return self.unit_price * self.quantity

    @property
    def timestamp(self) -> datetime:
        return as_utc(self.date)

    @property
    def day(self) -> date:
        """UTC calendar day the transaction settled on."""
        return self.timestamp.date()

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Transaction:
        """Build a transaction from a wallet-API row.

        ``date`` may be an RFC3339 string or a datetime.  ``is_buy`` must be a
        boolean, 0/1 or "true"/"false".  Raises ``ValueError`` when the date or
        the flag cannot be parsed and ``KeyError`` on missing fields.
        """
        ts = pd.Timestamp(raw["date"])
        if pd.isna(ts):
            raise ValueError(f"unparseable transaction date: {raw['date']!r}")
        if ts.tzinfo is None:
            ts = ts.tz_localize("UTC")
        return cls(
            date=ts.tz_convert("UTC").to_pydatetime(),
            type_id=int(raw["type_id"]),
            type_name=str(raw.get("type_name", "")),
            is_buy=_parse_flag(raw["is_buy"]),
            unit_price=float(raw["unit_price"]),
            quantity=int(raw["quantity"]),
            location_id=int(raw.get("location_id", 0)),
            location_name=str(raw.get("location_name", "")),
            transaction_id=int(raw.get("transaction_id", 0)),
        )


def parse_transactions(rows: Iterable[dict[str, Any]]) -> list[Transaction]:
    """Parse wallet-API rows, skipping those whose date or buy flag does not parse."""
    parsed: list[Transaction] = []
    skipped = 0
    for row in rows:
        try:
            parsed.append(Transaction.from_dict(row))
        except ValueError as exc:
            skipped += 1
            logger.warning("Skipping transaction %s: %s", row.get("transaction_id", "?"), exc)
    if skipped:
        logger.info("Parsed %d transactions, skipped %d", len(parsed), skipped)
    return parsed
