"""FIFO lot matching of wallet transactions into realized daily P&L."""

from __future__ import annotations

from collections import defaultdict, deque
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable

from wallet_analytics.models import Transaction, as_utc, utc_now
from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("fifo")


@dataclass
class BuyLot:
    """Open purchase lot; ``remaining`` shrinks as sells are matched."""

    unit_price: float
    remaining: int


class FifoLedger:
    """Per-item queues of open buy lots, consumed oldest first."""

    def __init__(self) -> None:
        self._queues: defaultdict[int, deque[BuyLot]] = defaultdict(deque)

    def buy(self, type_id: int, unit_price: float, quantity: int) -> None:
        self._queues[type_id].append(BuyLot(unit_price=unit_price, remaining=quantity))

    def sell(self, type_id: int, unit_price: float, quantity: int) -> float:
        """Match a sale against open lots and return the realized P&L.

        Units left over once the queue is empty have no known cost (they were
        acquired before the data starts) and count as pure revenue.
        """
        queue = self._queues[type_id]
        to_match = quantity
        realized = 0.0

        while to_match > 0 and queue:
            lot = queue[0]
            matched = min(lot.remaining, to_match)
            realized += (unit_price - lot.unit_price) * matched
            lot.remaining -= matched
            to_match -= matched
            if lot.remaining <= 0:
                queue.popleft()

        if to_match > 0:
            realized += unit_price * to_match
        return realized

    def apply(self, tx: Transaction) -> float:
        """Book *tx*; returns realized P&L (always 0.0 for buys)."""
        if tx.is_buy:
            self.buy(tx.type_id, tx.unit_price, tx.quantity)
            return 0.0
        return self.sell(tx.type_id, tx.unit_price, tx.quantity)

    def open_lots(self, type_id: int) -> list[BuyLot]:
        return [BuyLot(lot.unit_price, lot.remaining) for lot in self._queues.get(type_id, ())]

    def open_quantity(self, type_id: int) -> int:
        return sum(lot.remaining for lot in self._queues.get(type_id, ()))


def realized_daily_pnl(
    transactions: Iterable[Transaction],
    window_days: int,
    now: datetime | None = None,
    ledger: FifoLedger | None = None,
) -> dict[date, float]:
    """Realized P&L per UTC day over the last *window_days* days.

    Every transaction, including those before the window, passes through the
    ledger so lots bought earlier are matched correctly; only P&L realized on
    or after the cutoff is reported.
    """
    now = as_utc(now) if now is not None else utc_now()
    cutoff = now - timedelta(days=window_days)
    ledger = ledger if ledger is not None else FifoLedger()

    ordered = sorted(transactions, key=lambda tx: tx.timestamp)
    daily: dict[date, float] = {}
    discarded = 0

    for tx in ordered:
        pnl = ledger.apply(tx)
        if tx.is_buy:
            continue
        if tx.timestamp < cutoff:
            discarded += 1
            continue
        daily[tx.day] = daily.get(tx.day, 0.0) + pnl

    if discarded:
        logger.debug("Discarded realized P&L from %d sells before %s", discarded, cutoff.date())
    return dict(sorted(daily.items()))
