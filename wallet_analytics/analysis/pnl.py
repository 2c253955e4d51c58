"""Cash-flow P&L report: daily series, drawdown, summary stats, breakdowns.

Unlike the FIFO risk series, this report books every purchase as an outflow
and every sale as an inflow on the day it happens, which is what a trader sees
in their wallet journal.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable

import numpy as np
import pandas as pd

from wallet_analytics.config import DEFAULT_CONFIG
from wallet_analytics.models import Transaction, as_utc, utc_now
from wallet_analytics.utils.logger import setup_logger

logger = setup_logger("pnl")

_MAX_TOP_ITEMS = 50
_MAX_TOP_STATIONS = 20


@dataclass(frozen=True)
class DailyPnLEntry:
    date: str  # YYYY-MM-DD
    buy_total: float
    sell_total: float
    net_pnl: float
    cumulative_pnl: float
    drawdown_pct: float  # <= 0, relative to the cumulative peak; 0 until the peak is positive
    transactions: int


@dataclass(frozen=True)
class PortfolioPnLStats:
    total_pnl: float = 0.0
    avg_daily_pnl: float = 0.0
    best_day_pnl: float = 0.0
    best_day_date: str = ""
    worst_day_pnl: float = 0.0
    worst_day_date: str = ""
    profitable_days: int = 0
    losing_days: int = 0
    total_days: int = 0
    win_rate: float = 0.0  # percent
    total_bought: float = 0.0
    total_sold: float = 0.0
    roi_percent: float = 0.0
    sharpe_ratio: float = 0.0
    max_drawdown_pct: float = 0.0
    max_drawdown_isk: float = 0.0
    max_drawdown_days: int = 0
    calmar_ratio: float = 0.0
    profit_factor: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    expectancy_per_trade: float = 0.0


@dataclass(frozen=True)
class ItemPnL:
    type_id: int
    type_name: str
    total_bought: float
    total_sold: float
    net_pnl: float
    qty_bought: int
    qty_sold: int
    avg_buy_price: float
    avg_sell_price: float
    margin_percent: float
    transactions: int


@dataclass(frozen=True)
class StationPnL:
    location_id: int
    location_name: str
    total_bought: float
    total_sold: float
    net_pnl: float
    transactions: int


@dataclass(frozen=True)
class PortfolioPnL:
    daily_pnl: tuple[DailyPnLEntry, ...] = ()
    summary: PortfolioPnLStats = field(default_factory=PortfolioPnLStats)
    top_items: tuple[ItemPnL, ...] = ()
    top_stations: tuple[StationPnL, ...] = ()

    def to_dict(self) -> dict:
        return asdict(self)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _transaction_frame(transactions: list[Transaction], cutoff: datetime) -> pd.DataFrame:
    rows = []
    for tx in transactions:
        if tx.timestamp < cutoff:
            continue
        amount = tx.amount
        rows.append({
            "day": tx.day,
            "type_id": tx.type_id,
            "type_name": tx.type_name,
            "location_id": tx.location_id,
            "location_name": tx.location_name,
            "bought": amount if tx.is_buy else 0.0,
            "sold": 0.0 if tx.is_buy else amount,
            "qty_bought": tx.quantity if tx.is_buy else 0,
            "qty_sold": 0 if tx.is_buy else tx.quantity,
        })
    return pd.DataFrame(rows)


def _by_abs_net(frame: pd.DataFrame, limit: int) -> pd.DataFrame:
    order = frame["net_pnl"].abs().sort_values(ascending=False, kind="stable").index
    return frame.loc[order].head(limit)


def _daily_entries(daily: pd.DataFrame) -> tuple[list[DailyPnLEntry], dict]:
    """Daily entries plus the drawdown figures of the whole path."""
    net = daily["net_pnl"].to_numpy(dtype=float)
    days: list[date] = list(daily.index)

    entries: list[DailyPnLEntry] = []
    cumulative = 0.0
    peak = 0.0
    peak_idx = 0
    max_dd = 0.0
    dd_peak_idx = 0
    dd_trough_idx = 0

    for i, day in enumerate(days):
        cumulative += net[i]
        if cumulative > peak:
            peak = cumulative
            peak_idx = i
        drawdown = cumulative - peak
        if drawdown < max_dd:
            max_dd = drawdown
            dd_peak_idx = peak_idx
            dd_trough_idx = i
        entries.append(DailyPnLEntry(
            date=day.isoformat(),
            buy_total=float(daily["buy_total"].iloc[i]),
            sell_total=float(daily["sell_total"].iloc[i]),
            net_pnl=float(net[i]),
            cumulative_pnl=cumulative,
            drawdown_pct=drawdown / peak * 100.0 if peak > 0 else 0.0,
            transactions=int(daily["transactions"].iloc[i]),
        ))

    drawdown_days = 0
    if dd_trough_idx > dd_peak_idx:
        drawdown_days = (days[dd_trough_idx] - days[dd_peak_idx]).days

    return entries, {
        "max_drawdown_isk": -max_dd,
        "max_drawdown_pct": -max_dd / peak * 100.0 if peak > 0 else 0.0,
        "max_drawdown_days": drawdown_days,
    }


def _summary(daily: pd.DataFrame, drawdown: dict, periods: int) -> PortfolioPnLStats:
    net = daily["net_pnl"].to_numpy(dtype=float)
    n = net.size
    labels = [d.isoformat() for d in daily.index]

    total_pnl = float(net.sum())
    total_bought = float(daily["buy_total"].sum())
    total_sold = float(daily["sell_total"].sum())

    wins = net[net > 0]
    losses = -net[net < 0]
    gross_profit = float(wins.sum())
    gross_loss = float(losses.sum())
    avg_win = gross_profit / wins.size if wins.size else 0.0
    avg_loss = gross_loss / losses.size if losses.size else 0.0

    # ROI against the average capital still tied up in inventory
    deployed = np.cumsum(daily["buy_total"].to_numpy()) - np.cumsum(daily["sell_total"].to_numpy())
    avg_capital = float(np.clip(deployed, 0.0, None).sum()) / n
    roi = 0.0
    if avg_capital > 0:
        roi = total_pnl / avg_capital * 100.0
    elif total_bought > 0:
        roi = total_pnl / total_bought * 100.0

    sharpe = 0.0
    if n >= 2:
        sigma = float(np.std(net, ddof=1))
        if sigma > 0:
            sharpe = float(net.mean()) / sigma * np.sqrt(periods)

    max_dd_isk = drawdown["max_drawdown_isk"]
    calmar = total_pnl * periods / n / max_dd_isk if max_dd_isk > 0 else 0.0

    best, worst = int(np.argmax(net)), int(np.argmin(net))
    return PortfolioPnLStats(
        total_pnl=total_pnl,
        avg_daily_pnl=total_pnl / n,
        best_day_pnl=float(net[best]),
        best_day_date=labels[best],
        worst_day_pnl=float(net[worst]),
        worst_day_date=labels[worst],
        profitable_days=int(wins.size),
        losing_days=int(losses.size),
        total_days=n,
        win_rate=wins.size / n * 100.0,
        total_bought=total_bought,
        total_sold=total_sold,
        roi_percent=roi,
        sharpe_ratio=float(sharpe),
        max_drawdown_pct=drawdown["max_drawdown_pct"],
        max_drawdown_isk=max_dd_isk,
        max_drawdown_days=drawdown["max_drawdown_days"],
        calmar_ratio=calmar,
        profit_factor=gross_profit / gross_loss if gross_loss > 0 else 0.0,
        avg_win=avg_win,
        avg_loss=avg_loss,
        expectancy_per_trade=(wins.size / n) * avg_win - (losses.size / n) * avg_loss,
    )


def _item_breakdown(frame: pd.DataFrame) -> list[ItemPnL]:
    items = frame.groupby("type_id", sort=True).agg(
        type_name=("type_name", "first"),
        total_bought=("bought", "sum"),
        total_sold=("sold", "sum"),
        qty_bought=("qty_bought", "sum"),
        qty_sold=("qty_sold", "sum"),
        transactions=("day", "size"),
    )
    items["net_pnl"] = items["total_sold"] - items["total_bought"]

    result = []
    for type_id, row in _by_abs_net(items, _MAX_TOP_ITEMS).iterrows():
        avg_buy = row.total_bought / row.qty_bought if row.qty_bought > 0 else 0.0
        avg_sell = row.total_sold / row.qty_sold if row.qty_sold > 0 else 0.0
        margin = (avg_sell - avg_buy) / avg_buy * 100.0 if avg_buy > 0 and avg_sell > 0 else 0.0
        result.append(ItemPnL(
            type_id=int(type_id),
            type_name=str(row.type_name),
            total_bought=float(row.total_bought),
            total_sold=float(row.total_sold),
            net_pnl=float(row.net_pnl),
            qty_bought=int(row.qty_bought),
            qty_sold=int(row.qty_sold),
            avg_buy_price=float(avg_buy),
            avg_sell_price=float(avg_sell),
            margin_percent=float(margin),
            transactions=int(row.transactions),
        ))
    return result


def _station_breakdown(frame: pd.DataFrame) -> list[StationPnL]:
    stations = frame.groupby("location_id", sort=True).agg(
        location_name=("location_name", "first"),
        total_bought=("bought", "sum"),
        total_sold=("sold", "sum"),
        transactions=("day", "size"),
    )
    stations["net_pnl"] = stations["total_sold"] - stations["total_bought"]
    return [
        StationPnL(
            location_id=int(location_id),
            location_name=str(row.location_name),
            total_bought=float(row.total_bought),
            total_sold=float(row.total_sold),
            net_pnl=float(row.net_pnl),
            transactions=int(row.transactions),
        )
        for location_id, row in _by_abs_net(stations, _MAX_TOP_STATIONS).iterrows()
    ]


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def compute_portfolio_pnl(
    transactions: Iterable[Transaction],
    lookback_days: int,
    now: datetime | None = None,
    periods: int = DEFAULT_CONFIG.annualization_days,
) -> PortfolioPnL:
    """Full cash-flow P&L analysis of the last *lookback_days* days.

    Args:
        transactions: Wallet transactions in any order.
        lookback_days: Window length, e.g. 7, 30, 90 or 180.
        now: End of the window (defaults to the current UTC time).
        periods: Days per year used to annualize Sharpe and Calmar.

    Returns:
        PortfolioPnL; empty (zeroed summary, no rows) when nothing falls in
        the window.
    """
    txns = list(transactions)
    if not txns:
        return PortfolioPnL()

    now = as_utc(now) if now is not None else utc_now()
    frame = _transaction_frame(txns, now - timedelta(days=lookback_days))
    if frame.empty:
        logger.info("No transactions in the last %d days", lookback_days)
        return PortfolioPnL()

    daily = frame.groupby("day", sort=True).agg(
        buy_total=("bought", "sum"),
        sell_total=("sold", "sum"),
        transactions=("type_id", "size"),
    )
    daily["net_pnl"] = daily["sell_total"] - daily["buy_total"]

    entries, drawdown = _daily_entries(daily)
    summary = _summary(daily, drawdown, periods)
    logger.info(
        "P&L over %d days: total %.2f, win rate %.1f%%, max drawdown %.2f",
        summary.total_days, summary.total_pnl, summary.win_rate, summary.max_drawdown_isk,
    )
    return PortfolioPnL(
        daily_pnl=tuple(entries),
        summary=summary,
        top_items=tuple(_item_breakdown(frame)),
        top_stations=tuple(_station_breakdown(frame)),
    )
