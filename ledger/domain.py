"""
Ledger Domain Models
--------------------

This file defines the pure data classes that represent the core
concepts of the trade ledger: trade records, accounts and the
analytics snapshot derived from them.

These models are independent of storage, networking and the CSV
format the broker exports. They are the "nouns" of the system.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple


class TradeKind(str, Enum):
    """The three kinds of rows a broker export can contain."""
    BUY = "buy"
    SELL = "sell"
    BALANCE = "balance"


# ----------------------------- Trade Records -----------------------------

@dataclass(frozen=True)
class TradeRecord:
    """
    One position or ledger entry, exactly as the broker reported it.

    An open position carries a close price of zero. Its close time
    mirrors the open time.
    """
    ticket: int
    open_time: datetime
    kind: TradeKind
    size: float
    symbol: str
    open_price: float
    close_time: datetime
    close_price: float
    commission: float
    swap: float
    profit: float
    comment: str = ""

    @property
    def net_profit(self) -> float:
        """Contribution of this record to the account balance."""
        return self.profit + self.commission + self.swap

    @property
    def is_balance(self) -> bool:
        return self.kind is TradeKind.BALANCE

    @property
    def is_open(self) -> bool:
        return self.close_price == 0 and not self.is_balance

    @property
    def is_closed_operation(self) -> bool:
        return self.close_price != 0 or self.is_balance


@dataclass(frozen=True)
class TradingRecord(TradeRecord):
    """A market position (buy or sell)."""


@dataclass(frozen=True)
class BalanceRecord(TradeRecord):
    """A deposit or withdrawal interleaved with the trades."""

    @classmethod
    def create(cls, ticket: int, time: datetime, profit: float, comment: str = "") -> "BalanceRecord":
        if not comment:
            comment = "Deposit" if profit > 0 else "Withdrawal"
        return cls(
            ticket=ticket,
            open_time=time,
            kind=TradeKind.BALANCE,
            size=0.0,
            symbol="Balance",
            open_price=0.0,
            close_time=time,
            close_price=1.0,
            commission=0.0,
            swap=0.0,
            profit=profit,
            comment=comment,
        )


def make_record(ticket: int,
                open_time: datetime,
                kind: TradeKind,
                size: float,
                symbol: str,
                open_price: float,
                close_time: datetime,
                close_price: float,
                commission: float,
                swap: float,
                profit: float,
                comment: str = "") -> TradeRecord:
    """Builds the right record variant for the given kind."""
    kind = TradeKind(kind)
    cls = BalanceRecord if kind is TradeKind.BALANCE else TradingRecord
    return cls(
        ticket=int(ticket),
        open_time=open_time,
        kind=kind,
        size=float(size),
        symbol=symbol,
        open_price=float(open_price),
        close_time=close_time,
        close_price=float(close_price),
        commission=float(commission),
        swap=float(swap),
        profit=float(profit),
        comment=comment or "",
    )


# ----------------------------- Account -----------------------------

GOAL_METRICS = ("netProfit", "winRate", "profitFactor", "maxDrawdown")


@dataclass(frozen=True)
class Goal:
    target: float
    enabled: bool = True
    show_on_chart: bool = False


@dataclass(frozen=True)
class Account:
    """
    A named ledger. `trades` is replaced wholesale on every update,
    never mutated in place.
    """
    name: str
    initial_balance: float
    currency: str = "USD"
    trades: Tuple[TradeRecord, ...] = ()
    data_url: Optional[str] = None
    last_updated: Optional[str] = None  # ISO timestamp of last successful update
    goals: Dict[str, Goal] = field(default_factory=dict)

    @property
    def currency_symbol(self) -> str:
        return "€" if self.currency == "EUR" else "$"


# ----------------------------- Analytics Snapshot -----------------------------

@dataclass(frozen=True)
class EquityPoint:
    """A point on the equity curve."""
    timestamp: datetime
    balance: float
    trade: Optional[TradeRecord]
    index: int
    is_equity_point: bool = False  # True for the live, unrealized tail
    floating_pnl: Optional[float] = None


@dataclass(frozen=True)
class DailySummary:
    date_key: str  # YYYY-MM-DD, local time
    profit: float
    trade_count: int


@dataclass(frozen=True)
class MaxDrawdown:
    absolute: float = 0.0
    percentage: float = 0.0


@dataclass(frozen=True)
class DashboardMetrics:
    """Aggregate figures computed from one account's trades."""
    total_balance: float  # closed balance + floating P&L
    floating_pnl: float
    todays_floating_pnl: float
    start_of_day_balance: float
    net_profit: float
    win_rate: float
    total_orders: int
    profit_factor: Optional[float]  # None when gross loss is zero
    max_drawdown: MaxDrawdown
    total_deposits: float
    total_withdrawals: float
    average_win: float
    average_loss: float
    winning_trades: int
    losing_trades: int
    last_day_profit: float
    last_day_profit_days_ago: int
    total_commission: float
    total_swap: float
    gross_profit: float
    gross_loss: float
    total_return_percent: float
    expected_payoff: float
    largest_win: float
    largest_loss: float
    max_consecutive_wins: int
    max_consecutive_losses: int
    long_trades: int
    long_won: int
    short_trades: int
    short_won: int

    @property
    def long_win_rate(self) -> float:
        return (self.long_won / self.long_trades * 100) if self.long_trades > 0 else 0.0

    @property
    def short_win_rate(self) -> float:
        return (self.short_won / self.short_trades * 100) if self.short_trades > 0 else 0.0


@dataclass(frozen=True)
class AnalyticsSnapshot:
    """Everything the presentation layer needs, recomputed on each read."""
    metrics: DashboardMetrics
    equity_curve: List[EquityPoint]
    daily_summary: List[DailySummary]
    recent_trades: List[TradeRecord]
    closed_trades: List[TradeRecord]
    open_trades: List[TradeRecord]


@dataclass(frozen=True)
class BenchmarkPoint:
    """One daily close of a reference index."""
    date: datetime
    close: float
