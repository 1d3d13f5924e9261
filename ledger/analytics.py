"""
Analytics Engine
----------------

Computes the full performance snapshot of an account from its trade
collection: equity curve, drawdown, win/loss statistics, streaks,
long/short breakdown, daily results and floating P&L.

`analyze` is a pure function of (account, now). Nothing here is
cached or persisted; the snapshot is rebuilt on every call.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from .domain import (
    Account,
    AnalyticsSnapshot,
    BenchmarkPoint,
    DailySummary,
    DashboardMetrics,
    EquityPoint,
    MaxDrawdown,
    TradeKind,
    TradeRecord,
)
from .utils import day_identifier, start_of_day

logger = logging.getLogger(__name__)

RECENT_TRADES_LIMIT = 6


def _max_drawdown(initial_balance: float, balances: np.ndarray, is_trade: np.ndarray) -> MaxDrawdown:
    """
    Peak and drawdown only move on trade points; deposits and withdrawals
    shift the balance without being counted as drawdown events.
    """
    if not is_trade.any():
        return MaxDrawdown()

    trade_balances = balances[is_trade]
    peaks = np.maximum.accumulate(np.concatenate(([initial_balance], trade_balances)))[1:]
    drawdowns = peaks - trade_balances

    worst = int(np.argmax(drawdowns))
    absolute = float(drawdowns[worst])
    if absolute <= 0:
        return MaxDrawdown()
    peak = float(peaks[worst])
    percentage = (absolute / peak) * 100 if peak > 0 else 0.0
    return MaxDrawdown(absolute=absolute, percentage=percentage)


def _streaks(trades: Sequence[TradeRecord]) -> Tuple[int, int]:
    max_wins = max_losses = 0
    wins = losses = 0
    for trade in trades:
        if trade.profit > 0:
            wins += 1
            losses = 0
        else:
            losses += 1
            wins = 0
        max_wins = max(max_wins, wins)
        max_losses = max(max_losses, losses)
    return max_wins, max_losses


def _daily_summary(trades: Sequence[TradeRecord]) -> List[DailySummary]:
    days: Dict[str, List[TradeRecord]] = {}
    for trade in trades:
        days.setdefault(day_identifier(trade.close_time), []).append(trade)
    summary = [
        DailySummary(date_key=key, profit=sum(t.net_profit for t in day), trade_count=len(day))
        for key, day in days.items()
    ]
    return sorted(summary, key=lambda d: d.date_key, reverse=True)


def analyze(account: Optional[Account], now: Optional[datetime] = None) -> Optional[AnalyticsSnapshot]:
    """
    Builds the analytics snapshot for one account.
    Returns None for a missing account or one without trades.
    """
    if account is None or not account.trades:
        return None
    now = now or datetime.now()
    initial_balance = float(account.initial_balance)

    closed_ops = sorted((t for t in account.trades if t.is_closed_operation), key=lambda t: t.close_time)
    open_trades = [t for t in account.trades if t.is_open]
    closed_trades = [op for op in closed_ops if not op.is_balance]

    # --- Equity curve ---
    nets = np.array([op.net_profit for op in closed_ops], dtype=float)
    balances = initial_balance + np.cumsum(nets)
    is_trade = np.array([not op.is_balance for op in closed_ops], dtype=bool)

    seed_time = closed_ops[0].close_time - timedelta(milliseconds=1) if closed_ops else now
    curve: List[EquityPoint] = [EquityPoint(timestamp=seed_time, balance=initial_balance, trade=None, index=0)]
    for i, op in enumerate(closed_ops):
        curve.append(EquityPoint(timestamp=op.close_time, balance=float(balances[i]), trade=op, index=i + 1))

    final_closed_balance = float(balances[-1]) if closed_ops else initial_balance
    floating_pnl = float(sum(t.net_profit for t in open_trades))
    equity = final_closed_balance + floating_pnl

    if open_trades or len(curve) == 1:
        curve.append(EquityPoint(
            timestamp=max(now, curve[-1].timestamp),
            balance=equity,
            trade=None,
            index=curve[-1].index + 1,
            is_equity_point=True,
            floating_pnl=floating_pnl,
        ))

    # --- Trade statistics ---
    max_drawdown = _max_drawdown(initial_balance, balances, is_trade)

    profits = np.array([t.profit for t in closed_trades], dtype=float)
    wins = profits[profits > 0]
    losses = profits[profits <= 0]
    gross_profit = float(wins.sum())
    gross_loss = float(losses.sum())
    total_commission = float(sum(t.commission for t in closed_trades))
    total_swap = float(sum(t.swap for t in closed_trades))
    total_orders = len(closed_trades)

    max_wins, max_losses = _streaks(closed_trades)

    longs = [t for t in closed_trades if t.kind is TradeKind.BUY]
    shorts = [t for t in closed_trades if t.kind is TradeKind.SELL]

    deposits = float(sum(op.profit for op in closed_ops if op.is_balance and op.profit > 0))
    withdrawals = float(sum(op.profit for op in closed_ops if op.is_balance and op.profit < 0))

    # --- Daily results ---
    daily_summary = _daily_summary(closed_trades)
    today_key = day_identifier(now)
    todays_floating_pnl = float(sum(t.net_profit for t in open_trades if day_identifier(t.open_time) == today_key))

    last_day_profit = 0.0
    days_ago = 0
    if daily_summary:
        last_day = daily_summary[0]
        last_day_profit = last_day.profit
        last_day_start = datetime.strptime(last_day.date_key, "%Y-%m-%d")
        days_ago = (start_of_day(now) - last_day_start).days

    midnight = start_of_day(now)
    start_of_day_balance = initial_balance + sum(op.net_profit for op in closed_ops if op.close_time < midnight)

    net_profit = gross_profit + gross_loss + total_commission + total_swap
    total_invested = initial_balance + deposits

    metrics = DashboardMetrics(
        total_balance=equity,
        floating_pnl=floating_pnl,
        todays_floating_pnl=todays_floating_pnl,
        start_of_day_balance=start_of_day_balance,
        net_profit=net_profit,
        win_rate=(len(wins) / total_orders * 100) if total_orders > 0 else 0.0,
        total_orders=total_orders,
        profit_factor=abs(gross_profit / gross_loss) if gross_loss != 0 else None,
        max_drawdown=max_drawdown,
        total_deposits=initial_balance + deposits,
        total_withdrawals=abs(withdrawals),
        average_win=(gross_profit / len(wins)) if len(wins) > 0 else 0.0,
        average_loss=(gross_loss / len(losses)) if len(losses) > 0 else 0.0,
        winning_trades=len(wins),
        losing_trades=len(losses),
        last_day_profit=last_day_profit,
        last_day_profit_days_ago=days_ago,
        total_commission=total_commission,
        total_swap=total_swap,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        total_return_percent=(net_profit / total_invested * 100) if total_invested > 0 else 0.0,
        expected_payoff=(net_profit / total_orders) if total_orders > 0 else 0.0,
        largest_win=float(wins.max()) if len(wins) > 0 else 0.0,
        largest_loss=float(losses.min()) if len(losses) > 0 else 0.0,
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        long_trades=len(longs),
        long_won=sum(1 for t in longs if t.profit > 0),
        short_trades=len(shorts),
        short_won=sum(1 for t in shorts if t.profit > 0),
    )

    recent = sorted(closed_trades, key=lambda t: t.close_time, reverse=True)[:RECENT_TRADES_LIMIT]

    return AnalyticsSnapshot(
        metrics=metrics,
        equity_curve=curve,
        daily_summary=daily_summary,
        recent_trades=recent,
        closed_trades=list(closed_trades),
        open_trades=sorted(open_trades, key=lambda t: t.open_time, reverse=True),
    )


# ----------------------------- Strategies -----------------------------

def filter_by_comment(trades: Sequence[TradeRecord], comment: Optional[str]) -> List[TradeRecord]:
    """Trades tagged with a strategy comment. An empty tag matches everything."""
    if not comment:
        return list(trades)
    return [t for t in trades if t.comment == comment]


def analyze_strategy(account: Account, comment: Optional[str],
                     now: Optional[datetime] = None) -> Optional[AnalyticsSnapshot]:
    """Runs the engine on the subset of trades belonging to one strategy."""
    subset = filter_by_comment(account.trades, comment)
    if not subset:
        return None
    return analyze(Account(
        name=f"{account.name}:{comment or '*'}",
        initial_balance=account.initial_balance,
        currency=account.currency,
        trades=tuple(subset),
    ), now=now)


# ----------------------------- Benchmark -----------------------------

def calculate_benchmark_performance(start: datetime,
                                    points: Optional[Sequence[BenchmarkPoint]]) -> Optional[float]:
    """
    Percent return of a benchmark from the first close on or after
    `start` to the last available close. Points must be sorted ascending.
    """
    if not points:
        return None
    start_price = next((p.close for p in points if p.date >= start), None)
    end_price = points[-1].close
    if start_price is None or start_price == 0:
        return None
    return (end_price - start_price) / start_price * 100
