"""
notifier.py
Delivery port for trade-closed notifications.

Actual push delivery lives outside this project; the bundled
implementation writes each notification to the log so a consumer (or
an operator tailing the logs) can pick it up.
"""

import logging
from collections import deque
from dataclasses import dataclass
from typing import Deque, Protocol, Sequence

from ledger import Account, TradeRecord

logger = logging.getLogger(__name__)

SENT_HISTORY_LIMIT = 100


@dataclass(frozen=True)
class TradeNotification:
    """A rendered notification, ready for a delivery channel."""
    title: str
    body: str
    tag: str


def format_trade_closed(trade: TradeRecord, account: Account) -> TradeNotification:
    return TradeNotification(
        title="Trade closed",
        body=f"{trade.symbol} closed: {trade.profit:+.2f}{account.currency_symbol}",
        tag=f"trade-{trade.ticket}",
    )


class ITradeNotifier(Protocol):
    """Interface for whoever delivers trade-closed notifications."""

    async def notify_closed(self, account: Account, trades: Sequence[TradeRecord]) -> None:
        ...


class LoggingTradeNotifier(ITradeNotifier):
    """Logs notifications instead of pushing them. The most recent `history` are kept in `sent`."""

    def __init__(self, enabled: bool = True, history: int = SENT_HISTORY_LIMIT):
        self._enabled = enabled
        self.sent: Deque[TradeNotification] = deque(maxlen=history)

    async def notify_closed(self, account: Account, trades: Sequence[TradeRecord]) -> None:
        if not self._enabled or not trades:
            return
        logger.info(f"Found {len(trades)} newly closed trade(s) for '{account.name}'. Sending notifications.")
        for trade in trades:
            notification = format_trade_closed(trade, account)
            self.sent.append(notification)
            logger.info(f"[{notification.tag}] {notification.title}: {notification.body}")
