from datetime import datetime

import pytest

from notifier import SENT_HISTORY_LIMIT, LoggingTradeNotifier, format_trade_closed


class TestFormatting:

    def test_message_uses_account_currency(self, trade, account_factory):
        closed = trade(77, symbol="XAUUSD", close_time=datetime(2024, 1, 2), profit=12.5)

        usd = format_trade_closed(closed, account_factory(currency="USD"))
        eur = format_trade_closed(closed, account_factory(currency="EUR"))

        assert usd.title == "Trade closed"
        assert usd.body == "XAUUSD closed: +12.50$"
        assert eur.body == "XAUUSD closed: +12.50€"
        assert usd.tag == "trade-77"

    def test_losses_keep_their_sign(self, trade, account_factory):
        msg = format_trade_closed(trade(1, profit=-3.0), account_factory())
        assert msg.body.endswith("-3.00$")


class TestLoggingTradeNotifier:

    @pytest.mark.asyncio
    async def test_records_each_notification(self, trade, account_factory):
        notifier = LoggingTradeNotifier()

        await notifier.notify_closed(account_factory(), [trade(1, profit=1.0), trade(2, profit=2.0)])

        assert [n.tag for n in notifier.sent] == ["trade-1", "trade-2"]

    @pytest.mark.asyncio
    async def test_disabled_notifier_sends_nothing(self, trade, account_factory):
        notifier = LoggingTradeNotifier(enabled=False)

        await notifier.notify_closed(account_factory(), [trade(1, profit=1.0)])

        assert list(notifier.sent) == []

    @pytest.mark.asyncio
    async def test_history_keeps_only_the_most_recent(self, trade, account_factory):
        notifier = LoggingTradeNotifier(history=2)

        await notifier.notify_closed(account_factory(), [trade(t, profit=1.0) for t in (1, 2, 3)])
        await notifier.notify_closed(account_factory(), [trade(4, profit=1.0)])

        assert [n.tag for n in notifier.sent] == ["trade-3", "trade-4"]

    def test_default_history_is_bounded(self):
        assert LoggingTradeNotifier().sent.maxlen == SENT_HISTORY_LIMIT
