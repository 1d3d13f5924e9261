"""
Pytest Configuration and Fixtures
==================================

Shared fixtures for the ledger, reconciler and sync tests.
"""

import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from ledger import Account, BalanceRecord, TradeKind, TradeRecord, make_record


# =============================================================================
# RECORD FACTORIES
# =============================================================================

def build_trade(ticket: int,
                kind: str = "buy",
                open_time: datetime = datetime(2024, 1, 1, 10, 0),
                close_time: Optional[datetime] = None,
                close_price: float = 1.1,
                profit: float = 0.0,
                commission: float = 0.0,
                swap: float = 0.0,
                symbol: str = "EURUSD",
                comment: str = "") -> TradeRecord:
    """A trading record. `close_price=0` makes it an open position."""
    if close_price == 0:
        close_time = open_time
    return make_record(
        ticket=ticket,
        open_time=open_time,
        kind=TradeKind(kind),
        size=0.1,
        symbol=symbol,
        open_price=1.1,
        close_time=close_time or open_time,
        close_price=close_price,
        commission=commission,
        swap=swap,
        profit=profit,
        comment=comment,
    )


def build_balance(ticket: int, time: datetime, amount: float) -> TradeRecord:
    return BalanceRecord.create(ticket, time, amount)


@pytest.fixture
def trade():
    return build_trade


@pytest.fixture
def balance():
    return build_balance


@pytest.fixture
def account_factory():
    def _make(name: str = "Main", initial_balance: float = 1000.0,
              trades: List[TradeRecord] = (), data_url: Optional[str] = None,
              currency: str = "USD") -> Account:
        return Account(name=name, initial_balance=initial_balance, currency=currency,
                       trades=tuple(trades), data_url=data_url)
    return _make


# =============================================================================
# BROKER EXPORTS
# =============================================================================

EXPORT_HEADER = "Ticket,Open Time,Type,Volume,Symbol,Open Price,Close Time,Close Price,Commission,Swap,Profit,Comment"


def build_export(*rows: str, header: str = EXPORT_HEADER) -> str:
    return "\n".join((header,) + rows) + "\n"


@pytest.fixture
def sample_export() -> str:
    """One closed buy and one still-open sell."""
    return build_export(
        "1,2024.01.01 10:00:00,buy,0.10,EURUSD,1.1000,2024.01.02 10:00:00,1.1100,-0.50,0,100.00,scalp",
        "2,2024.01.03 09:00:00,sell,0.20,GBPUSD,1.2700,0,0,0,0,0,",
    )
