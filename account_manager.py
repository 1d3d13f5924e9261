"""
account_manager.py
Account lifecycle: create, update, delete and goal editing.

Every change is applied to the sync engine's in-memory collection first
and then persisted. Persistence errors propagate to the caller; the
in-memory change is kept.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterable, Optional

from config import SUPPORTED_CURRENCIES
from ledger import GOAL_METRICS, Account, Goal, TradeRecord, parse_trade_export
from sync_engine import AccountSyncEngine
from trade_reconciler import ITradeReconciler

logger = logging.getLogger(__name__)


class AccountManager:

    def __init__(self,
                 engine: AccountSyncEngine,
                 reconciler: ITradeReconciler,
                 default_currency: str = "USD"):
        self._engine = engine
        self._reconciler = reconciler
        self._default_currency = default_currency

    def _require(self, name: str) -> Account:
        account = self._engine.get_account(name)
        if account is None:
            raise ValueError(f"Account '{name}' does not exist.")
        return account

    def _check_currency(self, currency: str) -> str:
        currency = currency.upper()
        if currency not in SUPPORTED_CURRENCIES:
            raise ValueError(f"Unsupported currency '{currency}'. Use one of {SUPPORTED_CURRENCIES}.")
        return currency

    async def add_account(self,
                          name: str,
                          initial_balance: float,
                          currency: Optional[str] = None,
                          trades: Iterable[TradeRecord] = (),
                          data_url: Optional[str] = None) -> Account:
        name = name.strip()
        if not name:
            raise ValueError("Account name must not be empty.")
        if self._engine.get_account(name) is not None:
            raise ValueError(f"An account named '{name}' already exists.")

        account = Account(
            name=name,
            initial_balance=float(initial_balance),
            currency=self._check_currency(currency or self._default_currency),
            trades=tuple(sorted(trades, key=lambda t: t.open_time)),
            data_url=data_url or None,
            last_updated=datetime.now().isoformat(),
        )
        self._engine.put_account(account)
        logger.info(f"Added account '{name}' with {len(account.trades)} trade(s).")
        await self._engine.persist()
        return account

    async def update_account(self,
                             name: str,
                             trades: Optional[Iterable[TradeRecord]] = None,
                             initial_balance: Optional[float] = None,
                             currency: Optional[str] = None,
                             data_url: Optional[str] = None) -> Account:
        """
        Merges `trades` (if given) into the account by ticket and applies
        any metadata change. An empty string for `data_url` unlinks it.
        """
        current = self._require(name)
        changes = {}

        if trades is not None:
            result = self._reconciler.reconcile(current.trades, list(trades))
            changes["trades"] = result.trades
            changes["last_updated"] = datetime.now().isoformat()
        if initial_balance is not None:
            changes["initial_balance"] = float(initial_balance)
        if currency is not None:
            changes["currency"] = self._check_currency(currency)
        if data_url is not None:
            changes["data_url"] = data_url or None

        updated = replace(current, **changes)
        self._engine.put_account(updated)
        logger.info(f"Updated account '{name}' ({', '.join(changes) or 'no changes'}).")
        await self._engine.persist()
        return updated

    async def import_export(self, name: str, content: str) -> Account:
        """Parses a local broker export and merges it into the account."""
        incoming = parse_trade_export(content)
        if not incoming:
            logger.warning(f"Import for '{name}' contained no trades.")
            return self._require(name)
        return await self.update_account(name, trades=incoming)

    async def delete_account(self, name: str) -> None:
        self._require(name)
        self._engine.remove_account(name)
        logger.info(f"Deleted account '{name}'.")
        await self._engine.persist()

    async def save_goals(self, name: str, goals: Dict[str, Goal]) -> Account:
        unknown = set(goals) - set(GOAL_METRICS)
        if unknown:
            raise ValueError(f"Unknown goal metric(s): {sorted(unknown)}")
        updated = replace(self._require(name), goals=dict(goals))
        self._engine.put_account(updated)
        await self._engine.persist()
        return updated
