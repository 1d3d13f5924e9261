"""
sync_engine.py
The synchronization service. For every account linked to a remote
export it runs fetch -> parse -> reconcile -> notify -> persist.

Accounts are synced concurrently, one task per account. Within one
account, syncs never interleave: an attempt made while another sync of
the same account is in flight is skipped. Nothing is written until a
complete batch has been fetched and parsed, so a failed or cancelled
fetch leaves the stored trades untouched.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, List, Optional, Set, Tuple, Union

from ledger import Account, AnalyticsSnapshot, TradeRecord, analyze, parse_trade_export
from notifier import ITradeNotifier
from persistence import IAccountRepository
from trade_reconciler import ITradeReconciler
from trade_source import ITradeSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncResult:
    """Per-account outcome of one sync attempt."""
    account_name: str
    updated_trades: Tuple[TradeRecord, ...] = ()
    newly_closed_trades: Tuple[TradeRecord, ...] = ()
    error: Optional[str] = None
    skipped: bool = False
    snapshot: Optional[AnalyticsSnapshot] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class AccountSyncEngine:
    """
    Owns the in-memory account collection and keeps it in step with the
    repository. The collection is swapped account by account; the
    repository always receives the full current collection.
    """

    def __init__(self,
                 repository: IAccountRepository,
                 source: ITradeSource,
                 reconciler: ITradeReconciler,
                 notifier: ITradeNotifier,
                 notify_trade_closed: bool = True):
        self._repo = repository
        self._source = source
        self._reconciler = reconciler
        self._notifier = notifier
        self._notify_trade_closed = notify_trade_closed

        self._accounts: Dict[str, Account] = {}
        self._in_flight: Set[str] = set()
        self._persist_lock = asyncio.Lock()

    # --------------------------- Account collection ---------------------------

    async def load(self) -> List[Account]:
        """Replaces the in-memory collection with what the repository holds."""
        accounts = await self._repo.load_accounts()
        self._accounts = {a.name: a for a in accounts}
        return accounts

    @property
    def accounts(self) -> List[Account]:
        return list(self._accounts.values())

    def get_account(self, name: str) -> Optional[Account]:
        return self._accounts.get(name)

    def put_account(self, account: Account) -> None:
        self._accounts[account.name] = account

    def remove_account(self, name: str) -> Optional[Account]:
        return self._accounts.pop(name, None)

    async def persist(self) -> None:
        """Writes the current collection. Writes are serialized."""
        async with self._persist_lock:
            await self._repo.save_accounts(list(self._accounts.values()))

    # --------------------------- Sync ---------------------------

    async def sync(self, account: Union[Account, str], with_snapshot: bool = False) -> SyncResult:
        """
        Syncs one account with its data URL. Never raises for ordinary
        failures: they are reported in `SyncResult.error`.
        """
        name = account if isinstance(account, str) else account.name

        if name in self._in_flight:
            logger.warning(f"Sync for '{name}' is already running. Skipping.")
            return SyncResult(account_name=name, skipped=True)

        current = self._accounts.get(name)
        if current is None:
            return SyncResult(account_name=name, error=f"Unknown account '{name}'.")
        if not current.data_url:
            return SyncResult(account_name=name, updated_trades=current.trades,
                              error=f"Account '{name}' has no data URL.")

        self._in_flight.add(name)
        try:
            return await self._sync_account(name, current.data_url, with_snapshot)
        except Exception as e:
            logger.exception(f"Sync failed for '{name}': {e}")
            return SyncResult(account_name=name, updated_trades=current.trades, error=str(e))
        finally:
            self._in_flight.discard(name)

    async def _sync_account(self, name: str, url: str, with_snapshot: bool) -> SyncResult:
        logger.info(f"Syncing '{name}' from {url}")
        text = await self._source.fetch_text(url)
        incoming = parse_trade_export(text)

        # Re-read after the await: the account may have changed meanwhile
        current = self._accounts.get(name)
        if current is None:
            logger.warning(f"Account '{name}' was removed during sync. Discarding fetched data.")
            return SyncResult(account_name=name, skipped=True)

        if not incoming:
            if current.trades:
                logger.warning(f"Export for '{name}' contained no trades. Keeping the "
                               f"{len(current.trades)} stored trade(s).")
                return SyncResult(account_name=name, updated_trades=current.trades, skipped=True)
            logger.info(f"Export for '{name}' contained no trades. Nothing to merge.")
            return SyncResult(account_name=name)

        result = self._reconciler.reconcile(current.trades, incoming)
        updated = replace(current, trades=result.trades, last_updated=datetime.now().isoformat())
        self._accounts[name] = updated

        error: Optional[str] = None
        try:
            await self.persist()
        except Exception as e:
            # The merged trades stay in memory for this session
            logger.error(f"Could not persist '{name}' after sync: {e}")
            error = f"Persistence failed: {e}"

        if self._notify_trade_closed and result.newly_closed:
            await self._notifier.notify_closed(updated, result.newly_closed)

        logger.info(f"Sync for '{name}' done: {len(updated.trades)} trade(s), "
                    f"{len(result.newly_closed)} newly closed.")
        return SyncResult(
            account_name=name,
            updated_trades=updated.trades,
            newly_closed_trades=result.newly_closed,
            error=error,
            snapshot=analyze(updated) if with_snapshot else None,
        )

    async def sync_all(self, with_snapshot: bool = False) -> List[SyncResult]:
        """Syncs every account that has a data URL, concurrently."""
        names = [a.name for a in self._accounts.values() if a.data_url]
        if not names:
            logger.info("No accounts with a data URL to sync.")
            return []

        logger.info(f"--- Starting sync of {len(names)} account(s) ---")
        results = await asyncio.gather(*(self.sync(n, with_snapshot=with_snapshot) for n in names))

        failed = [r for r in results if not r.ok]
        for r in failed:
            logger.error(f"'{r.account_name}': {r.error}")
        logger.info(f"--- Sync complete: {len(results) - len(failed)} ok, {len(failed)} failed ---")
        return list(results)

    # --------------------------- Analytics ---------------------------

    def analyze_account(self, name: str, now: Optional[datetime] = None) -> Optional[AnalyticsSnapshot]:
        """Snapshot for one account, or None if it is unknown or has no trades."""
        return analyze(self._accounts.get(name), now=now)
