"""
trade_reconciler.py
Reconciles a freshly parsed broker batch with the trades already stored
for an account. The broker export is the ground truth: every incoming
record overwrites the stored record with the same ticket.

The reconciler also decides which incoming trades are *newly closed*
(closed now, but open or unknown before the merge), which is what
drives trade-closed notifications.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Protocol, Sequence, Tuple

from ledger import TradeRecord

logger = logging.getLogger(__name__)


# ----------------------------- Domain Layer (DDD) -----------------------------

@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of merging one batch into an account's trades."""
    trades: Tuple[TradeRecord, ...]  # merged, sorted by open time
    newly_closed: Tuple[TradeRecord, ...]
    added: int
    updated: int


# ----------------------------- Pure Functions -----------------------------

def _sort_key(trade: TradeRecord):
    return trade.open_time, trade.ticket


def find_newly_closed(incoming: Iterable[TradeRecord],
                      existing: Iterable[TradeRecord]) -> List[TradeRecord]:
    """
    Incoming trades that are closed now and were open (close price 0)
    or absent before. `existing` must be the pre-merge state.
    A closed trade re-sent with corrected values is not reported again.
    """
    before: Dict[int, TradeRecord] = {t.ticket: t for t in existing}
    found: Dict[int, TradeRecord] = {}
    for trade in incoming:
        if trade.is_balance or trade.close_price == 0:
            continue
        old = before.get(trade.ticket)
        if old is None or old.close_price == 0:
            found[trade.ticket] = trade
    return list(found.values())


def merge_trades(existing: Iterable[TradeRecord],
                 incoming: Iterable[TradeRecord]) -> Tuple[TradeRecord, ...]:
    """
    Builds a fresh ticket -> trade mapping from the stored trades, lets the
    incoming batch overwrite by ticket and returns a new sorted tuple.
    """
    merged: Dict[int, TradeRecord] = {t.ticket: t for t in existing}
    for trade in incoming:
        merged[trade.ticket] = trade
    return tuple(sorted(merged.values(), key=_sort_key))


# --------------------------- Interfaces / Ports ---------------------------

class ITradeReconciler(Protocol):
    """Interface for the reconciliation service."""

    def reconcile(self,
                  existing: Sequence[TradeRecord],
                  incoming: Sequence[TradeRecord]) -> ReconciliationResult:
        """
        Merges `incoming` into `existing` by ticket and classifies the
        newly-closed trades against the pre-merge state.
        """
        ...


class TradeReconciler(ITradeReconciler):
    """Implementation of the reconciliation service. Performs no I/O."""

    def reconcile(self,
                  existing: Sequence[TradeRecord],
                  incoming: Sequence[TradeRecord]) -> ReconciliationResult:
        existing = tuple(existing)
        incoming = tuple(incoming)

        # Classification must see the state before the overwrite
        newly_closed = find_newly_closed(incoming, existing)

        known = {t.ticket for t in existing}
        incoming_tickets = {t.ticket for t in incoming}
        added = len(incoming_tickets - known)
        updated = len(incoming_tickets & known)

        merged = merge_trades(existing, incoming)
        logger.info(f"Reconciled {len(incoming)} incoming record(s): "
                    f"{added} added, {updated} updated, {len(newly_closed)} newly closed.")

        return ReconciliationResult(
            trades=merged,
            newly_closed=tuple(newly_closed),
            added=added,
            updated=updated,
        )
