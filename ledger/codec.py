"""
Trade Codec
-----------

Storage encoding for the account collection, in two layers:

1. Structural packing: each `TradeRecord` becomes a positional list
   (timestamps as wall-clock milliseconds, read as UTC), accounts are
   wrapped in a versioned envelope.
2. Compression: the serialized envelope is gzip-compressed before it
   reaches durable storage.

Reading accepts every shape that has ever been written:

- version 2 envelope: {"format": "atlas-accounts", "version": 2, "accounts": [...]}
- version 1 (bare list): items are either packed accounts
  ({"isPacked": true, "packedTrades": [...]}) or legacy object-shaped
  accounts ({"trades": [{"openTime": "...Z", ...}]}). Version 1 times
  are real Unix milliseconds or UTC ISO strings and are read as local time.
- uncompressed JSON text, for data written before compression existed.
"""

import gzip
import json
import logging
import zlib
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from .domain import Account, Goal, TradeKind, TradeRecord, make_record
from .utils import from_epoch_ms, local_from_unix_ms, to_epoch_ms

logger = logging.getLogger(__name__)

STORAGE_FORMAT = "atlas-accounts"
CURRENT_VERSION = 2

# Order of the positional fields in a packed trade
TRADE_KEYS = (
    "ticket",
    "open_time",
    "kind",
    "size",
    "symbol",
    "open_price",
    "close_time",
    "close_price",
    "commission",
    "swap",
    "profit",
    "comment",
)

_MISSING = object()


# ----------------------------- Structural Packing -----------------------------

def pack_trade(trade: TradeRecord) -> List[Any]:
    return [
        trade.ticket,
        to_epoch_ms(trade.open_time),
        trade.kind.value,
        trade.size,
        trade.symbol,
        trade.open_price,
        to_epoch_ms(trade.close_time),
        trade.close_price,
        trade.commission,
        trade.swap,
        trade.profit,
        trade.comment or "",
    ]


def unpack_trade(row: Sequence[Any], unix_times: bool = False) -> TradeRecord:
    """`unix_times` marks version 1 rows, whose times are real Unix milliseconds."""
    if len(row) != len(TRADE_KEYS):
        raise ValueError(f"Packed trade has {len(row)} fields, expected {len(TRADE_KEYS)}")
    values = dict(zip(TRADE_KEYS, row))
    to_datetime = local_from_unix_ms if unix_times else from_epoch_ms
    values["open_time"] = to_datetime(values["open_time"])
    values["close_time"] = to_datetime(values["close_time"])
    return make_record(**values)


def _pack_goals(goals: Dict[str, Goal]) -> Dict[str, Dict[str, Any]]:
    return {
        metric: {"target": g.target, "enabled": g.enabled, "showOnChart": g.show_on_chart}
        for metric, g in goals.items()
    }


def _unpack_goals(raw: Optional[Dict[str, Any]]) -> Dict[str, Goal]:
    goals: Dict[str, Goal] = {}
    for metric, g in (raw or {}).items():
        if not isinstance(g, dict) or "target" not in g:
            continue
        goals[metric] = Goal(
            target=float(g["target"]),
            enabled=bool(g.get("enabled", True)),
            show_on_chart=bool(g.get("showOnChart", False)),
        )
    return goals


def pack_account(account: Account) -> Dict[str, Any]:
    return {
        "name": account.name,
        "initialBalance": account.initial_balance,
        "currency": account.currency,
        "goals": _pack_goals(account.goals),
        "dataUrl": account.data_url,
        "lastUpdated": account.last_updated,
        "isPacked": True,
        "packedTrades": [pack_trade(t) for t in account.trades],
    }


def pack_accounts(accounts: Sequence[Account]) -> Dict[str, Any]:
    return {
        "format": STORAGE_FORMAT,
        "version": CURRENT_VERSION,
        "accounts": [pack_account(a) for a in accounts],
    }


def _account_from(item: Dict[str, Any], trades: Sequence[TradeRecord]) -> Account:
    return Account(
        name=item["name"],
        initial_balance=float(item.get("initialBalance", 0.0)),
        currency=item.get("currency") or "USD",
        trades=tuple(trades),
        data_url=item.get("dataUrl"),
        last_updated=item.get("lastUpdated"),
        goals=_unpack_goals(item.get("goals")),
    )


def _parse_legacy_time(value: Any) -> datetime:
    if isinstance(value, (int, float)):
        return local_from_unix_ms(int(value))
    moment = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if moment.tzinfo is not None:
        # stored as UTC ISO strings; records are kept in local time
        moment = moment.astimezone().replace(tzinfo=None)
    return moment


def _unpack_legacy_trade(raw: Dict[str, Any]) -> Optional[TradeRecord]:
    try:
        return make_record(
            ticket=raw["ticket"],
            open_time=_parse_legacy_time(raw["openTime"]),
            kind=TradeKind(str(raw["type"]).lower()),
            size=raw.get("size", 0.0),
            symbol=raw.get("symbol", ""),
            open_price=raw.get("openPrice", 0.0),
            close_time=_parse_legacy_time(raw["closeTime"]),
            close_price=raw.get("closePrice", 0.0),
            commission=raw.get("commission", 0.0),
            swap=raw.get("swap", 0.0),
            profit=raw.get("profit", 0.0),
            comment=raw.get("comment", ""),
        )
    except (KeyError, TypeError, ValueError) as e:
        logger.warning(f"Skipping unreadable legacy trade {raw.get('ticket')}: {e}")
        return None


def _unpack_account_item(item: Any, unix_times: bool) -> Optional[Account]:
    if not isinstance(item, dict) or "name" not in item:
        logger.warning("Skipping stored account without a name.")
        return None
    if item.get("isPacked") and "packedTrades" in item:
        return _account_from(item, [unpack_trade(row, unix_times) for row in item["packedTrades"]])
    if "trades" in item:
        trades = [_unpack_legacy_trade(t) for t in item["trades"]]
        return _account_from(item, [t for t in trades if t is not None])
    logger.warning(f"Stored account '{item['name']}' has no trades field; loaded empty.")
    return _account_from(item, [])


def unpack_accounts(data: Any) -> List[Account]:
    """Dispatches on the envelope version; a bare list is the version 1 layout."""
    if isinstance(data, dict):
        version = data.get("version")
        if data.get("format") != STORAGE_FORMAT or version is None:
            raise ValueError("Stored payload is not an account envelope")
        if version != CURRENT_VERSION:
            raise ValueError(f"Unsupported account storage version: {version}")
        items = data.get("accounts") or []
        unix_times = False
    elif isinstance(data, list):
        items = data
        unix_times = True
    elif data is None:
        return []
    else:
        raise ValueError(f"Unexpected stored payload type: {type(data).__name__}")

    accounts = [_unpack_account_item(item, unix_times) for item in items]
    return [a for a in accounts if a is not None]


# ----------------------------- Compression -----------------------------

def compress(text: str) -> bytes:
    return gzip.compress(text.encode("utf-8"))


def decompress(payload: bytes) -> Optional[str]:
    """Returns None when the payload is not a gzip stream."""
    try:
        return gzip.decompress(payload).decode("utf-8")
    except (OSError, EOFError, zlib.error, UnicodeDecodeError):
        return None


def _is_json_candidate(text: str) -> bool:
    trimmed = text.strip()
    if not trimmed:
        return False
    first = trimmed[0]
    return first in '{["tfn-' or first.isdigit()


def encode_accounts(accounts: Sequence[Account]) -> bytes:
    """Packs, serializes and compresses the whole collection."""
    text = json.dumps(pack_accounts(accounts), separators=(",", ":"), ensure_ascii=False)
    return compress(text)


def decode_accounts(payload: Union[bytes, str]) -> List[Account]:
    """
    Inverse of `encode_accounts`. Falls back to reading the payload as
    uncompressed JSON when it does not decompress, and raises ValueError
    only when neither reading works.
    """
    raw = payload.encode("utf-8") if isinstance(payload, str) else payload
    if not raw:
        return []

    parsed: Any = _MISSING
    text = decompress(raw)
    if text is not None:
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Decompressed account payload is not valid JSON.")

    if parsed is _MISSING:
        try:
            legacy_text = raw.decode("utf-8")
        except UnicodeDecodeError:
            legacy_text = ""
        if _is_json_candidate(legacy_text):
            try:
                parsed = json.loads(legacy_text)
            except json.JSONDecodeError as e:
                logger.error(f"Failed to parse uncompressed account payload: {e}")

    if parsed is _MISSING:
        raise ValueError("Stored account payload is neither compressed nor JSON")
    return unpack_accounts(parsed)
