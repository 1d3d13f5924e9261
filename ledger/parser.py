"""
Broker Export Parser
--------------------

Turns the trade history a broker terminal exports (comma or tab
separated, auto-detected from the header line) into validated
`TradeRecord`s.

The parser is permissive at row granularity: a malformed row is
dropped and the rest of the file is still returned. It never raises
for bad content; an unusable file simply yields an empty list.
"""

import csv
import io
import logging
import math
import re
from datetime import datetime
from typing import Any, Dict, List, Optional

import pandas as pd

from .domain import BalanceRecord, BenchmarkPoint, TradeKind, TradeRecord, make_record
from .utils import parse_decimal, to_epoch_ms

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = [
    "ticket",
    "open_time",
    "type",
    "size",
    "symbol",
    "open_price",
    "close_time",
    "close_price",
    "commission",
    "swap",
    "profit",
]
OPTIONAL_COLUMNS = ["comment"]

# header token (lower-case, unquoted) -> canonical column
HEADER_SYNONYMS = {
    "order": "ticket",
    "ticket": "ticket",
    "position": "ticket",
    "open time": "open_time",
    "opentime": "open_time",
    "open_time": "open_time",
    "type": "type",
    "volume": "size",
    "size": "size",
    "lots": "size",
    "symbol": "symbol",
    "item": "symbol",
    "open price": "open_price",
    "openprice": "open_price",
    "open_price": "open_price",
    "close time": "close_time",
    "closetime": "close_time",
    "close_time": "close_time",
    "close price": "close_price",
    "closeprice": "close_price",
    "close_price": "close_price",
    "commission": "commission",
    "swap": "swap",
    "profit": "profit",
    "comment": "comment",
}

RE_LEADING_INT = re.compile(r"^[+-]?\d+")


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Maps header variants onto the canonical column names; unknown columns are kept as-is."""
    colmap = {c: str(c).replace('"', '').strip().lower() for c in df.columns}
    df = df.rename(columns=colmap)
    df = df.rename(columns={k: v for k, v in HEADER_SYNONYMS.items() if k in df.columns})
    # 'order' and 'ticket' may both be present; first one wins
    return df.loc[:, ~df.columns.duplicated()]


def _clean(value: Any) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return ""
    return str(value).replace('"', '').strip()


def _parse_ticket(value: Any) -> Optional[int]:
    match = RE_LEADING_INT.match(_clean(value))
    return int(match.group(0)) if match else None


def _parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parses a broker date such as '2024.01.05 13:45:10'.
    Returns None for blank, zero, unparseable or epoch dates.
    """
    text = _clean(value).replace('.', '-')
    if not text or text == "0":
        return None
    ts = pd.to_datetime(text, errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is not None:
        moment = ts.to_pydatetime().astimezone().replace(tzinfo=None)
    else:
        moment = ts.to_pydatetime()
    if moment.year <= 1970:
        # terminals write 1970.01.01 for "no date"
        return None
    return moment


def _is_short_row(row: Dict[str, Any]) -> bool:
    """Rows with fewer cells than the header come back with NaN padding."""
    for col in REQUIRED_COLUMNS:
        value = row.get(col)
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return True
    return False


def _parse_balance_row(row: Dict[str, Any]) -> Optional[TradeRecord]:
    op_time = _parse_timestamp(row.get("open_time"))
    if op_time is None:
        op_time = _parse_timestamp(row.get("close_time"))
    if op_time is None:
        return None

    profit = parse_decimal(row.get("profit"), default=math.nan)
    if math.isnan(profit):
        return None

    ticket = _parse_ticket(row.get("ticket"))
    if ticket is None:
        # synthesized id, distinct from broker tickets
        ticket = to_epoch_ms(op_time)

    return BalanceRecord.create(ticket, op_time, profit, _clean(row.get("comment")))


def _parse_trading_row(row: Dict[str, Any]) -> Optional[TradeRecord]:
    profit = parse_decimal(row.get("profit"), default=math.nan)
    if math.isnan(profit):
        return None

    ticket = _parse_ticket(row.get("ticket"))
    if ticket is None:
        return None

    kind = _clean(row.get("type")).lower()
    if kind not in (TradeKind.BUY.value, TradeKind.SELL.value):
        return None

    open_time = _parse_timestamp(row.get("open_time"))
    if open_time is None:
        return None

    raw_close = _clean(row.get("close_time"))
    close_time = _parse_timestamp(raw_close)
    if close_time is None:
        if raw_close and raw_close != "0" and not raw_close.startswith("1970"):
            # present but garbage
            return None
        # still-open position
        close_time = open_time

    def number(col: str) -> float:
        value = parse_decimal(row.get(col))
        return 0.0 if math.isnan(value) else value

    return make_record(
        ticket=ticket,
        open_time=open_time,
        kind=TradeKind(kind),
        size=number("size"),
        symbol=_clean(row.get("symbol")),
        open_price=number("open_price"),
        close_time=close_time,
        close_price=number("close_price"),
        commission=number("commission"),
        swap=number("swap"),
        profit=profit,
        comment=_clean(row.get("comment")),
    )


def parse_trade_export(content: str) -> List[TradeRecord]:
    """
    Parses a broker export into trade records, in file order.

    Required columns: ticket/order, open time, type, volume/size, symbol,
    open price, close time, close price, commission, swap, profit.
    Optional: comment. Header tokens are matched case-insensitively.
    """
    if not content:
        return []
    lines = [line for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        logger.warning("Export has no data rows; nothing to parse.")
        return []

    separator = "\t" if "\t" in lines[0] else ","
    try:
        df = pd.read_csv(
            io.StringIO("\n".join(lines)),
            sep=separator,
            dtype=str,
            keep_default_na=False,
            index_col=False,
            on_bad_lines="skip",
            quoting=csv.QUOTE_NONE if separator == "\t" else csv.QUOTE_MINIMAL,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        logger.warning(f"Could not read export: {e}")
        return []

    df = normalize_columns(df)
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        logger.warning(f"Export is missing required columns {missing}; every row dropped.")
        return []

    records: List[TradeRecord] = []
    dropped = 0
    for row in df.to_dict(orient="records"):
        if _is_short_row(row):
            dropped += 1
            continue
        if _clean(row.get("type")).lower() == TradeKind.BALANCE.value:
            record = _parse_balance_row(row)
        else:
            record = _parse_trading_row(row)
        if record is None:
            dropped += 1
            continue
        records.append(record)

    if dropped:
        logger.debug(f"Dropped {dropped} malformed row(s) from export.")
    return records


def parse_benchmark_export(content: str) -> List[BenchmarkPoint]:
    """
    Parses a published spreadsheet of index closes.
    Expected columns by position: Date (MM/DD/YYYY), Open, Close.
    Rows with a malformed date or close are skipped. Sorted ascending.
    """
    lines = [line for line in (content or "").splitlines() if line.strip()]
    if len(lines) < 2:
        return []

    try:
        df = pd.read_csv(io.StringIO("\n".join(lines)), dtype=str, keep_default_na=False,
                         on_bad_lines="skip")
    except (pd.errors.ParserError, pd.errors.EmptyDataError, ValueError) as e:
        logger.warning(f"Could not read benchmark export: {e}")
        return []
    if df.shape[1] < 3:
        return []

    dates = pd.to_datetime(df.iloc[:, 0].str.strip(), format="%m/%d/%Y", errors="coerce")
    closes = pd.to_numeric(df.iloc[:, 2].str.strip(), errors="coerce")
    frame = pd.DataFrame({"date": dates, "close": closes}).dropna().sort_values("date")

    return [
        BenchmarkPoint(date=row.date.to_pydatetime(), close=float(row.close))
        for row in frame.itertuples(index=False)
    ]
