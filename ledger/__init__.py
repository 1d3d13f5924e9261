"""
Ledger Package
==============

The pure core of the trade-history pipeline: record types, the broker
export parser, the storage codec and the analytics engine. Nothing in
this package performs I/O.

Package Structure:
------------------
- domain.py:     Trade records, accounts and the analytics snapshot.
- parser.py:     Broker export (CSV/TSV) -> validated trade records.
- codec.py:      Packing and compression of the account collection.
- analytics.py:  Equity curve, drawdown, streaks and dashboard metrics.
- utils.py:      Number parsing and local-time date helpers.

Public API:
-----------
This __init__.py re-exports the public components so consumers can
write `from ledger import parse_trade_export, analyze`.
"""

import logging

# Set up a default null handler to avoid "No handler found" warnings
# if the consuming application doesn't configure logging.
logging.getLogger(__name__).addHandler(logging.NullHandler())

# Export Domain Models
from .domain import (
    TradeKind,
    TradeRecord,
    TradingRecord,
    BalanceRecord,
    make_record,
    Goal,
    GOAL_METRICS,
    Account,
    EquityPoint,
    DailySummary,
    MaxDrawdown,
    DashboardMetrics,
    AnalyticsSnapshot,
    BenchmarkPoint,
)

# Export Parser
from .parser import parse_trade_export, parse_benchmark_export, normalize_columns

# Export Codec
from .codec import (
    pack_trade,
    unpack_trade,
    pack_accounts,
    unpack_accounts,
    compress,
    decompress,
    encode_accounts,
    decode_accounts,
)

# Export Analytics
from .analytics import (
    analyze,
    analyze_strategy,
    filter_by_comment,
    calculate_benchmark_performance,
)

# Export Utilities
from .utils import parse_decimal, day_identifier


__all__ = [
    # Domain
    "TradeKind",
    "TradeRecord",
    "TradingRecord",
    "BalanceRecord",
    "make_record",
    "Goal",
    "GOAL_METRICS",
    "Account",
    "EquityPoint",
    "DailySummary",
    "MaxDrawdown",
    "DashboardMetrics",
    "AnalyticsSnapshot",
    "BenchmarkPoint",

    # Parser
    "parse_trade_export",
    "parse_benchmark_export",
    "normalize_columns",

    # Codec
    "pack_trade",
    "unpack_trade",
    "pack_accounts",
    "unpack_accounts",
    "compress",
    "decompress",
    "encode_accounts",
    "decode_accounts",

    # Analytics
    "analyze",
    "analyze_strategy",
    "filter_by_comment",
    "calculate_benchmark_performance",

    # Utilities
    "parse_decimal",
    "day_identifier",
]
