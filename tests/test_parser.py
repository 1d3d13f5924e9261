"""
Unit Tests for the Broker Export Parser
=======================================
"""

from datetime import datetime

import pandas as pd
import pytest

from ledger import (
    BalanceRecord,
    TradeKind,
    TradingRecord,
    calculate_benchmark_performance,
    normalize_columns,
    parse_benchmark_export,
    parse_trade_export,
)
from ledger.utils import parse_decimal, to_epoch_ms
from tests.conftest import EXPORT_HEADER, build_export


# =============================================================================
# HEADER & DELIMITER
# =============================================================================

class TestHeaderDetection:

    def test_comma_export(self, sample_export):
        records = parse_trade_export(sample_export)

        assert [r.ticket for r in records] == [1, 2]
        first = records[0]
        assert isinstance(first, TradingRecord)
        assert first.kind is TradeKind.BUY
        assert first.open_time == datetime(2024, 1, 1, 10, 0)
        assert first.close_time == datetime(2024, 1, 2, 10, 0)
        assert first.size == pytest.approx(0.1)
        assert first.close_price == pytest.approx(1.11)
        assert first.commission == pytest.approx(-0.5)
        assert first.profit == pytest.approx(100.0)
        assert first.comment == "scalp"

    def test_tab_export_with_synonyms(self):
        header = "Order\tOpen Time\tType\tSize\tSymbol\tOpen Price\tClose Time\tClose Price\tCommission\tSwap\tProfit"
        row = "7\t2024.02.01 12:00:00\tsell\t1\tXAUUSD\t2030.5\t2024.02.01 14:30:00\t2025.5\t-7\t0\t500"

        records = parse_trade_export(build_export(row, header=header))

        assert len(records) == 1
        assert records[0].ticket == 7
        assert records[0].kind is TradeKind.SELL
        assert records[0].size == 1.0
        assert records[0].comment == ""

    def test_header_is_case_insensitive_and_extra_columns_ignored(self):
        header = "TICKET,OPEN TIME,TYPE,VOLUME,SYMBOL,OPEN PRICE,CLOSE TIME,CLOSE PRICE,COMMISSION,SWAP,PROFIT,MAGIC"
        row = "11,2024.03.01 10:00:00,buy,0.5,EURUSD,1.08,2024.03.01 11:00:00,1.09,0,0,50,12345"

        records = parse_trade_export(build_export(row, header=header))

        assert len(records) == 1
        assert records[0].profit == 50.0

    def test_normalize_columns_maps_synonyms(self):
        df = pd.DataFrame(columns=['"Order"', "Volume", "Open Time", "Unknown"])
        df = normalize_columns(df)
        assert list(df.columns) == ["ticket", "size", "open_time", "unknown"]


# =============================================================================
# ROW RULES
# =============================================================================

class TestRowRules:

    def test_open_position_has_close_time_equal_to_open_time(self, sample_export):
        open_trade = parse_trade_export(sample_export)[1]

        assert open_trade.is_open
        assert open_trade.close_price == 0
        assert open_trade.close_time == open_trade.open_time

    def test_decimal_comma_and_quotes(self):
        header = EXPORT_HEADER.replace(",", "\t")
        row = '5\t2024.01.05 10:00:00\tbuy\t"0,10"\tEURUSD\t"1,0950"\t2024.01.05 12:00:00\t"1,0990"\t"-0,70"\t0\t"12,5"\t'

        records = parse_trade_export(build_export(row, header=header))

        assert len(records) == 1
        assert records[0].size == pytest.approx(0.1)
        assert records[0].profit == pytest.approx(12.5)
        assert records[0].commission == pytest.approx(-0.7)

    def test_balance_row_becomes_deposit(self):
        row = "3,2024.01.01 08:00:00,balance,0,,0,2024.01.01 08:00:00,0,0,0,1000.00,"

        record = parse_trade_export(build_export(row))[0]

        assert isinstance(record, BalanceRecord)
        assert record.kind is TradeKind.BALANCE
        assert record.ticket == 3
        assert record.open_time == record.close_time == datetime(2024, 1, 1, 8, 0)
        assert record.close_price == 1.0
        assert record.size == 0.0
        assert record.comment == "Deposit"

    def test_negative_balance_row_is_withdrawal(self):
        row = "4,2024.01.09 08:00:00,Balance,0,,0,2024.01.09 08:00:00,0,0,0,-250,"
        assert parse_trade_export(build_export(row))[0].comment == "Withdrawal"

    def test_balance_row_keeps_its_comment(self):
        row = "4,2024.01.09 08:00:00,balance,0,,0,2024.01.09 08:00:00,0,0,0,300,Bonus"
        assert parse_trade_export(build_export(row))[0].comment == "Bonus"

    def test_balance_row_without_ticket_gets_synthesized_id(self):
        row = ",2024.01.01 08:00:00,balance,0,,0,2024.01.01 08:00:00,0,0,0,1000,"

        record = parse_trade_export(build_export(row))[0]

        assert record.ticket == to_epoch_ms(datetime(2024, 1, 1, 8, 0))

    @pytest.mark.parametrize("row", [
        "20,2024.01.01 10:00:00,buy,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.2,0,0,abc,",
        "21,garbage,buy,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.2,0,0,10,",
        "22,1970.01.01 00:00:00,buy,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.2,0,0,10,",
        "23,2024.01.01 10:00:00,buy,0.1,EURUSD,1.1,not-a-date,1.2,0,0,10,",
        "24,2024.01.01 10:00:00,buy limit,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.2,0,0,10,",
        "25,2024.01.01 10:00:00,buy",
        "x,2024.01.01 10:00:00,buy,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.2,0,0,10,",
        "26,0,balance,0,,0,0,0,0,0,100,",
    ])
    def test_malformed_rows_are_dropped(self, row):
        good = "30,2024.01.01 10:00:00,sell,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.0,0,0,10,"

        records = parse_trade_export(build_export(row, good))

        assert [r.ticket for r in records] == [30]

    def test_unparseable_secondary_numbers_become_zero(self):
        row = "31,2024.01.01 10:00:00,buy,n/a,EURUSD,1.1,2024.01.02 10:00:00,1.2,-,0,10,"

        record = parse_trade_export(build_export(row))[0]

        assert record.size == 0.0
        assert record.commission == 0.0


# =============================================================================
# WHOLE-INPUT FAILURES
# =============================================================================

class TestWholeInput:

    @pytest.mark.parametrize("content", ["", "\n\n", EXPORT_HEADER, EXPORT_HEADER + "\n\n"])
    def test_no_data_rows_yields_empty(self, content):
        assert parse_trade_export(content) == []

    def test_missing_required_column_yields_empty(self):
        header = "Ticket,Open Time,Type,Volume,Symbol,Open Price,Close Time,Close Price,Commission,Swap"
        row = "1,2024.01.01 10:00:00,buy,0.1,EURUSD,1.1,2024.01.02 10:00:00,1.2,0,0"
        assert parse_trade_export(build_export(row, header=header)) == []

    def test_rows_keep_file_order(self):
        rows = [
            "9,2024.01.09 10:00:00,buy,0.1,EURUSD,1.1,2024.01.09 11:00:00,1.2,0,0,1,",
            "3,2024.01.03 10:00:00,buy,0.1,EURUSD,1.1,2024.01.03 11:00:00,1.2,0,0,1,",
            "5,2024.01.05 10:00:00,buy,0.1,EURUSD,1.1,2024.01.05 11:00:00,1.2,0,0,1,",
        ]
        assert [r.ticket for r in parse_trade_export(build_export(*rows))] == [9, 3, 5]


class TestParseDecimal:

    @pytest.mark.parametrize("raw,expected", [
        ("1.5", 1.5),
        ("1,5", 1.5),
        ('"-2,25"', -2.25),
        ("  3 ", 3.0),
        ("", 0.0),
        (None, 0.0),
        (7, 7.0),
    ])
    def test_values(self, raw, expected):
        assert parse_decimal(raw) == pytest.approx(expected)

    def test_text_is_nan(self):
        assert parse_decimal("abc") != parse_decimal("abc")  # NaN


# =============================================================================
# BENCHMARK
# =============================================================================

class TestBenchmark:

    CSV = "\n".join([
        "Date,Open,Close",
        "01/03/2024,4700,4750",
        "01/02/2024,4690,4700",
        "bad,1,2",
        "01/04/2024,4750,abc",
    ])

    def test_parse_skips_bad_rows_and_sorts(self):
        points = parse_benchmark_export(self.CSV)

        assert [p.date for p in points] == [datetime(2024, 1, 2), datetime(2024, 1, 3)]
        assert [p.close for p in points] == [4700.0, 4750.0]

    def test_performance_from_first_close_on_or_after_start(self):
        points = parse_benchmark_export(self.CSV)

        assert calculate_benchmark_performance(datetime(2024, 1, 1), points) == pytest.approx(50 / 4700 * 100)
        assert calculate_benchmark_performance(datetime(2024, 1, 3), points) == pytest.approx(0.0)

    def test_performance_undeterminable(self):
        points = parse_benchmark_export(self.CSV)

        assert calculate_benchmark_performance(datetime(2024, 2, 1), points) is None
        assert calculate_benchmark_performance(datetime(2024, 1, 1), []) is None
        assert parse_benchmark_export("Date,Open,Close") == []
