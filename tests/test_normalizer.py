"""Tests for the trade-history normalizer.

Covers header mapping, delimiter detection, locale-tolerant numbers,
open/closed/balance rows, row-level drops and fatal file errors.
"""

from datetime import datetime

import pytest

from atlas.ledger.models import BALANCE_SYMBOL, TradeType
from atlas.ledger.normalizer import (
    LedgerParseError,
    parse_decimal,
    parse_export_date,
    parse_ledger,
    to_millis,
)


# ── Helpers ──────────────────────────────────────────────────────────────

HEADER = [
    "Order", "Open Time", "Type", "Volume", "Symbol", "Open Price",
    "Close Time", "Close Price", "Commission", "Swap", "Profit", "Comment",
]


def _file(*rows, header=HEADER, sep=","):
    return "\n".join(sep.join(cells) for cells in [header, *rows]) + "\n"


def _closed(ticket="1001", profit="30.00", close_time="2024.01.15 14:00:00", comment=""):
    return [
        ticket, "2024.01.15 10:30:00", "buy", "0.10", "EURUSD", "1.09500",
        close_time, "1.09800", "-0.70", "-0.10", profit, comment,
    ]


def _open(ticket="1002"):
    return [
        ticket, "2024.01.16 09:00:00", "sell", "0.20", "GBPUSD", "1.27000",
        "", "0", "0", "0", "-12.50", "",
    ]


def _balance(profit, ticket="5001", comment=""):
    return [ticket, "2024.01.10 08:00:00", "balance", "", "", "", "", "", "", "", profit, comment]


def _local(*args):
    return datetime(*args).astimezone()


# ── Cell parsing ─────────────────────────────────────────────────────────


class TestCellParsing:

    def test_decimal_comma_separator(self):
        assert parse_decimal('"12,5"') == 12.5

    def test_decimal_empty_is_zero(self):
        assert parse_decimal("  ") == 0.0
        assert parse_decimal(None) == 0.0

    def test_decimal_unparsable_is_none(self):
        assert parse_decimal("n/a") is None

    def test_decimal_trailing_garbage_ignored(self):
        assert parse_decimal("1.5 USD") == 1.5

    def test_date_dotted_format(self):
        assert parse_export_date("2024.03.01 07:05:09") == _local(2024, 3, 1, 7, 5, 9)

    def test_date_zero_sentinel(self):
        assert parse_export_date("1970.01.01 00:00:00") is None
        assert parse_export_date("") is None


# ── Rows ─────────────────────────────────────────────────────────────────


class TestParseLedger:

    def test_closed_trade_fields(self):
        [trade] = parse_ledger(_file(_closed()))
        assert trade.ticket == 1001
        assert trade.type is TradeType.BUY
        assert trade.size == pytest.approx(0.10)
        assert trade.symbol == "EURUSD"
        assert trade.open_price == pytest.approx(1.095)
        assert trade.close_price == pytest.approx(1.098)
        assert trade.commission == pytest.approx(-0.70)
        assert trade.swap == pytest.approx(-0.10)
        assert trade.profit == pytest.approx(30.0)
        assert trade.open_time == _local(2024, 1, 15, 10, 30)
        assert trade.close_time == _local(2024, 1, 15, 14, 0)
        assert trade.comment == ""
        assert trade.is_closed

    def test_open_trade_uses_explicit_open_state(self):
        [trade] = parse_ledger(_file(_open()))
        assert trade.is_open
        assert trade.close_price is None
        assert trade.close_time is None

    def test_open_trade_with_epoch_close_time(self):
        row = _open()
        row[6] = "1970.01.01 00:00:00"
        [trade] = parse_ledger(_file(row))
        assert trade.is_open

    def test_balance_deposit(self):
        [row] = parse_ledger(_file(_balance("500")))
        assert row.type is TradeType.BALANCE
        assert row.comment == "Deposit"
        assert row.symbol == BALANCE_SYMBOL
        assert row.close_time == row.open_time
        assert row.is_closed
        assert row.profit == 500.0

    def test_balance_withdrawal(self):
        [row] = parse_ledger(_file(_balance("-200")))
        assert row.comment == "Withdrawal"

    def test_balance_keeps_explicit_comment(self):
        [row] = parse_ledger(_file(_balance("250", comment="Bonus")))
        assert row.comment == "Bonus"

    def test_balance_ticket_falls_back_to_timestamp(self):
        [row] = parse_ledger(_file(_balance("100", ticket="")))
        assert row.ticket == to_millis(_local(2024, 1, 10, 8, 0))

    def test_tab_separated(self):
        content = _file(_closed(), _open(), sep="\t")
        trades = parse_ledger(content)
        assert [t.ticket for t in trades] == [1001, 1002]

    def test_quoted_cells_with_delimiter(self):
        row = _closed(profit='"30,50"', comment='"scaled out, partial"')
        [trade] = parse_ledger(_file(row))
        assert trade.profit == 30.5
        assert trade.comment == "scaled out, partial"

    def test_header_aliases_and_case(self):
        header = [h.upper() for h in HEADER]
        header[0] = '"Ticket"'
        header[3] = "Size"
        [trade] = parse_ledger(_file(_closed(), header=header))
        assert trade.ticket == 1001
        assert trade.size == pytest.approx(0.10)

    def test_minimal_columns(self):
        header = ["Order", "Open Time", "Type", "Profit"]
        content = _file(["7", "2024.02.01 10:00:00", "buy", "5"], header=header)
        [trade] = parse_ledger(content)
        assert trade.ticket == 7
        assert trade.is_open  # no close price column

    def test_file_order_preserved(self):
        trades = parse_ledger(_file(_closed("3"), _closed("1"), _closed("2")))
        assert [t.ticket for t in trades] == [3, 1, 2]

    def test_idempotent(self):
        content = _file(_closed(), _open(), _balance("500"))
        assert parse_ledger(content) == parse_ledger(content)


class TestRowDrops:

    def test_unparsable_profit_dropped(self):
        trades = parse_ledger(_file(_closed("1", profit="oops"), _closed("2")))
        assert [t.ticket for t in trades] == [2]

    def test_unparsable_ticket_dropped(self):
        trades = parse_ledger(_file(_closed("abc"), _closed("2")))
        assert [t.ticket for t in trades] == [2]

    def test_bad_open_time_dropped(self):
        row = _closed("1")
        row[1] = "yesterday"
        trades = parse_ledger(_file(row, _closed("2")))
        assert [t.ticket for t in trades] == [2]

    def test_closed_trade_without_close_time_dropped(self):
        trades = parse_ledger(_file(_closed("1", close_time=""), _closed("2")))
        assert [t.ticket for t in trades] == [2]

    def test_short_row_dropped(self):
        content = _file(_closed("1")) + "2,2024.01.15 10:30:00,buy\n"
        assert [t.ticket for t in parse_ledger(content)] == [1]

    def test_unknown_type_dropped(self):
        row = _closed("1")
        row[2] = "buy limit"
        assert parse_ledger(_file(row, _closed("2")))[0].ticket == 2

    def test_blank_lines_ignored(self):
        content = _file(_closed("1")).replace("\n", "\n\n   \n")
        assert len(parse_ledger(content)) == 1


class TestFatalErrors:

    def test_single_line_file(self):
        with pytest.raises(LedgerParseError, match="header"):
            parse_ledger(",".join(HEADER))

    def test_empty_file(self):
        with pytest.raises(LedgerParseError):
            parse_ledger("")

    def test_missing_required_column(self):
        header = [h for h in HEADER if h != "Profit"]
        row = _closed()
        del row[10]
        with pytest.raises(LedgerParseError, match="Profit"):
            parse_ledger(_file(row, header=header))
