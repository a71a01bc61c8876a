"""Trade-history normalizer — turns exported CSV/TSV text into ``Trade`` records.

Pure functions, no I/O.  The export format is the terminal's account
history report: one header row, then one row per trade or balance
operation.  Individual malformed rows are dropped; a structurally broken
file raises ``LedgerParseError``.
"""

import csv
import logging
import re
from datetime import datetime
from typing import Optional

from atlas.ledger.models import (
    BALANCE_CLOSE_PRICE,
    BALANCE_SYMBOL,
    Trade,
    TradeType,
)

logger = logging.getLogger("atlas.normalizer")

# Header cell (lower-cased, unquoted) → Trade field
_COLUMN_ALIASES = {
    "order": "ticket",
    "ticket": "ticket",
    "open time": "open_time",
    "type": "type",
    "volume": "size",
    "size": "size",
    "symbol": "symbol",
    "open price": "open_price",
    "close time": "close_time",
    "close price": "close_price",
    "commission": "commission",
    "swap": "swap",
    "profit": "profit",
    "comment": "comment",
}

_REQUIRED_FIELDS = {
    "ticket": "Order",
    "open_time": "Open Time",
    "type": "Type",
    "profit": "Profit",
}

_FLOAT_PREFIX = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_INT_PREFIX = re.compile(r"^[+-]?\d+")


class LedgerParseError(ValueError):
    """Raised when a file cannot be read as a trade history at all."""


class _MalformedRow(ValueError):
    """A single row is unusable; the row is dropped."""


# ── Cell parsing ─────────────────────────────────────────────────────────


def detect_delimiter(header_line: str) -> str:
    """Tab if the header contains one, comma otherwise."""
    return "\t" if "\t" in header_line else ","


def split_row(line: str, delimiter: str) -> list[str]:
    """Split one data line.

    Comma-separated rows honour double-quoted cells (which may contain the
    delimiter); tab-separated rows are split on the raw delimiter.
    """
    if delimiter == ",":
        return next(csv.reader([line]), [])
    return line.split(delimiter)


def clean_cell(value: Optional[str]) -> str:
    return (value or "").replace('"', "").strip()


def parse_decimal(value: Optional[str]) -> Optional[float]:
    """Parse a number that may use a comma as decimal separator.

    Empty cells read as ``0.0``; cells with no leading number return
    ``None`` so callers can decide whether that is fatal for the row.
    """
    cleaned = clean_cell(value)
    if not cleaned:
        return 0.0
    match = _FLOAT_PREFIX.match(cleaned.replace(",", ".", 1))
    if match is None:
        return None
    return float(match.group(0))


def parse_ticket(value: Optional[str]) -> Optional[int]:
    """Leading integer of the cell, or ``None``."""
    match = _INT_PREFIX.match(clean_cell(value))
    return int(match.group(0)) if match else None


def parse_export_date(value: Optional[str]) -> Optional[datetime]:
    """Parse ``YYYY.MM.DD HH:MM:SS`` (local time) into an aware datetime.

    Returns ``None`` for an empty cell or the 1970-01-01 "zero" date that
    exports write for positions that are still open.  Raises
    ``_MalformedRow`` when the cell holds something that is not a date.
    """
    cleaned = clean_cell(value)
    if not cleaned:
        return None
    date_part, sep, time_part = cleaned.partition(" ")
    try:
        parsed = datetime.fromisoformat(date_part.replace(".", "-") + sep + time_part.strip())
    except ValueError as exc:
        raise _MalformedRow(f"unparsable date {cleaned!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    if (parsed.year, parsed.month, parsed.day) == (1970, 1, 1):
        return None
    return parsed


def to_millis(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


# ── Header ───────────────────────────────────────────────────────────────


def _build_column_map(header_line: str, delimiter: str) -> dict[str, int]:
    columns: dict[str, int] = {}
    for index, cell in enumerate(header_line.lstrip("\ufeff").split(delimiter)):
        name = _COLUMN_ALIASES.get(clean_cell(cell).lower())
        if name is not None:
            columns[name] = index

    missing = [label for key, label in _REQUIRED_FIELDS.items() if key not in columns]
    if missing:
        raise LedgerParseError(
            "File is missing required column(s): " + ", ".join(missing)
        )
    return columns


# ── Rows ─────────────────────────────────────────────────────────────────


def _parse_row(cells: list[str], columns: dict[str, int]) -> Trade:
    def cell(name: str) -> Optional[str]:
        index = columns.get(name)
        return cells[index] if index is not None else None

    trade_type = TradeType.from_raw(clean_cell(cell("type")))
    if trade_type is None:
        raise _MalformedRow(f"unknown type {clean_cell(cell('type'))!r}")

    profit = parse_decimal(cell("profit"))
    comment = clean_cell(cell("comment"))

    if trade_type is TradeType.BALANCE:
        op_time = parse_export_date(cell("open_time"))
        if op_time is None:
            raise _MalformedRow("balance row without a date")
        profit = profit if profit is not None else 0.0
        ticket = parse_ticket(cell("ticket"))
        return Trade(
            ticket=ticket if ticket else to_millis(op_time),
            open_time=op_time,
            type=TradeType.BALANCE,
            size=0.0,
            symbol=BALANCE_SYMBOL,
            open_price=0.0,
            close_time=op_time,
            close_price=BALANCE_CLOSE_PRICE,
            commission=0.0,
            swap=0.0,
            profit=profit,
            comment=comment or ("Deposit" if profit > 0 else "Withdrawal"),
        )

    if profit is None:
        raise _MalformedRow("unparsable profit")
    ticket = parse_ticket(cell("ticket"))
    if ticket is None:
        raise _MalformedRow("unparsable ticket")
    open_time = parse_export_date(cell("open_time"))
    if open_time is None:
        raise _MalformedRow("missing open time")

    close_price = parse_decimal(cell("close_price")) or 0.0
    close_time = parse_export_date(cell("close_time"))
    if close_price != 0 and close_time is None:
        raise _MalformedRow("closed trade without close time")

    return Trade(
        ticket=ticket,
        open_time=open_time,
        type=trade_type,
        size=parse_decimal(cell("size")) or 0.0,
        symbol=clean_cell(cell("symbol")),
        open_price=parse_decimal(cell("open_price")) or 0.0,
        close_time=close_time,
        close_price=close_price if close_price != 0 else None,
        commission=parse_decimal(cell("commission")) or 0.0,
        swap=parse_decimal(cell("swap")) or 0.0,
        profit=profit,
        comment=comment,
    )


def parse_ledger(content: str) -> list[Trade]:
    """Parse an exported trade history into ``Trade`` records, in file order.

    Raises:
        LedgerParseError: fewer than two non-blank lines, or a required
            column (Order, Open Time, Type, Profit) is absent.
    """
    lines = [line for line in content.splitlines() if line.strip()]
    if len(lines) < 2:
        raise LedgerParseError(
            "File must have a header and at least one data row."
        )

    delimiter = detect_delimiter(lines[0])
    columns = _build_column_map(lines[0], delimiter)
    last_index = max(columns.values())

    trades: list[Trade] = []
    skipped = 0
    for line_no, line in enumerate(lines[1:], start=2):
        cells = split_row(line, delimiter)
        if len(cells) <= last_index:
            skipped += 1
            continue
        try:
            trades.append(_parse_row(cells, columns))
        except _MalformedRow as exc:
            skipped += 1
            logger.debug("Dropping line %d: %s", line_no, exc)

    if skipped:
        logger.info("Parsed %d row(s), skipped %d malformed row(s).", len(trades), skipped)
    return trades
