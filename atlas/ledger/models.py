"""Ledger data models — typed representations of accounts, trades and derived analytics."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional


# Close-price sentinel written for balance rows so they always read as closed.
BALANCE_CLOSE_PRICE = 1.0
BALANCE_SYMBOL = "Balance"


class TradeType(str, Enum):
    """Kind of ledger entry."""

    BUY = "buy"
    SELL = "sell"
    BALANCE = "balance"

    @classmethod
    def from_raw(cls, raw: str) -> Optional["TradeType"]:
        """Map an exported ``Type`` cell to a member, or ``None`` if unknown."""
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class Trade:
    """One ledger entry.

    ``close_price`` is ``None`` while the position is open.  The export
    format encodes that as ``0``; the codec layers translate at the edges.
    ``close_time`` may also be ``None`` for open positions.
    """

    ticket: int
    open_time: datetime
    type: TradeType
    size: float
    symbol: str
    open_price: float
    close_time: Optional[datetime]
    close_price: Optional[float]
    commission: float
    swap: float
    profit: float
    comment: str = ""

    @property
    def is_balance(self) -> bool:
        return self.type is TradeType.BALANCE

    @property
    def is_closed(self) -> bool:
        """Balance rows are always closed; trades once they carry a close price."""
        return self.is_balance or self.close_price is not None

    @property
    def is_open(self) -> bool:
        return not self.is_closed

    @property
    def net(self) -> float:
        """Realised (or floating) balance change: profit + commission + swap."""
        return self.profit + self.commission + self.swap


@dataclass(frozen=True)
class Account:
    """A named trading account owning a ledger."""

    name: str
    initial_balance: float
    currency: str = "USD"
    data_url: Optional[str] = None
    trades: list[Trade] = field(default_factory=list)
    last_updated: Optional[datetime] = None
    goals: dict = field(default_factory=dict)

    @property
    def currency_symbol(self) -> str:
        return "€" if self.currency == "EUR" else "$"


@dataclass(frozen=True)
class NotificationSettings:
    """Which notification categories are active."""

    trade_closed: bool = True
    weekly_summary: bool = True


@dataclass(frozen=True)
class MergeResult:
    """Outcome of reconciling a fresh batch against a persisted ledger.

    ``noop`` is set when the merge was refused (empty fresh batch against a
    non-empty ledger); ``merged`` is then the untouched existing ledger.
    """

    merged: list[Trade]
    added: list[Trade] = field(default_factory=list)
    changed: list[Trade] = field(default_factory=list)
    unchanged: list[Trade] = field(default_factory=list)
    noop: bool = False

    @property
    def has_changes(self) -> bool:
        return bool(self.added or self.changed)


# ── Analytics ────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class ChartDataPoint:
    """One point of the equity curve.

    ``trade`` is ``None`` for synthetic anchors (inception, current equity).
    ``timestamp`` is epoch milliseconds.
    """

    timestamp: int
    balance: float
    trade: Optional[Trade]
    index: int
    is_equity_point: bool = False
    floating_pnl: Optional[float] = None


@dataclass(frozen=True)
class DailySummary:
    """Realised P/L of actual trades closed on one local calendar day."""

    date_key: str  # YYYY-MM-DD, local time
    profit: float
    trade_count: int


@dataclass(frozen=True)
class MaxDrawdown:
    absolute: float = 0.0
    percentage: float = 0.0


@dataclass(frozen=True)
class DashboardMetrics:
    """Scalar performance summary for one account."""

    total_balance: float  # equity: closed balance + floating P/L
    floating_pnl: float
    todays_floating_pnl: float
    start_of_day_balance: float
    today_return_percent: float
    net_profit: float
    win_rate: float
    total_orders: int
    profit_factor: Optional[float]  # None when there is no losing P/L
    max_drawdown: MaxDrawdown
    total_deposits: float
    total_withdrawals: float
    average_win: float
    average_loss: float
    winning_trades: int
    losing_trades: int
    max_consecutive_wins: int
    max_consecutive_losses: int
    current_streak: int  # > 0 wins in a row, < 0 losses in a row
    last_day_profit: float
    last_day_profit_days_ago: int
    total_commission: float
    total_swap: float
    gross_profit: float
    gross_loss: float
    total_return_percent: float


@dataclass(frozen=True)
class ProcessedData:
    """Everything a dashboard needs, recomputed from the ledger on demand."""

    metrics: DashboardMetrics
    chart_data: list[ChartDataPoint]
    daily_summary: list[DailySummary]
    recent_trades: list[Trade]
    closed_trades: list[Trade]
    open_trades: list[Trade]


@dataclass(frozen=True)
class CalendarDay:
    date: date
    profit: float
    trade_count: int
    is_current_month: bool
    is_today: bool


@dataclass(frozen=True)
class WeeklySummary:
    week_label: str
    pnl: float
    trading_days: int


@dataclass(frozen=True)
class CalendarMonth:
    """Monday-first month grid with per-week totals."""

    year: int
    month: int
    weeks: list[list[CalendarDay]]
    weekly_summaries: list[WeeklySummary]
    monthly_profit: float
