"""Performance analytics — equity curve and metrics summary for one account.

Pure functions of the ledger and the initial balance.  Monetary sums use
plain floats; only chart balances are rounded (2 dp) when a point is built.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional

from atlas.analytics.calendar import day_identifier
from atlas.analytics.drawdown import DrawdownTracker
from atlas.ledger.models import (
    Account,
    ChartDataPoint,
    DailySummary,
    DashboardMetrics,
    ProcessedData,
    Trade,
)
from atlas.ledger.normalizer import to_millis

logger = logging.getLogger("atlas.analytics")

RECENT_TRADES_LIMIT = 6


@dataclass(frozen=True)
class DayDetail:
    """Closed trades of one local day with the balance it started from."""

    day: date
    trades: list[Trade]
    start_of_day_balance: float
    net_profit: float
    return_percent: float


def _is_valid(trade: Trade) -> bool:
    return trade.open_time is not None and (trade.close_time is not None or trade.is_open)


def _local_midnight(moment: datetime) -> datetime:
    local = moment.astimezone()
    return datetime.combine(local.date(), time.min, tzinfo=local.tzinfo)


def _streaks(trades: list[Trade]) -> tuple[int, int, int]:
    """Longest win run, longest loss run, and the run in progress (signed)."""
    best_win = best_loss = current = 0
    for trade in trades:
        if trade.profit > 0:
            current = current + 1 if current > 0 else 1
            best_win = max(best_win, current)
        else:
            current = current - 1 if current < 0 else -1
            best_loss = max(best_loss, -current)
    return best_win, best_loss, current


def compute_dashboard(
    account: Account,
    now: Optional[datetime] = None,
) -> Optional[ProcessedData]:
    """Compute the equity curve and metrics for *account*.

    Returns ``None`` when the ledger holds no valid trades.

    Args:
        account: Account with its ledger and initial balance.
        now: Reference "current" time.  Defaults to the local now.
             Accepting it as a parameter keeps the result deterministic
             under test.
    """
    valid = [t for t in account.trades if _is_valid(t)]
    if not valid:
        return None
    if now is None:
        now = datetime.now().astimezone()

    initial = account.initial_balance
    closed_ops = sorted((t for t in valid if t.is_closed), key=lambda t: t.close_time)
    open_trades = [t for t in valid if t.is_open]
    closed_trades = [op for op in closed_ops if not op.is_balance]

    # 1 ── Equity curve, anchored just before the first realised operation
    first_ts = to_millis(closed_ops[0].close_time) if closed_ops else to_millis(now)
    chart: list[ChartDataPoint] = [
        ChartDataPoint(timestamp=first_ts - 1, balance=round(initial, 2), trade=None, index=0)
    ]

    tracker = DrawdownTracker(initial)
    running = initial
    gross_profit = gross_loss = 0.0
    total_commission = total_swap = 0.0
    winning = losing = 0
    by_day: dict[str, list[Trade]] = {}

    for index, op in enumerate(closed_ops, start=1):
        running += op.net
        chart.append(
            ChartDataPoint(
                timestamp=to_millis(op.close_time),
                balance=round(running, 2),
                trade=op,
                index=index,
            )
        )
        if op.is_balance:
            continue

        # 2 ── Trading metrics (actual trades only)
        tracker.update(running)
        total_commission += op.commission
        total_swap += op.swap
        if op.profit > 0:
            winning += 1
            gross_profit += op.profit
        else:
            losing += 1
            gross_loss += op.profit
        by_day.setdefault(day_identifier(op.close_time), []).append(op)

    # 3 ── Balance operations
    deposits = sum(op.profit for op in closed_ops if op.is_balance and op.profit > 0)
    withdrawals = sum(op.profit for op in closed_ops if op.is_balance and op.profit < 0)

    # 4 ── Daily grouping
    daily_summary = sorted(
        (
            DailySummary(
                date_key=key,
                profit=sum(t.net for t in trades),
                trade_count=len(trades),
            )
            for key, trades in by_day.items()
        ),
        key=lambda d: d.date_key,
        reverse=True,
    )
    today = now.astimezone().date()
    last_day_profit = 0.0
    days_ago = 0
    if daily_summary:
        last = daily_summary[0]
        last_day_profit = last.profit
        days_ago = (today - date.fromisoformat(last.date_key)).days

    # 5 ── Today
    midnight = _local_midnight(now)
    start_of_day_balance = initial + sum(op.net for op in closed_ops if op.close_time < midnight)
    realised_today = sum(t.net for t in by_day.get(today.isoformat(), []))
    today_return = (
        (realised_today / start_of_day_balance) * 100 if start_of_day_balance != 0 else 0.0
    )
    todays_floating = sum(
        t.net for t in open_trades if day_identifier(t.open_time) == today.isoformat()
    )

    # 6 ── Summary figures
    net_profit = gross_profit + gross_loss + total_commission + total_swap
    total_invested = initial + deposits
    total_return = (net_profit / total_invested) * 100 if total_invested > 0 else 0.0
    final_closed_balance = initial + sum(op.net for op in closed_ops)
    floating = sum(t.net for t in open_trades)
    equity = final_closed_balance + floating

    if open_trades or len(chart) == 1:
        chart.append(
            ChartDataPoint(
                timestamp=to_millis(now),
                balance=round(equity, 2),
                trade=None,
                index=chart[-1].index + 1,
                is_equity_point=True,
                floating_pnl=floating,
            )
        )

    max_wins, max_losses, current_streak = _streaks(closed_trades)
    metrics = DashboardMetrics(
        total_balance=equity,
        floating_pnl=floating,
        todays_floating_pnl=todays_floating,
        start_of_day_balance=start_of_day_balance,
        today_return_percent=today_return,
        net_profit=net_profit,
        win_rate=(winning / len(closed_trades)) * 100 if closed_trades else 0.0,
        total_orders=len(closed_trades),
        profit_factor=abs(gross_profit / gross_loss) if gross_loss != 0 else None,
        max_drawdown=tracker.max_drawdown,
        total_deposits=initial + deposits,
        total_withdrawals=abs(withdrawals),
        average_win=gross_profit / winning if winning else 0.0,
        average_loss=gross_loss / losing if losing else 0.0,
        winning_trades=winning,
        losing_trades=losing,
        max_consecutive_wins=max_wins,
        max_consecutive_losses=max_losses,
        current_streak=current_streak,
        last_day_profit=last_day_profit,
        last_day_profit_days_ago=days_ago,
        total_commission=total_commission,
        total_swap=total_swap,
        gross_profit=gross_profit,
        gross_loss=gross_loss,
        total_return_percent=total_return,
    )

    return ProcessedData(
        metrics=metrics,
        chart_data=chart,
        daily_summary=daily_summary,
        recent_trades=sorted(closed_trades, key=lambda t: t.close_time, reverse=True)[
            :RECENT_TRADES_LIMIT
        ],
        closed_trades=closed_trades,
        open_trades=sorted(open_trades, key=lambda t: t.open_time, reverse=True),
    )


def summarize_day(account: Account, day: date) -> DayDetail:
    """Trades closed on local *day* and the return they produced against
    the balance at the start of that day."""
    key = day.isoformat()
    closed = sorted(
        (t for t in account.trades if _is_valid(t) and t.is_closed),
        key=lambda t: t.close_time,
    )
    trades = [t for t in closed if not t.is_balance and day_identifier(t.close_time) == key]
    # Balance rows are left out, so deposits do not move the baseline
    before = [
        t for t in closed if not t.is_balance and day_identifier(t.close_time) < key
    ]
    start_balance = account.initial_balance + sum(t.net for t in before)
    net = sum(t.net for t in trades)
    return DayDetail(
        day=day,
        trades=trades,
        start_of_day_balance=start_balance,
        net_profit=net,
        return_percent=(net / start_balance) * 100 if start_balance != 0 else 0.0,
    )


# ── Filtered analysis ────────────────────────────────────────────────────


@dataclass(frozen=True)
class FilteredAnalysis:
    """A filtered slice of the closed trades and its own equity curve."""

    trades: list[Trade]
    net_profit: float
    chart_data: list[ChartDataPoint]
    symbols: list[str]
    comments: list[str]


def unique_symbols(trades: list[Trade]) -> list[str]:
    return sorted({t.symbol for t in trades})


def unique_comments(trades: list[Trade]) -> list[str]:
    return sorted({t.comment for t in trades if t.comment})


def filter_trades(
    trades: list[Trade],
    symbols: Optional[list[str]] = None,
    comments: Optional[list[str]] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
) -> list[Trade]:
    """Keep closed trades matching every given filter.

    An empty or missing symbol or comment list matches everything.
    *start* counts from local midnight and *end* covers its whole day.
    """
    lower = datetime.combine(start, time.min).astimezone() if start else None
    upper = datetime.combine(end, time.max).astimezone() if end else None
    return [
        t
        for t in trades
        if (not symbols or t.symbol in symbols)
        and (not comments or t.comment in comments)
        and (lower is None or t.close_time >= lower)
        and (upper is None or t.close_time <= upper)
    ]


def filtered_analysis(
    account: Account,
    symbols: Optional[list[str]] = None,
    comments: Optional[list[str]] = None,
    start: Optional[date] = None,
    end: Optional[date] = None,
    now: Optional[datetime] = None,
) -> FilteredAnalysis:
    """Filter the closed trades of *account* and chart the result.

    The curve starts from the balance reached just before the first
    matching trade, and every point keeps its position in the full
    ledger as ``index``, so gaps show where trades were filtered out.
    """
    trades = sorted(
        (t for t in account.trades if _is_valid(t) and t.is_closed and not t.is_balance),
        key=lambda t: t.close_time,
    )
    matched = filter_trades(trades, symbols, comments, start, end)
    net = sum(t.net for t in matched)
    initial = account.initial_balance

    if not matched:
        if now is None:
            now = datetime.now().astimezone()
        chart = [ChartDataPoint(timestamp=to_millis(now), balance=initial, trade=None, index=0)]
    else:
        position = {id(t): i for i, t in enumerate(trades)}
        first = position[id(matched[0])]
        running = initial + sum(t.net for t in trades[:first])
        chart = [
            ChartDataPoint(
                timestamp=to_millis(matched[0].open_time) - 1,
                balance=round(running, 2),
                trade=None,
                index=first,
            )
        ]
        for trade in matched:
            running += trade.net
            chart.append(
                ChartDataPoint(
                    timestamp=to_millis(trade.close_time),
                    balance=round(running, 2),
                    trade=trade,
                    index=position[id(trade)] + 1,
                )
            )

    logger.debug("Analysis for %s matched %d of %d trades", account.name, len(matched), len(trades))
    return FilteredAnalysis(
        trades=matched,
        net_profit=net,
        chart_data=chart,
        symbols=unique_symbols(trades),
        comments=unique_comments(trades),
    )
