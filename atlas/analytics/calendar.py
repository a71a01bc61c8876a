"""Calendar aggregation — per-day P/L grid for a month, and rolling-week totals."""

import calendar as _calendar
from datetime import date, datetime, timedelta
from typing import Optional

from atlas.ledger.models import CalendarDay, CalendarMonth, Trade, WeeklySummary


def day_identifier(moment: datetime) -> str:
    """Local calendar day of *moment* as ``YYYY-MM-DD``."""
    return moment.astimezone().date().isoformat()


def _profit_by_day(trades: list[Trade]) -> dict[str, tuple[float, int]]:
    days: dict[str, tuple[float, int]] = {}
    for trade in trades:
        if trade.close_time is None:
            continue
        key = day_identifier(trade.close_time)
        profit, count = days.get(key, (0.0, 0))
        days[key] = (profit + trade.net, count + 1)
    return days


def generate_calendar(
    trades: list[Trade],
    year: int,
    month: int,
    today: Optional[date] = None,
) -> CalendarMonth:
    """Build a Monday-first grid for *year*/*month* from closed *trades*.

    Days of the neighbouring months pad the first and last week and carry
    no P/L.  Weekly summaries only count days inside the month; weeks are
    labelled ``Week 1``... in order.
    """
    if today is None:
        today = date.today()
    by_day = _profit_by_day(trades)

    weeks: list[list[CalendarDay]] = []
    for week in _calendar.Calendar(firstweekday=0).monthdatescalendar(year, month):
        row: list[CalendarDay] = []
        for day in week:
            in_month = day.month == month
            profit, count = by_day.get(day.isoformat(), (0.0, 0)) if in_month else (0.0, 0)
            row.append(
                CalendarDay(
                    date=day,
                    profit=profit,
                    trade_count=count,
                    is_current_month=in_month,
                    is_today=in_month and day == today,
                )
            )
        weeks.append(row)

    summaries: list[WeeklySummary] = []
    for number, row in enumerate(weeks, start=1):
        trading = [d for d in row if d.is_current_month and d.trade_count > 0]
        summaries.append(
            WeeklySummary(
                week_label=f"Week {number}",
                pnl=sum(d.profit for d in trading),
                trading_days=len(trading),
            )
        )

    monthly_profit = sum(d.profit for row in weeks for d in row if d.is_current_month)
    return CalendarMonth(
        year=year,
        month=month,
        weeks=weeks,
        weekly_summaries=summaries,
        monthly_profit=monthly_profit,
    )


def trailing_week_summary(trades: list[Trade], now: datetime) -> WeeklySummary:
    """P/L and trading-day count of actual trades closed in the 7 days up to *now*."""
    start = now - timedelta(days=7)
    closed = [
        t for t in trades
        if not t.is_balance and t.close_time is not None and start < t.close_time <= now
    ]
    by_day = _profit_by_day(closed)
    return WeeklySummary(
        week_label=f"{now.isocalendar()[0]}-W{now.isocalendar()[1]:02d}",
        pnl=sum(profit for profit, _ in by_day.values()),
        trading_days=len(by_day),
    )
