"""CLI dashboard — prints an account's performance summary to the console."""

from atlas.ledger.models import DashboardMetrics


def print_summary(name: str, metrics: DashboardMetrics, currency: str = "$") -> str:
    """Format and print the metrics of one account.

    Returns:
        The formatted string (also printed to stdout).
    """
    pf = metrics.profit_factor
    pf_str = f"{pf:.2f}" if pf is not None else "∞ (no losses)"
    dd = metrics.max_drawdown

    lines = [
        f"──────────────── {name} ────────────────",
        f"  Equity:          {currency}{metrics.total_balance:,.2f}",
        f"  Floating P/L:    {currency}{metrics.floating_pnl:,.2f}",
        f"  Net Profit:      {currency}{metrics.net_profit:,.2f}",
        f"  Return:          {metrics.total_return_percent:.2f}%",
        f"  Today:           {metrics.today_return_percent:+.2f}%",
        f"  Win Rate:        {metrics.win_rate:.1f}% ({metrics.winning_trades}W / {metrics.losing_trades}L)",
        f"  Profit Factor:   {pf_str}",
        f"  Max Drawdown:    {currency}{dd.absolute:,.2f} ({dd.percentage:.2f}%)",
        f"  Best Streak:     {metrics.max_consecutive_wins} wins / {metrics.max_consecutive_losses} losses",
        f"  Commission/Swap: {currency}{metrics.total_commission:,.2f} / {currency}{metrics.total_swap:,.2f}",
        "─" * (34 + len(name)),
    ]
    output = "\n".join(lines)
    print(output)
    return output
