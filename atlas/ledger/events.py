"""Newly-closed trade detection for notifications."""

from atlas.ledger.models import Trade


def detect_newly_closed(fresh: list[Trade], previous: list[Trade]) -> list[Trade]:
    """Return the fresh trades that became closed since *previous*.

    A trade qualifies when it is a real trade (not a balance operation),
    it is closed in *fresh*, and it was either unknown before or open
    before.  Trades already closed in *previous* never re-fire.  Order
    follows *fresh*; a ticket is reported at most once.
    """
    before = {t.ticket: t for t in previous}
    seen: set[int] = set()
    result: list[Trade] = []
    for trade in fresh:
        if trade.is_balance or trade.is_open or trade.ticket in seen:
            continue
        old = before.get(trade.ticket)
        if old is None or old.is_open:
            seen.add(trade.ticket)
            result.append(trade)
    return result
