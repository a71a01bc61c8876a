"""Ledger reconciliation — merges a fresh trade batch into a persisted ledger.

Pure functions, no I/O.  Tickets are the reconciliation key; fresh data
always replaces the stored copy of a ticket.
"""

import logging

from atlas.ledger.models import MergeResult, Trade

logger = logging.getLogger("atlas.reconciler")


def sort_ledger(trades: list[Trade]) -> list[Trade]:
    """Chronological by open time; ties keep their relative order."""
    return sorted(trades, key=lambda t: t.open_time)


def merge(
    existing: list[Trade],
    fresh: list[Trade],
    keep_missing: bool = False,
) -> MergeResult:
    """Reconcile *fresh* against *existing*.

    Every fresh trade is classified as added (unknown ticket), changed
    (any field differs, e.g. an open position that is now closed) or
    unchanged, and the fresh copy wins in all cases.

    By default the fresh batch is the complete source of truth and the
    merged ledger is exactly the fresh batch, re-sorted by open time.
    With ``keep_missing=True`` (manual file uploads that may only cover a
    date range) tickets absent from *fresh* are retained.

    An empty *fresh* batch against a non-empty ledger is refused: the
    result is a no-op carrying the existing ledger unchanged.
    """
    if not fresh and existing:
        logger.warning(
            "Refusing to merge an empty batch over %d existing trade(s).",
            len(existing),
        )
        return MergeResult(merged=list(existing), noop=True)

    by_ticket: dict[int, Trade] = {t.ticket: t for t in existing}
    added: list[Trade] = []
    changed: list[Trade] = []
    unchanged: list[Trade] = []

    merged_map: dict[int, Trade] = dict(by_ticket) if keep_missing else {}
    for trade in fresh:
        previous = by_ticket.get(trade.ticket)
        if previous is None:
            added.append(trade)
        elif previous != trade:
            changed.append(trade)
        else:
            unchanged.append(trade)
        merged_map[trade.ticket] = trade

    return MergeResult(
        merged=sort_ledger(list(merged_map.values())),
        added=added,
        changed=changed,
        unchanged=unchanged,
    )
