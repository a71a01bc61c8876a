"""Drawdown tracking over a running balance — pure math, no I/O.

The percentage is measured against the peak in force when the drawdown
is observed, so every new peak resets the baseline.
"""

from atlas.ledger.models import MaxDrawdown


class DrawdownTracker:
    """Tracks balance peaks and the deepest peak-to-trough decline.

    Args:
        initial_balance: Starting balance; also the first peak.
    """

    def __init__(self, initial_balance: float) -> None:
        self._peak: float = initial_balance
        self._max_absolute: float = 0.0
        self._max_percentage: float = 0.0

    def update(self, balance: float) -> None:
        """Record the latest balance, raising the peak if exceeded."""
        if balance > self._peak:
            self._peak = balance
        drawdown = self._peak - balance
        if drawdown > self._max_absolute:
            self._max_absolute = drawdown
            if self._peak > 0:
                self._max_percentage = (drawdown / self._peak) * 100.0

    @property
    def max_drawdown(self) -> MaxDrawdown:
        return MaxDrawdown(
            absolute=self._max_absolute,
            percentage=self._max_percentage,
        )
