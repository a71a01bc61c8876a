"""Local notifications — one visible notification per tag."""

import logging
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger("atlas.notify")


@dataclass(frozen=True)
class Notification:
    """A user-facing notification.

    ``tag`` is deterministic per event; showing a second notification with
    the same tag replaces the first instead of stacking.
    """

    title: str
    body: str
    tag: str
    url: Optional[str] = None


def trade_closed_tag(ticket: int) -> str:
    return f"trade-{ticket}"


def weekly_summary_tag(account_name: str, iso_year: int, iso_week: int) -> str:
    return f"weekly-{account_name}-{iso_year}-W{iso_week:02d}"


class LocalNotifier:
    """In-process notification tray, keyed by tag."""

    def __init__(self) -> None:
        self._visible: dict[str, Notification] = {}

    async def show(self, notification: Notification) -> None:
        replaced = notification.tag in self._visible
        self._visible[notification.tag] = notification
        logger.info(
            "Notification %s [%s]: %s — %s",
            "replaced" if replaced else "shown",
            notification.tag, notification.title, notification.body,
        )

    def dismiss(self, tag: str) -> bool:
        """Remove the notification with *tag*; ``False`` if none was visible."""
        return self._visible.pop(tag, None) is not None

    def visible(self) -> list[Notification]:
        return list(self._visible.values())
