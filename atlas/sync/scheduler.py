"""Sync scheduler — keeps every URL-backed account's ledger current.

One run: read the stored accounts once, fetch all remote sources
concurrently, then per account normalize → reconcile → detect newly
closed trades → notify, and finally persist everything in a single write
if anything changed.  A failure in one account never touches another
account or its stored ledger.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional, Union

import httpx

from atlas.analytics.calendar import trailing_week_summary
from atlas.ledger.events import detect_newly_closed
from atlas.ledger.models import Account, NotificationSettings, Trade
from atlas.ledger.normalizer import LedgerParseError, parse_ledger
from atlas.ledger.reconciler import merge
from atlas.notify.i18n import Translator
from atlas.notify.notifier import (
    LocalNotifier,
    Notification,
    trade_closed_tag,
    weekly_summary_tag,
)
from atlas.repos.account_repo import AccountRepo
from atlas.sources.http_source import LedgerSourceClient

logger = logging.getLogger("atlas.sync")


class SyncOutcome(str, Enum):
    UPDATED = "updated"
    SKIPPED_NO_URL = "skipped_no_url"
    SKIPPED_EMPTY = "skipped_empty"
    FAILED = "failed"


@dataclass(frozen=True)
class AccountSyncResult:
    """What happened to one account during a run."""

    name: str
    outcome: SyncOutcome
    added: int = 0
    changed: int = 0
    newly_closed: int = 0
    error: Optional[str] = None


@dataclass(frozen=True)
class SyncReport:
    results: list[AccountSyncResult] = field(default_factory=list)
    notifications_sent: int = 0
    persisted: bool = False

    @property
    def updated(self) -> list[str]:
        return [r.name for r in self.results if r.outcome is SyncOutcome.UPDATED]


class SyncError(RuntimeError):
    """Foreground refresh failure, carrying a translation key for the UI.

    Args:
        message_key: ``errors.offline``, ``errors.fetch_failed`` or
                     ``errors.parse_failed``.
        detail: Underlying error text, for logs.
    """

    def __init__(self, message_key: str, detail: str = "") -> None:
        super().__init__(f"{message_key}: {detail}" if detail else message_key)
        self.message_key = message_key
        self.detail = detail


class SyncScheduler:
    """Runs account syncs on demand or on a fixed interval.

    Only one run may be in flight at a time; overlapping triggers are
    refused, not queued.

    Args:
        repo: Account persistence.
        source: Client used to download each account's export.
        notifier: Receives trade-closed and weekly-summary notifications.
        translator: Notification text lookup.
        default_language: Used when no language preference is stored.
        weekly_weekday: Day (0=Monday) on which the weekly summary is due.
        weekly_hour: Local hour from which the weekly summary may be sent.
    """

    def __init__(
        self,
        repo: AccountRepo,
        source: LedgerSourceClient,
        notifier: LocalNotifier,
        translator: Translator,
        default_language: str = "en",
        weekly_weekday: int = 6,
        weekly_hour: int = 18,
    ) -> None:
        self._repo = repo
        self._source = source
        self._notifier = notifier
        self._translator = translator
        self._default_language = default_language
        self._weekly_weekday = weekly_weekday
        self._weekly_hour = weekly_hour
        self._in_flight: bool = False
        self._initial_done: bool = False
        self._running: bool = False
        self._run_count: int = 0

    # ── Public API ───────────────────────────────────────────────────────

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    @property
    def run_count(self) -> int:
        """Number of runs that actually executed."""
        return self._run_count

    async def run_sync(
        self,
        settings: Optional[NotificationSettings] = None,
        now: Optional[datetime] = None,
    ) -> Optional[SyncReport]:
        """Sync every account that has a data URL.

        Returns ``None`` without doing anything when a run is already in
        flight.  Persistence errors propagate.

        Args:
            settings: Notification toggles; read from the store once at the
                      start of the run when omitted.
            now: Reference time for ``last_updated`` and the weekly window.
        """
        if self._in_flight:
            logger.info("Sync already in progress — trigger ignored.")
            return None
        self._in_flight = True
        try:
            return await self._run(settings, now or datetime.now().astimezone())
        finally:
            self._in_flight = False

    async def start(self) -> Optional[SyncReport]:
        """Run the initial pass; later calls are no-ops for this process."""
        if self._initial_done:
            return None
        logger.info("Running initial sync.")
        report = await self.run_sync()
        if report is not None:
            self._initial_done = True
        return report

    async def refresh_account(
        self,
        name: str,
        settings: Optional[NotificationSettings] = None,
        now: Optional[datetime] = None,
    ) -> Optional[AccountSyncResult]:
        """Foreground refresh of a single account.

        Returns ``None`` when a run is already in flight.

        Raises:
            AccountNotFoundError: unknown *name*.
            SyncError: the fetch or parse failed; stored data is untouched.
        """
        if self._in_flight:
            logger.info("Sync already in progress — refresh of '%s' ignored.", name)
            return None
        self._in_flight = True
        try:
            now = now or datetime.now().astimezone()
            account = self._repo.get_account(name)
            if not account.data_url:
                return AccountSyncResult(name=name, outcome=SyncOutcome.SKIPPED_NO_URL)

            try:
                payload = await self._source.fetch_text(account.data_url)
            except httpx.TransportError as exc:
                raise SyncError("errors.offline", str(exc)) from exc
            except httpx.HTTPError as exc:
                raise SyncError("errors.fetch_failed", str(exc)) from exc

            settings = settings or self._repo.load_settings()
            lang = self._repo.get_language(self._default_language)
            try:
                result, updated, _ = await self._reconcile(account, payload, settings, lang, now)
            except LedgerParseError as exc:
                raise SyncError("errors.parse_failed", str(exc)) from exc

            if updated is not None:
                self._repo.replace_accounts([updated])
            return result
        finally:
            self._in_flight = False

    async def run_forever(self, interval_seconds: int, max_cycles: int = 0) -> None:
        """Initial pass, then one run every *interval_seconds* until stopped.

        A failed run is logged and the loop carries on with the next
        wake-up against the last persisted state.
        """
        self._running = True
        try:
            await self.start()
        except Exception as exc:
            logger.error("Initial sync failed: %s", exc)

        cycle = 0
        while self._running:
            # Interruptible sleep, checks _running every second
            for _ in range(interval_seconds):
                if not self._running:
                    break
                await asyncio.sleep(1)
            if not self._running:
                break

            cycle += 1
            try:
                await self.run_sync()
            except Exception as exc:
                logger.error("Sync cycle %d failed: %s", cycle, exc)

            if max_cycles > 0 and cycle >= max_cycles:
                break
        self._running = False

    def stop(self) -> None:
        """Stop the periodic loop after the current wait or run."""
        self._running = False

    # ── Run ──────────────────────────────────────────────────────────────

    async def _run(self, settings: Optional[NotificationSettings], now: datetime) -> SyncReport:
        self._run_count += 1
        logger.info("--- Starting sync ---")
        accounts = self._repo.load_accounts()
        if not accounts:
            logger.info("No accounts configured. Sync finished.")
            return SyncReport()

        settings = settings or self._repo.load_settings()
        lang = self._repo.get_language(self._default_language)

        targets = [(i, a) for i, a in enumerate(accounts) if a.data_url]
        payloads = await asyncio.gather(
            *(self._source.fetch_text(a.data_url) for _, a in targets),
            return_exceptions=True,
        )
        fetched: dict[int, Union[str, BaseException]] = {
            i: payload for (i, _), payload in zip(targets, payloads)
        }

        to_save = list(accounts)
        changed: list[Account] = []
        results: list[AccountSyncResult] = []
        sent = 0
        for i, account in enumerate(accounts):
            if i not in fetched:
                logger.info("Account '%s' has no data URL, skipping.", account.name)
                results.append(AccountSyncResult(account.name, SyncOutcome.SKIPPED_NO_URL))
                continue

            payload = fetched[i]
            if isinstance(payload, BaseException):
                if not isinstance(payload, Exception):
                    raise payload
                logger.error("FAILED to sync account '%s': %s", account.name, payload)
                results.append(
                    AccountSyncResult(account.name, SyncOutcome.FAILED, error=str(payload))
                )
                continue

            try:
                result, updated, count = await self._reconcile(
                    account, payload, settings, lang, now,
                )
            except LedgerParseError as exc:
                logger.error("FAILED to parse data for account '%s': %s", account.name, exc)
                results.append(
                    AccountSyncResult(account.name, SyncOutcome.FAILED, error=str(exc))
                )
                continue

            results.append(result)
            sent += count
            if updated is not None:
                to_save[i] = updated
                changed.append(updated)

        # Accounts added or deleted while fetching are re-read, not overwritten
        persisted = False
        if changed:
            logger.info("Sync found updates. Writing accounts.")
            persisted = bool(self._repo.replace_accounts(changed))
        else:
            logger.info("Sync finished. No data was changed.")

        sent += await self._maybe_send_weekly_summary(to_save, settings, lang, now)
        logger.info("--- Sync complete ---")
        return SyncReport(results=results, notifications_sent=sent, persisted=persisted)

    async def _reconcile(
        self,
        account: Account,
        payload: str,
        settings: NotificationSettings,
        lang: str,
        now: datetime,
    ) -> tuple[AccountSyncResult, Optional[Account], int]:
        """Normalize *payload* and reconcile it against *account*.

        Returns the result, the updated account (``None`` when nothing is to
        be stored) and the number of notifications sent.
        """
        fresh = parse_ledger(payload)
        outcome = merge(account.trades, fresh)
        if outcome.noop:
            logger.warning(
                "Fetched empty file for '%s'. Skipping update to avoid data loss.",
                account.name,
            )
            return AccountSyncResult(account.name, SyncOutcome.SKIPPED_EMPTY), None, 0

        newly_closed = detect_newly_closed(fresh, account.trades)
        sent = 0
        if settings.trade_closed and newly_closed:
            sent = await self._notify_closed(newly_closed, account, lang)

        updated = replace(account, trades=outcome.merged, last_updated=now)
        logger.info(
            "Synced '%s': %d added, %d changed, %d newly closed.",
            account.name, len(outcome.added), len(outcome.changed), len(newly_closed),
        )
        result = AccountSyncResult(
            name=account.name,
            outcome=SyncOutcome.UPDATED,
            added=len(outcome.added),
            changed=len(outcome.changed),
            newly_closed=len(newly_closed),
        )
        return result, updated, sent

    # ── Notifications ────────────────────────────────────────────────────

    async def _notify_closed(self, trades: list[Trade], account: Account, lang: str) -> int:
        title = self._translator.t(lang, "notifications.trade_closed_title")
        sent = 0
        for trade in trades:
            body = self._translator.t(
                lang,
                "notifications.trade_closed_body",
                symbol=trade.symbol,
                profit=f"{trade.profit:.2f}",
                currency=account.currency_symbol,
            )
            try:
                await self._notifier.show(
                    Notification(
                        title=title,
                        body=body,
                        tag=trade_closed_tag(trade.ticket),
                        url="/?view=trades",
                    )
                )
                sent += 1
            except Exception as exc:
                logger.error(
                    "Could not show notification for ticket %d: %s", trade.ticket, exc,
                )
        return sent

    async def _maybe_send_weekly_summary(
        self,
        accounts: list[Account],
        settings: NotificationSettings,
        lang: str,
        now: datetime,
    ) -> int:
        """Send one summary per account, at most once per ISO week."""
        if not settings.weekly_summary:
            return 0
        if now.weekday() != self._weekly_weekday or now.hour < self._weekly_hour:
            return 0
        last = self._repo.get_last_weekly_summary()
        iso_year, iso_week = now.isocalendar()[0], now.isocalendar()[1]
        if last is not None and (last.isocalendar()[0], last.isocalendar()[1]) == (iso_year, iso_week):
            return 0

        sent = 0
        for account in accounts:
            if not account.trades:
                continue
            summary = trailing_week_summary(account.trades, now)
            notification = Notification(
                title=self._translator.t(
                    lang, "notifications.weekly_summary_title", account=account.name,
                ),
                body=self._translator.t(
                    lang,
                    "notifications.weekly_summary_body",
                    pnl=f"{summary.pnl:.2f}",
                    currency=account.currency_symbol,
                    days=summary.trading_days,
                ),
                tag=weekly_summary_tag(account.name, iso_year, iso_week),
                url="/?view=calendar",
            )
            try:
                await self._notifier.show(notification)
                sent += 1
            except Exception as exc:
                logger.error("Could not show weekly summary for '%s': %s", account.name, exc)

        self._repo.set_last_weekly_summary(now)
        logger.info("Weekly summary sent for %d account(s).", sent)
        return sent
