"""Internal API routers — /accounts, /sync, /settings, /notifications endpoints.

No business logic, no DB access. Delegates to the account repo, the
analytics functions and the sync scheduler.
"""

import logging
from dataclasses import asdict
from datetime import date
from typing import Optional

import httpx
from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel

from atlas.analytics.calendar import generate_calendar
from atlas.analytics.metrics import compute_dashboard, filtered_analysis, summarize_day
from atlas.ledger.models import Account, NotificationSettings
from atlas.ledger.normalizer import LedgerParseError, parse_ledger
from atlas.notify.i18n import Translator
from atlas.notify.notifier import LocalNotifier
from atlas.repos.account_repo import AccountExistsError, AccountNotFoundError, AccountRepo
from atlas.sources.http_source import LedgerSourceClient
from atlas.sync.scheduler import SyncError, SyncScheduler

logger = logging.getLogger("atlas")
router = APIRouter()

# ── Shared state (set during app startup) ────────────────────────────────

_repo: Optional[AccountRepo] = None  # Set via configure_routers()
_scheduler: Optional[SyncScheduler] = None  # Set via configure_routers()
_notifier: Optional[LocalNotifier] = None  # Set via configure_routers()
_translator: Optional[Translator] = None  # Set via configure_routers()
_source: Optional[LedgerSourceClient] = None  # Set via configure_routers()


def configure_routers(
    repo: AccountRepo,
    scheduler: Optional[SyncScheduler] = None,
    notifier: Optional[LocalNotifier] = None,
    translator: Optional[Translator] = None,
    source: Optional[LedgerSourceClient] = None,
) -> None:
    """Inject dependencies from the application startup.

    Args:
        repo: An ``AccountRepo`` instance (or duck-type for tests).
        scheduler: The process-wide ``SyncScheduler``.
        notifier: The notifier the scheduler publishes to.
        translator: Used to render foreground sync errors.
        source: Client used to fetch a new account's data URL.
    """
    global _repo, _scheduler, _notifier, _translator, _source  # noqa: PLW0603
    _repo = repo
    _scheduler = scheduler
    _notifier = notifier
    _translator = translator
    _source = source


def _require_repo() -> AccountRepo:
    if _repo is None:
        raise HTTPException(status_code=503, detail="Storage not configured")
    return _repo


def _get_account(name: str) -> Account:
    try:
        return _require_repo().get_account(name)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail=f"Unknown account: {name}") from None


def _parse_upload(content: str):
    try:
        return parse_ledger(content)
    except LedgerParseError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from None


# ── Request bodies ───────────────────────────────────────────────────────


class AccountCreate(BaseModel):
    name: str
    initial_balance: float
    currency: str = "USD"
    data_url: Optional[str] = None
    content: Optional[str] = None  # exported CSV/TSV text


class TradesUpload(BaseModel):
    content: str


class SettingsUpdate(BaseModel):
    trade_closed: bool = True
    weekly_summary: bool = True


# ── Accounts ─────────────────────────────────────────────────────────────


@router.get("/accounts")
async def list_accounts():
    """Return every account without its ledger."""
    repo = _require_repo()
    return {
        "accounts": [
            {
                "name": a.name,
                "initial_balance": a.initial_balance,
                "currency": a.currency,
                "data_url": a.data_url,
                "last_updated": a.last_updated,
                "trade_count": len(a.trades),
            }
            for a in repo.load_accounts()
        ],
        "current": repo.get_current_account(),
    }


@router.post("/accounts", status_code=201)
async def create_account(body: AccountCreate):
    """Register an account from uploaded text or by fetching its data URL."""
    repo = _require_repo()
    content = body.content
    if content is None:
        if not body.data_url or _source is None:
            raise HTTPException(status_code=400, detail="Provide file content or a data URL")
        try:
            content = await _source.fetch_text(body.data_url)
        except httpx.HTTPError as exc:
            raise HTTPException(status_code=502, detail=f"Fetch failed: {exc}") from None
    trades = _parse_upload(content)
    try:
        account = repo.add_account(
            name=body.name,
            initial_balance=body.initial_balance,
            trades=trades,
            currency=body.currency,
            data_url=body.data_url,
        )
    except AccountExistsError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from None
    return {"name": account.name, "trade_count": len(account.trades)}


@router.put("/accounts/{name}/trades")
async def upload_trades(name: str, body: TradesUpload):
    """Merge an uploaded export into the account's ledger."""
    trades = _parse_upload(body.content)
    try:
        account = _require_repo().update_account(name, trades=trades)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail=f"Unknown account: {name}") from None
    return {"name": account.name, "trade_count": len(account.trades)}


@router.delete("/accounts/{name}")
async def delete_account(name: str):
    try:
        _require_repo().delete_account(name)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail=f"Unknown account: {name}") from None
    return {"deleted": name}


@router.get("/accounts/{name}/dashboard")
async def get_dashboard(name: str):
    """Return metrics, equity curve and trade lists for one account."""
    data = compute_dashboard(_get_account(name))
    return {"dashboard": asdict(data) if data is not None else None}


@router.get("/accounts/{name}/calendar")
async def get_calendar(
    name: str,
    year: Optional[int] = Query(default=None, ge=1970, le=9999),
    month: Optional[int] = Query(default=None, ge=1, le=12),
):
    account = _get_account(name)
    today = date.today()
    closed = [t for t in account.trades if t.is_closed and not t.is_balance]
    grid = generate_calendar(closed, year or today.year, month or today.month, today)
    return asdict(grid)


@router.get("/accounts/{name}/days/{day}")
async def get_day(name: str, day: date):
    return asdict(summarize_day(_get_account(name), day))


@router.get("/accounts/{name}/analysis")
async def get_analysis(
    name: str,
    symbol: list[str] = Query(default=[]),
    comment: list[str] = Query(default=[]),
    start: Optional[date] = None,
    end: Optional[date] = None,
):
    """Closed trades narrowed by symbol, comment and close date, with their curve."""
    result = filtered_analysis(_get_account(name), symbol, comment, start, end)
    return asdict(result)


@router.post("/accounts/{name}/refresh")
async def refresh_account(name: str):
    """Foreground refresh; failures come back as a readable message."""
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not configured")
    try:
        result = await _scheduler.refresh_account(name)
    except AccountNotFoundError:
        raise HTTPException(status_code=404, detail=f"Unknown account: {name}") from None
    except SyncError as exc:
        lang = _require_repo().get_language()
        message = _translator.t(lang, exc.message_key) if _translator else exc.message_key
        raise HTTPException(status_code=502, detail=message) from None
    if result is None:
        raise HTTPException(status_code=409, detail="Sync already in progress")
    return asdict(result)


# ── Sync ─────────────────────────────────────────────────────────────────


@router.post("/sync")
async def trigger_sync():
    """Sync all URL-backed accounts now."""
    if _scheduler is None:
        raise HTTPException(status_code=503, detail="Scheduler not configured")
    report = await _scheduler.run_sync()
    if report is None:
        raise HTTPException(status_code=409, detail="Sync already in progress")
    return asdict(report)


# ── Settings & notifications ─────────────────────────────────────────────


@router.get("/settings/notifications")
async def get_notification_settings():
    return asdict(_require_repo().load_settings())


@router.put("/settings/notifications")
async def update_notification_settings(body: SettingsUpdate):
    settings = NotificationSettings(
        trade_closed=body.trade_closed,
        weekly_summary=body.weekly_summary,
    )
    _require_repo().save_settings(settings)
    return asdict(settings)


@router.get("/notifications")
async def list_notifications():
    if _notifier is None:
        return {"notifications": []}
    return {"notifications": [asdict(n) for n in _notifier.visible()]}


@router.delete("/notifications/{tag}")
async def dismiss_notification(tag: str):
    if _notifier is None or not _notifier.dismiss(tag):
        raise HTTPException(status_code=404, detail=f"No notification tagged {tag}")
    return {"dismissed": tag}
