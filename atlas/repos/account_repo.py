"""Account repository — accounts, ledgers and notification bookkeeping.

Accounts live under one key as a list; each ledger is stored packed (one
array per trade, fixed field order, epoch-millisecond times) to keep the
value small.  Legacy unpacked accounts are still read.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from atlas.ledger.models import Account, NotificationSettings, Trade, TradeType
from atlas.ledger.normalizer import to_millis
from atlas.ledger.reconciler import merge, sort_ledger
from atlas.repos.kv_store import KeyValueStore

logger = logging.getLogger("atlas.repos")

ACCOUNTS_KEY = "trading_accounts_v1"
CURRENT_ACCOUNT_KEY = "current_account_v1"
SETTINGS_KEY = "notification_settings"
LANGUAGE_KEY = "language"
LAST_WEEKLY_SUMMARY_KEY = "last_weekly_summary"


class AccountExistsError(ValueError):
    """An account with the same name is already registered."""


class AccountNotFoundError(KeyError):
    """No account with the requested name."""


# ── Trade codec ──────────────────────────────────────────────────────────


def _from_millis(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not value:
        return None
    return datetime.fromtimestamp(value / 1000).astimezone()


def pack_trade(trade: Trade) -> list:
    """Trade → ``[ticket, openTime, type, size, symbol, openPrice,
    closeTime, closePrice, commission, swap, profit, comment]``.

    Open positions are written with ``closePrice == 0`` and ``closeTime == 0``
    when no close time is known.
    """
    return [
        trade.ticket,
        to_millis(trade.open_time),
        trade.type.value,
        trade.size,
        trade.symbol,
        trade.open_price,
        to_millis(trade.close_time) if trade.close_time else 0,
        trade.close_price if trade.close_price is not None else 0,
        trade.commission,
        trade.swap,
        trade.profit,
        trade.comment or "",
    ]


def _build_trade(
    ticket, open_time, type_, size, symbol, open_price,
    close_time, close_price, commission, swap, profit, comment,
) -> Optional[Trade]:
    trade_type = TradeType.from_raw(str(type_))
    opened = _from_millis(open_time)
    if trade_type is None or opened is None:
        return None
    closed_at = _from_millis(close_time)
    if closed_at is not None and closed_at.year == 1970:
        closed_at = None
    return Trade(
        ticket=int(ticket),
        open_time=opened,
        type=trade_type,
        size=float(size or 0),
        symbol=symbol or "",
        open_price=float(open_price or 0),
        close_time=closed_at,
        close_price=float(close_price) if close_price else None,
        commission=float(commission or 0),
        swap=float(swap or 0),
        profit=float(profit or 0),
        comment=comment or "",
    )


def unpack_trade(row: list) -> Optional[Trade]:
    return _build_trade(*row)


def _legacy_trade(data: dict) -> Optional[Trade]:
    return _build_trade(
        data.get("ticket"), data.get("openTime"), data.get("type", ""),
        data.get("size"), data.get("symbol"), data.get("openPrice"),
        data.get("closeTime"), data.get("closePrice"), data.get("commission"),
        data.get("swap"), data.get("profit"), data.get("comment"),
    )


def pack_account(account: Account) -> dict:
    return {
        "name": account.name,
        "initialBalance": account.initial_balance,
        "currency": account.currency,
        "dataUrl": account.data_url,
        "goals": account.goals,
        "lastUpdated": account.last_updated,
        "isPacked": True,
        "packedTrades": [pack_trade(t) for t in account.trades],
    }


def unpack_account(data: dict) -> Account:
    """Decode a stored account, packed or legacy."""
    if data.get("isPacked"):
        decoded = [unpack_trade(row) for row in data.get("packedTrades", [])]
    else:
        decoded = [_legacy_trade(t) for t in data.get("trades", [])]
    trades = [t for t in decoded if t is not None]
    if len(trades) != len(decoded):
        logger.warning(
            "Account '%s': dropped %d undecodable stored trade(s).",
            data.get("name"), len(decoded) - len(trades),
        )
    return Account(
        name=data["name"],
        initial_balance=float(data.get("initialBalance", 0)),
        currency=data.get("currency") or "USD",
        data_url=data.get("dataUrl") or None,
        trades=trades,
        last_updated=data.get("lastUpdated"),
        goals=data.get("goals") or {},
    )


# ── Repository ───────────────────────────────────────────────────────────


class AccountRepo:
    """Persistence for accounts and the settings the sync run needs.

    Args:
        store: The ``KeyValueStore`` holding all values.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    # ── Accounts ─────────────────────────────────────────────────────────

    def load_accounts(self) -> list[Account]:
        raw = self._store.get(ACCOUNTS_KEY, [])
        return [unpack_account(item) for item in raw or []]

    def save_accounts(self, accounts: list[Account]) -> None:
        """Replace the stored account list in one write."""
        self._store.set(ACCOUNTS_KEY, [pack_account(a) for a in accounts])

    def replace_accounts(self, updated: list[Account]) -> list[str]:
        """Write *updated* over the stored accounts of the same name.

        The stored list is re-read first, so accounts added or deleted
        since *updated* was loaded are left as they are.  Names that no
        longer exist are not re-created.

        Returns:
            Names actually written.
        """
        by_name = {a.name: a for a in updated}
        accounts = self.load_accounts()
        written: list[str] = []
        for i, account in enumerate(accounts):
            if account.name in by_name:
                accounts[i] = by_name[account.name]
                written.append(account.name)
        dropped = set(by_name) - set(written)
        if dropped:
            logger.info("Not writing removed account(s): %s", ", ".join(sorted(dropped)))
        if written:
            self.save_accounts(accounts)
        return written

    def get_account(self, name: str) -> Account:
        for account in self.load_accounts():
            if account.name == name:
                return account
        raise AccountNotFoundError(name)

    def add_account(
        self,
        name: str,
        initial_balance: float,
        trades: list[Trade],
        currency: str = "USD",
        data_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Account:
        """Register a new account and make it the current one.

        Raises:
            AccountExistsError: the name is already taken.
        """
        accounts = self.load_accounts()
        if any(a.name == name for a in accounts):
            raise AccountExistsError(
                f'An account with the name "{name}" already exists.'
            )
        account = Account(
            name=name,
            initial_balance=initial_balance,
            currency=currency,
            data_url=data_url,
            trades=sort_ledger(trades),
            last_updated=now or datetime.now().astimezone(),
        )
        self.save_accounts([*accounts, account])
        self.set_current_account(name)
        logger.info("Added account '%s' with %d trade(s).", name, len(trades))
        return account

    def update_account(
        self,
        name: str,
        trades: Optional[list[Trade]] = None,
        initial_balance: Optional[float] = None,
        currency: Optional[str] = None,
        data_url: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Account:
        """Edit account details; uploaded *trades* are merged by ticket.

        Tickets missing from an upload are kept, since a manual export may
        only cover part of the history.
        """
        accounts = self.load_accounts()
        for i, account in enumerate(accounts):
            if account.name != name:
                continue
            ledger = account.trades
            if trades:
                ledger = merge(account.trades, trades, keep_missing=True).merged
            updated = replace(
                account,
                trades=ledger,
                initial_balance=(
                    initial_balance if initial_balance is not None else account.initial_balance
                ),
                currency=currency or account.currency,
                data_url=data_url if data_url is not None else account.data_url,
                last_updated=now or datetime.now().astimezone(),
            )
            accounts[i] = updated
            self.save_accounts(accounts)
            return updated
        raise AccountNotFoundError(name)

    def delete_account(self, name: str) -> None:
        accounts = self.load_accounts()
        remaining = [a for a in accounts if a.name != name]
        if len(remaining) == len(accounts):
            raise AccountNotFoundError(name)
        self.save_accounts(remaining)
        if self.get_current_account() == name:
            self.set_current_account(remaining[0].name if remaining else None)

    def save_goals(self, name: str, goals: dict) -> Account:
        accounts = self.load_accounts()
        for i, account in enumerate(accounts):
            if account.name == name:
                accounts[i] = replace(account, goals=dict(goals))
                self.save_accounts(accounts)
                return accounts[i]
        raise AccountNotFoundError(name)

    def get_current_account(self) -> Optional[str]:
        return self._store.get(CURRENT_ACCOUNT_KEY)

    def set_current_account(self, name: Optional[str]) -> None:
        self._store.set(CURRENT_ACCOUNT_KEY, name)

    # ── Settings ─────────────────────────────────────────────────────────

    def load_settings(self) -> NotificationSettings:
        raw = self._store.get(SETTINGS_KEY) or {}
        return NotificationSettings(
            trade_closed=bool(raw.get("tradeClosed", True)),
            weekly_summary=bool(raw.get("weeklySummary", True)),
        )

    def save_settings(self, settings: NotificationSettings) -> None:
        self._store.set(
            SETTINGS_KEY,
            {
                "tradeClosed": settings.trade_closed,
                "weeklySummary": settings.weekly_summary,
            },
        )

    def get_language(self, default: str = "en") -> str:
        return self._store.get(LANGUAGE_KEY) or default

    def set_language(self, language: str) -> None:
        self._store.set(LANGUAGE_KEY, language)

    def get_last_weekly_summary(self) -> Optional[datetime]:
        return self._store.get(LAST_WEEKLY_SUMMARY_KEY)

    def set_last_weekly_summary(self, moment: datetime) -> None:
        self._store.set(LAST_WEEKLY_SUMMARY_KEY, moment)
