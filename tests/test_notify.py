"""Tests for translations, the local notifier and the console summary."""

import asyncio

from atlas.analytics.metrics import compute_dashboard
from atlas.cli.dashboard import print_summary
from atlas.ledger.models import Account
from atlas.ledger.normalizer import parse_ledger
from atlas.notify.i18n import Translator
from atlas.notify.notifier import (
    LocalNotifier,
    Notification,
    trade_closed_tag,
    weekly_summary_tag,
)


class TestTranslator:

    def test_bundled_english(self):
        translator = Translator.from_directory()
        assert translator.t("en", "notifications.trade_closed_title") == "Trade closed"

    def test_placeholders(self):
        translator = Translator({"en": {"a": {"b": "{{n}} trade(s) on {{day}}"}}})
        assert translator.t("en", "a.b", n=3, day="Monday") == "3 trade(s) on Monday"

    def test_unknown_language_falls_back_to_english(self):
        translator = Translator({"en": {"greeting": "Hello"}})
        assert translator.t("de", "greeting") == "Hello"

    def test_unknown_key_returns_key(self):
        translator = Translator({"en": {"greeting": "Hello"}})
        assert translator.t("en", "errors.unknown") == "errors.unknown"

    def test_french_catalog(self):
        translator = Translator.from_directory()
        assert translator.t("fr", "notifications.trade_closed_title") != "notifications.trade_closed_title"
        assert translator.t("fr", "errors.offline") != translator.t("en", "errors.offline")


class TestLocalNotifier:

    def test_same_tag_replaces(self):
        notifier = LocalNotifier()
        asyncio.run(notifier.show(Notification("Trade closed", "first", trade_closed_tag(7))))
        asyncio.run(notifier.show(Notification("Trade closed", "second", trade_closed_tag(7))))
        [shown] = notifier.visible()
        assert shown.body == "second"
        assert shown.tag == "trade-7"

    def test_dismiss(self):
        notifier = LocalNotifier()
        asyncio.run(notifier.show(Notification("t", "b", "x")))
        assert notifier.dismiss("x") is True
        assert notifier.dismiss("x") is False
        assert notifier.visible() == []

    def test_weekly_tag(self):
        assert weekly_summary_tag("Main", 2024, 3) == "weekly-Main-2024-W03"


class TestConsoleSummary:

    def test_print_summary(self, capsys):
        content = (
            "Order,Open Time,Type,Close Time,Close Price,Profit\n"
            "1,2024.01.15 09:00:00,buy,2024.01.15 15:00:00,1.1,200\n"
            "2,2024.01.16 09:00:00,buy,2024.01.16 15:00:00,1.1,-50\n"
        )
        account = Account(name="Main", initial_balance=1000.0, currency="EUR",
                          trades=parse_ledger(content))
        metrics = compute_dashboard(account).metrics
        output = print_summary(account.name, metrics, account.currency_symbol)
        assert "Main" in output
        assert "€1,150.00" in output
        assert "Profit Factor:   4.00" in output
        assert output in capsys.readouterr().out
