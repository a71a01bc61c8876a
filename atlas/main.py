"""Atlas — application entry point.

Boots the FastAPI internal server and provides the CLI entry point for
serving, one-off syncs, file imports and console summaries.
"""

import logging

from fastapi import FastAPI

from atlas.api.routers import router

app = FastAPI(title="Atlas Trade Journal API", version="0.1.0")
app.include_router(router)

logger = logging.getLogger("atlas")


@app.get("/health")
async def health():
    return {"status": "ok"}


def build_services(config):
    """Wire repo, source client, notifier, translator and scheduler.

    Returns:
        ``(repo, scheduler, notifier, translator, source)``
    """
    from atlas.notify.i18n import Translator
    from atlas.notify.notifier import LocalNotifier
    from atlas.repos.account_repo import AccountRepo
    from atlas.repos.db import init_db
    from atlas.repos.kv_store import KeyValueStore
    from atlas.sources.http_source import LedgerSourceClient
    from atlas.sync.scheduler import SyncScheduler

    init_db(config.db_path)
    repo = AccountRepo(KeyValueStore(config.db_path))
    source = LedgerSourceClient(timeout=config.fetch_timeout_seconds)
    notifier = LocalNotifier()
    translator = Translator.from_directory()
    scheduler = SyncScheduler(
        repo=repo,
        source=source,
        notifier=notifier,
        translator=translator,
        default_language=config.default_language,
        weekly_weekday=config.weekly_summary_weekday,
        weekly_hour=config.weekly_summary_hour,
    )
    return repo, scheduler, notifier, translator, source


# ── CLI ──────────────────────────────────────────────────────────────────


def _run_cli() -> None:
    """Parse CLI arguments and dispatch to the appropriate mode."""
    import argparse
    import asyncio
    import pathlib
    import signal

    from atlas.api.routers import configure_routers
    from atlas.config import load_config

    parser = argparse.ArgumentParser(description="Atlas trade journal")
    parser.add_argument(
        "--mode",
        choices=["serve", "sync", "import", "summary"],
        default="serve",
        help="serve: API + periodic sync; sync: one pass; "
             "import: add an account from a file; summary: print metrics",
    )
    parser.add_argument("--account", help="Account name (import, summary)")
    parser.add_argument("--file", help="Exported trade history to import")
    parser.add_argument("--balance", type=float, default=0.0, help="Initial balance (import)")
    parser.add_argument("--currency", default="USD", choices=["USD", "EUR"])
    parser.add_argument("--url", help="Remote data URL to register with the account")
    args = parser.parse_args()

    config = load_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    repo, scheduler, notifier, translator, source = build_services(config)
    configure_routers(
        repo=repo,
        scheduler=scheduler,
        notifier=notifier,
        translator=translator,
        source=source,
    )

    if args.mode == "import":
        from atlas.ledger.normalizer import parse_ledger

        if not args.account or not args.file:
            parser.error("--mode import requires --account and --file")
        content = pathlib.Path(args.file).read_text(encoding="utf-8-sig")
        account = repo.add_account(
            name=args.account,
            initial_balance=args.balance,
            trades=parse_ledger(content),
            currency=args.currency,
            data_url=args.url,
        )
        logger.info("Imported %d trade(s) into '%s'.", len(account.trades), account.name)
    elif args.mode == "summary":
        _print_summary(repo, args.account)
    elif args.mode == "sync":
        report = asyncio.run(scheduler.run_sync())
        logger.info("Sync report: %s", report)
    else:
        def handle_shutdown(signum, frame):
            logger.info("Shutdown signal received — stopping gracefully.")
            scheduler.stop()

        signal.signal(signal.SIGINT, handle_shutdown)
        asyncio.run(_serve(scheduler, config.api_port, config.sync_interval_seconds))


def _print_summary(repo, account_name) -> None:
    from atlas.analytics.metrics import compute_dashboard
    from atlas.cli.dashboard import print_summary

    name = account_name or repo.get_current_account()
    if name is None:
        logger.error("No account selected.")
        return
    account = repo.get_account(name)
    data = compute_dashboard(account)
    if data is None:
        logger.info("Account '%s' has no trades yet.", name)
        return
    print_summary(account.name, data.metrics, account.currency_symbol)


async def _serve(scheduler, port: int, interval: int) -> None:
    """Start the API server and the periodic sync loop concurrently."""
    import asyncio
    import uvicorn

    uvi_config = uvicorn.Config(app, host="0.0.0.0", port=port, log_level="info")
    server = uvicorn.Server(uvi_config)

    async def _run_server():
        await server.serve()
        scheduler.stop()

    logger.info("API available at http://localhost:%d", port)
    results = await asyncio.gather(
        _run_server(),
        scheduler.run_forever(interval),
        return_exceptions=True,
    )
    logger.info("Atlas stopped. Results: %s", results)


if __name__ == "__main__":
    _run_cli()
