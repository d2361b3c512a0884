from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from .config import Settings, load_settings
from .detail_view import NOT_FOUND, PLACED, SIGN_IN_REQUIRED, MarketDetailController
from .errors import NotFoundError, StoreError
from .formatting import format_market_detail, format_market_line
from .list_view import FILTER_ALL, FILTER_MODES, MarketListController
from .store import MarketStore
from .types import SIDES
from .ui import LoggingNotifier, RecordingNavigator, market_route, static_user

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="prediction-markets", description="Browse and trade prediction markets")
    commands = parser.add_subparsers(dest="command", required=True)

    list_cmd = commands.add_parser("list", help="print markets ordered by end date")
    list_cmd.add_argument("--search", default="", help="case-insensitive title filter")
    list_cmd.add_argument("--filter", default=FILTER_ALL, choices=FILTER_MODES)

    watch_cmd = commands.add_parser("watch", help="reprint markets whenever they change")
    watch_cmd.add_argument("--search", default="", help="case-insensitive title filter")
    watch_cmd.add_argument("--filter", default=FILTER_ALL, choices=FILTER_MODES)

    show_cmd = commands.add_parser("show", help="print one market")
    show_cmd.add_argument("market_id")

    trade_cmd = commands.add_parser("trade", help="place a pending trade")
    trade_cmd.add_argument("market_id")
    trade_cmd.add_argument("--side", required=True, choices=SIDES)
    trade_cmd.add_argument("--amount", required=True, help="amount in USD")
    return parser


def _print_markets(controller: MarketListController) -> None:
    markets = controller.visible_markets
    if not markets:
        print("No markets.")
        return
    for market in markets:
        print(format_market_line(market))


def _print_notifications(notifier: LoggingNotifier) -> None:
    for _, message in notifier.messages:
        print(message)


async def _list(store: MarketStore, args: argparse.Namespace) -> int:
    controller = MarketListController(store, filter_mode=args.filter)
    controller.set_search_term(args.search)
    await controller.mount(watch=False)
    try:
        _print_markets(controller)
    finally:
        await controller.unmount()
    return 0


async def _watch(store: MarketStore, args: argparse.Namespace) -> int:
    controller = MarketListController(store, filter_mode=args.filter)
    controller.set_search_term(args.search)

    def reprint(ctrl: MarketListController) -> None:
        print(f"--- refresh #{ctrl.refresh_count} ---")
        _print_markets(ctrl)

    controller.add_listener(reprint)
    await controller.mount()
    try:
        await asyncio.Event().wait()
    finally:
        await controller.unmount()
    return 0


async def _show(store: MarketStore, args: argparse.Namespace) -> int:
    try:
        market = await store.require_market(args.market_id)
    except NotFoundError as exc:
        print(exc, file=sys.stderr)
        return 1
    print(format_market_detail(market))
    return 0


async def _trade(store: MarketStore, settings: Settings, args: argparse.Namespace) -> int:
    notifier = LoggingNotifier()
    navigator = RecordingNavigator(market_route(args.market_id))
    controller = MarketDetailController(
        store,
        args.market_id,
        notifier,
        navigator,
        static_user(settings.user_id),
    )
    await controller.mount()
    if controller.state == NOT_FOUND:
        _print_notifications(notifier)
        return 1

    try:
        controller.select_side(args.side)
        controller.set_amount(args.amount)
        summary = controller.trade_summary
        if summary is not None:
            print(f"{summary.side} @ {summary.price} ~ {summary.estimated_shares} shares")

        outcome = await controller.place_trade()
    finally:
        controller.unmount()

    if outcome == SIGN_IN_REQUIRED:
        print("Sign in required: set MARKET_USER_ID", file=sys.stderr)
    _print_notifications(notifier)
    return 0 if outcome == PLACED else 1


async def _main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)

    store = MarketStore.from_settings(settings)
    try:
        if args.command == "list":
            return await _list(store, args)
        if args.command == "watch":
            return await _watch(store, args)
        if args.command == "show":
            return await _show(store, args)
        return await _trade(store, settings, args)
    except StoreError as exc:
        logger.error("Store request failed: %s", exc)
        return 1
    finally:
        await store.close()


def main() -> None:
    try:
        code = asyncio.run(_main())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
