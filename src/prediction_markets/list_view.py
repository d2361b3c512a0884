from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from .errors import StoreError
from .types import ChangeEvent, Market
from .ui import Navigator

logger = logging.getLogger(__name__)

LOADING = "loading"
READY = "ready"

FILTER_ALL = "all"
FILTER_TRENDING = "trending"
FILTER_ENDING = "ending"
FILTER_MODES = (FILTER_ALL, FILTER_TRENDING, FILTER_ENDING)


class MarketListController:
    """State behind the market list page."""

    def __init__(
        self,
        store: Any,
        navigator: Navigator | None = None,
        filter_mode: str = FILTER_ALL,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.navigator = navigator
        self.state = LOADING
        self.markets: list[Market] = []
        self.search_term = ""
        self.filter_mode = _check_filter_mode(filter_mode)
        self.refresh_count = 0
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._listeners: list[Callable[[MarketListController], None]] = []
        self._subscription: Any = None
        self._pending: set[asyncio.Task[None]] = set()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def subscribed(self) -> bool:
        return self._subscription is not None

    async def mount(self, watch: bool = True) -> None:
        if self._active:
            return
        self._active = True
        if watch:
            self._subscription = self.store.subscribe_to_changes(self._on_change)
        await self.refresh()

    async def unmount(self) -> None:
        self._active = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            await subscription.unsubscribe()

    async def refresh(self) -> None:
        markets: list[Market] | None
        try:
            markets = await self.store.list_markets()
        except StoreError as exc:
            logger.warning("Error fetching markets: %s", exc)
            markets = None

        if not self._active:
            logger.debug("Ignoring market list response after unmount")
            return

        if markets is not None:
            self.markets = markets
        self.state = READY
        self.refresh_count += 1
        for listener in list(self._listeners):
            listener(self)

    async def wait_for_refreshes(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def add_listener(self, listener: Callable[[MarketListController], None]) -> None:
        self._listeners.append(listener)

    def set_search_term(self, term: str) -> None:
        self.search_term = term or ""

    def set_filter_mode(self, mode: str) -> None:
        self.filter_mode = _check_filter_mode(mode)

    @property
    def visible_markets(self) -> list[Market]:
        needle = self.search_term.lower()
        markets = [m for m in self.markets if needle in m.title.lower()]

        if self.filter_mode == FILTER_TRENDING:
            return sorted(markets, key=lambda m: m.volume, reverse=True)
        if self.filter_mode == FILTER_ENDING:
            now = self._clock()
            upcoming = [m for m in markets if m.end_date is not None and m.end_date > now]
            return sorted(upcoming, key=lambda m: m.end_date)
        return markets

    def open_market(self, market_id: str) -> None:
        if self.navigator is not None:
            self.navigator.to_market(market_id)

    def _on_change(self, event: ChangeEvent) -> None:
        if not self._active:
            return
        logger.debug("Refreshing markets after %s on %s", event.event_type, event.table)
        task = asyncio.create_task(self.refresh())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)


def _check_filter_mode(mode: str) -> str:
    if mode not in FILTER_MODES:
        raise ValueError(f"Unknown filter mode {mode!r}; expected one of {', '.join(FILTER_MODES)}")
    return mode
