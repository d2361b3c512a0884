from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from .errors import StoreError, UntradableSideError
from .formatting import format_price, format_shares, trade_failed_message, trade_placed_message
from .pricing import estimate_shares, parse_amount, price_for, round_shares
from .types import Market, TradeRecord, parse_side
from .ui import CurrentUser, Navigator, Notifier

logger = logging.getLogger(__name__)

LOADING = "loading"
READY = "ready"
SUBMITTING = "submitting"
NOT_FOUND = "not_found"

PLACED = "placed"
FAILED = "failed"
INVALID = "invalid"
SIGN_IN_REQUIRED = "sign_in_required"
IGNORED = "ignored"

NOT_FOUND_MESSAGE = "Market not found"
MISSING_INPUT_MESSAGE = "Please select a side and enter an amount"
INVALID_AMOUNT_MESSAGE = "Please enter an amount greater than zero"


@dataclass(frozen=True)
class TradeSummary:
    side: str
    price: str
    estimated_shares: str


class MarketDetailController:
    """State behind the market detail page."""

    def __init__(
        self,
        store: Any,
        market_id: str,
        notifier: Notifier,
        navigator: Navigator,
        current_user: CurrentUser,
    ) -> None:
        self.store = store
        self.market_id = market_id
        self.notifier = notifier
        self.navigator = navigator
        self.current_user = current_user
        self.state = LOADING
        self.market: Market | None = None
        self.selected_side: str | None = None
        self.amount = ""
        self.estimated_shares = 0.0
        self.untradable = False
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    async def mount(self) -> None:
        self._active = True
        try:
            market = await self.store.get_market(self.market_id)
        except StoreError as exc:
            logger.warning("Failed to load market %s: %s", self.market_id, exc)
            market = None

        if not self._active:
            logger.debug("Ignoring market %s response after unmount", self.market_id)
            return

        if market is None:
            self.state = NOT_FOUND
            self.notifier.error(NOT_FOUND_MESSAGE)
            self.navigator.to_market_list()
            return

        self.market = market
        self.state = READY

    def unmount(self) -> None:
        self._active = False

    def select_side(self, side: str) -> None:
        self.selected_side = parse_side(side)
        if self.amount:
            self._recompute()

    def set_amount(self, amount: str) -> None:
        self.amount = amount or ""
        if self.selected_side is not None:
            self._recompute()

    @property
    def trade_summary(self) -> TradeSummary | None:
        if self.market is None or self.selected_side is None or not self.amount:
            return None
        return TradeSummary(
            side=self.selected_side.upper(),
            price=format_price(price_for(self.market, self.selected_side)),
            estimated_shares=format_shares(self.estimated_shares),
        )

    async def place_trade(self) -> str:
        if not self._active or self.state != READY or self.market is None:
            return IGNORED

        user_id = self.current_user()
        if not user_id:
            self.navigator.to_sign_in()
            return SIGN_IN_REQUIRED

        side = self.selected_side
        if side is None or not self.amount:
            self.notifier.error(MISSING_INPUT_MESSAGE)
            return INVALID

        amount = parse_amount(self.amount)
        if amount is None or amount <= 0:
            self.notifier.error(INVALID_AMOUNT_MESSAGE)
            return INVALID

        self._recompute()
        if self.untradable:
            self.notifier.error(f"{side.upper()} cannot be traded at the current price")
            return INVALID

        market = self.market
        record = TradeRecord(
            user_id=user_id,
            market_id=market.id,
            side=side,
            amount=amount,
            shares=round_shares(self.estimated_shares),
            price=price_for(market, side),
        )

        self.state = SUBMITTING
        try:
            await self.store.insert_trade(record)
        except StoreError as exc:
            logger.error("Insert error for market %s: %s", market.id, exc)
            if not self._active:
                return FAILED
            self.state = READY
            self.notifier.error(trade_failed_message(exc.message))
            return FAILED

        if not self._active:
            return PLACED

        self.notifier.success(trade_placed_message(side, self.amount))
        self._reset()
        return PLACED

    def _recompute(self) -> None:
        if self.market is None or self.selected_side is None:
            self.estimated_shares = 0.0
            return
        try:
            self.estimated_shares = estimate_shares(self.amount, self.market, self.selected_side)
            self.untradable = False
        except UntradableSideError:
            self.estimated_shares = 0.0
            self.untradable = True

    def _reset(self) -> None:
        self.state = READY
        self.selected_side = None
        self.amount = ""
        self.estimated_shares = 0.0
        self.untradable = False
