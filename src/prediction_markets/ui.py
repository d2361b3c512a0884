from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Protocol

logger = logging.getLogger(__name__)

MARKET_LIST_ROUTE = "/markets"
SIGN_IN_ROUTE = "/login"

CurrentUser = Callable[[], str | None]


class Notifier(Protocol):
    def success(self, message: str) -> None: ...

    def error(self, message: str) -> None: ...


class Navigator(Protocol):
    def to_market(self, market_id: str) -> None: ...

    def to_market_list(self) -> None: ...

    def to_sign_in(self) -> None: ...


class LoggingNotifier:
    def __init__(self, history: int = 20) -> None:
        self.messages: deque[tuple[str, str]] = deque(maxlen=history)

    def success(self, message: str) -> None:
        self.messages.append(("success", message))
        logger.info("%s", message)

    def error(self, message: str) -> None:
        self.messages.append(("error", message))
        logger.error("%s", message)


class RecordingNavigator:
    def __init__(self, route: str = MARKET_LIST_ROUTE) -> None:
        self.route = route
        self.history: list[str] = [route]

    def to_market(self, market_id: str) -> None:
        self._go(market_route(market_id))

    def to_market_list(self) -> None:
        self._go(MARKET_LIST_ROUTE)

    def to_sign_in(self) -> None:
        self._go(SIGN_IN_ROUTE)

    def _go(self, route: str) -> None:
        logger.debug("Navigate %s -> %s", self.route, route)
        self.route = route
        self.history.append(route)


def market_route(market_id: str) -> str:
    return f"{MARKET_LIST_ROUTE}/{market_id}"


def static_user(user_id: str | None) -> CurrentUser:
    return lambda: user_id
