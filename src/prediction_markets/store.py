from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

import httpx

from .config import Settings
from .errors import NotFoundError, StoreError
from .realtime import ALL_EVENTS, ChangeCallback, RealtimeFeed, Subscription
from .types import Market, TradeRecord, market_from_row

logger = logging.getLogger(__name__)


class MarketStore:
    """Reads markets from and writes trades to the hosted database."""

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        access_token: str | None = None,
        markets_table: str = "markets",
        trades_table: str = "market_bets",
        timeout: float = 15.0,
        feed: RealtimeFeed | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self.markets_table = markets_table
        self.trades_table = trades_table
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
            },
            transport=transport,
        )
        self.feed = feed or RealtimeFeed(supabase_url, api_key, access_token)

    @classmethod
    def from_settings(cls, settings: Settings) -> MarketStore:
        feed = RealtimeFeed(
            settings.supabase_url,
            settings.supabase_anon_key,
            access_token=settings.access_token,
            heartbeat_seconds=settings.realtime_heartbeat_seconds,
        )
        return cls(
            settings.supabase_url,
            settings.supabase_anon_key,
            access_token=settings.access_token,
            markets_table=settings.markets_table,
            trades_table=settings.trades_table,
            timeout=settings.request_timeout_seconds,
            feed=feed,
        )

    async def close(self) -> None:
        await self.feed.close()
        await self._client.aclose()

    async def list_markets(self) -> list[Market]:
        rows = await self._select({"select": "*", "order": "end_date.asc"})
        return [market_from_row(row) for row in rows]

    async def get_market(self, market_id: str) -> Market | None:
        rows = await self._select({"select": "*", "id": f"eq.{market_id}", "limit": 1})
        if not rows:
            return None
        return market_from_row(rows[0])

    async def require_market(self, market_id: str) -> Market:
        market = await self.get_market(market_id)
        if market is None:
            raise NotFoundError(market_id)
        return market

    async def insert_trade(self, record: TradeRecord) -> None:
        response = await self._request(
            "POST",
            self.trades_table,
            json=record.to_row(),
            headers={"Prefer": "return=minimal"},
        )
        logger.info(
            "Trade stored market=%s side=%s amount=%.2f status=%s (HTTP %d)",
            record.market_id,
            record.side,
            record.amount,
            record.status,
            response.status_code,
        )

    def subscribe_to_changes(
        self,
        callback: ChangeCallback,
        table: str | None = None,
        events: Iterable[str] = ALL_EVENTS,
    ) -> Subscription:
        return self.feed.subscribe(table or self.markets_table, callback, events)

    async def _select(self, params: dict[str, Any]) -> list[dict[str, Any]]:
        response = await self._request("GET", self.markets_table, params=params)
        try:
            data = response.json()
        except ValueError as exc:
            raise StoreError(f"Invalid JSON from store: {exc}", response.status_code) from exc
        if not isinstance(data, list):
            raise StoreError(f"Unexpected response shape: {type(data).__name__}", response.status_code)
        return [row for row in data if isinstance(row, dict)]

    async def _request(self, method: str, table: str, **kwargs: Any) -> httpx.Response:
        try:
            response = await self._client.request(method, f"{self.base_url}/{table}", **kwargs)
        except httpx.HTTPError as exc:
            raise StoreError(f"{method} {table} failed: {exc}") from exc

        if response.is_error:
            raise StoreError(_error_message(response), response.status_code)
        return response


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        for key in ("message", "error_description", "error", "hint"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()

    text = response.text.strip()
    return text or f"HTTP {response.status_code}"
