from __future__ import annotations

import asyncio
import itertools
import json
import logging
from collections.abc import Callable, Iterable
from typing import Any
from urllib.parse import urlencode

import websockets

from .types import ChangeEvent

logger = logging.getLogger(__name__)

INSERT = "INSERT"
UPDATE = "UPDATE"
DELETE = "DELETE"
ALL_EVENTS = frozenset({INSERT, UPDATE, DELETE})

ChangeCallback = Callable[[ChangeEvent], None]


class RealtimeFeed:
    """Change notifications for store tables over the realtime websocket."""

    def __init__(
        self,
        supabase_url: str,
        api_key: str,
        access_token: str | None = None,
        heartbeat_seconds: float = 25.0,
        schema: str = "public",
    ) -> None:
        self.supabase_url = supabase_url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self.heartbeat_seconds = heartbeat_seconds
        self.schema = schema
        self._subscriptions: set[Subscription] = set()

    def socket_url(self) -> str:
        base = self.supabase_url
        if base.startswith("https://"):
            base = "wss://" + base[len("https://") :]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://") :]
        query = urlencode({"apikey": self.api_key, "vsn": "1.0.0"})
        return f"{base}/realtime/v1/websocket?{query}"

    def subscribe(
        self,
        table: str,
        callback: ChangeCallback,
        events: Iterable[str] = ALL_EVENTS,
    ) -> Subscription:
        subscription = Subscription(self, table, callback, events)
        self._subscriptions.add(subscription)
        subscription.start()
        return subscription

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            await subscription.unsubscribe()

    def _discard(self, subscription: Subscription) -> None:
        self._subscriptions.discard(subscription)


class Subscription:
    def __init__(
        self,
        feed: RealtimeFeed,
        table: str,
        callback: ChangeCallback,
        events: Iterable[str],
    ) -> None:
        self.feed = feed
        self.table = table
        self.topic = f"realtime:{feed.schema}:{table}"
        self.events = frozenset(e.upper() for e in events)
        self._callback = callback
        self._refs = itertools.count(1)
        self._ws: Any = None
        self._task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def active(self) -> bool:
        return not self._closed

    def start(self) -> None:
        self._task = asyncio.create_task(self._run())

    async def unsubscribe(self) -> None:
        if self._closed:
            return
        self._closed = True

        ws = self._ws
        if ws is not None:
            try:
                await ws.send(json.dumps(leave_message(self.topic, next(self._refs))))
            except Exception as exc:
                logger.debug("phx_leave for %s not delivered: %s", self.topic, exc)

        if self._task is not None:
            self._task.cancel()
            await asyncio.gather(self._task, return_exceptions=True)
        self.feed._discard(self)
        logger.info("Unsubscribed from %s", self.topic)

    async def _run(self) -> None:
        backoff = 1.0
        while not self._closed:
            try:
                url = self.feed.socket_url()
                async with websockets.connect(url, ping_interval=20, ping_timeout=20) as ws:
                    self._ws = ws
                    await ws.send(
                        json.dumps(
                            join_message(
                                self.topic,
                                self.feed.schema,
                                self.table,
                                next(self._refs),
                                self.feed.access_token,
                            )
                        )
                    )
                    logger.info("Subscribed to %s", self.topic)
                    backoff = 1.0

                    heartbeat = asyncio.create_task(self._heartbeat(ws))
                    try:
                        async for raw in ws:
                            self._dispatch(raw)
                    finally:
                        heartbeat.cancel()
                        await asyncio.gather(heartbeat, return_exceptions=True)
                        self._ws = None
                logger.warning("Realtime channel %s closed. Reconnecting in %.1fs", self.topic, backoff)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("Realtime channel %s failed (%s). Reconnecting in %.1fs", self.topic, exc, backoff)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, 30.0)

    def _dispatch(self, raw: str | bytes) -> None:
        event = parse_change_message(raw, self.topic)
        if event is None or event.event_type not in self.events:
            return
        logger.debug("Change on %s: %s", event.table, event.event_type)
        try:
            self._callback(event)
        except Exception:
            logger.exception("Change callback for %s failed", self.topic)

    async def _heartbeat(self, ws: Any) -> None:
        while True:
            await asyncio.sleep(self.feed.heartbeat_seconds)
            await ws.send(json.dumps(heartbeat_message(next(self._refs))))


def join_message(
    topic: str,
    schema: str,
    table: str,
    ref: int,
    access_token: str | None = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "config": {
            "postgres_changes": [{"event": "*", "schema": schema, "table": table}],
        }
    }
    if access_token:
        payload["access_token"] = access_token
    return {"topic": topic, "event": "phx_join", "payload": payload, "ref": str(ref)}


def leave_message(topic: str, ref: int) -> dict[str, Any]:
    return {"topic": topic, "event": "phx_leave", "payload": {}, "ref": str(ref)}


def heartbeat_message(ref: int) -> dict[str, Any]:
    return {"topic": "phoenix", "event": "heartbeat", "payload": {}, "ref": str(ref)}


def parse_change_message(raw: str | bytes, topic: str) -> ChangeEvent | None:
    try:
        message = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(message, dict) or message.get("topic") != topic:
        return None

    event = str(message.get("event") or "")
    payload = message.get("payload")
    if not isinstance(payload, dict):
        return None

    if event == "postgres_changes":
        data = payload.get("data")
        if not isinstance(data, dict):
            return None
    elif event.upper() in ALL_EVENTS:
        # Older servers put the change type in the event name itself.
        data = payload
    else:
        return None

    change_type = str(data.get("type") or event).upper()
    if change_type not in ALL_EVENTS:
        return None

    table = str(data.get("table") or topic.rsplit(":", 1)[-1])
    return ChangeEvent(table=table, event_type=change_type)
