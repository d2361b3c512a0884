import asyncio
import json
import socket

import websockets

from prediction_markets import realtime
from prediction_markets.list_view import MarketListController
from prediction_markets.realtime import (
    RealtimeFeed,
    Subscription,
    join_message,
    parse_change_message,
)
from prediction_markets.types import ChangeEvent

TOPIC = "realtime:public:markets"
REAL_SLEEP = asyncio.sleep


def _frame(event: str, payload: object, topic: str = TOPIC) -> str:
    return json.dumps({"topic": topic, "event": event, "payload": payload, "ref": None})


def test_parse_postgres_changes_message() -> None:
    raw = _frame(
        "postgres_changes",
        {"data": {"type": "UPDATE", "table": "markets", "schema": "public"}, "ids": [1]},
    )
    assert parse_change_message(raw, TOPIC) == ChangeEvent("markets", "UPDATE")


def test_parse_legacy_event_named_message() -> None:
    raw = _frame("INSERT", {"type": "INSERT", "table": "markets"})
    assert parse_change_message(raw, TOPIC) == ChangeEvent("markets", "INSERT")


def test_parse_ignores_replies_other_topics_and_garbage() -> None:
    assert parse_change_message(_frame("phx_reply", {"status": "ok"}), TOPIC) is None
    assert parse_change_message(_frame("heartbeat", {}, topic="phoenix"), TOPIC) is None
    other = _frame("postgres_changes", {"data": {"type": "DELETE", "table": "markets"}}, topic="realtime:public:other")
    assert parse_change_message(other, TOPIC) is None
    assert parse_change_message("not json", TOPIC) is None


def test_join_message_requests_all_change_types() -> None:
    message = join_message(TOPIC, "public", "markets", 1, access_token="jwt")
    assert message["event"] == "phx_join"
    assert message["payload"]["config"]["postgres_changes"] == [
        {"event": "*", "schema": "public", "table": "markets"}
    ]
    assert message["payload"]["access_token"] == "jwt"


def test_socket_url_uses_websocket_scheme() -> None:
    feed = RealtimeFeed("https://proj.supabase.co/", "anon")
    assert feed.socket_url() == "wss://proj.supabase.co/realtime/v1/websocket?apikey=anon&vsn=1.0.0"


def test_dispatch_respects_event_mask_and_survives_callback_errors() -> None:
    received: list[ChangeEvent] = []
    feed = RealtimeFeed("https://proj.supabase.co", "anon")
    sub = Subscription(feed, "markets", received.append, ["insert"])

    sub._dispatch(_frame("postgres_changes", {"data": {"type": "UPDATE", "table": "markets"}}))
    sub._dispatch(_frame("postgres_changes", {"data": {"type": "INSERT", "table": "markets"}}))
    assert received == [ChangeEvent("markets", "INSERT")]

    def boom(event: ChangeEvent) -> None:
        raise RuntimeError("listener broke")

    failing = Subscription(feed, "markets", boom, ["INSERT"])
    failing._dispatch(_frame("postgres_changes", {"data": {"type": "INSERT", "table": "markets"}}))


def test_close_unsubscribes_every_open_subscription(monkeypatch) -> None:
    async def idle(self) -> None:
        await asyncio.Event().wait()

    monkeypatch.setattr(Subscription, "_run", idle)

    async def scenario() -> None:
        feed = RealtimeFeed("https://proj.supabase.co", "anon")
        first = feed.subscribe("markets", lambda event: None)
        second = feed.subscribe("markets", lambda event: None)
        await asyncio.sleep(0)

        await first.unsubscribe()
        await first.unsubscribe()
        assert not first.active

        await feed.close()
        assert not second.active
        assert feed._subscriptions == set()

    asyncio.run(scenario())


class FeedStore:
    def __init__(self, feed: RealtimeFeed) -> None:
        self.feed = feed
        self.calls = 0

    async def list_markets(self) -> list:
        self.calls += 1
        return []

    def subscribe_to_changes(self, callback) -> Subscription:
        return self.feed.subscribe("markets", callback)


async def _wait_until(predicate, timeout: float = 5.0) -> None:
    async def poll() -> None:
        while not predicate():
            await REAL_SLEEP(0.01)

    await asyncio.wait_for(poll(), timeout)


def test_live_channel_joins_refetches_heartbeats_and_leaves() -> None:
    frames: list[dict] = []

    async def scenario() -> None:
        left = asyncio.Event()

        async def handler(ws) -> None:
            try:
                async for raw in ws:
                    message = json.loads(raw)
                    frames.append(message)
                    if message["event"] == "phx_join":
                        await ws.send(_frame("phx_reply", {"status": "ok"}))
                        await ws.send(
                            _frame("postgres_changes", {"data": {"type": "INSERT", "table": "markets"}})
                        )
                    elif message["event"] == "phx_leave":
                        left.set()
            except websockets.exceptions.ConnectionClosed:
                pass

        async with websockets.serve(handler, "127.0.0.1", 0) as server:
            port = server.sockets[0].getsockname()[1]
            feed = RealtimeFeed(f"http://127.0.0.1:{port}", "anon", heartbeat_seconds=0.05)
            store = FeedStore(feed)
            controller = MarketListController(store)

            await controller.mount()
            await _wait_until(
                lambda: store.calls >= 2 and any(f["event"] == "heartbeat" for f in frames)
            )
            await controller.unmount()
            await asyncio.wait_for(left.wait(), 5)

            assert not controller.subscribed
            assert feed._subscriptions == set()

    asyncio.run(scenario())

    events = [f["event"] for f in frames]
    assert events[0] == "phx_join"
    assert frames[0]["topic"] == TOPIC
    assert frames[0]["payload"]["config"]["postgres_changes"] == [
        {"event": "*", "schema": "public", "table": "markets"}
    ]
    assert any(f["topic"] == "phoenix" and f["event"] == "heartbeat" for f in frames)
    assert "phx_leave" in events


def test_reconnects_with_doubling_backoff_and_resets_after_connect(monkeypatch) -> None:
    delays: list[float] = []
    backoffs = {1.0, 2.0, 4.0, 8.0, 16.0, 30.0}

    async def recording_sleep(delay, *args, **kwargs):
        if delay in backoffs:
            delays.append(delay)
            delay = 0
        return await REAL_SLEEP(delay, *args, **kwargs)

    monkeypatch.setattr(realtime.asyncio, "sleep", recording_sleep)

    with socket.socket() as reserved:
        reserved.bind(("127.0.0.1", 0))
        port = reserved.getsockname()[1]

    async def scenario() -> None:
        feed = RealtimeFeed(f"http://127.0.0.1:{port}", "anon", heartbeat_seconds=60.0)
        subscription = feed.subscribe("markets", lambda event: None)

        await _wait_until(lambda: len(delays) >= 7)
        assert delays[:7] == [1.0, 2.0, 4.0, 8.0, 16.0, 30.0, 30.0]

        joined = asyncio.Event()

        async def handler(ws) -> None:
            await ws.recv()
            joined.set()

        async with websockets.serve(handler, "127.0.0.1", port):
            await asyncio.wait_for(joined.wait(), 5)
            after_join = len(delays)
            await _wait_until(lambda: len(delays) > after_join)
            assert delays[after_join] == 1.0
            await subscription.unsubscribe()

        assert feed._subscriptions == set()

    asyncio.run(scenario())
