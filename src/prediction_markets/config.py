from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    supabase_url: str
    supabase_anon_key: str
    access_token: str | None
    user_id: str | None
    markets_table: str
    trades_table: str
    request_timeout_seconds: float
    realtime_heartbeat_seconds: float
    log_level: str


def _required(name: str) -> str:
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value


def _optional_str(name: str) -> str | None:
    return os.getenv(name, "").strip() or None


def _optional_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def load_settings() -> Settings:
    load_dotenv()
    return Settings(
        supabase_url=_required("SUPABASE_URL").rstrip("/"),
        supabase_anon_key=_required("SUPABASE_ANON_KEY"),
        access_token=_optional_str("SUPABASE_ACCESS_TOKEN"),
        user_id=_optional_str("MARKET_USER_ID"),
        markets_table=os.getenv("MARKETS_TABLE", "markets").strip() or "markets",
        trades_table=os.getenv("TRADES_TABLE", "market_bets").strip() or "market_bets",
        request_timeout_seconds=_optional_float("REQUEST_TIMEOUT_SECONDS", 15.0),
        realtime_heartbeat_seconds=_optional_float("REALTIME_HEARTBEAT_SECONDS", 25.0),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )
