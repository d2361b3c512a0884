from datetime import datetime, timezone

from prediction_markets.formatting import (
    format_end_date,
    format_market_line,
    format_price,
    format_probability,
    format_shares,
    format_usd,
    trade_failed_message,
    trade_placed_message,
)
from prediction_markets.types import Market


def test_number_formats() -> None:
    assert format_probability(0.653) == "65.3%"
    assert format_usd(1234567) == "$1,234,567"
    assert format_usd(12.5) == "$12.50"
    assert format_price(0.35) == "$0.35"
    assert format_shares(153.84615) == "153.85"


def test_end_date() -> None:
    assert format_end_date(None) == "N/A"
    assert format_end_date(datetime(2026, 12, 31, 23, 0, tzinfo=timezone.utc)) == "2026-12-31"


def test_trade_messages() -> None:
    assert trade_placed_message("yes", "100") == "Trade placed: YES $100"
    assert trade_failed_message("timeout") == "Failed to place trade: timeout"
    assert trade_failed_message(None) == "Failed to place trade"


def test_market_line_contains_key_fields() -> None:
    market = Market("m1", "Will X happen?", "", 2500.0, 100.0, 1200, None, 0.42)
    line = format_market_line(market)
    assert "Will X happen?" in line
    assert "42.0%" in line
    assert "$2,500" in line
    assert "1,200 traders" in line
    assert "id m1" in line
