from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from .errors import StoreError, ValidationError

YES = "yes"
NO = "no"
SIDES = (YES, NO)

PENDING = "pending"


@dataclass(frozen=True)
class Market:
    id: str
    title: str
    description: str
    volume: float
    liquidity: float
    traders: int
    end_date: datetime | None
    probability: float

    @property
    def price_yes(self) -> float:
        return self.probability

    @property
    def price_no(self) -> float:
        return 1 - self.probability


@dataclass(frozen=True)
class TradeRecord:
    user_id: str
    market_id: str
    side: str
    amount: float
    shares: float
    price: float
    status: str = PENDING

    def to_row(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "market_id": self.market_id,
            "side": self.side,
            "amount": self.amount,
            "shares": self.shares,
            "price": self.price,
            "status": self.status,
        }


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    event_type: str


def parse_side(value: str) -> str:
    side = (value or "").strip().lower()
    if side not in SIDES:
        raise ValidationError(f"Side must be one of {', '.join(SIDES)}, got {value!r}")
    return side


def market_from_row(row: dict[str, Any]) -> Market:
    market_id = str(row.get("id") or "").strip()
    if not market_id:
        raise StoreError(f"Market row without id: {row!r}")

    try:
        return Market(
            id=market_id,
            title=str(row.get("title") or ""),
            description=str(row.get("description") or ""),
            volume=float(row.get("volume") or 0),
            liquidity=float(row.get("liquidity") or 0),
            traders=int(row.get("traders") or 0),
            end_date=parse_timestamp(row.get("end_date")),
            probability=float(row.get("probability") or 0),
        )
    except (TypeError, ValueError) as exc:
        raise StoreError(f"Malformed market row {market_id}: {exc}") from exc


def parse_timestamp(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
