from __future__ import annotations


class StoreError(RuntimeError):
    def __init__(self, message: str, status: int | None = None) -> None:
        self.message = message
        self.status = status
        super().__init__(message)


class NotFoundError(LookupError):
    def __init__(self, market_id: str) -> None:
        self.market_id = market_id
        super().__init__(f"Market not found: {market_id}")


class ValidationError(ValueError):
    pass


class PricingError(ArithmeticError):
    pass


class UntradableSideError(PricingError):
    def __init__(self, side: str) -> None:
        self.side = side
        super().__init__(f"Side {side!r} has no positive price")
