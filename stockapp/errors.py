"""Error taxonomy shared by the stock ledger services and the HTTP layer.

Every message is written for direct display to staff, so it should name the
offending record where one exists.
"""

from __future__ import annotations


class StockRoomError(RuntimeError):
    status_code = 400


class ValidationError(StockRoomError):
    pass


class NotFoundError(StockRoomError):
    status_code = 404


class ItemNotFoundError(NotFoundError):
    def __init__(self, item_id: str | None = None, message: str = "Item not found"):
        super().__init__(message)
        self.item_id = item_id


class OrderNotFoundError(NotFoundError):
    def __init__(self, message: str = "Order not found"):
        super().__init__(message)


class LocationNotFoundError(NotFoundError):
    def __init__(self, message: str = "Location not found"):
        super().__init__(message)


class LogNotFoundError(NotFoundError):
    def __init__(self, message: str = "Log not found"):
        super().__init__(message)


class InsufficientStockError(StockRoomError):
    status_code = 409

    def __init__(
        self,
        item_name: str,
        available: int,
        requested: int,
        message: str | None = None,
    ):
        if message is None:
            message = f"Insufficient stock for {item_name}. Available: {available}"
        super().__init__(message)
        self.item_name = item_name
        self.available = available
        self.requested = requested


class ConflictError(StockRoomError):
    status_code = 409


class StorageTimeoutError(StockRoomError):
    status_code = 503

    def __init__(
        self,
        message: str = "The stock room database is busy. Please try again in a moment.",
    ):
        super().__init__(message)


class UpstreamNotificationError(StockRoomError):
    """Raised inside the notifier when the webhook rejects a delivery."""

    status_code = 502
