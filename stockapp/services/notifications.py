"""Low stock webhook notifications.

Delivery is fire-and-forget: alerts are posted from a small worker pool after
the stock transaction has committed, failures are logged and dropped, and
nothing is retried. Callers decide *when* an alert exists (one per threshold
crossing); this module only delivers it.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable
from urllib import error, request

from stockapp.errors import UpstreamNotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LowStockAlert:
    item_id: str
    name: str
    sku: str
    category: str
    stock: int
    min_threshold: int

    @property
    def message(self) -> str:
        return (
            f"{self.name} is running low! Current stock: {self.stock}, "
            f"Minimum threshold: {self.min_threshold}"
        )

    def to_payload(self, timestamp: datetime | None = None) -> dict:
        timestamp = timestamp or datetime.now(timezone.utc)
        return {
            "item_id": self.item_id,
            "item_name": self.name,
            "sku": self.sku,
            "category": self.category,
            "current_stock": self.stock,
            "min_threshold": self.min_threshold,
            "timestamp": timestamp.isoformat(),
            "alert_type": "low_stock",
            "message": self.message,
        }


def crossed_threshold(previous_stock: int, new_stock: int, min_threshold: int) -> bool:
    """Return True when a consumption moves stock to or below the threshold.

    Only the move from strictly above to at-or-below counts, so an item that is
    already low does not alert again on every further consumption.
    """

    return new_stock < previous_stock and previous_stock > min_threshold >= new_stock


def post_json(url: str, payload: dict, timeout: float) -> int:
    body = json.dumps(payload).encode("utf-8")
    req = request.Request(
        url,
        data=body,
        method="POST",
        headers={"Content-Type": "application/json"},
    )
    with request.urlopen(req, timeout=timeout) as response:
        return response.status


class LowStockNotifier:
    """Dispatch :class:`LowStockAlert` objects to the configured webhook."""

    def __init__(self, app=None):
        self.webhook_url: str | None = None
        self.timeout = 5.0
        self.max_workers = 2
        self._executor: ThreadPoolExecutor | None = None
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.webhook_url = app.config.get("LOW_STOCK_WEBHOOK_URL") or None
        self.timeout = float(app.config.get("LOW_STOCK_WEBHOOK_TIMEOUT", 5))
        self.max_workers = max(int(app.config.get("LOW_STOCK_NOTIFIER_WORKERS", 2)), 1)
        app.extensions["low_stock_notifier"] = self

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix="low-stock-notifier",
            )
        return self._executor

    def schedule(self, alerts: Iterable[LowStockAlert]) -> list[Future]:
        """Queue delivery of ``alerts`` without waiting for any of them."""

        futures = []
        for alert in alerts:
            try:
                futures.append(self._get_executor().submit(self.deliver, alert))
            except RuntimeError:
                # Executor already shut down during interpreter exit.
                logger.warning("Dropped low stock notification for %s", alert.name)
        return futures

    def deliver(self, alert: LowStockAlert) -> bool:
        if not self.webhook_url:
            logger.debug(
                "LOW_STOCK_WEBHOOK_URL not configured; skipping alert for %s", alert.name
            )
            return False

        logger.info("Sending low stock notification for %s", alert.name)
        try:
            status_code = post_json(self.webhook_url, alert.to_payload(), self.timeout)
            if not 200 <= status_code < 300:
                raise UpstreamNotificationError(
                    f"Webhook responded with status {status_code}"
                )
        except error.HTTPError as exc:
            logger.error(
                "Low stock notification for %s failed: %s %s",
                alert.name,
                exc.code,
                exc.reason,
            )
            return False
        except (error.URLError, OSError, UpstreamNotificationError) as exc:
            logger.error("Low stock notification for %s failed: %s", alert.name, exc)
            return False

        logger.info("Low stock notification sent for %s", alert.name)
        return True

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            self._executor = None
