"""Signal telling the UI layer which logical views are stale after a mutation."""

from __future__ import annotations

import logging

from blinker import Namespace

logger = logging.getLogger(__name__)

_signals = Namespace()

views_invalidated = _signals.signal("views-invalidated")

ITEM_LIST = "/"
RESTOCK = "/restock"
HISTORY = "/history"
ORDERS = "/orders"


def item_page(item_id: str) -> str:
    return f"/item/{item_id}"


def invalidate_views(*paths: str) -> None:
    unique_paths = list(dict.fromkeys(path for path in paths if path))
    if not unique_paths:
        return
    logger.debug("Invalidating views: %s", ", ".join(unique_paths))
    views_invalidated.send(None, paths=unique_paths)
