"""In-process event channel for sync notifications."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

logger = logging.getLogger(__name__)

SYNC_PROGRESS = "sync-progress"
SYNC_COMPLETED = "sync-completed"
CONFIG_CHANGED = "config-changed"

Handler = Callable[[Any], None]


class EventBus:
    """Synchronous publish/subscribe.

    Handlers run on the emitting thread, between work items, so a slow
    handler stalls the sync pass. A failing handler is logged and does not
    stop the others or the pass.
    """

    def __init__(self):
        self._handlers: dict[str, list[Handler]] = defaultdict(list)

    def subscribe(self, name: str, handler: Handler) -> Callable[[], None]:
        """Register ``handler`` for ``name``. Returns an unsubscribe function."""
        self._handlers[name].append(handler)

        def unsubscribe() -> None:
            if handler in self._handlers[name]:
                self._handlers[name].remove(handler)

        return unsubscribe

    def emit(self, name: str, payload: Any = None) -> None:
        for handler in list(self._handlers.get(name, [])):
            try:
                handler(payload)
            except Exception:
                logger.exception("Handler for '%s' failed", name)
