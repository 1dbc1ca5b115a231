"""
Post-Commit Dispatcher.

============================================================
PURPOSE
============================================================
Delivers TradeExecutedEvent to side-effect handlers (in-app
notification, confirmation email) after the trade committed.

RULES:
- publish() never raises and never blocks on delivery
- Each handler is isolated; one failing does not stop another
- Failures are logged only

============================================================
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, List, Optional, Sequence

from core.config import DispatchConfig
from execution_engine.types import TradeExecutedEvent


logger = logging.getLogger(__name__)


EventHandler = Callable[[TradeExecutedEvent], object]


class PostCommitDispatcher:
    """Fire-and-forget fan-out of trade events."""

    def __init__(
        self,
        handlers: Optional[Sequence[EventHandler]] = None,
        config: Optional[DispatchConfig] = None,
    ):
        self._handlers: List[EventHandler] = list(handlers or [])
        self._config = config or DispatchConfig()
        self._executor: Optional[ThreadPoolExecutor] = None
        if not self._config.inline:
            self._executor = ThreadPoolExecutor(
                max_workers=self._config.max_workers,
                thread_name_prefix="post-commit",
            )
        self._stats = {"published": 0, "delivered": 0, "failed": 0}
        self._stats_lock = threading.Lock()

    @property
    def stats(self):
        with self._stats_lock:
            return dict(self._stats)

    def _count(self, name: str) -> None:
        with self._stats_lock:
            self._stats[name] += 1

    def publish(self, event: TradeExecutedEvent) -> List[Future]:
        """
        Hand an event to every handler.

        Returns the submitted futures (empty in inline mode).
        """
        self._count("published")
        futures: List[Future] = []

        for handler in self._handlers:
            if self._executor is None:
                self._deliver(handler, event)
                continue
            try:
                futures.append(self._executor.submit(self._deliver, handler, event))
            except RuntimeError as e:
                # Executor already shut down
                self._count("failed")
                logger.error(f"Dropped {self._handler_name(handler)} for trade {event.trade_id}: {e}")

        return futures

    def _deliver(self, handler: EventHandler, event: TradeExecutedEvent) -> None:
        name = self._handler_name(handler)
        try:
            handler(event)
            self._count("delivered")
        except Exception as e:
            self._count("failed")
            logger.error(f"Post-commit handler {name} failed for trade {event.trade_id}: {e}")

    @staticmethod
    def _handler_name(handler: EventHandler) -> str:
        return getattr(handler, "__name__", type(handler).__name__)

    def shutdown(self, wait: bool = True) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=wait)
            logger.info("Post-commit dispatcher stopped")
