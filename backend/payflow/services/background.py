# backend/payflow/services/background.py
"""
Fire-and-forget background work.

Notifications and environment chaining must never hold up or fail the
request that triggered them. They run on one bounded thread pool created
in the app lifespan; every future gets a done-callback that logs and
consumes its exception.
"""

from concurrent.futures import Future, ThreadPoolExecutor
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)


class BackgroundDispatcher:
    """Bounded executor for side effects whose outcome nobody waits on."""

    def __init__(self, max_workers: int = 4, thread_name_prefix: str = "payflow-bg"):
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix=thread_name_prefix
        )
        self._closed = False
        logger.info(f"[BACKGROUND] Created dispatcher with {max_workers} workers")

    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        """
        Schedule ``fn`` and return immediately.

        Returns None when the dispatcher is already shut down; the work is
        dropped and logged.
        """
        if self._closed:
            logger.warning(f"[BACKGROUND] Dispatcher closed, dropping task {label}")
            return None
        try:
            future = self._executor.submit(fn, *args, **kwargs)
        except RuntimeError as exc:
            logger.warning(f"[BACKGROUND] Could not schedule task {label}: {exc}")
            return None

        def _consume_exception(f: Future) -> None:
            if f.cancelled():
                return
            exc = f.exception()
            if exc is not None:
                logger.warning(f"[BACKGROUND] Task {label} failed: {exc}")

        future.add_done_callback(_consume_exception)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
        self._executor.shutdown(wait=wait)
        logger.info("[BACKGROUND] Dispatcher shut down")


class InlineDispatcher(BackgroundDispatcher):
    """Runs tasks synchronously in the caller's thread. Failures are still only logged."""

    def __init__(self) -> None:
        self._closed = False

    def submit(self, label: str, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Optional[Future]:
        future: Future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as exc:
            logger.warning(f"[BACKGROUND] Task {label} failed: {exc}")
            future.set_exception(exc)
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._closed = True
