from __future__ import annotations

import logging
import threading
from typing import Callable

from bucketlens.preview.errors import FetchCancelledError

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative cancellation signal shared by one preview request.

    Async steps poll ``cancelled`` (or call ``raise_if_cancelled``); blocking
    I/O registers a callback so cancelling can abort the underlying call.
    Callbacks may be registered from a worker thread while ``cancel`` runs on
    the event loop.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []
        self._lock = threading.Lock()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                # Abort hooks are advisory; the request is cancelled either way.
                logger.debug("cancellation callback failed", exc_info=True)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise FetchCancelledError("Preview request was cancelled")

    def add_callback(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Register ``callback`` to run on cancel; returns an unregister function.

        Runs immediately when the token is already cancelled.
        """
        with self._lock:
            registered = not self._cancelled
            if registered:
                self._callbacks.append(callback)
        if not registered:
            callback()
            return lambda: None

        def _remove() -> None:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)

        return _remove
