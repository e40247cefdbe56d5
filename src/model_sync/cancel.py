"""Cooperative cancellation shared by every step of a model sync."""

from __future__ import annotations

import logging
import threading
from typing import Callable

logger = logging.getLogger(__name__)

CancelListener = Callable[[str], None]


class ModelSyncError(Exception):
    """Base exception for model-sync errors."""


class DownloadCancelled(ModelSyncError):
    """Raised by :meth:`CancellationToken.raise_if_cancelled`."""

    def __init__(self, message: str = "Model download cancelled.") -> None:
        super().__init__(message)
        self.message = message


class CancellationToken:
    """A one-shot cancellation signal with a human-readable reason.

    The token is created by whoever owns the workflow and handed down into
    every operation that can block.  Anything holding it may cancel the
    whole workflow with :meth:`cancel`; the first message wins and is
    passed to each registered listener exactly once.

    Thread-safe: the download worker threads only read it.
    """

    def __init__(self, on_cancel: CancelListener | None = None) -> None:
        self._event = threading.Event()
        # Reentrant: a signal handler may cancel while this thread holds it.
        self._lock = threading.RLock()
        self._message: str | None = None
        self._listeners: list[CancelListener] = []
        if on_cancel is not None:
            self._listeners.append(on_cancel)

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def message(self) -> str | None:
        """Reason given to the first :meth:`cancel` call, if any."""
        return self._message

    def add_listener(self, listener: CancelListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    def cancel(self, message: str = "Cancelled.") -> bool:
        """Cancel the workflow.  Returns ``False`` if it was already cancelled."""
        with self._lock:
            if self._event.is_set():
                return False
            self._message = message
            self._event.set()
            listeners = list(self._listeners)

        logger.info("Cancelled: %s", message)
        for listener in listeners:
            listener(message)
        return True

    def wait(self, timeout: float | None = None) -> bool:
        """Block up to *timeout* seconds; ``True`` if cancelled meanwhile."""
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DownloadCancelled(self._message or "Model download cancelled.")

    def __repr__(self) -> str:
        state = f"cancelled: {self._message!r}" if self.is_cancelled else "active"
        return f"<CancellationToken {state}>"
