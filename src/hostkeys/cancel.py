"""Thread-safe cancellation scopes shared by probes and the worker pool.

Brief:
  A ``CancelScope`` is a one-shot signal. Cancelling it records the error that
  caused the cancellation and runs every registered callback once, which is
  how in-flight probes get their sockets closed without waiting for their own
  read timeouts. Scopes nest: cancelling a parent cancels its children, never
  the other way round.
"""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict, Optional

from .errors import HostKeyError, ScanCancelled, ScanTimeout

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class CancelScope:
    """Brief: One-shot cancellation signal with optional deadline.

    Inputs:
      - parent: Optional enclosing scope; its cancellation propagates here.
      - timeout: Optional number of seconds after which the scope cancels
        itself with ``ScanTimeout``.
      - name: Label used in log lines and timeout messages.

    Outputs:
      - CancelScope instance; use as a context manager so the deadline timer
        and parent link are released on exit.

    Example:
      >>> with CancelScope(timeout=5.0, name="probe") as scope:
      ...     handle = scope.on_cancel(sock.close)
      ...     ...
      ...     scope.remove(handle)
    """

    def __init__(
        self,
        parent: Optional["CancelScope"] = None,
        timeout: Optional[float] = None,
        name: str = "",
    ) -> None:
        self.name = name
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._error: Optional[BaseException] = None
        self._callbacks: Dict[int, Callback] = {}
        self._ids = itertools.count()
        self._timer: Optional[threading.Timer] = None
        self._parent = parent
        self._parent_handle: Optional[int] = None

        if timeout is not None:
            self._timer = threading.Timer(float(timeout), self._expire, args=(timeout,))
            self._timer.daemon = True
            self._timer.start()

        if parent is not None:
            self._parent_handle = parent.on_cancel(self._cancel_from_parent)

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def error(self) -> Optional[BaseException]:
        """The error passed to the first ``cancel()`` call, if any."""
        return self._error

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def cancel(self, error: Optional[BaseException] = None) -> bool:
        """Brief: Cancel the scope and run registered callbacks.

        Inputs:
          - error: Exception describing why; defaults to ``ScanCancelled``.

        Outputs:
          - bool: True when this call performed the cancellation, False when
            the scope was already cancelled (the first error is kept).
        """

        with self._lock:
            if self._event.is_set():
                return False
            self._error = error if error is not None else ScanCancelled(
                f"{self.name or 'scan'} cancelled"
            )
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()

        logger.debug("Cancelling %s: %s", self.name or "scope", self._error)
        for callback in callbacks:
            self._run_callback(callback)
        return True

    def on_cancel(self, callback: Callback) -> int:
        """Brief: Register a callback run once on cancellation.

        Inputs:
          - callback: Zero-argument callable.

        Outputs:
          - int: Handle for ``remove()``. When the scope is already cancelled
            the callback runs immediately and the handle is inert.
        """

        with self._lock:
            handle = next(self._ids)
            if not self._event.is_set():
                self._callbacks[handle] = callback
                return handle
        self._run_callback(callback)
        return handle

    def remove(self, handle: int) -> None:
        with self._lock:
            self._callbacks.pop(handle, None)

    def close(self) -> None:
        """Disarm the deadline timer and detach from the parent scope."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._parent is not None and self._parent_handle is not None:
            self._parent.remove(self._parent_handle)
            self._parent_handle = None

    def failure(self) -> HostKeyError:
        """Brief: Build a fresh exception of the same kind as ``error``.

        Inputs:
          - None.

        Outputs:
          - ScanTimeout when the scope expired, ScanCancelled otherwise. A new
            instance is returned so that concurrent probes never raise (and
            mutate the traceback of) one shared exception object.
        """

        if isinstance(self._error, ScanTimeout):
            return ScanTimeout(str(self._error))
        if self._error is None:
            return ScanCancelled(f"{self.name or 'scan'} cancelled")
        return ScanCancelled(str(self._error))

    def __enter__(self) -> "CancelScope":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _expire(self, timeout: float) -> None:
        self.cancel(ScanTimeout(f"{self.name or 'scan'} timed out after {timeout:g}s"))

    def _cancel_from_parent(self) -> None:
        parent_error = self._parent.error if self._parent is not None else None
        self.cancel(parent_error)

    def _run_callback(self, callback: Callback) -> None:
        try:
            callback()
        except Exception as exc:  # pragma: no cover - callbacks are close() calls
            logger.debug("Cancel callback %r failed: %s", callback, exc)
