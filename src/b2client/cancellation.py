"""Explicit cancellation signal shared by every layer of a call."""

from __future__ import annotations

import threading
from collections.abc import Callable

import anyio

from .errors import B2CancelledError
from .utils import debug


class CancelToken:
    """A one-shot cancellation signal.

    The same token is handed to the retry engine, the transport and the
    large-file pipeline. ``cancel()`` may be called any number of times;
    registered callbacks run exactly once, on the first call.
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], object]] = []
        self._reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as exc:
                debug("cancel callback failed", repr(exc))

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise B2CancelledError(self._reason or "Operation was cancelled")

    def add_callback(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Run ``callback`` on cancellation; returns a function that unregisters it.

        When the token is already cancelled the callback runs immediately.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)

                def remove() -> None:
                    with self._lock:
                        try:
                            self._callbacks.remove(callback)
                        except ValueError:
                            pass

                return remove
        callback()
        return lambda: None

    def wait(self, timeout: float | None = None) -> bool:
        """Block until cancelled or ``timeout`` elapses; True when cancelled."""
        return self._event.wait(timeout)

    async def wait_async(self) -> None:
        if self._event.is_set():
            return
        event = anyio.Event()
        remove = self.add_callback(event.set)
        try:
            await event.wait()
        finally:
            remove()


def raise_if_cancelled(cancel: CancelToken | None) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()


__all__ = ["CancelToken", "raise_if_cancelled"]
