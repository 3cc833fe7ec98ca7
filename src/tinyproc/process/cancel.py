"""Cancellation tokens.

A ``CancelToken`` is cancelled at most once, with a reason. Callbacks receive
that reason. Tokens can be derived from a timer (``CancelToken.after``) or
from several other tokens with first-wins semantics (``CancelToken.any``).
"""

from __future__ import annotations

import asyncio
from typing import Callable, Iterable, List, Optional

from ..util.log import Log

log = Log.create({"service": "cancel"})

CancelCallback = Callable[[BaseException], None]


class CancelledByCaller(Exception):
    """Default cancellation reason when ``cancel()`` is called without one."""

    def __init__(self, message: str = "operation was cancelled"):
        super().__init__(message)


class CancelToken:
    """One-shot cancellation signal."""

    def __init__(self) -> None:
        self._reason: Optional[BaseException] = None
        self._callbacks: List[CancelCallback] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._detach: List[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[BaseException]:
        return self._reason

    def cancel(self, reason: Optional[BaseException] = None) -> None:
        """Cancel the token; later calls are ignored."""
        if self._reason is not None:
            return
        self._reason = reason if reason is not None else CancelledByCaller()
        callbacks, self._callbacks = self._callbacks, []
        self.close()
        for callback in callbacks:
            try:
                callback(self._reason)
            except Exception as e:
                log.error("cancel callback failed", {"error": e})

    def add_callback(self, callback: CancelCallback) -> Callable[[], None]:
        """Register ``callback``; it runs immediately if already cancelled.

        Returns a function removing the callback again.
        """
        if self._reason is not None:
            callback(self._reason)
            return lambda: None
        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def close(self) -> None:
        """Disarm the timer and detach from source tokens."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        detach, self._detach = self._detach, []
        for remove in detach:
            remove()

    @classmethod
    def after(cls, seconds: float) -> "CancelToken":
        """Token cancelled with a ``TimeoutError`` once ``seconds`` elapse.

        Must be called with a running event loop.
        """
        token = cls()
        loop = asyncio.get_running_loop()
        token._timer = loop.call_later(
            seconds,
            token.cancel,
            TimeoutError(f"timed out after {seconds:g}s"),
        )
        return token

    @classmethod
    def any(cls, tokens: Iterable[Optional["CancelToken"]]) -> "CancelToken":
        """Token cancelled as soon as any of ``tokens`` is.

        If one of them is already cancelled, its reason is propagated
        immediately and no callbacks are armed.
        """
        sources = [token for token in tokens if token is not None]
        combined = cls()

        for source in sources:
            if source.cancelled:
                combined.cancel(source.reason)
                return combined

        for source in sources:
            combined._detach.append(source.add_callback(combined.cancel))
        return combined
