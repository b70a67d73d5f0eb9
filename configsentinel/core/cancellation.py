"""
Cooperative cancellation for orchestrations and probes.

A CancellationToken is created per orchestration, linked to any token the
caller supplied, and cancelled either by the caller or by a workflow timeout.
Probes receive the token and are expected to check it (or await it) while
doing I/O. Callbacks registered on the token let the orchestrator interrupt
in-flight asyncio tasks as soon as cancellation is requested.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, List, Optional

from configsentinel.core.errors import OperationCancelledError

logger = logging.getLogger(__name__)


class CancelReason(str, Enum):
    """Why a token was cancelled."""

    REQUESTED = "requested"  # Caller asked for it
    TIMEOUT = "timeout"      # A configured timeout elapsed


class CancellationToken:
    """
    Single-shot cancellation signal.

    Example:
        ```python
        token = CancellationToken()
        token.cancel_after(5.0)

        async def probe(token):
            token.raise_if_cancelled()
            ...
        ```
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._reason: Optional[CancelReason] = None
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[asyncio.TimerHandle] = None
        self._unlink: Optional[Callable[[], None]] = None

        if parent is not None:
            if parent.cancelled:
                self.cancel(parent.reason or CancelReason.REQUESTED)
            else:
                self._unlink = parent.register(
                    lambda: self.cancel(parent.reason or CancelReason.REQUESTED)
                )

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[CancelReason]:
        return self._reason

    def cancel(self, reason: CancelReason = CancelReason.REQUESTED) -> None:
        """Cancel the token. Subsequent calls are no-ops."""
        if self._event.is_set():
            return
        self._reason = reason
        self._event.set()
        logger.debug(f"Cancellation requested (reason={reason.value})")

        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """
        Register a callback invoked once on cancellation.

        If the token is already cancelled the callback runs immediately.

        Returns:
            A function that unregisters the callback
        """
        if self.cancelled:
            callback()
            return lambda: None

        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister

    def cancel_after(self, delay: float) -> None:
        """Schedule cancellation with reason TIMEOUT after `delay` seconds."""
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(max(delay, 0.0), self.cancel, CancelReason.TIMEOUT)

    def raise_if_cancelled(self) -> None:
        """Raise OperationCancelledError if the token has been cancelled."""
        if self.cancelled:
            raise OperationCancelledError(
                f"Operation cancelled ({self._reason.value if self._reason else 'requested'})",
                reason=self._reason,
            )

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        await self._event.wait()

    def close(self) -> None:
        """Drop the pending timer and the link to the parent token."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._unlink is not None:
            self._unlink()
            self._unlink = None
