"""Cooperative cancellation for the suspension points of the call chain.

A ``CancellationToken`` can be passed explicitly to the rate limiter and the
retry policy, or bound to the current context with ``cancellation_scope`` so
that every facade call made inside the block observes it. When the token
fires, the in-flight attempt is abandoned and ``OperationCancelledError``
surfaces to the caller.
"""

import asyncio
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Awaitable, Iterator, Optional, TypeVar
import logging

from .exceptions import OperationCancelledError

logger = logging.getLogger(__name__)

T = TypeVar('T')

_current_token: ContextVar[Optional["CancellationToken"]] = ContextVar("cancellation_token", default=None)


class CancellationToken:
    """A one-shot cancellation signal, optionally armed with a deadline."""

    def __init__(self, timeout: Optional[float] = None, reason: str = "Operation cancelled"):
        self._event = asyncio.Event()
        self._reason = reason
        self._timer: Optional[asyncio.TimerHandle] = None
        if timeout is not None:
            loop = asyncio.get_running_loop()
            self._timer = loop.call_later(timeout, self.cancel, f"Deadline of {timeout}s exceeded")

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self._event.is_set():
            return
        if reason:
            self._reason = reason
        if self._timer is not None:
            self._timer.cancel()
        logger.debug(f"Cancellation requested: {self._reason}")
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self._reason)

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds unless the token fires first."""
        self.raise_if_cancelled()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(delay, 0))
        except asyncio.TimeoutError:
            return
        raise OperationCancelledError(self._reason)

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``; abandon it if the token fires first."""
        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelledError(self._reason)
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            done, _ = await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as exc:
            logger.debug(f"Abandoned attempt finished with {type(exc).__name__}: {exc}")
        raise OperationCancelledError(self._reason)


def current_token() -> Optional[CancellationToken]:
    """The token bound by the innermost ``cancellation_scope``, if any."""
    return _current_token.get()


@contextmanager
def cancellation_scope(token: CancellationToken) -> Iterator[CancellationToken]:
    """Bind ``token`` to every gateway call made inside the block."""
    reset = _current_token.set(token)
    try:
        yield token
    finally:
        _current_token.reset(reset)


async def cancellable_sleep(delay: float, token: Optional[CancellationToken] = None) -> None:
    token = token or current_token()
    if token is None:
        await asyncio.sleep(delay)
    else:
        await token.sleep(delay)


async def run_cancellable(awaitable: Awaitable[T], token: Optional[CancellationToken] = None) -> T:
    token = token or current_token()
    if token is None:
        return await awaitable
    return await token.run(awaitable)
