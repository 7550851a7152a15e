"""
SURFACESCAN - Cancellation Tokens

A CancelToken is a one-shot signal. Tokens compose with first_of(), which
yields a derived token that fires as soon as any of its sources fires.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from surfacescan.core.errors import OperationCancelled


class CancelToken:
    """
    One-shot cancellation signal.

    Once fired a token stays fired and keeps the reason it was fired with.
    Derived tokens (first_of, after) hold resources that release() frees.
    """

    def __init__(self, name: str = "token"):
        self.name = name
        self.reason: Optional[str] = None
        self._event = asyncio.Event()
        self._callbacks: list[Callable[["CancelToken"], None]] = []
        self._cleanups: list[Callable[[], None]] = []

    def __repr__(self) -> str:
        state = f"cancelled: {self.reason}" if self.cancelled else "active"
        return f"<CancelToken {self.name} ({state})>"

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Fire the token. Later calls are no-ops."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback(self)

    def add_callback(self, callback: Callable[["CancelToken"], None]) -> Callable[[], None]:
        """
        Run callback when the token fires (immediately if it already has).

        Returns:
            A function that detaches the callback again.
        """
        if self.cancelled:
            callback(self)
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled(self.reason or "cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[Any]) -> Any:
        """
        Await awaitable unless the token fires first.

        When the token wins, the in-flight work is cancelled and
        OperationCancelled is raised with the token's reason.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise OperationCancelled(self.reason or "cancelled")

        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            waiter.cancel()
            raise

        if task.done():
            waiter.cancel()
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise OperationCancelled(self.reason or "cancelled")

    async def sleep(self, seconds: float) -> None:
        """Sleep that ends early with OperationCancelled when the token fires."""
        if seconds <= 0:
            self.raise_if_cancelled()
            return
        await self.guard(asyncio.sleep(seconds))

    def release(self) -> None:
        """Detach from sources and cancel pending timers."""
        cleanups, self._cleanups = self._cleanups, []
        for cleanup in cleanups:
            cleanup()

    @classmethod
    def first_of(cls, *tokens: "CancelToken", name: str = "merged") -> "CancelToken":
        """
        Merge tokens: the result fires with the reason of whichever source fires first.
        """
        merged = cls(name=name)
        for token in tokens:
            if token.cancelled:
                merged.cancel(token.reason or "cancelled")
                break

        if not merged.cancelled:
            for token in tokens:
                remove = token.add_callback(lambda source: merged.cancel(source.reason or "cancelled"))
                merged._cleanups.append(remove)
        return merged

    @classmethod
    def after(cls, seconds: float, reason: str = "timeout") -> "CancelToken":
        """A token that fires by itself after seconds."""
        token = cls(name="timeout")
        loop = asyncio.get_running_loop()
        handle = loop.call_later(seconds, token.cancel, reason)
        token._cleanups.append(handle.cancel)
        return token
