"""Hierarchical cancellation token shared by every suspension point of a task."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Any, Awaitable, List, Optional, Set, TypeVar

from workflowAgent.utils.error_handler import TaskAbortedError

T = TypeVar("T")

DEFAULT_REASON = "Operation was interrupted"


class CancellationToken:
    """A cancel-once signal that propagates from parent to children.

    The task owns the root token; every model call and tool-protocol request
    runs under a child token so it can be cancelled on its own or together
    with the whole task.
    """

    def __init__(self, parent: Optional["CancellationToken"] = None):
        self._event = asyncio.Event()
        self._reason: Optional[str] = None
        self._children: Set["CancellationToken"] = set()
        self._parent = parent
        if parent is not None:
            parent._children.add(self)
            if parent.cancelled:
                self.cancel(parent.reason)

    @property
    def cancelled(self) -> bool:
        return self._reason is not None

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def cancel(self, reason: Optional[str] = None) -> None:
        if self.cancelled:
            return
        self._reason = reason or DEFAULT_REASON
        self._event.set()
        for child in list(self._children):
            child.cancel(self._reason)

    def child(self) -> "CancellationToken":
        return CancellationToken(parent=self)

    def detach(self) -> None:
        """Stop receiving cancellation from the parent."""
        if self._parent is not None:
            self._parent._children.discard(self)
            self._parent = None

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise TaskAbortedError(self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` but give up as soon as the token is cancelled.

        Raises:
            TaskAbortedError: the token fired before the awaitable finished
        """
        self.raise_if_cancelled()
        task: asyncio.Future[Any] = asyncio.ensure_future(awaitable)
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
        with suppress(asyncio.CancelledError):
            await task
        raise TaskAbortedError(self._reason)


async def gather_or_cancel(*awaitables: Awaitable[T]) -> List[T]:
    """Run ``awaitables`` concurrently; results keep argument order.

    When one of them raises, the others are cancelled and awaited before
    the error propagates.
    """
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
