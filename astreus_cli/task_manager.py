"""Named background tasks owned by the controller (ticker, turn, resubmit)."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
import logging
from typing import Any

LOGGER = logging.getLogger(__name__)


class TaskManager:
    """Track named and anonymous asyncio tasks so none outlive the app."""

    def __init__(self) -> None:
        self._named: dict[str, asyncio.Task[Any]] = {}
        self._anonymous: set[asyncio.Task[Any]] = set()

    def spawn(
        self, coro: Coroutine[Any, Any, Any], name: str | None = None
    ) -> asyncio.Task[Any]:
        """Schedule ``coro`` on the running loop.

        A named task replaces (and cancels) any still-running task with the
        same name.
        """
        task = asyncio.get_running_loop().create_task(coro)
        if name is None:
            self._anonymous.add(task)
            task.add_done_callback(lambda done: self._forget(None, done))
            return task
        self.stop(name)
        self._named[name] = task
        task.add_done_callback(lambda done, key=name: self._forget(key, done))
        return task

    def _forget(self, name: str | None, task: asyncio.Task[Any]) -> None:
        if name is None:
            self._anonymous.discard(task)
        elif self._named.get(name) is task:
            del self._named[name]
        if not task.cancelled() and task.exception() is not None:
            LOGGER.error(
                "task.failed",
                extra={"event": "task.failed", "task": name or task.get_name()},
                exc_info=task.exception(),
            )

    def get(self, name: str) -> asyncio.Task[Any] | None:
        return self._named.get(name)

    def is_running(self, name: str) -> bool:
        task = self._named.get(name)
        return task is not None and not task.done()

    def stop(self, name: str) -> bool:
        """Request cancellation of a named task without awaiting it."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def cancel(self, name: str) -> None:
        """Cancel a named task and wait until it has unwound."""
        task = self._named.pop(name, None)
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def cancel_all(self) -> None:
        """Cancel every tracked task and await them all."""
        pending = [t for t in [*self._named.values(), *self._anonymous] if not t.done()]
        for task in pending:
            task.cancel()
        for task in pending:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._named.clear()
        self._anonymous.clear()
