"""Cancellable channel carrying one turn's events to a single consumer."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
import logging
from typing import Any, Literal

LOGGER = logging.getLogger(__name__)

EventKind = Literal["chunk", "tool", "complete", "failure"]


@dataclass
class TurnEvent:
    """A streamed chunk, a tool start/end, the completion, or a failure."""

    kind: EventKind
    text: str = ""
    tool_name: str = ""
    tool_args: dict[str, Any] = field(default_factory=dict)
    tool_status: str = ""
    tool_result: str | None = None
    result: Any = None
    error: BaseException | None = None


Dispatch = Callable[[Callable[[str], None], Callable[..., None]], Awaitable[Any]]
Spawner = Callable[[Coroutine[Any, Any, Any]], "asyncio.Task[Any]"]


class TurnStream:
    """Adapt callback-style dispatch into an async iterator of events.

    ``dispatch(on_chunk, on_tool_call)`` runs in its own task. Closing the
    stream ends iteration at once; whatever the producer emits afterwards
    is dropped.
    """

    def __init__(self, dispatch: Dispatch) -> None:
        self._dispatch = dispatch
        self._queue: asyncio.Queue[TurnEvent | None] = asyncio.Queue()
        self._closed = False
        self.producer: asyncio.Task[Any] | None = None

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self, spawn: Spawner | None = None) -> TurnStream:
        coro = self._produce()
        if spawn is None:
            self.producer = asyncio.get_running_loop().create_task(coro)
        else:
            self.producer = spawn(coro)
        return self

    def _emit(self, event: TurnEvent) -> None:
        if self._closed:
            return
        self._queue.put_nowait(event)

    def on_chunk(self, text: str) -> None:
        self._emit(TurnEvent(kind="chunk", text=text))

    def on_tool_call(
        self,
        name: str,
        args: dict[str, Any] | None,
        status: str,
        result: str | None = None,
    ) -> None:
        self._emit(
            TurnEvent(
                kind="tool",
                tool_name=name,
                tool_args=dict(args or {}),
                tool_status=status,
                tool_result=result,
            )
        )

    async def _produce(self) -> None:
        try:
            result = await self._dispatch(self.on_chunk, self.on_tool_call)
        except Exception as exc:  # noqa: BLE001 - handed to the consumer as a failure event.
            self._emit(TurnEvent(kind="failure", error=exc))
        else:
            self._emit(TurnEvent(kind="complete", result=result))
        finally:
            if self._closed:
                LOGGER.debug(
                    "turn.stream.late_result_dropped",
                    extra={"event": "turn.stream.late_result_dropped"},
                )
            else:
                self._queue.put_nowait(None)

    def close(self) -> None:
        """Stop iteration from the consumer side."""
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(None)

    def __aiter__(self) -> TurnStream:
        return self

    async def __anext__(self) -> TurnEvent:
        if self._closed:
            raise StopAsyncIteration
        event = await self._queue.get()
        if event is None or self._closed:
            raise StopAsyncIteration
        return event
