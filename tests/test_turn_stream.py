"""Tests for the callback-to-iterator turn channel."""

from __future__ import annotations

import asyncio
import unittest

from astreus_cli.turn_stream import TurnStream


class TurnStreamTests(unittest.IsolatedAsyncioTestCase):
    async def test_events_arrive_in_order_then_complete(self) -> None:
        async def dispatch(on_chunk, on_tool_call) -> str:
            on_chunk("Hi")
            on_tool_call("read_file", {"path": "a"}, "start")
            on_tool_call("read_file", {"path": "a"}, "end", "body")
            on_chunk(" there")
            return "done"

        events = [event async for event in TurnStream(dispatch).start()]
        self.assertEqual([e.kind for e in events], ["chunk", "tool", "tool", "chunk", "complete"])
        self.assertEqual(events[2].tool_result, "body")
        self.assertEqual(events[-1].result, "done")

    async def test_failure_is_delivered_as_event(self) -> None:
        async def dispatch(on_chunk, on_tool_call) -> None:
            on_chunk("partial")
            raise RuntimeError("boom")

        events = [event async for event in TurnStream(dispatch).start()]
        self.assertEqual(events[-1].kind, "failure")
        self.assertEqual(str(events[-1].error), "boom")

    async def test_close_ends_iteration_and_drops_late_events(self) -> None:
        release = asyncio.Event()
        late_sent = asyncio.Event()

        async def dispatch(on_chunk, on_tool_call) -> str:
            on_chunk("early")
            await release.wait()
            on_chunk("late")
            late_sent.set()
            return "ignored"

        stream = TurnStream(dispatch).start()
        first = await stream.__anext__()
        self.assertEqual(first.text, "early")
        stream.close()
        release.set()
        await late_sent.wait()
        received = [event async for event in stream]
        self.assertEqual(received, [])
        assert stream.producer is not None
        await stream.producer

    async def test_custom_spawner_is_used(self) -> None:
        spawned: list[asyncio.Task] = []

        def spawn(coro):
            task = asyncio.get_running_loop().create_task(coro)
            spawned.append(task)
            return task

        async def dispatch(on_chunk, on_tool_call) -> str:
            return "ok"

        stream = TurnStream(dispatch).start(spawn)
        self.assertIs(stream.producer, spawned[0])
        events = [event async for event in stream]
        self.assertEqual(events[0].result, "ok")


if __name__ == "__main__":
    unittest.main()
