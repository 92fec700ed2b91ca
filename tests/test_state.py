"""Tests for lock-protected turn phase transitions."""

from __future__ import annotations

import asyncio
import unittest

from astreus_cli.state import StateManager, TurnPhase


class StateManagerTests(unittest.IsolatedAsyncioTestCase):
    """Validate the single-turn state machine."""

    async def test_can_submit_only_when_idle(self) -> None:
        manager = StateManager()
        self.assertTrue(await manager.can_submit())
        await manager.transition_to(TurnPhase.STREAMING)
        self.assertFalse(await manager.can_submit())
        await manager.transition_to(TurnPhase.IDLE)
        self.assertTrue(await manager.can_submit())

    async def test_transition_if_enforces_expected_phase(self) -> None:
        manager = StateManager()
        changed = await manager.transition_if(TurnPhase.STREAMING, TurnPhase.SETTLING)
        self.assertFalse(changed)
        self.assertEqual(manager.phase, TurnPhase.IDLE)

        changed = await manager.transition_if(TurnPhase.IDLE, TurnPhase.SENDING)
        self.assertTrue(changed)
        self.assertEqual(manager.phase, TurnPhase.SENDING)

    async def test_only_one_turn_enters_sending(self) -> None:
        manager = StateManager()

        async def try_start() -> bool:
            await asyncio.sleep(0)
            return await manager.transition_if(TurnPhase.IDLE, TurnPhase.SENDING)

        results = await asyncio.gather(*(try_start() for _ in range(10)))
        self.assertEqual(sum(1 for result in results if result), 1)

    def test_in_flight_covers_sending_and_streaming(self) -> None:
        manager = StateManager()
        expected = {
            TurnPhase.IDLE: False,
            TurnPhase.SENDING: True,
            TurnPhase.STREAMING: True,
            TurnPhase.SETTLING: False,
            TurnPhase.INTERRUPTED: False,
            TurnPhase.AWAITING_CREDENTIAL: False,
        }
        for phase, in_flight in expected.items():
            manager.set(phase)
            with self.subTest(phase=phase):
                self.assertEqual(manager.in_flight, in_flight)


if __name__ == "__main__":
    unittest.main()
