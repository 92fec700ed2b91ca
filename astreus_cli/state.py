"""Turn lifecycle phases and lock-protected transitions."""

from __future__ import annotations

import asyncio
from enum import Enum
import logging

LOGGER = logging.getLogger(__name__)


class TurnPhase(str, Enum):
    """Finite state machine for the single in-flight turn."""

    IDLE = "IDLE"
    SENDING = "SENDING"
    STREAMING = "STREAMING"
    SETTLING = "SETTLING"
    INTERRUPTED = "INTERRUPTED"
    AWAITING_CREDENTIAL = "AWAITING_CREDENTIAL"


IN_FLIGHT_PHASES = frozenset({TurnPhase.SENDING, TurnPhase.STREAMING})


class ModalKind(str, Enum):
    """Modal dialogs the controller can ask the presentation layer to show."""

    MODEL = "model"
    PROVIDER = "provider"
    API_KEY = "apikey"
    SESSIONS = "sessions"
    SETTINGS = "settings"


class StateManager:
    """Hold the current turn phase.

    Reads are synchronous so keystroke handlers can check the phase without
    awaiting; compound check-and-set goes through the async lock.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._phase = TurnPhase.IDLE

    @property
    def phase(self) -> TurnPhase:
        return self._phase

    @property
    def in_flight(self) -> bool:
        return self._phase in IN_FLIGHT_PHASES

    def set(self, new_phase: TurnPhase) -> TurnPhase:
        """Move to ``new_phase`` unconditionally and return it."""
        if new_phase != self._phase:
            LOGGER.debug(
                "turn.phase.transition",
                extra={
                    "event": "turn.phase.transition",
                    "from_phase": self._phase.value,
                    "to_phase": new_phase.value,
                },
            )
        self._phase = new_phase
        return self._phase

    async def transition_to(self, new_phase: TurnPhase) -> TurnPhase:
        """Transition to a new phase under the lock and return it."""
        async with self._lock:
            return self.set(new_phase)

    async def transition_if(self, expected: TurnPhase, new_phase: TurnPhase) -> bool:
        """Transition only when the current phase matches ``expected``."""
        async with self._lock:
            if self._phase != expected:
                return False
            self.set(new_phase)
            return True

    async def can_submit(self) -> bool:
        """Return True when a new turn may start."""
        async with self._lock:
            return self._phase == TurnPhase.IDLE
