"""Per-key press/release tracking."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .protocol import BUTTON_COUNT, STATE_PRESSED, STATE_RELEASED

log = logging.getLogger("iport.buttons")


@dataclass(slots=True)
class ButtonState:
    pressed: bool = False
    last_press_at: float = 0.0


class ButtonTracker:
    """Turn raw key edges into one trigger per press→release pair.

    Repeated presses while a key is held are ignored, and so are releases
    for keys that were never seen going down.
    """

    def __init__(
        self,
        count: int = BUTTON_COUNT,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._states = [ButtonState() for _ in range(count)]
        self._clock = clock

    def __len__(self) -> int:
        return len(self._states)

    def state(self, index: int) -> ButtonState:
        return self._states[index]

    def handle(self, index: int, state: int) -> bool:
        """Feed one edge; return ``True`` when it completes a press."""

        if index < 0 or index >= len(self._states):
            log.debug("ignoring edge for out-of-range key index %s", index)
            return False

        bs = self._states[index]
        if state == STATE_PRESSED:
            if not bs.pressed:
                bs.pressed = True
                bs.last_press_at = self._clock()
            return False

        if state == STATE_RELEASED:
            if not bs.pressed:
                log.debug("ignoring release for key %d without press", index + 1)
                return False
            bs.pressed = False
            return True

        log.debug("ignoring unknown state %r for key %d", state, index + 1)
        return False
