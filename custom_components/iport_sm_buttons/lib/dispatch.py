"""Resolve key presses into configured actions."""
from __future__ import annotations

import enum
import logging
from collections import deque
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, Protocol, Sequence, TypeVar

from .led_state import MODE_ANY

log = logging.getLogger("iport.dispatch")

MODE_CYCLE_BUTTON = 10

T = TypeVar("T")


class ActionType(str, enum.Enum):
    BULB = "bulb"
    ACCESSORY = "accessory"
    SCENE = "scene"
    LED = "led"


@dataclass(slots=True, frozen=True)
class ButtonMapping:
    button_number: int
    mode_color: str
    action_type: ActionType
    action: str
    target: tuple[str, ...] = ()
    value: float | None = None

    @property
    def key(self) -> str:
        targets = "_".join(t.replace(" ", "_") for t in self.target)
        return f"btn{self.button_number}-{self.mode_color}-{self.action}-{targets}"

    def as_dict(self) -> dict:
        return {
            "button_number": self.button_number,
            "mode_color": self.mode_color,
            "action_type": self.action_type.value,
            "action": self.action,
            "target": list(self.target),
            "value": self.value,
        }


class ActionExecutor(Protocol):
    """Carries out one mapping. Implementations log their own failures."""

    async def async_bulb_action(self, mapping: ButtonMapping) -> None:  # pragma: no cover - protocol
        ...

    async def async_accessory_action(self, mapping: ButtonMapping) -> None:  # pragma: no cover - protocol
        ...

    async def async_scene_action(self, mapping: ButtonMapping) -> None:  # pragma: no cover - protocol
        ...

    async def async_led_action(self, mapping: ButtonMapping) -> None:  # pragma: no cover - protocol
        ...


def select_mapping(
    mappings: Iterable[ButtonMapping], button_number: int, mode: str
) -> ButtonMapping | None:
    """Pick the mapping to run: exact mode first, then ``any``."""

    candidates = [m for m in mappings if m.button_number == button_number]
    for mapping in candidates:
        if mapping.mode_color == mode:
            return mapping
    for mapping in candidates:
        if mapping.mode_color == MODE_ANY:
            return mapping
    return None


class ActionDispatcher:
    def __init__(
        self,
        mappings: Sequence[ButtonMapping],
        executor: ActionExecutor,
        *,
        current_mode: Callable[[], str],
        cycle_mode: Callable[[], None],
    ) -> None:
        self._mappings: tuple[ButtonMapping, ...] = tuple(mappings)
        self._current_mode = current_mode
        self._cycle_mode = cycle_mode
        self._handlers: dict[ActionType, Callable[[ButtonMapping], Awaitable[None]]] = {
            ActionType.BULB: executor.async_bulb_action,
            ActionType.ACCESSORY: executor.async_accessory_action,
            ActionType.SCENE: executor.async_scene_action,
            ActionType.LED: executor.async_led_action,
        }

    @property
    def mappings(self) -> tuple[ButtonMapping, ...]:
        return self._mappings

    def mappings_for(self, button_number: int) -> list[ButtonMapping]:
        return [m for m in self._mappings if m.button_number == button_number]

    async def async_execute_button_action(self, button_number: int) -> ButtonMapping | None:
        """Run whatever ``button_number`` is bound to in the current mode.

        Button 10 always cycles the LED mode. Returns the mapping that ran,
        or ``None``.
        """

        if button_number == MODE_CYCLE_BUTTON:
            self._cycle_mode()
            return None

        if not self.mappings_for(button_number):
            log.info("No actions configured for button %d", button_number)
            return None

        mode = self._current_mode()
        mapping = select_mapping(self._mappings, button_number, mode)
        if mapping is None:
            log.info("No action for button %d in %s mode", button_number, mode)
            return None

        log.info(
            "Button %d in %s mode → %s %s %s",
            button_number,
            mode,
            mapping.action_type.value,
            mapping.action,
            ", ".join(mapping.target) or "-",
        )
        handler = self._handlers.get(mapping.action_type)
        if handler is None:
            log.warning("Unsupported action type %r for button %d", mapping.action_type, button_number)
            return None

        try:
            await handler(mapping)
        except Exception:
            log.exception("Action %s failed", mapping.key)
        return mapping


class ReadinessQueue(Generic[T]):
    """Hold items until the consumer is attached, then pass them through.

    Items submitted before :meth:`mark_ready` are replayed once, in arrival
    order. After that the queue is never used again.
    """

    def __init__(self, consumer: Callable[[T], None]) -> None:
        self._consumer = consumer
        self._pending: deque[T] = deque()
        self._ready = False

    @property
    def ready(self) -> bool:
        return self._ready

    @property
    def pending(self) -> tuple[T, ...]:
        return tuple(self._pending)

    def submit(self, item: T) -> bool:
        """Consume ``item`` now if ready; otherwise queue it and return ``False``."""

        if self._ready:
            self._consumer(item)
            return True
        self._pending.append(item)
        return False

    def mark_ready(self) -> int:
        if self._ready:
            return 0
        drained = 0
        while self._pending:
            item = self._pending.popleft()
            drained += 1
            try:
                self._consumer(item)
            except Exception:
                log.exception("Failed to replay queued item %r", item)
        self._ready = True
        return drained
