"""LED colour tracking and mode classification."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Callable

log = logging.getLogger("iport.led")

LED_VALUE_LENGTH = 9

MODE_OFF = "off"
MODE_UNKNOWN = "unknown"
MODE_ANY = "any"


def _clamp(value: int) -> int:
    return max(0, min(255, int(value)))


@dataclass(slots=True, frozen=True)
class LedColor:
    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "r", _clamp(self.r))
        object.__setattr__(self, "g", _clamp(self.g))
        object.__setattr__(self, "b", _clamp(self.b))

    @property
    def is_off(self) -> bool:
        return self.r == 0 and self.g == 0 and self.b == 0

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.r, self.g, self.b)


# Order matters: the first exact match wins.
MODE_COLORS: dict[str, LedColor] = {
    "yellow": LedColor(255, 255, 0),
    "red": LedColor(255, 0, 0),
    "blue": LedColor(0, 0, 255),
    "green": LedColor(0, 255, 0),
    "purple": LedColor(128, 0, 128),
    "white": LedColor(255, 255, 255),
}

COLOR_CYCLE: tuple[str, ...] = ("red", "green", "blue", "yellow", "purple", "white")

DEFAULT_COLOR = LedColor(255, 255, 255)


def parse_led_value(value: str) -> LedColor:
    """Turn a ``RRRGGGBBB`` string into a colour.

    Short values are left-padded with ``0`` and long ones truncated to nine
    characters. Raises ``ValueError`` when a field is not decimal.
    """

    text = str(value).strip()
    padded = text.rjust(LED_VALUE_LENGTH, "0")[:LED_VALUE_LENGTH]
    fields = (padded[0:3], padded[3:6], padded[6:9])
    if not all(f.isdigit() for f in fields):
        raise ValueError(f"invalid LED value {value!r}")
    r, g, b = (int(f, 10) for f in fields)
    return LedColor(r, g, b)


def format_led_value(color: LedColor) -> str:
    return f"{color.r:03d}{color.g:03d}{color.b:03d}"


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalize(color: LedColor) -> tuple[int, int, int]:
    """Scale a colour so its brightest channel is 255."""

    peak = max(color.r, color.g, color.b)
    if peak == 0:
        return (0, 0, 0)
    return (
        _round_half_up(color.r / peak * 255),
        _round_half_up(color.g / peak * 255),
        _round_half_up(color.b / peak * 255),
    )


_NORMALIZED_PALETTE: tuple[tuple[str, tuple[int, int, int]], ...] = tuple(
    (name, normalize(color)) for name, color in MODE_COLORS.items()
)


def classify_mode(color: LedColor) -> str:
    """Return the palette name for ``color``, ``off`` or ``unknown``.

    Both sides are brightness-normalized before comparing, so a dimmed red
    is still ``red`` and ``purple`` (128, 0, 128) matches at any level.
    """

    if color.is_off:
        return MODE_OFF
    candidate = normalize(color)
    for name, reference in _NORMALIZED_PALETTE:
        if candidate == reference:
            return name
    return MODE_UNKNOWN


class LedState:
    """Current LED colour plus the position in the mode cycle."""

    def __init__(self, initial: LedColor = DEFAULT_COLOR) -> None:
        self._color = initial
        self._cycle_index = 0
        self._listeners: list[Callable[[LedColor], None]] = []

    @property
    def color(self) -> LedColor:
        return self._color

    @property
    def mode(self) -> str:
        return classify_mode(self._color)

    @property
    def cycle_index(self) -> int:
        return self._cycle_index

    def on_change(self, cb: Callable[[LedColor], None]) -> Callable[[], None]:
        self._listeners.append(cb)

        def _remove() -> None:
            if cb in self._listeners:
                self._listeners.remove(cb)

        return _remove

    def set_color(self, color: LedColor) -> None:
        changed = color != self._color
        self._color = color
        if changed:
            log.debug("LED now %s (%s)", format_led_value(color), classify_mode(color))
        for cb in list(self._listeners):
            try:
                cb(color)
            except Exception:
                log.exception("LED listener failed")

    def apply_led_value(self, value: str) -> bool:
        """Apply a raw device value; ``False`` when it does not parse."""

        try:
            color = parse_led_value(value)
        except ValueError:
            log.debug("ignoring malformed LED value %r", value)
            return False
        self.set_color(color)
        return True

    def next_cycle_color(self) -> tuple[str, LedColor]:
        self._cycle_index = (self._cycle_index + 1) % len(COLOR_CYCLE)
        name = COLOR_CYCLE[self._cycle_index]
        return name, MODE_COLORS[name]
