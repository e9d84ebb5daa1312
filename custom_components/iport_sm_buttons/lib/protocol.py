"""Wire format of the iPort SM Buttons LAN keypad.

The keypad speaks a loose, carriage-return framed text protocol. Inbound
records come in three shapes and are tried in this order:

1. a JSON object with an optional ``led`` value and an optional ``events``
   list of ``{"label": "Key N", "state": "0"|"1"}`` entries,
2. free text containing ``led=VALUE``,
3. a bare 9 digit LED value.

Anything else is dropped. Decoding never raises.
"""
from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

log = logging.getLogger("iport.protocol")

BUTTON_COUNT = 10

LED_QUERY = b"\rled=?\r"
LED_PREFIX = "led="

STATE_RELEASED = 0
STATE_PRESSED = 1

_BARE_LED_RE = re.compile(r"^\d{9}$")
_LINE_SPLIT_RE = re.compile(r"[\r\n]+")


@dataclass(slots=True, frozen=True)
class ButtonEvent:
    """One decoded key edge; ``index`` is 0-based."""

    index: int
    state: int


@dataclass(slots=True)
class DecodedFrame:
    led: str | None = None
    events: list[ButtonEvent] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return self.led is None and not self.events


def build_set_led(r: int, g: int, b: int) -> bytes:
    """Return the ``\\rled=RRRGGGBBB\\r`` command for an RGB triple."""

    return f"\rled={int(r):03d}{int(g):03d}{int(b):03d}\r".encode("ascii")


def label_to_index(label: Any) -> int | None:
    """Map a ``"Key 3"`` style label to a 0-based button index."""

    if not isinstance(label, str):
        return None
    parts = label.strip().split()
    if not parts:
        return None
    try:
        number = int(parts[-1], 10)
    except ValueError:
        return None
    index = number - 1
    if index < 0 or index >= BUTTON_COUNT:
        return None
    return index


def _parse_state(raw: Any) -> int | None:
    try:
        state = int(str(raw).strip(), 10)
    except ValueError:
        return None
    if state not in (STATE_RELEASED, STATE_PRESSED):
        return None
    return state


def _decode_events(raw_events: Any) -> list[ButtonEvent]:
    events: list[ButtonEvent] = []
    if not isinstance(raw_events, list):
        return events

    for raw in raw_events:
        if not isinstance(raw, dict):
            log.debug("skipping non-object event %r", raw)
            continue
        index = label_to_index(raw.get("label"))
        if index is None:
            log.debug("skipping event with bad label %r", raw.get("label"))
            continue
        state = _parse_state(raw.get("state"))
        if state is None:
            log.debug("skipping event with bad state %r", raw.get("state"))
            continue
        events.append(ButtonEvent(index, state))
    return events


def _decode_json(text: str) -> DecodedFrame | None:
    try:
        record = json.loads(text)
    except ValueError:
        return None
    if not isinstance(record, dict):
        return None

    frame = DecodedFrame()
    led = record.get("led")
    if led not in (None, "", 0):
        frame.led = str(led).strip()
    if "events" in record:
        frame.events = _decode_events(record["events"])
    return frame


def _decode_loose(text: str) -> DecodedFrame | None:
    if LED_PREFIX in text:
        tail = text.split(LED_PREFIX, 1)[1].strip()
        value = tail.split()[0] if tail else ""
        if value:
            return DecodedFrame(led=value)
        return None

    bare = text.replace("\r", "").replace("\n", "").strip()
    if _BARE_LED_RE.match(bare):
        return DecodedFrame(led=bare)
    return None


def decode_record(text: str) -> DecodedFrame:
    """Decode a single trimmed record."""

    text = text.strip()
    if not text:
        return DecodedFrame()

    frame = _decode_json(text)
    if frame is not None:
        return frame

    frame = _decode_loose(text)
    if frame is not None:
        return frame

    log.debug("discarding undecodable record %r", text)
    return DecodedFrame()


def decode_frame(data: bytes | str) -> DecodedFrame:
    """Decode one chunk received from the keypad.

    A chunk normally holds one record, but the keypad occasionally flushes
    several at once. A chunk spanning several CR/LF separated lines is
    decoded line by line, unless the whole of it is one JSON object, with
    LED values (last wins) and events (in order) merged.
    """

    if isinstance(data, bytes):
        text = data.decode("utf-8", errors="ignore")
    else:
        text = data

    lines = [line for line in _LINE_SPLIT_RE.split(text) if line.strip()]
    if len(lines) < 2:
        return decode_record(text)

    whole = _decode_json(text.strip())
    if whole is not None:
        return whole

    merged = DecodedFrame()
    for line in lines:
        part = decode_record(line)
        if part.led is not None:
            merged.led = part.led
        merged.events.extend(part.events)
    return merged


__all__ = [
    "BUTTON_COUNT",
    "ButtonEvent",
    "DecodedFrame",
    "LED_QUERY",
    "STATE_PRESSED",
    "STATE_RELEASED",
    "build_set_led",
    "decode_frame",
    "decode_record",
    "label_to_index",
]
