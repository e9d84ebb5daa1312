from __future__ import annotations

"""Diagnostics download: redacted entry, live hub state and captured logs."""

import logging
import re
import socket
from collections import deque
from typing import Any, Iterable

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant

from .const import CONF_HOST, DOMAIN

_LOGGER = logging.getLogger(__name__)

CAPTURE_KEY = "_frame_capture"
CAPTURED_LOGGERS = ("custom_components.iport_sm_buttons", "iport")

_MAX_LINES = 2000
_MAX_CHARS = 256 * 1024
_IP_RE = re.compile(r"\b\d{1,3}(?:\.\d{1,3}){3}\b")
_REDACTED_IP = "[REDACTED_IP]"


class _RingHandler(logging.Handler):
    """Formatted records, bounded by line count and total size."""

    def __init__(self) -> None:
        super().__init__(logging.DEBUG)
        self.setFormatter(logging.Formatter("%(asctime)s %(name)s %(levelname)s: %(message)s"))
        self._lines: deque[str] = deque()
        self._chars = 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record)
        except Exception:  # noqa: BLE001 - diagnostics must never break logging
            self.handleError(record)
            return
        self._lines.append(line)
        self._chars += len(line)
        while self._lines and (len(self._lines) > _MAX_LINES or self._chars > _MAX_CHARS):
            self._chars -= len(self._lines.popleft())

    @property
    def lines(self) -> list[str]:
        return list(self._lines)


class FrameLogCapture:
    """Routes our loggers into a ring buffer while any entry has ``debug_frames`` on.

    Logger levels and propagation are saved on first attach and put back when
    the last entry lets go.
    """

    def __init__(self) -> None:
        self.handler = _RingHandler()
        self._entries: set[str] = set()
        self._saved: dict[str, tuple[int, bool]] = {}

    @property
    def active(self) -> bool:
        return bool(self._entries)

    def acquire(self, entry_id: str) -> None:
        first = not self._entries
        self._entries.add(entry_id)
        if not first:
            return
        for name in CAPTURED_LOGGERS:
            logger = logging.getLogger(name)
            self._saved[name] = (logger.level, logger.propagate)
            logger.addHandler(self.handler)
            if logger.getEffectiveLevel() > logging.DEBUG:
                # keep debug noise out of the main HA log
                logger.setLevel(logging.DEBUG)
                logger.propagate = False
        _LOGGER.debug("Frame log capture started for %s", entry_id)

    def release(self, entry_id: str) -> None:
        self._entries.discard(entry_id)
        if self._entries:
            return
        for name, (level, propagate) in self._saved.items():
            logger = logging.getLogger(name)
            logger.removeHandler(self.handler)
            logger.setLevel(level)
            logger.propagate = propagate
        self._saved.clear()


def _capture(hass: HomeAssistant) -> FrameLogCapture:
    domain_data = hass.data.setdefault(DOMAIN, {})
    capture = domain_data.get(CAPTURE_KEY)
    if capture is None:
        capture = domain_data[CAPTURE_KEY] = FrameLogCapture()
    return capture


def async_enable_frame_capture(hass: HomeAssistant, entry_id: str) -> None:
    _capture(hass).acquire(entry_id)


def async_disable_frame_capture(hass: HomeAssistant, entry_id: str) -> None:
    capture = hass.data.get(DOMAIN, {}).get(CAPTURE_KEY)
    if capture is not None:
        capture.release(entry_id)


def _redact(data: Any) -> Any:
    """Hide host values and IPs; entity ids and colours pass through."""

    if isinstance(data, dict):
        return {
            key: _REDACTED_IP if str(key).lower() == CONF_HOST else _redact(value)
            for key, value in data.items()
        }
    if isinstance(data, (list, tuple)):
        return [_redact(item) for item in data]
    if isinstance(data, str):
        return _IP_RE.sub(_REDACTED_IP, data)
    return data


def _scrub_lines(lines: Iterable[str], host: Any) -> list[str]:
    replacements: list[tuple[re.Pattern[str], str]] = [(_IP_RE, _REDACTED_IP)]
    if isinstance(host, str) and host:
        replacements.append((re.compile(re.escape(host), re.IGNORECASE), "[REDACTED_HOST]"))
    hostname = socket.gethostname()
    if hostname:
        replacements.append((re.compile(re.escape(hostname), re.IGNORECASE), "[REDACTED_HOSTNAME]"))

    scrubbed = []
    for line in lines:
        for pattern, replacement in replacements:
            line = pattern.sub(replacement, line)
        scrubbed.append(line)
    return scrubbed


async def async_get_config_entry_diagnostics(
    hass: HomeAssistant, entry: ConfigEntry
) -> dict[str, Any]:
    """Return diagnostics for a config entry."""

    hub = hass.data.get(DOMAIN, {}).get(entry.entry_id)
    hub_state: dict[str, Any] = {}
    if hub is not None:
        hub_state = _redact(
            {"name": hub.name, "host": hub.host, "port": hub.port, **hub.get_state_snapshot()}
        )

    capture = _capture(hass)
    return {
        "entry": {
            "data": _redact(dict(entry.data)),
            "options": _redact(dict(entry.options)),
        },
        "hub": hub_state,
        "log_capture_active": capture.active,
        "logs": _scrub_lines(capture.handler.lines, entry.data.get(CONF_HOST)),
    }
