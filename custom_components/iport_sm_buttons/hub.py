from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from homeassistant.core import HomeAssistant
from homeassistant.helpers.dispatcher import async_dispatcher_send
from homeassistant.helpers.entity import DeviceInfo

from .actions import HassActionExecutor
from .const import (
    CONF_BUTTON_MAPPINGS,
    CONF_CONNECT_TIMEOUT,
    CONF_DEBUG_FRAMES,
    CONF_DIRECT_CONTROL_ENABLED,
    CONF_DIRECT_CONTROL_PORT,
    CONF_HEALTH_CHECK_INTERVAL,
    CONF_IDLE_TIMEOUT,
    CONF_KEEPALIVE_INTERVAL,
    CONF_RECONNECT_BASE_DELAY,
    CONF_RECONNECT_MAX_DELAY,
    CONF_STALE_AFTER,
    DEFAULT_DIRECT_CONTROL_PORT,
    DOMAIN,
    EVENT_BUTTON_PRESSED,
    TIMING_DEFAULTS,
    signal_button,
    signal_connection,
    signal_led,
)
from .direct_control import DirectControlServer
from .lib.buttons import ButtonTracker
from .lib.dispatch import ActionDispatcher, ButtonMapping, ReadinessQueue
from .lib.led_state import LedColor, LedState, format_led_value
from .lib.protocol import ButtonEvent, build_set_led, decode_frame
from .lib.session import (
    DeviceSession,
    SessionConfig,
    SessionConnected,
    SessionData,
    SessionDisconnected,
    SessionEvent,
)
from .mappings import parse_mappings

_LOGGER = logging.getLogger(__name__)


def build_session_config(host: str, port: int, options: Mapping[str, Any]) -> SessionConfig:
    """Session timings from entry options, falling back to defaults."""

    values = {key: float(options.get(key, default)) for key, default in TIMING_DEFAULTS.items()}
    return SessionConfig(
        host=host,
        port=int(port),
        connect_timeout=values[CONF_CONNECT_TIMEOUT],
        idle_timeout=values[CONF_IDLE_TIMEOUT],
        reconnect_base_delay=values[CONF_RECONNECT_BASE_DELAY],
        reconnect_max_delay=values[CONF_RECONNECT_MAX_DELAY],
        keepalive_interval=values[CONF_KEEPALIVE_INTERVAL],
        health_check_interval=values[CONF_HEALTH_CHECK_INTERVAL],
        stale_after=values[CONF_STALE_AFTER],
    )


class IPortHub:
    """Everything one configured keypad needs, owned per config entry."""

    def __init__(
        self,
        hass: HomeAssistant,
        entry_id: str,
        name: str,
        host: str,
        port: int,
        options: Mapping[str, Any] | None = None,
    ) -> None:
        self.hass = hass
        self.entry_id = entry_id
        self.name = name
        self.host = host
        self.port = int(port)
        options = dict(options or {})

        self.led = LedState()
        self.buttons = ButtonTracker()
        self.connected: bool = False
        self._stopping: bool = False

        self.mappings, self.skipped_mappings = parse_mappings(options.get(CONF_BUTTON_MAPPINGS))
        self._executor = HassActionExecutor(hass, self.set_led_color)
        self._dispatcher = ActionDispatcher(
            self.mappings,
            self._executor,
            current_mode=lambda: self.led.mode,
            cycle_mode=self.cycle_mode,
        )
        self._pending = ReadinessQueue[ButtonEvent](self._handle_button_edge)
        self.led.on_change(self._on_led_change)

        self.session = DeviceSession(
            build_session_config(host, port, options),
            self._handle_session_event,
            log_frames=bool(options.get(CONF_DEBUG_FRAMES, False)),
        )

        self._direct_control: Optional[DirectControlServer] = None
        if options.get(CONF_DIRECT_CONTROL_ENABLED, True):
            self._direct_control = DirectControlServer(
                self, int(options.get(CONF_DIRECT_CONTROL_PORT, DEFAULT_DIRECT_CONTROL_PORT))
            )

        _LOGGER.debug(
            "[%s] Created hub %s for %s:%s with %d mappings (%d skipped)",
            self.entry_id,
            name,
            host,
            port,
            len(self.mappings),
            self.skipped_mappings,
        )

    # ------------------------------------------------------------------
    # lifecycle
    # ------------------------------------------------------------------
    async def async_start(self) -> None:
        _LOGGER.debug("[%s] Starting session to %s:%s", self.entry_id, self.host, self.port)
        self.session.start()
        if self._direct_control is not None:
            await self._direct_control.async_start()

    async def async_stop(self) -> None:
        _LOGGER.debug("[%s] Stopping hub", self.entry_id)
        self._stopping = True
        if self._direct_control is not None:
            await self._direct_control.async_stop()
        await self.session.shutdown()
        if self.connected:
            self.connected = False
            async_dispatcher_send(self.hass, signal_connection(self.entry_id))

    @property
    def shutting_down(self) -> bool:
        return self._stopping or self.session.shutting_down

    @property
    def buttons_ready(self) -> bool:
        return self._pending.ready

    @property
    def direct_control(self) -> Optional[DirectControlServer]:
        return self._direct_control

    # ------------------------------------------------------------------
    # session → HA
    # ------------------------------------------------------------------
    def _handle_session_event(self, event: SessionEvent) -> None:
        if isinstance(event, SessionData):
            self._handle_data(event.payload)
        elif isinstance(event, SessionConnected):
            _LOGGER.info("[%s] Connected to %s:%s", self.entry_id, event.host, event.port)
            self.connected = True
            async_dispatcher_send(self.hass, signal_connection(self.entry_id))
        elif isinstance(event, SessionDisconnected):
            _LOGGER.info("[%s] Disconnected: %s", self.entry_id, event.reason)
            self.connected = False
            async_dispatcher_send(self.hass, signal_connection(self.entry_id))

    def _handle_data(self, payload: bytes) -> None:
        if self.shutting_down:
            return
        frame = decode_frame(payload)
        if frame.led is not None:
            self.led.apply_led_value(frame.led)
        for edge in frame.events:
            if not self._pending.submit(edge):
                _LOGGER.debug(
                    "[%s] Queued event for button %d, state %d",
                    self.entry_id,
                    edge.index + 1,
                    edge.state,
                )

    def _handle_button_edge(self, edge: ButtonEvent) -> None:
        if not self.connected or self.shutting_down:
            _LOGGER.debug(
                "[%s] Ignoring event for button %d: not connected or shutting down",
                self.entry_id,
                edge.index + 1,
            )
            return
        if self.buttons.handle(edge.index, edge.state):
            self._on_trigger(edge.index + 1)

    def _on_trigger(self, button_number: int) -> None:
        _LOGGER.debug("[%s] Button %d triggered single press", self.entry_id, button_number)
        self.hass.async_create_task(self.async_trigger_button(button_number))

    def _on_led_change(self, color: LedColor) -> None:
        async_dispatcher_send(self.hass, signal_led(self.entry_id))

    # ------------------------------------------------------------------
    # accessory layer → hub
    # ------------------------------------------------------------------
    def mark_buttons_ready(self) -> None:
        """Replay edges that arrived while the platforms were still loading.

        Called once entry setup has forwarded every platform, whether or not
        each button entity is enabled.
        """

        queued = len(self._pending.pending)
        drained = self._pending.mark_ready()
        if queued:
            _LOGGER.debug("[%s] Processed %d queued events", self.entry_id, drained)

    # ------------------------------------------------------------------
    # actions
    # ------------------------------------------------------------------
    async def async_trigger_button(self, button_number: int) -> Optional[ButtonMapping]:
        """Report a press of ``button_number`` and run its action."""

        if self.shutting_down:
            return None
        mode = self.led.mode
        async_dispatcher_send(self.hass, signal_button(self.entry_id), button_number)
        self.hass.bus.async_fire(
            EVENT_BUTTON_PRESSED,
            {
                "entry_id": self.entry_id,
                "button_number": button_number,
                "mode": mode,
            },
        )
        return await self.async_execute_button_action(button_number)

    async def async_execute_button_action(self, button_number: int) -> Optional[ButtonMapping]:
        if self.shutting_down:
            return None
        return await self._dispatcher.async_execute_button_action(button_number)

    def set_led(self, r: int, g: int, b: int) -> bool:
        """Set the LED. The local colour changes even if the write fails."""

        color = LedColor(r, g, b)
        self.led.set_color(color)
        sent = self.session.write(build_set_led(color.r, color.g, color.b))
        if not sent:
            _LOGGER.debug(
                "[%s] LED %s not sent: device not connected",
                self.entry_id,
                format_led_value(color),
            )
        return sent

    def set_led_color(self, color: LedColor) -> bool:
        return self.set_led(color.r, color.g, color.b)

    def cycle_mode(self) -> bool:
        name, color = self.led.next_cycle_color()
        _LOGGER.info(
            "[%s] Button 10 pressed: cycling to %s (%d,%d,%d)",
            self.entry_id,
            name,
            color.r,
            color.g,
            color.b,
        )
        return self.set_led_color(color)

    # ------------------------------------------------------------------
    # helpers for entities / diagnostics
    # ------------------------------------------------------------------
    @property
    def current_mode(self) -> str:
        return self.led.mode

    @property
    def device_info(self) -> DeviceInfo:
        return DeviceInfo(
            identifiers={(DOMAIN, f"{self.host}:{self.port}")},
            name=self.name,
            manufacturer="iPort",
            model="SM Buttons LAN",
        )

    def get_state_snapshot(self) -> dict[str, Any]:
        since = self.session.seconds_since_data() if self.session.last_data_at is not None else None
        return {
            "connected": self.connected,
            "shutting_down": self.shutting_down,
            "reconnect_attempts": self.session.reconnect_attempts,
            "reconnect_pending": self.session.reconnect_pending,
            "seconds_since_data": round(since, 1) if since is not None else None,
            "led": format_led_value(self.led.color),
            "mode": self.led.mode,
            "buttons_ready": self.buttons_ready,
            "pressed": [i + 1 for i in range(len(self.buttons)) if self.buttons.state(i).pressed],
            "mappings": [m.as_dict() for m in self.mappings],
            "skipped_mappings": self.skipped_mappings,
            "direct_control_running": (
                self._direct_control.running if self._direct_control is not None else False
            ),
            "direct_control_error": (
                self._direct_control.get_last_start_error()
                if self._direct_control is not None
                else None
            ),
        }
