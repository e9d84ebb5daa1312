# custom_components/iport_sm_buttons/light.py
from __future__ import annotations

from typing import Any

from homeassistant.components.light import (
    ATTR_BRIGHTNESS,
    ATTR_RGB_COLOR,
    ColorMode,
    LightEntity,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN, signal_connection, signal_led
from .hub import IPortHub
from .lib.led_state import DEFAULT_COLOR, LedColor, normalize


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    hub: IPortHub = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([IPortLedLight(hub)])


def scale_color(rgb: tuple[int, int, int], brightness: int) -> LedColor:
    """Scale a hue (any brightness) so its brightest channel equals ``brightness``."""

    peak = max(rgb)
    if peak == 0 or brightness <= 0:
        return LedColor(0, 0, 0)
    return LedColor(*(round(c * brightness / peak) for c in rgb))


class IPortLedLight(LightEntity):
    """The keypad backlight. Its colour doubles as the mode indicator."""

    _attr_should_poll = False
    _attr_has_entity_name = True
    _attr_name = "LED"
    _attr_icon = "mdi:led-on"
    _attr_color_mode = ColorMode.RGB
    _attr_supported_color_modes = {ColorMode.RGB}

    def __init__(self, hub: IPortHub) -> None:
        self._hub = hub
        self._attr_unique_id = f"{hub.entry_id}_led"

    @property
    def device_info(self) -> DeviceInfo:
        return self._hub.device_info

    @property
    def available(self) -> bool:
        return self._hub.connected

    async def async_added_to_hass(self) -> None:
        for sig in (signal_led(self._hub.entry_id), signal_connection(self._hub.entry_id)):
            self.async_on_remove(
                async_dispatcher_connect(self.hass, sig, self._handle_update)
            )

    @callback
    def _handle_update(self) -> None:
        self.async_write_ha_state()

    @property
    def is_on(self) -> bool:
        return not self._hub.led.color.is_off

    @property
    def brightness(self) -> int | None:
        color = self._hub.led.color
        return max(color.r, color.g, color.b)

    @property
    def rgb_color(self) -> tuple[int, int, int] | None:
        color = self._hub.led.color
        if color.is_off:
            return None
        return normalize(color)

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        return {"mode": self._hub.current_mode}

    async def async_turn_on(self, **kwargs: Any) -> None:
        current = self._hub.led.color
        if ATTR_RGB_COLOR in kwargs:
            hue = tuple(kwargs[ATTR_RGB_COLOR])
        elif current.is_off:
            hue = DEFAULT_COLOR.as_tuple()
        else:
            hue = normalize(current)

        if ATTR_BRIGHTNESS in kwargs:
            brightness = int(kwargs[ATTR_BRIGHTNESS])
        elif current.is_off:
            brightness = 255
        else:
            brightness = max(current.r, current.g, current.b)

        self._hub.set_led_color(scale_color(hue, brightness))

    async def async_turn_off(self, **kwargs: Any) -> None:
        self._hub.set_led(0, 0, 0)
