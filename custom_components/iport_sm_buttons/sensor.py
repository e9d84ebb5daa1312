# custom_components/iport_sm_buttons/sensor.py
from __future__ import annotations

from homeassistant.components.sensor import SensorDeviceClass, SensorEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN, signal_led
from .hub import IPortHub
from .lib.led_state import MODE_COLORS, MODE_OFF, MODE_UNKNOWN, format_led_value

MODE_OPTIONS = [MODE_OFF, *MODE_COLORS, MODE_UNKNOWN]


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    hub: IPortHub = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([IPortModeSensor(hub)])


class IPortModeSensor(SensorEntity):
    """Mode name derived from the LED colour; this picks which mapping runs."""

    _attr_should_poll = False
    _attr_has_entity_name = True
    _attr_name = "Mode"
    _attr_icon = "mdi:palette"
    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = MODE_OPTIONS

    def __init__(self, hub: IPortHub) -> None:
        self._hub = hub
        self._attr_unique_id = f"{hub.entry_id}_mode"

    @property
    def device_info(self) -> DeviceInfo:
        return self._hub.device_info

    async def async_added_to_hass(self) -> None:
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                signal_led(self._hub.entry_id),
                self._handle_update,
            )
        )

    @callback
    def _handle_update(self) -> None:
        self.async_write_ha_state()

    @property
    def native_value(self) -> str:
        return self._hub.current_mode

    @property
    def extra_state_attributes(self) -> dict:
        return {"led": format_led_value(self._hub.led.color)}
