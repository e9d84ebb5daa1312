# custom_components/iport_sm_buttons/binary_sensor.py
from __future__ import annotations

from typing import Any

from homeassistant.components.binary_sensor import (
    BinarySensorEntity,
    BinarySensorDeviceClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import DeviceInfo, EntityCategory
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import DOMAIN, signal_connection
from .hub import IPortHub


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    hub: IPortHub = hass.data[DOMAIN][entry.entry_id]
    async_add_entities([IPortConnectionSensor(hub)])


class IPortConnectionSensor(BinarySensorEntity):
    """Is the TCP session to the keypad up?"""

    _attr_should_poll = False
    _attr_has_entity_name = True
    _attr_name = "Connected"
    _attr_device_class = BinarySensorDeviceClass.CONNECTIVITY
    _attr_entity_category = EntityCategory.DIAGNOSTIC

    def __init__(self, hub: IPortHub) -> None:
        self._hub = hub
        self._attr_unique_id = f"{hub.entry_id}_connected"

    @property
    def device_info(self) -> DeviceInfo:
        return self._hub.device_info

    async def async_added_to_hass(self) -> None:
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                signal_connection(self._hub.entry_id),
                self._handle_connection_state,
            )
        )

    @callback
    def _handle_connection_state(self) -> None:
        self.async_write_ha_state()

    @property
    def is_on(self) -> bool:
        return self._hub.connected

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        session = self._hub.session
        return {
            "reconnect_attempts": session.reconnect_attempts,
            "reconnect_pending": session.reconnect_pending,
        }
