# custom_components/iport_sm_buttons/event.py
from __future__ import annotations

from homeassistant.components.event import EventDeviceClass, EventEntity
from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.dispatcher import async_dispatcher_connect
from homeassistant.helpers.entity import DeviceInfo
from homeassistant.helpers.entity_platform import AddEntitiesCallback

from .const import (
    BUTTON_COUNT,
    DOMAIN,
    EVENT_TYPE_SINGLE_PRESS,
    signal_button,
    signal_connection,
)
from .hub import IPortHub
from .lib.dispatch import MODE_CYCLE_BUTTON


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    hub: IPortHub = hass.data[DOMAIN][entry.entry_id]
    async_add_entities(
        [IPortButtonEvent(hub, number) for number in range(1, BUTTON_COUNT + 1)]
    )


class IPortButtonEvent(EventEntity):
    """Stateless key on the keypad; fires once per press/release."""

    _attr_should_poll = False
    _attr_has_entity_name = True
    _attr_device_class = EventDeviceClass.BUTTON
    _attr_event_types = [EVENT_TYPE_SINGLE_PRESS]

    def __init__(self, hub: IPortHub, button_number: int) -> None:
        self._hub = hub
        self._button_number = button_number
        self._attr_name = f"Button {button_number}"
        self._attr_unique_id = f"{hub.entry_id}_button_{button_number}"
        if button_number == MODE_CYCLE_BUTTON:
            self._attr_icon = "mdi:palette"

    @property
    def device_info(self) -> DeviceInfo:
        return self._hub.device_info

    @property
    def available(self) -> bool:
        return self._hub.connected

    async def async_added_to_hass(self) -> None:
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                signal_button(self._hub.entry_id),
                self._handle_button,
            )
        )
        self.async_on_remove(
            async_dispatcher_connect(
                self.hass,
                signal_connection(self._hub.entry_id),
                self._handle_update,
            )
        )

    @callback
    def _handle_button(self, button_number: int) -> None:
        if button_number != self._button_number:
            return
        self._trigger_event(
            EVENT_TYPE_SINGLE_PRESS,
            {"mode": self._hub.current_mode},
        )
        self.async_write_ha_state()

    @callback
    def _handle_update(self) -> None:
        self.async_write_ha_state()
