from __future__ import annotations

import logging

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.exceptions import HomeAssistantError
import homeassistant.helpers.config_validation as cv

from .const import (
    BUTTON_COUNT,
    CONF_DEBUG_FRAMES,
    CONF_HOST,
    CONF_NAME,
    CONF_PORT,
    DEFAULT_NAME,
    DEFAULT_PORT,
    DOMAIN,
    PLATFORMS,
    SERVICE_CYCLE_MODE,
    SERVICE_SET_LED,
    SERVICE_TRIGGER_BUTTON,
)
from .diagnostics import async_disable_frame_capture, async_enable_frame_capture
from .hub import IPortHub

_LOGGER = logging.getLogger(__name__)

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

_CHANNEL = vol.All(vol.Coerce(int), vol.Range(min=0, max=255))

TRIGGER_BUTTON_SCHEMA = vol.Schema(
    {
        vol.Optional("entry_id"): cv.string,
        vol.Required("button_number"): vol.All(vol.Coerce(int), vol.Range(min=1, max=BUTTON_COUNT)),
    }
)
SET_LED_SCHEMA = vol.Schema(
    {
        vol.Optional("entry_id"): cv.string,
        vol.Required("r"): _CHANNEL,
        vol.Required("g"): _CHANNEL,
        vol.Required("b"): _CHANNEL,
    }
)
CYCLE_MODE_SCHEMA = vol.Schema({vol.Optional("entry_id"): cv.string})


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    data = entry.data

    hub = IPortHub(
        hass=hass,
        entry_id=entry.entry_id,
        name=data.get(CONF_NAME, DEFAULT_NAME),
        host=data[CONF_HOST],
        port=data.get(CONF_PORT, DEFAULT_PORT),
        options=entry.options,
    )

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = hub
    if not hass.services.has_service(DOMAIN, SERVICE_TRIGGER_BUTTON):
        _async_register_services(hass)

    if entry.options.get(CONF_DEBUG_FRAMES, False):
        async_enable_frame_capture(hass, entry.entry_id)

    entry.async_on_unload(entry.add_update_listener(async_update_options))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    hub.mark_buttons_ready()
    await hub.async_start()
    return True


async def async_update_options(hass: HomeAssistant, entry: ConfigEntry) -> None:
    """Timings and mappings are read once, so reload on any change."""
    await hass.config_entries.async_reload(entry.entry_id)


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hub = hass.data[DOMAIN].pop(entry.entry_id, None)
        if hub is not None:
            await hub.async_stop()
        async_disable_frame_capture(hass, entry.entry_id)
        if not any(isinstance(v, IPortHub) for v in hass.data[DOMAIN].values()):
            for service in (SERVICE_TRIGGER_BUTTON, SERVICE_SET_LED, SERVICE_CYCLE_MODE):
                hass.services.async_remove(DOMAIN, service)
            hass.data.pop(DOMAIN)
    return unload_ok


def _async_register_services(hass: HomeAssistant) -> None:
    async def _async_handle_trigger_button(call: ServiceCall) -> None:
        hub = _resolve_hub(hass, call)
        await hub.async_trigger_button(call.data["button_number"])

    async def _async_handle_set_led(call: ServiceCall) -> None:
        hub = _resolve_hub(hass, call)
        hub.set_led(call.data["r"], call.data["g"], call.data["b"])

    async def _async_handle_cycle_mode(call: ServiceCall) -> None:
        hub = _resolve_hub(hass, call)
        hub.cycle_mode()

    hass.services.async_register(
        DOMAIN, SERVICE_TRIGGER_BUTTON, _async_handle_trigger_button, schema=TRIGGER_BUTTON_SCHEMA
    )
    hass.services.async_register(DOMAIN, SERVICE_SET_LED, _async_handle_set_led, schema=SET_LED_SCHEMA)
    hass.services.async_register(
        DOMAIN, SERVICE_CYCLE_MODE, _async_handle_cycle_mode, schema=CYCLE_MODE_SCHEMA
    )


def _resolve_hub(hass: HomeAssistant, call: ServiceCall) -> IPortHub:
    """Explicit entry_id first, otherwise the only configured keypad."""
    hubs = {
        key: hub
        for key, hub in hass.data.get(DOMAIN, {}).items()
        if isinstance(hub, IPortHub)
    }

    entry_id = call.data.get("entry_id")
    if entry_id:
        hub = hubs.get(entry_id)
        if hub is None:
            raise HomeAssistantError(f"No keypad configured with entry id {entry_id}")
        return hub

    if len(hubs) == 1:
        return next(iter(hubs.values()))
    if not hubs:
        raise HomeAssistantError("No keypad configured")
    raise HomeAssistantError("Several keypads configured, pass entry_id")
