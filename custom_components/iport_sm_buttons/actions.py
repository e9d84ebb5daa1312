"""Home Assistant side of mapped button actions."""
from __future__ import annotations

import logging
from typing import Any, Callable

from homeassistant.core import HomeAssistant
from homeassistant.exceptions import HomeAssistantError

from .lib.dispatch import ButtonMapping
from .lib.led_state import MODE_COLORS, LedColor

_LOGGER = logging.getLogger(__name__)

_ACCESSORY_SERVICES = {
    "toggle": "toggle",
    "on": "turn_on",
    "off": "turn_off",
}


class HassActionExecutor:
    """Run mappings through Home Assistant services.

    Each target is called on its own, so one unreachable bulb or a missing
    entity never stops the remaining targets.
    """

    def __init__(self, hass: HomeAssistant, set_led: Callable[[LedColor], Any]) -> None:
        self.hass = hass
        self._set_led = set_led

    async def _async_call(
        self, mapping: ButtonMapping, domain: str, service: str, entity_id: str, **data: Any
    ) -> bool:
        if self.hass.states.get(entity_id) is None:
            _LOGGER.warning("[%s] Entity %s not found", mapping.key, entity_id)
            return False
        try:
            await self.hass.services.async_call(
                domain,
                service,
                {"entity_id": entity_id, **data},
                blocking=True,
            )
        except (HomeAssistantError, ValueError) as err:
            _LOGGER.warning("[%s] %s.%s on %s failed: %s", mapping.key, domain, service, entity_id, err)
            return False
        except Exception:  # noqa: BLE001 - one target must not stop the rest
            _LOGGER.exception("[%s] %s.%s on %s raised", mapping.key, domain, service, entity_id)
            return False
        _LOGGER.debug("[%s] %s.%s on %s", mapping.key, domain, service, entity_id)
        return True

    async def async_bulb_action(self, mapping: ButtonMapping) -> None:
        for entity_id in mapping.target:
            if mapping.action == "off":
                await self._async_call(mapping, "light", "turn_off", entity_id)
            elif mapping.action == "brightness":
                pct = max(0, min(100, round(mapping.value or 0)))
                await self._async_call(mapping, "light", "turn_on", entity_id, brightness_pct=pct)
            else:
                await self._async_call(mapping, "light", "turn_on", entity_id)

    async def async_accessory_action(self, mapping: ButtonMapping) -> None:
        service = _ACCESSORY_SERVICES.get(mapping.action)
        if service is None:
            _LOGGER.warning("[%s] Unknown action: %s", mapping.key, mapping.action)
            return
        for entity_id in mapping.target:
            await self._async_call(mapping, "homeassistant", service, entity_id)

    async def async_scene_action(self, mapping: ButtonMapping) -> None:
        for entity_id in mapping.target:
            await self._async_call(mapping, "scene", "turn_on", entity_id)

    async def async_led_action(self, mapping: ButtonMapping) -> None:
        color = MODE_COLORS.get(mapping.action)
        if color is None:
            _LOGGER.warning("[%s] Unknown color name: %s", mapping.key, mapping.action)
            return
        self._set_led(color)
        _LOGGER.debug("[%s] Set LED to %s", mapping.key, mapping.action)
