import asyncio
import logging
from types import SimpleNamespace

import pytest
from homeassistant.exceptions import HomeAssistantError

from custom_components.iport_sm_buttons import (
    SET_LED_SCHEMA,
    TRIGGER_BUTTON_SCHEMA,
    _resolve_hub,
    async_setup_entry,
)
from custom_components.iport_sm_buttons.const import CONF_DIRECT_CONTROL_ENABLED, DOMAIN
from custom_components.iport_sm_buttons.diagnostics import (
    async_disable_frame_capture,
    async_enable_frame_capture,
    async_get_config_entry_diagnostics,
)
from custom_components.iport_sm_buttons.hub import IPortHub


class _FakeHass:
    def __init__(self) -> None:
        self.data = {}


def _hub(hass, entry_id):
    return IPortHub(hass, entry_id, "Keypad", "192.168.1.50", 10001, {CONF_DIRECT_CONTROL_ENABLED: False})


def _call(**data):
    return SimpleNamespace(data=data)


def test_resolve_single_hub_without_entry_id():
    hass = _FakeHass()
    hub = _hub(hass, "e1")
    hass.data[DOMAIN] = {"e1": hub, "_diag_handler": object()}
    assert _resolve_hub(hass, _call()) is hub


def test_resolve_by_entry_id_and_errors():
    hass = _FakeHass()
    first, second = _hub(hass, "e1"), _hub(hass, "e2")
    hass.data[DOMAIN] = {"e1": first, "e2": second}

    assert _resolve_hub(hass, _call(entry_id="e2")) is second
    with pytest.raises(HomeAssistantError):
        _resolve_hub(hass, _call())
    with pytest.raises(HomeAssistantError):
        _resolve_hub(hass, _call(entry_id="nope"))
    with pytest.raises(HomeAssistantError):
        _resolve_hub(_FakeHass(), _call())


def test_setup_entry_marks_buttons_ready_after_platforms(monkeypatch):
    ready_during_forward = []

    class _Services:
        def __init__(self) -> None:
            self.registered = []

        def has_service(self, domain, service):
            return False

        def async_register(self, domain, service, handler, schema=None):
            self.registered.append(service)

    class _ConfigEntries:
        async def async_forward_entry_setups(self, entry, platforms):
            # no button entity registers, as when every event entity is disabled
            ready_during_forward.append(hass.data[DOMAIN][entry.entry_id].buttons_ready)

    async def _no_start(self):
        return None

    monkeypatch.setattr(IPortHub, "async_start", _no_start)
    hass = _FakeHass()
    hass.services = _Services()
    hass.config_entries = _ConfigEntries()
    entry = SimpleNamespace(
        entry_id="e1",
        data={"name": "Keypad", "host": "192.168.1.50", "port": 10001},
        options={CONF_DIRECT_CONTROL_ENABLED: False},
        async_on_unload=lambda cb: None,
        add_update_listener=lambda listener: (lambda: None),
    )

    assert asyncio.run(async_setup_entry(hass, entry)) is True
    assert ready_during_forward == [False]
    assert hass.data[DOMAIN]["e1"].buttons_ready is True
    assert "trigger_button" in hass.services.registered


def test_service_schemas():
    assert TRIGGER_BUTTON_SCHEMA({"button_number": "10"})["button_number"] == 10
    with pytest.raises(Exception):
        TRIGGER_BUTTON_SCHEMA({"button_number": 11})
    assert SET_LED_SCHEMA({"r": "255", "g": 0, "b": 0}) == {"r": 255, "g": 0, "b": 0}
    with pytest.raises(Exception):
        SET_LED_SCHEMA({"r": 256, "g": 0, "b": 0})


def test_diagnostics_redacts_host():
    hass = _FakeHass()
    hub = _hub(hass, "e1")
    hass.data[DOMAIN] = {"e1": hub}
    entry = SimpleNamespace(
        entry_id="e1",
        data={"name": "Keypad", "host": "192.168.1.50", "port": 10001},
        options={"button_mappings": [{"button_number": 1, "target": ["light.desk"]}]},
    )

    result = asyncio.run(async_get_config_entry_diagnostics(hass, entry))

    assert result["entry"]["data"]["host"] == "[REDACTED_IP]"
    assert result["entry"]["options"]["button_mappings"][0]["target"] == ["light.desk"]
    assert result["hub"]["host"] == "[REDACTED_IP]"
    assert result["hub"]["mode"] == "white"
    assert result["hub"]["connected"] is False
    assert isinstance(result["logs"], list)


def test_frame_capture_collects_and_sanitizes_logs():
    hass = _FakeHass()
    logger = logging.getLogger("iport.session")
    parent = logging.getLogger("iport")
    previous = (parent.level, parent.propagate)

    async_enable_frame_capture(hass, "e1")
    try:
        logger.debug("connecting to 192.168.1.50:10001")
        entry = SimpleNamespace(entry_id="e1", data={"host": "192.168.1.50"}, options={})
        result = asyncio.run(async_get_config_entry_diagnostics(hass, entry))
        assert result["log_capture_active"] is True
    finally:
        async_disable_frame_capture(hass, "e1")

    assert any("[REDACTED_IP]:10001" in line for line in result["logs"])
    assert not any("192.168.1.50" in line for line in result["logs"])
    assert (parent.level, parent.propagate) == previous
    assert hass.data[DOMAIN]["_frame_capture"].active is False
