from __future__ import annotations

import logging
from typing import Any, Dict

import voluptuous as vol

from homeassistant import config_entries
from homeassistant.core import callback
from homeassistant.helpers.selector import TextSelector, TextSelectorConfig

from .const import (
    CONF_BUTTON_MAPPINGS,
    CONF_DEBUG_FRAMES,
    CONF_DIRECT_CONTROL_ENABLED,
    CONF_DIRECT_CONTROL_PORT,
    CONF_HOST,
    CONF_NAME,
    CONF_PORT,
    DEFAULT_DIRECT_CONTROL_PORT,
    DEFAULT_NAME,
    DEFAULT_PORT,
    DOMAIN,
    TIMING_DEFAULTS,
)
from .mappings import dump_mappings_text, load_mappings_text, validate_mapping

_LOGGER = logging.getLogger(__name__)

PORT_VALIDATOR = vol.All(vol.Coerce(int), vol.Range(min=1, max=65535))
SECONDS_VALIDATOR = vol.All(vol.Coerce(float), vol.Range(min=0.5, max=3600))


def validate_mappings_text(text: str) -> tuple[list[Any], str | None]:
    """Return the parsed list, or an error message for the first bad entry."""

    try:
        raw = load_mappings_text(text)
    except vol.Invalid as err:
        return [], str(err)
    for pos, item in enumerate(raw):
        try:
            validate_mapping(item)
        except vol.Invalid as err:
            return [], f"mapping #{pos + 1}: {err}"
    return raw, None


class ConfigFlow(config_entries.ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def async_step_user(self, user_input: Dict[str, Any] | None = None):
        if user_input is not None:
            host = user_input[CONF_HOST].strip()
            port = user_input[CONF_PORT]

            await self.async_set_unique_id(f"{host}:{port}")
            self._abort_if_unique_id_configured()

            return self.async_create_entry(
                title=user_input[CONF_NAME],
                data={
                    CONF_NAME: user_input[CONF_NAME],
                    CONF_HOST: host,
                    CONF_PORT: port,
                },
                options={
                    **TIMING_DEFAULTS,
                    CONF_DIRECT_CONTROL_ENABLED: True,
                    CONF_DIRECT_CONTROL_PORT: DEFAULT_DIRECT_CONTROL_PORT,
                    CONF_DEBUG_FRAMES: False,
                    CONF_BUTTON_MAPPINGS: [],
                },
            )

        schema = vol.Schema({
            vol.Required(CONF_NAME, default=DEFAULT_NAME): str,
            vol.Required(CONF_HOST): str,
            vol.Required(CONF_PORT, default=DEFAULT_PORT): PORT_VALIDATOR,
        })
        return self.async_show_form(
            step_id="user",
            data_schema=schema,
            description_placeholders={
                "help": (
                    "Enter the IP address and TCP port of the keypad. "
                    f"The default port is {DEFAULT_PORT}."
                )
            },
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry):
        """Return the options flow for this entry."""
        return IPortOptionsFlowHandler(config_entry)


# ----------------------------------------------------------------------
# options flow: timings, direct control and button mappings
# ----------------------------------------------------------------------
class IPortOptionsFlowHandler(config_entries.OptionsFlow):
    def __init__(self, entry: config_entries.ConfigEntry) -> None:
        self.entry = entry

    async def async_step_init(self, user_input: Dict[str, Any] | None = None):
        errors: dict[str, str] = {}
        placeholders = {"error": ""}
        opts = self.entry.options

        if user_input is not None:
            raw, error = validate_mappings_text(user_input.get(CONF_BUTTON_MAPPINGS, ""))
            if error is None:
                return self.async_create_entry(
                    title="",
                    data={**user_input, CONF_BUTTON_MAPPINGS: raw},
                )
            errors[CONF_BUTTON_MAPPINGS] = "invalid_mappings"
            placeholders["error"] = error
            opts = {**opts, **user_input}

        fields: dict[Any, Any] = {}
        for key, default in TIMING_DEFAULTS.items():
            fields[vol.Required(key, default=opts.get(key, default))] = SECONDS_VALIDATOR
        fields[vol.Optional(
            CONF_DIRECT_CONTROL_ENABLED,
            default=opts.get(CONF_DIRECT_CONTROL_ENABLED, True),
        )] = bool
        fields[vol.Required(
            CONF_DIRECT_CONTROL_PORT,
            default=opts.get(CONF_DIRECT_CONTROL_PORT, DEFAULT_DIRECT_CONTROL_PORT),
        )] = PORT_VALIDATOR
        fields[vol.Optional(
            CONF_DEBUG_FRAMES,
            default=opts.get(CONF_DEBUG_FRAMES, False),
        )] = bool
        fields[vol.Optional(
            CONF_BUTTON_MAPPINGS,
            default=dump_mappings_text(opts.get(CONF_BUTTON_MAPPINGS, [])),
        )] = TextSelector(TextSelectorConfig(multiline=True))

        return self.async_show_form(
            step_id="init",
            data_schema=vol.Schema(fields),
            errors=errors,
            description_placeholders=placeholders,
        )
