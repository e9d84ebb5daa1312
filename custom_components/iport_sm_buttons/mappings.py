"""Validation of the ``button_mappings`` option."""
from __future__ import annotations

import json
import logging
from typing import Any

import voluptuous as vol

import homeassistant.helpers.config_validation as cv

from .lib.dispatch import MODE_CYCLE_BUTTON, ActionType, ButtonMapping
from .lib.led_state import MODE_ANY, MODE_COLORS, MODE_OFF, MODE_UNKNOWN

_LOGGER = logging.getLogger(__name__)

VALID_MODES = [*MODE_COLORS, MODE_OFF, MODE_UNKNOWN, MODE_ANY]

BULB_ACTIONS = ("on", "off", "brightness")
ACCESSORY_ACTIONS = ("toggle", "on", "off")

# keys used by the original keypad bridge configuration
_ALIASES = {
    "buttonNumber": "button_number",
    "modeColor": "mode_color",
    "actionType": "action_type",
    "targetName": "target",
    "targets": "target",
}

MAPPING_SCHEMA = vol.Schema(
    {
        vol.Required("button_number"): vol.All(
            vol.Coerce(int), vol.Range(min=1, max=MODE_CYCLE_BUTTON - 1)
        ),
        vol.Optional("mode_color", default=MODE_ANY): vol.All(
            cv.string, vol.Lower, vol.In(VALID_MODES)
        ),
        vol.Required("action_type"): vol.All(cv.string, vol.Lower, vol.Coerce(ActionType)),
        vol.Required("action"): vol.All(cv.string, vol.Strip, vol.Lower),
        vol.Optional("target", default=[]): cv.entity_ids,
        vol.Optional("value"): vol.Any(
            None, vol.All(vol.Coerce(float), vol.Range(min=0, max=100))
        ),
    },
    extra=vol.REMOVE_EXTRA,
)


def _apply_aliases(raw: dict[str, Any]) -> dict[str, Any]:
    item = {}
    for key, value in raw.items():
        item[_ALIASES.get(key, key)] = value
    if "action" not in item and "ledColor" in item:
        item["action"] = item["ledColor"]
    return item


def _check_action(data: dict[str, Any]) -> dict[str, Any]:
    action_type: ActionType = data["action_type"]
    action = data["action"]
    targets = data["target"]

    if action_type is ActionType.LED:
        if action not in MODE_COLORS:
            raise vol.Invalid(f"unknown LED colour {action!r}")
        return data

    if not targets:
        raise vol.Invalid(f"{action_type.value} action needs at least one target")

    if action_type is ActionType.BULB:
        if action not in BULB_ACTIONS:
            raise vol.Invalid(f"unknown bulb action {action!r}")
        if action == "brightness" and data.get("value") is None:
            raise vol.Invalid("brightness action needs a value between 0 and 100")
    elif action_type is ActionType.ACCESSORY:
        if action not in ACCESSORY_ACTIONS:
            raise vol.Invalid(f"unknown accessory action {action!r}")
    return data


def validate_mapping(raw: Any) -> ButtonMapping:
    """Validate one raw mapping dict. Raises ``vol.Invalid``."""

    if not isinstance(raw, dict):
        raise vol.Invalid("mapping must be an object")
    data = _check_action(MAPPING_SCHEMA(_apply_aliases(raw)))
    return ButtonMapping(
        button_number=data["button_number"],
        mode_color=data["mode_color"],
        action_type=data["action_type"],
        action=data["action"],
        target=tuple(data["target"]),
        value=data.get("value"),
    )


def parse_mappings(raw: Any) -> tuple[list[ButtonMapping], int]:
    """Validate a list of raw mappings.

    Invalid entries are logged and skipped; returns the valid mappings and
    the number of skipped entries.
    """

    if raw in (None, ""):
        return [], 0
    if isinstance(raw, str):
        try:
            raw = load_mappings_text(raw)
        except vol.Invalid as err:
            _LOGGER.warning("Ignoring button mappings: %s", err)
            return [], 0
    if not isinstance(raw, list):
        _LOGGER.warning("Ignoring button mappings: expected a list, got %s", type(raw).__name__)
        return [], 0

    mappings: list[ButtonMapping] = []
    skipped = 0
    for pos, item in enumerate(raw):
        try:
            mappings.append(validate_mapping(item))
        except vol.Invalid as err:
            skipped += 1
            _LOGGER.warning("Skipping button mapping #%d (%s): %s", pos + 1, item, err)
    return mappings, skipped


def load_mappings_text(text: str) -> list[Any]:
    """Parse the JSON text the options form stores."""

    if not text or not text.strip():
        return []
    try:
        data = json.loads(text)
    except ValueError as err:
        raise vol.Invalid(f"invalid JSON: {err}") from err
    if not isinstance(data, list):
        raise vol.Invalid("button mappings must be a JSON list")
    return data


def dump_mappings_text(raw: Any) -> str:
    if isinstance(raw, str):
        return raw
    return json.dumps(raw or [], indent=2)
