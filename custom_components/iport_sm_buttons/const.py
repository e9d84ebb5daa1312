# const.py
DOMAIN = "iport_sm_buttons"

CONF_HOST = "host"
CONF_PORT = "port"
CONF_NAME = "name"

CONF_CONNECT_TIMEOUT = "connect_timeout"
CONF_IDLE_TIMEOUT = "idle_timeout"
CONF_RECONNECT_BASE_DELAY = "reconnect_base_delay"
CONF_RECONNECT_MAX_DELAY = "reconnect_max_delay"
CONF_KEEPALIVE_INTERVAL = "keepalive_interval"
CONF_HEALTH_CHECK_INTERVAL = "health_check_interval"
CONF_STALE_AFTER = "stale_after"
CONF_DIRECT_CONTROL_ENABLED = "direct_control_enabled"
CONF_DIRECT_CONTROL_PORT = "direct_control_port"
CONF_DEBUG_FRAMES = "debug_frames"
CONF_BUTTON_MAPPINGS = "button_mappings"

DEFAULT_NAME = "iPort SM Buttons LAN"
DEFAULT_PORT = 10001
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_IDLE_TIMEOUT = 30.0
DEFAULT_RECONNECT_BASE_DELAY = 5.0
DEFAULT_RECONNECT_MAX_DELAY = 300.0
DEFAULT_KEEPALIVE_INTERVAL = 5.0
DEFAULT_HEALTH_CHECK_INTERVAL = 15.0
DEFAULT_STALE_AFTER = 30.0
DEFAULT_DIRECT_CONTROL_PORT = 3000

# option key -> default, in the order the options form shows them
TIMING_DEFAULTS = {
    CONF_CONNECT_TIMEOUT: DEFAULT_CONNECT_TIMEOUT,
    CONF_IDLE_TIMEOUT: DEFAULT_IDLE_TIMEOUT,
    CONF_RECONNECT_BASE_DELAY: DEFAULT_RECONNECT_BASE_DELAY,
    CONF_RECONNECT_MAX_DELAY: DEFAULT_RECONNECT_MAX_DELAY,
    CONF_KEEPALIVE_INTERVAL: DEFAULT_KEEPALIVE_INTERVAL,
    CONF_HEALTH_CHECK_INTERVAL: DEFAULT_HEALTH_CHECK_INTERVAL,
    CONF_STALE_AFTER: DEFAULT_STALE_AFTER,
}

BUTTON_COUNT = 10

EVENT_BUTTON_PRESSED = f"{DOMAIN}_button_pressed"
EVENT_TYPE_SINGLE_PRESS = "single_press"

SERVICE_TRIGGER_BUTTON = "trigger_button"
SERVICE_SET_LED = "set_led"
SERVICE_CYCLE_MODE = "cycle_mode"

PLATFORMS = ["event", "light", "binary_sensor", "sensor"]


def signal_connection(entry_id: str) -> str:
    return f"{DOMAIN}_{entry_id}_connection"


def signal_led(entry_id: str) -> str:
    return f"{DOMAIN}_{entry_id}_led"


def signal_button(entry_id: str) -> str:
    return f"{DOMAIN}_{entry_id}_button"
