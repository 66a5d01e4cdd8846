"""Internal constants shared across the package."""

SCAN_DURATION_SECONDS: float = 5.0
CONFIG_FILENAME = "cloudbbq-homie.toml"
CONFIG_ENV_VAR = "CLOUDBBQ_HOMIE_CONFIG"

# ------------------------------------------------------------------
# Homie node and property identifiers
# ------------------------------------------------------------------

NODE_ID_BATTERY = "battery"
PROPERTY_ID_VOLTAGE = "voltage"
PROPERTY_ID_PERCENTAGE = "percentage"

NODE_ID_SETTINGS = "settings"
PROPERTY_ID_DISPLAY_UNIT = "unit"
PROPERTY_ID_ALARM = "alarm"

NODE_ID_PROBE_PREFIX = "probe"
PROPERTY_ID_TEMPERATURE = "temperature"
PROPERTY_ID_TARGET_TEMPERATURE_MIN = "target_min"
PROPERTY_ID_TARGET_TEMPERATURE_MAX = "target_max"
PROPERTY_ID_TARGET_MODE = "mode"

# Probe temperatures are always reported in Celsius, whatever the display unit.
PROBE_TEMPERATURE_UNIT = "ºC"


def battery_percentage(current_voltage: int, max_voltage: int) -> int:
    """Battery charge as an integer percentage, truncated rather than rounded.

    Returns ``0`` when the device reports a zero maximum voltage.
    """
    if max_voltage <= 0:
        return 0
    return current_voltage * 100 // max_voltage
