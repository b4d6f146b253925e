"""
Configuration schema for the bridge.
Credentials are not marked as vol.Required: missing ones are reported
(and setup aborted) by the adapter so that a partial configuration
never raises out of the host lifecycle hooks.
"""

import voluptuous as vol

from . import const as vbc
from .helpers import LOGGER
from .vesyncclient import const as vc

CONFIG_SCHEMA = vol.Schema(
    {
        vol.Optional(vbc.CONF_USERNAME, default=""): vol.Any(None, str),
        vol.Optional(vbc.CONF_PASSWORD, default=""): vol.Any(None, str),
        vol.Optional(vbc.CONF_INTERVAL, default=vbc.CONF_INTERVAL_DEFAULT): vol.All(
            vol.Coerce(float), vol.Range(min=0, min_included=False)
        ),
        vol.Optional(vbc.CONF_REGION, default=vc.REGION_US): vol.All(
            vol.Upper, vol.In(vc.REGIONS)
        ),
        vol.Optional(vbc.CONF_COUNTRY_CODE, default="US"): vol.All(str, vol.Upper),
        vol.Optional(vbc.CONF_LANGUAGE, default="en"): str,
        vol.Optional(vbc.CONF_TIME_ZONE, default="America/New_York"): str,
        vol.Optional(vbc.CONF_STORAGE_PATH, default="."): str,
        vol.Optional(vbc.CONF_OBFUSCATE, default=True): vol.Boolean(),
        vol.Optional(vbc.CONF_LOGGING_LEVEL): vol.All(vol.Coerce(int), vol.Range(min=0)),
    },
    extra=vol.REMOVE_EXTRA,
)


def validate_config(config: dict) -> vbc.BridgeConfigType:
    """
    Validates (and normalizes) the raw configuration.
    Raises vol.Invalid on malformed values. A polling interval below
    the minimum is not an error: it is raised to the minimum.
    """
    validated = CONFIG_SCHEMA(config)
    if validated[vbc.CONF_INTERVAL] < vbc.CONF_INTERVAL_MIN:
        LOGGER.info(
            "Polling interval (%s min) is below the minimum: using %s min",
            validated[vbc.CONF_INTERVAL],
            vbc.CONF_INTERVAL_MIN,
        )
        validated[vbc.CONF_INTERVAL] = vbc.CONF_INTERVAL_MIN
    validated[vbc.CONF_USERNAME] = validated[vbc.CONF_USERNAME] or ""
    validated[vbc.CONF_PASSWORD] = validated[vbc.CONF_PASSWORD] or ""
    return validated  # type: ignore
