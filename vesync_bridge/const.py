"""Constants for the VeSync cloud bridge."""

import logging
from typing import Final, NotRequired, TypedDict

DOMAIN: Final = "vesync_bridge"

#########################
# configuration keys
#########################
CONF_USERNAME: Final = "username"
CONF_PASSWORD: Final = "password"
# polling period in minutes
CONF_INTERVAL: Final = "interval"
CONF_INTERVAL_MIN: Final = 0.5
CONF_INTERVAL_DEFAULT: Final = 5
CONF_REGION: Final = "region"
CONF_COUNTRY_CODE: Final = "country_code"
CONF_LANGUAGE: Final = "language"
CONF_TIME_ZONE: Final = "time_zone"
# folder where to store the persisted identity
CONF_STORAGE_PATH: Final = "storage_path"
CONF_OBFUSCATE: Final = "obfuscate"
# sets the logging level of the bridge logger
CONF_LOGGING_LEVEL: Final = "logging_level"
CONF_LOGGING_VERBOSE: Final = 5
CONF_LOGGING_DEBUG: Final = logging.DEBUG
CONF_LOGGING_INFO: Final = logging.INFO
CONF_LOGGING_WARNING: Final = logging.WARNING
CONF_LOGGING_CRITICAL: Final = logging.CRITICAL


class BridgeConfigType(TypedDict):
    """Validated configuration (see config.CONFIG_SCHEMA)"""

    username: str
    password: str
    interval: float
    region: str
    country_code: str
    language: str
    time_zone: str
    storage_path: str
    obfuscate: bool
    logging_level: NotRequired[int]


#########################
# state tree paths
#########################
PATH_INFO: Final = "info"
PATH_CONNECTION: Final = "info.connection"
PATH_GENERAL: Final = "general"
PATH_STATUS: Final = "status"
PATH_REMOTE: Final = "remote"
STATUS_CHANNEL_NAME: Final = "Status of the device"
REMOTE_CHANNEL_NAME: Final = "Remote Controls"

#########################
# timing parameters
#########################
# full re-login period when the vendor doesn't report a token lifetime
PARAM_TOKEN_REFRESH_PERIOD: Final = 3600
# delay before re-login after an HTTP 401 on a data call
PARAM_RELOGIN_DELAY: Final = 60
# delay before polling again after a command was sent
PARAM_COMMAND_REFRESH_DELAY: Final = 10
# de-duplication window for repeated per-device failures in logs
PARAM_LOG_TIMEOUT: Final = 3600
# maximum wait for in-flight requests when shutting down
PARAM_SHUTDOWN_TIMEOUT: Final = 10

#########################
# persisted identity
#########################
STORE_FILENAME: Final = "vesync_bridge.identity.json"
STORE_VERSION: Final = 1
KEY_TERMINAL_ID: Final = "terminalId"
