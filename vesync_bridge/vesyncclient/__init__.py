"""
A collection of utilities to help managing the VeSync cloud protocol
"""

import json
from time import time
from typing import TYPE_CHECKING

from . import const as vc

if TYPE_CHECKING:
    from typing import Any


#
# Optimized JSON encoding/decoding
#
JSON_ENCODER = json.JSONEncoder(
    ensure_ascii=False, check_circular=False, separators=(",", ":")
)
JSON_DECODER = json.JSONDecoder()


def json_dumps(obj):
    """Slightly optimized json.dumps with pre-configured encoder"""
    return JSON_ENCODER.encode(obj)


def json_loads(s: str):
    """Slightly optimized json.loads with pre-configured decoder"""
    return JSON_DECODER.raw_decode(s)[0]


#
# Custom Exceptions
#
class VesyncProtocolError(Exception):
    """
    signal a protocol error like:
    - malformed responses
    - application layer ERROR(s)

    - response is the full response payload (if any)
    - reason is an additional context error
    """

    def __init__(self, response, reason: object | None = None):
        self.response = response
        self.reason = reason
        super().__init__(reason)


class CloudApiError(VesyncProtocolError):
    """
    signals an error code (!= 0) returned by the cloud api endpoint
    """

    def __init__(self, response: "dict[str, Any]", reason: object | None = None):
        self.code = response.get(vc.KEY_CODE)
        self.msg = response.get(vc.KEY_MSG)
        super().__init__(
            response,
            reason
            or vc.APICODE_MAP.get(self.code)  # type: ignore
            or self.msg
            or json_dumps(response),
        )


class AuthError(CloudApiError):
    """login (authorize/exchange) failed: terminal for the current attempt"""


class SessionExpired(CloudApiError):
    """the session token was refused by a data call (HTTP 401 or equivalent)"""


class DeviceOffline(CloudApiError):
    """the cloud reports the device as unreachable"""


class MalformedCommandPayload(VesyncProtocolError):
    """a local json valued command could not be parsed"""


class TransportError(VesyncProtocolError):
    """network level failure (connection, timeout, non json response)"""


CLOUDAPI_ERROR_MAP: dict[int | None, type[CloudApiError]] = {
    vc.APICODE_TOKEN_EXPIRED: SessionExpired,
    vc.APICODE_TOKEN_INVALID: SessionExpired,
    vc.APICODE_DEVICE_OFFLINE: DeviceOffline,
    vc.APICODE_DEVICE_TIMEOUT: DeviceOffline,
}


#
# General purpose utilities for payload handling
#
def extract_result(response: dict) -> "Any":
    """
    Returns the 'result' payload of a bypass response unwrapping
    the (occasional) double nesting result.result
    """
    result = response.get(vc.KEY_RESULT)
    if isinstance(result, dict) and isinstance(result.get(vc.KEY_RESULT), dict):
        return result[vc.KEY_RESULT]
    return result


def get_region_from_country(country_code: str | None) -> str:
    """Infers the account region when the server doesn't report one"""
    if country_code and country_code.upper() in vc.EU_COUNTRY_CODES:
        return vc.REGION_EU
    return vc.REGION_US


def get_opposite_region(region: str) -> str:
    return vc.REGION_US if region == vc.REGION_EU else vc.REGION_EU


def is_region_conflict(response: dict) -> bool:
    """
    Heuristic region conflict detection: either a known code or
    an error message mentioning 'region'
    """
    if response.get(vc.KEY_CODE) in vc.APICODE_REGION_CONFLICT_SET:
        return True
    msg = response.get(vc.KEY_MSG)
    return isinstance(msg, str) and ("region" in msg.lower())


def get_biztoken(response: dict) -> str | None:
    result = response.get(vc.KEY_RESULT)
    if isinstance(result, dict):
        return result.get(vc.KEY_BIZTOKEN) or None
    return None


def sanitize_path_segment(value: object) -> str:
    """Replace chars outside [A-Za-z0-9_-] so that value is a valid path segment"""
    return vc.RE_PATTERN_UNSAFE_CHARS.sub("_", str(value))


def generate_trace_id() -> str:
    return str(int(time() * 1000))
