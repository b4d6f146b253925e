"""
    static constants symbols for VeSync cloud protocol symbols/semantics
"""

import re

# api hosts: one per account region
REGION_US = "US"
REGION_EU = "EU"
REGIONS = (REGION_US, REGION_EU)
API_URL_MAP: dict[str, str] = {
    REGION_US: "https://smartapi.vesync.com",
    REGION_EU: "https://smartapi.vesync.eu",
}
# countries whose accounts live in the EU partition when the
# server doesn't report a region
EU_COUNTRY_CODES = frozenset(
    (
        "AT", "BE", "BG", "CH", "CY", "CZ", "DE", "DK", "EE", "ES", "FI", "FR",
        "GB", "GR", "HR", "HU", "IE", "IS", "IT", "LI", "LT", "LU", "LV", "MT",
        "NL", "NO", "PL", "PT", "RO", "SE", "SI", "SK", "UK",
    )
)

API_AUTH_PATH = "/globalPlatform/api/accountAuth/v1/authByPWDOrOTM"
API_LOGIN_PATH = "/user/api/accountManage/v1/loginByAuthorizeCode4Vesync"
API_DEVICES_PATH = "/cloud/v2/deviceManaged/devices"
API_BYPASSV2_PATH = "/cloud/v2/deviceManaged/bypassV2"
API_BYPASS_PATH = "/cloud/v1/deviceManaged/bypass"

# client identity constants
APP_ID = "eldodkfj"
APP_VERSION = "VeSync 5.6.60"
CLIENT_TYPE = "vesyncApp"
CLIENT_INFO = "vesync_bridge"
PHONE_BRAND = "vesync_bridge"
PHONE_OS = "vesync_bridge"
USER_AGENT = "VeSync/5.6.60 (vesync_bridge)"
AUTH_PROTOCOL_TYPE = "generic"
SOURCE_APP = "APP"

# rpc methods (envelope)
METHOD_AUTH = "authByPWDOrOTM"
METHOD_LOGIN = "loginByAuthorizeCode4Vesync"
METHOD_DEVICES = "devices"
METHOD_BYPASS = "bypass"
METHOD_BYPASSV2 = "bypassV2"

# rpc methods (payload) for status polling
METHOD_GETSTATUS = "getStatus"
METHOD_GETAIRFRYERSTATUS = "getAirfryerStatus"
METHOD_GETPROPERTY = "getProperty"
METHOD_GETHUMIDIFIERSTATUS = "getHumidifierStatus"
METHOD_GETPURIFIERSTATUS = "getPurifierStatus"
METHOD_GETFANSTATUS = "getFanStatus"
METHOD_GETOUTLETSTATUS = "getOutletStatus"
METHOD_GETSWITCHSTATUS = "getSwitchStatus"
METHOD_GETLIGHTSTATUS = "getLightStatus"
METHOD_GETTHERMOSTATSTATUS = "getThermostatStatus"

# rpc methods (payload) for commands
METHOD_SETSWITCH = "setSwitch"
METHOD_SETLEVEL = "setLevel"
METHOD_SETLIGHTCOLOR = "setLightColor"
METHOD_SETLIGHTCOLORMODE = "setLightColorMode"
METHOD_SETBRIGHTNESS = "setBrightness"
METHOD_SETTHERMOSTATWORKMODE = "setThermostatWorkMode"
METHOD_SETTHERMOSTATFANMODE = "setThermostatFanMode"

# misc keys for json payloads
KEY_ACCEPTLANGUAGE = "acceptLanguage"
KEY_ACCOUNTID = "accountID"
KEY_APPID = "appID"
KEY_APPVERSION = "appVersion"
KEY_AUTHORIZECODE = "authorizeCode"
KEY_AUTHPROTOCOLTYPE = "authProtocolType"
KEY_BIZTOKEN = "bizToken"
KEY_CID = "cid"
KEY_CLIENTINFO = "clientInfo"
KEY_CLIENTTYPE = "clientType"
KEY_CLIENTVERSION = "clientVersion"
KEY_CODE = "code"
KEY_CONFIGMODULE = "configModule"
KEY_COUNTRYCODE = "countryCode"
KEY_CURRENTREGION = "currentRegion"
KEY_DATA = "data"
KEY_DEBUGMODE = "debugMode"
KEY_DEVICENAME = "deviceName"
KEY_DEVICEREGION = "deviceRegion"
KEY_DEVICETYPE = "deviceType"
KEY_EMAIL = "email"
KEY_EMAILSUBSCRIPTIONS = "emailSubscriptions"
KEY_EXPIRESIN = "expires_in"
KEY_JSONCMD = "jsonCmd"
KEY_LIST = "list"
KEY_METHOD = "method"
KEY_MSG = "msg"
KEY_OSINFO = "osInfo"
KEY_PAGENO = "pageNo"
KEY_PAGESIZE = "pageSize"
KEY_PASSWORD = "password"
KEY_PAYLOAD = "payload"
KEY_PHONEBRAND = "phoneBrand"
KEY_PHONEOS = "phoneOS"
KEY_PROPERTYLIST = "properties"
KEY_REGIONCHANGE = "regionChange"
KEY_RESULT = "result"
KEY_SOURCE = "source"
KEY_SOURCEAPPID = "sourceAppID"
KEY_TERMINALID = "terminalId"
KEY_TIMEZONE = "timeZone"
KEY_TOKEN = "token"
KEY_TRACEID = "traceId"
KEY_USERCOUNTRYCODE = "userCountryCode"
KEY_UUID = "uuid"
# command payload fields
KEY_BRIGHTNESS = "brightness"
KEY_CHILD_LOCK = "child_lock"
KEY_COLORMODE = "colorMode"
KEY_DISPLAY = "display"
KEY_ENABLED = "enabled"
KEY_FANMODE = "fanMode"
KEY_HUE = "hue"
KEY_ID = "id"
KEY_LEVEL = "level"
KEY_MODE = "mode"
KEY_SATURATION = "saturation"
KEY_STATE = "state"
KEY_TARGET_HUMIDITY = "target_humidity"
KEY_TYPE = "type"
KEY_WORKMODE = "workMode"

# header keys
HEADER_TK = "tk"
HEADER_ACCOUNTID = "accountid"
HEADER_TZ = "tz"
HEADER_APPVERSION = "appversion"

# api response codes
APICODE_CROSS_REGION = -11260022
APICODE_REGION_CONFLICT = -11261022
APICODE_REGION_MISMATCH = -11262022
APICODE_WRONG_CREDENTIALS = -11201129
APICODE_ACCOUNT_NOT_EXIST = -11202129
APICODE_TOKEN_EXPIRED = -11012022
APICODE_TOKEN_INVALID = -11001000
APICODE_DEVICE_OFFLINE = -11300030
APICODE_DEVICE_TIMEOUT = -11302030

APICODE_MAP = {
    APICODE_CROSS_REGION: "Account belongs to a different region",
    APICODE_REGION_CONFLICT: "Region conflict",
    APICODE_REGION_MISMATCH: "Region mismatch",
    APICODE_WRONG_CREDENTIALS: "Wrong email or password",
    APICODE_ACCOUNT_NOT_EXIST: "Account does not exist",
    APICODE_TOKEN_EXPIRED: "Token expired",
    APICODE_TOKEN_INVALID: "Token invalid",
    APICODE_DEVICE_OFFLINE: "Device offline",
    APICODE_DEVICE_TIMEOUT: "Device not responding",
}
APICODE_REGION_CONFLICT_SET = frozenset(
    (APICODE_CROSS_REGION, APICODE_REGION_CONFLICT, APICODE_REGION_MISMATCH)
)

# device type families tokens (see devices.FAMILY_RULES for priority)
TYPE_COOKER_PREFIX = "CS"
TYPE_AIRFRYER_PREFIX = "CAF-"
TYPE_ENERGYPLUG_PREFIX = "BSDOG"
TYPE_HUMIDIFIER_TOKENS = (
    "LUH-",
    "LEH-",
    "LV600S",
    "Classic300S",
    "Classic200S",
    "Dual200S",
    "OASISMIST",
)
TYPE_PURIFIER_TOKENS = ("LAP-", "Core", "LV-PUR", "LV-RH", "Vital")
TYPE_FAN_TOKENS = ("LTF-", "LPF-")
TYPE_OUTLET_PREFIXES = ("ESW01", "ESW03", "ESW10", "ESW15", "ESO15", "wifi-switch")
TYPE_SWITCH_PREFIXES = ("ESWL01", "ESWL03", "ESWD16")
TYPE_BULB_PREFIXES = ("ESL100", "XYD0001")
TYPE_THERMOSTAT_PREFIX = "LTM-"

# energy plug properties polled through getProperty
ENERGYPLUG_PROPERTIES = (
    "powerSwitch_1",
    "realTimeVoltage",
    "realTimePower",
    "electricalEnergy",
    "protectionStatus",
    "voltageUpperThreshold",
    "currentUpperThreshold",
    "powerUpperThreshold",
    "scheduleNum",
)

# enumerated command encodings
THERMOSTAT_WORKMODE_MAP = {"off": 0, "heat": 1, "cool": 2, "auto": 3}
THERMOSTAT_FANMODE_MAP = {"auto": 1, "on": 2, "circulate": 3}

RE_PATTERN_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_-]")
"""chars not allowed in state tree path segments"""
