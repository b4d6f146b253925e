"""
Device dispatching: maps the heterogeneous VeSync device fleet to
the proper status polling request and translates local commands
into the vendor payloads.
Both directions are expressed as ordered lists of (predicate, builder)
rules where the first matching rule wins so that priority is explicit
(and testable) when a type code could match more than one family.
"""

from dataclasses import dataclass, field
import enum
import typing

from . import MalformedCommandPayload, const as vc, json_loads, sanitize_path_segment
from .cloudapi import Session, build_data_body

if typing.TYPE_CHECKING:
    from typing import Any, Callable, Final, Iterable

    CommandBuilder = Callable[[str, Any], tuple[str, Any]]


class DeviceFamily(enum.StrEnum):
    COOKER = "cooker"
    AIRFRYER = "airfryer"
    ENERGYPLUG = "energyplug"
    HUMIDIFIER = "humidifier"
    PURIFIER = "purifier"
    FAN = "fan"
    OUTLET = "outlet"
    SWITCH = "switch"
    BULB = "bulb"
    THERMOSTAT = "thermostat"
    UNKNOWN = "unknown"


def _startswith(*prefixes: str):
    return lambda type_code: type_code.startswith(prefixes)


def _contains(*tokens: str):
    return lambda type_code: any(token in type_code for token in tokens)


FAMILY_RULES: "Final[tuple[tuple[DeviceFamily, Callable[[str], bool]], ...]]" = (
    (DeviceFamily.COOKER, _startswith(vc.TYPE_COOKER_PREFIX)),
    (DeviceFamily.AIRFRYER, _startswith(vc.TYPE_AIRFRYER_PREFIX)),
    (DeviceFamily.ENERGYPLUG, _startswith(vc.TYPE_ENERGYPLUG_PREFIX)),
    (DeviceFamily.HUMIDIFIER, _contains(*vc.TYPE_HUMIDIFIER_TOKENS)),
    (DeviceFamily.PURIFIER, _contains(*vc.TYPE_PURIFIER_TOKENS)),
    (DeviceFamily.FAN, _contains(*vc.TYPE_FAN_TOKENS)),
    (DeviceFamily.OUTLET, _startswith(*vc.TYPE_OUTLET_PREFIXES)),
    (DeviceFamily.SWITCH, _startswith(*vc.TYPE_SWITCH_PREFIXES)),
    (DeviceFamily.BULB, _startswith(*vc.TYPE_BULB_PREFIXES)),
    (DeviceFamily.THERMOSTAT, _startswith(vc.TYPE_THERMOSTAT_PREFIX)),
)
"""Type code -> family rules in priority order (first match wins)"""


def get_device_family(type_code: str | None) -> DeviceFamily:
    if type_code:
        for family, match in FAMILY_RULES:
            if match(type_code):
                return family
    return DeviceFamily.UNKNOWN


@dataclass(frozen=True)
class Device:
    """
    A device as recovered from the cloud device list.
    'id' is the vendor 'cid': devices lacking it are not polled/controlled.
    """

    id: str | None
    name: str
    type_code: str
    config_module: str
    uuid: str | None = None
    payload: dict = field(default_factory=dict, compare=False, repr=False)
    family: DeviceFamily = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, "family", get_device_family(self.type_code))

    @staticmethod
    def build(payload: dict) -> "Device":
        cid = payload.get(vc.KEY_CID)
        return Device(
            id=str(cid) if cid else None,
            name=str(payload.get(vc.KEY_DEVICENAME) or cid or ""),
            type_code=str(payload.get(vc.KEY_DEVICETYPE) or ""),
            config_module=str(payload.get(vc.KEY_CONFIGMODULE) or ""),
            uuid=payload.get(vc.KEY_UUID),
            payload=payload,
        )

    @property
    def pollable(self) -> bool:
        return bool(self.id)

    @property
    def path(self) -> str:
        """root path of the device in the state tree"""
        return sanitize_path_segment(self.id or self.name or "unknown")


class DeviceRequest(typing.NamedTuple):
    """An api request ready to be posted: (api path, json body)"""

    path: str
    body: dict

    @property
    def payload_method(self) -> str | None:
        """the inner rpc method (or jsonCmd key for the legacy bypass)"""
        if payload := self.body.get(vc.KEY_PAYLOAD):
            return payload.get(vc.KEY_METHOD)
        if json_cmd := self.body.get(vc.KEY_JSONCMD):
            return next(iter(json_cmd), None)
        return None


#
# Contract A: status polling requests
#
def _bypass_request(device: Device, session: Session, json_cmd: dict):
    body = build_data_body(session, vc.METHOD_BYPASS)
    body |= {
        vc.KEY_CID: device.id,
        vc.KEY_CONFIGMODULE: device.config_module,
        vc.KEY_DEVICEREGION: session.region,
        vc.KEY_UUID: device.uuid,
        vc.KEY_JSONCMD: json_cmd,
    }
    return DeviceRequest(vc.API_BYPASS_PATH, body)


def _bypassv2_request(device: Device, session: Session, method: str, data: "Any"):
    body = build_data_body(session, vc.METHOD_BYPASSV2)
    body |= {
        vc.KEY_CID: device.id,
        vc.KEY_CONFIGMODULE: device.config_module,
        vc.KEY_DEVICEREGION: session.region,
        vc.KEY_DEBUGMODE: False,
        vc.KEY_PAYLOAD: {
            vc.KEY_METHOD: method,
            vc.KEY_DATA: data,
            vc.KEY_SOURCE: vc.SOURCE_APP,
        },
    }
    return DeviceRequest(vc.API_BYPASSV2_PATH, body)


def _status_bypassv2(method: str):
    return lambda device, session: _bypassv2_request(device, session, method, {})


def _family_is(family: DeviceFamily):
    return lambda device: device.family is family


STATUS_RULES: "Final[tuple[tuple[Callable[[Device], bool], Callable[[Device, Session], DeviceRequest]], ...]]" = (
    (
        _family_is(DeviceFamily.COOKER),
        lambda device, session: _bypass_request(
            device, session, {vc.METHOD_GETSTATUS: "status"}
        ),
    ),
    (
        _family_is(DeviceFamily.AIRFRYER),
        _status_bypassv2(vc.METHOD_GETAIRFRYERSTATUS),
    ),
    (
        _family_is(DeviceFamily.ENERGYPLUG),
        lambda device, session: _bypassv2_request(
            device,
            session,
            vc.METHOD_GETPROPERTY,
            {vc.KEY_PROPERTYLIST: list(vc.ENERGYPLUG_PROPERTIES)},
        ),
    ),
    (
        _family_is(DeviceFamily.HUMIDIFIER),
        _status_bypassv2(vc.METHOD_GETHUMIDIFIERSTATUS),
    ),
    (
        _family_is(DeviceFamily.PURIFIER),
        _status_bypassv2(vc.METHOD_GETPURIFIERSTATUS),
    ),
    (_family_is(DeviceFamily.FAN), _status_bypassv2(vc.METHOD_GETFANSTATUS)),
    (_family_is(DeviceFamily.OUTLET), _status_bypassv2(vc.METHOD_GETOUTLETSTATUS)),
    (_family_is(DeviceFamily.SWITCH), _status_bypassv2(vc.METHOD_GETSWITCHSTATUS)),
    (_family_is(DeviceFamily.BULB), _status_bypassv2(vc.METHOD_GETLIGHTSTATUS)),
    (
        _family_is(DeviceFamily.THERMOSTAT),
        _status_bypassv2(vc.METHOD_GETTHERMOSTATSTATUS),
    ),
    # unknown families reuse the humidifier query (historical default)
    (lambda device: True, _status_bypassv2(vc.METHOD_GETHUMIDIFIERSTATUS)),
)
"""Device -> status request rules in priority order (first match wins)"""


def build_status_request(
    device: Device, session: Session | None
) -> DeviceRequest | None:
    """
    Builds the status polling request for the device. Returns None when
    there is no valid session (or the device is not pollable) so that the
    caller skips this device for the current cycle.
    """
    if not (session and device.pollable):
        return None
    for match, build in STATUS_RULES:
        if match(device):
            return build(device, session)
    raise AssertionError("STATUS_RULES must end with a catch-all rule")


#
# Contract B: command translation
#
SETLEVEL_PREFIX = vc.METHOD_SETLEVEL + "-"


def _parse_json_document(control_name: str, value: "Any") -> "Any":
    """Any json document is passed along as is: the device validates it"""
    if isinstance(value, (dict, list)):
        return value
    if not isinstance(value, str):
        raise MalformedCommandPayload(
            value, f"{control_name}: expected a json document"
        )
    try:
        return json_loads(value.strip())
    except ValueError as exception:
        raise MalformedCommandPayload(
            value, f"{control_name}: invalid json ({exception})"
        ) from exception


def _enum_value(control_name: str, enum_map: dict[str, int], value: "Any") -> int:
    if isinstance(value, str):
        try:
            return enum_map[value.strip().lower()]
        except KeyError:
            pass
        try:
            value = int(value)
        except ValueError:
            pass
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if value in enum_map.values():
            return int(value)
    raise MalformedCommandPayload(
        value, f"{control_name}: value must be one of {list(enum_map)}"
    )


def _payload_key(key: str, method: str | None = None) -> "CommandBuilder":
    return lambda control_name, value: (method or control_name, {key: value})


def _level_payload(control_name: str, value: "Any"):
    level_type = control_name[len(SETLEVEL_PREFIX) :] or "wind"
    return vc.METHOD_SETLEVEL, {
        vc.KEY_LEVEL: value,
        vc.KEY_TYPE: level_type,
        vc.KEY_ID: 0,
    }


def _exact(*names: str):
    return lambda control_name: control_name in names


COMMAND_RULES: "Final[tuple[tuple[Callable[[str], bool], CommandBuilder], ...]]" = (
    (_exact("setTargetHumidity"), _payload_key(vc.KEY_TARGET_HUMIDITY)),
    (_exact("setDisplay"), _payload_key(vc.KEY_STATE)),
    (_exact("setPurifierMode", "setHumidityMode"), _payload_key(vc.KEY_MODE)),
    (_exact("setChildLock"), _payload_key(vc.KEY_CHILD_LOCK)),
    (lambda control_name: control_name.startswith(SETLEVEL_PREFIX), _level_payload),
    (
        _exact("setFanSpeed"),
        lambda control_name, value: _level_payload(SETLEVEL_PREFIX + "wind", value),
    ),
    (_exact("setColorHue"), _payload_key(vc.KEY_HUE, vc.METHOD_SETLIGHTCOLOR)),
    (
        _exact("setColorSaturation"),
        _payload_key(vc.KEY_SATURATION, vc.METHOD_SETLIGHTCOLOR),
    ),
    (_exact("setColorMode"), _payload_key(vc.KEY_COLORMODE, vc.METHOD_SETLIGHTCOLORMODE)),
    (
        _exact("setDimmerBrightness"),
        _payload_key(vc.KEY_BRIGHTNESS, vc.METHOD_SETBRIGHTNESS),
    ),
    (
        _exact("setThermostatMode"),
        lambda control_name, value: (
            vc.METHOD_SETTHERMOSTATWORKMODE,
            {
                vc.KEY_WORKMODE: _enum_value(
                    control_name, vc.THERMOSTAT_WORKMODE_MAP, value
                )
            },
        ),
    ),
    (
        _exact("setThermostatFanMode"),
        lambda control_name, value: (
            vc.METHOD_SETTHERMOSTATFANMODE,
            {
                vc.KEY_FANMODE: _enum_value(
                    control_name, vc.THERMOSTAT_FANMODE_MAP, value
                )
            },
        ),
    ),
    (
        _exact("startCook", "setProperty"),
        lambda control_name, value: (
            control_name,
            _parse_json_document(control_name, value),
        ),
    ),
    (_exact("endCook"), lambda control_name, value: (control_name, {})),
    # permissive fallback: new remote controls can be declared without
    # adding a rule here
    (
        lambda control_name: True,
        lambda control_name, value: (
            control_name,
            {vc.KEY_ENABLED: value, vc.KEY_ID: 0},
        ),
    ),
)
"""Control name -> (rpc method, payload) rules in priority order"""


def build_write_command(
    device: Device, control_name: str, value: "Any"
) -> "tuple[str, Any]":
    """
    Translates a local write on <device>.remote.<control_name> into the
    vendor (rpc method, payload). Raises MalformedCommandPayload when a
    json valued command can't be parsed.
    """
    for match, build in COMMAND_RULES:
        if match(control_name):
            return build(control_name, value)
    raise AssertionError("COMMAND_RULES must end with a catch-all rule")


def build_command_request(
    device: Device, session: Session, method: str, payload: "Any"
) -> DeviceRequest:
    """Wraps a translated command in the envelope the device family expects"""
    if device.family is DeviceFamily.COOKER:
        return _bypass_request(device, session, {method: payload})
    return _bypassv2_request(device, session, method, payload)


#
# Remote controls declared for each device family
#
@dataclass(frozen=True)
class RemoteControl:
    name: str
    value_type: str = "boolean"
    description: str = ""
    default: "Any" = False


REMOTE_REFRESH = RemoteControl("Refresh", "boolean", "True = Refresh", False)
_SWITCH = RemoteControl(vc.METHOD_SETSWITCH, "boolean", "Power on/off", False)
_DISPLAY = RemoteControl("setDisplay", "boolean", "Display on/off", False)
_CHILDLOCK = RemoteControl("setChildLock", "boolean", "Child lock on/off", False)

REMOTE_CONTROLS: "Final[dict[DeviceFamily, tuple[RemoteControl, ...]]]" = {
    DeviceFamily.COOKER: (
        RemoteControl("startCook", "string", "Cook recipe as json", "{}"),
        RemoteControl("endCook", "boolean", "True = End cooking", False),
    ),
    DeviceFamily.AIRFRYER: (
        RemoteControl("startCook", "string", "Cook recipe as json", "{}"),
        RemoteControl("endCook", "boolean", "True = End cooking", False),
    ),
    DeviceFamily.ENERGYPLUG: (
        _SWITCH,
        RemoteControl("setProperty", "string", "Properties as json", "{}"),
    ),
    DeviceFamily.HUMIDIFIER: (
        _SWITCH,
        RemoteControl("setTargetHumidity", "number", "Target humidity %", 50),
        _DISPLAY,
        RemoteControl("setHumidityMode", "string", "auto, sleep, manual", "auto"),
        _CHILDLOCK,
        RemoteControl("setLevel-mist", "number", "Mist level", 1),
        RemoteControl("setLevel-warm", "number", "Warm level", 0),
        RemoteControl("setAutomaticStop", "boolean", "Automatic stop", False),
    ),
    DeviceFamily.PURIFIER: (
        _SWITCH,
        RemoteControl("setPurifierMode", "string", "auto, sleep, manual", "auto"),
        RemoteControl("setLevel-wind", "number", "Fan level", 1),
        _DISPLAY,
        _CHILDLOCK,
    ),
    DeviceFamily.FAN: (
        _SWITCH,
        RemoteControl("setFanSpeed", "number", "Fan speed", 1),
        RemoteControl("setTowerFanMode", "string", "normal, auto, sleep, turbo", "normal"),
        _DISPLAY,
        RemoteControl("setOscillationSwitch", "boolean", "Oscillation", False),
    ),
    DeviceFamily.OUTLET: (_SWITCH,),
    DeviceFamily.SWITCH: (_SWITCH,),
    DeviceFamily.BULB: (
        _SWITCH,
        RemoteControl("setDimmerBrightness", "number", "Brightness %", 100),
        RemoteControl("setColorHue", "number", "Hue", 0),
        RemoteControl("setColorSaturation", "number", "Saturation", 0),
        RemoteControl("setColorMode", "string", "color, white", "white"),
    ),
    DeviceFamily.THERMOSTAT: (
        RemoteControl("setThermostatMode", "string", "off, heat, cool, auto", "off"),
        RemoteControl("setThermostatFanMode", "string", "auto, on, circulate", "auto"),
    ),
    DeviceFamily.UNKNOWN: (_SWITCH,),
}


def get_remote_controls(device: Device) -> "tuple[RemoteControl, ...]":
    return (REMOTE_REFRESH,) + REMOTE_CONTROLS.get(device.family, ())


LEGACY_MIRROR_MAP: "Final[dict[str, str]]" = {
    vc.KEY_ENABLED: vc.METHOD_SETSWITCH,
    vc.KEY_CHILD_LOCK: "setChildLock",
    vc.KEY_DISPLAY: "setDisplay",
}
"""polled status field -> remote control mirrored (acknowledged) after polls"""


def iter_legacy_mirrors(
    device: Device, status: "Any"
) -> "Iterable[tuple[str, Any]]":
    """yields (control_name, value) for the status fields mirrored on remote controls"""
    if not isinstance(status, dict):
        return
    control_names = {control.name for control in get_remote_controls(device)}
    for key, control_name in LEGACY_MIRROR_MAP.items():
        if (key in status) and (control_name in control_names):
            yield control_name, status[key]
