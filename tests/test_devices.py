"""Test the device dispatching (status requests and command translation)"""

import pytest

from vesync_bridge.vesyncclient import MalformedCommandPayload, const as vc
from vesync_bridge.vesyncclient.devices import (
    REMOTE_REFRESH,
    Device,
    DeviceFamily,
    build_command_request,
    build_status_request,
    build_write_command,
    get_device_family,
    get_remote_controls,
    iter_legacy_mirrors,
)

from . import const as tc, helpers


def _device(type_code: str, cid: str | None = "cid1") -> Device:
    return Device.build(
        {
            vc.KEY_CID: cid,
            vc.KEY_DEVICENAME: f"Device {type_code}",
            vc.KEY_DEVICETYPE: type_code,
            vc.KEY_CONFIGMODULE: "module",
            vc.KEY_UUID: "uuid1",
        }
    )


@pytest.mark.parametrize(
    "type_code,family,method",
    [
        ("CS158-AF", DeviceFamily.COOKER, vc.METHOD_GETSTATUS),
        ("CAF-P583S-KUS", DeviceFamily.AIRFRYER, vc.METHOD_GETAIRFRYERSTATUS),
        ("BSDOG01", DeviceFamily.ENERGYPLUG, vc.METHOD_GETPROPERTY),
        ("LUH-A602S-WUS", DeviceFamily.HUMIDIFIER, vc.METHOD_GETHUMIDIFIERSTATUS),
        ("Classic300S", DeviceFamily.HUMIDIFIER, vc.METHOD_GETHUMIDIFIERSTATUS),
        ("LAP-C201S-AUSR", DeviceFamily.PURIFIER, vc.METHOD_GETPURIFIERSTATUS),
        ("Core300S", DeviceFamily.PURIFIER, vc.METHOD_GETPURIFIERSTATUS),
        ("LTF-F422S-KUS", DeviceFamily.FAN, vc.METHOD_GETFANSTATUS),
        ("ESW15-USA", DeviceFamily.OUTLET, vc.METHOD_GETOUTLETSTATUS),
        ("wifi-switch-1.3", DeviceFamily.OUTLET, vc.METHOD_GETOUTLETSTATUS),
        ("ESWL01", DeviceFamily.SWITCH, vc.METHOD_GETSWITCHSTATUS),
        ("ESWD16", DeviceFamily.SWITCH, vc.METHOD_GETSWITCHSTATUS),
        ("ESL100CW", DeviceFamily.BULB, vc.METHOD_GETLIGHTSTATUS),
        ("XYD0001", DeviceFamily.BULB, vc.METHOD_GETLIGHTSTATUS),
        ("LTM-A401S-WUS", DeviceFamily.THERMOSTAT, vc.METHOD_GETTHERMOSTATSTATUS),
        ("ESF00+", DeviceFamily.UNKNOWN, vc.METHOD_GETHUMIDIFIERSTATUS),
        ("", DeviceFamily.UNKNOWN, vc.METHOD_GETHUMIDIFIERSTATUS),
    ],
)
def test_status_request(type_code, family, method):
    device = _device(type_code)
    assert device.family is family
    session = helpers.build_session(vc.REGION_EU)
    request = build_status_request(device, session)
    assert request
    assert request.payload_method == method
    body = request.body
    assert body == helpers.DictMatcher(
        {
            vc.KEY_TOKEN: session.token,
            vc.KEY_ACCOUNTID: session.account_id,
            vc.KEY_DEVICEREGION: vc.REGION_EU,
            vc.KEY_CID: "cid1",
            vc.KEY_CONFIGMODULE: "module",
        }
    )
    if family is DeviceFamily.COOKER:
        assert request.path == vc.API_BYPASS_PATH
        assert body[vc.KEY_METHOD] == vc.METHOD_BYPASS
        assert body[vc.KEY_JSONCMD] == {vc.METHOD_GETSTATUS: "status"}
    else:
        assert request.path == vc.API_BYPASSV2_PATH
        assert body[vc.KEY_METHOD] == vc.METHOD_BYPASSV2
        assert body[vc.KEY_PAYLOAD][vc.KEY_SOURCE] == "APP"


def test_status_request_priority():
    # cooker prefix wins over the humidifier/purifier tokens
    assert get_device_family("CSLUH-Core") is DeviceFamily.COOKER
    # humidifier tokens are checked before purifier ones
    assert get_device_family("LUH-Core") is DeviceFamily.HUMIDIFIER
    # outlet and switch prefix sets don't overlap
    assert get_device_family("ESWL03") is DeviceFamily.SWITCH
    assert get_device_family("ESW03-USA") is DeviceFamily.OUTLET
    assert get_device_family(None) is DeviceFamily.UNKNOWN


def test_status_request_energyplug():
    request = build_status_request(_device(tc.MOCK_PLUG_TYPE), helpers.build_session())
    assert request
    assert request.body[vc.KEY_PAYLOAD][vc.KEY_DATA] == {
        vc.KEY_PROPERTYLIST: [
            "powerSwitch_1",
            "realTimeVoltage",
            "realTimePower",
            "electricalEnergy",
            "protectionStatus",
            "voltageUpperThreshold",
            "currentUpperThreshold",
            "powerUpperThreshold",
            "scheduleNum",
        ]
    }


def test_status_request_skipped():
    device = _device(tc.MOCK_HUMIDIFIER_TYPE)
    assert build_status_request(device, None) is None
    device = _device(tc.MOCK_HUMIDIFIER_TYPE, cid=None)
    assert not device.pollable
    assert device.path == "Device_LUH-A602S-WUS"
    assert build_status_request(device, helpers.build_session()) is None


@pytest.mark.parametrize(
    "control_name,value,method,payload",
    [
        ("setTargetHumidity", 55, "setTargetHumidity", {"target_humidity": 55}),
        ("setDisplay", False, "setDisplay", {"state": False}),
        ("setPurifierMode", "sleep", "setPurifierMode", {"mode": "sleep"}),
        ("setHumidityMode", "auto", "setHumidityMode", {"mode": "auto"}),
        ("setChildLock", True, "setChildLock", {"child_lock": True}),
        ("setLevel-wind", 42, "setLevel", {"level": 42, "type": "wind", "id": 0}),
        ("setLevel-mist", 3, "setLevel", {"level": 3, "type": "mist", "id": 0}),
        ("setFanSpeed", 2, "setLevel", {"level": 2, "type": "wind", "id": 0}),
        ("setColorHue", 120, "setLightColor", {"hue": 120}),
        ("setColorSaturation", 80, "setLightColor", {"saturation": 80}),
        ("setColorMode", "white", "setLightColorMode", {"colorMode": "white"}),
        ("setDimmerBrightness", 70, "setBrightness", {"brightness": 70}),
        ("setThermostatMode", "cool", "setThermostatWorkMode", {"workMode": 2}),
        ("setThermostatMode", 3, "setThermostatWorkMode", {"workMode": 3}),
        ("setThermostatMode", "1", "setThermostatWorkMode", {"workMode": 1}),
        ("setThermostatFanMode", "circulate", "setThermostatFanMode", {"fanMode": 3}),
        ("startCook", '{"recipeId": 1, "cookTime": 600}', "startCook", {"recipeId": 1, "cookTime": 600}),
        ("setProperty", {"powerSwitch_1": 0}, "setProperty", {"powerSwitch_1": 0}),
        # any json document is passed along, not only objects
        ("startCook", "[1, 2]", "startCook", [1, 2]),
        ("setProperty", ' {"mode": "auto"} ', "setProperty", {"mode": "auto"}),
        ("endCook", True, "endCook", {}),
        ("setSwitch", True, "setSwitch", {"enabled": True, "id": 0}),
        ("setNightLight", False, "setNightLight", {"enabled": False, "id": 0}),
    ],
)
def test_write_command(control_name, value, method, payload):
    device = _device(tc.MOCK_HUMIDIFIER_TYPE)
    assert build_write_command(device, control_name, value) == (method, payload)


@pytest.mark.parametrize(
    "control_name,value",
    [
        ("startCook", "{not json"),
        ("setProperty", None),
        ("setProperty", ""),
        ("setThermostatMode", "dry"),
        ("setThermostatFanMode", 7),
        ("setThermostatFanMode", True),
    ],
)
def test_write_command_malformed(control_name, value):
    with pytest.raises(MalformedCommandPayload):
        build_write_command(_device(tc.MOCK_COOKER_TYPE), control_name, value)


def test_command_request():
    session = helpers.build_session()
    cooker = _device(tc.MOCK_COOKER_TYPE)
    request = build_command_request(cooker, session, "startCook", {"recipeId": 1})
    assert request.path == vc.API_BYPASS_PATH
    assert request.body[vc.KEY_JSONCMD] == {"startCook": {"recipeId": 1}}
    assert request.payload_method == "startCook"

    humidifier = _device(tc.MOCK_HUMIDIFIER_TYPE)
    request = build_command_request(
        humidifier, session, *build_write_command(humidifier, "setChildLock", True)
    )
    assert request.path == vc.API_BYPASSV2_PATH
    assert request.body[vc.KEY_PAYLOAD] == {
        vc.KEY_METHOD: "setChildLock",
        vc.KEY_DATA: {"child_lock": True},
        vc.KEY_SOURCE: "APP",
    }


def test_remote_controls():
    for type_code in ("CS158-AF", "BSDOG01", "LUH-A602S-WUS", "ESL100", "LTM-A401S", "ESF00+"):
        controls = get_remote_controls(_device(type_code))
        assert controls[0] is REMOTE_REFRESH
        names = [control.name for control in controls]
        assert len(names) == len(set(names))

    humidifier = _device(tc.MOCK_HUMIDIFIER_TYPE)
    names = {control.name for control in get_remote_controls(humidifier)}
    assert {"setSwitch", "setTargetHumidity", "setDisplay", "setChildLock", "setLevel-mist"} <= names
    # every declared control translates into a command
    for control in get_remote_controls(humidifier):
        if control is not REMOTE_REFRESH:
            build_write_command(humidifier, control.name, control.default)


def test_legacy_mirrors():
    humidifier = _device(tc.MOCK_HUMIDIFIER_TYPE)
    assert dict(iter_legacy_mirrors(humidifier, tc.MOCK_HUMIDIFIER_STATUS)) == {
        "setSwitch": True,
        "setChildLock": False,
        "setDisplay": True,
    }
    # outlets only declare setSwitch
    outlet = _device("ESW15-USA")
    assert dict(iter_legacy_mirrors(outlet, tc.MOCK_HUMIDIFIER_STATUS)) == {
        "setSwitch": True
    }
    assert list(iter_legacy_mirrors(humidifier, None)) == []
