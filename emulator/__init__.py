"""
    Emulator module: implementation for an emulator able to
    simulate the VeSync cloud api. This can be used to setup an http
    server (one for each account region) representing the cloud service
    for testing purposes (or for fun).
    The emulator state (accounts, devices, issued tokens) is shared among
    the regional apps so that cross region logins behave like the real
    service: an account only logs in on its own region and the other one
    answers with either a 'bizToken' (cross region) or a region conflict
    error depending on 'region_mode'. In REGION_MODE_CONFLICT_BIZTOKEN the
    account region also wants the exchange repeated with a bizToken.
    Every request is counted in 'api_calls' keyed by (region, path)
    and every command received is recorded in 'commands'.
"""

import asyncio
from dataclasses import dataclass, field
from hashlib import md5
import secrets
import typing

from aiohttp import web

from vesync_bridge.vesyncclient import const as vc, json_loads

if typing.TYPE_CHECKING:
    from typing import Any

REGION_MODE_BIZTOKEN = "bizToken"
REGION_MODE_CONFLICT = "conflict"
# region conflict first, then a bizToken from the account region
REGION_MODE_CONFLICT_BIZTOKEN = "conflictBizToken"


@dataclass
class EmulatorAccount:
    email: str
    password: str
    account_id: str = "1234567"
    region: str = vc.REGION_US
    country_code: str = "US"


@dataclass
class EmulatorDevice:
    """
    A cloud bound device. 'status' is returned (double nested
    as in the real api) on any 'get*' rpc method.
    """

    cid: str | None
    name: str
    type_code: str
    config_module: str = "WiFiBTOnboardingNotify"
    status: dict = field(default_factory=dict)
    online: bool = True

    @property
    def descriptor(self) -> dict:
        descriptor = {
            vc.KEY_DEVICENAME: self.name,
            vc.KEY_DEVICETYPE: self.type_code,
            vc.KEY_CONFIGMODULE: self.config_module,
            vc.KEY_UUID: f"uuid-{self.cid or self.name}",
            "connectionStatus": "online" if self.online else "offline",
            "subDeviceList": [],
        }
        if self.cid:
            descriptor[vc.KEY_CID] = self.cid
        return descriptor


class VesyncCloudEmulator:
    def __init__(
        self,
        account: EmulatorAccount,
        devices: "list[EmulatorDevice] | None" = None,
        *,
        region_mode: str = REGION_MODE_BIZTOKEN,
    ):
        self.account = account
        self.devices = devices or []
        self.region_mode = region_mode
        self.online = True
        """when False every request fails at the http level (500)"""
        self.unauthorized = False
        """when True every data call is refused with an HTTP 401"""
        self.response_delay = 0.0
        """seconds waited before answering any request"""
        self.api_calls: dict[tuple[str, str], int] = {}
        self.commands: list[tuple[str, str, "Any"]] = []
        self.authorize_codes: set[str] = set()
        self.biz_tokens: set[str] = set()
        self.tokens: dict[str, str] = {}
        """issued token -> region"""

    def get_api_calls(self, path: str, region: str | None = None) -> int:
        if region:
            return self.api_calls.get((region, path), 0)
        return sum(
            count for (_region, _path), count in self.api_calls.items() if _path == path
        )

    def get_device(self, cid: str | None) -> EmulatorDevice | None:
        for device in self.devices:
            if device.cid and device.cid == cid:
                return device
        return None

    def build_app(self, region: str) -> web.Application:
        app = web.Application()
        for path, handler in (
            (vc.API_AUTH_PATH, self._handle_authorize),
            (vc.API_LOGIN_PATH, self._handle_exchange),
            (vc.API_DEVICES_PATH, self._handle_devices),
            (vc.API_BYPASSV2_PATH, self._handle_bypassv2),
            (vc.API_BYPASS_PATH, self._handle_bypass),
        ):
            app.router.add_post(path, self._web_post_handler(region, path, handler))
        return app

    def _web_post_handler(self, region: str, path: str, handler):
        async def _callback(request: web.Request) -> web.Response:
            key = (region, path)
            self.api_calls[key] = self.api_calls.get(key, 0) + 1
            if self.response_delay:
                await asyncio.sleep(self.response_delay)
            if not self.online:
                return web.Response(status=500, text="Service unavailable")
            return handler(region, request, json_loads(await request.text()))

        return _callback

    @staticmethod
    def _response(code: int = 0, result: "Any" = None, msg: str = "request success"):
        response = {
            vc.KEY_CODE: code,
            vc.KEY_MSG: msg,
            vc.KEY_TRACEID: "0",
        }
        if result is not None:
            response[vc.KEY_RESULT] = result
        return web.json_response(response)

    def _handle_authorize(self, region: str, request: web.Request, data: dict):
        account = self.account
        if (data.get(vc.KEY_EMAIL) != account.email) or (
            data.get(vc.KEY_PASSWORD)
            != md5(account.password.encode("utf-8")).hexdigest()
        ):
            return self._response(
                vc.APICODE_WRONG_CREDENTIALS, msg="Wrong email or password"
            )
        if not data.get(vc.KEY_TERMINALID):
            return self._response(-1, msg="Missing terminalId")
        authorize_code = secrets.token_hex(8)
        self.authorize_codes.add(authorize_code)
        return self._response(
            result={
                vc.KEY_AUTHORIZECODE: authorize_code,
                vc.KEY_ACCOUNTID: account.account_id,
            }
        )

    def _build_biztoken_response(self):
        account = self.account
        biz_token = secrets.token_hex(8)
        self.biz_tokens.add(biz_token)
        return self._response(
            vc.APICODE_CROSS_REGION,
            {
                vc.KEY_BIZTOKEN: biz_token,
                vc.KEY_COUNTRYCODE: account.country_code,
                vc.KEY_CURRENTREGION: account.region,
            },
            msg="Cross region login",
        )

    def _handle_exchange(self, region: str, request: web.Request, data: dict):
        account = self.account
        if data.get(vc.KEY_AUTHORIZECODE) not in self.authorize_codes:
            return self._response(-11000000, msg="Invalid authorize code")
        if data.get(vc.KEY_ACCOUNTID) != account.account_id:
            return self._response(-11000002, msg="Invalid accountID")
        if biz_token := data.get(vc.KEY_BIZTOKEN):
            if biz_token not in self.biz_tokens:
                return self._response(-11000001, msg="Invalid bizToken")
        elif region != account.region:
            if self.region_mode == REGION_MODE_BIZTOKEN:
                return self._build_biztoken_response()
            return self._response(
                vc.APICODE_REGION_CONFLICT, msg="login failed: region conflict"
            )
        elif self.region_mode == REGION_MODE_CONFLICT_BIZTOKEN:
            return self._build_biztoken_response()
        if region != account.region:
            return self._response(
                vc.APICODE_REGION_MISMATCH, msg="bizToken used on the wrong region"
            )
        self.authorize_codes.discard(data[vc.KEY_AUTHORIZECODE])
        token = secrets.token_hex(16)
        self.tokens[token] = region
        return self._response(
            result={
                vc.KEY_TOKEN: token,
                vc.KEY_ACCOUNTID: account.account_id,
                vc.KEY_COUNTRYCODE: account.country_code,
                vc.KEY_CURRENTREGION: account.region,
            }
        )

    def _check_token(self, request: web.Request, data: dict):
        token = request.headers.get(vc.HEADER_TK)
        if self.unauthorized or (token not in self.tokens) or (
            data.get(vc.KEY_TOKEN) != token
        ):
            raise web.HTTPUnauthorized(text="Unauthorized")

    def _handle_devices(self, region: str, request: web.Request, data: dict):
        self._check_token(request, data)
        device_list = [device.descriptor for device in self.devices]
        return self._response(
            result={
                vc.KEY_LIST: device_list,
                "total": len(device_list),
                vc.KEY_PAGESIZE: data.get(vc.KEY_PAGESIZE),
                vc.KEY_PAGENO: data.get(vc.KEY_PAGENO),
            }
        )

    def _handle_bypassv2(self, region: str, request: web.Request, data: dict):
        self._check_token(request, data)
        device = self.get_device(data.get(vc.KEY_CID))
        if not device:
            return self._response(-11203000, msg="Device not found")
        if not device.online:
            return self._response(vc.APICODE_DEVICE_OFFLINE, msg="device offline")
        payload = data[vc.KEY_PAYLOAD]
        method = payload[vc.KEY_METHOD]
        if method.startswith("get"):
            return self._response(
                result={vc.KEY_CODE: 0, vc.KEY_RESULT: device.status}
            )
        payload_data = payload.get(vc.KEY_DATA) or {}
        self.commands.append((device.cid, method, payload_data))  # type: ignore
        if method == vc.METHOD_SETSWITCH and vc.KEY_ENABLED in payload_data:
            device.status[vc.KEY_ENABLED] = payload_data[vc.KEY_ENABLED]
        return self._response(result={vc.KEY_CODE: 0, vc.KEY_RESULT: {}})

    def _handle_bypass(self, region: str, request: web.Request, data: dict):
        self._check_token(request, data)
        device = self.get_device(data.get(vc.KEY_CID))
        if not device:
            return self._response(-11203000, msg="Device not found")
        if not device.online:
            return self._response(vc.APICODE_DEVICE_OFFLINE, msg="device offline")
        json_cmd: dict = data[vc.KEY_JSONCMD]
        if vc.METHOD_GETSTATUS in json_cmd:
            return self._response(result=device.status)
        for method, payload in json_cmd.items():
            self.commands.append((device.cid, method, payload))  # type: ignore
        return self._response(result={})


def build_demo_emulator(email: str, password: str, region: str):
    return VesyncCloudEmulator(
        EmulatorAccount(email, password, region=region),
        [
            EmulatorDevice(
                "vsaq1234",
                "Bedroom humidifier",
                "LUH-A602S-WUS",
                status={
                    vc.KEY_ENABLED: True,
                    "humidity": 45,
                    "mist_level": 2,
                    vc.KEY_DISPLAY: True,
                    vc.KEY_CHILD_LOCK: False,
                },
            ),
            EmulatorDevice(
                "vsbs5678",
                "Garage plug",
                "BSDOG01",
                status={
                    "powerSwitch_1": 1,
                    "realTimeVoltage": 230.1,
                    "realTimePower": 12.5,
                },
            ),
        ],
    )


def run(argv):
    """
    self running python app entry point
    command line invocation:
    'python -m aiohttp.web -H localhost -P 8080 emulator:run -email... -password... -regionEU'
    """
    email = "user@example.com"
    password = "password"
    region = vc.REGION_US
    for arg in argv:
        arg: str
        if arg.startswith("-email"):
            email = arg[6:].strip()
        elif arg.startswith("-password"):
            password = arg[9:].strip()
        elif arg.startswith("-region"):
            region = arg[7:].strip().upper()

    return build_demo_emulator(email, password, region).build_app(region)
