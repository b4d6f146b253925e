import asyncio
import contextlib
from time import time
import typing

import aiohttp
from aiohttp.test_utils import TestServer

from emulator import (
    REGION_MODE_BIZTOKEN,
    EmulatorAccount,
    EmulatorDevice,
    VesyncCloudEmulator,
)
from vesync_bridge import const as vbc
from vesync_bridge.adapter import VesyncAdapter
from vesync_bridge.helpers.statetree import MemoryStateTree
from vesync_bridge.vesyncclient import const as vc
from vesync_bridge.vesyncclient.cloudapi import Session

from . import const as tc

if typing.TYPE_CHECKING:
    from typing import Any

    from vesync_bridge.helpers.manager import Manager


class DictMatcher(dict):
    """
    customize dictionary matching by checking if
    only the keys defined in this object are matched in the
    compared one. It works following the same assumptions as for the ANY
    symbol in the mock library
    """

    def __eq__(self, other):
        for key, value in self.items():
            if value != other.get(key):
                return False
        return True


def build_session(region: str = vc.REGION_US, token: str = "test_token") -> Session:
    return Session(
        token=token,
        account_id=tc.MOCK_ACCOUNT_ID,
        region=region,
        country_code="US" if region == vc.REGION_US else "DE",
        language="en",
        time_zone="America/New_York",
        expires_at=time() + 3600,
    )


def build_devices() -> list[EmulatorDevice]:
    return [
        EmulatorDevice(
            tc.MOCK_HUMIDIFIER_CID,
            "Bedroom humidifier",
            tc.MOCK_HUMIDIFIER_TYPE,
            status=dict(tc.MOCK_HUMIDIFIER_STATUS),
        ),
        EmulatorDevice(
            tc.MOCK_PLUG_CID,
            "Garage plug",
            tc.MOCK_PLUG_TYPE,
            status=dict(tc.MOCK_PLUG_STATUS),
        ),
        EmulatorDevice(
            tc.MOCK_COOKER_CID,
            "Kitchen cooker",
            tc.MOCK_COOKER_TYPE,
            status=dict(tc.MOCK_COOKER_STATUS),
        ),
        EmulatorDevice(None, tc.MOCK_NOCID_NAME, tc.MOCK_NOCID_TYPE),
    ]


def build_config(storage_path: str, **overrides) -> dict:
    return tc.MOCK_CONFIG | {vbc.CONF_STORAGE_PATH: storage_path} | overrides


class CloudEmulatorContext(contextlib.AbstractAsyncContextManager):
    """
    Serves a VesyncCloudEmulator through one local http server for each
    account region. 'hosts' is the region -> url map to be passed to the
    api clients in place of the real ones.
    """

    def __init__(
        self,
        *,
        account_region: str = vc.REGION_US,
        region_mode: str = REGION_MODE_BIZTOKEN,
        devices: "list[EmulatorDevice] | None" = None,
    ):
        self.emulator = VesyncCloudEmulator(
            EmulatorAccount(
                tc.MOCK_EMAIL,
                tc.MOCK_PASSWORD,
                tc.MOCK_ACCOUNT_ID,
                region=account_region,
                country_code="US" if account_region == vc.REGION_US else "DE",
            ),
            build_devices() if devices is None else devices,
            region_mode=region_mode,
        )
        self.servers: dict[str, TestServer] = {}
        self.hosts: dict[str, str] = {}

    async def __aenter__(self):
        for region in vc.REGIONS:
            server = TestServer(self.emulator.build_app(region))
            await server.start_server()
            self.servers[region] = server
            self.hosts[region] = f"http://{server.host}:{server.port}"
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        for server in self.servers.values():
            await server.close()
        return None


class AdapterContext(contextlib.AbstractAsyncContextManager):
    """Builds (and sets up) a VesyncAdapter bound to a CloudEmulatorContext"""

    def __init__(
        self,
        cloud: CloudEmulatorContext,
        http_session: aiohttp.ClientSession,
        config: dict,
        *,
        auto_setup: bool = True,
    ):
        self.store = MemoryStateTree()
        self.adapter = VesyncAdapter(
            config, self.store, hosts=cloud.hosts, http_session=http_session
        )
        self.auto_setup = auto_setup

    @property
    def session_manager(self):
        return self.adapter.session_manager

    def read(self, path: str) -> "Any":
        return self.store.read_leaf(path)

    async def __aenter__(self):
        if self.auto_setup:
            assert await self.adapter.async_setup()
        return self

    async def __aexit__(self, exc_type, exc_value, traceback):
        await self.adapter.async_shutdown()
        return None


async def async_wait_tasks(*managers: "Manager"):
    """waits until every task spawned by the managers is done (also nested ones)"""
    while tasks := [task for manager in managers for task in manager._tasks]:
        await asyncio.gather(*tasks, return_exceptions=True)
