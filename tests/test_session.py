"""Test the session manager (login protocol and refresh scheduling)"""

import asyncio
import dataclasses
import logging
import re
from time import time

from emulator import REGION_MODE_CONFLICT, REGION_MODE_CONFLICT_BIZTOKEN
from vesync_bridge import const as vbc
from vesync_bridge.helpers.statetree import MemoryStateTree
from vesync_bridge.session import SessionManager, SessionState
from vesync_bridge.vesyncclient import const as vc

from . import helpers


def _session_manager(cloud: helpers.CloudEmulatorContext, http_session, config: dict):
    return SessionManager(
        config=config,
        store=MemoryStateTree(),
        hosts=cloud.hosts,
        http_session=http_session,
    )


async def test_login(cloud: helpers.CloudEmulatorContext, http_session, config):
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    store = session_manager.store
    assert store.read_leaf(vbc.PATH_CONNECTION) is False
    assert re.fullmatch(r"[0-9a-f]{32}", session_manager.terminal_id)

    session = await session_manager.async_login()
    assert session
    assert session is session_manager.session
    assert session_manager.state is SessionState.AUTHENTICATED
    assert session.region == vc.REGION_US
    assert store.read_leaf(vbc.PATH_CONNECTION) is True
    assert session_manager._unsub_refresh
    emulator = cloud.emulator
    assert emulator.get_api_calls(vc.API_AUTH_PATH) == 1
    assert emulator.get_api_calls(vc.API_LOGIN_PATH) == 1

    # the scheduled refresh is a full re-login replacing the session
    await session_manager._async_refresh()
    assert session_manager.session
    assert session_manager.session.token != session.token
    assert emulator.get_api_calls(vc.API_AUTH_PATH) == 2

    await session_manager.async_shutdown()
    assert session_manager.session is None
    assert session_manager.state is SessionState.LOGGED_OUT
    assert store.read_leaf(vbc.PATH_CONNECTION) is False
    assert session_manager._unsub_refresh is None
    assert await session_manager.async_login() is None


async def test_login_terminal_id_persisted(cloud, http_session, config):
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    session_manager_2 = _session_manager(cloud, http_session, config)
    await session_manager_2.async_init()
    assert session_manager.terminal_id == session_manager_2.terminal_id
    await session_manager.async_shutdown()
    await session_manager_2.async_shutdown()


async def test_login_concurrent(cloud: helpers.CloudEmulatorContext, http_session, config):
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    session_1, session_2 = await asyncio.gather(
        session_manager.async_login(), session_manager.async_login()
    )
    assert session_1 is session_2
    assert cloud.emulator.get_api_calls(vc.API_AUTH_PATH) == 1
    await session_manager.async_shutdown()


async def test_login_cross_region(http_session, config):
    async with helpers.CloudEmulatorContext(account_region=vc.REGION_EU) as cloud:
        session_manager = _session_manager(cloud, http_session, config)
        await session_manager.async_init()
        session = await session_manager.async_login()
        assert session
        assert session.region == vc.REGION_EU
        emulator = cloud.emulator
        # exactly one retry carrying the bizToken on the account region
        assert emulator.get_api_calls(vc.API_LOGIN_PATH, vc.REGION_US) == 1
        assert emulator.get_api_calls(vc.API_LOGIN_PATH, vc.REGION_EU) == 1
        assert len(emulator.biz_tokens) == 1
        # data calls now target the account region
        await session_manager.apiclient.async_device_list(session)
        assert emulator.get_api_calls(vc.API_DEVICES_PATH, vc.REGION_EU) == 1
        assert emulator.get_api_calls(vc.API_DEVICES_PATH, vc.REGION_US) == 0
        await session_manager.async_shutdown()


async def test_login_region_conflict(http_session, config):
    async with helpers.CloudEmulatorContext(
        account_region=vc.REGION_EU, region_mode=REGION_MODE_CONFLICT
    ) as cloud:
        session_manager = _session_manager(cloud, http_session, config)
        await session_manager.async_init()
        session = await session_manager.async_login()
        assert session
        assert session.region == vc.REGION_EU
        emulator = cloud.emulator
        # exactly one retry against the opposite region
        assert emulator.get_api_calls(vc.API_LOGIN_PATH, vc.REGION_US) == 1
        assert emulator.get_api_calls(vc.API_LOGIN_PATH, vc.REGION_EU) == 1
        assert not emulator.biz_tokens
        await session_manager.async_shutdown()


async def test_login_region_conflict_biztoken(http_session, config):
    async with helpers.CloudEmulatorContext(
        account_region=vc.REGION_EU, region_mode=REGION_MODE_CONFLICT_BIZTOKEN
    ) as cloud:
        session_manager = _session_manager(cloud, http_session, config)
        await session_manager.async_init()
        session = await session_manager.async_login()
        assert session
        assert session.region == vc.REGION_EU
        assert session_manager.state is SessionState.AUTHENTICATED
        emulator = cloud.emulator
        # conflict on US, then the bizToken exchange on the account region
        assert emulator.get_api_calls(vc.API_LOGIN_PATH, vc.REGION_US) == 1
        assert emulator.get_api_calls(vc.API_LOGIN_PATH, vc.REGION_EU) == 2
        assert len(emulator.biz_tokens) == 1
        assert emulator.get_api_calls(vc.API_AUTH_PATH) == 1
        await session_manager.apiclient.async_device_list(session)
        assert emulator.get_api_calls(vc.API_DEVICES_PATH, vc.REGION_EU) == 1
        await session_manager.async_shutdown()


async def test_login_failure(cloud: helpers.CloudEmulatorContext, http_session, config, caplog):
    config[vbc.CONF_PASSWORD] = "wrong"
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    with caplog.at_level(logging.ERROR):
        assert await session_manager.async_login() is None
    assert "AuthError" in caplog.text
    assert session_manager.state is SessionState.LOGGED_OUT
    assert session_manager.session is None
    assert session_manager.store.read_leaf(vbc.PATH_CONNECTION) is False
    assert cloud.emulator.get_api_calls(vc.API_LOGIN_PATH) == 0
    # the periodic refresh keeps retrying
    assert session_manager._unsub_refresh
    await session_manager.async_shutdown()


async def test_login_failure_drops_session(cloud: helpers.CloudEmulatorContext, http_session, config):
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    assert await session_manager.async_login()
    cloud.emulator.online = False
    assert await session_manager.async_login() is None
    assert session_manager.session is None
    assert session_manager.store.read_leaf(vbc.PATH_CONNECTION) is False
    await session_manager.async_shutdown()


async def test_relogin_coalescing(cloud: helpers.CloudEmulatorContext, http_session, config):
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    assert await session_manager.async_login()
    session_manager.schedule_relogin()
    unsub_relogin = session_manager._unsub_relogin
    assert unsub_relogin
    session_manager.schedule_relogin()
    assert unsub_relogin.cancelled()
    assert session_manager.relogin_pending
    assert not session_manager._unsub_relogin.cancelled()

    session_manager.schedule_relogin(0)
    await asyncio.sleep(0.01)
    await helpers.async_wait_tasks(session_manager)
    assert not session_manager.relogin_pending
    assert cloud.emulator.get_api_calls(vc.API_AUTH_PATH) == 2

    session_manager.logout()
    assert session_manager.session is None
    assert session_manager.store.read_leaf(vbc.PATH_CONNECTION) is False
    await session_manager.async_shutdown()


async def test_session_expired_not_exposed(cloud: helpers.CloudEmulatorContext, http_session, config):
    session_manager = _session_manager(cloud, http_session, config)
    await session_manager.async_init()
    session = await session_manager.async_login()
    assert session
    session_manager._session = dataclasses.replace(session, expires_at=time() - 1)
    # an expired token is never handed out for data calls
    assert session_manager.session is None

    # a refusal for a session which is not the current one is ignored
    session_manager.session_expired(session)
    assert not session_manager.relogin_pending
    session_manager.session_expired(session_manager._session)
    assert session_manager.relogin_pending
    assert session_manager.state is SessionState.LOGGED_OUT
    assert session_manager.store.read_leaf(vbc.PATH_CONNECTION) is False
    await session_manager.async_shutdown()
    assert not session_manager.relogin_pending
