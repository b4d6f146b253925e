"""
VeSync account session management: runs the login protocol (including
the region resolution dance), exposes the current Session and keeps it
fresh through scheduled re-logins.
"""

import asyncio
import enum
import os
from time import time
import typing

from . import const as vbc
from .helpers.manager import CloudApiClient, Manager
from .helpers.statetree import NodeKind, NodeShape
from .helpers.storage import JsonStore, async_get_terminal_id
from .vesyncclient import (
    AuthError,
    VesyncProtocolError,
    const as vc,
    get_biztoken,
    get_opposite_region,
    get_region_from_country,
    is_region_conflict,
)

if typing.TYPE_CHECKING:
    from typing import Final, NotRequired, Unpack

    import aiohttp

    from .helpers.statetree import StateTreeStore
    from .vesyncclient.cloudapi import Session


class SessionState(enum.Enum):
    LOGGED_OUT = enum.auto()
    AUTHORIZING_CODE = enum.auto()
    EXCHANGING_TOKEN = enum.auto()
    CROSS_REGION_RETRY = enum.auto()
    REGION_CONFLICT_RETRY = enum.auto()
    AUTHENTICATED = enum.auto()


class SessionManager(Manager):
    """
    Owns the credentials and the current Session. It is the only writer
    of the 'info.connection' flag which is set only when the login protocol
    succeeds and cleared as soon as we're logged out.
    A (re)login never exposes a partially built Session: the former one
    (if any) is kept until it is replaced, dropped on failure or refused
    by a data call.
    """

    if typing.TYPE_CHECKING:
        store: Final[StateTreeStore]
        hosts: Final[dict[str, str] | None]
        apiclient: CloudApiClient
        terminal_id: str
        state: SessionState
        _session: Session | None
        _http_session: aiohttp.ClientSession | None
        _login_task: asyncio.Task | None
        _unsub_refresh: asyncio.TimerHandle | None
        _unsub_relogin: asyncio.TimerHandle | None
        _shutting_down: bool

        class Args(Manager.Args):
            store: StateTreeStore
            hosts: NotRequired[dict[str, str]]
            http_session: NotRequired[aiohttp.ClientSession]

    __slots__ = (
        "store",
        "hosts",
        "apiclient",
        "terminal_id",
        "state",
        "_session",
        "_http_session",
        "_login_task",
        "_unsub_refresh",
        "_unsub_relogin",
        "_shutting_down",
    )

    def __init__(self, **kwargs: "Unpack[Args]"):
        self.store = kwargs["store"]
        self.hosts = kwargs.get("hosts")
        self.state = SessionState.LOGGED_OUT
        self._session = None
        self._http_session = kwargs.get("http_session")
        self._login_task = None
        self._unsub_refresh = None
        self._unsub_relogin = None
        self._shutting_down = False
        super().__init__(kwargs["config"].get(vbc.CONF_USERNAME) or "", **kwargs)

    def configure_logger(self):
        username = self.loggable_dict({vbc.CONF_USERNAME: self.id})[vbc.CONF_USERNAME]
        self.logtag = f"{self.__class__.__name__}({username})"

    async def async_init(self):
        """
        Loads (or creates) the persisted terminal identifier, builds the
        api client and declares the connectivity flag.
        """
        self.terminal_id = await async_get_terminal_id(
            JsonStore(
                os.path.join(
                    self.config.get(vbc.CONF_STORAGE_PATH, "."), vbc.STORE_FILENAME
                ),
                vbc.STORE_VERSION,
                logger=self,
            )
        )
        self.apiclient = CloudApiClient(
            self,
            terminal_id=self.terminal_id,
            hosts=self.hosts,
            session=self._http_session,
        )
        self.store.ensure_node(
            vbc.PATH_INFO, NodeShape(NodeKind.CHANNEL, "Information")
        )
        self.store.ensure_node(
            vbc.PATH_CONNECTION,
            NodeShape(
                NodeKind.STATE,
                "Device or service connected",
                "boolean",
                read=True,
                write=False,
                default=False,
            ),
        )
        self.store.write_leaf(vbc.PATH_CONNECTION, False, True)

    async def async_shutdown(self):
        self._shutting_down = True
        if self._unsub_refresh:
            self._unsub_refresh.cancel()
            self._unsub_refresh = None
        if self._unsub_relogin:
            self._unsub_relogin.cancel()
            self._unsub_relogin = None
        self._session = None
        self.state = SessionState.LOGGED_OUT
        await super().async_shutdown()
        self._login_task = None
        if not hasattr(self, "apiclient"):
            # async_init never ran
            return
        self.store.write_leaf(vbc.PATH_CONNECTION, False, True)
        if self._http_session is None:
            # we own the underlying aiohttp.ClientSession
            await self.apiclient.async_close()

    @property
    def session(self) -> "Session | None":
        """the current Session when still valid for data calls"""
        session = self._session
        if session and session.expired:
            return None
        return session

    @property
    def relogin_pending(self) -> bool:
        return self._unsub_relogin is not None

    def _set_state(self, state: SessionState):
        if self.state is state:
            return
        self.log(self.DEBUG, "State change %s -> %s", self.state.name, state.name)
        self.state = state
        if self._shutting_down:
            return
        if state is SessionState.AUTHENTICATED:
            self.store.write_leaf(vbc.PATH_CONNECTION, True, True)
        elif state is SessionState.LOGGED_OUT:
            self.store.write_leaf(vbc.PATH_CONNECTION, False, True)

    async def async_login(self) -> "Session | None":
        """
        Runs the login protocol returning the new Session (or None on failure).
        Concurrent callers share the same in-flight login.
        """
        if self._shutting_down:
            return None
        task = self._login_task
        if not task or task.done():
            task = self._login_task = self.async_create_task(
                self._async_login(), ".async_login"
            )
        return await asyncio.shield(task)

    def logout(self):
        if self._unsub_refresh:
            self._unsub_refresh.cancel()
            self._unsub_refresh = None
        if self._unsub_relogin:
            self._unsub_relogin.cancel()
            self._unsub_relogin = None
        self._session = None
        self._set_state(SessionState.LOGGED_OUT)

    def session_expired(self, session: "Session"):
        """
        A data call was refused (HTTP 401): the session is dropped so that
        no other call reuses its token and a re-login is scheduled.
        Late refusals for an already dropped (or replaced) session are
        ignored so that the pending re-login is never pushed back.
        """
        if self._shutting_down or (session is not self._session):
            return
        self.log(self.WARNING, "Session token refused: logging out")
        self._session = None
        self._set_state(SessionState.LOGGED_OUT)
        self.schedule_relogin()

    def schedule_relogin(self, delay: float | None = None):
        """
        Schedules a one-shot re-login (i.e. after a data call was refused).
        A pending re-login is replaced so that many failures in a row
        only end up in a single login.
        """
        if self._shutting_down:
            return
        if delay is None:
            delay = vbc.PARAM_RELOGIN_DELAY
        if self._unsub_relogin:
            self._unsub_relogin.cancel()
        self.log(self.INFO, "Scheduling re-login in %s seconds", delay)
        self._unsub_relogin = self.schedule_async_callback(delay, self._async_relogin)

    async def _async_relogin(self):
        self._unsub_relogin = None
        await self.async_login()

    async def _async_refresh(self):
        self.log(self.DEBUG, "Refreshing session token")
        await self.async_login()

    def _schedule_refresh(self):
        if self._unsub_refresh:
            self._unsub_refresh.cancel()
        session = self._session
        delay = (
            max(session.expires_at - time(), vbc.PARAM_RELOGIN_DELAY)
            if session
            else vbc.PARAM_TOKEN_REFRESH_PERIOD
        )
        self._unsub_refresh = self.schedule_async_callback(delay, self._async_refresh)

    async def _async_login(self):
        config = self.config
        try:
            session = await self._async_login_protocol(
                config[vbc.CONF_USERNAME],
                config[vbc.CONF_PASSWORD],
                config.get(vbc.CONF_REGION, vc.REGION_US),
            )
        except VesyncProtocolError as error:
            if self._shutting_down:
                return None
            self.log_exception(self.ERROR, error, "login")
            if error.response:
                self.log(
                    self.ERROR,
                    "Login failed (response: %s)",
                    self.loggable_any(error.response),
                )
            self._session = None
            self._set_state(SessionState.LOGGED_OUT)
            # the periodic refresh keeps trying
            self._schedule_refresh()
            return None

        if self._shutting_down:
            return None
        self._session = session
        self._set_state(SessionState.AUTHENTICATED)
        self.log(
            self.INFO,
            "Logged in (account:%s region:%s)",
            self.loggable_account_id(session.account_id),
            session.region,
        )
        self._schedule_refresh()
        return session

    async def _async_login_protocol(
        self, username: str, password: str, region: str
    ) -> "Session":
        apiclient = self.apiclient
        self._set_state(SessionState.AUTHORIZING_CODE)
        self.log(self.INFO, "Logging in (region:%s)", region)
        authorize_code, account_id = await apiclient.async_authorize(
            username, password, region
        )
        self.log(
            self.DEBUG,
            "Received authorize code (account:%s)",
            self.loggable_account_id(account_id),
        )
        self._set_state(SessionState.EXCHANGING_TOKEN)
        response = await apiclient.async_exchange(authorize_code, account_id, region)
        if get_biztoken(response):
            return await self._async_cross_region_retry(
                authorize_code, account_id, response
            )
        if not response.get(vc.KEY_CODE):
            return apiclient.build_session(response, region)
        if not is_region_conflict(response):
            raise AuthError(response)

        self._set_state(SessionState.REGION_CONFLICT_RETRY)
        region = get_opposite_region(region)
        self.log(self.INFO, "Region conflict: retrying login (region:%s)", region)
        self._set_state(SessionState.EXCHANGING_TOKEN)
        response = await apiclient.async_exchange(authorize_code, account_id, region)
        if get_biztoken(response):
            return await self._async_cross_region_retry(
                authorize_code, account_id, response
            )
        if response.get(vc.KEY_CODE):
            raise AuthError(response)
        return apiclient.build_session(response, region)

    async def _async_cross_region_retry(
        self, authorize_code: str, account_id: str, response: dict
    ) -> "Session":
        """
        The account lives in a different region: the exchange is repeated
        once carrying the server issued bizToken. Its outcome is final.
        """
        self._set_state(SessionState.CROSS_REGION_RETRY)
        result = response[vc.KEY_RESULT]
        country_code = result.get(vc.KEY_COUNTRYCODE) or None
        region = result.get(vc.KEY_CURRENTREGION)
        if region not in vc.REGIONS:
            region = get_region_from_country(
                country_code or self.config.get(vbc.CONF_COUNTRY_CODE)
            )
        self.log(self.INFO, "Cross region login (region:%s)", region)
        self._set_state(SessionState.EXCHANGING_TOKEN)
        response = await self.apiclient.async_exchange(
            authorize_code,
            account_id,
            region,
            biz_token=result[vc.KEY_BIZTOKEN],
            country_code=country_code,
        )
        if response.get(vc.KEY_CODE):
            raise AuthError(response)
        return self.apiclient.build_session(response, region)
