"""
The bridge adapter: ties the session, the device dispatching and the
json flattening together. It polls the device fleet on a timer and
translates local writes on '<device>.remote.<control>' into commands.
"""

import asyncio
import typing

from . import const as vbc
from .config import validate_config
from .helpers.flatten import FlattenOptions, flatten_to_store
from .helpers.manager import Manager, set_logging_level
from .helpers.statetree import NodeKind, NodeShape
from .session import SessionManager
from .vesyncclient import (
    DeviceOffline,
    MalformedCommandPayload,
    SessionExpired,
    VesyncProtocolError,
    extract_result,
)
from .vesyncclient.devices import (
    REMOTE_REFRESH,
    Device,
    build_command_request,
    build_status_request,
    build_write_command,
    get_remote_controls,
    iter_legacy_mirrors,
)

if typing.TYPE_CHECKING:
    from typing import Any, Callable, Final

    import aiohttp

    from .helpers.statetree import StateTreeStore


GENERAL_OPTIONS = FlattenOptions(force_indexed_arrays=True, root_channel_label="General")
STATUS_OPTIONS = FlattenOptions(
    writable_leaves=True, root_channel_label=vbc.STATUS_CHANNEL_NAME
)


class VesyncAdapter(Manager):
    """
    Poll orchestrator. The device list is only queried once (when the
    first valid session is available) and kept for the adapter lifetime.
    """

    if typing.TYPE_CHECKING:
        store: Final[StateTreeStore]
        session_manager: Final[SessionManager]
        devices: list[Device] | None
        _devices_by_path: dict[str, Device]
        _poll_task: asyncio.Task | None
        _unsub_store: Callable[[], None] | None
        _unsub_poll: asyncio.TimerHandle | None
        _unsub_command_refresh: asyncio.TimerHandle | None
        _shutting_down: bool

    __slots__ = (
        "store",
        "session_manager",
        "devices",
        "_devices_by_path",
        "_poll_task",
        "_unsub_store",
        "_unsub_poll",
        "_unsub_command_refresh",
        "_shutting_down",
    )

    def __init__(
        self,
        config: dict,
        store: "StateTreeStore",
        *,
        hosts: dict[str, str] | None = None,
        http_session: "aiohttp.ClientSession | None" = None,
    ):
        self.store = store
        self.devices = None
        self._devices_by_path = {}
        self._poll_task = None
        self._unsub_store = None
        self._unsub_poll = None
        self._unsub_command_refresh = None
        self._shutting_down = False
        config = validate_config(config)
        super().__init__(vbc.DOMAIN, config=config)
        session_kwargs = {}
        if hosts:
            session_kwargs["hosts"] = hosts
        if http_session:
            session_kwargs["http_session"] = http_session
        self.session_manager = SessionManager(
            config=config, store=store, **session_kwargs
        )

    async def async_setup(self) -> bool:
        """
        Starts the bridge: logs in, declares the devices and starts polling.
        Returns False (after logging the reason) when the configuration
        doesn't allow to start.
        """
        config = self.config
        set_logging_level(config.get(vbc.CONF_LOGGING_LEVEL))
        if not (config[vbc.CONF_USERNAME] and config[vbc.CONF_PASSWORD]):
            self.log(self.ERROR, "Missing username or password: not starting")
            return False
        self.log(self.DEBUG, "Setup with config: %s", self.loggable_config())
        session_manager = self.session_manager
        await session_manager.async_init()
        self._unsub_store = self.store.subscribe_all(self._on_state_change)
        if await session_manager.async_login():
            await self.async_request_poll()
        else:
            self.log(self.WARNING, "Login failed: polling will wait for a valid session")
        if not self._shutting_down:
            self._schedule_poll()
        return True

    async def async_shutdown(self):
        self._shutting_down = True
        if self._unsub_poll:
            self._unsub_poll.cancel()
            self._unsub_poll = None
        if self._unsub_command_refresh:
            self._unsub_command_refresh.cancel()
            self._unsub_command_refresh = None
        if self._unsub_store:
            self._unsub_store()
            self._unsub_store = None
        # in-flight polls and commands complete while the session is still there
        await super().async_shutdown()
        await self.session_manager.async_shutdown()
        self._poll_task = None

    @property
    def poll_interval(self) -> float:
        """polling period in seconds"""
        return self.config[vbc.CONF_INTERVAL] * 60

    def get_device(self, device_path: str) -> Device | None:
        return self._devices_by_path.get(device_path)

    def _schedule_poll(self):
        if self._unsub_poll:
            self._unsub_poll.cancel()
        self._unsub_poll = self.schedule_async_callback(
            self.poll_interval, self._async_poll_timer
        )

    async def _async_poll_timer(self):
        self._unsub_poll = None
        self._schedule_poll()
        await self.async_request_poll()

    async def async_request_poll(self):
        """
        Runs a polling cycle. A request issued while a cycle is in progress
        joins the running one instead of starting another.
        """
        if self._shutting_down:
            return
        task = self._poll_task
        if not task or task.done():
            task = self._poll_task = self.async_create_task(
                self._async_poll_devices(), ".async_poll_devices"
            )
        await asyncio.shield(task)

    async def _async_poll_devices(self):
        session = self.session_manager.session
        if not session:
            self.log(self.DEBUG, "Skipping polling cycle: no valid session")
            return
        if self.devices is None:
            await self._async_update_devices()
            if self.devices is None:
                return
        for device in self.devices:
            if self._shutting_down:
                return
            await self.async_poll_device(device)

    async def _async_update_devices(self):
        session = self.session_manager.session
        if not session:
            return
        try:
            device_list = await self.session_manager.apiclient.async_device_list(session)
        except SessionExpired as error:
            self.log_exception(self.WARNING, error, "querying the device list")
            self.session_manager.session_expired(session)
            return
        except VesyncProtocolError as error:
            self.log_exception(
                self.WARNING,
                error,
                "querying the device list",
                timeout=vbc.PARAM_LOG_TIMEOUT,
            )
            return
        if self._shutting_down:
            return
        self.log(self.INFO, "Found %d devices", len(device_list))
        devices = []
        for payload in device_list:
            if not isinstance(payload, dict):
                self.log(self.DEBUG, "Skipping malformed device entry: %s", payload)
                continue
            device = Device.build(payload)
            self._declare_device(device)
            if device.pollable:
                devices.append(device)
        self.devices = devices
        self._devices_by_path = {device.path: device for device in devices}

    def _declare_device(self, device: Device):
        store = self.store
        if not device.pollable:
            # no stable id: the device is only recorded for information
            self.log(
                self.INFO, "Device %s has no id: it will not be polled", device.name
            )
            store.ensure_node(vbc.PATH_GENERAL, NodeShape(NodeKind.CHANNEL, "General"))
            flatten_to_store(
                store,
                f"{vbc.PATH_GENERAL}.{device.path}",
                device.payload,
                FlattenOptions(force_indexed_arrays=True, root_channel_label=device.name),
                self,
            )
            return

        path = device.path
        store.ensure_node(path, NodeShape(NodeKind.DEVICE, device.name))
        remote_path = f"{path}.{vbc.PATH_REMOTE}"
        store.ensure_node(
            remote_path, NodeShape(NodeKind.CHANNEL, vbc.REMOTE_CHANNEL_NAME)
        )
        for control in get_remote_controls(device):
            store.ensure_node(
                f"{remote_path}.{control.name}",
                NodeShape(
                    NodeKind.STATE,
                    control.name,
                    control.value_type,
                    read=True,
                    write=True,
                    default=control.default,
                    description=control.description,
                ),
            )
        flatten_to_store(
            store, f"{path}.{vbc.PATH_GENERAL}", device.payload, GENERAL_OPTIONS, self
        )

    async def async_poll_device(self, device: Device):
        """
        Queries and stores the status of a single device.
        Any remote error is logged and confined to this device.
        """
        session_manager = self.session_manager
        session = session_manager.session
        request = build_status_request(device, session)
        if not (session and request):
            self.log(self.DEBUG, "Skipping poll of %s: no valid session", device.name)
            return
        try:
            response = await session_manager.apiclient.async_bypass(
                session, request.path, request.body
            )
        except SessionExpired as error:
            self.log_exception(self.WARNING, error, "polling %s", device.name)
            session_manager.session_expired(session)
            return
        except DeviceOffline:
            self.log(
                self.INFO,
                "Device %s (%s) is offline",
                device.name,
                self.loggable_device_id(device.path),
                timeout=vbc.PARAM_LOG_TIMEOUT,
            )
            return
        except VesyncProtocolError as error:
            self.log_exception(
                self.WARNING,
                error,
                "polling %s",
                device.name,
                timeout=vbc.PARAM_LOG_TIMEOUT,
            )
            return
        if self._shutting_down:
            return
        status = extract_result(response)
        if status is None:
            self.log(self.DEBUG, "Empty status received for %s", device.name)
            return
        flatten_to_store(
            self.store, f"{device.path}.{vbc.PATH_STATUS}", status, STATUS_OPTIONS, self
        )
        remote_path = f"{device.path}.{vbc.PATH_REMOTE}"
        for control_name, value in iter_legacy_mirrors(device, status):
            self.store.write_leaf(f"{remote_path}.{control_name}", value, True)

    def _on_state_change(self, path: str, value: "Any", remote_origin: bool):
        # acknowledged writes are state mirrors and never trigger commands
        if remote_origin or self._shutting_down:
            return
        device_path, separator, control_name = path.partition(
            f".{vbc.PATH_REMOTE}."
        )
        if not separator or ("." in control_name):
            return
        device = self._devices_by_path.get(device_path)
        if not device:
            return
        if control_name == REMOTE_REFRESH.name:
            if value:
                self.async_create_task(
                    self._async_remote_refresh(path), f".refresh({device.path})"
                )
            return
        self.async_create_task(
            self.async_send_command(device, control_name, value),
            f".send_command({control_name})",
        )

    async def _async_remote_refresh(self, path: str):
        await self.async_request_poll()
        if not self._shutting_down:
            self.store.write_leaf(path, False, True)

    async def async_send_command(
        self, device: Device, control_name: str, value: "Any"
    ) -> bool:
        """
        Translates and sends a command to the device. Returns True when the
        cloud accepted it. A refresh poll is scheduled shortly after any
        command which reached the cloud.
        """
        try:
            method, payload = build_write_command(device, control_name, value)
        except MalformedCommandPayload as error:
            self.log_exception(
                self.WARNING, error, "building command %s for %s", control_name, device.name
            )
            return False
        session_manager = self.session_manager
        session = session_manager.session
        if not session:
            self.log(
                self.WARNING,
                "Command %s for %s dropped: no valid session",
                control_name,
                device.name,
            )
            return False
        request = build_command_request(device, session, method, payload)
        self.log(
            self.DEBUG,
            "Sending %s to %s: %s",
            method,
            device.name,
            self.loggable_any(payload),
        )
        try:
            await session_manager.apiclient.async_bypass(
                session, request.path, request.body
            )
            return True
        except SessionExpired as error:
            self.log_exception(self.WARNING, error, "sending %s to %s", method, device.name)
            session_manager.session_expired(session)
            return False
        except DeviceOffline:
            self.log(self.INFO, "Device %s is offline: %s not sent", device.name, method)
            return False
        except VesyncProtocolError as error:
            self.log_exception(self.WARNING, error, "sending %s to %s", method, device.name)
            return False
        finally:
            if not self._shutting_down:
                self._schedule_command_refresh()

    def _schedule_command_refresh(self):
        if self._unsub_command_refresh:
            self._unsub_command_refresh.cancel()
        self._unsub_command_refresh = self.schedule_async_callback(
            vbc.PARAM_COMMAND_REFRESH_DELAY, self._async_command_refresh
        )

    async def _async_command_refresh(self):
        self._unsub_command_refresh = None
        await self.async_request_poll()
