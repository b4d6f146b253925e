import asyncio
import logging
from typing import TYPE_CHECKING

import aiohttp

from . import LOGGER, Loggable
from .. import const as vbc
from ..vesyncclient import cloudapi
from .obfuscate import (
    OBFUSCATE_ACCOUNT_ID_MAP,
    OBFUSCATE_DEVICE_ID_MAP,
    obfuscated_any,
    obfuscated_dict,
)

if TYPE_CHECKING:
    from typing import Any, Callable, Coroutine, Mapping, Unpack


class Manager(Loggable):
    """
    Base class for the long lived bridge components (session, adapter).
    It carries the (validated) configuration and provides scheduling
    helpers which track timers and tasks so that everything gets
    cancelled on shutdown.
    """

    if TYPE_CHECKING:
        config: vbc.BridgeConfigType
        obfuscate: bool
        _tasks: set[asyncio.Task]

        class Args(Loggable.Args):
            config: vbc.BridgeConfigType

    __slots__ = (
        "config",
        "obfuscate",
        "_tasks",
    )

    def __init__(self, id: str, **kwargs: "Unpack[Args]"):
        self.config = kwargs["config"]
        self.obfuscate = self.config.get(vbc.CONF_OBFUSCATE, True)
        self._tasks = set()
        super().__init__(id, **kwargs)

    async def async_shutdown(self):
        """
        Waits for any pending task created through async_create_task so
        that in-flight requests (i.e. commands) get completed. Tasks still
        pending after PARAM_SHUTDOWN_TIMEOUT are cancelled.
        Derived classes should cancel their own timers before calling
        the super() implementation.
        """
        pending = {task for task in self._tasks if not task.done()}
        if pending:
            self.log(self.DEBUG, "Waiting for %d pending tasks", len(pending))
            _, pending = await asyncio.wait(
                pending, timeout=vbc.PARAM_SHUTDOWN_TIMEOUT
            )
        for task in pending:
            self.log(
                self.WARNING, "Cancelling task %s on shutdown", task.get_name()
            )
            task.cancel("Manager shutdown")
        if pending:
            await asyncio.wait(pending, timeout=0.1)

    def schedule_async_callback(
        self, delay: float, target: "Callable[..., Coroutine]", *args
    ) -> "asyncio.TimerHandle":
        def _callback(_target, *_args):
            self.async_create_task(_target(*_args), "._callback")

        return asyncio.get_running_loop().call_later(delay, _callback, target, *args)

    def async_create_task(self, target: "Coroutine", name: str) -> "asyncio.Task":
        task = asyncio.get_running_loop().create_task(target, name=f"{self.logtag}{name}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def loggable_any(self, value):
        """
        Conditionally obfuscate any type to send to logging.
        use the typed versions to increase efficiency/context
        """
        return obfuscated_any(value) if self.obfuscate else value

    def loggable_dict(self, value: "Mapping[str, Any]"):
        """Conditionally obfuscate the dict values (based off OBFUSCATE_KEYS) to send to logging"""
        return obfuscated_dict(value) if self.obfuscate else value

    def loggable_config(self):
        """Return a 'loggable' version of the config (for diagnostic/logging purposes)"""
        return obfuscated_dict(self.config) if self.obfuscate else dict(self.config)

    def loggable_device_id(self, device_id: str):
        """Conditionally obfuscate the device_id (vendor 'cid') to send to logging"""
        return (
            OBFUSCATE_DEVICE_ID_MAP.obfuscate(device_id)
            if self.obfuscate
            else device_id
        )

    def loggable_account_id(self, account_id: str):
        """Conditionally obfuscate the account_id to send to logging"""
        return (
            OBFUSCATE_ACCOUNT_ID_MAP.obfuscate(account_id)
            if self.obfuscate
            else account_id
        )


class CloudApiClient(cloudapi.CloudApiClient, Loggable):
    """
    A specialized cloudapi.CloudApiClient providing vesync_bridge style logging
    interface to the underlying cloudapi services.
    """

    def __init__(
        self,
        manager: Manager,
        *,
        terminal_id: str,
        hosts: dict[str, str] | None = None,
        session: aiohttp.ClientSession | None = None,
    ):
        Loggable.__init__(self, "", logger=manager)
        config = manager.config
        cloudapi.CloudApiClient.__init__(
            self,
            terminal_id=terminal_id,
            country_code=config.get(vbc.CONF_COUNTRY_CODE, "US"),
            language=config.get(vbc.CONF_LANGUAGE, "en"),
            time_zone=config.get(vbc.CONF_TIME_ZONE, "America/New_York"),
            hosts=hosts,
            session=session,
            logger=self,  # type: ignore (Loggable almost duck-compatible with logging.Logger)
            obfuscate_func=manager.loggable_any,
        )


def set_logging_level(level: int | None):
    """Applies the configured logging level to the bridge logger (if any)"""
    if level is not None:
        LOGGER.setLevel(level)
        LOGGER.log(logging.INFO, "Logging level set to %s", logging.getLevelName(level))
