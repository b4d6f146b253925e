import asyncio
import os
import secrets
import typing

from . import Loggable
from .. import const as vbc
from ..vesyncclient import json_dumps, json_loads

if typing.TYPE_CHECKING:
    from typing import Any, Unpack


class JsonStore(Loggable):
    """
    Minimal versioned json file storage. File io is run in the default
    executor so that the event loop is never blocked.
    """

    __slots__ = (
        "path",
        "version",
    )

    def __init__(self, path: str, version: int, **kwargs: "Unpack[Loggable.Args]"):
        self.path = path
        self.version = version
        super().__init__(os.path.basename(path), **kwargs)

    def _load(self):
        try:
            with open(self.path, "r", encoding="utf8") as file:
                return json_loads(file.read())
        except FileNotFoundError:
            return None

    def _save(self, data):
        os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
        temp_path = self.path + ".tmp"
        with open(temp_path, "w", encoding="utf8") as file:
            file.write(json_dumps({"version": self.version, "data": data}))
        os.replace(temp_path, self.path)

    async def async_load(self) -> "dict[str, Any] | None":
        try:
            stored = await asyncio.get_running_loop().run_in_executor(None, self._load)
        except (OSError, ValueError) as exception:
            self.log_exception(self.WARNING, exception, "loading %s", self.path)
            return None
        if not isinstance(stored, dict) or not isinstance(stored.get("data"), dict):
            return None
        if stored.get("version") != self.version:
            self.log(
                self.INFO,
                "Discarding stored data (version:%s expected:%s)",
                stored.get("version"),
                self.version,
            )
            return None
        return stored["data"]

    async def async_save(self, data: "dict[str, Any]"):
        await asyncio.get_running_loop().run_in_executor(None, self._save, data)


def generate_terminal_id() -> str:
    """random 32 chars hex identifier for this installation"""
    return secrets.token_hex(16)


async def async_get_terminal_id(store: JsonStore) -> str:
    """
    Loads the persisted terminal identifier generating (and saving)
    a new one on first run.
    """
    data = await store.async_load() or {}
    terminal_id = data.get(vbc.KEY_TERMINAL_ID)
    if isinstance(terminal_id, str) and terminal_id:
        return terminal_id
    terminal_id = generate_terminal_id()
    data[vbc.KEY_TERMINAL_ID] = terminal_id
    try:
        await store.async_save(data)
    except OSError as exception:
        # a non persisted identifier still allows to login
        store.log_exception(store.WARNING, exception, "saving %s", store.path)
    return terminal_id
