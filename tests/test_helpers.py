"""Test the .helpers module"""

import logging
import os

import pytest
import voluptuous as vol

from vesync_bridge import const as vbc
from vesync_bridge.config import validate_config
from vesync_bridge.helpers import LOGGER, Loggable, obfuscate
from vesync_bridge.helpers.storage import JsonStore, async_get_terminal_id
from vesync_bridge.vesyncclient import const as vc, json_dumps

from . import const as tc


def test_obfuscated_key():
    """
    Verify the obfuscation
    """
    key_samples = {
        vc.KEY_CID: {
            "vsaqd1a2b3c4": "###########0",
            "vsbsd5e6f7g8": "###########1",
            "x": "#2",
        },
        vc.KEY_ACCOUNTID: {
            "1234567": "@0",
            1234567: "@0",
            "9876": "@1",
        },
        vc.KEY_PASSWORD: {
            "secret": "<redacted>",
            "another": "<redacted>",
        },
    }
    for key, samples in key_samples.items():
        # clear the cached keys to 'stabilize' expected results
        rule = obfuscate.OBFUSCATE_KEYS[key]
        if isinstance(rule, obfuscate.ObfuscateMap):
            rule.clear()
        for src, result in samples.items():
            assert (
                obfuscate.obfuscated_dict({key: src})[key] == result
            ), f"{key}: {src}"

    # the header and body flavours share the same mapping
    assert obfuscate.obfuscated_dict({vc.HEADER_ACCOUNTID: "1234567"}) == {
        vc.HEADER_ACCOUNTID: "@0"
    }


def test_obfuscated_any():
    obfuscate.OBFUSCATE_DEVICE_ID_MAP.clear()
    response = {
        vc.KEY_CODE: 0,
        vc.KEY_RESULT: {
            vc.KEY_LIST: [{vc.KEY_CID: "vsaqd1a2b3c4", vc.KEY_DEVICENAME: "Lamp"}]
        },
    }
    expected = {
        vc.KEY_CODE: 0,
        vc.KEY_RESULT: {
            vc.KEY_LIST: [{vc.KEY_CID: "###########0", vc.KEY_DEVICENAME: "Lamp"}]
        },
    }
    assert obfuscate.obfuscated_any(response) == expected
    # raw text payloads are decoded before obfuscation
    assert obfuscate.obfuscated_any(json_dumps(response)) == expected
    assert obfuscate.obfuscated_any("not json") == "<redacted>"


def test_config():
    config = validate_config({})
    assert config == {
        vbc.CONF_USERNAME: "",
        vbc.CONF_PASSWORD: "",
        vbc.CONF_INTERVAL: vbc.CONF_INTERVAL_DEFAULT,
        vbc.CONF_REGION: vc.REGION_US,
        vbc.CONF_COUNTRY_CODE: "US",
        vbc.CONF_LANGUAGE: "en",
        vbc.CONF_TIME_ZONE: "America/New_York",
        vbc.CONF_STORAGE_PATH: ".",
        vbc.CONF_OBFUSCATE: True,
    }

    config = validate_config(
        tc.MOCK_CONFIG
        | {
            vbc.CONF_INTERVAL: "0.2",
            vbc.CONF_REGION: "eu",
            vbc.CONF_USERNAME: None,
            "unknown_key": 1,
        }
    )
    assert config[vbc.CONF_INTERVAL] == vbc.CONF_INTERVAL_MIN
    assert config[vbc.CONF_REGION] == vc.REGION_EU
    assert config[vbc.CONF_USERNAME] == ""
    assert "unknown_key" not in config

    for invalid_config in (
        {vbc.CONF_REGION: "ASIA"},
        {vbc.CONF_INTERVAL: 0},
        {vbc.CONF_INTERVAL: "often"},
    ):
        with pytest.raises(vol.Invalid):
            validate_config(invalid_config)


def test_logger_timeout(caplog):
    loggable = Loggable("test")
    with caplog.at_level(logging.WARNING):
        for _ in range(3):
            loggable.log(loggable.WARNING, "Device %s not responding", "lamp", timeout=60)
        loggable.log(loggable.WARNING, "Device %s not responding", "plug", timeout=60)
    messages = [record.getMessage() for record in caplog.records]
    assert messages == [
        "Loggable(test): Device lamp not responding",
        "Loggable(test): Device plug not responding",
    ]

    # no timeout: never de-duplicated
    caplog.clear()
    with caplog.at_level(logging.WARNING):
        LOGGER.warning("repeated")
        LOGGER.warning("repeated")
    assert len(caplog.records) == 2


async def test_jsonstore(tmp_path):
    path = os.path.join(tmp_path, "nested", vbc.STORE_FILENAME)
    store = JsonStore(path, vbc.STORE_VERSION)
    assert await store.async_load() is None

    terminal_id = await async_get_terminal_id(store)
    assert len(terminal_id) == 32
    assert await store.async_load() == {vbc.KEY_TERMINAL_ID: terminal_id}
    assert await async_get_terminal_id(store) == terminal_id

    # a different version discards the stored data
    store_v2 = JsonStore(path, vbc.STORE_VERSION + 1)
    assert await store_v2.async_load() is None
    assert await async_get_terminal_id(store_v2) != terminal_id

    # corrupted file
    with open(path, "w", encoding="utf8") as file:
        file.write("{not json")
    assert await store.async_load() is None
