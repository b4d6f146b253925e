"""
    Obfuscation:

    working on a set of well-known keys to hide values from a structure
    when logging.
    The 'OBFUSCATE_KEYS' dict mandates which key values are patched and
    how (ObfuscateRule). It generally mantains a set of obfuscated values stored in
    the ObfuscateMap instance so that every time we obfuscate a key value,
    we return the same (stable) obfuscation in order to correlate data in
    logs. Some keys are not cached/mapped and just 'redacted'
"""

import typing

from .. import const as vbc
from ..vesyncclient import const as vc, json_loads


class ObfuscateRule:
    """
    Obfuscate data without caching and mapping. This is needed
    for secrets like passwords or one-shot codes
    """

    def obfuscate(self, value):
        return "<redacted>"


class ObfuscateMap(ObfuscateRule, dict):
    def obfuscate(self, value):
        """
        for every value we obfuscate, we'll keep
        a cache of 'unique' obfuscated values in order
        to be able to relate 'stable' identical vales in logs
        """
        if value not in self:
            # first time seen: generate the obfuscation
            count = len(self)
            if isinstance(value, str):
                # we'll preserve string length when obfuscating strings
                obfuscated_value = str(count)
                padding = len(value) - len(obfuscated_value)
                if padding > 0:
                    self[value] = "#" * padding + obfuscated_value
                else:
                    self[value] = "#" + obfuscated_value
            else:
                self[value] = "@" + str(count)

        return self[value]


class ObfuscateAccountIdMap(ObfuscateMap):
    def obfuscate(self, value: str | int):
        # account ids are carried both as strings and ints
        # (i.e. body 'accountID' vs header 'accountid')
        try:
            value = int(value)
        except (TypeError, ValueError):
            pass
        return super().obfuscate(value)


# common (shared) obfuscation mappings for related keys
OBFUSCATE_NO_MAP = ObfuscateRule()
OBFUSCATE_DEVICE_ID_MAP = ObfuscateMap({})
OBFUSCATE_ACCOUNT_ID_MAP = ObfuscateAccountIdMap({})
OBFUSCATE_TOKEN_MAP = ObfuscateMap({})
OBFUSCATE_KEYS: dict[str, ObfuscateRule] = {
    # VESYNC CLOUD API keys
    vc.KEY_CID: OBFUSCATE_DEVICE_ID_MAP,
    vc.KEY_UUID: ObfuscateMap({}),
    "macID": ObfuscateMap({}),
    vc.KEY_ACCOUNTID: OBFUSCATE_ACCOUNT_ID_MAP,
    vc.HEADER_ACCOUNTID: OBFUSCATE_ACCOUNT_ID_MAP,
    vc.KEY_TOKEN: OBFUSCATE_TOKEN_MAP,
    vc.HEADER_TK: OBFUSCATE_TOKEN_MAP,
    vc.KEY_EMAIL: ObfuscateMap({}),
    vc.KEY_PASSWORD: OBFUSCATE_NO_MAP,
    vc.KEY_AUTHORIZECODE: OBFUSCATE_NO_MAP,
    vc.KEY_BIZTOKEN: OBFUSCATE_NO_MAP,
    vc.KEY_TERMINALID: ObfuscateMap({}),
    #
    # configuration keys
    vbc.CONF_USERNAME: ObfuscateMap({}),
    vbc.CONF_PASSWORD: OBFUSCATE_NO_MAP,
}


def obfuscated_list(data: list):
    """
    List obfuscation: recursevely invokes dict/list obfuscation on the list items.
    Simple objects are not obfuscated.
    """
    return [
        obfuscated_dict(value)
        if isinstance(value, dict)
        else obfuscated_list(value)
        if isinstance(value, list)
        else value
        for value in data
    ]


def obfuscated_dict(data: typing.Mapping[str, typing.Any]) -> dict[str, typing.Any]:
    """Dictionary obfuscation based on the set keys defined in OBFUSCATE_KEYS."""
    return {
        key: obfuscated_dict(value)
        if isinstance(value, dict)
        else obfuscated_list(value)
        if isinstance(value, list)
        else OBFUSCATE_KEYS[key].obfuscate(value)
        if key in OBFUSCATE_KEYS
        else value
        for key, value in data.items()
    }


def obfuscated_any(value):
    """
    Generalized type-variant obfuscation. Raw (text) api responses
    are decoded when possible so that the usual keys get obfuscated.
    Other simple objects are redacted.
    """
    if isinstance(value, str):
        try:
            value = json_loads(value)
        except ValueError:
            return OBFUSCATE_NO_MAP.obfuscate(value)
    return (
        obfuscated_dict(value)
        if isinstance(value, dict)
        else obfuscated_list(value)
        if isinstance(value, list)
        else OBFUSCATE_NO_MAP.obfuscate(value)
    )
