import asyncio
from dataclasses import dataclass
from hashlib import md5
import logging
from time import time
import typing

import aiohttp
from yarl import URL

from . import (
    CLOUDAPI_ERROR_MAP,
    AuthError,
    CloudApiError,
    SessionExpired,
    TransportError,
    const as vc,
    generate_trace_id,
    get_region_from_country,
    json_dumps,
    json_loads,
)

# default token lifetime when the server doesn't tell
TOKEN_LIFETIME_DEFAULT = 3600
# timeout for a single api request
REQUEST_TIMEOUT = 10


@dataclass(frozen=True)
class Session:
    """
    An authenticated VeSync cloud session. Instances are only built
    from a successful token exchange and replaced as a whole on re-login.
    """

    __slots__ = (
        "token",
        "account_id",
        "region",
        "country_code",
        "language",
        "time_zone",
        "expires_at",
    )
    token: str
    account_id: str
    region: str
    country_code: str
    language: str
    time_zone: str
    expires_at: float

    @property
    def expired(self) -> bool:
        return time() >= self.expires_at


def build_data_body(session: Session, method: str) -> dict:
    """Common body for any authenticated call."""
    return {
        vc.KEY_METHOD: method,
        vc.KEY_ACCEPTLANGUAGE: session.language,
        vc.KEY_ACCOUNTID: session.account_id,
        vc.KEY_APPVERSION: vc.APP_VERSION,
        vc.KEY_PHONEBRAND: vc.PHONE_BRAND,
        vc.KEY_PHONEOS: vc.PHONE_OS,
        vc.KEY_TIMEZONE: session.time_zone,
        vc.KEY_TOKEN: session.token,
        vc.KEY_TRACEID: generate_trace_id(),
        vc.KEY_USERCOUNTRYCODE: session.country_code,
    }


def build_data_headers(session: Session) -> dict[str, str]:
    return {
        vc.HEADER_TK: session.token,
        vc.HEADER_ACCOUNTID: session.account_id,
        vc.HEADER_TZ: session.time_zone,
        vc.HEADER_APPVERSION: vc.APP_VERSION,
    }


def _obfuscate_nothing(value: typing.Any) -> typing.Any:
    """placeholder obfuscation function: pass along to logger with no obfuscation"""
    return value


_obfuscate_function_type = typing.Callable[[typing.Any], typing.Any]


def hash_password(password: str) -> str:
    return md5(password.encode("utf-8")).hexdigest()


async def async_cloudapi_post(
    url: "str | URL",
    data: dict,
    *,
    headers: dict[str, str] | None = None,
    raise_on_error: bool = True,
    session: aiohttp.ClientSession | None = None,
    logger: logging.Logger | None = None,
    obfuscate_func: _obfuscate_function_type = _obfuscate_nothing,
) -> dict:
    """
    Low-level VeSync cloud api query. Returns the json response (a dict).
    When raise_on_error is set any response 'code' != 0 raises the mapped
    CloudApiError. Transport level failures are always raised as TransportError
    while an HTTP 401 is raised as SessionExpired.
    """
    if logger:
        logger.log(
            logging.DEBUG,
            "async_cloudapi_post:REQUEST url:%s data:%s headers:%s",
            url,
            obfuscate_func(data),
            obfuscate_func(headers or {}),
        )
    try:
        async with asyncio.timeout(REQUEST_TIMEOUT):
            http_response = await (session or aiohttp.ClientSession()).post(
                url=url,
                data=json_dumps(data),
                headers={
                    aiohttp.hdrs.CONTENT_TYPE: "application/json",
                    aiohttp.hdrs.USER_AGENT: vc.USER_AGENT,
                    **(headers or {}),
                },
            )
            if http_response.status == 401:
                text_response = await http_response.text()
                raise SessionExpired(
                    {vc.KEY_CODE: 401, vc.KEY_MSG: text_response}, "HTTP 401"
                )
            http_response.raise_for_status()
            text_response = await http_response.text()
    except (aiohttp.ClientError, TimeoutError) as exception:
        if logger:
            logger.log(
                logging.DEBUG,
                "async_cloudapi_post:EXCEPTION %s(%s)",
                exception.__class__.__name__,
                str(exception),
            )
        raise TransportError(None, f"{exception.__class__.__name__}({exception})") from exception

    if logger:
        logger.log(
            logging.DEBUG,
            "async_cloudapi_post:RECEIVE url:%s response:%s",
            url,
            obfuscate_func(text_response),
        )
    try:
        json_response = json_loads(text_response)
    except ValueError as exception:
        raise TransportError(text_response, "HTTP response is not json") from exception
    if not isinstance(json_response, dict):
        raise TransportError(json_response, "HTTP response is not a json dictionary")

    if raise_on_error and json_response.get(vc.KEY_CODE):
        raise CLOUDAPI_ERROR_MAP.get(json_response.get(vc.KEY_CODE), CloudApiError)(
            json_response
        )
    return json_response


class CloudApiClient:
    """
    Object-like interface to ease mantaining cloud api connection parameters.
    The login protocol state (which region to try, retries) is managed by
    the caller (see vesync_bridge.session.SessionManager) since this
    class only knows how to build and send the single requests.
    """

    def __init__(
        self,
        *,
        terminal_id: str,
        country_code: str = "US",
        language: str = "en",
        time_zone: str = "America/New_York",
        hosts: dict[str, str] | None = None,
        session: aiohttp.ClientSession | None = None,
        logger: logging.Logger | None = None,
        obfuscate_func: _obfuscate_function_type = _obfuscate_nothing,
    ) -> None:
        self.terminal_id = terminal_id
        self.country_code = country_code
        self.language = language
        self.time_zone = time_zone
        self.hosts = hosts or vc.API_URL_MAP
        self._cloudapi_session = session or aiohttp.ClientSession()
        self._cloudapi_logger = logger
        self._cloudapi_obfuscate_func = obfuscate_func

    def get_url(self, region: str, path: str) -> URL:
        return URL(self.hosts[region]).with_path(path)

    async def async_close(self):
        await self._cloudapi_session.close()

    async def _async_post(
        self,
        url: URL,
        data: dict,
        headers: dict[str, str] | None = None,
        raise_on_error: bool = True,
    ):
        return await async_cloudapi_post(
            url,
            data,
            headers=headers,
            raise_on_error=raise_on_error,
            session=self._cloudapi_session,
            logger=self._cloudapi_logger,
            obfuscate_func=self._cloudapi_obfuscate_func,
        )

    def _build_login_body(self, method: str) -> dict:
        return {
            vc.KEY_METHOD: method,
            vc.KEY_ACCEPTLANGUAGE: self.language,
            vc.KEY_ACCOUNTID: "",
            vc.KEY_CLIENTINFO: vc.CLIENT_INFO,
            vc.KEY_CLIENTTYPE: vc.CLIENT_TYPE,
            vc.KEY_CLIENTVERSION: vc.APP_VERSION,
            vc.KEY_DEBUGMODE: False,
            vc.KEY_OSINFO: vc.PHONE_OS,
            vc.KEY_TERMINALID: self.terminal_id,
            vc.KEY_TIMEZONE: self.time_zone,
            vc.KEY_TOKEN: "",
            vc.KEY_TRACEID: generate_trace_id(),
            vc.KEY_USERCOUNTRYCODE: self.country_code,
        }

    async def async_authorize(
        self, email: str, password: str, region: str
    ) -> tuple[str, str]:
        """
        First login step: returns (authorizeCode, accountID).
        Raises AuthError on any api failure.
        """
        data = self._build_login_body(vc.METHOD_AUTH)
        data |= {
            vc.KEY_EMAIL: email,
            vc.KEY_PASSWORD: hash_password(password),
            vc.KEY_AUTHPROTOCOLTYPE: vc.AUTH_PROTOCOL_TYPE,
            vc.KEY_APPID: vc.APP_ID,
            vc.KEY_SOURCEAPPID: vc.APP_ID,
        }
        response = await self._async_post(
            self.get_url(region, vc.API_AUTH_PATH), data, raise_on_error=False
        )
        if response.get(vc.KEY_CODE):
            raise AuthError(response)
        result = response.get(vc.KEY_RESULT)
        if not isinstance(result, dict):
            raise AuthError(response, "Missing 'result' in api response")
        # formal check since we want to deal with 'safe' data structures
        for _key in (vc.KEY_AUTHORIZECODE, vc.KEY_ACCOUNTID):
            _value = result.get(_key)
            if not _value:
                raise AuthError(response, f"Missing '{_key}' in api response")
        return str(result[vc.KEY_AUTHORIZECODE]), str(result[vc.KEY_ACCOUNTID])

    async def async_exchange(
        self,
        authorize_code: str,
        account_id: str,
        region: str,
        *,
        biz_token: str | None = None,
        country_code: str | None = None,
    ) -> dict:
        """
        Second login step: exchanges the authorizeCode (and the accountID
        received along with it) for a token.
        Returns the raw response so that the caller can inspect
        cross-region/region-conflict signals.
        """
        data = self._build_login_body(vc.METHOD_LOGIN)
        data |= {
            vc.KEY_ACCOUNTID: account_id,
            vc.KEY_AUTHORIZECODE: authorize_code,
            vc.KEY_EMAILSUBSCRIPTIONS: False,
        }
        if biz_token:
            data[vc.KEY_BIZTOKEN] = biz_token
            data[vc.KEY_REGIONCHANGE] = "lastRegion"
        if country_code:
            data[vc.KEY_USERCOUNTRYCODE] = country_code
        return await self._async_post(
            self.get_url(region, vc.API_LOGIN_PATH), data, raise_on_error=False
        )

    def build_session(self, response: dict, region: str) -> Session:
        """
        Builds the Session out of a successful exchange response.
        region is the one we targeted and is used as a fallback
        when the server doesn't report its own.
        """
        result = response.get(vc.KEY_RESULT)
        if not isinstance(result, dict):
            raise AuthError(response, "Missing 'result' in api response")
        for _key in (vc.KEY_TOKEN, vc.KEY_ACCOUNTID):
            _value = result.get(_key)
            if not _value:
                raise AuthError(response, f"Missing '{_key}' in api response")
        country_code = result.get(vc.KEY_COUNTRYCODE) or self.country_code
        current_region = result.get(vc.KEY_CURRENTREGION)
        if current_region not in vc.REGIONS:
            current_region = get_region_from_country(country_code) if country_code else region
        try:
            expires_in = int(result.get(vc.KEY_EXPIRESIN) or TOKEN_LIFETIME_DEFAULT)
        except (TypeError, ValueError):
            expires_in = TOKEN_LIFETIME_DEFAULT
        return Session(
            token=str(result[vc.KEY_TOKEN]),
            account_id=str(result[vc.KEY_ACCOUNTID]),
            region=current_region,
            country_code=country_code,
            language=self.language,
            time_zone=self.time_zone,
            expires_at=time() + expires_in,
        )

    async def async_device_list(self, session: Session) -> list[dict]:
        """
        returns the device list of all the account-bound devices
        """
        data = build_data_body(session, vc.METHOD_DEVICES)
        data |= {vc.KEY_PAGENO: 1, vc.KEY_PAGESIZE: 100}
        response = await self._async_post(
            self.get_url(session.region, vc.API_DEVICES_PATH),
            data,
            build_data_headers(session),
        )
        result = response.get(vc.KEY_RESULT)
        if isinstance(result, dict) and isinstance(result.get(vc.KEY_LIST), list):
            return result[vc.KEY_LIST]
        return []

    async def async_bypass(self, session: Session, path: str, body: dict) -> dict:
        """
        Posts a bypass/bypassV2 request (as built by vesyncclient.devices)
        and returns the full response. Device level errors are carried
        in the inner 'result' and raised as the outer ones.
        """
        response = await self._async_post(
            self.get_url(session.region, path),
            body,
            build_data_headers(session),
        )
        result = response.get(vc.KEY_RESULT)
        if isinstance(result, dict) and result.get(vc.KEY_CODE):
            raise CLOUDAPI_ERROR_MAP.get(result[vc.KEY_CODE], CloudApiError)(result)
        return response
