"""Global fixtures for vesync_bridge tests."""

# Fixtures that are defined in conftest.py are available across all tests. You can also
# define fixtures within a particular test file to scope them locally.
#
# See here for more info: https://docs.pytest.org/en/latest/fixture.html (note that
# pytest includes fixtures OOB which you can use as defined on this page)
import aiohttp
import pytest

from vesync_bridge.helpers import _Logger
from vesync_bridge.helpers.statetree import MemoryStateTree

from . import helpers


@pytest.fixture(autouse=True)
def reset_log_timeouts():
    """Log de-duplication is global: every test starts with a clean state"""
    _Logger._LOGGER_TIMEOUTS.clear()
    yield


@pytest.fixture()
async def http_session():
    async with aiohttp.ClientSession() as _http_session:
        yield _http_session


@pytest.fixture()
async def cloud():
    async with helpers.CloudEmulatorContext() as _cloud:
        yield _cloud


@pytest.fixture()
def store():
    return MemoryStateTree()


@pytest.fixture()
def config(tmp_path):
    return helpers.build_config(str(tmp_path))
