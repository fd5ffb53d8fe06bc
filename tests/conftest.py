"""
Shared fixtures: settings, scripted telnet sessions and SNMP value helpers
"""

import asyncio
from typing import Callable, Dict, List, Optional, Union
from unittest.mock import AsyncMock, Mock

import pytest
import pytest_asyncio

from olt_access.common.exceptions import CommandTimeoutError
from olt_access.common.result_objects import SnmpVarbind
from olt_access.common.validation import TelnetCredentials
from olt_access.config import Settings
from olt_access.monitoring.connection_pool import TelnetConnectionPool
from olt_access.protocols.telnet_client import SessionState

Response = Union[str, Exception, Callable[[str], str]]


class FakeConnection:
    """Stands in for TelnetConnection; answers commands from a script"""

    def __init__(self, host: str, responses: Optional[Dict[str, Response]] = None,
                 privileged: bool = False):
        self.host = host
        self.responses = responses or {}
        self.privileged = privileged
        self.state = SessionState.READY
        self.is_alive = True
        self.closed = False
        self.commands: List[str] = []

    async def execute(self, command: str, prompt, timeout: float) -> str:
        self.commands.append(command)
        response = self.responses.get(command.strip(), f"output of {command.strip()}")
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(command)
        if command.strip() == 'enable':
            self.privileged = True
        return response

    async def close(self):
        self.closed = True
        self.is_alive = False


class FakeConnectionFactory:
    """Connection factory for TelnetConnectionPool recording every connect"""

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses = responses or {}
        self.created: List[FakeConnection] = []
        self.calls = []
        self.error: Optional[Exception] = None

    async def __call__(self, host, username, password, params):
        self.calls.append((host, username, password, params))
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        connection = FakeConnection(host, dict(self.responses))
        self.created.append(connection)
        return connection


@pytest.fixture
def test_settings():
    """Settings with short timeouts and no settle delay"""
    return Settings(
        environment="testing",
        telnet_timeout=1.0,
        telnet_enable_timeout=0.5,
        telnet_acquire_timeout=0.2,
        telnet_max_connections=3,
        telnet_idle_timeout=60.0,
        telnet_settle_delay=0.0,
        discovery_ifindex_ranges="10-30",
        discovery_probe_batch_size=10,
    )


@pytest.fixture
def connection_factory():
    return FakeConnectionFactory()


@pytest_asyncio.fixture
async def pool(connection_factory):
    pool = TelnetConnectionPool(
        max_connections=3,
        idle_timeout=60.0,
        acquire_timeout=0.2,
        connection_factory=connection_factory
    )
    yield pool
    await pool.close_all()


@pytest.fixture
def credentials():
    return TelnetCredentials(host="10.0.0.1", username="admin", password="secret")


@pytest.fixture
def timeout_error():
    return CommandTimeoutError(
        "Prompt not observed from 10.0.0.1 within 1.0s",
        operation="read_until", timeout_value=1.0, device_ip="10.0.0.1"
    )


@pytest.fixture
def make_varbind():
    def factory(oid: str, value, type_name: str = "Integer", raw: bytes = None) -> SnmpVarbind:
        return SnmpVarbind(oid=oid, type=type_name, value=value, raw=raw)
    return factory


@pytest.fixture
def mock_snmp_client():
    """SNMPClient double with awaitable operations"""
    client = Mock()
    client.get = AsyncMock()
    client.get_multiple = AsyncMock(return_value=[])
    client.walk = AsyncMock(return_value=[])
    return client
