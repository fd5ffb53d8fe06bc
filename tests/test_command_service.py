"""
Tests for interactive command execution on pooled sessions
"""

from unittest.mock import AsyncMock, patch

import pytest

from olt_access.common.exceptions import InvalidInputError, PoolExhaustedError
from olt_access.common.validation import TRUNCATION_MARKER
from olt_access.monitoring.connection_pool import TelnetConnectionPool
from olt_access.protocols.telnet_client import SessionState
from olt_access.services.command_service import CommandService


@pytest.fixture
def service(pool, test_settings):
    return CommandService(pool, test_settings)


class TestExecute:
    """Single-command mode"""

    @pytest.mark.asyncio
    async def test_success_returns_output_and_releases(self, service, pool, connection_factory, credentials):
        connection_factory.responses = {'show version': 'BDCOM P3310D'}

        result = await service.execute(credentials, 'show version')

        assert result.success
        assert result.output == 'BDCOM P3310D'
        assert result.error is None
        assert result.execution_time >= 0
        assert pool.get_stats()['activeConnections'] == 0
        assert connection_factory.created[0].state == SessionState.READY

    @pytest.mark.asyncio
    async def test_reuses_session_for_same_credentials(self, service, connection_factory, credentials):
        await service.execute(credentials, 'show version')
        await service.execute(credentials, 'show clock')

        assert len(connection_factory.created) == 1
        assert connection_factory.created[0].commands == ['show version', 'show clock']

    @pytest.mark.asyncio
    async def test_control_characters_are_removed_before_sending(self, service, connection_factory, credentials):
        await service.execute(credentials, 'show\x00 ver\x07sion')

        assert connection_factory.created[0].commands == ['show version']

    @pytest.mark.asyncio
    async def test_empty_command_fails_before_acquire(self, service, connection_factory, credentials):
        with pytest.raises(InvalidInputError):
            await service.execute(credentials, '   ')

        assert connection_factory.calls == []

    @pytest.mark.asyncio
    async def test_enable_runs_when_requested(self, service, connection_factory, credentials):
        connection_factory.responses = {'enable': ''}

        result = await service.execute(credentials, 'show epon active-onu', enable=True)

        assert result.success
        assert connection_factory.created[0].commands == ['enable', 'show epon active-onu']

    @pytest.mark.asyncio
    async def test_enable_skipped_when_already_privileged(self, service, connection_factory, credentials):
        await service.execute(credentials, 'show clock', enable=True)
        await service.execute(credentials, 'show version', enable=True)

        assert connection_factory.created[0].commands == ['enable', 'show clock', 'show version']

    @pytest.mark.asyncio
    async def test_enable_failure_is_tolerated(self, service, connection_factory, credentials, timeout_error):
        connection_factory.responses = {'enable': timeout_error, 'show version': 'ok'}

        result = await service.execute(credentials, 'show version', enable=True)

        assert result.success
        assert result.output == 'ok'

    @pytest.mark.asyncio
    async def test_timeout_becomes_failed_result_and_discards_session(
            self, service, pool, connection_factory, credentials, timeout_error):
        connection_factory.responses = {'show version': timeout_error}

        result = await service.execute(credentials, 'show version')

        assert not result.success
        assert result.output == ''
        assert 'within 1.0s' in result.error
        assert connection_factory.created[0].closed
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_timeout_releases_session_when_discard_disabled(
            self, pool, connection_factory, credentials, timeout_error, test_settings):
        settings = test_settings.model_copy(update={'telnet_discard_on_timeout': False})
        service = CommandService(pool, settings)
        connection_factory.responses = {'show version': timeout_error}

        result = await service.execute(credentials, 'show version')

        assert not result.success
        assert len(pool) == 1
        assert pool.get_stats()['idleConnections'] == 1

    @pytest.mark.asyncio
    async def test_long_output_is_truncated(self, service, connection_factory, credentials):
        connection_factory.responses = {'show running-config': 'x' * 20000}

        result = await service.execute(credentials, 'show running-config')

        assert result.truncated
        assert result.output == 'x' * 10240 + TRUNCATION_MARKER

    @pytest.mark.asyncio
    async def test_pool_exhaustion_propagates(self, connection_factory, credentials, test_settings):
        pool = TelnetConnectionPool(max_connections=1, acquire_timeout=0.05,
                                    connection_factory=connection_factory)
        await pool.acquire("10.0.0.9", "admin", "secret")
        service = CommandService(pool, test_settings)

        with pytest.raises(PoolExhaustedError):
            await service.execute(credentials, 'show version')


class TestSettleDelay:
    """Pause after the prompt before output is returned"""

    SLEEP = 'olt_access.services.command_service.asyncio.sleep'

    @pytest.mark.asyncio
    async def test_configured_delay_runs_after_prompt(self, pool, connection_factory, credentials, test_settings):
        service = CommandService(pool, test_settings.model_copy(update={'telnet_settle_delay': 0.3}))
        events = []
        connection_factory.responses = {
            'show epon onu-ddm epon0/8:15': lambda command: events.append('prompt') or 'RX power : -20.54 dBm'
        }
        await service.execute(credentials, 'show version', settle_delay=0)

        with patch(self.SLEEP, new_callable=AsyncMock) as sleep:
            sleep.side_effect = lambda delay: events.append(('sleep', delay))
            result = await service.execute(credentials, 'show epon onu-ddm epon0/8:15')

        assert result.success
        assert result.output == 'RX power : -20.54 dBm'
        sleep.assert_awaited_once_with(0.3)
        assert events == ['prompt', ('sleep', 0.3)]

    @pytest.mark.asyncio
    async def test_per_call_delay_overrides_settings(self, service, credentials):
        await service.execute(credentials, 'show version')

        with patch(self.SLEEP, new_callable=AsyncMock) as sleep:
            await service.execute(credentials, 'show clock', settle_delay=0.5)

        sleep.assert_awaited_once_with(0.5)

    @pytest.mark.asyncio
    async def test_zero_delay_skips_sleep(self, pool, credentials, test_settings):
        service = CommandService(pool, test_settings.model_copy(update={'telnet_settle_delay': 0.3}))
        await service.execute(credentials, 'show version', settle_delay=0)

        with patch(self.SLEEP, new_callable=AsyncMock) as sleep:
            result = await service.execute(credentials, 'show clock', settle_delay=0)

        assert result.success
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_delay_after_timeout(self, service, connection_factory, credentials, timeout_error):
        connection_factory.responses = {'show slow': timeout_error}
        await service.execute(credentials, 'show version')

        with patch(self.SLEEP, new_callable=AsyncMock) as sleep:
            result = await service.execute(credentials, 'show slow', settle_delay=0.5)

        assert not result.success
        sleep.assert_not_awaited()


class TestExecuteMany:
    """Multi-command mode"""

    @pytest.mark.asyncio
    async def test_runs_all_commands_on_one_session(self, service, connection_factory, credentials):
        result = await service.execute_many(credentials, ['config', 'interface ePON 0/8:15', 'exit'])

        assert result.success
        assert len(result.results) == 3
        assert len(connection_factory.created) == 1
        assert result.outputs[1] == 'output of interface ePON 0/8:15'

    @pytest.mark.asyncio
    async def test_stops_at_first_failure(self, service, pool, connection_factory, credentials, timeout_error):
        connection_factory.responses = {'interface ePON 0/8:15': timeout_error}

        result = await service.execute_many(credentials, ['config', 'interface ePON 0/8:15', 'exit'])

        assert not result.success
        assert len(result.results) == 2
        assert result.failed.command == 'interface ePON 0/8:15'
        assert 'exit' not in connection_factory.created[0].commands
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_invalid_command_rejects_whole_batch(self, service, connection_factory, credentials):
        with pytest.raises(InvalidInputError):
            await service.execute_many(credentials, ['config', ''])

        assert connection_factory.calls == []


class TestConnectionTest:

    @pytest.mark.asyncio
    async def test_reports_true_on_success(self, service, credentials):
        assert await service.test_connection(credentials) is True

    @pytest.mark.asyncio
    async def test_reports_false_on_connect_failure(self, service, connection_factory, credentials):
        connection_factory.error = ConnectionRefusedError("refused")

        assert await service.test_connection(credentials) is False
