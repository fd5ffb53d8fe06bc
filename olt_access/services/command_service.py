"""
Interactive command execution over pooled telnet sessions
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import List, Optional

from ..common.exceptions import CommandTimeoutError, DeviceConnectionError
from ..common.metrics import telnet_command_duration_seconds, telnet_commands_total
from ..common.result_objects import CommandResult, MultiCommandResult
from ..common.validation import TelnetCredentials, truncate_output, validate_command
from ..config import Settings, settings as default_settings
from ..monitoring.connection_pool import TelnetConnectionPool
from ..protocols.telnet_client import SessionState, TelnetConnectParams

logger = logging.getLogger(__name__)

# Accept both user (>) and privileged (#) prompts after a command
COMMAND_PROMPT = r"[>#]\s*$"


@dataclass(frozen=True)
class CommandRequest:
    """One interactive command to run against a device"""
    credentials: TelnetCredentials
    command: str
    timeout: Optional[float] = None
    enable: bool = False
    settle_delay: Optional[float] = None


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


class CommandService:
    """Drives login, optional enable and command execution on pooled sessions.

    Session acquisition failures (pool exhausted, connect or login failure)
    propagate to the caller. Once a session is held, timeouts and transport
    errors become a failed CommandResult and the session always goes back to
    the pool, or is discarded after a timeout when discard_on_timeout is set.
    """

    def __init__(self, pool: TelnetConnectionPool, settings: Optional[Settings] = None):
        self.pool = pool
        self.settings = settings or default_settings
        self.command_timeout = self.settings.telnet_timeout
        self.enable_timeout = self.settings.telnet_enable_timeout
        self.enable_prompt = self.settings.telnet_enable_prompt
        self.max_output_bytes = self.settings.telnet_max_output_bytes
        self.settle_delay = self.settings.telnet_settle_delay
        self.discard_on_timeout = self.settings.telnet_discard_on_timeout

    def connect_params(self, credentials: TelnetCredentials) -> TelnetConnectParams:
        return TelnetConnectParams.from_settings(self.settings, port=credentials.port)

    async def execute(self, credentials: TelnetCredentials, command: str, timeout: Optional[float] = None,
                      enable: bool = False, settle_delay: Optional[float] = None) -> CommandResult:
        """Single-command mode: acquire, run one command, release"""
        return await self.execute_request(CommandRequest(
            credentials=credentials, command=command, timeout=timeout,
            enable=enable, settle_delay=settle_delay
        ))

    async def execute_request(self, request: CommandRequest) -> CommandResult:
        command = validate_command(request.command)
        credentials = request.credentials
        start = time.time()

        logger.debug(f"Executing telnet command on {credentials.host}: {command.strip()}")
        connection = await self.pool.acquire(
            credentials.host, credentials.username, credentials.password,
            self.connect_params(credentials)
        )

        discard = False
        try:
            if request.enable:
                await self._enable(connection)
            result = await self._run(connection, command, request.timeout, request.settle_delay, start)
            discard = not result.success and self.discard_on_timeout
            return result
        finally:
            await self._hand_back(connection, discard)

    async def execute_many(self, credentials: TelnetCredentials, commands: List[str],
                           timeout: Optional[float] = None, enable: bool = False) -> MultiCommandResult:
        """Multi-command mode: one session, sequential, stop at the first failure"""
        validated = [validate_command(command) for command in commands]
        start = time.time()

        logger.debug(f"Executing {len(validated)} commands on {credentials.host} using single connection")
        connection = await self.pool.acquire(
            credentials.host, credentials.username, credentials.password,
            self.connect_params(credentials)
        )

        results: List[CommandResult] = []
        discard = False
        try:
            if enable:
                await self._enable(connection)
            for command in validated:
                result = await self._run(connection, command, timeout, None, time.time())
                results.append(result)
                if not result.success:
                    logger.warning(f"Stopping command batch on {credentials.host} at '{command.strip()}': {result.error}")
                    discard = self.discard_on_timeout
                    break
            return MultiCommandResult(results=results, execution_time=_elapsed_ms(start))
        finally:
            await self._hand_back(connection, discard)

    async def test_connection(self, credentials: TelnetCredentials) -> bool:
        try:
            result = await self.execute(credentials, 'show version', timeout=5.0)
            return result.success
        except Exception as e:
            logger.error(f"Connection test failed for {credentials.host}: {e}")
            return False

    async def _enable(self, connection):
        """Enter privileged mode; failure is tolerated"""
        if getattr(connection, 'privileged', False):
            return
        connection.state = SessionState.ENABLING
        enable_start = time.time()
        try:
            await connection.execute('enable', self.enable_prompt, self.enable_timeout)
            logger.debug(f"Enable mode activated (#) in {_elapsed_ms(enable_start)}ms")
        except (CommandTimeoutError, DeviceConnectionError) as e:
            logger.warning(f"Enable command failed: {e}")
        finally:
            connection.state = SessionState.READY

    async def _run(self, connection, command: str, timeout: Optional[float],
                   settle_delay: Optional[float], start: float) -> CommandResult:
        timeout = timeout or self.command_timeout
        delay = self.settle_delay if settle_delay is None else settle_delay

        connection.state = SessionState.EXECUTING
        try:
            output = await connection.execute(command, COMMAND_PROMPT, timeout)
            if delay > 0:
                await asyncio.sleep(delay)
        except (CommandTimeoutError, DeviceConnectionError) as e:
            execution_time = _elapsed_ms(start)
            telnet_commands_total.labels(status='failed').inc()
            logger.error(f"Telnet command failed on {connection.host}: {e}")
            return CommandResult(
                command=command, success=False, output='',
                execution_time=execution_time, error=str(e)
            )
        finally:
            if connection.state == SessionState.EXECUTING:
                connection.state = SessionState.READY

        output, truncated = truncate_output(output, self.max_output_bytes)
        execution_time = _elapsed_ms(start)
        telnet_commands_total.labels(status='success').inc()
        telnet_command_duration_seconds.observe(execution_time / 1000)
        logger.debug(f"Command executed in {execution_time}ms on {connection.host}, output length: {len(output)} chars")
        return CommandResult(
            command=command, success=True, output=output,
            execution_time=execution_time, truncated=truncated
        )

    async def _hand_back(self, connection, discard: bool):
        if discard:
            await self.pool.discard(connection)
        else:
            self.pool.release(connection)
