"""
Asyncio telnet client for line-mode OLT command line interfaces
"""

import asyncio
import codecs
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Pattern, Tuple, Union

from ..common.exceptions import CommandTimeoutError, DeviceConnectionError

logger = logging.getLogger(__name__)

# Telnet IAC
IAC = 0xFF
DONT = 0xFE
DO = 0xFD
WONT = 0xFC
WILL = 0xFB
SB = 0xFA
SE = 0xF0

READ_CHUNK = 4096

ANSI_ESCAPE_RE = re.compile(r"\x1b\[[0-9;?]*[a-zA-Z]|\x1b\][^\x07]*\x07")
# NUL, BEL, backspace and friends emitted while the pager redraws the line
TERMINAL_NOISE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]")

PatternLike = Union[str, Pattern]


class SessionState(Enum):
    """Interactive session lifecycle"""
    DISCONNECTED = "disconnected"
    LOGGING_IN = "logging_in"
    ENABLING = "enabling"
    READY = "ready"
    EXECUTING = "executing"


@dataclass
class TelnetConnectParams:
    """Per-phase timeouts and prompt patterns used to open and drive a session"""

    port: int = 23
    connect_timeout: float = 5.0
    login_timeout: float = 5.0
    login_prompt: str = r"(?i)(username|login)\s*:\s*$"
    password_prompt: str = r"(?i)password\s*:\s*$"
    shell_prompt: str = r"[A-Za-z0-9_.\-]+[>#]\s*$"
    pager_pattern: str = r"-+\s*[Mm]ore\s*-+"
    ors: str = "\r"

    @classmethod
    def from_settings(cls, settings, port: Optional[int] = None) -> "TelnetConnectParams":
        return cls(
            port=port or settings.telnet_port,
            connect_timeout=settings.telnet_connect_timeout,
            login_timeout=settings.telnet_login_timeout,
            login_prompt=settings.telnet_login_prompt,
            password_prompt=settings.telnet_password_prompt,
            shell_prompt=settings.telnet_shell_prompt,
            pager_pattern=settings.telnet_pager_pattern,
        )


def _compile(pattern: PatternLike) -> Pattern:
    return pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)


class TelnetConnection:
    """One authenticated telnet session to a device.

    The transport callbacks of a classic telnet client are expressed as awaitable
    phases: ``connect`` (TCP + login), ``expect``/``read_until`` (prompt wait) and
    ``execute`` (send + wait). Every phase takes its own timeout.
    """

    def __init__(self, host: str, params: Optional[TelnetConnectParams] = None,
                 reader: Optional[asyncio.StreamReader] = None,
                 writer: Optional[asyncio.StreamWriter] = None):
        self.host = host
        self.params = params or TelnetConnectParams()
        self.state = SessionState.DISCONNECTED
        self.privileged = False
        self._reader = reader
        self._writer = writer
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        # Incomplete IAC sequence held back until the next chunk
        self._iac_pending = b""
        self._pager = re.compile(self.params.pager_pattern)
        self._closed = False

    @classmethod
    async def open(cls, host: str, username: str, password: str,
                   params: Optional[TelnetConnectParams] = None) -> "TelnetConnection":
        """Connect and log in, returning a ready session"""
        connection = cls(host, params)
        await connection.connect(username, password)
        return connection

    @property
    def is_alive(self) -> bool:
        if self._closed or self._reader is None or self._writer is None:
            return False
        return not self._reader.at_eof() and not self._writer.is_closing()

    async def connect(self, username: str, password: str):
        """Open the TCP stream (unless one was supplied) and run the login phase"""
        if self._reader is None or self._writer is None:
            try:
                self._reader, self._writer = await asyncio.wait_for(
                    asyncio.open_connection(self.host, self.params.port),
                    timeout=self.params.connect_timeout
                )
            except asyncio.TimeoutError:
                raise DeviceConnectionError(
                    f"Connection to {self.host}:{self.params.port} timed out after {self.params.connect_timeout}s",
                    device_ip=self.host, port=self.params.port
                )
            except OSError as e:
                raise DeviceConnectionError(
                    f"Connection to {self.host}:{self.params.port} failed: {e}",
                    device_ip=self.host, port=self.params.port
                )
        logger.debug(f"TCP connection to {self.host}:{self.params.port} established")

        try:
            await self.login(username, password)
        except Exception:
            await self.close()
            raise

    async def login(self, username: str, password: str):
        """Drive the username/password dialogue until a shell prompt appears"""
        self.state = SessionState.LOGGING_IN
        timeout = self.params.login_timeout
        login_prompt = _compile(self.params.login_prompt)
        password_prompt = _compile(self.params.password_prompt)
        shell_prompt = _compile(self.params.shell_prompt)

        try:
            index, _ = await self.expect([login_prompt, password_prompt, shell_prompt], timeout)
            if index == 0:
                await self.send_line(username)
                index, _ = await self.expect([password_prompt, shell_prompt], timeout)
                # Some devices skip the password step
                index = 2 if index == 1 else 1

            if index == 1:
                await self.send_line(password)
                index, _ = await self.expect([shell_prompt, login_prompt, password_prompt], timeout)
                if index != 0:
                    raise DeviceConnectionError(
                        f"Authentication failed for {username}@{self.host}",
                        device_ip=self.host, port=self.params.port
                    )
        except CommandTimeoutError as e:
            raise DeviceConnectionError(
                f"Login to {self.host} timed out after {timeout}s",
                device_ip=self.host, port=self.params.port,
                details={'buffer_tail': e.details.get('buffer_tail', '')}
            )

        self.state = SessionState.READY
        logger.debug(f"Logged in to {self.host} as {username} (privileged={self.privileged})")

    async def send_line(self, text: str):
        await self.write(text.strip() + self.params.ors)

    async def write(self, text: str):
        if not self.is_alive:
            raise DeviceConnectionError(f"Session to {self.host} is closed", device_ip=self.host)
        self._writer.write(text.encode("utf-8"))
        try:
            await self._writer.drain()
        except (ConnectionError, OSError) as e:
            raise DeviceConnectionError(f"Write to {self.host} failed: {e}", device_ip=self.host)

    async def read_until(self, pattern: PatternLike, timeout: float) -> str:
        _, text = await self.expect([pattern], timeout)
        return text

    async def expect(self, patterns: List[PatternLike], timeout: float) -> Tuple[int, str]:
        """Read until one of the patterns matches the end of the received text.

        Returns the index of the matching pattern and everything consumed up to
        and including the match. Pager markers are answered with a space and
        removed from the text.
        """
        compiled = [_compile(p) for p in patterns]
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            for index, regex in enumerate(compiled):
                match = regex.search(self._buffer)
                if match:
                    text = self._buffer[:match.end()]
                    self._buffer = self._buffer[match.end():]
                    self._track_prompt(text)
                    return index, text

            remaining = deadline - loop.time()
            if remaining <= 0:
                raise CommandTimeoutError(
                    f"Prompt not observed from {self.host} within {timeout}s",
                    operation="read_until", timeout_value=timeout, device_ip=self.host,
                    details={'buffer_tail': self._buffer[-200:]}
                )

            try:
                chunk = await asyncio.wait_for(self._reader.read(READ_CHUNK), timeout=remaining)
            except asyncio.TimeoutError:
                continue
            except (ConnectionError, OSError) as e:
                raise DeviceConnectionError(f"Read from {self.host} failed: {e}", device_ip=self.host)
            if not chunk:
                self._closed = True
                self.state = SessionState.DISCONNECTED
                raise DeviceConnectionError(
                    f"Connection closed by {self.host}", device_ip=self.host, port=self.params.port
                )
            await self._feed(chunk)

    async def execute(self, command: str, prompt: PatternLike, timeout: float) -> str:
        """Send a command and return its output without the echo and trailing prompt"""
        # Drop anything left over from earlier output
        self._buffer = ""
        await self.send_line(command)
        raw = await self.read_until(prompt, timeout)
        return self.clean_output(command, raw)

    def clean_output(self, command: str, raw: str) -> str:
        lines = raw.split("\n")

        start = 0
        while start < len(lines) and not lines[start].strip():
            start += 1
        if start < len(lines) and command.strip() and command.strip() in lines[start]:
            start += 1

        # Trailing prompt line
        end = len(lines)
        if end > start:
            end -= 1

        return "\n".join(lines[start:end]).strip("\n")

    async def close(self):
        if self._closed and self._writer is None:
            return
        self._closed = True
        self.state = SessionState.DISCONNECTED
        writer, self._writer = self._writer, None
        if writer is None:
            return
        try:
            writer.close()
            await writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error closing telnet session to {self.host}: {e}")
        logger.debug(f"Closed telnet session to {self.host}")

    async def _feed(self, chunk: bytes):
        data = await self._process_iac(chunk)
        text = self._decoder.decode(data)
        text = ANSI_ESCAPE_RE.sub("", text)
        text = text.replace("\r", "")
        text = TERMINAL_NOISE_RE.sub("", text)
        self._buffer += text

        match = self._pager.search(self._buffer)
        while match:
            self._buffer = self._buffer[:match.start()] + self._buffer[match.end():]
            await self.write(" ")
            match = self._pager.search(self._buffer)

    async def _process_iac(self, data: bytes) -> bytes:
        """Strip IAC sequences, refusing every option the peer offers or requests"""
        data = self._iac_pending + data
        self._iac_pending = b""
        result = bytearray()
        replies = bytearray()
        i = 0
        while i < len(data):
            b = data[i]
            if b != IAC:
                result.append(b)
                i += 1
                continue
            if i + 1 >= len(data):
                self._iac_pending = data[i:]
                break
            cmd = data[i + 1]
            if cmd in (WILL, WONT, DO, DONT):
                if i + 2 >= len(data):
                    self._iac_pending = data[i:]
                    break
                opt = data[i + 2]
                if cmd == DO:
                    replies += bytes([IAC, WONT, opt])
                elif cmd == WILL:
                    replies += bytes([IAC, DONT, opt])
                i += 3
            elif cmd == SB:
                end = data.find(bytes([IAC, SE]), i + 2)
                if end == -1:
                    self._iac_pending = data[i:]
                    break
                i = end + 2
            elif cmd == IAC:
                result.append(IAC)
                i += 2
            else:
                i += 2

        if replies and self._writer is not None and not self._writer.is_closing():
            self._writer.write(bytes(replies))
            await self._writer.drain()
        return bytes(result)

    def _track_prompt(self, text: str):
        tail = text.rstrip()
        if tail.endswith("#"):
            self.privileged = True
        elif tail.endswith(">"):
            self.privileged = False

    def __repr__(self) -> str:
        return f"TelnetConnection(host={self.host!r}, port={self.params.port}, state={self.state.value})"
