"""
Connection pool manager for interactive telnet sessions
"""

import asyncio
import hashlib
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional

from ..common.exceptions import PoolExhaustedError
from ..common.metrics import telnet_pool_connections, telnet_pool_events_total
from ..protocols.telnet_client import TelnetConnectParams, TelnetConnection

logger = logging.getLogger(__name__)

ConnectionFactory = Callable[[str, str, str, TelnetConnectParams], Awaitable[Any]]


@dataclass
class PooledSession:
    """Information about a pooled session"""
    key: str
    host: str
    connection: Any = None
    busy: bool = True
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    use_count: int = 0
    released: asyncio.Event = field(default_factory=asyncio.Event)

    def touch(self):
        """Update last used time"""
        self.last_used = time.monotonic()

    @property
    def idle_time(self) -> float:
        return time.monotonic() - self.last_used

    @property
    def is_alive(self) -> bool:
        return self.connection is not None and getattr(self.connection, "is_alive", True)


def make_session_key(host: str, username: str, password: str) -> str:
    """Identity key for a session; the password only appears as a digest"""
    password_hash = hashlib.sha256(password.encode("utf-8")).hexdigest()[:16]
    return f"{host}:{username}:{password_hash}"


class TelnetConnectionPool:
    """Keyed pool of live telnet sessions.

    One entry per identity key, never handed to two callers at once. The pool is
    an explicit object: construct it and ``close_all()`` at shutdown. The idle
    sweep runs from ``start()`` or, failing that, from the first ``acquire()``.
    """

    def __init__(
        self,
        max_connections: int = 10,
        idle_timeout: float = 60.0,
        sweep_interval: float = 30.0,
        acquire_timeout: float = 10.0,
        connection_factory: Optional[ConnectionFactory] = None
    ):
        if max_connections < 1:
            raise ValueError("max_connections must be at least 1")
        self.max_connections = max_connections
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self.acquire_timeout = acquire_timeout
        self._connection_factory = connection_factory or TelnetConnection.open

        self._entries: Dict[str, PooledSession] = {}

        self.stats = {
            'connections_created': 0,
            'connections_reused': 0,
            'connections_closed': 0,
            'failed_connections': 0
        }

        self._sweep_task: Optional[asyncio.Task] = None
        self._shutdown = False

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "TelnetConnectionPool":
        return cls(
            max_connections=settings.telnet_max_connections,
            idle_timeout=settings.telnet_idle_timeout,
            sweep_interval=settings.telnet_sweep_interval,
            acquire_timeout=settings.telnet_acquire_timeout,
            **kwargs
        )

    def __len__(self) -> int:
        return len(self._entries)

    async def start(self):
        """Start the idle sweep"""
        self._shutdown = False
        self._ensure_sweep()
        logger.info(
            f"Telnet connection pool started (max: {self.max_connections}, idle timeout: {self.idle_timeout}s)"
        )

    async def acquire(self, host: str, username: str, password: str,
                      connect_params: Optional[TelnetConnectParams] = None) -> Any:
        """Return a ready session for (host, username, password), marked busy.

        Capacity is checked before the first suspension point, so a full pool
        with nothing idle fails with PoolExhaustedError immediately.
        """
        if self._shutdown:
            raise PoolExhaustedError("Connection pool is closed", max_connections=self.max_connections)
        self._ensure_sweep()

        key = make_session_key(host, username, password)
        params = connect_params or TelnetConnectParams()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.acquire_timeout

        while True:
            entry = self._entries.get(key)

            if entry and not entry.busy:
                if entry.is_alive:
                    entry.busy = True
                    entry.touch()
                    entry.use_count += 1
                    entry.released.clear()
                    self.stats['connections_reused'] += 1
                    telnet_pool_events_total.labels(event='reused').inc()
                    self._update_gauges()
                    logger.debug(f"Reusing existing connection for {key}")
                    return entry.connection

                logger.warning(f"Connection {key} is no longer alive, removing from pool")
                telnet_pool_events_total.labels(event='stale').inc()
                del self._entries[key]
                return await self._create_entry(key, host, username, password, params, stale=entry)

            if entry and entry.busy:
                # Same identity in use (or still connecting): wait for its release
                remaining = deadline - loop.time()
                if remaining <= 0:
                    telnet_pool_events_total.labels(event='exhausted').inc()
                    raise PoolExhaustedError(
                        f"Session for {key} stayed busy for {self.acquire_timeout}s",
                        max_connections=self.max_connections
                    )
                logger.debug(f"Connection {key} is busy, waiting for release")
                try:
                    await asyncio.wait_for(entry.released.wait(), timeout=remaining)
                except asyncio.TimeoutError:
                    pass
                continue

            return await self._create_entry(key, host, username, password, params)

    async def _create_entry(self, key: str, host: str, username: str, password: str,
                            params: TelnetConnectParams, stale: Optional[PooledSession] = None) -> Any:
        evicted = None
        if len(self._entries) >= self.max_connections:
            evicted = self._find_idle_entry()
            if evicted is None:
                telnet_pool_events_total.labels(event='exhausted').inc()
                raise PoolExhaustedError(
                    f"Connection pool limit reached ({self.max_connections} connections)",
                    max_connections=self.max_connections
                )
            del self._entries[evicted.key]
            telnet_pool_events_total.labels(event='evicted').inc()
            logger.debug(f"Evicting idle connection {evicted.key} to make room for {key}")

        # Reserve the slot before connecting so concurrent callers see it
        entry = PooledSession(key=key, host=host)
        self._entries[key] = entry
        self._update_gauges()

        for old in (stale, evicted):
            if old is not None:
                await self._close_entry(old)

        logger.debug(f"Creating new telnet connection for {key} (port={params.port})")
        try:
            connection = await self._connection_factory(host, username, password, params)
        except Exception as e:
            self.stats['failed_connections'] += 1
            if self._entries.get(key) is entry:
                del self._entries[key]
            entry.released.set()
            self._update_gauges()
            logger.error(f"Failed to create telnet connection for {key}: {e}")
            raise

        if self._shutdown or self._entries.get(key) is not entry:
            # Pool closed while connecting
            await self._close_connection(connection, key)
            raise PoolExhaustedError("Connection pool is closed", max_connections=self.max_connections)

        entry.connection = connection
        entry.use_count = 1
        entry.touch()
        self.stats['connections_created'] += 1
        telnet_pool_events_total.labels(event='created').inc()
        self._update_gauges()
        logger.info(f"New telnet connection established for {key} (pool size: {len(self._entries)})")
        return connection

    def release(self, connection: Any):
        """Mark the matching entry idle. Unknown sessions are ignored."""
        entry = self._find_entry(connection)
        if entry is None:
            logger.debug("Released connection is not tracked by the pool")
            return
        entry.busy = False
        entry.touch()
        entry.released.set()
        self._update_gauges()
        logger.debug(f"Released connection {entry.key} back to pool")

    async def discard(self, connection: Any):
        """Close a session and drop it from the pool instead of releasing it"""
        entry = self._find_entry(connection)
        if entry is not None:
            del self._entries[entry.key]
            entry.released.set()
            telnet_pool_events_total.labels(event='discarded').inc()
            self._update_gauges()
            logger.debug(f"Discarding connection {entry.key}")
            await self._close_entry(entry)
        else:
            await self._close_connection(connection, "untracked")

    async def sweep(self) -> int:
        """Close idle entries whose idle time exceeds the idle timeout"""
        stale = [
            entry for entry in self._entries.values()
            if not entry.busy and entry.idle_time > self.idle_timeout
        ]
        for entry in stale:
            self._entries.pop(entry.key, None)
            telnet_pool_events_total.labels(event='reaped').inc()
        if stale:
            logger.debug(f"Cleaning up {len(stale)} idle telnet connections")
            self._update_gauges()
            for entry in stale:
                await self._close_entry(entry)
        return len(stale)

    def _ensure_sweep(self):
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self):
        """Periodically clean up idle connections"""
        while not self._shutdown:
            try:
                await asyncio.sleep(self.sweep_interval)
                await self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"Error in telnet pool sweep: {e}")

    async def close_all(self):
        """Stop the sweep and close every tracked session, busy or not"""
        logger.info("Closing all telnet connections...")
        self._shutdown = True

        if self._sweep_task:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        entries = list(self._entries.values())
        self._entries.clear()
        for entry in entries:
            entry.released.set()
        await asyncio.gather(*(self._close_entry(entry) for entry in entries), return_exceptions=True)
        self._update_gauges()
        logger.info("All telnet connections closed")

    def get_stats(self) -> Dict[str, Any]:
        """Get pool statistics"""
        active = sum(1 for entry in self._entries.values() if entry.busy)
        total = len(self._entries)
        self._update_gauges()
        return {
            'totalConnections': total,
            'activeConnections': active,
            'idleConnections': total - active,
            'maxConnections': self.max_connections,
            'stats': dict(self.stats)
        }

    def _find_entry(self, connection: Any) -> Optional[PooledSession]:
        for entry in self._entries.values():
            if entry.connection is connection:
                return entry
        return None

    def _find_idle_entry(self) -> Optional[PooledSession]:
        idle = [entry for entry in self._entries.values() if not entry.busy]
        if not idle:
            return None
        return min(idle, key=lambda entry: entry.last_used)

    async def _close_entry(self, entry: PooledSession):
        if entry.connection is not None:
            await self._close_connection(entry.connection, entry.key)

    async def _close_connection(self, connection: Any, key: str):
        try:
            await connection.close()
            self.stats['connections_closed'] += 1
            logger.debug(f"Closed connection {key}")
        except Exception as e:
            logger.warning(f"Error closing connection {key}: {e}")

    def _update_gauges(self):
        active = sum(1 for entry in self._entries.values() if entry.busy)
        telnet_pool_connections.labels(state='active').set(active)
        telnet_pool_connections.labels(state='idle').set(len(self._entries) - active)
