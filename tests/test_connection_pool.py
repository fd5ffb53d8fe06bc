"""
Tests for the keyed telnet session pool
"""

import asyncio
import time

import pytest

from olt_access.common.exceptions import DeviceConnectionError, PoolExhaustedError
from olt_access.monitoring.connection_pool import TelnetConnectionPool, make_session_key


class TestSessionKey:
    """Identity key derivation"""

    def test_key_does_not_contain_password(self):
        key = make_session_key("10.0.0.1", "admin", "secret")
        assert "secret" not in key
        assert key.startswith("10.0.0.1:admin:")
        assert len(key.split(":")[-1]) == 16

    def test_key_depends_on_password(self):
        assert make_session_key("h", "u", "a") != make_session_key("h", "u", "b")
        assert make_session_key("h", "u", "a") == make_session_key("h", "u", "a")


class TestAcquireRelease:
    """Session reuse and identity"""

    @pytest.mark.asyncio
    async def test_acquire_creates_session(self, pool, connection_factory):
        connection = await pool.acquire("10.0.0.1", "admin", "secret")

        assert connection is connection_factory.created[0]
        assert len(pool) == 1
        assert pool.stats['connections_created'] == 1
        assert pool.get_stats()['activeConnections'] == 1

    @pytest.mark.asyncio
    async def test_released_session_is_reused(self, pool, connection_factory):
        first = await pool.acquire("10.0.0.1", "admin", "secret")
        pool.release(first)
        second = await pool.acquire("10.0.0.1", "admin", "secret")

        assert second is first
        assert len(connection_factory.created) == 1
        assert pool.stats['connections_reused'] == 1

    @pytest.mark.asyncio
    async def test_different_password_gets_distinct_entry(self, pool, connection_factory):
        first = await pool.acquire("10.0.0.1", "admin", "secret")
        second = await pool.acquire("10.0.0.1", "admin", "other")

        assert first is not second
        assert len(pool) == 2

    @pytest.mark.asyncio
    async def test_busy_identity_waits_for_release_and_shares_session(self, pool):
        first = await pool.acquire("10.0.0.1", "admin", "secret")
        waiter = asyncio.create_task(pool.acquire("10.0.0.1", "admin", "secret"))
        await asyncio.sleep(0.01)
        assert not waiter.done()

        pool.release(first)
        second = await waiter

        assert second is first
        assert len(pool) == 1

    @pytest.mark.asyncio
    async def test_busy_identity_times_out(self, pool):
        await pool.acquire("10.0.0.1", "admin", "secret")

        with pytest.raises(PoolExhaustedError):
            await pool.acquire("10.0.0.1", "admin", "secret")

    @pytest.mark.asyncio
    async def test_release_unknown_connection_is_noop(self, pool):
        connection = await pool.acquire("10.0.0.1", "admin", "secret")
        pool.release(object())

        assert pool.get_stats()['activeConnections'] == 1
        pool.release(connection)
        assert pool.get_stats()['idleConnections'] == 1


class TestCapacity:
    """maxConnections enforcement"""

    @pytest.mark.asyncio
    async def test_full_pool_with_busy_sessions_raises(self, connection_factory):
        pool = TelnetConnectionPool(max_connections=2, connection_factory=connection_factory)
        await pool.acquire("host-a", "admin", "secret")
        await pool.acquire("host-b", "admin", "secret")

        with pytest.raises(PoolExhaustedError) as exc_info:
            await pool.acquire("host-c", "admin", "secret")

        assert "2 connections" in exc_info.value.message
        assert len(connection_factory.calls) == 2
        assert len(pool) == 2

    @pytest.mark.asyncio
    async def test_idle_session_is_evicted_for_new_identity(self, connection_factory):
        pool = TelnetConnectionPool(max_connections=2, connection_factory=connection_factory)
        first = await pool.acquire("host-a", "admin", "secret")
        await pool.acquire("host-b", "admin", "secret")
        pool.release(first)

        third = await pool.acquire("host-c", "admin", "secret")

        assert third.host == "host-c"
        assert first.closed
        assert len(pool) == 2

    @pytest.mark.asyncio
    async def test_pool_never_exceeds_max_connections(self, connection_factory):
        pool = TelnetConnectionPool(max_connections=3, connection_factory=connection_factory)
        results = await asyncio.gather(
            *(pool.acquire(f"host-{i}", "admin", "secret") for i in range(6)),
            return_exceptions=True
        )

        acquired = [r for r in results if not isinstance(r, Exception)]
        failed = [r for r in results if isinstance(r, PoolExhaustedError)]
        assert len(acquired) == 3
        assert len(failed) == 3
        assert len(pool) <= 3


class TestLifecycle:
    """Stale detection, sweep, discard and shutdown"""

    @pytest.mark.asyncio
    async def test_dead_session_is_replaced(self, pool, connection_factory):
        first = await pool.acquire("10.0.0.1", "admin", "secret")
        pool.release(first)
        first.is_alive = False

        second = await pool.acquire("10.0.0.1", "admin", "secret")

        assert second is not first
        assert len(pool) == 1
        assert len(connection_factory.created) == 2

    @pytest.mark.asyncio
    async def test_sweep_removes_idle_sessions(self, pool):
        idle = await pool.acquire("10.0.0.1", "admin", "secret")
        busy = await pool.acquire("10.0.0.2", "admin", "secret")
        pool.release(idle)
        for entry in pool._entries.values():
            entry.last_used = time.monotonic() - 120

        removed = await pool.sweep()

        assert removed == 1
        assert idle.closed
        assert not busy.closed
        assert len(pool) == 1

    @pytest.mark.asyncio
    async def test_first_acquire_starts_sweep(self, connection_factory):
        pool = TelnetConnectionPool(idle_timeout=0.0, sweep_interval=0.01, connection_factory=connection_factory)
        connection = await pool.acquire("10.0.0.1", "admin", "secret")
        pool.release(connection)

        await asyncio.sleep(0.1)

        assert connection.closed
        assert len(pool) == 0
        await pool.close_all()

    @pytest.mark.asyncio
    async def test_sweep_keeps_recent_sessions(self, pool):
        connection = await pool.acquire("10.0.0.1", "admin", "secret")
        pool.release(connection)

        assert await pool.sweep() == 0
        assert len(pool) == 1

    @pytest.mark.asyncio
    async def test_discard_closes_and_removes(self, pool):
        connection = await pool.acquire("10.0.0.1", "admin", "secret")

        await pool.discard(connection)

        assert connection.closed
        assert len(pool) == 0

    @pytest.mark.asyncio
    async def test_factory_failure_propagates_and_frees_slot(self, pool, connection_factory):
        connection_factory.error = DeviceConnectionError("Authentication failed", device_ip="10.0.0.1")

        with pytest.raises(DeviceConnectionError):
            await pool.acquire("10.0.0.1", "admin", "secret")

        assert len(pool) == 0
        assert pool.stats['failed_connections'] == 1

    @pytest.mark.asyncio
    async def test_close_all(self, pool):
        first = await pool.acquire("10.0.0.1", "admin", "secret")
        second = await pool.acquire("10.0.0.2", "admin", "secret")
        pool.release(first)
        await pool.start()

        await pool.close_all()

        assert first.closed and second.closed
        assert len(pool) == 0
        with pytest.raises(PoolExhaustedError):
            await pool.acquire("10.0.0.1", "admin", "secret")

    @pytest.mark.asyncio
    async def test_get_stats_shape(self, pool):
        connection = await pool.acquire("10.0.0.1", "admin", "secret")
        await pool.acquire("10.0.0.2", "admin", "secret")
        pool.release(connection)

        stats = pool.get_stats()

        assert stats['totalConnections'] == 2
        assert stats['activeConnections'] == 1
        assert stats['idleConnections'] == 1
        assert stats['maxConnections'] == 3
        assert stats['stats']['connections_created'] == 2
