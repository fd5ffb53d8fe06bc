"""
Tests for ONU ifIndex discovery
"""

import pytest

from olt_access.common.exceptions import DiscoveryNotFoundError, InvalidInputError, SNMPVarbindError
from olt_access.protocols.oids import BDCOM_ONU_OIDS, IF_NAME_OID
from olt_access.services.device_locator import DeviceLocator


class FakeAgent:
    """Answers ifName and ONU status probes from in-memory tables"""

    def __init__(self, make_varbind, names, status_indexes, fail_multi_get=False):
        self.make_varbind = make_varbind
        self.names = names
        self.status_indexes = set(status_indexes)
        self.fail_multi_get = fail_multi_get

    def _index(self, oid, column):
        prefix = column + '.'
        if oid.startswith(prefix):
            return int(oid[len(prefix):])
        return None

    async def get_multiple(self, host, oids, **options):
        if self.fail_multi_get:
            raise SNMPVarbindError("noSuchName", oid=oids[0], device_ip=host)
        results = []
        for oid in oids:
            index = self._index(oid, IF_NAME_OID)
            if index in self.names:
                results.append(self.make_varbind(oid, self.names[index], 'OctetString'))
        return results

    async def get(self, host, oid, **options):
        index = self._index(oid, IF_NAME_OID)
        if index is not None and index in self.names:
            return self.make_varbind(oid, self.names[index], 'OctetString')
        index = self._index(oid, BDCOM_ONU_OIDS['status'])
        if index is not None and index in self.status_indexes:
            return self.make_varbind(oid, 1)
        raise SNMPVarbindError(f"NoSuchInstance for {oid}", oid=oid, device_ip=host)


@pytest.fixture
def wire(mock_snmp_client, make_varbind):
    """Route the mocked client through a FakeAgent"""
    def factory(names, status_indexes=(), fail_multi_get=False):
        agent = FakeAgent(make_varbind, names, status_indexes, fail_multi_get)
        mock_snmp_client.get.side_effect = agent.get
        mock_snmp_client.get_multiple.side_effect = agent.get_multiple
        return mock_snmp_client
    return factory


@pytest.fixture
def locator(mock_snmp_client, test_settings):
    return DeviceLocator(mock_snmp_client, ranges=[(10, 30), (40, 60)], batch_size=10, settings=test_settings)


class TestFindIfIndex:
    """Two-phase resolution"""

    @pytest.mark.asyncio
    async def test_arithmetic_candidate_accepted_without_fallback(self, locator, wire):
        client = wire({12: 'EPON0/8:1', 13: 'EPON0/8:2'}, status_indexes=[26])

        if_index = await locator.find_if_index('10.0.0.1', 'EPON0/8:15')

        assert if_index == 26
        # Only the first batch was probed; no direct search for EPON0/8:15
        assert client.get_multiple.await_count == 1
        client.get.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_falls_back_to_direct_search(self, locator, wire):
        client = wire({12: 'EPON0/8:1', 45: 'EPON0/8:15'}, status_indexes=[45])

        if_index = await locator.find_if_index('10.0.0.1', 'EPON0/8:15')

        assert if_index == 45
        assert client.get_multiple.await_count > 1

    @pytest.mark.asyncio
    async def test_direct_search_when_base_missing(self, locator, wire):
        wire({22: 'EPON0/8:15'})

        assert await locator.find_if_index('10.0.0.1', 'EPON0/8:15') == 22

    @pytest.mark.asyncio
    async def test_onu_one_resolves_to_base(self, locator, wire):
        wire({12: 'EPON0/8:1'}, status_indexes=[12])

        assert await locator.find_if_index('10.0.0.1', 'EPON0/8:1') == 12

    @pytest.mark.asyncio
    async def test_not_found_returns_none(self, locator, wire):
        wire({12: 'EPON0/7:1'})

        assert await locator.find_if_index('10.0.0.1', 'EPON0/8:15') is None

    @pytest.mark.asyncio
    async def test_resolve_raises_not_found(self, locator, wire):
        wire({})

        with pytest.raises(DiscoveryNotFoundError) as exc_info:
            await locator.resolve_if_index('10.0.0.1', 'EPON0/8:15')

        assert exc_info.value.error_code == 'ONU_NOT_FOUND'

    @pytest.mark.asyncio
    async def test_invalid_address(self, locator, mock_snmp_client):
        with pytest.raises(InvalidInputError):
            await locator.find_if_index('10.0.0.1', 'EPON0/8')
        mock_snmp_client.get_multiple.assert_not_called()


class TestSearchRanges:

    @pytest.mark.asyncio
    async def test_first_range_wins(self, locator, wire):
        wire({25: 'EPON0/8:1', 50: 'EPON0/8:1'})

        assert await locator.search_ranges('10.0.0.1', 'EPON0/8:1') == 25

    @pytest.mark.asyncio
    async def test_name_match_is_exact(self, locator, wire):
        wire({11: 'EPON0/8:10', 12: 'EPON0/8:1'})

        assert await locator.search_ranges('10.0.0.1', 'EPON0/8:1') == 12

    @pytest.mark.asyncio
    async def test_falls_back_to_single_gets(self, locator, wire):
        client = wire({14: 'EPON0/8:1'}, fail_multi_get=True)

        assert await locator.search_ranges('10.0.0.1', 'EPON0/8:1') == 14
        assert client.get.await_count == 5

    def test_ranges_default_from_settings(self, mock_snmp_client, test_settings):
        locator = DeviceLocator(mock_snmp_client, settings=test_settings)
        assert locator.ranges == [(10, 30)]
        assert locator.batch_size == 10
