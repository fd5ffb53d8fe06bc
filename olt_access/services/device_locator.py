"""
ONU discovery: resolve a PON port address to the device ifIndex via the IF-MIB name table
"""

import logging
from typing import List, Optional, Sequence, Tuple, Union

from ..common.exceptions import DiscoveryNotFoundError, SNMPVarbindError
from ..common.metrics import onu_discovery_duration_seconds, onu_discovery_total, track_time
from ..common.validation import PortAddress, parse_port_address
from ..config import Settings, settings as default_settings
from ..protocols.oids import BDCOM_ONU_OIDS, IF_NAME_OID, indexed
from ..protocols.snmp_client import SNMPClient

logger = logging.getLogger(__name__)


class DeviceLocator:
    """Maps EPON{slot}/{pon}:{onu} to an ifIndex.

    The device offers no name -> ifIndex lookup, so the ifName column is probed
    over a few ordered ifIndex ranges. ONUs on one PON are usually numbered
    sequentially after ONU 1, so the locator first resolves ONU 1 and checks the
    arithmetic candidate with a status probe, then falls back to searching the
    ranges for the target name itself. Nothing is cached.
    """

    def __init__(self, snmp_client: SNMPClient, ranges: Optional[Sequence[Tuple[int, int]]] = None,
                 verify_oid: str = BDCOM_ONU_OIDS['status'], batch_size: Optional[int] = None,
                 settings: Optional[Settings] = None):
        settings = settings or default_settings
        self.snmp = snmp_client
        self.ranges: List[Tuple[int, int]] = list(ranges or settings.get_ifindex_ranges())
        self.verify_oid = verify_oid
        self.batch_size = max(1, batch_size or settings.discovery_probe_batch_size)

    @track_time(onu_discovery_duration_seconds)
    async def find_if_index(self, host: str, port_address: Union[str, PortAddress],
                            **snmp_options) -> Optional[int]:
        """Return the ifIndex for the address, or None when it cannot be found.

        Malformed addresses raise InvalidInputError; SNMP transport failures
        propagate unchanged.
        """
        address = port_address if isinstance(port_address, PortAddress) else parse_port_address(port_address)
        base = address.with_onu(1)

        base_index = await self.search_ranges(host, base.name, **snmp_options)
        if base_index is not None:
            candidate = base_index + (address.onu - 1)
            if await self.verify(host, candidate, **snmp_options):
                logger.debug(f"Resolved {address} on {host} to ifIndex {candidate} (base {base_index})")
                onu_discovery_total.labels(strategy='arithmetic').inc()
                return candidate
            logger.warning(
                f"Arithmetic candidate {candidate} for {address} on {host} did not verify, searching directly"
            )
        else:
            logger.debug(f"Base interface {base} not found on {host}, searching for {address} directly")

        # For ONU 1 the base search already was the direct search
        if address.onu == 1:
            found = base_index
        else:
            found = await self.search_ranges(host, address.name, **snmp_options)
        if found is not None:
            logger.debug(f"Resolved {address} on {host} to ifIndex {found} by direct search")
            onu_discovery_total.labels(strategy='direct').inc()
            return found

        logger.info(f"ONU {address} not found on {host} (device offline or invalid port)")
        onu_discovery_total.labels(strategy='not_found').inc()
        return None

    async def resolve_if_index(self, host: str, port_address: Union[str, PortAddress], **snmp_options) -> int:
        """Same as find_if_index but raises DiscoveryNotFoundError instead of returning None"""
        if_index = await self.find_if_index(host, port_address, **snmp_options)
        if if_index is None:
            raise DiscoveryNotFoundError(str(port_address), device_ip=host)
        return if_index

    async def search_ranges(self, host: str, name: str, **snmp_options) -> Optional[int]:
        """First ifIndex, in range priority order, whose ifName equals name"""
        for start, end in self.ranges:
            for batch_start in range(start, end + 1, self.batch_size):
                indexes = list(range(batch_start, min(batch_start + self.batch_size, end + 1)))
                match = await self._probe_names(host, indexes, name, **snmp_options)
                if match is not None:
                    return match
        return None

    async def verify(self, host: str, if_index: int, **snmp_options) -> bool:
        """A candidate is accepted when the status column answers for it"""
        try:
            varbind = await self.snmp.get(host, indexed(self.verify_oid, if_index), **snmp_options)
        except SNMPVarbindError:
            return False
        return varbind.value is not None

    async def _probe_names(self, host: str, indexes: List[int], name: str, **snmp_options) -> Optional[int]:
        oids = [indexed(IF_NAME_OID, index) for index in indexes]
        try:
            varbinds = await self.snmp.get_multiple(host, oids, **snmp_options)
        except SNMPVarbindError:
            # v1 agents fail the whole PDU on one missing instance
            return await self._probe_one_by_one(host, indexes, name, **snmp_options)

        names = {varbind.oid.lstrip('.'): varbind.value for varbind in varbinds}
        for index, oid in zip(indexes, oids):
            if names.get(oid) == name:
                return index
        return None

    async def _probe_one_by_one(self, host: str, indexes: List[int], name: str, **snmp_options) -> Optional[int]:
        for index in indexes:
            try:
                varbind = await self.snmp.get(host, indexed(IF_NAME_OID, index), **snmp_options)
            except SNMPVarbindError:
                continue
            if varbind.value == name:
                return index
        return None
