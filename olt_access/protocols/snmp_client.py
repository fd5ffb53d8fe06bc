"""
Stateless SNMP v1/v2c client: GET, multi-GET and bulk WALK with typed value decoding
"""

import logging
import time
from dataclasses import dataclass, replace
from typing import Any, List, Optional, Tuple

from pysnmp.hlapi.v3arch.asyncio import (
    SnmpEngine,
    CommunityData,
    UdpTransportTarget,
    ContextData,
    ObjectType,
    ObjectIdentity,
    get_cmd,
    bulk_cmd,
)
from pysnmp.proto import errind
from pysnmp.proto.rfc1902 import IpAddress, OctetString, TimeTicks
from pysnmp.proto.rfc1905 import EndOfMibView, NoSuchInstance, NoSuchObject

from ..common.exceptions import CommandTimeoutError, SNMPException, SNMPVarbindError
from ..common.metrics import snmp_requests_total, snmp_response_time_seconds
from ..common.result_objects import SnmpVarbind
from ..common.validation import validate_oid

logger = logging.getLogger(__name__)

VARBIND_ERRORS = (NoSuchObject, NoSuchInstance, EndOfMibView)

# pysnmp class name -> type tag reported to callers
TYPE_NAMES = {
    'Integer': 'Integer',
    'Integer32': 'Integer',
    'OctetString': 'OctetString',
    'Null': 'Null',
    'ObjectIdentifier': 'ObjectIdentifier',
    'ObjectName': 'ObjectIdentifier',
    'IpAddress': 'IpAddress',
    'Counter32': 'Counter',
    'Gauge32': 'Gauge',
    'Unsigned32': 'Gauge',
    'TimeTicks': 'TimeTicks',
    'Opaque': 'Opaque',
    'Counter64': 'Counter64',
    'Bits': 'Bits',
}


@dataclass(frozen=True)
class SnmpOptions:
    """Per-request SNMP session parameters"""
    community: str = "public"
    port: int = 161
    version: str = "2c"
    timeout: float = 5.0
    retries: int = 3

    @classmethod
    def from_settings(cls, settings) -> "SnmpOptions":
        return cls(
            community=settings.snmp_default_community,
            port=settings.snmp_port,
            version=settings.snmp_default_version,
            timeout=settings.snmp_timeout,
            retries=settings.snmp_retries,
        )

    def merge(self, **overrides) -> "SnmpOptions":
        values = {key: value for key, value in overrides.items() if value is not None}
        if 'version' in values:
            values['version'] = str(values['version']).lower().lstrip('v')
            if values['version'] not in ('1', '2c'):
                raise SNMPException(f"Unsupported SNMP version: {overrides['version']}")
        return replace(self, **values)


def decode_value(value: Any) -> Tuple[str, Any, Optional[bytes]]:
    """Map a pysnmp value to (type tag, decoded value, raw octets)"""
    type_name = TYPE_NAMES.get(value.__class__.__name__, value.__class__.__name__)

    # IpAddress is an OctetString subclass
    if isinstance(value, IpAddress):
        return 'IpAddress', '.'.join(str(octet) for octet in value.asNumbers()), bytes(value.asNumbers())
    if isinstance(value, OctetString):
        raw = bytes(value.asNumbers())
        return 'OctetString', raw.decode('utf-8', errors='replace'), raw
    if isinstance(value, TimeTicks):
        return 'TimeTicks', int(value) // 100, None
    if type_name in ('Integer', 'Counter', 'Gauge', 'Counter64'):
        return type_name, int(value), None
    if type_name == 'ObjectIdentifier':
        return type_name, str(value), None
    if type_name == 'Null':
        return type_name, None, None
    return type_name, value, None


def _normalize_oid(oid: str) -> str:
    return validate_oid(oid).lstrip('.')


def _in_subtree(oid: str, base: str) -> bool:
    return oid == base or oid.startswith(base + '.')


class SNMPClient:
    """Issues one SNMP request per call over UDP.

    Each operation builds its own engine and closes its dispatcher exactly once,
    whether the request resolves or fails. There is no shared session state.
    """

    def __init__(self, options: Optional[SnmpOptions] = None, walk_max_repetitions: int = 20):
        self.options = options or SnmpOptions()
        self.walk_max_repetitions = walk_max_repetitions

    @classmethod
    def from_settings(cls, settings) -> "SNMPClient":
        return cls(SnmpOptions.from_settings(settings), settings.snmp_walk_max_repetitions)

    async def get(self, host: str, oid: str, **options) -> SnmpVarbind:
        """GET a single OID; an error varbind fails the call"""
        oid = _normalize_oid(oid)
        opts = self.options.merge(**options)
        varbinds = await self._request('get', host, opts, [oid])

        if not varbinds:
            raise SNMPVarbindError(f"No varbind returned for {oid} from {host}", oid=oid, device_ip=host)
        name, value = varbinds[0]
        if isinstance(value, VARBIND_ERRORS):
            raise SNMPVarbindError(
                f"{value.__class__.__name__} for {oid} on {host}", oid=oid, device_ip=host, version=opts.version
            )
        return self._to_varbind(str(name), value)

    async def get_multiple(self, host: str, oids: List[str], **options) -> List[SnmpVarbind]:
        """GET several OIDs in one request, dropping error varbinds"""
        if not oids:
            return []
        normalized = [_normalize_oid(oid) for oid in oids]
        opts = self.options.merge(**options)
        varbinds = await self._request('get_multiple', host, opts, normalized)

        results = []
        for name, value in varbinds:
            if isinstance(value, VARBIND_ERRORS):
                logger.debug(f"Skipping {name} from {host}: {value.__class__.__name__}")
                continue
            results.append(self._to_varbind(str(name), value))
        return results

    async def walk(self, host: str, base_oid: str, **options) -> List[SnmpVarbind]:
        """Bulk-walk the subtree under base_oid, in agent order"""
        base = _normalize_oid(base_oid)
        opts = self.options.merge(**options)
        start = time.time()
        engine = SnmpEngine()
        results: List[SnmpVarbind] = []

        try:
            target = await self._transport(host, opts)
            current = base
            finished = False
            while not finished:
                error_indication, error_status, error_index, varbinds = await bulk_cmd(
                    engine,
                    self._credentials(opts),
                    target,
                    ContextData(),
                    0,
                    self.walk_max_repetitions,
                    ObjectType(ObjectIdentity(current)),
                )
                self._check_errors('walk', host, opts, error_indication, error_status, error_index, [current])

                if not varbinds:
                    break
                for name, value in varbinds:
                    oid = str(name)
                    if isinstance(value, EndOfMibView) or not _in_subtree(oid, base) or oid == current:
                        finished = True
                        break
                    current = oid
                    if isinstance(value, (NoSuchObject, NoSuchInstance)):
                        continue
                    results.append(self._to_varbind(oid, value))

            snmp_requests_total.labels(operation='walk', status='success').inc()
            logger.debug(f"SNMP walk {base} on {host} returned {len(results)} varbinds")
            return results
        except Exception:
            snmp_requests_total.labels(operation='walk', status='failed').inc()
            raise
        finally:
            engine.close_dispatcher()
            snmp_response_time_seconds.labels(operation='walk').observe(time.time() - start)

    async def _request(self, operation: str, host: str, opts: SnmpOptions, oids: List[str]) -> list:
        start = time.time()
        engine = SnmpEngine()
        try:
            target = await self._transport(host, opts)
            error_indication, error_status, error_index, varbinds = await get_cmd(
                engine,
                self._credentials(opts),
                target,
                ContextData(),
                *[ObjectType(ObjectIdentity(oid)) for oid in oids],
            )
            self._check_errors(operation, host, opts, error_indication, error_status, error_index, oids)
            snmp_requests_total.labels(operation=operation, status='success').inc()
            return list(varbinds)
        except Exception:
            snmp_requests_total.labels(operation=operation, status='failed').inc()
            raise
        finally:
            engine.close_dispatcher()
            snmp_response_time_seconds.labels(operation=operation).observe(time.time() - start)

    async def _transport(self, host: str, opts: SnmpOptions):
        try:
            return await UdpTransportTarget.create((host, opts.port), timeout=opts.timeout, retries=opts.retries)
        except Exception as e:
            raise SNMPException(f"Cannot resolve SNMP target {host}:{opts.port}: {e}",
                                device_ip=host, port=opts.port, version=opts.version)

    @staticmethod
    def _credentials(opts: SnmpOptions) -> CommunityData:
        return CommunityData(opts.community, mpModel=0 if opts.version == '1' else 1)

    @staticmethod
    def _check_errors(operation, host, opts, error_indication, error_status, error_index, oids):
        if error_indication:
            if isinstance(error_indication, errind.RequestTimedOut):
                raise CommandTimeoutError(
                    f"SNMP {operation} to {host} timed out: {error_indication}",
                    operation=f"snmp_{operation}", timeout_value=opts.timeout,
                    protocol="SNMP", device_ip=host, port=opts.port
                )
            raise SNMPException(f"SNMP {operation} to {host} failed: {error_indication}",
                                device_ip=host, port=opts.port, version=opts.version)
        if error_status:
            index = int(error_index) - 1 if error_index else 0
            oid = oids[index] if 0 <= index < len(oids) else None
            message = f"SNMP {operation} to {host} returned {error_status.prettyPrint()}"
            if oid:
                message += f" at {oid}"
            raise SNMPVarbindError(message, oid=oid, device_ip=host, port=opts.port, version=opts.version)

    @staticmethod
    def _to_varbind(oid: str, value: Any) -> SnmpVarbind:
        type_name, decoded, raw = decode_value(value)
        return SnmpVarbind(oid=oid, type=type_name, value=decoded, raw=raw)
