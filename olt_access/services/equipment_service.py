"""
Equipment service: the single entry point for status queries and interactive
commands against OLT equipment. Every operation returns an EquipmentResponse and
never raises to the caller.
"""

import logging
import re
import time
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..common.exceptions import InvalidInputError, OltAccessException
from ..common.result_objects import (
    CommandResult, EquipmentResponse, ResultStatus,
    create_failure_response, create_success_response
)
from ..common.validation import (
    PortAddress, TelnetCredentials, parse_cli_interface, parse_port_address, validate_host, validate_vlan_id
)
from ..config import Settings, settings as default_settings
from ..monitoring.connection_pool import TelnetConnectionPool
from ..protocols.oids import BDCOM_ONU_OIDS, ONU_STATUS_OFFLINE, ONU_STATUS_ONLINE, SYSTEM_OIDS, indexed
from ..protocols.snmp_client import SNMPClient
from ..vendors.base import OFFLINE, ONLINE, UNKNOWN, OltVendor, OnuStatusData
from ..vendors.factory import VendorFactory
from .audit_service import AuditService, CommandAuditRecord
from .command_service import CommandService
from .device_locator import DeviceLocator

logger = logging.getLogger(__name__)

HEX_MAC_RE = re.compile(r'^[0-9A-Fa-f]{12}$')
MAC_SEPARATORS_RE = re.compile(r'[\s:.\-]')

CredentialsLike = Union[TelnetCredentials, Dict[str, Any]]


def decode_mac(value: Any, raw: Optional[bytes] = None) -> Optional[str]:
    """Colon-separated hex from 6 raw octets or a 12-hex-digit string"""
    if raw is not None and len(raw) == 6:
        return ':'.join(f"{octet:02X}" for octet in raw)
    if isinstance(value, (bytes, bytearray)) and len(value) == 6:
        return ':'.join(f"{octet:02X}" for octet in value)
    if isinstance(value, str):
        digits = MAC_SEPARATORS_RE.sub('', value)
        if HEX_MAC_RE.match(digits):
            return ':'.join(digits[i:i + 2] for i in range(0, 12, 2)).upper()
    return None


def decode_optical_power(value: Any) -> Optional[float]:
    """Hundredths of dBm -> dBm"""
    try:
        return round(int(value) / 100, 2)
    except (TypeError, ValueError):
        return None


def decode_onu_status(value: Any) -> str:
    try:
        code = int(value)
    except (TypeError, ValueError):
        return UNKNOWN
    if code == ONU_STATUS_ONLINE:
        return ONLINE
    if code == ONU_STATUS_OFFLINE:
        return OFFLINE
    return UNKNOWN


def _elapsed_ms(start: float) -> float:
    return round((time.time() - start) * 1000, 2)


class EquipmentService:
    """Composes the SNMP client, ONU locator and command service for callers"""

    def __init__(
        self,
        snmp_client: Optional[SNMPClient] = None,
        command_service: Optional[CommandService] = None,
        locator: Optional[DeviceLocator] = None,
        vendor_factory: Optional[VendorFactory] = None,
        audit: Optional[AuditService] = None,
        settings: Optional[Settings] = None
    ):
        self.settings = settings or default_settings
        self.snmp = snmp_client or SNMPClient.from_settings(self.settings)
        self.commands = command_service or CommandService(
            TelnetConnectionPool.from_settings(self.settings), self.settings
        )
        self.locator = locator or DeviceLocator(self.snmp, settings=self.settings)
        self.vendors = vendor_factory or VendorFactory(self.settings.default_vendor)
        self.audit = audit or AuditService()
        self.max_output_bytes = self.settings.telnet_max_output_bytes

    @property
    def pool(self) -> TelnetConnectionPool:
        return self.commands.pool

    async def start(self):
        await self.pool.start()

    async def close(self):
        await self.pool.close_all()

    async def __aenter__(self) -> "EquipmentService":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    # SNMP status queries

    async def query_snmp(self, host: str, oid: str, **snmp_options) -> EquipmentResponse:
        """Raw SNMP GET"""
        start = time.time()
        try:
            host = validate_host(host)
            varbind = await self.snmp.get(host, oid, **snmp_options)
            return create_success_response(varbind.to_dict(), _elapsed_ms(start))
        except Exception as e:
            return self._failure(f"SNMP query {oid} on {host}", e, start)

    async def walk_snmp(self, host: str, base_oid: str, **snmp_options) -> EquipmentResponse:
        start = time.time()
        try:
            host = validate_host(host)
            varbinds = await self.snmp.walk(host, base_oid, **snmp_options)
            return create_success_response([varbind.to_dict() for varbind in varbinds], _elapsed_ms(start))
        except Exception as e:
            return self._failure(f"SNMP walk {base_oid} on {host}", e, start)

    async def get_system_info(self, host: str, **snmp_options) -> EquipmentResponse:
        """sysDescr, sysObjectID, sysUpTime (seconds), sysContact, sysName, sysLocation"""
        start = time.time()
        try:
            host = validate_host(host)
            varbinds = await self.snmp.get_multiple(host, list(SYSTEM_OIDS.values()), **snmp_options)
            by_oid = {varbind.oid.lstrip('.'): varbind.value for varbind in varbinds}
            data = {name: by_oid.get(oid) for name, oid in SYSTEM_OIDS.items()}
            return create_success_response(data, _elapsed_ms(start))
        except Exception as e:
            return self._failure(f"System info for {host}", e, start)

    async def get_onu_optical_status(self, host: str, port_address: str, **snmp_options) -> EquipmentResponse:
        """Resolve the ONU ifIndex, then read status, optical power, description and MAC"""
        start = time.time()
        try:
            host = validate_host(host)
            address = parse_port_address(port_address)
            if_index = await self.locator.find_if_index(host, address, **snmp_options)
            if if_index is None:
                return create_failure_response(
                    f"ONU {address} not found (device offline or invalid port)",
                    error_code="ONU_NOT_FOUND", status=ResultStatus.NOT_FOUND,
                    execution_time=_elapsed_ms(start)
                )

            fields = ('status', 'rxPower', 'txPower', 'description', 'macAddress')
            oids = {indexed(BDCOM_ONU_OIDS[name], if_index): name for name in fields}
            varbinds = await self.snmp.get_multiple(host, list(oids), **snmp_options)
            values = {oids[varbind.oid.lstrip('.')]: varbind for varbind in varbinds
                      if varbind.oid.lstrip('.') in oids}

            data = self._onu_optical_data(address, if_index, values)
            return create_success_response(data, _elapsed_ms(start))
        except Exception as e:
            return self._failure(f"ONU status {port_address} on {host}", e, start)

    @staticmethod
    def _onu_optical_data(address: PortAddress, if_index: int, values: Dict[str, Any]) -> Dict[str, Any]:
        def value(name):
            varbind = values.get(name)
            return varbind.value if varbind is not None else None

        mac = values.get('macAddress')
        return {
            'port': address.name,
            'ifIndex': if_index,
            'status': decode_onu_status(value('status')),
            'rxPower': decode_optical_power(value('rxPower')),
            'txPower': decode_optical_power(value('txPower')),
            'description': value('description'),
            'macAddress': decode_mac(mac.value, mac.raw) if mac is not None else None,
        }

    # Interactive commands

    async def execute_command(self, credentials: CredentialsLike, command: str,
                              timeout: Optional[float] = None, token_id: Optional[str] = None) -> EquipmentResponse:
        """Raw CLI command"""
        start = time.time()
        try:
            creds = self._credentials(credentials)
            result = await self._run(creds, command, token_id, timeout=timeout)
            if not result.success:
                return self._command_failure(result, start)
            return create_success_response(
                {'output': result.output, 'command': command, 'deviceIp': creds.host},
                _elapsed_ms(start)
            )
        except Exception as e:
            return self._failure("Telnet command", e, start)

    async def get_onu_status(self, credentials: CredentialsLike, interface: str,
                             token_id: Optional[str] = None) -> EquipmentResponse:
        """Vendor status table, merged with the active or inactive ONU details"""
        start = time.time()
        try:
            creds = self._credentials(credentials)
            port, onu_id = parse_cli_interface(interface)
            vendor = self.vendors.get_vendor(creds.vendor_type)

            parsed = await self._read_onu_status(creds, vendor, port, onu_id, token_id)
            if isinstance(parsed, CommandResult):
                return self._command_failure(parsed, start)
            if parsed.error:
                return create_failure_response(
                    parsed.error, error_code="ONU_NOT_FOUND", status=ResultStatus.NOT_FOUND,
                    execution_time=_elapsed_ms(start)
                )

            await self._merge_onu_details(creds, vendor, port, onu_id, parsed, token_id)
            return create_success_response(parsed.to_dict(), _elapsed_ms(start))
        except Exception as e:
            return self._failure(f"ONU status for {interface}", e, start)

    async def get_signal_level(self, credentials: CredentialsLike, interface: str,
                               token_id: Optional[str] = None) -> EquipmentResponse:
        start = time.time()
        try:
            creds = self._credentials(credentials)
            port, onu_id = parse_cli_interface(interface)
            vendor = self.vendors.get_vendor(creds.vendor_type)

            result = await self._run(
                creds, vendor.get_signal_level_command(port, onu_id), token_id,
                enable=vendor.requires_enable, settle_delay=0.5
            )
            if not result.success:
                return self._command_failure(result, start)

            parsed = vendor.parse_signal_level(result.output)
            parsed.port, parsed.onu_id = port, str(onu_id)
            return create_success_response(parsed.to_dict(), _elapsed_ms(start))
        except Exception as e:
            return self._failure(f"Signal level for {interface}", e, start)

    async def set_onu_vlan(self, credentials: CredentialsLike, interface: str, vlan_id: int,
                           token_id: Optional[str] = None) -> EquipmentResponse:
        """Tag the ONU's first port with vlan_id"""
        start = time.time()
        try:
            creds = self._credentials(credentials)
            port, onu_id = parse_cli_interface(interface)
            validate_vlan_id(vlan_id)
            vendor = self.vendors.get_vendor(creds.vendor_type)
            commands = vendor.get_set_vlan_commands(port, onu_id, vlan_id)
            return await self._configure_onu(
                creds, vendor, port, onu_id, commands, token_id, start,
                extra={'vlanId': vlan_id}, message='VLAN configured successfully'
            )
        except Exception as e:
            return self._failure(f"Set VLAN {vlan_id} on {interface}", e, start)

    async def reboot_onu_port(self, credentials: CredentialsLike, interface: str,
                              token_id: Optional[str] = None) -> EquipmentResponse:
        """Shut and re-enable the ONU's first port"""
        start = time.time()
        try:
            creds = self._credentials(credentials)
            port, onu_id = parse_cli_interface(interface)
            vendor = self.vendors.get_vendor(creds.vendor_type)
            commands = vendor.get_port_reboot_commands(port, onu_id)
            return await self._configure_onu(
                creds, vendor, port, onu_id, commands, token_id, start,
                message='ONU port rebooted successfully'
            )
        except Exception as e:
            return self._failure(f"Port reboot on {interface}", e, start)

    async def test_connection(self, credentials: CredentialsLike) -> EquipmentResponse:
        start = time.time()
        try:
            creds = self._credentials(credentials)
            connected = await self.commands.test_connection(creds)
            return create_success_response({'connected': connected, 'deviceIp': creds.host}, _elapsed_ms(start))
        except Exception as e:
            return self._failure("Connection test", e, start)

    def get_pool_stats(self) -> Dict[str, Any]:
        return self.pool.get_stats()

    # Helpers

    async def _configure_onu(self, creds: TelnetCredentials, vendor: OltVendor, port: str, onu_id: int,
                             commands: List[str], token_id: Optional[str], start: float,
                             message: str, extra: Optional[Dict[str, Any]] = None) -> EquipmentResponse:
        status = await self._read_onu_status(creds, vendor, port, onu_id, token_id)
        if isinstance(status, CommandResult):
            return self._command_failure(status, start)
        if status.error:
            return create_failure_response(
                status.error, error_code="ONU_NOT_FOUND", status=ResultStatus.NOT_FOUND,
                execution_time=_elapsed_ms(start)
            )

        batch = await self.commands.execute_many(creds, commands, enable=vendor.requires_enable)
        for result in batch.results:
            await self._record(creds, result, token_id)

        data = {
            'onuWasOnline': status.status == ONLINE,
            'commandOutputs': batch.outputs,
            **(extra or {})
        }
        if not batch.success:
            failed = batch.failed
            return create_failure_response(
                f"Command '{failed.command.strip()}' failed: {failed.error}",
                error_code="COMMAND_FAILED", status=ResultStatus.PARTIAL_SUCCESS if len(batch.results) > 1
                else ResultStatus.FAILED,
                execution_time=_elapsed_ms(start), data=data
            )
        data['message'] = message
        return create_success_response(data, _elapsed_ms(start))

    async def _read_onu_status(self, creds: TelnetCredentials, vendor: OltVendor, port: str, onu_id: int,
                               token_id: Optional[str]) -> Union[OnuStatusData, CommandResult]:
        """Parsed status, or the failed CommandResult when the command itself failed"""
        result = await self._run(
            creds, vendor.get_onu_status_command(port, onu_id), token_id,
            enable=vendor.requires_enable, settle_delay=0
        )
        if not result.success:
            return result
        return vendor.parse_onu_status(result.output)

    async def _merge_onu_details(self, creds: TelnetCredentials, vendor: OltVendor, port: str, onu_id: int,
                                 parsed: OnuStatusData, token_id: Optional[str]):
        if parsed.status == ONLINE:
            command, parse = vendor.get_active_onu_command(port, onu_id), vendor.parse_active_onu
        elif parsed.status == OFFLINE:
            command, parse = vendor.get_inactive_onu_command(port, onu_id), vendor.parse_inactive_onu
        else:
            return
        if not command:
            return

        try:
            result = await self._run(creds, command, token_id, enable=vendor.requires_enable, settle_delay=0)
        except OltAccessException as e:
            logger.warning(f"Failed to fetch {parsed.status} ONU details: {e}")
            return
        if result.success:
            parsed.merge(parse(result.output))

    async def _run(self, creds: TelnetCredentials, command: str, token_id: Optional[str],
                   **options) -> CommandResult:
        """Execute and hand the outcome to the audit sink"""
        start = time.time()
        try:
            result = await self.commands.execute(creds, command, **options)
        except OltAccessException as e:
            await self.audit.record(CommandAuditRecord.build(
                command=command, output='', device_ip=creds.host, execution_time=_elapsed_ms(start),
                success=False, username=creds.username, error=e.message, token_id=token_id,
                max_output=self.max_output_bytes
            ))
            raise
        await self._record(creds, result, token_id)
        return result

    async def _record(self, creds: TelnetCredentials, result: CommandResult, token_id: Optional[str]):
        await self.audit.record(CommandAuditRecord.build(
            command=result.command, output=result.output, device_ip=creds.host,
            execution_time=result.execution_time, success=result.success,
            username=creds.username, error=result.error, token_id=token_id,
            max_output=self.max_output_bytes
        ))

    @staticmethod
    def _credentials(credentials: CredentialsLike) -> TelnetCredentials:
        if isinstance(credentials, TelnetCredentials):
            return credentials
        try:
            return TelnetCredentials(**credentials)
        except ValidationError as e:
            raise InvalidInputError(f"Invalid credentials: {e.errors()[0].get('msg', str(e))}")

    @staticmethod
    def _command_failure(result: CommandResult, start: float) -> EquipmentResponse:
        return create_failure_response(
            result.error or 'Command execution failed',
            error_code="COMMAND_FAILED", execution_time=_elapsed_ms(start)
        )

    @staticmethod
    def _failure(operation: str, error: Exception, start: float) -> EquipmentResponse:
        execution_time = _elapsed_ms(start)
        if isinstance(error, OltAccessException):
            logger.error(f"{operation} failed: {error.message}")
            return create_failure_response(
                error.message, error_code=error.error_code, execution_time=execution_time
            )
        logger.exception(f"{operation} failed with unexpected error: {error}")
        return create_failure_response(
            f"Unexpected error: {error}", error_code="INTERNAL_ERROR", execution_time=execution_time
        )
