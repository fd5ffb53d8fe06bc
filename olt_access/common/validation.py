"""
Input validation and sanitization for operator supplied command text and addresses.
"""

import re
import ipaddress
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from pydantic import BaseModel, Field, validator

from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)

# NUL and ASCII control characters except LF (0x0A) and CR (0x0D)
CONTROL_CHARS_RE = re.compile(r'[\x00-\x09\x0B\x0C\x0E-\x1F\x7F]')
OID_RE = re.compile(r'^\.?\d+(\.\d+)*$')
HOSTNAME_RE = re.compile(r'^(?=.{1,253}$)([A-Za-z0-9]([A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)(\.[A-Za-z0-9]([A-Za-z0-9\-]{0,61}[A-Za-z0-9])?)*$')

# EPON0/8:15 as exposed in the IF-MIB name table
PORT_ADDRESS_RE = re.compile(r'^EPON(\d+)/(\d+):(\d+)$', re.IGNORECASE)
# epon0/8:15, EPON0/8:15 or 0/8:15 as typed into the CLI
CLI_INTERFACE_RE = re.compile(r'^(?:epon)?(\d+/\d+):(\d+)$', re.IGNORECASE)

TRUNCATION_MARKER = "\n... [output truncated]"

VLAN_MIN = 1
VLAN_MAX = 4094


@dataclass(frozen=True)
class PortAddress:
    """Logical PON port address, e.g. EPON0/8:15 = slot 0, PON 8, ONU 15"""

    slot: int
    pon: int
    onu: int

    @property
    def name(self) -> str:
        """Interface name as it appears in ifName"""
        return f"EPON{self.slot}/{self.pon}:{self.onu}"

    @property
    def port(self) -> str:
        """slot/pon part used by CLI commands"""
        return f"{self.slot}/{self.pon}"

    def with_onu(self, onu: int) -> "PortAddress":
        return PortAddress(self.slot, self.pon, onu)

    def __str__(self) -> str:
        return self.name


def sanitize_command(command: str) -> str:
    """Strip NUL bytes and ASCII control characters, keeping CR and LF.

    Printable text is left untouched, which makes the operation idempotent.
    """
    sanitized = CONTROL_CHARS_RE.sub('', command)
    if sanitized != command:
        logger.debug(
            f"Command sanitized: removed {len(command) - len(sanitized)} control character(s)"
        )
    return sanitized


def validate_command(command: Optional[str]) -> str:
    """Reject empty commands and return the sanitized text"""
    if command is None or not command.strip():
        raise InvalidInputError("Command must not be empty", field_name="command", field_value=command)
    sanitized = sanitize_command(command)
    if not sanitized.strip():
        raise InvalidInputError(
            "Command contains only control characters",
            field_name="command", field_value=command
        )
    return sanitized


def truncate_output(output: str, max_bytes: int, marker: str = TRUNCATION_MARKER) -> Tuple[str, bool]:
    """Bound output to max_bytes of UTF-8 and append the marker when cut"""
    encoded = output.encode('utf-8')
    if len(encoded) <= max_bytes:
        return output, False
    # A multi-byte character split at the boundary is dropped
    head = encoded[:max_bytes].decode('utf-8', errors='ignore')
    return head + marker, True


def validate_oid(oid: str) -> str:
    """Validate a numeric OID, returning it without surrounding whitespace"""
    value = (oid or '').strip()
    if not OID_RE.match(value):
        raise InvalidInputError(f"Invalid SNMP OID format: {oid}", field_name="oid", field_value=oid)
    return value


def validate_host(host: str) -> str:
    value = (host or '').strip()
    try:
        ipaddress.ip_address(value)
        return value
    except ValueError:
        pass
    if not HOSTNAME_RE.match(value):
        raise InvalidInputError(f"Invalid host: {host}", field_name="host", field_value=host)
    return value


def parse_port_address(address: str) -> PortAddress:
    """Parse EPON{slot}/{pon}:{onu}"""
    match = PORT_ADDRESS_RE.match((address or '').strip())
    if not match:
        raise InvalidInputError(
            f"Invalid port address format: {address}. Expected EPON{{slot}}/{{pon}}:{{onu}}",
            field_name="port", field_value=address
        )
    slot, pon, onu = (int(group) for group in match.groups())
    if onu < 1:
        raise InvalidInputError(f"ONU number must be 1 or greater: {address}",
                                field_name="port", field_value=address)
    return PortAddress(slot, pon, onu)


def parse_cli_interface(interface: str) -> Tuple[str, int]:
    """Parse an ONU interface for CLI use into (port, onu_id), e.g. ('0/8', 15)"""
    match = CLI_INTERFACE_RE.match((interface or '').strip())
    if not match:
        raise InvalidInputError(
            f"Invalid EPON interface format: {interface}. Expected format: epon0/1:2 or 0/1:2",
            field_name="interface", field_value=interface
        )
    return match.group(1), int(match.group(2))


def validate_vlan_id(vlan_id: int) -> int:
    if not isinstance(vlan_id, int) or isinstance(vlan_id, bool) or not VLAN_MIN <= vlan_id <= VLAN_MAX:
        raise InvalidInputError(
            f"VLAN ID must be between {VLAN_MIN} and {VLAN_MAX}",
            field_name="vlan_id", field_value=vlan_id
        )
    return vlan_id


class TelnetCredentials(BaseModel):
    """Validated credential bundle for interactive access"""

    host: str = Field(..., description="Device IP address or hostname")
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=128, repr=False)
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    vendor_type: str = Field(default="auto", alias="vendorType")

    class Config:
        populate_by_name = True

    @validator("host")
    def validate_host_field(cls, v):
        try:
            return validate_host(v)
        except InvalidInputError as e:
            raise ValueError(e.message)

    @validator("vendor_type")
    def normalize_vendor(cls, v):
        return (v or "auto").strip().lower()
