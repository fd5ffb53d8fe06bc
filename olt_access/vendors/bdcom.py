"""
BDCOM EPON OLT command syntax and output parsers
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from .base import OFFLINE, ONLINE, UNKNOWN, OltVendor, OnuStatusData, SignalLevelData

logger = logging.getLogger(__name__)

ONLINE_STATES = ('auto-configured', 'registered', 'online')
OFFLINE_STATES = ('deregistered', 'lost', 'offline')

INTERFACE_RE = re.compile(r'EPON(\d+/\d+):(\d+)', re.IGNORECASE)
SEPARATOR = '--------'

SIGNAL_PATTERNS = {
    'rx_power': re.compile(r'RX.*?(-?\d+(?:\.\d+)?)\s*dBm', re.IGNORECASE),
    'tx_power': re.compile(r'TX.*?(-?\d+(?:\.\d+)?)\s*dBm', re.IGNORECASE),
    'temperature': re.compile(r'Temperature.*?(-?\d+(?:\.\d+)?)', re.IGNORECASE),
    'voltage': re.compile(r'Voltage.*?(\d+(?:\.\d+)?)', re.IGNORECASE),
}


def map_status(value: str) -> str:
    lowered = value.lower()
    if lowered in ONLINE_STATES:
        return ONLINE
    if lowered in OFFLINE_STATES:
        return OFFLINE
    return UNKNOWN


def format_bdcom_mac(value: str) -> str:
    """70a5.6add.7e1d -> 70:a5:6a:dd:7e:1d"""
    if not value or '.' not in value:
        return value
    digits = value.replace('.', '')
    if len(digits) != 12:
        return value
    return ':'.join(digits[i:i + 2] for i in range(0, 12, 2)).lower()


def find_table_row(output: str, join_continuation: bool = True) -> Tuple[Optional[str], Optional[str]]:
    """Locate the first EPON row after the dashed separator.

    BDCOM wraps wide tables, so the following non-EPON line is returned as a
    continuation (or joined onto the row when join_continuation is set).
    """
    lines = [line for line in re.split(r'[\r\n]+', output) if line.strip()]
    found_separator = False
    for i, line in enumerate(lines):
        if SEPARATOR in line:
            found_separator = True
            continue
        if found_separator and line.strip().upper().startswith('EPON'):
            continuation = None
            if i + 1 < len(lines):
                next_line = lines[i + 1].strip()
                if not next_line.upper().startswith('EPON') and '----' not in next_line:
                    continuation = next_line
            if join_continuation and continuation:
                return f"{line} {continuation}", None
            return line, continuation
    return None, None


def _value(parts: List[str], index: int) -> Optional[str]:
    if index < len(parts) and parts[index] != 'N/A':
        return parts[index]
    return None


def _timestamp(parts: List[str], index: int) -> Optional[str]:
    date, clock = _value(parts, index), _value(parts, index + 1)
    if date and clock:
        return f"{date} {clock}"
    return None


class BdcomVendor(OltVendor):
    """BDCOM EPON OLT"""

    vendor_name = 'bdcom'
    requires_enable = True

    def get_onu_status_command(self, port: str, onu_id: int) -> str:
        return f"show epon onu-information interface epon{port} {onu_id}"

    def get_active_onu_command(self, port: str, onu_id: int) -> str:
        return f"show epon active-onu interface epon{port} {onu_id}"

    def get_inactive_onu_command(self, port: str, onu_id: int) -> str:
        return f"show epon inactive-onu interface epon{port} {onu_id}"

    def get_signal_level_command(self, port: str, onu_id: int) -> str:
        return f"show epon onu-ddm epon{port}:{onu_id}"

    def get_set_vlan_commands(self, port: str, onu_id: int, vlan_id: int) -> List[str]:
        return [
            "config",
            f"interface ePON {port}:{onu_id}",
            f"epon onu port 1 ctc vlan mode tag {vlan_id}",
            "exit",
            "exit",
        ]

    def get_port_reboot_commands(self, port: str, onu_id: int) -> List[str]:
        return [
            "configure terminal",
            f"interface ePON {port}:{onu_id}",
            "epon onu port 1 ctc shutdown",
            "no epon onu port 1 ctc shutdown",
            "exit",
            "exit",
        ]

    def parse_onu_status(self, output: str) -> OnuStatusData:
        """Parse ``show epon onu-information``.

        The row is usually wrapped over two lines::

            EPON0/8:15       PICO     E910       70a5.6add.7e1d N/A
                static   deregistered     power-off
        """
        data = OnuStatusData()

        if not output or not output.strip():
            data.error = 'ONU not found or not registered'
            return data
        if 'has registered 0 ONUs' in output:
            data.error = 'ONU not registered on this interface'
            return data

        row, continuation = find_table_row(output, join_continuation=False)
        if not row:
            data.error = 'Could not find ONU data in output - ONU may not be registered'
            data.raw_data = {'output_snippet': output[:300]}
            return data

        parts = row.split()
        if len(parts) >= 4:
            match = INTERFACE_RE.match(parts[0])
            if match:
                data.port, data.onu_id = match.group(1), match.group(2)
            data.vendor_id = parts[1]
            data.model_id = parts[2]
            data.onu_type = f"{parts[1]} {parts[2]}"
            data.mac_address = format_bdcom_mac(parts[3])
            if len(parts) > 4 and (continuation or len(parts) < 7):
                description = ' '.join(parts[4:])
                data.description = description if description != 'N/A' else None

        if continuation:
            tail = continuation.split()
            if len(tail) >= 2:
                data.bind_type = tail[0]
                data.olt_status = tail[1]
                data.status = map_status(tail[1])
                if len(tail) > 2:
                    data.last_dereg_reason = ' '.join(tail[2:])
        elif len(parts) >= 7:
            # Wide terminal: everything on one line
            data.description = ' '.join(parts[4:-3]) or None
            data.bind_type = parts[-3]
            data.olt_status = parts[-2]
            data.status = map_status(parts[-2])
            data.last_dereg_reason = parts[-1]
        else:
            lowered = output.lower()
            if 'deregistered' in lowered or 'lost' in lowered:
                data.status = OFFLINE
            elif 'auto-configured' in lowered or 'registered' in lowered:
                data.status = ONLINE
            data.raw_data['parse_warning'] = 'Incomplete parsing - second line not found'

        if data.status == UNKNOWN and data.olt_status:
            logger.warning(f"Unknown BDCOM ONU status: {data.olt_status}")

        data.raw_data['output_snippet'] = output[:500]
        logger.debug(f"Parsed ONU status: port={data.port}, onu_id={data.onu_id}, status={data.status}")
        return data

    def parse_active_onu(self, output: str) -> Dict[str, Any]:
        """IntfName MAC Status OAMStatus Distance RTT LastRegTime LastDeregTime LastDeregReason Alivetime"""
        if not output or 'has bound 0 active ONUs' in output:
            return {}
        row, _ = find_table_row(output)
        if not row:
            logger.warning("Could not find active ONU data line in output")
            return {}

        parts = row.split()
        if len(parts) < 10:
            return {}
        details = {
            'oam_status': _value(parts, 3),
            'last_reg_time': _timestamp(parts, 6),
            'last_dereg_time': _timestamp(parts, 8),
            'last_dereg_reason': _value(parts, 10),
        }
        if parts[4].isdigit():
            details['distance'] = int(parts[4])
        if len(parts) > 11:
            details['alive_time'] = ' '.join(parts[11:])
        return details

    def parse_inactive_onu(self, output: str) -> Dict[str, Any]:
        """IntfName MAC Status LastRegTime LastDeregTime LastDeregReason Absenttime"""
        if not output or 'has bound 0 inactive ONUs' in output:
            return {}
        row, _ = find_table_row(output)
        if not row:
            logger.warning("Could not find inactive ONU data line in output")
            return {}

        parts = row.split()
        if len(parts) < 7:
            return {}
        details = {
            'last_reg_time': _timestamp(parts, 3),
            'last_dereg_time': _timestamp(parts, 5),
            'last_dereg_reason': _value(parts, 7),
        }
        if len(parts) > 8:
            # Absent time shares the alive_time field
            details['alive_time'] = ' '.join(parts[8:])
        return details

    def parse_signal_level(self, output: str) -> SignalLevelData:
        data = SignalLevelData(raw_data={'output': output})
        for line in (output or '').split('\n'):
            line = line.strip()
            for name, pattern in SIGNAL_PATTERNS.items():
                match = pattern.search(line)
                if match:
                    setattr(data, name, float(match.group(1)))
        return data
