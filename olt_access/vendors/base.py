"""
Vendor strategy interface for OLT command syntax and output parsing
"""

from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

ONLINE = 'online'
OFFLINE = 'offline'
UNKNOWN = 'unknown'


@dataclass
class OnuStatusData:
    """Parsed ONU status, merged from the status and active/inactive tables"""
    port: str = ''
    onu_id: str = ''
    status: str = UNKNOWN
    olt_status: Optional[str] = None
    vendor_id: Optional[str] = None
    model_id: Optional[str] = None
    onu_type: Optional[str] = None
    mac_address: Optional[str] = None
    description: Optional[str] = None
    bind_type: Optional[str] = None
    last_dereg_reason: Optional[str] = None
    distance: Optional[int] = None
    oam_status: Optional[str] = None
    last_reg_time: Optional[str] = None
    last_dereg_time: Optional[str] = None
    alive_time: Optional[str] = None
    error: Optional[str] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)

    def merge(self, details: Dict[str, Any]):
        """Overlay non-empty detail fields"""
        for key, value in details.items():
            if key == 'raw_data':
                self.raw_data.update(value or {})
            elif value is not None and hasattr(self, key):
                setattr(self, key, value)

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


@dataclass
class SignalLevelData:
    """Parsed optical diagnostics"""
    port: str = ''
    onu_id: str = ''
    rx_power: Optional[float] = None
    tx_power: Optional[float] = None
    temperature: Optional[float] = None
    voltage: Optional[float] = None
    raw_data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}


class OltVendor(ABC):
    """Abstract base class for vendor command grammars"""

    vendor_name: str = ''
    # Show commands on this vendor need privileged mode
    requires_enable: bool = True

    @abstractmethod
    def get_onu_status_command(self, port: str, onu_id: int) -> str:
        pass

    @abstractmethod
    def parse_onu_status(self, output: str) -> OnuStatusData:
        pass

    @abstractmethod
    def get_signal_level_command(self, port: str, onu_id: int) -> str:
        pass

    @abstractmethod
    def parse_signal_level(self, output: str) -> SignalLevelData:
        pass

    @abstractmethod
    def get_set_vlan_commands(self, port: str, onu_id: int, vlan_id: int) -> List[str]:
        pass

    @abstractmethod
    def get_port_reboot_commands(self, port: str, onu_id: int) -> List[str]:
        pass

    def get_active_onu_command(self, port: str, onu_id: int) -> Optional[str]:
        """Details command for online ONUs, None when the vendor has none"""
        return None

    def parse_active_onu(self, output: str) -> Dict[str, Any]:
        return {}

    def get_inactive_onu_command(self, port: str, onu_id: int) -> Optional[str]:
        """Details command for offline ONUs, None when the vendor has none"""
        return None

    def parse_inactive_onu(self, output: str) -> Dict[str, Any]:
        return {}
