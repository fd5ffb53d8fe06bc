"""
Custom exceptions for the access layer with detailed error context and recovery suggestions
"""

from datetime import datetime
from typing import Any, Dict, List, Optional


class OltAccessException(Exception):
    """Base exception class for the access layer"""

    def __init__(self, message: str, error_code: str = None, details: Dict[str, Any] = None,
                 suggestions: List[str] = None, context: Dict[str, Any] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.context = context or {}
        self.timestamp = datetime.utcnow()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'message': self.message,
            'error_code': self.error_code,
            'details': self.details,
            'suggestions': self.suggestions,
            'context': self.context,
            'timestamp': self.timestamp.isoformat()
        }


class ProtocolException(OltAccessException):
    """Exception raised during protocol operations (Telnet, SNMP)"""

    def __init__(self, message: str, protocol: str = None, device_ip: str = None,
                 port: int = None, **kwargs):
        super().__init__(message, **kwargs)
        self.protocol = protocol
        self.device_ip = device_ip
        self.port = port

        if not self.suggestions:
            self.suggestions = [
                "Verify the protocol is enabled on the target device",
                "Check if the port is open and accessible",
                "Check firewall rules for the specific protocol"
            ]


class DeviceConnectionError(ProtocolException):
    """Transport-level connect or login failure"""

    def __init__(self, message: str, protocol: str = "TELNET", **kwargs):
        kwargs.setdefault("error_code", "DEVICE_CONNECTION_ERROR")
        super().__init__(message, protocol=protocol, **kwargs)


class CommandTimeoutError(ProtocolException):
    """Raised when the expected prompt is not observed within the configured window"""

    def __init__(self, message: str, operation: str = None, timeout_value: float = None,
                 protocol: str = "TELNET", **kwargs):
        kwargs.setdefault("error_code", "COMMAND_TIMEOUT")
        super().__init__(message, protocol=protocol, **kwargs)
        self.operation = operation
        self.timeout_value = timeout_value

        if not self.suggestions:
            self.suggestions = [
                "Check network latency to the device",
                "Verify the prompt patterns match the device CLI",
                "Consider increasing the command timeout"
            ]


class PoolExhaustedError(OltAccessException):
    """Raised when the session pool is full and nothing can be evicted"""

    def __init__(self, message: str, max_connections: int = None, **kwargs):
        kwargs.setdefault("error_code", "POOL_EXHAUSTED")
        super().__init__(message, **kwargs)
        self.max_connections = max_connections

        if not self.suggestions:
            self.suggestions = [
                "Retry the request after in-flight commands complete",
                "Increase TELNET_MAX_CONNECTIONS if the devices allow it"
            ]


class SNMPException(ProtocolException):
    """Exception raised during SNMP operations"""

    def __init__(self, message: str, community: str = None, version: str = None, **kwargs):
        kwargs.setdefault("error_code", "SNMP_ERROR")
        super().__init__(message, protocol="SNMP", **kwargs)
        self.community = community
        self.version = version

        if not self.suggestions:
            self.suggestions = [
                "Verify the SNMP community string",
                "Check SNMP version compatibility (v1/v2c)",
                "Verify SNMP is enabled and UDP 161 is reachable"
            ]


class SNMPVarbindError(SNMPException):
    """The agent answered with an error varbind for a specific OID"""

    def __init__(self, message: str, oid: str = None, **kwargs):
        kwargs.setdefault("error_code", "SNMP_VARBIND_ERROR")
        super().__init__(message, **kwargs)
        self.oid = oid


class DiscoveryException(OltAccessException):
    """Exception raised during ONU discovery operations"""

    def __init__(self, message: str, device_ip: str = None, discovery_method: str = None, **kwargs):
        super().__init__(message, **kwargs)
        self.device_ip = device_ip
        self.discovery_method = discovery_method


class DiscoveryNotFoundError(DiscoveryException):
    """ONU lookup exhausted every range without a match"""

    def __init__(self, port_address: str, device_ip: str = None, **kwargs):
        kwargs.setdefault("error_code", "ONU_NOT_FOUND")
        super().__init__(
            f"ONU {port_address} not found (device offline or invalid port)",
            device_ip=device_ip, discovery_method="ifname_range_search", **kwargs
        )
        self.port_address = port_address

        if not self.suggestions:
            self.suggestions = [
                "Verify the port address exists on the device",
                "Check whether the ONU is registered",
                "Review DISCOVERY_IFINDEX_RANGES for this chassis family"
            ]


class ValidationException(OltAccessException):
    """Exception raised when data validation fails"""

    def __init__(self, message: str, field_name: str = None, field_value: Any = None, **kwargs):
        super().__init__(message, **kwargs)
        self.field_name = field_name
        self.field_value = field_value


class InvalidInputError(ValidationException):
    """Malformed port address, empty command or otherwise unusable input"""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "INVALID_INPUT")
        super().__init__(message, **kwargs)


class UnsupportedVendorError(ValidationException):
    """Raised when no vendor strategy is registered for a vendor type"""

    def __init__(self, vendor_type: str, supported: Optional[List[str]] = None, **kwargs):
        kwargs.setdefault("error_code", "UNSUPPORTED_VENDOR")
        message = f"Unsupported vendor type: {vendor_type}"
        if supported:
            message += f". Supported vendors: {', '.join(supported)}"
        super().__init__(message, field_name="vendor_type", field_value=vendor_type, **kwargs)


class ConfigurationException(OltAccessException):
    """Exception raised for invalid configuration"""

    def __init__(self, message: str, config_key: str = None, **kwargs):
        super().__init__(message, **kwargs)
        self.config_key = config_key
