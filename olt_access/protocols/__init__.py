"""
Protocols package - telnet and SNMP clients
"""

from .snmp_client import SNMPClient, SnmpOptions
from .telnet_client import SessionState, TelnetConnection, TelnetConnectParams

__all__ = ['SNMPClient', 'SnmpOptions', 'SessionState', 'TelnetConnection', 'TelnetConnectParams']
