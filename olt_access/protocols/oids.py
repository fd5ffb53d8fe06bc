"""
OID constants consumed by the access layer
"""

# SNMPv2-MIB system group
SYSTEM_OIDS = {
    'sysDescr': '1.3.6.1.2.1.1.1.0',
    'sysObjectID': '1.3.6.1.2.1.1.2.0',
    'sysUpTime': '1.3.6.1.2.1.1.3.0',
    'sysContact': '1.3.6.1.2.1.1.4.0',
    'sysName': '1.3.6.1.2.1.1.5.0',
    'sysLocation': '1.3.6.1.2.1.1.6.0',
}

# IF-MIB ifXTable ifName column, indexed by ifIndex
IF_NAME_OID = '1.3.6.1.2.1.31.1.1.1.1'

# BDCOM EPON ONU table, indexed by the ONU ifIndex
BDCOM_ONU_OIDS = {
    'macAddress': '1.3.6.1.4.1.3320.101.11.1.1.3',
    'status': '1.3.6.1.4.1.3320.101.11.1.1.5',
    'description': '1.3.6.1.4.1.3320.101.11.1.1.6',
    'distance': '1.3.6.1.4.1.3320.101.11.1.1.7',
    'rxPower': '1.3.6.1.4.1.3320.101.11.1.1.9',
    'txPower': '1.3.6.1.4.1.3320.101.11.1.1.10',
    'temperature': '1.3.6.1.4.1.3320.101.11.1.1.11',
    'voltage': '1.3.6.1.4.1.3320.101.11.1.1.12',
    'current': '1.3.6.1.4.1.3320.101.11.1.1.13',
}

# onuStatus values
ONU_STATUS_ONLINE = 1
ONU_STATUS_OFFLINE = 2


def indexed(column_oid: str, index: int) -> str:
    """Instance OID for a table column at the given index"""
    return f"{column_oid}.{index}"
