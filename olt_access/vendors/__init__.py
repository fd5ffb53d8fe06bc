from .base import OltVendor, OnuStatusData, SignalLevelData
from .bdcom import BdcomVendor
from .factory import VendorFactory

__all__ = ['OltVendor', 'OnuStatusData', 'SignalLevelData', 'BdcomVendor', 'VendorFactory']
