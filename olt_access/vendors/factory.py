"""
Vendor strategy registry
"""

import logging
from typing import Dict, List, Optional

from ..common.exceptions import ConfigurationException, UnsupportedVendorError
from .base import OltVendor
from .bdcom import BdcomVendor

logger = logging.getLogger(__name__)


class VendorFactory:
    """Returns the vendor strategy registered for a vendor type"""

    def __init__(self, default_vendor: str = 'bdcom', vendors: Optional[List[OltVendor]] = None):
        self.default_vendor = default_vendor.lower()
        self._vendors: Dict[str, OltVendor] = {}
        for vendor in vendors or [BdcomVendor()]:
            self.register(vendor)
        if self.default_vendor not in self._vendors:
            raise ConfigurationException(
                f"Default vendor '{default_vendor}' is not registered",
                config_key="DEFAULT_VENDOR", error_code="INVALID_CONFIGURATION",
                suggestions=[f"Use one of: {', '.join(self._vendors)}"]
            )
        logger.debug(f"Vendor factory initialized with: {', '.join(self._vendors)}")

    def register(self, vendor: OltVendor):
        self._vendors[vendor.vendor_name.lower()] = vendor

    def get_vendor(self, vendor_type: Optional[str] = None) -> OltVendor:
        """Resolve a vendor type; 'auto' and empty mean the default vendor"""
        name = (vendor_type or 'auto').strip().lower()
        if name == 'auto':
            name = self.default_vendor
        vendor = self._vendors.get(name)
        if vendor is None:
            raise UnsupportedVendorError(vendor_type, supported=self.supported_vendors)
        return vendor

    @property
    def supported_vendors(self) -> List[str]:
        return list(self._vendors)
