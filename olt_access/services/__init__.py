"""
Services package - Business logic layer

Import services directly where needed:
    from olt_access.services.equipment_service import EquipmentService
    from olt_access.services.device_locator import DeviceLocator
"""

# No imports at package level to prevent circular dependencies
__all__ = []
