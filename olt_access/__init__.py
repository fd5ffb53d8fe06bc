"""
OLT Access Layer - pooled telnet sessions, SNMP queries and ONU discovery for EPON OLT equipment
"""

import logging.config

from .config import Settings, get_settings, settings

__version__ = "1.0.0"

__all__ = ['Settings', 'get_settings', 'settings', 'configure_logging', '__version__']


def configure_logging(config: Settings = None):
    """Apply the logging configuration derived from settings"""
    logging.config.dictConfig((config or settings).get_logging_config())
