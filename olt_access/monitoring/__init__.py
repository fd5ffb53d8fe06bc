"""
Monitoring package - telnet session pooling
"""

from .connection_pool import PooledSession, TelnetConnectionPool, make_session_key

__all__ = ['PooledSession', 'TelnetConnectionPool', 'make_session_key']
