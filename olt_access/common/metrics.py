"""
Prometheus metrics for the access layer
"""

import asyncio
import time
from functools import wraps

from prometheus_client import Counter, Gauge, Histogram

# Define metrics
telnet_pool_connections = Gauge(
    'telnet_pool_connections',
    'Pooled telnet sessions by state',
    ['state']
)

telnet_pool_events_total = Counter(
    'telnet_pool_events_total',
    'Telnet pool lifecycle events',
    ['event']
)

telnet_commands_total = Counter(
    'telnet_commands_total',
    'Total number of interactive commands executed',
    ['status']
)

telnet_command_duration_seconds = Histogram(
    'telnet_command_duration_seconds',
    'Interactive command execution time in seconds',
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

snmp_requests_total = Counter(
    'snmp_requests_total',
    'Total number of SNMP requests',
    ['operation', 'status']
)

snmp_response_time_seconds = Histogram(
    'snmp_response_time_seconds',
    'SNMP response time in seconds',
    ['operation'],
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0)
)

onu_discovery_total = Counter(
    'onu_discovery_total',
    'ONU ifIndex discovery outcomes',
    ['strategy']
)

onu_discovery_duration_seconds = Histogram(
    'onu_discovery_duration_seconds',
    'ONU ifIndex discovery time in seconds',
    buckets=(0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0)
)


def track_time(metric):
    """Decorator to track execution time"""
    def decorator(func):
        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            start = time.time()
            try:
                result = await func(*args, **kwargs)
                return result
            finally:
                metric.observe(time.time() - start)

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            start = time.time()
            try:
                result = func(*args, **kwargs)
                return result
            finally:
                metric.observe(time.time() - start)

        return async_wrapper if asyncio.iscoroutinefunction(func) else sync_wrapper
    return decorator
