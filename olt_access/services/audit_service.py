"""
Hand-off of interactive command executions to an external audit collaborator
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

AUDIT_TRUNCATION_MARKER = "\n... [truncated]"


@dataclass(frozen=True)
class CommandAuditRecord:
    """What ran, where, and how it went"""
    command: str
    output: str
    device_ip: str
    execution_time: float
    success: bool
    username: Optional[str] = None
    error: Optional[str] = None
    token_id: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.utcnow)

    @classmethod
    def build(cls, command: str, output: Optional[str], device_ip: str, execution_time: float,
              success: bool, max_output: int = 10 * 1024, **kwargs) -> "CommandAuditRecord":
        output = output or ''
        if len(output) > max_output:
            output = output[:max_output] + AUDIT_TRUNCATION_MARKER
        return cls(command=command, output=output, device_ip=device_ip,
                   execution_time=execution_time, success=success, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'command': self.command,
            'output': self.output,
            'deviceIp': self.device_ip,
            'executionTime': self.execution_time,
            'success': self.success,
            'username': self.username,
            'error': self.error,
            'tokenId': self.token_id,
            'timestamp': self.timestamp.isoformat()
        }


class AuditSink(ABC):
    """Receives audit records; persistence belongs to the implementation"""

    @abstractmethod
    async def record(self, record: CommandAuditRecord):
        pass


class LoggingAuditSink(AuditSink):
    """Default sink writing one log line per execution"""

    def __init__(self, logger_name: str = "olt_access.audit"):
        self.logger = logging.getLogger(logger_name)

    async def record(self, record: CommandAuditRecord):
        status = 'SUCCESS' if record.success else 'FAILED'
        self.logger.info(
            f"telnet command {status} on {record.device_ip} by {record.username}: "
            f"{record.command!r} ({record.execution_time}ms, {len(record.output)} chars)"
            + (f" error={record.error}" if record.error else "")
        )


class AuditService:
    """Forwards records to the sink without letting sink failures escape"""

    def __init__(self, sink: Optional[AuditSink] = None):
        self.sink = sink or LoggingAuditSink()

    async def record(self, record: CommandAuditRecord) -> bool:
        try:
            await self.sink.record(record)
            return True
        except Exception as e:
            logger.error(f"Failed to record telnet command audit: {e}")
            return False
