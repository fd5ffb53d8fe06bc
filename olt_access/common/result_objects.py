"""
Result objects returned across the access layer instead of bare values or None
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class ResultStatus(Enum):
    """Status enumeration for operation results"""
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one interactive command, immutable once produced"""

    command: str
    success: bool
    output: str = ""
    execution_time: float = 0.0  # milliseconds
    error: Optional[str] = None
    truncated: bool = False


@dataclass(frozen=True)
class MultiCommandResult:
    """Results of a sequential command batch run on one session"""

    results: List[CommandResult] = field(default_factory=list)
    execution_time: float = 0.0

    @property
    def success(self) -> bool:
        return all(result.success for result in self.results)

    @property
    def failed(self) -> Optional[CommandResult]:
        """The command that stopped the batch, if any"""
        for result in self.results:
            if not result.success:
                return result
        return None

    @property
    def outputs(self) -> List[str]:
        return [result.output for result in self.results]


@dataclass(frozen=True)
class SnmpVarbind:
    """Decoded SNMP (OID, type, value) triple"""

    oid: str
    type: str
    value: Any
    raw: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'oid': self.oid,
            'type': self.type,
            'value': self.value
        }


@dataclass
class EquipmentResponse:
    """Structured response handed to the HTTP layer"""

    success: bool
    data: Any = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    status: ResultStatus = ResultStatus.SUCCESS
    execution_time: float = 0.0  # milliseconds
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation"""
        result = {
            'success': self.success,
            'data': self.data,
            'status': self.status.value,
            'executionTime': self.execution_time,
            'timestamp': self.timestamp.isoformat()
        }
        if self.error is not None:
            result['error'] = self.error
            result['errorCode'] = self.error_code
        return result


def create_success_response(data: Any = None, execution_time: float = 0.0,
                            **kwargs) -> EquipmentResponse:
    """Create a successful response object"""
    return EquipmentResponse(
        success=True,
        data=data,
        execution_time=execution_time,
        **kwargs
    )


def create_failure_response(error: str, error_code: str = None,
                            status: ResultStatus = ResultStatus.FAILED,
                            execution_time: float = 0.0, **kwargs) -> EquipmentResponse:
    """Create a failure response object"""
    return EquipmentResponse(
        success=False,
        error=error,
        error_code=error_code,
        status=status,
        execution_time=execution_time,
        **kwargs
    )
