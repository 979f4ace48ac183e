"""Modbus gateway type definitions."""

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Dict, Optional, Union


# DNP3 quality bit carried by change-event updates
QUALITY_ONLINE = 0x01


class ConnectionState(Enum):
    """Connection lifecycle of one Modbus endpoint."""
    DISCONNECTED = "DISCONNECTED"
    CONNECTED = "CONNECTED"
    FAULTED = "FAULTED"


class FailureKind(Enum):
    """Failures recovered locally by the polling and command paths."""
    TRANSPORT_CREATION = "TransportCreationFailure"
    CONNECT = "ConnectFailure"
    READ = "ReadFailure"
    WRITE = "WriteFailure"
    UNSUPPORTED_COMMAND = "UnsupportedCommand"


class PointType(Enum):
    """Point types of the outstation database."""
    ANALOG_INPUT = "AnalogInput"
    BINARY_INPUT = "BinaryInput"


class OperateType(Enum):
    """How the master asked for a control to be executed."""
    SELECT_BEFORE_OPERATE = "SelectBeforeOperate"
    DIRECT_OPERATE = "DirectOperate"
    DIRECT_OPERATE_NO_ACK = "DirectOperateNoAck"


class CommandStatus(IntEnum):
    """Command status codes returned to the master (DNP3 numbering)."""
    SUCCESS = 0
    TIMEOUT = 1
    NO_SELECT = 2
    FORMAT_ERROR = 3
    NOT_SUPPORTED = 4
    ALREADY_ACTIVE = 5
    HARDWARE_ERROR = 6


@dataclass(frozen=True)
class TransportFailure:
    """Last failure reported by a transport call."""
    kind: FailureKind
    message: str

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class PointUpdate:
    """A single value written to the outstation database.

    Static updates refresh the current value. Event updates additionally
    carry quality flags and are queued as change events by the outstation.
    """
    point_type: PointType
    index: int
    value: Union[int, bool]
    flags: int = 0
    event: bool = False


@dataclass
class Sample:
    """Result of one poll cycle for one endpoint."""
    valid: bool
    value: int = 0
    connected: bool = False
    status_bits: Dict[int, bool] = field(default_factory=dict)
    failure: Optional[TransportFailure] = None
