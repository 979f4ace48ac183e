"""
Modbus TCP to DNP3-style outstation gateway.
"""

from .modbus_gateway_commands import CommandDispatcher, ValueInterlock
from .modbus_gateway_connection import ConnectionSupervisor
from .modbus_gateway_outstation import Outstation, OutstationError, PointDatabase, configure_database
from .modbus_gateway_plugin import EndpointWorker, GatewayRuntime, SequentialPoller, poll_round
from .modbus_gateway_points import PointStateStore
from .modbus_gateway_poller import DevicePoller
from .modbus_gateway_publisher import UpdateBuilder, UpdatePublisher
from .modbus_gateway_transport import ModbusTransport
from .modbus_gateway_types import (
    CommandStatus,
    ConnectionState,
    FailureKind,
    OperateType,
    PointType,
    PointUpdate,
    Sample,
    TransportFailure,
)

__version__ = "0.1.0"

__all__ = [
    "CommandDispatcher",
    "CommandStatus",
    "ConnectionState",
    "ConnectionSupervisor",
    "DevicePoller",
    "EndpointWorker",
    "FailureKind",
    "GatewayRuntime",
    "ModbusTransport",
    "OperateType",
    "Outstation",
    "OutstationError",
    "PointDatabase",
    "PointStateStore",
    "PointType",
    "PointUpdate",
    "Sample",
    "SequentialPoller",
    "TransportFailure",
    "UpdateBuilder",
    "UpdatePublisher",
    "ValueInterlock",
    "configure_database",
    "poll_round",
]
